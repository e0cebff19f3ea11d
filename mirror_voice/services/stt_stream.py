"""Streaming speech-to-text over a WebSocket."""

from __future__ import annotations

import json
import logging
import ssl
import threading
from typing import Any, Dict, Iterable, Iterator, List, Optional

import websocket

from ..exceptions import TranscriptionError
from ..interfaces import Transcriber
from ..models import COMMAND_SAMPLE_RATE, AudioChunk, TranscriptEvent

logger = logging.getLogger(__name__)


class StreamingSocketTranscriber(Transcriber):
    """
    Bidirectional streaming recognizer.

    Protocol:
        1. Connect and send the recognition config as a JSON text frame::

               {"config": {"encoding": "LINEAR16", "sampleRateHertz": 16000,
                           "languageCode": "en-US"},
                "interimResults": true}

        2. Send raw PCM16 mono chunks as binary frames from a sender thread.
        3. Receive JSON frames ``{"results": [{"alternatives": [{"transcript"}], "isFinal"}]}``
           and yield them as :class:`TranscriptEvent` until a final result arrives.
        4. Send ``{"event": "end"}`` once the audio runs out.

    Args:
        url: WebSocket endpoint (``ws://`` or ``wss://``).
        api_key: Optional bearer token sent in the handshake.
        language: BCP-47 language code.
        timeout: Seconds to wait for each server frame.
    """

    def __init__(
        self,
        *,
        url: str,
        api_key: Optional[str] = None,
        language: str = "en-US",
        sample_rate: int = COMMAND_SAMPLE_RATE,
        timeout: float = 30.0,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._language = language
        self._sample_rate = sample_rate
        self._timeout = timeout
        self._ssl_context = ssl_context
        self._ws = None
        self._cancelled = threading.Event()

    def recognition_config(self) -> Dict[str, Any]:
        return {
            "config": {
                "encoding": "LINEAR16",
                "sampleRateHertz": self._sample_rate,
                "languageCode": self._language,
            },
            "interimResults": True,
        }

    def attach(self, chunks: Iterable[AudioChunk]) -> Iterator[TranscriptEvent]:
        self._cancelled.clear()
        ws = self._connect()
        self._ws = ws
        stop = threading.Event()
        sender = threading.Thread(target=self._send_audio, args=(ws, chunks, stop), name="stt-sender", daemon=True)
        sender.start()
        try:
            while True:
                try:
                    frame = ws.recv()
                except websocket.WebSocketTimeoutException as exc:
                    if self._cancelled.is_set():
                        return
                    raise TranscriptionError(f"No transcription result within {self._timeout}s") from exc
                except (websocket.WebSocketException, OSError) as exc:
                    if self._cancelled.is_set():
                        logger.debug("Transcription stream cancelled")
                        return
                    raise TranscriptionError(f"Transcription stream failed: {exc}") from exc

                if not frame:
                    logger.debug("Transcription stream closed by server")
                    return
                for event in parse_recognition_response(_decode(frame)):
                    yield event
                    if event.is_final:
                        return
        finally:
            stop.set()
            self._ws = None
            try:
                ws.close()
            except (websocket.WebSocketException, OSError) as exc:
                logger.debug("Error while closing transcription socket: %s", exc)
            sender.join(timeout=1.0)

    def cancel(self) -> None:
        """Close the active socket so a blocked ``recv()`` returns immediately."""
        self._cancelled.set()
        ws = self._ws
        if ws is None:
            return
        try:
            ws.close()
        except (websocket.WebSocketException, OSError) as exc:
            logger.debug("Error while cancelling transcription socket: %s", exc)

    def _connect(self):
        header = [f"Authorization: Bearer {self._api_key}"] if self._api_key else None
        sslopt = {"context": self._ssl_context} if self._ssl_context else None
        try:
            ws = websocket.create_connection(self._url, timeout=self._timeout, header=header, sslopt=sslopt)
            ws.send(json.dumps(self.recognition_config()))
        except (websocket.WebSocketException, OSError) as exc:
            raise TranscriptionError(f"Could not connect to transcription service: {exc}") from exc
        logger.debug("Transcription stream opened at %s", self._url)
        return ws

    def _send_audio(self, ws, chunks: Iterable[AudioChunk], stop: threading.Event) -> None:
        sent = 0
        try:
            for chunk in chunks:
                if stop.is_set():
                    return
                ws.send_binary(chunk.data)
                sent += 1
            if not stop.is_set():
                ws.send(json.dumps({"event": "end"}))
        except (websocket.WebSocketException, OSError) as exc:
            if not stop.is_set():
                logger.warning("Stopped streaming audio after %d chunks: %s", sent, exc)


def parse_recognition_response(payload: Dict[str, Any]) -> List[TranscriptEvent]:
    """
    Convert one recognition response into transcript events.

    Final results are concatenated into one final event; remaining interim
    text is appended to form a single interim event.
    """
    error = payload.get("error")
    if error:
        message = error.get("message") if isinstance(error, dict) else error
        raise TranscriptionError(f"Transcription service error: {message}")

    final_parts: List[str] = []
    interim_parts: List[str] = []
    for result in payload.get("results") or []:
        if not isinstance(result, dict):
            continue
        alternatives = result.get("alternatives") or []
        if not alternatives or not isinstance(alternatives[0], dict):
            continue
        transcript = alternatives[0].get("transcript") or ""
        if result.get("isFinal"):
            final_parts.append(transcript)
        else:
            interim_parts.append(transcript)

    if final_parts:
        return [TranscriptEvent(text="".join(final_parts).strip(), is_final=True)]
    if interim_parts:
        return [TranscriptEvent(text="".join(interim_parts).strip(), is_final=False)]
    return []


def _decode(frame: Any) -> Dict[str, Any]:
    if isinstance(frame, bytes):
        frame = frame.decode("utf-8", errors="replace")
    try:
        payload = json.loads(frame)
    except json.JSONDecodeError as exc:
        raise TranscriptionError("Transcription frame was not valid JSON") from exc
    if not isinstance(payload, dict):
        raise TranscriptionError("Transcription frame was not a JSON object")
    return payload
