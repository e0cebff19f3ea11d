"""Wyoming Whisper STT adapter via Wyoming protocol."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Iterator, Optional

from wyoming.asr import Transcribe, Transcript
from wyoming.audio import AudioChunk as WyomingAudioChunk
from wyoming.audio import AudioStart, AudioStop
from wyoming.client import AsyncTcpClient

from ..exceptions import TranscriptionError
from ..framing import SilenceEndpointer
from ..interfaces import Transcriber
from ..models import AudioChunk, TranscriptEvent

logger = logging.getLogger(__name__)


class WyomingTranscriber(Transcriber):
    """
    Speech-to-text using the Wyoming protocol (e.g. wyoming-faster-whisper).

    Audio is forwarded to the server as it is captured. Once the silence
    endpointer decides the utterance is over, ``AudioStop`` is sent and the
    returned ``Transcript`` becomes the single final event.

    Args:
        host: Wyoming service host (e.g., "localhost")
        port: Wyoming service port (e.g., 10300 for whisper)
        language: Language hint; region suffixes are stripped ("en-US" -> "en").
        timeout: Seconds to wait for the transcript after ``AudioStop``.
        silence_threshold, silence_duration, max_seconds: Endpointer settings.
    """

    def __init__(
        self,
        *,
        host: str = "localhost",
        port: int = 10300,
        language: Optional[str] = None,
        timeout: float = 30.0,
        silence_threshold: float = 0.01,
        silence_duration: float = 1.5,
        max_seconds: float = 15.0,
    ) -> None:
        self._host = host
        self._port = port
        self._language = language
        self._timeout = timeout
        self._silence_threshold = silence_threshold
        self._silence_duration = silence_duration
        self._max_seconds = max_seconds

    def attach(self, chunks: Iterable[AudioChunk]) -> Iterator[TranscriptEvent]:
        loop = asyncio.new_event_loop()
        client = AsyncTcpClient(self._host, self._port)
        endpointer = SilenceEndpointer(
            silence_threshold=self._silence_threshold,
            silence_duration=self._silence_duration,
            max_seconds=self._max_seconds,
        )
        try:
            logger.debug("Connecting to %s:%s...", self._host, self._port)
            self._run(loop, client.connect())
            self._run(loop, client.write_event(Transcribe(language=_short_language(self._language)).event()))

            started = False
            finished = False
            for chunk in chunks:
                if not started:
                    self._run(
                        loop,
                        client.write_event(AudioStart(rate=chunk.sample_rate, width=2, channels=chunk.channels).event()),
                    )
                    started = True
                self._run(
                    loop,
                    client.write_event(
                        WyomingAudioChunk(
                            audio=chunk.data,
                            rate=chunk.sample_rate,
                            width=2,
                            channels=chunk.channels,
                        ).event()
                    ),
                )
                if endpointer.feed(chunk.samples(), chunk.sample_rate):
                    finished = True
                    break

            if not finished:
                # Audio stopped before the utterance ended; the session was cancelled
                return

            self._run(loop, client.write_event(AudioStop().event()))
            text = self._run(loop, asyncio.wait_for(self._read_transcript(client), timeout=self._timeout))
            yield TranscriptEvent(text=text, is_final=True)
        except asyncio.TimeoutError as exc:
            raise TranscriptionError(f"Wyoming Whisper request timed out after {self._timeout}s") from exc
        except OSError as exc:
            raise TranscriptionError(f"Wyoming Whisper error: {exc}") from exc
        finally:
            try:
                self._run(loop, client.disconnect())
            except OSError as exc:
                logger.debug("Error while disconnecting from Wyoming: %s", exc)
            loop.close()

    def cancel(self) -> None:
        # attach() is driven by the chunk stream, which ends when the handle closes
        logger.debug("Wyoming transcription cancelled")

    @staticmethod
    def _run(loop: asyncio.AbstractEventLoop, awaitable):
        return loop.run_until_complete(awaitable)

    async def _read_transcript(self, client: AsyncTcpClient) -> str:
        while True:
            event = await client.read_event()
            if event is None:
                raise TranscriptionError("No transcript received from Wyoming Whisper")
            if Transcript.is_type(event.type):
                return Transcript.from_event(event).text.strip()


def _short_language(language: Optional[str]) -> str:
    # Normalize language code: strip region codes (en-US -> en)
    lang = language or "en"
    return lang.split("-")[0]
