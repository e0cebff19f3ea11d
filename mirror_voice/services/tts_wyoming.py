"""Wyoming Piper TTS adapter via Wyoming protocol."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Tuple

from wyoming.audio import AudioChunk, AudioStop
from wyoming.client import AsyncTcpClient
from wyoming.tts import Synthesize, SynthesizeVoice

from ..exceptions import SynthesisError
from ..interfaces import Speaker
from .playback import SoundDevicePlayer

logger = logging.getLogger(__name__)


class WyomingSpeaker(Speaker):
    """
    Text-to-speech using Wyoming Piper protocol.

    Uses the official Wyoming protocol library for proper communication.

    Args:
        host: Wyoming service host (e.g., "localhost")
        port: Wyoming service port (e.g., 10200 for piper)
        timeout: Connection timeout in seconds.
        speaker: Optional speaker/voice identifier.
        player: Playback backend; defaults to sounddevice.
    """

    def __init__(
        self,
        *,
        host: str = "localhost",
        port: int = 10200,
        timeout: float = 30.0,
        speaker: Optional[str] = None,
        player: Optional[SoundDevicePlayer] = None,
    ) -> None:
        self._host = host
        self._port = port
        self._timeout = timeout
        self._speaker = speaker
        self._player = player or SoundDevicePlayer()

    def speak(self, text: str) -> None:
        if not text.strip():
            return

        logger.debug("Connecting to %s:%s...", self._host, self._port)
        try:
            audio, rate, width, channels = asyncio.run(self._synthesize(text))
        except asyncio.TimeoutError as exc:
            raise SynthesisError(f"Wyoming Piper request timed out after {self._timeout}s") from exc
        except OSError as exc:
            raise SynthesisError(f"Wyoming Piper error: {exc}") from exc

        self._player.play(audio, rate, width, channels)

    def stop(self) -> None:
        self._player.stop()

    async def _synthesize(self, text: str) -> Tuple[bytes, int, int, int]:
        voice = SynthesizeVoice(speaker=self._speaker) if self._speaker else None
        async with AsyncTcpClient(self._host, self._port) as client:
            await client.write_event(Synthesize(text=text, voice=voice).event())

            audio_chunks: List[bytes] = []
            rate, width, channels = 22050, 2, 1
            while True:
                event = await asyncio.wait_for(client.read_event(), timeout=self._timeout)
                if event is None:
                    break

                if AudioChunk.is_type(event.type):
                    chunk = AudioChunk.from_event(event)
                    audio_chunks.append(chunk.audio)
                    rate, width, channels = chunk.rate, chunk.width, chunk.channels
                elif AudioStop.is_type(event.type):
                    break

        if not audio_chunks:
            raise SynthesisError("Wyoming Piper produced no audio output")
        return b"".join(audio_chunks), rate, width, channels
