"""Local Whisper-based STT adapter."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Iterable, Iterator, List, Optional

import numpy as np

from ..exceptions import TranscriptionError
from ..framing import SilenceEndpointer
from ..interfaces import Transcriber
from ..models import AudioChunk, TranscriptEvent

logger = logging.getLogger(__name__)


class WhisperTranscriber(Transcriber):
    """
    Speech-to-text implementation using OpenAI Whisper on the local machine.

    Chunks are buffered until the silence endpointer fires, then the whole
    utterance is transcribed and emitted as a single final event.

    Args:
        model_size: Whisper model name (e.g., "tiny", "base", "small", "medium", "large").
        device: Device string passed to whisper (e.g., "cpu", "cuda").
        language: Optional language hint ("en-US" is reduced to "en").

    Notes:
        - Requires the `openai-whisper` package (``pip install mirror-voice[whisper]``).
        - Expects 16 kHz 16-bit PCM chunks.
    """

    def __init__(
        self,
        *,
        model_size: str = "tiny",
        device: Optional[str] = None,
        language: Optional[str] = None,
        silence_threshold: float = 0.01,
        silence_duration: float = 1.5,
        max_seconds: float = 15.0,
    ) -> None:
        self.model_size = model_size
        self.device = device
        self.language = language.split("-")[0] if language else None
        self.silence_threshold = silence_threshold
        self.silence_duration = silence_duration
        self.max_seconds = max_seconds
        self._model = None

    @property
    def model(self):
        if self._model is None:
            self._model = _load_whisper(self.model_size, device=self.device)
        return self._model

    def cancel(self) -> None:
        # Buffering stops with the chunk stream; a running transcribe() is not interruptible
        logger.debug("Whisper transcription cancelled")

    def attach(self, chunks: Iterable[AudioChunk]) -> Iterator[TranscriptEvent]:
        endpointer = SilenceEndpointer(
            silence_threshold=self.silence_threshold,
            silence_duration=self.silence_duration,
            max_seconds=self.max_seconds,
        )
        buffered: List[np.ndarray] = []
        for chunk in chunks:
            samples = chunk.samples()
            buffered.append(samples)
            if endpointer.feed(samples, chunk.sample_rate):
                break
        else:
            return

        if not endpointer.speech_started:
            yield TranscriptEvent(text="", is_final=True)
            return

        pcm = np.concatenate(buffered).astype(np.float32) / 32768.0
        logger.debug("Transcribing %.2fs of audio", len(pcm) / 16000.0)
        try:
            result = self.model.transcribe(pcm, language=self.language, fp16=False)
        except RuntimeError as exc:
            raise TranscriptionError(f"Whisper transcription failed: {exc}") from exc
        yield TranscriptEvent(text=str(result.get("text", "")).strip(), is_final=True)


@lru_cache(maxsize=1)
def _load_whisper(model_size: str, device: Optional[str]):
    try:
        import whisper  # type: ignore
    except ImportError as exc:  # pragma: no cover - runtime dependency
        raise TranscriptionError(
            "whisper package is required for WhisperTranscriber. Install mirror-voice[whisper]."
        ) from exc

    return whisper.load_model(model_size, device=device)
