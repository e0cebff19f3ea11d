"""Audio framing helpers for keyword detection and utterance endpointing."""

from __future__ import annotations

from typing import Iterator

import numpy as np


class FrameBuffer:
    """
    Buffers sample chunks and yields fixed-length frames.

    Keyword engines need frames of exactly ``frame_length`` samples, while the
    capture device delivers blocks of whatever size it likes. Leftover samples
    stay buffered for the next chunk.

    Usage:
        >>> frames = FrameBuffer(512)
        >>> chunk = np.zeros(1200, dtype=np.int16)
        >>> [len(f) for f in frames.add(chunk)]
        [512, 512]
        >>> frames.pending
        176
    """

    def __init__(self, frame_length: int) -> None:
        if frame_length <= 0:
            raise ValueError("frame_length must be positive")
        self.frame_length = frame_length
        self._buffer = np.empty(0, dtype=np.int16)

    def add(self, samples: np.ndarray) -> Iterator[np.ndarray]:
        """
        Add samples and yield every complete frame.

        Args:
            samples: 1-D int16 sample array of any length.

        Yields:
            int16 arrays of exactly ``frame_length`` samples.
        """
        if samples.size == 0:
            return

        self._buffer = np.concatenate((self._buffer, samples.astype(np.int16, copy=False).ravel()))

        while len(self._buffer) >= self.frame_length:
            frame = self._buffer[: self.frame_length]
            self._buffer = self._buffer[self.frame_length :]
            yield frame

    @property
    def pending(self) -> int:
        """Number of buffered samples not yet emitted as a frame."""
        return len(self._buffer)

    def clear(self) -> None:
        self._buffer = np.empty(0, dtype=np.int16)


class SilenceEndpointer:
    """
    Energy-based end-of-utterance detector.

    Speech starts once a chunk's mean level exceeds ``silence_threshold``; the
    utterance is complete after ``silence_duration`` seconds of audio below the
    threshold, or once ``max_seconds`` of audio has been seen. Durations are
    measured in audio time, not wall-clock time.

    Args:
        silence_threshold: Mean absolute level (0.0-1.0) treated as speech.
        silence_duration: Seconds of trailing silence that end the utterance.
        max_seconds: Hard cap on utterance length (0 disables).
    """

    def __init__(
        self,
        *,
        silence_threshold: float = 0.01,
        silence_duration: float = 1.5,
        max_seconds: float = 15.0,
    ) -> None:
        self.silence_threshold = silence_threshold
        self.silence_duration = silence_duration
        self.max_seconds = max_seconds
        self.speech_started = False
        self._silence = 0.0
        self._elapsed = 0.0

    def feed(self, samples: np.ndarray, sample_rate: int) -> bool:
        """Consume one chunk; return True once the utterance is complete."""
        if samples.size == 0:
            return False

        duration = samples.size / float(sample_rate)
        self._elapsed += duration
        level = float(np.abs(samples.astype(np.float32)).mean()) / 32768.0

        if level > self.silence_threshold:
            self.speech_started = True
            self._silence = 0.0
        elif self.speech_started:
            self._silence += duration

        if self.speech_started and self._silence >= self.silence_duration:
            return True
        return self.max_seconds > 0 and self._elapsed >= self.max_seconds

    def reset(self) -> None:
        self.speech_started = False
        self._silence = 0.0
        self._elapsed = 0.0
