"""Protocol interfaces for dependency injection."""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Protocol, Sequence

import numpy as np

from .models import AssistantReply, AudioChunk, ChatRequest, ChatResponse, ConversationTurn, Notification, TranscriptEvent


class AudioSource(Protocol):
    """Owns the microphone capture stream."""

    def open(self, sample_rate: int, channels: int = 1) -> Any:
        """
        Start capturing and return an opaque handle.

        Raises:
            DeviceError: If the device cannot be opened.
        """

    def stream(self, handle: Any) -> Iterator[AudioChunk]:
        """Yield captured chunks until the handle is closed."""

    def close(self, handle: Any) -> None:
        """Stop capturing; ends any running :meth:`stream` iterator."""


class KeywordDetector(Protocol):
    """Classifies fixed-length frames for the wake phrase."""

    @property
    def sample_rate(self) -> int:
        """Sample rate the detector expects."""

    @property
    def frame_length(self) -> int:
        """Exact number of samples per frame passed to :meth:`process`."""

    def process(self, frame: np.ndarray) -> int:
        """Return the index of the matched keyword, or -1 for no match."""

    def release(self) -> None:
        """Free engine resources before the device is reused for command capture."""


class Transcriber(Protocol):
    """Turns a stream of audio chunks into transcript events."""

    def attach(self, chunks: Iterable[AudioChunk]) -> Iterator[TranscriptEvent]:
        """
        Consume ``chunks`` and yield interim events followed by one final event.

        Raises:
            TranscriptionError: On stream-level failures.
        """

    def cancel(self) -> None:
        """Abort a running :meth:`attach` from another thread; safe to call when idle."""


class ChatBackend(Protocol):
    """Talks to a conversational AI provider."""

    def complete(self, request: ChatRequest) -> ChatResponse:
        """
        Submit one request and return either reply text or a tool request.

        Raises:
            BackendError: On transport, auth or payload errors.
        """


class Responder(Protocol):
    """Produces the assistant reply for one user turn."""

    def respond(self, user_message: str, history: Sequence[ConversationTurn]) -> AssistantReply:
        """Return the final reply text for ``user_message``."""


class Speaker(Protocol):
    """Speaks assistant responses."""

    def speak(self, text: str) -> None:
        """Synthesize and play ``text``, blocking until playback ends."""

    def stop(self) -> None:
        """Cancel any playback in progress."""


class Notifier(Protocol):
    """Receives status updates for the display layer."""

    def notify(self, notification: Notification) -> None:
        """Deliver one notification."""
