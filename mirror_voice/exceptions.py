"""Custom exceptions for the assistant."""

from __future__ import annotations


class AssistantError(RuntimeError):
    """Base class for errors raised by the assistant pipeline."""


class DeviceError(AssistantError):
    """Raised when the capture device cannot be opened or read. Fatal to the process."""


class TranscriptionError(AssistantError):
    """Raised when the transcription stream fails. Ends the current session only."""


class BackendError(AssistantError):
    """Raised when the chat backend responds with an error or invalid payload."""


class ToolError(AssistantError):
    """Raised by tools to report a failure; converted into an error result by the registry."""


class SynthesisError(AssistantError):
    """Raised when text-to-speech synthesis fails."""


class PlaybackError(AssistantError):
    """Raised when synthesized audio cannot be played."""
