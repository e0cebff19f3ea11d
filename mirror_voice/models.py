"""Shared dataclasses for the assistant."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional, Sequence

import numpy as np

from .deadline import Deadline

Role = Literal["user", "assistant"]

COMMAND_SAMPLE_RATE = 16000


@dataclass(frozen=True)
class ConversationTurn:
    """Represents a single chat turn."""

    role: Role
    content: str

    def as_dict(self) -> Dict[str, str]:
        """Convert to the API shape expected by chat endpoints."""
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class AudioChunk:
    """
    One block of captured audio.

    Attributes:
        data: Raw 16-bit signed little-endian PCM bytes.
        sample_rate: Sample rate in Hz (e.g., 16000).
        channels: Channel count; the pipeline always captures mono.
    """

    data: bytes
    sample_rate: int
    channels: int = 1

    def samples(self) -> np.ndarray:
        """Return the chunk as an int16 sample array."""
        return np.frombuffer(self.data, dtype=np.int16)

    @property
    def duration(self) -> float:
        """Length of the chunk in seconds."""
        return len(self.data) / (2 * self.channels * self.sample_rate)


@dataclass(frozen=True)
class TranscriptEvent:
    """Interim or final recognition result for the current utterance."""

    text: str
    is_final: bool = False


@dataclass(frozen=True)
class ToolSpec:
    """Function declaration advertised to the chat backend."""

    name: str
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})


@dataclass(frozen=True)
class ToolCall:
    """Tool invocation requested by the chat backend."""

    name: str
    args: Dict[str, Any] = field(default_factory=dict)
    call_id: Optional[str] = None


@dataclass(frozen=True)
class ToolResult:
    """JSON-like result of a tool invocation, fed back into the same round."""

    name: str
    result: Any
    call_id: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return isinstance(self.result, dict) and "error" in self.result


@dataclass(frozen=True)
class ChatRequest:
    """
    Provider-neutral chat request.

    ``tool_call``/``tool_result`` are set on the follow-up request that feeds a
    tool result back to the backend.
    """

    system_prompt: Optional[str]
    history: Sequence[ConversationTurn]
    message: str
    tools: Sequence[ToolSpec] = ()
    tool_call: Optional[ToolCall] = None
    tool_result: Optional[ToolResult] = None


@dataclass
class ChatResponse:
    """Normalized response returned by a chat backend: either text or a tool request."""

    content: Optional[str]
    tool_call: Optional[ToolCall]
    raw: Dict[str, Any]


@dataclass(frozen=True)
class AssistantReply:
    """Final reply produced by the response engine for one user turn."""

    content: str
    tool_result: Optional[ToolResult] = None


class SessionState(enum.Enum):
    IDLE = "idle"
    COMMAND_CAPTURE = "command_capture"
    PROCESSING = "processing"
    SPEAKING = "speaking"
    ERROR = "error"


@dataclass
class Session:
    """State for one wake-to-sleep cycle, owned by the session controller."""

    id: int
    state: SessionState
    started_at: float
    command_deadline: Optional[Deadline]
    transcript_so_far: str = ""
    final_transcript: Optional[str] = None


class Status(str, enum.Enum):
    IDLE = "IDLE"
    LISTENING = "LISTENING"
    PROCESSING = "PROCESSING"
    ERROR = "ERROR"


class NotificationKind(str, enum.Enum):
    STATUS_UPDATE = "STATUS_UPDATE"
    TRANSCRIPT_UPDATE = "TRANSCRIPT_UPDATE"
    AI_RESPONSE_TEXT = "AI_RESPONSE_TEXT"
    AI_ERROR = "AI_ERROR"
    AI_AUDIO_FINISHED = "AI_AUDIO_FINISHED"


@dataclass(frozen=True)
class Notification:
    """Message emitted toward the display layer."""

    kind: NotificationKind
    payload: Dict[str, Any] = field(default_factory=dict)
