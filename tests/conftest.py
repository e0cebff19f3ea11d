"""Shared fakes for the session controller tests."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import pytest

from mirror_voice.exceptions import DeviceError
from mirror_voice.history import ConversationHistory
from mirror_voice.models import (
    AssistantReply,
    AudioChunk,
    ChatRequest,
    ChatResponse,
    ConversationTurn,
    Notification,
    NotificationKind,
    TranscriptEvent,
)
from mirror_voice.pipeline import SessionController

WAKE = 7
SILENCE = 0
DETECTOR_RATE = 8000


def chunk(value: int, samples: int = 4, rate: int = DETECTOR_RATE) -> AudioChunk:
    return AudioChunk(data=np.full(samples, value, dtype=np.int16).tobytes(), sample_rate=rate)


class FakeHandle:
    def __init__(self, number: int, sample_rate: int, chunks: List[AudioChunk]) -> None:
        self.number = number
        self.sample_rate = sample_rate
        self.chunks = chunks
        self.closed = False


class FakeAudioSource:
    """Scripted capture device that fails loudly if two handles are ever open."""

    def __init__(
        self,
        hotword_scripts: Optional[List[List[AudioChunk]]] = None,
        command_chunks: Optional[List[AudioChunk]] = None,
        fail_open: bool = False,
    ) -> None:
        self.hotword_scripts = list(hotword_scripts or [])
        self.command_chunks = list(command_chunks or [chunk(1, rate=16000)])
        self.fail_open = fail_open
        self.open_handles: List[FakeHandle] = []
        self.opened: List[int] = []
        self.closed: List[int] = []

    def open(self, sample_rate: int, channels: int = 1) -> FakeHandle:
        if self.fail_open:
            raise DeviceError("no microphone")
        assert not self.open_handles, "audio source opened twice"
        if sample_rate == DETECTOR_RATE:
            chunks = self.hotword_scripts.pop(0) if self.hotword_scripts else []
        else:
            chunks = list(self.command_chunks)
        handle = FakeHandle(len(self.opened) + 1, sample_rate, chunks)
        self.open_handles.append(handle)
        self.opened.append(sample_rate)
        return handle

    def stream(self, handle: FakeHandle) -> Iterator[AudioChunk]:
        for item in handle.chunks:
            if handle.closed:
                return
            yield item

    def close(self, handle: FakeHandle) -> None:
        handle.closed = True
        if handle in self.open_handles:
            self.open_handles.remove(handle)
        self.closed.append(handle.sample_rate)


class FakeDetector:
    """Matches any frame whose first sample is the WAKE marker."""

    sample_rate = DETECTOR_RATE
    frame_length = 4

    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.frames = 0
        self.released = 0

    def process(self, frame: np.ndarray) -> int:
        assert len(frame) == self.frame_length
        if self.error is not None:
            raise self.error
        self.frames += 1
        return 0 if int(frame[0]) == WAKE else -1

    def release(self) -> None:
        self.released += 1


class ScriptedTranscriber:
    """Yields one scripted list of events (or raises) per attach."""

    def __init__(self, *scripts: Sequence[Any]) -> None:
        self.scripts = list(scripts)
        self.chunks_seen = 0
        self.cancelled = 0

    def attach(self, chunks: Iterable[AudioChunk]) -> Iterator[TranscriptEvent]:
        for _ in chunks:
            self.chunks_seen += 1
        script = self.scripts.pop(0) if self.scripts else []
        for item in script:
            if isinstance(item, Exception):
                raise item
            yield item

    def cancel(self) -> None:
        self.cancelled += 1


class FakeResponder:
    def __init__(self, *replies: Any) -> None:
        self.replies = list(replies) or ["It's 3:45 PM"]
        self.calls: List[Tuple[str, Tuple[ConversationTurn, ...]]] = []

    def respond(self, user_message: str, history: Sequence[ConversationTurn]) -> AssistantReply:
        self.calls.append((user_message, tuple(history)))
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return AssistantReply(content=reply)


class FakeSpeaker:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.spoken: List[str] = []
        self.stopped = 0

    def speak(self, text: str) -> None:
        self.spoken.append(text)
        if self.error is not None:
            raise self.error

    def stop(self) -> None:
        self.stopped += 1


class RecordingNotifier:
    def __init__(self) -> None:
        self.notifications: List[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def of_kind(self, kind: NotificationKind) -> List[Dict[str, Any]]:
        return [n.payload for n in self.notifications if n.kind == kind]

    @property
    def last_status(self) -> Dict[str, Any]:
        return self.of_kind(NotificationKind.STATUS_UPDATE)[-1]


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualSpawner:
    """
    Runs the named workers inline and holds back the rest until :meth:`run_held`.

    A hotword listener whose handle has no scripted audio stands for a live but
    silent microphone: it is parked in ``idle`` rather than run, since running
    it would end its stream.
    """

    def __init__(self, inline: Sequence[str] = ("hotword", "transcriber", "respond", "speak")) -> None:
        self.inline = tuple(inline)
        self.held: List[Tuple[str, Any]] = []
        self.idle: List[Any] = []
        self.names: List[str] = []
        self.audio: Optional[FakeAudioSource] = None

    def __call__(self, target, name):
        self.names.append(name)
        kind = name.split("-")[0]
        if kind == "hotword" and self._silent_microphone():
            self.idle.append(target)
        elif kind in self.inline:
            target()
        else:
            self.held.append((name, target))
        return None

    def _silent_microphone(self) -> bool:
        if self.audio is None or not self.audio.open_handles:
            return False
        return not self.audio.open_handles[-1].chunks

    def run_held(self, *kinds: str) -> None:
        held, self.held = self.held, []
        for name, target in held:
            if kinds and name.split("-")[0] not in kinds:
                self.held.append((name, target))
            else:
                target()


class FakeBackend:
    """Chat backend returning scripted responses and recording requests."""

    def __init__(self, *responses: ChatResponse) -> None:
        self.responses = list(responses)
        self.requests: List[ChatRequest] = []

    def complete(self, request: ChatRequest) -> ChatResponse:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def make_controller(clock, notifier):
    """Factory building a controller with inline workers and fakes."""

    def factory(
        *,
        audio: Optional[FakeAudioSource] = None,
        detector: Optional[FakeDetector] = None,
        transcriber: Any = None,
        responder: Any = None,
        speaker: Optional[FakeSpeaker] = None,
        history: Optional[ConversationHistory] = None,
        spawn: Any = None,
        **kwargs: Any,
    ) -> SessionController:
        kwargs.setdefault("command_timeout", 20.0)
        audio = audio or FakeAudioSource()
        spawn = spawn or ManualSpawner()
        if isinstance(spawn, ManualSpawner) and spawn.audio is None:
            spawn.audio = audio
        return SessionController(
            audio=audio,
            detector=detector or FakeDetector(),
            transcriber=transcriber or ScriptedTranscriber(),
            responder=responder or FakeResponder(),
            speaker=speaker or FakeSpeaker(),
            history=history if history is not None else ConversationHistory(max_exchanges=10),
            notifier=notifier,
            settle_delay=0.0,
            clock=clock,
            spawn=spawn,
            **kwargs,
        )

    return factory
