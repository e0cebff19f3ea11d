"""Core orchestration: the hotword-gated audio session controller."""

from __future__ import annotations

import itertools
import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from .deadline import Clock, Deadline
from .exceptions import BackendError, DeviceError, PlaybackError, SynthesisError, TranscriptionError
from .framing import FrameBuffer
from .history import ConversationHistory
from .interfaces import AudioSource, KeywordDetector, Notifier, Responder, Speaker, Transcriber
from .models import (
    COMMAND_SAMPLE_RATE,
    ConversationTurn,
    Notification,
    NotificationKind,
    Session,
    SessionState,
    Status,
)
from .notify import LoggingNotifier

logger = logging.getLogger(__name__)

IDLE_TEXT = "Say the wake word"
DEFAULT_APOLOGY = "Sorry, I encountered an error processing your request."

HOTWORD = "hotword"
TRANSCRIBER = "transcriber"


# Events posted by workers. Each carries the listener/session id it was started
# for so late arrivals from a superseded stage are dropped.


@dataclass(frozen=True)
class WakeDetected:
    listener_id: int
    keyword_index: int


@dataclass(frozen=True)
class ListenerFailed:
    listener_id: int
    error: Exception


@dataclass(frozen=True)
class TranscriptReceived:
    session_id: int
    text: str
    is_final: bool


@dataclass(frozen=True)
class TranscriptionFailed:
    session_id: int
    error: Exception


@dataclass(frozen=True)
class ResponseReady:
    session_id: int
    content: str


@dataclass(frozen=True)
class ResponseFailed:
    session_id: int
    error: Exception


@dataclass(frozen=True)
class PlaybackFinished:
    session_id: int
    error: Optional[Exception] = None


@dataclass(frozen=True)
class Shutdown:
    pass


Worker = Callable[[], None]
Spawner = Callable[[Worker, str], Optional[threading.Thread]]


def start_thread(target: Worker, name: str) -> threading.Thread:
    """Default spawner: run the worker on a daemon thread."""
    thread = threading.Thread(target=target, name=name, daemon=True)
    thread.start()
    return thread


@dataclass
class _Consumer:
    kind: str
    handle: Any
    stop: threading.Event
    thread: Optional[threading.Thread]


class SessionController:
    """
    State machine that owns the microphone and drives one session at a time.

    ``IDLE`` (hotword listening) -> ``COMMAND_CAPTURE`` (transcriber attached)
    -> ``PROCESSING`` (response engine running) -> ``SPEAKING`` -> ``IDLE``.
    Any failure passes through ``ERROR``, releases what the session held and
    resumes hotword listening. Only :class:`~.exceptions.DeviceError` escapes.

    Workers run on their own threads and only talk to the controller by
    posting events; :meth:`step` applies them one at a time, so ``state`` is
    only ever changed by the controller's transition functions. At most one
    consumer (hotword listener or transcriber) holds an audio handle.

    Usage:
        controller = SessionController(
            audio=SoundDeviceAudioSource(),
            detector=OpenWakeWordDetector(),
            transcriber=WyomingTranscriber(),
            responder=ResponseEngine(backend, system_prompt="..."),
            speaker=CloudSpeaker(api_key="..."),
            history=ConversationHistory(max_exchanges=10),
        )
        controller.run_forever()
    """

    def __init__(
        self,
        *,
        audio: AudioSource,
        detector: KeywordDetector,
        transcriber: Transcriber,
        responder: Responder,
        speaker: Speaker,
        history: Optional[ConversationHistory] = None,
        notifier: Optional[Notifier] = None,
        command_timeout: float = 15.0,
        response_timeout: float = 60.0,
        speak_timeout: float = 120.0,
        settle_delay: float = 0.3,
        join_timeout: float = 2.0,
        poll_interval: float = 0.1,
        apology: Optional[str] = DEFAULT_APOLOGY,
        clock: Optional[Clock] = None,
        sleep: Callable[[float], None] = time.sleep,
        spawn: Spawner = start_thread,
    ) -> None:
        self._audio = audio
        self._detector = detector
        self._transcriber = transcriber
        self._responder = responder
        self._speaker = speaker
        self._history = history if history is not None else ConversationHistory()
        self._notifier = notifier or LoggingNotifier()
        self._command_timeout = command_timeout
        self._response_timeout = response_timeout
        self._speak_timeout = speak_timeout
        self._settle_delay = settle_delay
        self._join_timeout = join_timeout
        self._poll_interval = poll_interval
        self._apology = apology
        self._clock = clock or time.monotonic
        self._sleep = sleep
        self._spawn = spawn

        self._events: "queue.Queue[object]" = queue.Queue()
        self._lock = threading.RLock()
        self._session: Optional[Session] = None
        self._deadline: Optional[Deadline] = None
        self._consumer: Optional[_Consumer] = None
        self._listener_ids = itertools.count(1)
        self._session_ids = itertools.count(1)
        self._listener_id = 0
        self._running = False

    # -- public API ---------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._session.state if self._session else SessionState.IDLE

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def consumer(self) -> Optional[str]:
        """Which stage currently holds the audio source ("hotword", "transcriber" or None)."""
        return self._consumer.kind if self._consumer else None

    @property
    def history(self) -> Sequence[ConversationTurn]:
        """Read-only chat history accumulated so far."""
        return self._history.turns()

    def post(self, event: object) -> None:
        """Queue an event for the controller loop; safe from any thread."""
        self._events.put(event)

    def start(self) -> None:
        """Begin hotword listening. Raises DeviceError if the microphone cannot be opened."""
        with self._lock:
            if self._running:
                return
            self._running = True
            logger.info("Assistant ready. Waiting for wake word.")
            self._listen_for_hotword()

    def stop(self) -> None:
        """Ask a running :meth:`run_forever` loop to exit."""
        self.post(Shutdown())

    def run_forever(self) -> None:
        """Start listening and process events until :meth:`stop` or a DeviceError."""
        self.start()
        try:
            while self._running:
                self.step(timeout=self._poll_interval)
        finally:
            self.shutdown()

    def step(self, timeout: float = 0.0) -> bool:
        """
        Apply at most one queued event, then check the active deadline.

        Args:
            timeout: Seconds to wait for an event (0 returns immediately).

        Returns:
            True if an event was processed.

        Raises:
            DeviceError: When the capture device or hotword listener failed.
        """
        try:
            event = self._events.get(timeout=timeout) if timeout > 0 else self._events.get_nowait()
        except queue.Empty:
            event = None

        with self._lock:
            if event is not None:
                self._handle(event)
            if self._running:
                self._check_deadline()
        return event is not None

    def process_pending(self, limit: int = 1000) -> int:
        """Apply queued events until the queue is empty; returns how many were handled."""
        handled = 0
        while handled < limit and self.step():
            handled += 1
        return handled

    def shutdown(self) -> None:
        """Release the audio device, detector and speaker."""
        with self._lock:
            self._running = False
            self._stop_consumer()
            self._detector.release()
            if self._session and self._session.state == SessionState.SPEAKING:
                self._speaker.stop()
            self._session = None
            self._deadline = None
            logger.info("Assistant stopped.")

    # -- event handling -----------------------------------------------------

    def _handle(self, event: object) -> None:
        if isinstance(event, Shutdown):
            self._running = False
        elif isinstance(event, WakeDetected):
            self._on_wake(event)
        elif isinstance(event, ListenerFailed):
            self._on_listener_failed(event)
        elif isinstance(event, TranscriptReceived):
            self._on_transcript(event)
        elif isinstance(event, TranscriptionFailed):
            self._on_transcription_failed(event)
        elif isinstance(event, ResponseReady):
            self._on_response(event)
        elif isinstance(event, ResponseFailed):
            self._on_response_failed(event)
        elif isinstance(event, PlaybackFinished):
            self._on_playback_finished(event)
        else:
            logger.warning("Ignoring unknown event %r", event)

    def _current(self, session_id: int, state: SessionState) -> Optional[Session]:
        session = self._session
        if session is None or session.id != session_id or session.state != state:
            logger.debug("Dropping stale event for session %s", session_id)
            return None
        return session

    def _on_wake(self, event: WakeDetected) -> None:
        if self._session is not None or event.listener_id != self._listener_id:
            logger.debug("Ignoring wake word outside of hotword listening")
            return

        logger.info("Wake word detected (keyword %d)", event.keyword_index)
        self._stop_consumer()
        self._detector.release()
        self._settle()

        session = Session(
            id=next(self._session_ids),
            state=SessionState.COMMAND_CAPTURE,
            started_at=self._clock(),
            command_deadline=Deadline(self._command_timeout, clock=self._clock),
        )
        self._session = session
        self._deadline = session.command_deadline
        self._transition(SessionState.IDLE, SessionState.COMMAND_CAPTURE)
        self._emit_status(Status.LISTENING, "Listening...")

        handle = self._audio.open(COMMAND_SAMPLE_RATE)
        stop = threading.Event()
        self._attach(
            TRANSCRIBER,
            handle,
            stop,
            lambda: self._capture_command(session.id, handle, stop),
        )

    def _on_listener_failed(self, event: ListenerFailed) -> None:
        if event.listener_id != self._listener_id:
            return
        self._stop_consumer()
        if isinstance(event.error, DeviceError):
            raise event.error
        raise DeviceError(f"Hotword listener failed: {event.error}") from event.error

    def _on_transcript(self, event: TranscriptReceived) -> None:
        session = self._current(event.session_id, SessionState.COMMAND_CAPTURE)
        if session is None:
            return

        if not event.is_final:
            session.transcript_so_far = event.text
            self._emit(NotificationKind.TRANSCRIPT_UPDATE, transcript=event.text)
            return

        if session.command_deadline is not None:
            session.command_deadline.cancel()
        self._deadline = None
        self._stop_consumer()

        text = event.text.strip()
        session.transcript_so_far = text
        session.final_transcript = text
        self._emit(NotificationKind.TRANSCRIPT_UPDATE, transcript=text)

        if not text:
            logger.info("No speech captured")
            self._return_home()
            return

        logger.info("You said: %s", text)
        session.state = SessionState.PROCESSING
        self._transition(SessionState.COMMAND_CAPTURE, SessionState.PROCESSING)
        self._deadline = Deadline(self._response_timeout, clock=self._clock)
        self._emit_status(Status.PROCESSING, "Thinking...")

        snapshot = self._history.turns()
        self._spawn(lambda: self._request_response(session.id, text, snapshot), f"respond-{session.id}")

    def _on_transcription_failed(self, event: TranscriptionFailed) -> None:
        if self._current(event.session_id, SessionState.COMMAND_CAPTURE) is None:
            return
        self._fail(f"Transcription failed: {event.error}")

    def _on_response(self, event: ResponseReady) -> None:
        session = self._current(event.session_id, SessionState.PROCESSING)
        if session is None:
            return

        self._history.append_exchange(session.final_transcript or "", event.content)
        self._emit(
            NotificationKind.AI_RESPONSE_TEXT,
            content=event.content,
            chatHistory=self._history.as_dicts(),
        )
        self._begin_speaking(session, event.content)

    def _on_response_failed(self, event: ResponseFailed) -> None:
        session = self._current(event.session_id, SessionState.PROCESSING)
        if session is None:
            return

        logger.error("Chat error: %s", event.error)
        self._emit(NotificationKind.AI_ERROR, message=str(event.error))
        self._emit_status(Status.ERROR, "Something went wrong")
        if self._apology:
            self._begin_speaking(session, self._apology)
        else:
            self._return_home()

    def _on_playback_finished(self, event: PlaybackFinished) -> None:
        if self._current(event.session_id, SessionState.SPEAKING) is None:
            return
        if event.error is not None:
            logger.warning("Playback failed: %s", event.error)
        self._emit(NotificationKind.AI_AUDIO_FINISHED)
        self._return_home()

    def _check_deadline(self) -> None:
        if self._deadline is None or not self._deadline.expired or self._session is None:
            return

        state = self._session.state
        self._deadline = None
        if state == SessionState.COMMAND_CAPTURE:
            self._fail(f"No command heard within {self._command_timeout:.0f}s")
        elif state == SessionState.PROCESSING:
            self._emit(NotificationKind.AI_ERROR, message="The assistant took too long to respond.")
            self._fail(f"No response within {self._response_timeout:.0f}s")
        elif state == SessionState.SPEAKING:
            self._speaker.stop()
            self._fail(f"Playback did not finish within {self._speak_timeout:.0f}s")

    # -- transitions --------------------------------------------------------

    def _begin_speaking(self, session: Session, text: str) -> None:
        previous = session.state
        session.state = SessionState.SPEAKING
        self._transition(previous, SessionState.SPEAKING)
        self._deadline = Deadline(self._speak_timeout, clock=self._clock)
        self._spawn(lambda: self._speak(session.id, text), f"speak-{session.id}")

    def _fail(self, reason: str) -> None:
        previous = self.state
        if self._session is not None:
            self._session.state = SessionState.ERROR
        self._transition(previous, SessionState.ERROR)
        logger.warning("%s", reason)
        self._emit_status(Status.ERROR, reason)
        self._return_home()

    def _return_home(self) -> None:
        previous = self.state
        self._stop_consumer()
        self._session = None
        self._deadline = None
        self._transition(previous, SessionState.IDLE)
        self._listen_for_hotword()

    def _listen_for_hotword(self) -> None:
        self._settle()
        self._listener_id = next(self._listener_ids)
        listener_id = self._listener_id
        handle = self._audio.open(self._detector.sample_rate)
        stop = threading.Event()
        self._attach(HOTWORD, handle, stop, lambda: self._detect_hotword(listener_id, handle, stop))
        self._emit_status(Status.IDLE, IDLE_TEXT)

    def _transition(self, old: SessionState, new: SessionState) -> None:
        if old != new:
            logger.info("Session: %s -> %s", old.name, new.name)

    # -- audio ownership ----------------------------------------------------

    def _attach(self, kind: str, handle: Any, stop: threading.Event, worker: Worker) -> None:
        if self._consumer is not None:
            raise RuntimeError(f"Cannot attach {kind}: {self._consumer.kind} still owns the audio source")
        self._consumer = _Consumer(kind=kind, handle=handle, stop=stop, thread=None)
        self._consumer.thread = self._spawn(worker, kind)

    def _stop_consumer(self) -> None:
        consumer = self._consumer
        if consumer is None:
            return
        self._consumer = None
        consumer.stop.set()
        self._audio.close(consumer.handle)
        if consumer.kind == TRANSCRIBER:
            # Unblocks a worker waiting on the recognizer rather than on audio
            self._transcriber.cancel()
        thread = consumer.thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self._join_timeout)
            if thread.is_alive():
                logger.warning("%s worker did not stop within %.1fs", consumer.kind, self._join_timeout)
        logger.debug("Detached %s from audio source", consumer.kind)

    def _settle(self) -> None:
        if self._settle_delay > 0:
            self._sleep(self._settle_delay)

    # -- workers (run off the controller thread) ----------------------------

    def _detect_hotword(self, listener_id: int, handle: Any, stop: threading.Event) -> None:
        frames = FrameBuffer(self._detector.frame_length)
        try:
            for chunk in self._audio.stream(handle):
                if stop.is_set():
                    return
                for frame in frames.add(chunk.samples()):
                    index = self._detector.process(frame)
                    if index >= 0:
                        self.post(WakeDetected(listener_id, index))
                        return
            if not stop.is_set():
                self.post(ListenerFailed(listener_id, DeviceError("Capture stream ended unexpectedly")))
        except Exception as exc:
            if not stop.is_set():
                logger.exception("Hotword listener failed")
                self.post(ListenerFailed(listener_id, exc))

    def _capture_command(self, session_id: int, handle: Any, stop: threading.Event) -> None:
        try:
            for event in self._transcriber.attach(self._audio.stream(handle)):
                if stop.is_set():
                    return
                self.post(TranscriptReceived(session_id, event.text, event.is_final))
                if event.is_final:
                    return
            if not stop.is_set():
                logger.debug("Transcription stream ended without a final result")
        except TranscriptionError as exc:
            if not stop.is_set():
                self.post(TranscriptionFailed(session_id, exc))
        except Exception as exc:
            if not stop.is_set():
                logger.exception("Unexpected transcription failure")
                self.post(TranscriptionFailed(session_id, exc))

    def _request_response(self, session_id: int, text: str, history: Sequence[ConversationTurn]) -> None:
        try:
            reply = self._responder.respond(text, history)
        except BackendError as exc:
            self.post(ResponseFailed(session_id, exc))
        except Exception as exc:
            logger.exception("Unexpected error while generating a response")
            self.post(ResponseFailed(session_id, exc))
        else:
            self.post(ResponseReady(session_id, reply.content))

    def _speak(self, session_id: int, text: str) -> None:
        try:
            self._speaker.speak(text)
        except (SynthesisError, PlaybackError) as exc:
            self.post(PlaybackFinished(session_id, exc))
        except Exception as exc:
            logger.exception("Unexpected error during playback")
            self.post(PlaybackFinished(session_id, exc))
        else:
            self.post(PlaybackFinished(session_id))

    # -- notifications ------------------------------------------------------

    def _emit_status(self, status: Status, text: str) -> None:
        self._emit(NotificationKind.STATUS_UPDATE, status=status.value, text=text)

    def _emit(self, kind: NotificationKind, **payload: Any) -> None:
        self._notifier.notify(Notification(kind=kind, payload=payload))
