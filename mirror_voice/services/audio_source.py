"""Microphone capture backed by sounddevice."""

from __future__ import annotations

import logging
import queue
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional, Union

from ..exceptions import DeviceError
from ..interfaces import AudioSource
from ..models import AudioChunk

logger = logging.getLogger(__name__)


@dataclass
class CaptureHandle:
    """An open input stream and the queue its callback fills."""

    stream: Any
    sample_rate: int
    channels: int
    queue: "queue.Queue[bytes]" = field(default_factory=queue.Queue)
    closed: bool = False


class SoundDeviceAudioSource(AudioSource):
    """
    Captures 16-bit mono PCM from an input device using sounddevice.

    The PortAudio callback only copies blocks into a queue; :meth:`stream`
    drains that queue on the consumer's thread and stops once the handle is
    closed.

    Args:
        device: Input device index or name (None for the default device).
        block_ms: Callback block size in milliseconds.
        poll_interval: Seconds :meth:`stream` waits for a block before
            re-checking whether the handle was closed.
        stall_polls: Consecutive empty polls after which an inactive stream
            (device unplugged or callback aborted) raises DeviceError.

    Usage:
        source = SoundDeviceAudioSource()
        handle = source.open(16000)
        for chunk in source.stream(handle):
            ...
        source.close(handle)
    """

    def __init__(
        self,
        *,
        device: Optional[Union[int, str]] = None,
        block_ms: int = 100,
        poll_interval: float = 0.1,
        stall_polls: int = 5,
    ) -> None:
        self.device = device
        self.block_ms = block_ms
        self.poll_interval = poll_interval
        self.stall_polls = stall_polls

    def open(self, sample_rate: int, channels: int = 1) -> CaptureHandle:
        sd = _lazy_import_sounddevice()
        handle = CaptureHandle(stream=None, sample_rate=sample_rate, channels=channels)

        def callback(indata, frames, time_info, status):  # type: ignore[override]
            if status:
                logger.debug("Capture status: %s", status)
            if not handle.closed:
                handle.queue.put(bytes(indata))

        stream = None
        try:
            stream = sd.RawInputStream(
                samplerate=sample_rate,
                channels=channels,
                dtype="int16",
                blocksize=int(sample_rate * self.block_ms / 1000),
                device=self.device,
                callback=callback,
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as exc:
            if stream is not None:
                try:
                    stream.close()
                except sd.PortAudioError as close_exc:
                    logger.debug("Error while closing failed capture stream: %s", close_exc)
            raise DeviceError(f"Could not open capture device {self.device!r} at {sample_rate} Hz: {exc}") from exc

        handle.stream = stream
        logger.debug("Opened capture stream at %d Hz", sample_rate)
        return handle

    def stream(self, handle: CaptureHandle) -> Iterator[AudioChunk]:
        """
        Yield captured blocks until the handle is closed.

        Raises:
            DeviceError: If the input stream stops delivering audio while open.
        """
        empty_polls = 0
        while not handle.closed:
            try:
                data = handle.queue.get(timeout=self.poll_interval)
            except queue.Empty:
                empty_polls += 1
                if empty_polls >= self.stall_polls and not handle.closed and not handle.stream.active:
                    raise DeviceError(f"Capture stream at {handle.sample_rate} Hz stopped delivering audio")
                continue
            empty_polls = 0
            if handle.closed:
                break
            yield AudioChunk(data=data, sample_rate=handle.sample_rate, channels=handle.channels)

    def close(self, handle: CaptureHandle) -> None:
        if handle.closed:
            return
        handle.closed = True
        if handle.stream is None:
            return
        sd = _lazy_import_sounddevice()
        try:
            handle.stream.stop()
            handle.stream.close()
        except sd.PortAudioError as exc:
            logger.warning("Error while closing capture stream: %s", exc)
        logger.debug("Closed capture stream at %d Hz", handle.sample_rate)


def _lazy_import_sounddevice():
    try:
        import sounddevice as sd  # type: ignore
    except (ImportError, OSError) as exc:  # pragma: no cover - runtime dependency
        raise DeviceError("sounddevice is required for microphone capture. Install via pip.") from exc
    return sd
