"""PCM playback through sounddevice."""

from __future__ import annotations

import logging
import struct
import threading
from typing import Optional, Tuple, Union

import numpy as np

from ..exceptions import PlaybackError

logger = logging.getLogger(__name__)


class SoundDevicePlayer:
    """
    Plays 16/32-bit PCM on the default (or given) output device.

    Only one playback runs at a time: :meth:`play` stops whatever is playing
    before starting, and :meth:`stop` can be called from another thread to cut
    the current playback short.

    Args:
        device: Output device index or name (None for the default output).
    """

    def __init__(self, *, device: Optional[Union[int, str]] = None) -> None:
        self.device = device
        self._lock = threading.Lock()

    def play(self, audio_data: bytes, rate: int, width: int = 2, channels: int = 1) -> None:
        """Play raw PCM (or a PCM WAV file) and block until it finishes."""
        sd = _lazy_import_sounddevice()

        if audio_data.startswith(b"RIFF"):
            audio_data, rate, width, channels = split_wav(audio_data)

        # Convert based on sample width
        if width == 2:
            pcm = np.frombuffer(audio_data, dtype=np.int16).astype(np.float32) / 32768.0
        elif width == 4:
            pcm = np.frombuffer(audio_data, dtype=np.int32).astype(np.float32) / 2147483648.0
        else:
            raise PlaybackError(f"Unsupported audio width: {width}")

        # Reshape for channels if needed
        if channels > 1:
            pcm = pcm.reshape(-1, channels)

        with self._lock:
            try:
                sd.stop()
                sd.play(pcm, samplerate=rate, device=self.device)
            except (sd.PortAudioError, ValueError) as exc:
                raise PlaybackError(f"Could not start playback: {exc}") from exc
        logger.debug("Playing %.2fs of audio at %d Hz", len(pcm) / float(rate), rate)
        try:
            sd.wait()
        except sd.PortAudioError as exc:
            raise PlaybackError(f"Playback failed: {exc}") from exc

    def stop(self) -> None:
        sd = _lazy_import_sounddevice()
        with self._lock:
            sd.stop()


def split_wav(data: bytes) -> Tuple[bytes, int, int, int]:
    """
    Return ``(pcm, rate, width, channels)`` for a PCM WAV file.

    Walks the RIFF chunks instead of assuming a 44-byte header.
    """
    if len(data) < 12 or data[:4] != b"RIFF" or data[8:12] != b"WAVE":
        raise PlaybackError("Audio is not a WAV file")

    rate, width, channels = 0, 0, 0
    offset = 12
    while offset + 8 <= len(data):
        chunk_id, size = struct.unpack("<4sI", data[offset : offset + 8])
        body = data[offset + 8 : offset + 8 + size]
        if chunk_id == b"fmt ":
            _, channels, rate, _, _, bits = struct.unpack("<HHIIHH", body[:16])
            width = bits // 8
        elif chunk_id == b"data":
            if not rate:
                raise PlaybackError("WAV data chunk precedes fmt chunk")
            return body, rate, width, channels
        offset += 8 + size + (size & 1)

    raise PlaybackError("WAV file has no data chunk")


def _lazy_import_sounddevice():
    try:
        import sounddevice as sd  # type: ignore
    except (ImportError, OSError) as exc:  # pragma: no cover - runtime dependency
        raise PlaybackError("sounddevice is required for audio playback. Install via pip.") from exc
    return sd
