"""Tests for frame buffering and silence endpointing."""

from __future__ import annotations

import numpy as np
import pytest

from mirror_voice.framing import FrameBuffer, SilenceEndpointer


class TestFrameBuffer:
    def test_yields_exact_frames_and_keeps_remainder(self):
        frames = FrameBuffer(512)
        out = list(frames.add(np.arange(1200, dtype=np.int16)))

        assert [len(f) for f in out] == [512, 512]
        assert frames.pending == 176
        assert out[1][0] == 512

    def test_remainder_joins_next_chunk(self):
        frames = FrameBuffer(4)
        assert list(frames.add(np.array([1, 2, 3], dtype=np.int16))) == []
        (frame,) = list(frames.add(np.array([4, 5], dtype=np.int16)))
        assert frame.tolist() == [1, 2, 3, 4]
        assert frames.pending == 1

    def test_empty_chunk_is_a_no_op(self):
        frames = FrameBuffer(4)
        assert list(frames.add(np.empty(0, dtype=np.int16))) == []
        assert frames.pending == 0

    def test_clear_drops_pending_samples(self):
        frames = FrameBuffer(4)
        list(frames.add(np.ones(3, dtype=np.int16)))
        frames.clear()
        assert frames.pending == 0

    def test_rejects_bad_frame_length(self):
        with pytest.raises(ValueError):
            FrameBuffer(0)


def tone(seconds, level=8000, rate=16000):
    return np.full(int(seconds * rate), level, dtype=np.int16)


def quiet(seconds, rate=16000):
    return np.zeros(int(seconds * rate), dtype=np.int16)


class TestSilenceEndpointer:
    def test_ends_after_trailing_silence(self):
        endpointer = SilenceEndpointer(silence_duration=1.0, max_seconds=0)
        assert endpointer.feed(tone(0.5), 16000) is False
        assert endpointer.feed(quiet(0.5), 16000) is False
        assert endpointer.feed(quiet(0.5), 16000) is True

    def test_leading_silence_does_not_end_utterance(self):
        endpointer = SilenceEndpointer(silence_duration=0.5, max_seconds=0)
        assert endpointer.feed(quiet(2.0), 16000) is False
        assert endpointer.speech_started is False

    def test_speech_resets_silence_counter(self):
        endpointer = SilenceEndpointer(silence_duration=1.0, max_seconds=0)
        endpointer.feed(tone(0.2), 16000)
        endpointer.feed(quiet(0.8), 16000)
        endpointer.feed(tone(0.2), 16000)
        assert endpointer.feed(quiet(0.8), 16000) is False

    def test_max_seconds_caps_utterance(self):
        endpointer = SilenceEndpointer(silence_duration=5.0, max_seconds=2.0)
        assert endpointer.feed(tone(1.0), 16000) is False
        assert endpointer.feed(tone(1.0), 16000) is True

    def test_reset(self):
        endpointer = SilenceEndpointer(silence_duration=1.0, max_seconds=0)
        endpointer.feed(tone(0.5), 16000)
        endpointer.reset()
        assert endpointer.speech_started is False
        assert endpointer.feed(quiet(1.5), 16000) is False
