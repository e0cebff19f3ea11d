"""Tests for the HTTP helper, speech synthesis, WAV parsing and wake word adapters."""

from __future__ import annotations

import asyncio
import base64
import io
import urllib.error
import wave

import numpy as np
import pytest
from wyoming.audio import AudioChunk as WyomingAudioChunk
from wyoming.audio import AudioStop

from mirror_voice.exceptions import BackendError, PlaybackError, SynthesisError
from mirror_voice.services import http, tts_cloud, tts_wyoming, wake_openwakeword, wake_porcupine
from mirror_voice.services.http import post_json
from mirror_voice.services.playback import split_wav
from mirror_voice.services.tts_cloud import CloudSpeaker
from mirror_voice.services.tts_wyoming import WyomingSpeaker
from mirror_voice.services.wake_openwakeword import OpenWakeWordDetector, match_index
from mirror_voice.services.wake_porcupine import PorcupineDetector


class FakeResponse:
    def __init__(self, body, content_type="application/json"):
        self._body = body
        self.headers = {"Content-Type": content_type}

    def read(self):
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class TestPostJson:
    def test_returns_decoded_object(self, monkeypatch):
        seen = {}

        def urlopen(request, timeout, context):
            seen["body"] = request.data
            seen["headers"] = dict(request.header_items())
            return FakeResponse(b'{"content": "Hi"}')

        monkeypatch.setattr(http.urllib.request, "urlopen", urlopen)

        assert post_json("http://x/chat", {"message": "hi"}, headers={"Authorization": "Bearer t"}) == {"content": "Hi"}
        assert seen["body"] == b'{"message": "hi"}'
        assert seen["headers"]["Authorization"] == "Bearer t"

    def test_http_error_carries_status_and_detail(self, monkeypatch):
        def urlopen(request, timeout, context):
            raise urllib.error.HTTPError(request.full_url, 503, "Unavailable", {}, io.BytesIO(b"overloaded"))

        monkeypatch.setattr(http.urllib.request, "urlopen", urlopen)

        with pytest.raises(BackendError, match=r"\(503\): overloaded"):
            post_json("http://x/chat", {})

    def test_unreachable_server(self, monkeypatch):
        def urlopen(request, timeout, context):
            raise urllib.error.URLError("connection refused")

        monkeypatch.setattr(http.urllib.request, "urlopen", urlopen)

        with pytest.raises(SynthesisError, match="could not reach"):
            post_json("http://x/tts", {}, error_cls=SynthesisError, service="Synthesis")

    def test_rejects_non_json(self, monkeypatch):
        monkeypatch.setattr(http.urllib.request, "urlopen", lambda r, timeout, context: FakeResponse(b"<html>", "text/html"))
        with pytest.raises(BackendError, match="content type"):
            post_json("http://x/chat", {})


def make_wav(samples, rate=24000):
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(rate)
        wav.writeframes(np.asarray(samples, dtype=np.int16).tobytes())
    return buffer.getvalue()


class TestSplitWav:
    def test_reads_format_and_data(self):
        pcm, rate, width, channels = split_wav(make_wav([1, 2, 3], rate=22050))
        assert (rate, width, channels) == (22050, 2, 1)
        assert np.frombuffer(pcm, dtype=np.int16).tolist() == [1, 2, 3]

    def test_rejects_non_wav(self):
        with pytest.raises(PlaybackError):
            split_wav(b"not a wav file")


class FakePlayer:
    def __init__(self):
        self.played = []
        self.stopped = 0

    def play(self, audio, rate, width=2, channels=1):
        self.played.append((audio, rate, width, channels))

    def stop(self):
        self.stopped += 1


class TestCloudSpeaker:
    def test_request_shape(self):
        speaker = CloudSpeaker(voice_name="en-US-Standard-F", speaking_rate=0.9, player=FakePlayer())
        request = speaker.build_request("Hello")
        assert request["input"] == {"text": "Hello"}
        assert request["voice"] == {"languageCode": "en-US", "ssmlGender": "FEMALE", "name": "en-US-Standard-F"}
        assert request["audioConfig"]["audioEncoding"] == "LINEAR16"
        assert request["audioConfig"]["speakingRate"] == 0.9

    def test_speak_plays_decoded_audio(self, monkeypatch):
        audio = make_wav([0, 1, 0])
        calls = []

        def fake_post(url, payload, **kwargs):
            calls.append((url, kwargs))
            return {"audioContent": base64.b64encode(audio).decode("ascii")}

        monkeypatch.setattr(tts_cloud, "post_json", fake_post)
        player = FakePlayer()
        CloudSpeaker(api_key="k", sample_rate=24000, player=player).speak("It's 3:45 PM")

        assert player.played == [(audio, 24000, 2, 1)]
        url, kwargs = calls[0]
        assert url == "https://texttospeech.googleapis.com/v1/text:synthesize?key=k"
        assert kwargs["error_cls"] is SynthesisError

    def test_missing_audio_is_a_synthesis_error(self, monkeypatch):
        monkeypatch.setattr(tts_cloud, "post_json", lambda url, payload, **kwargs: {})
        with pytest.raises(SynthesisError):
            CloudSpeaker(player=FakePlayer()).speak("Hello")

    def test_blank_text_is_skipped(self, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("should not synthesize")

        monkeypatch.setattr(tts_cloud, "post_json", fail)
        player = FakePlayer()
        CloudSpeaker(player=player).speak("   ")
        assert player.played == []

    def test_stop_stops_player(self):
        player = FakePlayer()
        CloudSpeaker(player=player).stop()
        assert player.stopped == 1


class FakePiperClient:
    """Async context manager standing in for wyoming's AsyncTcpClient."""

    def __init__(self, replies=(), connect_error=None, read_delay=0.0):
        self.replies = list(replies)
        self.connect_error = connect_error
        self.read_delay = read_delay
        self.written = []

    def __call__(self, host, port):
        self.address = (host, port)
        return self

    async def __aenter__(self):
        if self.connect_error is not None:
            raise self.connect_error
        return self

    async def __aexit__(self, *exc):
        return False

    async def write_event(self, event):
        self.written.append(event)

    async def read_event(self):
        if self.read_delay:
            await asyncio.sleep(self.read_delay)
        return self.replies.pop(0) if self.replies else None


def piper_chunk(audio, rate=22050, width=2, channels=1):
    return WyomingAudioChunk(audio=audio, rate=rate, width=width, channels=channels).event()


class TestWyomingSpeaker:
    def test_plays_collected_chunks_with_stream_format(self, monkeypatch):
        client = FakePiperClient(
            replies=[piper_chunk(b"\x01\x00", rate=16000), piper_chunk(b"\x02\x00", rate=16000), AudioStop().event()]
        )
        monkeypatch.setattr(tts_wyoming, "AsyncTcpClient", client)
        player = FakePlayer()

        WyomingSpeaker(host="piper.local", port=10200, speaker="amy", player=player).speak("Good morning")

        assert player.played == [(b"\x01\x00\x02\x00", 16000, 2, 1)]
        assert client.address == ("piper.local", 10200)
        (request,) = client.written
        assert request.type == "synthesize"
        assert request.data["text"] == "Good morning"
        assert request.data["voice"]["speaker"] == "amy"

    def test_no_audio_is_a_synthesis_error(self, monkeypatch):
        monkeypatch.setattr(tts_wyoming, "AsyncTcpClient", FakePiperClient(replies=[AudioStop().event()]))
        player = FakePlayer()

        with pytest.raises(SynthesisError, match="no audio"):
            WyomingSpeaker(player=player).speak("Hello")
        assert player.played == []

    def test_timeout_is_a_synthesis_error(self, monkeypatch):
        client = FakePiperClient(replies=[piper_chunk(b"\x00\x00")], read_delay=1.0)
        monkeypatch.setattr(tts_wyoming, "AsyncTcpClient", client)

        with pytest.raises(SynthesisError, match="timed out"):
            WyomingSpeaker(timeout=0.01, player=FakePlayer()).speak("Hello")

    def test_unreachable_server(self, monkeypatch):
        client = FakePiperClient(connect_error=ConnectionRefusedError("refused"))
        monkeypatch.setattr(tts_wyoming, "AsyncTcpClient", client)

        with pytest.raises(SynthesisError, match="refused"):
            WyomingSpeaker(player=FakePlayer()).speak("Hello")

    def test_blank_text_is_skipped(self, monkeypatch):
        client = FakePiperClient()
        monkeypatch.setattr(tts_wyoming, "AsyncTcpClient", client)

        WyomingSpeaker(player=FakePlayer()).speak("  ")

        assert client.written == []


class FakeWakeModel:
    def __init__(self, scores):
        self.scores = scores
        self.models = {name: None for name in scores}
        self.resets = 0

    def predict(self, frame):
        return self.scores

    def reset(self):
        self.resets += 1


class TestOpenWakeWordDetector:
    def test_match_index(self):
        assert match_index({"alexa": np.float32(0.2), "hey_mirror": np.float32(0.9)}, 0.5) == 1
        assert match_index({"alexa": 0.1}, 0.5) == -1
        assert match_index(None, 0.5) == -1

    def test_detection_resets_model(self, monkeypatch):
        model = FakeWakeModel({"hey_mirror": 0.8})
        monkeypatch.setattr(wake_openwakeword, "_load_openwakeword", lambda paths: model)
        detector = OpenWakeWordDetector(threshold=0.5)

        assert detector.frame_length == 1280
        assert detector.process(np.zeros(1280, dtype=np.int16)) == 0
        assert model.resets == 1

    def test_wrong_frame_length(self, monkeypatch):
        monkeypatch.setattr(wake_openwakeword, "_load_openwakeword", lambda paths: FakeWakeModel({}))
        with pytest.raises(ValueError):
            OpenWakeWordDetector().process(np.zeros(100, dtype=np.int16))


class FakePorcupine:
    sample_rate = 16000
    frame_length = 512

    def __init__(self):
        self.deleted = False
        self.frames = []

    def process(self, pcm):
        self.frames.append(pcm)
        return 0

    def delete(self):
        self.deleted = True


class TestPorcupineDetector:
    def test_requires_keywords(self):
        with pytest.raises(ValueError):
            PorcupineDetector(access_key="key")

    def test_rejects_unknown_builtin_keyword(self, monkeypatch):
        monkeypatch.setattr(wake_porcupine, "builtin_keywords", lambda: {"computer", "jarvis"})
        with pytest.raises(ValueError, match="hey mirror"):
            PorcupineDetector(access_key="key", keywords=["hey mirror"])

    def test_keyword_files_skip_builtin_check(self, monkeypatch):
        def fail():
            raise AssertionError("built-in keywords should not be consulted")

        monkeypatch.setattr(wake_porcupine, "builtin_keywords", fail)
        detector = PorcupineDetector(access_key="key", keyword_paths=["hey-mirror.ppn"], keywords=["hey mirror"])
        assert detector.keyword_paths == ["hey-mirror.ppn"]

    def test_release_deletes_engine_and_recreates_lazily(self, monkeypatch):
        engines = []

        def create(access_key, keyword_paths, keywords, sensitivity):
            engines.append(FakePorcupine())
            return engines[-1]

        monkeypatch.setattr(wake_porcupine, "_create_porcupine", create)
        monkeypatch.setattr(wake_porcupine, "builtin_keywords", lambda: {"computer"})
        detector = PorcupineDetector(access_key="key", keywords=["computer"])

        assert detector.process(np.zeros(512, dtype=np.int16)) == 0
        detector.release()
        assert engines[0].deleted
        detector.process(np.zeros(512, dtype=np.int16))
        assert len(engines) == 2
        assert isinstance(engines[1].frames[0], list)
