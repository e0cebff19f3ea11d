"""Tests for the streaming WebSocket transcriber."""

from __future__ import annotations

import json

import pytest
import websocket

from mirror_voice.exceptions import TranscriptionError
from mirror_voice.models import AudioChunk, TranscriptEvent
from mirror_voice.services import stt_stream
from mirror_voice.services.stt_stream import StreamingSocketTranscriber, parse_recognition_response


def result(text, final=False):
    return {"alternatives": [{"transcript": text}], "isFinal": final}


class FakeSocket:
    def __init__(self, frames):
        self.frames = list(frames)
        self.sent = []
        self.binary = []
        self.closed = False

    def send(self, data):
        self.sent.append(json.loads(data))

    def send_binary(self, data):
        self.binary.append(data)

    def recv(self):
        if not self.frames:
            return ""
        frame = self.frames.pop(0)
        if isinstance(frame, Exception):
            raise frame
        if callable(frame):
            return frame()
        return frame

    def close(self):
        self.closed = True


@pytest.fixture()
def connect(monkeypatch):
    sockets = []

    def install(frames):
        sock = FakeSocket(frames)

        def create_connection(url, **kwargs):
            sockets.append((url, kwargs))
            return sock

        monkeypatch.setattr(stt_stream.websocket, "create_connection", create_connection)
        return sock

    install.calls = sockets
    return install


class TestParseRecognitionResponse:
    def test_interim(self):
        assert parse_recognition_response({"results": [result("what time")]}) == [TranscriptEvent("what time")]

    def test_final_results_take_precedence(self):
        events = parse_recognition_response({"results": [result("what time "), result("is it", final=True)]})
        assert events == [TranscriptEvent("is it", is_final=True)]

    def test_final_parts_are_joined(self):
        events = parse_recognition_response(
            {"results": [result("what time ", final=True), result("is it ", final=True)]}
        )
        assert events == [TranscriptEvent("what time is it", is_final=True)]

    def test_empty_payload(self):
        assert parse_recognition_response({}) == []

    def test_error_payload(self):
        with pytest.raises(TranscriptionError, match="quota"):
            parse_recognition_response({"error": {"message": "quota exceeded"}})


class TestStreamingSocketTranscriber:
    def test_recognition_config(self):
        transcriber = StreamingSocketTranscriber(url="ws://stt", language="en-GB")
        assert transcriber.recognition_config() == {
            "config": {"encoding": "LINEAR16", "sampleRateHertz": 16000, "languageCode": "en-GB"},
            "interimResults": True,
        }

    def test_yields_until_final(self, connect):
        sock = connect(
            [
                json.dumps({"results": [result("what")]}),
                json.dumps({"results": [result("what time is it", final=True)]}),
                json.dumps({"results": [result("ignored")]}),
            ]
        )
        transcriber = StreamingSocketTranscriber(url="ws://stt", api_key="token")
        chunks = [AudioChunk(data=b"\x00\x00" * 160, sample_rate=16000)]

        events = list(transcriber.attach(chunks))

        assert events == [TranscriptEvent("what"), TranscriptEvent("what time is it", is_final=True)]
        assert sock.sent[0]["interimResults"] is True
        assert sock.closed
        url, kwargs = connect.calls[0]
        assert url == "ws://stt"
        assert kwargs["header"] == ["Authorization: Bearer token"]

    def test_timeout_becomes_transcription_error(self, connect):
        connect([websocket.WebSocketTimeoutException("timed out")])
        transcriber = StreamingSocketTranscriber(url="ws://stt", timeout=5)

        with pytest.raises(TranscriptionError, match="No transcription result"):
            list(transcriber.attach([]))

    def test_connection_failure(self, monkeypatch):
        def refuse(url, **kwargs):
            raise ConnectionRefusedError("refused")

        monkeypatch.setattr(stt_stream.websocket, "create_connection", refuse)
        transcriber = StreamingSocketTranscriber(url="ws://stt")

        with pytest.raises(TranscriptionError, match="Could not connect"):
            list(transcriber.attach([]))

    def test_invalid_frame(self, connect):
        connect(["not json"])
        with pytest.raises(TranscriptionError):
            list(StreamingSocketTranscriber(url="ws://stt").attach([]))

    def test_cancel_closes_socket_and_ends_quietly(self, connect):
        transcriber = StreamingSocketTranscriber(url="ws://stt")

        def cancelled_mid_recv():
            transcriber.cancel()
            assert sock.closed
            raise websocket.WebSocketConnectionClosedException("socket is already closed.")

        sock = connect([json.dumps({"results": [result("what")]}), cancelled_mid_recv])

        events = list(transcriber.attach([]))

        assert events == [TranscriptEvent("what")]

    def test_cancel_without_active_stream_is_safe(self):
        StreamingSocketTranscriber(url="ws://stt").cancel()

    def test_next_attach_after_cancel_still_reports_errors(self, connect):
        transcriber = StreamingSocketTranscriber(url="ws://stt")
        transcriber.cancel()
        connect([websocket.WebSocketConnectionClosedException("server went away")])

        with pytest.raises(TranscriptionError, match="server went away"):
            list(transcriber.attach([]))
