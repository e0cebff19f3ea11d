"""Tests for notification fan-out."""

from __future__ import annotations

from mirror_voice.models import Notification, NotificationKind
from mirror_voice.notify import CallbackNotifier, LoggingNotifier


class TestCallbackNotifier:
    def test_failing_callback_does_not_block_others(self):
        notifier = CallbackNotifier()
        received = []

        def broken(notification):
            raise RuntimeError("display offline")

        notifier.subscribe(broken)
        notifier.subscribe(received.append)
        note = Notification(NotificationKind.STATUS_UPDATE, {"status": "IDLE", "text": "Say the wake word"})

        notifier.notify(note)

        assert received == [note]


class TestLoggingNotifier:
    def test_logs_kind_and_json_payload(self, caplog):
        caplog.set_level("INFO", logger="mirror_voice.notify")

        LoggingNotifier().notify(Notification(NotificationKind.AI_ERROR, {"message": "timeout"}))

        assert 'AI_ERROR {"message": "timeout"}' in caplog.text
