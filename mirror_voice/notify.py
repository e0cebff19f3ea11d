"""Notification sinks for the display layer."""

from __future__ import annotations

import json
import logging
from typing import Callable, List

from .interfaces import Notifier
from .models import Notification

logger = logging.getLogger(__name__)


class LoggingNotifier(Notifier):
    """Writes every notification to the log as a compact JSON payload."""

    def notify(self, notification: Notification) -> None:
        logger.info("%s %s", notification.kind.value, json.dumps(notification.payload, default=str))


class CallbackNotifier(Notifier):
    """
    Fans notifications out to registered callbacks.

    A failing callback is logged and does not prevent delivery to the others.

    Usage:
        notifier = CallbackNotifier()
        notifier.subscribe(lambda n: print(n.kind, n.payload))
    """

    def __init__(self) -> None:
        self._callbacks: List[Callable[[Notification], None]] = []

    def subscribe(self, callback: Callable[[Notification], None]) -> None:
        self._callbacks.append(callback)

    def notify(self, notification: Notification) -> None:
        for callback in list(self._callbacks):
            try:
                callback(notification)
            except Exception:
                logger.exception("Notification callback failed for %s", notification.kind.value)
