"""Cancellable deadlines checked by the session controller loop."""

from __future__ import annotations

import time
from typing import Callable, Optional

Clock = Callable[[], float]


class Deadline:
    """
    A point in time after which a pending state should be abandoned.

    The controller polls :attr:`expired` between events instead of arming a
    timer thread, so expiry is ordered with every other event it handles.

    Usage:
        >>> deadline = Deadline(15.0)
        >>> deadline.expired
        False
        >>> deadline.cancel()
    """

    def __init__(self, seconds: float, *, clock: Optional[Clock] = None) -> None:
        self._clock = clock or time.monotonic
        self.seconds = seconds
        self.expires_at = self._clock() + seconds
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def expired(self) -> bool:
        return not self._cancelled and self._clock() >= self.expires_at

    def remaining(self) -> float:
        """Seconds left before expiry (0 once expired or cancelled)."""
        if self._cancelled:
            return 0.0
        return max(0.0, self.expires_at - self._clock())
