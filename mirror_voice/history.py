"""Bounded conversation history shared by the controller and response engine."""

from __future__ import annotations

import threading
from collections import deque
from typing import Deque, Dict, Iterator, List, Tuple

from .models import ConversationTurn


class ConversationHistory:
    """
    Ordered (oldest first) log of chat turns capped at ``max_exchanges * 2`` entries.

    Turns are only ever appended as a complete user/assistant pair, so with an
    even cap the oldest pair is evicted together and the log never ends on an
    unanswered user turn.

    Usage:
        >>> history = ConversationHistory(max_exchanges=10)
        >>> history.append_exchange("what time is it", "It's 3:45 PM")
        >>> len(history)
        2
    """

    def __init__(self, max_exchanges: int = 10) -> None:
        if max_exchanges < 1:
            raise ValueError("max_exchanges must be at least 1")
        self.max_exchanges = max_exchanges
        self._turns: Deque[ConversationTurn] = deque(maxlen=max_exchanges * 2)
        self._lock = threading.Lock()

    @property
    def max_turns(self) -> int:
        return self.max_exchanges * 2

    def append_exchange(self, user: str, assistant: str) -> None:
        """Record one completed round-trip."""
        with self._lock:
            self._turns.append(ConversationTurn(role="user", content=user))
            self._turns.append(ConversationTurn(role="assistant", content=assistant))

    def turns(self) -> Tuple[ConversationTurn, ...]:
        """Snapshot of the current turns, oldest first."""
        with self._lock:
            return tuple(self._turns)

    def as_dicts(self) -> List[Dict[str, str]]:
        return [turn.as_dict() for turn in self.turns()]

    def clear(self) -> None:
        with self._lock:
            self._turns.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._turns)

    def __iter__(self) -> Iterator[ConversationTurn]:
        return iter(self.turns())
