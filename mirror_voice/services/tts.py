"""Console speaker that logs assistant responses."""

from __future__ import annotations

import logging

from ..interfaces import Speaker

logger = logging.getLogger(__name__)


class ConsoleSpeaker(Speaker):
    """
    Speaks by printing to stdout.

    Useful on headless machines or when the display layer shows the reply.
    """

    def speak(self, text: str) -> None:
        print(f"Assistant: {text}")

    def stop(self) -> None:
        logger.debug("Console speaker has nothing to stop")
