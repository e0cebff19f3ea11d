"""Wake word detection using Picovoice Porcupine."""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Set

import numpy as np

from ..interfaces import KeywordDetector

logger = logging.getLogger(__name__)

# Porcupine v3 engine constants; exposed before the engine is created
PORCUPINE_SAMPLE_RATE = 16000
PORCUPINE_FRAME_LENGTH = 512


class PorcupineDetector(KeywordDetector):
    """
    Frame classifier backed by Porcupine.

    The engine handle is created lazily and deleted by :meth:`release`, so the
    native resources are never held while the device is used for command
    capture.

    Args:
        access_key: Picovoice access key.
        keyword_paths: Custom ``.ppn`` keyword files.
        keywords: Built-in keyword names, used when no paths are given.
        sensitivity: Detection sensitivity between 0 and 1 (higher = fewer misses).

    Usage:
        detector = PorcupineDetector(access_key="...", keyword_paths=["hey-mirror.ppn"])
        index = detector.process(frame)
    """

    def __init__(
        self,
        *,
        access_key: str,
        keyword_paths: Optional[Sequence[str]] = None,
        keywords: Optional[Sequence[str]] = None,
        sensitivity: float = 0.5,
    ) -> None:
        if not access_key:
            raise ValueError("Porcupine requires an access key")
        if not keyword_paths and not keywords:
            raise ValueError("Porcupine requires keyword_paths or keywords")
        if not 0.0 <= sensitivity <= 1.0:
            raise ValueError("sensitivity must be between 0 and 1")
        if keywords and not keyword_paths:
            unknown = sorted(set(keywords) - builtin_keywords())
            if unknown:
                raise ValueError(
                    f"Not built-in Porcupine keywords: {', '.join(unknown)}. "
                    "Train a .ppn file and set MIRROR_PORCUPINE_KEYWORD_PATHS instead."
                )
        self.access_key = access_key
        self.keyword_paths = list(keyword_paths or [])
        self.keywords = list(keywords or [])
        self.sensitivity = sensitivity
        self._engine = None

    @property
    def engine(self):
        if self._engine is None:
            self._engine = _create_porcupine(self.access_key, self.keyword_paths, self.keywords, self.sensitivity)
            logger.info(
                "Porcupine initialized: frame_length=%d, sample_rate=%d, sensitivity=%.2f",
                self._engine.frame_length,
                self._engine.sample_rate,
                self.sensitivity,
            )
        return self._engine

    @property
    def sample_rate(self) -> int:
        if self._engine is not None:
            return self._engine.sample_rate
        return PORCUPINE_SAMPLE_RATE

    @property
    def frame_length(self) -> int:
        if self._engine is not None:
            return self._engine.frame_length
        return PORCUPINE_FRAME_LENGTH

    def process(self, frame: np.ndarray) -> int:
        engine = self.engine
        if len(frame) != engine.frame_length:
            raise ValueError(f"Expected {engine.frame_length} samples, got {len(frame)}")
        return int(engine.process(frame.astype(np.int16, copy=False).tolist()))

    def release(self) -> None:
        if self._engine is not None:
            self._engine.delete()
            self._engine = None
            logger.debug("Porcupine engine released")


def builtin_keywords() -> Set[str]:
    """Names of the keywords bundled with pvporcupine (e.g. "computer", "jarvis")."""
    return set(_import_porcupine().KEYWORDS)


def _import_porcupine():
    try:
        import pvporcupine  # type: ignore
    except ImportError as exc:  # pragma: no cover - runtime dependency
        raise RuntimeError("pvporcupine is required for Porcupine wake word detection. Install via pip.") from exc
    return pvporcupine


def _create_porcupine(access_key: str, keyword_paths: Sequence[str], keywords: Sequence[str], sensitivity: float):
    pvporcupine = _import_porcupine()
    if keyword_paths:
        return pvporcupine.create(
            access_key=access_key,
            keyword_paths=list(keyword_paths),
            sensitivities=[sensitivity] * len(keyword_paths),
        )
    return pvporcupine.create(
        access_key=access_key,
        keywords=list(keywords),
        sensitivities=[sensitivity] * len(keywords),
    )
