"""Wake word detection using openWakeWord."""

from __future__ import annotations

import logging
import os
from typing import Optional, Sequence

import numpy as np

from ..interfaces import KeywordDetector

logger = logging.getLogger(__name__)


class OpenWakeWordDetector(KeywordDetector):
    """
    Frame classifier backed by openWakeWord.

    Args:
        model_paths: Optional wake word model paths. If omitted, openWakeWord loads defaults.
        threshold: Detection threshold between 0 and 1.
        sample_rate: Input sample rate expected by the models.
        frame_ms: Frame size for detection in milliseconds.
    """

    def __init__(
        self,
        *,
        model_paths: Optional[Sequence[str]] = None,
        threshold: float = 0.5,
        sample_rate: int = 16000,
        frame_ms: int = 80,
    ) -> None:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("threshold must be between 0 and 1")
        self.model_paths = list(model_paths or [])
        self.threshold = threshold
        self._sample_rate = sample_rate
        self._frame_length = int(sample_rate * (frame_ms / 1000.0))
        self._model = None

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def frame_length(self) -> int:
        return self._frame_length

    @property
    def model(self):
        if self._model is None:
            self._model = _load_openwakeword(self.model_paths)
            logger.info("Loaded wake word models: %s", ", ".join(self._model.models.keys()))
        return self._model

    def process(self, frame: np.ndarray) -> int:
        if len(frame) != self._frame_length:
            raise ValueError(f"Expected {self._frame_length} samples, got {len(frame)}")
        scores = self.model.predict(frame.astype(np.int16, copy=False))
        index = match_index(scores, self.threshold)
        if index >= 0:
            # Accumulated scores would retrigger on the next frames
            self.model.reset()
        return index

    def release(self) -> None:
        if self._model is not None:
            self._model.reset()


def match_index(scores, threshold: float) -> int:
    """Return the position of the first model scoring at or above threshold, else -1."""
    if not isinstance(scores, dict):
        return -1

    for index, (model_name, value) in enumerate(scores.items()):
        # Extract scalar value from numpy types
        if hasattr(value, "item"):
            score = float(value.item())
        elif isinstance(value, (int, float)):
            score = float(value)
        else:
            continue

        if score >= threshold:
            logger.info("Detected '%s' with score %.4f", model_name, score)
            return index

    return -1


def _load_openwakeword(model_paths: Sequence[str]):
    try:
        from openwakeword.model import Model  # type: ignore
    except ImportError as exc:  # pragma: no cover - runtime dependency
        raise RuntimeError("openwakeword is required for wake word detection. Install via pip.") from exc

    # Force onnxruntime inference engine
    os.environ["OPENWAKEWORD_INFERENCE_FRAMEWORK"] = "onnx"

    logger.info("Loading wake word models...")
    if model_paths:
        return Model(wakeword_models=list(model_paths), inference_framework="onnx")
    return Model(inference_framework="onnx")
