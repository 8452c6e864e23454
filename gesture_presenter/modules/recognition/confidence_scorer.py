"""
Confidence thresholding with optional per-gesture overrides.

A detection qualifies when confidence >= threshold; anything below is
treated exactly like "no gesture".
"""

import logging

from ...core.types import GestureLabel

logger = logging.getLogger(__name__)


class ConfidenceScorer:
    """Decides whether a classifier result is confident enough to act on."""

    def __init__(self, config: dict):
        self._default_threshold = float(config.get("confidence_threshold", 0.6))
        overrides = config.get("confidence_overrides", {}) or {}
        self._thresholds = {}
        for name, value in overrides.items():
            label = GestureLabel.from_string(name)
            if label is GestureLabel.NONE:
                logger.warning("Ignoring threshold override for unknown gesture %r", name)
                continue
            self._thresholds[label] = float(value)

    def passes(self, label: GestureLabel, confidence: float) -> bool:
        """True if the detection is confident enough to act on."""
        if label is GestureLabel.NONE:
            return False
        return confidence >= self.get_threshold(label)

    def get_threshold(self, label: GestureLabel) -> float:
        return self._thresholds.get(label, self._default_threshold)

    @property
    def default_threshold(self) -> float:
        return self._default_threshold
