"""
Classifier backend interface.

The detection loop depends only on this contract:

    result = await backend.classify(frame)

``frame`` is a BGR numpy image straight from the FrameSampler. The call must
not block the event loop, must be safe to retry, and reports "not ready",
"failed to load" and "quota exceeded" through DetectionResult.error rather
than by raising. Anything it does raise is treated by the loop as a single
failed tick.
"""

from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from ...core.types import DetectionResult


class ClassifierBackend(ABC):
    """A gesture classifier: frame in, labelled result out."""

    name = "base"

    # Suggested minimum time between two calls, used when the config does not
    # override detection.sampling_interval_ms.
    default_interval_ms = 150

    @abstractmethod
    async def classify(self, frame: Optional[np.ndarray]) -> DetectionResult:
        """Classify one frame."""

    async def warmup(self) -> None:
        """Start any lazy initialization early. Optional."""

    def close(self) -> None:
        """Release backend resources. Optional."""

    def __repr__(self):
        return f"{type(self).__name__}(name={self.name!r})"
