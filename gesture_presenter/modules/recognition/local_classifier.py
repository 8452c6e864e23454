"""
On-device gesture classifier - MediaPipe Tasks GestureRecognizer
================================================================

Low latency and unlimited calls, but the model needs an explicit load step:
until it finishes, classify() answers LOADING; if it fails, INIT_FAILED.
The recognizer is shared process-wide through ModelManager.

Categories: None, Closed_Fist, Open_Palm, Pointing_Up, Thumb_Down,
Thumb_Up, Victory, ILoveYou.
"""

import asyncio
import logging
import time
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import cv2
import numpy as np
import mediapipe as mp
from mediapipe.tasks import python
from mediapipe.tasks.python import vision

from ...core.types import (
    BoundingBox, ClassifierInitFailed, ClassifierNotReady, DetectionResult, GestureLabel,
)
from .backend import ClassifierBackend
from ..utils.logger import log_timing
from .model_manager import ModelManager

logger = logging.getLogger(__name__)

GESTURE_RECOGNIZER_MODEL_URL = (
    "https://storage.googleapis.com/mediapipe-models/gesture_recognizer/"
    "gesture_recognizer/float16/1/gesture_recognizer.task"
)
DEFAULT_MODEL_PATH = Path.home() / ".gesture_presenter" / "models" / "gesture_recognizer.task"


@dataclass
class LocalClassifierConfig:
    """Configuration for the MediaPipe gesture recognizer."""
    model_path: str = ""
    model_url: str = GESTURE_RECOGNIZER_MODEL_URL
    num_hands: int = 1
    min_detection_confidence: float = 0.5
    min_presence_confidence: float = 0.5
    min_tracking_confidence: float = 0.5
    delegate: str = "CPU"  # CPU or GPU
    sampling_interval_ms: int = 150

    @classmethod
    def from_dict(cls, d: dict) -> "LocalClassifierConfig":
        """Create config from dictionary."""
        return cls(
            model_path=d.get("model_path", ""),
            model_url=d.get("model_url", GESTURE_RECOGNIZER_MODEL_URL),
            num_hands=d.get("num_hands", 1),
            min_detection_confidence=d.get("min_detection_confidence", 0.5),
            min_presence_confidence=d.get("min_presence_confidence", 0.5),
            min_tracking_confidence=d.get("min_tracking_confidence", 0.5),
            delegate=d.get("delegate", "CPU"),
            sampling_interval_ms=d.get("sampling_interval_ms", 150),
        )

    @property
    def resolved_model_path(self) -> Path:
        return Path(self.model_path) if self.model_path else DEFAULT_MODEL_PATH


def download_model(url: str, save_path: Path) -> bool:
    """Download the gesture recognizer model if not present."""
    if save_path.exists():
        logger.info("Model already exists at %s", save_path)
        return True

    try:
        save_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Downloading gesture recognizer model to %s...", save_path)
        urllib.request.urlretrieve(url, save_path)
        logger.info("Model download complete!")
        return True
    except Exception as e:
        logger.error("Failed to download model: %s", e)
        return False


@log_timing
def create_recognizer(config: LocalClassifierConfig):
    """Blocking: fetch the model file and build a VIDEO-mode recognizer."""
    model_path = config.resolved_model_path
    if not model_path.exists():
        if not download_model(config.model_url, model_path):
            raise ClassifierInitFailed(f"Could not download model to {model_path}")

    delegate = (python.BaseOptions.Delegate.GPU if config.delegate.upper() == "GPU"
                else python.BaseOptions.Delegate.CPU)
    base_options = python.BaseOptions(model_asset_path=str(model_path), delegate=delegate)
    options = vision.GestureRecognizerOptions(
        base_options=base_options,
        running_mode=vision.RunningMode.VIDEO,
        num_hands=config.num_hands,
        min_hand_detection_confidence=config.min_detection_confidence,
        min_hand_presence_confidence=config.min_presence_confidence,
        min_tracking_confidence=config.min_tracking_confidence,
    )
    recognizer = vision.GestureRecognizer.create_from_options(options)
    logger.info("GestureRecognizer initialized with model: %s (delegate=%s)",
                model_path, config.delegate)
    return recognizer


def parse_recognition(result) -> DetectionResult:
    """Convert a GestureRecognizerResult into a DetectionResult.

    Only the first hand's top category is used. The bounding box is the
    tight box around that hand's landmarks.
    """
    gestures = getattr(result, "gestures", None) or []
    if not gestures or not gestures[0]:
        return DetectionResult.empty()

    top = gestures[0][0]
    label = GestureLabel.from_string(top.category_name)

    box = None
    hand_landmarks = getattr(result, "hand_landmarks", None) or []
    if hand_landmarks and hand_landmarks[0]:
        box = BoundingBox.from_points(
            (lm.x for lm in hand_landmarks[0]),
            (lm.y for lm in hand_landmarks[0]),
        )

    return DetectionResult(label=label, confidence=float(top.score), bounding_box=box,
                           raw_label=top.category_name)


class LocalGestureClassifier(ClassifierBackend):
    """MediaPipe GestureRecognizer behind the ClassifierBackend contract.

    Example:
        >>> backend = LocalGestureClassifier(LocalClassifierConfig())
        >>> result = await backend.classify(bgr_frame)   # LOADING at first
    """

    name = "local"

    def __init__(self, config: Optional[LocalClassifierConfig] = None,
                 models: Optional[ModelManager] = None):
        self.config = config or LocalClassifierConfig()
        self.default_interval_ms = self.config.sampling_interval_ms
        key = f"mediapipe-gesture:{self.config.resolved_model_path}"
        self._models = models or ModelManager.shared(key, lambda: create_recognizer(self.config))
        self._last_timestamp_ms = 0

    async def warmup(self) -> None:
        try:
            await self._models.wait_ready()
        except ClassifierInitFailed as e:
            logger.error("Gesture model unavailable: %s", e)

    async def classify(self, frame: Optional[np.ndarray]) -> DetectionResult:
        try:
            recognizer = self._models.get_nowait()
        except (ClassifierNotReady, ClassifierInitFailed) as e:
            return DetectionResult.failure(e.error_code)

        # Camera not delivering yet
        if frame is None or frame.size == 0:
            return DetectionResult.empty()

        timestamp_ms = self._next_timestamp()
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(
            None, self._recognize, recognizer, frame, timestamp_ms
        )
        return parse_recognition(result)

    @staticmethod
    @log_timing
    def _recognize(recognizer, frame: np.ndarray, timestamp_ms: int):
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)
        return recognizer.recognize_for_video(mp_image, timestamp_ms)

    def _next_timestamp(self) -> int:
        # VIDEO mode requires strictly increasing timestamps
        now_ms = int(time.monotonic() * 1000)
        self._last_timestamp_ms = max(now_ms, self._last_timestamp_ms + 1)
        return self._last_timestamp_ms

    def close(self) -> None:
        self._models.close()
