"""
Remote multimodal gesture classifier (Gemini).

Each call uploads one downscaled JPEG frame and asks the model for a JSON
verdict. Calls are billed and rate limited: a 429 / ResourceExhausted maps
to QUOTA_EXCEEDED so the detection loop can back off.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, replace
from typing import Optional

import cv2
import numpy as np
import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from ...core.types import (
    BoundingBox, DetectionError, DetectionResult, GestureLabel, RecoverableDetectionError,
)
from ..utils.logger import log_timing
from .backend import ClassifierBackend

logger = logging.getLogger(__name__)

_LABEL_CHOICES = ", ".join(label.value for label in GestureLabel)

GESTURE_PROMPT = (
    "You are a hand gesture classifier for a presentation remote. "
    "Look at the single most prominent hand in the image and answer with JSON only: "
    '{"gesture": <one of ' + _LABEL_CHOICES + '>, '
    '"confidence": <number 0..1>, '
    '"boundingBox": {"xmin": n, "ymin": n, "xmax": n, "ymax": n} or null}. '
    "Bounding box coordinates are normalized to 0..1 of the image size. "
    'If no hand or no listed gesture is visible, use "None" with confidence 0.'
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)


@dataclass
class RemoteClassifierConfig:
    """Configuration for the Gemini backend."""
    model_name: str = "gemini-2.5-flash"
    api_key_env: str = "GOOGLE_API_KEY"
    jpeg_quality: int = 70
    max_width: int = 320
    timeout_s: float = 30.0
    sampling_interval_ms: int = 4000

    @classmethod
    def from_dict(cls, d: dict) -> "RemoteClassifierConfig":
        return cls(
            model_name=d.get("model_name", "gemini-2.5-flash"),
            api_key_env=d.get("api_key_env", "GOOGLE_API_KEY"),
            jpeg_quality=d.get("jpeg_quality", 70),
            max_width=d.get("max_width", 320),
            timeout_s=d.get("timeout_s", 30.0),
            sampling_interval_ms=d.get("sampling_interval_ms", 4000),
        )


def _parse_box(raw) -> Optional[BoundingBox]:
    if raw is None:
        return None
    if isinstance(raw, dict):
        try:
            values = [float(raw[k]) for k in ("xmin", "ymin", "xmax", "ymax")]
        except (KeyError, TypeError, ValueError):
            return None
        xmin, ymin, xmax, ymax = values
    elif isinstance(raw, (list, tuple)) and len(raw) == 4:
        # Gemini's native detection order: [ymin, xmin, ymax, xmax]
        try:
            ymin, xmin, ymax, xmax = (float(v) for v in raw)
        except (TypeError, ValueError):
            return None
    else:
        return None
    # Native detections come on a 0-1000 grid
    if max(xmin, ymin, xmax, ymax) > 1.0:
        xmin, ymin, xmax, ymax = (v / 1000.0 for v in (xmin, ymin, xmax, ymax))
    return BoundingBox(xmin=xmin, ymin=ymin, xmax=xmax, ymax=ymax)


def parse_remote_payload(text: str) -> DetectionResult:
    """Parse the model's JSON answer.

    Raises:
        RecoverableDetectionError: the answer is not usable JSON
    """
    cleaned = _FENCE_RE.sub("", (text or "").strip())
    try:
        data = json.loads(cleaned)
    except ValueError as e:
        raise RecoverableDetectionError(f"Unparseable classifier reply: {text!r}") from e
    if not isinstance(data, dict):
        raise RecoverableDetectionError(f"Classifier reply is not an object: {text!r}")

    raw_label = data.get("gesture") or data.get("label")
    raw_label = str(raw_label) if raw_label is not None else None
    label = GestureLabel.from_string(raw_label)
    try:
        confidence = float(data.get("confidence", 0.0) or 0.0)
    except (TypeError, ValueError):
        confidence = 0.0
    result = DetectionResult(label=label, confidence=confidence, raw_label=raw_label)
    if label is GestureLabel.NONE and result.unrecognized_label is None:
        return result
    box = _parse_box(data.get("boundingBox", data.get("bounding_box")))
    return replace(result, bounding_box=box)


def encode_frame(frame: np.ndarray, max_width: int = 320, quality: int = 70) -> bytes:
    """Downscale a BGR frame and JPEG-encode it."""
    h, w = frame.shape[:2]
    if w > max_width:
        scale = max_width / float(w)
        frame = cv2.resize(frame, (max_width, int(h * scale)), interpolation=cv2.INTER_AREA)
    ok, buf = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise RecoverableDetectionError("JPEG encoding failed")
    return buf.tobytes()


class RemoteGestureClassifier(ClassifierBackend):
    """Gemini behind the ClassifierBackend contract."""

    name = "remote"

    def __init__(self, config: Optional[RemoteClassifierConfig] = None, model=None):
        self.config = config or RemoteClassifierConfig()
        self.default_interval_ms = self.config.sampling_interval_ms
        self._model = model
        self._init_error: Optional[str] = None
        if self._model is None:
            self._model = self._create_model()

    def _create_model(self):
        api_key = os.getenv(self.config.api_key_env)
        if not api_key:
            self._init_error = f"{self.config.api_key_env} is not set"
            logger.error("Remote classifier disabled: %s", self._init_error)
            return None
        genai.configure(api_key=api_key)
        logger.info("Remote classifier using %s", self.config.model_name)
        return genai.GenerativeModel(
            self.config.model_name,
            generation_config={"response_mime_type": "application/json", "temperature": 0.0},
        )

    @log_timing
    async def classify(self, frame: Optional[np.ndarray]) -> DetectionResult:
        if self._model is None:
            return DetectionResult.failure(DetectionError.INIT_FAILED)
        if frame is None or frame.size == 0:
            return DetectionResult.empty()

        jpeg = encode_frame(frame, self.config.max_width, self.config.jpeg_quality)
        try:
            response = await self._model.generate_content_async(
                [GESTURE_PROMPT, {"mime_type": "image/jpeg", "data": jpeg}],
                request_options={"timeout": self.config.timeout_s},
            )
        except (google_exceptions.ResourceExhausted, google_exceptions.TooManyRequests) as e:
            logger.warning("Remote classifier quota exceeded: %s", e)
            return DetectionResult.failure(DetectionError.QUOTA_EXCEEDED)

        return parse_remote_payload(response.text)

    @property
    def init_error(self) -> Optional[str]:
        return self._init_error
