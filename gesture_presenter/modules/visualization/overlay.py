"""
Camera preview overlay: mirrored video, hand bounding box, status pill and
confidence bar. Draws only from the cached DetectionState, never waits on the
classifier.
"""

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

from ...core.types import DetectionState, DetectionStatus

logger = logging.getLogger(__name__)

# BGR
_STATUS_COLORS = {
    DetectionStatus.SUCCESS: (94, 197, 34),
    DetectionStatus.UNMAPPED: (184, 163, 148),
    DetectionStatus.ERROR: (68, 68, 239),
    DetectionStatus.RATE_LIMITED: (11, 158, 245),
    DetectionStatus.LOADING: (241, 102, 99),
    DetectionStatus.PROCESSING: (241, 102, 99),
    DetectionStatus.WAITING: (105, 85, 71),
}
_PAUSED_COLOR = (11, 158, 245)


class Overlay:
    """Renders the webcam preview with detection feedback."""

    def __init__(self, config: dict, mirrored: bool = True):
        self._mirrored = mirrored
        self._width = config.get("preview_width", 320)
        self._height = config.get("preview_height", 240)
        self._show_bbox = config.get("show_hand_bbox", True)
        self._show_confidence_bar = config.get("show_confidence_bar", True)
        self._pill_opacity = config.get("pill_opacity", 0.7)

        colors = config.get("colors", {})
        self._color_text = tuple(colors.get("text", [255, 255, 255]))
        self._color_bbox = tuple(colors.get("bbox", [94, 197, 34]))

    def render(self, frame: Optional[np.ndarray], state: DetectionState,
               paused: bool = False) -> np.ndarray:
        """Render the preview.

        Args:
            frame: unflipped BGR frame from the sampler, or None if the
                camera has not delivered one yet
            state: latest detection snapshot
            paused: whether the player is paused

        Returns:
            A new BGR image; the sampler's frame is never modified
        """
        if frame is None:
            canvas = np.zeros((self._height, self._width, 3), dtype=np.uint8)
            self._draw_centered(canvas, "Starting camera...", (200, 200, 200))
        elif self._mirrored:
            canvas = cv2.flip(frame, 1)
        else:
            canvas = frame.copy()

        if self._show_bbox and state.status is DetectionStatus.SUCCESS and state.bounding_box:
            self._draw_bbox(canvas, state)

        self._draw_status_pill(canvas, state, paused)

        if self._show_confidence_bar and state.confidence > 0:
            self._draw_confidence_bar(canvas, state.confidence)

        return canvas

    def render_camera_error(self, message: str) -> np.ndarray:
        """Placeholder shown while the camera is unavailable."""
        canvas = np.zeros((self._height, self._width, 3), dtype=np.uint8)
        h = canvas.shape[0]
        self._draw_centered(canvas, "Camera unavailable", (68, 68, 239), y=h // 2 - 10)
        self._draw_centered(canvas, message[:40], (200, 200, 200), y=h // 2 + 15, scale=0.4)
        self._draw_centered(canvas, "Press R to retry", self._color_text, y=h // 2 + 40, scale=0.5)
        return canvas

    # ------------------------------------------------------------------

    def _draw_bbox(self, frame, state: DetectionState):
        h, w = frame.shape[:2]
        box = state.bounding_box.mirrored() if self._mirrored else state.bounding_box
        x, y, bw, bh = box.to_pixels(w, h)
        cv2.rectangle(frame, (x, y), (x + bw, y + bh), self._color_bbox, 2)
        cv2.putText(
            frame, state.label, (x, max(12, y - 6)),
            cv2.FONT_HERSHEY_SIMPLEX, 0.45, self._color_bbox, 1,
        )

    def _draw_status_pill(self, frame, state: DetectionState, paused: bool):
        h, w = frame.shape[:2]
        if paused:
            text, color = "PAUSED", _PAUSED_COLOR
        else:
            text, color = state.label, _STATUS_COLORS.get(state.status, (105, 85, 71))

        text_w, text_h = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, 0.5, 1)[0]
        x1, y1 = 8, h - text_h - 20
        x2, y2 = x1 + text_w + 16, h - 8

        # Semi-transparent background
        overlay = frame.copy()
        cv2.rectangle(overlay, (x1, y1), (x2, y2), color, -1)
        cv2.addWeighted(overlay, self._pill_opacity, frame, 1 - self._pill_opacity, 0, frame)
        cv2.putText(
            frame, text, (x1 + 8, y2 - 8),
            cv2.FONT_HERSHEY_SIMPLEX, 0.5, self._color_text, 1,
        )

    def _draw_confidence_bar(self, frame, confidence: float):
        """Thin horizontal bar along the top edge."""
        w = frame.shape[1]
        fill_w = int(confidence * w)
        if confidence >= 0.85:
            color = (0, 255, 0)
        elif confidence >= 0.6:
            color = (0, 255, 255)
        else:
            color = (0, 0, 255)
        cv2.rectangle(frame, (0, 0), (w, 4), (60, 60, 60), -1)
        cv2.rectangle(frame, (0, 0), (fill_w, 4), color, -1)

    def _draw_centered(self, frame, text: str, color: Tuple[int, int, int],
                       y: Optional[int] = None, scale: float = 0.6):
        h, w = frame.shape[:2]
        text_w = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, scale, 1)[0][0]
        cv2.putText(
            frame, text, ((w - text_w) // 2, y if y is not None else h // 2),
            cv2.FONT_HERSHEY_SIMPLEX, scale, color, 1,
        )

    # ------------------------------------------------------------------

    def toggle_mirror(self) -> bool:
        self._mirrored = not self._mirrored
        return self._mirrored

    @property
    def mirrored(self) -> bool:
        return self._mirrored

    @mirrored.setter
    def mirrored(self, value: bool):
        self._mirrored = bool(value)
