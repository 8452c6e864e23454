"""
Slide canvas rendering with OpenCV.

Text slides get a title, a body line and bullet points; image-only slides are
letterboxed full-bleed. Zoom scales around the centre. A progress bar, page
counter, paused banner and transient volume indicator sit on top.
"""

import logging
from typing import Dict, Optional

import cv2
import numpy as np

from ...core.types import Slide

logger = logging.getLogger(__name__)

_THEMES = {
    "dark": {"background": (42, 23, 15), "title": (255, 255, 255),
             "text": (225, 213, 203), "accent": (241, 102, 99)},
    "light": {"background": (250, 250, 250), "title": (42, 23, 15),
              "text": (85, 65, 51), "accent": (229, 70, 79)},
}


class SlideView:
    """Renders the current slide of a PresentationPlayer."""

    def __init__(self, config: dict):
        self._width = config.get("window_width", 1280)
        self._height = config.get("window_height", 720)
        self._image_cache: Dict[str, Optional[np.ndarray]] = {}

    def render(self, player) -> np.ndarray:
        theme = _THEMES[player.theme]
        canvas = np.full((self._height, self._width, 3), theme["background"], dtype=np.uint8)

        slide = player.current_slide
        if slide is None:
            self._put_centered(canvas, "No slides loaded", theme["text"], self._height // 2, 1.0)
            return canvas

        if slide.is_image_only and slide.image_ref:
            self._draw_image_slide(canvas, slide)
        else:
            self._draw_text_slide(canvas, slide, theme)

        if player.zoom != 1.0:
            canvas = self._apply_zoom(canvas, player.zoom)

        self._draw_progress(canvas, player, theme)
        if player.paused:
            self._draw_banner(canvas, "PAUSED - open palm or Esc to resume", (11, 158, 245))
        if player.volume_visible:
            self._draw_volume(canvas, player.volume, theme)
        return canvas

    # ------------------------------------------------------------------

    def _draw_text_slide(self, canvas, slide: Slide, theme):
        margin = 80
        y = 140
        cv2.putText(canvas, slide.title, (margin, y),
                    cv2.FONT_HERSHEY_DUPLEX, 1.6, theme["title"], 2, cv2.LINE_AA)
        cv2.line(canvas, (margin, y + 20), (margin + 160, y + 20), theme["accent"], 4)
        y += 80

        if slide.content:
            cv2.putText(canvas, slide.content, (margin, y),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.9, theme["text"], 2, cv2.LINE_AA)
            y += 60

        for bullet in slide.bullet_points:
            cv2.circle(canvas, (margin + 8, y - 8), 6, theme["accent"], -1)
            cv2.putText(canvas, bullet, (margin + 30, y),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.8, theme["text"], 1, cv2.LINE_AA)
            y += 45

        # Picture alongside the text, right half
        if slide.image_ref:
            image = self._load_image(slide.image_ref)
            if image is not None:
                self._paste_fit(canvas, image, self._width // 2 + 40, 100,
                                self._width // 2 - 120, self._height - 200)

    def _draw_image_slide(self, canvas, slide: Slide):
        image = self._load_image(slide.image_ref)
        if image is None:
            self._put_centered(canvas, f"Cannot read {slide.title}", (68, 68, 239),
                               self._height // 2, 0.8)
            return
        self._paste_fit(canvas, image, 0, 0, self._width, self._height)

    def _paste_fit(self, canvas, image, x, y, box_w, box_h):
        h, w = image.shape[:2]
        scale = min(box_w / float(w), box_h / float(h))
        new_w, new_h = max(1, int(w * scale)), max(1, int(h * scale))
        resized = cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_AREA)
        ox = x + (box_w - new_w) // 2
        oy = y + (box_h - new_h) // 2
        canvas[oy:oy + new_h, ox:ox + new_w] = resized

    def _apply_zoom(self, canvas, zoom: float) -> np.ndarray:
        h, w = canvas.shape[:2]
        crop_w, crop_h = int(w / zoom), int(h / zoom)
        x0, y0 = (w - crop_w) // 2, (h - crop_h) // 2
        crop = canvas[y0:y0 + crop_h, x0:x0 + crop_w]
        return cv2.resize(crop, (w, h), interpolation=cv2.INTER_LINEAR)

    def _draw_progress(self, canvas, player, theme):
        total = len(player.slides)
        fill = int(self._width * (player.index + 1) / total)
        cv2.rectangle(canvas, (0, self._height - 6), (fill, self._height), theme["accent"], -1)
        cv2.putText(canvas, f"{player.index + 1} / {total}",
                    (self._width - 120, self._height - 20),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6, theme["text"], 1, cv2.LINE_AA)

    def _draw_banner(self, canvas, text, color):
        overlay = canvas.copy()
        cv2.rectangle(overlay, (0, 0), (self._width, 50), color, -1)
        cv2.addWeighted(overlay, 0.8, canvas, 0.2, 0, canvas)
        self._put_centered(canvas, text, (255, 255, 255), 33, 0.8)

    def _draw_volume(self, canvas, volume: int, theme):
        x, y, bar_w, bar_h = self._width - 60, 120, 16, 200
        cv2.rectangle(canvas, (x, y), (x + bar_w, y + bar_h), (60, 60, 60), -1)
        fill_h = int(bar_h * volume / 100)
        cv2.rectangle(canvas, (x, y + bar_h - fill_h), (x + bar_w, y + bar_h), theme["accent"], -1)
        cv2.putText(canvas, f"{volume}%", (x - 14, y + bar_h + 25),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.5, theme["text"], 1, cv2.LINE_AA)

    def _put_centered(self, canvas, text, color, y, scale):
        text_w = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, scale, 2)[0][0]
        cv2.putText(canvas, text, ((self._width - text_w) // 2, y),
                    cv2.FONT_HERSHEY_SIMPLEX, scale, color, 2, cv2.LINE_AA)

    def _load_image(self, ref: str) -> Optional[np.ndarray]:
        if ref not in self._image_cache:
            image = cv2.imread(ref)
            if image is None:
                logger.warning("Could not read image %s", ref)
            self._image_cache[ref] = image
        return self._image_cache[ref]

    @property
    def size(self):
        return self._width, self._height
