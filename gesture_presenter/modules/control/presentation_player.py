"""
Presentation player state machine.

Applies logical actions to the deck: slide index, zoom, volume and theme.
The paused flag is owned by the ActionDispatcher; the player mirrors it via
the pause_changed event so keyboard navigation obeys the same rule.
"""

import time
import logging
from typing import List, Optional

from ...core.events import EventBus, Events
from ...core.types import LogicalAction, Slide

logger = logging.getLogger(__name__)

THEME_STORE_KEY = "theme"

# Key names the window layer translates cv2 key codes into
NEXT_KEYS = {"right", "down", "space", "pagedown"}
PREV_KEYS = {"left", "up", "pageup"}


class PresentationPlayer:
    """Slide deck playback driven by gestures and keys."""

    def __init__(self, config: dict, slides: Optional[List[Slide]] = None,
                 store=None, event_bus: Optional[EventBus] = None):
        self._volume_step = config.get("volume_step", 10)
        self._zoom_step = config.get("zoom_step", 0.5)
        self._max_zoom = config.get("max_zoom", 2.5)
        self._volume_display_s = config.get("volume_display_s", 2.0)

        self._store = store
        self._slides: List[Slide] = list(slides or [])
        self._index = 0
        self._paused = False
        self._volume = int(config.get("initial_volume", 50))
        self._zoom = 1.0
        self._volume_shown_until = 0.0
        self._dark = self._load_theme(config.get("theme", "dark"))

        if event_bus is not None:
            event_bus.subscribe(Events.PAUSE_CHANGED, self._on_pause_changed)

    def _load_theme(self, default: str) -> bool:
        theme = default
        if self._store is not None:
            theme = self._store.get(THEME_STORE_KEY, default)
        return theme != "light"

    # ------------------------------------------------------------------
    # Action handling
    # ------------------------------------------------------------------

    def handle_action(self, action: LogicalAction):
        """on_action callback for the ActionDispatcher."""
        if self._paused:
            logger.debug("Paused, ignoring %s", action.value)
            return

        if action in (LogicalAction.NEXT, LogicalAction.SPACE):
            self.next_slide()
        elif action is LogicalAction.PREV:
            self.prev_slide()
        elif action is LogicalAction.VOL_UP:
            self.change_volume(self._volume_step)
        elif action is LogicalAction.VOL_DOWN:
            self.change_volume(-self._volume_step)
        elif action is LogicalAction.CHANGE_THEME:
            self.toggle_theme()
        elif action is LogicalAction.ZOOM_IN:
            self.zoom_in()
        elif action is LogicalAction.ZOOM_OUT:
            self.zoom_out()

    def handle_key(self, key: str) -> bool:
        """Keyboard navigation. Returns True if the key was consumed."""
        if self._paused:
            return False
        if key in NEXT_KEYS:
            self.next_slide()
            return True
        if key in PREV_KEYS:
            self.prev_slide()
            return True
        return False

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def next_slide(self):
        self.go_to(self._index + 1)

    def prev_slide(self):
        self.go_to(self._index - 1)

    def go_to(self, index: int):
        if not self._slides:
            return
        index = max(0, min(index, len(self._slides) - 1))
        if index != self._index:
            self._index = index
            self._zoom = 1.0
            logger.info("Slide %d/%d", self._index + 1, len(self._slides))

    def change_volume(self, delta: int):
        self._volume = max(0, min(100, self._volume + delta))
        self._volume_shown_until = time.monotonic() + self._volume_display_s
        logger.info("Volume: %d", self._volume)

    def zoom_in(self):
        # Past the maximum, wrap back to fit
        if self._zoom >= self._max_zoom:
            self._zoom = 1.0
        else:
            self._zoom += self._zoom_step

    def zoom_out(self):
        self._zoom = max(1.0, self._zoom - self._zoom_step)

    def toggle_theme(self):
        self._dark = not self._dark
        if self._store is not None:
            try:
                self._store.set(THEME_STORE_KEY, self.theme)
            except Exception as e:
                logger.error("Failed to persist theme: %s", e)
        logger.info("Theme: %s", self.theme)

    def set_paused(self, paused: bool):
        self._paused = bool(paused)

    def _on_pause_changed(self, paused: bool, **_):
        self.set_paused(paused)

    def load_slides(self, slides: List[Slide]):
        self._slides = list(slides)
        self._index = 0
        self._zoom = 1.0
        logger.info("Loaded %d slides", len(self._slides))

    # ------------------------------------------------------------------

    @property
    def slides(self) -> List[Slide]:
        return list(self._slides)

    @property
    def index(self) -> int:
        return self._index

    @property
    def current_slide(self) -> Optional[Slide]:
        if not self._slides:
            return None
        return self._slides[self._index]

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def volume(self) -> int:
        return self._volume

    @property
    def volume_visible(self) -> bool:
        return time.monotonic() < self._volume_shown_until

    @property
    def zoom(self) -> float:
        return self._zoom

    @property
    def is_dark(self) -> bool:
        return self._dark

    @property
    def theme(self) -> str:
        return "dark" if self._dark else "light"
