#!/usr/bin/env python3
"""
Gesture Presenter - hand-gesture controlled slide player.
Main application entry point and wiring.

Architecture:
    - core.DetectionLoop runs the sample -> classify -> dispatch cycle
    - core.EventBus for decoupled module communication
    - ActionDispatcher feeds PresentationPlayer
    - One asyncio event loop; the OpenCV window is polled from it

Usage:
    gesture-presenter                         # demo deck, on-device model
    gesture-presenter --deck talk.pptx        # your own deck
    gesture-presenter --backend remote        # Gemini (needs GOOGLE_API_KEY)
    gesture-presenter --deck slides/          # folder of images
"""

import asyncio
import signal
import argparse
import logging

import cv2
import numpy as np

from .core.events import EventBus, Events
from .core.pipeline import DetectionConfig, DetectionLoop
from .core.types import CameraUnavailable, DeckImportError
from .modules.capture.camera_manager import CameraConfig, FrameSampler
from .modules.control.action_dispatcher import ActionDispatcher
from .modules.control.gesture_mapping import GestureMapping
from .modules.control.presentation_player import PresentationPlayer
from .modules.presentation.deck_importer import demo_deck, import_deck
from .modules.recognition.local_classifier import LocalClassifierConfig, LocalGestureClassifier
from .modules.recognition.remote_classifier import RemoteClassifierConfig, RemoteGestureClassifier
from .modules.storage.kv_store import JsonFileStore
from .modules.utils.config import Config
from .modules.utils.logger import setup_logging, GestureLogger
from .modules.utils.performance_monitor import PerformanceMonitor
from .modules.visualization.overlay import Overlay
from .modules.visualization.slide_view import SlideView

logger = logging.getLogger(__name__)

MIRROR_STORE_KEY = "webcam_mirror"

# cv2.waitKeyEx codes: GTK / Windows / macOS
_KEY_NAMES = {
    27: "escape", 32: "space",
    65361: "left", 65362: "up", 65363: "right", 65364: "down",
    65365: "pageup", 65366: "pagedown",
    2424832: "left", 2490368: "up", 2555904: "right", 2621440: "down",
    2162688: "pageup", 2228224: "pagedown",
    63234: "left", 63232: "up", 63235: "right", 63233: "down",
    63276: "pageup", 63277: "pagedown",
}


def key_name(code: int):
    """Translate a waitKeyEx code into a key name (None if unknown)."""
    if code in _KEY_NAMES:
        return _KEY_NAMES[code]
    if 0 <= code < 256:
        return chr(code).lower()
    return None


def build_backend(name: str, classifier_cfg: dict):
    """Instantiate the configured classifier backend."""
    if name == "remote":
        return RemoteGestureClassifier(RemoteClassifierConfig.from_dict(
            classifier_cfg.get("remote", {})))
    if name != "local":
        logger.warning("Unknown classifier backend %r, using local", name)
    return LocalGestureClassifier(LocalClassifierConfig.from_dict(
        classifier_cfg.get("local", {})))


class GesturePresenter:
    """Main application wiring camera, classifier, dispatcher and player."""

    def __init__(self, config: Config, backend: str = "local", deck=None, mirror=None):
        self._config = config
        self._running = False
        self._window = config.get("visualization.window_name", "Gesture Presenter")
        self._fullscreen = False

        # --- Event Bus ---
        self._bus = EventBus()

        # --- Persistence ---
        self._store = JsonFileStore(config.get("storage.path"))
        default_mapping = (GestureMapping.from_dict(config.default_mapping)
                           if config.default_mapping else GestureMapping.default())
        mapping = GestureMapping.load(self._store, default=default_mapping)

        # --- Player ---
        slides = import_deck(deck) if deck else demo_deck()
        self._player = PresentationPlayer(config.player, slides, self._store, self._bus)
        self._dispatcher = ActionDispatcher(
            mapping, handler=self._player.handle_action,
            store=self._store, event_bus=self._bus,
        )

        # --- Visualization ---
        if mirror is None:
            mirror = self._store.get(MIRROR_STORE_KEY, config.get("visualization.mirror", True))
        self._overlay = Overlay(config.visualization, mirrored=bool(mirror))
        self._slide_view = SlideView(config.visualization)

        # --- Detection ---
        classifier_cfg = config.classifier
        self._backend = build_backend(backend, classifier_cfg)
        detection_cfg = dict(config.detection)
        detection_cfg.setdefault(
            "show_processing",
            classifier_cfg.get(self._backend.name, {}).get("show_processing", False))

        self._perf = PerformanceMonitor(window_size=config.get("performance.metrics_window", 100))
        self._sampler = FrameSampler(CameraConfig.from_dict(config.camera))
        self._detector = DetectionLoop(
            sampler=self._sampler,
            backend=self._backend,
            dispatcher=self._dispatcher,
            config=DetectionConfig.from_dict(detection_cfg),
            event_bus=self._bus,
            overlay=self._overlay,
            performance_monitor=self._perf,
        )
        self._gesture_logger = GestureLogger()

        # --- Wire Event Callbacks ---
        self._bus.subscribe(Events.ACTION_DISPATCHED, self._on_action_dispatched)
        self._bus.subscribe(Events.CAMERA_ERROR, self._on_camera_error)
        self._bus.subscribe(Events.INTERVAL_CHANGED, self._on_interval_changed)

        logger.info("GesturePresenter initialized (backend=%s, slides=%d)",
                    self._backend.name, len(slides))

    def _on_action_dispatched(self, event, **kwargs):
        self._gesture_logger.on_action_dispatched(
            event, latency_ms=self._perf.classify_latency_ms)

    def _on_camera_error(self, message="", **kwargs):
        logger.warning("Camera error: %s (press R to retry)", message)

    def _on_interval_changed(self, interval_ms=0, **kwargs):
        logger.debug("Classifier interval: %.0fms", interval_ms)

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self):
        """Run until 'q', window close or a signal."""
        self._running = True
        cv2.namedWindow(self._window, cv2.WINDOW_NORMAL)

        warmup = asyncio.create_task(self._backend.warmup())
        detection = asyncio.create_task(self._detector.run(
            on_frame=self._show, paused=lambda: self._dispatcher.paused))

        try:
            while self._running:
                code = cv2.waitKeyEx(1)
                if code != -1:
                    self._handle_key(code)
                if detection.done():
                    # Surface the failure instead of spinning on a dead task
                    detection.result()
                await asyncio.sleep(0.01)
        finally:
            for task in (detection, warmup):
                task.cancel()
            await asyncio.gather(detection, warmup, return_exceptions=True)
            self._shutdown()

    def _show(self, preview: np.ndarray):
        canvas = self._slide_view.render(self._player)
        self._paste_preview(canvas, preview)
        cv2.imshow(self._window, canvas)

    @staticmethod
    def _paste_preview(canvas: np.ndarray, preview: np.ndarray):
        """Picture-in-picture in the bottom-right corner."""
        ch, cw = canvas.shape[:2]
        ph, pw = preview.shape[:2]
        if ph + 40 > ch or pw + 20 > cw:
            return
        x, y = cw - pw - 20, ch - ph - 40
        canvas[y:y + ph, x:x + pw] = preview
        cv2.rectangle(canvas, (x - 1, y - 1), (x + pw, y + ph), (200, 200, 200), 1)

    def _handle_key(self, code: int):
        key = key_name(code)
        if key is None:
            return
        if key == "q":
            self._running = False
        elif key == "escape":
            self._dispatcher.cancel()
        elif key == "m":
            mirrored = self._overlay.toggle_mirror()
            self._store.set(MIRROR_STORE_KEY, mirrored)
            logger.info("Mirror %s", "on" if mirrored else "off")
        elif key == "t":
            self._player.toggle_theme()
        elif key == "f":
            self._toggle_fullscreen()
        elif key == "r":
            self._retry_camera()
        elif key == "p":
            self._perf.print_report()
        else:
            self._player.handle_key(key)

    def _toggle_fullscreen(self):
        self._fullscreen = not self._fullscreen
        cv2.setWindowProperty(
            self._window, cv2.WND_PROP_FULLSCREEN,
            cv2.WINDOW_FULLSCREEN if self._fullscreen else cv2.WINDOW_NORMAL,
        )

    def _retry_camera(self):
        if self._detector.camera_error is None:
            return
        logger.info("Retrying camera...")
        try:
            self._detector.activate()
        except CameraUnavailable:
            pass  # error screen stays up

    def _shutdown(self):
        """Clean shutdown of all modules."""
        logger.info("Shutting down...")
        self._running = False
        self._backend.close()
        cv2.destroyAllWindows()

        self._perf.print_report()
        logger.info("Gestures dispatched: %d", self._gesture_logger.total_gestures)
        logger.info("Shutdown complete.")

    def handle_signal(self, signum, frame):
        """Handle SIGINT/SIGTERM for graceful shutdown."""
        logger.info("Signal %d received, shutting down...", signum)
        self._running = False


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Gesture Presenter - control slides with hand gestures"
    )
    parser.add_argument(
        "--config", type=str, default=None,
        help="Path to config.yaml"
    )
    parser.add_argument(
        "--gestures", type=str, default=None,
        help="Path to gestures.yaml"
    )
    parser.add_argument(
        "--backend", choices=["local", "remote"], default=None,
        help="Gesture classifier (default: classifier.backend from config)"
    )
    parser.add_argument(
        "--deck", nargs="+", default=None, metavar="PATH",
        help=".pptx file, image files or a folder of images"
    )
    parser.add_argument(
        "--no-mirror", action="store_true",
        help="Show the camera preview unmirrored"
    )
    parser.add_argument(
        "--camera", type=int, default=None,
        help="Camera device ID"
    )
    parser.add_argument(
        "--log-level", type=str, default=None,
        help="Logging level (DEBUG, INFO, WARNING...)"
    )
    parser.add_argument(
        "--log-file", type=str, default=None,
        help="Also log to this file (rotating)"
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    # Load configuration
    overrides = {}
    if args.camera is not None:
        overrides["camera"] = {"device_id": args.camera}
    config = Config()
    config.load(config_path=args.config, gestures_path=args.gestures, overrides=overrides)

    # Setup logging
    log_cfg = config.logging
    setup_logging(
        level=args.log_level or log_cfg.get("level", "INFO"),
        log_file=args.log_file or log_cfg.get("file"),
        max_size_mb=log_cfg.get("max_size_mb", 10),
        backup_count=log_cfg.get("backup_count", 3),
    )

    backend = args.backend or config.get("classifier.backend", "local")
    logger.info("=" * 60)
    logger.info("  GESTURE PRESENTER")
    logger.info("  Version: %s", config.get("system.version", "1.0.0"))
    logger.info("  Backend: %s", backend)
    logger.info("=" * 60)

    try:
        app = GesturePresenter(
            config, backend=backend, deck=args.deck,
            mirror=False if args.no_mirror else None,
        )
    except DeckImportError as e:
        logger.error("Could not load deck: %s", e)
        return 1

    # Register signal handlers
    signal.signal(signal.SIGINT, app.handle_signal)
    signal.signal(signal.SIGTERM, app.handle_signal)

    asyncio.run(app.run())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
