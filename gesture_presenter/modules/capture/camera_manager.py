"""
Frame sampler: owns the webcam and always holds the latest frame.

Threaded capture keeps the newest frame available so the detection loop and
the renderer can sample it at their own cadence. Frames are never flipped
here; mirroring is a display concern handled by the overlay.
"""

import time
import threading
import logging
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from ...core.types import CameraUnavailable

logger = logging.getLogger(__name__)


@dataclass
class CameraConfig:
    """Camera configuration settings."""
    device_id: int = 0
    width: int = 320
    height: int = 240
    fps: int = 30
    backend: str = "auto"
    buffer_size: int = 1  # Minimal buffering for low latency
    warmup_frames: int = 5

    @classmethod
    def from_dict(cls, config: dict) -> "CameraConfig":
        """Create config from dictionary (YAML parsed)."""
        return cls(
            device_id=config.get("device_id", 0),
            width=config.get("width", 320),
            height=config.get("height", 240),
            fps=config.get("fps", 30),
            backend=config.get("backend", "auto"),
            buffer_size=config.get("buffer_size", 1),
            warmup_frames=config.get("warmup_frames", 5),
        )


class FrameSampler:
    """Webcam capture with threaded frame acquisition.

    Example:
        >>> sampler = FrameSampler(CameraConfig())
        >>> sampler.start()          # raises CameraUnavailable
        >>> frame = sampler.read()   # latest BGR frame or None
        >>> sampler.stop()
    """

    def __init__(self, config: Optional[CameraConfig] = None):
        self.config = config or CameraConfig()
        self._cap = None
        self._frame: Optional[np.ndarray] = None
        self._frame_id = 0
        self._lock = threading.Lock()
        self._running = False
        self._thread: Optional[threading.Thread] = None

    def start(self):
        """Acquire the camera and start the capture thread.

        Any previously held stream is released first.

        Raises:
            CameraUnavailable: no device, or access denied
        """
        self.stop()

        backend_map = {
            "v4l2": cv2.CAP_V4L2,
            "gstreamer": cv2.CAP_GSTREAMER,
            "dshow": cv2.CAP_DSHOW,
            "avfoundation": cv2.CAP_AVFOUNDATION,
            "auto": cv2.CAP_ANY,
        }
        backend = backend_map.get(self.config.backend, cv2.CAP_ANY)

        logger.info("Starting camera (device=%d, %dx%d@%dfps)",
                    self.config.device_id, self.config.width,
                    self.config.height, self.config.fps)
        cap = cv2.VideoCapture(self.config.device_id, backend)
        if not cap.isOpened():
            cap.release()
            logger.error("Failed to open camera %d", self.config.device_id)
            raise CameraUnavailable(
                f"Camera {self.config.device_id} could not be opened "
                "(no device or permission denied)"
            )

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)
        cap.set(cv2.CAP_PROP_FPS, self.config.fps)
        cap.set(cv2.CAP_PROP_BUFFERSIZE, self.config.buffer_size)

        logger.info(
            "Camera opened: %dx%d @ %.0f FPS",
            int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            cap.get(cv2.CAP_PROP_FPS),
        )

        # Let auto-exposure settle
        for _ in range(self.config.warmup_frames):
            cap.read()

        self._cap = cap
        self._running = True
        self._thread = threading.Thread(target=self._capture_loop,
                                        name="frame-sampler", daemon=True)
        self._thread.start()

    def _capture_loop(self):
        """Background capture thread - always holds the latest frame."""
        while self._running:
            cap = self._cap
            if cap is None:
                break
            ret, frame = cap.read()
            if ret and frame is not None:
                with self._lock:
                    self._frame = frame
                    self._frame_id += 1
            else:
                time.sleep(0.005)

    def read(self) -> Optional[np.ndarray]:
        """Latest frame (shared reference, do not draw on it) or None."""
        with self._lock:
            return self._frame

    def stop(self):
        """Stop capture and release the camera. Safe to call repeatedly."""
        was_running = self._running or self._cap is not None
        self._running = False
        thread, self._thread = self._thread, None
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        cap, self._cap = self._cap, None
        if cap is not None:
            cap.release()
        with self._lock:
            self._frame = None
        if was_running:
            logger.info("Camera stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def resolution(self) -> tuple:
        return (self.config.width, self.config.height)

    @property
    def frame_id(self) -> int:
        return self._frame_id

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
