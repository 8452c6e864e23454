"""Camera frame acquisition."""
from .camera_manager import CameraConfig, FrameSampler

__all__ = ["CameraConfig", "FrameSampler"]
