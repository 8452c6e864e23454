"""
Shared domain types for the Gesture Presenter.

Centralizes enums, data classes, and the exception hierarchy used across
modules to eliminate circular imports and ensure type consistency.
"""

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, List, Tuple


# =============================================================================
# Gesture / Action Vocabularies
# =============================================================================

class GestureLabel(Enum):
    """Raw classifier output categories (MediaPipe gesture recognizer names)."""
    NONE = "None"
    THUMB_UP = "Thumb_Up"
    THUMB_DOWN = "Thumb_Down"
    OPEN_PALM = "Open_Palm"
    VICTORY = "Victory"
    CLOSED_FIST = "Closed_Fist"
    POINTING_UP = "Pointing_Up"
    I_LOVE_YOU = "ILoveYou"

    @classmethod
    def from_string(cls, name: Optional[str]) -> 'GestureLabel':
        """Convert a category name to GestureLabel, safely.

        Accepts both the classifier value ("Thumb_Up") and the member name
        ("THUMB_UP"); anything else is NONE.
        """
        if not name:
            return cls.NONE
        try:
            return cls(name)
        except ValueError:
            return cls.__members__.get(str(name).upper(), cls.NONE)

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ")


class LogicalAction(Enum):
    """Application-level commands, stable across classifier backends."""
    NEXT = "NEXT"
    PREV = "PREV"
    PAUSE = "PAUSE"
    VOL_UP = "VOL_UP"
    VOL_DOWN = "VOL_DOWN"
    CHANGE_THEME = "CHANGE_THEME"
    ZOOM_IN = "ZOOM_IN"
    ZOOM_OUT = "ZOOM_OUT"
    SPACE = "SPACE"
    NONE = "NONE"

    @classmethod
    def from_string(cls, name: Optional[str]) -> 'LogicalAction':
        if not name:
            return cls.NONE
        try:
            return cls(str(name).upper())
        except ValueError:
            return cls.NONE

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ")


class DetectionError(Enum):
    """Error codes a classifier backend may report instead of a label."""
    LOADING = "LOADING"
    INIT_FAILED = "INIT_FAILED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"


class DetectionStatus(Enum):
    """UI-facing status of the detection loop."""
    LOADING = "loading"
    WAITING = "waiting"
    PROCESSING = "processing"
    SUCCESS = "success"
    UNMAPPED = "unmapped"
    ERROR = "error"
    RATE_LIMITED = "rate_limited"


# =============================================================================
# Exceptions
# =============================================================================

class GesturePresenterError(Exception):
    """Base class for all application errors."""


class CameraUnavailable(GesturePresenterError):
    """Camera permission denied or no device present."""


class ClassifierNotReady(GesturePresenterError):
    """The classifier model is still loading."""
    error_code = DetectionError.LOADING


class ClassifierInitFailed(GesturePresenterError):
    """The classifier model failed to load."""
    error_code = DetectionError.INIT_FAILED


class RateLimited(GesturePresenterError):
    """The remote classifier rejected the call for quota reasons."""
    error_code = DetectionError.QUOTA_EXCEEDED


class RecoverableDetectionError(GesturePresenterError):
    """Any other failure of a single classification call."""


class DeckImportError(GesturePresenterError):
    """A presentation file could not be turned into slides."""


# =============================================================================
# Data Containers
# =============================================================================

def _clamp01(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


@dataclass(frozen=True)
class BoundingBox:
    """Normalized (0-1) hand bounding box.

    Coordinates are clamped to [0, 1] and ordered so that xmin <= xmax and
    ymin <= ymax, whatever the backend handed in.
    """
    xmin: float
    ymin: float
    xmax: float
    ymax: float

    def __post_init__(self):
        x0, x1 = sorted((_clamp01(self.xmin), _clamp01(self.xmax)))
        y0, y1 = sorted((_clamp01(self.ymin), _clamp01(self.ymax)))
        object.__setattr__(self, "xmin", x0)
        object.__setattr__(self, "xmax", x1)
        object.__setattr__(self, "ymin", y0)
        object.__setattr__(self, "ymax", y1)

    @classmethod
    def from_points(cls, xs, ys) -> Optional['BoundingBox']:
        """Tight box around normalized landmark coordinates."""
        xs = list(xs)
        ys = list(ys)
        if not xs or not ys:
            return None
        return cls(xmin=min(xs), ymin=min(ys), xmax=max(xs), ymax=max(ys))

    def mirrored(self) -> 'BoundingBox':
        """Horizontally flipped box, for drawing over a mirrored preview."""
        return BoundingBox(xmin=1.0 - self.xmax, ymin=self.ymin,
                           xmax=1.0 - self.xmin, ymax=self.ymax)

    def to_pixels(self, width: int, height: int) -> Tuple[int, int, int, int]:
        """Convert to (x, y, w, h) in pixels."""
        x = int(self.xmin * width)
        y = int(self.ymin * height)
        return (x, y, int(self.xmax * width) - x, int(self.ymax * height) - y)

    def to_dict(self) -> dict:
        return {"xmin": self.xmin, "ymin": self.ymin,
                "xmax": self.xmax, "ymax": self.ymax}


@dataclass(frozen=True)
class DetectionResult:
    """Output of one classifier invocation.

    At most one of ``error`` or a meaningful label is populated. When an error
    is set the label is NONE, the confidence 0 and there is no box.

    ``raw_label`` is the category name exactly as the classifier reported it,
    kept so that names outside GestureLabel can still be shown to the user.
    """
    label: GestureLabel = GestureLabel.NONE
    confidence: float = 0.0
    bounding_box: Optional[BoundingBox] = None
    error: Optional[DetectionError] = None
    raw_label: Optional[str] = None

    def __post_init__(self):
        if self.error is not None:
            object.__setattr__(self, "label", GestureLabel.NONE)
            object.__setattr__(self, "confidence", 0.0)
            object.__setattr__(self, "bounding_box", None)
            object.__setattr__(self, "raw_label", None)
        else:
            object.__setattr__(self, "confidence", _clamp01(self.confidence))

    @property
    def unrecognized_label(self) -> Optional[str]:
        """The raw name when the classifier saw something GestureLabel lacks."""
        if self.label is not GestureLabel.NONE:
            return None
        name = (self.raw_label or "").strip()
        if not name or name.lower() == GestureLabel.NONE.value.lower():
            return None
        return name

    @classmethod
    def empty(cls) -> 'DetectionResult':
        return cls()

    @classmethod
    def failure(cls, error: DetectionError) -> 'DetectionResult':
        return cls(error=error)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def __repr__(self):
        if self.error is not None:
            return f"DetectionResult(error={self.error.value})"
        return f"DetectionResult({self.label.value}, conf={self.confidence:.2f})"


STATUS_LABELS = {
    DetectionStatus.LOADING: "Loading model...",
    DetectionStatus.WAITING: "Ready",
    DetectionStatus.PROCESSING: "Analyzing...",
    DetectionStatus.ERROR: "AI failed to load",
    DetectionStatus.RATE_LIMITED: "Rate limited, slowing down",
}


@dataclass(frozen=True)
class DetectionState:
    """Immutable UI snapshot, replaced by the detection loop on every result."""
    current_action: LogicalAction = LogicalAction.NONE
    label: str = STATUS_LABELS[DetectionStatus.LOADING]
    status: DetectionStatus = DetectionStatus.LOADING
    confidence: float = 0.0
    bounding_box: Optional[BoundingBox] = None
    updated_at: float = field(default_factory=time.time)

    @classmethod
    def initial(cls) -> 'DetectionState':
        return cls()

    def evolve(self, **changes) -> 'DetectionState':
        changes.setdefault("updated_at", time.time())
        return replace(self, **changes)


@dataclass(frozen=True)
class ActionEvent:
    """One dispatched action, as published on the event bus."""
    action: LogicalAction
    label: GestureLabel
    confidence: float
    timestamp_ms: float


@dataclass
class Slide:
    """A normalized slide produced by the deck importer."""
    id: int
    title: str
    content: str = ""
    image_refs: List[str] = field(default_factory=list)
    bullet_points: List[str] = field(default_factory=list)
    is_image_only: bool = False

    @property
    def image_ref(self) -> Optional[str]:
        return self.image_refs[0] if self.image_refs else None
