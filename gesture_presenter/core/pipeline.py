"""
Detection loop: the sample -> classify -> filter -> dispatch cycle.

Architecture:
    FrameSampler -> ClassifierBackend -> ConfidenceScorer -> Debouncer
    -> ActionDispatcher

Two independent cadences share one asyncio loop:

    classification   RepeatingTask calling tick() every sampling interval.
                     At most one classifier call is ever outstanding; the
                     interval grows on quota errors and resets on success.
    rendering        render_tick(), driven by the caller once per display
                     frame. It only redraws cached state, so a slow
                     classifier never stalls the preview.

Every completed call replaces the DetectionState snapshot. Results that come
back after deactivate() are dropped without touching any state.
"""

import asyncio
import time
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np

from .events import EventBus, Events
from .scheduler import BackoffPolicy, RepeatingTask
from .types import (
    CameraUnavailable, ClassifierInitFailed, ClassifierNotReady, DetectionError,
    DetectionResult, DetectionState, DetectionStatus, LogicalAction, RateLimited,
    STATUS_LABELS,
)
from ..modules.control.debouncer import Debouncer
from ..modules.recognition.confidence_scorer import ConfidenceScorer

logger = logging.getLogger(__name__)


@dataclass
class DetectionConfig:
    """Tunables of the detection policy. Times in milliseconds."""
    confidence_threshold: float = 0.6
    confidence_overrides: dict = field(default_factory=dict)
    cooldown_ms: int = 1000
    sampling_interval_ms: Optional[int] = None  # None: backend default
    rearm_after_ms: int = 500
    backoff_multiplier: float = 2.0
    max_interval_ms: int = 60000
    show_processing: bool = False
    render_fps: float = 30.0

    @classmethod
    def from_dict(cls, d: dict) -> "DetectionConfig":
        return cls(
            confidence_threshold=d.get("confidence_threshold", 0.6),
            confidence_overrides=d.get("confidence_overrides", {}) or {},
            cooldown_ms=d.get("cooldown_ms", 1000),
            sampling_interval_ms=d.get("sampling_interval_ms"),
            rearm_after_ms=d.get("rearm_after_ms", 500),
            backoff_multiplier=d.get("backoff_multiplier", 2.0),
            max_interval_ms=d.get("max_interval_ms", 60000),
            show_processing=d.get("show_processing", False),
            render_fps=d.get("render_fps", 30.0),
        )


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class DetectionLoop:
    """Drives the classifier against the live camera and dispatches actions.

    Example:
        >>> loop = DetectionLoop(sampler, backend, dispatcher, DetectionConfig())
        >>> loop.activate()                 # inside a running event loop
        >>> frame = loop.render_tick()      # once per display frame
        >>> await loop.deactivate()
    """

    def __init__(
        self,
        sampler,
        backend,
        dispatcher,
        config: Optional[DetectionConfig] = None,
        event_bus: Optional[EventBus] = None,
        overlay=None,
        performance_monitor=None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._sampler = sampler
        self._backend = backend
        self._dispatcher = dispatcher
        self._config = config or DetectionConfig()
        self._bus = event_bus
        self._overlay = overlay
        self._perf = performance_monitor
        self._clock = clock or _monotonic_ms

        self._scorer = ConfidenceScorer({
            "confidence_threshold": self._config.confidence_threshold,
            "confidence_overrides": self._config.confidence_overrides,
        })
        self._debouncer = Debouncer({
            "cooldown_ms": self._config.cooldown_ms,
            "rearm_after_ms": self._config.rearm_after_ms,
        })
        base_interval = self._config.sampling_interval_ms or getattr(
            backend, "default_interval_ms", 150)
        self._backoff = BackoffPolicy(
            base_delay_ms=base_interval,
            max_delay_ms=max(self._config.max_interval_ms, base_interval),
            multiplier=self._config.backoff_multiplier,
        )

        # State
        self._state = DetectionState.initial()
        self._active = False
        self._generation = 0
        self._in_flight = False
        self._last_attempt_ms: Optional[float] = None
        self._camera_error: Optional[str] = None
        self._classify_task: Optional[RepeatingTask] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def activate(self, schedule: bool = True):
        """Start the camera and the classification cadence.

        With ``schedule`` (the default) a RepeatingTask calls tick() and this
        must run inside an event loop; without it the caller drives tick().

        Raises:
            CameraUnavailable: the camera could not be opened; the loop stays
                inactive until activate() is called again.
        """
        if self._active:
            return
        try:
            self._sampler.start()
        except CameraUnavailable as e:
            self._camera_error = str(e)
            logger.error("Camera unavailable: %s", e)
            self._emit(Events.CAMERA_ERROR, message=str(e))
            raise
        self._camera_error = None
        self._emit(Events.CAMERA_STARTED)

        self._active = True
        self._generation += 1
        self._in_flight = False
        self._last_attempt_ms = None
        self._set_state(DetectionState.initial())

        if schedule:
            self._classify_task = RepeatingTask(
                self.tick, self._backoff.current_delay_ms, name="gesture-classify")
            self._classify_task.start()
        logger.info("Detection loop activated (backend=%s, interval=%.0fms)",
                    getattr(self._backend, "name", self._backend),
                    self._backoff.current_delay_ms)
        self._emit(Events.DETECTOR_ACTIVATED)

    async def deactivate(self):
        """Stop ticking, release the camera and reset to the initial state.

        A classifier call still in flight is abandoned: when it completes,
        its result is discarded.
        """
        was_active = self._active
        self._active = False
        self._generation += 1
        self._in_flight = False

        task, self._classify_task = self._classify_task, None
        if task is not None:
            await task.cancel()

        self._sampler.stop()
        self._debouncer.reset()
        self._backoff.reset()
        self._last_attempt_ms = None
        self._set_state(DetectionState.initial())
        if was_active:
            self._emit(Events.CAMERA_STOPPED)
            self._emit(Events.DETECTOR_DEACTIVATED)
            logger.info("Detection loop deactivated")

    # ------------------------------------------------------------------
    # Classification cadence
    # ------------------------------------------------------------------

    async def tick(self) -> bool:
        """One classification attempt.

        Returns:
            True if a classifier result was processed
        """
        if not self._active:
            return False

        now = self._clock()
        if self._in_flight:
            self._record_outcome("skipped_busy")
            return False
        if (self._last_attempt_ms is not None
                and now - self._last_attempt_ms < self._backoff.current_delay_ms):
            self._record_outcome("skipped_interval")
            return False

        frame = self._sampler.read()
        if frame is None:
            self._record_outcome("skipped_no_frame")
            return False
        self._last_attempt_ms = now
        self._in_flight = True
        generation = self._generation

        if self._config.show_processing and self._state.status is not DetectionStatus.LOADING:
            self._set_state(self._state.evolve(
                status=DetectionStatus.PROCESSING,
                label=STATUS_LABELS[DetectionStatus.PROCESSING],
            ))

        try:
            result = await self._classify(frame)
        finally:
            if generation == self._generation:
                self._in_flight = False

        if generation != self._generation or not self._active:
            logger.debug("Dropping classifier result that arrived after deactivation")
            return False

        if result is None:
            # Lost tick: nothing seen, but the backoff interval stays as is
            self._on_nothing(self._clock())
            return True

        self.handle_result(result, self._clock())
        return True

    async def _classify(self, frame: Optional[np.ndarray]) -> Optional[DetectionResult]:
        """Run the backend; None when the call failed."""
        try:
            if self._perf is not None:
                with self._perf.measure("classify"):
                    return await self._backend.classify(frame)
            return await self._backend.classify(frame)
        except asyncio.CancelledError:
            raise
        except (ClassifierNotReady, ClassifierInitFailed, RateLimited) as e:
            logger.debug("Classifier raised %s: %s", type(e).__name__, e)
            return DetectionResult.failure(e.error_code)
        except Exception as e:
            # RecoverableDetectionError and anything unexpected
            logger.warning("Classification failed: %s", e)
            self._record_outcome("failed")
            return None

    # ------------------------------------------------------------------
    # Decision policy
    # ------------------------------------------------------------------

    def handle_result(self, result: DetectionResult, now: float):
        """Apply one classifier result to state, cooldown and dispatch."""
        if result.error is DetectionError.LOADING:
            self._record_outcome("loading")
            self._set_state(self._state.evolve(
                status=DetectionStatus.LOADING,
                label=STATUS_LABELS[DetectionStatus.LOADING],
            ))
            return

        if result.error is DetectionError.INIT_FAILED:
            self._record_outcome("init_failed")
            self._set_state(self._state.evolve(
                status=DetectionStatus.ERROR,
                label=STATUS_LABELS[DetectionStatus.ERROR],
                current_action=LogicalAction.NONE,
                bounding_box=None,
            ))
            return

        if result.error is DetectionError.QUOTA_EXCEEDED:
            self._record_outcome("rate_limited")
            previous = self._backoff.current_delay_ms
            interval = self._backoff.on_failure()
            if interval != previous:
                self._apply_interval(interval)
            self._set_state(self._state.evolve(
                status=DetectionStatus.RATE_LIMITED,
                label=STATUS_LABELS[DetectionStatus.RATE_LIMITED],
            ))
            return

        if self._backoff.is_backing_off:
            self._apply_interval(self._backoff.reset())

        label = result.label
        # Mapping is read now, not when the request was issued
        action = self._dispatcher.resolve(label)

        unrecognized = result.unrecognized_label
        if (unrecognized is not None
                and result.confidence >= self._scorer.default_threshold):
            self._on_unmapped(unrecognized, result, now)
            return

        if not self._scorer.passes(label, result.confidence):
            self._record_outcome("none")
            self._on_nothing(now)
            return

        if action is LogicalAction.NONE:
            self._on_unmapped(label.display_name, result, now)
            return

        self._record_outcome("success")
        self._set_state(self._state.evolve(
            status=DetectionStatus.SUCCESS,
            label=action.display_name,
            current_action=action,
            confidence=result.confidence,
            bounding_box=result.bounding_box or self._state.bounding_box,
        ))

        if self._debouncer.can_fire(action, now):
            self._debouncer.record(action, now)
            self._dispatcher.dispatch(action, label, result.confidence)

    def _on_unmapped(self, name: str, result: DetectionResult, now: float):
        self._record_outcome("unmapped")
        self._set_state(self._state.evolve(
            status=DetectionStatus.UNMAPPED,
            label=f"{name} (unmapped)",
            current_action=LogicalAction.NONE,
            confidence=result.confidence,
            bounding_box=result.bounding_box,
        ))
        self._debouncer.gesture_lost(now)
        self._emit(Events.ACTION_UNMAPPED, label=result.label, raw_label=name,
                   confidence=result.confidence)

    def _on_nothing(self, now: float):
        self._set_state(self._state.evolve(
            status=DetectionStatus.WAITING,
            label=STATUS_LABELS[DetectionStatus.WAITING],
            current_action=LogicalAction.NONE,
            confidence=0.0,
            bounding_box=None,
        ))
        self._debouncer.gesture_lost(now)

    def _apply_interval(self, interval_ms: float):
        if self._classify_task is not None:
            self._classify_task.reschedule(interval_ms)
        logger.info("Sampling interval now %.0fms", interval_ms)
        self._emit(Events.INTERVAL_CHANGED, interval_ms=interval_ms)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render_tick(self, frame: Optional[np.ndarray] = None,
                    paused: bool = False) -> Optional[np.ndarray]:
        """Redraw the preview from a frame (default: latest) and cached state."""
        if self._overlay is None:
            return None
        if self._perf is not None:
            self._perf.tick()
            with self._perf.measure("render"):
                return self._render(frame, paused)
        return self._render(frame, paused)

    def _render(self, frame: Optional[np.ndarray], paused: bool) -> Optional[np.ndarray]:
        if self._camera_error is not None:
            return self._overlay.render_camera_error(self._camera_error)
        if frame is None and self._active:
            frame = self._sampler.read()
        return self._overlay.render(frame, self._state, paused=paused)

    async def run(self, on_frame: Optional[Callable[[np.ndarray], None]] = None,
                  paused: Callable[[], bool] = lambda: False):
        """Activate, then render at ``render_fps`` until cancelled.

        Each rendered image is handed to ``on_frame``. If the camera cannot
        be opened the error screen is rendered instead; call activate() again
        to retry. Deactivates on exit.
        """
        try:
            self.activate()
        except CameraUnavailable:
            pass  # surfaced through camera_error and the CAMERA_ERROR event

        async def _render_once():
            image = self.render_tick(paused=paused())
            if image is not None and on_frame is not None:
                on_frame(image)

        render_task = RepeatingTask(_render_once, 1000.0 / max(self._config.render_fps, 1.0),
                                    name="gesture-render")
        render_task.start()
        try:
            await asyncio.Event().wait()
        finally:
            await render_task.cancel()
            await self.deactivate()

    # ------------------------------------------------------------------

    def _set_state(self, state: DetectionState):
        self._state = state
        self._emit(Events.STATE_CHANGED, state=state)

    def _emit(self, event_name: str, **kwargs):
        if self._bus is not None:
            self._bus.emit(event_name, **kwargs)

    def _record_outcome(self, outcome: str):
        if self._perf is not None:
            self._perf.record_outcome(outcome)

    @property
    def state(self) -> DetectionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_classifying(self) -> bool:
        return self._in_flight

    @property
    def camera_error(self) -> Optional[str]:
        return self._camera_error

    @property
    def current_interval_ms(self) -> float:
        return self._backoff.current_delay_ms

    @property
    def last_fired_action(self) -> LogicalAction:
        return self._debouncer.last_fired

    @property
    def cooldown_until(self) -> Optional[float]:
        return self._debouncer.cooldown_until

    @property
    def backend(self):
        return self._backend
