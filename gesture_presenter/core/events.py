"""
Lightweight event bus for decoupled inter-module communication.

The detection loop publishes state and action events here so the player,
overlay and logger never need a direct reference to the loop.

Usage:
    bus = EventBus()
    bus.subscribe(Events.ACTION_DISPATCHED, my_handler)
    bus.emit(Events.ACTION_DISPATCHED, event=action_event)
"""

import time
import logging
import threading
from collections import defaultdict
from typing import Callable

logger = logging.getLogger(__name__)


class EventBus:
    """Thread-safe publish/subscribe event bus.

    Listeners run synchronously in priority order. A failing listener is
    logged and never breaks the emitter.
    """

    def __init__(self, max_history: int = 100):
        self._listeners = defaultdict(list)  # event_name -> [(priority, callback)]
        self._lock = threading.Lock()
        self._event_history = []
        self._max_history = max_history

    def subscribe(self, event_name: str, callback: Callable, priority: int = 0):
        """Register a listener for an event.

        Args:
            event_name: Event to listen for
            callback: Function to call. Receives **kwargs from emit().
            priority: Higher priority callbacks run first (default 0)
        """
        with self._lock:
            self._listeners[event_name].append((priority, callback))
            self._listeners[event_name].sort(key=lambda x: -x[0])
        logger.debug("Subscribed to '%s': %s (priority=%d)",
                     event_name, getattr(callback, "__name__", callback), priority)

    def unsubscribe(self, event_name: str, callback: Callable):
        """Remove a listener for an event."""
        with self._lock:
            self._listeners[event_name] = [
                (p, cb) for p, cb in self._listeners[event_name] if cb is not callback
            ]

    def emit(self, event_name: str, **kwargs):
        """Emit an event to all registered listeners."""
        with self._lock:
            listeners = list(self._listeners.get(event_name, []))
            self._event_history.append({
                "event": event_name,
                "time": time.time(),
                "data_keys": list(kwargs.keys()),
            })
            if len(self._event_history) > self._max_history:
                self._event_history = self._event_history[-self._max_history:]

        for priority, callback in listeners:
            try:
                callback(**kwargs)
            except Exception as e:
                logger.error("Event handler error [%s -> %s]: %s",
                             event_name, getattr(callback, "__name__", callback), e)

    @property
    def listener_count(self) -> int:
        with self._lock:
            return sum(len(cbs) for cbs in self._listeners.values())

    def get_history(self, last_n: int = 10) -> list:
        """Get recent event history."""
        with self._lock:
            return self._event_history[-last_n:]


# =============================================================================
# Standard Event Names (constants to avoid typos)
# =============================================================================

class Events:
    """Standard event names used throughout the system."""

    # Detection loop
    STATE_CHANGED = "state_changed"            # state=DetectionState
    ACTION_DISPATCHED = "action_dispatched"    # event=ActionEvent
    ACTION_UNMAPPED = "action_unmapped"        # label=GestureLabel, raw_label=str, confidence=float
    INTERVAL_CHANGED = "interval_changed"      # interval_ms=float

    # Dispatcher
    PAUSE_CHANGED = "pause_changed"            # paused=bool
    MAPPING_CHANGED = "mapping_changed"        # mapping=GestureMapping

    # Camera
    CAMERA_STARTED = "camera_started"
    CAMERA_ERROR = "camera_error"              # message=str
    CAMERA_STOPPED = "camera_stopped"

    # Lifecycle
    DETECTOR_ACTIVATED = "detector_activated"
    DETECTOR_DEACTIVATED = "detector_deactivated"
