"""
Action dispatcher: gesture label -> logical action -> handler.

    - The mapping is read at the moment a result is processed, so user edits
      apply from the next tick on, including to results already in flight.
    - PAUSE never reaches the handler: it toggles the paused flag.
    - While paused every other action is dropped; cancel() (escape) resumes.
    - Handler exceptions are logged and swallowed so a faulty consumer can
      never stop the detection loop.
"""

import time
import logging
from typing import Callable, Optional

from ...core.events import EventBus, Events
from ...core.types import ActionEvent, GestureLabel, LogicalAction
from .gesture_mapping import GestureMapping

logger = logging.getLogger(__name__)

ActionHandler = Callable[[LogicalAction], None]


class ActionDispatcher:
    """Maps detections to actions and invokes the application's handler."""

    def __init__(self, mapping: Optional[GestureMapping] = None,
                 handler: Optional[ActionHandler] = None,
                 store=None, event_bus: Optional[EventBus] = None):
        self._store = store
        self._bus = event_bus
        if mapping is None:
            mapping = GestureMapping.load(store) if store is not None else GestureMapping.default()
        self._mapping = mapping
        self._handler = handler

        self._paused = False
        self._last_action: Optional[LogicalAction] = None
        self._action_count = 0

        logger.info("ActionDispatcher initialized (%s)", self._mapping)

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def resolve(self, label: GestureLabel) -> LogicalAction:
        """Translate a raw label using the mapping current right now."""
        return self._mapping.lookup(label)

    def update_mapping(self, mapping: GestureMapping, persist: bool = True):
        """Swap the active mapping (and persist it)."""
        self._mapping = mapping
        if persist and self._store is not None:
            try:
                mapping.save(self._store)
            except Exception as e:
                logger.error("Failed to persist gesture mapping: %s", e)
        logger.info("Gesture mapping updated: %s", mapping)
        if self._bus is not None:
            self._bus.emit(Events.MAPPING_CHANGED, mapping=mapping)

    def remap(self, label: GestureLabel, action: LogicalAction):
        """Change a single entry of the mapping."""
        self.update_mapping(self._mapping.with_entry(label, action))

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def set_handler(self, handler: Optional[ActionHandler]):
        self._handler = handler

    def dispatch(self, action: LogicalAction,
                 label: GestureLabel = GestureLabel.NONE,
                 confidence: float = 1.0) -> bool:
        """Dispatch one qualifying detection.

        Returns:
            True if the action took effect (pause toggled or handler invoked)
        """
        if action is LogicalAction.NONE:
            return False

        if action is LogicalAction.PAUSE:
            self.set_paused(not self._paused)
            self._record(action, label, confidence)
            return True

        if self._paused:
            logger.debug("Paused, ignoring action %s", action.value)
            return False

        if self._handler is not None:
            try:
                self._handler(action)
            except Exception as e:
                logger.error("Action handler error for %s: %s", action.value, e)

        self._record(action, label, confidence)
        return True

    def _record(self, action: LogicalAction, label: GestureLabel, confidence: float):
        self._last_action = action
        self._action_count += 1
        if self._bus is not None:
            self._bus.emit(Events.ACTION_DISPATCHED, event=ActionEvent(
                action=action,
                label=label,
                confidence=confidence,
                timestamp_ms=time.time() * 1000,
            ))

    # ------------------------------------------------------------------
    # Pause
    # ------------------------------------------------------------------

    def set_paused(self, paused: bool):
        if paused == self._paused:
            return
        self._paused = paused
        logger.info("Presentation %s", "paused" if paused else "resumed")
        if self._bus is not None:
            self._bus.emit(Events.PAUSE_CHANGED, paused=paused)

    def cancel(self):
        """Escape signal: always resumes."""
        self.set_paused(False)

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def mapping(self) -> GestureMapping:
        return self._mapping

    @property
    def last_action(self) -> Optional[LogicalAction]:
        return self._last_action

    @property
    def action_count(self) -> int:
        return self._action_count
