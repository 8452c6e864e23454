"""
Cooldown debouncer for dispatched actions.

Policy:
    - A qualifying action fires when it differs from the last fired action,
      or when the cooldown window of the last dispatch has elapsed.
    - Every dispatch sets last_fired and cooldown_until = now + cooldown.
    - While nothing is detected, last_fired is cleared once
      rearm_after_ms has passed since the cooldown ended, so the same gesture
      shown again re-fires immediately.

A held gesture therefore fires once per cooldown window, while a switch to a
different gesture registers straight away.
"""

import logging
from typing import Optional

from ...core.types import LogicalAction

logger = logging.getLogger(__name__)


class Debouncer:
    """Tracks last_fired_action / cooldown_until. All times in ms."""

    def __init__(self, config: dict):
        self._cooldown_ms = float(config.get("cooldown_ms", 1000))
        self._rearm_after_ms = float(config.get("rearm_after_ms", 500))

        self._last_fired: LogicalAction = LogicalAction.NONE
        self._cooldown_until: float = float("-inf")

    def can_fire(self, action: LogicalAction, now_ms: float) -> bool:
        """Check whether an action should be dispatched at now_ms."""
        if action is LogicalAction.NONE:
            return False
        if action is not self._last_fired:
            return True
        return now_ms >= self._cooldown_until

    def record(self, action: LogicalAction, now_ms: float):
        """Record a dispatch and open a new cooldown window."""
        self._last_fired = action
        self._cooldown_until = now_ms + self._cooldown_ms
        logger.debug("Action '%s' fired, cooldown until %.0f", action.value, self._cooldown_until)

    def gesture_lost(self, now_ms: float) -> bool:
        """Called when nothing (or nothing confident) is detected.

        Returns True if last_fired was cleared.
        """
        if self._last_fired is LogicalAction.NONE:
            return False
        if now_ms - self._cooldown_until > self._rearm_after_ms:
            logger.debug("Gesture lost (was %s), re-armed", self._last_fired.value)
            self._last_fired = LogicalAction.NONE
            return True
        return False

    def reset(self):
        """Clear all state."""
        self._last_fired = LogicalAction.NONE
        self._cooldown_until = float("-inf")

    @property
    def last_fired(self) -> LogicalAction:
        return self._last_fired

    @property
    def cooldown_until(self) -> Optional[float]:
        if self._cooldown_until == float("-inf"):
            return None
        return self._cooldown_until

    @property
    def cooldown_ms(self) -> float:
        return self._cooldown_ms
