"""
Cooperative scheduling primitives for the detection loop.

RepeatingTask replaces platform timers / animation callbacks with an asyncio
task whose interval can be changed while it runs (backoff) and which can be
cancelled deterministically (teardown). BackoffPolicy holds the polling delay
of rate-limited backends.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class BackoffPolicy:
    """Exponential backoff bounded in [base_delay_ms, max_delay_ms]."""

    def __init__(self, base_delay_ms: float, max_delay_ms: float, multiplier: float = 2.0):
        if base_delay_ms <= 0:
            raise ValueError("base_delay_ms must be positive")
        if max_delay_ms < base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        if multiplier < 1.0:
            raise ValueError("multiplier must be >= 1")
        self._base = float(base_delay_ms)
        self._max = float(max_delay_ms)
        self._multiplier = float(multiplier)
        self._current = self._base

    def on_failure(self) -> float:
        """Lengthen the delay after a quota error. Returns the new delay."""
        self._current = min(self._current * self._multiplier, self._max)
        return self._current

    def reset(self) -> float:
        """Back to the base delay after a successful call."""
        self._current = self._base
        return self._current

    @property
    def current_delay_ms(self) -> float:
        return self._current

    @property
    def base_delay_ms(self) -> float:
        return self._base

    @property
    def max_delay_ms(self) -> float:
        return self._max

    @property
    def is_backing_off(self) -> bool:
        return self._current > self._base


class RepeatingTask:
    """Run an async callback repeatedly on the running event loop.

    The callback is awaited to completion before the next sleep starts, so two
    invocations never overlap. Exceptions from the callback are logged and the
    task keeps going; only cancel() stops it.

    Example:
        >>> task = RepeatingTask(detector.tick, interval_ms=150, name="classify")
        >>> task.start()
        >>> task.reschedule(300)
        >>> await task.cancel()
    """

    def __init__(self, callback: Callable[[], Awaitable], interval_ms: float,
                 name: str = "repeating-task"):
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self._callback = callback
        self._interval_ms = float(interval_ms)
        self._name = name
        self._task: Optional[asyncio.Task] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._runs = 0

    def start(self):
        """Schedule the task on the running loop. No-op if already running."""
        if self.is_running:
            return
        self._wakeup = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self._name)
        logger.debug("%s started (interval=%.0fms)", self._name, self._interval_ms)

    def reschedule(self, interval_ms: float):
        """Change the interval. A pending sleep is cut short and restarted."""
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        if interval_ms == self._interval_ms:
            return
        logger.debug("%s rescheduled: %.0fms -> %.0fms",
                     self._name, self._interval_ms, interval_ms)
        self._interval_ms = float(interval_ms)
        if self._wakeup is not None:
            self._wakeup.set()

    async def cancel(self):
        """Stop the task and wait for it to unwind."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("%s cancelled after %d runs", self._name, self._runs)

    async def _run(self):
        while True:
            try:
                await self._callback()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("%s callback failed: %s", self._name, e)
            self._runs += 1
            await self._sleep()

    async def _sleep(self):
        # Restart the wait whenever reschedule() fires mid-sleep.
        while True:
            self._wakeup.clear()
            try:
                await asyncio.wait_for(self._wakeup.wait(), self._interval_ms / 1000.0)
            except asyncio.TimeoutError:
                return

    @property
    def interval_ms(self) -> float:
        return self._interval_ms

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def run_count(self) -> int:
        return self._runs
