"""
Detection telemetry: classifier latency, render FPS and outcome counters.
Thread-safe metrics collection with rolling windows.
"""

import time
import threading
import logging
from collections import deque, Counter
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class PerformanceMonitor:
    """Tracks render FPS, per-stage latency and detection outcome counts."""

    def __init__(self, window_size=100):
        self._window_size = window_size
        self._lock = threading.Lock()

        # Render frame timing
        self._frame_times = deque(maxlen=window_size)
        self._last_frame_time = None

        # Per-stage latency tracking
        self._stage_times = {}
        for name in ("classify", "render"):
            self._stage_times[name] = deque(maxlen=window_size)

        # Counters
        self._frame_count = 0
        self._outcomes = Counter()
        self._start_time = time.time()

    @contextmanager
    def measure(self, stage_name: str):
        """Context manager to measure a stage's duration (usable around awaits)."""
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            with self._lock:
                if stage_name not in self._stage_times:
                    self._stage_times[stage_name] = deque(maxlen=self._window_size)
                self._stage_times[stage_name].append(elapsed_ms)

    def tick(self):
        """Call once per rendered frame to track FPS."""
        now = time.perf_counter()
        with self._lock:
            if self._last_frame_time is not None:
                self._frame_times.append(now - self._last_frame_time)
            self._last_frame_time = now
            self._frame_count += 1

    def record_outcome(self, outcome: str):
        """Count a classification outcome ('success', 'rate_limited', 'skipped', ...)."""
        with self._lock:
            self._outcomes[outcome] += 1

    @property
    def fps(self) -> float:
        """Current render frames per second (rolling average)."""
        with self._lock:
            if len(self._frame_times) < 2:
                return 0.0
            avg_interval = sum(self._frame_times) / len(self._frame_times)
            return 1.0 / avg_interval if avg_interval > 0 else 0.0

    @property
    def classify_latency_ms(self) -> float:
        """Average classifier call latency in ms."""
        return self._get_stage_avg("classify")

    def get_stage_latency(self, stage_name: str) -> float:
        """Get average latency for a specific stage in ms."""
        return self._get_stage_avg(stage_name)

    def _get_stage_avg(self, stage_name: str) -> float:
        with self._lock:
            times = self._stage_times.get(stage_name, [])
            if not times:
                return 0.0
            return sum(times) / len(times)

    def get_all_latencies(self) -> dict:
        """Get average latency for all stages."""
        result = {}
        with self._lock:
            for name, times in self._stage_times.items():
                result[name] = sum(times) / len(times) if times else 0.0
        return result

    def get_outcomes(self) -> dict:
        with self._lock:
            return dict(self._outcomes)

    def get_report(self) -> dict:
        """Generate a performance report."""
        uptime = time.time() - self._start_time
        latencies = self.get_all_latencies()
        return {
            "fps": round(self.fps, 1),
            "rendered_frames": self._frame_count,
            "outcomes": self.get_outcomes(),
            "uptime_seconds": round(uptime, 1),
            "latencies_ms": {k: round(v, 2) for k, v in latencies.items()},
        }

    def print_report(self):
        """Log a formatted performance report."""
        report = self.get_report()
        logger.info("=" * 60)
        logger.info("PERFORMANCE REPORT")
        logger.info("=" * 60)
        logger.info("Render FPS:     %.1f", report["fps"])
        logger.info("Frames:         %d", report["rendered_frames"])
        logger.info("Uptime:         %.1fs", report["uptime_seconds"])
        logger.info("-" * 40)
        logger.info("Stage Latencies (avg ms):")
        for stage, latency in report["latencies_ms"].items():
            logger.info("  %-18s %7.2f ms", stage, latency)
        logger.info("Outcomes:")
        for outcome, count in sorted(report["outcomes"].items()):
            logger.info("  %-18s %7d", outcome, count)
        logger.info("=" * 60)

    def reset(self):
        """Reset all metrics."""
        with self._lock:
            self._frame_times.clear()
            self._last_frame_time = None
            for name in self._stage_times:
                self._stage_times[name].clear()
            self._frame_count = 0
            self._outcomes.clear()
            self._start_time = time.time()
