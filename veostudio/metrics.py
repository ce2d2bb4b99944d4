"""
Thread-safe in-memory metrics for provider traffic.

Tracks per-endpoint request counters, latency samples and the most recent
errors. Data is ephemeral and resets on restart.
"""

import time
import threading
from collections import defaultdict
from typing import Dict, List

MAX_SAMPLES = 100
MAX_ERRORS = 50


class MetricsRegistry:
    """Counters, latency samples and an error log shared by one service."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = defaultdict(int)
        self._latency_samples: Dict[str, List[float]] = defaultdict(list)
        self._gauges: Dict[str, float] = defaultdict(float)
        self._recent_errors: List[dict] = []

    def inc_counter(self, name: str, amount: int = 1):
        """Increment a counter (e.g. 'requests.video_submit', 'errors.rate_limit')."""
        with self._lock:
            self._counters[name] += amount

    def record_latency(self, endpoint: str, duration_ms: float):
        """Record a latency sample in milliseconds."""
        with self._lock:
            samples = self._latency_samples[endpoint]
            samples.append(duration_ms)
            if len(samples) > MAX_SAMPLES:
                self._latency_samples[endpoint] = samples[-MAX_SAMPLES:]

    def set_gauge(self, name: str, value: float):
        with self._lock:
            self._gauges[name] = value

    def record_error(self, endpoint: str, error_type: str, message: str):
        """Record an error for root-cause analysis."""
        with self._lock:
            self._recent_errors.append({
                "timestamp": time.time(),
                "endpoint": endpoint,
                "error_type": error_type,
                "message": message[:300],
            })
            if len(self._recent_errors) > MAX_ERRORS:
                self._recent_errors.pop(0)

    def counter(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def get_snapshot(self) -> dict:
        """Return a complete metrics snapshot for the /metrics endpoint."""
        now = time.time()

        with self._lock:
            latency_stats = {}
            for endpoint, samples in self._latency_samples.items():
                if not samples:
                    continue
                sorted_s = sorted(samples)
                n = len(sorted_s)
                latency_stats[endpoint] = {
                    "p50": sorted_s[n // 2],
                    "p95": sorted_s[int(n * 0.95)] if n >= 20 else sorted_s[-1],
                    "avg": sum(sorted_s) / n,
                    "count": n,
                }

            error_patterns: Dict[str, int] = defaultdict(int)
            for err in self._recent_errors:
                error_patterns[f"{err['endpoint']}:{err['error_type']}"] += 1

            return {
                "timestamp": now,
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
                "latency": latency_stats,
                "recent_errors": list(self._recent_errors[-10:]),
                "error_patterns": dict(error_patterns),
                "uptime_seconds": now - self._gauges.get("start_time", now),
            }
