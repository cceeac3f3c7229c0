"""
Sync Statistics
===============

Tracks request delays and sync outcomes over a sliding window.
"""

from collections import deque


class SyncStats:
    """Sliding-window request delay and outcome counters.

    Args:
        window: Number of recent request delays to keep for averaging.
    """

    def __init__(self, window: int = 50):
        self._delays: deque[float] = deque(maxlen=window)
        self.accepted: int = 0
        self.rejected: int = 0
        self.failures: int = 0
        self.cache_hits: int = 0
        self.anomalies: int = 0

    def record_delay(self, delay_ms: float):
        """Record the round-trip delay of one successful request."""
        if delay_ms >= 0:
            self._delays.append(delay_ms)

    @property
    def avg_delay_ms(self) -> float:
        return sum(self._delays) / len(self._delays) if self._delays else 0.0

    @property
    def max_delay_ms(self) -> float:
        return max(self._delays, default=0.0)

    def as_dict(self) -> dict:
        return {
            "accepted": self.accepted,
            "rejected": self.rejected,
            "failures": self.failures,
            "cacheHits": self.cache_hits,
            "anomalies": self.anomalies,
            "avgDelayMs": round(self.avg_delay_ms, 1),
        }

    def __str__(self) -> str:
        return (
            f"ok={self.accepted} rejected={self.rejected} failed={self.failures} "
            f"cache={self.cache_hits} anomalies={self.anomalies} "
            f"delay={self.avg_delay_ms:.1f}ms (max {self.max_delay_ms:.0f}ms)"
        )
