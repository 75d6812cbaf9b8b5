"""Metrics collection for feed reads."""

from collections import Counter
from dataclasses import dataclass, field
from threading import Lock


_metrics_instance: "FeedMetrics | None" = None
_metrics_lock: Lock = Lock()


@dataclass
class FeedMetrics:
    """Thread-safe metrics for page requests.

    The cache hit rate is the share of served pages that came from a
    RankedSet rather than the unranked item store query.
    """

    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    requests_total: int = 0
    served_by_source: Counter[str] = field(default_factory=Counter)
    tier_failures: Counter[str] = field(default_factory=Counter)
    stale_cursors_total: int = 0
    invalid_requests_total: int = 0
    unavailable_total: int = 0

    @classmethod
    def get_instance(cls) -> "FeedMetrics":
        """Get the singleton instance (thread-safe).

        Returns:
            The shared FeedMetrics instance.
        """
        global _metrics_instance  # noqa: PLW0603
        if _metrics_instance is None:
            with _metrics_lock:
                if _metrics_instance is None:
                    _metrics_instance = cls()
        return _metrics_instance

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton instance (for testing)."""
        global _metrics_instance  # noqa: PLW0603
        with _metrics_lock:
            _metrics_instance = None

    def record_request(self) -> None:
        """Record an incoming page request."""
        with self._lock:
            self.requests_total += 1

    def record_served(self, source: str) -> None:
        """Record a page served by a tier.

        Args:
            source: Tier that served the page.
        """
        with self._lock:
            self.served_by_source[source] += 1

    def record_tier_failure(self, tier: str) -> None:
        """Record a tier that failed and was skipped.

        Args:
            tier: Tier that failed.
        """
        with self._lock:
            self.tier_failures[tier] += 1

    def record_stale_cursor(self) -> None:
        """Record a rejected stale cursor."""
        with self._lock:
            self.stale_cursors_total += 1

    def record_invalid_request(self) -> None:
        """Record a rejected page request (bad limit or cursor)."""
        with self._lock:
            self.invalid_requests_total += 1

    def record_unavailable(self) -> None:
        """Record a request for which every tier failed."""
        with self._lock:
            self.unavailable_total += 1

    @property
    def hit_rate(self) -> float:
        """Share of served pages that came from a RankedSet."""
        with self._lock:
            served = sum(self.served_by_source.values())
            if served == 0:
                return 0.0
            ranked = self.served_by_source["diversity"] + self.served_by_source["top"]
            return ranked / served

    def to_dict(self) -> dict[str, object]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        hit_rate = self.hit_rate
        with self._lock:
            return {
                "requests_total": self.requests_total,
                "served_by_source": dict(self.served_by_source),
                "tier_failures": dict(self.tier_failures),
                "stale_cursors_total": self.stale_cursors_total,
                "invalid_requests_total": self.invalid_requests_total,
                "unavailable_total": self.unavailable_total,
                "hit_rate": hit_rate,
            }
