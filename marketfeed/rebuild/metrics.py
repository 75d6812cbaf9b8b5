"""Metrics collection for rebuilds and triggers."""

from dataclasses import dataclass, field
from threading import Lock


_metrics_instance: "RebuildMetrics | None" = None
_metrics_lock: Lock = Lock()


@dataclass
class RebuildMetrics:
    """Thread-safe metrics for rebuild execution and triggering.

    Use get_instance() for singleton access.
    """

    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    rebuilds_started: int = 0
    rebuilds_completed: int = 0
    rebuilds_failed: int = 0
    rebuilds_timed_out: int = 0
    triggers_accepted: int = 0
    triggers_coalesced: int = 0
    triggers_deferred: int = 0
    lease_contended: int = 0
    item_failures_total: int = 0
    persist_failures_total: int = 0
    last_duration_ms: dict[str, float] = field(default_factory=dict)

    @classmethod
    def get_instance(cls) -> "RebuildMetrics":
        """Get the singleton instance (thread-safe).

        Returns:
            The shared RebuildMetrics instance.
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

    def record_started(self) -> None:
        """Record a rebuild start."""
        with self._lock:
            self.rebuilds_started += 1

    def record_completed(
        self,
        segment: str,
        duration_ms: float,
        item_failures: int,
        persist_failures: int,
    ) -> None:
        """Record a completed rebuild.

        Args:
            segment: Segment rebuilt.
            duration_ms: Rebuild duration.
            item_failures: Items that failed to score or persist.
            persist_failures: Items whose scores were not persisted.
        """
        with self._lock:
            self.rebuilds_completed += 1
            self.item_failures_total += item_failures
            self.persist_failures_total += persist_failures
            self.last_duration_ms[segment] = duration_ms

    def record_failed(self) -> None:
        """Record a rebuild that failed."""
        with self._lock:
            self.rebuilds_failed += 1

    def record_timeout(self) -> None:
        """Record a rebuild that exceeded its deadline."""
        with self._lock:
            self.rebuilds_timed_out += 1

    def record_trigger(self, status: str) -> None:
        """Record a trigger request by outcome.

        Args:
            status: TriggerStatus value.
        """
        with self._lock:
            if status == "ACCEPTED":
                self.triggers_accepted += 1
            elif status == "ALREADY_IN_FLIGHT":
                self.triggers_coalesced += 1
            elif status == "DEFERRED":
                self.triggers_deferred += 1

    def record_lease_contended(self) -> None:
        """Record a rebuild skipped because another worker held the lease."""
        with self._lock:
            self.lease_contended += 1

    def to_dict(self) -> dict[str, object]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        with self._lock:
            return {
                "rebuilds_started": self.rebuilds_started,
                "rebuilds_completed": self.rebuilds_completed,
                "rebuilds_failed": self.rebuilds_failed,
                "rebuilds_timed_out": self.rebuilds_timed_out,
                "triggers_accepted": self.triggers_accepted,
                "triggers_coalesced": self.triggers_coalesced,
                "triggers_deferred": self.triggers_deferred,
                "lease_contended": self.lease_contended,
                "item_failures_total": self.item_failures_total,
                "persist_failures_total": self.persist_failures_total,
                "last_duration_ms": dict(self.last_duration_ms),
            }
