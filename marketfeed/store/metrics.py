"""Metrics collection for the item store."""

from dataclasses import dataclass, field
from threading import Lock


_metrics_instance: "StoreMetrics | None" = None
_metrics_lock: Lock = Lock()


@dataclass
class StoreMetrics:
    """Thread-safe metrics for item store operations.

    Attributes:
        db_upserts_total: Total number of new markets inserted.
        db_updates_total: Total number of markets whose content changed.
        db_unchanged_total: Total number of unchanged re-ingestions.
        score_writes_total: Total number of score rows written.
        score_write_failures_total: Score writes that did not land.
        db_tx_duration_ms: Cumulative transaction duration in milliseconds.
        db_tx_count: Number of transactions.
    """

    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    db_upserts_total: int = 0
    db_updates_total: int = 0
    db_unchanged_total: int = 0
    score_writes_total: int = 0
    score_write_failures_total: int = 0
    db_tx_duration_ms: float = 0.0
    db_tx_count: int = 0

    @classmethod
    def get_instance(cls) -> "StoreMetrics":
        """Get singleton metrics instance."""
        global _metrics_instance  # noqa: PLW0603
        if _metrics_instance is None:
            with _metrics_lock:
                if _metrics_instance is None:
                    _metrics_instance = cls()
        return _metrics_instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        global _metrics_instance  # noqa: PLW0603
        with _metrics_lock:
            _metrics_instance = None

    def record_upsert(self) -> None:
        """Record a new market insert."""
        with self._lock:
            self.db_upserts_total += 1

    def record_update(self) -> None:
        """Record a market update."""
        with self._lock:
            self.db_updates_total += 1

    def record_unchanged(self) -> None:
        """Record an unchanged market."""
        with self._lock:
            self.db_unchanged_total += 1

    def record_score_writes(self, count: int) -> None:
        """Record score rows written.

        Args:
            count: Number of rows written.
        """
        with self._lock:
            self.score_writes_total += count

    def record_score_write_failures(self, count: int) -> None:
        """Record score rows that could not be written.

        Args:
            count: Number of rows that failed.
        """
        with self._lock:
            self.score_write_failures_total += count

    def record_tx_duration(self, duration_ms: float) -> None:
        """Record transaction duration.

        Args:
            duration_ms: Duration in milliseconds.
        """
        with self._lock:
            self.db_tx_duration_ms += duration_ms
            self.db_tx_count += 1

    @property
    def avg_tx_duration_ms(self) -> float:
        """Average transaction duration in milliseconds."""
        if self.db_tx_count == 0:
            return 0.0
        return self.db_tx_duration_ms / self.db_tx_count

    def to_dict(self) -> dict[str, float | int]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        with self._lock:
            return {
                "db_upserts_total": self.db_upserts_total,
                "db_updates_total": self.db_updates_total,
                "db_unchanged_total": self.db_unchanged_total,
                "score_writes_total": self.score_writes_total,
                "score_write_failures_total": self.score_write_failures_total,
                "db_tx_duration_ms": self.db_tx_duration_ms,
                "db_tx_count": self.db_tx_count,
            }


@dataclass
class TransactionContext:
    """Context for a single transaction with timing.

    Attributes:
        tx_id: Unique transaction identifier.
        start_time_ns: Start time in nanoseconds.
        operation: The operation being performed.
    """

    tx_id: str
    start_time_ns: int
    operation: str
    affected_rows: int = field(default=0)

    def add_affected_rows(self, rows: int) -> None:
        """Add to the affected row count.

        Args:
            rows: Number of rows affected.
        """
        self.affected_rows += rows
