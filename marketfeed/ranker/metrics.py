"""Metrics collection for the ranker module."""

from dataclasses import dataclass, field
from threading import Lock


_metrics_instance: "RankerMetrics | None" = None
_metrics_lock: Lock = Lock()

# Keep percentile input bounded across many rebuilds.
_MAX_SCORE_SAMPLES = 10_000


@dataclass
class RankerMetrics:
    """Thread-safe metrics for scoring and RankedSet publishing.

    Attributes:
        items_in: Items considered by the last top-K build.
        items_out: Members of the last published top-K set.
        score_values: Recent confidences for percentile calculation.
        scoring_duration_ms: Time spent scoring in the last rebuild.
        topk_duration_ms: Time spent selecting and publishing top-K.
        diversity_duration_ms: Time spent in the last diversity pass.
        diversity_score: sampled / considered of the last diversity pass.
        topk_publishes_total: Top-K generations published.
        diversity_publishes_total: Diversity generations published.
    """

    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    items_in: int = 0
    items_out: int = 0
    score_values: list[float] = field(default_factory=list)
    scoring_duration_ms: float = 0.0
    topk_duration_ms: float = 0.0
    diversity_duration_ms: float = 0.0
    diversity_score: float = 0.0
    topk_publishes_total: int = 0
    diversity_publishes_total: int = 0

    @classmethod
    def get_instance(cls) -> "RankerMetrics":
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

    def record_scores(self, scores: list[float], duration_ms: float) -> None:
        """Record the confidences of one scoring pass.

        Args:
            scores: Confidence values.
            duration_ms: Time spent scoring.
        """
        with self._lock:
            self.score_values.extend(scores)
            if len(self.score_values) > _MAX_SCORE_SAMPLES:
                del self.score_values[: len(self.score_values) - _MAX_SCORE_SAMPLES]
            self.scoring_duration_ms = duration_ms

    def record_topk_published(
        self, items_in: int, items_out: int, duration_ms: float
    ) -> None:
        """Record a top-K publish.

        Args:
            items_in: Items considered.
            items_out: Members published.
            duration_ms: Time spent selecting and publishing.
        """
        with self._lock:
            self.items_in = items_in
            self.items_out = items_out
            self.topk_duration_ms = duration_ms
            self.topk_publishes_total += 1

    def record_diversity(self, diversity_score: float, duration_ms: float) -> None:
        """Record a diversity pass.

        Args:
            diversity_score: sampled / considered.
            duration_ms: Time spent sampling and publishing.
        """
        with self._lock:
            self.diversity_score = diversity_score
            self.diversity_duration_ms = duration_ms
            self.diversity_publishes_total += 1

    def get_score_percentiles(self) -> dict[str, float]:
        """Calculate score percentiles (p50/p90/p99).

        Returns:
            Dictionary with p50, p90, p99 values.
        """
        with self._lock:
            sorted_scores = sorted(self.score_values)

        if not sorted_scores:
            return {"p50": 0.0, "p90": 0.0, "p99": 0.0}

        n = len(sorted_scores)

        def percentile(p: float) -> float:
            idx = int(p * n / 100)
            return sorted_scores[min(idx, n - 1)]

        return {
            "p50": percentile(50),
            "p90": percentile(90),
            "p99": percentile(99),
        }

    def to_dict(self) -> dict[str, object]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        percentiles = self.get_score_percentiles()
        with self._lock:
            return {
                "items_in": self.items_in,
                "items_out": self.items_out,
                "scoring_duration_ms": self.scoring_duration_ms,
                "topk_duration_ms": self.topk_duration_ms,
                "diversity_duration_ms": self.diversity_duration_ms,
                "diversity_score": self.diversity_score,
                "topk_publishes_total": self.topk_publishes_total,
                "diversity_publishes_total": self.diversity_publishes_total,
                "score_percentiles": percentiles,
            }
