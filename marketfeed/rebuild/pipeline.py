"""Rebuild pipeline: list, score, persist, publish."""

import time
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TypeVar

import structlog

from marketfeed.config.holder import ConfigHolder
from marketfeed.config.schemas.ranking import RankingConfig, RetryPolicy
from marketfeed.errors import (
    RebuildAbortedError,
    RebuildTimeoutError,
    TransientStoreError,
)
from marketfeed.observability import bind_segment_context, clear_segment_context
from marketfeed.ranker.diversity import DiversitySampler
from marketfeed.ranker.metrics import RankerMetrics
from marketfeed.ranker.models import DiversityResult, RankedSetMeta, ScoredItem
from marketfeed.ranker.ranked_set import RankedSetRepository
from marketfeed.ranker.scorer import MarketScorer
from marketfeed.ranker.topk import TopKCacheBuilder
from marketfeed.rebuild.metrics import RebuildMetrics
from marketfeed.rebuild.models import ItemFailure, RebuildResult
from marketfeed.rebuild.state_machine import RebuildState, RebuildStateMachine
from marketfeed.store.errors import ItemNotFoundError
from marketfeed.store.metrics import StoreMetrics
from marketfeed.store.models import MarketItem
from marketfeed.store.store import ItemStore


logger = structlog.get_logger()

T = TypeVar("T")


def _utc_now() -> datetime:
    return datetime.now(UTC)


def new_rebuild_id() -> str:
    """Generate a short rebuild identifier."""
    return uuid.uuid4().hex[:12]


class RebuildPipeline:
    """Re-scores a segment and republishes its RankedSets.

    Each run takes one configuration snapshot, so admin updates apply from
    the next rebuild on. The deadline is checked between phases and between
    persistence batches; nothing is published once it has passed.
    """

    def __init__(  # noqa: PLR0913
        self,
        item_store: ItemStore,
        repository: RankedSetRepository,
        config_holder: ConfigHolder,
        clock: Callable[[], datetime] = _utc_now,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the pipeline.

        Args:
            item_store: Item store to list from and persist to.
            repository: RankedSet repository to publish through.
            config_holder: Source of the configuration snapshot.
            clock: Wall clock used as the scoring reference time.
            monotonic: Monotonic clock used for deadlines.
            sleep: Sleep function used between retries.
        """
        self._item_store = item_store
        self._repository = repository
        self._config_holder = config_holder
        self._clock = clock
        self._monotonic = monotonic
        self._sleep = sleep
        self._metrics = RebuildMetrics.get_instance()
        self._ranker_metrics = RankerMetrics.get_instance()

    def run(
        self,
        segment: str,
        rebuild_id: str | None = None,
        deadline: float | None = None,
    ) -> RebuildResult:
        """Run one rebuild for a segment.

        Args:
            segment: Segment to rebuild.
            rebuild_id: Identifier for logging (generated when omitted).
            deadline: Monotonic deadline (default: now + configured timeout).

        Returns:
            RebuildResult of the completed rebuild.

        Raises:
            RebuildTimeoutError: If the deadline passed before publishing.
            RebuildAbortedError: If a store stayed unavailable after retries.
        """
        config = self._config_holder.get()
        rebuild_id = rebuild_id or new_rebuild_id()
        if deadline is None:
            deadline = self._monotonic() + config.rebuild.timeout_seconds

        bind_segment_context(segment, rebuild_id)
        log = logger.bind(component="rebuild", segment=segment, rebuild_id=rebuild_id)
        state_machine = RebuildStateMachine(rebuild_id, segment)
        started_at = self._clock()
        self._metrics.record_started()
        log.info("rebuild_started", strategy=config.strategy.value)

        try:
            result = self._execute(
                segment, rebuild_id, config, deadline, state_machine, started_at
            )
        except Exception:
            if not state_machine.is_terminal():
                state_machine.transition(RebuildState.FAILED)
            raise
        finally:
            clear_segment_context()

        self._metrics.record_completed(
            segment,
            result.duration_ms,
            len(result.failures),
            result.persist_failures,
        )
        log.info(
            "rebuild_completed",
            items_considered=result.items_considered,
            items_scored=result.items_scored,
            items_persisted=result.items_persisted,
            top_size=result.top.size if result.top else 0,
            diversity_size=result.diversity.sampled if result.diversity else 0,
            score_failures=result.score_failures,
            persist_failures=result.persist_failures,
            duration_ms=round(result.duration_ms, 2),
        )
        return result

    def _execute(  # noqa: PLR0913
        self,
        segment: str,
        rebuild_id: str,
        config: RankingConfig,
        deadline: float,
        state_machine: RebuildStateMachine,
        started_at: datetime,
    ) -> RebuildResult:
        policy = config.rebuild.retry
        now = self._clock()

        items = self._retrying(
            segment,
            "list_eligible",
            lambda: self._item_store.list_eligible(segment, now),
            policy,
            deadline,
        )

        failures: list[ItemFailure] = []
        scored = self._score(items, config, now, failures)
        state_machine.transition(RebuildState.SCORED)
        self._check_deadline(segment, config, deadline, "score")

        persisted = self._persist(segment, scored, config, deadline, failures)
        state_machine.transition(RebuildState.PERSISTED)
        self._check_deadline(segment, config, deadline, "persist")

        builder = TopKCacheBuilder(self._repository, config.cache)
        top_meta = self._retrying(
            segment,
            "publish_topk",
            lambda: builder.build(segment, scored),
            policy,
            deadline,
        )
        state_machine.transition(RebuildState.TOPK_PUBLISHED)
        self._check_deadline(segment, config, deadline, "diversity")

        diversity = self._sample_diversity(segment, config, top_meta)
        state_machine.transition(RebuildState.COMPLETED)

        return RebuildResult(
            rebuild_id=rebuild_id,
            segment=segment,
            state=state_machine.state,
            started_at=started_at,
            finished_at=self._clock(),
            items_considered=len(items),
            items_scored=len(scored),
            items_persisted=persisted,
            top=top_meta,
            diversity=diversity,
            failures=failures,
        )

    def _score(
        self,
        items: list[MarketItem],
        config: RankingConfig,
        now: datetime,
        failures: list[ItemFailure],
    ) -> list[ScoredItem]:
        """Score items, isolating per-item failures."""
        start = time.perf_counter()
        scorer = MarketScorer(config.strategy, config.weights, now)
        scored: list[ScoredItem] = []
        for item in items:
            try:
                scored.append(ScoredItem(item=item, score=scorer.score(item)))
            except Exception as e:  # noqa: BLE001
                failures.append(ItemFailure(item.item_id, "score", str(e)))
                logger.warning("item_score_failed", item_id=item.item_id, error=str(e))

        duration_ms = (time.perf_counter() - start) * 1000
        self._ranker_metrics.record_scores([s.confidence for s in scored], duration_ms)
        return scored

    def _persist(
        self,
        segment: str,
        scored: list[ScoredItem],
        config: RankingConfig,
        deadline: float,
        failures: list[ItemFailure],
    ) -> int:
        """Write scores back in batches; fall back to per-item writes.

        Persistence failures are recorded and never abort the rebuild: the
        RankedSets are built from the in-memory scores.
        """
        batch_size = config.rebuild.persist_batch_size
        written = 0

        for offset in range(0, len(scored), batch_size):
            self._check_deadline(segment, config, deadline, "persist")
            batch = [
                (s.item_id, s.score.confidence, s.score.trend_score)
                for s in scored[offset : offset + batch_size]
            ]

            def write_batch(b: list[tuple[str, float, float]] = batch) -> int:
                return self._item_store.write_scores(b)

            try:
                written += self._retrying(
                    segment, "write_scores", write_batch, config.rebuild.retry, deadline
                )
                continue
            except RebuildAbortedError:
                logger.warning(
                    "persist_batch_failed",
                    segment=segment,
                    batch_offset=offset,
                    batch_size=len(batch),
                )

            for item_id, confidence, trend_score in batch:
                try:
                    self._item_store.write_score(item_id, confidence, trend_score)
                    written += 1
                except (TransientStoreError, ItemNotFoundError) as e:
                    failures.append(ItemFailure(item_id, "persist", str(e)))
                    StoreMetrics.get_instance().record_score_write_failures(1)

        return written

    def _sample_diversity(
        self, segment: str, config: RankingConfig, top_meta: RankedSetMeta
    ) -> DiversityResult | None:
        """Run the diversity pass; its failure leaves top-K serving."""
        sampler = DiversitySampler(self._repository, self._item_store, config.cache)
        try:
            return sampler.sample(segment, top_meta)
        except TransientStoreError as e:
            logger.warning("diversity_sampling_failed", segment=segment, error=str(e))
            return None

    def _check_deadline(
        self, segment: str, config: RankingConfig, deadline: float, phase: str
    ) -> None:
        if self._monotonic() >= deadline:
            self._metrics.record_timeout()
            logger.error(
                "rebuild_timeout",
                segment=segment,
                phase=phase,
                timeout_seconds=config.rebuild.timeout_seconds,
            )
            raise RebuildTimeoutError(segment, config.rebuild.timeout_seconds, phase)

    def _retrying(
        self,
        segment: str,
        operation: str,
        fn: Callable[[], T],
        policy: RetryPolicy,
        deadline: float,
    ) -> T:
        """Call fn, retrying transient store errors with backoff.

        Raises:
            RebuildAbortedError: When retries are exhausted or the next
                backoff would cross the deadline.
        """
        attempt = 0
        while True:
            try:
                return fn()
            except TransientStoreError as e:
                if not policy.should_retry(attempt):
                    raise RebuildAbortedError(
                        segment, f"{operation} failed after {attempt + 1} attempts: {e}"
                    ) from e
                delay = policy.get_delay_ms(attempt) / 1000
                if self._monotonic() + delay >= deadline:
                    raise RebuildAbortedError(
                        segment, f"{operation} failed and no time left to retry: {e}"
                    ) from e
                logger.warning(
                    "transient_store_error_retrying",
                    segment=segment,
                    operation=operation,
                    attempt=attempt + 1,
                    delay_ms=int(delay * 1000),
                    error=str(e),
                )
                self._sleep(delay)
                attempt += 1
