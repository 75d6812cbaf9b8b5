"""Coalescing rebuild trigger with a per-segment lease."""

import math
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from typing import Any

import structlog

from marketfeed.cache.base import SortedSetStore
from marketfeed.cache.keys import rebuild_lease_key
from marketfeed.config.holder import ConfigHolder
from marketfeed.errors import (
    RebuildAbortedError,
    RebuildTimeoutError,
    TransientStoreError,
)
from marketfeed.rebuild.metrics import RebuildMetrics
from marketfeed.rebuild.models import (
    OutcomeStatus,
    RebuildOutcome,
    RebuildResult,
    TriggerResult,
    TriggerStatus,
)
from marketfeed.rebuild.pipeline import RebuildPipeline, new_rebuild_id


logger = structlog.get_logger()


def _utc_now() -> datetime:
    return datetime.now(UTC)


class RebuildTrigger:
    """Schedules rebuilds so that at most one runs per segment.

    Triggers that arrive while a segment is rebuilding are coalesced into a
    single rerun once the current rebuild ends. A non-forced trigger that
    arrives within `min_interval_seconds` of the last completion queues one
    deferred rebuild for when the interval has elapsed; later triggers fold
    into it, and a forced trigger starts it at once.

    Across processes, a lease in the fast store guards the segment; it
    expires on its own if a worker dies mid-rebuild.
    """

    def __init__(  # noqa: PLR0913
        self,
        pipeline: RebuildPipeline,
        fast_store: SortedSetStore,
        config_holder: ConfigHolder,
        monotonic: Callable[[], float] = time.monotonic,
        clock: Callable[[], datetime] = _utc_now,
        max_workers: int | None = None,
        poll_seconds: float = 0.05,
    ) -> None:
        """Initialize the trigger.

        Args:
            pipeline: Pipeline that performs rebuilds.
            fast_store: Store holding the rebuild leases.
            config_holder: Source of timeout and interval settings.
            monotonic: Monotonic clock for deadlines and the minimum interval.
            clock: Wall clock for outcome timestamps.
            max_workers: Worker threads (default: configured max_workers).
            poll_seconds: Longest sleep between checks of a deferred rebuild.
        """
        self._pipeline = pipeline
        self._fast_store = fast_store
        self._config_holder = config_holder
        self._monotonic = monotonic
        self._poll_seconds = poll_seconds
        self._clock = clock
        self._metrics = RebuildMetrics.get_instance()
        self._log = logger.bind(component="rebuild", subcomponent="trigger")

        workers = max_workers or config_holder.get().rebuild.max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="rebuild"
        )
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._running: set[str] = set()
        self._pending: set[str] = set()
        self._deferred: set[str] = set()
        self._forced: set[str] = set()
        self._closing = threading.Event()
        self._last_completed: dict[str, float] = {}
        self._outcomes: dict[str, RebuildOutcome] = {}

    def trigger_rebuild(self, segment: str, force: bool = False) -> TriggerResult:
        """Request a rebuild of a segment.

        Args:
            segment: Segment to rebuild.
            force: Skip the minimum interval after the last completion.

        Returns:
            TriggerResult describing what happened. Never raises for a
            rebuild that is already running or queued.
        """
        min_interval = self._config_holder.get().rebuild.min_interval_seconds
        rebuild_id: str | None = None

        with self._lock:
            last = self._last_completed.get(segment)
            if segment in self._deferred:
                if force:
                    self._forced.add(segment)
                    status = TriggerStatus.ALREADY_IN_FLIGHT
                else:
                    status = TriggerStatus.DEFERRED
            elif segment in self._running:
                self._pending.add(segment)
                status = TriggerStatus.ALREADY_IN_FLIGHT
            elif (
                not force
                and last is not None
                and self._monotonic() - last < min_interval
            ):
                rebuild_id = new_rebuild_id()
                self._running.add(segment)
                self._deferred.add(segment)
                self._executor.submit(self._run_deferred, segment, rebuild_id)
                status = TriggerStatus.DEFERRED
            else:
                rebuild_id = new_rebuild_id()
                self._running.add(segment)
                self._executor.submit(self._run_loop, segment, rebuild_id)
                status = TriggerStatus.ACCEPTED

        self._metrics.record_trigger(status.value)
        self._log.info(
            "rebuild_triggered",
            segment=segment,
            status=status.value,
            force=force,
            rebuild_id=rebuild_id,
        )
        return TriggerResult(segment=segment, status=status, rebuild_id=rebuild_id)

    def _run_deferred(self, segment: str, rebuild_id: str) -> None:
        """Wait out the minimum interval, then run the queued rebuild."""
        while not self._closing.is_set():
            min_interval = self._config_holder.get().rebuild.min_interval_seconds
            with self._lock:
                if segment in self._forced:
                    break
                elapsed = self._monotonic() - self._last_completed[segment]
            remaining = min_interval - elapsed
            if remaining <= 0:
                break
            self._closing.wait(min(remaining, self._poll_seconds))

        with self._lock:
            self._deferred.discard(segment)
            self._forced.discard(segment)
            if self._closing.is_set():
                self._running.discard(segment)
                self._idle.notify_all()
                self._log.info(
                    "deferred_rebuild_cancelled",
                    segment=segment,
                    rebuild_id=rebuild_id,
                )
                return

        self._log.info(
            "deferred_rebuild_starting", segment=segment, rebuild_id=rebuild_id
        )
        self._run_loop(segment, rebuild_id)

    def _run_loop(self, segment: str, rebuild_id: str) -> None:
        """Run a rebuild, then one coalesced rerun per pending trigger."""
        while True:
            self._run_once(segment, rebuild_id)
            with self._lock:
                self._last_completed[segment] = self._monotonic()
                if segment in self._pending:
                    self._pending.discard(segment)
                    rebuild_id = new_rebuild_id()
                    self._log.info(
                        "coalesced_rebuild_starting",
                        segment=segment,
                        rebuild_id=rebuild_id,
                    )
                    continue
                self._running.discard(segment)
                self._idle.notify_all()
                return

    def _run_once(self, segment: str, rebuild_id: str) -> None:
        config = self._config_holder.get()
        lease_key = rebuild_lease_key(config.cache.key_prefix, segment)
        lease_ttl = math.ceil(
            config.rebuild.timeout_seconds + config.rebuild.lease_margin_seconds
        )
        log = self._log.bind(segment=segment, rebuild_id=rebuild_id)

        try:
            acquired = self._fast_store.acquire_lease(lease_key, rebuild_id, lease_ttl)
        except TransientStoreError as e:
            self._metrics.record_failed()
            log.warning("rebuild_lease_unavailable", error=str(e))
            self._record(segment, rebuild_id, OutcomeStatus.FAILED, error=str(e))
            return

        if not acquired:
            self._metrics.record_lease_contended()
            log.info("rebuild_lease_held_elsewhere")
            self._record(segment, rebuild_id, OutcomeStatus.LEASE_HELD)
            return

        deadline = self._monotonic() + config.rebuild.timeout_seconds
        try:
            result = self._pipeline.run(segment, rebuild_id, deadline)
            self._record(segment, rebuild_id, OutcomeStatus.COMPLETED, result=result)
        except RebuildTimeoutError as e:
            log.warning("rebuild_timed_out", phase=e.phase)
            self._record(segment, rebuild_id, OutcomeStatus.TIMED_OUT, error=str(e))
        except (RebuildAbortedError, TransientStoreError) as e:
            self._metrics.record_failed()
            log.error("rebuild_aborted", error=str(e))
            self._record(segment, rebuild_id, OutcomeStatus.FAILED, error=str(e))
        except Exception as e:  # noqa: BLE001
            self._metrics.record_failed()
            log.exception("rebuild_failed", error=str(e))
            self._record(segment, rebuild_id, OutcomeStatus.FAILED, error=str(e))
        finally:
            self._release(lease_key, rebuild_id, log)

    def _release(self, lease_key: str, rebuild_id: str, log: Any) -> None:
        try:
            self._fast_store.release_lease(lease_key, rebuild_id)
        except TransientStoreError as e:
            # The lease TTL reclaims it.
            log.warning("rebuild_lease_release_failed", error=str(e))

    def _record(
        self,
        segment: str,
        rebuild_id: str,
        status: OutcomeStatus,
        result: RebuildResult | None = None,
        error: str | None = None,
    ) -> None:
        outcome = RebuildOutcome(
            segment=segment,
            rebuild_id=rebuild_id,
            status=status,
            finished_at=self._clock(),
            result=result,
            error=error,
        )
        with self._lock:
            self._outcomes[segment] = outcome

    def last_outcome(self, segment: str) -> RebuildOutcome | None:
        """Get the outcome of the most recent rebuild of a segment."""
        with self._lock:
            return self._outcomes.get(segment)

    def is_running(self, segment: str) -> bool:
        """Check whether a rebuild of the segment is in flight."""
        with self._lock:
            return segment in self._running

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no rebuild is running or queued.

        Args:
            timeout: Maximum seconds to wait (None waits forever).

        Returns:
            True if idle, False if the timeout elapsed first.
        """
        with self._idle:
            return self._idle.wait_for(lambda: not self._running, timeout)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work and optionally wait for running rebuilds.

        Deferred rebuilds that have not started yet are cancelled.
        """
        self._closing.set()
        self._executor.shutdown(wait=wait)
        self._log.info("rebuild_trigger_shutdown")
