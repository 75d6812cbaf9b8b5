"""Interval scheduler that periodically triggers segment rebuilds."""

import threading

import schedule
import structlog

from marketfeed.rebuild.trigger import RebuildTrigger


logger = structlog.get_logger()


class RebuildScheduler:
    """Triggers a rebuild of every segment on a fixed interval.

    Ingestion triggers rebuilds when data changes; the interval keeps
    RankedSets fresh even when nothing is ingested (time-decay terms move
    on their own) and re-creates sets that expired.
    """

    def __init__(
        self,
        trigger: RebuildTrigger,
        segments: list[str],
        interval_seconds: int,
        scheduler: schedule.Scheduler | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            trigger: Trigger used to request rebuilds.
            segments: Segments to keep fresh.
            interval_seconds: Seconds between rebuild requests per segment.
            scheduler: schedule.Scheduler to register on (default: a new one).
        """
        self._trigger = trigger
        self._segments = list(segments)
        self._interval_seconds = interval_seconds
        self._scheduler = scheduler or schedule.Scheduler()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._log = logger.bind(component="rebuild", subcomponent="scheduler")

    @property
    def jobs(self) -> list[schedule.Job]:
        """Jobs registered on the underlying scheduler."""
        return list(self._scheduler.jobs)

    def register(self) -> None:
        """Register one interval job per segment (idempotent)."""
        self._scheduler.clear("rebuild")
        for segment in self._segments:
            self._scheduler.every(self._interval_seconds).seconds.do(
                self._tick, segment
            ).tag("rebuild", segment)
        self._log.info(
            "rebuild_jobs_registered",
            segments=self._segments,
            interval_seconds=self._interval_seconds,
        )

    def _tick(self, segment: str) -> None:
        result = self._trigger.trigger_rebuild(segment)
        self._log.debug(
            "scheduled_rebuild_requested", segment=segment, status=result.status.value
        )

    def run_pending(self) -> None:
        """Run every job that is due."""
        self._scheduler.run_pending()

    def trigger_all(self) -> None:
        """Request a rebuild of every segment immediately."""
        for segment in self._segments:
            self._tick(segment)

    def run_forever(self, poll_seconds: float = 1.0) -> None:
        """Run due jobs until stop() is called.

        Args:
            poll_seconds: Sleep between checks for due jobs.
        """
        self.register()
        self.trigger_all()
        self._log.info("rebuild_scheduler_started")
        while not self._stop.is_set():
            self.run_pending()
            self._stop.wait(poll_seconds)
        self._log.info("rebuild_scheduler_stopped")

    def start(self, poll_seconds: float = 1.0) -> None:
        """Run the scheduler loop on a daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self.run_forever,
            args=(poll_seconds,),
            name="rebuild-scheduler",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Stop the scheduler loop and wait for its thread."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
