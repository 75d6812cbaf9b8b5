"""Ingestion runner with parallel connectors and failure isolation."""

import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from marketfeed.config.holder import ConfigHolder
from marketfeed.ingestion.connectors import MarketConnector
from marketfeed.rebuild.models import TriggerResult
from marketfeed.rebuild.trigger import RebuildTrigger
from marketfeed.store.models import ItemEventType
from marketfeed.store.store import ItemStore


logger = structlog.get_logger()


@dataclass
class ConnectorRunResult:
    """Result of ingesting one connector."""

    connector: str
    items_emitted: int = 0
    items_new: int = 0
    items_updated: int = 0
    items_unchanged: int = 0
    items_failed: int = 0
    duration_ms: float = 0.0
    error: str | None = None

    @property
    def success(self) -> bool:
        """Check if the connector fetched successfully."""
        return self.error is None


@dataclass
class IngestionResult:
    """Result of one ingestion cycle."""

    run_id: str
    started_at: datetime
    finished_at: datetime
    connector_results: dict[str, ConnectorRunResult]
    total_new: int = 0
    total_updated: int = 0
    total_unchanged: int = 0
    connectors_failed: int = 0
    triggers: list[TriggerResult] = field(default_factory=list)

    @property
    def changed(self) -> int:
        """Items that were new or updated."""
        return self.total_new + self.total_updated

    @property
    def duration_ms(self) -> float:
        """Get total duration in milliseconds."""
        return (self.finished_at - self.started_at).total_seconds() * 1000


class IngestionRunner:
    """Pulls every connector into the item store and triggers rebuilds.

    One connector failing never stops the others. Rebuilds of every
    configured segment are requested when anything was new or updated.
    """

    def __init__(
        self,
        item_store: ItemStore,
        connectors: list[MarketConnector],
        trigger: RebuildTrigger,
        config_holder: ConfigHolder,
        max_workers: int = 4,
    ) -> None:
        """Initialize the runner.

        Args:
            item_store: Store to upsert into.
            connectors: Market connectors to pull from.
            trigger: Rebuild trigger to signal after changes.
            config_holder: Source of the configured segments.
            max_workers: Maximum parallel connectors.
        """
        self._item_store = item_store
        self._connectors = list(connectors)
        self._trigger = trigger
        self._config_holder = config_holder
        self._max_workers = max_workers

    def run(self, force: bool = False, now: datetime | None = None) -> IngestionResult:
        """Run one ingestion cycle.

        Args:
            force: Trigger rebuilds even when nothing changed.
            now: Timestamp recorded on upserts (default: current UTC time).

        Returns:
            IngestionResult with per-connector counts and trigger results.
        """
        run_id = uuid.uuid4().hex[:12]
        log = logger.bind(component="ingestion", run_id=run_id)
        started_at = datetime.now(UTC)
        log.info("ingestion_started", connector_count=len(self._connectors))

        results: dict[str, ConnectorRunResult] = {}
        if self._max_workers <= 1:
            for connector in self._connectors:
                results[connector.name] = self._run_connector(connector, now, log)
        else:
            with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
                futures = {
                    executor.submit(self._run_connector, c, now, log): c
                    for c in self._connectors
                }
                for future in as_completed(futures):
                    connector = futures[future]
                    try:
                        results[connector.name] = future.result()
                    except Exception as e:  # noqa: BLE001
                        log.error(
                            "connector_execution_error",
                            connector=connector.name,
                            error=str(e),
                        )
                        results[connector.name] = ConnectorRunResult(
                            connector=connector.name, error=f"Execution error: {e}"
                        )

        result = IngestionResult(
            run_id=run_id,
            started_at=started_at,
            finished_at=datetime.now(UTC),
            connector_results=results,
            total_new=sum(r.items_new for r in results.values()),
            total_updated=sum(r.items_updated for r in results.values()),
            total_unchanged=sum(r.items_unchanged for r in results.values()),
            connectors_failed=sum(1 for r in results.values() if not r.success),
        )

        if result.changed > 0 or force:
            segments = self._config_holder.get().segments
            result.triggers = [
                self._trigger.trigger_rebuild(segment, force=force)
                for segment in segments
            ]

        log.info(
            "ingestion_complete",
            duration_ms=round(result.duration_ms, 2),
            total_new=result.total_new,
            total_updated=result.total_updated,
            total_unchanged=result.total_unchanged,
            connectors_failed=result.connectors_failed,
            rebuilds_requested=len(result.triggers),
        )
        return result

    def _run_connector(
        self,
        connector: MarketConnector,
        now: datetime | None,
        log: structlog.stdlib.BoundLogger,
    ) -> ConnectorRunResult:
        start_ns = time.perf_counter_ns()
        clog = log.bind(connector=connector.name)
        result = ConnectorRunResult(connector=connector.name)

        try:
            markets = connector.fetch()
        except Exception as e:  # noqa: BLE001
            result.error = str(e)
            result.duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
            clog.warning("connector_failed", error=str(e))
            return result

        result.items_emitted = len(markets)
        for market in markets:
            try:
                upsert = self._item_store.upsert_market(market, now)
            except Exception as e:  # noqa: BLE001
                result.items_failed += 1
                clog.warning(
                    "market_upsert_failed", item_id=market.item_id, error=str(e)
                )
                continue

            if upsert.event_type == ItemEventType.NEW:
                result.items_new += 1
            elif upsert.event_type == ItemEventType.UPDATED:
                result.items_updated += 1
            else:
                result.items_unchanged += 1

        result.duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
        clog.info(
            "connector_complete",
            items_emitted=result.items_emitted,
            items_new=result.items_new,
            items_updated=result.items_updated,
            items_unchanged=result.items_unchanged,
            items_failed=result.items_failed,
            duration_ms=round(result.duration_ms, 2),
        )
        return result
