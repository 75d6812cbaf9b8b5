"""SQLite item store implementation."""

import json
import sqlite3
import threading
import time
import uuid
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from marketfeed.store.errors import (
    ItemNotFoundError,
    ItemStoreUnavailableError,
    StoreConnectionError,
)
from marketfeed.store.metrics import StoreMetrics, TransactionContext
from marketfeed.store.migrations import CURRENT_VERSION, MigrationManager
from marketfeed.store.models import (
    DEFAULT_CATEGORY,
    DEFAULT_SEGMENT,
    ItemEventType,
    ItemStoreStats,
    MarketItem,
    MarketSource,
    UpsertResult,
    make_item_id,
)


if TYPE_CHECKING:
    from marketfeed.ingestion.models import NormalizedMarket

logger = structlog.get_logger()

# SQLite caps host parameters per statement; id lookups are chunked below it.
_MAX_IN_PARAMS = 500

_SEGMENT_FILTER = (
    "EXISTS (SELECT 1 FROM json_each(markets.tags_json) WHERE json_each.value = ?)"
)


def to_db_timestamp(value: datetime) -> str:
    """Format a timestamp as fixed-width UTC text.

    Fixed width keeps lexicographic order equal to chronological order, so
    range predicates on timestamp columns can compare strings directly.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _from_db_timestamp(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


class ItemStore:
    """SQLite store for market items and their derived scores.

    Uses WAL mode and schema migrations. A single connection is shared
    between the ingestion, rebuild and read paths, so every statement runs
    under a re-entrant lock. Operational SQLite failures (locked database,
    disk I/O) surface as ItemStoreUnavailableError so callers can fall back
    or retry.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Initialize the item store.

        Args:
            db_path: Path to SQLite database file, or ':memory:'.
        """
        self._db_path = Path(db_path) if isinstance(db_path, str) else db_path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._metrics = StoreMetrics.get_instance()
        self._log = logger.bind(component="store", db_path=str(self._db_path))

    @property
    def db_path(self) -> Path:
        """Get the database path."""
        return self._db_path

    @property
    def is_connected(self) -> bool:
        """Check if connected to database."""
        return self._conn is not None

    def connect(self) -> None:
        """Open connection to database and apply migrations.

        Creates the database file and parent directories if they don't exist.
        """
        if self._conn is not None:
            return

        in_memory = str(self._db_path) == ":memory:"
        if not in_memory:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._log.info("connecting_to_database")

        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        if not in_memory:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.execute("PRAGMA busy_timeout=5000")

        migration_mgr = MigrationManager(self._conn)
        old_version = migration_mgr.get_current_version()
        applied = migration_mgr.apply_migrations()

        self._log.info(
            "database_connected",
            old_version=old_version,
            new_version=CURRENT_VERSION,
            migrations_applied=applied,
        )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                self._log.info("database_closed")

    def __enter__(self) -> "ItemStore":
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit."""
        self.close()

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure database is connected.

        Returns:
            The database connection.

        Raises:
            StoreConnectionError: If not connected.
        """
        if self._conn is None:
            raise StoreConnectionError("Database not connected. Call connect() first.")
        return self._conn

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[TransactionContext]:
        """Context manager for write transactions with timing and logging.

        Args:
            operation: Name of the operation for logging.

        Yields:
            Transaction context with timing information.

        Raises:
            ItemStoreUnavailableError: On operational SQLite failures.
        """
        with self._lock:
            conn = self._ensure_connected()
            tx_id = str(uuid.uuid4())[:8]
            start_ns = time.perf_counter_ns()
            ctx = TransactionContext(
                tx_id=tx_id, start_time_ns=start_ns, operation=operation
            )

            try:
                yield ctx
                conn.commit()
            except sqlite3.OperationalError as e:
                conn.rollback()
                self._log.warning(
                    "transaction_failed", tx_id=tx_id, op=operation, error=str(e)
                )
                raise ItemStoreUnavailableError(operation, str(e)) from e
            except Exception:
                conn.rollback()
                self._log.error("transaction_failed", tx_id=tx_id, op=operation)
                raise

            duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
            self._metrics.record_tx_duration(duration_ms)
            self._log.debug(
                "transaction_complete",
                tx_id=tx_id,
                op=operation,
                affected_rows=ctx.affected_rows,
                duration_ms=round(duration_ms, 2),
            )

    def _query(
        self, operation: str, sql: str, params: Sequence[Any] = ()
    ) -> list[sqlite3.Row]:
        """Run a read query under the store lock.

        Raises:
            ItemStoreUnavailableError: On operational SQLite failures.
        """
        with self._lock:
            conn = self._ensure_connected()
            try:
                return conn.execute(sql, tuple(params)).fetchall()
            except sqlite3.OperationalError as e:
                self._log.warning("query_failed", op=operation, error=str(e))
                raise ItemStoreUnavailableError(operation, str(e)) from e

    # ===== Ingestion =====

    def upsert_market(
        self, market: "NormalizedMarket", now: datetime | None = None
    ) -> UpsertResult:
        """Upsert a normalized market with idempotent semantics.

        - If the item doesn't exist: insert as NEW
        - If it exists with same content_hash: leave it untouched (UNCHANGED)
        - If it exists with different content_hash: update signals (UPDATED)

        Derived scores and the eligibility switch are never touched here.

        Args:
            market: The normalized market emitted by a connector.
            now: Timestamp to record (default: current UTC time).

        Returns:
            Result indicating what happened.
        """
        now = now or datetime.now(UTC)
        item_id = make_item_id(market.source, market.external_id)
        content_hash = market.content_hash()
        values = {
            "question": market.question,
            "yes_price": market.yes_price,
            "no_price": market.no_price,
            "volume": market.volume,
            "liquidity": market.liquidity,
            "price_change_24h": market.price_change_24h,
            "mention_score": market.mention_score,
            "end_date": to_db_timestamp(market.end_date) if market.end_date else None,
            "tags_json": json.dumps(list(market.tags)),
            "content_hash": content_hash,
        }

        with self._transaction("upsert_market") as ctx:
            conn = self._ensure_connected()
            existing = conn.execute(
                "SELECT content_hash FROM markets WHERE item_id = ?", (item_id,)
            ).fetchone()

            if existing is None:
                conn.execute(
                    """
                    INSERT INTO markets (
                        item_id, source, external_id, question, yes_price,
                        no_price, volume, liquidity, price_change_24h,
                        mention_score, end_date, tags_json, content_hash,
                        created_at, updated_at
                    ) VALUES (
                        :item_id, :source, :external_id, :question, :yes_price,
                        :no_price, :volume, :liquidity, :price_change_24h,
                        :mention_score, :end_date, :tags_json, :content_hash,
                        :now, :now
                    )
                    """,
                    {
                        **values,
                        "item_id": item_id,
                        "source": market.source.value,
                        "external_id": market.external_id,
                        "now": to_db_timestamp(now),
                    },
                )
                ctx.add_affected_rows(1)
                self._metrics.record_upsert()
                event_type = ItemEventType.NEW
            elif existing["content_hash"] == content_hash:
                self._metrics.record_unchanged()
                event_type = ItemEventType.UNCHANGED
            else:
                conn.execute(
                    """
                    UPDATE markets SET
                        question = :question, yes_price = :yes_price,
                        no_price = :no_price, volume = :volume,
                        liquidity = :liquidity,
                        price_change_24h = :price_change_24h,
                        mention_score = :mention_score, end_date = :end_date,
                        tags_json = :tags_json, content_hash = :content_hash,
                        updated_at = :now
                    WHERE item_id = :item_id
                    """,
                    {**values, "item_id": item_id, "now": to_db_timestamp(now)},
                )
                ctx.add_affected_rows(1)
                self._metrics.record_update()
                event_type = ItemEventType.UPDATED

            row = conn.execute(
                "SELECT * FROM markets WHERE item_id = ?", (item_id,)
            ).fetchone()

        return UpsertResult(
            event_type=event_type,
            affected_rows=ctx.affected_rows,
            item=self._row_to_item(row),
        )

    def set_eligible(self, item_id: str, eligible: bool) -> None:
        """Flip the admin eligibility switch for an item.

        Args:
            item_id: Item to update.
            eligible: New eligibility.

        Raises:
            ItemNotFoundError: If the item does not exist.
        """
        with self._transaction("set_eligible") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                "UPDATE markets SET eligible = ? WHERE item_id = ?",
                (1 if eligible else 0, item_id),
            )
            if cursor.rowcount == 0:
                raise ItemNotFoundError(item_id)
            ctx.add_affected_rows(cursor.rowcount)

        self._log.info("eligibility_changed", item_id=item_id, eligible=eligible)

    # ===== Rebuild path =====

    @staticmethod
    def _eligible_where(segment: str, now: datetime) -> tuple[str, list[Any]]:
        clauses = ["eligible = 1", "(end_date IS NULL OR end_date > ?)"]
        params: list[Any] = [to_db_timestamp(now)]
        if segment != DEFAULT_SEGMENT:
            clauses.append(_SEGMENT_FILTER)
            params.append(segment)
        return " AND ".join(clauses), params

    def list_eligible(self, segment: str, now: datetime) -> list[MarketItem]:
        """List every eligible item for a segment.

        Eligible means the admin switch is on and the market has not ended.
        The 'default' segment selects every eligible item; any other segment
        selects items carrying that tag.

        Args:
            segment: Segment name.
            now: Reference time for expiry.

        Returns:
            Eligible items ordered by item_id.
        """
        where, params = self._eligible_where(segment, now)
        rows = self._query(
            "list_eligible",
            f"SELECT * FROM markets WHERE {where} ORDER BY item_id",  # noqa: S608
            params,
        )
        return [self._row_to_item(row) for row in rows]

    def count_eligible(self, segment: str, now: datetime) -> int:
        """Count eligible items for a segment."""
        where, params = self._eligible_where(segment, now)
        rows = self._query(
            "count_eligible",
            f"SELECT COUNT(*) AS n FROM markets WHERE {where}",  # noqa: S608
            params,
        )
        return int(rows[0]["n"])

    def write_score(self, item_id: str, confidence: float, trend_score: float) -> None:
        """Write derived scores for a single item.

        Args:
            item_id: Item to update.
            confidence: Composite confidence in [0, 1].
            trend_score: Trend score in [0, 1].

        Raises:
            ItemNotFoundError: If the item does not exist.
            ItemStoreUnavailableError: On transient SQLite failures.
        """
        with self._transaction("write_score") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                """
                UPDATE markets SET confidence = ?, trend_score = ?, scored_at = ?
                WHERE item_id = ?
                """,
                (confidence, trend_score, to_db_timestamp(datetime.now(UTC)), item_id),
            )
            if cursor.rowcount == 0:
                raise ItemNotFoundError(item_id)
            ctx.add_affected_rows(cursor.rowcount)

        self._metrics.record_score_writes(1)

    def write_scores(self, batch: Sequence[tuple[str, float, float]]) -> int:
        """Write derived scores for a batch of items in one transaction.

        Args:
            batch: (item_id, confidence, trend_score) tuples.

        Returns:
            Number of rows updated. Items that no longer exist are skipped.

        Raises:
            ItemStoreUnavailableError: On transient SQLite failures; nothing
                from the batch is written in that case.
        """
        if not batch:
            return 0

        scored_at = to_db_timestamp(datetime.now(UTC))
        with self._transaction("write_scores") as ctx:
            conn = self._ensure_connected()
            for item_id, confidence, trend_score in batch:
                cursor = conn.execute(
                    """
                    UPDATE markets SET confidence = ?, trend_score = ?, scored_at = ?
                    WHERE item_id = ?
                    """,
                    (confidence, trend_score, scored_at, item_id),
                )
                ctx.add_affected_rows(cursor.rowcount)

        self._metrics.record_score_writes(ctx.affected_rows)
        return ctx.affected_rows

    # ===== Read path =====

    def find_by_id(self, item_id: str) -> MarketItem | None:
        """Get an item by ID.

        Args:
            item_id: The item ID to look up.

        Returns:
            The item, or None if not found.
        """
        rows = self._query(
            "find_by_id", "SELECT * FROM markets WHERE item_id = ?", (item_id,)
        )
        return self._row_to_item(rows[0]) if rows else None

    def _rows_by_ids(
        self, operation: str, columns: str, ids: Iterable[str]
    ) -> list[sqlite3.Row]:
        unique_ids = list(dict.fromkeys(ids))
        rows: list[sqlite3.Row] = []
        for start in range(0, len(unique_ids), _MAX_IN_PARAMS):
            chunk = unique_ids[start : start + _MAX_IN_PARAMS]
            placeholders = ", ".join("?" for _ in chunk)
            rows.extend(
                self._query(
                    operation,
                    f"SELECT {columns} FROM markets "  # noqa: S608
                    f"WHERE item_id IN ({placeholders})",
                    chunk,
                )
            )
        return rows

    def find_many(self, item_ids: Iterable[str]) -> dict[str, MarketItem]:
        """Get several items by ID.

        Args:
            item_ids: IDs to look up.

        Returns:
            Mapping of item_id to item for the IDs that exist.
        """
        rows = self._rows_by_ids("find_many", "*", item_ids)
        return {row["item_id"]: self._row_to_item(row) for row in rows}

    def get_categories(self, item_ids: Iterable[str]) -> dict[str, str]:
        """Get the category (first tag) for several items.

        Args:
            item_ids: IDs to look up.

        Returns:
            Mapping of item_id to category for the IDs that exist.
        """
        rows = self._rows_by_ids("get_categories", "item_id, tags_json", item_ids)
        categories: dict[str, str] = {}
        for row in rows:
            tags = json.loads(row["tags_json"])
            categories[row["item_id"]] = tags[0] if tags else DEFAULT_CATEGORY
        return categories

    def list_recent_unranked(
        self,
        segment: str,
        after: tuple[datetime, str] | None,
        limit: int,
        now: datetime,
    ) -> list[MarketItem]:
        """List eligible items newest first, ignoring derived scores.

        Ordering is (updated_at DESC, item_id DESC), so the last item of a
        page is a complete continuation key.

        Args:
            segment: Segment name.
            after: (updated_at, item_id) of the last item already served.
            limit: Maximum items to return.
            now: Reference time for expiry.

        Returns:
            Up to `limit` items.
        """
        where, params = self._eligible_where(segment, now)
        if after is not None:
            updated_at, item_id = after
            ts = to_db_timestamp(updated_at)
            where += " AND (updated_at < ? OR (updated_at = ? AND item_id < ?))"
            params.extend([ts, ts, item_id])
        params.append(limit)

        rows = self._query(
            "list_recent_unranked",
            f"SELECT * FROM markets WHERE {where} "  # noqa: S608
            "ORDER BY updated_at DESC, item_id DESC LIMIT ?",
            params,
        )
        return [self._row_to_item(row) for row in rows]

    def list_trending(  # noqa: PLR0913
        self,
        segment: str,
        now: datetime,
        limit: int,
        min_confidence: float,
        min_trend_score: float,
    ) -> list[MarketItem]:
        """List eligible items whose persisted scores clear both thresholds.

        Reads the scores written by the last rebuild; unscored items never
        qualify.

        Args:
            segment: Segment name.
            now: Reference time for expiry.
            limit: Maximum items to return.
            min_confidence: Confidence an item must exceed.
            min_trend_score: Trend score an item must exceed.

        Returns:
            Items ordered by (trend_score, confidence, item_id) descending.
        """
        where, params = self._eligible_where(segment, now)
        where += " AND confidence > ? AND trend_score > ?"
        params.extend([min_confidence, min_trend_score, limit])
        rows = self._query(
            "list_trending",
            f"SELECT * FROM markets WHERE {where} "  # noqa: S608
            "ORDER BY trend_score DESC, confidence DESC, item_id DESC LIMIT ?",
            params,
        )
        return [self._row_to_item(row) for row in rows]

    def list_by_tags(
        self, tags: Sequence[str], now: datetime, limit: int
    ) -> list[MarketItem]:
        """List eligible items carrying any of the given tags.

        Args:
            tags: Tags to match; an item needs only one of them.
            now: Reference time for expiry.
            limit: Maximum items to return.

        Returns:
            Items by confidence (unscored last), then most recently updated.
        """
        unique_tags = list(dict.fromkeys(tags))
        if not unique_tags:
            return []

        where, params = self._eligible_where(DEFAULT_SEGMENT, now)
        placeholders = ", ".join("?" for _ in unique_tags)
        where += (
            " AND EXISTS (SELECT 1 FROM json_each(markets.tags_json) "
            f"WHERE json_each.value IN ({placeholders}))"
        )
        params.extend([*unique_tags, limit])
        rows = self._query(
            "list_by_tags",
            f"SELECT * FROM markets WHERE {where} "  # noqa: S608
            "ORDER BY confidence IS NULL, confidence DESC, "
            "updated_at DESC, item_id DESC LIMIT ?",
            params,
        )
        return [self._row_to_item(row) for row in rows]

    def get_stats(self) -> ItemStoreStats:
        """Compute aggregate counts over the store."""
        now = to_db_timestamp(datetime.now(UTC))
        totals = self._query(
            "get_stats",
            """
            SELECT
                COUNT(*) AS total,
                SUM(CASE WHEN eligible = 1 AND (end_date IS NULL OR end_date > ?)
                    THEN 1 ELSE 0 END) AS eligible,
                SUM(CASE WHEN confidence IS NOT NULL THEN 1 ELSE 0 END) AS scored,
                AVG(confidence) AS avg_confidence
            FROM markets
            """,
            (now,),
        )[0]
        by_source = self._query(
            "get_stats",
            "SELECT source, COUNT(*) AS n FROM markets GROUP BY source ORDER BY source",
        )
        return ItemStoreStats(
            total_items=totals["total"] or 0,
            eligible_items=totals["eligible"] or 0,
            scored_items=totals["scored"] or 0,
            avg_confidence=totals["avg_confidence"],
            by_source={row["source"]: row["n"] for row in by_source},
        )

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> MarketItem:
        """Convert a database row to a MarketItem."""
        return MarketItem(
            item_id=row["item_id"],
            source=MarketSource(row["source"]),
            external_id=row["external_id"],
            question=row["question"],
            yes_price=row["yes_price"],
            no_price=row["no_price"],
            volume=row["volume"],
            liquidity=row["liquidity"],
            price_change_24h=row["price_change_24h"],
            mention_score=row["mention_score"],
            end_date=_from_db_timestamp(row["end_date"]),
            tags=json.loads(row["tags_json"]),
            eligible=bool(row["eligible"]),
            confidence=row["confidence"],
            trend_score=row["trend_score"],
            content_hash=row["content_hash"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
