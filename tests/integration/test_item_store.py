"""Integration tests for the SQLite item store."""

from collections.abc import Generator
from datetime import timedelta
from pathlib import Path

import pytest

from marketfeed.errors import TransientStoreError
from marketfeed.ingestion.models import NormalizedMarket
from marketfeed.store.errors import ItemNotFoundError, StoreConnectionError
from marketfeed.store.metrics import StoreMetrics
from marketfeed.store.models import ItemEventType
from marketfeed.store.store import ItemStore
from tests.helpers.time import FIXED_NOW


def _make_market(external_id: str, **overrides: object) -> NormalizedMarket:
    data: dict[str, object] = {
        "source": "polymarket",
        "external_id": external_id,
        "question": f"Question {external_id}?",
        "volume": 1000.0,
        "liquidity": 500.0,
        "tags": ["politics"],
    }
    data.update(overrides)
    return NormalizedMarket.model_validate(data)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path of a fresh database file."""
    return tmp_path / "items.sqlite"


@pytest.fixture
def store(db_path: Path) -> Generator[ItemStore]:
    """Create a connected item store."""
    StoreMetrics.reset()
    store = ItemStore(db_path)
    store.connect()
    yield store
    store.close()
    StoreMetrics.reset()


class TestItemStoreConnection:
    """Tests for connection and setup."""

    @pytest.mark.integration
    def test_connect_creates_database(self, db_path: Path) -> None:
        """Test connecting creates the database file."""
        store = ItemStore(db_path)
        assert not db_path.exists()

        store.connect()
        assert db_path.exists()
        store.close()

    @pytest.mark.integration
    def test_connect_creates_parent_dirs(self, tmp_path: Path) -> None:
        """Test connecting creates parent directories."""
        nested = tmp_path / "a" / "b" / "items.sqlite"
        with ItemStore(nested):
            pass
        assert nested.exists()

    @pytest.mark.integration
    def test_context_manager(self, db_path: Path) -> None:
        """Test the store works as a context manager."""
        with ItemStore(db_path) as store:
            assert store.is_connected

        assert not store.is_connected

    @pytest.mark.integration
    def test_wal_mode_enabled(self, store: ItemStore) -> None:
        """Test WAL mode is enabled for file databases."""
        mode = store._ensure_connected().execute("PRAGMA journal_mode").fetchone()[0]
        assert mode.lower() == "wal"

    @pytest.mark.integration
    def test_not_connected_raises(self, db_path: Path) -> None:
        """Test operations before connect() are rejected."""
        with pytest.raises(StoreConnectionError):
            ItemStore(db_path).find_by_id("polymarket:x")

    @pytest.mark.integration
    def test_data_survives_reopen(self, db_path: Path) -> None:
        """Test items persist across connections."""
        with ItemStore(db_path) as store:
            store.upsert_market(_make_market("m1"), FIXED_NOW)

        with ItemStore(db_path) as store:
            assert store.find_by_id("polymarket:m1") is not None

    @pytest.mark.integration
    def test_operational_error_is_transient(self, store: ItemStore) -> None:
        """Test SQLite operational failures surface as transient errors."""
        store._ensure_connected().execute("DROP TABLE markets")

        with pytest.raises(TransientStoreError) as exc_info:
            store.count_eligible("default", FIXED_NOW)
        assert exc_info.value.store == "items"


class TestUpsertMarket:
    """Tests for idempotent upserts."""

    @pytest.mark.integration
    def test_new_then_unchanged_then_updated(self, store: ItemStore) -> None:
        """Test the three upsert outcomes and their metrics."""
        first = store.upsert_market(_make_market("m1"), FIXED_NOW)
        again = store.upsert_market(
            _make_market("m1"), FIXED_NOW + timedelta(hours=1)
        )
        changed = store.upsert_market(
            _make_market("m1", volume=2000.0), FIXED_NOW + timedelta(hours=2)
        )

        assert first.event_type is ItemEventType.NEW
        assert first.affected_rows == 1
        assert again.event_type is ItemEventType.UNCHANGED
        assert again.affected_rows == 0
        assert again.item.updated_at == FIXED_NOW
        assert changed.event_type is ItemEventType.UPDATED
        assert changed.item.volume == 2000.0
        assert changed.item.created_at == FIXED_NOW
        assert changed.item.updated_at == FIXED_NOW + timedelta(hours=2)

        metrics = StoreMetrics.get_instance()
        assert metrics.db_upserts_total == 1
        assert metrics.db_unchanged_total == 1
        assert metrics.db_updates_total == 1

    @pytest.mark.integration
    def test_update_keeps_derived_fields(self, store: ItemStore) -> None:
        """Test an update leaves scores and eligibility alone."""
        store.upsert_market(_make_market("m1"), FIXED_NOW)
        store.write_score("polymarket:m1", 0.7, 0.4)
        store.set_eligible("polymarket:m1", False)

        result = store.upsert_market(_make_market("m1", liquidity=1.0), FIXED_NOW)

        assert result.item.confidence == 0.7
        assert result.item.trend_score == 0.4
        assert result.item.eligible is False

    @pytest.mark.integration
    def test_round_trips_fields(self, store: ItemStore) -> None:
        """Test stored items carry every signal field."""
        end = FIXED_NOW + timedelta(days=3)
        store.upsert_market(
            _make_market(
                "m1", yes_price=0.3, no_price=0.7, end_date=end, tags=["a", "b"]
            ),
            FIXED_NOW,
        )

        item = store.find_by_id("polymarket:m1")

        assert item is not None
        assert item.yes_price == 0.3
        assert item.no_price == 0.7
        assert item.end_date == end
        assert item.tags == ["a", "b"]
        assert item.category == "a"


class TestEligibility:
    """Tests for eligibility and segment filtering."""

    @pytest.fixture
    def seeded(self, store: ItemStore) -> ItemStore:
        """Store with a mix of segments, expiry and eligibility."""
        store.upsert_market(_make_market("p1"), FIXED_NOW)
        store.upsert_market(_make_market("c1", tags=["crypto", "politics"]), FIXED_NOW)
        store.upsert_market(_make_market("u1", tags=[]), FIXED_NOW)
        store.upsert_market(
            _make_market("old", end_date=FIXED_NOW - timedelta(seconds=1)), FIXED_NOW
        )
        store.upsert_market(_make_market("off"), FIXED_NOW)
        store.set_eligible("polymarket:off", False)
        return store

    @pytest.mark.integration
    def test_default_segment(self, seeded: ItemStore) -> None:
        """Test the default segment selects every eligible, unexpired item."""
        ids = [i.item_id for i in seeded.list_eligible("default", FIXED_NOW)]
        assert ids == ["polymarket:c1", "polymarket:p1", "polymarket:u1"]
        assert seeded.count_eligible("default", FIXED_NOW) == 3

    @pytest.mark.integration
    def test_tag_segment(self, seeded: ItemStore) -> None:
        """Test a named segment matches any tag, not only the category."""
        ids = [i.item_id for i in seeded.list_eligible("politics", FIXED_NOW)]
        assert ids == ["polymarket:c1", "polymarket:p1"]
        assert seeded.count_eligible("crypto", FIXED_NOW) == 1

    @pytest.mark.integration
    def test_expiry_uses_reference_time(self, seeded: ItemStore) -> None:
        """Test an item is eligible before its end date."""
        earlier = FIXED_NOW - timedelta(hours=1)
        assert seeded.count_eligible("default", earlier) == 4

    @pytest.mark.integration
    def test_set_eligible_unknown_item(self, store: ItemStore) -> None:
        """Test flipping eligibility of a missing item raises."""
        with pytest.raises(ItemNotFoundError) as exc_info:
            store.set_eligible("polymarket:none", True)
        assert exc_info.value.item_id == "polymarket:none"


class TestScores:
    """Tests for derived score writes."""

    @pytest.mark.integration
    def test_write_score_missing_item(self, store: ItemStore) -> None:
        """Test writing a score for a missing item raises."""
        with pytest.raises(ItemNotFoundError):
            store.write_score("polymarket:none", 0.5, 0.5)

    @pytest.mark.integration
    def test_write_scores_batch(self, store: ItemStore) -> None:
        """Test batches update existing items and skip missing ones."""
        store.upsert_market(_make_market("m1"), FIXED_NOW)
        store.upsert_market(_make_market("m2"), FIXED_NOW)

        written = store.write_scores(
            [
                ("polymarket:m1", 0.9, 0.1),
                ("polymarket:m2", 0.2, 0.8),
                ("polymarket:gone", 0.5, 0.5),
            ]
        )

        assert written == 2
        assert store.write_scores([]) == 0
        item = store.find_by_id("polymarket:m2")
        assert item is not None
        assert (item.confidence, item.trend_score) == (0.2, 0.8)
        assert StoreMetrics.get_instance().score_writes_total == 2


class TestScoredListings:
    """Tests for listings ordered by persisted scores."""

    @pytest.mark.integration
    def test_list_trending_thresholds_and_order(self, store: ItemStore) -> None:
        """Test both thresholds are strict and trend score orders first."""
        scores = {
            "t1": (0.9, 0.6),
            "t2": (0.8, 0.9),
            "t3": (0.95, 0.5),
            "t4": (0.7, 0.9),
            "off": (0.9, 0.9),
            "old": (0.99, 0.99),
        }
        for name in [*scores, "unscored"]:
            overrides: dict[str, object] = {}
            if name == "t1":
                overrides["tags"] = ["crypto"]
            if name == "old":
                overrides["end_date"] = FIXED_NOW - timedelta(seconds=1)
            store.upsert_market(_make_market(name, **overrides), FIXED_NOW)
        for name, (confidence, trend) in scores.items():
            store.write_score(f"polymarket:{name}", confidence, trend)
        store.set_eligible("polymarket:off", False)

        trending = store.list_trending("default", FIXED_NOW, 10, 0.7, 0.5)
        top_one = store.list_trending("default", FIXED_NOW, 1, 0.7, 0.5)
        crypto = store.list_trending("crypto", FIXED_NOW, 10, 0.7, 0.5)

        assert [i.item_id for i in trending] == ["polymarket:t2", "polymarket:t1"]
        assert [i.item_id for i in top_one] == ["polymarket:t2"]
        assert [i.item_id for i in crypto] == ["polymarket:t1"]

    @pytest.mark.integration
    def test_list_by_tags(self, store: ItemStore) -> None:
        """Test any tag matches and unscored items sort last."""
        store.upsert_market(_make_market("a", tags=["crypto"]), FIXED_NOW)
        store.upsert_market(_make_market("b", tags=["sports", "crypto"]), FIXED_NOW)
        store.upsert_market(_make_market("c", tags=["politics"]), FIXED_NOW)
        store.upsert_market(_make_market("d", tags=["sports"]), FIXED_NOW)
        store.upsert_market(
            _make_market(
                "e", tags=["crypto"], end_date=FIXED_NOW - timedelta(seconds=1)
            ),
            FIXED_NOW,
        )
        store.write_scores(
            [
                ("polymarket:a", 0.4, 0.1),
                ("polymarket:b", 0.9, 0.1),
                ("polymarket:c", 0.95, 0.1),
                ("polymarket:e", 0.99, 0.1),
            ]
        )

        tagged = store.list_by_tags(["crypto", "sports"], FIXED_NOW, 10)

        assert [i.item_id for i in tagged] == [
            "polymarket:b",
            "polymarket:a",
            "polymarket:d",
        ]
        assert len(store.list_by_tags(["crypto", "crypto"], FIXED_NOW, 10)) == 2
        assert store.list_by_tags([], FIXED_NOW, 10) == []


class TestReadPath:
    """Tests for lookups used by the feed."""

    @pytest.mark.integration
    def test_find_many_beyond_parameter_limit(self, store: ItemStore) -> None:
        """Test bulk lookups larger than one IN clause."""
        for i in range(620):
            store.upsert_market(_make_market(f"m{i:04d}"), FIXED_NOW)

        ids = [f"polymarket:m{i:04d}" for i in range(620)] + ["polymarket:none"]
        found = store.find_many(ids)

        assert len(found) == 620
        assert "polymarket:none" not in found

    @pytest.mark.integration
    def test_get_categories(self, store: ItemStore) -> None:
        """Test categories come from the first tag with a fallback."""
        store.upsert_market(_make_market("m1", tags=["sports", "nba"]), FIXED_NOW)
        store.upsert_market(_make_market("m2", tags=[]), FIXED_NOW)

        assert store.get_categories(["polymarket:m1", "polymarket:m2"]) == {
            "polymarket:m1": "sports",
            "polymarket:m2": "general",
        }

    @pytest.mark.integration
    def test_list_recent_unranked_keyset(self, store: ItemStore) -> None:
        """Test newest-first order and continuation across equal timestamps."""
        store.upsert_market(_make_market("a"), FIXED_NOW)
        store.upsert_market(_make_market("b"), FIXED_NOW)
        store.upsert_market(_make_market("c"), FIXED_NOW + timedelta(minutes=1))

        first = store.list_recent_unranked("default", None, 2, FIXED_NOW)
        last = first[-1]
        rest = store.list_recent_unranked(
            "default", (last.updated_at, last.item_id), 2, FIXED_NOW
        )

        assert [i.item_id for i in first] == ["polymarket:c", "polymarket:b"]
        assert [i.item_id for i in rest] == ["polymarket:a"]

    @pytest.mark.integration
    def test_get_stats(self, store: ItemStore) -> None:
        """Test aggregate counts."""
        store.upsert_market(_make_market("m1"), FIXED_NOW)
        store.upsert_market(_make_market("k1", source="kalshi"), FIXED_NOW)
        store.write_score("polymarket:m1", 0.6, 0.2)

        stats = store.get_stats()

        assert stats.total_items == 2
        assert stats.scored_items == 1
        assert stats.avg_confidence == pytest.approx(0.6)
        assert stats.by_source == {"kalshi": 1, "polymarket": 1}
