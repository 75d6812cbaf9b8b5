"""Unit tests for the in-process sorted-set store."""

import pytest

from marketfeed.cache.memory import InMemorySortedSetStore
from tests.helpers.time import ManualClock


@pytest.fixture
def clock() -> ManualClock:
    """Create a manual monotonic clock."""
    return ManualClock()


@pytest.fixture
def store(clock: ManualClock) -> InMemorySortedSetStore:
    """Create a store driven by the manual clock."""
    return InMemorySortedSetStore(clock=clock)


class TestSortedSets:
    """Tests for sorted-set operations."""

    @pytest.mark.unit
    def test_replace_and_range(self, store: InMemorySortedSetStore) -> None:
        """Test ranges are served in score order, inclusive of stop."""
        store.replace("z", [("a", 0.2), ("b", 0.9), ("c", 0.5)], 60)

        assert store.range_by_rank("z", 0, -1) == [("a", 0.2), ("c", 0.5), ("b", 0.9)]
        assert store.range_by_rank_desc("z", 0, 1) == [("b", 0.9), ("c", 0.5)]
        assert store.cardinality("z") == 3

    @pytest.mark.unit
    def test_equal_scores_ordered_by_member(
        self, store: InMemorySortedSetStore
    ) -> None:
        """Test ties are ordered by member, reversed for descending reads."""
        store.replace("z", [("a", 1.0), ("c", 1.0), ("b", 1.0)], 60)

        assert [m for m, _ in store.range_by_rank("z", 0, -1)] == ["a", "b", "c"]
        assert [m for m, _ in store.range_by_rank_desc("z", 0, -1)] == ["c", "b", "a"]

    @pytest.mark.unit
    def test_range_beyond_end(self, store: InMemorySortedSetStore) -> None:
        """Test out-of-range requests return what exists."""
        store.replace("z", [("a", 1.0)], 60)

        assert store.range_by_rank("z", 0, 10) == [("a", 1.0)]
        assert store.range_by_rank("z", 5, 10) == []
        assert store.range_by_rank("missing", 0, 10) == []

    @pytest.mark.unit
    def test_replace_with_empty_deletes(self, store: InMemorySortedSetStore) -> None:
        """Test replacing with no members removes the key."""
        store.replace("z", [("a", 1.0)], 60)
        store.replace("z", [], 60)

        assert not store.exists("z")

    @pytest.mark.unit
    def test_replace_is_not_a_merge(self, store: InMemorySortedSetStore) -> None:
        """Test replace drops members missing from the new content."""
        store.replace("z", [("a", 1.0), ("b", 2.0)], 60)
        store.replace("z", [("c", 3.0)], 60)

        assert store.range_by_rank("z", 0, -1) == [("c", 3.0)]

    @pytest.mark.unit
    def test_wrong_type_raises(self, store: InMemorySortedSetStore) -> None:
        """Test reading a string key as a sorted set raises."""
        store.set("s", "value")

        with pytest.raises(TypeError):
            store.range_by_rank("s", 0, -1)


class TestExpiry:
    """Tests for TTL handling."""

    @pytest.mark.unit
    def test_keys_expire(
        self, store: InMemorySortedSetStore, clock: ManualClock
    ) -> None:
        """Test keys disappear once their TTL passes."""
        store.replace("z", [("a", 1.0)], 10)
        store.set("s", "v", 5)

        clock.advance(5)
        assert store.get("s") is None
        assert store.exists("z")

        clock.advance(5)
        assert not store.exists("z")
        assert store.cardinality("z") == 0

    @pytest.mark.unit
    def test_ttl_reporting(
        self, store: InMemorySortedSetStore, clock: ManualClock
    ) -> None:
        """Test ttl distinguishes absent, persistent and expiring keys."""
        store.set("forever", "v")
        store.set("brief", "v", 10)
        clock.advance(2.5)

        assert store.ttl("missing") is None
        assert store.ttl("forever") == -1
        assert store.ttl("brief") == 8

    @pytest.mark.unit
    def test_expire_existing_and_missing(
        self, store: InMemorySortedSetStore, clock: ManualClock
    ) -> None:
        """Test expire shortens a key's life and ignores missing keys."""
        store.replace("z", [("a", 1.0)], 100)

        assert store.expire("z", 1)
        assert not store.expire("missing", 1)

        clock.advance(1)
        assert not store.exists("z")

    @pytest.mark.unit
    def test_delete_counts_existing_keys(self, store: InMemorySortedSetStore) -> None:
        """Test delete returns how many keys existed."""
        store.set("a", "1")
        store.replace("b", [("m", 1.0)], 60)

        assert store.delete("a", "b", "c") == 2
        assert store.delete("a") == 0


class TestLeases:
    """Tests for lease acquire/release."""

    @pytest.mark.unit
    def test_lease_is_exclusive(self, store: InMemorySortedSetStore) -> None:
        """Test a second holder cannot acquire a held lease."""
        assert store.acquire_lease("lease", "t1", 30)
        assert not store.acquire_lease("lease", "t2", 30)

    @pytest.mark.unit
    def test_release_requires_token(self, store: InMemorySortedSetStore) -> None:
        """Test only the holder's token releases the lease."""
        store.acquire_lease("lease", "t1", 30)

        assert not store.release_lease("lease", "t2")
        assert store.release_lease("lease", "t1")
        assert store.acquire_lease("lease", "t2", 30)

    @pytest.mark.unit
    def test_lease_expires(
        self, store: InMemorySortedSetStore, clock: ManualClock
    ) -> None:
        """Test an abandoned lease can be taken after its TTL."""
        store.acquire_lease("lease", "t1", 30)
        clock.advance(30)

        assert store.acquire_lease("lease", "t2", 30)
        assert not store.release_lease("lease", "t1")
