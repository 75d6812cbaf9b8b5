"""Sorted-set store protocol."""

from collections.abc import Sequence
from typing import Protocol


class SortedSetStore(Protocol):
    """Minimal sorted-set and string store used for RankedSets and leases.

    Range operations follow Redis semantics: `start` and `stop` are
    inclusive, 0-based ranks and negative values count from the end.
    Ascending order is (score, member); descending order is its exact
    reverse. Implementations raise FastStoreUnavailableError when the
    backend cannot be reached.
    """

    def replace(
        self, key: str, members: Sequence[tuple[str, float]], ttl_seconds: int
    ) -> None:
        """Atomically replace a sorted set and set its TTL.

        An empty member list deletes the key. Readers observe either the old
        set or the complete new one.
        """
        ...

    def range_by_rank(self, key: str, start: int, stop: int) -> list[tuple[str, float]]:
        """Return (member, score) pairs in ascending rank order."""
        ...

    def range_by_rank_desc(
        self, key: str, start: int, stop: int
    ) -> list[tuple[str, float]]:
        """Return (member, score) pairs in descending rank order."""
        ...

    def exists(self, key: str) -> bool:
        """Check whether a key exists and has not expired."""
        ...

    def cardinality(self, key: str) -> int:
        """Number of members in a sorted set (0 when absent)."""
        ...

    def delete(self, *keys: str) -> int:
        """Delete keys and return how many existed."""
        ...

    def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set a key's TTL; False when the key does not exist."""
        ...

    def ttl(self, key: str) -> int | None:
        """Remaining TTL in seconds, -1 without expiry, None when absent."""
        ...

    def get(self, key: str) -> str | None:
        """Get a string value."""
        ...

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Set a string value, optionally with a TTL."""
        ...

    def acquire_lease(self, key: str, token: str, ttl_seconds: int) -> bool:
        """Set key to token only if absent (SET NX EX)."""
        ...

    def release_lease(self, key: str, token: str) -> bool:
        """Delete key only if it still holds token."""
        ...
