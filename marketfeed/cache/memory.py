"""In-process sorted-set store with TTL support."""

import math
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass


@dataclass
class _Entry:
    value: dict[str, float] | str
    expires_at: float | None = None


def _slice(length: int, start: int, stop: int) -> tuple[int, int]:
    """Convert inclusive Redis-style ranks to a Python slice."""
    if start < 0:
        start = max(length + start, 0)
    if stop < 0:
        stop = length + stop
    return start, min(stop, length - 1) + 1


class InMemorySortedSetStore:
    """Thread-safe, Redis-compatible store for a single process.

    Used when no Redis URL is configured and in tests. Expiry is lazy:
    expired keys are dropped when touched. The clock is injectable so tests
    can move time forward without sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize the store.

        Args:
            clock: Monotonic clock returning seconds.
        """
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def _live(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    def _zset(self, key: str) -> dict[str, float]:
        entry = self._live(key)
        if entry is None:
            return {}
        if not isinstance(entry.value, dict):
            msg = f"Key {key} does not hold a sorted set"
            raise TypeError(msg)
        return entry.value

    def replace(
        self, key: str, members: Sequence[tuple[str, float]], ttl_seconds: int
    ) -> None:
        """Atomically replace a sorted set and set its TTL."""
        with self._lock:
            if not members:
                self._entries.pop(key, None)
                return
            self._entries[key] = _Entry(
                value=dict(members), expires_at=self._clock() + ttl_seconds
            )

    def range_by_rank(self, key: str, start: int, stop: int) -> list[tuple[str, float]]:
        """Return (member, score) pairs in ascending rank order."""
        with self._lock:
            ordered = sorted(self._zset(key).items(), key=lambda kv: (kv[1], kv[0]))
        lo, hi = _slice(len(ordered), start, stop)
        return ordered[lo:hi]

    def range_by_rank_desc(
        self, key: str, start: int, stop: int
    ) -> list[tuple[str, float]]:
        """Return (member, score) pairs in descending rank order."""
        with self._lock:
            ordered = sorted(
                self._zset(key).items(), key=lambda kv: (kv[1], kv[0]), reverse=True
            )
        lo, hi = _slice(len(ordered), start, stop)
        return ordered[lo:hi]

    def exists(self, key: str) -> bool:
        """Check whether a key exists and has not expired."""
        with self._lock:
            return self._live(key) is not None

    def cardinality(self, key: str) -> int:
        """Number of members in a sorted set (0 when absent)."""
        with self._lock:
            return len(self._zset(key))

    def delete(self, *keys: str) -> int:
        """Delete keys and return how many existed."""
        with self._lock:
            removed = 0
            for key in keys:
                if self._live(key) is not None:
                    del self._entries[key]
                    removed += 1
            return removed

    def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set a key's TTL; False when the key does not exist."""
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return False
            entry.expires_at = self._clock() + ttl_seconds
            return True

    def ttl(self, key: str) -> int | None:
        """Remaining TTL in seconds, -1 without expiry, None when absent."""
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return None
            if entry.expires_at is None:
                return -1
            return math.ceil(entry.expires_at - self._clock())

    def get(self, key: str) -> str | None:
        """Get a string value."""
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return None
            if not isinstance(entry.value, str):
                msg = f"Key {key} does not hold a string"
                raise TypeError(msg)
            return entry.value

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Set a string value, optionally with a TTL."""
        with self._lock:
            expires_at = None if ttl_seconds is None else self._clock() + ttl_seconds
            self._entries[key] = _Entry(value=value, expires_at=expires_at)

    def acquire_lease(self, key: str, token: str, ttl_seconds: int) -> bool:
        """Set key to token only if absent."""
        with self._lock:
            if self._live(key) is not None:
                return False
            self._entries[key] = _Entry(
                value=token, expires_at=self._clock() + ttl_seconds
            )
            return True

    def release_lease(self, key: str, token: str) -> bool:
        """Delete key only if it still holds token."""
        with self._lock:
            entry = self._live(key)
            if entry is None or entry.value != token:
                return False
            del self._entries[key]
            return True
