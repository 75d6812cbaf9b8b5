"""Redis-backed sorted-set store."""

import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

import redis
import structlog

from marketfeed.cache.errors import FastStoreUnavailableError


logger = structlog.get_logger()

# Compare-and-delete so a worker never releases a lease it no longer owns.
_RELEASE_LEASE_LUA = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


class RedisSortedSetStore:
    """SortedSetStore over a redis-py client.

    `replace` writes the new members under a private staging key and
    RENAMEs it over the target inside one MULTI/EXEC block, so readers
    observe either the old set or the complete new one. RENAME carries the
    staging key's TTL over to the target.
    """

    def __init__(self, client: redis.Redis) -> None:
        """Initialize the store.

        Args:
            client: redis-py client created with decode_responses=True.
        """
        self._client = client
        self._log = logger.bind(component="cache", subcomponent="redis")

    @classmethod
    def from_url(cls, url: str, socket_timeout: float = 2.0) -> "RedisSortedSetStore":
        """Create a store from a redis:// URL.

        Args:
            url: Redis connection URL.
            socket_timeout: Per-command socket timeout in seconds.

        Returns:
            Configured store. No connection is made until first use.
        """
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    @contextmanager
    def _call(self, operation: str) -> Iterator[None]:
        """Translate connectivity failures into FastStoreUnavailableError."""
        try:
            yield
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError) as e:
            self._log.warning("redis_unavailable", operation=operation, error=str(e))
            raise FastStoreUnavailableError(operation, str(e)) from e

    def replace(
        self, key: str, members: Sequence[tuple[str, float]], ttl_seconds: int
    ) -> None:
        """Atomically replace a sorted set and set its TTL."""
        with self._call("replace"):
            if not members:
                self._client.delete(key)
                return
            staging = f"{key}:staging:{uuid.uuid4().hex[:12]}"
            pipe = self._client.pipeline(transaction=True)
            pipe.zadd(staging, dict(members))
            pipe.expire(staging, ttl_seconds)
            pipe.rename(staging, key)
            pipe.execute()

    def range_by_rank(self, key: str, start: int, stop: int) -> list[tuple[str, float]]:
        """Return (member, score) pairs in ascending rank order."""
        with self._call("range_by_rank"):
            rows = self._client.zrange(key, start, stop, withscores=True)
        return [(member, float(score)) for member, score in rows]

    def range_by_rank_desc(
        self, key: str, start: int, stop: int
    ) -> list[tuple[str, float]]:
        """Return (member, score) pairs in descending rank order."""
        with self._call("range_by_rank_desc"):
            rows = self._client.zrevrange(key, start, stop, withscores=True)
        return [(member, float(score)) for member, score in rows]

    def exists(self, key: str) -> bool:
        """Check whether a key exists."""
        with self._call("exists"):
            return bool(self._client.exists(key))

    def cardinality(self, key: str) -> int:
        """Number of members in a sorted set (0 when absent)."""
        with self._call("cardinality"):
            return int(self._client.zcard(key))

    def delete(self, *keys: str) -> int:
        """Delete keys and return how many existed."""
        if not keys:
            return 0
        with self._call("delete"):
            return int(self._client.delete(*keys))

    def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set a key's TTL; False when the key does not exist."""
        with self._call("expire"):
            return bool(self._client.expire(key, ttl_seconds))

    def ttl(self, key: str) -> int | None:
        """Remaining TTL in seconds, -1 without expiry, None when absent."""
        with self._call("ttl"):
            remaining = int(self._client.ttl(key))
        # Redis reports -2 for a missing key
        return None if remaining == -2 else remaining

    def get(self, key: str) -> str | None:
        """Get a string value."""
        with self._call("get"):
            return self._client.get(key)

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Set a string value, optionally with a TTL."""
        with self._call("set"):
            self._client.set(key, value, ex=ttl_seconds)

    def acquire_lease(self, key: str, token: str, ttl_seconds: int) -> bool:
        """Set key to token only if absent (SET NX EX)."""
        with self._call("acquire_lease"):
            return bool(self._client.set(key, token, nx=True, ex=ttl_seconds))

    def release_lease(self, key: str, token: str) -> bool:
        """Delete key only if it still holds token."""
        with self._call("release_lease"):
            return bool(self._client.eval(_RELEASE_LEASE_LUA, 1, key, token))
