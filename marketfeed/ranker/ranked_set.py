"""Versioned RankedSet publishing over a sorted-set store.

Each publish writes an immutable generation under its own data key, then
overwrites the segment's pointer key with the new metadata. The pointer SET
is the only swap point, so a reader that resolves the pointer once reads a
single consistent generation. The replaced generation is retired with a
short grace TTL instead of being mutated.
"""

import time
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta

import structlog
from pydantic import ValidationError

from marketfeed.cache.base import SortedSetStore
from marketfeed.cache.keys import data_key, pointer_key
from marketfeed.config.schemas.ranking import CacheConfig
from marketfeed.ranker.models import RankedSetKind, RankedSetMeta


logger = structlog.get_logger()


def _utc_now() -> datetime:
    return datetime.now(UTC)


class RankedSetRepository:
    """Publishes and resolves RankedSet generations for segments."""

    def __init__(
        self,
        store: SortedSetStore,
        cache_config: CacheConfig,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize the repository.

        Args:
            store: Backing sorted-set store.
            cache_config: Key prefix and grace settings.
            clock: Wall clock used for built_at/expires_at.
        """
        self._store = store
        self._config = cache_config
        self._clock = clock
        self._log = logger.bind(component="ranker", subcomponent="ranked_set")

    @property
    def store(self) -> SortedSetStore:
        """Backing sorted-set store."""
        return self._store

    def _pointer(self, segment: str, kind: RankedSetKind) -> str:
        return pointer_key(self._config.key_prefix, kind.value, segment)

    def data_key_for(self, meta: RankedSetMeta) -> str:
        """Data key holding the members of a generation."""
        return data_key(
            self._config.key_prefix, meta.kind.value, meta.segment, meta.generation
        )

    def get_meta(self, segment: str, kind: RankedSetKind) -> RankedSetMeta | None:
        """Resolve the live generation of a RankedSet.

        Args:
            segment: Segment name.
            kind: RankedSet kind.

        Returns:
            Metadata of the live generation, or None when absent, expired or
            unreadable.

        Raises:
            FastStoreUnavailableError: If the store cannot be reached.
        """
        raw = self._store.get(self._pointer(segment, kind))
        if raw is None:
            return None
        try:
            meta = RankedSetMeta.from_json(raw)
        except (ValueError, ValidationError):
            self._log.warning(
                "ranked_set_pointer_corrupt", segment=segment, kind=kind.value
            )
            return None
        if meta.is_expired(self._clock()):
            return None
        return meta

    def publish(
        self,
        segment: str,
        kind: RankedSetKind,
        members: Sequence[tuple[str, float]],
        ttl_seconds: int,
        source_generation: int | None = None,
    ) -> RankedSetMeta:
        """Publish a new generation and swap the pointer to it.

        Args:
            segment: Segment name.
            kind: RankedSet kind.
            members: (item_id, score) pairs.
            ttl_seconds: How long the generation is served.
            source_generation: TOP generation a DIVERSITY set derives from.

        Returns:
            Metadata of the published generation.

        Raises:
            FastStoreUnavailableError: If the store cannot be reached. The
                previous generation stays live in that case.
        """
        previous = self.get_meta(segment, kind)
        generation = time.time_ns() // 1000
        if previous is not None:
            generation = max(generation, previous.generation + 1)

        now = self._clock()
        meta = RankedSetMeta(
            segment=segment,
            kind=kind,
            generation=generation,
            size=len(members),
            built_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
            source_generation=source_generation,
        )

        grace = self._config.retired_grace_seconds
        self._store.replace(self.data_key_for(meta), members, ttl_seconds + grace)
        self._store.set(self._pointer(segment, kind), meta.to_json(), ttl_seconds)

        if previous is not None:
            self._store.expire(self.data_key_for(previous), grace)

        self._log.info(
            "ranked_set_published",
            segment=segment,
            kind=kind.value,
            generation=generation,
            size=meta.size,
            ttl_seconds=ttl_seconds,
            previous_generation=previous.generation if previous else None,
        )
        return meta

    def read_range(
        self, meta: RankedSetMeta, start: int, stop: int
    ) -> list[tuple[str, float]]:
        """Read members of a generation in served order.

        TOP sets are served by descending confidence; DIVERSITY sets by
        ascending walk position.

        Args:
            meta: Generation to read.
            start: First rank (inclusive, 0-based).
            stop: Last rank (inclusive).

        Returns:
            (item_id, score) pairs.
        """
        key = self.data_key_for(meta)
        if meta.kind is RankedSetKind.TOP:
            return self._store.range_by_rank_desc(key, start, stop)
        return self._store.range_by_rank(key, start, stop)

    def remaining_ttl_seconds(self, meta: RankedSetMeta) -> int:
        """Seconds until a generation stops being served (0 when past)."""
        remaining = (meta.expires_at - self._clock()).total_seconds()
        return max(int(remaining), 0)

    def clear(self, segment: str) -> int:
        """Remove every live RankedSet of a segment.

        Args:
            segment: Segment name.

        Returns:
            Number of keys deleted.
        """
        keys: list[str] = []
        for kind in RankedSetKind:
            meta = self.get_meta(segment, kind)
            if meta is not None:
                keys.append(self.data_key_for(meta))
            keys.append(self._pointer(segment, kind))
        removed = self._store.delete(*keys)
        self._log.info("ranked_sets_cleared", segment=segment, keys_deleted=removed)
        return removed
