"""Fast sorted-set store used for RankedSets and rebuild leases."""

from marketfeed.cache.base import SortedSetStore
from marketfeed.cache.errors import FastStoreUnavailableError
from marketfeed.cache.keys import data_key, pointer_key, rebuild_lease_key
from marketfeed.cache.memory import InMemorySortedSetStore
from marketfeed.cache.redis_store import RedisSortedSetStore


__all__ = [
    "FastStoreUnavailableError",
    "InMemorySortedSetStore",
    "RedisSortedSetStore",
    "SortedSetStore",
    "data_key",
    "pointer_key",
    "rebuild_lease_key",
]
