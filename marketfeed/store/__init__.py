"""SQLite item store for prediction-market listings.

This module provides persistent storage for:
- Market items with idempotent upserts and change detection
- Derived confidence and trend scores written back by rebuilds
- Eligibility, segment and chronological queries used by the feed
"""

from marketfeed.store.errors import (
    ItemNotFoundError,
    ItemStoreError,
    ItemStoreUnavailableError,
    MigrationError,
    StoreConnectionError,
)
from marketfeed.store.hash import compute_content_hash
from marketfeed.store.metrics import StoreMetrics
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
from marketfeed.store.store import ItemStore


__all__ = [
    # Errors
    "ItemNotFoundError",
    "ItemStoreError",
    "ItemStoreUnavailableError",
    "MigrationError",
    "StoreConnectionError",
    # Hash utilities
    "compute_content_hash",
    # Metrics
    "StoreMetrics",
    # Models
    "DEFAULT_CATEGORY",
    "DEFAULT_SEGMENT",
    "ItemEventType",
    "ItemStoreStats",
    "MarketItem",
    "MarketSource",
    "UpsertResult",
    "make_item_id",
    # Store
    "ItemStore",
]
