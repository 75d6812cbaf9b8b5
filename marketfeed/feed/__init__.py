"""Paginated feed reads over ranked and unranked sources."""

from marketfeed.feed.cursor import (
    Cursor,
    RankCursor,
    TimeCursor,
    decode_cursor,
    encode_cursor,
)
from marketfeed.feed.metrics import FeedMetrics
from marketfeed.feed.models import FeedPage, FeedSource, ItemSummary
from marketfeed.feed.reader import FeedReader


__all__ = [
    "Cursor",
    "FeedMetrics",
    "FeedPage",
    "FeedReader",
    "FeedSource",
    "ItemSummary",
    "RankCursor",
    "TimeCursor",
    "decode_cursor",
    "encode_cursor",
]
