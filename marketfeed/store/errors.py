"""Domain exceptions for the item store.

Infrastructure errors (the database is locked or unreachable) are kept apart
from domain errors (an item that does not exist) so that callers can fall
back on the former and report the latter.
"""

from marketfeed.errors import MarketFeedError, TransientStoreError


class ItemStoreError(MarketFeedError):
    """Base exception for item store domain errors."""


class StoreConnectionError(ItemStoreError):
    """Raised when the store is used before connect() or after close()."""

    def __init__(self, message: str = "Database not connected") -> None:
        """Initialize the connection error.

        Args:
            message: Human-readable error message.
        """
        super().__init__(message)


class ItemNotFoundError(ItemStoreError):
    """Raised when a requested market item does not exist."""

    def __init__(self, item_id: str) -> None:
        """Initialize the error with the missing item ID.

        Args:
            item_id: The item ID that was not found.
        """
        self.item_id = item_id
        super().__init__(f"Item not found: {item_id}")


class MigrationError(ItemStoreError):
    """Raised when a schema migration fails."""

    def __init__(self, version: int, message: str) -> None:
        """Initialize the migration error.

        Args:
            version: The migration version that failed.
            message: Human-readable error message.
        """
        self.version = version
        super().__init__(f"Migration {version} failed: {message}")


class ItemStoreUnavailableError(TransientStoreError):
    """Raised when SQLite reports a transient operational failure."""

    def __init__(self, operation: str, message: str = "") -> None:
        """Initialize the error.

        Args:
            operation: Store operation that failed.
            message: Underlying SQLite error message.
        """
        super().__init__("items", operation, message)
