"""Errors raised by fast-store implementations."""

from marketfeed.errors import TransientStoreError


class FastStoreUnavailableError(TransientStoreError):
    """Raised when the fast sorted-set store cannot be reached."""

    def __init__(self, operation: str, message: str = "") -> None:
        """Initialize the error.

        Args:
            operation: Store operation that failed.
            message: Underlying client error message.
        """
        super().__init__("fast_store", operation, message)
