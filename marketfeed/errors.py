"""Error taxonomy shared by the ranking, cache, and feed layers.

Infrastructure failures (a store that is temporarily unreachable) are kept
apart from domain failures (bad configuration, stale cursors) so that each
boundary can decide whether to fall back, retry, or surface the error.
"""


class MarketFeedError(Exception):
    """Base exception for all marketfeed errors."""


class TransientStoreError(MarketFeedError):
    """Raised when a backing store is temporarily unavailable.

    Readers fall back to the next cheaper source; rebuilds retry with
    backoff or abort the current cycle.
    """

    def __init__(self, store: str, operation: str, message: str = "") -> None:
        """Initialize the error.

        Args:
            store: Name of the store that failed (e.g. 'items', 'redis').
            operation: Operation that was being performed.
            message: Optional underlying error message.
        """
        self.store = store
        self.operation = operation
        detail = f": {message}" if message else ""
        super().__init__(f"{store} unavailable during {operation}{detail}")


class ConfigurationError(MarketFeedError):
    """Raised when ranking configuration is rejected at load or update time."""

    def __init__(self, errors: list[dict[str, str]], source: str = "config") -> None:
        """Initialize the error.

        Args:
            errors: Validation error details (location, message, type).
            source: Where the configuration came from (file path, 'env', 'admin').
        """
        self.errors = errors
        self.source = source
        summary = "; ".join(f"{e['loc']}: {e['msg']}" for e in errors[:3])
        super().__init__(
            f"Invalid configuration from {source} ({len(errors)} errors): {summary}"
        )


class RebuildTimeoutError(MarketFeedError):
    """Raised inside a rebuild when its deadline passes before publishing."""

    def __init__(self, segment: str, timeout_seconds: float, phase: str) -> None:
        """Initialize the error.

        Args:
            segment: Segment being rebuilt.
            timeout_seconds: Configured rebuild timeout.
            phase: Phase that was running when the deadline passed.
        """
        self.segment = segment
        self.timeout_seconds = timeout_seconds
        self.phase = phase
        super().__init__(
            f"Rebuild of '{segment}' exceeded {timeout_seconds}s during {phase}"
        )


class RebuildAbortedError(MarketFeedError):
    """Raised when a rebuild cannot proceed after exhausting retries."""

    def __init__(self, segment: str, reason: str) -> None:
        """Initialize the error.

        Args:
            segment: Segment being rebuilt.
            reason: Why the rebuild was abandoned.
        """
        self.segment = segment
        self.reason = reason
        super().__init__(f"Rebuild of '{segment}' aborted: {reason}")


class FeedError(MarketFeedError):
    """Base class for errors surfaced to feed callers."""


class InvalidPageRequestError(FeedError):
    """Raised when a page request has an out-of-range limit."""

    def __init__(self, limit: int, max_limit: int) -> None:
        """Initialize the error.

        Args:
            limit: Requested page size.
            max_limit: Largest page size allowed.
        """
        self.limit = limit
        self.max_limit = max_limit
        super().__init__(f"Page limit must be between 1 and {max_limit}, got {limit}")


class InvalidCursorError(FeedError):
    """Raised when a cursor cannot be decoded or belongs to another segment."""

    def __init__(self, reason: str) -> None:
        """Initialize the error.

        Args:
            reason: What is wrong with the cursor.
        """
        self.reason = reason
        super().__init__(f"Invalid cursor: {reason}")


class StaleCursorError(FeedError):
    """Raised when a cursor points at a RankedSet that is no longer live.

    Callers should resync by requesting the first page again.
    """

    def __init__(self, segment: str, source: str, generation: int, reason: str) -> None:
        """Initialize the error.

        Args:
            segment: Segment the cursor was issued for.
            source: RankedSet kind the cursor was issued against.
            generation: Generation embedded in the cursor.
            reason: Why the cursor can no longer be honoured.
        """
        self.segment = segment
        self.source = source
        self.generation = generation
        self.reason = reason
        super().__init__(
            f"Cursor for {source}/{segment} generation {generation} is stale: {reason}"
        )


class FeedUnavailableError(FeedError):
    """Raised only when every read tier failed for a page request."""

    def __init__(self, segment: str, failed_tiers: list[str]) -> None:
        """Initialize the error.

        Args:
            segment: Segment that was requested.
            failed_tiers: Tiers that were attempted and failed.
        """
        self.segment = segment
        self.failed_tiers = failed_tiers
        super().__init__(
            f"Feed '{segment}' unavailable; failed tiers: {', '.join(failed_tiers)}"
        )
