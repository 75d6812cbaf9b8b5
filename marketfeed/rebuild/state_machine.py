"""Rebuild lifecycle state machine."""

from enum import Enum, auto
from typing import ClassVar

import structlog


logger = structlog.get_logger()


class RebuildState(Enum):
    """Rebuild lifecycle states.

    State transitions:
        PENDING -> SCORED: Eligible items listed and scored
        SCORED -> PERSISTED: Scores written back (failures isolated)
        PERSISTED -> TOPK_PUBLISHED: Top-K generation published
        TOPK_PUBLISHED -> COMPLETED: Diversity pass finished
        PENDING/SCORED/PERSISTED/TOPK_PUBLISHED -> FAILED: Timeout or abort
    """

    PENDING = auto()
    SCORED = auto()
    PERSISTED = auto()
    TOPK_PUBLISHED = auto()
    COMPLETED = auto()
    FAILED = auto()


class RebuildStateError(Exception):
    """Raised when an invalid rebuild state transition is attempted."""

    def __init__(self, from_state: RebuildState, to_state: RebuildState) -> None:
        """Initialize the error.

        Args:
            from_state: The current state.
            to_state: The attempted target state.
        """
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid rebuild state transition: {from_state.name} -> {to_state.name}"
        )


class RebuildStateMachine:
    """State machine for one rebuild.

    Enforces the phase order of a rebuild and logs invariant violations
    when invalid transitions are attempted.
    """

    VALID_TRANSITIONS: ClassVar[dict[RebuildState, set[RebuildState]]] = {
        RebuildState.PENDING: {RebuildState.SCORED, RebuildState.FAILED},
        RebuildState.SCORED: {RebuildState.PERSISTED, RebuildState.FAILED},
        RebuildState.PERSISTED: {RebuildState.TOPK_PUBLISHED, RebuildState.FAILED},
        RebuildState.TOPK_PUBLISHED: {RebuildState.COMPLETED, RebuildState.FAILED},
        RebuildState.COMPLETED: set(),  # Terminal state
        RebuildState.FAILED: set(),  # Terminal state
    }

    def __init__(self, rebuild_id: str, segment: str) -> None:
        """Initialize the state machine in PENDING state.

        Args:
            rebuild_id: Rebuild identifier for logging.
            segment: Segment being rebuilt.
        """
        self._rebuild_id = rebuild_id
        self._state = RebuildState.PENDING
        self._log = logger.bind(
            component="rebuild", rebuild_id=rebuild_id, segment=segment
        )

    @property
    def state(self) -> RebuildState:
        """Get the current state."""
        return self._state

    def can_transition(self, to_state: RebuildState) -> bool:
        """Check if a transition to the given state is valid.

        Args:
            to_state: The target state.

        Returns:
            True if the transition is valid, False otherwise.
        """
        return to_state in self.VALID_TRANSITIONS.get(self._state, set())

    def transition(self, to_state: RebuildState) -> None:
        """Transition to a new state.

        Args:
            to_state: The target state.

        Raises:
            RebuildStateError: If the transition is invalid.
        """
        if not self.can_transition(to_state):
            self._log.error(
                "invariant_violation",
                error_type="illegal_state_transition",
                from_state=self._state.name,
                to_state=to_state.name,
            )
            raise RebuildStateError(self._state, to_state)

        old_state = self._state
        self._state = to_state
        self._log.debug(
            "rebuild_state_transition",
            from_state=old_state.name,
            to_state=to_state.name,
        )

    def is_terminal(self) -> bool:
        """Check if the current state is terminal."""
        return self._state in (RebuildState.COMPLETED, RebuildState.FAILED)
