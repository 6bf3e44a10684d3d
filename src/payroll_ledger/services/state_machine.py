"""Pay-period closure state machine with transition validation."""

from __future__ import annotations

from enum import Enum


class PeriodClosureState(str, Enum):
    """Progress of one pay period inside a closure invocation."""

    PENDING = "pending"
    FETCHED = "fetched"
    EMPTY = "empty"
    ARCHIVED = "archived"
    REMOVED = "removed"
    DONE = "done"
    FAILED = "failed"


class ClosureRunState(str, Enum):
    """State of a whole closure invocation."""

    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class PeriodClosureStateMachine:
    """State machine for a single period's closure.

    Allowed transitions:
    - pending → fetched
    - fetched → empty (no active rows)
    - fetched → archived
    - archived → removed
    - empty → done
    - removed → done
    - any non-terminal state → failed
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PeriodClosureState.PENDING: [PeriodClosureState.FETCHED, PeriodClosureState.FAILED],
        PeriodClosureState.FETCHED: [
            PeriodClosureState.EMPTY,
            PeriodClosureState.ARCHIVED,
            PeriodClosureState.FAILED,
        ],
        PeriodClosureState.EMPTY: [PeriodClosureState.DONE, PeriodClosureState.FAILED],
        PeriodClosureState.ARCHIVED: [PeriodClosureState.REMOVED, PeriodClosureState.FAILED],
        PeriodClosureState.REMOVED: [PeriodClosureState.DONE, PeriodClosureState.FAILED],
        PeriodClosureState.DONE: [],  # Terminal state
        PeriodClosureState.FAILED: [],  # Terminal state
    }

    TERMINAL = {PeriodClosureState.DONE, PeriodClosureState.FAILED}

    # States in which history rows may exist for the period's active rows
    ARCHIVE_WRITTEN = {PeriodClosureState.ARCHIVED, PeriodClosureState.REMOVED}

    # Stage label reported when a period fails while in this state
    FAILURE_STAGE: dict[str, str] = {
        PeriodClosureState.PENDING: "fetch",
        PeriodClosureState.FETCHED: "archive",
        PeriodClosureState.EMPTY: "finalize",
        PeriodClosureState.ARCHIVED: "remove",
        PeriodClosureState.REMOVED: "finalize",
        PeriodClosureState.DONE: "unlock",
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in cls.TERMINAL

    @classmethod
    def failure_stage(cls, status: str) -> str:
        """Name the closure step that was running when a period failed in ``status``."""
        return cls.FAILURE_STAGE.get(status, "unknown")

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])


class ClosureRunStateMachine:
    """Invocation-level states: running → completed | aborted."""

    VALID_TRANSITIONS: dict[str, list[str]] = {
        ClosureRunState.RUNNING: [ClosureRunState.COMPLETED, ClosureRunState.ABORTED],
        ClosureRunState.COMPLETED: [],
        ClosureRunState.ABORTED: [],
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        return to_status in cls.VALID_TRANSITIONS.get(from_status, [])

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)
