"""Disbursement state machine with transition validation."""

from __future__ import annotations

from royalty_engine.calculators.types import DisbursementState, TransactionStatus
from royalty_engine.errors import RoyaltyEngineError


class InvalidTransitionError(RoyaltyEngineError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_state: str, to_state: str, reason: str | None = None):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason
        msg = f"Invalid transition from '{from_state}' to '{to_state}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class DisbursementStateMachine:
    """State machine for a single purchase's disbursement.

    Allowed transitions:
    - validating → calculating
    - validating → failed
    - calculating → executing
    - calculating → failed
    - executing → aggregating
    - aggregating → completed
    - aggregating → partially_failed

    Once executing has begun there is no path back to failed: money may
    already be in flight.
    """

    VALID_TRANSITIONS: dict[DisbursementState, list[DisbursementState]] = {
        DisbursementState.VALIDATING: [DisbursementState.CALCULATING, DisbursementState.FAILED],
        DisbursementState.CALCULATING: [DisbursementState.EXECUTING, DisbursementState.FAILED],
        DisbursementState.EXECUTING: [DisbursementState.AGGREGATING],
        DisbursementState.AGGREGATING: [
            DisbursementState.COMPLETED,
            DisbursementState.PARTIALLY_FAILED,
        ],
        DisbursementState.COMPLETED: [],  # Terminal
        DisbursementState.PARTIALLY_FAILED: [],  # Terminal
        DisbursementState.FAILED: [],  # Terminal
    }

    TERMINAL_STATUS: dict[DisbursementState, TransactionStatus] = {
        DisbursementState.COMPLETED: TransactionStatus.COMPLETED,
        DisbursementState.PARTIALLY_FAILED: TransactionStatus.PARTIALLY_FAILED,
        DisbursementState.FAILED: TransactionStatus.FAILED,
    }

    def __init__(self, initial: DisbursementState = DisbursementState.VALIDATING):
        self.state = initial
        self.history: list[DisbursementState] = [initial]

    @classmethod
    def can_transition(cls, from_state: DisbursementState, to_state: DisbursementState) -> bool:
        """Check if a transition is valid."""
        return to_state in cls.VALID_TRANSITIONS.get(from_state, [])

    @classmethod
    def is_terminal(cls, state: DisbursementState) -> bool:
        return not cls.VALID_TRANSITIONS.get(state)

    @classmethod
    def status_for(cls, state: DisbursementState) -> TransactionStatus:
        """Overall transaction status implied by a state."""
        return cls.TERMINAL_STATUS.get(state, TransactionStatus.PROCESSING)

    def transition(self, to_state: DisbursementState) -> DisbursementState:
        """Move to ``to_state``, raising InvalidTransitionError if not allowed."""
        if not self.can_transition(self.state, to_state):
            raise InvalidTransitionError(self.state.value, to_state.value)
        self.state = to_state
        self.history.append(to_state)
        return to_state
