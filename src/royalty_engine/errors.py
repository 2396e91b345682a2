"""Exception hierarchy for the distribution engine.

Validation and calculation errors abort a disbursement before any money
moves. Port failures are not exceptions at all: they are recorded on the
individual distribution line (see ``royalty_engine.ports.base``).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from royalty_engine.calculators.types import ValidationResult


class RoyaltyEngineError(Exception):
    """Base class for all engine errors."""


class SplitValidationError(RoyaltyEngineError):
    """A split ledger failed structural validation."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(issue.message for issue in result.errors)
        super().__init__(f"Split ledger is invalid: {messages}")


class CalculationError(RoyaltyEngineError):
    """Distribution amounts could not be computed (or routed)."""


class WorkNotFoundError(RoyaltyEngineError):
    """No split ledger exists for the requested work."""

    def __init__(self, work_id: str):
        self.work_id = work_id
        super().__init__(f"Work {work_id} not found")


class TransactionNotFoundError(RoyaltyEngineError):
    """No transaction record exists for the given identifier."""

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} not found")


class LedgerLockedError(RoyaltyEngineError):
    """The split ledger is referenced by a purchase and can no longer change."""

    def __init__(self, work_id: str):
        self.work_id = work_id
        super().__init__(
            f"Split ledger for work {work_id} is referenced by a purchase and cannot be amended"
        )


class ImmutableRecordError(RoyaltyEngineError):
    """A terminal transaction record was about to be mutated."""

    def __init__(self, transaction_id: str, status: str):
        self.transaction_id = transaction_id
        self.status = status
        super().__init__(f"Transaction {transaction_id} is terminal ({status}) and immutable")


class RedriveNotAllowedError(RoyaltyEngineError):
    """The transaction has nothing a re-drive could target."""


class NotificationFailure(RoyaltyEngineError):
    """A recipient notification could not be delivered.

    Only ever logged; it never reaches the disbursement path.
    """
