"""Base protocol and types for payment execution ports.

All rail adapters must implement the PaymentExecutionPort protocol. The
orchestrator calls ``execute`` once per distribution line and never
re-invokes it for the same line; any retrying a rail needs happens inside
the adapter.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Protocol

from royalty_engine.calculators.types import PaymentRail, RecipientRole


class ExecutionOutcome(str, Enum):
    """Outcome of a single payout."""

    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class PayoutRecipient:
    """Who a payout is for."""

    recipient_name: str
    role: RecipientRole
    recipient_id: str | None = None


@dataclass(frozen=True)
class ExecutionResult:
    """Result of asking a rail to move money to one recipient.

    Failure is an expected outcome (missing payout setup, rail outage,
    fraud hold), not an exception.
    """

    outcome: ExecutionOutcome
    external_reference: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == ExecutionOutcome.SUCCESS

    @classmethod
    def success(cls, external_reference: str) -> ExecutionResult:
        return cls(outcome=ExecutionOutcome.SUCCESS, external_reference=external_reference)

    @classmethod
    def failure(cls, error: str) -> ExecutionResult:
        return cls(outcome=ExecutionOutcome.FAILURE, error=error)


class PayoutProfileStore(Protocol):
    """Resolves a registered recipient to a payout destination."""

    async def resolve(self, recipient_id: str, rail: PaymentRail) -> str | None:
        """Return the destination (account token, wallet address) or None."""
        ...


class InMemoryPayoutProfileStore:
    """Payout profiles held in a dict, keyed by (recipient_id, rail)."""

    def __init__(self, profiles: Mapping[tuple[str, PaymentRail], str] | None = None):
        self._profiles: dict[tuple[str, PaymentRail], str] = dict(profiles or {})

    def register(self, recipient_id: str, rail: PaymentRail, destination: str) -> None:
        self._profiles[(recipient_id, rail)] = destination

    def remove(self, recipient_id: str, rail: PaymentRail) -> None:
        self._profiles.pop((recipient_id, rail), None)

    async def resolve(self, recipient_id: str, rail: PaymentRail) -> str | None:
        return self._profiles.get((recipient_id, rail))


class PaymentExecutionPort(Protocol):
    """Protocol for payment rail adapters.

    Each rail (card processor payouts, on-chain transfers) has its own
    adapter implementing this protocol. The orchestrator uses adapters
    without knowing rail-specific details.
    """

    rail: PaymentRail
    port_name: str

    async def execute(
        self,
        *,
        recipient: PayoutRecipient,
        amount: Decimal,
        currency: str,
        metadata: dict[str, Any],
    ) -> ExecutionResult:
        """Send ``amount`` to ``recipient``.

        Args:
            recipient: Payee identity from the distribution line.
            amount: Positive amount in whole minor units.
            currency: ISO currency code.
            metadata: Audit context, including:
                - idempotency_key: str (unique per line per attempt)
                - transaction_id: str
                - purchase_id: str
                - work_id: str
                - line_index: int

        Returns:
            ExecutionResult with success/failure and a rail reference.
            Must be safe to call concurrently for different recipients.
        """
        ...
