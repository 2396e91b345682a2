"""Payment execution ports."""

from royalty_engine.ports.base import (
    ExecutionOutcome,
    ExecutionResult,
    InMemoryPayoutProfileStore,
    PaymentExecutionPort,
    PayoutProfileStore,
    PayoutRecipient,
)
from royalty_engine.ports.card_stub import CardPayoutStubPort
from royalty_engine.ports.onchain_stub import OnChainStubPort

__all__ = [
    "ExecutionOutcome",
    "ExecutionResult",
    "InMemoryPayoutProfileStore",
    "PaymentExecutionPort",
    "PayoutProfileStore",
    "PayoutRecipient",
    "CardPayoutStubPort",
    "OnChainStubPort",
]
