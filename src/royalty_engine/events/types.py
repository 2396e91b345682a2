"""Domain event types for disbursements.

All events are:
- Immutable (frozen dataclasses)
- Typed with explicit payloads
- Traceable via metadata (correlation_id is the transaction id)
- Serializable for logging and downstream delivery

Events are emitted only after the transaction record has been written, so
a subscriber never observes a state the audit trail does not contain.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import uuid4

from royalty_engine.calculators.types import serialize_value, utcnow


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    PURCHASE = "purchase"
    VALIDATION = "validation"
    PAYOUT = "payout"
    DISBURSEMENT = "disbursement"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: str
    timestamp: datetime
    correlation_id: str  # Transaction the event belongs to
    source_service: str = "royalty_engine"
    version: int = 1  # Schema version for evolution

    @classmethod
    def create(cls, correlation_id: str, source_service: str = "royalty_engine") -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4().hex,
            timestamp=utcnow(),
            correlation_id=correlation_id,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = serialize_value(asdict(self))
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


@dataclass(frozen=True)
class PurchaseReceived(DomainEvent):
    """A purchase was claimed for disbursement."""

    transaction_id: str
    purchase_id: str
    work_id: str
    total_amount: Decimal
    currency: str
    rail: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.PURCHASE


@dataclass(frozen=True)
class SplitRejected(DomainEvent):
    """The purchase failed validation or calculation; no money moved."""

    transaction_id: str
    work_id: str
    error_codes: tuple[str, ...]
    errors: tuple[str, ...]

    @property
    def category(self) -> EventCategory:
        return EventCategory.VALIDATION


@dataclass(frozen=True)
class PayoutCompleted(DomainEvent):
    """A distribution line was paid."""

    transaction_id: str
    work_id: str
    line_index: int
    recipient_id: str | None
    recipient_name: str
    amount: Decimal
    currency: str
    external_reference: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYOUT


@dataclass(frozen=True)
class PayoutFailed(DomainEvent):
    """A distribution line could not be paid and awaits reconciliation."""

    transaction_id: str
    work_id: str
    line_index: int
    recipient_id: str | None
    recipient_name: str
    amount: Decimal
    currency: str
    failure_reason: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYOUT


@dataclass(frozen=True)
class DisbursementFinished(DomainEvent):
    """A transaction record reached a terminal status."""

    transaction_id: str
    work_id: str
    overall_status: str
    completed_count: int
    failed_count: int
    redrive_of: str | None = None

    @property
    def category(self) -> EventCategory:
        return EventCategory.DISBURSEMENT
