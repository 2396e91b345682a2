"""Disbursement domain events package."""

from royalty_engine.events.emitter import AsyncEventEmitter, HandOff, Listener
from royalty_engine.events.types import (
    DisbursementFinished,
    DomainEvent,
    EventCategory,
    EventMetadata,
    PayoutCompleted,
    PayoutFailed,
    PurchaseReceived,
    SplitRejected,
)

__all__ = [
    # Base
    "DomainEvent",
    "EventMetadata",
    "EventCategory",
    # Events
    "PurchaseReceived",
    "SplitRejected",
    "PayoutCompleted",
    "PayoutFailed",
    "DisbursementFinished",
    # Emitter
    "AsyncEventEmitter",
    "Listener",
    "HandOff",
]
