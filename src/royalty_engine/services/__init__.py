"""Disbursement services: stores, orchestration, notifications, facade."""

from royalty_engine.services.engine import RoyaltyEngine, stub_ports
from royalty_engine.services.notifications import (
    LoggingNotifier,
    Notification,
    NotificationDispatcher,
    Notifier,
)
from royalty_engine.services.orchestrator import DisbursementOrchestrator
from royalty_engine.services.record_store import (
    InMemoryTransactionRecordStore,
    SqlTransactionRecordStore,
    TransactionRecordStore,
)
from royalty_engine.services.state_machine import (
    DisbursementStateMachine,
    InvalidTransitionError,
)
from royalty_engine.services.work_catalog import (
    InMemoryWorkCatalog,
    SqlWorkCatalog,
    WorkCatalog,
)

__all__ = [
    "RoyaltyEngine",
    "stub_ports",
    "DisbursementOrchestrator",
    "DisbursementStateMachine",
    "InvalidTransitionError",
    "TransactionRecordStore",
    "InMemoryTransactionRecordStore",
    "SqlTransactionRecordStore",
    "WorkCatalog",
    "InMemoryWorkCatalog",
    "SqlWorkCatalog",
    "Notification",
    "Notifier",
    "LoggingNotifier",
    "NotificationDispatcher",
]
