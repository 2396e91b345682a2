"""ORM models."""

from royalty_engine.models.base import Base, TimestampMixin
from royalty_engine.models.catalog import (
    RecipientEarning,
    Work,
    WorkDailyStat,
    WorkSplitShare,
)
from royalty_engine.models.transactions import Transaction, TransactionDistribution

__all__ = [
    "Base",
    "TimestampMixin",
    "Work",
    "WorkSplitShare",
    "WorkDailyStat",
    "RecipientEarning",
    "Transaction",
    "TransactionDistribution",
]
