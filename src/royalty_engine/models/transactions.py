"""Transaction record models (the disbursement audit trail)."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from royalty_engine.models.base import Base, TimestampMixin


class Transaction(Base, TimestampMixin):
    """One purchase's disbursement. Append-only; never deleted."""

    __tablename__ = "transaction_record"

    transaction_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    # One record per idempotency key (purchase_id for originals)
    idempotency_key: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    purchase_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    work_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    buyer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    rail: Mapped[str] = mapped_column(String(16), nullable=False)
    state: Mapped[str] = mapped_column(String(32), nullable=False)
    overall_status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    validation_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    errors_json: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    recommendations_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    redrive_of: Mapped[str | None] = mapped_column(
        String(64),
        ForeignKey("transaction_record.transaction_id"),
        nullable=True,
        index=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "overall_status IN ('processing', 'completed', 'partially_failed', 'failed')",
            name="transaction_record_status_check",
        ),
    )

    # Relationships
    distributions: Mapped[list[TransactionDistribution]] = relationship(
        back_populates="transaction",
        order_by="TransactionDistribution.line_index",
        cascade="all",
    )


class TransactionDistribution(Base):
    """A distribution line with its terminal payout status."""

    __tablename__ = "transaction_distribution"

    transaction_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("transaction_record.transaction_id"),
        primary_key=True,
    )
    line_index: Mapped[int] = mapped_column(Integer, primary_key=True)
    recipient_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    percentage: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    external_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="transaction_distribution_amount_check"),
        CheckConstraint(
            "status IN ('pending', 'executing', 'completed', 'failed')",
            name="transaction_distribution_status_check",
        ),
    )

    # Relationships
    transaction: Mapped[Transaction] = relationship(back_populates="distributions")
