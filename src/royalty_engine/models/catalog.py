"""Work catalog models: split ledgers, sales statistics, recipient earnings."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from royalty_engine.models.base import Base, TimestampMixin


class Work(Base, TimestampMixin):
    """A licensable work and its aggregate sales counters."""

    __tablename__ = "work"

    work_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ledger_locked: Mapped[bool] = mapped_column(default=False, nullable=False)
    license_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_revenue: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), default=Decimal("0"), nullable=False
    )

    __table_args__ = (
        CheckConstraint("license_count >= 0", name="work_license_count_check"),
    )

    # Relationships
    shares: Mapped[list[WorkSplitShare]] = relationship(
        back_populates="work",
        order_by="WorkSplitShare.position",
        cascade="all, delete-orphan",
    )


class WorkSplitShare(Base):
    """One row of a work's split ledger."""

    __tablename__ = "work_split_share"

    work_split_share_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    work_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("work.work_id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    recipient_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    percentage: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False)

    __table_args__ = (
        UniqueConstraint("work_id", "position", name="work_split_share_position_unique"),
        CheckConstraint(
            "role IN ('artist', 'producer', 'songwriter', 'label', 'publisher', 'other')",
            name="work_split_share_role_check",
        ),
    )

    # Relationships
    work: Mapped[Work] = relationship(back_populates="shares")


class WorkDailyStat(Base):
    """Per-day sales counters for a work."""

    __tablename__ = "work_daily_stat"

    work_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("work.work_id", ondelete="CASCADE"),
        primary_key=True,
    )
    day: Mapped[date] = mapped_column(Date, primary_key=True)
    license_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    revenue: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=Decimal("0"), nullable=False)


class RecipientEarning(Base):
    """Running total paid out to a registered recipient."""

    __tablename__ = "recipient_earning"

    recipient_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_earnings: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), default=Decimal("0"), nullable=False
    )
    payout_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
