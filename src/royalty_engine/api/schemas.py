"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from royalty_engine.calculators.types import (
    DisbursementState,
    LineStatus,
    PaymentRail,
    PurchaseEvent,
    RecipientRole,
    SplitShare,
    TransactionStatus,
)


# ============================================================================
# Split ledger schemas
# ============================================================================


class SplitShareIn(BaseModel):
    """One share of a proposed or published split."""

    recipient_name: str
    role: RecipientRole = RecipientRole.OTHER
    percentage: Decimal
    recipient_id: str | None = None

    def to_domain(self) -> SplitShare:
        return SplitShare(
            recipient_name=self.recipient_name,
            role=self.role,
            percentage=self.percentage,
            recipient_id=self.recipient_id,
        )


class SplitProposal(BaseModel):
    """Schema for validating a split without storing it."""

    shares: list[SplitShareIn]


class SplitLedgerPublish(BaseModel):
    """Schema for publishing a work's split ledger."""

    title: str | None = None
    shares: list[SplitShareIn] = Field(min_length=1)


class SplitShareResponse(BaseModel):
    """Schema for a stored split share."""

    model_config = ConfigDict(from_attributes=True)

    recipient_name: str
    role: RecipientRole
    percentage: Decimal
    recipient_id: str | None = None


class SplitLedgerResponse(BaseModel):
    """Schema for a work's split ledger."""

    model_config = ConfigDict(from_attributes=True)

    work_id: str
    title: str | None = None
    locked: bool
    shares: list[SplitShareResponse]
    total_percentage: Decimal


class ValidationIssueResponse(BaseModel):
    """A violated split rule."""

    model_config = ConfigDict(from_attributes=True)

    code: str
    message: str
    recipient_name: str | None = None


class ValidationResponse(BaseModel):
    """Schema for split validation results."""

    model_config = ConfigDict(from_attributes=True)

    valid: bool
    score: int
    errors: list[ValidationIssueResponse]
    recommendations: list[str]


class DailyStatsResponse(BaseModel):
    """Sales for one day."""

    model_config = ConfigDict(from_attributes=True)

    day: date
    license_count: int
    revenue: Decimal


class RoyaltyReportResponse(BaseModel):
    """Schema for a work's royalty report."""

    work_id: str
    ledger: SplitLedgerResponse
    license_count: int
    total_revenue: Decimal
    total_paid: Decimal
    transaction_count: int
    awaiting_reconciliation: list[str]
    daily: list[DailyStatsResponse] = []


class RecipientEarningsResponse(BaseModel):
    """Running payout total for a registered recipient."""

    recipient_id: str
    total_earnings: Decimal


# ============================================================================
# Purchase and transaction schemas
# ============================================================================


class PurchaseCreate(BaseModel):
    """Schema for a license purchase handed over by checkout."""

    purchase_id: str = Field(min_length=1, max_length=128)
    work_id: str = Field(min_length=1, max_length=64)
    buyer_id: str = Field(min_length=1, max_length=64)
    total_amount: Decimal
    currency: str = Field(default="USD", min_length=3, max_length=3)
    requested_rail: PaymentRail = PaymentRail.CARD

    def to_domain(self) -> PurchaseEvent:
        return PurchaseEvent(
            purchase_id=self.purchase_id,
            work_id=self.work_id,
            buyer_id=self.buyer_id,
            total_amount=self.total_amount,
            currency=self.currency.upper(),
            requested_rail=self.requested_rail,
        )


class PurchaseAccepted(BaseModel):
    """Schema for an accepted purchase."""

    purchase_id: str
    transaction_id: str


class PurchaseOutcomeResponse(BaseModel):
    """Buyer-facing view: a single outcome, no per-recipient detail."""

    purchase_id: str
    transaction_id: str
    status: str  # processing, license_granted, declined
    license_granted: bool


class DistributionLineResponse(BaseModel):
    """Schema for a distribution line."""

    model_config = ConfigDict(from_attributes=True)

    line_index: int
    recipient_id: str | None = None
    recipient_name: str
    role: RecipientRole
    percentage: Decimal
    amount: Decimal
    status: LineStatus
    external_reference: str | None = None
    error: str | None = None


class TransactionResponse(BaseModel):
    """Schema for a transaction record (operator view)."""

    model_config = ConfigDict(from_attributes=True)

    transaction_id: str
    purchase_id: str
    work_id: str
    buyer_id: str
    total_amount: Decimal
    currency: str
    rail: PaymentRail
    state: DisbursementState
    overall_status: TransactionStatus
    validation_score: int | None = None
    distributions: list[DistributionLineResponse]
    errors: list[ValidationIssueResponse]
    recommendations: list[str]
    redrive_of: str | None = None
    license_granted: bool
    total_paid: Decimal
    created_at: datetime
    completed_at: datetime | None = None


class TransactionListResponse(BaseModel):
    """Schema for listing transactions."""

    items: list[TransactionResponse]
    total: int


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
