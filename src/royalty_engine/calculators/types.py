"""Type definitions for the split and distribution pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

HUNDRED = Decimal("100")

# Minor-unit exponent per ISO 4217 code; anything unlisted uses cents.
CURRENCY_EXPONENTS: dict[str, int] = {
    "USD": 2,
    "EUR": 2,
    "GBP": 2,
    "CAD": 2,
    "AUD": 2,
    "JPY": 0,
    "KRW": 0,
}


def currency_quantum(currency: str) -> Decimal:
    """Smallest representable amount (one minor unit) for a currency."""
    exponent = CURRENCY_EXPONENTS.get(currency.upper(), 2)
    return Decimal(1).scaleb(-exponent)


def parse_decimal(value: Any) -> Decimal:
    """Coerce a JSON-ish value to Decimal without passing through float."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"Not a decimal value: {value!r}") from e


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecipientRole(str, Enum):
    """Role a recipient plays in a work."""

    ARTIST = "artist"
    PRODUCER = "producer"
    SONGWRITER = "songwriter"
    LABEL = "label"
    PUBLISHER = "publisher"
    OTHER = "other"


class PaymentRail(str, Enum):
    """Payment rails a buyer can request."""

    CARD = "card"
    ON_CHAIN = "on_chain"


class LineStatus(str, Enum):
    """Distribution line status."""

    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


class TransactionStatus(str, Enum):
    """Overall status of a transaction record."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"


class DisbursementState(str, Enum):
    """Stages a purchase moves through while being disbursed."""

    VALIDATING = "validating"
    CALCULATING = "calculating"
    EXECUTING = "executing"
    AGGREGATING = "aggregating"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset(
    {
        TransactionStatus.COMPLETED,
        TransactionStatus.PARTIALLY_FAILED,
        TransactionStatus.FAILED,
    }
)


def serialize_value(obj: Any) -> Any:
    """Recursively convert values for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: serialize_value(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [serialize_value(v) for v in obj]
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    return obj


@dataclass(frozen=True)
class SplitShare:
    """One recipient's declared share of a work.

    ``recipient_id`` is None for payees that are not registered on the
    marketplace; they are still owed their share but cannot be paid until
    a payout profile exists.
    """

    recipient_name: str
    role: RecipientRole
    percentage: Decimal
    recipient_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SplitShare:
        return cls(
            recipient_name=str(data.get("recipient_name") or ""),
            role=RecipientRole(data.get("role", RecipientRole.OTHER.value)),
            percentage=parse_decimal(data["percentage"]),
            recipient_id=data.get("recipient_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        return serialize_value(asdict(self))


@dataclass(frozen=True)
class SplitLedger:
    """Declared ownership percentages for a work."""

    work_id: str
    shares: tuple[SplitShare, ...]
    title: str | None = None
    locked: bool = False

    @property
    def total_percentage(self) -> Decimal:
        return sum((s.percentage for s in self.shares), Decimal("0"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "work_id": self.work_id,
            "title": self.title,
            "locked": self.locked,
            "shares": [s.to_dict() for s in self.shares],
            "total_percentage": str(self.total_percentage),
        }


@dataclass(frozen=True)
class PurchaseEvent:
    """A license purchase whose buyer funds are already authorized."""

    purchase_id: str
    work_id: str
    buyer_id: str
    total_amount: Decimal
    currency: str = "USD"
    requested_rail: PaymentRail = PaymentRail.CARD
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return serialize_value(asdict(self))


@dataclass(frozen=True)
class ValidationIssue:
    """A single violated split rule."""

    code: str  # sum_mismatch, percentage_out_of_range, blank_recipient_name, ...
    message: str
    recipient_name: str | None = None


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a split ledger."""

    valid: bool
    score: int
    errors: tuple[ValidationIssue, ...] = ()
    recommendations: tuple[str, ...] = ()

    @property
    def error_messages(self) -> list[str]:
        return [issue.message for issue in self.errors]

    @property
    def error_codes(self) -> list[str]:
        return [issue.code for issue in self.errors]

    def to_dict(self) -> dict[str, Any]:
        return serialize_value(asdict(self))


@dataclass
class DistributionLine:
    """One recipient's computed share of one purchase."""

    line_index: int
    recipient_name: str
    role: RecipientRole
    percentage: Decimal
    amount: Decimal
    recipient_id: str | None = None
    status: LineStatus = LineStatus.PENDING
    external_reference: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return serialize_value(asdict(self))


@dataclass
class TransactionRecord:
    """Audit record of one purchase's disbursement."""

    transaction_id: str
    purchase_id: str
    work_id: str
    buyer_id: str
    total_amount: Decimal
    currency: str
    rail: PaymentRail
    state: DisbursementState = DisbursementState.VALIDATING
    overall_status: TransactionStatus = TransactionStatus.PROCESSING
    validation_score: int | None = None
    distributions: list[DistributionLine] = field(default_factory=list)
    errors: list[ValidationIssue] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    redrive_of: str | None = None
    idempotency_key: str | None = None  # purchase_id, or redrive:{original}:{round}
    created_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.overall_status in TERMINAL_STATUSES

    @property
    def license_granted(self) -> bool:
        """Buyer-facing outcome: the sale went through."""
        return self.is_terminal and self.overall_status != TransactionStatus.FAILED

    @property
    def completed_lines(self) -> list[DistributionLine]:
        return [d for d in self.distributions if d.status == LineStatus.COMPLETED]

    @property
    def failed_lines(self) -> list[DistributionLine]:
        return [d for d in self.distributions if d.status == LineStatus.FAILED]

    @property
    def total_paid(self) -> Decimal:
        return sum((d.amount for d in self.completed_lines), Decimal("0"))

    def to_dict(self) -> dict[str, Any]:
        data = serialize_value(asdict(self))
        data["license_granted"] = self.license_granted
        data["total_paid"] = str(self.total_paid)
        return data


@dataclass(frozen=True)
class WorkStats:
    """Aggregate sales statistics for a work."""

    work_id: str
    license_count: int = 0
    total_revenue: Decimal = Decimal("0")


@dataclass(frozen=True)
class WorkDailyStats:
    """Sales statistics for a work on one day."""

    work_id: str
    day: date
    license_count: int = 0
    revenue: Decimal = Decimal("0")


@dataclass(frozen=True)
class RoyaltyReport:
    """Per-work summary for rights holders."""

    ledger: SplitLedger
    stats: WorkStats
    total_paid: Decimal
    transaction_count: int
    awaiting_reconciliation: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "work_id": self.ledger.work_id,
            "ledger": self.ledger.to_dict(),
            "license_count": self.stats.license_count,
            "total_revenue": str(self.stats.total_revenue),
            "total_paid": str(self.total_paid),
            "transaction_count": self.transaction_count,
            "awaiting_reconciliation": list(self.awaiting_reconciliation),
        }
