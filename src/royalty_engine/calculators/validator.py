"""Split ledger validation.

Structural checks (hard failures, make the ledger invalid):
- percentages sum to 100 within tolerance
- every percentage in [0, 100]
- every recipient name non-blank
- at least one share

Advisory checks (lower the score, never block):
- single-recipient split
- producer share below the industry floor
- label share above half the work

Validation is pure and idempotent; it runs before any money moves.
"""

from __future__ import annotations

from decimal import Decimal

from royalty_engine.calculators.types import (
    HUNDRED,
    RecipientRole,
    SplitLedger,
    ValidationIssue,
    ValidationResult,
)
from royalty_engine.config import ValidatorConfig


class SplitValidator:
    """Validates split ledgers and scores them against industry norms."""

    def __init__(self, config: ValidatorConfig | None = None):
        self.config = config or ValidatorConfig()

    def validate(self, ledger: SplitLedger) -> ValidationResult:
        """Validate a split ledger.

        Returns:
            ValidationResult; ``valid`` is False if any structural rule
            is violated. ``score`` starts at 100 and is floored at 0.
        """
        cfg = self.config
        errors: list[ValidationIssue] = []
        recommendations: list[str] = []
        score = 100

        if not ledger.shares:
            errors.append(
                ValidationIssue(code="empty_split", message="Split ledger has no recipients")
            )

        # NaN and infinities cannot be ordered; they are reported per share
        total = sum(
            (s.percentage for s in ledger.shares if s.percentage.is_finite()),
            Decimal("0"),
        )
        if abs(total - HUNDRED) > cfg.sum_tolerance:
            errors.append(
                ValidationIssue(
                    code="sum_mismatch",
                    message=f"Total percentage is {_fmt(total)}%, must equal 100%",
                )
            )
            score -= cfg.sum_mismatch_penalty

        for share in ledger.shares:
            if not _in_range(share.percentage):
                errors.append(
                    ValidationIssue(
                        code="percentage_out_of_range",
                        message=(
                            f"Invalid percentage for {share.recipient_name or 'unnamed recipient'}: "
                            f"{_fmt(share.percentage)}%"
                        ),
                        recipient_name=share.recipient_name or None,
                    )
                )
                score -= cfg.out_of_range_penalty
            if not share.recipient_name or not share.recipient_name.strip():
                errors.append(
                    ValidationIssue(
                        code="blank_recipient_name",
                        message="Recipient name cannot be empty",
                    )
                )
                score -= cfg.blank_name_penalty

        if len(ledger.shares) == 1:
            recommendations.append(
                "Consider adding collaborators to your royalty splits for better transparency"
            )
            score -= cfg.advisory_penalty

        for share in ledger.shares:
            if not share.percentage.is_finite():
                continue
            if (
                share.role == RecipientRole.PRODUCER
                and share.percentage < cfg.producer_min_percentage
            ):
                recommendations.append(
                    f"Producer share for {share.recipient_name} is {_fmt(share.percentage)}%; "
                    "industry standard producer splits typically range from 15-25%"
                )
                score -= cfg.advisory_penalty
            elif (
                share.role == RecipientRole.LABEL
                and share.percentage > cfg.label_max_percentage
            ):
                recommendations.append(
                    f"Label share for {share.recipient_name} is {_fmt(share.percentage)}%; "
                    "a label taking more than 50% may not be optimal for artist earnings"
                )
                score -= cfg.advisory_penalty

        return ValidationResult(
            valid=not errors,
            score=max(0, score),
            errors=tuple(errors),
            recommendations=tuple(recommendations),
        )


def _in_range(value: Decimal) -> bool:
    return value.is_finite() and 0 <= value <= HUNDRED


def _fmt(value: Decimal) -> str:
    """Format a percentage without trailing zeros (60.00 -> 60)."""
    if not value.is_finite():
        return str(value)
    normalized = value.normalize()
    if normalized == normalized.to_integral():
        return str(normalized.quantize(Decimal(1)))
    return format(normalized, "f")
