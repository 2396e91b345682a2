"""Distribution calculator with exact minor-unit reconciliation."""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal

from royalty_engine.calculators.types import (
    HUNDRED,
    DistributionLine,
    SplitLedger,
    currency_quantum,
)
from royalty_engine.errors import CalculationError


class DistributionCalculator:
    """Splits a payment across a ledger so the lines sum exactly to the total.

    Rounding:
    - each raw share (total * pct / 100) is rounded half-to-even to the
      currency's minor unit
    - the leftover ``delta`` (total - sum of rounded shares) is handed out
      one minor unit at a time, largest remainder first, ties by ledger order
    """

    @staticmethod
    def round_to_minor_unit(amount: Decimal, currency: str = "USD") -> Decimal:
        """Round an amount half-to-even to the currency's minor unit."""
        return amount.quantize(currency_quantum(currency), rounding=ROUND_HALF_EVEN)

    @staticmethod
    def validate_amount(total_amount: Decimal, currency: str = "USD") -> None:
        """Reject totals that cannot be split exactly.

        Raises:
            CalculationError: for non-finite, non-positive, or sub-minor-unit totals.
        """
        if not isinstance(total_amount, Decimal) or not total_amount.is_finite():
            raise CalculationError(f"Malformed amount: {total_amount!r}")
        if total_amount <= 0:
            raise CalculationError("Amount must be greater than zero")
        quantum = currency_quantum(currency)
        if total_amount != total_amount.quantize(quantum):
            raise CalculationError(
                f"Amount {total_amount} has more precision than {currency} allows ({quantum})"
            )

    def calculate(
        self,
        total_amount: Decimal,
        ledger: SplitLedger,
        currency: str = "USD",
    ) -> list[DistributionLine]:
        """Compute per-recipient amounts.

        Args:
            total_amount: Positive amount, already in whole minor units.
            ledger: A ledger that passed validation.
            currency: ISO currency code used for the minor unit.

        Returns:
            One pending DistributionLine per share, in ledger order.
        """
        self.validate_amount(total_amount, currency)
        if not ledger.shares:
            raise CalculationError(f"Split ledger for work {ledger.work_id} has no recipients")

        quantum = currency_quantum(currency)
        raw_amounts = [total_amount * share.percentage / HUNDRED for share in ledger.shares]
        rounded = [self.round_to_minor_unit(raw, currency) for raw in raw_amounts]

        delta_units = int((total_amount - sum(rounded, Decimal("0"))) / quantum)
        if delta_units:
            step = quantum if delta_units > 0 else -quantum
            # Lines whose rounding lost the most in the direction of delta come first.
            order = sorted(
                range(len(rounded)),
                key=lambda i: (-(raw_amounts[i] - rounded[i]) * (1 if delta_units > 0 else -1), i),
            )
            remaining = abs(delta_units)
            cursor = 0
            while remaining:
                index = order[cursor % len(order)]
                cursor += 1
                if rounded[index] + step < 0:
                    continue
                rounded[index] += step
                remaining -= 1

        return [
            DistributionLine(
                line_index=index,
                recipient_id=share.recipient_id,
                recipient_name=share.recipient_name,
                role=share.role,
                percentage=share.percentage,
                amount=amount,
            )
            for index, (share, amount) in enumerate(zip(ledger.shares, rounded))
        ]
