"""Tests for split ledger validation.

Tests verify:
1. Structural rules make a ledger invalid
2. Advisory rules only lower the score
3. Score arithmetic and the floor at zero
4. Thresholds come from ValidatorConfig
"""

from decimal import Decimal

import pytest

from royalty_engine.calculators import SplitValidator
from royalty_engine.calculators.types import SplitLedger
from royalty_engine.config import ValidatorConfig


class TestStructuralRules:
    """Hard failures."""

    def test_valid_two_way_split(self, make_ledger):
        """70/30 artist/producer is valid with a perfect score."""
        result = SplitValidator().validate(
            make_ledger(("Ana", "artist", "70"), ("Bo", "producer", "30"))
        )

        assert result.valid is True
        assert result.score == 100
        assert result.errors == ()
        assert result.recommendations == ()

    def test_over_allocated_split_rejected(self, make_ledger):
        """60/60 sums to 120% and is rejected."""
        result = SplitValidator().validate(
            make_ledger(("Ana", "artist", "60"), ("Bo", "producer", "60"))
        )

        assert result.valid is False
        assert result.error_codes == ["sum_mismatch"]
        assert result.error_messages == ["Total percentage is 120%, must equal 100%"]
        assert result.score == 0

    @pytest.mark.parametrize(
        "percentages,expected_total",
        [
            (("50", "49.5"), "99.5"),
            (("50.5", "50"), "100.5"),
        ],
    )
    def test_sum_outside_tolerance_rejected(self, make_ledger, percentages, expected_total):
        """Totals of 99.5% and 100.5% are outside the 0.01 tolerance."""
        result = SplitValidator().validate(
            make_ledger(("Ana", "artist", percentages[0]), ("Cy", "songwriter", percentages[1]))
        )

        assert result.valid is False
        assert result.error_codes == ["sum_mismatch"]
        assert f"Total percentage is {expected_total}%" in result.error_messages[0]

    def test_sum_within_tolerance_accepted(self, make_ledger):
        """Three equal thirds at 33.33% total 99.99%, within tolerance."""
        result = SplitValidator().validate(
            make_ledger(
                ("Ana", "artist", "33.33"),
                ("Cy", "songwriter", "33.33"),
                ("Di", "artist", "33.33"),
            )
        )

        assert result.valid is True
        assert result.score == 100

    def test_blank_recipient_name_rejected(self, make_ledger):
        """A blank or whitespace-only name is a structural error."""
        result = SplitValidator().validate(
            make_ledger(("   ", "artist", "50"), ("Bo", "producer", "50"))
        )

        assert result.valid is False
        assert result.error_codes == ["blank_recipient_name"]
        assert result.error_messages == ["Recipient name cannot be empty"]
        assert result.score == 90

    def test_out_of_range_percentages_rejected(self, make_ledger):
        """Negative and above-100 shares are rejected even when the sum is 100."""
        result = SplitValidator().validate(
            make_ledger(("Ana", "artist", "-10"), ("Bo", "producer", "110"))
        )

        assert result.valid is False
        assert result.error_codes == ["percentage_out_of_range", "percentage_out_of_range"]
        assert result.error_messages[0] == "Invalid percentage for Ana: -10%"
        assert result.score == 60

    def test_nan_percentage_rejected(self, make_ledger):
        """A NaN share is out of range and does not poison the total."""
        result = SplitValidator().validate(
            make_ledger(("Ana", "artist", "NaN"), ("Bo", "producer", "100"))
        )

        assert result.valid is False
        assert result.error_codes == ["percentage_out_of_range"]
        assert result.error_messages == ["Invalid percentage for Ana: NaN%"]
        assert result.score == 80

    def test_infinite_percentage_rejected(self, make_ledger):
        result = SplitValidator().validate(
            make_ledger(("Ana", "artist", "Infinity"), ("Bo", "producer", "30"))
        )

        assert result.valid is False
        assert result.error_codes == ["sum_mismatch", "percentage_out_of_range"]
        assert result.error_messages[0] == "Total percentage is 30%, must equal 100%"
        assert result.score == 0

    def test_empty_ledger_rejected(self):
        """No shares is both an empty split and a sum mismatch."""
        result = SplitValidator().validate(SplitLedger(work_id="w", shares=()))

        assert result.valid is False
        assert result.error_codes == ["empty_split", "sum_mismatch"]
        assert result.score == 0

    def test_score_floored_at_zero(self, make_ledger):
        """Accumulated penalties never push the score below zero."""
        result = SplitValidator().validate(
            make_ledger(("", "artist", "60"), ("Bo", "producer", "60"))
        )

        assert result.valid is False
        assert set(result.error_codes) == {"sum_mismatch", "blank_recipient_name"}
        assert result.score == 0


class TestAdvisoryRules:
    """Soft recommendations."""

    def test_single_recipient_valid_with_recommendation(self, make_ledger):
        """A solo split is valid but nudged toward adding collaborators."""
        result = SplitValidator().validate(make_ledger(("Ana", "artist", "100")))

        assert result.valid is True
        assert result.score == 95
        assert len(result.recommendations) == 1
        assert "collaborators" in result.recommendations[0]

    def test_low_producer_share_flagged(self, make_ledger):
        """Producer under 5% is flagged against the 15-25% norm."""
        result = SplitValidator().validate(
            make_ledger(("Ana", "artist", "97"), ("Bo", "producer", "3"))
        )

        assert result.valid is True
        assert result.score == 95
        assert "15-25%" in result.recommendations[0]
        assert "Bo" in result.recommendations[0]

    def test_high_label_share_flagged(self, make_ledger):
        """Label over 50% is flagged."""
        result = SplitValidator().validate(
            make_ledger(("Ana", "artist", "40"), ("Big Label", "label", "60"))
        )

        assert result.valid is True
        assert result.score == 95
        assert "Big Label" in result.recommendations[0]

    def test_each_flag_deducts(self, make_ledger):
        """Two low producer shares cost five points each."""
        result = SplitValidator().validate(
            make_ledger(
                ("Ana", "artist", "96"),
                ("Bo", "producer", "2"),
                ("Ed", "producer", "2"),
            )
        )

        assert result.valid is True
        assert result.score == 90
        assert len(result.recommendations) == 2

    def test_label_at_limit_not_flagged(self, make_ledger):
        """Exactly 50% for a label is acceptable."""
        result = SplitValidator().validate(
            make_ledger(("Ana", "artist", "50"), ("Big Label", "label", "50"))
        )

        assert result.recommendations == ()
        assert result.score == 100


class TestValidatorConfig:
    """Thresholds are configuration, not constants."""

    def test_custom_producer_minimum(self, make_ledger):
        validator = SplitValidator(ValidatorConfig(producer_min_percentage=Decimal("20")))

        result = validator.validate(make_ledger(("Ana", "artist", "85"), ("Bo", "producer", "15")))

        assert result.valid is True
        assert len(result.recommendations) == 1

    def test_custom_tolerance(self, make_ledger):
        validator = SplitValidator(ValidatorConfig(sum_tolerance=Decimal("0.5")))

        result = validator.validate(make_ledger(("Ana", "artist", "50"), ("Cy", "songwriter", "49.6")))

        assert result.valid is True

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"sum_tolerance": Decimal("-0.01")},
            {"sum_tolerance": Decimal("1")},
            {"producer_min_percentage": Decimal("101")},
            {"label_max_percentage": Decimal("-1")},
        ],
    )
    def test_invalid_config_rejected(self, kwargs):
        with pytest.raises(ValueError):
            ValidatorConfig(**kwargs)


class TestPurity:
    """Validation has no side effects."""

    def test_validation_is_idempotent(self, make_ledger):
        ledger = make_ledger(("Ana", "artist", "97"), ("Bo", "producer", "3"))
        validator = SplitValidator()

        assert validator.validate(ledger) == validator.validate(ledger)

    def test_result_serializes(self, make_ledger):
        result = SplitValidator().validate(make_ledger(("Ana", "artist", "60"), ("Bo", "artist", "60")))

        data = result.to_dict()

        assert data["valid"] is False
        assert data["errors"][0]["code"] == "sum_mismatch"
