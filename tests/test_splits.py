"""Tests for the split calculators."""

from decimal import Decimal

import pytest

from splitledger.models.ledger import SplitType
from splitledger.splits import (
    SplitCalculationError,
    calculate_splits,
    equal_splits,
    exact_splits,
    percentage_splits,
)


def amounts(splits):
    return [s.amount for s in splits]


class TestEqualSplits:
    """Tests for equal_splits."""

    def test_even_division(self):
        """Test a total that divides cleanly."""
        splits = equal_splits(Decimal("1200"), ["a", "b", "c"])
        assert amounts(splits) == [Decimal("400.00")] * 3

    def test_remainder_goes_to_trailing_members(self):
        """Test 1000 three ways is 333.33, 333.33, 333.34."""
        splits = equal_splits(Decimal("1000"), ["a", "b", "c"])
        assert amounts(splits) == [Decimal("333.33"), Decimal("333.33"), Decimal("333.34")]
        assert sum(amounts(splits)) == Decimal("1000.00")

    def test_two_cent_remainder(self):
        """Test each trailing member takes at most one extra cent."""
        splits = equal_splits(Decimal("100.02"), ["a", "b", "c", "d"])
        assert amounts(splits) == [
            Decimal("25.00"), Decimal("25.00"), Decimal("25.01"), Decimal("25.01"),
        ]

    def test_payer_is_marked_paid(self):
        """Test the payer's own share is flagged as paid."""
        splits = equal_splits(Decimal("90"), ["a", "b", "c"], paid_by="b")
        assert [s.is_paid for s in splits] == [False, True, False]

    def test_requires_members(self):
        """Test splitting among nobody fails."""
        with pytest.raises(SplitCalculationError):
            equal_splits(Decimal("10"), [])

    def test_rejects_duplicate_members(self):
        """Test a member can't be listed twice."""
        with pytest.raises(SplitCalculationError):
            equal_splits(Decimal("10"), ["a", "a"])

    def test_rejects_non_positive_total(self):
        """Test a zero total can't be split."""
        with pytest.raises(SplitCalculationError):
            equal_splits(Decimal("0"), ["a", "b"])


class TestExactSplits:
    """Tests for exact_splits."""

    def test_amounts_that_add_up(self):
        """Test given shares are used as-is."""
        splits = exact_splits(Decimal("100"), {"a": "70", "b": "30"})
        assert amounts(splits) == [Decimal("70.00"), Decimal("30.00")]

    def test_amounts_that_do_not_add_up(self):
        """Test a one-cent gap is reported, not absorbed."""
        with pytest.raises(SplitCalculationError, match="unassigned"):
            exact_splits(Decimal("100"), {"a": "70", "b": "29.99"})

    def test_negative_share(self):
        """Test negative shares are refused."""
        with pytest.raises(SplitCalculationError, match="Negative share"):
            exact_splits(Decimal("100"), {"a": "150", "b": "-50"})


class TestPercentageSplits:
    """Tests for percentage_splits."""

    def test_percentages(self):
        """Test a 50/30/20 split."""
        splits = percentage_splits(Decimal("200"), {"a": 50, "b": 30, "c": 20})
        assert amounts(splits) == [Decimal("100.00"), Decimal("60.00"), Decimal("40.00")]

    def test_last_member_absorbs_rounding(self):
        """Test thirds of 100 still add up."""
        splits = percentage_splits(
            Decimal("100"),
            {"a": "33.33", "b": "33.33", "c": "33.34"},
        )
        assert amounts(splits) == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]
        assert sum(amounts(splits)) == Decimal("100.00")

    def test_must_total_one_hundred(self):
        """Test percentages that don't add to 100 are refused."""
        with pytest.raises(SplitCalculationError, match="expected 100"):
            percentage_splits(Decimal("100"), {"a": 60, "b": 30})


class TestCalculateSplits:
    """Tests for the split type dispatcher."""

    def test_equal(self):
        """Test dispatching an equal split."""
        splits = calculate_splits(SplitType.EQUAL, Decimal("30"), ["a", "b", "c"])
        assert amounts(splits) == [Decimal("10.00")] * 3

    def test_exact_uses_selected_members(self):
        """Test only the listed members' values are used."""
        splits = calculate_splits(
            SplitType.EXACT,
            Decimal("50"),
            ["a", "b"],
            values={"a": "20", "b": "30", "c": "999"},
        )
        assert [s.user_id for s in splits] == ["a", "b"]

    def test_missing_value(self):
        """Test every member needs a value for exact and percentage splits."""
        with pytest.raises(SplitCalculationError, match="No value given"):
            calculate_splits(SplitType.PERCENTAGE, Decimal("50"), ["a", "b"], values={"a": 100})
