"""Tests for the settlement optimizer."""

from decimal import Decimal
from uuid import uuid4

import pytest

from splitledger.models.ledger import Expense, SettlementInstruction, Split
from splitledger.settlement import (
    SettlementInvariantError,
    SettlementOptimizer,
    apply_instructions,
    compute_balances,
    minimize_transactions,
)


def D(value: str) -> Decimal:
    return Decimal(value)


def as_tuples(instructions):
    return [(i.from_user, i.to_user, i.amount) for i in instructions]


def assert_settled(balances, instructions, tolerance=D("0.01")):
    after = apply_instructions(balances, instructions)
    assert all(abs(v) <= tolerance for v in after.values()), after


class TestMinimizeTransactions:
    """Tests for the greedy largest-creditor/largest-debtor matching."""

    def test_one_creditor_two_debtors(self):
        """Test A+800, B-400, C-400."""
        balances = {"a": D("800"), "b": D("-400"), "c": D("-400")}
        instructions = minimize_transactions(balances)
        assert as_tuples(instructions) == [
            ("b", "a", D("400.00")),
            ("c", "a", D("400.00")),
        ]

    def test_largest_debtor_pays_first(self):
        """Test A+500, B-300, C-200."""
        balances = {"a": D("500"), "b": D("-300"), "c": D("-200")}
        instructions = minimize_transactions(balances)
        assert as_tuples(instructions) == [
            ("b", "a", D("300.00")),
            ("c", "a", D("200.00")),
        ]

    def test_one_debtor_two_creditors(self):
        """Test A+300, B+200, C-500."""
        balances = {"a": D("300"), "b": D("200"), "c": D("-500")}
        instructions = minimize_transactions(balances)
        assert as_tuples(instructions) == [
            ("c", "a", D("300.00")),
            ("c", "b", D("200.00")),
        ]

    def test_all_zero_gives_empty_plan(self):
        """Test a settled group needs no payments."""
        assert minimize_transactions({"a": D("0"), "b": D("0"), "c": D("0")}) == []

    def test_empty_balances(self):
        """Test an empty group needs no payments."""
        assert minimize_transactions({}) == []

    def test_balances_within_tolerance_are_settled(self):
        """Test one-cent balances are treated as zero."""
        assert minimize_transactions({"a": D("0.01"), "b": D("-0.01")}) == []

    def test_balances_just_outside_tolerance_are_not(self):
        """Test two-cent balances still produce a payment."""
        instructions = minimize_transactions({"a": D("0.02"), "b": D("-0.02")})
        assert as_tuples(instructions) == [("b", "a", D("0.02"))]

    def test_creditor_left_unmatched_raises(self):
        """Test a creditor owed only by cent-level debtors is not dropped."""
        with pytest.raises(SettlementInvariantError) as exc_info:
            minimize_transactions({"a": D("0.02"), "b": D("-0.01"), "c": D("-0.01")})
        assert exc_info.value.remaining == D("0.02")

    def test_many_one_cent_shares_raise(self):
        """Test a payer owed 49 one-cent shares is never shown as settled."""
        members = ["a"] + [f"m{i}" for i in range(49)]
        expense = Expense(
            group_id=uuid4(),
            description="Sweets",
            amount=D("0.49"),
            paid_by="a",
            splits=[Split(user_id=m, amount=D("0.01")) for m in members[1:]],
        )
        balances = compute_balances(members, [expense])
        assert balances["a"] == D("0.49")

        with pytest.raises(SettlementInvariantError) as exc_info:
            minimize_transactions(balances)
        assert exc_info.value.remaining == D("0.49")

    def test_ties_follow_input_order(self):
        """Test equal amounts are matched in the order members were given."""
        balances = {"a": D("100"), "b": D("100"), "c": D("-100"), "d": D("-100")}
        instructions = minimize_transactions(balances)
        assert as_tuples(instructions) == [
            ("c", "a", D("100.00")),
            ("d", "b", D("100.00")),
        ]

        reordered = {"b": D("100"), "a": D("100"), "d": D("-100"), "c": D("-100")}
        assert as_tuples(minimize_transactions(reordered)) == [
            ("d", "b", D("100.00")),
            ("c", "a", D("100.00")),
        ]

    def test_is_deterministic(self):
        """Test repeated runs give identical plans."""
        balances = {
            "a": D("120.50"), "b": D("-40.25"), "c": D("-80.25"),
            "d": D("35"), "e": D("-35"),
        }
        first = minimize_transactions(balances)
        for _ in range(5):
            assert minimize_transactions(balances) == first

    def test_at_most_n_minus_one_payments(self):
        """Test the plan never needs more payments than members minus one."""
        balances = {
            "a": D("250.10"), "b": D("-100.05"), "c": D("75.00"),
            "d": D("-300.00"), "e": D("174.95"), "f": D("-100.00"),
        }
        instructions = minimize_transactions(balances)
        assert len(instructions) <= len(balances) - 1
        assert_settled(balances, instructions)

    def test_plan_settles_everyone(self):
        """Test applying the plan brings every balance to zero."""
        balances = {
            "a": D("1000.00"), "b": D("-333.33"), "c": D("-333.33"), "d": D("-333.34"),
        }
        instructions = minimize_transactions(balances)
        assert_settled(balances, instructions)
        assert all(i.amount > 0 for i in instructions)

    def test_drift_within_tolerance_is_accepted(self):
        """Test a one-cent drift from rounding still settles."""
        balances = {"a": D("10.01"), "b": D("-10.00")}
        instructions = minimize_transactions(balances)
        assert as_tuples(instructions) == [("b", "a", D("10.00"))]

    def test_non_zero_sum_raises(self):
        """Test balances that don't sum to zero are refused."""
        with pytest.raises(SettlementInvariantError) as exc_info:
            minimize_transactions({"a": D("100"), "b": D("-50")})
        assert exc_info.value.remaining == D("50.00")

    def test_negative_tolerance_is_refused(self):
        """Test tolerance must not be negative."""
        with pytest.raises(ValueError):
            minimize_transactions({"a": D("1"), "b": D("-1")}, tolerance=D("-0.01"))

    def test_accepts_string_and_float_amounts(self):
        """Test loose inputs are converted to money first."""
        instructions = minimize_transactions({"a": "12.5", "b": -12.5})
        assert as_tuples(instructions) == [("b", "a", D("12.50"))]

    def test_zero_tolerance(self):
        """Test a stricter tolerance treats a cent as a debt."""
        instructions = minimize_transactions({"a": D("0.01"), "b": D("-0.01")}, tolerance=D("0"))
        assert as_tuples(instructions) == [("b", "a", D("0.01"))]


class TestApplyInstructions:
    """Tests for apply_instructions."""

    def test_moves_money_between_members(self):
        """Test the payer's balance rises and the payee's falls."""
        balances = {"a": D("50"), "b": D("-50")}
        after = apply_instructions(
            balances,
            [SettlementInstruction(from_user="b", to_user="a", amount=D("20"))],
        )
        assert after == {"a": D("30.00"), "b": D("-30.00")}
        assert balances == {"a": D("50"), "b": D("-50")}

    def test_unknown_member(self):
        """Test instructions naming strangers are refused."""
        with pytest.raises(ValueError, match="unknown member"):
            apply_instructions(
                {"a": D("1")},
                [SettlementInstruction(from_user="x", to_user="a", amount=D("1"))],
            )


class TestSettlementOptimizer:
    """Tests for the SettlementOptimizer wrapper."""

    def test_settle(self):
        """Test settle uses the configured tolerance."""
        optimizer = SettlementOptimizer(tolerance=D("0.05"))
        assert optimizer.settle({"a": D("0.04"), "b": D("-0.04")}) == []
        assert len(optimizer.settle({"a": D("1"), "b": D("-1")})) == 1

    def test_settle_reraises_invariant_errors(self):
        """Test invariant violations reach the caller."""
        with pytest.raises(SettlementInvariantError):
            SettlementOptimizer(tolerance=D("0.01")).settle({"a": D("5")})
