"""
Tests for balance aggregation.

Balances are pure functions of the ledger, so these tests build
expenses and payments directly and never touch storage. Malformed
records that the models themselves would refuse are built with
model_construct, the way a corrupted storage row would arrive.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from splitledger.models.ledger import Expense, Group, Member, Payment, Split
from splitledger.settlement import (
    BalanceAggregator,
    MalformedLedgerError,
    compute_balances,
    zero_sum_drift,
)

GROUP_ID = uuid4()
MEMBERS = ["a", "b", "c"]


def make_expense(amount, paid_by, shares, group_id=GROUP_ID):
    return Expense(
        group_id=group_id,
        description="Shared cost",
        amount=Decimal(amount),
        paid_by=paid_by,
        splits=[Split(user_id=u, amount=Decimal(s)) for u, s in shares.items()],
    )


def make_payment(from_user, to_user, amount, group_id=GROUP_ID):
    return Payment(
        group_id=group_id,
        from_user=from_user,
        to_user=to_user,
        amount=Decimal(amount),
    )


class TestComputeBalances:
    """Tests for compute_balances."""

    def test_single_expense_equal_split(self):
        """Test A pays 1200 split three ways."""
        expense = make_expense("1200", "a", {"a": "400", "b": "400", "c": "400"})
        balances = compute_balances(MEMBERS, [expense])
        assert balances == {
            "a": Decimal("800.00"),
            "b": Decimal("-400.00"),
            "c": Decimal("-400.00"),
        }

    def test_no_activity_gives_exact_zeros(self):
        """Test every member appears, with zero, when nothing happened."""
        balances = compute_balances(MEMBERS, [])
        assert balances == {"a": Decimal("0"), "b": Decimal("0"), "c": Decimal("0")}

    def test_member_order_is_preserved(self):
        """Test the result follows the given member order."""
        expense = make_expense("90", "c", {"a": "30", "b": "30", "c": "30"})
        balances = compute_balances(["c", "a", "b"], [expense])
        assert list(balances) == ["c", "a", "b"]

    def test_payer_outside_splits(self):
        """Test a payer who doesn't share the expense is credited in full."""
        expense = make_expense("100", "a", {"b": "60", "c": "40"})
        balances = compute_balances(MEMBERS, [expense])
        assert balances["a"] == Decimal("100.00")
        assert balances["b"] == Decimal("-60.00")
        assert balances["c"] == Decimal("-40.00")

    def test_payment_moves_balance_toward_zero(self):
        """Test a debtor's payment clears their debt."""
        expense = make_expense("1200", "a", {"a": "400", "b": "400", "c": "400"})
        payment = make_payment("b", "a", "400")
        balances = compute_balances(MEMBERS, [expense], [payment])
        assert balances == {
            "a": Decimal("400.00"),
            "b": Decimal("0.00"),
            "c": Decimal("-400.00"),
        }

    def test_several_expenses_accumulate(self):
        """Test balances sum over expenses and stay zero-sum."""
        expenses = [
            make_expense("1200", "a", {"a": "400", "b": "400", "c": "400"}),
            make_expense("300", "b", {"a": "100", "b": "100", "c": "100"}),
            make_expense("50.50", "c", {"c": "25.25", "a": "25.25"}),
        ]
        balances = compute_balances(MEMBERS, expenses)
        assert balances["a"] == Decimal("674.75")
        assert balances["b"] == Decimal("-200.00")
        assert balances["c"] == Decimal("-474.75")
        assert zero_sum_drift(balances) == Decimal("0")

    def test_rounded_three_way_split_is_accepted(self):
        """Test 1000 split 333.33/333.33/333.34 balances to zero."""
        expense = make_expense("1000", "a", {"a": "333.33", "b": "333.33", "c": "333.34"})
        balances = compute_balances(MEMBERS, [expense])
        assert balances["a"] == Decimal("666.67")
        assert balances["b"] == Decimal("-333.33")
        assert balances["c"] == Decimal("-333.34")
        assert sum(balances.values()) == Decimal("0")

    def test_is_idempotent(self):
        """Test the same ledger always gives the same balances."""
        expenses = [make_expense("99.99", "b", {"a": "33.33", "b": "33.33", "c": "33.33"})]
        payments = [make_payment("a", "b", "10")]
        first = compute_balances(MEMBERS, expenses, payments)
        second = compute_balances(MEMBERS, expenses, payments)
        assert first == second

    def test_inputs_are_not_mutated(self):
        """Test computing balances leaves the records alone."""
        expense = make_expense("30", "a", {"a": "10", "b": "10", "c": "10"})
        before = expense.model_dump()
        compute_balances(MEMBERS, [expense])
        assert expense.model_dump() == before


class TestMalformedLedger:
    """Tests for records the aggregator refuses."""

    def test_split_for_unknown_member(self):
        """Test a split naming a non-member fails with its expense id."""
        expense = make_expense("100", "a", {"a": "50", "zed": "50"})
        with pytest.raises(MalformedLedgerError, match="unknown member") as exc_info:
            compute_balances(MEMBERS, [expense])
        assert exc_info.value.entity_id == expense.id
        assert exc_info.value.entity_type == "expense"

    def test_payer_not_in_group(self):
        """Test an expense paid by a non-member fails."""
        expense = make_expense("100", "zed", {"a": "50", "b": "50"})
        with pytest.raises(MalformedLedgerError, match="payer"):
            compute_balances(MEMBERS, [expense])

    def test_negative_split(self):
        """Test a negative share fails."""
        expense = Expense.model_construct(
            id=uuid4(),
            group_id=GROUP_ID,
            description="Broken",
            amount=Decimal("100"),
            paid_by="a",
            splits=[
                Split.model_construct(user_id="b", amount=Decimal("150"), is_paid=False),
                Split.model_construct(user_id="c", amount=Decimal("-50"), is_paid=False),
            ],
        )
        with pytest.raises(MalformedLedgerError, match="negative split"):
            compute_balances(MEMBERS, [expense])

    def test_split_sum_outside_tolerance(self):
        """Test splits that miss the total by more than a cent fail."""
        expense = Expense.model_construct(
            id=uuid4(),
            group_id=GROUP_ID,
            description="Broken",
            amount=Decimal("100"),
            paid_by="a",
            splits=[Split(user_id="b", amount=Decimal("99.98"))],
        )
        with pytest.raises(MalformedLedgerError, match="splits add up to"):
            compute_balances(MEMBERS, [expense])

    def test_nothing_is_applied_on_failure(self):
        """Test a bad expense never leaves a partial result behind."""
        good = make_expense("30", "a", {"a": "10", "b": "10", "c": "10"})
        bad = make_expense("30", "a", {"a": "10", "b": "10", "zed": "10"})
        with pytest.raises(MalformedLedgerError):
            compute_balances(MEMBERS, [good, bad])

    def test_payment_to_unknown_member(self):
        """Test payments must stay inside the group."""
        payment = make_payment("a", "zed", "10")
        with pytest.raises(MalformedLedgerError, match="not a group member"):
            compute_balances(MEMBERS, [], [payment])

    def test_self_payment(self):
        """Test a stored self-payment is refused."""
        payment = Payment.model_construct(
            id=uuid4(),
            group_id=GROUP_ID,
            from_user="a",
            to_user="a",
            amount=Decimal("10"),
        )
        with pytest.raises(MalformedLedgerError, match="same"):
            compute_balances(MEMBERS, [], [payment])

    def test_entry_from_another_group(self):
        """Test group_id filtering rejects foreign entries."""
        expense = make_expense("30", "a", {"a": "10", "b": "10", "c": "10"}, group_id=uuid4())
        with pytest.raises(MalformedLedgerError, match="belongs to group"):
            compute_balances(MEMBERS, [expense], group_id=GROUP_ID)


class TestBalanceAggregator:
    """Tests for the BalanceAggregator wrapper."""

    def test_compute_for_group(self):
        """Test balances for every group member."""
        group = Group(
            id=GROUP_ID,
            name="Flat",
            created_by="a",
            members=[Member(user_id=u, display_name=u.upper()) for u in MEMBERS],
        )
        aggregator = BalanceAggregator(tolerance=Decimal("0.01"))
        expense = make_expense("1200", "a", {"a": "400", "b": "400", "c": "400"})

        balances = aggregator.compute(group, [expense])

        assert balances == {
            "a": Decimal("800.00"),
            "b": Decimal("-400.00"),
            "c": Decimal("-400.00"),
        }

    def test_uses_configured_tolerance(self):
        """Test the default tolerance comes from settings."""
        assert BalanceAggregator().tolerance == Decimal("0.01")
