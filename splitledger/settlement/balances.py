"""
Balance Aggregation

Derives every member's net balance in a group from the raw records:

    balance = paid for others - owed to others + payments sent - payments received

DESIGN DECISION: Balances are always recomputed from scratch from the
full list of expenses and payments. Nothing is patched incrementally,
so an edited or deleted expense can never leave a stale delta behind.

The computation is pure: no storage, no clock, no mutation of inputs.
"""

from decimal import Decimal
from typing import Iterable, Mapping, Optional, Sequence
from uuid import UUID

import structlog

from splitledger.config import get_settings
from splitledger.models.ledger import Expense, Group, Payment
from splitledger.money import DEFAULT_TOLERANCE, ZERO, to_money
from splitledger.settlement.errors import MalformedLedgerError

logger = structlog.get_logger(__name__)


def _apply_expense(
    balances: dict[str, Decimal],
    expense: Expense,
    tolerance: Decimal,
    group_id: Optional[UUID],
) -> None:
    if group_id is not None and expense.group_id != group_id:
        raise MalformedLedgerError(
            f"belongs to group {expense.group_id}", "expense", expense.id
        )

    total = to_money(expense.amount)
    if total <= 0:
        raise MalformedLedgerError(
            f"total must be positive, got {total}", "expense", expense.id
        )
    if not expense.splits:
        raise MalformedLedgerError("has no splits", "expense", expense.id)
    if expense.paid_by not in balances:
        raise MalformedLedgerError(
            f"payer {expense.paid_by!r} is not a group member", "expense", expense.id
        )

    split_total = ZERO
    for split in expense.splits:
        share = to_money(split.amount)
        if share < 0:
            raise MalformedLedgerError(
                f"negative split {share} for {split.user_id!r}", "expense", expense.id
            )
        if split.user_id not in balances:
            raise MalformedLedgerError(
                f"split references unknown member {split.user_id!r}",
                "expense",
                expense.id,
            )
        split_total += share

    if abs(split_total - total) > tolerance:
        raise MalformedLedgerError(
            f"splits add up to {split_total}, expected {total}", "expense", expense.id
        )

    # Validation passed for the whole expense; only now touch balances.
    balances[expense.paid_by] += total
    for split in expense.splits:
        balances[split.user_id] -= to_money(split.amount)


def _apply_payment(
    balances: dict[str, Decimal],
    payment: Payment,
    group_id: Optional[UUID],
) -> None:
    if group_id is not None and payment.group_id != group_id:
        raise MalformedLedgerError(
            f"belongs to group {payment.group_id}", "payment", payment.id
        )

    amount = to_money(payment.amount)
    if amount <= 0:
        raise MalformedLedgerError(
            f"amount must be positive, got {amount}", "payment", payment.id
        )
    for party in (payment.from_user, payment.to_user):
        if party not in balances:
            raise MalformedLedgerError(
                f"{party!r} is not a group member", "payment", payment.id
            )
    if payment.from_user == payment.to_user:
        raise MalformedLedgerError("payer and payee are the same", "payment", payment.id)

    # The payer's debt shrinks, the payee is owed less.
    balances[payment.from_user] += amount
    balances[payment.to_user] -= amount


def compute_balances(
    member_ids: Sequence[str],
    expenses: Iterable[Expense],
    payments: Iterable[Payment] = (),
    tolerance: Decimal = DEFAULT_TOLERANCE,
    group_id: Optional[UUID] = None,
) -> dict[str, Decimal]:
    """
    Compute the net balance of every member.

    Args:
        member_ids: Members that must appear in the result, in display
            order. Members without activity get exactly zero.
        expenses: The group's expenses, each carrying its splits
        payments: The group's recorded payments
        tolerance: Allowed gap between an expense total and its splits
        group_id: If given, entries from any other group are rejected

    Returns:
        Mapping of member id to signed balance, in member_ids order.
        Positive means the member is owed money.

    Raises:
        MalformedLedgerError: On negative amounts, split totals that do
            not match, or references to members outside member_ids
    """
    balances: dict[str, Decimal] = {user_id: ZERO for user_id in member_ids}

    for expense in expenses:
        _apply_expense(balances, expense, tolerance, group_id)

    for payment in payments:
        _apply_payment(balances, payment, group_id)

    return balances


def zero_sum_drift(balances: Mapping[str, Decimal]) -> Decimal:
    """Sum of all balances. Zero for any consistent ledger."""
    return sum((to_money(v) for v in balances.values()), ZERO)


class BalanceAggregator:
    """Computes group balances with the configured tolerance."""

    def __init__(self, tolerance: Optional[Decimal] = None):
        if tolerance is None:
            tolerance = get_settings().ledger.tolerance
        self._tolerance = tolerance

    @property
    def tolerance(self) -> Decimal:
        return self._tolerance

    def compute(
        self,
        group: Group,
        expenses: Iterable[Expense],
        payments: Iterable[Payment] = (),
    ) -> dict[str, Decimal]:
        """Balances for every member of the group."""
        expenses = list(expenses)
        payments = list(payments)

        balances = compute_balances(
            group.member_ids,
            expenses,
            payments,
            tolerance=self._tolerance,
            group_id=group.id,
        )

        logger.debug(
            "balances_computed",
            group_id=str(group.id),
            members=len(balances),
            expenses=len(expenses),
            payments=len(payments),
            drift=str(zero_sum_drift(balances)),
        )
        return balances
