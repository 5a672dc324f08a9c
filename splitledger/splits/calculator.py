"""
Split calculation utilities.

Each calculator returns splits whose amounts add up to the expense
total EXACTLY. Rounding remainders are handed out one cent at a time
so no split differs from its fair share by more than a cent.
"""

from decimal import ROUND_DOWN, Decimal
from typing import Mapping, Optional, Sequence

from splitledger.models.ledger import Split, SplitType
from splitledger.money import CENT, ZERO, MoneyLike, sum_money, to_money


class SplitCalculationError(ValueError):
    """The requested split cannot produce shares that add up to the total."""
    pass


def _mark_payer(splits: list[Split], paid_by: Optional[str]) -> list[Split]:
    if paid_by is None:
        return splits
    return [
        s.model_copy(update={"is_paid": True}) if s.user_id == paid_by else s
        for s in splits
    ]


def _require_members(member_ids: Sequence[str]) -> None:
    if not member_ids:
        raise SplitCalculationError("At least one member is required")
    if len(set(member_ids)) != len(member_ids):
        raise SplitCalculationError("A member can only be split once")


def equal_splits(
    total: MoneyLike,
    member_ids: Sequence[str],
    paid_by: Optional[str] = None,
) -> list[Split]:
    """
    Divide a total equally.

    Remainder cents go to the trailing members, so 1000 among three
    becomes 333.33, 333.33, 333.34.
    """
    _require_members(member_ids)
    amount = to_money(total)
    if amount <= 0:
        raise SplitCalculationError("Total must be positive")

    count = len(member_ids)
    base = (amount / count).quantize(CENT, rounding=ROUND_DOWN)
    remainder_cents = int((amount - base * count) / CENT)

    splits = []
    for index, user_id in enumerate(member_ids):
        share = base + (CENT if index >= count - remainder_cents else ZERO)
        splits.append(Split(user_id=user_id, amount=share))

    return _mark_payer(splits, paid_by)


def exact_splits(
    total: MoneyLike,
    amounts: Mapping[str, MoneyLike],
    paid_by: Optional[str] = None,
) -> list[Split]:
    """Use caller-provided amounts; they must add up to the total."""
    _require_members(list(amounts))
    amount = to_money(total)
    shares = {user_id: to_money(value) for user_id, value in amounts.items()}

    negative = [u for u, v in shares.items() if v < 0]
    if negative:
        raise SplitCalculationError(f"Negative share for {', '.join(negative)}")

    allocated = sum_money(shares.values())
    if allocated != amount:
        raise SplitCalculationError(
            f"Shares add up to {allocated}, expected {amount} "
            f"({amount - allocated:+} unassigned)"
        )

    splits = [Split(user_id=u, amount=v) for u, v in shares.items()]
    return _mark_payer(splits, paid_by)


def percentage_splits(
    total: MoneyLike,
    percentages: Mapping[str, MoneyLike],
    paid_by: Optional[str] = None,
) -> list[Split]:
    """
    Divide a total by percentages that add up to 100.

    The last member absorbs whatever rounding leaves over.
    """
    _require_members(list(percentages))
    amount = to_money(total)
    if amount <= 0:
        raise SplitCalculationError("Total must be positive")

    weights = {user_id: Decimal(str(p)) for user_id, p in percentages.items()}
    if any(w < 0 for w in weights.values()):
        raise SplitCalculationError("Percentages cannot be negative")
    if sum(weights.values()) != Decimal("100"):
        raise SplitCalculationError(
            f"Percentages add up to {sum(weights.values())}, expected 100"
        )

    user_ids = list(weights)
    splits = []
    remaining = amount
    for index, user_id in enumerate(user_ids):
        if index == len(user_ids) - 1:
            share = remaining
        else:
            share = to_money(amount * weights[user_id] / Decimal("100"))
            remaining -= share
        if share < 0:
            raise SplitCalculationError("Rounding left a negative share")
        splits.append(Split(user_id=user_id, amount=share))

    return _mark_payer(splits, paid_by)


def calculate_splits(
    split_type: SplitType,
    total: MoneyLike,
    member_ids: Sequence[str],
    values: Optional[Mapping[str, MoneyLike]] = None,
    paid_by: Optional[str] = None,
) -> list[Split]:
    """Dispatch to the calculator for split_type."""
    if split_type == SplitType.EQUAL:
        return equal_splits(total, member_ids, paid_by=paid_by)

    values = values or {}
    missing = [u for u in member_ids if u not in values]
    if missing:
        raise SplitCalculationError(f"No value given for {', '.join(missing)}")
    selected = {u: values[u] for u in member_ids}

    if split_type == SplitType.EXACT:
        return exact_splits(total, selected, paid_by=paid_by)
    return percentage_splits(total, selected, paid_by=paid_by)
