"""
Settlement Optimizer

Turns net balances into a short list of "X pays Y" instructions.

ALGORITHM (greedy, largest vs. largest):
1. Split members into creditors (owed money) and debtors (owe money).
   Anyone within tolerance of zero is already settled.
2. Repeatedly match the largest remaining debtor with the largest
   remaining creditor for the smaller of the two amounts.
3. Whoever is cleared by a match leaves the pool.

Every match clears at least one party, so N non-zero members need at
most N - 1 payments. This is not guaranteed to be the theoretical
minimum when many balances are equal, but it is simple and
deterministic: ties are broken by the order members were given in.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping, Optional

import structlog

from splitledger.config import get_settings
from splitledger.models.ledger import SettlementInstruction
from splitledger.money import DEFAULT_TOLERANCE, ZERO, MoneyLike, to_money
from splitledger.settlement.errors import SettlementInvariantError

logger = structlog.get_logger(__name__)


@dataclass
class _Party:
    user_id: str
    remaining: Decimal
    index: int


def _priority(party: _Party) -> tuple:
    # Largest first; equal amounts keep input order
    return (-party.remaining, party.index)


def minimize_transactions(
    balances: Mapping[str, MoneyLike],
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> list[SettlementInstruction]:
    """
    Compute the payments that settle every balance.

    Args:
        balances: Member id to signed balance. Iteration order is the
            tie-break order.
        tolerance: Balances and remainders at or below this are zero

    Returns:
        Ordered instructions; empty when everyone is settled

    Raises:
        SettlementInvariantError: If the balances do not sum to zero, or
            a member above tolerance is left with nobody to match
    """
    if tolerance < 0:
        raise ValueError("tolerance cannot be negative")

    amounts = {user_id: to_money(value) for user_id, value in balances.items()}

    total = sum(amounts.values(), ZERO)
    if abs(total) > tolerance:
        raise SettlementInvariantError(
            f"Balances sum to {total} instead of zero", remaining=total
        )

    creditors: list[_Party] = []
    debtors: list[_Party] = []

    for index, (user_id, amount) in enumerate(amounts.items()):
        if amount > tolerance:
            creditors.append(_Party(user_id, amount, index))
        elif amount < -tolerance:
            debtors.append(_Party(user_id, -amount, index))

    instructions: list[SettlementInstruction] = []

    while creditors and debtors:
        creditors.sort(key=_priority)
        debtors.sort(key=_priority)
        creditor = creditors[0]
        debtor = debtors[0]

        amount = min(creditor.remaining, debtor.remaining)
        instructions.append(SettlementInstruction(
            from_user=debtor.user_id,
            to_user=creditor.user_id,
            amount=to_money(amount),
        ))

        creditor.remaining -= amount
        debtor.remaining -= amount

        if creditor.remaining <= tolerance:
            creditors.pop(0)
        if debtor.remaining <= tolerance:
            debtors.pop(0)

    # Anyone still in a pool holds more than the tolerance
    if creditors or debtors:
        leftover = sum((p.remaining for p in creditors + debtors), ZERO)
        side = "creditors" if creditors else "debtors"
        raise SettlementInvariantError(
            f"{side} still hold {leftover} after settlement", remaining=leftover
        )

    return instructions


def apply_instructions(
    balances: Mapping[str, MoneyLike],
    instructions: Iterable[SettlementInstruction],
) -> dict[str, Decimal]:
    """
    Balances after every instruction has been paid.

    The payer's (negative) balance rises by the amount and the
    payee's (positive) balance falls by it.
    """
    result = {user_id: to_money(value) for user_id, value in balances.items()}
    for instruction in instructions:
        for party in (instruction.from_user, instruction.to_user):
            if party not in result:
                raise ValueError(f"Instruction references unknown member {party!r}")
        result[instruction.from_user] += instruction.amount
        result[instruction.to_user] -= instruction.amount
    return result


class SettlementOptimizer:
    """Settlement computation with the configured tolerance."""

    def __init__(self, tolerance: Optional[Decimal] = None):
        if tolerance is None:
            tolerance = get_settings().ledger.tolerance
        self._tolerance = tolerance

    @property
    def tolerance(self) -> Decimal:
        return self._tolerance

    def settle(self, balances: Mapping[str, MoneyLike]) -> list[SettlementInstruction]:
        try:
            instructions = minimize_transactions(balances, tolerance=self._tolerance)
        except SettlementInvariantError as e:
            logger.error("settlement_invariant_violated", error=str(e), remaining=str(e.remaining))
            raise

        logger.debug(
            "settlement_computed",
            members=len(balances),
            transactions=len(instructions),
        )
        return instructions
