"""Exceptions raised by balance aggregation and settlement."""

from decimal import Decimal
from typing import Optional
from uuid import UUID


class LedgerError(Exception):
    """Base exception for balance and settlement computation."""
    pass


class MalformedLedgerError(LedgerError):
    """
    An expense or payment cannot be turned into balances.

    Raised instead of silently absorbing the problem into a
    corrupted balance.
    """

    def __init__(
        self,
        reason: str,
        entity_type: str,
        entity_id: Optional[UUID] = None,
    ):
        self.reason = reason
        self.entity_type = entity_type
        self.entity_id = entity_id
        where = f"{entity_type} {entity_id}" if entity_id else entity_type
        super().__init__(f"Malformed {where}: {reason}")


class SettlementInvariantError(LedgerError):
    """
    Balances did not sum to zero, so no complete settlement exists.

    This points at a bug in the aggregation or at corrupted upstream data.
    """

    def __init__(self, message: str, remaining: Decimal):
        self.remaining = remaining
        super().__init__(message)
