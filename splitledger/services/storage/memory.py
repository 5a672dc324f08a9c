"""
In-Memory Storage Implementation

Used by the test suite and by the app's demo mode. Records are deep
copied on the way in and out so callers can never mutate stored state
behind the storage's back.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from splitledger.models.audit import AuditEvent
from splitledger.models.ledger import Expense, Group, Member, Payment
from splitledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dictionary-backed ledger storage."""

    def __init__(self):
        self._groups: dict[UUID, Group] = {}
        self._expenses: dict[UUID, Expense] = {}
        self._payments: dict[UUID, Payment] = {}

    def _require_group(self, group_id: UUID) -> Group:
        group = self._groups.get(group_id)
        if group is None:
            raise NotFoundError(f"Group not found: {group_id}")
        return group

    async def save_group(self, group: Group) -> bool:
        if group.id in self._groups:
            raise DuplicateError(f"Group already exists: {group.id}")
        self._groups[group.id] = group.model_copy(deep=True)
        return True

    async def get_group(self, group_id: UUID) -> Optional[Group]:
        group = self._groups.get(group_id)
        return group.model_copy(deep=True) if group else None

    async def list_groups(self, user_id: Optional[str] = None) -> list[Group]:
        groups = [
            g for g in self._groups.values()
            if user_id is None or g.get_member(user_id) is not None
        ]
        groups.sort(key=lambda g: g.created_at)
        return [g.model_copy(deep=True) for g in groups]

    async def add_member(self, group_id: UUID, member: Member) -> bool:
        group = self._require_group(group_id)
        if group.get_member(member.user_id) is not None:
            raise DuplicateError(f"{member.user_id} is already in group {group_id}")
        group.members.append(member.model_copy(deep=True))
        return True

    async def update_member_balances(
        self,
        group_id: UUID,
        balances: dict[str, Decimal],
    ) -> bool:
        group = self._require_group(group_id)
        group.members = [
            m.model_copy(update={"balance": balances[m.user_id]})
            if m.user_id in balances else m
            for m in group.members
        ]
        return True

    async def save_expense(self, expense: Expense) -> bool:
        self._require_group(expense.group_id)
        if expense.id in self._expenses:
            raise DuplicateError(f"Expense already exists: {expense.id}")
        self._expenses[expense.id] = expense.model_copy(deep=True)
        return True

    async def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        expense = self._expenses.get(expense_id)
        return expense.model_copy(deep=True) if expense else None

    async def delete_expense(self, expense_id: UUID) -> bool:
        return self._expenses.pop(expense_id, None) is not None

    async def list_expenses(self, group_id: UUID) -> list[Expense]:
        expenses = [e for e in self._expenses.values() if e.group_id == group_id]
        expenses.sort(key=lambda e: e.created_at)
        return [e.model_copy(deep=True) for e in expenses]

    async def save_payment(self, payment: Payment) -> bool:
        self._require_group(payment.group_id)
        if payment.id in self._payments:
            raise DuplicateError(f"Payment already exists: {payment.id}")
        self._payments[payment.id] = payment.model_copy(deep=True)
        return True

    async def get_payment(self, payment_id: UUID) -> Optional[Payment]:
        payment = self._payments.get(payment_id)
        return payment.model_copy(deep=True) if payment else None

    async def delete_payment(self, payment_id: UUID) -> bool:
        return self._payments.pop(payment_id, None) is not None

    async def list_payments(self, group_id: UUID) -> list[Payment]:
        payments = [p for p in self._payments.values() if p.group_id == group_id]
        payments.sort(key=lambda p: p.created_at)
        return [p.model_copy(deep=True) for p in payments]


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_group(
        self,
        group_id: UUID,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.group_id == group_id]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
