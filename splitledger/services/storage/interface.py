"""
Abstract Storage Interface

DESIGN DECISION: Ledger persistence sits behind an abstract interface.
This allows us to:
1. Keep Google Sheets as the shared backend
2. Use in-memory storage for testing and the demo group
3. Keep balance and settlement logic free of any storage code

Storage only keeps records. It never computes balances; the cached
member balance is written back by the orchestrator after every
recomputation.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional
from uuid import UUID

from splitledger.models.audit import AuditEvent
from splitledger.models.ledger import Expense, Group, Member, Payment


class LedgerStorageInterface(ABC):
    """
    Abstract interface for group ledger storage.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    # Groups and members

    @abstractmethod
    async def save_group(self, group: Group) -> bool:
        """
        Save a new group together with its initial members.

        Raises:
            DuplicateError: If a group with this ID exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_group(self, group_id: UUID) -> Optional[Group]:
        """Retrieve a group with its members, or None."""
        pass

    @abstractmethod
    async def list_groups(self, user_id: Optional[str] = None) -> list[Group]:
        """
        List groups, optionally only those the user belongs to.
        """
        pass

    @abstractmethod
    async def add_member(self, group_id: UUID, member: Member) -> bool:
        """
        Add a member to a group.

        Raises:
            NotFoundError: If the group doesn't exist
            DuplicateError: If the user is already a member
        """
        pass

    @abstractmethod
    async def update_member_balances(
        self,
        group_id: UUID,
        balances: dict[str, Decimal],
    ) -> bool:
        """
        Overwrite the cached balance of each listed member.

        Raises:
            NotFoundError: If the group doesn't exist
        """
        pass

    # Expenses

    @abstractmethod
    async def save_expense(self, expense: Expense) -> bool:
        """
        Save an expense with its splits.

        Raises:
            NotFoundError: If the expense's group doesn't exist
            DuplicateError: If an expense with this ID exists
        """
        pass

    @abstractmethod
    async def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: UUID) -> bool:
        """Delete an expense; returns False if it did not exist."""
        pass

    @abstractmethod
    async def list_expenses(self, group_id: UUID) -> list[Expense]:
        """All expenses of a group, oldest first."""
        pass

    # Payments

    @abstractmethod
    async def save_payment(self, payment: Payment) -> bool:
        """
        Save a payment.

        Raises:
            NotFoundError: If the payment's group doesn't exist
            DuplicateError: If a payment with this ID exists
        """
        pass

    @abstractmethod
    async def get_payment(self, payment_id: UUID) -> Optional[Payment]:
        pass

    @abstractmethod
    async def delete_payment(self, payment_id: UUID) -> bool:
        """Delete a payment; returns False if it did not exist."""
        pass

    @abstractmethod
    async def list_payments(self, group_id: UUID) -> list[Payment]:
        """All payments of a group, oldest first."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events sharing a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_group(
        self,
        group_id: UUID,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events of a group, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
