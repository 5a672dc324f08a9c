"""
Audit Models for Split Ledger

Every change to a group's ledger, and every settlement computation,
is logged for audit purposes. This provides:
1. Complete traceability of who recorded what
2. Debugging information when a settlement cannot be computed
3. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Groups
    GROUP_CREATED = "group_created"
    MEMBER_ADDED = "member_added"

    # Ledger entries
    EXPENSE_RECORDED = "expense_recorded"
    EXPENSE_DELETED = "expense_deleted"
    EXPENSE_REJECTED = "expense_rejected"
    PAYMENT_RECORDED = "payment_recorded"
    PAYMENT_DELETED = "payment_deleted"
    PAYMENT_REJECTED = "payment_rejected"

    # Derived data
    BALANCES_RECOMPUTED = "balances_recomputed"
    SETTLEMENT_COMPUTED = "settlement_computed"
    SETTLEMENT_FAILED = "settlement_failed"

    # System events
    SYSTEM_ERROR = "system_error"
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = Field(default=AuditSeverity.INFO)

    # Context - what entity is this about?
    group_id: Optional[UUID] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'payment', 'group')"
    )
    entity_id: Optional[UUID] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., a save and its recomputation)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_message: Optional[str] = None

    actor_id: Optional[str] = Field(
        default=None,
        description="Member who triggered the event, if any"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "group_id": str(self.group_id) if self.group_id else None,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "actor_id": self.actor_id,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, group_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message,
         actor_id]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            str(self.group_id) if self.group_id else "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            self.actor_id or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_recorded(expense, correlation_id)
    """

    @staticmethod
    def group_created(
        group_id: UUID,
        name: str,
        created_by: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_CREATED,
            group_id=group_id,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Group created: {name}",
            details={"name": name},
            actor_id=created_by,
        )

    @staticmethod
    def member_added(
        group_id: UUID,
        user_id: str,
        role: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_ADDED,
            group_id=group_id,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Member {user_id} joined as {role}",
            details={"user_id": user_id, "role": role},
        )

    @staticmethod
    def expense_recorded(
        group_id: UUID,
        expense_id: UUID,
        paid_by: str,
        amount: Decimal,
        split_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_RECORDED,
            group_id=group_id,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense of {amount} paid by {paid_by}",
            details={
                "amount": str(amount),
                "paid_by": paid_by,
                "split_count": split_count,
            },
            actor_id=paid_by,
        )

    @staticmethod
    def entry_rejected(
        group_id: UUID,
        entity_type: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.EXPENSE_REJECTED
            if entity_type == "expense"
            else AuditEventType.PAYMENT_REJECTED
        )
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.WARNING,
            group_id=group_id,
            entity_type=entity_type,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} rejected with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def entry_deleted(
        group_id: UUID,
        entity_type: str,
        entity_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.EXPENSE_DELETED
            if entity_type == "expense"
            else AuditEventType.PAYMENT_DELETED
        )
        return AuditEvent(
            event_type=event_type,
            group_id=group_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} deleted",
        )

    @staticmethod
    def payment_recorded(
        group_id: UUID,
        payment_id: UUID,
        from_user: str,
        to_user: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_RECORDED,
            group_id=group_id,
            entity_type="payment",
            entity_id=payment_id,
            correlation_id=correlation_id,
            description=f"Payment {from_user} -> {to_user}: {amount}",
            details={
                "from_user": from_user,
                "to_user": to_user,
                "amount": str(amount),
            },
            actor_id=from_user,
        )

    @staticmethod
    def balances_recomputed(
        group_id: UUID,
        balances: dict[str, Decimal],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCES_RECOMPUTED,
            severity=AuditSeverity.DEBUG,
            group_id=group_id,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Balances recomputed for {len(balances)} members",
            details={"balances": {k: str(v) for k, v in balances.items()}},
        )

    @staticmethod
    def settlement_computed(
        group_id: UUID,
        transaction_count: int,
        member_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_COMPUTED,
            group_id=group_id,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Settlement plan with {transaction_count} payments",
            details={
                "transaction_count": transaction_count,
                "member_count": member_count,
            },
        )

    @staticmethod
    def settlement_failed(
        group_id: UUID,
        error_type: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_FAILED,
            severity=AuditSeverity.ERROR,
            group_id=group_id,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Unable to compute settlement: {error_type}",
            error_message=error_message,
            details={"error_type": error_type},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        group_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            group_id=group_id,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )
