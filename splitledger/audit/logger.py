"""
Audit Logger

DESIGN DECISION: Every change to a group's ledger is logged.
This provides:
1. Complete traceability of who recorded which expense or payment
2. Debugging capability when a settlement cannot be computed
3. Members can see the history of their group

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from splitledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from splitledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and the group's history view)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("splitledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_group_created(
        self,
        group_id: UUID,
        name: str,
        created_by: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.group_created(
            group_id=group_id,
            name=name,
            created_by=created_by,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_member_added(
        self,
        group_id: UUID,
        user_id: str,
        role: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.member_added(
            group_id=group_id,
            user_id=user_id,
            role=role,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_expense_recorded(
        self,
        group_id: UUID,
        expense_id: UUID,
        paid_by: str,
        amount: Decimal,
        split_count: int,
        correlation_id: UUID,
    ) -> None:
        """Log a saved expense."""
        event = AuditEventBuilder.expense_recorded(
            group_id=group_id,
            expense_id=expense_id,
            paid_by=paid_by,
            amount=amount,
            split_count=split_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_payment_recorded(
        self,
        group_id: UUID,
        payment_id: UUID,
        from_user: str,
        to_user: str,
        amount: Decimal,
        correlation_id: UUID,
    ) -> None:
        """Log a saved payment."""
        event = AuditEventBuilder.payment_recorded(
            group_id=group_id,
            payment_id=payment_id,
            from_user=from_user,
            to_user=to_user,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entry_rejected(
        self,
        group_id: UUID,
        entity_type: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        """Log an expense or payment that failed validation."""
        event = AuditEventBuilder.entry_rejected(
            group_id=group_id,
            entity_type=entity_type,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entry_deleted(
        self,
        group_id: UUID,
        entity_type: str,
        entity_id: UUID,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.entry_deleted(
            group_id=group_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_balances_recomputed(
        self,
        group_id: UUID,
        balances: dict[str, Decimal],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.balances_recomputed(
            group_id=group_id,
            balances=balances,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_settlement_computed(
        self,
        group_id: UUID,
        transaction_count: int,
        member_count: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.settlement_computed(
            group_id=group_id,
            transaction_count=transaction_count,
            member_count=member_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_settlement_failed(
        self,
        group_id: UUID,
        error_type: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a settlement that could not be computed."""
        event = AuditEventBuilder.settlement_failed(
            group_id=group_id,
            error_type=error_type,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        group_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            group_id=group_id,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., recording an
    expense). Pass it through all subsequent operations.
    """
    return uuid4()
