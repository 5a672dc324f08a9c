"""
Data Models Package

This package contains all Pydantic models used in Split Ledger.
All data flowing through the system must conform to these schemas.
"""

from splitledger.models.ledger import (
    Expense,
    ExpenseCategory,
    ExpenseDraft,
    Group,
    GroupType,
    Member,
    MemberRole,
    MemberSummary,
    Payment,
    PaymentMethod,
    SettlementInstruction,
    SettlementPlan,
    Split,
    SplitType,
)
from splitledger.models.validation import ValidationIssue, ValidationResult
from splitledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Expense",
    "ExpenseCategory",
    "ExpenseDraft",
    "Group",
    "GroupType",
    "Member",
    "MemberRole",
    "MemberSummary",
    "Payment",
    "PaymentMethod",
    "SettlementInstruction",
    "SettlementPlan",
    "Split",
    "SplitType",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
