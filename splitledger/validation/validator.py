"""
Two-Stage Validation Pipeline

Validation happens when an expense or payment is CREATED, before it
reaches storage:

STAGE 1 - SCHEMA VALIDATION:
- Required fields present
- Amounts positive / non-negative, whole cents
- Description and notes within length limits
- No member split twice

STAGE 2 - SEMANTIC VALIDATION:
- Payer and every split member belong to the group
- Splits add up to the total exactly
- Suspiciously large amounts

Stage 2 is skipped if stage 1 fails.

IMPORTANT: Validation NEVER silently fixes issues. It does not push a
rounding remainder onto someone's split; it reports the gap and lets
the caller decide.
"""

from collections import Counter
from decimal import Decimal
from typing import Mapping, Optional

from splitledger.config import get_settings
from splitledger.models.ledger import (
    MAX_DESCRIPTION_LENGTH,
    MAX_NOTES_LENGTH,
    ExpenseDraft,
    Group,
    Payment,
)
from splitledger.models.validation import ValidationIssue, ValidationResult
from splitledger.money import ZERO, format_money, sum_money, to_money


class LedgerEntryValidator:
    """
    Validates expenses and payments for a group.

    The balance aggregator re-checks the hard rules on every run; this
    validator exists so bad entries are rejected with a useful message
    at creation time instead of breaking the group's balances later.
    """

    def __init__(self, max_expense_amount: Optional[Decimal] = None):
        if max_expense_amount is None:
            max_expense_amount = get_settings().ledger.max_expense_amount
        self._max_expense_amount = max_expense_amount

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------

    def _validate_expense_schema(
        self,
        draft: ExpenseDraft,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: structural checks that need no group context.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if not draft.description:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Description is required",
                severity="error",
                suggested_fix="Describe what the money was spent on",
            ))
        elif len(draft.description) > MAX_DESCRIPTION_LENGTH:
            issues.append(ValidationIssue(
                field="description",
                issue_type="too_long",
                message=f"Description is longer than {MAX_DESCRIPTION_LENGTH} characters",
                severity="error",
                suggested_fix="Move the details into the notes",
            ))

        if draft.notes and len(draft.notes) > MAX_NOTES_LENGTH:
            issues.append(ValidationIssue(
                field="notes",
                issue_type="too_long",
                message=f"Notes are longer than {MAX_NOTES_LENGTH} characters",
                severity="error",
            ))

        if draft.amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required",
                severity="error",
            ))
        elif draft.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
            ))
        elif to_money(draft.amount) != draft.amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message=f"Amount {draft.amount} has more than two decimal places",
                severity="error",
                suggested_fix=f"Use {to_money(draft.amount)}",
            ))

        if not draft.paid_by:
            issues.append(ValidationIssue(
                field="paid_by",
                issue_type="missing",
                message="Select who paid",
                severity="error",
            ))

        if not draft.splits:
            issues.append(ValidationIssue(
                field="splits",
                issue_type="missing",
                message="Select at least one member to split with",
                severity="error",
            ))

        for split in draft.splits:
            if split.amount < 0:
                issues.append(ValidationIssue(
                    field="splits",
                    issue_type="invalid_value",
                    message=f"Share for {split.user_id} cannot be negative",
                    severity="error",
                ))

        counts = Counter(s.user_id for s in draft.splits)
        for user_id, count in counts.items():
            if count > 1:
                issues.append(ValidationIssue(
                    field="splits",
                    issue_type="duplicate",
                    message=f"{user_id} appears {count} times in the split",
                    severity="error",
                    suggested_fix="Combine their shares into one",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_expense_semantic(
        self,
        draft: ExpenseDraft,
        group: Group,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: checks against the group.

        Returns: (is_valid, list_of_issues)
        """
        issues = []
        members = set(group.member_ids)

        if draft.group_id != group.id:
            issues.append(ValidationIssue(
                field="group_id",
                issue_type="wrong_group",
                message="Expense belongs to a different group",
                severity="error",
            ))

        if draft.paid_by not in members:
            issues.append(ValidationIssue(
                field="paid_by",
                issue_type="unknown_member",
                message=f"{draft.paid_by} is not a member of {group.name}",
                severity="error",
            ))

        for split in draft.splits:
            if split.user_id not in members:
                issues.append(ValidationIssue(
                    field="splits",
                    issue_type="unknown_member",
                    message=f"{split.user_id} is not a member of {group.name}",
                    severity="error",
                    suggested_fix="Add them to the group first",
                ))

        amount = to_money(draft.amount)
        allocated = sum_money(s.amount for s in draft.splits)
        gap = amount - allocated
        if gap != ZERO:
            issues.append(ValidationIssue(
                field="splits",
                issue_type="split_mismatch",
                message=(
                    f"Shares add up to {format_money(allocated, group.currency)} "
                    f"but the expense is {format_money(amount, group.currency)}"
                ),
                severity="error",
                suggested_fix=(
                    f"Assign the remaining {format_money(gap, group.currency)} to a member"
                    if gap > 0 else
                    f"Reduce the shares by {format_money(-gap, group.currency)}"
                ),
            ))

        if amount > self._max_expense_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({format_money(amount, group.currency)}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        debtors = [s for s in draft.splits if s.user_id != draft.paid_by and s.amount > 0]
        if not debtors:
            issues.append(ValidationIssue(
                field="splits",
                issue_type="no_effect",
                message="Nobody else shares this expense, so no balances change",
                severity="info",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def validate_expense(
        self,
        draft: ExpenseDraft,
        group: Group,
    ) -> ValidationResult:
        """Run full two-stage validation on an expense draft."""
        all_issues = []

        schema_valid, schema_issues = self._validate_expense_schema(draft)
        all_issues.extend(schema_issues)

        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_expense_semantic(draft, group)
            all_issues.extend(semantic_issues)

        return ValidationResult(
            entity_type="expense",
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=[i.message for i in all_issues if i.severity == "warning"],
        )

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def validate_payment(
        self,
        payment: Payment,
        group: Group,
        balances: Optional[Mapping[str, Decimal]] = None,
    ) -> ValidationResult:
        """
        Validate a payment against the group.

        Sign and self-payment rules are enforced by the Payment model
        itself, so only the semantic stage has work to do. If current
        balances are passed, overpayments are flagged as warnings.
        """
        issues = []
        members = set(group.member_ids)

        if payment.group_id != group.id:
            issues.append(ValidationIssue(
                field="group_id",
                issue_type="wrong_group",
                message="Payment belongs to a different group",
                severity="error",
            ))

        for field, user_id in (("from_user", payment.from_user), ("to_user", payment.to_user)):
            if user_id not in members:
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="unknown_member",
                    message=f"{user_id} is not a member of {group.name}",
                    severity="error",
                ))

        if balances is not None and payment.from_user in balances:
            owed = -to_money(balances[payment.from_user])
            if owed <= 0:
                issues.append(ValidationIssue(
                    field="from_user",
                    issue_type="not_in_debt",
                    message=f"{group.display_name_for(payment.from_user)} does not owe anything",
                    severity="warning",
                ))
            elif payment.amount > owed:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="overpayment",
                    message=(
                        f"Payment of {format_money(payment.amount, group.currency)} is more "
                        f"than the {format_money(owed, group.currency)} owed"
                    ),
                    severity="warning",
                ))

        semantic_valid = not any(issue.severity == "error" for issue in issues)
        return ValidationResult(
            entity_type="payment",
            schema_valid=True,
            semantic_valid=semantic_valid,
            is_valid=semantic_valid,
            issues=issues,
            warnings=[i.message for i in issues if i.severity == "warning"],
        )

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """Summary of validation results for display."""
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if result.has_errors:
            lines.append(f"❌ This {result.entity_type} can't be saved yet:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
