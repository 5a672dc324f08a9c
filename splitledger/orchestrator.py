"""
Main Orchestrator for Split Ledger

This module ties together all the components and defines the
end-to-end flows for:
1. Groups (create group → add members)
2. Ledger (record expense/payment → validate → save → recompute balances)
3. Settle up (load ledger → aggregate → optimize → plan)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No entry persists with error-level validation issues
- Balances are only ever written by a full recomputation
- A settlement plan is complete or not returned at all
- Every step is audited

The balance and settlement core is pure and synchronous; everything
that touches storage lives here.
"""

from decimal import Decimal
from typing import Awaitable, Optional, TypeVar
from uuid import UUID

from splitledger.audit import AuditLogger, create_correlation_id
from splitledger.config import get_settings
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
    SplitType,
)
from splitledger.models.validation import ValidationResult
from splitledger.money import ZERO, to_money
from splitledger.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from splitledger.settlement import (
    BalanceAggregator,
    LedgerError,
    SettlementOptimizer,
    zero_sum_drift,
)
from splitledger.splits import calculate_splits
from splitledger.validation import LedgerEntryValidator

T = TypeVar("T")


class SettlementComputationError(Exception):
    """
    A settlement plan could not be computed for a group.

    The message is safe to show to members; the underlying
    LedgerError is kept as `cause` (and chained) for debugging.
    """

    USER_MESSAGE = "Unable to compute settlement"

    def __init__(self, group_id: UUID, cause: LedgerError):
        self.group_id = group_id
        self.cause = cause
        super().__init__(self.USER_MESSAGE)


class InvalidLedgerEntryError(Exception):
    """An expense or payment was rejected by validation."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = [i.message for i in result.issues if i.severity == "error"]
        super().__init__("; ".join(messages) or f"Invalid {result.entity_type}")


async def _require_group(storage: LedgerStorageInterface, group_id: UUID) -> Group:
    group = await storage.get_group(group_id)
    if group is None:
        raise NotFoundError(f"Group not found: {group_id}")
    return group


class GroupFlow:
    """
    Orchestrates group creation and membership.

    A user can belong to many groups; each membership carries its own
    role and its own balance.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        max_members: Optional[int] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        if max_members is None:
            max_members = get_settings().ledger.max_members_per_group
        self._max_members = max_members

    async def create_group(
        self,
        name: str,
        created_by: str,
        creator_name: str,
        group_type: GroupType = GroupType.OTHER,
        description: Optional[str] = None,
        currency: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Group:
        """
        Create a group with its creator as the first (admin) member.
        """
        correlation_id = correlation_id or create_correlation_id()

        group = Group(
            name=name,
            description=description,
            type=group_type,
            currency=currency or get_settings().ledger.default_currency,
            created_by=created_by,
            members=[
                Member(
                    user_id=created_by,
                    display_name=creator_name,
                    role=MemberRole.ADMIN,
                )
            ],
        )
        await self._storage.save_group(group)

        if self._audit_logger:
            await self._audit_logger.log_group_created(
                group_id=group.id,
                name=group.name,
                created_by=created_by,
                correlation_id=correlation_id,
            )

        return group

    async def add_member(
        self,
        group_id: UUID,
        user_id: str,
        display_name: str,
        role: MemberRole = MemberRole.MEMBER,
        correlation_id: Optional[UUID] = None,
    ) -> Member:
        """
        Add a member to a group with a zero balance.

        Raises:
            NotFoundError: If the group doesn't exist
            DuplicateError: If the user is already a member
            ValueError: If the group is full
        """
        correlation_id = correlation_id or create_correlation_id()
        group = await _require_group(self._storage, group_id)

        if len(group.members) >= self._max_members:
            raise ValueError(
                f"{group.name} already has the maximum of {self._max_members} members"
            )

        member = Member(user_id=user_id, display_name=display_name, role=role)
        await self._storage.add_member(group_id, member)

        if self._audit_logger:
            await self._audit_logger.log_member_added(
                group_id=group_id,
                user_id=user_id,
                role=role.value,
                correlation_id=correlation_id,
            )

        return member

    async def join_by_invite_code(
        self,
        invite_code: str,
        user_id: str,
        display_name: str,
        correlation_id: Optional[UUID] = None,
    ) -> Group:
        """Join the group that owns the invite code."""
        code = invite_code.strip().upper()
        for group in await self._storage.list_groups():
            if group.invite_code == code:
                await self.add_member(
                    group.id,
                    user_id,
                    display_name,
                    correlation_id=correlation_id,
                )
                return await _require_group(self._storage, group.id)
        raise NotFoundError(f"No group with invite code {code}")

    async def get_group(self, group_id: UUID) -> Group:
        return await _require_group(self._storage, group_id)

    async def list_groups(self, user_id: Optional[str] = None) -> list[Group]:
        return await self._storage.list_groups(user_id)


class LedgerFlow:
    """
    Orchestrates recording entries and settling up.

    Flow for every write:
    1. Validate → reject with issues if any error-level issue
    2. Save → persist the entry
    3. Recompute → aggregate all entries, write the cached balances

    Reads of balances and plans always recompute from the entries;
    the cached member balance is for display only.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[LedgerEntryValidator] = None,
        aggregator: Optional[BalanceAggregator] = None,
        optimizer: Optional[SettlementOptimizer] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._validator = validator or LedgerEntryValidator()
        self._aggregator = aggregator or BalanceAggregator()
        self._optimizer = optimizer or SettlementOptimizer(self._aggregator.tolerance)

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------

    async def record_expense(
        self,
        draft: ExpenseDraft,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Expense, ValidationResult]:
        """
        Validate and save an expense, then refresh balances.

        Returns:
            (expense, validation_result) - the result may carry warnings

        Raises:
            InvalidLedgerEntryError: If validation found errors
        """
        correlation_id = correlation_id or create_correlation_id()
        group = await _require_group(self._storage, draft.group_id)

        result = self._validator.validate_expense(draft, group)
        if not result.is_valid:
            if self._audit_logger:
                await self._audit_logger.log_entry_rejected(
                    group_id=group.id,
                    entity_type="expense",
                    issues=result.issues_as_dicts(),
                    correlation_id=correlation_id,
                )
            raise InvalidLedgerEntryError(result)

        expense = Expense(
            group_id=group.id,
            description=draft.description,
            amount=to_money(draft.amount),
            category=draft.category,
            paid_by=draft.paid_by,
            splits=draft.splits,
            notes=draft.notes,
        )
        await self._write("save_expense", group.id, correlation_id, self._storage.save_expense(expense))

        if self._audit_logger:
            await self._audit_logger.log_expense_recorded(
                group_id=group.id,
                expense_id=expense.id,
                paid_by=expense.paid_by,
                amount=expense.amount,
                split_count=len(expense.splits),
                correlation_id=correlation_id,
            )

        await self.refresh_balances(group.id, correlation_id=correlation_id)
        return expense, result

    async def record_split_expense(
        self,
        group_id: UUID,
        description: str,
        amount: Decimal,
        paid_by: str,
        split_type: SplitType = SplitType.EQUAL,
        member_ids: Optional[list[str]] = None,
        values: Optional[dict[str, Decimal]] = None,
        category: ExpenseCategory = ExpenseCategory.MISCELLANEOUS,
        notes: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Expense, ValidationResult]:
        """
        Record an expense whose splits are calculated from a split type.

        With no member_ids the split covers the members named in values,
        or the whole group when no values are given.
        """
        group = await _require_group(self._storage, group_id)
        splits = calculate_splits(
            split_type,
            amount,
            member_ids or (list(values) if values else group.member_ids),
            values=values,
            paid_by=paid_by,
        )
        draft = ExpenseDraft(
            group_id=group_id,
            description=description,
            amount=amount,
            category=category,
            paid_by=paid_by,
            splits=splits,
            notes=notes,
        )
        return await self.record_expense(draft, correlation_id=correlation_id)

    async def delete_expense(
        self,
        expense_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """Delete an expense and refresh balances. False if it didn't exist."""
        correlation_id = correlation_id or create_correlation_id()

        expense = await self._storage.get_expense(expense_id)
        if expense is None:
            return False

        deleted = await self._write(
            "delete_expense", expense.group_id, correlation_id,
            self._storage.delete_expense(expense_id),
        )
        if deleted:
            if self._audit_logger:
                await self._audit_logger.log_entry_deleted(
                    group_id=expense.group_id,
                    entity_type="expense",
                    entity_id=expense_id,
                    correlation_id=correlation_id,
                )
            await self.refresh_balances(expense.group_id, correlation_id=correlation_id)
        return deleted

    async def list_expenses(self, group_id: UUID) -> list[Expense]:
        return await self._storage.list_expenses(group_id)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def record_payment(
        self,
        payment: Payment,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Payment, ValidationResult]:
        """
        Validate and save a payment, then refresh balances.

        Overpayments are allowed but come back as warnings.

        Raises:
            InvalidLedgerEntryError: If validation found errors
        """
        correlation_id = correlation_id or create_correlation_id()
        group = await _require_group(self._storage, payment.group_id)

        balances = await self._compute(group)
        result = self._validator.validate_payment(payment, group, balances)
        if not result.is_valid:
            if self._audit_logger:
                await self._audit_logger.log_entry_rejected(
                    group_id=group.id,
                    entity_type="payment",
                    issues=result.issues_as_dicts(),
                    correlation_id=correlation_id,
                )
            raise InvalidLedgerEntryError(result)

        await self._write("save_payment", group.id, correlation_id, self._storage.save_payment(payment))

        if self._audit_logger:
            await self._audit_logger.log_payment_recorded(
                group_id=group.id,
                payment_id=payment.id,
                from_user=payment.from_user,
                to_user=payment.to_user,
                amount=payment.amount,
                correlation_id=correlation_id,
            )

        await self.refresh_balances(group.id, correlation_id=correlation_id)
        return payment, result

    async def record_settlement(
        self,
        group_id: UUID,
        instruction: SettlementInstruction,
        method: Optional[PaymentMethod] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Payment, ValidationResult]:
        """Record that a settle-up instruction was paid."""
        payment = Payment(
            group_id=group_id,
            from_user=instruction.from_user,
            to_user=instruction.to_user,
            amount=instruction.amount,
            method=method,
            notes="Settle up",
        )
        return await self.record_payment(payment, correlation_id=correlation_id)

    async def delete_payment(
        self,
        payment_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """Delete a payment and refresh balances. False if it didn't exist."""
        correlation_id = correlation_id or create_correlation_id()

        payment = await self._storage.get_payment(payment_id)
        if payment is None:
            return False

        deleted = await self._write(
            "delete_payment", payment.group_id, correlation_id,
            self._storage.delete_payment(payment_id),
        )
        if deleted:
            if self._audit_logger:
                await self._audit_logger.log_entry_deleted(
                    group_id=payment.group_id,
                    entity_type="payment",
                    entity_id=payment_id,
                    correlation_id=correlation_id,
                )
            await self.refresh_balances(payment.group_id, correlation_id=correlation_id)
        return deleted

    async def list_payments(self, group_id: UUID) -> list[Payment]:
        return await self._storage.list_payments(group_id)

    # ------------------------------------------------------------------
    # Balances and settlement
    # ------------------------------------------------------------------

    async def _write(
        self,
        operation: str,
        group_id: UUID,
        correlation_id: UUID,
        call: Awaitable[T],
    ) -> T:
        """Await a storage write, auditing the failure before re-raising."""
        try:
            return await call
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_storage_error(
                    operation=operation,
                    error_message=str(e),
                    group_id=group_id,
                    correlation_id=correlation_id,
                )
            raise

    async def _compute(self, group: Group) -> dict[str, Decimal]:
        expenses = await self._storage.list_expenses(group.id)
        payments = await self._storage.list_payments(group.id)
        return self._aggregator.compute(group, expenses, payments)

    async def get_balances(self, group_id: UUID) -> dict[str, Decimal]:
        """Fresh balances of every member, in member order."""
        group = await _require_group(self._storage, group_id)
        return await self._compute(group)

    async def refresh_balances(
        self,
        group_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> dict[str, Decimal]:
        """Recompute balances and overwrite the members' cached balance."""
        correlation_id = correlation_id or create_correlation_id()

        balances = await self.get_balances(group_id)
        await self._write(
            "update_member_balances", group_id, correlation_id,
            self._storage.update_member_balances(group_id, balances),
        )

        drift = zero_sum_drift(balances)
        if abs(drift) > self._aggregator.tolerance and self._audit_logger:
            await self._audit_logger.log_error(
                error_type="balance_drift",
                error_message=f"Balances of group {group_id} sum to {drift}",
                details={"group_id": str(group_id), "drift": str(drift)},
                correlation_id=correlation_id,
            )

        if self._audit_logger:
            await self._audit_logger.log_balances_recomputed(
                group_id=group_id,
                balances=balances,
                correlation_id=correlation_id,
            )
        return balances

    async def get_settlement_plan(
        self,
        group_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> SettlementPlan:
        """
        Compute who should pay whom to settle the group.

        Raises:
            SettlementComputationError: If the ledger is malformed or the
                balances don't sum to zero. No partial plan is returned.
        """
        correlation_id = correlation_id or create_correlation_id()
        group = await _require_group(self._storage, group_id)

        try:
            balances = await self._compute(group)
            instructions = self._optimizer.settle(balances)
        except LedgerError as e:
            if self._audit_logger:
                await self._audit_logger.log_settlement_failed(
                    group_id=group_id,
                    error_type=type(e).__name__,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise SettlementComputationError(group_id, e) from e

        if self._audit_logger:
            await self._audit_logger.log_settlement_computed(
                group_id=group_id,
                transaction_count=len(instructions),
                member_count=len(balances),
                correlation_id=correlation_id,
            )

        return SettlementPlan(
            group_id=group_id,
            currency=group.currency,
            balances=balances,
            instructions=instructions,
        )

    async def get_member_summary(self, user_id: str) -> MemberSummary:
        """
        What a user is owed and owes across all their groups.

        Balances within tolerance count as settled.
        """
        owed_to_you = ZERO
        you_owe = ZERO
        groups_with_debt = 0

        for group in await self._storage.list_groups(user_id):
            balance = (await self._compute(group)).get(user_id, ZERO)
            if balance > self._aggregator.tolerance:
                owed_to_you += balance
            elif balance < -self._aggregator.tolerance:
                you_owe += -balance
                groups_with_debt += 1

        return MemberSummary(
            user_id=user_id,
            owed_to_you=owed_to_you,
            you_owe=you_owe,
            groups_with_debt=groups_with_debt,
        )


# =============================================================================
# DEMO DATA
# =============================================================================

DEMO_USER_ID = "demo-user-1"

DEMO_MEMBERS = [
    (DEMO_USER_ID, "Demo User"),
    ("demo-user-2", "Rahul Sharma"),
    ("demo-user-3", "Priya Patel"),
    ("demo-user-4", "Amit Kumar"),
]

DEMO_EXPENSES = [
    ("Weekend Trip to Lonavala", "4000", "demo-user-4", ExpenseCategory.TRAVEL),
    ("Netflix Subscription", "649", DEMO_USER_ID, ExpenseCategory.ENTERTAINMENT),
    ("Groceries from BigBasket", "800", "demo-user-3", ExpenseCategory.SHOPPING),
    ("Electricity Bill - January", "2000", "demo-user-2", ExpenseCategory.UTILITIES),
    ("Dinner at Dominos", "1200", DEMO_USER_ID, ExpenseCategory.FOOD),
]


async def seed_demo_data(group_flow: GroupFlow, ledger_flow: LedgerFlow) -> Group:
    """
    Create a sample hostel group with four members and a few shared
    expenses, all split equally.
    """
    correlation_id = create_correlation_id()
    owner_id, owner_name = DEMO_MEMBERS[0]

    group = await group_flow.create_group(
        name="Room 304 - Hostel",
        created_by=owner_id,
        creator_name=owner_name,
        group_type=GroupType.HOSTEL,
        description="Our hostel room expenses",
        currency="INR",
        correlation_id=correlation_id,
    )
    for user_id, display_name in DEMO_MEMBERS[1:]:
        await group_flow.add_member(
            group.id, user_id, display_name, correlation_id=correlation_id
        )

    for description, amount, paid_by, category in DEMO_EXPENSES:
        await ledger_flow.record_split_expense(
            group_id=group.id,
            description=description,
            amount=Decimal(amount),
            paid_by=paid_by,
            category=category,
            correlation_id=correlation_id,
        )

    return await group_flow.get_group(group.id)


def create_app_components(
    backend: Optional[str] = None,
) -> tuple[GroupFlow, LedgerFlow, Optional[AuditStorageInterface]]:
    """
    Factory function to create all application components.

    Args:
        backend: "memory" or "google_sheets". Defaults to the
                configured storage backend.

    Returns:
        (group_flow, ledger_flow, audit_storage)
    """
    backend = backend or get_settings().app.storage_backend

    if backend == "google_sheets":
        sheets_client = GoogleSheetsClient()
        ledger_storage: LedgerStorageInterface = GoogleSheetsLedgerStorage(sheets_client)
        audit_storage: AuditStorageInterface = GoogleSheetsAuditStorage(sheets_client)
    elif backend == "memory":
        ledger_storage = InMemoryLedgerStorage()
        audit_storage = InMemoryAuditStorage()
    else:
        raise ValueError(f"Unknown storage backend: {backend}")

    audit_logger = AuditLogger(audit_storage)

    group_flow = GroupFlow(storage=ledger_storage, audit_logger=audit_logger)
    ledger_flow = LedgerFlow(storage=ledger_storage, audit_logger=audit_logger)

    return group_flow, ledger_flow, audit_storage
