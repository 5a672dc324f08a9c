"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the shared backend because:
1. Group members can look at the raw expenses directly in Sheets
2. No database setup required
3. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (fine for a flat or a trip)
- No transactions: an expense row is written in one append_row call,
  with its splits JSON-serialized in the same row, so a half-written
  expense cannot exist
- Limited query capabilities (we filter in Python)
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from splitledger.config import get_settings
from splitledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from splitledger.models.ledger import (
    Expense,
    ExpenseCategory,
    Group,
    GroupType,
    Member,
    MemberRole,
    Payment,
    PaymentMethod,
    Split,
)
from splitledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)

logger = structlog.get_logger(__name__)


GROUP_COLUMNS = [
    "id",
    "name",
    "description",
    "type",
    "currency",
    "invite_code",
    "created_by",
    "created_at",
]

MEMBER_COLUMNS = [
    "group_id",
    "user_id",
    "display_name",
    "role",
    "balance",
    "joined_at",
]

EXPENSE_COLUMNS = [
    "id",
    "group_id",
    "description",
    "amount",
    "category",
    "paid_by",
    "notes",
    "created_at",
    "splits_json",
]

PAYMENT_COLUMNS = [
    "id",
    "group_id",
    "from_user",
    "to_user",
    "amount",
    "method",
    "notes",
    "created_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "group_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "actor_id",
]

# Missing or duplicate records will not fix themselves on a retry
_retry = retry(
    retry=retry_if_not_exception_type((NotFoundError, DuplicateError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _cell(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @_retry
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}") from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get a worksheet, creating it with a header row if missing."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def groups_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.groups_sheet_name, GROUP_COLUMNS)

    def members_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.members_sheet_name, MEMBER_COLUMNS)

    def expenses_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.expenses_sheet_name, EXPENSE_COLUMNS, rows=5000)

    def payments_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.payments_sheet_name, PAYMENT_COLUMNS)

    def audit_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    One worksheet per record type. Members are stored one row per
    (group, user) pair so a user's balances in different groups stay
    independent.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    # Row conversion

    @staticmethod
    def _group_to_row(group: Group) -> list:
        return [
            str(group.id),
            group.name,
            group.description or "",
            group.type.value,
            group.currency,
            group.invite_code,
            group.created_by,
            group.created_at.isoformat(),
        ]

    @staticmethod
    def _row_to_group(row: list, members: list[Member]) -> Group:
        return Group(
            id=UUID(_cell(row, 0)),
            name=_cell(row, 1),
            description=_cell(row, 2) or None,
            type=GroupType(_cell(row, 3, GroupType.OTHER.value)),
            currency=_cell(row, 4, "INR"),
            invite_code=_cell(row, 5),
            created_by=_cell(row, 6),
            created_at=datetime.fromisoformat(_cell(row, 7)),
            members=members,
        )

    @staticmethod
    def _member_to_row(group_id: UUID, member: Member) -> list:
        return [
            str(group_id),
            member.user_id,
            member.display_name,
            member.role.value,
            str(member.balance),
            member.joined_at.isoformat(),
        ]

    @staticmethod
    def _row_to_member(row: list) -> Member:
        return Member(
            user_id=_cell(row, 1),
            display_name=_cell(row, 2),
            role=MemberRole(_cell(row, 3, MemberRole.MEMBER.value)),
            balance=Decimal(_cell(row, 4, "0")),
            joined_at=datetime.fromisoformat(_cell(row, 5)),
        )

    @staticmethod
    def _expense_to_row(expense: Expense) -> list:
        return [
            str(expense.id),
            str(expense.group_id),
            expense.description,
            str(expense.amount),
            expense.category.value,
            expense.paid_by,
            expense.notes or "",
            expense.created_at.isoformat(),
            json.dumps([s.model_dump(mode="json") for s in expense.splits]),
        ]

    @staticmethod
    def _row_to_expense(row: list) -> Expense:
        splits = [Split(**item) for item in json.loads(_cell(row, 8, "[]"))]
        return Expense(
            id=UUID(_cell(row, 0)),
            group_id=UUID(_cell(row, 1)),
            description=_cell(row, 2),
            amount=Decimal(_cell(row, 3)),
            category=ExpenseCategory(_cell(row, 4, ExpenseCategory.MISCELLANEOUS.value)),
            paid_by=_cell(row, 5),
            notes=_cell(row, 6) or None,
            created_at=datetime.fromisoformat(_cell(row, 7)),
            splits=splits,
        )

    @staticmethod
    def _payment_to_row(payment: Payment) -> list:
        return [
            str(payment.id),
            str(payment.group_id),
            payment.from_user,
            payment.to_user,
            str(payment.amount),
            payment.method.value if payment.method else "",
            payment.notes or "",
            payment.created_at.isoformat(),
        ]

    @staticmethod
    def _row_to_payment(row: list) -> Payment:
        return Payment(
            id=UUID(_cell(row, 0)),
            group_id=UUID(_cell(row, 1)),
            from_user=_cell(row, 2),
            to_user=_cell(row, 3),
            amount=Decimal(_cell(row, 4)),
            method=PaymentMethod(_cell(row, 5)) if _cell(row, 5) else None,
            notes=_cell(row, 6) or None,
            created_at=datetime.fromisoformat(_cell(row, 7)),
        )

    # Helpers

    def _rows(self, sheet: gspread.Worksheet) -> list[list]:
        """All data rows, header excluded."""
        return sheet.get_all_values()[1:]

    def _members_of(self, group_id: UUID) -> list[Member]:
        rows = self._rows(self._client.members_sheet())
        return [
            self._row_to_member(row)
            for row in rows
            if row and row[0] == str(group_id)
        ]

    def _group_exists(self, group_id: UUID) -> bool:
        rows = self._rows(self._client.groups_sheet())
        return any(row and row[0] == str(group_id) for row in rows)

    def _find_row_index(self, sheet: gspread.Worksheet, entity_id: UUID) -> Optional[int]:
        """1-based sheet row of the entity (row 1 is the header)."""
        for idx, row in enumerate(self._rows(sheet), start=2):
            if row and row[0] == str(entity_id):
                return idx
        return None

    # Groups and members

    @_retry
    async def save_group(self, group: Group) -> bool:
        try:
            if self._group_exists(group.id):
                raise DuplicateError(f"Group already exists: {group.id}")
            self._client.groups_sheet().append_row(
                self._group_to_row(group), value_input_option="RAW"
            )
            if group.members:
                self._client.members_sheet().append_rows(
                    [self._member_to_row(group.id, m) for m in group.members],
                    value_input_option="RAW",
                )
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save group: {e}") from e

    async def get_group(self, group_id: UUID) -> Optional[Group]:
        try:
            for row in self._rows(self._client.groups_sheet()):
                if row and row[0] == str(group_id):
                    return self._row_to_group(row, self._members_of(group_id))
            return None
        except Exception as e:
            raise StorageError(f"Failed to get group: {e}") from e

    async def list_groups(self, user_id: Optional[str] = None) -> list[Group]:
        try:
            member_rows = self._rows(self._client.members_sheet())
            members_by_group: dict[str, list[Member]] = {}
            for row in member_rows:
                if row and row[0]:
                    members_by_group.setdefault(row[0], []).append(self._row_to_member(row))

            groups = []
            for row in self._rows(self._client.groups_sheet()):
                if not row or not row[0]:
                    continue
                group = self._row_to_group(row, members_by_group.get(row[0], []))
                if user_id is None or group.get_member(user_id) is not None:
                    groups.append(group)

            groups.sort(key=lambda g: g.created_at)
            return groups
        except Exception as e:
            raise StorageError(f"Failed to list groups: {e}") from e

    @_retry
    async def add_member(self, group_id: UUID, member: Member) -> bool:
        try:
            if not self._group_exists(group_id):
                raise NotFoundError(f"Group not found: {group_id}")
            if any(m.user_id == member.user_id for m in self._members_of(group_id)):
                raise DuplicateError(f"{member.user_id} is already in group {group_id}")
            self._client.members_sheet().append_row(
                self._member_to_row(group_id, member), value_input_option="RAW"
            )
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to add member: {e}") from e

    async def update_member_balances(
        self,
        group_id: UUID,
        balances: dict[str, Decimal],
    ) -> bool:
        try:
            if not self._group_exists(group_id):
                raise NotFoundError(f"Group not found: {group_id}")
            sheet = self._client.members_sheet()
            balance_col = MEMBER_COLUMNS.index("balance") + 1
            for idx, row in enumerate(self._rows(sheet), start=2):
                if row and row[0] == str(group_id) and _cell(row, 1) in balances:
                    sheet.update_cell(idx, balance_col, str(balances[row[1]]))
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update balances: {e}") from e

    # Expenses

    @_retry
    async def save_expense(self, expense: Expense) -> bool:
        try:
            if not self._group_exists(expense.group_id):
                raise NotFoundError(f"Group not found: {expense.group_id}")
            sheet = self._client.expenses_sheet()
            if self._find_row_index(sheet, expense.id) is not None:
                raise DuplicateError(f"Expense already exists: {expense.id}")
            sheet.append_row(self._expense_to_row(expense), value_input_option="RAW")
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save expense: {e}") from e

    async def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        try:
            for row in self._rows(self._client.expenses_sheet()):
                if row and row[0] == str(expense_id):
                    return self._row_to_expense(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get expense: {e}") from e

    async def delete_expense(self, expense_id: UUID) -> bool:
        try:
            sheet = self._client.expenses_sheet()
            idx = self._find_row_index(sheet, expense_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete expense: {e}") from e

    async def list_expenses(self, group_id: UUID) -> list[Expense]:
        # Malformed rows raise instead of being skipped: dropping an
        # expense would silently change everyone's balance.
        try:
            expenses = [
                self._row_to_expense(row)
                for row in self._rows(self._client.expenses_sheet())
                if row and len(row) > 1 and row[1] == str(group_id)
            ]
            expenses.sort(key=lambda e: e.created_at)
            return expenses
        except Exception as e:
            raise StorageError(f"Failed to list expenses: {e}") from e

    # Payments

    @_retry
    async def save_payment(self, payment: Payment) -> bool:
        try:
            if not self._group_exists(payment.group_id):
                raise NotFoundError(f"Group not found: {payment.group_id}")
            sheet = self._client.payments_sheet()
            if self._find_row_index(sheet, payment.id) is not None:
                raise DuplicateError(f"Payment already exists: {payment.id}")
            sheet.append_row(self._payment_to_row(payment), value_input_option="RAW")
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save payment: {e}") from e

    async def get_payment(self, payment_id: UUID) -> Optional[Payment]:
        try:
            for row in self._rows(self._client.payments_sheet()):
                if row and row[0] == str(payment_id):
                    return self._row_to_payment(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get payment: {e}") from e

    async def delete_payment(self, payment_id: UUID) -> bool:
        try:
            sheet = self._client.payments_sheet()
            idx = self._find_row_index(sheet, payment_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete payment: {e}") from e

    async def list_payments(self, group_id: UUID) -> list[Payment]:
        try:
            payments = [
                self._row_to_payment(row)
                for row in self._rows(self._client.payments_sheet())
                if row and len(row) > 1 and row[1] == str(group_id)
            ]
            payments.sort(key=lambda p: p.created_at)
            return payments
        except Exception as e:
            raise StorageError(f"Failed to list payments: {e}") from e


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def _row_to_event(row: list) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            group_id=UUID(_cell(row, 4)) if _cell(row, 4) else None,
            entity_type=_cell(row, 5) or None,
            entity_id=UUID(_cell(row, 6)) if _cell(row, 6) else None,
            correlation_id=UUID(_cell(row, 7)) if _cell(row, 7) else None,
            description=_cell(row, 8),
            details=json.loads(_cell(row, 9)) if _cell(row, 9) else {},
            error_message=_cell(row, 10) or None,
            actor_id=_cell(row, 11) or None,
        )

    def _all_events(self) -> list[AuditEvent]:
        events = []
        for row in self._client.audit_sheet().get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, json.JSONDecodeError) as e:
                logger.warning("audit_row_unreadable", row_id=row[0], error=str(e))
        return events

    @_retry
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.warning("audit_append_failed", event_id=str(event.event_id), error=str(e))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [e for e in self._all_events() if e.correlation_id == correlation_id]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}") from e

    async def get_events_by_group(
        self,
        group_id: UUID,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = [e for e in self._all_events() if e.group_id == group_id]
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}") from e
