"""
Core Data Models for Split Ledger

These models define the strict schemas for all ledger data:
groups and their members, expenses with their splits, payments,
and the (never persisted) settlement instructions.

They are designed to:
1. Enforce type safety at runtime
2. Keep money as two-place Decimals, never floats
3. Be serializable for storage and logging

DESIGN DECISION: A member's balance is a CACHE. The source of truth is
the set of expenses and payments in the group; balances are recomputed
from them, never patched incrementally.
"""

import secrets
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from splitledger.config import get_settings
from splitledger.money import ZERO, sum_money, to_money

MAX_DESCRIPTION_LENGTH = 200
MAX_NOTES_LENGTH = 1000


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class MemberRole(str, Enum):
    """Role inside a group. Has no effect on balances or settlement."""
    ADMIN = "admin"
    MEMBER = "member"


class GroupType(str, Enum):
    HOSTEL = "hostel"
    FLAT = "flat"
    TRIP = "trip"
    OTHER = "other"


class ExpenseCategory(str, Enum):
    """
    Expense categories.

    Tag only; the category never influences balances.
    """
    FOOD = "food"
    UTILITIES = "utilities"
    TRAVEL = "travel"
    ENTERTAINMENT = "entertainment"
    SHOPPING = "shopping"
    HEALTH = "health"
    EDUCATION = "education"
    MISCELLANEOUS = "miscellaneous"


class SplitType(str, Enum):
    """How an expense total is divided among members."""
    EQUAL = "equal"
    EXACT = "exact"
    PERCENTAGE = "percentage"


class PaymentMethod(str, Enum):
    UPI = "upi"
    CASH = "cash"
    BANK = "bank"
    OTHER = "other"


# =============================================================================
# GROUP MODELS
# =============================================================================

def generate_invite_code() -> str:
    """Short, URL-safe code members use to join a group."""
    return secrets.token_urlsafe(6).replace("-", "").replace("_", "")[:8].upper()


class Member(BaseModel):
    """
    A participant in a group.

    The same user has an independent Member record (and balance)
    in every group they belong to.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="Unique member identifier"
    )
    display_name: str = Field(
        ...,
        min_length=1,
        max_length=100,
    )
    role: MemberRole = Field(default=MemberRole.MEMBER)
    balance: Decimal = Field(
        default=ZERO,
        description="Cached net balance: positive = owed money, negative = owes money"
    )
    joined_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator('balance')
    @classmethod
    def quantize_balance(cls, v: Decimal) -> Decimal:
        return to_money(v)


class Group(BaseModel):
    """
    A group of people sharing expenses.

    A group exclusively owns its members, expenses and payments.
    Member order is preserved and is the ordering used when computing
    settlements.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    type: GroupType = Field(default=GroupType.OTHER)
    currency: str = Field(default="INR", min_length=3, max_length=3)
    invite_code: str = Field(default_factory=generate_invite_code)
    created_by: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    members: list[Member] = Field(default_factory=list)

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode='after')
    def validate_unique_members(self) -> 'Group':
        """A user can appear at most once in a group."""
        seen = set()
        for member in self.members:
            if member.user_id in seen:
                raise ValueError(f"Duplicate member in group: {member.user_id}")
            seen.add(member.user_id)
        return self

    @property
    def member_ids(self) -> list[str]:
        return [m.user_id for m in self.members]

    def get_member(self, user_id: str) -> Optional[Member]:
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    def display_name_for(self, user_id: str) -> str:
        member = self.get_member(user_id)
        return member.display_name if member else "Unknown member"


# =============================================================================
# EXPENSE MODELS
# =============================================================================

class Split(BaseModel):
    """One member's allocated share of a single expense."""

    user_id: str = Field(..., min_length=1)
    amount: Decimal = Field(
        ...,
        ge=0,
        decimal_places=2,
        description="Amount owed by this member"
    )
    is_paid: bool = Field(
        default=False,
        description="Settlement tracking only; ignored by balance computation"
    )


class ExpenseDraft(BaseModel):
    """
    An expense as entered, BEFORE validation.

    Everything is loose here on purpose: the validator reports what is
    wrong instead of pydantic refusing to build the object. Only a draft
    that passes validation becomes an Expense.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    group_id: UUID
    description: Optional[str] = None
    amount: Optional[Decimal] = None
    category: ExpenseCategory = Field(default=ExpenseCategory.MISCELLANEOUS)
    paid_by: Optional[str] = None
    splits: list[Split] = Field(default_factory=list)
    notes: Optional[str] = None


class Expense(BaseModel):
    """
    A single shared payment event: one payer, many splits.

    INVARIANT: the splits add up to the total (within tolerance).
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    group_id: UUID
    description: str = Field(..., min_length=1, max_length=MAX_DESCRIPTION_LENGTH)
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Total amount paid"
    )
    category: ExpenseCategory = Field(default=ExpenseCategory.MISCELLANEOUS)
    paid_by: str = Field(..., min_length=1)
    splits: list[Split] = Field(..., min_length=1)
    notes: Optional[str] = Field(default=None, max_length=MAX_NOTES_LENGTH)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='after')
    def validate_splits(self) -> 'Expense':
        """Validate split membership and sum."""
        user_ids = [s.user_id for s in self.splits]
        if len(user_ids) != len(set(user_ids)):
            raise ValueError("A member can only appear once in an expense's splits")

        difference = abs(self.split_total - self.amount)
        if difference > get_settings().ledger.tolerance:
            raise ValueError(
                f"Splits add up to {self.split_total}, expected {self.amount}"
            )
        return self

    @property
    def split_total(self) -> Decimal:
        return sum_money(s.amount for s in self.splits)

    @property
    def participant_ids(self) -> set[str]:
        return {self.paid_by} | {s.user_id for s in self.splits}


# =============================================================================
# PAYMENT & SETTLEMENT MODELS
# =============================================================================

class Payment(BaseModel):
    """A recorded direct transfer from one member to another."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    group_id: UUID
    from_user: str = Field(..., min_length=1, description="Member who paid")
    to_user: str = Field(..., min_length=1, description="Member who received")
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    method: Optional[PaymentMethod] = None
    notes: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='after')
    def validate_parties(self) -> 'Payment':
        if self.from_user == self.to_user:
            raise ValueError("A member cannot pay themselves")
        return self


class SettlementInstruction(BaseModel):
    """
    A proposed payment that moves balances toward zero.

    Ephemeral: recomputed on every request and never stored.
    """
    model_config = ConfigDict(frozen=True)

    from_user: str
    to_user: str
    amount: Decimal = Field(..., gt=0)

    def to_dict(self) -> dict:
        return {
            "from": self.from_user,
            "to": self.to_user,
            "amount": str(self.amount),
        }


class SettlementPlan(BaseModel):
    """Balances of a group together with the instructions that settle them."""

    group_id: UUID
    currency: str
    balances: dict[str, Decimal]
    instructions: list[SettlementInstruction] = Field(default_factory=list)
    computed_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_settled(self) -> bool:
        return not self.instructions

    @property
    def transaction_count(self) -> int:
        return len(self.instructions)

    def instructions_for(self, user_id: str) -> list[SettlementInstruction]:
        """Instructions where the member pays or gets paid."""
        return [
            i for i in self.instructions
            if i.from_user == user_id or i.to_user == user_id
        ]


class MemberSummary(BaseModel):
    """Totals for one user across all of their groups."""

    user_id: str
    owed_to_you: Decimal = ZERO
    you_owe: Decimal = ZERO
    groups_with_debt: int = 0

    @property
    def net(self) -> Decimal:
        return self.owed_to_you - self.you_owe
