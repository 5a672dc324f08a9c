"""Tests for the two-stage expense and payment validation."""

from decimal import Decimal
from uuid import uuid4

import pytest

from splitledger.models.ledger import ExpenseDraft, Group, Member, Payment, Split
from splitledger.validation import LedgerEntryValidator


@pytest.fixture
def group():
    return Group(
        name="Room 304",
        created_by="a",
        members=[
            Member(user_id="a", display_name="Asha"),
            Member(user_id="b", display_name="Bilal"),
            Member(user_id="c", display_name="Chen"),
        ],
    )


@pytest.fixture
def validator():
    return LedgerEntryValidator(max_expense_amount=Decimal("100000"))


def draft_for(group, **overrides):
    fields = dict(
        group_id=group.id,
        description="Groceries",
        amount=Decimal("300"),
        paid_by="a",
        splits=[
            Split(user_id="a", amount=Decimal("100")),
            Split(user_id="b", amount=Decimal("100")),
            Split(user_id="c", amount=Decimal("100")),
        ],
    )
    fields.update(overrides)
    return ExpenseDraft(**fields)


def issue_types(result):
    return {i.issue_type for i in result.issues}


class TestExpenseValidation:
    """Tests for validate_expense."""

    def test_valid_expense(self, validator, group):
        """Test a correct expense passes both stages."""
        result = validator.validate_expense(draft_for(group), group)
        assert result.is_valid
        assert result.schema_valid and result.semantic_valid
        assert result.issues == []

    def test_missing_fields(self, validator, group):
        """Test the schema stage reports every missing field."""
        draft = ExpenseDraft(group_id=group.id)
        result = validator.validate_expense(draft, group)
        assert not result.is_valid
        assert not result.schema_valid
        assert {i.field for i in result.issues} == {"description", "amount", "paid_by", "splits"}

    def test_semantic_stage_skipped_after_schema_failure(self, validator, group):
        """Test membership isn't checked when the schema is broken."""
        draft = draft_for(group, description=None, paid_by="stranger")
        result = validator.validate_expense(draft, group)
        assert "unknown_member" not in issue_types(result)
        assert result.semantic_valid is False

    def test_duplicate_split_member(self, validator, group):
        """Test the same member can't be split twice."""
        draft = draft_for(group, splits=[
            Split(user_id="b", amount=Decimal("150")),
            Split(user_id="b", amount=Decimal("150")),
        ])
        result = validator.validate_expense(draft, group)
        assert "duplicate" in issue_types(result)

    def test_unknown_split_member(self, validator, group):
        """Test splits must only name group members."""
        draft = draft_for(group, splits=[
            Split(user_id="a", amount=Decimal("150")),
            Split(user_id="zed", amount=Decimal("150")),
        ])
        result = validator.validate_expense(draft, group)
        assert not result.is_valid
        assert "unknown_member" in issue_types(result)

    def test_split_mismatch_is_exact(self, validator, group):
        """Test even a one-cent gap is reported with a suggested fix."""
        draft = draft_for(group, amount=Decimal("300.01"))
        result = validator.validate_expense(draft, group)
        assert not result.is_valid
        mismatch = [i for i in result.issues if i.issue_type == "split_mismatch"][0]
        assert mismatch.suggested_fix == "Assign the remaining ₹0.01 to a member"

    def test_over_allocated_splits(self, validator, group):
        """Test splits larger than the total suggest a reduction."""
        draft = draft_for(group, amount=Decimal("250"))
        result = validator.validate_expense(draft, group)
        mismatch = [i for i in result.issues if i.issue_type == "split_mismatch"][0]
        assert mismatch.suggested_fix == "Reduce the shares by ₹50.00"

    def test_wrong_group(self, validator, group):
        """Test drafts for another group are refused."""
        draft = draft_for(group, group_id=uuid4())
        result = validator.validate_expense(draft, group)
        assert "wrong_group" in issue_types(result)

    def test_large_amount_is_a_warning(self, group):
        """Test unusually large amounts warn but don't block."""
        validator = LedgerEntryValidator(max_expense_amount=Decimal("200"))
        result = validator.validate_expense(draft_for(group), group)
        assert result.is_valid
        assert len(result.warnings) == 1

    def test_payer_only_expense_is_info(self, validator, group):
        """Test an expense nobody else shares is flagged as info."""
        draft = draft_for(group, amount=Decimal("50"), splits=[
            Split(user_id="a", amount=Decimal("50")),
        ])
        result = validator.validate_expense(draft, group)
        assert result.is_valid
        assert "no_effect" in issue_types(result)

    def test_amount_with_sub_cent_digits(self, validator, group):
        """Test amounts must be whole cents."""
        draft = draft_for(group, amount=Decimal("10.005"), splits=[
            Split(user_id="a", amount=Decimal("5.00")),
            Split(user_id="b", amount=Decimal("5.01")),
        ])
        result = validator.validate_expense(draft, group)
        assert not result.schema_valid
        issue = [i for i in result.issues if i.field == "amount"][0]
        assert issue.suggested_fix == "Use 10.01"

    def test_trailing_zeros_are_whole_cents(self, validator, group):
        """Test 300.000 is the same as 300.00."""
        result = validator.validate_expense(draft_for(group, amount=Decimal("300.000")), group)
        assert result.is_valid

    def test_description_too_long(self, validator, group):
        """Test descriptions longer than 200 characters are refused."""
        result = validator.validate_expense(draft_for(group, description="x" * 201), group)
        assert not result.schema_valid
        assert "too_long" in issue_types(result)

    def test_notes_too_long(self, validator, group):
        """Test notes longer than 1000 characters are refused."""
        result = validator.validate_expense(draft_for(group, notes="n" * 1001), group)
        assert not result.schema_valid
        assert {i.field for i in result.issues} == {"notes"}


class TestPaymentValidation:
    """Tests for validate_payment."""

    def test_valid_payment(self, validator, group):
        """Test a payment between members passes."""
        payment = Payment(group_id=group.id, from_user="b", to_user="a", amount=Decimal("100"))
        result = validator.validate_payment(payment, group, {"a": Decimal("100"), "b": Decimal("-100")})
        assert result.is_valid
        assert result.warnings == []

    def test_unknown_party(self, validator, group):
        """Test both sides must be members."""
        payment = Payment(group_id=group.id, from_user="zed", to_user="a", amount=Decimal("10"))
        result = validator.validate_payment(payment, group)
        assert not result.is_valid
        assert result.issues[0].field == "from_user"

    def test_overpayment_is_a_warning(self, validator, group):
        """Test paying more than owed is allowed with a warning."""
        payment = Payment(group_id=group.id, from_user="b", to_user="a", amount=Decimal("150"))
        result = validator.validate_payment(payment, group, {"a": Decimal("100"), "b": Decimal("-100")})
        assert result.is_valid
        assert "overpayment" in issue_types(result)

    def test_payer_not_in_debt(self, validator, group):
        """Test paying while owed money raises a warning."""
        payment = Payment(group_id=group.id, from_user="a", to_user="b", amount=Decimal("10"))
        result = validator.validate_payment(payment, group, {"a": Decimal("100"), "b": Decimal("-100")})
        assert result.is_valid
        assert "not_in_debt" in issue_types(result)
        assert "Asha does not owe anything" in result.warnings


class TestUserFriendlySummary:
    """Tests for the display summary."""

    def test_all_passed(self, validator, group):
        """Test the success message."""
        result = validator.validate_expense(draft_for(group), group)
        assert validator.get_user_friendly_summary(result) == "✅ All checks passed."

    def test_lists_errors_and_fixes(self, validator, group):
        """Test errors and their fixes are listed."""
        result = validator.validate_expense(draft_for(group, amount=Decimal("301")), group)
        summary = validator.get_user_friendly_summary(result)
        assert "can't be saved yet" in summary
        assert "Assign the remaining ₹1.00 to a member" in summary
