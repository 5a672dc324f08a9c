"""
Streamlit Frontend for Split Ledger

This is the user interface roommates and trip groups interact with
to record shared expenses and settle up.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Every balance shown is freshly computed from the ledger
3. Clear error messages in simple language
4. Visual feedback for all operations
5. No hidden actions

Money is formatted only here, at the edge; the ledger core never
formats amounts.
"""

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Optional

import streamlit as st

from splitledger.audit import create_correlation_id
from splitledger.config import get_settings, validate_all_settings
from splitledger.models.ledger import (
    ExpenseCategory,
    Group,
    GroupType,
    Payment,
    PaymentMethod,
    SplitType,
)
from splitledger.money import format_money, is_zero
from splitledger.orchestrator import (
    DEMO_USER_ID,
    GroupFlow,
    InvalidLedgerEntryError,
    LedgerFlow,
    SettlementComputationError,
    create_app_components,
    seed_demo_data,
)
from splitledger.splits import SplitCalculationError


# Page configuration
st.set_page_config(
    page_title="Split Ledger",
    page_icon="💸",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .success-box {
        padding: 20px;
        background-color: #d4edda;
        border-radius: 10px;
        border-left: 5px solid #28a745;
        margin: 10px 0;
    }
    .error-box {
        padding: 20px;
        background-color: #f8d7da;
        border-radius: 10px;
        border-left: 5px solid #dc3545;
        margin: 10px 0;
    }
    .big-number {
        font-size: 2.5em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    try:
        group_flow, ledger_flow, audit_storage = create_app_components()
    except Exception as e:
        st.error(f"Failed to initialize storage, using in-memory ledger: {e}")
        group_flow, ledger_flow, audit_storage = create_app_components(backend="memory")

    if get_settings().app.load_demo_data and not run_async(group_flow.list_groups()):
        run_async(seed_demo_data(group_flow, ledger_flow))

    return group_flow, ledger_flow, audit_storage


def parse_amount(raw: str) -> Optional[Decimal]:
    try:
        return Decimal(raw.strip())
    except (InvalidOperation, AttributeError):
        return None


def main():
    """Main application entry point."""
    group_flow, ledger_flow, _ = get_components()

    st.sidebar.title("💸 Split Ledger")
    st.sidebar.markdown("---")

    user_id = st.sidebar.text_input("Your user ID", value=DEMO_USER_ID)

    page = st.sidebar.radio(
        "Navigate to:",
        ["👥 Groups", "🧾 Expenses", "🤝 Settle Up", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **How to use:**
        1. Create or join a group
        2. Add expenses as they happen
        3. Open Settle Up to see who pays whom
        """
    )

    if page == "👥 Groups":
        render_groups_page(group_flow, ledger_flow, user_id)
    elif page == "🧾 Expenses":
        render_expenses_page(group_flow, ledger_flow, user_id)
    elif page == "🤝 Settle Up":
        render_settle_up_page(group_flow, ledger_flow, user_id)
    elif page == "⚙️ Settings":
        render_settings_page()


def select_group(group_flow: GroupFlow, user_id: str) -> Optional[Group]:
    """Group picker shared by the pages."""
    groups = run_async(group_flow.list_groups(user_id))
    if not groups:
        st.info("You're not in any group yet. Create one on the Groups page.")
        return None
    return st.selectbox(
        "Group",
        options=groups,
        format_func=lambda g: f"{g.name} ({g.type.value})",
    )


def render_groups_page(group_flow: GroupFlow, ledger_flow: LedgerFlow, user_id: str):
    """Render the groups overview page."""
    st.title("👥 Your Groups")

    summary = run_async(ledger_flow.get_member_summary(user_id))
    currency = get_settings().ledger.default_currency

    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("You are owed", format_money(summary.owed_to_you, currency))
    with col2:
        st.metric("You owe", format_money(summary.you_owe, currency))
    with col3:
        st.metric("Net balance", format_money(summary.net, currency))

    st.markdown("---")

    for group in run_async(group_flow.list_groups(user_id)):
        member = group.get_member(user_id)
        with st.expander(f"{group.name} - {len(group.members)} members"):
            if group.description:
                st.markdown(group.description)
            st.markdown(f"**Invite code:** `{group.invite_code}`")
            if member is not None:
                if is_zero(member.balance):
                    st.markdown("✅ You are all settled up")
                elif member.balance > 0:
                    st.markdown(f"🟢 You are owed {format_money(member.balance, group.currency)}")
                else:
                    st.markdown(f"🔴 You owe {format_money(-member.balance, group.currency)}")

    st.markdown("---")
    col1, col2 = st.columns(2)

    with col1:
        st.subheader("➕ Create a group")
        with st.form("create_group"):
            name = st.text_input("Group name *")
            display_name = st.text_input("Your name *")
            group_type = st.selectbox(
                "Type",
                options=list(GroupType),
                format_func=lambda x: x.value.title(),
            )
            description = st.text_area("Description (optional)")
            if st.form_submit_button("Create", type="primary"):
                if not name or not display_name:
                    st.error("Please enter a group name and your name")
                else:
                    try:
                        group = run_async(group_flow.create_group(
                            name=name,
                            created_by=user_id,
                            creator_name=display_name,
                            group_type=group_type,
                            description=description or None,
                            correlation_id=create_correlation_id(),
                        ))
                        st.success(f"Created {group.name}. Invite code: {group.invite_code}")
                    except Exception as e:
                        st.error(f"Failed to create group: {str(e)}")

    with col2:
        st.subheader("🔑 Join with invite code")
        with st.form("join_group"):
            code = st.text_input("Invite code *")
            display_name = st.text_input("Your name *", key="join_name")
            if st.form_submit_button("Join"):
                try:
                    group = run_async(group_flow.join_by_invite_code(
                        code, user_id, display_name
                    ))
                    st.success(f"You joined {group.name}")
                except Exception as e:
                    st.error(f"Could not join: {str(e)}")


def render_expenses_page(group_flow: GroupFlow, ledger_flow: LedgerFlow, user_id: str):
    """Render the expense list and the add-expense form."""
    st.title("🧾 Expenses")

    group = select_group(group_flow, user_id)
    if group is None:
        return

    with st.form("add_expense"):
        st.subheader("Add an expense")
        description = st.text_input("What was it for? *")
        amount_raw = st.text_input(f"Amount ({group.currency}) *", placeholder="0.00")
        paid_by = st.selectbox(
            "Paid by",
            options=group.member_ids,
            index=group.member_ids.index(user_id) if user_id in group.member_ids else 0,
            format_func=group.display_name_for,
        )
        category = st.selectbox(
            "Category",
            options=list(ExpenseCategory),
            format_func=lambda x: x.value.title(),
        )
        split_type = st.radio(
            "Split",
            options=list(SplitType),
            format_func=lambda x: x.value.title(),
            horizontal=True,
        )
        participants = st.multiselect(
            "Split between",
            options=group.member_ids,
            default=group.member_ids,
            format_func=group.display_name_for,
        )
        values = {}
        if split_type != SplitType.EQUAL:
            label = "share" if split_type == SplitType.EXACT else "percent"
            for member_id in participants:
                raw = st.text_input(f"{group.display_name_for(member_id)} {label}", key=f"v-{member_id}")
                values[member_id] = parse_amount(raw) or Decimal("0")
        notes = st.text_area("Notes (optional)")

        if st.form_submit_button("💾 Save expense", type="primary"):
            amount = parse_amount(amount_raw)
            if amount is None:
                st.error("Please enter a valid amount")
            else:
                try:
                    expense, result = run_async(ledger_flow.record_split_expense(
                        group_id=group.id,
                        description=description,
                        amount=amount,
                        paid_by=paid_by,
                        split_type=split_type,
                        member_ids=participants,
                        values=values or None,
                        category=category,
                        notes=notes or None,
                    ))
                    st.success(f"Saved {expense.description} ({format_money(expense.amount, group.currency)})")
                    for warning in result.warnings:
                        st.warning(warning)
                except InvalidLedgerEntryError as e:
                    for issue in e.result.issues:
                        if issue.severity == "error":
                            st.error(issue.message + (f" - {issue.suggested_fix}" if issue.suggested_fix else ""))
                except SplitCalculationError as e:
                    st.error(str(e))

    st.markdown("---")
    st.subheader("History")

    expenses = run_async(ledger_flow.list_expenses(group.id))
    if not expenses:
        st.info("No expenses yet.")
    for expense in reversed(expenses):
        col1, col2 = st.columns([4, 1])
        with col1:
            st.markdown(
                f"**{expense.description}** - {format_money(expense.amount, group.currency)} "
                f"paid by {group.display_name_for(expense.paid_by)} "
                f"({expense.category.value}, {expense.created_at.strftime('%d %b %Y')})"
            )
        with col2:
            if st.button("🗑️ Delete", key=f"del-{expense.id}"):
                run_async(ledger_flow.delete_expense(expense.id))
                st.rerun()


def render_settle_up_page(group_flow: GroupFlow, ledger_flow: LedgerFlow, user_id: str):
    """Render balances and the settle-up plan."""
    st.title("🤝 Settle Up")

    group = select_group(group_flow, user_id)
    if group is None:
        return

    try:
        plan = run_async(ledger_flow.get_settlement_plan(group.id))
    except SettlementComputationError as e:
        st.markdown(f"""
        <div class="error-box">
            <h4>❌ {e.USER_MESSAGE}</h4>
            <p>The group's ledger has an entry that doesn't add up. Please review recent expenses.</p>
        </div>
        """, unsafe_allow_html=True)
        return

    st.subheader("Balances")
    for member_id, balance in plan.balances.items():
        name = group.display_name_for(member_id)
        if is_zero(balance):
            st.markdown(f"⚪ {name}: settled")
        elif balance > 0:
            st.markdown(f"🟢 {name} gets back {format_money(balance, plan.currency)}")
        else:
            st.markdown(f"🔴 {name} owes {format_money(-balance, plan.currency)}")

    st.markdown("---")
    st.subheader("Suggested payments")

    if plan.is_settled:
        st.markdown("""
        <div class="success-box">
            <h4>✅ All settled up!</h4>
        </div>
        """, unsafe_allow_html=True)
    else:
        st.markdown(f"{plan.transaction_count} payment(s) settle everyone:")
        for index, instruction in enumerate(plan.instructions):
            col1, col2 = st.columns([4, 1])
            with col1:
                st.markdown(
                    f"**{group.display_name_for(instruction.from_user)}** pays "
                    f"**{group.display_name_for(instruction.to_user)}** "
                    f"{format_money(instruction.amount, plan.currency)}"
                )
            with col2:
                if st.button("Mark paid", key=f"paid-{index}"):
                    try:
                        run_async(ledger_flow.record_settlement(group.id, instruction))
                        st.rerun()
                    except InvalidLedgerEntryError as e:
                        st.error(str(e))

    st.markdown("---")
    with st.form("record_payment"):
        st.subheader("Record a payment")
        from_user = st.selectbox("From", options=group.member_ids, format_func=group.display_name_for)
        to_user = st.selectbox("To", options=group.member_ids, format_func=group.display_name_for)
        amount_raw = st.text_input(f"Amount ({group.currency})")
        method = st.selectbox("Method", options=list(PaymentMethod), format_func=lambda x: x.value.upper())

        if st.form_submit_button("💾 Save payment"):
            amount = parse_amount(amount_raw)
            if amount is None or amount <= 0:
                st.error("Please enter a valid amount")
            elif from_user == to_user:
                st.error("Pick two different members")
            else:
                try:
                    _, result = run_async(ledger_flow.record_payment(Payment(
                        group_id=group.id,
                        from_user=from_user,
                        to_user=to_user,
                        amount=amount,
                        method=method,
                    )))
                    st.success("Payment recorded")
                    for warning in result.warnings:
                        st.warning(warning)
                except InvalidLedgerEntryError as e:
                    st.error(str(e))


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Configuration Status")

    status = validate_all_settings()

    sections = [
        ("Ledger", "ledger"),
        ("Google Sheets (Storage)", "google_sheets"),
        ("Application", "app"),
    ]

    for name, key in sections:
        if status.get(key, False):
            st.success(f"✅ {name} - OK")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    settings = get_settings()
    st.markdown("---")
    st.markdown(f"**Storage backend:** {settings.app.storage_backend}")
    st.markdown(f"**Rounding tolerance:** {settings.ledger.tolerance}")
    st.markdown(f"**Default currency:** {settings.ledger.default_currency}")
    st.markdown(
        "To configure the application, create a `.env` file. Ledger and storage "
        "variables use the `LEDGER_` and `GOOGLE_SHEETS_` prefixes; pick the backend "
        "with `STORAGE_BACKEND`."
    )


if __name__ == "__main__":
    main()
