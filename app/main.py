"""
Streamlit Frontend for the Finance Ledger

The screens people use daily: record an income or expense, a credit
card purchase (optionally in installments), or a transfer between
accounts; review, edit and delete recent transactions; check balances.

DESIGN PRINCIPLES:
1. Forms only collect input; every balance, bill and installment
   computation happens in the ledger
2. Clear error messages in simple language
3. Visual feedback for all operations
4. No hidden actions: deletes ask for confirmation
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import NAMESPACE_URL, UUID, uuid5

import streamlit as st

from finledger.audit import create_correlation_id
from finledger.config import get_settings, validate_all_settings
from finledger.ledger import (
    BalanceConflictError,
    LedgerError,
    LedgerValidationError,
    LedgerWriteError,
)
from finledger.models.ledger import (
    CardPurchaseInput,
    CreditCard,
    Direction,
    Transaction,
    TransactionInput,
    TransactionKind,
    TransactionStatus,
    TransferInput,
)
from finledger.orchestrator import TransactionLedger, create_app_components
from finledger.queries import LedgerQueryExecutor


# Page configuration
st.set_page_config(
    page_title="Finance Ledger",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .big-number {
        font-size: 2.5em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)


CATEGORY_NAMES = [
    "Food",
    "Housing",
    "Transport",
    "Health",
    "Education",
    "Leisure",
    "Shopping",
    "Salary",
    "Other",
]


def category_id(name: str) -> UUID:
    """Stable id for a built-in category name."""
    return uuid5(NAMESPACE_URL, f"finledger:category:{name.lower()}")


CATEGORIES = {category_id(name): name for name in CATEGORY_NAMES}


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
        return create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(use_storage=False)


def money(value: Decimal) -> str:
    symbol = get_settings().app.currency_symbol
    return f"{symbol} {value:,.2f}"


def show_ledger_error(e: LedgerError) -> None:
    """Render a ledger failure in plain language."""
    if isinstance(e, LedgerValidationError):
        st.error("Please fix the following:")
        for issue in e.issues:
            if issue.severity == "error":
                st.markdown(f"- {issue.message}")
    elif isinstance(e, BalanceConflictError):
        st.warning("The balance changed while saving. Nothing was lost, please try again.")
    elif isinstance(e, LedgerWriteError) and e.compensated:
        st.error(f"Could not save ({e.step}). Your data was left unchanged.")
    elif isinstance(e, LedgerWriteError):
        st.error(
            f"Could not save ({e.step}) and the partial change could not be undone. "
            "Please check the Balances page."
        )
    else:
        st.error(f"Error: {e}")


def main():
    """Main application entry point."""
    ledger, queries, _ = get_components()

    st.sidebar.title("💰 Finance Ledger")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        [
            "➕ New Transaction",
            "💳 Card Purchase",
            "🔁 Transfer",
            "📋 Transactions",
            "📊 Balances",
            "⚙️ Settings",
        ],
        index=0,
    )

    if page == "➕ New Transaction":
        render_transaction_page(ledger, queries)
    elif page == "💳 Card Purchase":
        render_card_purchase_page(ledger, queries)
    elif page == "🔁 Transfer":
        render_transfer_page(ledger, queries)
    elif page == "📋 Transactions":
        render_transactions_page(ledger, queries)
    elif page == "📊 Balances":
        render_balances_page(queries)
    elif page == "⚙️ Settings":
        render_settings_page(ledger, queries)


def render_transaction_page(ledger: TransactionLedger, queries: LedgerQueryExecutor):
    """Render the plain income/expense form."""
    st.title("➕ New Transaction")

    accounts = run_async(queries.list_accounts())
    if not accounts:
        st.info("Create an account on the Settings page first.")
        return

    with st.form("transaction_form", clear_on_submit=True):
        col1, col2 = st.columns(2)
        with col1:
            name = st.text_input("Description *")
            direction = st.radio(
                "Type",
                options=list(Direction),
                format_func=lambda d: d.value.title(),
                horizontal=True,
            )
            amount = st.number_input("Amount *", min_value=0.0, step=0.01, format="%.2f")
        with col2:
            tx_date = st.date_input("Date", value=date.today())
            account = st.selectbox("Account *", options=accounts, format_func=lambda a: a.name)
            category = st.selectbox(
                "Category *",
                options=list(CATEGORIES),
                format_func=lambda c: CATEGORIES[c],
            )
            completed = st.checkbox("Completed", value=True)
        notes = st.text_area("Notes (optional)")

        submitted = st.form_submit_button("💾 Save", type="primary")

    if submitted:
        try:
            tx = run_async(ledger.add_transaction(
                TransactionInput(
                    name=name or "Transaction",
                    direction=direction,
                    amount=Decimal(str(amount)),
                    date=tx_date,
                    status=TransactionStatus.COMPLETED if completed else TransactionStatus.PENDING,
                    account_id=account.id,
                    category_id=category,
                    description=notes or None,
                ),
                correlation_id=create_correlation_id(),
            ))
            st.success(f"✅ Saved {tx.name}: {money(tx.amount)} ({tx.status.value})")
        except LedgerError as e:
            show_ledger_error(e)


def render_card_purchase_page(ledger: TransactionLedger, queries: LedgerQueryExecutor):
    """Render the credit card purchase form."""
    st.title("💳 Card Purchase")

    cards = run_async(queries.list_cards())
    if not cards:
        st.info("Register a credit card on the Settings page first.")
        return

    with st.form("card_purchase_form", clear_on_submit=True):
        col1, col2 = st.columns(2)
        with col1:
            name = st.text_input("Description *")
            total = st.number_input("Total amount *", min_value=0.0, step=0.01, format="%.2f")
            installments = st.number_input(
                "Installments",
                min_value=1,
                max_value=get_settings().ledger.max_installments,
                value=1,
                step=1,
            )
        with col2:
            start_date = st.date_input("Purchase date", value=date.today())
            card = st.selectbox("Card *", options=cards, format_func=lambda c: c.name)
            category = st.selectbox(
                "Category *",
                options=list(CATEGORIES),
                format_func=lambda c: CATEGORIES[c],
            )
        notes = st.text_area("Notes (optional)")

        submitted = st.form_submit_button("💾 Save", type="primary")

    if submitted:
        try:
            series = run_async(ledger.add_card_purchase(
                CardPurchaseInput(
                    name=name or "Purchase",
                    total_amount=Decimal(str(total)),
                    start_date=start_date,
                    installments=int(installments),
                    credit_card_id=card.id,
                    category_id=category,
                    description=notes or None,
                ),
                correlation_id=create_correlation_id(),
            ))
            first = series.transactions[0]
            st.success(
                f"✅ Saved {len(series.transactions)} installment(s) "
                f"of {money(-first.amount)}"
            )
            if series.created_bills:
                months = ", ".join(
                    b.reference_month.strftime("%b %Y") for b in series.created_bills
                )
                st.info(f"New bill(s) opened: {months}")
        except LedgerError as e:
            show_ledger_error(e)


def render_transfer_page(ledger: TransactionLedger, queries: LedgerQueryExecutor):
    """Render the transfer form."""
    st.title("🔁 Transfer")

    accounts = run_async(queries.list_accounts())
    if len(accounts) < 2:
        st.info("You need at least two accounts to make a transfer.")
        return

    with st.form("transfer_form", clear_on_submit=True):
        col1, col2 = st.columns(2)
        with col1:
            from_account = st.selectbox("From *", options=accounts, format_func=lambda a: a.name)
            amount = st.number_input("Amount *", min_value=0.0, step=0.01, format="%.2f")
        with col2:
            to_account = st.selectbox(
                "To *", options=accounts, index=1, format_func=lambda a: a.name
            )
            tx_date = st.date_input("Date", value=date.today())
        notes = st.text_area("Notes (optional)")

        submitted = st.form_submit_button("💾 Transfer", type="primary")

    if submitted:
        try:
            pair = run_async(ledger.add_transfer(
                TransferInput(
                    from_account_id=from_account.id,
                    to_account_id=to_account.id,
                    amount=Decimal(str(amount)),
                    date=tx_date,
                    description=notes or None,
                ),
                correlation_id=create_correlation_id(),
            ))
            st.success(
                f"✅ Moved {money(pair.amount)} from {from_account.name} to {to_account.name}"
            )
        except LedgerError as e:
            show_ledger_error(e)


def render_transactions_page(ledger: TransactionLedger, queries: LedgerQueryExecutor):
    """Render recent transactions with edit and delete actions."""
    st.title("📋 Transactions")

    col1, col2 = st.columns(2)
    with col1:
        date_from = st.date_input("From", value=None)
    with col2:
        date_to = st.date_input("To", value=None)

    rows = run_async(queries.recent_transactions(date_from=date_from, date_to=date_to))
    if not rows:
        st.info("No transactions yet.")
        return

    kind_icons = {
        TransactionKind.PLAIN: "🧾",
        TransactionKind.CARD_PURCHASE: "💳",
        TransactionKind.TRANSFER: "🔁",
    }

    for tx in rows:
        col1, col2, col3, col4, col5 = st.columns([4, 2, 2, 1, 1])
        with col1:
            label = f"{kind_icons[tx.kind]} {tx.name}"
            if tx.total_installments > 1:
                label += f" ({tx.installment_number}/{tx.total_installments})"
            st.markdown(label)
        with col2:
            st.markdown(money(tx.amount))
        with col3:
            st.markdown(f"{tx.date.strftime('%d %b %Y')} · {tx.status.value}")
        with col4:
            if st.button("✏️", key=f"edit_{tx.id}"):
                st.session_state.editing = tx.id
        with col5:
            if st.button("🗑️", key=f"delete_{tx.id}"):
                st.session_state.pending_delete = tx.id

    editing = next((tx for tx in rows if tx.id == st.session_state.get("editing")), None)
    if editing:
        st.markdown("---")
        render_edit_form(ledger, queries, editing)

    pending = st.session_state.get("pending_delete")
    if pending:
        st.markdown("---")
        st.warning(
            "Delete this transaction? Installment purchases are deleted with all "
            "their installments, and transfers with both legs."
        )
        col1, col2 = st.columns(2)
        with col1:
            if st.button("✅ Yes, delete", type="primary"):
                try:
                    count = run_async(ledger.delete_transaction(
                        pending, correlation_id=create_correlation_id()
                    ))
                    st.success(f"Deleted {count} row(s)")
                except LedgerError as e:
                    show_ledger_error(e)
                st.session_state.pending_delete = None
                st.rerun()
        with col2:
            if st.button("❌ Cancel"):
                st.session_state.pending_delete = None
                st.rerun()


def _index_of(options: list, item_id) -> int:
    ids = [getattr(option, "id", option) for option in options]
    return ids.index(item_id) if item_id in ids else 0


def render_edit_form(
    ledger: TransactionLedger,
    queries: LedgerQueryExecutor,
    tx: Transaction,
):
    """Edit form for the selected row, by kind."""
    if tx.kind == TransactionKind.TRANSFER:
        render_transfer_edit(ledger, queries, tx)
    elif tx.kind == TransactionKind.CARD_PURCHASE:
        render_card_purchase_edit(ledger, queries, tx)
    else:
        render_transaction_edit(ledger, queries, tx)

    if st.button("Close editor"):
        st.session_state.editing = None
        st.rerun()


def _save_edit(action) -> None:
    try:
        run_async(action)
        st.session_state.editing = None
        st.success("✅ Changes saved")
        st.rerun()
    except LedgerError as e:
        show_ledger_error(e)


def render_transaction_edit(
    ledger: TransactionLedger,
    queries: LedgerQueryExecutor,
    tx: Transaction,
):
    st.markdown(f"### ✏️ Edit {tx.name}")
    accounts = run_async(queries.list_accounts())
    categories = list(CATEGORIES)

    with st.form(f"edit_transaction_{tx.id}"):
        col1, col2 = st.columns(2)
        with col1:
            name = st.text_input("Description *", value=tx.name)
            direction = st.radio(
                "Type",
                options=list(Direction),
                index=list(Direction).index(tx.direction),
                format_func=lambda d: d.value.title(),
                horizontal=True,
            )
            amount = st.number_input(
                "Amount *", min_value=0.0, value=float(abs(tx.amount)), step=0.01, format="%.2f"
            )
        with col2:
            tx_date = st.date_input("Date", value=tx.date)
            account = st.selectbox(
                "Account *",
                options=accounts,
                index=_index_of(accounts, tx.account_id),
                format_func=lambda a: a.name,
            )
            category = st.selectbox(
                "Category *",
                options=categories,
                index=_index_of(categories, tx.category_id),
                format_func=lambda c: CATEGORIES[c],
            )
            completed = st.checkbox("Completed", value=tx.status == TransactionStatus.COMPLETED)
        notes = st.text_area("Notes (optional)", value=tx.description or "")
        submitted = st.form_submit_button("💾 Save changes", type="primary")

    if submitted:
        _save_edit(ledger.edit_transaction(
            tx.id,
            TransactionInput(
                name=name or tx.name,
                direction=direction,
                amount=Decimal(str(amount)),
                date=tx_date,
                status=TransactionStatus.COMPLETED if completed else TransactionStatus.PENDING,
                account_id=account.id,
                category_id=category,
                description=notes or None,
            ),
            correlation_id=create_correlation_id(),
        ))


def render_card_purchase_edit(
    ledger: TransactionLedger,
    queries: LedgerQueryExecutor,
    tx: Transaction,
):
    series = run_async(queries.installment_series(tx.id))
    first = series[0]
    bill = run_async(queries.get_bill(first.credit_card_bill_id))
    cards = run_async(queries.list_cards(active_only=False))
    categories = list(CATEGORIES)
    total = -sum((row.amount for row in series), Decimal("0"))

    st.markdown(f"### ✏️ Edit {tx.name}")
    st.caption(
        "Changing the card, the number of installments or the purchase date "
        "rebuilds every installment of this purchase."
    )

    with st.form(f"edit_card_purchase_{tx.id}"):
        col1, col2 = st.columns(2)
        with col1:
            name = st.text_input("Description *", value=tx.name)
            amount = st.number_input(
                "Total amount *", min_value=0.0, value=float(total), step=0.01, format="%.2f"
            )
            installments = st.number_input(
                "Installments",
                min_value=1,
                max_value=get_settings().ledger.max_installments,
                value=tx.total_installments,
                step=1,
            )
        with col2:
            start_date = st.date_input("Purchase date", value=first.date)
            card = st.selectbox(
                "Card *",
                options=cards,
                index=_index_of(cards, bill.credit_card_id if bill else None),
                format_func=lambda c: c.name,
            )
            category = st.selectbox(
                "Category *",
                options=categories,
                index=_index_of(categories, tx.category_id),
                format_func=lambda c: CATEGORIES[c],
            )
        notes = st.text_area("Notes (optional)", value=tx.description or "")
        submitted = st.form_submit_button("💾 Save changes", type="primary")

    if submitted:
        _save_edit(ledger.edit_card_purchase(
            tx.id,
            CardPurchaseInput(
                name=name or tx.name,
                total_amount=Decimal(str(amount)),
                start_date=start_date,
                installments=int(installments),
                credit_card_id=card.id,
                category_id=category,
                description=notes or None,
            ),
            correlation_id=create_correlation_id(),
        ))


def render_transfer_edit(
    ledger: TransactionLedger,
    queries: LedgerQueryExecutor,
    tx: Transaction,
):
    try:
        pair = run_async(ledger.get_transfer(tx.id))
    except LedgerError as e:
        show_ledger_error(e)
        return

    accounts = run_async(queries.list_accounts())
    names = {a.id: a.name for a in accounts}
    st.markdown("### 🔁 Transfer")
    st.markdown(
        f"{names.get(pair.debit.account_id, '?')} → {names.get(pair.credit.account_id, '?')}: "
        f"{money(pair.amount)} on {pair.debit.date.strftime('%d %b %Y')}"
    )

    with st.form(f"edit_transfer_{pair.transfer_id}"):
        col1, col2 = st.columns(2)
        with col1:
            from_account = st.selectbox(
                "From *",
                options=accounts,
                index=_index_of(accounts, pair.debit.account_id),
                format_func=lambda a: a.name,
            )
            amount = st.number_input(
                "Amount *", min_value=0.0, value=float(pair.amount), step=0.01, format="%.2f"
            )
        with col2:
            to_account = st.selectbox(
                "To *",
                options=accounts,
                index=_index_of(accounts, pair.credit.account_id),
                format_func=lambda a: a.name,
            )
            tx_date = st.date_input("Date", value=pair.debit.date)
        notes = st.text_area("Notes (optional)", value=pair.credit.description or "")
        submitted = st.form_submit_button("💾 Save changes", type="primary")

    if submitted:
        _save_edit(ledger.edit_transfer(
            tx.id,
            TransferInput(
                from_account_id=from_account.id,
                to_account_id=to_account.id,
                amount=Decimal(str(amount)),
                date=tx_date,
                name=pair.credit.name,
                category_id=pair.credit.category_id,
                description=notes or None,
            ),
            correlation_id=create_correlation_id(),
        ))


def render_balances_page(queries: LedgerQueryExecutor):
    """Render account balances and the consistency check."""
    st.title("📊 Balances")

    total = run_async(queries.total_balance())
    st.markdown(f'<div class="big-number">{money(total)}</div>', unsafe_allow_html=True)

    accounts = run_async(queries.list_accounts())
    for account in accounts:
        st.markdown(f"**{account.name}**: {money(account.balance)}")

    summary = run_async(queries.monthly_summary())
    if summary:
        st.markdown("### Monthly summary")
        st.table({
            month: {"Income": money(v["income"]), "Expense": money(v["expense"])}
            for month, v in summary.items()
        })

    with st.expander("🔍 Check balances"):
        st.caption(
            "Compares each stored balance with its opening balance "
            "plus its completed transactions."
        )
        if st.button("Run check"):
            for check in run_async(queries.check_all_balances()):
                if check.is_consistent:
                    st.success(f"✅ {check.account_name}")
                else:
                    st.warning(
                        f"⚠️ {check.account_name}: stored {money(check.stored_balance)}, "
                        f"expected {money(check.expected_balance)} "
                        f"(difference {money(check.difference)})"
                    )


def render_settings_page(ledger: TransactionLedger, queries: LedgerQueryExecutor):
    """Render account/card setup and connection status."""
    st.title("⚙️ Settings")

    st.markdown("### Accounts")
    with st.form("account_form", clear_on_submit=True):
        name = st.text_input("Account name")
        opening = st.number_input("Opening balance", step=0.01, format="%.2f")
        include = st.checkbox("Include in total", value=True)
        default = st.checkbox("Default account", value=False)
        if st.form_submit_button("Add account") and name:
            account = run_async(ledger.open_account(
                name=name,
                opening_balance=Decimal(str(opening)),
                include_in_total=include,
                is_default=default,
            ))
            st.success(f"✅ Account {account.name} created")

    st.markdown("### Credit cards")
    accounts = run_async(queries.list_accounts())
    with st.form("card_form", clear_on_submit=True):
        name = st.text_input("Card name")
        col1, col2 = st.columns(2)
        with col1:
            closing_day = st.number_input("Closing day", min_value=1, max_value=31, value=5)
        with col2:
            due_day = st.number_input("Due day", min_value=1, max_value=31, value=15)
        pay_from = st.selectbox(
            "Paid from",
            options=[None] + accounts,
            format_func=lambda a: "None" if a is None else a.name,
        )
        if st.form_submit_button("Add card") and name:
            card = run_async(ledger.register_card(CreditCard(
                name=name,
                closing_day=int(closing_day),
                due_day=int(due_day),
                account_id=pay_from.id if pay_from else None,
            )))
            st.success(f"✅ Card {card.name} registered")

    st.markdown("---")
    st.markdown("### Connection Status")

    status = validate_all_settings()
    sections = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Ledger limits", "ledger"),
        ("Application", "app"),
    ]
    for label, key in sections:
        if status.get(key, False):
            st.success(f"✅ {label} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {label} - {error}")

    st.markdown(
        "To configure the application, create a `.env` file with your settings. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
