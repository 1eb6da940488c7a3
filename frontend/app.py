import streamlit as st
from datetime import date
from decimal import Decimal, InvalidOperation

from walletwise.client import (
    fetch_categories,
    fetch_expenses,
    format_money,
    new_idempotency_key,
    post_expense_with_retry,
    total_minor,
)
from walletwise.models import KNOWN_CATEGORIES

st.set_page_config(
    page_title="WalletWise",
    page_icon="💸",
    layout="centered",
)

# ── Session state init ─────────────────────────────────────────────────────────
# One key per logical submission; rotated only after the API confirms the save.
if "idempotency_key" not in st.session_state:
    st.session_state.idempotency_key = new_idempotency_key()

if "submit_result" not in st.session_state:
    st.session_state.submit_result = None  # (success: bool, message: str)

if "submitting" not in st.session_state:
    st.session_state.submitting = False

# ── Page ───────────────────────────────────────────────────────────────────────
st.title("💸 WalletWise")
st.caption("Track your spending correctly.")

st.divider()

# ── Section 1: Add Expense ─────────────────────────────────────────────────────
with st.expander("➕ Add Entry", expanded=True):
    with st.form("add_expense_form", clear_on_submit=False):
        col1, col2 = st.columns(2)

        with col1:
            amount_str = st.text_input("Amount ($) *", placeholder="e.g. 12.30")

        with col2:
            category = st.selectbox("Category *", options=KNOWN_CATEGORIES)

        description = st.text_input("Description *", placeholder="What was this expense for?")

        expense_date = st.date_input("Date *", value=date.today())

        submitted = st.form_submit_button(
            "Add Expense", type="primary",
            use_container_width=True, disabled=st.session_state.submitting,
        )

        if submitted:
            st.session_state.submitting = True
            try:
                try:
                    amount_val = Decimal(amount_str.strip())
                    amount_ok = amount_val > 0
                except (InvalidOperation, AttributeError):
                    amount_ok = False

                if not amount_ok:
                    st.error("Amount must be a valid positive number (e.g. 250 or 99.99).")
                elif not description.strip():
                    st.error("Description is required.")
                else:
                    payload = {
                        "amount": str(amount_val),
                        "category": category,
                        "description": description.strip(),
                        "date": str(expense_date),
                    }
                    with st.spinner("Saving..."):
                        success, message, _ = post_expense_with_retry(payload, st.session_state.idempotency_key)

                    st.session_state.submit_result = (success, message)
                    if success:
                        st.session_state.idempotency_key = new_idempotency_key()
                        st.rerun()
            finally:
                st.session_state.submitting = False

    if st.session_state.submit_result is not None:
        ok, msg = st.session_state.submit_result
        if ok:
            st.success(msg)
        else:
            st.error(msg)
        st.session_state.submit_result = None

st.divider()

# ── Section 2: Filters ─────────────────────────────────────────────────────────
st.subheader("📋 History")

col_f1, col_f2 = st.columns([2, 1])

with col_f1:
    selected_category = st.selectbox("Filter by Category", options=fetch_categories())

with col_f2:
    sort_order = st.selectbox("Sort", options=["Newest Date First", "Recently Added"])

# ── Section 3: Expense List ────────────────────────────────────────────────────
with st.spinner("Loading expenses..."):
    ok, err_msg, expenses = fetch_expenses(
        category=selected_category,
        sort_desc=sort_order == "Newest Date First",
    )

if not ok:
    st.error(f"⚠️ {err_msg}")
elif not expenses:
    st.info("No expenses found.")
else:
    count = len(expenses)
    st.metric(
        label=f"Total Visible ({count} expense{'s' if count != 1 else ''})",
        value=format_money(total_minor(expenses)),
    )

    for exp in expenses:
        with st.container(border=True):
            c1, c2, c3 = st.columns([2, 1, 1])
            with c1:
                st.markdown(f"**{exp['description']}**")
                st.caption(exp["category"])
            with c2:
                st.markdown(f"**-{format_money(exp['amount_minor'])}**")
            with c3:
                st.caption(f"📅 {exp['date']}")
