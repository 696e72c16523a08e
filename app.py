"""
Client financial dashboard: interactive Streamlit front end.

Run with:  streamlit run app.py

Reads from Supabase when SUPABASE_URL / SUPABASE_KEY are set, otherwise
runs on simulated demo data (read-only).
"""

from datetime import date

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from finboard.config import (
    GOAL_STATUS_LABELS,
    METRIC_DIRECTION,
    PRESET_LABELS,
    PRESETS,
    get_supabase_client,
    supabase_configured,
)
from finboard.dashboard import (
    get_available_months,
    get_client_months,
    get_client_overview,
    get_company_overview,
    get_crm_summary,
    get_months_listing,
    get_trend_frame,
    get_yearly_summary,
)
from finboard.formatters import (
    format_currency,
    format_date,
    format_month_label,
    format_number,
    format_percentage,
    format_roas,
)
from finboard.loaders import supabase_source as source
from finboard.periods import InvalidDate, PeriodSelection, month_range, shift_months, to_month_key
from finboard.simulator import (
    client_series_from_transactions,
    generate_clients,
    generate_funnel_series,
    generate_monthly_series,
    generate_transactions,
)
from finboard.transforms import build_expenses_by_category, build_transactions, filter_clients

# ---------------------------------------------------------------------------
# Page config
# ---------------------------------------------------------------------------
st.set_page_config(
    page_title="Client Financial Dashboard",
    page_icon="📊",
    layout="wide",
    initial_sidebar_state="expanded",
)

RAG_COLORS = {
    "green": "#2ecc71",
    "amber": "#f39c12",
    "red": "#e74c3c",
    "grey": "#95a5a6",
}

TODAY = date.today()
LIVE = supabase_configured()

# Two comparable 12-month windows of demo transactions
DEMO_MONTHS = 24


# ---------------------------------------------------------------------------
# Data loading (cached)
# ---------------------------------------------------------------------------
@st.cache_data(ttl=300)
def load_company_data():
    if LIVE:
        client = get_supabase_client()
        series = source.fetch_monthly_series(client)
        months = get_available_months(series)
        funnel = source.fetch_funnel_for_range(client, months[0], months[-1]) if months else series.iloc[0:0]
    else:
        series = generate_monthly_series(start_month=shift_months(to_month_key(TODAY), -(DEMO_MONTHS - 1)), n_months=DEMO_MONTHS)
        funnel = generate_funnel_series(series)
    return series, funnel


@st.cache_data(ttl=300)
def load_clients(search: str, status: str):
    if LIVE:
        return source.list_clients(get_supabase_client(), search or None, status)
    return filter_clients(generate_clients(today=TODAY.isoformat()), search, status)


@st.cache_data(ttl=300)
def load_demo_transactions(client_id: str):
    start = shift_months(to_month_key(TODAY), -(DEMO_MONTHS - 1))
    return generate_transactions(client_id, start, n_months=DEMO_MONTHS, seed=sum(map(ord, client_id)))


@st.cache_data(ttl=300)
def load_client_series(client_id: str, months: tuple[str, ...]):
    if LIVE:
        return source.fetch_client_metric_series(get_supabase_client(), client_id, months)
    sales, expenses = load_demo_transactions(client_id)
    return client_series_from_transactions(sales, expenses)


def refresh():
    st.cache_data.clear()


# ---------------------------------------------------------------------------
# Period selection <-> query parameters
# ---------------------------------------------------------------------------
def current_selection() -> PeriodSelection:
    return PeriodSelection.from_dict(dict(st.query_params), today=TODAY)


def store_selection(selection: PeriodSelection) -> None:
    st.query_params.update(selection.to_dict())


def period_controls(key: str) -> PeriodSelection:
    """Sidebar month / preset / custom-range widgets."""
    selection = current_selection()

    picked = st.sidebar.date_input("Month", value=pd.Timestamp(selection.month).date(), key=f"{key}-month")
    selection = selection.with_month(picked)

    preset = st.sidebar.radio(
        "Period",
        PRESETS,
        index=PRESETS.index(selection.preset),
        format_func=lambda p: PRESET_LABELS[p],
        horizontal=True,
        key=f"{key}-preset",
    )
    selection = selection.with_preset(preset)

    if preset == "custom":
        col1, col2 = st.sidebar.columns(2)
        start = col1.date_input("From", value=pd.Timestamp(selection.custom_start).date(), key=f"{key}-from")
        end = col2.date_input("To", value=pd.Timestamp(selection.custom_end).date(), key=f"{key}-to")
        try:
            selection = selection.with_custom_range(start, end)
        except InvalidDate as exc:
            st.sidebar.error(str(exc))

    store_selection(selection)
    return selection


# ---------------------------------------------------------------------------
# Helpers: cards and charts
# ---------------------------------------------------------------------------
def kpi_card(label: str, value: str, caption: str = "", rag: str = "grey"):
    color = RAG_COLORS.get(rag, RAG_COLORS["grey"])
    st.markdown(
        f"""
        <div style="background: linear-gradient(135deg, {color}22, {color}11);
                    border-left: 4px solid {color};
                    border-radius: 8px; padding: 14px; margin-bottom: 8px;">
            <div style="font-size: 12px; color: #888; font-weight: 600; text-transform: uppercase;">{label}</div>
            <div style="font-size: 24px; font-weight: 700; color: #222; margin: 4px 0;">{value}</div>
            <div style="font-size: 12px; color: #666;">{caption}</div>
        </div>
        """,
        unsafe_allow_html=True,
    )


def comparison_card(title: str, metric: dict, previous_label: str):
    st.markdown(f"**{title}** vs {previous_label}")
    col1, col2, col3 = st.columns(3)
    col1.metric("Current", format_currency(metric["current"]),
                delta=format_percentage(metric["delta_pct"]))
    col2.metric("Previous", format_currency(metric["previous"]))
    col3.metric("Difference", format_currency(metric["delta_abs"]))
    r1, r2, r3 = st.columns(3)
    r1.caption(f"Avg 3m (end): {format_currency(metric['rolling_avg']['3m'])}")
    r2.caption(f"Avg 6m (end): {format_currency(metric['rolling_avg']['6m'])}")
    r3.caption(f"Avg 12m (end): {format_currency(metric['rolling_avg']['12m'])}")


def trend_chart(trend: pd.DataFrame, title: str):
    fig = go.Figure()
    fig.add_trace(go.Bar(x=trend["month_start"], y=trend["entries_cash"], name="Entries", marker_color="#3498db"))
    fig.add_trace(go.Bar(x=trend["month_start"], y=trend["exits_churn"], name="Exits", marker_color="#e74c3c"))
    fig.add_trace(go.Scatter(
        x=trend["month_start"], y=trend["net_mrr"], name="Net",
        mode="lines+markers", line=dict(color="#2ecc71", width=2),
    ))
    if "goal_amount" in trend.columns and trend["goal_amount"].fillna(0).gt(0).any():
        fig.add_trace(go.Scatter(
            x=trend["month_start"], y=trend["goal_amount"], name="Goal",
            mode="lines", line=dict(color="#8e44ad", width=2, dash="dash"),
        ))
    fig.update_layout(
        title=title,
        barmode="group",
        height=380,
        plot_bgcolor="rgba(0,0,0,0)",
        margin=dict(l=10, r=10, t=40, b=40),
    )
    st.plotly_chart(fig, use_container_width=True)


# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------
st.sidebar.title("Client Financial Dashboard")
st.sidebar.caption("Live data" if LIVE else "Demo data (simulated)")
if st.sidebar.button("Refresh data"):
    refresh()
st.sidebar.divider()

page = st.sidebar.radio("Navigate", ["Company Dashboard", "Months", "Clients", "Client Detail"])
st.sidebar.divider()

series, funnel = load_company_data()


# ===========================================================================
# PAGE: Company Dashboard
# ===========================================================================
if page == "Company Dashboard":
    selection = period_controls("company")
    overview = get_company_overview(series, funnel, selection)
    kpis, goal = overview["kpis"], overview["goal"]

    st.title("Company Dashboard")
    st.caption(f"Period: **{overview['period']['label']}** ({overview['period']['months']} months)")

    st.subheader("Clients")
    cols = st.columns(4)
    with cols[0]:
        kpi_card("Clients in", format_number(kpis["clients_entered"]))
    with cols[1]:
        kpi_card("Clients out", format_number(kpis["clients_left"]))
    with cols[2]:
        kpi_card("Client balance", format_number(kpis["clients_balance"]))
    with cols[3]:
        kpi_card("Active contracts", format_number(kpis["active_contracts"]), "Latest month in range")

    st.subheader("Cash")
    cols = st.columns(4)
    with cols[0]:
        kpi_card("Entries", format_currency(kpis["entries_cash"]))
    with cols[1]:
        kpi_card("Exits (churn)", format_currency(kpis["exits_churn"]))
    with cols[2]:
        kpi_card("Net", format_currency(kpis["net_mrr"]))
    with cols[3]:
        kpi_card("Average ticket", format_currency(kpis["avg_ticket"]))

    st.subheader("Goal")
    cols = st.columns(3)
    with cols[0]:
        kpi_card("Goal", format_currency(kpis["goal_amount"]), rag=goal["rag"])
    with cols[1]:
        kpi_card("% of goal", format_percentage(kpis["goal_pct"]), GOAL_STATUS_LABELS[goal["status"]], rag=goal["rag"])
    with cols[2]:
        kpi_card("Left to goal", format_currency(kpis["goal_gap"]), rag=goal["rag"])

    st.subheader("Funnel return")
    fun = overview["funnel"]
    cols = st.columns(5)
    with cols[0]:
        kpi_card("Invested (acquisition)", format_currency(fun["invested"]))
    with cols[1]:
        kpi_card("Entries", format_currency(fun["entries"]))
    with cols[2]:
        kpi_card("Balance", format_currency(fun["saldo"]))
    with cols[3]:
        kpi_card("Total LTV", format_currency(fun["ltv_total"]))
    with cols[4]:
        kpi_card("ROAS", format_roas(fun["roas"]))

    st.divider()
    st.subheader("Comparison")
    comp = overview["comparison"]
    col1, col2 = st.columns(2)
    with col1:
        comparison_card("Entries", comp["metrics"]["entries"], comp["previous_label"])
    with col2:
        comparison_card("Net", comp["metrics"]["net"], comp["previous_label"])

    trend = get_trend_frame(series, selection)
    if trend.empty:
        st.info("No monthly data in the selected period.")
    else:
        trend_chart(trend, "Entries, exits and net by month")


# ===========================================================================
# PAGE: Months
# ===========================================================================
elif page == "Months":
    st.title("Months")
    search = st.text_input("Search month", placeholder="e.g. March or 2025")
    listing = get_months_listing(series, search)

    if listing.empty:
        st.info("No months match the search.")
    else:
        display = listing.copy()
        for col in ("entries_cash", "exits_churn", "net_mrr", "goal_amount", "goal_gap"):
            display[col] = display[col].map(format_currency)
        display["goal_pct"] = display["goal_pct"].map(lambda v: format_percentage(v) if pd.notna(v) else "-")
        display["goal_status"] = display["goal_status"].map(GOAL_STATUS_LABELS.get)
        st.dataframe(display.drop(columns=["month"]), use_container_width=True, hide_index=True)

        chosen = st.selectbox("Open month in dashboard", listing["month"], format_func=format_month_label)
        if st.button("Open"):
            store_selection(current_selection().with_preset("current").with_month(chosen))
            st.success(f"Dashboard set to {format_month_label(chosen)}; switch to Company Dashboard.")


# ===========================================================================
# PAGE: Clients
# ===========================================================================
elif page == "Clients":
    st.title("Clients")
    col1, col2 = st.columns([3, 1])
    search = col1.text_input("Search by name")
    status = col2.selectbox("Status", ["all", "active", "inactive"])

    clients = load_clients(search, status)
    if not clients:
        st.info("No clients found.")
    else:
        table = pd.DataFrame(clients)
        table["started_at"] = table["started_at"].map(format_date)
        table["ended_at"] = table["ended_at"].map(format_date)
        table["status"] = [
            "Active" if c.get("is_active", not c.get("ended_at")) else "Inactive" for c in clients
        ]
        st.dataframe(table[["name", "started_at", "ended_at", "status"]], use_container_width=True, hide_index=True)

    if LIVE:
        with st.expander("New client"):
            with st.form("new-client", clear_on_submit=True):
                name = st.text_input("Name")
                started = st.date_input("Started at", value=TODAY)
                submitted = st.form_submit_button("Create")
            if submitted:
                try:
                    source.create_client(get_supabase_client(), name, started)
                except ValueError as exc:
                    st.error(str(exc))
                else:
                    refresh()
                    st.success(f"Client {name!r} created.")


# ===========================================================================
# PAGE: Client Detail
# ===========================================================================
elif page == "Client Detail":
    clients = load_clients("", "all")
    if not clients:
        st.warning("No clients available.")
        st.stop()

    by_id = {c["id"]: c for c in clients}
    client_id = st.sidebar.selectbox("Client", list(by_id), format_func=lambda cid: by_id[cid]["name"])
    selection = period_controls("client")

    months = tuple(get_client_months(selection))
    client_series = load_client_series(client_id, months)
    overview = get_client_overview(client_series, selection)

    st.title(by_id[client_id]["name"])
    tab1, tab2, tab3, tab4 = st.tabs(["Month", "Period", "Year", "CRM"])

    with tab1:
        month_kpis = overview["month"]["kpis"]
        st.caption(f"Month: **{overview['month']['label']}** vs {overview['previous_month']['label']}")
        changes = overview["month_over_month"]
        cols = st.columns(5)
        for col, (field, label) in zip(cols, [
            ("entries_cash", "Entries"), ("exits_churn", "Exits"), ("net_mrr", "Net"),
            ("avg_ticket", "Average ticket"), ("sales_count", "Sales"),
        ]):
            value = format_number(month_kpis[field]) if field == "sales_count" else format_currency(month_kpis[field])
            lower_is_better = METRIC_DIRECTION[field] == "lower_is_better"
            col.metric(label, value, delta=changes[field]["formatted"],
                       delta_color="inverse" if lower_is_better else "normal")

        goal = overview["month"]["goal"]
        kpi_card(
            "Goal",
            format_currency(month_kpis["goal_amount"]),
            f"{format_percentage(month_kpis['goal_pct'])} | {GOAL_STATUS_LABELS[goal['status']]}",
            rag=goal["rag"],
        )

        if LIVE:
            sales = source.fetch_sales_by_month(get_supabase_client(), client_id, selection.month)
            expenses = source.fetch_expenses_by_month(get_supabase_client(), client_id, selection.month)
        else:
            demo_sales, demo_expenses = load_demo_transactions(client_id)
            sales = build_transactions(demo_sales)
            sales = sales[sales["month"] == selection.month]
            expenses = build_transactions(demo_expenses)
            expenses = expenses[expenses["month"] == selection.month]

        col1, col2 = st.columns(2)
        with col1:
            st.markdown("**Sales**")
            st.dataframe(sales.drop(columns=["month"], errors="ignore"), use_container_width=True, hide_index=True)
        with col2:
            st.markdown("**Expenses by category**")
            by_category = build_expenses_by_category(expenses.to_dict(orient="records"))
            if by_category.empty:
                st.info("No expenses this month.")
            else:
                fig = go.Figure(go.Pie(labels=by_category["category"], values=by_category["total"], hole=0.45))
                fig.update_layout(height=300, margin=dict(l=10, r=10, t=10, b=10))
                st.plotly_chart(fig, use_container_width=True)

        if LIVE:
            with st.expander("Add data"):
                kind = st.radio("Type", ["Sale", "Expense", "Goal"], horizontal=True)
                with st.form("add-data", clear_on_submit=True):
                    amount = st.number_input("Amount", min_value=0.0, step=100.0)
                    occurred = st.date_input("Date", value=TODAY)
                    category = st.text_input("Category") if kind == "Expense" else None
                    submitted = st.form_submit_button("Save")
                if submitted:
                    db = get_supabase_client()
                    try:
                        if kind == "Sale":
                            source.create_sale(db, client_id, amount, occurred)
                        elif kind == "Expense":
                            source.create_expense(db, client_id, amount, occurred, category)
                        else:
                            source.upsert_goal(db, client_id, occurred, amount)
                    except ValueError as exc:
                        st.error(str(exc))
                    else:
                        refresh()
                        st.success(f"{kind} saved.")

    with tab2:
        kpis = overview["kpis"]
        st.caption(f"Period: **{overview['period']['label']}**")
        cols = st.columns(4)
        with cols[0]:
            kpi_card("Entries", format_currency(kpis["entries_cash"]))
        with cols[1]:
            kpi_card("Exits", format_currency(kpis["exits_churn"]))
        with cols[2]:
            kpi_card("Net", format_currency(kpis["net_mrr"]))
        with cols[3]:
            kpi_card("% of goal", format_percentage(kpis["goal_pct"]), rag=overview["goal"]["rag"])
        comp = overview["comparison"]
        col1, col2 = st.columns(2)
        with col1:
            comparison_card("Entries", comp["metrics"]["entries"], comp["previous_label"])
        with col2:
            comparison_card("Net", comp["metrics"]["net"], comp["previous_label"])
        trend = get_trend_frame(client_series, selection)
        if not trend.empty:
            trend_chart(trend, "Client entries, exits and net")

    with tab3:
        year = st.number_input("Year", min_value=2000, max_value=TODAY.year, value=TODAY.year, step=1)
        year_months = tuple(month_range(f"{int(year)}-01-01", f"{int(year)}-12-01"))
        yearly = get_yearly_summary(load_client_series(client_id, year_months), int(year))
        table = pd.DataFrame(yearly["rows"])
        for col in ("entries_cash", "exits_churn", "net_mrr", "avg_ticket"):
            table[col] = table[col].map(format_currency)
        st.dataframe(table.drop(columns=["month"]), use_container_width=True, hide_index=True)
        totals = yearly["totals"]
        cols = st.columns(4)
        cols[0].metric("Entries", format_currency(totals["entries_cash"]))
        cols[1].metric("Exits", format_currency(totals["exits_churn"]))
        cols[2].metric("Net", format_currency(totals["net_mrr"]))
        cols[3].metric("Average ticket", format_currency(totals["avg_ticket"]))

    with tab4:
        if LIVE:
            db = get_supabase_client()
            crm = source.get_client_crm(db, client_id)
            all_sales = source.list_sales(db, client_id)
        else:
            crm = by_id[client_id]
            all_sales, _ = load_demo_transactions(client_id)
        summary = get_crm_summary(crm, all_sales, selection.month)

        crm = summary["client"] or {}
        cols = st.columns(3)
        with cols[0]:
            kpi_card("Total revenue", format_currency(summary["total_revenue"]))
        with cols[1]:
            kpi_card("Owner", crm.get("owner_name") or "-", crm.get("owner_email") or "")
        with cols[2]:
            kpi_card("Renewal", format_date(crm.get("renewal_date")),
                     f"Payment day {crm.get('payment_day') or '-'}")

        revenue = pd.DataFrame(summary["revenue_series"])
        fig = go.Figure(go.Bar(x=pd.to_datetime(revenue["month"]), y=revenue["total"], marker_color="#3498db"))
        fig.update_layout(title="Revenue, last 12 months", height=320, plot_bgcolor="rgba(0,0,0,0)")
        st.plotly_chart(fig, use_container_width=True)

        if LIVE:
            with st.expander("Edit CRM"):
                with st.form("crm"):
                    owner_name = st.text_input("Owner", value=crm.get("owner_name") or "")
                    owner_email = st.text_input("Email", value=crm.get("owner_email") or "")
                    owner_phone = st.text_input("Phone", value=crm.get("owner_phone") or "")
                    specialist = st.text_input("Specialist", value=crm.get("specialist_name") or "")
                    payment = st.number_input("Payment amount", min_value=0.0, value=float(crm.get("payment_amount") or 0))
                    payment_day = st.number_input("Payment day", min_value=1, max_value=31, value=int(crm.get("payment_day") or 1))
                    saved = st.form_submit_button("Save")
                if saved:
                    source.update_client_crm(db, client_id, {
                        "owner_name": owner_name or None,
                        "owner_email": owner_email or None,
                        "owner_phone": owner_phone or None,
                        "specialist_name": specialist or None,
                        "payment_amount": payment,
                        "payment_day": payment_day,
                    })
                    st.success("CRM updated.")

            st.markdown("**Notes**")
            for note in source.list_notes(db, client_id):
                st.markdown(f"- {format_date(note.get('created_at'))}: {note.get('content')}")
            with st.form("note", clear_on_submit=True):
                content = st.text_area("New note")
                if st.form_submit_button("Add note") and content.strip():
                    source.add_note(db, client_id, content)
                    st.rerun()
