"""
Fetch layer for the managed Postgres database behind Supabase.

Tables: clients, sales, expenses, goals, client_notes.
View: monthly_company_metrics (one row per month, numbers as text).
RPCs: get_dashboard_metrics(p_client_id, p_month),
      get_company_kpis(p_month), get_funnel_return(p_month).

Every function takes the Supabase client explicitly; get one with
config.get_supabase_client(). Query failures are logged and re-raised.
"""

import logging
from typing import Any, Iterable

import pandas as pd
from postgrest.exceptions import APIError
from supabase import Client

from ..config import (
    CRM_COLUMNS,
    RPC_COMPANY_KPIS,
    RPC_DASHBOARD_METRICS,
    RPC_FUNNEL_RETURN,
    TABLE_CLIENTS,
    TABLE_EXPENSES,
    TABLE_GOALS,
    TABLE_NOTES,
    TABLE_SALES,
    VIEW_MONTHLY_COMPANY_METRICS,
)
from ..periods import month_range, shift_months, to_month_key
from ..transforms import (
    build_expenses_by_category,
    build_funnel_series,
    build_monthly_series,
    build_revenue_series,
    build_transactions,
    client_metrics_to_series,
    coerce_kpi_record,
    total_revenue,
)
from .utils import iso_date

logger = logging.getLogger(__name__)

_SERIES_SELECT = (
    "month, clients_entered, clients_left, entries_cash, exits_churn, net_mrr, "
    "avg_ticket, goal_amount, goal_pct, goal_gap"
)


def _execute(query, what: str):
    try:
        return query.execute()
    except APIError:
        logger.exception("Supabase query failed: %s", what)
        raise


def _rows(query, what: str) -> list[dict]:
    response = _execute(query, what)
    return list(response.data or [])


def _single(query, what: str) -> dict | None:
    # maybe_single() yields no response at all when nothing matched
    response = _execute(query, what)
    if response is None:
        return None
    return response.data or None


def _month_bounds(month: str) -> tuple[str, str]:
    start = pd.Timestamp(to_month_key(month))
    end = start + pd.offsets.MonthEnd(0)
    return start.strftime("%Y-%m-%d"), end.strftime("%Y-%m-%d")


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------
def list_clients(client: Client, search: str | None = None, status: str = "all") -> list[dict]:
    """Client rows, newest first, filtered by name search and status."""
    query = client.table(TABLE_CLIENTS).select("*").order("created_at", desc=True)
    if search:
        query = query.ilike("name", f"%{search}%")
    if status == "active":
        query = query.eq("is_active", True)
    elif status == "inactive":
        query = query.eq("is_active", False)
    return _rows(query, "list clients")


def get_client(client: Client, client_id: str) -> dict | None:
    query = client.table(TABLE_CLIENTS).select("*").eq("id", client_id).maybe_single()
    return _single(query, f"get client {client_id}")


def create_client(
    client: Client,
    name: str,
    started_at: Any = None,
    ended_at: Any = None,
) -> dict:
    """Insert a client. is_active is generated by the database."""
    name = (name or "").strip()
    if not name:
        raise ValueError("Client name is required")

    payload = {
        "name": name,
        "started_at": iso_date(started_at),
        "ended_at": iso_date(ended_at),
    }
    rows = _rows(client.table(TABLE_CLIENTS).insert(payload), f"create client {name!r}")
    logger.info("Created client %r", name)
    return rows[0] if rows else payload


def get_client_crm(client: Client, client_id: str) -> dict | None:
    """Client row with CRM contact and billing columns."""
    query = (
        client.table(TABLE_CLIENTS)
        .select(", ".join(CRM_COLUMNS))
        .eq("id", client_id)
        .maybe_single()
    )
    return _single(query, f"get CRM for client {client_id}")


def update_client_crm(client: Client, client_id: str, changes: dict) -> None:
    """Update CRM columns; unknown columns are rejected."""
    unknown = set(changes) - set(CRM_COLUMNS) - {"id"}
    if unknown:
        raise ValueError(f"Unknown CRM fields: {sorted(unknown)}")

    payload = dict(changes)
    payload.pop("id", None)
    for field in ("started_at", "ended_at", "renewal_date"):
        if field in payload:
            payload[field] = iso_date(payload[field])
    if payload.get("payment_day") is not None:
        day = int(payload["payment_day"])
        if not 1 <= day <= 31:
            raise ValueError(f"payment_day must be between 1 and 31, got {day}")
        payload["payment_day"] = day

    _execute(client.table(TABLE_CLIENTS).update(payload).eq("id", client_id), f"update CRM {client_id}")
    logger.info("Updated CRM fields %s for client %s", sorted(payload), client_id)


# ---------------------------------------------------------------------------
# Per-client metrics
# ---------------------------------------------------------------------------
def fetch_dashboard_metrics(client: Client, client_id: str, month: str) -> dict:
    """One month of a client's metrics from get_dashboard_metrics."""
    month_key = to_month_key(month)
    response = _execute(
        client.rpc(RPC_DASHBOARD_METRICS, {"p_client_id": client_id, "p_month": month_key}),
        f"{RPC_DASHBOARD_METRICS}({client_id}, {month_key})",
    )
    record = dict(response.data or {})
    record.setdefault("month", month_key)
    return coerce_kpi_record(record)


def fetch_client_metric_series(client: Client, client_id: str, months: Iterable[str]) -> pd.DataFrame:
    """Monthly metric series for one client, one RPC call per month."""
    records = [fetch_dashboard_metrics(client, client_id, m) for m in months]
    return client_metrics_to_series(records)


def fetch_sales_by_month(client: Client, client_id: str, month: str) -> pd.DataFrame:
    start, end = _month_bounds(month)
    query = (
        client.table(TABLE_SALES)
        .select("*")
        .eq("client_id", client_id)
        .gte("occurred_at", start)
        .lte("occurred_at", end)
        .order("occurred_at", desc=True)
    )
    return build_transactions(_rows(query, f"sales {client_id} {start}"))


def fetch_expenses_by_month(client: Client, client_id: str, month: str) -> pd.DataFrame:
    start, end = _month_bounds(month)
    query = (
        client.table(TABLE_EXPENSES)
        .select("*")
        .eq("client_id", client_id)
        .gte("occurred_at", start)
        .lte("occurred_at", end)
        .order("occurred_at", desc=True)
    )
    return build_transactions(_rows(query, f"expenses {client_id} {start}"))


def fetch_expenses_by_category(client: Client, client_id: str, month: str) -> pd.DataFrame:
    start, end = _month_bounds(month)
    query = (
        client.table(TABLE_EXPENSES)
        .select("category, amount")
        .eq("client_id", client_id)
        .gte("occurred_at", start)
        .lte("occurred_at", end)
    )
    return build_expenses_by_category(_rows(query, f"expenses by category {client_id} {start}"))


def fetch_goal(client: Client, client_id: str, month: str) -> dict | None:
    query = (
        client.table(TABLE_GOALS)
        .select("*")
        .eq("client_id", client_id)
        .eq("month", to_month_key(month))
        .maybe_single()
    )
    return _single(query, f"goal {client_id} {month}")


def create_sale(client: Client, client_id: str, amount: float, occurred_at: Any) -> dict:
    payload = _transaction_payload(client_id, amount, occurred_at)
    rows = _rows(client.table(TABLE_SALES).insert(payload), f"create sale for {client_id}")
    logger.info("Recorded sale of %.2f for client %s on %s", payload["amount"], client_id, payload["occurred_at"])
    return rows[0] if rows else payload


def create_expense(
    client: Client,
    client_id: str,
    amount: float,
    occurred_at: Any,
    category: str | None = None,
) -> dict:
    payload = _transaction_payload(client_id, amount, occurred_at)
    payload["category"] = (category or "").strip() or None
    rows = _rows(client.table(TABLE_EXPENSES).insert(payload), f"create expense for {client_id}")
    logger.info("Recorded expense of %.2f for client %s on %s", payload["amount"], client_id, payload["occurred_at"])
    return rows[0] if rows else payload


def upsert_goal(client: Client, client_id: str, month: Any, amount: float) -> dict:
    """Create or replace the goal for (client, month)."""
    if amount < 0:
        raise ValueError(f"Goal amount must be non-negative, got {amount}")
    payload = {"client_id": client_id, "month": to_month_key(month), "amount": float(amount)}
    query = client.table(TABLE_GOALS).upsert(payload, on_conflict="client_id,month")
    rows = _rows(query, f"upsert goal {client_id} {payload['month']}")
    logger.info("Set goal %.2f for client %s in %s", payload["amount"], client_id, payload["month"])
    return rows[0] if rows else payload


def _transaction_payload(client_id: str, amount: float, occurred_at: Any) -> dict:
    occurred = iso_date(occurred_at)
    if occurred is None:
        raise ValueError(f"Invalid transaction date {occurred_at!r}")
    if amount is None or amount < 0:
        raise ValueError(f"Amount must be non-negative, got {amount}")
    return {"client_id": client_id, "amount": float(amount), "occurred_at": occurred}


# ---------------------------------------------------------------------------
# Revenue and notes
# ---------------------------------------------------------------------------
def list_sales(client: Client, client_id: str) -> list[dict]:
    """Every sale of a client (amount and date only)."""
    query = client.table(TABLE_SALES).select("amount, occurred_at").eq("client_id", client_id)
    return _rows(query, f"sales {client_id}")


def fetch_total_revenue(client: Client, client_id: str) -> float:
    return total_revenue(list_sales(client, client_id))


def fetch_revenue_series(
    client: Client,
    client_id: str,
    end_month: str,
    n_months: int = 12,
) -> pd.DataFrame:
    """Revenue per month for the n_months ending at end_month, one range query."""
    end_key = to_month_key(end_month)
    start, _ = _month_bounds(shift_months(end_key, -(n_months - 1)))
    _, end = _month_bounds(end_key)
    query = (
        client.table(TABLE_SALES)
        .select("amount, occurred_at")
        .eq("client_id", client_id)
        .gte("occurred_at", start)
        .lte("occurred_at", end)
    )
    return build_revenue_series(_rows(query, f"revenue series {client_id}"), end_key, n_months)


def list_notes(client: Client, client_id: str) -> list[dict]:
    query = (
        client.table(TABLE_NOTES)
        .select("*")
        .eq("client_id", client_id)
        .order("created_at", desc=True)
    )
    return _rows(query, f"notes {client_id}")


def add_note(client: Client, client_id: str, content: str) -> None:
    content = (content or "").strip()
    if not content:
        raise ValueError("Note content is required")
    _execute(client.table(TABLE_NOTES).insert({"client_id": client_id, "content": content}), f"add note {client_id}")


# ---------------------------------------------------------------------------
# Company level
# ---------------------------------------------------------------------------
def fetch_monthly_series(client: Client) -> pd.DataFrame:
    """Company monthly metric series from the monthly_company_metrics view."""
    query = client.table(VIEW_MONTHLY_COMPANY_METRICS).select(_SERIES_SELECT).order("month")
    return build_monthly_series(_rows(query, "monthly company series"))


def fetch_company_kpis(client: Client, month: str) -> dict:
    month_key = to_month_key(month)
    response = _execute(client.rpc(RPC_COMPANY_KPIS, {"p_month": month_key}), f"{RPC_COMPANY_KPIS}({month_key})")
    record = dict(response.data or {})
    record.setdefault("month", month_key)
    return coerce_kpi_record(record)


def fetch_funnel(client: Client, month: str) -> dict:
    month_key = to_month_key(month)
    response = _execute(client.rpc(RPC_FUNNEL_RETURN, {"p_month": month_key}), f"{RPC_FUNNEL_RETURN}({month_key})")
    record = dict(response.data or {})
    record.setdefault("month", month_key)
    return coerce_kpi_record(record)


def fetch_funnel_series(client: Client, months: Iterable[str]) -> pd.DataFrame:
    """Funnel rows for each month; the RPC answers one month at a time."""
    return build_funnel_series(fetch_funnel(client, m) for m in months)


def fetch_funnel_for_range(client: Client, start: str, end: str) -> pd.DataFrame:
    return fetch_funnel_series(client, month_range(start, end))
