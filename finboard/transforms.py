"""
Data transforms: normalise raw rows from the data source into typed,
month-keyed DataFrames and derive the per-client tables the dashboard
shows (revenue per month, expenses by category, yearly table).
"""

import logging
from typing import Iterable

import pandas as pd

from .config import (
    CLIENT_FIELD_MAP,
    COUNT_FIELDS,
    EXPENSE_FALLBACK_CATEGORY,
    FUNNEL_SUM_FIELDS,
    MONEY_FIELDS,
)
from .loaders.utils import iso_date, safe_float
from .periods import InvalidDate, month_range, shift_months, to_month_key

logger = logging.getLogger(__name__)

MONTHLY_SERIES_COLUMNS = [
    "month",
    "clients_entered", "clients_left", "clients_balance",
    "entries_cash", "exits_churn", "net_mrr",
    "avg_ticket", "sales_count",
    "goal_amount", "goal_pct", "goal_gap",
    "active_contracts",
]

FUNNEL_COLUMNS = ["month", "invested", "entries", "saldo", "ltv_total", "roas"]

# Fields that keep None instead of defaulting to 0
_NULLABLE_FIELDS = {"clients_balance", "goal_pct", "sales_count", "active_contracts", "roas"}


def _month_or_none(value) -> str | None:
    try:
        return to_month_key(value)
    except InvalidDate:
        logger.warning("Skipping row with unparseable month %r", value)
        return None


def _coerce_row(record: dict, columns: list[str]) -> dict | None:
    month = _month_or_none(record.get("month"))
    if month is None:
        return None

    row: dict = {"month": month}
    for col in columns[1:]:
        val = safe_float(record.get(col))
        if val is None and col not in _NULLABLE_FIELDS:
            val = 0.0
        row[col] = val
    return row


def _dedupe_months(df: pd.DataFrame, name: str) -> pd.DataFrame:
    dupes = df["month"].duplicated(keep="last")
    if dupes.any():
        logger.warning(
            "%s has %d duplicate months (%s); keeping the last row of each",
            name, int(dupes.sum()), ", ".join(sorted(df.loc[dupes, "month"].unique())),
        )
        df = df[~dupes]
    return df.sort_values("month").reset_index(drop=True)


def build_monthly_series(records: Iterable[dict]) -> pd.DataFrame:
    """Build the monthly metric series from raw view rows.

    Numeric values may arrive as text (the metrics view casts JSONB to
    text); they are coerced here. Missing counts and amounts become 0,
    while goal_pct, clients_balance, sales_count and active_contracts stay
    None so downstream logic can tell "absent" from "zero".

    Returns
    -------
    DataFrame with columns MONTHLY_SERIES_COLUMNS, one row per month,
    sorted ascending.
    """
    rows = [r for r in (_coerce_row(rec, MONTHLY_SERIES_COLUMNS) for rec in records) if r is not None]
    if not rows:
        logger.warning("No monthly rows received; returning empty series")
        return pd.DataFrame(columns=MONTHLY_SERIES_COLUMNS)

    df = pd.DataFrame(rows, columns=MONTHLY_SERIES_COLUMNS)
    for col in ("clients_entered", "clients_left"):
        df[col] = df[col].astype(int)

    df = _dedupe_months(df, "Monthly series")
    logger.info("Built monthly series with %d rows", len(df))
    return df


def build_funnel_series(records: Iterable[dict]) -> pd.DataFrame:
    """Build the acquisition-funnel series from per-month RPC results.

    roas is kept as None when the source has no value for it.
    """
    rows = [r for r in (_coerce_row(rec, FUNNEL_COLUMNS) for rec in records if rec) if r is not None]
    if not rows:
        logger.warning("No funnel rows received; returning empty series")
        return pd.DataFrame(columns=FUNNEL_COLUMNS)

    df = pd.DataFrame(rows, columns=FUNNEL_COLUMNS)
    df["roas"] = df["roas"].astype(object).where(df["roas"].notna(), None)
    df = _dedupe_months(df, "Funnel series")
    logger.info("Built funnel series with %d rows", len(df))
    return df


def client_metrics_to_series(records: Iterable[dict]) -> pd.DataFrame:
    """Turn per-client dashboard metric rows into a monthly metric series.

    Client rows name their amounts entries/exits/net; they are renamed to
    the company field names so the same aggregation applies.
    """
    renamed = []
    for rec in records:
        if not rec:
            continue
        row = dict(rec)
        for client_name, company_name in CLIENT_FIELD_MAP.items():
            if client_name in row and company_name not in row:
                row[company_name] = row.pop(client_name)
        renamed.append(row)
    return build_monthly_series(renamed)


def filter_clients(
    clients: Iterable[dict],
    search: str | None = None,
    status: str = "all",
) -> list[dict]:
    """Filter client rows by case-insensitive name search and status.

    status is 'all', 'active' or 'inactive'. A client without an explicit
    is_active flag is active while it has no ended_at date.
    """
    if status not in ("all", "active", "inactive"):
        raise ValueError(f"Unknown client status filter {status!r}")

    needle = (search or "").strip().lower()
    result = []
    for client in clients:
        if needle and needle not in str(client.get("name", "")).lower():
            continue
        if status != "all":
            is_active = client.get("is_active")
            if is_active is None:
                is_active = not client.get("ended_at")
            if is_active != (status == "active"):
                continue
        result.append(client)
    return result


def build_transactions(records: Iterable[dict]) -> pd.DataFrame:
    """Sales or expense rows with numeric amount, ISO date and month key."""
    df = pd.DataFrame(list(records))
    if df.empty:
        return pd.DataFrame(columns=["occurred_at", "month", "amount"])

    df["amount"] = df["amount"].map(safe_float).fillna(0.0).astype(float) if "amount" in df.columns else 0.0
    df["occurred_at"] = df["occurred_at"].map(iso_date)
    invalid = df["occurred_at"].isna()
    if invalid.any():
        logger.warning("Dropping %d transactions without a valid date", int(invalid.sum()))
        df = df[~invalid].copy()
    df["month"] = df["occurred_at"].map(to_month_key)
    return df.sort_values("occurred_at", ascending=False).reset_index(drop=True)


def total_revenue(sales: Iterable[dict]) -> float:
    """Lifetime revenue: sum of every sale amount."""
    return float(sum(safe_float(s.get("amount")) or 0.0 for s in sales))


def build_revenue_series(
    sales: Iterable[dict],
    end_month: str,
    n_months: int = 12,
) -> pd.DataFrame:
    """Revenue per month for the n_months ending at end_month.

    Months without sales are reported as 0.

    Returns
    -------
    DataFrame with columns: month, total
    """
    end_key = to_month_key(end_month)
    months = month_range(shift_months(end_key, -(n_months - 1)), end_key)

    tx = build_transactions(sales)
    totals = tx.groupby("month")["amount"].sum() if not tx.empty else pd.Series(dtype=float)

    return pd.DataFrame({
        "month": months,
        "total": [float(totals.get(m, 0.0)) for m in months],
    })


def build_expenses_by_category(expenses: Iterable[dict]) -> pd.DataFrame:
    """Sum expense amounts per category, largest first.

    Missing or blank categories are grouped under EXPENSE_FALLBACK_CATEGORY.
    """
    df = pd.DataFrame(list(expenses))
    if df.empty:
        return pd.DataFrame(columns=["category", "total"])

    if "category" not in df.columns:
        df["category"] = None
    df["category"] = (
        df["category"]
        .where(df["category"].notna(), "")
        .astype(str)
        .str.strip()
        .replace("", EXPENSE_FALLBACK_CATEGORY)
    )
    df["amount"] = df["amount"].map(safe_float).fillna(0.0).astype(float)

    result = (
        df.groupby("category", as_index=False)["amount"].sum()
        .rename(columns={"amount": "total"})
        .sort_values(["total", "category"], ascending=[False, True])
        .reset_index(drop=True)
    )
    return result


def build_yearly_table(series: pd.DataFrame, year: int) -> tuple[pd.DataFrame, dict]:
    """Twelve calendar months of a client's metrics plus yearly totals.

    Months with no row are kept with empty values.

    Returns
    -------
    (table, totals) where table has columns
        month, entries_cash, exits_churn, net_mrr, sales_count, avg_ticket
    and totals has keys
        entries_cash, exits_churn, net_mrr, sales_count, avg_ticket, months
    avg_ticket in totals is entries / sales_count, None without sales.
    """
    months = month_range(f"{year:04d}-01-01", f"{year:04d}-12-01")
    cols = ["entries_cash", "exits_churn", "net_mrr", "sales_count", "avg_ticket"]

    indexed = series.set_index("month") if not series.empty else pd.DataFrame(columns=cols)
    table = pd.DataFrame({"month": months})
    for col in cols:
        source = indexed[col] if col in indexed.columns else pd.Series(dtype=float)
        table[col] = [source.get(m) for m in months]

    present = table["month"].isin(indexed.index)
    entries = float(pd.to_numeric(table["entries_cash"], errors="coerce").fillna(0).sum())
    sales = float(pd.to_numeric(table["sales_count"], errors="coerce").fillna(0).sum())

    totals = {
        "entries_cash": entries,
        "exits_churn": float(pd.to_numeric(table["exits_churn"], errors="coerce").fillna(0).sum()),
        "net_mrr": float(pd.to_numeric(table["net_mrr"], errors="coerce").fillna(0).sum()),
        "sales_count": int(sales),
        "avg_ticket": entries / sales if sales > 0 else None,
        "months": int(present.sum()),
    }
    return table, totals


def coerce_kpi_record(record: dict) -> dict:
    """Copy of a single KPI record with amounts as floats and counts as ints."""
    result = dict(record)
    for field in MONEY_FIELDS + FUNNEL_SUM_FIELDS:
        if field in result:
            result[field] = safe_float(result[field]) or 0.0
    for field in COUNT_FIELDS:
        if field in result and result[field] is not None:
            value = safe_float(result[field])
            result[field] = int(value) if value is not None else None
    for field in ("goal_pct", "roas"):
        if field in result:
            result[field] = safe_float(result[field])
    return result
