"""
Dashboard-ready output functions.

These are the entry points for the Streamlit front end and the smoke
pipeline. Each returns plain dicts or DataFrames suitable for rendering
cards, charts and tables; dict values are JSON-serialisable.
"""

import logging

import pandas as pd

from .comparison import compare_periods, month_over_month
from .formatters import format_month_label
from .kpis import aggregate_funnel, aggregate_kpis, calc_variance, classify_goal, filter_period, goal_status
from .periods import PeriodRange, PeriodSelection, month_range, previous_range, shift_months, to_month_key
from .transforms import build_revenue_series, build_yearly_table, total_revenue

logger = logging.getLogger(__name__)


def _period_block(period: PeriodRange) -> dict:
    if period.start == period.end:
        label = format_month_label(period.start)
    else:
        label = f"{format_month_label(period.start)} - {format_month_label(period.end)}"
    return {"start": period.start, "end": period.end, "months": period.months, "label": label}


def _goal_block(kpis: dict) -> dict:
    variance, variance_pct = calc_variance(kpis["entries_cash"], kpis["goal_amount"])
    return {
        "status": goal_status(kpis["goal_pct"]),
        "rag": classify_goal(kpis["goal_pct"]),
        "variance": variance,
        "variance_pct": variance_pct,
    }


def get_company_overview(
    series: pd.DataFrame,
    funnel: pd.DataFrame,
    selection: PeriodSelection,
) -> dict:
    """Single entry point for the company dashboard cards and comparison.

    Parameters
    ----------
    series : Company monthly metric series (all months).
    funnel : Funnel series (all months).
    selection : Operator's period selection.

    Returns
    -------
    Dict with structure:
    {
        "period": {"start": ..., "end": ..., "months": 12, "label": ...},
        "kpis": {... aggregate_kpis ...},
        "goal": {"status": "pending", "rag": "amber", "variance": ..., "variance_pct": ...},
        "funnel": {... aggregate_funnel ...},
        "comparison": {... compare_periods ...},
    }
    """
    period = selection.resolve()
    kpis = aggregate_kpis(series, period)

    return {
        "period": _period_block(period),
        "kpis": kpis,
        "goal": _goal_block(kpis),
        "funnel": aggregate_funnel(funnel, period),
        "comparison": compare_periods(series, period, current=kpis),
    }


def get_client_overview(
    client_series: pd.DataFrame,
    selection: PeriodSelection,
) -> dict:
    """Per-client overview: selected month, its change vs the month before,
    and the aggregate / comparison for the selected period.

    Parameters
    ----------
    client_series : Client monthly metric series
        (from transforms.client_metrics_to_series).
    selection : Operator's period selection; selection.month is the
        month shown on the month cards.
    """
    month = selection.month
    month_period = PeriodRange(month, month)
    prev_month = shift_months(month, -1)

    current_month = aggregate_kpis(client_series, month_period)
    previous_month = aggregate_kpis(client_series, PeriodRange(prev_month, prev_month))

    period = selection.resolve()
    kpis = aggregate_kpis(client_series, period)

    return {
        "month": {
            **_period_block(month_period),
            "kpis": current_month,
            "goal": _goal_block(current_month),
        },
        "previous_month": {**_period_block(PeriodRange(prev_month, prev_month)), "kpis": previous_month},
        "month_over_month": month_over_month(current_month, previous_month),
        "period": _period_block(period),
        "kpis": kpis,
        "goal": _goal_block(kpis),
        "comparison": compare_periods(client_series, period, current=kpis),
    }


def get_client_months(selection: PeriodSelection) -> list[str]:
    """Months get_client_overview reads for a selection.

    Covers the comparison window before the period through the period
    itself, plus the selected month and the month before it.
    """
    period = selection.resolve()
    start = min(previous_range(period).start, shift_months(selection.month, -1))
    end = max(period.end, selection.month)
    return month_range(start, end)


def get_trend_frame(series: pd.DataFrame, selection: PeriodSelection) -> pd.DataFrame:
    """Rows of the selected period for trend charts, with a month label
    and a datetime column for plotting."""
    df = filter_period(series, selection.resolve())
    if df.empty:
        return df
    df["label"] = df["month"].map(format_month_label)
    df["month_start"] = pd.to_datetime(df["month"])
    return df


def get_latest_month(series: pd.DataFrame) -> str | None:
    """Most recent month present in a series, regardless of row order."""
    if series.empty:
        return None
    return max(to_month_key(m) for m in series["month"])


def get_available_months(series: pd.DataFrame) -> list[str]:
    """Sorted month keys for UI dropdowns."""
    if series.empty:
        return []
    return sorted({to_month_key(m) for m in series["month"]})


def get_months_listing(series: pd.DataFrame, search: str | None = None) -> pd.DataFrame:
    """Month-by-month table, newest first, filtered by label search.

    Returns
    -------
    DataFrame with columns:
        month, label, clients_entered, clients_left, entries_cash,
        exits_churn, net_mrr, goal_amount, goal_pct, goal_gap, goal_status
    """
    columns = [
        "month", "label", "clients_entered", "clients_left", "entries_cash",
        "exits_churn", "net_mrr", "goal_amount", "goal_pct", "goal_gap", "goal_status",
    ]
    if series.empty:
        return pd.DataFrame(columns=columns)

    df = series.copy()
    df["month"] = df["month"].map(to_month_key)
    df["label"] = df["month"].map(format_month_label)
    df["goal_status"] = df["goal_pct"].map(goal_status) if "goal_pct" in df.columns else "no_goal"

    needle = (search or "").strip().lower()
    if needle:
        df = df[df["label"].str.lower().str.contains(needle, regex=False) | df["month"].str.contains(needle, regex=False)]

    for col in columns:
        if col not in df.columns:
            df[col] = None
    return df[columns].sort_values("month", ascending=False).reset_index(drop=True)


def get_yearly_summary(client_series: pd.DataFrame, year: int) -> dict:
    """Yearly table for a client: twelve months plus totals.

    Returns
    -------
    {"year": 2025, "rows": [{month, label, entries_cash, ...}, ...], "totals": {...}}
    """
    table, totals = build_yearly_table(client_series, year)
    table["label"] = table["month"].map(format_month_label)
    rows = [
        {k: (None if v is None or (isinstance(v, float) and pd.isna(v)) else v) for k, v in rec.items()}
        for rec in table.to_dict(orient="records")
    ]
    return {"year": year, "rows": rows, "totals": totals}


def get_crm_summary(
    crm: dict | None,
    sales: list[dict],
    end_month: str,
    n_months: int = 12,
) -> dict:
    """CRM card data: client record, lifetime revenue, and recent revenue.

    sales holds every sale of the client; the revenue series covers the
    n_months ending at end_month.
    """
    if crm is None:
        logger.warning("CRM summary requested for a missing client")
    series = build_revenue_series(sales, end_month, n_months)
    return {
        "client": crm,
        "total_revenue": total_revenue(sales),
        "revenue_series": series.to_dict(orient="records"),
    }
