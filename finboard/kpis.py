"""
Pure KPI functions over monthly metric and funnel rows.

Provides period filtering, KPI and funnel aggregation over a range of
monthly rows, percentage change, goal variance, and goal classification.

Every ratio has an explicit zero-denominator branch: outputs never carry
NaN or infinities, so results can be serialised as-is.
"""

import logging
from typing import Iterable

import pandas as pd

from .config import GOAL_AMBER_BAND
from .periods import InvalidDate, PeriodRange, to_month_key

logger = logging.getLogger(__name__)

Rows = pd.DataFrame | Iterable[dict]


def _as_frame(rows: Rows) -> pd.DataFrame:
    if isinstance(rows, pd.DataFrame):
        # Concatenated series can repeat index labels
        return rows.reset_index(drop=True)
    return pd.DataFrame(list(rows))


def numeric_column(df: pd.DataFrame, name: str) -> pd.Series:
    """Numeric column with missing values as 0; all zeros if absent."""
    if name not in df.columns:
        return pd.Series(0.0, index=df.index)
    return pd.to_numeric(df[name], errors="coerce").fillna(0.0)


def _safe_month_key(value) -> str | None:
    try:
        return to_month_key(value)
    except InvalidDate:
        return None


def filter_period(rows: Rows, period: PeriodRange) -> pd.DataFrame:
    """Rows whose month falls inside period (both bounds included), ascending."""
    df = _as_frame(rows)
    if df.empty or "month" not in df.columns:
        return pd.DataFrame(columns=["month"])

    months = df["month"].map(_safe_month_key)
    if months.isna().any():
        logger.warning("Dropping %d rows without a valid month", int(months.isna().sum()))
    valid = months.dropna()
    in_range = valid[(valid >= period.start) & (valid <= period.end)]
    result = df.loc[in_range.index].copy()
    result["month"] = in_range
    return result.sort_values("month", kind="mergesort").reset_index(drop=True)


def pct_change(current: float, previous: float) -> float:
    """Percentage change from previous to current.

    A zero previous value gives 0 when current is also 0, else 100.
    """
    if previous == 0:
        return 0.0 if current == 0 else 100.0
    return float((current - previous) / previous * 100)


def calc_variance(actual: float, goal: float) -> tuple[float, float | None]:
    """Return (absolute_variance, pct_variance).

    pct_variance is None if goal == 0.
    """
    absolute = actual - goal
    if goal == 0:
        return absolute, None
    pct = (absolute / goal) * 100
    return absolute, pct


def classify_goal(goal_pct: float | None, amber_band_pct: float = GOAL_AMBER_BAND) -> str:
    """Return 'green', 'amber', 'red', or 'grey' for a goal attainment.

    Logic
    -----
    green  if goal_pct >= 100
    amber  if goal_pct >= 100 - amber_band_pct
    red    otherwise
    grey   if there is no goal
    """
    if goal_pct is None or pd.isna(goal_pct):
        return "grey"
    if goal_pct >= 100:
        return "green"
    if goal_pct >= 100 - amber_band_pct:
        return "amber"
    return "red"


def goal_status(goal_pct: float | None) -> str:
    """'achieved', 'pending', or 'no_goal'."""
    if goal_pct is None or pd.isna(goal_pct):
        return "no_goal"
    return "achieved" if goal_pct >= 100 else "pending"


def aggregate_kpis(rows: Rows, period: PeriodRange) -> dict:
    """Reduce monthly metric rows inside period into one KPI summary.

    Rules
    -----
    - Counts and monetary fields: sum (missing as 0)
    - clients_balance: per-row balance where present, else entered - left
    - avg_ticket: entries / sales_count when any sales were counted, else
      the mean of the positive monthly tickets; None without data
    - goal_pct: entries / goal * 100; None without a goal
    - goal_gap: goal - entries, floored at 0
    - active_contracts: value of the latest month in the range

    Parameters
    ----------
    rows : Monthly metric rows (DataFrame or dicts), any order.
    period : Inclusive month range.

    Returns
    -------
    Dict with keys:
        clients_entered, clients_left, clients_balance, entries_cash,
        exits_churn, net_mrr, avg_ticket, sales_count, goal_amount,
        goal_pct, goal_gap, active_contracts, months
    """
    df = filter_period(rows, period)

    clients_entered = numeric_column(df, "clients_entered")
    clients_left = numeric_column(df, "clients_left")
    if "clients_balance" in df.columns:
        own_balance = pd.to_numeric(df["clients_balance"], errors="coerce")
        balance = own_balance.where(own_balance.notna(), clients_entered - clients_left)
    else:
        balance = clients_entered - clients_left

    entries_cash = float(numeric_column(df, "entries_cash").sum())
    goal_amount = float(numeric_column(df, "goal_amount").sum())
    sales_count = float(numeric_column(df, "sales_count").sum())

    if sales_count > 0:
        avg_ticket = entries_cash / sales_count
    else:
        tickets = numeric_column(df, "avg_ticket")
        tickets = tickets[tickets > 0]
        avg_ticket = float(tickets.mean()) if not tickets.empty else None

    goal_pct = (entries_cash / goal_amount) * 100 if goal_amount > 0 else None

    active_contracts = 0
    if not df.empty and "active_contracts" in df.columns:
        # filter_period returns rows sorted by month
        latest = df.iloc[-1]["active_contracts"]
        active_contracts = 0 if pd.isna(latest) else int(latest)

    if df.empty:
        logger.warning("No monthly rows in %s..%s; returning empty KPI summary", period.start, period.end)

    return {
        "clients_entered": int(clients_entered.sum()),
        "clients_left": int(clients_left.sum()),
        "clients_balance": int(balance.sum()),
        "entries_cash": entries_cash,
        "exits_churn": float(numeric_column(df, "exits_churn").sum()),
        "net_mrr": float(numeric_column(df, "net_mrr").sum()),
        "avg_ticket": avg_ticket,
        "sales_count": int(sales_count),
        "goal_amount": goal_amount,
        "goal_pct": goal_pct,
        "goal_gap": max(goal_amount - entries_cash, 0.0),
        "active_contracts": active_contracts,
        "months": len(df),
    }


def aggregate_funnel(rows: Rows, period: PeriodRange) -> dict:
    """Reduce funnel rows inside period.

    invested, entries, saldo and ltv_total are summed; roas is
    entries / invested, None when nothing was invested.
    """
    df = filter_period(rows, period)

    invested = float(numeric_column(df, "invested").sum())
    entries = float(numeric_column(df, "entries").sum())

    return {
        "invested": invested,
        "entries": entries,
        "saldo": float(numeric_column(df, "saldo").sum()),
        "ltv_total": float(numeric_column(df, "ltv_total").sum()),
        "roas": entries / invested if invested > 0 else None,
        "months": len(df),
    }
