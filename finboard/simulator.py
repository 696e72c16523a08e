"""
Simulated data generator for the client financial dashboard.

Generates plausible monthly company metrics, acquisition-funnel rows,
clients and sales for demos and offline runs. All values are synthetic.
Each generator takes a seed so repeated calls give identical frames.
"""

import numpy as np
import pandas as pd

from .periods import to_month_key
from .transforms import build_funnel_series, build_monthly_series, client_metrics_to_series

# ---------------------------------------------------------------------------
# Typical agency parameters (monthly)
# ---------------------------------------------------------------------------
_MONTHLY_PARAMS = {
    "clients_entered": {"mean": 6, "std": 2},
    "clients_left": {"mean": 3, "std": 1.5},
    "avg_ticket": {"mean": 2_400, "std": 250},
    "exit_ratio": {"mean": 0.22, "std": 0.05},
    "goal_amount": {"mean": 32_000, "growth": 1.015},
    "cost_per_client": {"mean": 1_800, "std": 300},
    "lifetime_months": {"mean": 9, "std": 2},
}

_CLIENT_NAMES = [
    "Acme Odontologia", "Clinica Vida", "Padaria Central", "Studio Forma",
    "Auto Pecas Sul", "Construtora Alfa", "Pet Feliz", "Escola Aprender",
    "Bistro da Praca", "Otica Visao", "Moda Bella", "Tech Solucoes",
]

_EXPENSE_CATEGORIES = ["Ads", "Software", "Freelancers", "Travel", None]


def generate_monthly_series(
    start_month: str = "2025-01-01",
    n_months: int = 18,
    seed: int = 42,
    starting_contracts: int = 40,
) -> pd.DataFrame:
    """Generate a simulated company monthly metric series.

    Produces n_months of rows starting from start_month, with cash
    entries driven by sales count and ticket, churn as a share of entries,
    and active contracts carried forward month to month.
    """
    rng = np.random.default_rng(seed)
    months = pd.date_range(to_month_key(start_month), periods=n_months, freq="MS")
    p = _MONTHLY_PARAMS

    rows = []
    contracts = starting_contracts
    for i, month in enumerate(months):
        entered = max(int(round(rng.normal(p["clients_entered"]["mean"], p["clients_entered"]["std"]))), 0)
        left = max(int(round(rng.normal(p["clients_left"]["mean"], p["clients_left"]["std"]))), 0)
        contracts = max(contracts + entered - left, 0)

        sales_count = int(contracts + rng.integers(0, 6))
        ticket = max(rng.normal(p["avg_ticket"]["mean"], p["avg_ticket"]["std"]), 500)
        entries = round(sales_count * ticket, 2)
        exits = round(entries * max(rng.normal(p["exit_ratio"]["mean"], p["exit_ratio"]["std"]), 0), 2)
        goal = round(p["goal_amount"]["mean"] * (p["goal_amount"]["growth"] ** i) * (1 + contracts / 200), 2)

        rows.append({
            "month": month.strftime("%Y-%m-%d"),
            "clients_entered": entered,
            "clients_left": left,
            "clients_balance": entered - left,
            "entries_cash": entries,
            "exits_churn": exits,
            "net_mrr": round(entries - exits, 2),
            "avg_ticket": round(entries / sales_count, 2) if sales_count else 0.0,
            "sales_count": sales_count,
            "goal_amount": goal,
            "goal_pct": round(entries / goal * 100, 2) if goal else None,
            "goal_gap": round(max(goal - entries, 0), 2),
            "active_contracts": contracts,
        })

    return build_monthly_series(rows)


def generate_funnel_series(
    series: pd.DataFrame,
    seed: int = 42,
    zero_spend_months: int = 1,
) -> pd.DataFrame:
    """Generate funnel rows aligned to the months of a monthly series.

    The first zero_spend_months months have no acquisition spend, so their
    ROAS is undefined.
    """
    rng = np.random.default_rng(seed)
    p = _MONTHLY_PARAMS

    rows = []
    for i, (_, row) in enumerate(series.iterrows()):
        entered = int(row["clients_entered"])
        ticket = float(row["avg_ticket"] or 0)
        if i < zero_spend_months:
            invested = 0.0
        else:
            invested = round(max(entered, 1) * max(rng.normal(p["cost_per_client"]["mean"], p["cost_per_client"]["std"]), 100), 2)
        entries = round(entered * ticket, 2)
        lifetime = max(rng.normal(p["lifetime_months"]["mean"], p["lifetime_months"]["std"]), 1)

        rows.append({
            "month": row["month"],
            "invested": invested,
            "entries": entries,
            "saldo": round(entries - invested, 2),
            "ltv_total": round(entries * lifetime, 2),
            "roas": round(entries / invested, 4) if invested > 0 else None,
        })

    return build_funnel_series(rows)


def generate_clients(n_clients: int = 8, seed: int = 42, today: str = "2026-10-01") -> list[dict]:
    """Generate client rows; roughly one in four has ended."""
    rng = np.random.default_rng(seed)
    today_ts = pd.Timestamp(to_month_key(today))

    clients = []
    for i in range(n_clients):
        started = today_ts - pd.DateOffset(months=int(rng.integers(3, 30)))
        ended = None
        if rng.random() < 0.25:
            ended = (started + pd.DateOffset(months=int(rng.integers(2, 12)))).strftime("%Y-%m-%d")
        clients.append({
            "id": f"client-{i + 1:03d}",
            "name": _CLIENT_NAMES[i % len(_CLIENT_NAMES)],
            "started_at": started.strftime("%Y-%m-%d"),
            "ended_at": ended,
            "is_active": ended is None,
            "created_at": started.strftime("%Y-%m-%dT09:00:00"),
        })
    return clients


def generate_transactions(
    client_id: str,
    start_month: str,
    n_months: int = 12,
    seed: int = 42,
) -> tuple[list[dict], list[dict]]:
    """Generate (sales, expenses) rows for one client."""
    rng = np.random.default_rng(seed)
    months = pd.date_range(to_month_key(start_month), periods=n_months, freq="MS")

    sales, expenses = [], []
    for month in months:
        for _ in range(int(rng.integers(1, 5))):
            day = int(rng.integers(1, 28))
            sales.append({
                "client_id": client_id,
                "amount": round(float(rng.normal(2_400, 400)), 2),
                "occurred_at": (month + pd.Timedelta(days=day)).strftime("%Y-%m-%d"),
            })
        for _ in range(int(rng.integers(0, 4))):
            day = int(rng.integers(1, 28))
            expenses.append({
                "client_id": client_id,
                "amount": round(float(abs(rng.normal(600, 250))), 2),
                "category": _EXPENSE_CATEGORIES[int(rng.integers(0, len(_EXPENSE_CATEGORIES)))],
                "occurred_at": (month + pd.Timedelta(days=day)).strftime("%Y-%m-%d"),
            })
    return sales, expenses


def client_series_from_transactions(
    sales: list[dict],
    expenses: list[dict],
    goals: dict[str, float] | None = None,
) -> pd.DataFrame:
    """Per-client monthly metric series built from sales and expenses.

    Mirrors what get_dashboard_metrics returns month by month: entries,
    exits, net, sales_count, avg_ticket and goal.
    """
    goals = goals or {}
    sales_df = pd.DataFrame(sales)
    expense_df = pd.DataFrame(expenses)

    months: set[str] = set(goals)
    if not sales_df.empty:
        sales_df["month"] = sales_df["occurred_at"].map(to_month_key)
        months |= set(sales_df["month"])
    if not expense_df.empty:
        expense_df["month"] = expense_df["occurred_at"].map(to_month_key)
        months |= set(expense_df["month"])

    rows = []
    for month in sorted(months):
        month_sales = sales_df[sales_df["month"] == month]["amount"] if not sales_df.empty else pd.Series(dtype=float)
        month_exp = expense_df[expense_df["month"] == month]["amount"] if not expense_df.empty else pd.Series(dtype=float)
        entries = float(month_sales.sum())
        exits = float(month_exp.sum())
        count = int(len(month_sales))
        goal = float(goals.get(month, 0.0))
        rows.append({
            "month": month,
            "entries": round(entries, 2),
            "exits": round(exits, 2),
            "net": round(entries - exits, 2),
            "sales_count": count,
            "avg_ticket": round(entries / count, 2) if count else 0.0,
            "goal_amount": goal,
            "goal_pct": round(entries / goal * 100, 2) if goal > 0 else None,
        })

    return client_metrics_to_series(rows)
