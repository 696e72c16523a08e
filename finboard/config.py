"""
Configuration: metric directions, period presets, data-source names, constants.

Supabase credentials come from Streamlit secrets when a secrets file
defines them, else from the SUPABASE_URL / SUPABASE_KEY environment.
"""

import os
from pathlib import Path

import streamlit as st
from supabase import Client, create_client

# ---------------------------------------------------------------------------
# File paths
# ---------------------------------------------------------------------------
DATA_DIR = Path(__file__).resolve().parent.parent

SAMPLE_WORKBOOK_FILE = DATA_DIR / "monthly_company_metrics.xlsx"

# ---------------------------------------------------------------------------
# Metric direction
# ---------------------------------------------------------------------------
# How a rise in each monthly metric should be read on change indicators
METRIC_DIRECTION: dict[str, str] = {
    "clients_entered": "higher_is_better",
    "clients_left": "lower_is_better",
    "clients_balance": "higher_is_better",
    "entries_cash": "higher_is_better",
    "exits_churn": "lower_is_better",
    "net_mrr": "higher_is_better",
    "goal_amount": "higher_is_better",
    "sales_count": "higher_is_better",
    "avg_ticket": "higher_is_better",
    "goal_pct": "higher_is_better",
    "goal_gap": "lower_is_better",
    "active_contracts": "higher_is_better",
}

# Integer-valued fields of a monthly metric row
COUNT_FIELDS = ["clients_entered", "clients_left", "sales_count", "active_contracts"]

# Monetary fields of a monthly metric row
MONEY_FIELDS = ["entries_cash", "exits_churn", "net_mrr", "avg_ticket", "goal_amount", "goal_gap"]

# Funnel row fields summed over a period; roas is derived
FUNNEL_SUM_FIELDS = ["invested", "entries", "saldo", "ltv_total"]

# Per-client metric rows use shorter names for the same quantities
CLIENT_FIELD_MAP: dict[str, str] = {
    "entries": "entries_cash",
    "exits": "exits_churn",
    "net": "net_mrr",
}

# ---------------------------------------------------------------------------
# Periods
# ---------------------------------------------------------------------------
# preset -> (months back from anchor to start, months back from anchor to end)
PRESET_OFFSETS: dict[str, tuple[int, int]] = {
    "current": (0, 0),
    "last": (1, 1),
    "3m": (2, 0),
    "6m": (5, 0),
    "12m": (11, 0),
}
CUSTOM_PRESET = "custom"
PRESETS = [*PRESET_OFFSETS, CUSTOM_PRESET]
DEFAULT_PRESET = "12m"
DEFAULT_CUSTOM_MONTHS = 12

PRESET_LABELS: dict[str, str] = {
    "current": "Current",
    "last": "Last",
    "3m": "3m",
    "6m": "6m",
    "12m": "12m",
    "custom": "Custom",
}

# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------
ROLLING_WINDOWS = (3, 6, 12)

# comparison key -> monthly metric field
COMPARISON_METRICS: dict[str, str] = {
    "entries": "entries_cash",
    "net": "net_mrr",
}

# Fields compared month over month on the client page
CLIENT_CHANGE_FIELDS = ["entries_cash", "exits_churn", "net_mrr", "avg_ticket", "sales_count"]

# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------
GOAL_AMBER_BAND = 10.0  # percentage points below goal still classed amber

GOAL_STATUS_LABELS: dict[str, str] = {
    "achieved": "Achieved",
    "pending": "Pending",
    "no_goal": "No goal",
}

# ---------------------------------------------------------------------------
# Data source (managed Postgres behind Supabase)
# ---------------------------------------------------------------------------
TABLE_CLIENTS = "clients"
TABLE_SALES = "sales"
TABLE_EXPENSES = "expenses"
TABLE_GOALS = "goals"
TABLE_NOTES = "client_notes"
VIEW_MONTHLY_COMPANY_METRICS = "monthly_company_metrics"

RPC_DASHBOARD_METRICS = "get_dashboard_metrics"
RPC_COMPANY_KPIS = "get_company_kpis"
RPC_FUNNEL_RETURN = "get_funnel_return"

CRM_COLUMNS = [
    "id", "name", "started_at", "ended_at",
    "owner_name", "owner_phone", "owner_email", "specialist_name",
    "payment_amount", "payment_day", "renewal_date",
]

EXPENSE_FALLBACK_CATEGORY = "Other"

# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------
CURRENCY_SYMBOL = "R$"

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

_supabase_client: Client | None = None


def _supabase_credentials() -> tuple[str | None, str | None]:
    """(url, key) from Streamlit secrets, else from the environment."""
    try:
        if "SUPABASE_URL" in st.secrets:
            return st.secrets["SUPABASE_URL"], st.secrets.get("SUPABASE_KEY")
    except FileNotFoundError:
        # No secrets.toml: plain scripts and local runs
        pass
    return os.getenv("SUPABASE_URL"), os.getenv("SUPABASE_KEY")


def get_supabase_client() -> Client:
    """Return a singleton Supabase client.

    Works both:
    - on Streamlit deployments (reads st.secrets)
    - locally and from main.py (reads SUPABASE_URL / SUPABASE_KEY)
    """
    global _supabase_client
    if _supabase_client is not None:
        return _supabase_client

    url, key = _supabase_credentials()

    if not url or not key:
        raise RuntimeError("Supabase URL/KEY not found. Check Streamlit secrets or SUPABASE_URL / SUPABASE_KEY.")

    _supabase_client = create_client(url, key)
    return _supabase_client


def supabase_configured() -> bool:
    """True when credentials for the managed database are present."""
    url, key = _supabase_credentials()
    return bool(url and key)
