"""Pytest configuration and fixtures for the dashboard tests."""

from types import SimpleNamespace
from typing import Any

import pandas as pd
import pytest

from finboard.transforms import build_funnel_series, build_monthly_series


def _month_rows(values: list[tuple[str, float, float, float]]) -> list[dict]:
    rows = []
    for month, entries, exits, goal in values:
        rows.append({
            "month": month,
            "clients_entered": 2,
            "clients_left": 1,
            "entries_cash": entries,
            "exits_churn": exits,
            "net_mrr": entries - exits,
            "avg_ticket": entries / 4 if entries else 0.0,
            "sales_count": 4 if entries else 0,
            "goal_amount": goal,
            "goal_pct": entries / goal * 100 if goal else None,
            "goal_gap": max(goal - entries, 0),
            "active_contracts": 10,
        })
    return rows


@pytest.fixture
def monthly_rows() -> list[dict]:
    """Twelve months of 2025 with entries rising by 100 each month."""
    values = [
        (f"2025-{m:02d}-01", 1000.0 + 100 * (m - 1), 200.0, 1000.0)
        for m in range(1, 13)
    ]
    rows = _month_rows(values)
    # Active contracts grow so the latest-month snapshot is distinguishable
    for i, row in enumerate(rows):
        row["active_contracts"] = 10 + i
    return rows


@pytest.fixture
def monthly_series(monthly_rows: list[dict]) -> pd.DataFrame:
    return build_monthly_series(monthly_rows)


@pytest.fixture
def funnel_series() -> pd.DataFrame:
    rows = [
        {"month": "2025-01-01", "invested": 0, "entries": 500, "saldo": 500, "ltv_total": 4000, "roas": None},
        {"month": "2025-02-01", "invested": 1000, "entries": 3000, "saldo": 2000, "ltv_total": 24000, "roas": 3.0},
        {"month": "2025-03-01", "invested": 1000, "entries": 1000, "saldo": 0, "ltv_total": 8000, "roas": 1.0},
    ]
    return build_funnel_series(rows)


# ---------------------------------------------------------------------------
# Fake Supabase client
# ---------------------------------------------------------------------------
class FakeQuery:
    """Chainable stand-in for a postgrest request builder.

    Every builder method is recorded in `calls` and returns the query
    itself; execute() returns an object with a `.data` attribute.
    """

    def __init__(self, target: str, data: Any, error: Exception | None = None) -> None:
        self.target = target
        self.data = data
        self.error = error
        self.calls: list[tuple[str, tuple, dict]] = []

    def __getattr__(self, name: str):
        if name.startswith("__"):
            raise AttributeError(name)

        def method(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self

        return method

    def called(self, name: str) -> list[tuple[tuple, dict]]:
        return [(args, kwargs) for n, args, kwargs in self.calls if n == name]

    def execute(self):
        if self.error is not None:
            raise self.error
        return SimpleNamespace(data=self.data)


class FakeSupabase:
    """Records table() and rpc() requests and answers them from `responses`.

    responses maps a table or RPC name to its data, or to a callable taking
    the RPC params (or None for tables) and returning the data.
    """

    def __init__(self, responses: dict | None = None, error: Exception | None = None) -> None:
        self.responses = responses or {}
        self.error = error
        self.queries: list[FakeQuery] = []

    def _answer(self, name: str, params: Any = None) -> Any:
        answer = self.responses.get(name)
        if callable(answer):
            return answer(params)
        return answer

    def table(self, name: str) -> FakeQuery:
        query = FakeQuery(name, self._answer(name), self.error)
        self.queries.append(query)
        return query

    def rpc(self, name: str, params: dict) -> FakeQuery:
        query = FakeQuery(name, self._answer(name, params), self.error)
        query.calls.append(("rpc", (name, params), {}))
        self.queries.append(query)
        return query


@pytest.fixture
def fake_supabase():
    """Factory for FakeSupabase instances."""
    return FakeSupabase
