"""Tests for period filtering, KPI and funnel aggregation."""

import json

import pandas as pd
import pytest

from finboard.kpis import (
    aggregate_funnel,
    aggregate_kpis,
    calc_variance,
    classify_goal,
    filter_period,
    goal_status,
    pct_change,
)
from finboard.periods import PeriodRange


class TestFilterPeriod:
    """Test inclusive filtering by month."""

    def test_bounds_are_inclusive(self, monthly_series: pd.DataFrame) -> None:
        df = filter_period(monthly_series, PeriodRange("2025-03-01", "2025-05-01"))
        assert list(df["month"]) == ["2025-03-01", "2025-04-01", "2025-05-01"]

    def test_unordered_input_is_sorted(self, monthly_rows: list[dict]) -> None:
        rows = list(reversed(monthly_rows))
        df = filter_period(rows, PeriodRange("2025-01-01", "2025-03-01"))
        assert list(df["month"]) == ["2025-01-01", "2025-02-01", "2025-03-01"]

    def test_mixed_date_formats(self) -> None:
        """Test rows keyed by dates other than the first of the month still match."""
        rows = [{"month": "2025-02-15"}, {"month": "2025-03-01T00:00:00"}]
        df = filter_period(rows, PeriodRange("2025-02-01", "2025-03-01"))
        assert list(df["month"]) == ["2025-02-01", "2025-03-01"]

    def test_invalid_months_dropped(self) -> None:
        rows = [{"month": "garbage", "entries_cash": 5}, {"month": "2025-01-01", "entries_cash": 1}]
        df = filter_period(rows, PeriodRange("2025-01-01", "2025-12-01"))
        assert len(df) == 1

    def test_repeated_index_labels(self, monthly_rows: list[dict]) -> None:
        """Test frames joined without ignore_index are filtered and aggregated."""
        joined = pd.concat([pd.DataFrame(monthly_rows[:1]), pd.DataFrame(monthly_rows[1:2])])
        assert list(joined.index) == [0, 0]

        df = filter_period(joined, PeriodRange("2025-01-01", "2025-02-01"))
        kpis = aggregate_kpis(joined, PeriodRange("2025-01-01", "2025-02-01"))

        assert list(df["month"]) == ["2025-01-01", "2025-02-01"]
        assert kpis["entries_cash"] == 2100
        assert kpis["active_contracts"] == 11

    def test_empty_input(self) -> None:
        assert filter_period([], PeriodRange("2025-01-01", "2025-12-01")).empty


class TestAggregateKpis:
    """Test reduction of monthly rows into one KPI summary."""

    def test_two_month_goal_scenario(self) -> None:
        """Test sums, goal percentage and gap over two months."""
        rows = [
            {"month": "2025-01-01", "entries_cash": 1000, "goal_amount": 800},
            {"month": "2025-02-01", "entries_cash": 1200, "goal_amount": 800},
        ]
        kpis = aggregate_kpis(rows, PeriodRange("2025-01-01", "2025-02-01"))

        assert kpis["entries_cash"] == 2200
        assert kpis["goal_amount"] == 1600
        assert kpis["goal_pct"] == pytest.approx(137.5)
        assert kpis["goal_gap"] == 0
        assert kpis["months"] == 2

    def test_goal_gap_when_short(self) -> None:
        rows = [{"month": "2025-01-01", "entries_cash": 600, "goal_amount": 1000}]
        kpis = aggregate_kpis(rows, PeriodRange("2025-01-01", "2025-01-01"))

        assert kpis["goal_gap"] == 400
        assert kpis["goal_pct"] == pytest.approx(60.0)

    def test_no_goal_gives_null_pct(self) -> None:
        rows = [{"month": "2025-01-01", "entries_cash": 600, "goal_amount": 0}]
        kpis = aggregate_kpis(rows, PeriodRange("2025-01-01", "2025-01-01"))

        assert kpis["goal_pct"] is None
        assert kpis["goal_gap"] == 0

    def test_weighted_average_ticket(self) -> None:
        """Test avg_ticket is total entries over total sales, not a mean of means."""
        rows = [
            {"month": "2025-01-01", "entries_cash": 1000, "sales_count": 1, "avg_ticket": 1000},
            {"month": "2025-02-01", "entries_cash": 900, "sales_count": 9, "avg_ticket": 100},
        ]
        kpis = aggregate_kpis(rows, PeriodRange("2025-01-01", "2025-02-01"))

        assert kpis["avg_ticket"] == pytest.approx(190.0)
        assert kpis["sales_count"] == 10

    def test_average_ticket_without_sales_count(self) -> None:
        """Test the positive monthly tickets are averaged when no sales were counted."""
        rows = [
            {"month": "2025-01-01", "entries_cash": 1000, "avg_ticket": 200},
            {"month": "2025-02-01", "entries_cash": 0, "avg_ticket": 0},
            {"month": "2025-03-01", "entries_cash": 1000, "avg_ticket": 400},
        ]
        kpis = aggregate_kpis(rows, PeriodRange("2025-01-01", "2025-03-01"))

        assert kpis["avg_ticket"] == pytest.approx(300.0)

    def test_active_contracts_is_latest_month(self, monthly_rows: list[dict]) -> None:
        """Test the snapshot comes from the latest month even when rows arrive unordered."""
        shuffled = monthly_rows[5:] + monthly_rows[:5]
        kpis = aggregate_kpis(shuffled, PeriodRange("2025-01-01", "2025-06-01"))

        assert kpis["active_contracts"] == 15

    def test_client_balance_falls_back_to_difference(self) -> None:
        rows = [
            {"month": "2025-01-01", "clients_entered": 5, "clients_left": 2},
            {"month": "2025-02-01", "clients_entered": 1, "clients_left": 3, "clients_balance": -1},
        ]
        kpis = aggregate_kpis(rows, PeriodRange("2025-01-01", "2025-02-01"))

        assert kpis["clients_entered"] == 6
        assert kpis["clients_left"] == 5
        assert kpis["clients_balance"] == 2

    def test_empty_range(self, monthly_series: pd.DataFrame) -> None:
        """Test a range without data yields zeros and nulls, never NaN."""
        kpis = aggregate_kpis(monthly_series, PeriodRange("2030-01-01", "2030-03-01"))

        assert kpis["entries_cash"] == 0
        assert kpis["avg_ticket"] is None
        assert kpis["goal_pct"] is None
        assert kpis["active_contracts"] == 0
        assert kpis["months"] == 0
        json.dumps(kpis, allow_nan=False)

    def test_sums_are_additive(self, monthly_series: pd.DataFrame) -> None:
        """Test splitting a range in two gives the same sums."""
        whole = aggregate_kpis(monthly_series, PeriodRange("2025-01-01", "2025-06-01"))
        first = aggregate_kpis(monthly_series, PeriodRange("2025-01-01", "2025-03-01"))
        second = aggregate_kpis(monthly_series, PeriodRange("2025-04-01", "2025-06-01"))

        for field in ("entries_cash", "exits_churn", "net_mrr", "goal_amount", "clients_entered", "sales_count"):
            assert whole[field] == pytest.approx(first[field] + second[field])

    def test_idempotent(self, monthly_series: pd.DataFrame) -> None:
        period = PeriodRange("2025-01-01", "2025-12-01")
        assert aggregate_kpis(monthly_series, period) == aggregate_kpis(monthly_series, period)

    def test_text_numbers(self) -> None:
        """Test numbers delivered as text by the metrics view are summed."""
        rows = [{"month": "2025-01-01", "entries_cash": "1500.50", "goal_amount": "1000"}]
        kpis = aggregate_kpis(rows, PeriodRange("2025-01-01", "2025-01-01"))

        assert kpis["entries_cash"] == pytest.approx(1500.5)
        assert kpis["goal_pct"] == pytest.approx(150.05)


class TestAggregateFunnel:
    """Test funnel aggregation."""

    def test_sums_and_roas(self, funnel_series: pd.DataFrame) -> None:
        result = aggregate_funnel(funnel_series, PeriodRange("2025-01-01", "2025-03-01"))

        assert result["invested"] == 2000
        assert result["entries"] == 4500
        assert result["saldo"] == 2500
        assert result["ltv_total"] == 36000
        assert result["roas"] == pytest.approx(2.25)

    def test_roas_null_without_investment(self, funnel_series: pd.DataFrame) -> None:
        result = aggregate_funnel(funnel_series, PeriodRange("2025-01-01", "2025-01-01"))

        assert result["invested"] == 0
        assert result["roas"] is None

    def test_empty(self) -> None:
        result = aggregate_funnel([], PeriodRange("2025-01-01", "2025-01-01"))
        assert result["roas"] is None
        assert result["months"] == 0


class TestRatios:
    """Test percentage change, variance and goal classification."""

    def test_pct_change(self) -> None:
        assert pct_change(150, 100) == pytest.approx(50.0)
        assert pct_change(50, 100) == pytest.approx(-50.0)

    def test_pct_change_zero_previous(self) -> None:
        """Test a zero previous value never yields infinity."""
        assert pct_change(500, 0) == 100.0
        assert pct_change(0, 0) == 0.0

    def test_calc_variance(self) -> None:
        assert calc_variance(1200, 1000) == (200, pytest.approx(20.0))
        assert calc_variance(1200, 0) == (1200, None)

    @pytest.mark.parametrize(
        "goal_pct, expected",
        [(120.0, "green"), (100.0, "green"), (95.0, "amber"), (90.0, "amber"), (60.0, "red"), (None, "grey")],
    )
    def test_classify_goal(self, goal_pct, expected: str) -> None:
        assert classify_goal(goal_pct) == expected

    def test_goal_status(self) -> None:
        assert goal_status(100.0) == "achieved"
        assert goal_status(99.9) == "pending"
        assert goal_status(None) == "no_goal"
