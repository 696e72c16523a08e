"""Tests for the dashboard entry points."""

import json

import pandas as pd
import pytest

from finboard.dashboard import (
    get_available_months,
    get_client_months,
    get_client_overview,
    get_company_overview,
    get_crm_summary,
    get_latest_month,
    get_months_listing,
    get_trend_frame,
    get_yearly_summary,
)
from finboard.periods import PeriodSelection
from finboard.simulator import client_series_from_transactions, generate_transactions
from finboard.transforms import build_monthly_series, client_metrics_to_series


class TestCompanyOverview:
    """Test the company dashboard output."""

    def test_structure(self, monthly_series: pd.DataFrame, funnel_series: pd.DataFrame) -> None:
        selection = PeriodSelection.initial("2025-06-15").with_preset("3m")
        overview = get_company_overview(monthly_series, funnel_series, selection)

        assert set(overview) == {"period", "kpis", "goal", "funnel", "comparison"}
        assert overview["period"] == {
            "start": "2025-04-01",
            "end": "2025-06-01",
            "months": 3,
            "label": "April 2025 - June 2025",
        }
        assert overview["kpis"]["entries_cash"] == 4200
        assert overview["comparison"]["metrics"]["entries"]["current"] == 4200

    def test_goal_block(self, monthly_series: pd.DataFrame, funnel_series: pd.DataFrame) -> None:
        """Test goal status and colour follow goal_pct."""
        selection = PeriodSelection.initial("2025-01-01").with_preset("current")
        overview = get_company_overview(monthly_series, funnel_series, selection)

        assert overview["kpis"]["goal_pct"] == pytest.approx(100.0)
        assert overview["goal"]["status"] == "achieved"
        assert overview["goal"]["rag"] == "green"
        assert overview["goal"]["variance"] == 0

    def test_json_serialisable(self, monthly_series: pd.DataFrame, funnel_series: pd.DataFrame) -> None:
        selection = PeriodSelection.initial("2025-02-01").with_preset("current")
        overview = get_company_overview(monthly_series, funnel_series, selection)

        json.dumps(overview, allow_nan=False)

    def test_single_month_label(self, monthly_series: pd.DataFrame, funnel_series: pd.DataFrame) -> None:
        selection = PeriodSelection.initial("2025-06-01").with_preset("last")
        overview = get_company_overview(monthly_series, funnel_series, selection)

        assert overview["period"]["label"] == "May 2025"

    def test_deterministic(self, monthly_series: pd.DataFrame, funnel_series: pd.DataFrame) -> None:
        selection = PeriodSelection.initial("2025-12-01")
        first = get_company_overview(monthly_series, funnel_series, selection)
        second = get_company_overview(monthly_series, funnel_series, selection)

        assert first == second


class TestClientOverview:
    """Test the per-client overview."""

    @pytest.fixture
    def client_series(self) -> pd.DataFrame:
        return client_metrics_to_series([
            {"month": "2025-04-01", "entries": 1000, "exits": 200, "net": 800, "sales_count": 4,
             "goal_amount": 1000, "goal_pct": 100},
            {"month": "2025-05-01", "entries": 1500, "exits": 200, "net": 1300, "sales_count": 5,
             "goal_amount": 2000, "goal_pct": 75},
        ])

    def test_month_over_month(self, client_series: pd.DataFrame) -> None:
        selection = PeriodSelection.initial("2025-05-20").with_preset("3m")
        overview = get_client_overview(client_series, selection)

        assert overview["month"]["kpis"]["entries_cash"] == 1500
        assert overview["previous_month"]["kpis"]["entries_cash"] == 1000
        assert overview["month_over_month"]["entries_cash"]["formatted"] == "+50,0%"
        assert overview["month_over_month"]["exits_churn"]["type"] == "neutral"
        assert overview["month"]["goal"]["rag"] == "red"

    def test_period_aggregate(self, client_series: pd.DataFrame) -> None:
        selection = PeriodSelection.initial("2025-05-01").with_preset("3m")
        overview = get_client_overview(client_series, selection)

        assert overview["kpis"]["entries_cash"] == 2500
        assert overview["kpis"]["avg_ticket"] == pytest.approx(2500 / 9)
        assert overview["comparison"]["previous_period"] == {"start": "2024-12-01", "end": "2025-02-01"}


class TestClientMonths:
    """Test the months fetched for a client overview."""

    @pytest.fixture
    def full_series(self) -> pd.DataFrame:
        sales, expenses = generate_transactions("client-001", "2024-01-01", n_months=24, seed=3)
        return client_series_from_transactions(sales, expenses)

    def test_covers_previous_window(self) -> None:
        months = get_client_months(PeriodSelection.initial("2025-12-01").with_preset("3m"))
        assert months == [f"2025-{m:02d}-01" for m in range(6, 13)]

    def test_custom_range_includes_selected_month(self) -> None:
        selection = PeriodSelection.initial("2025-12-01").with_custom_range("2025-03-01", "2025-04-01")
        months = get_client_months(selection)

        assert months[0] == "2025-01-01"
        assert months[-1] == "2025-12-01"

    @pytest.mark.parametrize("preset", ["current", "last", "3m", "6m", "12m"])
    def test_fetched_rows_give_the_full_overview(self, full_series: pd.DataFrame, preset: str) -> None:
        """Test an overview built from only the fetched months matches one built from every month."""
        selection = PeriodSelection.initial("2025-12-01").with_preset(preset)
        fetched = full_series[full_series["month"].isin(get_client_months(selection))]

        from_fetched = get_client_overview(fetched, selection)
        from_all = get_client_overview(full_series, selection)

        assert from_fetched == from_all
        assert from_fetched["comparison"]["metrics"]["entries"]["previous"] > 0


class TestListings:
    """Test month listings and helpers."""

    def test_latest_and_available(self, monthly_rows: list[dict]) -> None:
        series = build_monthly_series(list(reversed(monthly_rows)))

        assert get_latest_month(series) == "2025-12-01"
        assert get_available_months(series)[:2] == ["2025-01-01", "2025-02-01"]

    def test_latest_of_empty(self) -> None:
        assert get_latest_month(build_monthly_series([])) is None
        assert get_available_months(build_monthly_series([])) == []

    def test_months_listing_newest_first(self, monthly_series: pd.DataFrame) -> None:
        listing = get_months_listing(monthly_series)

        assert listing.loc[0, "month"] == "2025-12-01"
        assert listing.loc[0, "label"] == "December 2025"
        assert listing.loc[0, "goal_status"] == "achieved"

    def test_months_listing_search(self, monthly_series: pd.DataFrame) -> None:
        assert list(get_months_listing(monthly_series, "march")["month"]) == ["2025-03-01"]
        assert len(get_months_listing(monthly_series, "2025")) == 12
        assert get_months_listing(monthly_series, "2031").empty

    def test_trend_frame(self, monthly_series: pd.DataFrame) -> None:
        trend = get_trend_frame(monthly_series, PeriodSelection.initial("2025-06-01").with_preset("6m"))

        assert len(trend) == 6
        assert trend.loc[0, "label"] == "January 2025"
        assert trend.loc[0, "month_start"] == pd.Timestamp("2025-01-01")


class TestClientSummaries:
    """Test yearly and CRM summaries."""

    def test_yearly_summary_has_no_nan(self) -> None:
        series = client_metrics_to_series([{"month": "2025-03-01", "entries": 100, "sales_count": 1}])
        summary = get_yearly_summary(series, 2025)

        assert summary["year"] == 2025
        assert len(summary["rows"]) == 12
        assert summary["rows"][0]["entries_cash"] is None
        assert summary["rows"][2]["label"] == "March 2025"
        json.dumps(summary, allow_nan=False)

    def test_crm_summary(self) -> None:
        crm = {"id": "c1", "name": "Acme"}
        sales = [
            {"amount": 100, "occurred_at": "2025-05-03"},
            {"amount": 200, "occurred_at": "2023-01-01"},
        ]
        summary = get_crm_summary(crm, sales, "2025-06-01", n_months=2)

        assert summary["client"] == crm
        assert summary["total_revenue"] == 300
        assert summary["revenue_series"] == [
            {"month": "2025-05-01", "total": 100.0},
            {"month": "2025-06-01", "total": 0.0},
        ]
