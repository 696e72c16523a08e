"""
Client financial dashboard: end-to-end analytics pipeline.

Loads a monthly series (simulated, from an Excel export, or from Supabase),
computes the dashboard outputs for a period selection, and prints
smoke-test summaries.

Usage:
    python main.py
    python main.py --workbook monthly_company_metrics.xlsx --today 2025-06-15 --preset 6m
    python main.py --supabase --today 2025-06-15
"""

import argparse
import json
import logging

from finboard.config import PRESETS, SAMPLE_WORKBOOK_FILE, get_supabase_client
from finboard.dashboard import (
    get_available_months,
    get_company_overview,
    get_latest_month,
    get_months_listing,
)
from finboard.formatters import format_currency, format_percentage, format_roas
from finboard.loaders.supabase_source import fetch_funnel_for_range, fetch_monthly_series
from finboard.loaders.workbook import load_funnel_workbook, load_monthly_series_workbook, write_series_workbook
from finboard.periods import PeriodSelection
from finboard.simulator import generate_funnel_series, generate_monthly_series

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the dashboard pipeline and print its outputs.")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--workbook", help="Excel export with 'monthly_series' and 'funnel' sheets")
    source.add_argument("--supabase", action="store_true", help="Read from Supabase (SUPABASE_URL/KEY)")
    parser.add_argument("--today", help="Month to anchor on (defaults to the latest month in the data)")
    parser.add_argument("--preset", default="12m", choices=PRESETS)
    parser.add_argument("--from", dest="custom_from", help="Custom range start (with --preset custom)")
    parser.add_argument("--to", dest="custom_to", help="Custom range end (with --preset custom)")
    parser.add_argument("--write-sample", action="store_true", help=f"Write the simulated data to {SAMPLE_WORKBOOK_FILE.name}")
    parser.add_argument("--json", action="store_true", help="Print the company overview as JSON")
    return parser.parse_args()


def main() -> None:
    """Run the full analytics pipeline and print smoke-test outputs."""
    args = parse_args()

    print("=" * 70)
    print("  CLIENT FINANCIAL DASHBOARD")
    print("  Analytics Pipeline Smoke Test")
    print("=" * 70)
    print()

    # ------------------------------------------------------------------
    # 1. Load source data
    # ------------------------------------------------------------------
    print("[ 1 ] LOADING SOURCE DATA")
    print("-" * 40)

    if args.workbook:
        series = load_monthly_series_workbook(args.workbook)
        funnel = load_funnel_workbook(args.workbook)
        source = args.workbook
    elif args.supabase:
        client = get_supabase_client()
        series = fetch_monthly_series(client)
        months = get_available_months(series)
        funnel = fetch_funnel_for_range(client, months[0], months[-1]) if months else series.iloc[0:0]
        source = "Supabase"
    else:
        series = generate_monthly_series()
        funnel = generate_funnel_series(series)
        source = "simulator"
        if args.write_sample:
            write_series_workbook(str(SAMPLE_WORKBOOK_FILE), series, funnel)
            print(f"Sample workbook written to {SAMPLE_WORKBOOK_FILE}")

    print(f"\nMonthly series ({source}): {len(series)} rows")
    if not series.empty:
        print(series[["month", "entries_cash", "exits_churn", "net_mrr", "goal_amount"]].tail(6).to_string(index=False))
    print(f"\nFunnel series: {len(funnel)} rows")

    # ------------------------------------------------------------------
    # 2. Period selection
    # ------------------------------------------------------------------
    print("\n")
    print("[ 2 ] PERIOD SELECTION")
    print("-" * 40)

    today = args.today or get_latest_month(series)
    if today is None:
        logger.error("No data and no --today given; nothing to report")
        return

    selection = PeriodSelection.initial(today).with_preset(args.preset)
    if args.preset == "custom" and args.custom_from and args.custom_to:
        selection = selection.with_custom_range(args.custom_from, args.custom_to)
    period = selection.resolve()
    print(f"\nSelection: {selection.to_dict()}")
    print(f"Resolved range: {period.start} .. {period.end} ({period.months} months)")

    # ------------------------------------------------------------------
    # 3. Dashboard outputs
    # ------------------------------------------------------------------
    print("\n")
    print("[ 3 ] DASHBOARD OUTPUTS")
    print("-" * 40)

    overview = get_company_overview(series, funnel, selection)
    if args.json:
        print(json.dumps(overview, indent=2, ensure_ascii=False))

    kpis = overview["kpis"]
    print(f"\nCompany KPIs: {overview['period']['label']}")
    print(f"  Clients in / out / balance : {kpis['clients_entered']} / {kpis['clients_left']} / {kpis['clients_balance']}")
    print(f"  Entries                    : {format_currency(kpis['entries_cash'])}")
    print(f"  Exits (churn)              : {format_currency(kpis['exits_churn'])}")
    print(f"  Net                        : {format_currency(kpis['net_mrr'])}")
    print(f"  Average ticket             : {format_currency(kpis['avg_ticket'])}")
    print(f"  Active contracts           : {kpis['active_contracts']}")
    print(f"  Goal / % / gap             : {format_currency(kpis['goal_amount'])} / "
          f"{format_percentage(kpis['goal_pct'])} / {format_currency(kpis['goal_gap'])}")
    print(f"  Goal status                : {overview['goal']['status']} ({overview['goal']['rag']})")

    fun = overview["funnel"]
    print("\nFunnel return:")
    print(f"  Invested {format_currency(fun['invested'])} | Entries {format_currency(fun['entries'])} | "
          f"Balance {format_currency(fun['saldo'])} | LTV {format_currency(fun['ltv_total'])} | "
          f"ROAS {format_roas(fun['roas'])}")

    comp = overview["comparison"]
    print(f"\nComparison vs {comp['previous_label']}:")
    for key, metric in comp["metrics"].items():
        rolling = " | ".join(f"avg {w} {format_currency(v)}" for w, v in metric["rolling_avg"].items())
        print(f"  {key:8s} | now {format_currency(metric['current'])} | before {format_currency(metric['previous'])} | "
              f"delta {format_currency(metric['delta_abs'])} ({format_percentage(metric['delta_pct'])}) | {rolling}")

    print("\nLatest months:")
    listing = get_months_listing(series)
    if not listing.empty:
        print(listing[["label", "entries_cash", "net_mrr", "goal_pct", "goal_status"]].head(6).to_string(index=False))

    # ------------------------------------------------------------------
    # 4. Acceptance checks
    # ------------------------------------------------------------------
    print("\n")
    print("[ 4 ] ACCEPTANCE CRITERIA CHECKS")
    print("-" * 40)

    check1 = json.dumps(overview) is not None
    print(f"\n  [{'PASS' if check1 else 'FAIL'}] Overview serialises to JSON")

    check2 = (kpis["goal_pct"] is None) == (kpis["goal_amount"] == 0)
    print(f"  [{'PASS' if check2 else 'FAIL'}] goal_pct is null exactly when there is no goal")

    check3 = comp["previous_period"]["end"] < period.start
    print(f"  [{'PASS' if check3 else 'FAIL'}] Previous window ends before the current one starts")

    check4 = get_company_overview(series, funnel, selection) == overview
    print(f"  [{'PASS' if check4 else 'FAIL'}] Overview is identical when recomputed")

    print("\n" + "=" * 70)
    print("  Pipeline complete.")
    print("=" * 70)


if __name__ == "__main__":
    main()
