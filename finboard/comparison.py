"""
Period comparison: current range against the equal-length range before it.

The previous window ends the month before the current one starts and
spans the same number of months, so the two never overlap or leave a gap.
Rolling averages are taken from the tail of the current window's rows.
"""

import logging

import pandas as pd

from .config import CLIENT_CHANGE_FIELDS, COMPARISON_METRICS, METRIC_DIRECTION, ROLLING_WINDOWS
from .formatters import format_month_label, format_percentage
from .kpis import Rows, aggregate_kpis, filter_period, numeric_column, pct_change
from .periods import PeriodRange, previous_range

logger = logging.getLogger(__name__)


def rolling_averages(
    period_rows: pd.DataFrame,
    field: str,
    windows: tuple[int, ...] = ROLLING_WINDOWS,
) -> dict[str, float | None]:
    """Mean of the trailing N rows of field for each window N.

    Uses however many rows exist when fewer than N are available; None
    when there are none.

    Returns
    -------
    {"3m": ..., "6m": ..., "12m": ...}
    """
    ordered = period_rows.sort_values("month", kind="mergesort") if not period_rows.empty else period_rows
    values = numeric_column(ordered, field)

    result: dict[str, float | None] = {}
    for window in windows:
        tail = values.tail(window)
        result[f"{window}m"] = float(tail.mean()) if not tail.empty else None
    return result


def compare_metric(
    current: float | None,
    previous: float | None,
    current_rows: pd.DataFrame,
    field: str,
) -> dict:
    """Compare one metric between two aggregated windows.

    Parameters
    ----------
    current, previous : The field's value in each window's KPI aggregate;
        None (e.g. avg_ticket without sales) counts as 0.
    current_rows : Rows of the current window, for the rolling averages.
    field : Monthly metric column.

    Returns
    -------
    Dict with keys: current, previous, delta_abs, delta_pct, rolling_avg
    """
    current = float(current or 0.0)
    previous = float(previous or 0.0)

    return {
        "current": current,
        "previous": previous,
        "delta_abs": current - previous,
        "delta_pct": pct_change(current, previous),
        "rolling_avg": rolling_averages(current_rows, field),
    }


def compare_periods(
    rows: Rows,
    period: PeriodRange,
    current: dict | None = None,
    metrics: dict[str, str] = COMPARISON_METRICS,
) -> dict:
    """Compare the selected period against the equal-length period before it.

    Both windows are reduced with aggregate_kpis, so derived fields such
    as avg_ticket compare like with like.

    Parameters
    ----------
    rows : Full, unfiltered monthly metric series.
    period : Current inclusive range.
    current : Optional KPI aggregate of the current period
        (from aggregate_kpis); reused instead of aggregating again.
    metrics : comparison key -> aggregate field.

    Returns
    -------
    Dict with structure:
    {
        "period": {"start": ..., "end": ...},
        "previous_period": {"start": ..., "end": ...},
        "previous_label": "March 2025 - May 2025",
        "window_months": 3,
        "current": {... aggregate_kpis of period ...},
        "previous": {... aggregate_kpis of previous_period ...},
        "metrics": {
            "entries": {"current": ..., "previous": ..., "delta_abs": ...,
                        "delta_pct": ..., "rolling_avg": {"3m": ..., ...}},
            "net": {...},
        },
    }
    """
    prev = previous_range(period)
    current_kpis = current if current is not None else aggregate_kpis(rows, period)
    previous_kpis = aggregate_kpis(rows, prev)
    current_rows = filter_period(rows, period)

    if previous_kpis["months"] == 0:
        logger.info("No rows in previous window %s..%s", prev.start, prev.end)

    result_metrics = {
        key: compare_metric(current_kpis.get(field), previous_kpis.get(field), current_rows, field)
        for key, field in metrics.items()
    }

    return {
        "period": {"start": period.start, "end": period.end},
        "previous_period": {"start": prev.start, "end": prev.end},
        "previous_label": f"{format_month_label(prev.start)} - {format_month_label(prev.end)}",
        "window_months": period.months,
        "current": current_kpis,
        "previous": previous_kpis,
        "metrics": result_metrics,
    }


def change_indicator(
    current: float | None,
    previous: float | None,
    direction: str = "higher_is_better",
) -> dict:
    """Direction and formatted size of a month-over-month change.

    favourable is True when the change moves the metric the way its
    direction prefers, False when it moves against it, None when flat.

    Returns
    -------
    {"value": pct, "type": "positive" | "negative" | "neutral",
     "formatted": "+12,5%", "favourable": True | False | None}
    """
    pct = pct_change(current or 0.0, previous or 0.0)
    if pct > 0:
        change_type = "positive"
    elif pct < 0:
        change_type = "negative"
    else:
        change_type = "neutral"
    sign = "+" if pct > 0 else ""

    favourable = None
    if change_type != "neutral":
        favourable = (change_type == "positive") == (direction == "higher_is_better")

    return {
        "value": pct,
        "type": change_type,
        "formatted": f"{sign}{format_percentage(pct)}",
        "favourable": favourable,
    }


def month_over_month(
    current: dict,
    previous: dict,
    fields: list[str] = CLIENT_CHANGE_FIELDS,
) -> dict[str, dict]:
    """Change indicators for each field between two single-month summaries."""
    return {
        field: change_indicator(
            current.get(field),
            previous.get(field),
            METRIC_DIRECTION.get(field, "higher_is_better"),
        )
        for field in fields
    }
