"""
Offline loader for monthly metric and funnel series exported to Excel.

Expected layout per sheet:
    A header row (within the first 20 rows) naming the columns, e.g.
    "Month | Clients Entered | Clients Left | Entries Cash | ...".
    Headers are snake-cased before matching, so "Entries (cash)" and
    "entries_cash" are equivalent.
    One data row per month below the header; blank rows end the table.

Month cells may be datetime objects, ISO strings, or Excel serial numbers.
Percentage cells (goal_pct) stored as fractions (0.85) are scaled to 85.
"""

import logging

import openpyxl
import pandas as pd

from ..transforms import (
    FUNNEL_COLUMNS,
    MONTHLY_SERIES_COLUMNS,
    build_funnel_series,
    build_monthly_series,
)
from .utils import find_header_row, normalise_date, normalise_percentage, safe_float, to_snake_case

logger = logging.getLogger(__name__)

SERIES_SHEET = "monthly_series"
FUNNEL_SHEET = "funnel"

_SERIES_SIGNATURE = set(MONTHLY_SERIES_COLUMNS)
_FUNNEL_SIGNATURE = set(FUNNEL_COLUMNS)


def _read_table(ws, signature: set[str]) -> list[dict]:
    """Read the table under the first header row matching signature."""
    header_row = find_header_row(ws, signature)
    if header_row is None:
        logger.warning("No header row found in sheet '%s'", ws.title)
        return []

    col_map: dict[int, str] = {}
    for cell in ws[header_row]:
        if cell.value is None:
            continue
        name = to_snake_case(cell.value)
        if name in signature:
            col_map[cell.column] = name

    records = []
    for row_idx in range(header_row + 1, ws.max_row + 1):
        values = {name: ws.cell(row=row_idx, column=col).value for col, name in col_map.items()}
        if all(v is None for v in values.values()):
            break

        month = normalise_date(values.get("month"))
        if month is None:
            logger.warning("Row %d of '%s' has no usable month; skipped", row_idx, ws.title)
            continue

        record = {"month": month}
        for name, raw in values.items():
            if name == "month":
                continue
            record[name] = safe_float(raw)
        if "goal_pct" in record:
            record["goal_pct"] = normalise_percentage(record["goal_pct"], assume_decimal=True)
        records.append(record)

    return records


def _open_sheet(wb, preferred: str):
    if preferred in wb.sheetnames:
        return wb[preferred]
    logger.warning("Sheet '%s' not found, using '%s'", preferred, wb.sheetnames[0])
    return wb[wb.sheetnames[0]]


def load_monthly_series_workbook(path: str) -> pd.DataFrame:
    """Load the monthly metric series from an Excel export.

    Returns
    -------
    DataFrame as produced by transforms.build_monthly_series().
    """
    try:
        wb = openpyxl.load_workbook(path, data_only=True, read_only=False)
    except Exception:
        logger.exception("Failed to open workbook: %s", path)
        raise

    try:
        records = _read_table(_open_sheet(wb, SERIES_SHEET), _SERIES_SIGNATURE)
    finally:
        wb.close()

    logger.info("Loaded %d monthly rows from %s", len(records), path)
    return build_monthly_series(records)


def load_funnel_workbook(path: str) -> pd.DataFrame:
    """Load the funnel series from the 'funnel' sheet of an Excel export.

    Returns an empty series when the workbook has no funnel sheet.
    """
    try:
        wb = openpyxl.load_workbook(path, data_only=True, read_only=False)
    except Exception:
        logger.exception("Failed to open workbook: %s", path)
        raise

    try:
        if FUNNEL_SHEET not in wb.sheetnames:
            logger.warning("Workbook %s has no '%s' sheet", path, FUNNEL_SHEET)
            records = []
        else:
            records = _read_table(wb[FUNNEL_SHEET], _FUNNEL_SIGNATURE)
    finally:
        wb.close()

    logger.info("Loaded %d funnel rows from %s", len(records), path)
    return build_funnel_series(records)


def write_series_workbook(
    path: str,
    series: pd.DataFrame,
    funnel: pd.DataFrame | None = None,
) -> None:
    """Write series (and optionally funnel) in the layout the loaders read."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = SERIES_SHEET
    _write_table(ws, series, MONTHLY_SERIES_COLUMNS)

    if funnel is not None:
        _write_table(wb.create_sheet(FUNNEL_SHEET), funnel, FUNNEL_COLUMNS)

    wb.save(path)
    logger.info("Wrote %d monthly rows to %s", len(series), path)


def _write_table(ws, df: pd.DataFrame, columns: list[str]) -> None:
    ws.append(columns)
    for _, row in df.iterrows():
        values = []
        for col in columns:
            val = row.get(col)
            if val is None or pd.isna(val):
                val = None
            elif hasattr(val, "item"):
                val = val.item()
            values.append(val)
        ws.append(values)
