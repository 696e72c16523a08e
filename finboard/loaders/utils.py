"""
Shared utilities for data ingestion: date normalisation, numeric coercion,
header detection, column renaming.
"""

import logging
import re
from typing import Any

import pandas as pd

logger = logging.getLogger(__name__)


def normalise_date(val: Any) -> pd.Timestamp | None:
    """Convert Excel serial number, ISO string, or datetime to pd.Timestamp.

    Excel serial numbers use the 1899-12-30 epoch. Native datetime objects
    are cast directly. Returns None for missing or unparseable values.
    """
    if val is None:
        return None
    if isinstance(val, pd.Timestamp):
        return None if pd.isna(val) else val
    if isinstance(val, bool):
        logger.warning("Could not parse date value: %s", val)
        return None
    if isinstance(val, (int, float)):
        if pd.isna(val):
            return None
        try:
            return pd.Timestamp("1899-12-30") + pd.Timedelta(days=int(val))
        except (ValueError, OverflowError):
            logger.warning("Could not convert serial number %s to date", val)
            return None
    if isinstance(val, str) and not val.strip():
        return None
    try:
        ts = pd.Timestamp(val)
    except (ValueError, TypeError, OverflowError):
        logger.warning("Could not parse date value: %s", val)
        return None
    if pd.isna(ts):
        return None
    # Offsets are irrelevant at month grain; keep the wall-clock date
    if ts.tzinfo is not None:
        ts = ts.tz_localize(None)
    return ts


def iso_date(val: Any) -> str | None:
    """Return a 'YYYY-MM-DD' string for a date-like value, or None."""
    ts = normalise_date(val)
    if ts is None:
        return None
    return ts.strftime("%Y-%m-%d")


def to_snake_case(name: str) -> str:
    """Convert a column name to snake_case.

    Handles spaces, parentheses, slashes, and percent signs.
    """
    s = str(name).strip()
    s = s.replace("%", "pct").replace("/", "_per_").replace("(", "").replace(")", "")
    s = s.replace("-", "_").replace(".", "_")
    s = re.sub(r"[^a-zA-Z0-9]+", "_", s)
    # CamelCase to snake_case
    s = re.sub(r"([a-z])([A-Z])", r"\1_\2", s)
    s = s.lower().strip("_")
    s = re.sub(r"_+", "_", s)
    return s


def find_header_row(
    sheet,
    signature: set[str],
    max_rows: int = 20,
) -> int | None:
    """Scan an openpyxl sheet for the row containing signature strings.

    Cell values are snake-cased before matching. Returns the 1-based row
    index where at least two cells match values in `signature`, or None if
    not found within `max_rows`.
    """
    for row_idx in range(1, min(max_rows, sheet.max_row) + 1):
        matches = 0
        for cell in sheet[row_idx]:
            if cell.value is not None and to_snake_case(cell.value) in signature:
                matches += 1
        if matches >= 2:
            return row_idx
    return None


def safe_float(val: Any) -> float | None:
    """Coerce a value to float, returning None for non-numeric values.

    Numeric views return JSONB values as text, so digit strings are
    accepted alongside native numbers.
    """
    if val is None:
        return None
    if isinstance(val, bool):
        return float(val)
    if isinstance(val, str):
        val = val.strip()
        if val.startswith("=") or not val:
            return None
        if val.endswith("%"):
            try:
                return float(val[:-1])
            except ValueError:
                return None
        try:
            result = float(val)
        except ValueError:
            return None
    else:
        try:
            result = float(val)
        except (ValueError, TypeError):
            return None
    if pd.isna(result) or result in (float("inf"), float("-inf")):
        return None
    return result


def normalise_percentage(val: float | None, assume_decimal: bool = False) -> float | None:
    """Normalise percentage to 0-100 range.

    If assume_decimal is True, values < 1.0 are multiplied by 100
    (e.g. 0.78 -> 78.0). Values already in 0-100 range are left as-is.
    """
    if val is None:
        return None
    if assume_decimal and abs(val) < 1.0:
        return val * 100.0
    return val
