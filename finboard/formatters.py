"""Display formatting for currency, percentages, and month labels."""

from typing import Any

from .config import CURRENCY_SYMBOL, MONTH_NAMES
from .loaders.utils import normalise_date


def _pt_br_number(value: float, decimals: int) -> str:
    # 1,234.56 -> 1.234,56
    text = f"{abs(value):,.{decimals}f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_currency(value: float | None) -> str:
    """'R$ 1.234,56', or '-' for missing values."""
    if value is None:
        return "-"
    sign = "-" if value < 0 else ""
    return f"{sign}{CURRENCY_SYMBOL} {_pt_br_number(value, 2)}"


def format_number(value: float | None, decimals: int = 0) -> str:
    if value is None:
        return "-"
    sign = "-" if value < 0 else ""
    return f"{sign}{_pt_br_number(value, decimals)}"


def format_percentage(value: float | None, decimals: int = 1) -> str:
    """'12,5%' for a value already expressed in percent."""
    if value is None:
        return "-"
    sign = "-" if value < 0 else ""
    return f"{sign}{_pt_br_number(value, decimals)}%"


def format_roas(value: float | None) -> str:
    if value is None:
        return "-"
    return f"{_pt_br_number(value, 2)}x"


def format_month_label(month: Any) -> str:
    """'June 2025' for any date-like month value."""
    ts = normalise_date(month)
    if ts is None:
        return str(month)
    return f"{MONTH_NAMES[ts.month - 1]} {ts.year}"


def format_date(value: Any) -> str:
    """'dd/mm/yyyy', or '-' when the value is not a date."""
    ts = normalise_date(value)
    if ts is None:
        return "-"
    return ts.strftime("%d/%m/%Y")
