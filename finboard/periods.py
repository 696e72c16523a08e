"""
Month keys, period ranges, and preset resolution.

A month key is an ISO date string pinned to the first day of its month
('YYYY-MM-01'). Keys compare lexicographically in chronological order, so
range filters can work on plain strings.

Nothing here reads the system clock: "today" is always a parameter.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Mapping, NamedTuple

import pandas as pd

from .config import (
    CUSTOM_PRESET,
    DEFAULT_CUSTOM_MONTHS,
    DEFAULT_PRESET,
    PRESET_OFFSETS,
    PRESETS,
)
from .loaders.utils import normalise_date

logger = logging.getLogger(__name__)


class InvalidDate(ValueError):
    """Raised when a value cannot be normalised to a month key."""


class PeriodRange(NamedTuple):
    """Inclusive range of month keys."""

    start: str
    end: str

    def contains(self, month: str) -> bool:
        return self.start <= month <= self.end

    @property
    def months(self) -> int:
        return months_between_inclusive(self.start, self.end)


def to_month_key(value: Any) -> str:
    """Normalise a date-like value to its 'YYYY-MM-01' month key.

    Accepts ISO strings (including 'YYYY-MM'), datetimes, dates, pandas
    Timestamps and Excel serial numbers.

    Raises
    ------
    InvalidDate
        If the value is missing or cannot be parsed.
    """
    ts = normalise_date(value)
    if ts is None:
        raise InvalidDate(f"Cannot interpret {value!r} as a month")
    return f"{ts.year:04d}-{ts.month:02d}-01"


def _year_month(key: str) -> tuple[int, int]:
    ts = pd.Timestamp(to_month_key(key))
    return ts.year, ts.month


def months_between_inclusive(start: str, end: str) -> int:
    """Number of calendar months spanned by two month keys, both included.

    months_between_inclusive(x, x) == 1. Argument order does not matter.
    """
    y1, m1 = _year_month(start)
    y2, m2 = _year_month(end)
    return abs((y2 - y1) * 12 + (m2 - m1)) + 1


def shift_months(key: str, n: int) -> str:
    """Return the month key n months after (n > 0) or before (n < 0) key."""
    ts = pd.Timestamp(to_month_key(key)) + pd.DateOffset(months=n)
    return to_month_key(ts)


def month_range(start: str, end: str) -> list[str]:
    """All month keys from start to end inclusive, ascending."""
    start_key = to_month_key(start)
    return [shift_months(start_key, i) for i in range(months_between_inclusive(start_key, end))]


def resolve_preset(preset: str, anchor: Any) -> PeriodRange | None:
    """Resolve a named preset against an anchor month.

    Returns None for 'custom': custom bounds come from the caller.

    Raises
    ------
    ValueError
        If the preset tag is unknown.
    InvalidDate
        If the anchor cannot be normalised.
    """
    if preset == CUSTOM_PRESET:
        return None
    if preset not in PRESET_OFFSETS:
        raise ValueError(f"Unknown period preset {preset!r}; expected one of {PRESETS}")

    anchor_key = to_month_key(anchor)
    back_start, back_end = PRESET_OFFSETS[preset]
    return PeriodRange(shift_months(anchor_key, -back_start), shift_months(anchor_key, -back_end))


def make_range(start: Any, end: Any) -> PeriodRange:
    """Build a PeriodRange from explicit bounds, swapping inverted bounds."""
    start_key = to_month_key(start)
    end_key = to_month_key(end)
    if start_key > end_key:
        logger.warning("Custom range %s..%s is inverted; swapping bounds", start_key, end_key)
        start_key, end_key = end_key, start_key
    return PeriodRange(start_key, end_key)


def previous_range(period: PeriodRange) -> PeriodRange:
    """Equal-length range ending the month before period starts."""
    size = months_between_inclusive(period.start, period.end)
    prev_end = shift_months(period.start, -1)
    prev_start = shift_months(prev_end, -(size - 1))
    return PeriodRange(prev_start, prev_end)


@dataclass(frozen=True)
class PeriodSelection:
    """The operator's current period choice.

    Owned by the presentation layer and passed in explicitly; every change
    returns a new selection.
    """

    month: str
    preset: str
    anchor: str
    custom_start: str
    custom_end: str

    @classmethod
    def initial(cls, today: Any, preset: str = DEFAULT_PRESET) -> "PeriodSelection":
        """Default selection for the month containing `today`."""
        month = to_month_key(today)
        if preset not in PRESETS:
            raise ValueError(f"Unknown period preset {preset!r}; expected one of {PRESETS}")
        return cls(
            month=month,
            preset=preset,
            anchor=month,
            custom_start=shift_months(month, -(DEFAULT_CUSTOM_MONTHS - 1)),
            custom_end=month,
        )

    def resolve(self) -> PeriodRange:
        """Concrete range for this selection.

        Named presets resolve against the anchor; 'custom' uses the last
        custom bounds set on the selection.
        """
        period = resolve_preset(self.preset, self.anchor)
        if period is None:
            period = make_range(self.custom_start, self.custom_end)
        return period

    def with_month(self, month: Any) -> "PeriodSelection":
        """Select a month; the anchor follows unless the preset is custom."""
        key = to_month_key(month)
        if self.preset == CUSTOM_PRESET:
            return replace(self, month=key)
        return replace(self, month=key, anchor=key)

    def with_preset(self, preset: str) -> "PeriodSelection":
        """Switch preset; named presets re-anchor on the selected month."""
        if preset not in PRESETS:
            raise ValueError(f"Unknown period preset {preset!r}; expected one of {PRESETS}")
        if preset == CUSTOM_PRESET:
            return replace(self, preset=preset)
        return replace(self, preset=preset, anchor=self.month)

    def with_custom_range(self, start: Any, end: Any) -> "PeriodSelection":
        period = make_range(start, end)
        return replace(self, preset=CUSTOM_PRESET, custom_start=period.start, custom_end=period.end)

    def to_dict(self) -> dict[str, str]:
        """Flat string mapping for external persistence."""
        return {
            "month": self.month,
            "preset": self.preset,
            "anchor": self.anchor,
            "from": self.custom_start,
            "to": self.custom_end,
        }

    @classmethod
    def from_dict(cls, params: Mapping[str, Any], today: Any) -> "PeriodSelection":
        """Rebuild a selection from a mapping produced by to_dict().

        Missing or unparseable entries fall back to the defaults for
        `today`.
        """
        default = cls.initial(today)

        def _key(name: str, fallback: str) -> str:
            raw = params.get(name)
            if raw in (None, ""):
                return fallback
            try:
                return to_month_key(raw)
            except InvalidDate:
                logger.warning("Ignoring unparseable %s=%r in period selection", name, raw)
                return fallback

        month = _key("month", default.month)
        preset = params.get("preset") or DEFAULT_PRESET
        if preset not in PRESETS:
            logger.warning("Ignoring unknown preset %r; using %s", preset, DEFAULT_PRESET)
            preset = DEFAULT_PRESET
        # Only a custom selection may hold an anchor other than its month
        anchor = _key("anchor", month) if preset == CUSTOM_PRESET else month
        start = _key("from", default.custom_start)
        end = _key("to", default.custom_end)
        custom = make_range(start, end)

        return cls(
            month=month,
            preset=preset,
            anchor=anchor,
            custom_start=custom.start,
            custom_end=custom.end,
        )
