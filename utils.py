"""
utils.py
Utility functions for timestamp handling and display formatting
"""

import math
from datetime import datetime, timezone
from typing import Optional
import pandas as pd

from config import DAYS_PER_YEAR, SECONDS_PER_DAY


def as_timestamp(x) -> Optional[datetime]:
    """Convert various formats to a timezone-aware UTC datetime.

    Naive inputs are read as UTC. Returns None for missing or unparseable values.
    """
    if x is None:
        return None
    if isinstance(x, float) and math.isnan(x):
        return None
    ts = pd.to_datetime(x, errors="coerce", utc=True)
    if pd.isna(ts):
        return None
    return ts.to_pydatetime()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def whole_days_between(start: Optional[datetime], end: datetime) -> int:
    """Whole days elapsed from start to end, floored and never negative. 0 without a start."""
    if start is None:
        return 0
    seconds = (as_timestamp(end) - as_timestamp(start)).total_seconds()
    return max(0, int(math.floor(seconds / SECONDS_PER_DAY)))


def year_fraction(start, end) -> float:
    """Actual/365 year fraction between two dates or timestamps."""
    seconds = (pd.Timestamp(end) - pd.Timestamp(start)).total_seconds()
    return seconds / SECONDS_PER_DAY / DAYS_PER_YEAR


def clean_id(x) -> Optional[str]:
    """Normalize an opaque identifier: strip whitespace, empty -> None.

    Integral floats (42.0, from a numeric column pandas widened around a
    missing value) are written as integers so they join with '42'.
    """
    if x is None:
        return None
    if isinstance(x, float):
        if math.isnan(x):
            return None
        if x.is_integer():
            return str(int(x))
    s = str(x).strip()
    return s or None


def fmt_date(x) -> str:
    """Format date for display"""
    ts = as_timestamp(x)
    if ts is None:
        return "—"
    return ts.date().isoformat()


def fmt_num(x) -> str:
    """Format number with commas, no decimals"""
    try:
        if x is None or (isinstance(x, float) and pd.isna(x)):
            return "—"
        return f"{float(x):,.0f}"
    except (TypeError, ValueError):
        return "—"


def fmt_pct(x, decimals: int = 1) -> str:
    """Format a percentage figure (already x100) for display"""
    try:
        if x is None or (isinstance(x, float) and pd.isna(x)):
            return "—"
        return f"{float(x):.{decimals}f}%"
    except (TypeError, ValueError):
        return "—"
