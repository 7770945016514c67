"""Shared filtering and time-window helpers."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

ALL = "all"
VALID_WINDOWS = (7, 30, 90, 180, 365)
MONTHS = ['Jan', 'Feb', 'Mar', 'Apr', 'May', 'June', 'July', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec']


def parse_date(value) -> Optional[datetime]:
    """
    Parse a backend date value into a naive UTC datetime.

    Accepts datetimes, ISO strings and anything pandas can read. Returns
    None for missing or unparseable values so callers can skip the record.
    """
    if value is None or value == "":
        return None
    try:
        ts = pd.to_datetime(value, utc=True)
    except (ValueError, TypeError, OverflowError):
        logger.debug("Unparseable date %r", value)
        return None
    if pd.isna(ts):
        return None
    return ts.tz_convert(None).to_pydatetime()


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def cutoff(now: datetime, days: int) -> datetime:
    """Lower bound of a rolling window of `days` ending at `now`."""
    return now - timedelta(days=days)


def is_after_cutoff(value, cutoff_date: datetime) -> bool:
    parsed = parse_date(value)
    return parsed is not None and parsed > cutoff_date


def month_index(value, year: str) -> Optional[int]:
    """0-based month of `value` if it falls in `year`, else None."""
    parsed = parse_date(value)
    if parsed is None or str(parsed.year) != year:
        return None
    return parsed.month - 1


def round_half_up(value) -> int:
    """Nearest integer, with .5 always rounded up (2.5 -> 3, not 2)."""
    return int(np.floor(float(value) + 0.5))


def safe_rate(numerator: int, denominator: int) -> int:
    """Integer percentage in [0, 100]; 0 when the denominator is 0."""
    if denominator <= 0:
        return 0
    return round_half_up(100.0 * numerator / denominator)


def matches_filter(value, selected: Optional[str]) -> bool:
    """True when `selected` is the "all" sentinel or equals `value`."""
    if selected is None or selected == ALL:
        return True
    return value == selected


def validate_window(days: int) -> int:
    if days not in VALID_WINDOWS:
        raise ValueError(f"Invalid time window: {days}. Expected one of {list(VALID_WINDOWS)}")
    return days


def validate_year(year: str) -> str:
    year = str(year).strip()
    if len(year) != 4 or not year.isdigit():
        raise ValueError(f"Invalid report year: {year!r}. Expected a 4-digit year")
    return year
