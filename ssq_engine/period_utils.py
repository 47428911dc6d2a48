"""
Period Utilities
================

Period keys are 7-digit strings: 4-digit year followed by a 3-digit
sequence within that year (e.g. 2024001). Draw dates are reckoned in the
China Standard Time zone, where the draws take place.
"""

from datetime import date, datetime, timedelta
from typing import Optional, Tuple

import pytz
from loguru import logger

from ssq_engine.models import PERIOD_PATTERN

DRAW_TIMEZONE = pytz.timezone('Asia/Shanghai')

# Draws are held on Tuesday, Thursday and Sunday (Monday=0)
DRAWING_DAYS = [1, 3, 6]


def current_draw_date() -> date:
    """Today's date in the draw timezone."""
    return datetime.now(pytz.UTC).astimezone(DRAW_TIMEZONE).date()


def parse_period(period: str) -> Tuple[int, int]:
    """
    Split a period key into (year, sequence).

    Raises:
        ValueError: period is not a 7-digit string
    """
    text = str(period).strip()
    if not PERIOD_PATTERN.match(text):
        raise ValueError(f"Invalid period key: {period!r}")
    return int(text[:4]), int(text[4:])


MAX_SEQUENCE = 999


def format_period(year: int, sequence: int) -> str:
    """
    Raises:
        ValueError: sequence outside 1..999, which has no 7-digit key
    """
    if not 1 <= sequence <= MAX_SEQUENCE:
        raise ValueError(f"Period sequence out of range for {year}: {sequence}")
    return f"{year:04d}{sequence:03d}"


def calculate_next_period(latest_period: Optional[str], today: Optional[date] = None) -> str:
    """
    Period key of the next undrawn draw.

    Args:
        latest_period: Most recent known period, or None when no draw is stored
        today: Reference date (defaults to today in the draw timezone)

    Returns:
        latest + 1 within the same year, or YYYY001 of the current year when
        the latest draw belongs to a prior year or no draw exists

    Raises:
        ValueError: malformed latest period, or the year already holds 999 draws
    """
    today = today or current_draw_date()

    if not latest_period:
        next_period = format_period(today.year, 1)
        logger.debug(f"No draws stored, next period starts the year: {next_period}")
        return next_period

    year, sequence = parse_period(latest_period)
    if year < today.year:
        next_period = format_period(today.year, 1)
        logger.debug(f"Latest period {latest_period} is from {year}, rolling over to {next_period}")
        return next_period

    return format_period(year, sequence + 1)


def next_drawing_date(reference: Optional[date] = None) -> date:
    """First drawing day strictly after `reference` (defaults to today)."""
    current = reference or current_draw_date()
    for offset in range(1, 8):
        candidate = current + timedelta(days=offset)
        if candidate.weekday() in DRAWING_DAYS:
            return candidate
    # unreachable: every week has drawing days
    raise RuntimeError("No drawing day found within a week")
