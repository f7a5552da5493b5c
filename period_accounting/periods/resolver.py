"""
Period Resolver

A period is a calendar month, represented by its first day.
Weeks always start on Monday (ISO weeks).

DESIGN DECISION: Everything here works on `datetime.date` values.
Timezone-aware datetimes are converted to UTC before their date is
taken, so a period never shifts with the server's local timezone.
All functions are pure.
"""

import re
from datetime import date, datetime, timedelta, timezone
from typing import Iterator, Optional, Union

from period_accounting.errors import InvalidPeriodError


PeriodInput = Union[str, date, datetime]

# YYYY-MM, optionally followed by -DD and an ISO time part
_PERIOD_PATTERN = re.compile(r"^\s*(\d{4})-(\d{1,2})(?:-(\d{1,2})(?:[T ].*)?)?\s*$")


def _as_utc_date(value: datetime) -> date:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date()


def to_period_start(value: PeriodInput) -> date:
    """
    Normalize a period to the first day of its month.

    Accepts "YYYY-MM", "YYYY-MM-DD", an ISO datetime string, a date or
    a datetime. Raises InvalidPeriodError for anything else.
    """
    if isinstance(value, datetime):
        day = _as_utc_date(value)
        return day.replace(day=1)
    if isinstance(value, date):
        return value.replace(day=1)
    if not isinstance(value, str) or not value.strip():
        raise InvalidPeriodError(value)

    text = value.strip()
    if "T" in text or " " in text:
        # Full timestamps go through datetime so offsets are honoured
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        if parsed is not None:
            return _as_utc_date(parsed).replace(day=1)

    match = _PERIOD_PATTERN.match(text)
    if not match:
        raise InvalidPeriodError(value)

    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12 or year < 1:
        raise InvalidPeriodError(value)
    if match.group(3) is not None:
        try:
            date(year, month, int(match.group(3)))
        except ValueError:
            raise InvalidPeriodError(value)
    return date(year, month, 1)


def _shift_months(period: date, months: int) -> date:
    index = period.year * 12 + (period.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def month_range(period: PeriodInput) -> tuple[date, date]:
    """Get (start_inclusive, end_exclusive) of a period."""
    start = to_period_start(period)
    return start, _shift_months(start, 1)


def previous_period(period: PeriodInput) -> Optional[date]:
    """
    Get the period before this one.

    Returns None only when the input cannot be parsed; January rolls
    back to December of the previous year.
    """
    try:
        return _shift_months(to_period_start(period), -1)
    except (InvalidPeriodError, ValueError):
        return None


def next_period(period: PeriodInput) -> Optional[date]:
    """Get the period after this one (None for unparseable input)."""
    try:
        return _shift_months(to_period_start(period), 1)
    except (InvalidPeriodError, ValueError):
        return None


def period_key(period: PeriodInput) -> str:
    """Format a period as YYYY-MM."""
    start = to_period_start(period)
    return f"{start.year:04d}-{start.month:02d}"


# =============================================================================
# WEEKS
# =============================================================================

def week_start_for(day: Union[date, datetime]) -> date:
    """Get the Monday of the ISO week containing `day`."""
    if isinstance(day, datetime):
        day = _as_utc_date(day)
    return day - timedelta(days=day.weekday())


def week_end_from_start(week_start: date) -> date:
    """Get the Sunday closing a week (inclusive)."""
    return week_start + timedelta(days=6)


def first_week_start_of_period(period: PeriodInput) -> date:
    """Get the first Monday on or after the start of the period."""
    start = to_period_start(period)
    return start + timedelta(days=(7 - start.weekday()) % 7)


def weekly_transaction_end_exclusive(period: PeriodInput) -> date:
    """
    Get the exclusive end of the transaction window for weekly budgets.

    This is the day after the Sunday that closes the week containing the
    last day of the month, so a week straddling the month boundary can be
    summed over its full seven days.
    """
    _, end = month_range(period)
    last_day = end - timedelta(days=1)
    return week_end_from_start(week_start_for(last_day)) + timedelta(days=1)


def iter_week_starts(start: date, end_exclusive: date) -> Iterator[date]:
    """Yield week starts from `start` (normalized to Monday) while before `end_exclusive`."""
    current = week_start_for(start)
    while current < end_exclusive:
        yield current
        current += timedelta(days=7)
