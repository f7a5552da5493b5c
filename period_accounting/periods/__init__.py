"""Period resolution package."""

from period_accounting.periods.resolver import (
    PeriodInput,
    first_week_start_of_period,
    iter_week_starts,
    month_range,
    next_period,
    period_key,
    previous_period,
    to_period_start,
    week_end_from_start,
    week_start_for,
    weekly_transaction_end_exclusive,
)

__all__ = [
    "PeriodInput",
    "first_week_start_of_period",
    "iter_week_starts",
    "month_range",
    "next_period",
    "period_key",
    "previous_period",
    "to_period_start",
    "week_end_from_start",
    "week_start_for",
    "weekly_transaction_end_exclusive",
]
