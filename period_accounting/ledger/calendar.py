"""
Calendar Aggregator

Per-day and per-month totals for the calendar screen, plus a heat level
for every day that had spend.

Heat is relative to the month itself: the threshold is the expense of
the day at the configured percentile (80th by default) among days with
spend, so one unusually expensive day does not flatten the rest of the
month. Levels are recomputed on every query.
"""

import asyncio
import math
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from period_accounting.config import EngineSettings, get_settings
from period_accounting.errors import ensure_owner, store_operation
from period_accounting.models.budget import TransactionFilters, TransactionRecord, TransactionType
from period_accounting.models.calendar import (
    CalendarFilters,
    CalendarTotals,
    DaySummary,
    DayTransactionsResult,
    HeatLevel,
    HeatmapStats,
    MonthAggregateResult,
)
from period_accounting.periods import PeriodInput, month_range, previous_period
from period_accounting.services.storage import TransactionStorageInterface


# Upper bounds (exclusive) of the ratio bands, lowest level first
HEAT_BANDS = (
    (0.25, HeatLevel.QUARTER),
    (0.5, HeatLevel.HALF),
    (0.75, HeatLevel.THREE_QUARTER),
    (1.0, HeatLevel.FULL),
)


def heat_threshold(expenses: Iterable[Decimal], percentile: float = 0.8) -> Decimal:
    """
    Expense at the given percentile among days with spend.

    Uses the element at floor(percentile * n) of the ascending values,
    capped to the last one. Falls back to the maximum if that is not
    positive. Returns 0 when no day had spend.
    """
    values = sorted(v for v in expenses if v > 0)
    if not values:
        return Decimal("0")
    index = min(math.floor(percentile * len(values)), len(values) - 1)
    threshold = values[index]
    if threshold <= 0:
        threshold = values[-1]
    return threshold


def classify_heat(expense: Decimal, threshold: Decimal) -> HeatLevel:
    """Bucket a day's expense against the month's threshold."""
    if expense <= 0:
        return HeatLevel.NONE
    if threshold <= 0:
        return HeatLevel.BEYOND
    ratio = float(expense / threshold)
    for upper, level in HEAT_BANDS:
        if ratio < upper:
            return level
    return HeatLevel.BEYOND


def summarize_days(records: Iterable[TransactionRecord]) -> dict[str, DaySummary]:
    """Group transactions into per-day totals keyed by YYYY-MM-DD."""
    days: dict[str, DaySummary] = {}
    for record in records:
        key = record.date.isoformat()
        day = days.get(key)
        if day is None:
            day = days[key] = DaySummary(date=record.date)
        if record.type == TransactionType.EXPENSE:
            day.expense_total += record.safe_amount
        elif record.type == TransactionType.INCOME:
            day.income_total += record.safe_amount
        day.transaction_count += 1
    return days


def _totals(records: Iterable[TransactionRecord]) -> tuple[Decimal, Decimal]:
    expense = Decimal("0")
    income = Decimal("0")
    for record in records:
        if record.type == TransactionType.EXPENSE:
            expense += record.safe_amount
        elif record.type == TransactionType.INCOME:
            income += record.safe_amount
    return expense, income


class CalendarAggregator:
    """Month and day views of an owner's transactions."""

    def __init__(
        self,
        transactions: TransactionStorageInterface,
        settings: Optional[EngineSettings] = None,
    ):
        self._transactions = transactions
        self._settings = settings or get_settings().engine

    async def _find(
        self,
        owner_id: str,
        start: date,
        end: date,
        filters: TransactionFilters,
    ) -> list[TransactionRecord]:
        with store_operation("load transactions"):
            records = await self._transactions.find_transactions(
                owner_id, start, end, filters
            )
        return [r for r in records if not r.is_transfer and not r.is_deleted]

    async def month_aggregates(
        self,
        owner_id: str,
        month: PeriodInput,
        filters: Optional[CalendarFilters] = None,
    ) -> MonthAggregateResult:
        """
        Day summaries, month totals and heat scale of one month.

        Previous-month totals are computed under the same filters.
        """
        owner_id = ensure_owner(owner_id)
        start, end = month_range(month)
        previous_start = previous_period(start)
        query = (filters or CalendarFilters()).to_transaction_filters()

        records, previous = await asyncio.gather(
            self._find(owner_id, start, end, query),
            self._find(owner_id, previous_start, start, query),
        )

        days = summarize_days(records)
        expenses = [day.expense_total for day in days.values()]
        threshold = heat_threshold(expenses, self._settings.heat_percentile)
        for day in days.values():
            day.heat_level = classify_heat(day.expense_total, threshold)

        expense, income = _totals(records)
        previous_expense, previous_income = _totals(previous)
        positive = [e for e in expenses if e > 0]

        return MonthAggregateResult(
            month=start,
            days=days,
            totals=CalendarTotals(
                expense=expense,
                income=income,
                net=income - expense,
                previous_expense=previous_expense,
                previous_income=previous_income,
            ),
            stats=HeatmapStats(
                p80=threshold,
                p95=heat_threshold(expenses, 0.95),
                max_expense=max(positive) if positive else Decimal("0"),
            ),
        )

    async def day_transactions(
        self,
        owner_id: str,
        day: date,
        filters: Optional[CalendarFilters] = None,
    ) -> DayTransactionsResult:
        """The filtered transactions behind one calendar cell."""
        owner_id = ensure_owner(owner_id)
        query = (filters or CalendarFilters()).to_transaction_filters()
        records = await self._find(owner_id, day, day + timedelta(days=1), query)
        records.sort(key=lambda r: r.date)
        return DayTransactionsResult(date=day, transactions=records)
