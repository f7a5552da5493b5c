"""
Calendar Models

Per-day and per-month spend aggregates and the heatmap scale.
All of these exist only for the duration of one query.
"""

from datetime import date
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from period_accounting.models.budget import (
    TransactionFilters,
    TransactionRecord,
    TransactionType,
)


class CalendarMode(str, Enum):
    """Which transaction types a calendar shows."""
    EXPENSE = "expense"   # expenses only
    ALL = "all"           # expenses and income


class HeatLevel(IntEnum):
    """
    Relative spend intensity of a day.

    Bands are ratios of the day's expense to the month's heat threshold.
    """
    NONE = 0            # no spend
    QUARTER = 1         # < 0.25
    HALF = 2            # < 0.5
    THREE_QUARTER = 3   # < 0.75
    FULL = 4            # < 1.0
    BEYOND = 5          # >= 1.0


class CalendarFilters(BaseModel):
    """Filters chosen on the calendar screen."""
    model_config = ConfigDict(str_strip_whitespace=True)

    mode: CalendarMode = CalendarMode.EXPENSE
    category_ids: frozenset[str] = frozenset()
    account_id: Optional[str] = None
    min_amount: Optional[Decimal] = Field(default=None, ge=0)
    max_amount: Optional[Decimal] = Field(default=None, ge=0)
    search: str = ""

    @model_validator(mode="after")
    def check_amount_bounds(self) -> "CalendarFilters":
        if (
            self.min_amount is not None
            and self.max_amount is not None
            and self.max_amount < self.min_amount
        ):
            raise ValueError("Maximum amount cannot be below minimum amount")
        return self

    def to_transaction_filters(self) -> TransactionFilters:
        """Translate to the store's transaction filters."""
        if self.mode == CalendarMode.ALL:
            types = frozenset({TransactionType.EXPENSE, TransactionType.INCOME})
        else:
            types = frozenset({TransactionType.EXPENSE})
        return TransactionFilters(
            types=types,
            category_ids=self.category_ids,
            account_ids=frozenset({self.account_id}) if self.account_id else frozenset(),
            min_amount=self.min_amount,
            max_amount=self.max_amount,
            search=self.search or None,
        )


class DaySummary(BaseModel):
    """Totals of a single calendar day."""

    date: date
    expense_total: Decimal = Decimal("0")
    income_total: Decimal = Decimal("0")
    transaction_count: int = Field(default=0, ge=0)
    heat_level: HeatLevel = HeatLevel.NONE


class HeatmapStats(BaseModel):
    """The scale a month's heat levels were computed against."""

    p80: Decimal = Decimal("0")
    p95: Decimal = Decimal("0")
    max_expense: Decimal = Decimal("0")


class CalendarTotals(BaseModel):
    """Month totals under the active filters."""

    expense: Decimal = Decimal("0")
    income: Decimal = Decimal("0")
    net: Decimal = Decimal("0")
    previous_expense: Decimal = Decimal("0")
    previous_income: Decimal = Decimal("0")


class MonthAggregateResult(BaseModel):
    """Calendar aggregates of one month."""

    month: date
    days: dict[str, DaySummary] = Field(
        default_factory=dict,
        description="Day summaries keyed by YYYY-MM-DD"
    )
    totals: CalendarTotals = Field(default_factory=CalendarTotals)
    stats: HeatmapStats = Field(default_factory=HeatmapStats)


class DayTransactionsResult(BaseModel):
    """Transactions behind one calendar cell."""

    date: date
    transactions: list[TransactionRecord] = Field(default_factory=list)
