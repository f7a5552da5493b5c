"""
Core Data Models for the Period Accounting Engine

These models define the canonical shapes of everything the engine reads
and returns. Rows from the hosted store are converted into these models
at a single boundary (services.storage.records); business logic only
ever sees these types.

DESIGN DECISION: Amounts are Decimal, ratios are float.
Spend totals and summaries are derived models - they are never persisted.
"""

import datetime as _dt
import re
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


def normalize_label(label: Optional[str]) -> str:
    """Lower-case, trim and collapse whitespace in a category label."""
    return re.sub(r"\s+", " ", (label or "").strip()).lower()


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """Kinds of transaction rows in the external ledger."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class BudgetKind(str, Enum):
    """Which budget table a highlight points at."""
    MONTHLY = "monthly"
    WEEKLY = "weekly"


class ToggleOutcome(str, Enum):
    """Result of toggling a highlight."""
    ADDED = "added"
    REMOVED = "removed"


# =============================================================================
# ALLOCATIONS
# =============================================================================

class CategoryAllocation(BaseModel):
    """
    A monthly budget: the planned spend for one category in one period.

    One allocation exists per (owner, period, category key). An allocation
    without a category is an "unassigned envelope" keyed by its label.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    owner_id: str = Field(..., min_length=1)
    period: date = Field(
        ...,
        description="First day of the budget month"
    )
    category_id: Optional[str] = Field(
        default=None,
        description="Category reference; None for an unassigned envelope"
    )
    category_name: Optional[str] = Field(
        default=None,
        max_length=200,
        description="Display label of the category"
    )
    planned: Decimal = Field(default=Decimal("0"), ge=0)
    carryover_enabled: bool = False

    # Stored but never computed by the engine
    rollover_in: Decimal = Decimal("0")
    rollover_out: Decimal = Decimal("0")

    note: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("period")
    @classmethod
    def normalize_period(cls, v: date) -> date:
        return v.replace(day=1)

    @field_validator("category_id", mode="before")
    @classmethod
    def blank_category_is_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @model_validator(mode="after")
    def require_category_or_label(self) -> "CategoryAllocation":
        if self.category_id is None and not normalize_label(self.category_name):
            raise ValueError("An allocation needs a category or a name")
        return self

    @property
    def category_key(self) -> str:
        """Uniqueness key of the category within a period."""
        if self.category_id:
            return self.category_id
        return f"label:{normalize_label(self.category_name)}"


class WeeklyAllocation(BaseModel):
    """
    A weekly sub-budget for one category.

    `week_start` is always the Monday of its ISO week, whatever date
    was supplied.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    owner_id: str = Field(..., min_length=1)
    category_id: str = Field(..., min_length=1)
    category_name: Optional[str] = Field(default=None, max_length=200)
    planned: Decimal = Field(default=Decimal("0"), ge=0)
    carryover_enabled: bool = False
    note: Optional[str] = Field(default=None, max_length=1000)
    week_start: date
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("week_start")
    @classmethod
    def normalize_week_start(cls, v: date) -> date:
        return v - timedelta(days=v.weekday())

    @property
    def slot_key(self) -> tuple[str, str, date]:
        """Uniqueness key: (owner, category, week)."""
        return (self.owner_id, self.category_id, self.week_start)


# =============================================================================
# TRANSACTIONS (external, read-only)
# =============================================================================

class TransactionRecord(BaseModel):
    """
    A transaction as the engine sees it.

    Amounts of income and expense rows are magnitudes; the parsing
    boundary strips the sign.
    """

    id: str
    owner_id: str
    date: _dt.date
    type: TransactionType
    amount: Decimal = Decimal("0")
    category_id: Optional[str] = None
    account_id: Optional[str] = None
    to_account_id: Optional[str] = None
    note: Optional[str] = None
    title: Optional[str] = None
    merchant: Optional[str] = None
    deleted_at: Optional[datetime] = None

    @property
    def is_transfer(self) -> bool:
        return self.type == TransactionType.TRANSFER or bool(self.to_account_id)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def safe_amount(self) -> Decimal:
        """Amount, or zero when it is not a finite number."""
        return self.amount if self.amount.is_finite() else Decimal("0")

    def search_text(self) -> str:
        return " ".join(
            part for part in (self.note, self.title, self.merchant) if part
        ).lower()


class TransactionFilters(BaseModel):
    """
    Filters for a transaction query.

    Transfers are never returned. Soft-deleted rows are excluded unless
    `include_deleted` is set.
    """

    types: frozenset[TransactionType] = frozenset({TransactionType.EXPENSE})
    category_ids: frozenset[str] = frozenset()
    account_ids: frozenset[str] = frozenset()
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    search: Optional[str] = None
    include_deleted: bool = False

    @field_validator("search")
    @classmethod
    def blank_search_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    def matches(self, record: TransactionRecord) -> bool:
        """Check whether a record passes every filter."""
        if record.is_transfer:
            return False
        if record.is_deleted and not self.include_deleted:
            return False
        if record.type not in self.types:
            return False
        if self.category_ids and record.category_id not in self.category_ids:
            return False
        if self.account_ids and record.account_id not in self.account_ids:
            return False
        amount = record.safe_amount
        if self.min_amount is not None and amount < self.min_amount:
            return False
        if self.max_amount is not None and amount > self.max_amount:
            return False
        if self.search and self.search.lower() not in record.search_text():
            return False
        return True


# =============================================================================
# HIGHLIGHTS
# =============================================================================

class HighlightSelection(BaseModel):
    """A pinned budget."""

    id: str = Field(default_factory=new_id)
    owner_id: str = Field(..., min_length=1)
    kind: BudgetKind
    budget_id: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utcnow)

    def points_at(self, kind: BudgetKind, budget_id: str) -> bool:
        return self.kind == kind and self.budget_id == str(budget_id)


# =============================================================================
# DERIVED VIEWS (never persisted)
# =============================================================================

def spend_percentage(spent: Decimal, planned: Decimal, clamp: bool = True) -> float:
    """
    Spent as a share of planned.

    0 when nothing is planned. With `clamp`, the result is kept within [0, 1].
    """
    if planned <= 0:
        return 0.0
    ratio = float(spent / planned)
    if clamp:
        return min(max(ratio, 0.0), 1.0)
    return ratio


class AllocationWithSpent(BaseModel):
    """A monthly allocation merged with its period spend."""

    allocation: CategoryAllocation
    spent: Decimal
    remaining: Decimal = Field(
        ...,
        description="planned - spent; negative when overspent"
    )
    percentage: float = Field(..., ge=0.0, le=1.0)


class BudgetSummary(BaseModel):
    """Totals over a list of allocations."""

    planned_total: Decimal = Decimal("0")
    spent_total: Decimal = Decimal("0")
    remaining_total: Decimal = Decimal("0")
    percentage: float = 0.0


class MonthlyBudgetsResult(BaseModel):
    """Everything a monthly budget screen needs for one period."""

    period: date
    rows: list[AllocationWithSpent] = Field(default_factory=list)
    summary: BudgetSummary = Field(default_factory=BudgetSummary)


class WeeklyAllocationWithSpent(BaseModel):
    """A weekly allocation reconciled against its seven-day span."""

    allocation: WeeklyAllocation
    week_start: date
    week_end: date = Field(
        ...,
        description="Last day of the week, clipped to the end of the month"
    )
    actual: Decimal
    remaining: Decimal
    percentage: float = Field(..., ge=0.0)


class WeeklyCategorySummary(BaseModel):
    """One category's weekly budgets rolled up to the month."""

    category_id: str
    category_name: str
    planned_total: Decimal
    actual_total: Decimal = Field(
        ...,
        description="Full-month spend of the category, not the sum of weekly actuals"
    )
    remaining: Decimal
    percentage: float = Field(..., ge=0.0, le=1.0)


class WeekPeriod(BaseModel):
    """A week slot shown for a month."""

    sequence: int = Field(..., ge=1)
    start: date
    end: date
    label: str


class WeeklyBudgetsResult(BaseModel):
    """Weekly budgets of a month with their monthly roll-up."""

    period: date
    rows: list[WeeklyAllocationWithSpent] = Field(default_factory=list)
    summary_by_category: list[WeeklyCategorySummary] = Field(default_factory=list)
    weeks: list[WeekPeriod] = Field(default_factory=list)


class ToggleResult(BaseModel):
    """Outcome of a highlight toggle and the selections after it."""

    outcome: ToggleOutcome
    highlights: list[HighlightSelection] = Field(default_factory=list)

    @property
    def highlighted(self) -> bool:
        return self.outcome == ToggleOutcome.ADDED


class HighlightedBudget(BaseModel):
    """A highlighted budget resolved to its current status."""

    selection_id: str
    kind: BudgetKind
    budget_id: str
    label: str
    category_id: Optional[str] = None
    start: date
    end: date = Field(..., description="Last day covered by the budget (inclusive)")
    planned: Decimal
    spent: Decimal
    remaining: Decimal
    percentage: float = Field(..., ge=0.0, le=1.0)
