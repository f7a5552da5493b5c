"""
Weekly Budget Reconciler

Weekly budgets are Monday-start, seven-day sub-budgets listed per month.
A week belongs to the month its Monday falls in.

Two numbers are easy to confuse here:
- a row's `actual` sums the category's spend over the full seven days
  of its week, even when the week runs into the next month; only the
  reported `week_end` is clipped to the month's last day
- a category summary's `actual_total` is the category's spend over the
  calendar month, not the sum of its weekly actuals
"""

import asyncio
import calendar
from collections import defaultdict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

from pydantic import ValidationError

from period_accounting.audit import AuditLogger
from period_accounting.config import EngineSettings, get_settings
from period_accounting.errors import ValidationFailure, ensure_owner, store_operation
from period_accounting.ledger.carryover import WeeklyCarryoverPropagator
from period_accounting.ledger.monthly import parse_planned
from period_accounting.ledger.spend import SpendAggregator, sum_records_by_category
from period_accounting.models.budget import (
    TransactionRecord,
    WeekPeriod,
    WeeklyAllocation,
    WeeklyAllocationWithSpent,
    WeeklyBudgetsResult,
    WeeklyCategorySummary,
    spend_percentage,
)
from period_accounting.periods import (
    PeriodInput,
    first_week_start_of_period,
    iter_week_starts,
    month_range,
    week_end_from_start,
    week_start_for,
    weekly_transaction_end_exclusive,
)
from period_accounting.services.storage import (
    DuplicateError,
    NotFoundError,
    WeeklyBudgetStorageInterface,
)


WEEK = timedelta(days=7)


def parse_week_start(value: Union[str, date, datetime, None]) -> date:
    """
    Normalize user input to the Monday of its week.

    Raises:
        ValidationFailure: If the value is not a date
    """
    if isinstance(value, (date, datetime)):
        return week_start_for(value)
    text = (value or "").strip()
    if not text:
        raise ValidationFailure("Week start date is required.", field="week_start")
    try:
        return week_start_for(date.fromisoformat(text[:10]))
    except ValueError:
        raise ValidationFailure(
            "Week start must be a date (YYYY-MM-DD).",
            field="week_start",
        )


def week_label(sequence: int, period: date) -> str:
    return f"Week {sequence} of {calendar.month_name[period.month]}"


def reconcile_week(
    allocation: WeeklyAllocation,
    records: list[TransactionRecord],
    month_end: date,
) -> WeeklyAllocationWithSpent:
    """
    Reconcile one weekly allocation against its category's transactions.

    Args:
        allocation: The weekly budget
        records: Transactions of the allocation's category
        month_end: First day after the month the week is listed in
    """
    week_start = allocation.week_start
    span_end = week_start + WEEK
    actual = sum(
        (r.safe_amount for r in records if week_start <= r.date < span_end),
        Decimal("0"),
    )
    return WeeklyAllocationWithSpent(
        allocation=allocation,
        week_start=week_start,
        week_end=min(week_end_from_start(week_start), month_end - timedelta(days=1)),
        actual=actual,
        remaining=allocation.planned - actual,
        percentage=spend_percentage(actual, allocation.planned, clamp=False),
    )


class WeeklyBudgetReconciler:
    """
    Weekly budgets of an owner.

    Args:
        weekly: Weekly allocation store
        spend: Spend aggregator over the transaction store
        carryover: Weekly carryover run before every listing; None disables it
        audit: Optional audit logger for writes
        settings: Engine settings; loaded from the environment when omitted
    """

    def __init__(
        self,
        weekly: WeeklyBudgetStorageInterface,
        spend: SpendAggregator,
        carryover: Optional[WeeklyCarryoverPropagator] = None,
        audit: Optional[AuditLogger] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self._weekly = weekly
        self._spend = spend
        self._carryover = carryover
        self._audit = audit
        self._settings = settings or get_settings().engine

    async def _load_allocations(
        self,
        owner_id: str,
        start: date,
        end: date,
    ) -> list[WeeklyAllocation]:
        with store_operation("load weekly budgets"):
            return await self._weekly.list_weekly_allocations(owner_id, start, end)

    async def list_weekly(
        self,
        owner_id: str,
        period: PeriodInput,
        correlation_id: Optional[UUID] = None,
    ) -> WeeklyBudgetsResult:
        """
        Weekly budgets of a month, their actuals and a per-category roll-up.
        """
        owner_id = ensure_owner(owner_id)
        start, end = month_range(period)
        first_week = first_week_start_of_period(start)

        if self._carryover is not None:
            await self._carryover.propagate(
                owner_id, first_week - WEEK, end, correlation_id
            )

        allocations, records = await asyncio.gather(
            self._load_allocations(owner_id, start, end),
            self._spend.fetch_records(
                owner_id, start, weekly_transaction_end_exclusive(start)
            ),
        )

        by_category: dict[str, list[TransactionRecord]] = defaultdict(list)
        for record in records:
            if record.category_id:
                by_category[record.category_id].append(record)

        rows = [
            reconcile_week(allocation, by_category.get(allocation.category_id, []), end)
            for allocation in allocations
        ]

        return WeeklyBudgetsResult(
            period=start,
            rows=rows,
            summary_by_category=self._summarize(
                allocations, sum_records_by_category(records, start, end)
            ),
            weeks=self._weeks(start, end),
        )

    def _summarize(
        self,
        allocations: list[WeeklyAllocation],
        month_spend: dict[str, Decimal],
    ) -> list[WeeklyCategorySummary]:
        planned: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        names: dict[str, str] = {}
        for allocation in allocations:
            planned[allocation.category_id] += allocation.planned
            if allocation.category_name and allocation.category_id not in names:
                names[allocation.category_id] = allocation.category_name

        summaries = []
        for category_id, planned_total in planned.items():
            actual_total = month_spend.get(category_id, Decimal("0"))
            summaries.append(WeeklyCategorySummary(
                category_id=category_id,
                category_name=names.get(category_id, self._settings.unassigned_label),
                planned_total=planned_total,
                actual_total=actual_total,
                remaining=planned_total - actual_total,
                percentage=spend_percentage(actual_total, planned_total),
            ))

        summaries.sort(key=lambda s: (s.category_name.lower(), s.category_id))
        return summaries

    @staticmethod
    def _weeks(start: date, end: date) -> list[WeekPeriod]:
        last_day = end - timedelta(days=1)
        return [
            WeekPeriod(
                sequence=sequence,
                start=week_start,
                end=min(week_end_from_start(week_start), last_day),
                label=week_label(sequence, start),
            )
            for sequence, week_start in enumerate(
                iter_week_starts(first_week_start_of_period(start), end), start=1
            )
        ]

    async def upsert_weekly(
        self,
        owner_id: str,
        category_id: str,
        week_start: Union[str, date, datetime],
        planned: Union[Decimal, int, float, str],
        carryover_enabled: bool = False,
        note: Optional[str] = None,
        allocation_id: Optional[str] = None,
        category_name: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> WeeklyAllocation:
        """
        Create or update a weekly budget.

        With `allocation_id` the existing row is updated; otherwise the
        row is keyed by (owner, category, week). The week start is moved
        to the Monday of the given date.

        Raises:
            ValidationFailure: On bad input, an unknown id, or a clash with
                               another budget of the same category and week
            StoreFailure: If the write fails
        """
        owner_id = ensure_owner(owner_id)
        category_id = (category_id or "").strip()
        if not category_id:
            raise ValidationFailure("Choose a category.", field="category")
        monday = parse_week_start(week_start)
        amount = parse_planned(planned)

        values = dict(
            owner_id=owner_id,
            category_id=category_id,
            category_name=category_name,
            week_start=monday,
            planned=amount,
            carryover_enabled=bool(carryover_enabled),
            note=(note or "").strip() or None,
        )
        if allocation_id:
            values["id"] = str(allocation_id)
        try:
            allocation = WeeklyAllocation(**values)
        except ValidationError as e:
            raise ValidationFailure(str(e.errors()[0]["msg"])) from e

        with store_operation("save weekly budget"):
            try:
                if allocation_id:
                    stored = await self._weekly.update_weekly_allocation(allocation)
                else:
                    stored = await self._weekly.upsert_weekly_allocation(allocation)
            except DuplicateError as e:
                raise ValidationFailure(
                    "A budget for this category and week already exists.",
                    field="week_start",
                ) from e
            except NotFoundError as e:
                raise ValidationFailure("Weekly budget not found.", field="id") from e

        if self._audit:
            await self._audit.log_weekly_allocation_upserted(
                owner_id=owner_id,
                allocation_id=stored.id,
                category_id=stored.category_id,
                week_start=stored.week_start,
                planned=stored.planned,
                correlation_id=correlation_id,
            )
        return stored

    async def delete_weekly(
        self,
        owner_id: str,
        allocation_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """Delete a weekly budget. Returns False if it did not exist."""
        owner_id = ensure_owner(owner_id)
        if not allocation_id:
            raise ValidationFailure("Weekly budget id is required.", field="id")

        with store_operation("delete weekly budget"):
            deleted = await self._weekly.delete_weekly_allocation(
                owner_id, str(allocation_id)
            )

        if deleted and self._audit:
            await self._audit.log_weekly_allocation_deleted(
                owner_id=owner_id,
                allocation_id=str(allocation_id),
                correlation_id=correlation_id,
            )
        return deleted
