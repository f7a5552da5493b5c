"""
Monthly Budget Ledger

Lists a period's allocations (after carryover), merges them with the
period's spend and rolls them up into a summary. Also owns the monthly
write paths.

Invariants:
- remaining = planned - spent, never clamped (overspend shows as negative)
- row and summary percentages are spent / planned clamped to [0, 1],
  and 0 when nothing is planned
- validation happens before any store access
"""

import asyncio
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Union
from uuid import UUID

from pydantic import ValidationError

from period_accounting.audit import AuditLogger
from period_accounting.errors import ValidationFailure, ensure_owner, store_operation
from period_accounting.ledger.carryover import CarryoverPropagator
from period_accounting.ledger.spend import SpendAggregator
from period_accounting.models.budget import (
    AllocationWithSpent,
    BudgetSummary,
    CategoryAllocation,
    MonthlyBudgetsResult,
    normalize_label,
    spend_percentage,
)
from period_accounting.models.results import FeatureUnavailable
from period_accounting.periods import PeriodInput, month_range, to_period_start
from period_accounting.services.storage import BudgetStorageInterface


def parse_planned(value: Any, field: str = "planned") -> Decimal:
    """
    Validate a planned amount from user input.

    Raises:
        ValidationFailure: If the amount is not a finite number >= 0
    """
    if value is None or isinstance(value, bool):
        raise ValidationFailure("Planned amount is required.", field=field)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationFailure("Planned amount must be a number.", field=field)
    if not amount.is_finite():
        raise ValidationFailure("Planned amount must be a number.", field=field)
    if amount < 0:
        raise ValidationFailure("Planned amount cannot be negative.", field=field)
    return amount


def merge_with_spent(
    allocations: Iterable[CategoryAllocation],
    spent_by_category: dict[str, Decimal],
) -> list[AllocationWithSpent]:
    """Join allocations with per-category spend."""
    rows = []
    for allocation in allocations:
        spent = Decimal("0")
        if allocation.category_id:
            spent = spent_by_category.get(allocation.category_id, Decimal("0"))
        rows.append(AllocationWithSpent(
            allocation=allocation,
            spent=spent,
            remaining=allocation.planned - spent,
            percentage=spend_percentage(spent, allocation.planned),
        ))
    return rows


def build_summary(rows: Iterable[AllocationWithSpent]) -> BudgetSummary:
    """Total planned, spent and remaining over a set of rows."""
    planned = Decimal("0")
    spent = Decimal("0")
    for row in rows:
        planned += row.allocation.planned
        spent += row.spent
    return BudgetSummary(
        planned_total=planned,
        spent_total=spent,
        remaining_total=planned - spent,
        percentage=spend_percentage(spent, planned),
    )


class MonthlyBudgetLedger:
    """
    Monthly budgets of an owner.

    Args:
        budgets: Allocation store
        spend: Spend aggregator over the transaction store
        carryover: Propagator run on every listing; None disables carryover
        audit: Optional audit logger for writes
    """

    def __init__(
        self,
        budgets: BudgetStorageInterface,
        spend: SpendAggregator,
        carryover: Optional[CarryoverPropagator] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self._budgets = budgets
        self._spend = spend
        self._carryover = carryover
        self._audit = audit

    async def list_allocations(
        self,
        owner_id: str,
        period: PeriodInput,
        correlation_id: Optional[UUID] = None,
    ) -> list[CategoryAllocation]:
        """List a period's allocations after carryover propagation."""
        owner_id = ensure_owner(owner_id)
        period = to_period_start(period)

        with store_operation("load budgets"):
            allocations = await self._budgets.list_allocations(owner_id, period)

        if self._carryover is not None:
            allocations = await self._carryover.propagate(
                owner_id, period, allocations, correlation_id
            )
        return allocations

    async def list_with_spent(
        self,
        owner_id: str,
        period: PeriodInput,
        correlation_id: Optional[UUID] = None,
    ) -> list[AllocationWithSpent]:
        """List a period's allocations merged with the period's spend."""
        owner_id = ensure_owner(owner_id)
        start, end = month_range(period)

        allocations, spent = await asyncio.gather(
            self.list_allocations(owner_id, start, correlation_id),
            self._spend.sum_by_category(owner_id, start, end),
        )
        return merge_with_spent(allocations, spent)

    async def overview(
        self,
        owner_id: str,
        period: PeriodInput,
        correlation_id: Optional[UUID] = None,
    ) -> MonthlyBudgetsResult:
        """Rows and summary of one period."""
        start = to_period_start(period)
        rows = await self.list_with_spent(owner_id, start, correlation_id)
        return MonthlyBudgetsResult(
            period=start,
            rows=rows,
            summary=build_summary(rows),
        )

    async def upsert_allocation(
        self,
        owner_id: str,
        period: PeriodInput,
        category_id: Optional[str],
        planned: Union[Decimal, int, float, str],
        carryover_enabled: bool = False,
        note: Optional[str] = None,
        category_name: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> CategoryAllocation:
        """
        Create or update the allocation of a category in a period.

        Keyed by (owner, period, category key), so repeating the call
        with the same input changes nothing.

        Raises:
            InvalidPeriodError: If the period is malformed
            ValidationFailure: If the amount or category is invalid
            StoreFailure: If the write fails
        """
        owner_id = ensure_owner(owner_id)
        period = to_period_start(period)
        amount = parse_planned(planned)

        category_id = (category_id or "").strip() or None
        if category_id is None and not normalize_label(category_name):
            raise ValidationFailure(
                "Choose a category or give the budget a name.",
                field="category",
            )

        try:
            allocation = CategoryAllocation(
                owner_id=owner_id,
                period=period,
                category_id=category_id,
                category_name=category_name,
                planned=amount,
                carryover_enabled=bool(carryover_enabled),
                note=(note or "").strip() or None,
            )
        except ValidationError as e:
            raise ValidationFailure(str(e.errors()[0]["msg"])) from e

        with store_operation("save budget"):
            stored = await self._budgets.upsert_allocation(allocation)

        if self._audit:
            await self._audit.log_allocation_upserted(
                owner_id=owner_id,
                allocation_id=stored.id,
                period=period,
                category_key=stored.category_key,
                planned=stored.planned,
                correlation_id=correlation_id,
            )
        return stored

    async def delete_allocation(
        self,
        owner_id: str,
        allocation_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """Delete an allocation. Returns False if it did not exist."""
        owner_id = ensure_owner(owner_id)
        if not allocation_id:
            raise ValidationFailure("Budget id is required.", field="id")

        with store_operation("delete budget"):
            deleted = await self._budgets.delete_allocation(owner_id, str(allocation_id))

        if deleted and self._audit:
            await self._audit.log_allocation_deleted(
                owner_id=owner_id,
                allocation_id=str(allocation_id),
                correlation_id=correlation_id,
            )
        return deleted

    async def copy_allocations(
        self,
        owner_id: str,
        from_period: PeriodInput,
        to_period: PeriodInput,
        correlation_id: Optional[UUID] = None,
    ) -> list[CategoryAllocation]:
        """
        Clone every allocation of one period into another.

        Existing allocations of the target period with the same category
        are overwritten through the upsert path.
        """
        owner_id = ensure_owner(owner_id)
        source = to_period_start(from_period)
        target = to_period_start(to_period)
        if source == target:
            raise ValidationFailure("Source and target period are the same.", field="to_period")

        with store_operation("load budgets"):
            allocations = await self._budgets.list_allocations(owner_id, source)

        copies = [
            CategoryAllocation(
                owner_id=owner_id,
                period=target,
                category_id=allocation.category_id,
                category_name=allocation.category_name,
                planned=allocation.planned,
                carryover_enabled=allocation.carryover_enabled,
                note=allocation.note,
            )
            for allocation in allocations
        ]

        with store_operation("copy budgets"):
            stored = list(await asyncio.gather(
                *(self._budgets.upsert_allocation(copy) for copy in copies)
            ))

        if self._audit:
            await self._audit.log_allocations_copied(
                owner_id=owner_id,
                from_period=source,
                to_period=target,
                count=len(stored),
                correlation_id=correlation_id,
            )
        return stored

    async def compute_rollover(
        self,
        owner_id: str,
        period: PeriodInput,
    ) -> FeatureUnavailable:
        """
        Balance rollover (carrying the unspent remainder) is not offered.

        Inputs are still validated so callers get the same errors as
        for the other monthly operations. Nothing is written.
        """
        ensure_owner(owner_id)
        to_period_start(period)
        return FeatureUnavailable(
            feature="rollover",
            message="Rolling over unspent balances is not available yet.",
        )
