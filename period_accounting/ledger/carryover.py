"""
Carryover Propagator

A flagged allocation is re-created in the following period when that
period has no allocation for the same category yet. Propagation runs
lazily, as part of reading a period, and is best-effort: if anything
about it fails, the read still succeeds with the budgets that were
already there.

DESIGN DECISION: Propagation is split into `try_enrich`, which returns
the refreshed list or None, and `propagate`, which falls back to the
original list. Copies carry the planned amount, never a computed
remainder; rollover_in/rollover_out are left untouched.
"""

import asyncio
from collections import defaultdict
from datetime import date, timedelta
from typing import Optional
from uuid import UUID

import structlog

from period_accounting.audit import AuditLogger
from period_accounting.models.budget import CategoryAllocation, WeeklyAllocation
from period_accounting.periods import iter_week_starts, previous_period
from period_accounting.services.storage import (
    BudgetStorageInterface,
    StorageError,
    WeeklyBudgetStorageInterface,
)


logger = structlog.get_logger(__name__)


class CarryoverPropagator:
    """Copies flagged monthly allocations into the next period."""

    def __init__(
        self,
        budgets: BudgetStorageInterface,
        audit: Optional[AuditLogger] = None,
    ):
        self._budgets = budgets
        self._audit = audit

    async def try_enrich(
        self,
        owner_id: str,
        period: date,
        current: list[CategoryAllocation],
        correlation_id: Optional[UUID] = None,
    ) -> Optional[list[CategoryAllocation]]:
        """
        Propagate carryover into `period`.

        Returns:
            The re-fetched allocations of the period when at least one
            copy was written, otherwise None.

        Raises:
            StorageError: If reading the previous period or re-fetching fails
        """
        source_period = previous_period(period)
        if source_period is None:
            return None

        previous = await self._budgets.list_allocations(owner_id, source_period)
        present = {allocation.category_key for allocation in current}

        copies = []
        for allocation in previous:
            if not allocation.carryover_enabled or allocation.category_key in present:
                continue
            present.add(allocation.category_key)
            copies.append(CategoryAllocation(
                owner_id=owner_id,
                period=period,
                category_id=allocation.category_id,
                category_name=allocation.category_name,
                planned=allocation.planned,
                carryover_enabled=True,
                note=allocation.note,
            ))

        if not copies:
            return None

        results = await asyncio.gather(
            *(self._budgets.upsert_allocation(copy) for copy in copies),
            return_exceptions=True,
        )

        written = []
        failed = 0
        for copy, result in zip(copies, results):
            if isinstance(result, Exception):
                failed += 1
                logger.warning(
                    "carryover_write_failed",
                    owner_id=owner_id,
                    period=period.isoformat(),
                    category_key=copy.category_key,
                    error=str(result),
                )
            else:
                written.append(result)

        if not written:
            return None

        if self._audit:
            await self._audit.log_carryover_propagated(
                owner_id=owner_id,
                period=period,
                category_keys=[a.category_key for a in written],
                failed=failed,
                correlation_id=correlation_id,
            )

        return await self._budgets.list_allocations(owner_id, period)

    async def propagate(
        self,
        owner_id: str,
        period: date,
        current: list[CategoryAllocation],
        correlation_id: Optional[UUID] = None,
    ) -> list[CategoryAllocation]:
        """
        Propagate carryover, falling back to `current` on any store failure.
        """
        try:
            enriched = await self.try_enrich(owner_id, period, current, correlation_id)
        except StorageError as e:
            logger.warning(
                "carryover_skipped",
                owner_id=owner_id,
                period=period.isoformat(),
                error=str(e),
            )
            if self._audit:
                await self._audit.log_carryover_failed(
                    owner_id=owner_id,
                    period=period,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            return current

        return enriched if enriched is not None else current


class WeeklyCarryoverPropagator:
    """
    Copies flagged weekly allocations into the following week.

    Copies chain: a copy made into week N+1 is itself flagged and is
    carried into week N+2 within the same pass.
    """

    def __init__(
        self,
        weekly: WeeklyBudgetStorageInterface,
        audit: Optional[AuditLogger] = None,
        enabled: bool = True,
    ):
        self._weekly = weekly
        self._audit = audit
        self._enabled = enabled

    async def propagate(
        self,
        owner_id: str,
        range_start: date,
        range_end: date,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Carry weekly allocations forward through [range_start, range_end).

        Returns:
            Number of weekly allocations created. Store failures are
            logged and count as zero.
        """
        if not self._enabled or not range_start < range_end:
            return 0
        try:
            created = await self._chain(owner_id, range_start, range_end)
        except StorageError as e:
            logger.warning(
                "weekly_carryover_skipped",
                owner_id=owner_id,
                range_start=range_start.isoformat(),
                error=str(e),
            )
            return 0

        if created and self._audit:
            await self._audit.log_weekly_carryover_propagated(
                owner_id=owner_id,
                week_starts=sorted({w.week_start for w in created}),
                count=len(created),
                correlation_id=correlation_id,
            )
        return len(created)

    async def _chain(
        self,
        owner_id: str,
        range_start: date,
        range_end: date,
    ) -> list[WeeklyAllocation]:
        week_starts = list(iter_week_starts(range_start, range_end))
        if not week_starts:
            return []

        existing = await self._weekly.list_weekly_allocations(
            owner_id, week_starts[0], range_end
        )
        if not existing:
            return []

        by_week: dict[date, dict[str, WeeklyAllocation]] = defaultdict(dict)
        for allocation in existing:
            by_week[allocation.week_start].setdefault(allocation.category_id, allocation)

        created: list[WeeklyAllocation] = []
        for week_start in week_starts:
            next_week = week_start + timedelta(days=7)
            if next_week >= range_end:
                break

            copies = [
                WeeklyAllocation(
                    owner_id=owner_id,
                    category_id=allocation.category_id,
                    category_name=allocation.category_name,
                    planned=allocation.planned,
                    carryover_enabled=True,
                    note=allocation.note,
                    week_start=next_week,
                )
                for allocation in by_week.get(week_start, {}).values()
                if allocation.carryover_enabled
                and allocation.category_id not in by_week.get(next_week, {})
            ]
            if not copies:
                continue

            results = await asyncio.gather(
                *(self._weekly.upsert_weekly_allocation(copy) for copy in copies),
                return_exceptions=True,
            )
            for copy, result in zip(copies, results):
                if isinstance(result, Exception):
                    logger.warning(
                        "weekly_carryover_write_failed",
                        owner_id=owner_id,
                        category_id=copy.category_id,
                        week_start=next_week.isoformat(),
                        error=str(result),
                    )
                    continue
                by_week[next_week][result.category_id] = result
                created.append(result)

        return created
