"""
Highlight Selector

A small pinboard of budgets (monthly or weekly) an owner wants to keep
an eye on. At most `highlight_limit` selections are live per owner;
adding beyond the cap is refused with LimitReachedError, never silently
dropped.

Highlights are an optional feature of the store. When its table is
missing, `list` says so with a FeatureUnavailable result instead of
pretending the owner has no highlights.
"""

import asyncio
from datetime import timedelta
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

import structlog

from period_accounting.audit import AuditLogger
from period_accounting.config import EngineSettings, get_settings
from period_accounting.errors import (
    LimitReachedError,
    StoreFailure,
    ValidationFailure,
    ensure_owner,
    store_operation,
)
from period_accounting.ledger.spend import SpendAggregator
from period_accounting.models.budget import (
    BudgetKind,
    HighlightedBudget,
    HighlightSelection,
    ToggleOutcome,
    ToggleResult,
    spend_percentage,
)
from period_accounting.models.results import Available, FeatureUnavailable, Outcome
from period_accounting.periods import month_range, week_end_from_start
from period_accounting.services.storage import (
    BudgetStorageInterface,
    CapacityError,
    FeatureUnavailableError,
    HighlightStorageInterface,
    StorageError,
    WeeklyBudgetStorageInterface,
)


logger = structlog.get_logger(__name__)


def _parse_kind(kind: Union[BudgetKind, str]) -> BudgetKind:
    try:
        return BudgetKind(kind)
    except ValueError:
        raise ValidationFailure("Budget type must be monthly or weekly.", field="kind")


class HighlightSelector:
    """
    Toggle, list and resolve highlighted budgets.

    Args:
        highlights: Highlight store
        budgets: Monthly allocation store (for pruning and resolving)
        weekly: Weekly allocation store (for pruning and resolving)
        spend: Spend aggregator used when resolving
        audit: Optional audit logger
        settings: Engine settings; loaded from the environment when omitted
    """

    def __init__(
        self,
        highlights: HighlightStorageInterface,
        budgets: BudgetStorageInterface,
        weekly: WeeklyBudgetStorageInterface,
        spend: SpendAggregator,
        audit: Optional[AuditLogger] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self._highlights = highlights
        self._budgets = budgets
        self._weekly = weekly
        self._spend = spend
        self._audit = audit
        self._settings = settings or get_settings().engine

    @property
    def limit(self) -> int:
        return self._settings.highlight_limit

    async def toggle(
        self,
        owner_id: str,
        kind: Union[BudgetKind, str],
        budget_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> ToggleResult:
        """
        Remove the highlight if it exists, otherwise add it.

        Raises:
            LimitReachedError: If adding would exceed the cap
            StoreFailure: If the store fails (including a missing table)
        """
        owner_id = ensure_owner(owner_id)
        kind = _parse_kind(kind)
        budget_id = str(budget_id or "").strip()
        if not budget_id:
            raise ValidationFailure("Budget id is required.", field="budget_id")

        with store_operation("update highlights"):
            selections = await self._highlights.list_highlights(owner_id)
            # Dangling selections must not hold a slot
            selections = await self._prune(owner_id, selections, correlation_id)
            match = next((s for s in selections if s.points_at(kind, budget_id)), None)

            if match is not None:
                await self._highlights.delete_highlights(owner_id, [match.id])
                outcome = ToggleOutcome.REMOVED
                after = [s for s in selections if s.id != match.id]
            else:
                if len(selections) >= self.limit:
                    await self._limit_reached(owner_id, kind, budget_id, correlation_id)
                try:
                    inserted = await self._highlights.insert_highlight(
                        HighlightSelection(owner_id=owner_id, kind=kind, budget_id=budget_id),
                        self.limit,
                    )
                except CapacityError:
                    await self._limit_reached(owner_id, kind, budget_id, correlation_id)
                outcome = ToggleOutcome.ADDED
                after = [*selections, inserted]

        if self._audit:
            await self._audit.log_highlight_changed(
                owner_id=owner_id,
                kind=kind.value,
                budget_id=budget_id,
                added=outcome == ToggleOutcome.ADDED,
                correlation_id=correlation_id,
            )
        return ToggleResult(outcome=outcome, highlights=after)

    async def _limit_reached(
        self,
        owner_id: str,
        kind: BudgetKind,
        budget_id: str,
        correlation_id: Optional[UUID],
    ) -> None:
        if self._audit:
            await self._audit.log_highlight_limit_reached(
                owner_id=owner_id,
                kind=kind.value,
                budget_id=budget_id,
                limit=self.limit,
                correlation_id=correlation_id,
            )
        raise LimitReachedError(self.limit)

    async def _prune(
        self,
        owner_id: str,
        selections: list[HighlightSelection],
        correlation_id: Optional[UUID] = None,
    ) -> list[HighlightSelection]:
        """Drop selections whose budget no longer exists."""
        monthly_ids = [s.budget_id for s in selections if s.kind == BudgetKind.MONTHLY]
        weekly_ids = [s.budget_id for s in selections if s.kind == BudgetKind.WEEKLY]
        try:
            live_monthly, live_weekly = await asyncio.gather(
                self._budgets.existing_allocation_ids(owner_id, monthly_ids),
                self._weekly.existing_weekly_ids(owner_id, weekly_ids),
            )
        except StorageError as e:
            logger.warning("highlight_prune_skipped", owner_id=owner_id, error=str(e))
            return selections

        live = {BudgetKind.MONTHLY: live_monthly, BudgetKind.WEEKLY: live_weekly}
        dangling = [s.id for s in selections if s.budget_id not in live[s.kind]]
        if not dangling:
            return selections

        try:
            await self._highlights.delete_highlights(owner_id, dangling)
        except StorageError as e:
            logger.warning("highlight_prune_failed", owner_id=owner_id, error=str(e))
        else:
            if self._audit:
                await self._audit.log_highlights_pruned(
                    owner_id=owner_id,
                    selection_ids=dangling,
                    correlation_id=correlation_id,
                )
        return [s for s in selections if s.id not in dangling]

    async def _resolve_one(
        self,
        owner_id: str,
        selection: HighlightSelection,
    ) -> Optional[HighlightedBudget]:
        if selection.kind == BudgetKind.MONTHLY:
            allocation = await self._budgets.get_allocation(owner_id, selection.budget_id)
            if allocation is None:
                return None
            start, end = month_range(allocation.period)
            last_day = end - timedelta(days=1)
        else:
            allocation = await self._weekly.get_weekly_allocation(owner_id, selection.budget_id)
            if allocation is None:
                return None
            start = allocation.week_start
            end = start + timedelta(days=7)
            last_day = week_end_from_start(start)

        spent = Decimal("0")
        if allocation.category_id:
            totals = await self._spend.sum_by_category(owner_id, start, end)
            spent = totals.get(allocation.category_id, Decimal("0"))

        return HighlightedBudget(
            selection_id=selection.id,
            kind=selection.kind,
            budget_id=selection.budget_id,
            label=allocation.category_name or self._settings.unassigned_label,
            category_id=allocation.category_id,
            start=start,
            end=last_day,
            planned=allocation.planned,
            spent=spent,
            remaining=allocation.planned - spent,
            percentage=spend_percentage(spent, allocation.planned),
        )

    async def resolve(
        self,
        owner_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> list[HighlightedBudget]:
        """
        Current status of each highlighted budget, oldest pin first.

        Only the first `highlight_limit` selections are resolved, even if
        the store holds more. Returns an empty list when highlights are
        unavailable.
        """
        owner_id = ensure_owner(owner_id)
        outcome = await self.list(owner_id, correlation_id)
        if isinstance(outcome, FeatureUnavailable):
            return []

        selections = outcome.value[: self.limit]
        with store_operation("load highlighted budgets"):
            resolved = await asyncio.gather(
                *(self._resolve_one(owner_id, s) for s in selections)
            )
        return [r for r in resolved if r is not None]

    # Defined last: the method name shadows the builtin in the class body
    async def list(
        self,
        owner_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> Outcome:
        """
        List highlights oldest first, pruning ones whose budget is gone.

        Returns:
            Available with the selections, or FeatureUnavailable when the
            store has no highlight table
        """
        owner_id = ensure_owner(owner_id)
        try:
            selections = await self._highlights.list_highlights(owner_id)
        except FeatureUnavailableError as e:
            logger.info("highlights_unavailable", owner_id=owner_id, error=str(e))
            return FeatureUnavailable(feature="highlights", message=str(e))
        except StorageError as e:
            raise StoreFailure("load highlights", e) from e

        selections = await self._prune(owner_id, selections, correlation_id)
        return Available[list[HighlightSelection]](value=selections)
