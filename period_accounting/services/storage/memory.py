"""
In-Memory Storage Implementation

Implements every storage interface on plain dicts. Used by the tests and
when the engine runs without a hosted store configured.

Behaves like the hosted backend where it matters to the engine:
- allocations upsert on (owner, period, category key)
- weekly allocations upsert on (owner, category, week start)
- highlight inserts enforce the per-owner cap
- transfers and soft-deleted transactions are filtered out
"""

from datetime import date
from typing import Iterable, Optional
from uuid import UUID

from period_accounting.models.audit import AuditEvent
from period_accounting.models.budget import (
    CategoryAllocation,
    HighlightSelection,
    TransactionFilters,
    TransactionRecord,
    WeeklyAllocation,
    utcnow,
)
from period_accounting.services.storage.exceptions import (
    CapacityError,
    DuplicateError,
    FeatureUnavailableError,
    NotFoundError,
)
from period_accounting.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    HighlightStorageInterface,
    TransactionStorageInterface,
    WeeklyBudgetStorageInterface,
)


class InMemoryStore(
    TransactionStorageInterface,
    BudgetStorageInterface,
    WeeklyBudgetStorageInterface,
    HighlightStorageInterface,
    AuditStorageInterface,
):
    """
    All engine tables in one process-local object.

    Args:
        highlights_enabled: When False, highlight reads raise
                            FeatureUnavailableError like a store
                            without the highlight table.
    """

    def __init__(self, highlights_enabled: bool = True):
        self.transactions: list[TransactionRecord] = []
        self.allocations: dict[str, CategoryAllocation] = {}
        self.weekly_allocations: dict[str, WeeklyAllocation] = {}
        self.highlights: dict[str, HighlightSelection] = {}
        self.events: list[AuditEvent] = []
        self.highlights_enabled = highlights_enabled

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def add_transactions(self, *records: TransactionRecord) -> None:
        """Seed the (otherwise read-only) transaction ledger."""
        self.transactions.extend(records)

    async def find_transactions(
        self,
        owner_id: str,
        date_from: date,
        date_to: date,
        filters: Optional[TransactionFilters] = None,
    ) -> list[TransactionRecord]:
        filters = filters or TransactionFilters()
        found = [
            record
            for record in self.transactions
            if record.owner_id == owner_id
            and date_from <= record.date < date_to
            and filters.matches(record)
        ]
        found.sort(key=lambda r: r.date)
        return [record.model_copy() for record in found]

    # -------------------------------------------------------------------------
    # Monthly allocations
    # -------------------------------------------------------------------------

    def _find_allocation_by_key(
        self,
        owner_id: str,
        period: date,
        category_key: str,
    ) -> Optional[CategoryAllocation]:
        for allocation in self.allocations.values():
            if (
                allocation.owner_id == owner_id
                and allocation.period == period
                and allocation.category_key == category_key
            ):
                return allocation
        return None

    async def list_allocations(
        self,
        owner_id: str,
        period: date,
    ) -> list[CategoryAllocation]:
        rows = [
            a for a in self.allocations.values()
            if a.owner_id == owner_id and a.period == period
        ]
        rows.sort(key=lambda a: a.created_at)
        return [a.model_copy() for a in rows]

    async def get_allocation(
        self,
        owner_id: str,
        allocation_id: str,
    ) -> Optional[CategoryAllocation]:
        allocation = self.allocations.get(allocation_id)
        if allocation is None or allocation.owner_id != owner_id:
            return None
        return allocation.model_copy()

    async def upsert_allocation(
        self,
        allocation: CategoryAllocation,
    ) -> CategoryAllocation:
        existing = self._find_allocation_by_key(
            allocation.owner_id, allocation.period, allocation.category_key
        )
        if existing is None:
            stored = allocation.model_copy()
        else:
            stored = existing.model_copy(update={
                "planned": allocation.planned,
                "carryover_enabled": allocation.carryover_enabled,
                "category_name": allocation.category_name,
                "note": allocation.note,
                "updated_at": utcnow(),
            })
        self.allocations[stored.id] = stored
        return stored.model_copy()

    async def delete_allocation(self, owner_id: str, allocation_id: str) -> bool:
        allocation = self.allocations.get(allocation_id)
        if allocation is None or allocation.owner_id != owner_id:
            return False
        del self.allocations[allocation_id]
        return True

    async def existing_allocation_ids(
        self,
        owner_id: str,
        allocation_ids: Iterable[str],
    ) -> set[str]:
        return {
            allocation_id
            for allocation_id in allocation_ids
            if allocation_id in self.allocations
            and self.allocations[allocation_id].owner_id == owner_id
        }

    # -------------------------------------------------------------------------
    # Weekly allocations
    # -------------------------------------------------------------------------

    async def list_weekly_allocations(
        self,
        owner_id: str,
        week_from: date,
        week_to: date,
    ) -> list[WeeklyAllocation]:
        rows = [
            w for w in self.weekly_allocations.values()
            if w.owner_id == owner_id and week_from <= w.week_start < week_to
        ]
        rows.sort(key=lambda w: (w.week_start, w.created_at))
        return [w.model_copy() for w in rows]

    async def get_weekly_allocation(
        self,
        owner_id: str,
        allocation_id: str,
    ) -> Optional[WeeklyAllocation]:
        allocation = self.weekly_allocations.get(allocation_id)
        if allocation is None or allocation.owner_id != owner_id:
            return None
        return allocation.model_copy()

    def _find_weekly_by_slot(self, slot_key: tuple) -> Optional[WeeklyAllocation]:
        for allocation in self.weekly_allocations.values():
            if allocation.slot_key == slot_key:
                return allocation
        return None

    async def upsert_weekly_allocation(
        self,
        allocation: WeeklyAllocation,
    ) -> WeeklyAllocation:
        existing = self._find_weekly_by_slot(allocation.slot_key)
        if existing is None:
            stored = allocation.model_copy()
        else:
            stored = existing.model_copy(update={
                "planned": allocation.planned,
                "carryover_enabled": allocation.carryover_enabled,
                "category_name": allocation.category_name,
                "note": allocation.note,
                "updated_at": utcnow(),
            })
        self.weekly_allocations[stored.id] = stored
        return stored.model_copy()

    async def update_weekly_allocation(
        self,
        allocation: WeeklyAllocation,
    ) -> WeeklyAllocation:
        current = self.weekly_allocations.get(allocation.id)
        if current is None or current.owner_id != allocation.owner_id:
            raise NotFoundError(f"Weekly budget not found: {allocation.id}")
        clash = self._find_weekly_by_slot(allocation.slot_key)
        if clash is not None and clash.id != allocation.id:
            raise DuplicateError(
                f"Weekly budget already exists for {allocation.category_id} "
                f"in week {allocation.week_start}"
            )
        stored = allocation.model_copy(update={
            "created_at": current.created_at,
            "updated_at": utcnow(),
        })
        self.weekly_allocations[stored.id] = stored
        return stored.model_copy()

    async def delete_weekly_allocation(self, owner_id: str, allocation_id: str) -> bool:
        allocation = self.weekly_allocations.get(allocation_id)
        if allocation is None or allocation.owner_id != owner_id:
            return False
        del self.weekly_allocations[allocation_id]
        return True

    async def existing_weekly_ids(
        self,
        owner_id: str,
        allocation_ids: Iterable[str],
    ) -> set[str]:
        return {
            allocation_id
            for allocation_id in allocation_ids
            if allocation_id in self.weekly_allocations
            and self.weekly_allocations[allocation_id].owner_id == owner_id
        }

    # -------------------------------------------------------------------------
    # Highlights
    # -------------------------------------------------------------------------

    def _check_highlights(self) -> None:
        if not self.highlights_enabled:
            raise FeatureUnavailableError("highlights")

    async def list_highlights(self, owner_id: str) -> list[HighlightSelection]:
        self._check_highlights()
        rows = [h for h in self.highlights.values() if h.owner_id == owner_id]
        rows.sort(key=lambda h: h.created_at)
        return [h.model_copy() for h in rows]

    async def insert_highlight(
        self,
        selection: HighlightSelection,
        limit: int,
    ) -> HighlightSelection:
        self._check_highlights()
        live = sum(1 for h in self.highlights.values() if h.owner_id == selection.owner_id)
        if live >= limit:
            raise CapacityError(f"Max {limit} highlights per owner", limit=limit)
        self.highlights[selection.id] = selection.model_copy()
        return selection.model_copy()

    async def delete_highlights(
        self,
        owner_id: str,
        selection_ids: Iterable[str],
    ) -> int:
        self._check_highlights()
        removed = 0
        for selection_id in list(selection_ids):
            selection = self.highlights.get(selection_id)
            if selection is not None and selection.owner_id == owner_id:
                del self.highlights[selection_id]
                removed += 1
        return removed

    # -------------------------------------------------------------------------
    # Audit
    # -------------------------------------------------------------------------

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self.events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
