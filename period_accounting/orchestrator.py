"""
Engine Orchestrator

Wires the accounting components to their stores and exposes one object
a UI or API layer can call.

DESIGN DECISION: Components never build their own store clients. The
orchestrator creates the store handles once and passes them in, so a
test can run the whole engine on an InMemoryStore.

Every call gets a correlation id; store failures are audited before
they propagate as StoreFailure.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Awaitable, Optional, TypeVar, Union
from uuid import UUID

import structlog

from period_accounting.audit import AuditLogger, create_correlation_id
from period_accounting.config import EngineSettings, get_settings
from period_accounting.errors import StoreFailure, describe_error
from period_accounting.ledger import (
    CalendarAggregator,
    CarryoverPropagator,
    HighlightSelector,
    MonthlyBudgetLedger,
    SpendAggregator,
    WeeklyBudgetReconciler,
    WeeklyCarryoverPropagator,
)
from period_accounting.models import (
    AllocationWithSpent,
    BudgetKind,
    CalendarFilters,
    CategoryAllocation,
    DayTransactionsResult,
    FeatureUnavailable,
    HighlightedBudget,
    MonthAggregateResult,
    MonthlyBudgetsResult,
    Outcome,
    ToggleResult,
    WeeklyAllocation,
    WeeklyBudgetsResult,
)
from period_accounting.periods import PeriodInput
from period_accounting.services.storage import (
    BudgetStorageInterface,
    HighlightStorageInterface,
    InMemoryStore,
    TransactionStorageInterface,
    WeeklyBudgetStorageInterface,
)
from period_accounting.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsClient,
    GoogleSheetsHighlightStorage,
    GoogleSheetsTransactionStorage,
    GoogleSheetsWeeklyBudgetStorage,
)


logger = structlog.get_logger(__name__)

T = TypeVar("T")


class PeriodAccountingEngine:
    """
    Facade over the accounting components.

    The components are also available as attributes (`monthly`,
    `weekly`, `highlights`, `calendar`, `spend`) for callers that need
    the lower-level operations.
    """

    def __init__(
        self,
        transactions: TransactionStorageInterface,
        budgets: BudgetStorageInterface,
        weekly: WeeklyBudgetStorageInterface,
        highlights: HighlightStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self._settings = settings or get_settings().engine
        self._audit_logger = audit_logger

        self.spend = SpendAggregator(transactions)
        self.monthly = MonthlyBudgetLedger(
            budgets,
            self.spend,
            carryover=CarryoverPropagator(budgets, audit_logger),
            audit=audit_logger,
        )
        self.weekly = WeeklyBudgetReconciler(
            weekly,
            self.spend,
            carryover=WeeklyCarryoverPropagator(
                weekly,
                audit_logger,
                enabled=self._settings.weekly_carryover_enabled,
            ),
            audit=audit_logger,
            settings=self._settings,
        )
        self.highlights = HighlightSelector(
            highlights,
            budgets,
            weekly,
            self.spend,
            audit=audit_logger,
            settings=self._settings,
        )
        self.calendar = CalendarAggregator(transactions, self._settings)

    @classmethod
    def in_memory(
        cls,
        store: Optional[InMemoryStore] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[EngineSettings] = None,
    ) -> "PeriodAccountingEngine":
        """Build an engine whose every store is one InMemoryStore."""
        store = store or InMemoryStore()
        return cls(store, store, store, store, audit_logger, settings)

    async def _run(
        self,
        operation: Awaitable[T],
        owner_id: Optional[str],
        correlation_id: UUID,
    ) -> T:
        try:
            return await operation
        except StoreFailure as e:
            if self._audit_logger:
                await self._audit_logger.log_store_failure(
                    operation=e.operation,
                    error_message=str(e.cause or e),
                    owner_id=owner_id,
                    correlation_id=correlation_id,
                )
            raise

    # -------------------------------------------------------------------------
    # Monthly budgets
    # -------------------------------------------------------------------------

    async def list_budgets(
        self,
        owner_id: str,
        period: PeriodInput,
    ) -> list[AllocationWithSpent]:
        """Monthly budgets of a period with their spend."""
        cid = create_correlation_id()
        return await self._run(self.monthly.list_with_spent(owner_id, period, cid), owner_id, cid)

    async def budget_overview(
        self,
        owner_id: str,
        period: PeriodInput,
    ) -> MonthlyBudgetsResult:
        cid = create_correlation_id()
        return await self._run(self.monthly.overview(owner_id, period, cid), owner_id, cid)

    async def upsert_budget(
        self,
        owner_id: str,
        period: PeriodInput,
        category_id: Optional[str],
        planned: Union[Decimal, int, float, str],
        carryover_enabled: bool = False,
        note: Optional[str] = None,
        category_name: Optional[str] = None,
    ) -> CategoryAllocation:
        cid = create_correlation_id()
        return await self._run(
            self.monthly.upsert_allocation(
                owner_id,
                period,
                category_id,
                planned,
                carryover_enabled=carryover_enabled,
                note=note,
                category_name=category_name,
                correlation_id=cid,
            ),
            owner_id,
            cid,
        )

    async def delete_budget(self, owner_id: str, allocation_id: str) -> bool:
        cid = create_correlation_id()
        return await self._run(
            self.monthly.delete_allocation(owner_id, allocation_id, cid), owner_id, cid
        )

    async def copy_budgets(
        self,
        owner_id: str,
        from_period: PeriodInput,
        to_period: PeriodInput,
    ) -> list[CategoryAllocation]:
        cid = create_correlation_id()
        return await self._run(
            self.monthly.copy_allocations(owner_id, from_period, to_period, cid),
            owner_id,
            cid,
        )

    async def compute_rollover(
        self,
        owner_id: str,
        period: PeriodInput,
    ) -> FeatureUnavailable:
        return await self.monthly.compute_rollover(owner_id, period)

    # -------------------------------------------------------------------------
    # Weekly budgets
    # -------------------------------------------------------------------------

    async def list_weekly_budgets(
        self,
        owner_id: str,
        period: PeriodInput,
    ) -> WeeklyBudgetsResult:
        cid = create_correlation_id()
        return await self._run(self.weekly.list_weekly(owner_id, period, cid), owner_id, cid)

    async def upsert_weekly_budget(
        self,
        owner_id: str,
        category_id: str,
        week_start: Union[str, date, datetime],
        planned: Union[Decimal, int, float, str],
        carryover_enabled: bool = False,
        note: Optional[str] = None,
        allocation_id: Optional[str] = None,
        category_name: Optional[str] = None,
    ) -> WeeklyAllocation:
        cid = create_correlation_id()
        return await self._run(
            self.weekly.upsert_weekly(
                owner_id,
                category_id,
                week_start,
                planned,
                carryover_enabled=carryover_enabled,
                note=note,
                allocation_id=allocation_id,
                category_name=category_name,
                correlation_id=cid,
            ),
            owner_id,
            cid,
        )

    async def delete_weekly_budget(self, owner_id: str, allocation_id: str) -> bool:
        cid = create_correlation_id()
        return await self._run(
            self.weekly.delete_weekly(owner_id, allocation_id, cid), owner_id, cid
        )

    # -------------------------------------------------------------------------
    # Highlights
    # -------------------------------------------------------------------------

    async def toggle_highlight(
        self,
        owner_id: str,
        kind: Union[BudgetKind, str],
        budget_id: str,
    ) -> ToggleResult:
        cid = create_correlation_id()
        return await self._run(
            self.highlights.toggle(owner_id, kind, budget_id, cid), owner_id, cid
        )

    async def list_highlights(self, owner_id: str) -> Outcome:
        cid = create_correlation_id()
        return await self._run(self.highlights.list(owner_id, cid), owner_id, cid)

    async def highlighted_budgets(self, owner_id: str) -> list[HighlightedBudget]:
        cid = create_correlation_id()
        return await self._run(self.highlights.resolve(owner_id, cid), owner_id, cid)

    # -------------------------------------------------------------------------
    # Calendar
    # -------------------------------------------------------------------------

    async def month_aggregates(
        self,
        owner_id: str,
        month: PeriodInput,
        filters: Optional[CalendarFilters] = None,
    ) -> MonthAggregateResult:
        cid = create_correlation_id()
        return await self._run(
            self.calendar.month_aggregates(owner_id, month, filters), owner_id, cid
        )

    async def day_transactions(
        self,
        owner_id: str,
        day: date,
        filters: Optional[CalendarFilters] = None,
    ) -> DayTransactionsResult:
        cid = create_correlation_id()
        return await self._run(
            self.calendar.day_transactions(owner_id, day, filters), owner_id, cid
        )

    def describe_error(self, error: BaseException) -> str:
        """Message to show the user for an error raised by this engine."""
        return describe_error(error, self._settings.generic_error_message)


def create_engine(use_storage: bool = True) -> PeriodAccountingEngine:
    """
    Factory function to create the engine.

    Args:
        use_storage: Whether to use Google Sheets storage.
                    Set to False to run on an in-memory store.

    Falls back to the in-memory store when Google Sheets is not configured.
    """
    if use_storage:
        try:
            client = GoogleSheetsClient()
            return PeriodAccountingEngine(
                transactions=GoogleSheetsTransactionStorage(client),
                budgets=GoogleSheetsBudgetStorage(client),
                weekly=GoogleSheetsWeeklyBudgetStorage(client),
                highlights=GoogleSheetsHighlightStorage(client),
                audit_logger=AuditLogger(GoogleSheetsAuditStorage(client)),
            )
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))

    store = InMemoryStore()
    return PeriodAccountingEngine.in_memory(store, AuditLogger(store))
