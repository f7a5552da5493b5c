"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the accounting logic decoupled from storage implementation

Every store handle is passed into the component that uses it; nothing
reads a global client.

The interface is intentionally small - just the reads and writes the
engine needs. Transactions are read-only from the engine's point of view.
"""

from abc import ABC, abstractmethod
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
)
from period_accounting.services.storage.exceptions import (
    CapacityError,
    ConnectionError,
    DuplicateError,
    FeatureUnavailableError,
    NotFoundError,
    StorageError,
)


class TransactionStorageInterface(ABC):
    """Read access to the external transaction ledger."""

    @abstractmethod
    async def find_transactions(
        self,
        owner_id: str,
        date_from: date,
        date_to: date,
        filters: Optional[TransactionFilters] = None,
    ) -> list[TransactionRecord]:
        """
        Find an owner's transactions in a date range.

        Args:
            owner_id: Whose transactions
            date_from: First date included
            date_to: First date NOT included
            filters: Type/category/account/amount/search filters.
                     Transfers are never returned; soft-deleted rows
                     only when `filters.include_deleted` is set.

        Returns:
            Matching transactions ordered by date ascending
        """
        pass


class BudgetStorageInterface(ABC):
    """Monthly allocations."""

    @abstractmethod
    async def list_allocations(
        self,
        owner_id: str,
        period: date,
    ) -> list[CategoryAllocation]:
        """
        List an owner's allocations for one period.

        Returns:
            Allocations ordered by creation time ascending
        """
        pass

    @abstractmethod
    async def get_allocation(
        self,
        owner_id: str,
        allocation_id: str,
    ) -> Optional[CategoryAllocation]:
        """Get one allocation, or None if it does not exist."""
        pass

    @abstractmethod
    async def upsert_allocation(
        self,
        allocation: CategoryAllocation,
    ) -> CategoryAllocation:
        """
        Insert or update an allocation keyed by (owner, period, category key).

        When a row with the same key exists, its planned amount, carryover
        flag, name and note are replaced and its id is kept. Calling this
        repeatedly with the same input leaves the store unchanged.

        Returns:
            The stored allocation
        """
        pass

    @abstractmethod
    async def delete_allocation(
        self,
        owner_id: str,
        allocation_id: str,
    ) -> bool:
        """
        Delete an allocation.

        Returns:
            True if a row was deleted
        """
        pass

    @abstractmethod
    async def existing_allocation_ids(
        self,
        owner_id: str,
        allocation_ids: Iterable[str],
    ) -> set[str]:
        """Return the subset of ids that still exist for the owner."""
        pass


class WeeklyBudgetStorageInterface(ABC):
    """Weekly allocations."""

    @abstractmethod
    async def list_weekly_allocations(
        self,
        owner_id: str,
        week_from: date,
        week_to: date,
    ) -> list[WeeklyAllocation]:
        """
        List weekly allocations whose week starts in [week_from, week_to).

        Returns:
            Allocations ordered by week start, then creation time
        """
        pass

    @abstractmethod
    async def get_weekly_allocation(
        self,
        owner_id: str,
        allocation_id: str,
    ) -> Optional[WeeklyAllocation]:
        """Get one weekly allocation, or None if it does not exist."""
        pass

    @abstractmethod
    async def upsert_weekly_allocation(
        self,
        allocation: WeeklyAllocation,
    ) -> WeeklyAllocation:
        """
        Insert or update a weekly allocation keyed by (owner, category, week).

        Returns:
            The stored allocation
        """
        pass

    @abstractmethod
    async def update_weekly_allocation(
        self,
        allocation: WeeklyAllocation,
    ) -> WeeklyAllocation:
        """
        Update a weekly allocation by id.

        Raises:
            NotFoundError: If no allocation has this id
            DuplicateError: If the change collides with another allocation
                            of the same category and week
        """
        pass

    @abstractmethod
    async def delete_weekly_allocation(
        self,
        owner_id: str,
        allocation_id: str,
    ) -> bool:
        """Delete a weekly allocation. Returns True if a row was deleted."""
        pass

    @abstractmethod
    async def existing_weekly_ids(
        self,
        owner_id: str,
        allocation_ids: Iterable[str],
    ) -> set[str]:
        """Return the subset of ids that still exist for the owner."""
        pass


class HighlightStorageInterface(ABC):
    """Highlighted (pinned) budgets."""

    @abstractmethod
    async def list_highlights(self, owner_id: str) -> list[HighlightSelection]:
        """
        List an owner's highlights, oldest first.

        Raises:
            FeatureUnavailableError: If the store has no highlight table
        """
        pass

    @abstractmethod
    async def insert_highlight(
        self,
        selection: HighlightSelection,
        limit: int,
    ) -> HighlightSelection:
        """
        Insert a highlight.

        Raises:
            CapacityError: If the owner already has `limit` highlights
        """
        pass

    @abstractmethod
    async def delete_highlights(
        self,
        owner_id: str,
        selection_ids: Iterable[str],
    ) -> int:
        """Delete highlights by id. Returns the number removed."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events of one correlated flow in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


__all__ = [
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "HighlightStorageInterface",
    "TransactionStorageInterface",
    "WeeklyBudgetStorageInterface",
    "CapacityError",
    "ConnectionError",
    "DuplicateError",
    "FeatureUnavailableError",
    "NotFoundError",
    "StorageError",
]
