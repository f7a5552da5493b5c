"""
Spend Aggregator

The single transaction-range primitive shared by the monthly ledger,
the weekly reconciler and the highlight resolver.

Transfers and soft-deleted rows never count as spend. The store filter
excludes them and the reduction checks again, so a backend that ignores
part of the filter still cannot inflate a total.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from period_accounting.errors import ensure_owner, store_operation
from period_accounting.models.budget import (
    TransactionFilters,
    TransactionRecord,
    TransactionType,
)
from period_accounting.services.storage import TransactionStorageInterface


def sum_records_by_category(
    records: Iterable[TransactionRecord],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> dict[str, Decimal]:
    """
    Sum amounts per category.

    Args:
        records: Transactions to reduce
        start: Optional first date included
        end: Optional first date NOT included

    Rows without a category are skipped. Non-finite amounts count as zero.
    """
    totals: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for record in records:
        if record.is_transfer or record.is_deleted:
            continue
        if not record.category_id:
            continue
        if start is not None and record.date < start:
            continue
        if end is not None and record.date >= end:
            continue
        totals[record.category_id] += record.safe_amount
    return dict(totals)


class SpendAggregator:
    """Answers "how much was spent per category between two dates"."""

    def __init__(self, transactions: TransactionStorageInterface):
        self._transactions = transactions

    async def fetch_records(
        self,
        owner_id: str,
        start: date,
        end_exclusive: date,
        type: TransactionType = TransactionType.EXPENSE,
    ) -> list[TransactionRecord]:
        """
        Load an owner's transactions of one type in [start, end_exclusive).

        Raises:
            NotAuthenticatedError: If there is no owner
            StoreFailure: If the transaction store fails
        """
        owner_id = ensure_owner(owner_id)
        filters = TransactionFilters(types=frozenset({TransactionType(type)}))
        with store_operation("load transactions"):
            records = await self._transactions.find_transactions(
                owner_id, start, end_exclusive, filters
            )
        return [r for r in records if not r.is_transfer and not r.is_deleted]

    async def sum_by_category(
        self,
        owner_id: str,
        start: date,
        end_exclusive: date,
        type: TransactionType = TransactionType.EXPENSE,
    ) -> dict[str, Decimal]:
        """Sum an owner's transactions of one type per category."""
        records = await self.fetch_records(owner_id, start, end_exclusive, type)
        return sum_records_by_category(records, start, end_exclusive)
