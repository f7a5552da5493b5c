"""
Shared fixtures.

Every test runs on an InMemoryStore; nothing talks to Google Sheets.
"""

from datetime import date
from decimal import Decimal
from itertools import count

import pytest

from period_accounting.config import EngineSettings
from period_accounting.models import TransactionRecord, TransactionType
from period_accounting.services.storage import InMemoryStore


OWNER = "owner-1"

_ids = count(1)


def make_transaction(
    day: date,
    amount,
    category_id="food",
    type: TransactionType = TransactionType.EXPENSE,
    owner_id: str = OWNER,
    **extra,
) -> TransactionRecord:
    """Build a transaction with a fresh id."""
    return TransactionRecord(
        id=f"tx-{next(_ids)}",
        owner_id=owner_id,
        date=day,
        type=type,
        amount=Decimal(str(amount)),
        category_id=category_id,
        **extra,
    )


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(
        highlight_limit=2,
        heat_percentile=0.8,
        weekly_carryover_enabled=True,
        unassigned_label="Uncategorized",
        generic_error_message="Something went wrong. Please try again.",
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()
