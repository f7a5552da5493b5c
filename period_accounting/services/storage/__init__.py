"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
The hosted backend lives in `services.storage.google_sheets`; the
in-memory backend is used for tests and local runs.
"""

from period_accounting.services.storage.exceptions import (
    CapacityError,
    ConnectionError,
    DuplicateError,
    FeatureUnavailableError,
    NotFoundError,
    StorageError,
)
from period_accounting.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    HighlightStorageInterface,
    TransactionStorageInterface,
    WeeklyBudgetStorageInterface,
)
from period_accounting.services.storage.memory import InMemoryStore

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "HighlightStorageInterface",
    "TransactionStorageInterface",
    "WeeklyBudgetStorageInterface",
    # Exceptions
    "CapacityError",
    "ConnectionError",
    "DuplicateError",
    "FeatureUnavailableError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryStore",
]
