"""
Data Models Package

This package contains all Pydantic models used by the Period Accounting Engine.
All data flowing through the engine must conform to these schemas.
"""

from period_accounting.models.budget import (
    AllocationWithSpent,
    BudgetKind,
    BudgetSummary,
    CategoryAllocation,
    HighlightedBudget,
    HighlightSelection,
    MonthlyBudgetsResult,
    ToggleOutcome,
    ToggleResult,
    TransactionFilters,
    TransactionRecord,
    TransactionType,
    WeeklyAllocation,
    WeeklyAllocationWithSpent,
    WeeklyBudgetsResult,
    WeeklyCategorySummary,
    WeekPeriod,
    normalize_label,
    spend_percentage,
)
from period_accounting.models.calendar import (
    CalendarFilters,
    CalendarMode,
    CalendarTotals,
    DaySummary,
    DayTransactionsResult,
    HeatLevel,
    HeatmapStats,
    MonthAggregateResult,
)
from period_accounting.models.results import (
    Available,
    FeatureUnavailable,
    Outcome,
)
from period_accounting.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Budget models
    "AllocationWithSpent",
    "BudgetKind",
    "BudgetSummary",
    "CategoryAllocation",
    "HighlightedBudget",
    "HighlightSelection",
    "MonthlyBudgetsResult",
    "ToggleOutcome",
    "ToggleResult",
    "TransactionFilters",
    "TransactionRecord",
    "TransactionType",
    "WeeklyAllocation",
    "WeeklyAllocationWithSpent",
    "WeeklyBudgetsResult",
    "WeeklyCategorySummary",
    "WeekPeriod",
    "normalize_label",
    "spend_percentage",
    # Calendar models
    "CalendarFilters",
    "CalendarMode",
    "CalendarTotals",
    "DaySummary",
    "DayTransactionsResult",
    "HeatLevel",
    "HeatmapStats",
    "MonthAggregateResult",
    # Results
    "Available",
    "FeatureUnavailable",
    "Outcome",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
