"""
Accounting components.

Each component receives its store handles explicitly; see
period_accounting.orchestrator for the wiring.
"""

from period_accounting.ledger.calendar import (
    CalendarAggregator,
    classify_heat,
    heat_threshold,
)
from period_accounting.ledger.carryover import (
    CarryoverPropagator,
    WeeklyCarryoverPropagator,
)
from period_accounting.ledger.highlights import HighlightSelector
from period_accounting.ledger.monthly import MonthlyBudgetLedger, build_summary
from period_accounting.ledger.spend import SpendAggregator, sum_records_by_category
from period_accounting.ledger.weekly import WeeklyBudgetReconciler

__all__ = [
    "CalendarAggregator",
    "CarryoverPropagator",
    "HighlightSelector",
    "MonthlyBudgetLedger",
    "SpendAggregator",
    "WeeklyBudgetReconciler",
    "WeeklyCarryoverPropagator",
    "build_summary",
    "classify_heat",
    "heat_threshold",
    "sum_records_by_category",
]
