"""
Period Accounting Engine - Source Package

The budgeting core of a personal finance tracker. It turns dated
transaction records into monthly and weekly budget statuses, carries
flagged allocations into the next period, pins highlighted budgets and
builds calendar heatmaps.

DESIGN PRINCIPLES:
1. Recompute on read - spend totals are never stored
2. Fail early on bad input, degrade gracefully on optional enrichment
3. One parsing boundary per entity
4. Every write is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Period Accounting Team"
