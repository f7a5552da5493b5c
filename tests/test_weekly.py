"""Tests for weekly budget reconciliation."""

from datetime import date
from decimal import Decimal

import pytest

from conftest import OWNER, make_transaction
from period_accounting.audit import AuditLogger
from period_accounting.errors import StoreFailure, ValidationFailure
from period_accounting.ledger import (
    SpendAggregator,
    WeeklyBudgetReconciler,
    WeeklyCarryoverPropagator,
)
from period_accounting.ledger.weekly import parse_week_start, reconcile_week, week_label
from period_accounting.models import WeeklyAllocation
from period_accounting.models.audit import AuditEventType
from period_accounting.services.storage import InMemoryStore, StorageError


class WeeklyWritesDown(InMemoryStore):
    async def upsert_weekly_allocation(self, *args, **kwargs):
        raise StorageError("sheet unavailable")


@pytest.fixture
def reconciler(store, settings) -> WeeklyBudgetReconciler:
    return WeeklyBudgetReconciler(
        store,
        SpendAggregator(store),
        carryover=WeeklyCarryoverPropagator(store),
        settings=settings,
    )


class TestWeekHelpers:
    """Tests for the pure weekly helpers."""

    def test_parse_week_start(self):
        """Test that any date moves to its Monday."""
        assert parse_week_start("2024-02-29") == date(2024, 2, 26)
        assert parse_week_start(date(2024, 3, 3)) == date(2024, 2, 26)
        assert parse_week_start("2024-02-26T10:00:00") == date(2024, 2, 26)

    @pytest.mark.parametrize("value", [None, "", "   ", "next week", "2024-02-30"])
    def test_parse_week_start_rejects(self, value):
        """Test that non-dates are rejected."""
        with pytest.raises(ValidationFailure) as exc_info:
            parse_week_start(value)
        assert exc_info.value.field == "week_start"

    def test_week_label(self):
        """Test week labels."""
        assert week_label(2, date(2024, 2, 1)) == "Week 2 of February"

    def test_reconcile_week_spans_into_next_month(self):
        """Test that a straddling week counts all seven days but ends at the month end."""
        allocation = WeeklyAllocation(
            owner_id=OWNER,
            category_id="transport",
            week_start=date(2024, 2, 26),
            planned=Decimal("20"),
        )
        records = [
            make_transaction(date(2024, 2, 25), "7", category_id="transport"),
            make_transaction(date(2024, 2, 26), "10", category_id="transport"),
            make_transaction(date(2024, 3, 3), "15", category_id="transport"),
            make_transaction(date(2024, 3, 4), "100", category_id="transport"),
        ]

        row = reconcile_week(allocation, records, date(2024, 3, 1))

        assert row.week_end == date(2024, 2, 29)
        assert row.actual == Decimal("25")
        assert row.remaining == Decimal("-5")
        assert row.percentage == pytest.approx(1.25)


class TestListWeekly:
    """Tests for listing the weekly budgets of a month."""

    @pytest.mark.asyncio
    async def test_straddling_week(self, store, reconciler):
        """Test the last week of February 2024 against its transactions."""
        budget = await reconciler.upsert_weekly(
            OWNER, "transport", "2024-02-26", "50", category_name="Transport"
        )
        store.add_transactions(
            make_transaction(date(2024, 2, 25), "7", category_id="transport"),
            make_transaction(date(2024, 2, 26), "10", category_id="transport"),
            make_transaction(date(2024, 3, 3), "15", category_id="transport"),
            make_transaction(date(2024, 3, 4), "100", category_id="transport"),
        )

        result = await reconciler.list_weekly(OWNER, "2024-02")

        assert len(result.rows) == 1
        row = result.rows[0]
        assert row.allocation.id == budget.id
        assert row.week_start == date(2024, 2, 26)
        assert row.week_end == date(2024, 2, 29)
        assert row.actual == Decimal("25")
        assert row.remaining == Decimal("25")
        assert row.percentage == pytest.approx(0.5)

        summary = result.summary_by_category[0]
        assert summary.category_name == "Transport"
        assert summary.planned_total == Decimal("50")
        # calendar-month spend, not the week's
        assert summary.actual_total == Decimal("17")
        assert summary.remaining == Decimal("33")

    @pytest.mark.asyncio
    async def test_weeks_of_the_month(self, reconciler):
        """Test the week slots listed for February 2024."""
        result = await reconciler.list_weekly(OWNER, "2024-02")

        assert result.rows == []
        assert [(w.sequence, w.start, w.end) for w in result.weeks] == [
            (1, date(2024, 2, 5), date(2024, 2, 11)),
            (2, date(2024, 2, 12), date(2024, 2, 18)),
            (3, date(2024, 2, 19), date(2024, 2, 25)),
            (4, date(2024, 2, 26), date(2024, 2, 29)),
        ]
        assert result.weeks[0].label == "Week 1 of February"

    @pytest.mark.asyncio
    async def test_summary_sums_weeks_and_sorts_by_name(self, store, reconciler):
        """Test the per-category roll-up."""
        await reconciler.upsert_weekly(OWNER, "transport", "2024-02-05", "20", category_name="Transport")
        await reconciler.upsert_weekly(OWNER, "transport", "2024-02-12", "30")
        await reconciler.upsert_weekly(OWNER, "coffee", "2024-02-12", "10", category_name="coffee")
        await reconciler.upsert_weekly(OWNER, "misc", "2024-02-19", "5")
        store.add_transactions(make_transaction(date(2024, 2, 13), "4", category_id="coffee"))

        result = await reconciler.list_weekly(OWNER, "2024-02")

        names = [s.category_name for s in result.summary_by_category]
        assert names == ["coffee", "Transport", "Uncategorized"]
        transport = result.summary_by_category[1]
        assert transport.planned_total == Decimal("50")
        coffee = result.summary_by_category[0]
        assert coffee.actual_total == Decimal("4")
        assert coffee.percentage == pytest.approx(0.4)

    @pytest.mark.asyncio
    async def test_week_in_previous_month_is_not_listed(self, store, reconciler):
        """Test that a week belongs to the month of its Monday."""
        await store.upsert_weekly_allocation(WeeklyAllocation(
            owner_id=OWNER,
            category_id="transport",
            week_start=date(2024, 1, 29),
            planned=Decimal("20"),
        ))

        result = await reconciler.list_weekly(OWNER, "2024-02")

        assert result.rows == []

    @pytest.mark.asyncio
    async def test_carryover_from_the_week_before_the_month(self, store, reconciler):
        """Test that a flagged last week of January seeds February."""
        await store.upsert_weekly_allocation(WeeklyAllocation(
            owner_id=OWNER,
            category_id="transport",
            week_start=date(2024, 1, 29),
            planned=Decimal("20"),
            carryover_enabled=True,
        ))

        result = await reconciler.list_weekly(OWNER, "2024-02")

        assert [row.week_start for row in result.rows] == [
            date(2024, 2, 5),
            date(2024, 2, 12),
            date(2024, 2, 19),
            date(2024, 2, 26),
        ]

    @pytest.mark.asyncio
    async def test_transfers_and_other_owners_ignored(self, store, reconciler):
        """Test that only the owner's real expenses count."""
        await reconciler.upsert_weekly(OWNER, "transport", "2024-02-12", "50")
        store.add_transactions(
            make_transaction(date(2024, 2, 13), "10", category_id="transport"),
            make_transaction(date(2024, 2, 13), "99", category_id="transport", to_account_id="x"),
            make_transaction(date(2024, 2, 13), "99", category_id="transport", owner_id="other"),
        )

        result = await reconciler.list_weekly(OWNER, "2024-02")

        assert result.rows[0].actual == Decimal("10")


class TestUpsertWeekly:
    """Tests for weekly writes."""

    @pytest.mark.asyncio
    async def test_keyed_by_category_and_week(self, store, reconciler):
        """Test that the same category and week updates in place."""
        first = await reconciler.upsert_weekly(OWNER, "transport", "2024-02-26", "50")
        second = await reconciler.upsert_weekly(OWNER, "transport", "2024-02-29", "60")

        assert first.id == second.id
        assert second.planned == Decimal("60")
        assert len(store.weekly_allocations) == 1

    @pytest.mark.asyncio
    async def test_update_by_id_moves_week(self, store, reconciler):
        """Test editing an existing weekly budget by id."""
        budget = await reconciler.upsert_weekly(OWNER, "transport", "2024-02-05", "50")

        moved = await reconciler.upsert_weekly(
            OWNER, "transport", "2024-02-14", "50", allocation_id=budget.id
        )

        assert moved.id == budget.id
        assert moved.week_start == date(2024, 2, 12)
        assert moved.created_at == budget.created_at

    @pytest.mark.asyncio
    async def test_update_into_taken_week(self, reconciler):
        """Test that moving onto another budget's week is rejected."""
        await reconciler.upsert_weekly(OWNER, "transport", "2024-02-05", "50")
        other = await reconciler.upsert_weekly(OWNER, "transport", "2024-02-12", "50")

        with pytest.raises(ValidationFailure) as exc_info:
            await reconciler.upsert_weekly(
                OWNER, "transport", "2024-02-06", "50", allocation_id=other.id
            )
        assert exc_info.value.field == "week_start"

    @pytest.mark.asyncio
    async def test_update_of_unknown_id(self, reconciler):
        """Test that updating a missing budget is rejected."""
        with pytest.raises(ValidationFailure) as exc_info:
            await reconciler.upsert_weekly(
                OWNER, "transport", "2024-02-06", "50", allocation_id="missing"
            )
        assert exc_info.value.field == "id"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "category_id,week_start,planned",
        [
            ("", "2024-02-05", "10"),
            ("transport", "soon", "10"),
            ("transport", "2024-02-05", "-10"),
        ],
    )
    async def test_rejects_bad_input(self, reconciler, category_id, week_start, planned):
        """Test input validation."""
        with pytest.raises(ValidationFailure):
            await reconciler.upsert_weekly(OWNER, category_id, week_start, planned)

    @pytest.mark.asyncio
    async def test_write_failure(self, settings):
        """Test that a failed write surfaces as StoreFailure."""
        store = WeeklyWritesDown()
        reconciler = WeeklyBudgetReconciler(store, SpendAggregator(store), settings=settings)

        with pytest.raises(StoreFailure) as exc_info:
            await reconciler.upsert_weekly(OWNER, "transport", "2024-02-05", "10")
        assert exc_info.value.operation == "save weekly budget"

    @pytest.mark.asyncio
    async def test_delete_and_audit(self, store, settings):
        """Test deleting a weekly budget and its audit trail."""
        audit = AuditLogger(store)
        reconciler = WeeklyBudgetReconciler(
            store, SpendAggregator(store), audit=audit, settings=settings
        )
        budget = await reconciler.upsert_weekly(OWNER, "transport", "2024-02-05", "10")

        assert await reconciler.delete_weekly(OWNER, budget.id) is True
        assert await reconciler.delete_weekly(OWNER, budget.id) is False
        assert [e.event_type for e in store.events] == [
            AuditEventType.WEEKLY_ALLOCATION_UPSERTED,
            AuditEventType.WEEKLY_ALLOCATION_DELETED,
        ]
