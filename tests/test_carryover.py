"""Tests for monthly and weekly carryover propagation."""

from datetime import date
from decimal import Decimal

import pytest

from conftest import OWNER
from period_accounting.audit import AuditLogger
from period_accounting.ledger import (
    CarryoverPropagator,
    MonthlyBudgetLedger,
    SpendAggregator,
    WeeklyCarryoverPropagator,
)
from period_accounting.models import CategoryAllocation, WeeklyAllocation
from period_accounting.models.audit import AuditEventType, AuditSeverity
from period_accounting.services.storage import InMemoryStore, StorageError


JANUARY = date(2024, 1, 1)
FEBRUARY = date(2024, 2, 1)


class PreviousPeriodDown(InMemoryStore):
    """Reads of January fail; everything else works."""

    async def list_allocations(self, owner_id, period):
        if period == JANUARY:
            raise StorageError("quota exceeded")
        return await super().list_allocations(owner_id, period)


class RejectsCategory(InMemoryStore):
    """Writes of one category fail."""

    def __init__(self, category_id: str):
        super().__init__()
        self.rejected = category_id

    async def upsert_allocation(self, allocation):
        if allocation.category_id == self.rejected:
            raise StorageError("write refused")
        return await super().upsert_allocation(allocation)


class WeeklyDown(InMemoryStore):
    async def list_weekly_allocations(self, *args, **kwargs):
        raise StorageError("sheet unavailable")


def seed_january(store: InMemoryStore) -> None:
    store.allocations.update({
        a.id: a
        for a in (
            CategoryAllocation(
                owner_id=OWNER,
                period=JANUARY,
                category_id="food",
                category_name="Food",
                planned=Decimal("300"),
                carryover_enabled=True,
                note="groceries",
            ),
            CategoryAllocation(
                owner_id=OWNER,
                period=JANUARY,
                category_id="rent",
                planned=Decimal("900"),
            ),
        )
    })


def make_ledger(store: InMemoryStore, audit: AuditLogger = None) -> MonthlyBudgetLedger:
    return MonthlyBudgetLedger(
        store,
        SpendAggregator(store),
        carryover=CarryoverPropagator(store, audit),
        audit=audit,
    )


class TestMonthlyCarryover:
    """Tests for copying flagged budgets into the next month."""

    @pytest.mark.asyncio
    async def test_flagged_budget_is_copied(self, store):
        """Test that a flagged January budget appears in February."""
        seed_january(store)

        february = await make_ledger(store).list_allocations(OWNER, "2024-02")

        assert len(february) == 1
        copy = february[0]
        assert copy.category_id == "food"
        assert copy.period == FEBRUARY
        assert copy.planned == Decimal("300")
        assert copy.carryover_enabled is True
        assert copy.note == "groceries"
        assert copy.category_name == "Food"
        assert copy.rollover_in == Decimal("0")

    @pytest.mark.asyncio
    async def test_propagation_is_idempotent(self, store):
        """Test that listing twice creates one copy."""
        seed_january(store)
        ledger = make_ledger(store)

        await ledger.list_allocations(OWNER, "2024-02")
        again = await ledger.list_allocations(OWNER, "2024-02")

        assert len(again) == 1
        assert len(store.allocations) == 3

    @pytest.mark.asyncio
    async def test_existing_budget_is_not_overwritten(self, store):
        """Test that a category already budgeted in February keeps its amount."""
        seed_january(store)
        ledger = make_ledger(store)
        await ledger.upsert_allocation(OWNER, "2024-02", "food", "120")

        february = await ledger.list_allocations(OWNER, "2024-02")

        assert [(a.category_id, a.planned) for a in february] == [("food", Decimal("120"))]

    @pytest.mark.asyncio
    async def test_only_the_previous_month_is_a_source(self, store):
        """Test that March does not copy from January when February is empty."""
        seed_january(store)

        march = await make_ledger(store).list_allocations(OWNER, "2024-03")

        assert march == []

    @pytest.mark.asyncio
    async def test_copies_chain_month_to_month(self, store):
        """Test that a copy carries on into the month after."""
        seed_january(store)
        ledger = make_ledger(store)

        await ledger.list_allocations(OWNER, "2024-02")
        march = await ledger.list_allocations(OWNER, "2024-03")

        assert [a.category_id for a in march] == ["food"]

    @pytest.mark.asyncio
    async def test_year_boundary(self, store):
        """Test that December carries into January of the next year."""
        await store.upsert_allocation(CategoryAllocation(
            owner_id=OWNER,
            period=date(2023, 12, 1),
            category_id="gifts",
            planned=Decimal("200"),
            carryover_enabled=True,
        ))

        january = await make_ledger(store).list_allocations(OWNER, "2024-01")

        assert [a.category_id for a in january] == ["gifts"]

    @pytest.mark.asyncio
    async def test_envelopes_carry_by_label(self, store):
        """Test that unassigned envelopes are carried by their label."""
        await store.upsert_allocation(CategoryAllocation(
            owner_id=OWNER,
            period=JANUARY,
            category_name="Holiday",
            planned=Decimal("75"),
            carryover_enabled=True,
        ))

        february = await make_ledger(store).list_allocations(OWNER, "2024-02")

        assert [a.category_key for a in february] == ["label:holiday"]

    @pytest.mark.asyncio
    async def test_propagation_is_audited_as_automatic(self, store):
        """Test that carryover writes are audited and not user actions."""
        seed_january(store)

        await make_ledger(store, AuditLogger(store)).list_allocations(OWNER, "2024-02")

        assert [e.event_type for e in store.events] == [AuditEventType.CARRYOVER_PROPAGATED]
        assert store.events[0].is_user_action is False
        assert store.events[0].details["category_keys"] == ["food"]


class TestCarryoverFailures:
    """Tests for carryover degrading instead of failing the read."""

    @pytest.mark.asyncio
    async def test_previous_period_failure_returns_current(self):
        """Test that a failed read of January still lists February."""
        store = PreviousPeriodDown()
        await store.upsert_allocation(CategoryAllocation(
            owner_id=OWNER, period=FEBRUARY, category_id="rent", planned=Decimal("900")
        ))

        february = await make_ledger(store, AuditLogger(store)).list_allocations(OWNER, "2024-02")

        assert [a.category_id for a in february] == ["rent"]
        assert [e.event_type for e in store.events] == [AuditEventType.CARRYOVER_FAILED]
        assert store.events[0].error_message == "quota exceeded"

    @pytest.mark.asyncio
    async def test_try_enrich_reports_store_errors(self):
        """Test that the lower-level call lets the store error through."""
        propagator = CarryoverPropagator(PreviousPeriodDown())
        with pytest.raises(StorageError):
            await propagator.try_enrich(OWNER, FEBRUARY, [])

    @pytest.mark.asyncio
    async def test_try_enrich_without_copies(self, store):
        """Test that nothing to copy gives None."""
        assert await CarryoverPropagator(store).try_enrich(OWNER, FEBRUARY, []) is None

    @pytest.mark.asyncio
    async def test_partial_write_failure(self):
        """Test that one failed copy does not stop the others."""
        store = RejectsCategory("food")
        seed_january(store)
        await store.upsert_allocation(CategoryAllocation(
            owner_id=OWNER,
            period=JANUARY,
            category_id="fuel",
            planned=Decimal("60"),
            carryover_enabled=True,
        ))

        february = await make_ledger(store, AuditLogger(store)).list_allocations(OWNER, "2024-02")

        assert [a.category_id for a in february] == ["fuel"]
        assert store.events[0].severity == AuditSeverity.WARNING
        assert store.events[0].details["failed_writes"] == 1


def weekly(category_id: str, week_start: date, carry: bool = True, planned: str = "40") -> WeeklyAllocation:
    return WeeklyAllocation(
        owner_id=OWNER,
        category_id=category_id,
        week_start=week_start,
        planned=Decimal(planned),
        carryover_enabled=carry,
    )


class TestWeeklyCarryover:
    """Tests for carrying weekly budgets forward."""

    @pytest.mark.asyncio
    async def test_chains_through_the_range(self, store):
        """Test that a flagged week is carried into every following week."""
        await store.upsert_weekly_allocation(weekly("transport", date(2024, 2, 5)))

        created = await WeeklyCarryoverPropagator(store).propagate(
            OWNER, date(2024, 2, 5), date(2024, 3, 1)
        )

        assert created == 3
        weeks = await store.list_weekly_allocations(OWNER, date(2024, 2, 1), date(2024, 3, 31))
        assert [w.week_start for w in weeks] == [
            date(2024, 2, 5),
            date(2024, 2, 12),
            date(2024, 2, 19),
            date(2024, 2, 26),
        ]
        assert all(w.planned == Decimal("40") and w.carryover_enabled for w in weeks)

    @pytest.mark.asyncio
    async def test_second_pass_creates_nothing(self, store):
        """Test that propagation is idempotent."""
        await store.upsert_weekly_allocation(weekly("transport", date(2024, 2, 5)))
        propagator = WeeklyCarryoverPropagator(store)

        await propagator.propagate(OWNER, date(2024, 2, 5), date(2024, 3, 1))
        assert await propagator.propagate(OWNER, date(2024, 2, 5), date(2024, 3, 1)) == 0

    @pytest.mark.asyncio
    async def test_existing_week_is_kept(self, store):
        """Test that a week with its own budget is not overwritten."""
        await store.upsert_weekly_allocation(weekly("transport", date(2024, 2, 5)))
        await store.upsert_weekly_allocation(
            weekly("transport", date(2024, 2, 12), carry=False, planned="10")
        )

        created = await WeeklyCarryoverPropagator(store).propagate(
            OWNER, date(2024, 2, 5), date(2024, 3, 1)
        )

        # the unflagged week 2 stops the chain
        assert created == 0
        weeks = await store.list_weekly_allocations(OWNER, date(2024, 2, 1), date(2024, 3, 1))
        assert [(w.week_start, w.planned) for w in weeks] == [
            (date(2024, 2, 5), Decimal("40")),
            (date(2024, 2, 12), Decimal("10")),
        ]

    @pytest.mark.asyncio
    async def test_unflagged_is_not_carried(self, store):
        """Test that weeks without the flag stay put."""
        await store.upsert_weekly_allocation(weekly("transport", date(2024, 2, 5), carry=False))

        assert await WeeklyCarryoverPropagator(store).propagate(
            OWNER, date(2024, 2, 5), date(2024, 3, 1)
        ) == 0

    @pytest.mark.asyncio
    async def test_disabled(self, store):
        """Test that a disabled propagator writes nothing."""
        await store.upsert_weekly_allocation(weekly("transport", date(2024, 2, 5)))

        created = await WeeklyCarryoverPropagator(store, enabled=False).propagate(
            OWNER, date(2024, 2, 5), date(2024, 3, 1)
        )

        assert created == 0
        assert len(store.weekly_allocations) == 1

    @pytest.mark.asyncio
    async def test_store_failure_counts_as_zero(self):
        """Test that a failing weekly store does not raise."""
        created = await WeeklyCarryoverPropagator(WeeklyDown()).propagate(
            OWNER, date(2024, 2, 5), date(2024, 3, 1)
        )
        assert created == 0

    @pytest.mark.asyncio
    async def test_audited(self, store):
        """Test that weekly carryover writes are audited."""
        await store.upsert_weekly_allocation(weekly("transport", date(2024, 2, 5)))

        await WeeklyCarryoverPropagator(store, AuditLogger(store)).propagate(
            OWNER, date(2024, 2, 5), date(2024, 2, 20)
        )

        assert [e.event_type for e in store.events] == [
            AuditEventType.WEEKLY_CARRYOVER_PROPAGATED
        ]
        assert store.events[0].details["week_starts"] == ["2024-02-12", "2024-02-19"]
