"""
Tests for the Period Accounting Engine models

Test strategy:
1. Unit tests for individual components (models, validators)
2. Integration tests for flows on the in-memory store
3. No real store calls in tests (InMemoryStore only)
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

from period_accounting.models import (
    Available,
    BudgetKind,
    CalendarFilters,
    CalendarMode,
    CategoryAllocation,
    FeatureUnavailable,
    HighlightSelection,
    ToggleOutcome,
    ToggleResult,
    TransactionFilters,
    TransactionRecord,
    TransactionType,
    WeeklyAllocation,
    normalize_label,
    spend_percentage,
)
from period_accounting.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


def _record(**overrides) -> TransactionRecord:
    values = dict(
        id="tx-1",
        owner_id="owner-1",
        date=date(2024, 2, 10),
        type=TransactionType.EXPENSE,
        amount=Decimal("25.00"),
        category_id="food",
    )
    values.update(overrides)
    return TransactionRecord(**values)


class TestAllocationModels:
    """Tests for monthly and weekly allocation models."""

    def test_allocation_creation(self):
        """Test CategoryAllocation model creation."""
        allocation = CategoryAllocation(
            owner_id="owner-1",
            period=date(2024, 1, 1),
            category_id="food",
            category_name="Food",
            planned=Decimal("300"),
        )
        assert allocation.planned == Decimal("300")
        assert allocation.carryover_enabled is False
        assert allocation.rollover_in == Decimal("0")
        assert allocation.id

    def test_period_is_normalized_to_first_day(self):
        """Test that any day of the month is stored as the first."""
        allocation = CategoryAllocation(
            owner_id="owner-1",
            period=date(2024, 1, 17),
            category_id="food",
        )
        assert allocation.period == date(2024, 1, 1)

    def test_allocation_rejects_negative_planned(self):
        """Test that negative planned amounts are rejected."""
        with pytest.raises(ValueError):
            CategoryAllocation(
                owner_id="owner-1",
                period=date(2024, 1, 1),
                category_id="food",
                planned=Decimal("-1"),
            )

    def test_unassigned_envelope_needs_a_label(self):
        """Test that an allocation without category or name is rejected."""
        with pytest.raises(ValueError):
            CategoryAllocation(
                owner_id="owner-1",
                period=date(2024, 1, 1),
                category_id="   ",
            )

    def test_category_key(self):
        """Test category keys for assigned and unassigned allocations."""
        assigned = CategoryAllocation(
            owner_id="owner-1", period=date(2024, 1, 1), category_id="food"
        )
        envelope = CategoryAllocation(
            owner_id="owner-1", period=date(2024, 1, 1), category_name="  Gifts   Fund "
        )
        assert assigned.category_key == "food"
        assert envelope.category_id is None
        assert envelope.category_key == "label:gifts fund"

    def test_weekly_start_moves_to_monday(self):
        """Test that a weekly allocation's start becomes its Monday."""
        weekly = WeeklyAllocation(
            owner_id="owner-1",
            category_id="transport",
            week_start=date(2024, 2, 29),
        )
        assert weekly.week_start == date(2024, 2, 26)
        assert weekly.slot_key == ("owner-1", "transport", date(2024, 2, 26))

    def test_normalize_label(self):
        """Test label normalization."""
        assert normalize_label("  Eating   OUT ") == "eating out"
        assert normalize_label(None) == ""


class TestTransactionModels:
    """Tests for transaction records and filters."""

    def test_transfer_detection(self):
        """Test that transfers are recognized by type or destination."""
        assert _record(type=TransactionType.TRANSFER).is_transfer
        assert _record(to_account_id="savings").is_transfer
        assert not _record().is_transfer

    def test_safe_amount_of_non_finite(self):
        """Test that non-finite amounts count as zero."""
        broken = _record().model_copy(update={"amount": Decimal("NaN")})
        assert broken.safe_amount == Decimal("0")
        assert _record(amount=Decimal("12.5")).safe_amount == Decimal("12.5")

    def test_filters_exclude_transfers_and_deleted(self):
        """Test that default filters drop transfers and deleted rows."""
        filters = TransactionFilters()
        assert filters.matches(_record())
        assert not filters.matches(_record(to_account_id="savings"))
        assert not filters.matches(_record(deleted_at=datetime(2024, 2, 11, tzinfo=timezone.utc)))
        assert not filters.matches(_record(type=TransactionType.INCOME))

    def test_filters_by_amount_and_search(self):
        """Test amount bounds and case-insensitive search."""
        filters = TransactionFilters(
            min_amount=Decimal("10"),
            max_amount=Decimal("30"),
            search="  coffee ",
        )
        assert filters.search == "coffee"
        assert filters.matches(_record(merchant="Corner Coffee"))
        assert not filters.matches(_record(merchant="Corner Coffee", amount=Decimal("31")))
        assert not filters.matches(_record(note="groceries"))

    def test_calendar_filters_translate(self):
        """Test translation of calendar filters to store filters."""
        filters = CalendarFilters(
            mode=CalendarMode.ALL,
            category_ids=frozenset({"food"}),
            account_id="card",
        )
        query = filters.to_transaction_filters()
        assert query.types == frozenset({TransactionType.EXPENSE, TransactionType.INCOME})
        assert query.account_ids == frozenset({"card"})
        assert query.search is None

    def test_calendar_filters_reject_inverted_bounds(self):
        """Test that a maximum below the minimum is rejected."""
        with pytest.raises(ValueError):
            CalendarFilters(min_amount=Decimal("50"), max_amount=Decimal("10"))


class TestDerivedModels:
    """Tests for percentages, toggles and result types."""

    @pytest.mark.parametrize(
        "spent,planned,expected",
        [
            ("0", "100", 0.0),
            ("50", "100", 0.5),
            ("150", "100", 1.0),
            ("10", "0", 0.0),
            ("-5", "100", 0.0),
        ],
    )
    def test_spend_percentage_clamped(self, spent, planned, expected):
        """Test clamped percentages."""
        assert spend_percentage(Decimal(spent), Decimal(planned)) == expected

    def test_spend_percentage_unclamped(self):
        """Test that an unclamped ratio may exceed one."""
        assert spend_percentage(Decimal("150"), Decimal("100"), clamp=False) == 1.5

    def test_highlight_points_at(self):
        """Test matching a highlight against a budget."""
        selection = HighlightSelection(
            owner_id="owner-1", kind=BudgetKind.WEEKLY, budget_id="w-1"
        )
        assert selection.points_at(BudgetKind.WEEKLY, "w-1")
        assert not selection.points_at(BudgetKind.MONTHLY, "w-1")

    def test_toggle_result_highlighted(self):
        """Test the highlighted flag of a toggle result."""
        assert ToggleResult(outcome=ToggleOutcome.ADDED).highlighted
        assert not ToggleResult(outcome=ToggleOutcome.REMOVED).highlighted

    def test_result_availability(self):
        """Test that the two result kinds can be told apart."""
        available = Available[list[str]](value=[])
        unavailable = FeatureUnavailable(feature="highlights", message="missing")
        assert available.available and available.value == []
        assert not unavailable.available


class TestAuditModels:
    """Tests for audit models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.ALLOCATION_UPSERTED,
            description="Test event",
        )
        assert event.event_id is not None
        assert event.severity == AuditSeverity.INFO
        assert event.is_user_action is False

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        correlation_id = uuid4()
        event = AuditEvent(
            event_type=AuditEventType.STORE_FAILURE,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description="Store failure: load budgets",
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "store_failure"
        assert log_dict["severity"] == "error"
        assert log_dict["correlation_id"] == str(correlation_id)

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.HIGHLIGHTS_PRUNED,
            description="Pruned",
            details={"selection_ids": ["h-1"]},
        )
        row = event.to_sheets_row()
        assert len(row) == 12
        assert row[2] == "highlights_pruned"
        assert row[9] == '{"selection_ids": ["h-1"]}'
        assert row[11] == "False"

    def test_builder_carryover_is_automatic(self):
        """Test that carryover events are not user actions."""
        event = AuditEventBuilder.carryover_propagated(
            owner_id="owner-1",
            period="2024-02-01",
            category_keys=["food"],
            failed=0,
        )
        assert event.event_type == AuditEventType.CARRYOVER_PROPAGATED
        assert event.is_user_action is False
        assert event.severity == AuditSeverity.INFO

    def test_builder_partial_carryover_warns(self):
        """Test that failed carryover writes raise the severity."""
        event = AuditEventBuilder.carryover_propagated(
            owner_id="owner-1",
            period="2024-02-01",
            category_keys=["food"],
            failed=1,
        )
        assert event.severity == AuditSeverity.WARNING

    def test_builder_highlight_changed(self):
        """Test highlight events for both directions."""
        added = AuditEventBuilder.highlight_changed("owner-1", "monthly", "b-1", added=True)
        removed = AuditEventBuilder.highlight_changed("owner-1", "monthly", "b-1", added=False)
        assert added.event_type == AuditEventType.HIGHLIGHT_ADDED
        assert removed.event_type == AuditEventType.HIGHLIGHT_REMOVED
        assert added.entity_id == "b-1"
