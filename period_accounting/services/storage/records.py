"""
Row Normalization Boundary

Sheet rows arrive as dicts keyed by header. Their column names drifted
between schema generations (`planned` / `amount_planned`, `note` /
`notes`, `date` / `transaction_date`, ...), so every fallback is resolved
here, once, and the rest of the engine only sees typed models.

Rows that cannot be turned into an entity raise RecordParseError. List
operations skip those rows and log them.
"""

import json
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from period_accounting.models.budget import (
    BudgetKind,
    CategoryAllocation,
    HighlightSelection,
    TransactionRecord,
    TransactionType,
    WeeklyAllocation,
)
from period_accounting.models.audit import AuditEvent, AuditEventType, AuditSeverity


# Column order of each worksheet
BUDGET_COLUMNS = [
    "id",
    "owner_id",
    "period",
    "category_id",
    "category_name",
    "planned",
    "carryover_enabled",
    "rollover_in",
    "rollover_out",
    "note",
    "created_at",
    "updated_at",
]

WEEKLY_BUDGET_COLUMNS = [
    "id",
    "owner_id",
    "category_id",
    "category_name",
    "week_start",
    "planned",
    "carryover_enabled",
    "note",
    "created_at",
    "updated_at",
]

TRANSACTION_COLUMNS = [
    "id",
    "owner_id",
    "date",
    "type",
    "amount",
    "category_id",
    "account_id",
    "to_account_id",
    "note",
    "title",
    "merchant",
    "deleted_at",
]

HIGHLIGHT_COLUMNS = [
    "id",
    "owner_id",
    "kind",
    "budget_id",
    "created_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "owner_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

_TRUE_STRINGS = {"true", "1", "yes", "y", "on"}


class RecordParseError(ValueError):
    """A stored row could not be converted into an entity."""

    def __init__(self, entity: str, message: str, row: Optional[dict] = None):
        self.entity = entity
        self.row_id = (row or {}).get("id")
        super().__init__(f"Malformed {entity} row {self.row_id!r}: {message}")


# =============================================================================
# FIELD HELPERS
# =============================================================================

def _first(row: dict, *names: str) -> Any:
    """Value of the first column that is present and not blank."""
    for name in names:
        value = row.get(name)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _text(row: dict, *names: str) -> Optional[str]:
    value = _first(row, *names)
    if value is None:
        return None
    return str(value).strip()


def to_amount(value: Any) -> Decimal:
    """
    Parse a stored amount.

    Missing, unparseable and non-finite values become zero.
    """
    if value is None or isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, Decimal):
        amount = value
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            return Decimal("0")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            return Decimal("0")
    return amount if amount.is_finite() else Decimal("0")


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_STRINGS


def to_date(value: Any) -> Optional[date]:
    """Parse a date column; timestamps are converted to UTC first."""
    if value is None:
        return None
    if isinstance(value, datetime):
        stamp = value if value.tzinfo is None else value.astimezone(timezone.utc)
        return stamp.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    if len(text) > 10:
        stamp = to_datetime(text)
        return stamp.astimezone(timezone.utc).date() if stamp else None
    if len(text) == 7:
        # YYYY-MM period columns
        text = f"{text}-01"
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def to_datetime(value: Any) -> Optional[datetime]:
    """Parse a timestamp column. Naive values are taken as UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        stamp = value
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            stamp = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp


def _timestamps(row: dict) -> dict:
    stamps = {}
    created = to_datetime(_first(row, "created_at"))
    updated = to_datetime(_first(row, "updated_at"))
    if created:
        stamps["created_at"] = created
    if updated or created:
        stamps["updated_at"] = updated or created
    return stamps


def _require_id(entity: str, row: dict) -> str:
    value = _text(row, "id")
    if not value:
        raise RecordParseError(entity, "missing id", row)
    return value


# =============================================================================
# PARSERS
# =============================================================================

def parse_allocation(row: dict) -> CategoryAllocation:
    """Build a CategoryAllocation from a budgets row."""
    allocation_id = _require_id("budget", row)
    period = to_date(_first(row, "period", "period_month", "month"))
    if period is None:
        raise RecordParseError("budget", "missing or invalid period", row)

    carry = _first(row, "carryover_enabled", "carry_rule")
    if isinstance(carry, str) and carry.strip().lower() in ("carry", "carryover"):
        carryover_enabled = True
    else:
        carryover_enabled = to_bool(carry)

    try:
        return CategoryAllocation(
            id=allocation_id,
            owner_id=_text(row, "owner_id", "user_id") or "",
            period=period,
            category_id=_text(row, "category_id"),
            category_name=_text(row, "category_name", "name", "label"),
            planned=abs(to_amount(_first(row, "planned", "amount_planned"))),
            carryover_enabled=carryover_enabled,
            rollover_in=to_amount(_first(row, "rollover_in")),
            rollover_out=to_amount(_first(row, "rollover_out")),
            note=_text(row, "note", "notes"),
            **_timestamps(row),
        )
    except ValueError as e:
        raise RecordParseError("budget", str(e), row) from e


def parse_weekly_allocation(row: dict) -> WeeklyAllocation:
    """Build a WeeklyAllocation from a weekly budgets row."""
    allocation_id = _require_id("weekly budget", row)
    week_start = to_date(_first(row, "week_start"))
    if week_start is None:
        raise RecordParseError("weekly budget", "missing or invalid week_start", row)

    try:
        return WeeklyAllocation(
            id=allocation_id,
            owner_id=_text(row, "owner_id", "user_id") or "",
            category_id=_text(row, "category_id") or "",
            category_name=_text(row, "category_name", "name"),
            week_start=week_start,
            planned=abs(to_amount(_first(row, "planned", "amount_planned"))),
            carryover_enabled=to_bool(_first(row, "carryover_enabled")),
            note=_text(row, "note", "notes"),
            **_timestamps(row),
        )
    except ValueError as e:
        raise RecordParseError("weekly budget", str(e), row) from e


def parse_transaction(row: dict) -> TransactionRecord:
    """
    Build a TransactionRecord from a transactions row.

    Income and expense amounts are stored as magnitudes. Unknown types
    are rejected rather than guessed.
    """
    transaction_id = _require_id("transaction", row)
    day = to_date(_first(row, "date", "transaction_date"))
    if day is None:
        raise RecordParseError("transaction", "missing or invalid date", row)

    raw_type = (_text(row, "type") or "").lower()
    try:
        kind = TransactionType(raw_type)
    except ValueError:
        raise RecordParseError("transaction", f"unknown type {raw_type!r}", row)

    amount = to_amount(_first(row, "amount"))
    if kind != TransactionType.TRANSFER:
        amount = abs(amount)

    try:
        return TransactionRecord(
            id=transaction_id,
            owner_id=_text(row, "owner_id", "user_id") or "",
            date=day,
            type=kind,
            amount=amount,
            category_id=_text(row, "category_id"),
            account_id=_text(row, "account_id"),
            to_account_id=_text(row, "to_account_id"),
            note=_text(row, "note", "notes"),
            title=_text(row, "title"),
            merchant=_text(row, "merchant", "merchant_name"),
            deleted_at=to_datetime(_first(row, "deleted_at")),
        )
    except ValueError as e:
        raise RecordParseError("transaction", str(e), row) from e


def parse_highlight(row: dict) -> HighlightSelection:
    """Build a HighlightSelection from a highlights row."""
    selection_id = _require_id("highlight", row)
    raw_kind = (_text(row, "kind", "budget_type") or "").lower()
    try:
        kind = BudgetKind(raw_kind)
    except ValueError:
        raise RecordParseError("highlight", f"unknown kind {raw_kind!r}", row)

    created_at = to_datetime(_first(row, "created_at"))
    try:
        return HighlightSelection(
            id=selection_id,
            owner_id=_text(row, "owner_id", "user_id") or "",
            kind=kind,
            budget_id=_text(row, "budget_id") or "",
            **({"created_at": created_at} if created_at else {}),
        )
    except ValueError as e:
        raise RecordParseError("highlight", str(e), row) from e


def parse_audit_event(row: dict) -> AuditEvent:
    """Build an AuditEvent from an audit log row."""
    try:
        details_json = _text(row, "details_json")
        correlation_id = _text(row, "correlation_id")
        return AuditEvent(
            event_id=_text(row, "event_id"),
            timestamp=to_datetime(_first(row, "timestamp")),
            event_type=AuditEventType(_text(row, "event_type")),
            severity=AuditSeverity(_text(row, "severity") or "info"),
            owner_id=_text(row, "owner_id"),
            entity_type=_text(row, "entity_type"),
            entity_id=_text(row, "entity_id"),
            correlation_id=correlation_id or None,
            description=_text(row, "description") or "",
            details=json.loads(details_json) if details_json else {},
            error_message=_text(row, "error_message"),
            is_user_action=to_bool(_first(row, "is_user_action")),
        )
    except (ValueError, TypeError) as e:
        raise RecordParseError("audit event", str(e), row) from e


# =============================================================================
# ROW WRITERS
# =============================================================================

def _iso(value: Optional[date]) -> str:
    return value.isoformat() if value else ""


def allocation_to_row(allocation: CategoryAllocation) -> list:
    """Convert an allocation to a row in BUDGET_COLUMNS order."""
    return [
        allocation.id,
        allocation.owner_id,
        allocation.period.isoformat(),
        allocation.category_id or "",
        allocation.category_name or "",
        str(allocation.planned),
        str(allocation.carryover_enabled),
        str(allocation.rollover_in),
        str(allocation.rollover_out),
        allocation.note or "",
        _iso(allocation.created_at),
        _iso(allocation.updated_at),
    ]


def weekly_allocation_to_row(allocation: WeeklyAllocation) -> list:
    """Convert a weekly allocation to a row in WEEKLY_BUDGET_COLUMNS order."""
    return [
        allocation.id,
        allocation.owner_id,
        allocation.category_id,
        allocation.category_name or "",
        allocation.week_start.isoformat(),
        str(allocation.planned),
        str(allocation.carryover_enabled),
        allocation.note or "",
        _iso(allocation.created_at),
        _iso(allocation.updated_at),
    ]


def highlight_to_row(selection: HighlightSelection) -> list:
    """Convert a highlight to a row in HIGHLIGHT_COLUMNS order."""
    return [
        selection.id,
        selection.owner_id,
        selection.kind.value,
        selection.budget_id,
        _iso(selection.created_at),
    ]
