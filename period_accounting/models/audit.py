"""
Audit Models for the Period Accounting Engine

Every write the engine performs - whether a user asked for it or the
carryover propagator did it on its own - is logged for audit purposes.
This makes automatic copies traceable back to the read that caused them.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from period_accounting.models.budget import utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Monthly allocations
    ALLOCATION_UPSERTED = "allocation_upserted"
    ALLOCATION_DELETED = "allocation_deleted"
    ALLOCATIONS_COPIED = "allocations_copied"

    # Carryover
    CARRYOVER_PROPAGATED = "carryover_propagated"
    CARRYOVER_FAILED = "carryover_failed"
    WEEKLY_CARRYOVER_PROPAGATED = "weekly_carryover_propagated"

    # Weekly allocations
    WEEKLY_ALLOCATION_UPSERTED = "weekly_allocation_upserted"
    WEEKLY_ALLOCATION_DELETED = "weekly_allocation_deleted"

    # Highlights
    HIGHLIGHT_ADDED = "highlight_added"
    HIGHLIGHT_REMOVED = "highlight_removed"
    HIGHLIGHT_LIMIT_REACHED = "highlight_limit_reached"
    HIGHLIGHTS_PRUNED = "highlights_pruned"

    # System events
    STORE_FAILURE = "store_failure"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Whose data and which entity
    owner_id: Optional[str] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'allocation', 'weekly_allocation', 'highlight')"
    )
    entity_id: Optional[str] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="False for writes the engine made on its own (carryover)"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": self.owner_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, owner_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.owner_id or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.allocation_upserted(allocation, user_action=True)
        event = AuditEventBuilder.highlight_added(owner_id, kind, budget_id)
    """

    @staticmethod
    def allocation_upserted(
        owner_id: str,
        allocation_id: str,
        period: str,
        category_key: str,
        planned: str,
        is_user_action: bool = True,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOCATION_UPSERTED,
            owner_id=owner_id,
            entity_type="allocation",
            entity_id=allocation_id,
            correlation_id=correlation_id,
            description=f"Budget for {category_key} in {period} set to {planned}",
            details={
                "period": period,
                "category_key": category_key,
                "planned": planned,
            },
            is_user_action=is_user_action,
        )

    @staticmethod
    def allocation_deleted(
        owner_id: str,
        allocation_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOCATION_DELETED,
            owner_id=owner_id,
            entity_type="allocation",
            entity_id=allocation_id,
            correlation_id=correlation_id,
            description="Budget deleted",
            is_user_action=True,
        )

    @staticmethod
    def allocations_copied(
        owner_id: str,
        from_period: str,
        to_period: str,
        count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOCATIONS_COPIED,
            owner_id=owner_id,
            entity_type="allocation",
            correlation_id=correlation_id,
            description=f"Copied {count} budgets from {from_period} to {to_period}",
            details={
                "from_period": from_period,
                "to_period": to_period,
                "count": count,
            },
            is_user_action=True,
        )

    @staticmethod
    def carryover_propagated(
        owner_id: str,
        period: str,
        category_keys: list[str],
        failed: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CARRYOVER_PROPAGATED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            owner_id=owner_id,
            entity_type="allocation",
            correlation_id=correlation_id,
            description=f"Carried {len(category_keys)} budgets into {period}",
            details={
                "period": period,
                "category_keys": category_keys,
                "failed_writes": failed,
            },
        )

    @staticmethod
    def carryover_failed(
        owner_id: str,
        period: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CARRYOVER_FAILED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="allocation",
            correlation_id=correlation_id,
            description=f"Carryover into {period} skipped; serving unpropagated budgets",
            details={"period": period},
            error_message=error_message,
        )

    @staticmethod
    def weekly_carryover_propagated(
        owner_id: str,
        week_starts: list[str],
        count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WEEKLY_CARRYOVER_PROPAGATED,
            owner_id=owner_id,
            entity_type="weekly_allocation",
            correlation_id=correlation_id,
            description=f"Carried {count} weekly budgets forward",
            details={
                "week_starts": week_starts,
                "count": count,
            },
        )

    @staticmethod
    def weekly_allocation_upserted(
        owner_id: str,
        allocation_id: str,
        category_id: str,
        week_start: str,
        planned: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WEEKLY_ALLOCATION_UPSERTED,
            owner_id=owner_id,
            entity_type="weekly_allocation",
            entity_id=allocation_id,
            correlation_id=correlation_id,
            description=f"Weekly budget for week of {week_start} set to {planned}",
            details={
                "category_id": category_id,
                "week_start": week_start,
                "planned": planned,
            },
            is_user_action=True,
        )

    @staticmethod
    def weekly_allocation_deleted(
        owner_id: str,
        allocation_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WEEKLY_ALLOCATION_DELETED,
            owner_id=owner_id,
            entity_type="weekly_allocation",
            entity_id=allocation_id,
            correlation_id=correlation_id,
            description="Weekly budget deleted",
            is_user_action=True,
        )

    @staticmethod
    def highlight_changed(
        owner_id: str,
        kind: str,
        budget_id: str,
        added: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.HIGHLIGHT_ADDED
                if added
                else AuditEventType.HIGHLIGHT_REMOVED
            ),
            owner_id=owner_id,
            entity_type="highlight",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} budget {'pinned' if added else 'unpinned'}",
            details={"kind": kind},
            is_user_action=True,
        )

    @staticmethod
    def highlight_limit_reached(
        owner_id: str,
        kind: str,
        budget_id: str,
        limit: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.HIGHLIGHT_LIMIT_REACHED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="highlight",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Highlight refused: limit of {limit} reached",
            details={"kind": kind, "limit": limit},
            is_user_action=True,
        )

    @staticmethod
    def highlights_pruned(
        owner_id: str,
        selection_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.HIGHLIGHTS_PRUNED,
            owner_id=owner_id,
            entity_type="highlight",
            correlation_id=correlation_id,
            description=f"Removed {len(selection_ids)} highlights of deleted budgets",
            details={"selection_ids": selection_ids},
        )

    @staticmethod
    def store_failure(
        operation: str,
        error_message: str,
        owner_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_FAILURE,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Store failure: {operation}",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
