"""
Audit Logger

DESIGN DECISION: Every write the engine makes is logged, including the
ones nobody asked for (carryover copies, pruned highlights).
This provides:
1. Traceability of automatic writes back to the read that caused them
2. Debugging capability when a budget "appears" in a new month
3. History of budget changes per owner

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (never breaks an accounting call)
- Supports correlation IDs to trace related events
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from period_accounting.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from period_accounting.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("period_accounting.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_allocation_upserted(
        self,
        owner_id: str,
        allocation_id: str,
        period: date,
        category_key: str,
        planned: Decimal,
        is_user_action: bool = True,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a monthly allocation write."""
        event = AuditEventBuilder.allocation_upserted(
            owner_id=owner_id,
            allocation_id=allocation_id,
            period=period.isoformat(),
            category_key=category_key,
            planned=str(planned),
            is_user_action=is_user_action,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_allocation_deleted(
        self,
        owner_id: str,
        allocation_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.allocation_deleted(
            owner_id=owner_id,
            allocation_id=allocation_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_allocations_copied(
        self,
        owner_id: str,
        from_period: date,
        to_period: date,
        count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.allocations_copied(
            owner_id=owner_id,
            from_period=from_period.isoformat(),
            to_period=to_period.isoformat(),
            count=count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_carryover_propagated(
        self,
        owner_id: str,
        period: date,
        category_keys: list[str],
        failed: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log the budgets copied into a period by carryover."""
        event = AuditEventBuilder.carryover_propagated(
            owner_id=owner_id,
            period=period.isoformat(),
            category_keys=category_keys,
            failed=failed,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_carryover_failed(
        self,
        owner_id: str,
        period: date,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.carryover_failed(
            owner_id=owner_id,
            period=period.isoformat(),
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_weekly_carryover_propagated(
        self,
        owner_id: str,
        week_starts: list[date],
        count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.weekly_carryover_propagated(
            owner_id=owner_id,
            week_starts=[w.isoformat() for w in week_starts],
            count=count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_weekly_allocation_upserted(
        self,
        owner_id: str,
        allocation_id: str,
        category_id: str,
        week_start: date,
        planned: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.weekly_allocation_upserted(
            owner_id=owner_id,
            allocation_id=allocation_id,
            category_id=category_id,
            week_start=week_start.isoformat(),
            planned=str(planned),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_weekly_allocation_deleted(
        self,
        owner_id: str,
        allocation_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.weekly_allocation_deleted(
            owner_id=owner_id,
            allocation_id=allocation_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_highlight_changed(
        self,
        owner_id: str,
        kind: str,
        budget_id: str,
        added: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a highlight being added or removed."""
        event = AuditEventBuilder.highlight_changed(
            owner_id=owner_id,
            kind=kind,
            budget_id=budget_id,
            added=added,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_highlight_limit_reached(
        self,
        owner_id: str,
        kind: str,
        budget_id: str,
        limit: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.highlight_limit_reached(
            owner_id=owner_id,
            kind=kind,
            budget_id=budget_id,
            limit=limit,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_highlights_pruned(
        self,
        owner_id: str,
        selection_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.highlights_pruned(
            owner_id=owner_id,
            selection_ids=selection_ids,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_store_failure(
        self,
        operation: str,
        error_message: str,
        owner_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a store read or write that failed."""
        event = AuditEventBuilder.store_failure(
            operation=operation,
            error_message=error_message,
            owner_id=owner_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of an engine call (e.g., a monthly listing).
    Pass it through all subsequent operations.
    """
    return uuid4()
