"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the hosted storage backend because:
1. Users can view and fix their budgets directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions or unique constraints (upserts look the row up first)
- Limited query capabilities (we filter in Python)

Rows are read with `get_all_records()` and converted by
services.storage.records, so header order in the sheet does not matter
for reads. Writes use the column order defined there.
"""

from datetime import date
from typing import Callable, Iterable, Optional, TypeVar
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from period_accounting.config import get_settings
from period_accounting.models.audit import AuditEvent
from period_accounting.models.budget import (
    CategoryAllocation,
    HighlightSelection,
    TransactionFilters,
    TransactionRecord,
    WeeklyAllocation,
    utcnow,
)
from period_accounting.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    CapacityError,
    ConnectionError,
    DuplicateError,
    FeatureUnavailableError,
    HighlightStorageInterface,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
    WeeklyBudgetStorageInterface,
)
from period_accounting.services.storage.records import (
    AUDIT_COLUMNS,
    BUDGET_COLUMNS,
    HIGHLIGHT_COLUMNS,
    TRANSACTION_COLUMNS,
    WEEKLY_BUDGET_COLUMNS,
    RecordParseError,
    allocation_to_row,
    highlight_to_row,
    parse_allocation,
    parse_audit_event,
    parse_highlight,
    parse_transaction,
    parse_weekly_allocation,
    weekly_allocation_to_row,
)


logger = structlog.get_logger(__name__)

M = TypeVar("M")


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(
        self,
        title: str,
        columns: list[str],
        create: bool = True,
        rows: int = 1000,
    ) -> Optional[gspread.Worksheet]:
        """
        Get a worksheet by title.

        When it does not exist, it is created with a header row if
        `create` is set; otherwise None is returned.
        """
        spreadsheet = self.get_spreadsheet()
        try:
            return spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            if not create:
                return None
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
            return sheet

    def get_budgets_sheet(self) -> gspread.Worksheet:
        """Get or create the monthly Budgets worksheet."""
        return self.get_worksheet(self._settings.budgets_sheet_name, BUDGET_COLUMNS)

    def get_weekly_budgets_sheet(self) -> gspread.Worksheet:
        """Get or create the WeeklyBudgets worksheet."""
        return self.get_worksheet(
            self._settings.weekly_budgets_sheet_name, WEEKLY_BUDGET_COLUMNS
        )

    def get_transactions_sheet(self) -> gspread.Worksheet:
        """Get the Transactions worksheet. The engine never creates it."""
        sheet = self.get_worksheet(
            self._settings.transactions_sheet_name,
            TRANSACTION_COLUMNS,
            create=False,
        )
        if sheet is None:
            raise NotFoundError(
                f"Transactions sheet not found: {self._settings.transactions_sheet_name}"
            )
        return sheet

    def get_highlights_sheet(self) -> gspread.Worksheet:
        """
        Get the Highlights worksheet.

        Highlights are an optional feature: a spreadsheet without this
        sheet reports the feature as unavailable instead of creating it.
        """
        sheet = self.get_worksheet(
            self._settings.highlights_sheet_name,
            HIGHLIGHT_COLUMNS,
            create=False,
        )
        if sheet is None:
            raise FeatureUnavailableError(
                "highlights",
                f"Sheet '{self._settings.highlights_sheet_name}' does not exist",
            )
        return sheet

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self.get_worksheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


def _load_rows(
    sheet: gspread.Worksheet,
    parser: Callable[[dict], M],
    entity: str,
) -> list[tuple[int, M]]:
    """
    Parse every data row of a sheet.

    Returns (sheet row number, model) pairs; row 1 is the header.
    Malformed rows are skipped.
    """
    parsed = []
    for idx, record in enumerate(sheet.get_all_records(), start=2):
        if not any(str(value).strip() for value in record.values()):
            continue
        try:
            parsed.append((idx, parser(record)))
        except RecordParseError as e:
            logger.warning("malformed_row_skipped", entity=entity, row=idx, error=str(e))
    return parsed


def _write_row(sheet: gspread.Worksheet, idx: int, row: list) -> None:
    sheet.update(range_name=f"A{idx}", values=[row], value_input_option="RAW")


class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """
    Read-only access to the Transactions worksheet.

    The sheet is maintained by the rest of the application; the engine
    only reads it.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    async def find_transactions(
        self,
        owner_id: str,
        date_from: date,
        date_to: date,
        filters: Optional[TransactionFilters] = None,
    ) -> list[TransactionRecord]:
        """Find transactions in [date_from, date_to) matching the filters."""
        filters = filters or TransactionFilters()
        try:
            sheet = self._client.get_transactions_sheet()
            rows = _load_rows(sheet, parse_transaction, "transaction")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

        found = [
            record
            for _, record in rows
            if record.owner_id == owner_id
            and date_from <= record.date < date_to
            and filters.matches(record)
        ]
        found.sort(key=lambda r: r.date)
        return found


class GoogleSheetsBudgetStorage(BudgetStorageInterface):
    """
    Google Sheets implementation of monthly allocation storage.

    One allocation per row. The sheet has no unique constraint, so upserts
    look the (owner, period, category key) row up before writing.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _rows(self) -> tuple[gspread.Worksheet, list[tuple[int, CategoryAllocation]]]:
        sheet = self._client.get_budgets_sheet()
        return sheet, _load_rows(sheet, parse_allocation, "budget")

    async def list_allocations(
        self,
        owner_id: str,
        period: date,
    ) -> list[CategoryAllocation]:
        try:
            _, rows = self._rows()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list budgets: {e}")

        allocations = [
            a for _, a in rows
            if a.owner_id == owner_id and a.period == period.replace(day=1)
        ]
        allocations.sort(key=lambda a: a.created_at)
        return allocations

    async def get_allocation(
        self,
        owner_id: str,
        allocation_id: str,
    ) -> Optional[CategoryAllocation]:
        try:
            _, rows = self._rows()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get budget: {e}")

        for _, allocation in rows:
            if allocation.id == allocation_id and allocation.owner_id == owner_id:
                return allocation
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def upsert_allocation(
        self,
        allocation: CategoryAllocation,
    ) -> CategoryAllocation:
        """Insert, or update the row with the same category key."""
        try:
            sheet, rows = self._rows()
            for idx, existing in rows:
                if (
                    existing.owner_id == allocation.owner_id
                    and existing.period == allocation.period
                    and existing.category_key == allocation.category_key
                ):
                    stored = existing.model_copy(update={
                        "planned": allocation.planned,
                        "carryover_enabled": allocation.carryover_enabled,
                        "category_name": allocation.category_name,
                        "note": allocation.note,
                        "updated_at": utcnow(),
                    })
                    _write_row(sheet, idx, allocation_to_row(stored))
                    return stored

            sheet.append_row(allocation_to_row(allocation), value_input_option="RAW")
            return allocation
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save budget: {e}")

    async def delete_allocation(self, owner_id: str, allocation_id: str) -> bool:
        try:
            sheet, rows = self._rows()
            for idx, allocation in rows:
                if allocation.id == allocation_id and allocation.owner_id == owner_id:
                    sheet.delete_rows(idx)
                    return True
            return False
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete budget: {e}")

    async def existing_allocation_ids(
        self,
        owner_id: str,
        allocation_ids: Iterable[str],
    ) -> set[str]:
        wanted = set(allocation_ids)
        if not wanted:
            return set()
        try:
            _, rows = self._rows()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to check budgets: {e}")
        return {a.id for _, a in rows if a.owner_id == owner_id and a.id in wanted}


class GoogleSheetsWeeklyBudgetStorage(WeeklyBudgetStorageInterface):
    """Google Sheets implementation of weekly allocation storage."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _rows(self) -> tuple[gspread.Worksheet, list[tuple[int, WeeklyAllocation]]]:
        sheet = self._client.get_weekly_budgets_sheet()
        return sheet, _load_rows(sheet, parse_weekly_allocation, "weekly budget")

    async def list_weekly_allocations(
        self,
        owner_id: str,
        week_from: date,
        week_to: date,
    ) -> list[WeeklyAllocation]:
        try:
            _, rows = self._rows()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list weekly budgets: {e}")

        allocations = [
            w for _, w in rows
            if w.owner_id == owner_id and week_from <= w.week_start < week_to
        ]
        allocations.sort(key=lambda w: (w.week_start, w.created_at))
        return allocations

    async def get_weekly_allocation(
        self,
        owner_id: str,
        allocation_id: str,
    ) -> Optional[WeeklyAllocation]:
        try:
            _, rows = self._rows()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get weekly budget: {e}")

        for _, allocation in rows:
            if allocation.id == allocation_id and allocation.owner_id == owner_id:
                return allocation
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def upsert_weekly_allocation(
        self,
        allocation: WeeklyAllocation,
    ) -> WeeklyAllocation:
        try:
            sheet, rows = self._rows()
            for idx, existing in rows:
                if existing.slot_key == allocation.slot_key:
                    stored = existing.model_copy(update={
                        "planned": allocation.planned,
                        "carryover_enabled": allocation.carryover_enabled,
                        "category_name": allocation.category_name,
                        "note": allocation.note,
                        "updated_at": utcnow(),
                    })
                    _write_row(sheet, idx, weekly_allocation_to_row(stored))
                    return stored

            sheet.append_row(
                weekly_allocation_to_row(allocation), value_input_option="RAW"
            )
            return allocation
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save weekly budget: {e}")

    async def update_weekly_allocation(
        self,
        allocation: WeeklyAllocation,
    ) -> WeeklyAllocation:
        try:
            sheet, rows = self._rows()
            target = None
            for idx, existing in rows:
                if existing.id == allocation.id and existing.owner_id == allocation.owner_id:
                    target = (idx, existing)
                elif existing.slot_key == allocation.slot_key:
                    raise DuplicateError(
                        f"Weekly budget already exists for {allocation.category_id} "
                        f"in week {allocation.week_start}"
                    )
            if target is None:
                raise NotFoundError(f"Weekly budget not found: {allocation.id}")

            idx, existing = target
            stored = allocation.model_copy(update={
                "created_at": existing.created_at,
                "updated_at": utcnow(),
            })
            _write_row(sheet, idx, weekly_allocation_to_row(stored))
            return stored
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update weekly budget: {e}")

    async def delete_weekly_allocation(self, owner_id: str, allocation_id: str) -> bool:
        try:
            sheet, rows = self._rows()
            for idx, allocation in rows:
                if allocation.id == allocation_id and allocation.owner_id == owner_id:
                    sheet.delete_rows(idx)
                    return True
            return False
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete weekly budget: {e}")

    async def existing_weekly_ids(
        self,
        owner_id: str,
        allocation_ids: Iterable[str],
    ) -> set[str]:
        wanted = set(allocation_ids)
        if not wanted:
            return set()
        try:
            _, rows = self._rows()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to check weekly budgets: {e}")
        return {w.id for _, w in rows if w.owner_id == owner_id and w.id in wanted}


class GoogleSheetsHighlightStorage(HighlightStorageInterface):
    """
    Google Sheets implementation of highlight storage.

    The per-owner cap is checked against the sheet right before the append.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _rows(self) -> tuple[gspread.Worksheet, list[tuple[int, HighlightSelection]]]:
        sheet = self._client.get_highlights_sheet()
        return sheet, _load_rows(sheet, parse_highlight, "highlight")

    async def list_highlights(self, owner_id: str) -> list[HighlightSelection]:
        try:
            _, rows = self._rows()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list highlights: {e}")

        selections = [h for _, h in rows if h.owner_id == owner_id]
        selections.sort(key=lambda h: h.created_at)
        return selections

    async def insert_highlight(
        self,
        selection: HighlightSelection,
        limit: int,
    ) -> HighlightSelection:
        try:
            sheet, rows = self._rows()
            live = sum(1 for _, h in rows if h.owner_id == selection.owner_id)
            if live >= limit:
                raise CapacityError(f"Max {limit} highlights per owner", limit=limit)
            sheet.append_row(highlight_to_row(selection), value_input_option="RAW")
            return selection
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save highlight: {e}")

    async def delete_highlights(
        self,
        owner_id: str,
        selection_ids: Iterable[str],
    ) -> int:
        wanted = set(selection_ids)
        if not wanted:
            return 0
        try:
            sheet, rows = self._rows()
            indexes = [
                idx for idx, h in rows
                if h.owner_id == owner_id and h.id in wanted
            ]
            # Bottom-up so earlier deletions don't shift later rows
            for idx in sorted(indexes, reverse=True):
                sheet.delete_rows(idx)
            return len(indexes)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete highlights: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Don't raise - audit logging should not break the main flow
            logger.warning(
                "audit_write_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    def _events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        return [event for _, event in _load_rows(sheet, parse_audit_event, "audit event")]

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = [e for e in self._events() if e.correlation_id == correlation_id]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        # Sort chronologically
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = self._events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
