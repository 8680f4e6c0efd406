"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the shared storage backend because:
1. Council officers can view the register data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

Each period is ONE row: the period key, an update timestamp, and the
schema, metadata and entries serialized as JSON cells. A save replaces
the whole row, which matches how the engine saves: always the full triple.

TRADEOFFS:
- A cell holds at most 50,000 characters, enough for several hundred
  entries per quarter
- No transactions (one row update per save keeps that acceptable)
"""

import json
from datetime import datetime
from typing import Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from rcb.config import get_settings
from rcb.models.audit import AuditEvent, AuditEventType, AuditSeverity
from rcb.models.ledger import PeriodKey, PeriodRecord
from rcb.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    PeriodStorageInterface,
    StorageError,
)


# Column mappings for the ledger sheet
LEDGER_COLUMNS = [
    "period_key",
    "updated_at",
    "schema_json",
    "metadata_json",
    "entries_json",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "period_key",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _column_letter(count: int) -> str:
    return chr(ord("A") + count - 1)


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

    def _get_or_create_sheet(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_ledger_sheet(self) -> gspread.Worksheet:
        """Get or create the ledger worksheet (one row per period)."""
        return self._get_or_create_sheet(
            self._settings.ledger_sheet_name, LEDGER_COLUMNS, rows=200
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


class GoogleSheetsPeriodStorage(PeriodStorageInterface):
    """
    Google Sheets implementation of period storage.

    Rows are looked up by the period key in column A.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _record_to_row(self, period_key: PeriodKey, record: PeriodRecord) -> list:
        """Convert a period record to a spreadsheet row."""
        payload = record.to_payload()
        return [
            str(period_key),
            datetime.utcnow().isoformat(),
            json.dumps(payload["schema"]),
            json.dumps(payload["metadata"]),
            json.dumps(payload["entries"]),
        ]

    def _row_to_record(self, row: list) -> PeriodRecord:
        """Convert a spreadsheet row to a period record."""
        def safe_json(index: int, default):
            try:
                cell = row[index]
            except IndexError:
                return default
            return json.loads(cell) if cell else default

        return PeriodRecord.from_payload({
            "schema": safe_json(2, {}),
            "metadata": safe_json(3, {}),
            "entries": safe_json(4, []),
        })

    def _find_row(self, rows: list[list], period_key: PeriodKey) -> Optional[int]:
        """1-based sheet row number of the period, or None."""
        key = str(period_key)
        for idx, row in enumerate(rows[1:], start=2):  # Row 1 is the header
            if row and row[0] == key:
                return idx
        return None

    async def load(self, period_key: PeriodKey) -> Optional[PeriodRecord]:
        """Load a period's row."""
        try:
            sheet = self._client.get_ledger_sheet()
            rows = sheet.get_all_values()
            idx = self._find_row(rows, period_key)
            if idx is None:
                return None
            return self._row_to_record(rows[idx - 1])
        except Exception as e:
            raise StorageError(f"Failed to load period {period_key}: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save(self, period_key: PeriodKey, record: PeriodRecord) -> bool:
        """Insert or replace a period's row."""
        try:
            sheet = self._client.get_ledger_sheet()
            rows = sheet.get_all_values()
            new_row = self._record_to_row(period_key, record)

            idx = self._find_row(rows, period_key)
            if idx is None:
                sheet.append_row(new_row, value_input_option="RAW")
            else:
                last = _column_letter(len(LEDGER_COLUMNS))
                sheet.update(
                    range_name=f"A{idx}:{last}{idx}",
                    values=[new_row],
                    value_input_option="RAW",
                )
            return True
        except Exception as e:
            raise StorageError(f"Failed to save period {period_key}: {e}")

    async def list_periods(self) -> list[PeriodKey]:
        """List saved periods, oldest first."""
        try:
            sheet = self._client.get_ledger_sheet()
            keys = []
            for row in sheet.get_all_values()[1:]:
                if not row or not row[0]:
                    continue
                try:
                    keys.append(PeriodKey.parse(row[0]))
                except ValueError:
                    continue  # Skip malformed rows
            return sorted(keys)
        except Exception as e:
            raise StorageError(f"Failed to list periods: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=safe_get(0),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            period_key=safe_get(4) or None,
            description=safe_get(5),
            details=json.loads(safe_get(6)) if safe_get(6) else {},
            error_message=safe_get(7) or None,
            is_user_action=safe_get(8).lower() == "true",
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    def _all_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue
        return events

    async def get_events_by_period(self, period_key: str) -> list[AuditEvent]:
        """Get events for one period."""
        try:
            events = [e for e in self._all_events() if e.period_key == period_key]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = self._all_events()
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
