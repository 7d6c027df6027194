"""
Google Sheets Audit Storage

The import history is one worksheet in the user's spreadsheet, one row
per AuditEvent, so every import can be inspected without extra tooling.
Rows are only ever appended; filtering happens in Python after a read.

The ledger itself never lives here; see firestore.py.
"""

import json
from datetime import datetime
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from extrato.config import GoogleSheetsSettings, get_settings
from extrato.models.audit import AuditEvent, AuditEventType, AuditSeverity
from extrato.services.storage.interface import (
    AuditStorageInterface,
    StorageConnectionError,
    StorageError,
)


logger = structlog.get_logger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

# Order matches AuditEvent.to_sheets_row()
AUDIT_COLUMNS = (
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "user_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
)


class AuditSheetClient:
    """Opens (and on first use creates) the audit worksheet."""

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._settings = settings or get_settings().google_sheets
        self._sheet: Optional[gspread.Worksheet] = None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _open_spreadsheet(self) -> gspread.Spreadsheet:
        try:
            credentials = Credentials.from_service_account_file(
                self._settings.credentials_path,
                scopes=SCOPES,
            )
        except FileNotFoundError:
            raise StorageConnectionError(
                f"Google credentials file not found: {self._settings.credentials_path}"
            )
        try:
            return gspread.authorize(credentials).open_by_key(self._settings.spreadsheet_id)
        except gspread.SpreadsheetNotFound:
            raise StorageConnectionError(
                f"Audit spreadsheet not found: {self._settings.spreadsheet_id}"
            )

    def get_audit_sheet(self) -> gspread.Worksheet:
        if self._sheet is not None:
            return self._sheet

        spreadsheet = self._open_spreadsheet()
        title = self._settings.audit_sheet_name
        try:
            self._sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            logger.info("audit_sheet_created", title=title)
            self._sheet = spreadsheet.add_worksheet(title=title, rows=1000, cols=len(AUDIT_COLUMNS))
            self._sheet.append_row(list(AUDIT_COLUMNS))
        return self._sheet


def row_to_event(row: list) -> AuditEvent:
    """Read a worksheet row back into an AuditEvent. Missing trailing cells are empty."""
    cells = dict(zip(AUDIT_COLUMNS, row))

    def value(column: str) -> Optional[str]:
        return cells.get(column) or None

    correlation_id = value("correlation_id")
    details = value("details_json")
    return AuditEvent(
        event_id=UUID(cells["event_id"]),
        timestamp=datetime.fromisoformat(cells["timestamp"]),
        event_type=AuditEventType(cells["event_type"]),
        severity=AuditSeverity(cells["severity"]),
        entity_type=value("entity_type"),
        entity_id=value("entity_id"),
        correlation_id=UUID(correlation_id) if correlation_id else None,
        user_id=value("user_id"),
        description=cells.get("description", ""),
        details=json.loads(details) if details else {},
        error_message=value("error_message"),
        is_user_action=(cells.get("is_user_action") or "").lower() == "true",
    )


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Append-only audit sink backed by one worksheet.

    Append failures propagate after retries; AuditLogger decides that
    they never reach the import flow.
    """

    def __init__(self, client: Optional[AuditSheetClient] = None):
        self._client = client or AuditSheetClient()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append_row(self, row: list) -> None:
        self._client.get_audit_sheet().append_row(row, value_input_option="RAW")

    async def append_event(self, event: AuditEvent) -> bool:
        self._append_row(event.to_sheets_row())
        return True

    def _read_events(self) -> list[AuditEvent]:
        try:
            rows = self._client.get_audit_sheet().get_all_values()[1:]
        except gspread.exceptions.APIError as e:
            raise StorageError(f"Failed to read audit events: {e}")

        events = []
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                events.append(row_to_event(row))
            except (ValueError, KeyError) as e:
                logger.warning("audit_row_unreadable", row_id=row[0], error=str(e))
        return events

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._read_events(), key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
