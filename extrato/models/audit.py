"""
Audit Models for Extrato

Every statement import and every manual ledger mutation is recorded as
an AuditEvent. Events of one import share a correlation id, so the
whole history of a batch (received, parsed, reviewed, reconciled) can be
reconstructed.

Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Extraction
    STATEMENT_RECEIVED = "statement_received"
    EXTRACTION_COMPLETED = "extraction_completed"
    EXTRACTION_FAILED = "extraction_failed"

    # Parsing and validation
    STATEMENT_PARSED = "statement_parsed"
    NOTHING_FOUND = "nothing_found"
    VALIDATION_FAILED = "validation_failed"

    # Reconciliation
    BATCH_RECONCILED = "batch_reconciled"
    ALL_DUPLICATES = "all_duplicates"
    RECONCILIATION_FAILED = "reconciliation_failed"
    ENTITY_CREATED = "entity_created"

    # Manual entry
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """A single audit event."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'statement', 'transaction', 'account')"
    )
    entity_id: Optional[str] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Shared by all events of one import"
    )
    user_id: Optional[str] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None
    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return self.model_dump(mode="json")

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, user_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.user_id or "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.statement_received("fatura.pdf", 1024, correlation_id)
        event = AuditEventBuilder.batch_reconciled(summary_counts, correlation_id)
    """

    @staticmethod
    def statement_received(
        filename: Optional[str],
        size: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATEMENT_RECEIVED,
            entity_type="statement",
            correlation_id=correlation_id,
            description=f"Statement received: {filename or 'pasted text'}",
            details={"filename": filename, "size": size},
            is_user_action=True,
        )

    @staticmethod
    def extraction_completed(
        kind: str,
        length: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_COMPLETED,
            entity_type="statement",
            correlation_id=correlation_id,
            description=f"Extracted {kind} content ({length} units)",
            details={"kind": kind, "length": length},
        )

    @staticmethod
    def extraction_failed(
        filename: Optional[str],
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="statement",
            correlation_id=correlation_id,
            description=f"Could not read statement: {filename or 'pasted text'}",
            error_message=error_message,
        )

    @staticmethod
    def statement_parsed(
        parser_name: str,
        candidate_count: int,
        bank_name: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        if candidate_count == 0:
            return AuditEvent(
                event_type=AuditEventType.NOTHING_FOUND,
                entity_type="statement",
                correlation_id=correlation_id,
                description=f"No transactions recognized by {parser_name}",
                details={"parser": parser_name, "bank_name": bank_name},
            )
        return AuditEvent(
            event_type=AuditEventType.STATEMENT_PARSED,
            entity_type="statement",
            correlation_id=correlation_id,
            description=f"{parser_name} found {candidate_count} candidates",
            details={
                "parser": parser_name,
                "candidate_count": candidate_count,
                "bank_name": bank_name,
            },
        )

    @staticmethod
    def validation_failed(
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="statement",
            correlation_id=correlation_id,
            description=f"Validation reported {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def batch_reconciled(
        saved: int,
        duplicates: int,
        future_installments: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        details = {
            "saved_count": saved,
            "duplicates_skipped": duplicates,
            "future_installments_created": future_installments,
        }
        if saved == 0 and duplicates > 0:
            return AuditEvent(
                event_type=AuditEventType.ALL_DUPLICATES,
                entity_type="import",
                correlation_id=correlation_id,
                description=f"All {duplicates} selected transactions already exist",
                details=details,
                is_user_action=True,
            )
        return AuditEvent(
            event_type=AuditEventType.BATCH_RECONCILED,
            entity_type="import",
            correlation_id=correlation_id,
            description=(
                f"Imported {saved} transactions "
                f"({duplicates} duplicates skipped, "
                f"{future_installments} future installments)"
            ),
            details=details,
            is_user_action=True,
        )

    @staticmethod
    def reconciliation_failed(
        candidate_count: int,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"Import of {candidate_count} transactions was not saved",
            error_message=error_message,
        )

    @staticmethod
    def entity_created(
        entity_type: str,
        entity_id: str,
        name: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_CREATED,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Created {entity_type} '{name}' during import",
            details={"name": name},
        )

    @staticmethod
    def transaction_changed(
        event_type: AuditEventType,
        transaction_id: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        verb = {
            AuditEventType.TRANSACTION_ADDED: "added",
            AuditEventType.TRANSACTION_UPDATED: "updated",
            AuditEventType.TRANSACTION_DELETED: "deleted",
        }[event_type]
        return AuditEvent(
            event_type=event_type,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction {verb}: R$ {amount}",
            details={"amount": amount},
            is_user_action=True,
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

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
