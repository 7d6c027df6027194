"""
Audit Logger

DESIGN DECISION: Every import and every manual ledger change is logged.
One correlation id follows a statement from upload to reconciliation,
so a user can see what an import did and a developer can see why.

The audit logger:
- Is async so it can sit inside the import flow
- Never fails the caller's operation when the audit sink is down
- Logs locally through structlog even without a sink
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from extrato.models.audit import AuditEvent, AuditEventBuilder, AuditEventType, AuditSeverity
from extrato.services.storage.interface import AuditStorageInterface


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
    2. An audit sink such as Google Sheets (for the user's import history)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
        user_id: Optional[str] = None,
    ):
        """
        Args:
            storage: Sink for persistence. If None, only logs locally.
            user_id: Stamped on every event that does not carry one.
        """
        self._storage = storage
        self._user_id = user_id
        self._logger = structlog.get_logger("extrato.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the sink write succeeded (or no sink is configured).
        """
        if event.user_id is None and self._user_id is not None:
            event = event.model_copy(update={"user_id": self._user_id})

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
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_statement_received(
        self,
        filename: Optional[str],
        size: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.statement_received(
            filename=filename,
            size=size,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_extraction_completed(
        self,
        kind: str,
        length: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.extraction_completed(
            kind=kind,
            length=length,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_extraction_failed(
        self,
        filename: Optional[str],
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.extraction_failed(
            filename=filename,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_statement_parsed(
        self,
        parser_name: str,
        candidate_count: int,
        bank_name: Optional[str],
        correlation_id: UUID,
    ) -> None:
        """Log parser output. Zero candidates logs NOTHING_FOUND."""
        event = AuditEventBuilder.statement_parsed(
            parser_name=parser_name,
            candidate_count=candidate_count,
            bank_name=bank_name,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.validation_failed(
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_batch_reconciled(
        self,
        saved: int,
        duplicates: int,
        future_installments: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.batch_reconciled(
            saved=saved,
            duplicates=duplicates,
            future_installments=future_installments,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_reconciliation_failed(
        self,
        candidate_count: int,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.reconciliation_failed(
            candidate_count=candidate_count,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entity_created(
        self,
        entity_type: str,
        entity_id: str,
        name: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.entity_created(
            entity_type=entity_type,
            entity_id=entity_id,
            name=name,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_changed(
        self,
        event_type: AuditEventType,
        transaction_id: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a manual add, update or delete."""
        event = AuditEventBuilder.transaction_changed(
            event_type=event_type,
            transaction_id=transaction_id,
            amount=amount,
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
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this when a statement is received and pass it through parsing,
    review and reconciliation.
    """
    return uuid4()
