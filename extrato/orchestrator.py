"""
Main Orchestrator for Extrato

This module ties together all the components and defines the
end-to-end flows for:
1. Statement import (file → extract → parse or AI → validate → review → reconcile)
2. Manual ledger edits (add / update / delete a transaction)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No candidate is persisted without the user selecting it
- Every write goes through one atomic batch with its balance effect
- Every step is audited under one correlation id

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from typing import Optional, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from extrato.agents import AIExtractionError, StatementExtractionAgent
from extrato.audit import AuditLogger, create_correlation_id
from extrato.categorization import CategoryService
from extrato.config import ImportSettings, get_settings
from extrato.ledger import (
    ReconciliationError,
    ReconciliationWriter,
    TransactionService,
    apply_rules,
    load_rules,
)
from extrato.models.audit import AuditEventType
from extrato.models.ledger import Transaction, TransactionFields, TransactionInput
from extrato.models.statement import (
    CandidateTransaction,
    ImportSummary,
    ParsedStatement,
    StatementMetadata,
    ValidationResult,
)
from extrato.parsing import parse_statement
from extrato.services.extraction import ExtractedDocument, ExtractionError, extract_document
from extrato.services.storage import ACCOUNTS, CREDIT_CARDS, DocumentStore
from extrato.services.storage.firestore import FirestoreDocumentStore
from extrato.services.storage.google_sheets import GoogleSheetsAuditStorage
from extrato.validation import CandidateValidator


logger = structlog.get_logger(__name__)


class StatementImportFlow:
    """
    Orchestrates the statement import flow.

    Flow:
    1. Receive → extract text or rows from the uploaded file
    2. Parse → local bank parsers, CSV fallback
    3. AI → only when the local parsers found nothing (optional)
    4. Validate → two-stage validation of AI output
    5. Review → present candidates to the user (PAUSE)
    6. Reconcile → one atomic write of the selected candidates

    The system NEVER saves candidates the user did not select.
    """

    def __init__(
        self,
        store: DocumentStore,
        agent: Optional[StatementExtractionAgent] = None,
        validator: Optional[CandidateValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[ImportSettings] = None,
    ):
        self._store = store
        self._settings = settings or ImportSettings()
        self._agent = agent
        self._validator = validator or CandidateValidator(store, self._settings)
        self._writer = ReconciliationWriter(store, self._settings)
        self._audit_logger = audit_logger or AuditLogger()

    async def receive(
        self,
        data: Union[bytes, str],
        filename: Optional[str] = None,
        mime_type: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ExtractedDocument:
        """
        Extract text or rows from an uploaded statement.

        Raises:
            ExtractionError: The document could not be read (retryable).
        """
        correlation_id = correlation_id or create_correlation_id()
        await self._audit_logger.log_statement_received(
            filename=filename,
            size=len(data),
            correlation_id=correlation_id,
        )

        try:
            document = extract_document(data, filename, mime_type, self._settings)
        except ExtractionError as e:
            await self._audit_logger.log_extraction_failed(
                filename=filename,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        await self._audit_logger.log_extraction_completed(
            kind=document.kind,
            length=document.size,
            correlation_id=correlation_id,
        )
        return document

    async def _apply_rules(self, candidates: list[CandidateTransaction]) -> list[CandidateTransaction]:
        rules = await load_rules(self._store)
        return apply_rules(candidates, rules) if rules else candidates

    async def parse_statement(
        self,
        raw_input: Union[str, ExtractedDocument, list],
        filename_hint: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ParsedStatement:
        """
        Parse extracted input locally and apply the user's automation rules.

        An empty result is an informational outcome (nothing found).
        """
        correlation_id = correlation_id or create_correlation_id()
        parsed = parse_statement(raw_input, filename_hint, self._settings)
        parsed = parsed.model_copy(update={"candidates": await self._apply_rules(parsed.candidates)})

        await self._audit_logger.log_statement_parsed(
            parser_name=parsed.parser_name or "none",
            candidate_count=len(parsed.candidates),
            bank_name=parsed.metadata.bank_name,
            correlation_id=correlation_id,
        )
        return parsed

    async def extract_with_ai(
        self,
        document: Union[str, bytes],
        mime_type: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[ParsedStatement, ValidationResult, str]:
        """
        Ask the AI agent for candidates and validate them.

        Returns:
            (parsed_statement, validation_result, user_message)

        Raises:
            AIExtractionError: The AI service failed (retryable).
        """
        if self._agent is None:
            raise AIExtractionError("AI extraction is not configured")
        correlation_id = correlation_id or create_correlation_id()

        try:
            extraction = await self._agent.extract(document, mime_type)
        except AIExtractionError as e:
            await self._audit_logger.log_external_service_error(
                service="gemini",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        result = await self._validator.validate(extraction.items, extraction.metadata)
        message = self._validator.get_user_friendly_summary(result)

        if not result.is_valid:
            await self._audit_logger.log_validation_failed(
                issues=[
                    {"field": i.field, "type": i.issue_type, "message": i.message}
                    for i in result.issues
                ],
                correlation_id=correlation_id,
            )

        parsed = ParsedStatement(
            candidates=await self._apply_rules(result.candidates),
            metadata=extraction.metadata,
            parser_name="ai",
        )
        await self._audit_logger.log_statement_parsed(
            parser_name=parsed.parser_name,
            candidate_count=len(parsed.candidates),
            bank_name=parsed.metadata.bank_name,
            correlation_id=correlation_id,
        )
        return parsed, result, message

    async def process(
        self,
        data: Union[bytes, str],
        filename: Optional[str] = None,
        mime_type: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ParsedStatement:
        """
        The "Process" action: extract, parse locally, fall back to AI.

        The AI is only consulted when the local parsers recognize nothing
        and an agent is configured.
        """
        correlation_id = correlation_id or create_correlation_id()
        document = await self.receive(data, filename, mime_type, correlation_id)
        parsed = await self.parse_statement(document, filename, correlation_id)
        if not parsed.is_empty or self._agent is None:
            return parsed

        logger.info("local_parse_empty_trying_ai", filename=filename)
        ai_input: Union[str, bytes] = data
        ai_mime = mime_type
        if document.kind == "text" and document.text.strip():
            ai_input, ai_mime = document.text, None
        elif isinstance(data, bytes) and not ai_mime:
            ai_mime = "application/pdf" if data[:4] == b"%PDF" else "text/plain"
        ai_parsed, _, _ = await self.extract_with_ai(ai_input, ai_mime, correlation_id)
        return ai_parsed

    async def reconcile_import_batch(
        self,
        candidates: list[CandidateTransaction],
        metadata: Optional[StatementMetadata] = None,
        destination_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ImportSummary:
        """
        Save the candidates the user selected.

        CRITICAL: Called ONLY after the user reviewed the list.

        Raises:
            ResolutionError: destination_id is unknown.
            ReconciliationError: Nothing was saved; the list can be resubmitted.
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            summary = await self._writer.reconcile(candidates, metadata, destination_id)
        except ReconciliationError as e:
            await self._audit_logger.log_reconciliation_failed(
                candidate_count=e.candidate_count,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        for collection, entity_type, ids in (
            (ACCOUNTS, "account", summary.accounts_created),
            (CREDIT_CARDS, "credit_card", summary.cards_created),
        ):
            for entity_id in ids:
                data = await self._store.get(collection, entity_id) or {}
                await self._audit_logger.log_entity_created(
                    entity_type=entity_type,
                    entity_id=entity_id,
                    name=str(data.get("name", "")),
                    correlation_id=correlation_id,
                )

        await self._audit_logger.log_batch_reconciled(
            saved=summary.saved_count,
            duplicates=summary.duplicates_skipped,
            future_installments=summary.future_installments_created,
            correlation_id=correlation_id,
        )
        return summary


class TransactionFlow:
    """Manual ledger edits, audited."""

    def __init__(
        self,
        store: DocumentStore,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[ImportSettings] = None,
    ):
        self._service = TransactionService(store, settings)
        self._audit_logger = audit_logger or AuditLogger()

    @property
    def service(self) -> TransactionService:
        return self._service

    async def add_transaction(self, data: TransactionInput) -> list[Transaction]:
        created = await self._service.add_transaction(data)
        for transaction in created:
            await self._audit_logger.log_transaction_changed(
                event_type=AuditEventType.TRANSACTION_ADDED,
                transaction_id=transaction.id,
                amount=str(transaction.amount),
            )
        return created

    async def update_transaction(self, transaction_id: str, data: TransactionFields) -> Transaction:
        updated = await self._service.update_transaction(transaction_id, data)
        await self._audit_logger.log_transaction_changed(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            transaction_id=transaction_id,
            amount=str(updated.amount),
        )
        return updated

    async def delete_transaction(self, transaction_id: str) -> bool:
        previous = await self._service.get_transaction(transaction_id)
        deleted = await self._service.delete_transaction(transaction_id)
        if deleted:
            await self._audit_logger.log_transaction_changed(
                event_type=AuditEventType.TRANSACTION_DELETED,
                transaction_id=transaction_id,
                amount=str(previous.amount) if previous else "",
            )
        return deleted


def create_app_components(
    user_id: str,
    store: Optional[DocumentStore] = None,
    use_ai: bool = True,
    use_audit_storage: bool = True,
) -> tuple[StatementImportFlow, TransactionFlow, CategoryService]:
    """
    Factory function to create all application components for one user.

    Args:
        user_id: The signed-in user's id (from the auth layer).
        store: Document store to use. Defaults to Firestore.
        use_ai: Whether to set up the Gemini agent for the AI fallback.
        use_audit_storage: Whether to persist audit events to Google Sheets.

    Returns:
        (import_flow, transaction_flow, category_service)
    """
    settings = get_settings().imports

    if store is None:
        store = FirestoreDocumentStore(user_id)

    agent = None
    if use_ai:
        try:
            agent = StatementExtractionAgent()
        except ValidationError as e:
            # Gemini not configured - local parsing only
            logger.warning("ai_not_configured", error=str(e))

    audit_storage = None
    if use_audit_storage:
        try:
            audit_storage = GoogleSheetsAuditStorage()
        except ValidationError as e:
            # Sheets not configured - local audit log only
            logger.warning("audit_storage_not_configured", error=str(e))
    audit_logger = AuditLogger(audit_storage, user_id=user_id)

    import_flow = StatementImportFlow(
        store,
        agent=agent,
        audit_logger=audit_logger,
        settings=settings,
    )
    transaction_flow = TransactionFlow(store, audit_logger=audit_logger, settings=settings)
    return import_flow, transaction_flow, CategoryService(store)
