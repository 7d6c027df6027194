"""
Tests for the orchestrator flows

Test strategy:
1. End-to-end flows over the in-memory store
2. The AI agent is a stub returning canned items
3. Audit events are collected in memory and asserted by type
"""

import asyncio

import pytest
from datetime import date
from decimal import Decimal

from extrato.agents import AIExtraction, AIExtractionError
from extrato.audit import AuditLogger, create_correlation_id
from extrato.categorization import CategoryService
from extrato.ledger import ReconciliationError, save_rule
from extrato.models.audit import AuditEventType
from extrato.models.ledger import (
    Account,
    AutomationRule,
    TransactionInput,
    TransactionType,
)
from extrato.models.statement import StatementMetadata
from extrato.orchestrator import StatementImportFlow, TransactionFlow, create_app_components
from extrato.services.extraction import UnsupportedDocumentError
from extrato.services.storage import ACCOUNTS, CREDIT_CARDS, TRANSACTIONS, AuditStorageInterface
from extrato.services.storage.memory import InMemoryDocumentStore


CSV_EXPORT = "Data;Descrição;Valor\n15/03/2024;PIX RECEBIDO João;500,00\n16/03/2024;Mercado Extra;-120,50\n"


class RecordingAuditStorage(AuditStorageInterface):
    def __init__(self):
        self.events = []

    async def append_event(self, event):
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id):
        return [e for e in self.events if e.correlation_id == correlation_id]

    async def get_recent_events(self, limit=100):
        return list(reversed(self.events))[:limit]

    def types(self):
        return [e.event_type for e in self.events]


class StubAgent:
    """Stands in for StatementExtractionAgent."""

    def __init__(self, items=None, error=None):
        self.items = items or []
        self.error = error
        self.calls = []

    async def extract(self, document, mime_type=None):
        self.calls.append((document, mime_type))
        if self.error is not None:
            raise self.error
        return AIExtraction(
            items=self.items,
            metadata=StatementMetadata(bank_name="Banco Teste"),
            model_name="stub",
        )


def make_flow(agent=None):
    store = InMemoryDocumentStore("user-1")
    audit = RecordingAuditStorage()
    flow = StatementImportFlow(store, agent=agent, audit_logger=AuditLogger(audit, user_id="user-1"))
    return store, audit, flow


class TestStatementImportFlow:
    """Tests for StatementImportFlow."""

    def test_csv_import_end_to_end(self):
        """Test process then reconcile for a CSV export."""
        store, audit, flow = make_flow()

        async def scenario():
            correlation_id = create_correlation_id()
            parsed = await flow.process(CSV_EXPORT.encode("utf-8"), "extrato.csv", correlation_id=correlation_id)
            summary = await flow.reconcile_import_batch(
                parsed.candidates, parsed.metadata, correlation_id=correlation_id,
            )
            return parsed, summary, correlation_id

        parsed, summary, correlation_id = asyncio.run(scenario())
        assert parsed.parser_name == "csv"
        assert summary.saved_count == 2
        assert len(summary.cards_created) == 1
        assert audit.types() == [
            AuditEventType.STATEMENT_RECEIVED,
            AuditEventType.EXTRACTION_COMPLETED,
            AuditEventType.STATEMENT_PARSED,
            AuditEventType.ENTITY_CREATED,
            AuditEventType.BATCH_RECONCILED,
        ]
        assert all(e.correlation_id == correlation_id for e in audit.events)
        card_id = summary.cards_created[0]
        assert audit.events[3].details["name"] == store.database.user_data("user-1")[CREDIT_CARDS][card_id]["name"]

    def test_second_import_reports_all_duplicates(self):
        """Test that re-importing the same file is audited as all duplicates."""
        store, audit, flow = make_flow()

        async def scenario():
            for _ in range(2):
                parsed = await flow.process(CSV_EXPORT, "extrato.csv")
                summary = await flow.reconcile_import_batch(parsed.candidates, parsed.metadata)
            return summary

        summary = asyncio.run(scenario())
        assert summary.saved_count == 0
        assert summary.duplicates_skipped == 2
        assert audit.types()[-1] == AuditEventType.ALL_DUPLICATES
        assert len(store.database.user_data("user-1")[TRANSACTIONS]) == 2

    def test_rules_applied_before_review(self):
        """Test that saved automation rules rewrite parsed candidates."""
        store, audit, flow = make_flow()

        async def scenario():
            await save_rule(store, AutomationRule(description_contains="mercado", category="Casa"))
            return await flow.process(CSV_EXPORT, "extrato.csv")

        parsed = asyncio.run(scenario())
        market = next(c for c in parsed.candidates if c.description == "Mercado Extra")
        assert market.category == "Casa"

    def test_ai_fallback(self):
        """Test that the agent is consulted when nothing was recognized."""
        agent = StubAgent(items=[
            {"date": "2024-03-10", "description": "Consulta médica", "amount": "250,00", "type": "expense"},
            {"date": "ontem", "description": "???", "amount": "x"},
        ])
        store, audit, flow = make_flow(agent)
        parsed = asyncio.run(flow.process("Documento em formato desconhecido", "scan.txt"))

        assert parsed.parser_name == "ai"
        assert len(parsed.candidates) == 1
        assert parsed.candidates[0].bank_name == "Banco Teste"
        assert parsed.candidates[0].amount == Decimal("250.00")
        assert agent.calls == [("Documento em formato desconhecido", None)]
        assert audit.types().count(AuditEventType.STATEMENT_PARSED) == 1
        assert AuditEventType.NOTHING_FOUND in audit.types()

    def test_nothing_found_without_agent(self):
        """Test that an unrecognized document is an empty, audited result."""
        store, audit, flow = make_flow()
        parsed = asyncio.run(flow.process("Documento em formato desconhecido"))
        assert parsed.is_empty
        assert audit.types()[-1] == AuditEventType.NOTHING_FOUND

    def test_ai_failure_audited(self):
        """Test that an AI failure is audited and re-raised."""
        store, audit, flow = make_flow(StubAgent(error=AIExtractionError("quota")))
        with pytest.raises(AIExtractionError):
            asyncio.run(flow.extract_with_ai("texto"))
        assert audit.types() == [AuditEventType.EXTERNAL_SERVICE_ERROR]

    def test_ai_not_configured(self):
        """Test that asking for AI without an agent fails clearly."""
        store, audit, flow = make_flow()
        with pytest.raises(AIExtractionError):
            asyncio.run(flow.extract_with_ai("texto"))

    def test_invalid_ai_batch_audited(self):
        """Test that an unreadable AI batch is reported with a validation event."""
        store, audit, flow = make_flow(StubAgent(items=[{"description": "sem data"}]))
        parsed, result, message = asyncio.run(flow.extract_with_ai("texto"))
        assert parsed.is_empty
        assert not result.is_valid
        assert "❌" in message
        assert AuditEventType.VALIDATION_FAILED in audit.types()

    def test_unreadable_upload(self):
        """Test that a binary upload fails extraction and is audited."""
        store, audit, flow = make_flow()
        with pytest.raises(UnsupportedDocumentError):
            asyncio.run(flow.process(b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR", "foto.png"))
        assert audit.types() == [
            AuditEventType.STATEMENT_RECEIVED,
            AuditEventType.EXTRACTION_FAILED,
        ]

    def test_reconciliation_failure_audited(self):
        """Test that a failed commit is audited and nothing is saved."""
        store, audit, flow = make_flow()

        async def scenario():
            parsed = await flow.process(CSV_EXPORT, "extrato.csv")
            store.database.fail_next_commit()
            await flow.reconcile_import_batch(parsed.candidates, parsed.metadata)

        with pytest.raises(ReconciliationError):
            asyncio.run(scenario())
        assert audit.types()[-1] == AuditEventType.RECONCILIATION_FAILED
        assert store.database.user_data("user-1")[TRANSACTIONS] == {}


class TestTransactionFlow:
    """Tests for TransactionFlow."""

    def test_add_update_delete_audited(self):
        """Test that each manual edit is audited and balances follow."""
        store = InMemoryDocumentStore("user-1")
        audit = RecordingAuditStorage()
        flow = TransactionFlow(store, AuditLogger(audit))

        async def scenario():
            await store.seed(ACCOUNTS, "acc-1", Account(name="Inter", balance="100", initial_balance="100").to_document())
            entry = TransactionInput(
                account_id="acc-1",
                date=date(2024, 3, 1),
                description="Mercado",
                amount=Decimal("40"),
                type=TransactionType.EXPENSE,
            )
            (created,) = await flow.add_transaction(entry)
            await flow.update_transaction(created.id, entry.model_copy(update={"amount": Decimal("25.00")}))
            balance_after_update = (await store.get(ACCOUNTS, "acc-1"))["balance"]
            deleted = await flow.delete_transaction(created.id)
            missing = await flow.delete_transaction(created.id)
            return balance_after_update, deleted, missing

        balance_after_update, deleted, missing = asyncio.run(scenario())
        assert balance_after_update == 75.0
        assert deleted is True
        assert missing is False
        assert store.database.user_data("user-1")[ACCOUNTS]["acc-1"]["balance"] == 100.0
        assert audit.types() == [
            AuditEventType.TRANSACTION_ADDED,
            AuditEventType.TRANSACTION_UPDATED,
            AuditEventType.TRANSACTION_DELETED,
        ]


class TestCreateAppComponents:
    """Tests for the component factory."""

    def test_local_only_components(self):
        """Test wiring with an injected store and no external services."""
        store = InMemoryDocumentStore("user-1")
        import_flow, transaction_flow, categories = create_app_components(
            "user-1", store=store, use_ai=False, use_audit_storage=False,
        )
        assert isinstance(import_flow, StatementImportFlow)
        assert isinstance(transaction_flow, TransactionFlow)
        assert isinstance(categories, CategoryService)

        parsed = asyncio.run(import_flow.process(CSV_EXPORT, "extrato.csv"))
        assert len(parsed.candidates) == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
