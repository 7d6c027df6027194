"""
Tests for AI extraction and two-stage validation

Test strategy:
1. The Gemini model is replaced by a stub; no real API calls
2. Validation runs with a fixed "today" so date checks are stable
3. History checks use the in-memory store
"""

import asyncio

import pytest
from datetime import date
from decimal import Decimal

from google.api_core import exceptions as google_exceptions

from extrato.agents import AIExtractionError, StatementExtractionAgent, parse_response_text
from extrato.config import GeminiSettings
from extrato.models.ledger import Transaction, TransactionType
from extrato.models.statement import StatementMetadata
from extrato.services.storage import TRANSACTIONS
from extrato.services.storage.memory import InMemoryDocumentStore
from extrato.validation import CandidateValidator


TODAY = date(2024, 3, 20)


class StubResponse:
    def __init__(self, text):
        self.text = text


class StubModel:
    """Stands in for genai.GenerativeModel."""

    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = []

    async def generate_content_async(self, contents):
        self.calls.append(contents)
        if self.error is not None:
            raise self.error
        return StubResponse(self.text)


def make_agent(model) -> StatementExtractionAgent:
    return StatementExtractionAgent(settings=GeminiSettings(api_key="test"), model=model)


class TestParseResponse:
    """Tests for parse_response_text."""

    def test_object(self):
        """Test the documented object shape."""
        data = parse_response_text('{"transactions": [{"description": "x"}], "metadata": {}}')
        assert data["transactions"] == [{"description": "x"}]

    def test_bare_list(self):
        """Test that a bare array is accepted."""
        data = parse_response_text('[{"description": "x"}]')
        assert data["transactions"] == [{"description": "x"}]

    def test_wrapped_in_prose(self):
        """Test that JSON inside a code fence is recovered."""
        data = parse_response_text('```json\n{"transactions": []}\n```')
        assert data["transactions"] == []

    def test_garbage(self):
        """Test that non-JSON raises AIExtractionError."""
        with pytest.raises(AIExtractionError):
            parse_response_text("Sorry, I cannot help with that.")


class TestStatementExtractionAgent:
    """Tests for StatementExtractionAgent with a stub model."""

    def test_text_document(self):
        """Test items and metadata from a text statement."""
        model = StubModel(text=(
            '{"metadata": {"bankName": "Inter", "dueDay": 10},'
            ' "transactions": [{"date": "2024-03-10", "description": "Uber", "amount": 12.5, "type": "expense"}, "junk"]}'
        ))
        extraction = asyncio.run(make_agent(model).extract("05 MAR Uber 12,50"))
        assert extraction.items == [
            {"date": "2024-03-10", "description": "Uber", "amount": 12.5, "type": "expense"},
        ]
        assert extraction.metadata.bank_name == "Inter"
        assert extraction.metadata.due_day == 10
        assert "05 MAR Uber 12,50" in model.calls[0][0]

    def test_binary_document_needs_mime_type(self):
        """Test that bytes without a mime type are refused."""
        with pytest.raises(ValueError):
            asyncio.run(make_agent(StubModel(text="{}")).extract(b"%PDF-1.7"))

    def test_binary_document_sent_inline(self):
        """Test that bytes are sent as an inline part."""
        model = StubModel(text='{"transactions": []}')
        asyncio.run(make_agent(model).extract(b"%PDF-1.7", "application/pdf"))
        assert model.calls[0][1] == {"mime_type": "application/pdf", "data": b"%PDF-1.7"}

    def test_invalid_metadata_keeps_bank_name(self):
        """Test that bad metadata fields do not fail the extraction."""
        model = StubModel(text='{"metadata": {"bankName": "Inter", "dueDay": 45}, "transactions": []}')
        extraction = asyncio.run(make_agent(model).extract("texto"))
        assert extraction.metadata.bank_name == "Inter"
        assert extraction.metadata.due_day is None

    def test_service_error(self):
        """Test that a non-transient API error becomes AIExtractionError."""
        model = StubModel(error=google_exceptions.PermissionDenied("bad key"))
        with pytest.raises(AIExtractionError):
            asyncio.run(make_agent(model).extract("texto"))
        assert len(model.calls) == 1


class TestSchemaStage:
    """Tests for stage 1 of CandidateValidator."""

    def test_invalid_items_dropped_with_warning(self):
        """Test that unreadable items are dropped and named."""
        items = [
            {"date": "2024-03-10", "description": "Padaria Central", "amount": "12,50"},
            {"date": "ontem", "description": "Mercado", "amount": 10},
            {"date": "2024-03-11", "description": "Farmácia", "amount": None},
        ]
        result = asyncio.run(CandidateValidator(today=TODAY).validate(items, check_duplicates=False))
        assert len(result.candidates) == 1
        assert result.schema_valid
        assert [i.candidate_index for i in result.issues if i.issue_type == "invalid_item"] == [1, 2]
        assert result.can_proceed_with_review

    def test_all_invalid_is_error(self):
        """Test that a batch with no readable item fails stage 1."""
        result = asyncio.run(CandidateValidator(today=TODAY).validate([{"description": "x"}]))
        assert not result.schema_valid
        assert not result.is_valid
        assert not result.can_proceed_with_review

    def test_empty_batch_is_valid(self):
        """Test that an empty answer is a valid, empty result."""
        result = asyncio.run(CandidateValidator(today=TODAY).validate([]))
        assert result.is_valid
        assert result.candidates == []

    def test_coercion(self):
        """Test sign removal, type words, categorization and installments."""
        items = [
            {"date": "10/03/2024", "description": "Salario empresa", "amount": "-3.000,00", "type": "receita"},
            {"date": "2024-03-10", "description": "Loja 02/06", "amount": 50},
        ]
        metadata = StatementMetadata(bank_name="Inter")
        result = asyncio.run(CandidateValidator(today=TODAY).validate(items, metadata, check_duplicates=False))
        salary, purchase = result.candidates
        assert salary.amount == Decimal("3000.00")
        assert salary.type == TransactionType.INCOME
        assert salary.category == "Salário"
        assert salary.bank_name == "Inter"
        assert (purchase.installment_number, purchase.total_installments) == (2, 6)
        assert purchase.type == TransactionType.EXPENSE


class TestSemanticStage:
    """Tests for stage 2 of CandidateValidator."""

    def issue_types(self, items):
        result = asyncio.run(CandidateValidator(today=TODAY).validate(items, check_duplicates=False))
        return result, {(i.field, i.issue_type) for i in result.issues}

    def test_future_date_flagged(self):
        """Test that a non-installment dated well after today is flagged."""
        result, types = self.issue_types([{"date": "2024-05-01", "description": "Padaria", "amount": 10}])
        assert ("date", "future_date") in types
        assert result.is_valid
        assert result.warnings

    def test_future_installment_allowed(self):
        """Test that installments may be dated in the future."""
        _, types = self.issue_types([{"date": "2024-05-01", "description": "Loja 03/10", "amount": 10}])
        assert ("date", "future_date") not in types

    def test_old_date_flagged(self):
        """Test that implausibly old dates are flagged."""
        _, types = self.issue_types([{"date": "2019-01-01", "description": "Padaria", "amount": 10}])
        assert ("date", "suspicious_date") in types

    def test_amounts_flagged(self):
        """Test zero and absurd amounts."""
        _, types = self.issue_types([
            {"date": "2024-03-10", "description": "Padaria", "amount": 0},
            {"date": "2024-03-10", "description": "Imóvel", "amount": 5_000_000},
        ])
        assert ("amount", "suspicious_value") in types

    def test_degenerate_description_flagged(self):
        """Test that a description of digits only is flagged."""
        _, types = self.issue_types([{"date": "2024-03-10", "description": "123456", "amount": 10}])
        assert ("description", "suspicious_value") in types

    def test_history_duplicate_is_info(self):
        """Test that an already-saved transaction is reported, not dropped."""
        async def scenario():
            store = InMemoryDocumentStore("user-1")
            saved = Transaction(
                account_id="acc-1",
                date=date(2024, 3, 10),
                description="Padaria",
                amount=Decimal("10.00"),
                type=TransactionType.EXPENSE,
            )
            await store.seed(TRANSACTIONS, "t1", saved.to_document())
            validator = CandidateValidator(store, today=TODAY)
            return await validator.validate([{"date": "2024-03-10", "description": "padaria", "amount": 10}])

        result = asyncio.run(scenario())
        duplicates = [i for i in result.issues if i.issue_type == "potential_duplicate"]
        assert len(duplicates) == 1
        assert duplicates[0].severity == "info"
        assert len(result.candidates) == 1


class TestUserSummary:
    """Tests for get_user_friendly_summary."""

    def test_clean_batch(self):
        """Test the message for a clean batch."""
        validator = CandidateValidator(today=TODAY)
        result = asyncio.run(validator.validate(
            [{"date": "2024-03-10", "description": "Padaria", "amount": 10}],
            check_duplicates=False,
        ))
        assert "1 transações" in validator.get_user_friendly_summary(result)

    def test_failed_batch(self):
        """Test that a failed batch tells the user to fix it."""
        validator = CandidateValidator(today=TODAY)
        result = asyncio.run(validator.validate([{"description": "x"}]))
        summary = validator.get_user_friendly_summary(result)
        assert "❌" in summary
        assert "Corrija" in summary


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
