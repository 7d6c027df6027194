"""
Tests for the reconciliation writer

Test strategy:
1. Every test runs against a fresh in-memory store
2. Balances are checked against the transactions actually stored
3. Failure paths use the store's injected commit failure
"""

import asyncio

import pytest
from datetime import date
from decimal import Decimal

from extrato.config import ImportSettings
from extrato.ledger import (
    DuplicateDetector,
    EntityResolver,
    ReconciliationError,
    ReconciliationWriter,
    ResolutionError,
    verify_account_balance,
)
from extrato.ledger.resolver import DEFAULT_ACCOUNT_NAME, DEFAULT_CARD_NAME
from extrato.models.ledger import (
    Account,
    CreditCard,
    SourceType,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from extrato.models.statement import CandidateTransaction, ImportOutcome, StatementMetadata
from extrato.parsing import NubankParser
from extrato.services.storage import ACCOUNTS, CREDIT_CARDS, TRANSACTIONS
from extrato.services.storage.memory import InMemoryDocumentStore


NUBANK_INVOICE = "\n".join([
    "Nubank",
    "FATURA JANEIRO 2024",
    "Limite total R$ 5.000,00",
    "20 DEZ Restaurante Sabor R$ 45,90",
    "05 JAN Uber *Trip R$ 14,90",
    "10 JAN Loja Exemplo 03/10 R$ 120,00",
    "Vencimento: 15 JAN",
])


def candidate(description="Padaria", amount="10.00", **overrides) -> CandidateTransaction:
    fields = {
        "date": date(2024, 3, 10),
        "description": description,
        "amount": Decimal(amount),
        "type": TransactionType.EXPENSE,
        "source_type": SourceType.ACCOUNT,
        "bank_name": "Banco Inter",
    }
    fields.update(overrides)
    return CandidateTransaction(**fields)


def collection(store, name):
    return store.database.user_data(store.user_id)[name]


async def seed_account(store, account_id="acc-1", name="Banco Inter", balance="100.00"):
    account = Account(
        id=account_id,
        name=name,
        balance=Decimal(balance),
        initial_balance=Decimal(balance),
    )
    await store.seed(ACCOUNTS, account_id, account.to_document())


async def seed_transaction(store, doc_id, day, description="Padaria", amount="10.00"):
    transaction = Transaction(
        account_id="acc-1",
        date=day,
        description=description,
        amount=Decimal(amount),
        type=TransactionType.EXPENSE,
    )
    await store.seed(TRANSACTIONS, doc_id, transaction.to_document())


class TestDuplicateWindow:
    """Tests for the history window of DuplicateDetector."""

    def test_history_loaded_five_days_around_batch(self):
        """Test that history 5 days outside the batch is loaded and 6 days outside is not."""
        async def scenario():
            store = InMemoryDocumentStore("user-1")
            for doc_id, day in (
                ("before-6", date(2024, 3, 4)),
                ("before-5", date(2024, 3, 5)),
                ("after-5", date(2024, 3, 25)),
                ("after-6", date(2024, 3, 26)),
            ):
                await seed_transaction(store, doc_id, day)
            batch = [
                candidate(date=date(2024, 3, 10)),
                candidate(date=date(2024, 3, 20)),
            ]
            return await DuplicateDetector(store).existing_signatures(batch)

        loaded = {sig[0] for sig in asyncio.run(scenario())}
        assert loaded == {date(2024, 3, 5), date(2024, 3, 25)}

    def test_window_follows_settings(self):
        """Test that the slack comes from IMPORT_DUPLICATE_WINDOW_DAYS."""
        detector = DuplicateDetector(InMemoryDocumentStore("user-1"), ImportSettings(duplicate_window_days=2))
        assert detector.window([candidate(date=date(2024, 3, 10))]) == (date(2024, 3, 8), date(2024, 3, 12))

    def test_split_drops_only_exact_matches(self):
        """Test that a stored twin is a duplicate and a same-text line on another day is not."""
        async def scenario():
            store = InMemoryDocumentStore("user-1")
            await seed_transaction(store, "t1", date(2024, 3, 10))
            await seed_transaction(store, "t2", date(2024, 3, 12))
            return await DuplicateDetector(store).split([
                candidate(date=date(2024, 3, 10), description="  PADARIA "),
                candidate(date=date(2024, 3, 11)),
            ])

        fresh, duplicates = asyncio.run(scenario())
        assert [c.date for c in duplicates] == [date(2024, 3, 10)]
        assert [c.date for c in fresh] == [date(2024, 3, 11)]


class TestEntityResolver:
    """Tests for EntityResolver."""

    def test_matches_existing_by_substring(self):
        """Test that 'Inter' finds the account named 'Banco Inter'."""
        async def scenario():
            store = InMemoryDocumentStore("user-1")
            await seed_account(store)
            resolver = EntityResolver(store)
            await resolver.load()
            return resolver, resolver.resolve(candidate(bank_name="Inter"))

        resolver, resolution = asyncio.run(scenario())
        assert resolution.entity_id == "acc-1"
        assert not resolution.created
        assert resolver.new_accounts == []

    def test_created_entity_is_reused(self):
        """Test that two candidates naming a new bank create one account."""
        async def scenario():
            resolver = EntityResolver(InMemoryDocumentStore("user-1"))
            await resolver.load()
            first = resolver.resolve(candidate(bank_name="Caixa"))
            second = resolver.resolve(candidate(bank_name="Caixa"))
            return resolver, first, second

        resolver, first, second = asyncio.run(scenario())
        assert first.created and not second.created
        assert first.entity_id == second.entity_id
        assert len(resolver.new_accounts) == 1

    def test_nameless_candidates_use_defaults(self):
        """Test the default names for nameless card and account candidates."""
        async def scenario():
            resolver = EntityResolver(InMemoryDocumentStore("user-1"))
            await resolver.load()
            resolver.resolve(candidate(bank_name=None))
            resolver.resolve(candidate(bank_name=None, source_type=SourceType.CARD))
            resolver.resolve(candidate(bank_name=None, source_type=SourceType.CARD))
            return resolver

        resolver = asyncio.run(scenario())
        assert [a.name for a in resolver.new_accounts] == [DEFAULT_ACCOUNT_NAME]
        assert [c.name for c in resolver.new_cards] == [DEFAULT_CARD_NAME]

    def test_new_card_uses_metadata(self):
        """Test that statement metadata sets the new card's limit and days."""
        async def scenario():
            resolver = EntityResolver(InMemoryDocumentStore("user-1"))
            await resolver.load()
            metadata = StatementMetadata(bank_name="Nubank", limit=Decimal("5000"), closing_day=8, due_day=15)
            resolver.resolve(candidate(bank_name=None, source_type=SourceType.CARD), metadata)
            return resolver.new_cards[0]

        card = asyncio.run(scenario())
        assert card.name == "Nubank"
        assert card.limit == Decimal("5000.00")
        assert (card.closing_day, card.due_day) == (8, 15)

    def test_destination_override(self):
        """Test that an explicit destination wins over the bank name."""
        async def scenario():
            store = InMemoryDocumentStore("user-1")
            card = CreditCard(name="Visa", closing_day=1, due_day=10)
            await store.seed(CREDIT_CARDS, "card-1", card.to_document())
            resolver = EntityResolver(store)
            await resolver.load()
            return resolver.resolve(candidate(bank_name="Banco Inter"), destination_id="card-1")

        resolution = asyncio.run(scenario())
        assert resolution.entity_id == "card-1"
        assert not resolution.is_account

    def test_unknown_destination(self):
        """Test that an unknown destination id is rejected."""
        async def scenario():
            resolver = EntityResolver(InMemoryDocumentStore("user-1"))
            await resolver.load()
            resolver.resolve(candidate(), destination_id="missing")

        with pytest.raises(ResolutionError):
            asyncio.run(scenario())

    def test_resolve_requires_load(self):
        """Test that resolving before loading is a programming error."""
        resolver = EntityResolver(InMemoryDocumentStore("user-1"))
        with pytest.raises(RuntimeError):
            resolver.resolve(candidate())


class TestReconciliationWriter:
    """Tests for ReconciliationWriter.reconcile."""

    def test_existing_account_balance(self):
        """Test that imported account lines move the existing balance."""
        async def scenario():
            store = InMemoryDocumentStore("user-1")
            await seed_account(store)
            summary = await ReconciliationWriter(store).reconcile([
                candidate("Salário", "50.00", type=TransactionType.INCOME),
                candidate("Mercado", "20.00"),
            ])
            checked = await verify_account_balance(store, "acc-1")
            return store, summary, checked

        store, summary, checked = asyncio.run(scenario())
        assert summary.saved_count == 2
        assert summary.outcome == ImportOutcome.SAVED
        assert collection(store, ACCOUNTS)["acc-1"]["balance"] == 130.0
        assert checked == Decimal("130.00")
        for doc in collection(store, TRANSACTIONS).values():
            assert doc["accountId"] == "acc-1"
            assert doc["status"] == TransactionStatus.COMPLETED.value

    def test_new_account_opens_with_delta(self):
        """Test that a created account starts at the sum of its lines."""
        async def scenario():
            store = InMemoryDocumentStore("user-1")
            summary = await ReconciliationWriter(store).reconcile([
                candidate("Depósito", "200.00", type=TransactionType.INCOME, bank_name="Caixa"),
                candidate("Conta de luz", "80.00", bank_name="Caixa"),
            ])
            account_id = summary.accounts_created[0]
            checked = await verify_account_balance(store, account_id)
            return store, summary, account_id, checked

        store, summary, account_id, checked = asyncio.run(scenario())
        assert len(summary.accounts_created) == 1
        account = collection(store, ACCOUNTS)[account_id]
        assert account["name"] == "Caixa"
        assert account["balance"] == 120.0
        assert account["initialBalance"] == 0.0
        assert checked == Decimal("120.00")

    def test_reimport_is_idempotent(self):
        """Test that importing the same statement twice saves nothing the second time."""
        async def scenario():
            store = InMemoryDocumentStore("user-1")
            parsed = NubankParser(today=date(2024, 2, 1)).parse(NUBANK_INVOICE, "Nubank_Janeiro_2024.pdf")
            writer = ReconciliationWriter(store)
            first = await writer.reconcile(parsed.candidates, parsed.metadata)
            count_after_first = len(collection(store, TRANSACTIONS))
            second = await writer.reconcile(parsed.candidates, parsed.metadata)
            return store, parsed, first, second, count_after_first

        store, parsed, first, second, count_after_first = asyncio.run(scenario())
        assert first.saved_count == len(parsed.candidates)
        assert second.saved_count == 0
        assert second.duplicates_skipped == len(parsed.candidates)
        assert second.outcome == ImportOutcome.ALL_DUPLICATES
        assert len(collection(store, TRANSACTIONS)) == count_after_first
        assert len(collection(store, CREDIT_CARDS)) == 1

    def test_card_installments_expanded(self):
        """Test that installment 1/5 on a card yields five records, four pending."""
        async def scenario():
            store = InMemoryDocumentStore("user-1")
            summary = await ReconciliationWriter(store).reconcile([
                candidate(
                    "Geladeira 01/05", "300.00",
                    source_type=SourceType.CARD, bank_name="Nubank",
                    installment_number=1, total_installments=5,
                ),
            ])
            return store, summary

        store, summary = asyncio.run(scenario())
        docs = sorted(collection(store, TRANSACTIONS).values(), key=lambda d: d["date"])
        assert summary.saved_count == 1
        assert summary.future_installments_created == 4
        assert [d["installmentNumber"] for d in docs] == [1, 2, 3, 4, 5]
        assert all(d["totalInstallments"] == 5 for d in docs)
        assert [d["status"] for d in docs] == ["completed"] + ["pending"] * 4
        assert [d["date"] for d in docs] == [
            "2024-03-10", "2024-04-10", "2024-05-10", "2024-06-10", "2024-07-10",
        ]
        assert docs[1]["description"] == "Geladeira 02/05"
        assert collection(store, ACCOUNTS) == {}

    def test_card_installments_expanded_into_chosen_account(self):
        """Test that a card purchase sent to an account still gets its future installments."""
        async def scenario():
            store = InMemoryDocumentStore("user-1")
            await seed_account(store)
            summary = await ReconciliationWriter(store, ImportSettings(verify_balances=True)).reconcile(
                [
                    candidate(
                        "Loja 01/03", "50.00",
                        source_type=SourceType.CARD, bank_name="Nubank",
                        installment_number=1, total_installments=3,
                    ),
                ],
                destination_id="acc-1",
            )
            return store, summary

        store, summary = asyncio.run(scenario())
        docs = sorted(collection(store, TRANSACTIONS).values(), key=lambda d: d["date"])
        assert summary.saved_count == 1
        assert summary.future_installments_created == 2
        assert [d["installmentNumber"] for d in docs] == [1, 2, 3]
        assert all(d["accountId"] == "acc-1" for d in docs)
        assert [d["status"] for d in docs] == ["completed", "pending", "pending"]
        assert collection(store, ACCOUNTS)["acc-1"]["balance"] == 50.0

    def test_account_installment_line_not_expanded(self):
        """Test that an account-sourced line marked n/T is saved alone."""
        async def scenario():
            store = InMemoryDocumentStore("user-1")
            await seed_account(store)
            return await ReconciliationWriter(store).reconcile([
                candidate("Financiamento 02/12", "800.00", installment_number=2, total_installments=12),
            ])

        summary = asyncio.run(scenario())
        assert summary.future_installments_created == 0
        assert len(summary.transactions) == 1

    def test_card_lines_do_not_touch_accounts(self):
        """Test that card purchases leave every account balance alone."""
        async def scenario():
            store = InMemoryDocumentStore("user-1")
            await seed_account(store)
            await ReconciliationWriter(store).reconcile([
                candidate("Cinema", "40.00", source_type=SourceType.CARD, bank_name="Nubank"),
            ])
            return store

        store = asyncio.run(scenario())
        assert collection(store, ACCOUNTS)["acc-1"]["balance"] == 100.0
        assert len(collection(store, CREDIT_CARDS)) == 1

    def test_commit_failure_saves_nothing(self):
        """Test that a failed commit leaves the store untouched."""
        async def scenario():
            store = InMemoryDocumentStore("user-1")
            await seed_account(store)
            store.database.fail_next_commit("backend unavailable")
            with pytest.raises(ReconciliationError):
                await ReconciliationWriter(store).reconcile([
                    candidate("Mercado", "20.00"),
                    candidate("Farmácia", "15.00", bank_name="Caixa"),
                ])
            return store

        store = asyncio.run(scenario())
        assert collection(store, TRANSACTIONS) == {}
        assert list(collection(store, ACCOUNTS)) == ["acc-1"]
        assert collection(store, ACCOUNTS)["acc-1"]["balance"] == 100.0

    def test_commit_failure_raises(self):
        """Test that a failed commit is reported as ReconciliationError."""
        async def scenario():
            store = InMemoryDocumentStore("user-1")
            store.database.fail_next_commit()
            await ReconciliationWriter(store).reconcile([candidate()])

        with pytest.raises(ReconciliationError) as exc_info:
            asyncio.run(scenario())
        assert exc_info.value.candidate_count == 1

    def test_unselected_candidates_ignored(self):
        """Test that deselected candidates are never written."""
        async def scenario():
            store = InMemoryDocumentStore("user-1")
            summary = await ReconciliationWriter(store).reconcile([candidate(selected=False)])
            return store, summary

        store, summary = asyncio.run(scenario())
        assert summary.outcome == ImportOutcome.NOTHING_SELECTED
        assert collection(store, TRANSACTIONS) == {}

    def test_ignored_flag_persisted(self):
        """Test that a candidate ignored by a rule is stored as ignored."""
        async def scenario():
            store = InMemoryDocumentStore("user-1")
            await ReconciliationWriter(store).reconcile([
                candidate("IOF", "1.50", source_type=SourceType.CARD, is_ignored=True),
            ])
            return store

        store = asyncio.run(scenario())
        (doc,) = collection(store, TRANSACTIONS).values()
        assert doc["isIgnored"] is True

    def test_balance_verification_enabled(self):
        """Test a reconciliation with balance verification switched on."""
        async def scenario():
            store = InMemoryDocumentStore("user-1")
            await seed_account(store, balance="0.00")
            writer = ReconciliationWriter(store, ImportSettings(verify_balances=True))
            return await writer.reconcile([candidate("Pix", "12.34", type=TransactionType.INCOME)])

        assert asyncio.run(scenario()).saved_count == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
