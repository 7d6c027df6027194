"""
Reconciliation Writer

Commits the candidates a user approved as persisted transactions, in one
atomic batch together with every side effect:
- new accounts and credit cards created by the resolver
- balance increments of the accounts that own the new transactions
- pending future installments of card purchases paid in installments,
  whichever account or card ends up owning them

Either the whole batch is visible afterwards or none of it is. A batch
that only contained duplicates is a normal, reported outcome.
"""

from typing import Optional

import structlog

from extrato.config import ImportSettings
from extrato.ledger.balance import BalanceDelta, verify_account_balance
from extrato.ledger.duplicates import DuplicateDetector
from extrato.ledger.installments import remaining_installments, renumber_description
from extrato.ledger.resolver import EntityResolver, Resolution
from extrato.models.ledger import SourceType, Transaction, TransactionStatus
from extrato.models.statement import CandidateTransaction, ImportSummary, StatementMetadata
from extrato.services.storage.interface import (
    ACCOUNTS,
    CREDIT_CARDS,
    TRANSACTIONS,
    CommitError,
    DocumentStore,
    WriteBatch,
)


logger = structlog.get_logger(__name__)


class ReconciliationError(Exception):
    """
    The import batch was rejected by the store. Nothing was saved, so
    the same candidates can be submitted again.
    """

    def __init__(self, message: str, candidate_count: int):
        self.candidate_count = candidate_count
        super().__init__(message)


class ReconciliationWriter:
    """Writes one approved import batch."""

    def __init__(self, store: DocumentStore, settings: Optional[ImportSettings] = None):
        self._store = store
        self.settings = settings or ImportSettings()
        self._detector = DuplicateDetector(store, self.settings)

    async def reconcile(
        self,
        candidates: list[CandidateTransaction],
        metadata: Optional[StatementMetadata] = None,
        destination_id: Optional[str] = None,
    ) -> ImportSummary:
        """
        Persist the selected candidates.

        Args:
            candidates: Reviewed candidates; only those with selected=True
                are considered.
            metadata: Statement metadata, used for new card defaults.
            destination_id: Account or card chosen by the user for the
                whole batch. Overrides bank-name detection.

        Returns:
            ImportSummary with saved, duplicate and installment counts

        Raises:
            ResolutionError: destination_id names nothing.
            ReconciliationError: The atomic commit failed; nothing saved.
        """
        selected = [c for c in candidates if c.selected]
        if not selected:
            logger.info("reconcile_nothing_selected", offered=len(candidates))
            return ImportSummary()

        fresh, duplicates = await self._detector.split(selected)
        if not fresh:
            logger.info("reconcile_all_duplicates", duplicates=len(duplicates))
            return ImportSummary(duplicates_skipped=len(duplicates))

        resolver = EntityResolver(self._store, self.settings)
        await resolver.load()
        resolutions = [resolver.resolve(c, metadata, destination_id) for c in fresh]

        batch = self._store.batch()
        deltas = BalanceDelta()
        written: list[Transaction] = []
        future_count = 0

        for candidate, resolution in zip(fresh, resolutions):
            transaction = self._transaction_for(candidate, resolution)
            batch.set(TRANSACTIONS, transaction.id, transaction.to_document())
            written.append(transaction)
            if resolution.is_account:
                deltas.apply(transaction)
            if candidate.source_type == SourceType.CARD and candidate.has_future_installments:
                future = self._future_installments(batch, transaction)
                written.extend(future)
                future_count += len(future)

        self._write_new_entities(batch, resolver, deltas)
        deltas.write_to(batch, resolver.account_ids)

        try:
            await batch.commit()
        except CommitError as e:
            logger.error(
                "reconcile_commit_failed",
                candidates=len(fresh),
                operations=len(batch),
                error=str(e),
            )
            raise ReconciliationError(
                f"Import was not saved: {e}", candidate_count=len(fresh)
            ) from e

        summary = ImportSummary(
            saved_count=len(fresh),
            duplicates_skipped=len(duplicates),
            future_installments_created=future_count,
            accounts_created=[a.id for a in resolver.new_accounts],
            cards_created=[c.id for c in resolver.new_cards],
            transactions=written,
        )
        logger.info(
            "reconcile_committed",
            saved=summary.saved_count,
            duplicates=summary.duplicates_skipped,
            future_installments=future_count,
            accounts_created=len(summary.accounts_created),
            cards_created=len(summary.cards_created),
        )

        if self.settings.verify_balances:
            touched = {r.entity_id for r in resolutions if r.is_account}
            for account_id in touched:
                await verify_account_balance(self._store, account_id)

        return summary

    def _transaction_for(self, candidate: CandidateTransaction, resolution: Resolution) -> Transaction:
        return Transaction(
            id=self._store.new_id(TRANSACTIONS),
            account_id=resolution.entity_id,
            date=candidate.date,
            description=candidate.description,
            amount=candidate.amount,
            type=candidate.type,
            category=candidate.category,
            status=TransactionStatus.COMPLETED,
            installment_number=candidate.installment_number,
            total_installments=candidate.total_installments,
            bank_name=candidate.bank_name,
            is_ignored=candidate.is_ignored,
        )

    def _future_installments(self, batch: WriteBatch, posted: Transaction) -> list[Transaction]:
        """Pending placeholders for installments n+1..T of a card purchase."""
        future = []
        for number, day in remaining_installments(
            posted.date,
            posted.installment_number,
            posted.total_installments,
            self.settings.max_repeat_count,
        ):
            transaction = posted.model_copy(update={
                "id": self._store.new_id(TRANSACTIONS),
                "date": day,
                "description": renumber_description(
                    posted.description, number, posted.total_installments
                ),
                "status": TransactionStatus.PENDING,
                "installment_number": number,
            })
            batch.set(TRANSACTIONS, transaction.id, transaction.to_document())
            future.append(transaction)
        return future

    def _write_new_entities(
        self,
        batch: WriteBatch,
        resolver: EntityResolver,
        deltas: BalanceDelta,
    ) -> None:
        # A new account starts at zero, so its first balance is just its delta
        for account in resolver.new_accounts:
            opening = account.model_copy(update={"balance": deltas.pop(account.id)})
            batch.set(ACCOUNTS, opening.id, opening.to_document())
        for card in resolver.new_cards:
            batch.set(CREDIT_CARDS, card.id, card.to_document())
