"""
Manual Transaction Service

Add, edit and delete single transactions with the same balance
discipline as the import path: the transaction writes and the balance
increments go into one batch.

Only accounts carry a balance. A transaction owned by a credit card is
written without touching any balance.
"""

import calendar
from datetime import date, timedelta
from typing import Optional

import structlog

from extrato.config import ImportSettings
from extrato.ledger.balance import BalanceDelta, verify_account_balance
from extrato.ledger.installments import clamp_count, expand_dates
from extrato.models.ledger import (
    Frequency,
    Transaction,
    TransactionFields,
    TransactionInput,
    TransactionStatus,
)
from extrato.services.storage.interface import (
    ACCOUNTS,
    TRANSACTIONS,
    DocumentStore,
    NotFoundError,
)


logger = structlog.get_logger(__name__)


class TransactionService:
    """Manual-entry mutations and month listings for one user's ledger."""

    def __init__(self, store: DocumentStore, settings: Optional[ImportSettings] = None):
        self._store = store
        self.settings = settings or ImportSettings()

    async def _existing_accounts(self, *account_ids: str) -> list[str]:
        found = []
        for account_id in dict.fromkeys(account_ids):
            if await self._store.get(ACCOUNTS, account_id) is not None:
                found.append(account_id)
        return found

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        data = await self._store.get(TRANSACTIONS, transaction_id)
        if data is None:
            return None
        return Transaction.from_document(transaction_id, data)

    async def add_transaction(self, data: TransactionInput) -> list[Transaction]:
        """
        Create a transaction, or a series of them when it repeats.

        A recurring entry (is_recurring with a frequency) becomes
        repeat_count instances, capped at the configured maximum. Each
        instance is numbered i/count; only the first keeps the given
        status, later ones are pending.

        Returns:
            The created transactions, in date order
        """
        recurring = data.is_recurring and data.frequency is not None
        count = clamp_count(data.repeat_count, self.settings.max_repeat_count) if recurring else 1
        dates = expand_dates(data.date, data.frequency or Frequency.MONTHLY, count)

        base = data.model_dump(exclude={"repeat_count"})
        created = []
        for index, day in dates:
            fields = {
                **base,
                "id": self._store.new_id(TRANSACTIONS),
                "date": day,
                "status": data.status if index == 0 else TransactionStatus.PENDING,
            }
            if recurring:
                fields["installment_number"] = index + 1
                fields["total_installments"] = count
            created.append(Transaction(**fields))

        owners = await self._existing_accounts(data.account_id)
        batch = self._store.batch()
        deltas = BalanceDelta()
        for transaction in created:
            batch.set(TRANSACTIONS, transaction.id, transaction.to_document())
            if owners:
                deltas.apply(transaction)
        deltas.write_to(batch, owners)
        await batch.commit()

        logger.info(
            "transaction_added",
            transaction_id=created[0].id,
            instances=len(created),
            account_id=data.account_id,
        )
        await self._verify(owners)
        return created

    async def update_transaction(self, transaction_id: str, data: TransactionFields) -> Transaction:
        """
        Replace a transaction's fields.

        The old balance effect is reversed and the new one applied in the
        same batch, which also covers moving it to another account.

        Raises:
            NotFoundError: No transaction with this id.
        """
        previous = await self.get_transaction(transaction_id)
        if previous is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")

        updated = Transaction(
            **data.model_dump(include=set(TransactionFields.model_fields)),
            id=transaction_id,
            created_at=previous.created_at,
        )

        owners = await self._existing_accounts(previous.account_id, updated.account_id)
        deltas = BalanceDelta()
        if previous.account_id in owners:
            deltas.reverse(previous)
        if updated.account_id in owners:
            deltas.apply(updated)

        batch = self._store.batch()
        batch.set(TRANSACTIONS, transaction_id, updated.to_document())
        deltas.write_to(batch, owners)
        await batch.commit()

        logger.info("transaction_updated", transaction_id=transaction_id)
        await self._verify(owners)
        return updated

    async def delete_transaction(self, transaction_id: str) -> bool:
        """
        Delete a transaction and reverse its balance effect.

        Returns:
            False if it did not exist
        """
        previous = await self.get_transaction(transaction_id)
        if previous is None:
            return False

        owners = await self._existing_accounts(previous.account_id)
        deltas = BalanceDelta()
        if owners:
            deltas.reverse(previous)

        batch = self._store.batch()
        batch.delete(TRANSACTIONS, transaction_id)
        deltas.write_to(batch, owners)
        await batch.commit()

        logger.info("transaction_deleted", transaction_id=transaction_id)
        await self._verify(owners)
        return True

    async def list_month_transactions(self, year: int, month: int) -> list[Transaction]:
        """Transactions dated in one calendar month, oldest first."""
        first = date(year, month, 1)
        last = date(year, month, calendar.monthrange(year, month)[1])
        # One day of padding each side, then an exact filter
        docs = await self._store.query_by_date(
            TRANSACTIONS, first - timedelta(days=1), last + timedelta(days=1)
        )
        transactions = [Transaction.from_document(doc.id, doc.data) for doc in docs]
        in_month = [t for t in transactions if first <= t.date <= last]
        return sorted(in_month, key=lambda t: t.date)

    async def _verify(self, account_ids: list[str]) -> None:
        if not self.settings.verify_balances:
            return
        for account_id in account_ids:
            await verify_account_balance(self._store, account_id)
