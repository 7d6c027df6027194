"""
Balance Deltas

An account's balance is a cached aggregate:

    balance == initial_balance + sum(signed amount of its completed transactions)

Every mutation path (import, add, edit, delete) describes its effect as a
BalanceDelta and applies it through atomic increments in the SAME batch
as the transaction writes. Nothing ever reads a balance, changes it and
writes it back.
"""

from decimal import Decimal
from typing import Iterable, Optional

import structlog

from extrato.models.ledger import Account, Transaction, TransactionFields, to_money
from extrato.services.storage.interface import ACCOUNTS, TRANSACTIONS, DocumentStore, WriteBatch


logger = structlog.get_logger(__name__)

ZERO = Decimal("0.00")


class BalanceInvariantError(Exception):
    """
    A stored balance disagrees with the transactions behind it.

    This is a bug in a mutation path, never a user error. It is not
    caught anywhere inside the package.
    """

    def __init__(self, account_id: str, stored: Decimal, expected: Decimal):
        self.account_id = account_id
        self.stored = stored
        self.expected = expected
        super().__init__(
            f"Balance of account {account_id} is {stored}, expected {expected}"
        )


class BalanceDelta:
    """Net balance change per account, accumulated before a commit."""

    def __init__(self):
        self._deltas: dict[str, Decimal] = {}

    def add(self, account_id: str, amount: Decimal) -> None:
        amount = to_money(amount)
        self._deltas[account_id] = self._deltas.get(account_id, ZERO) + amount

    def apply(self, transaction: TransactionFields) -> None:
        """Record the effect of a transaction being written."""
        if transaction.affects_balance:
            self.add(transaction.account_id, transaction.signed_amount)

    def reverse(self, transaction: TransactionFields) -> None:
        """Record the undoing of a transaction's previous effect."""
        if transaction.affects_balance:
            self.add(transaction.account_id, -transaction.signed_amount)

    def get(self, account_id: str) -> Decimal:
        return self._deltas.get(account_id, ZERO)

    def pop(self, account_id: str) -> Decimal:
        return self._deltas.pop(account_id, ZERO)

    def items(self) -> list[tuple[str, Decimal]]:
        """Non-zero deltas, in the order accounts were first touched."""
        return [(account_id, delta) for account_id, delta in self._deltas.items() if delta != ZERO]

    def __bool__(self) -> bool:
        return bool(self.items())

    def write_to(self, batch: WriteBatch, account_ids: Iterable[str]) -> int:
        """
        Add one increment per touched account to the batch.

        Only ids in account_ids are written; a delta for anything else
        (a credit card, a deleted account) is a caller bug.

        Returns:
            Number of increments recorded
        """
        known = set(account_ids)
        written = 0
        for account_id, delta in self.items():
            if account_id not in known:
                raise ValueError(f"Balance delta for unknown account {account_id}")
            batch.increment(ACCOUNTS, account_id, "balance", delta)
            written += 1
        return written


def expected_balance(initial_balance: Decimal, transactions: Iterable[TransactionFields]) -> Decimal:
    total = to_money(initial_balance)
    for transaction in transactions:
        if transaction.affects_balance:
            total += transaction.signed_amount
    return total


async def verify_account_balance(
    store: DocumentStore,
    account_id: str,
    transactions: Optional[list[TransactionFields]] = None,
) -> Decimal:
    """
    Recompute an account's balance from its transactions and compare.

    Raises:
        BalanceInvariantError: The stored balance differs from the sum.
    """
    data = await store.get(ACCOUNTS, account_id)
    if data is None:
        raise ValueError(f"Account {account_id} does not exist")
    account = Account.from_document(account_id, data)

    if transactions is None:
        docs = await store.list_all(TRANSACTIONS)
        transactions = [
            Transaction.from_document(doc.id, doc.data)
            for doc in docs
            if doc.data.get("accountId") == account_id
        ]

    expected = expected_balance(account.initial_balance, transactions)
    if account.balance != expected:
        logger.error(
            "balance_invariant_violated",
            account_id=account_id,
            stored=str(account.balance),
            expected=str(expected),
        )
        raise BalanceInvariantError(account_id, account.balance, expected)
    return expected
