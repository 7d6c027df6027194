"""
Duplicate Detector

A candidate is a duplicate when an existing transaction has the same
signature: (date, amount to the cent, lower-cased trimmed description,
type). History is loaded once per batch, for the batch's date range
widened by a few days on each side.

This is a heuristic. Two genuine purchases with the same day, amount
and description are treated as one.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Iterable, Optional, Union

import structlog

from extrato.config import ImportSettings
from extrato.models.ledger import Transaction, TransactionFields, TransactionType, to_day, to_money
from extrato.models.statement import CandidateTransaction
from extrato.services.storage.interface import TRANSACTIONS, DocumentStore


logger = structlog.get_logger(__name__)

Signature = tuple[date, Decimal, str, str]


def signature(item: Union[CandidateTransaction, TransactionFields]) -> Signature:
    kind = item.type.value if isinstance(item.type, TransactionType) else str(item.type)
    return (item.date, to_money(item.amount), item.description.strip().lower(), kind)


def document_signature(data: dict[str, Any]) -> Optional[Signature]:
    """Signature of a raw stored document; None if it is malformed."""
    try:
        day = to_day(data["date"])
        if isinstance(day, str):
            day = date.fromisoformat(day)
        return (
            day,
            to_money(data["amount"]),
            str(data["description"]).strip().lower(),
            str(data["type"]),
        )
    except (KeyError, ValueError, TypeError):
        return None


class DuplicateDetector:
    """Checks candidate batches against the stored history."""

    def __init__(self, store: DocumentStore, settings: Optional[ImportSettings] = None):
        self._store = store
        self.settings = settings or ImportSettings()

    def window(self, candidates: Iterable[CandidateTransaction]) -> Optional[tuple[date, date]]:
        dates = [c.date for c in candidates]
        if not dates:
            return None
        slack = timedelta(days=self.settings.duplicate_window_days)
        return min(dates) - slack, max(dates) + slack

    async def existing_signatures(self, candidates: list[CandidateTransaction]) -> set[Signature]:
        bounds = self.window(candidates)
        if bounds is None:
            return set()
        docs = await self._store.query_by_date(TRANSACTIONS, *bounds)
        signatures = set()
        for doc in docs:
            sig = document_signature(doc.data)
            if sig is None:
                logger.warning("history_document_malformed", doc_id=doc.id)
                continue
            signatures.add(sig)
        return signatures

    async def split(
        self,
        candidates: list[CandidateTransaction],
    ) -> tuple[list[CandidateTransaction], list[CandidateTransaction]]:
        """
        Partition a batch into (new, duplicates), preserving order.

        Repeats inside the batch itself are not collapsed here.
        """
        known = await self.existing_signatures(candidates)
        fresh, duplicates = [], []
        for candidate in candidates:
            (duplicates if signature(candidate) in known else fresh).append(candidate)
        if duplicates:
            logger.info("duplicates_detected", count=len(duplicates), batch=len(candidates))
        return fresh, duplicates


def is_duplicate(candidate: CandidateTransaction, history: Iterable[Transaction]) -> bool:
    """Check one candidate against an in-memory history."""
    target = signature(candidate)
    return any(signature(t) == target for t in history)
