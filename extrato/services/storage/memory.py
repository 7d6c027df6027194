"""
In-Memory Document Store

Same contract as the Firestore store, held in process memory:
- One InMemoryDatabase is shared by all users; each InMemoryDocumentStore
  is a view bound to one user id.
- Batches are applied to a copy and swapped in only if every operation
  succeeds, so a failed commit leaves nothing behind.
- Increments are computed with Decimal, so balances stay exact to the cent.

Used by the test suite and for running the pipeline without credentials.
"""

import copy
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Optional
from uuid import uuid4

import structlog

from extrato.models.ledger import to_money
from extrato.services.storage.interface import (
    COLLECTIONS,
    CommitError,
    DocumentStore,
    LiveQuery,
    Snapshot,
    StoredDocument,
    WriteBatch,
    WriteOp,
)


logger = structlog.get_logger(__name__)

UserData = dict[str, dict[str, dict[str, Any]]]


@dataclass(eq=False)
class _Listener:
    user_id: str
    collection: str
    start: Optional[date]
    end: Optional[date]
    push: Callable[[Snapshot], None]


def _in_range(data: dict[str, Any], start: Optional[date], end: Optional[date]) -> bool:
    if start is None and end is None:
        return True
    value = data.get("date")
    if not isinstance(value, str):
        return False
    day = value[:10]
    if start is not None and day < start.isoformat():
        return False
    if end is not None and day > end.isoformat():
        return False
    return True


class InMemoryDatabase:
    """Process-wide storage shared by every per-user store."""

    def __init__(self):
        self._users: dict[str, UserData] = {}
        self._listeners: list[_Listener] = []
        self._fail_reason: Optional[str] = None
        self.commit_count = 0

    def user_data(self, user_id: str) -> UserData:
        return self._users.setdefault(
            user_id, {name: {} for name in COLLECTIONS}
        )

    def fail_next_commit(self, reason: str = "simulated backend failure") -> None:
        """Make the next commit raise CommitError without writing."""
        self._fail_reason = reason

    def snapshot(
        self,
        user_id: str,
        collection: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[StoredDocument]:
        docs = self.user_data(user_id)[collection]
        return [
            StoredDocument(doc_id, copy.deepcopy(data))
            for doc_id, data in docs.items()
            if _in_range(data, start, end)
        ]

    def apply(self, user_id: str, ops: list[WriteOp]) -> None:
        """Apply ops all-or-nothing, then notify listeners."""
        if self._fail_reason is not None:
            reason, self._fail_reason = self._fail_reason, None
            raise CommitError(reason)

        staged = copy.deepcopy(self.user_data(user_id))
        for op in ops:
            docs = staged[op.collection]
            if op.kind == "set":
                docs[op.doc_id] = copy.deepcopy(op.data)
            elif op.kind == "update":
                if op.doc_id not in docs:
                    raise CommitError(
                        f"Cannot update missing document {op.collection}/{op.doc_id}"
                    )
                docs[op.doc_id].update(copy.deepcopy(op.data))
            elif op.kind == "increment":
                if op.doc_id not in docs:
                    raise CommitError(
                        f"Cannot increment missing document {op.collection}/{op.doc_id}"
                    )
                for field_name, delta in op.data.items():
                    current = to_money(docs[op.doc_id].get(field_name, 0))
                    docs[op.doc_id][field_name] = float(current + to_money(delta))
            elif op.kind == "delete":
                docs.pop(op.doc_id, None)
            else:
                raise CommitError(f"Unknown operation: {op.kind}")

        self._users[user_id] = staged
        self.commit_count += 1

        touched = {op.collection for op in ops}
        for listener in list(self._listeners):
            if listener.user_id == user_id and listener.collection in touched:
                listener.push(self.snapshot(
                    user_id, listener.collection, listener.start, listener.end
                ))

    def listen(
        self,
        user_id: str,
        collection: str,
        start: Optional[date],
        end: Optional[date],
        push: Callable[[Snapshot], None],
    ) -> Callable[[], None]:
        """Register push, deliver the current snapshot, return the unsubscribe hook."""
        listener = _Listener(user_id, collection, start, end, push)
        self._listeners.append(listener)
        push(self.snapshot(user_id, collection, start, end))

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


class InMemoryWriteBatch(WriteBatch):
    def __init__(self, database: InMemoryDatabase, user_id: str):
        super().__init__()
        self._database = database
        self._user_id = user_id

    async def _apply(self, ops: list[WriteOp]) -> None:
        self._database.apply(self._user_id, ops)


class InMemoryLiveQuery(LiveQuery):
    """Live query fed by commits to the shared InMemoryDatabase."""

    def __init__(
        self,
        database: InMemoryDatabase,
        user_id: str,
        collection: str,
        start: Optional[date],
        end: Optional[date],
    ):
        super().__init__()
        self._database = database
        self._user_id = user_id
        self._collection = collection
        self._start = start
        self._end = end

    def _listen(self, push: Callable[[Snapshot], None]) -> Callable[[], None]:
        return self._database.listen(
            self._user_id, self._collection, self._start, self._end, push
        )


class InMemoryDocumentStore(DocumentStore):
    """DocumentStore bound to one user of an InMemoryDatabase."""

    def __init__(self, user_id: str, database: Optional[InMemoryDatabase] = None):
        super().__init__(user_id)
        self.database = database or InMemoryDatabase()

    async def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        data = self.database.user_data(self.user_id)[collection].get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    async def list_all(self, collection: str) -> list[StoredDocument]:
        return self.database.snapshot(self.user_id, collection)

    async def query_by_date(
        self,
        collection: str,
        start: date,
        end: date,
    ) -> list[StoredDocument]:
        return self.database.snapshot(self.user_id, collection, start, end)

    def new_id(self, collection: str) -> str:
        return uuid4().hex[:20]

    def batch(self) -> InMemoryWriteBatch:
        return InMemoryWriteBatch(self.database, self.user_id)

    def subscribe(
        self,
        collection: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> InMemoryLiveQuery:
        logger.debug("live_query_opened", collection=collection, user_id=self.user_id)
        return InMemoryLiveQuery(self.database, self.user_id, collection, start, end)

    async def seed(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Write one document outside any batch. Test fixtures use this."""
        await self.batch().set(collection, doc_id, data).commit()
