"""
Abstract Storage Interface

DESIGN DECISION: The ledger lives in a per-user document store with five
collections. Business logic only talks to the DocumentStore interface:
1. Firestore is the production backend
2. An in-memory backend with the same semantics is used in tests
3. Every multi-document write goes through one WriteBatch, so a commit
   either persists everything or nothing

Documents are plain dicts with camelCase keys; the models in
extrato.models know how to turn them into typed objects.

The audit trail has its own append-only interface, because its backend
(Google Sheets) is chosen for visibility rather than consistency.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, AsyncIterator, Callable, Optional
from uuid import UUID

from extrato.models.audit import AuditEvent


# Collection names under users/{uid}/
TRANSACTIONS = "transactions"
ACCOUNTS = "accounts"
CREDIT_CARDS = "credit_cards"
CUSTOM_CATEGORIES = "custom_categories"
AUTOMATION_RULES = "automation_rules"

COLLECTIONS = (
    TRANSACTIONS,
    ACCOUNTS,
    CREDIT_CARDS,
    CUSTOM_CATEGORIES,
    AUTOMATION_RULES,
)


@dataclass(frozen=True)
class StoredDocument:
    """A document id with its data."""
    id: str
    data: dict[str, Any]


@dataclass
class WriteOp:
    """One pending write inside a batch."""
    kind: str  # "set" | "update" | "increment" | "delete"
    collection: str
    doc_id: str
    data: dict[str, Any] = field(default_factory=dict)


class WriteBatch(ABC):
    """
    An atomic group of writes.

    Operations are recorded in order and applied by commit(). If commit
    raises, none of them are visible.
    """

    def __init__(self):
        self._ops: list[WriteOp] = []
        self._committed = False

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> "WriteBatch":
        """Create or replace a document."""
        self._record(WriteOp("set", collection, doc_id, dict(data)))
        return self

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> "WriteBatch":
        """Merge fields into an existing document. The document must exist."""
        self._record(WriteOp("update", collection, doc_id, dict(fields)))
        return self

    def increment(
        self,
        collection: str,
        doc_id: str,
        field_name: str,
        delta: Decimal,
    ) -> "WriteBatch":
        """Atomically add delta to a numeric field of an existing document."""
        self._record(WriteOp("increment", collection, doc_id, {field_name: delta}))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        """Delete a document. Deleting a missing document is a no-op."""
        self._record(WriteOp("delete", collection, doc_id))
        return self

    @property
    def operations(self) -> list[WriteOp]:
        return list(self._ops)

    def __len__(self) -> int:
        return len(self._ops)

    def _record(self, op: WriteOp) -> None:
        if self._committed:
            raise StorageError("Batch already committed")
        if op.collection not in COLLECTIONS:
            raise StorageError(f"Unknown collection: {op.collection}")
        self._ops.append(op)

    async def commit(self) -> None:
        """
        Apply all recorded operations atomically.

        Raises:
            CommitError: If the backend rejected the batch. Nothing was written.
        """
        if self._committed:
            raise StorageError("Batch already committed")
        await self._apply(self._ops)
        self._committed = True

    @abstractmethod
    async def _apply(self, ops: list[WriteOp]) -> None:
        pass


Snapshot = list[StoredDocument]

_CLOSED = object()


class LiveQuery(ABC):
    """
    A live view over a collection, optionally restricted to a date range.

    Every `async for` over a LiveQuery registers its own listener and
    yields the full current result set first, then again after every
    change. Leaving the loop unsubscribes that listener; close() (or
    leaving `async with`) ends every running iteration. Until then a
    LiveQuery can be iterated again after a previous loop ended.

    Usage:
        async with store.subscribe(TRANSACTIONS, start, end) as live:
            async for snapshot in live:
                render(snapshot)
    """

    def __init__(self):
        self._streams: list[tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = []
        self._closed = False

    def __aiter__(self) -> AsyncIterator[Snapshot]:
        return self._stream()

    async def _stream(self) -> AsyncIterator[Snapshot]:
        if self._closed:
            return
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        entry = (loop, queue)

        def push(snapshot: Snapshot) -> None:
            # Listeners may fire on a backend thread
            loop.call_soon_threadsafe(queue.put_nowait, snapshot)

        self._streams.append(entry)
        unsubscribe = self._listen(push)
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                yield item
        finally:
            unsubscribe()
            self._streams.remove(entry)

    @abstractmethod
    def _listen(self, push: Callable[[Snapshot], None]) -> Callable[[], None]:
        """
        Register a listener that calls push with the current snapshot
        immediately and after every change. Returns the unsubscribe hook.
        """
        pass

    def close(self) -> None:
        self._closed = True
        for loop, queue in list(self._streams):
            loop.call_soon_threadsafe(queue.put_nowait, _CLOSED)

    async def __aenter__(self) -> "LiveQuery":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class DocumentStore(ABC):
    """
    Per-user document store.

    Every instance is bound to one user id; all reads and writes are
    scoped to users/{user_id}/...
    """

    def __init__(self, user_id: str):
        if not user_id:
            raise ValueError("A document store needs a user id")
        self.user_id = user_id

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        """Return the document data, or None if it does not exist."""
        pass

    @abstractmethod
    async def list_all(self, collection: str) -> list[StoredDocument]:
        """Return every document of a collection in insertion order."""
        pass

    @abstractmethod
    async def query_by_date(
        self,
        collection: str,
        start: date,
        end: date,
    ) -> list[StoredDocument]:
        """
        Documents whose "date" field lies in [start, end], both inclusive.

        Dates are stored as YYYY-MM-DD strings, so lexical order is
        chronological order.
        """
        pass

    @abstractmethod
    def new_id(self, collection: str) -> str:
        """Allocate a fresh document id without writing anything."""
        pass

    @abstractmethod
    def batch(self) -> WriteBatch:
        """Start a new atomic batch."""
        pass

    @abstractmethod
    def subscribe(
        self,
        collection: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> LiveQuery:
        """Open a live query. Pass start and end to filter on "date"."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """All events of one import, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """The most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class CommitError(StorageError):
    """A batch was rejected. None of its writes were applied."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
