"""
Firestore Storage Implementation

Production backend for the ledger. Documents live under
users/{uid}/{collection}/{doc_id}, which keeps every query scoped to
one user without extra filters.

TRADEOFFS:
- The Python client is synchronous; calls are made inline from the
  async methods, the same way the Sheets audit store does it.
- Snapshot listeners run on a background thread and are bridged into
  the caller's event loop through an asyncio.Queue.
- Money is stored as plain numbers. Balance increments use the
  server-side Increment transform, so concurrent imports do not lose
  updates.
"""

from datetime import date
from typing import Any, Callable, Optional

import firebase_admin
import structlog
from firebase_admin import credentials, firestore
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from extrato.config import get_settings
from extrato.services.storage.interface import (
    CommitError,
    DocumentStore,
    LiveQuery,
    Snapshot,
    StorageConnectionError,
    StorageError,
    StoredDocument,
    WriteBatch,
    WriteOp,
)


logger = structlog.get_logger(__name__)

_TRANSIENT = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
)

# Firestore rejects larger write batches
FIRESTORE_BATCH_LIMIT = 500


def get_firestore_client():
    """
    Return a Firestore client for the configured project.

    The firebase app is initialized once per process.
    """
    settings = get_settings().firestore
    try:
        app = firebase_admin.get_app()
    except ValueError:
        try:
            if settings.credentials_path:
                cred = credentials.Certificate(settings.credentials_path)
            else:
                cred = credentials.ApplicationDefault()
            options = {"projectId": settings.project_id} if settings.project_id else None
            app = firebase_admin.initialize_app(cred, options)
        except FileNotFoundError:
            raise StorageConnectionError(
                f"Firebase credentials file not found: {settings.credentials_path}"
            )
        except Exception as e:
            raise StorageConnectionError(f"Failed to initialize Firebase: {e}")
    return firestore.client(app)


class FirestoreWriteBatch(WriteBatch):
    """Maps recorded operations onto one Firestore WriteBatch."""

    def __init__(self, store: "FirestoreDocumentStore"):
        super().__init__()
        self._store = store

    async def _apply(self, ops: list[WriteOp]) -> None:
        if len(ops) > FIRESTORE_BATCH_LIMIT:
            logger.error("firestore_batch_too_large", operations=len(ops), limit=FIRESTORE_BATCH_LIMIT)
            raise CommitError(
                f"Batch has {len(ops)} writes; Firestore accepts at most {FIRESTORE_BATCH_LIMIT}"
            )

        batch = self._store.client.batch()
        for op in ops:
            ref = self._store.collection(op.collection).document(op.doc_id)
            if op.kind == "set":
                batch.set(ref, op.data)
            elif op.kind == "update":
                batch.update(ref, op.data)
            elif op.kind == "increment":
                batch.update(ref, {
                    name: firestore.Increment(float(delta))
                    for name, delta in op.data.items()
                })
            elif op.kind == "delete":
                batch.delete(ref)
            else:
                raise CommitError(f"Unknown operation: {op.kind}")
        try:
            batch.commit()
        except google_exceptions.GoogleAPICallError as e:
            logger.error("firestore_commit_failed", operations=len(ops), error=str(e))
            raise CommitError(f"Firestore rejected the batch: {e}") from e


class FirestoreLiveQuery(LiveQuery):
    """on_snapshot listener; callbacks arrive on a client thread."""

    def __init__(self, query):
        super().__init__()
        self._query = query

    def _listen(self, push: Callable[[Snapshot], None]) -> Callable[[], None]:
        def on_snapshot(docs, changes, read_time) -> None:
            push([StoredDocument(doc.id, doc.to_dict() or {}) for doc in docs])

        watch = self._query.on_snapshot(on_snapshot)
        return watch.unsubscribe


class FirestoreDocumentStore(DocumentStore):
    """Firestore-backed DocumentStore for one user."""

    def __init__(self, user_id: str, client=None):
        super().__init__(user_id)
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_firestore_client()
        return self._client

    def collection(self, name: str):
        return self.client.collection("users").document(self.user_id).collection(name)

    @retry(
        retry=retry_if_exception_type(_TRANSIENT),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        try:
            snap = self.collection(collection).document(doc_id).get()
        except _TRANSIENT:
            raise
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to read {collection}/{doc_id}: {e}") from e
        return snap.to_dict() if snap.exists else None

    @retry(
        retry=retry_if_exception_type(_TRANSIENT),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def list_all(self, collection: str) -> list[StoredDocument]:
        try:
            docs = [
                StoredDocument(doc.id, doc.to_dict() or {})
                for doc in self.collection(collection).stream()
            ]
        except _TRANSIENT:
            raise
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to list {collection}: {e}") from e
        # Firestore streams in id order; createdAt restores insertion order
        return sorted(docs, key=lambda d: str(d.data.get("createdAt", "")))

    def _date_query(self, collection: str, start: date, end: date):
        return (
            self.collection(collection)
            .where(filter=FieldFilter("date", ">=", start.isoformat()))
            .where(filter=FieldFilter("date", "<=", end.isoformat()))
        )

    @retry(
        retry=retry_if_exception_type(_TRANSIENT),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def query_by_date(
        self,
        collection: str,
        start: date,
        end: date,
    ) -> list[StoredDocument]:
        try:
            docs = self._date_query(collection, start, end).stream()
            return [StoredDocument(doc.id, doc.to_dict() or {}) for doc in docs]
        except _TRANSIENT:
            raise
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to query {collection}: {e}") from e

    def new_id(self, collection: str) -> str:
        # document() without an id allocates one client-side
        return self.collection(collection).document().id

    def batch(self) -> FirestoreWriteBatch:
        return FirestoreWriteBatch(self)

    def subscribe(
        self,
        collection: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> FirestoreLiveQuery:
        if start is not None and end is not None:
            query = self._date_query(collection, start, end)
        else:
            query = self.collection(collection)
        return FirestoreLiveQuery(query)
