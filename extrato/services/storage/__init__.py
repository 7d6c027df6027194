"""
Storage Services Package

The ledger is kept in a per-user document store (Firestore in
production, in-memory for tests). The audit trail goes to Google Sheets.
"""

from extrato.services.storage.interface import (
    ACCOUNTS,
    AUTOMATION_RULES,
    COLLECTIONS,
    CREDIT_CARDS,
    CUSTOM_CATEGORIES,
    TRANSACTIONS,
    AuditStorageInterface,
    CommitError,
    DocumentStore,
    LiveQuery,
    NotFoundError,
    StorageConnectionError,
    StorageError,
    StoredDocument,
    WriteBatch,
)
from extrato.services.storage.memory import InMemoryDatabase, InMemoryDocumentStore

__all__ = [
    # Collections
    "ACCOUNTS",
    "AUTOMATION_RULES",
    "COLLECTIONS",
    "CREDIT_CARDS",
    "CUSTOM_CATEGORIES",
    "TRANSACTIONS",
    # Interfaces
    "AuditStorageInterface",
    "DocumentStore",
    "LiveQuery",
    "StoredDocument",
    "WriteBatch",
    # Exceptions
    "CommitError",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryDatabase",
    "InMemoryDocumentStore",
]
