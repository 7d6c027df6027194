"""Services package."""

from extrato.services.extraction import (
    ExtractedDocument,
    ExtractionError,
    UnsupportedDocumentError,
    extract_document,
)
from extrato.services.storage import (
    AuditStorageInterface,
    CommitError,
    DocumentStore,
    InMemoryDatabase,
    InMemoryDocumentStore,
    LiveQuery,
    NotFoundError,
    StorageConnectionError,
    StorageError,
    WriteBatch,
)

__all__ = [
    # Extraction
    "ExtractedDocument",
    "ExtractionError",
    "UnsupportedDocumentError",
    "extract_document",
    # Storage
    "AuditStorageInterface",
    "CommitError",
    "DocumentStore",
    "InMemoryDatabase",
    "InMemoryDocumentStore",
    "LiveQuery",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    "WriteBatch",
]
