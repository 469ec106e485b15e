"""
Storage Services Package

Provides the abstract remote document store interface and its backends.
Firestore is the production backend; the in-memory store serves tests
and offline use. The Firestore backend is imported lazily so the core
works without firebase_admin being configured.
"""

from expense_sync.services.storage.interface import (
    CollectionPath,
    DocumentStore,
    FieldFilter,
    NotFoundError,
    PageCursor,
    QueryPage,
    QuerySpec,
    RawRecord,
    SortDirection,
    StorageError,
    StoreConnectionError,
    Subscription,
)
from expense_sync.services.storage.memory import InMemoryDocumentStore

__all__ = [
    # Interface
    "CollectionPath",
    "DocumentStore",
    "FieldFilter",
    "PageCursor",
    "QueryPage",
    "QuerySpec",
    "RawRecord",
    "SortDirection",
    "Subscription",
    # Exceptions
    "NotFoundError",
    "StorageError",
    "StoreConnectionError",
    # Backends
    "InMemoryDocumentStore",
]
