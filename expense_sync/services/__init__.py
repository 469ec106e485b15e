"""Services package."""

from expense_sync.services.cache import (
    JsonFileCache,
    LocalCache,
    MemoryCache,
)
from expense_sync.services.storage import (
    CollectionPath,
    DocumentStore,
    InMemoryDocumentStore,
    NotFoundError,
    StorageError,
    StoreConnectionError,
)

__all__ = [
    # Local cache
    "JsonFileCache",
    "LocalCache",
    "MemoryCache",
    # Remote store
    "CollectionPath",
    "DocumentStore",
    "InMemoryDocumentStore",
    "NotFoundError",
    "StorageError",
    "StoreConnectionError",
]
