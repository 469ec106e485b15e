"""Local cache package."""

from expense_sync.services.cache.local_cache import (
    JsonFileCache,
    LocalCache,
    MemoryCache,
)

__all__ = [
    "JsonFileCache",
    "LocalCache",
    "MemoryCache",
]
