"""
Local Persistent Cache

A device-scoped, string-keyed key-value store. The category resolver
mirrors saved category sets here so labels can be rendered without a
round trip to the remote store.

DESIGN DECISION: The cache stores strings only, like browser localStorage.
Callers serialize; a corrupt value is the caller's problem to detect.
The cache is never an authority: losing it only costs a remote read.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import structlog

from expense_sync.config import get_settings


logger = structlog.get_logger(__name__)


class LocalCache(ABC):
    """Abstract string key-value store scoped to this device."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored string, or None if the key is absent."""
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        pass


class MemoryCache(LocalCache):
    """Process-local cache, for tests and short-lived sessions."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileCache(LocalCache):
    """
    Cache persisted as a single JSON object on disk.

    Writes go to a temporary file that replaces the original, so a crash
    mid-write leaves the previous contents intact. An unreadable file is
    treated as an empty cache.
    """

    def __init__(self, path: Optional[str] = None):
        self._path = Path(path or get_settings().cache.path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, str]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            logger.warning("local_cache_unreadable", path=str(self._path), error=str(e))
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("local_cache_corrupt", path=str(self._path), error=str(e))
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write_all(self, items: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent,
            prefix=self._path.name,
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(items, handle)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._read_all()
        items[key] = value
        self._write_all(items)

    def remove_item(self, key: str) -> None:
        items = self._read_all()
        if items.pop(key, None) is not None:
            self._write_all(items)
