"""
Shared fixtures.

No real Firestore in tests: every test gets a fresh in-memory store and
an in-memory local cache.
"""

from datetime import datetime, timedelta, timezone

import pytest

from expense_sync.config import get_settings
from expense_sync.expenses.repository import ExpenseRepository, expenses_path
from expense_sync.services.cache import MemoryCache
from expense_sync.services.storage import InMemoryDocumentStore


BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Keep settings and the local cache file out of the real environment."""
    monkeypatch.setenv("LOCAL_CACHE_PATH", str(tmp_path / "local-cache.json"))
    monkeypatch.delenv("PAGE_SIZE", raising=False)
    monkeypatch.delenv("LOG_ACTIVITY", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def repository(store):
    return ExpenseRepository(store)


def expense_doc(minutes: int, amount: float = 10.0, category: str = "food", **extra) -> dict:
    """A well-formed stored expense created `minutes` after BASE_TIME."""
    created = BASE_TIME + timedelta(minutes=minutes)
    doc = {
        "amount": amount,
        "date": created,
        "category": category,
        "description": f"expense {minutes}",
        "tags": [],
        "location": "",
        "createdAt": created,
        "updatedAt": created,
    }
    doc.update(extra)
    return doc


def seed_expenses(store: InMemoryDocumentStore, user_id: str, count: int) -> list[str]:
    """Seed `count` expenses; returns their ids, newest first."""
    path = expenses_path(user_id)
    ids = []
    for i in range(count):
        doc_id = f"e{i:03d}"
        store.seed(path, doc_id, expense_doc(i, amount=float(i + 1)))
        ids.append(doc_id)
    return list(reversed(ids))
