"""Tests for the expense repository and account migration."""

from datetime import datetime, timezone

import pytest

from conftest import expense_doc, seed_expenses
from expense_sync.errors import InvalidArgumentError
from expense_sync.expenses import copy_expenses_between_users, expenses_path
from expense_sync.models.expense import ExpenseCategory, ExpenseCreate, ExpenseUpdate
from expense_sync.services.storage import CollectionPath, NotFoundError, StorageError


USER = "user-1"
PATH = expenses_path(USER)


def dated(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, 10, 0, tzinfo=timezone.utc)


class TestPaths:

    def test_expenses_path(self):
        assert str(PATH) == "users/user-1/expenses"

    def test_empty_user_rejected(self):
        with pytest.raises(InvalidArgumentError):
            expenses_path("")

    def test_collection_path_parse(self):
        assert CollectionPath.parse("users/u/expenses") == PATH

    def test_document_path_is_not_a_collection(self):
        with pytest.raises(ValueError):
            CollectionPath.parse("users/u")


class TestExpenseRepository:

    @pytest.mark.asyncio
    async def test_get_page_has_more_heuristic(self, repository, store):
        seed_expenses(store, USER, 3)
        full = await repository.get_page(USER, 3)
        assert full.has_more
        partial = await repository.get_page(USER, 5)
        assert not partial.has_more

    @pytest.mark.asyncio
    async def test_cursor_from_another_query_is_rejected(self, repository, store):
        seed_expenses(store, USER, 3)
        store.seed(expenses_path("user-2"), "x", expense_doc(1))
        page = await repository.get_page(USER, 1)

        with pytest.raises(StorageError):
            await repository.get_page("user-2", 1, page.cursor)

    @pytest.mark.asyncio
    async def test_get_for_period(self, repository, store):
        store.seed(PATH, "jan", expense_doc(1, date=dated(2024, 1, 31)))
        store.seed(PATH, "feb-early", expense_doc(2, date=dated(2024, 2, 1)))
        store.seed(PATH, "feb-late", expense_doc(3, date=datetime(2024, 2, 29, 23, 59, tzinfo=timezone.utc)))
        store.seed(PATH, "mar", expense_doc(4, date=dated(2024, 3, 1)))

        february = await repository.get_for_period(USER, 2, 2024)

        assert [e.id for e in february] == ["feb-late", "feb-early"]

    @pytest.mark.asyncio
    async def test_get_for_period_rejects_bad_month(self, repository):
        with pytest.raises(InvalidArgumentError):
            await repository.get_for_period(USER, 13, 2024)

    @pytest.mark.asyncio
    async def test_add_stores_camel_case_document(self, repository, store):
        expense_id = await repository.add(ExpenseCreate(
            amount=20,
            date=dated(2024, 4, 2),
            category=ExpenseCategory.HEALTHCARE,
            tags=["pharmacy"],
        ), USER)

        doc = store.documents(PATH)[expense_id]
        assert doc["category"] == "healthcare"
        assert doc["tags"] == ["pharmacy"]
        assert doc["createdAt"] == doc["updatedAt"]

    @pytest.mark.asyncio
    async def test_update_missing_document(self, repository):
        with pytest.raises(NotFoundError):
            await repository.update(USER, "missing", ExpenseUpdate(amount=1.0))

    @pytest.mark.asyncio
    async def test_update_requires_id(self, repository):
        with pytest.raises(InvalidArgumentError):
            await repository.update(USER, "", ExpenseUpdate(amount=1.0))

    @pytest.mark.asyncio
    async def test_delete_requires_id(self, repository):
        with pytest.raises(InvalidArgumentError):
            await repository.delete("", USER)


class TestCopyExpensesBetweenUsers:

    @pytest.mark.asyncio
    async def test_copies_fields_and_keeps_date(self, store):
        store.seed(PATH, "a", expense_doc(1, amount=5.0, date=dated(2023, 12, 24), description="Gift"))

        copied = await copy_expenses_between_users(store, USER, "user-2")

        assert copied == 1
        (doc,) = store.documents(expenses_path("user-2")).values()
        assert doc["amount"] == 5.0
        assert doc["category"] == "food"
        assert doc["description"] == "Gift"
        assert doc["date"] == dated(2023, 12, 24)
        assert doc["createdAt"] > dated(2023, 12, 24)

    @pytest.mark.asyncio
    async def test_writes_one_batch(self, store):
        seed_expenses(store, USER, 4)
        await copy_expenses_between_users(store, USER, "user-2")
        batches = [c for c in store.calls if c[0] == "batch_add"]
        assert batches == [("batch_add", expenses_path("user-2"), 4)]

    @pytest.mark.asyncio
    async def test_not_idempotent(self, store):
        seed_expenses(store, USER, 2)
        await copy_expenses_between_users(store, USER, "user-2")
        await copy_expenses_between_users(store, USER, "user-2")
        assert len(store.documents(expenses_path("user-2"))) == 4

    @pytest.mark.asyncio
    async def test_empty_source(self, store):
        assert await copy_expenses_between_users(store, USER, "user-2") == 0
        assert not any(c[0] == "batch_add" for c in store.calls)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("source,target", [("", "user-2"), ("user-1", "")])
    async def test_empty_ids_rejected(self, store, source, target):
        with pytest.raises(InvalidArgumentError):
            await copy_expenses_between_users(store, source, target)

    @pytest.mark.asyncio
    async def test_copies_documents_without_created_at(self, store):
        """Documents lacking createdAt are part of the account too."""
        seed_expenses(store, USER, 2)
        undated = expense_doc(9, description="Old entry")
        del undated["createdAt"]
        store.seed(PATH, "legacy", undated)

        copied = await copy_expenses_between_users(store, USER, "user-2")

        assert copied == 3
        descriptions = {d["description"] for d in store.documents(expenses_path("user-2")).values()}
        assert "Old entry" in descriptions

    @pytest.mark.asyncio
    async def test_copies_stored_values_verbatim(self, store):
        store.seed(PATH, "a", expense_doc(1, amount="12.5", category="pet-care"))

        await copy_expenses_between_users(store, USER, "user-2")

        (doc,) = store.documents(expenses_path("user-2")).values()
        assert doc["amount"] == "12.5"
        assert doc["category"] == "pet-care"

    @pytest.mark.asyncio
    async def test_absent_fields_stay_absent(self, store):
        store.seed(PATH, "a", {"amount": 3.0})

        await copy_expenses_between_users(store, USER, "user-2")

        (doc,) = store.documents(expenses_path("user-2")).values()
        assert set(doc) == {"amount", "createdAt", "updatedAt"}

    @pytest.mark.asyncio
    async def test_read_failure_propagates(self, store):
        seed_expenses(store, USER, 1)
        store.fail_next("list_documents")

        with pytest.raises(StorageError):
            await copy_expenses_between_users(store, USER, "user-2")
        assert store.documents(expenses_path("user-2")) == {}
