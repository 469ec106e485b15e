"""
Expense Repository

Thin persistence calls over users/{user_id}/expenses. Reads go through
the record validator; writes translate the snake_case models into the
camelCase document shape other clients share.
"""

import calendar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from typing import Any, Optional

import structlog

from expense_sync.errors import InvalidArgumentError
from expense_sync.models.expense import (
    Expense,
    ExpenseCreate,
    ExpenseUpdate,
    utc_now,
)
from expense_sync.queries.binder import QueryBinder, Transform, fetch_window
from expense_sync.services.storage.interface import (
    CollectionPath,
    DocumentStore,
    FieldFilter,
    PageCursor,
    QuerySpec,
    SortDirection,
)
from expense_sync.validation import transform_expense_record


logger = structlog.get_logger(__name__)

EXPENSES_COLLECTION = "expenses"

# Newest first by insertion time
ORDER_FIELD = "createdAt"

# Model attribute -> stored document field
FIELD_NAMES = {
    "amount": "amount",
    "date": "date",
    "category": "category",
    "description": "description",
    "tags": "tags",
    "location": "location",
}


@dataclass
class ExpensePage:
    """One window of expenses plus the cursor needed to continue after it."""
    expenses: list[Expense] = field(default_factory=list)
    cursor: Optional[PageCursor] = None
    has_more: bool = False


def expenses_path(user_id: str) -> CollectionPath:
    if not user_id:
        raise InvalidArgumentError("User ID is required")
    return CollectionPath.for_user(user_id, EXPENSES_COLLECTION)


def expense_transform(user_id: str) -> Transform:
    """Record validator bound to one owner, for use as a query transform."""
    return partial(transform_expense_record, user_id=user_id)


def _store_value(value: Any) -> Any:
    # Enums are stored by value
    return getattr(value, "value", value)


class ExpenseRepository:
    """Remote reads and writes for one store."""

    def __init__(self, store: DocumentStore):
        self._store = store

    @property
    def store(self) -> DocumentStore:
        return self._store

    async def get_page(
        self,
        user_id: str,
        limit: int,
        cursor: Optional[PageCursor] = None,
    ) -> ExpensePage:
        """
        Fetch `limit` expenses, newest first, starting after `cursor`.

        has_more is True when the store returned a full page. The store
        never reports a total, so this is a heuristic: a final page that
        happens to be exactly full reports has_more and the next fetch
        comes back empty.
        """
        spec = QuerySpec(
            order_field=ORDER_FIELD,
            direction=SortDirection.DESCENDING,
            limit=limit,
        )
        window = await fetch_window(
            self._store,
            expenses_path(user_id),
            spec,
            expense_transform(user_id),
            start_after=cursor,
        )
        return ExpensePage(
            expenses=window.items,
            cursor=window.cursor,
            has_more=window.raw_count == limit,
        )

    async def get_for_period(
        self,
        user_id: str,
        month: int,
        year: int,
    ) -> list[Expense]:
        """
        All expenses dated within a calendar month, newest first.

        Args:
            month: 1-12
            year: Four-digit year
        """
        if not 1 <= month <= 12:
            raise InvalidArgumentError(f"Month must be between 1 and 12, got {month}")
        last_day = calendar.monthrange(year, month)[1]
        start = datetime(year, month, 1, tzinfo=timezone.utc)
        end = datetime(year, month, last_day, 23, 59, 59, 999999, tzinfo=timezone.utc)

        spec = QuerySpec(
            order_field="date",
            direction=SortDirection.DESCENDING,
            filters=(
                FieldFilter("date", ">=", start),
                FieldFilter("date", "<=", end),
            ),
        )
        window = await fetch_window(
            self._store,
            expenses_path(user_id),
            spec,
            expense_transform(user_id),
        )
        return window.items

    async def add(self, payload: ExpenseCreate, user_id: str) -> str:
        """
        Create an expense document.

        The owner is implied by the path and is not stored in the document.

        Returns:
            The store-assigned id
        """
        now = utc_now()
        data = {
            name: _store_value(getattr(payload, attr))
            for attr, name in FIELD_NAMES.items()
        }
        data["createdAt"] = now
        data["updatedAt"] = now
        expense_id = await self._store.add_document(expenses_path(user_id), data)
        logger.info("expense_added", user_id=user_id, expense_id=expense_id)
        return expense_id

    async def update(
        self,
        user_id: str,
        expense_id: str,
        changes: ExpenseUpdate,
    ) -> datetime:
        """
        Write only the fields present in `changes`, plus a fresh updatedAt.

        Returns:
            The updatedAt instant that was written
        """
        if not expense_id:
            raise InvalidArgumentError("Expense ID is required")
        updated_at = utc_now()
        data = {
            FIELD_NAMES[attr]: _store_value(value)
            for attr, value in changes.changes().items()
        }
        data["updatedAt"] = updated_at
        await self._store.update_document(expenses_path(user_id), expense_id, data)
        logger.info(
            "expense_updated",
            user_id=user_id,
            expense_id=expense_id,
            fields=sorted(data),
        )
        return updated_at

    async def delete(self, expense_id: str, user_id: str) -> None:
        if not expense_id:
            raise InvalidArgumentError("Expense ID is required")
        await self._store.delete_document(expenses_path(user_id), expense_id)
        logger.info("expense_deleted", user_id=user_id, expense_id=expense_id)

    def live_feed(self, user_id: str, limit: Optional[int] = None) -> QueryBinder[Expense]:
        """A continuous binder over the newest expenses of one user."""
        return QueryBinder(
            self._store,
            expenses_path(user_id),
            expense_transform(user_id),
            order_field=ORDER_FIELD,
            direction=SortDirection.DESCENDING,
            limit=limit,
            realtime=True,
        )
