"""
Paginated Expense Collection Controller

The controller owns one user's visible page of expenses and keeps it
consistent with the remote store without full refetches.

STATE MACHINE:
    IDLE -> LOADING (load_first_page / load_next_page)
    LOADING -> IDLE_WITH_DATA | IDLE_EMPTY | ERROR

DESIGN DECISION: The mutation paths are deliberately asymmetric.

- add_expense writes, then reloads the first page. The new record's id
  and normalized fields come back from the store through the validator
  instead of being guessed from the write payload. One extra round trip
  buys a single ordering/defaulting path.
- update_expense writes, then overlays the changed fields onto the local
  record. A partial overlay is all an edit needs, so no refetch.
- remove_expense deletes, then drops the record locally. Cursor and
  has_more are untouched: a removed row does not pull in a replacement.

Nothing is applied locally before the store confirms it. A failed write
leaves the page exactly as it was.

KNOWN LIMITATION: cursors are not snapshot-stable. If the collection
changes between pages, load_next_page can return duplicates or skip
records. No de-duplication is attempted.

CONCURRENCY:
- One fetch in flight at a time (fetches queue on a lock;
  load_next_page is a no-op while anything is loading)
- Mutations serialize among themselves but not against reads
- Every completion checks its generation and is discarded after
  refresh(), switch_user() or close()
"""

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

import structlog
from pydantic import ValidationError

from expense_sync.activity import ActivityLogger
from expense_sync.config import get_settings
from expense_sync.errors import InvalidArgumentError, SyncFailure
from expense_sync.expenses.repository import ExpenseRepository
from expense_sync.models.activity import ActivityEventBuilder
from expense_sync.models.expense import Expense, ExpenseCreate, ExpenseUpdate
from expense_sync.services.storage.interface import PageCursor
from expense_sync.validation import is_partial_expense_data


logger = structlog.get_logger(__name__)

Listener = Callable[[], None]


class ControllerStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    IDLE_WITH_DATA = "idle_with_data"
    IDLE_EMPTY = "idle_empty"
    ERROR = "error"


@dataclass(frozen=True)
class ControllerState:
    """Immutable snapshot of a controller, for rendering."""
    expenses: tuple[Expense, ...]
    cursor: Optional[PageCursor]
    has_more: bool
    loading: bool
    error: Optional[SyncFailure]
    status: ControllerStatus


class ExpenseCollectionController:
    """
    Paginated, mutation-aware view over one user's expenses.

    A controller without a user id (signed out) holds an empty page and
    treats every operation as a no-op.
    """

    def __init__(
        self,
        repository: ExpenseRepository,
        user_id: Optional[str],
        page_size: Optional[int] = None,
        activity_logger: Optional[ActivityLogger] = None,
    ):
        self._repository = repository
        self._user_id = user_id or None
        self._page_size = page_size or get_settings().app.page_size
        self._activity = activity_logger

        self._expenses: list[Expense] = []
        self._cursor: Optional[PageCursor] = None
        self._has_more = True
        self._error: Optional[SyncFailure] = None
        self._loaded = False

        self._pending_fetches = 0
        self._fetch_lock = asyncio.Lock()
        self._mutation_lock = asyncio.Lock()
        self._generation = 0
        self._closed = False
        self._listeners: list[Listener] = []

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def expenses(self) -> list[Expense]:
        return list(self._expenses)

    @property
    def cursor(self) -> Optional[PageCursor]:
        return self._cursor

    @property
    def has_more(self) -> bool:
        return self._has_more

    @property
    def loading(self) -> bool:
        return self._pending_fetches > 0

    @property
    def error(self) -> Optional[SyncFailure]:
        return self._error

    @property
    def status(self) -> ControllerStatus:
        if self.loading:
            return ControllerStatus.LOADING
        if self._error is not None:
            return ControllerStatus.ERROR
        if not self._loaded:
            return ControllerStatus.IDLE
        if self._expenses:
            return ControllerStatus.IDLE_WITH_DATA
        return ControllerStatus.IDLE_EMPTY

    @property
    def state(self) -> ControllerState:
        return ControllerState(
            expenses=tuple(self._expenses),
            cursor=self._cursor,
            has_more=self._has_more,
            loading=self.loading,
            error=self._error,
            status=self.status,
        )

    def on_change(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    async def _record_failure(self, operation: str, exc: Exception) -> None:
        self._error = SyncFailure.from_exception(exc, operation=operation)
        logger.warning(
            "expense_operation_failed",
            operation=operation,
            user_id=self._user_id,
            kind=self._error.kind.value,
            error=str(exc),
        )
        self._notify()
        if self._activity:
            await self._activity.log(ActivityEventBuilder.sync_failed(
                user_id=self._user_id,
                operation=operation,
                error_message=self._error.message,
                kind=self._error.kind.value,
            ))

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def _fetch(self, first_page: bool) -> None:
        generation = self._generation
        user_id = self._user_id
        self._pending_fetches += 1
        self._error = None
        self._notify()
        try:
            async with self._fetch_lock:
                if not self._is_current(generation):
                    return
                cursor = None if first_page else self._cursor
                try:
                    page = await self._repository.get_page(user_id, self._page_size, cursor)
                except Exception as e:
                    if self._is_current(generation):
                        operation = "load_first_page" if first_page else "load_next_page"
                        await self._record_failure(operation, e)
                    return

                if not self._is_current(generation):
                    logger.debug("expense_page_discarded", user_id=user_id)
                    return

                if first_page:
                    self._expenses = list(page.expenses)
                    self._cursor = page.cursor
                else:
                    self._expenses = self._expenses + page.expenses
                    # An empty page has no last record to anchor on
                    self._cursor = page.cursor or self._cursor
                self._has_more = page.has_more
                self._loaded = True
                logger.debug(
                    "expense_page_loaded",
                    user_id=user_id,
                    count=len(page.expenses),
                    has_more=page.has_more,
                    first_page=first_page,
                )
        finally:
            self._pending_fetches -= 1
            self._notify()

        if self._activity:
            await self._activity.log(ActivityEventBuilder.page_loaded(
                user_id=user_id,
                count=len(page.expenses),
                has_more=page.has_more,
                first_page=first_page,
            ))

    async def load_first_page(self) -> None:
        """
        Fetch the newest page from scratch.

        On success the page, cursor and has_more are replaced. On failure
        the previous page and has_more are kept and the error is stored.
        """
        if not self._user_id or self._closed:
            return
        await self._fetch(first_page=True)

    async def load_next_page(self) -> None:
        """
        Append the page after the cursor.

        No-op unless has_more, a cursor exists and nothing is loading.
        """
        if not self._user_id or self._closed:
            return
        if not self._has_more or self._cursor is None or self.loading:
            return
        await self._fetch(first_page=False)

    async def refresh(self) -> None:
        """Drop all local state, then load the first page again."""
        self._generation += 1
        self._expenses = []
        self._cursor = None
        self._has_more = True
        self._error = None
        self._loaded = False
        self._notify()
        await self.load_first_page()

    async def switch_user(self, user_id: Optional[str]) -> None:
        """Re-point the controller at another user (or signed out)."""
        self._user_id = user_id or None
        await self.refresh()

    def close(self) -> None:
        """Detach from the owner; any late result is discarded."""
        self._generation += 1
        self._closed = True
        self._listeners.clear()

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def add_expense(
        self,
        payload: Union[ExpenseCreate, Mapping],
    ) -> Optional[str]:
        """
        Create an expense, then reload the first page.

        Returns:
            The new expense id, or None when signed out

        Raises:
            InvalidArgumentError: If the payload is not a valid expense
            StorageError: If the store rejects the write
        """
        if not self._user_id or self._closed:
            return None
        user_id = self._user_id

        async with self._mutation_lock:
            self._error = None
            try:
                if not isinstance(payload, ExpenseCreate):
                    payload = _parse(ExpenseCreate, payload)
                expense_id = await self._repository.add(payload, user_id)
            except Exception as e:
                await self._record_failure("add_expense", e)
                raise

        if self._activity:
            await self._activity.log(ActivityEventBuilder.expense_added(
                user_id=user_id,
                expense_id=expense_id,
                amount=payload.amount,
                category=payload.category.value,
            ))

        await self.load_first_page()
        return expense_id

    async def update_expense(
        self,
        expense_id: str,
        partial: Union[ExpenseUpdate, Mapping],
    ) -> None:
        """
        Write a partial update, then overlay it onto the local record.

        Fields absent from `partial` keep their local values. If the id
        is not on the current page only the remote write happens.

        Raises:
            InvalidArgumentError: If the partial data is malformed
            StorageError: If the store rejects the write
        """
        if not self._user_id or self._closed:
            return
        user_id = self._user_id
        generation = self._generation

        async with self._mutation_lock:
            self._error = None
            try:
                if not isinstance(partial, ExpenseUpdate):
                    if not is_partial_expense_data(partial):
                        raise InvalidArgumentError("Invalid expense update data")
                    partial = _parse(ExpenseUpdate, partial)
                updated_at = await self._repository.update(user_id, expense_id, partial)
            except Exception as e:
                await self._record_failure("update_expense", e)
                raise

            if self._is_current(generation):
                changes = partial.changes()
                changes["updated_at"] = updated_at
                found = False
                overlaid = []
                for expense in self._expenses:
                    if expense.id == expense_id:
                        expense = expense.model_copy(update=changes)
                        found = True
                    overlaid.append(expense)
                if found:
                    self._expenses = overlaid
                    self._notify()
                else:
                    logger.debug("expense_not_in_page", operation="update", expense_id=expense_id)

        if self._activity:
            await self._activity.log(ActivityEventBuilder.expense_updated(
                user_id=user_id,
                expense_id=expense_id,
                fields=sorted(partial.changes()),
            ))

    async def remove_expense(self, expense_id: str) -> None:
        """
        Delete an expense remotely, then drop it from the page.

        Order of the remaining records, the cursor and has_more are kept.

        Raises:
            StorageError: If the store rejects the delete
        """
        if not self._user_id or self._closed:
            return
        user_id = self._user_id
        generation = self._generation

        async with self._mutation_lock:
            self._error = None
            try:
                await self._repository.delete(expense_id, user_id)
            except Exception as e:
                await self._record_failure("remove_expense", e)
                raise

            if self._is_current(generation):
                remaining = [e for e in self._expenses if e.id != expense_id]
                if len(remaining) != len(self._expenses):
                    self._expenses = remaining
                    self._notify()
                else:
                    logger.debug("expense_not_in_page", operation="remove", expense_id=expense_id)

        if self._activity:
            await self._activity.log(ActivityEventBuilder.expense_deleted(
                user_id=user_id,
                expense_id=expense_id,
            ))


def _parse(model, data: Mapping):
    try:
        return model.model_validate(dict(data))
    except ValidationError as e:
        raise InvalidArgumentError(
            "; ".join(error["msg"] for error in e.errors())
        ) from e
