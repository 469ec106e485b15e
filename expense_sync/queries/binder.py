"""
Generic Query Binder

DESIGN DECISION: Every list view in the app is the same thing underneath:
a collection path, an ordering, an optional cap and filters, a transform
that validates each raw record, and one of two read modes:

ONE-SHOT: a single query. Failure clears the result and stores the error.

CONTINUOUS: a standing subscription. Each snapshot replaces the whole
result wholesale (no incremental diffing). A subscription error keeps
the last good result and stores the error beside it.

The binder owns its subscription and must be closed when its owner goes
away. After close() any late result is discarded instead of applied.
"""

from dataclasses import dataclass
from typing import Callable, Generic, Optional, Sequence, TypeVar

import structlog

from expense_sync.errors import SyncFailure
from expense_sync.services.storage.interface import (
    CollectionPath,
    DocumentStore,
    FieldFilter,
    PageCursor,
    QuerySpec,
    RawRecord,
    SortDirection,
    StorageError,
    Subscription,
)


logger = structlog.get_logger(__name__)

T = TypeVar("T")
Transform = Callable[[RawRecord], Optional[T]]
Listener = Callable[[], None]


@dataclass
class Window(Generic[T]):
    """Validated items of one query window."""
    items: list[T]
    cursor: Optional[PageCursor]
    # Records the store returned, including ones the transform dropped
    raw_count: int


def apply_transform(records: list[RawRecord], transform: Transform) -> list[T]:
    """Transform every record, dropping the ones that yield None."""
    items = []
    for record in records:
        item = transform(record)
        if item is not None:
            items.append(item)
    return items


async def fetch_window(
    store: DocumentStore,
    path: CollectionPath,
    spec: QuerySpec,
    transform: Transform,
    start_after: Optional[PageCursor] = None,
) -> Window:
    """
    Run one query and validate its records.

    Shared by the binder and the paginated controller, so ordering and
    defaulting logic lives in a single path.
    """
    page = await store.query(path, spec, start_after=start_after)
    return Window(
        items=apply_transform(page.records, transform),
        cursor=page.cursor,
        raw_count=len(page.records),
    )


class QueryBinder(Generic[T]):
    """
    Binds a typed, validated result list to a collection query.

    Usage:
        async with QueryBinder(store, path, transform, realtime=True) as feed:
            feed.on_change(lambda: render(feed.data))
            ...
    """

    def __init__(
        self,
        store: DocumentStore,
        path: CollectionPath,
        transform: Transform,
        *,
        order_field: str = "createdAt",
        direction: SortDirection = SortDirection.DESCENDING,
        limit: Optional[int] = None,
        filters: Sequence[FieldFilter] = (),
        realtime: bool = False,
    ):
        self._store = store
        self._path = path
        self._transform = transform
        self._spec = QuerySpec(
            order_field=order_field,
            direction=direction,
            limit=limit,
            filters=tuple(filters),
        )
        self._realtime = realtime

        self._data: list[T] = []
        self._loading = True
        self._error: Optional[SyncFailure] = None

        self._subscription: Optional[Subscription] = None
        self._listeners: list[Listener] = []
        self._generation = 0
        self._closed = False

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def data(self) -> list[T]:
        return list(self._data)

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> Optional[SyncFailure]:
        return self._error

    @property
    def spec(self) -> QuerySpec:
        return self._spec

    @property
    def realtime(self) -> bool:
        return self._realtime

    @property
    def closed(self) -> bool:
        return self._closed

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

    # -------------------------------------------------------------------------
    # One-shot mode
    # -------------------------------------------------------------------------

    async def fetch(self) -> list[T]:
        """Run the query once and replace the result."""
        if self._closed:
            return self.data

        generation = self._generation
        self._loading = True
        self._error = None
        self._notify()

        try:
            window = await fetch_window(self._store, self._path, self._spec, self._transform)
        except Exception as e:
            if generation != self._generation:
                return self.data
            logger.warning("query_fetch_failed", path=str(self._path), error=str(e))
            self._data = []
            self._error = SyncFailure.from_exception(e, operation="fetch")
        else:
            if generation != self._generation:
                return self.data
            self._data = window.items
        finally:
            if generation == self._generation:
                self._loading = False

        self._notify()
        return self.data

    async def refresh(self) -> list[T]:
        return await self.fetch()

    # -------------------------------------------------------------------------
    # Continuous mode
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Open the subscription (continuous) or run the query (one-shot)."""
        if self._closed:
            raise RuntimeError("QueryBinder is closed")
        if not self._realtime:
            await self.fetch()
            return
        if self._subscription is not None and self._subscription.active:
            return
        self._subscription = self._store.subscribe(
            self._path,
            self._spec,
            self._handle_snapshot,
            self._handle_error,
        )

    def _handle_snapshot(self, records: list[RawRecord]) -> None:
        if self._closed:
            return
        self._data = apply_transform(records, self._transform)
        self._loading = False
        self._error = None
        self._notify()

    def _handle_error(self, error: StorageError) -> None:
        if self._closed:
            return
        logger.warning("query_subscription_failed", path=str(self._path), error=str(error))
        # Keep the last good result
        self._error = SyncFailure.from_exception(error, operation="subscribe")
        self._loading = False
        self._notify()

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Release the subscription and ignore any late results."""
        self._generation += 1
        self._closed = True
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._listeners.clear()

    async def __aenter__(self) -> "QueryBinder[T]":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()
