"""
In-Memory Document Store

Implements the full DocumentStore contract without a network:
ordered/filtered queries, cursors, change subscriptions and batches.
Used by the test-suite and for offline development.

Snapshots are delivered with loop.call_soon, never synchronously from
inside a write, so subscribers observe the same asynchronous delivery
they would get from a real store.

Tests can script the store:
- fail_next(operation, error) makes the next call of that operation raise
- hold(operation) returns an asyncio.Event the operation waits on
- calls records every operation with its path and arguments
"""

import asyncio
import copy
from itertools import count
from typing import Any, Optional

import structlog

from expense_sync.services.storage.interface import (
    CollectionPath,
    DocumentStore,
    ErrorCallback,
    FieldFilter,
    NotFoundError,
    PageCursor,
    QueryPage,
    QuerySpec,
    RawRecord,
    SnapshotCallback,
    SortDirection,
    StorageError,
    Subscription,
)


logger = structlog.get_logger(__name__)


def _matches(fields: dict[str, Any], flt: FieldFilter) -> bool:
    if flt.field not in fields:
        return False
    value = fields[flt.field]
    try:
        if flt.op == "==":
            return value == flt.value
        if flt.op == "<":
            return value < flt.value
        if flt.op == "<=":
            return value <= flt.value
        if flt.op == ">":
            return value > flt.value
        return value >= flt.value
    except TypeError:
        # Mismatched types never match, as in Firestore
        return False


class InMemorySubscription(Subscription):

    def __init__(
        self,
        store: "InMemoryDocumentStore",
        path: CollectionPath,
        spec: QuerySpec,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback],
        loop: asyncio.AbstractEventLoop,
    ):
        self._store = store
        self.path = path
        self.spec = spec
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._loop = loop
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            self._store._subscriptions.discard(self)
            logger.debug("subscription_closed", path=str(self.path))

    def _deliver(self) -> None:
        if not self._active:
            return
        try:
            records = self._store._window(self.path, self.spec)
        except StorageError as e:
            self._deliver_error(e)
            return
        self._loop.call_soon(self._emit, records)

    def _deliver_error(self, error: StorageError) -> None:
        if self._active:
            self._loop.call_soon(self._emit_error, error)

    def _emit(self, records: list[RawRecord]) -> None:
        if self._active:
            self._on_snapshot(records)

    def _emit_error(self, error: StorageError) -> None:
        if self._active and self._on_error is not None:
            self._on_error(error)


class InMemoryDocumentStore(DocumentStore):
    """Dictionary-backed DocumentStore."""

    def __init__(self):
        self._collections: dict[CollectionPath, dict[str, dict[str, Any]]] = {}
        self._subscriptions: set[InMemorySubscription] = set()
        self._failures: dict[str, StorageError] = {}
        self._gates: dict[str, asyncio.Event] = {}
        self._ids = count(1)
        self.calls: list[tuple] = []

    # -------------------------------------------------------------------------
    # Scripting helpers
    # -------------------------------------------------------------------------

    def fail_next(self, operation: str, error: Optional[StorageError] = None) -> None:
        """Make the next call of `operation` raise `error`."""
        self._failures[operation] = error or StorageError(
            f"{operation} failed", code="unavailable"
        )

    def hold(self, operation: str) -> asyncio.Event:
        """Block calls of `operation` until the returned event is set."""
        gate = asyncio.Event()
        self._gates[operation] = gate
        return gate

    def emit_error(self, path: CollectionPath, error: StorageError) -> None:
        """Push an error to every active subscription on `path`."""
        for subscription in list(self._subscriptions):
            if subscription.path == path:
                subscription._deliver_error(error)

    def seed(self, path: CollectionPath, doc_id: str, data: dict[str, Any]) -> None:
        """Insert a document without notifying subscribers or logging a call."""
        self._collections.setdefault(path, {})[doc_id] = copy.deepcopy(data)

    def documents(self, path: CollectionPath) -> dict[str, dict[str, Any]]:
        return copy.deepcopy(self._collections.get(path, {}))

    async def _enter(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, *args))
        gate = self._gates.pop(operation, None)
        if gate is not None:
            await gate.wait()
        error = self._failures.pop(operation, None)
        if error is not None:
            raise error

    # -------------------------------------------------------------------------
    # Query evaluation
    # -------------------------------------------------------------------------

    def _sorted(
        self,
        path: CollectionPath,
        spec: QuerySpec,
    ) -> list[tuple[tuple[Any, str], dict[str, Any]]]:
        docs = self._collections.get(path, {})
        rows = []
        for doc_id, fields in docs.items():
            # Documents without the order field are not part of the ordering
            if spec.order_field not in fields:
                continue
            if all(_matches(fields, flt) for flt in spec.filters):
                rows.append(((fields[spec.order_field], doc_id), fields))
        try:
            rows.sort(
                key=lambda row: row[0],
                reverse=spec.direction == SortDirection.DESCENDING,
            )
        except TypeError as e:
            raise StorageError(
                f"Cannot order {path} by {spec.order_field}: {e}",
                code="invalid-argument",
            )
        return rows

    def _window(
        self,
        path: CollectionPath,
        spec: QuerySpec,
        start_after: Optional[PageCursor] = None,
    ) -> list[RawRecord]:
        rows = self._sorted(path, spec)
        if start_after is not None:
            anchor = start_after.token
            if spec.direction == SortDirection.DESCENDING:
                rows = [row for row in rows if row[0] < anchor]
            else:
                rows = [row for row in rows if row[0] > anchor]
        if spec.limit is not None:
            rows = rows[:spec.limit]
        return [
            RawRecord(id=key[1], fields=copy.deepcopy(fields))
            for key, fields in rows
        ]

    def _notify(self, path: CollectionPath) -> None:
        for subscription in list(self._subscriptions):
            if subscription.path == path:
                subscription._deliver()

    def _new_id(self) -> str:
        return f"doc{next(self._ids):06d}"

    # -------------------------------------------------------------------------
    # DocumentStore
    # -------------------------------------------------------------------------

    async def query(
        self,
        path: CollectionPath,
        spec: QuerySpec,
        start_after: Optional[PageCursor] = None,
    ) -> QueryPage:
        await self._enter("query", path, spec, start_after)
        if start_after is not None and not start_after.matches(path, spec):
            raise StorageError(
                "Cursor does not belong to this query",
                code="invalid-argument",
            )
        records = self._window(path, spec, start_after)
        cursor = None
        if records:
            last = records[-1]
            cursor = PageCursor(
                token=(last.fields[spec.order_field], last.id),
                path=path,
                order_field=spec.order_field,
                direction=spec.direction,
                filters=spec.filters,
            )
        return QueryPage(records=records, cursor=cursor)

    async def list_documents(self, path: CollectionPath) -> list[RawRecord]:
        await self._enter("list_documents", path)
        return [
            RawRecord(id=doc_id, fields=copy.deepcopy(fields))
            for doc_id, fields in self._collections.get(path, {}).items()
        ]

    def subscribe(
        self,
        path: CollectionPath,
        spec: QuerySpec,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        self.calls.append(("subscribe", path, spec))
        subscription = InMemorySubscription(
            self,
            path,
            spec,
            on_snapshot,
            on_error,
            asyncio.get_running_loop(),
        )
        self._subscriptions.add(subscription)
        logger.debug("subscription_opened", path=str(path))
        subscription._deliver()
        return subscription

    @property
    def active_subscriptions(self) -> int:
        return len(self._subscriptions)

    async def get_document(
        self,
        path: CollectionPath,
        doc_id: str,
    ) -> Optional[RawRecord]:
        await self._enter("get_document", path, doc_id)
        fields = self._collections.get(path, {}).get(doc_id)
        if fields is None:
            return None
        return RawRecord(id=doc_id, fields=copy.deepcopy(fields))

    async def set_document(
        self,
        path: CollectionPath,
        doc_id: str,
        data: dict[str, Any],
    ) -> None:
        await self._enter("set_document", path, doc_id, data)
        self._collections.setdefault(path, {})[doc_id] = copy.deepcopy(data)
        self._notify(path)

    async def add_document(
        self,
        path: CollectionPath,
        data: dict[str, Any],
    ) -> str:
        await self._enter("add_document", path, data)
        doc_id = self._new_id()
        self._collections.setdefault(path, {})[doc_id] = copy.deepcopy(data)
        self._notify(path)
        return doc_id

    async def update_document(
        self,
        path: CollectionPath,
        doc_id: str,
        data: dict[str, Any],
    ) -> None:
        await self._enter("update_document", path, doc_id, data)
        docs = self._collections.get(path, {})
        if doc_id not in docs:
            raise NotFoundError(f"Document not found: {path}/{doc_id}")
        docs[doc_id].update(copy.deepcopy(data))
        self._notify(path)

    async def delete_document(
        self,
        path: CollectionPath,
        doc_id: str,
    ) -> None:
        await self._enter("delete_document", path, doc_id)
        removed = self._collections.get(path, {}).pop(doc_id, None)
        if removed is not None:
            self._notify(path)

    async def batch_add(
        self,
        path: CollectionPath,
        documents: list[dict[str, Any]],
    ) -> list[str]:
        await self._enter("batch_add", path, len(documents))
        collection = self._collections.setdefault(path, {})
        ids = []
        for data in documents:
            doc_id = self._new_id()
            collection[doc_id] = copy.deepcopy(data)
            ids.append(doc_id)
        if ids:
            self._notify(path)
        return ids

    async def batch_update(
        self,
        path: CollectionPath,
        updates: dict[str, dict[str, Any]],
    ) -> None:
        await self._enter("batch_update", path, sorted(updates))
        docs = self._collections.get(path, {})
        missing = [doc_id for doc_id in updates if doc_id not in docs]
        if missing:
            # Batches are all-or-nothing
            raise NotFoundError(f"Documents not found: {', '.join(missing)}")
        for doc_id, data in updates.items():
            docs[doc_id].update(copy.deepcopy(data))
        if updates:
            self._notify(path)
