"""
Cloud Firestore Storage Implementation

DESIGN DECISION: Firestore is the production remote store because:
1. It is the store the web client already writes to
2. Per-user subcollections give natural user scoping
3. Snapshot listeners provide live result windows
4. Query cursors (start_after a snapshot) give stable pagination

TRADEOFFS:
- The async client has no snapshot listeners, so live windows use the
  sync client's on_snapshot, which calls back on a background thread.
  Snapshots are marshalled onto the event loop before anyone sees them.
- Firestore never reports total counts, so "has more" stays a heuristic.

Records leave this module as RawRecord. Timestamps keep their native
Firestore type (DatetimeWithNanoseconds); the record validator converts.
"""

import asyncio
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import firebase_admin
import structlog
from firebase_admin import credentials, firestore, firestore_async
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1 import FieldFilter as FirestoreFieldFilter
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from expense_sync.config import FirestoreSettings, get_settings
from expense_sync.services.storage.interface import (
    CollectionPath,
    DocumentStore,
    ErrorCallback,
    NotFoundError,
    PageCursor,
    QueryPage,
    QuerySpec,
    RawRecord,
    SnapshotCallback,
    SortDirection,
    StorageError,
    StoreConnectionError,
    Subscription,
)


logger = structlog.get_logger(__name__)

# Firestore rejects batches with more than 500 writes
MAX_BATCH_WRITES = 500

# google.api_core exception type -> store error code
ERROR_CODES: dict[type, str] = {
    google_exceptions.PermissionDenied: "permission-denied",
    google_exceptions.Unauthenticated: "unauthenticated",
    google_exceptions.NotFound: "not-found",
    google_exceptions.AlreadyExists: "already-exists",
    google_exceptions.ServiceUnavailable: "unavailable",
    google_exceptions.DeadlineExceeded: "deadline-exceeded",
    google_exceptions.ResourceExhausted: "resource-exhausted",
    google_exceptions.FailedPrecondition: "failed-precondition",
    google_exceptions.Aborted: "aborted",
    google_exceptions.InvalidArgument: "invalid-argument",
    google_exceptions.InternalServerError: "internal",
}

TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
)

transient_retry = retry(
    retry=retry_if_exception_type(TRANSIENT_ERRORS),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


@contextmanager
def translate_errors(operation: str, path: CollectionPath) -> Iterator[None]:
    """Re-raise Google API errors as StorageError with a store code."""
    try:
        yield
    except google_exceptions.GoogleAPICallError as e:
        code = next(
            (c for exc_type, c in ERROR_CODES.items() if isinstance(e, exc_type)),
            None,
        )
        logger.warning(
            "firestore_call_failed",
            operation=operation,
            path=str(path),
            code=code,
            error=str(e),
        )
        if code == "not-found":
            raise NotFoundError(f"{operation} failed for {path}: {e.message}")
        raise StorageError(f"{operation} failed for {path}: {e.message}", code=code)


class FirestoreClient:
    """
    Low-level Firestore client wrapper.

    Handles firebase_admin app initialization and hands out the async
    client (reads/writes) and the sync client (snapshot listeners).
    """

    def __init__(self, settings: Optional[FirestoreSettings] = None):
        self._settings = settings or get_settings().firestore
        self._app: Optional[firebase_admin.App] = None
        self._async_client = None
        self._sync_client = None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> firebase_admin.App:
        """
        Initialize (or reuse) the firebase_admin app.

        Uses service account credentials for authentication.
        """
        if self._app is None:
            try:
                self._app = firebase_admin.get_app(self._settings.app_name)
            except ValueError:
                try:
                    cred = credentials.Certificate(self._settings.credentials_path)
                except FileNotFoundError:
                    raise StoreConnectionError(
                        f"Firebase credentials file not found: {self._settings.credentials_path}"
                    )
                except ValueError as e:
                    raise StoreConnectionError(f"Invalid Firebase credentials: {e}")
                options = {}
                if self._settings.project_id:
                    options["projectId"] = self._settings.project_id
                self._app = firebase_admin.initialize_app(
                    cred,
                    options,
                    name=self._settings.app_name,
                )
                logger.info("firestore_app_initialized", app=self._settings.app_name)
        return self._app

    def async_client(self):
        if self._async_client is None:
            self._async_client = firestore_async.client(self.connect())
        return self._async_client

    def sync_client(self):
        if self._sync_client is None:
            self._sync_client = firestore.client(self.connect())
        return self._sync_client


def _build_query(collection_ref, spec: QuerySpec):
    query = collection_ref
    for flt in spec.filters:
        query = query.where(filter=FirestoreFieldFilter(flt.field, flt.op, flt.value))
    direction = "DESCENDING" if spec.direction == SortDirection.DESCENDING else "ASCENDING"
    query = query.order_by(spec.order_field, direction=direction)
    if spec.limit is not None:
        query = query.limit(spec.limit)
    return query


def _to_record(snapshot) -> RawRecord:
    return RawRecord(id=snapshot.id, fields=snapshot.to_dict() or {})


class FirestoreSubscription(Subscription):
    """Wraps a Firestore Watch and forwards snapshots to the event loop."""

    def __init__(
        self,
        path: CollectionPath,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback],
        loop: asyncio.AbstractEventLoop,
    ):
        self._path = path
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._loop = loop
        self._watch = None
        self._active = True

    def attach(self, watch) -> None:
        self._watch = watch

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._watch is not None:
            self._watch.unsubscribe()
        logger.debug("subscription_closed", path=str(self._path))

    # Runs on the Firestore watch thread
    def handle_snapshot(self, docs, changes, read_time) -> None:
        if not self._active:
            return
        try:
            records = [_to_record(doc) for doc in docs]
        except Exception as e:
            error = StorageError(f"Unreadable snapshot for {self._path}: {e}")
            self._loop.call_soon_threadsafe(self._emit_error, error)
            return
        self._loop.call_soon_threadsafe(self._emit, records)

    def _emit(self, records: list[RawRecord]) -> None:
        if self._active:
            self._on_snapshot(records)

    def _emit_error(self, error: StorageError) -> None:
        if self._active and self._on_error is not None:
            self._on_error(error)


class FirestoreDocumentStore(DocumentStore):
    """
    Firestore implementation of the document store.

    Collection paths map one-to-one onto Firestore paths.
    """

    def __init__(self, client: Optional[FirestoreClient] = None):
        self._client = client or FirestoreClient()

    def _collection(self, path: CollectionPath):
        return self._client.async_client().collection(*path.segments)

    async def query(
        self,
        path: CollectionPath,
        spec: QuerySpec,
        start_after: Optional[PageCursor] = None,
    ) -> QueryPage:
        if start_after is not None and not start_after.matches(path, spec):
            raise StorageError("Cursor does not belong to this query", code="invalid-argument")

        with translate_errors("query", path):
            snapshots = await self._run_query(path, spec, start_after)

        records = [_to_record(snapshot) for snapshot in snapshots]
        cursor = None
        if snapshots:
            cursor = PageCursor(
                token=snapshots[-1],
                path=path,
                order_field=spec.order_field,
                direction=spec.direction,
                filters=spec.filters,
            )
        return QueryPage(records=records, cursor=cursor)

    @transient_retry
    async def _run_query(
        self,
        path: CollectionPath,
        spec: QuerySpec,
        start_after: Optional[PageCursor],
    ) -> list:
        query = _build_query(self._collection(path), spec)
        if start_after is not None:
            query = query.start_after(start_after.token)
        return await query.get()

    @transient_retry
    async def _list(self, path: CollectionPath) -> list:
        return await self._collection(path).get()

    async def list_documents(self, path: CollectionPath) -> list[RawRecord]:
        with translate_errors("list_documents", path):
            snapshots = await self._list(path)
        return [_to_record(snapshot) for snapshot in snapshots]

    def subscribe(
        self,
        path: CollectionPath,
        spec: QuerySpec,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        subscription = FirestoreSubscription(
            path,
            on_snapshot,
            on_error,
            asyncio.get_running_loop(),
        )
        collection_ref = self._client.sync_client().collection(*path.segments)
        with translate_errors("subscribe", path):
            watch = _build_query(collection_ref, spec).on_snapshot(
                subscription.handle_snapshot
            )
        subscription.attach(watch)
        logger.debug("subscription_opened", path=str(path))
        return subscription

    @transient_retry
    async def _get(self, path: CollectionPath, doc_id: str):
        return await self._collection(path).document(doc_id).get()

    async def get_document(
        self,
        path: CollectionPath,
        doc_id: str,
    ) -> Optional[RawRecord]:
        with translate_errors("get_document", path):
            snapshot = await self._get(path, doc_id)
        if not snapshot.exists:
            return None
        return _to_record(snapshot)

    async def set_document(
        self,
        path: CollectionPath,
        doc_id: str,
        data: dict[str, Any],
    ) -> None:
        with translate_errors("set_document", path):
            await self._collection(path).document(doc_id).set(data)

    async def add_document(
        self,
        path: CollectionPath,
        data: dict[str, Any],
    ) -> str:
        with translate_errors("add_document", path):
            _, doc_ref = await self._collection(path).add(data)
        return doc_ref.id

    async def update_document(
        self,
        path: CollectionPath,
        doc_id: str,
        data: dict[str, Any],
    ) -> None:
        with translate_errors("update_document", path):
            await self._collection(path).document(doc_id).update(data)

    async def delete_document(
        self,
        path: CollectionPath,
        doc_id: str,
    ) -> None:
        with translate_errors("delete_document", path):
            await self._collection(path).document(doc_id).delete()

    async def batch_add(
        self,
        path: CollectionPath,
        documents: list[dict[str, Any]],
    ) -> list[str]:
        collection_ref = self._collection(path)
        ids = []
        with translate_errors("batch_add", path):
            for start in range(0, len(documents), MAX_BATCH_WRITES):
                batch = self._client.async_client().batch()
                for data in documents[start:start + MAX_BATCH_WRITES]:
                    doc_ref = collection_ref.document()
                    batch.set(doc_ref, data)
                    ids.append(doc_ref.id)
                await batch.commit()
        return ids

    async def batch_update(
        self,
        path: CollectionPath,
        updates: dict[str, dict[str, Any]],
    ) -> None:
        collection_ref = self._collection(path)
        items = list(updates.items())
        with translate_errors("batch_update", path):
            for start in range(0, len(items), MAX_BATCH_WRITES):
                batch = self._client.async_client().batch()
                for doc_id, data in items[start:start + MAX_BATCH_WRITES]:
                    batch.update(collection_ref.document(doc_id), data)
                await batch.commit()
