"""
Abstract Remote Document Store Interface

DESIGN DECISION: Every component talks to the remote store through this
interface. This allows us to:
1. Run against Cloud Firestore in production
2. Use an in-memory store for tests and offline development
3. Keep the sync logic decoupled from any one vendor SDK

The store is addressed by user-scoped collection paths
(users/{user_id}/{collection}) and supports ordered, filtered, cursor-based
queries, change subscriptions, single-document writes and batched writes.

Untrusted data leaves this layer only as RawRecord. The record validator
is the single place that turns a RawRecord into a domain object.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Optional


class SortDirection(str, Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"


FILTER_OPERATORS = frozenset({"==", "<", "<=", ">", ">="})


@dataclass(frozen=True)
class RawRecord:
    """
    A document exactly as the store returned it.

    `fields` is untyped: schema drift across app versions means any key
    may be missing or hold a value of the wrong type.
    """
    id: str
    fields: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CollectionPath:
    """Slash-separated path to a collection, e.g. users/u1/expenses."""
    segments: tuple[str, ...]

    def __post_init__(self):
        if not self.segments or len(self.segments) % 2 == 0:
            raise ValueError(f"Not a collection path: {'/'.join(self.segments)}")
        if any(not segment for segment in self.segments):
            raise ValueError("Collection path segments must be non-empty")

    @classmethod
    def for_user(cls, user_id: str, name: str) -> "CollectionPath":
        return cls(("users", user_id, name))

    @classmethod
    def parse(cls, path: str) -> "CollectionPath":
        return cls(tuple(path.strip("/").split("/")))

    def __str__(self) -> str:
        return "/".join(self.segments)


@dataclass(frozen=True)
class FieldFilter:
    """A single comparison applied to a query."""
    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")


@dataclass(frozen=True)
class QuerySpec:
    """Ordering, cap and filters of a collection query."""
    order_field: str = "createdAt"
    direction: SortDirection = SortDirection.DESCENDING
    limit: Optional[int] = None
    filters: tuple[FieldFilter, ...] = ()

    def __post_init__(self):
        if self.limit is not None and self.limit < 1:
            raise ValueError("Query limit must be positive")


@dataclass(frozen=True)
class PageCursor:
    """
    Opaque pagination token.

    Anchored at the last record of a page and only meaningful for the
    (path, ordering, filters) that produced it. A cursor is not refreshed
    when the collection changes underneath it, so a later page may skip
    or repeat records.
    """
    token: Any
    path: CollectionPath
    order_field: str
    direction: SortDirection
    filters: tuple[FieldFilter, ...] = ()

    def matches(self, path: CollectionPath, spec: QuerySpec) -> bool:
        return (
            self.path == path
            and self.order_field == spec.order_field
            and self.direction == spec.direction
            and self.filters == spec.filters
        )


@dataclass
class QueryPage:
    """Records of one query window plus the cursor after its last record."""
    records: list[RawRecord]
    cursor: Optional[PageCursor] = None


SnapshotCallback = Callable[[list[RawRecord]], None]
ErrorCallback = Callable[["StorageError"], None]


class Subscription(ABC):
    """Handle to a standing query. Must be released with unsubscribe()."""

    @property
    @abstractmethod
    def active(self) -> bool:
        pass

    @abstractmethod
    def unsubscribe(self) -> None:
        """Stop receiving snapshots. Safe to call more than once."""
        pass


class DocumentStore(ABC):
    """
    Abstract interface for the remote document store.

    Any backend (Firestore, in-memory) must implement these methods.
    """

    @abstractmethod
    async def query(
        self,
        path: CollectionPath,
        spec: QuerySpec,
        start_after: Optional[PageCursor] = None,
    ) -> QueryPage:
        """
        Run an ordered, optionally filtered and capped query.

        Args:
            path: Collection to query
            spec: Ordering, limit and filters
            start_after: Cursor from a previous page of the same query

        Returns:
            The matching records and a cursor at the last one
            (None when nothing was returned)

        Raises:
            StorageError: If the query fails or the cursor belongs
                to a different query
        """
        pass

    @abstractmethod
    async def list_documents(self, path: CollectionPath) -> list[RawRecord]:
        """
        Every document in a collection, in no particular order.

        Unlike query(), documents missing a field are never excluded.
        """
        pass

    @abstractmethod
    def subscribe(
        self,
        path: CollectionPath,
        spec: QuerySpec,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """
        Open a standing query.

        `on_snapshot` receives the full result window on the event loop,
        once initially and again after every change inside the window.
        Must be called from a running event loop.
        """
        pass

    @abstractmethod
    async def get_document(
        self,
        path: CollectionPath,
        doc_id: str,
    ) -> Optional[RawRecord]:
        """
        Read a single document.

        Returns:
            The document if it exists, None otherwise
        """
        pass

    @abstractmethod
    async def set_document(
        self,
        path: CollectionPath,
        doc_id: str,
        data: dict[str, Any],
    ) -> None:
        """Create or fully replace a document (no merge)."""
        pass

    @abstractmethod
    async def add_document(
        self,
        path: CollectionPath,
        data: dict[str, Any],
    ) -> str:
        """
        Create a document with a store-assigned id.

        Returns:
            The new document's id
        """
        pass

    @abstractmethod
    async def update_document(
        self,
        path: CollectionPath,
        doc_id: str,
        data: dict[str, Any],
    ) -> None:
        """
        Overwrite the given fields of an existing document.

        Raises:
            NotFoundError: If the document doesn't exist
        """
        pass

    @abstractmethod
    async def delete_document(
        self,
        path: CollectionPath,
        doc_id: str,
    ) -> None:
        """Delete a document. Deleting a missing document succeeds."""
        pass

    @abstractmethod
    async def batch_add(
        self,
        path: CollectionPath,
        documents: list[dict[str, Any]],
    ) -> list[str]:
        """
        Create several documents in one batch.

        Returns:
            The new ids, in input order
        """
        pass

    @abstractmethod
    async def batch_update(
        self,
        path: CollectionPath,
        updates: dict[str, dict[str, Any]],
    ) -> None:
        """Apply partial updates to several documents in one batch."""
        pass


class StorageError(Exception):
    """
    Base exception for remote store operations.

    `code` carries the store's status (e.g. 'permission-denied',
    'unavailable') when one is known.
    """

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code
        super().__init__(message)


class NotFoundError(StorageError):
    """Document not found in the store."""

    def __init__(self, message: str):
        super().__init__(message, code="not-found")


class StoreConnectionError(StorageError):
    """Could not connect to the store backend."""

    def __init__(self, message: str):
        super().__init__(message, code="unavailable")
