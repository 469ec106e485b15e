"""
Session wiring for Expense Sync

Ties together the components one signed-in user needs:
1. Expenses (repository + paginated controller)
2. Categories (resolver over the store and the local cache)
3. Activity (logger, persisting when enabled)

DESIGN DECISION: Storage is swappable. When no store is passed we try
Firestore, and fall back to an in-memory store if it is not configured,
so the rest of the session behaves the same either way.
"""

from typing import Optional

import structlog

from expense_sync.activity import ActivityLogger, configure_logging
from expense_sync.categories import CategoryResolver
from expense_sync.config import get_settings
from expense_sync.expenses import (
    ExpenseCollectionController,
    ExpenseRepository,
    copy_expenses_between_users,
)
from expense_sync.models.category import CategorySet
from expense_sync.models.expense import Expense
from expense_sync.queries import QueryBinder
from expense_sync.services.cache import JsonFileCache, LocalCache
from expense_sync.services.storage import DocumentStore, InMemoryDocumentStore


logger = structlog.get_logger(__name__)


class ExpenseSession:
    """
    Everything the UI needs for one user.

    Owns the controller and any live binders it hands out, and releases
    them on close().
    """

    def __init__(
        self,
        user_id: Optional[str],
        store: DocumentStore,
        repository: ExpenseRepository,
        controller: ExpenseCollectionController,
        categories: CategoryResolver,
        activity_logger: ActivityLogger,
    ):
        self._user_id = user_id or None
        self.store = store
        self.repository = repository
        self.controller = controller
        self.categories = categories
        self.activity_logger = activity_logger
        self._binders: list[QueryBinder] = []
        self._closed = False

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> CategorySet:
        """Resolve categories and load the first page of expenses."""
        category_set = await self.categories.resolve(self._user_id)
        await self.controller.load_first_page()
        return category_set

    def live_feed(self, limit: Optional[int] = None) -> QueryBinder[Expense]:
        """
        A realtime binder over the newest expenses, closed with the session.

        Raises:
            RuntimeError: If the session is closed or signed out
        """
        if self._closed:
            raise RuntimeError("Session is closed")
        if not self._user_id:
            raise RuntimeError("A signed-in user is required for a live feed")
        binder = self.repository.live_feed(self._user_id, limit)
        self._binders.append(binder)
        return binder

    async def copy_expenses_from(self, source_user_id: str) -> int:
        """Copy another account's expenses into this one, then reload."""
        copied = await copy_expenses_between_users(
            self.store,
            source_user_id,
            self._user_id,
            activity_logger=self.activity_logger,
        )
        if copied:
            await self.controller.load_first_page()
        return copied

    def _close_binders(self) -> None:
        for binder in self._binders:
            binder.close()
        self._binders = []

    async def switch_user(self, user_id: Optional[str]) -> None:
        """Point the session at another user (or signed out)."""
        if self._closed:
            return
        logger.info("session_user_switched", user_id=user_id)
        self._user_id = user_id or None
        self._close_binders()
        await self.categories.resolve(self._user_id)
        await self.controller.switch_user(self._user_id)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._close_binders()
        self.controller.close()
        logger.info("session_closed", user_id=self._user_id)


def _default_store() -> DocumentStore:
    try:
        from expense_sync.services.storage.firestore import (
            FirestoreClient,
            FirestoreDocumentStore,
        )

        client = FirestoreClient()
        client.connect()
        return FirestoreDocumentStore(client)
    except Exception as e:
        # Storage not configured - continue without it
        logger.warning("storage_not_configured", error=str(e))
        return InMemoryDocumentStore()


def create_session_components(
    user_id: Optional[str],
    store: Optional[DocumentStore] = None,
    cache: Optional[LocalCache] = None,
) -> ExpenseSession:
    """
    Factory function to create all session components.

    Args:
        user_id: Signed-in user, or None when signed out
        store: Remote store. Defaults to Firestore, or memory if unavailable.
        cache: Local cache. Defaults to the JSON file from CacheSettings.

    Returns:
        An ExpenseSession; call start() to load data
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)

    if store is None:
        store = _default_store()
    if cache is None:
        cache = JsonFileCache()

    activity_logger = ActivityLogger(store if settings.app.log_activity else None)
    repository = ExpenseRepository(store)
    controller = ExpenseCollectionController(
        repository,
        user_id,
        page_size=settings.app.page_size,
        activity_logger=activity_logger,
    )
    categories = CategoryResolver(store, cache, activity_logger=activity_logger)

    return ExpenseSession(
        user_id=user_id,
        store=store,
        repository=repository,
        controller=controller,
        categories=categories,
        activity_logger=activity_logger,
    )
