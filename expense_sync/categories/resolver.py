"""
Category Resolver

Resolves the category set a user sees from three tiers:

1. Compiled defaults (DEFAULT_CATEGORIES)
2. The local cache, mirrored on every successful save
3. The remote document users/{uid}/settings/categories

DESIGN DECISION: The remote document is the authority. The local cache
is only written after the remote write succeeds, so a failed save can
never leave this device showing categories no other device will see.

Absence and emptiness are different things. A missing document means
"never customised" and falls back to local/defaults; a document holding
an empty list is an explicit choice and stays empty.
"""

import json
from collections.abc import Mapping
from typing import Callable, Optional

import structlog

from expense_sync.activity import ActivityLogger
from expense_sync.config import get_settings
from expense_sync.errors import InvalidArgumentError
from expense_sync.models.activity import ActivityEventBuilder
from expense_sync.models.category import Category, CategorySet
from expense_sync.models.expense import utc_now
from expense_sync.services.cache import LocalCache
from expense_sync.services.storage.interface import (
    CollectionPath,
    DocumentStore,
    StorageError,
)
from expense_sync.validation import transform_category_entries


logger = structlog.get_logger(__name__)

SETTINGS_COLLECTION = "settings"
CATEGORIES_DOCUMENT = "categories"
CATEGORIES_FIELD = "categories"

CategoryListener = Callable[[CategorySet], None]


def settings_path(user_id: str) -> CollectionPath:
    return CollectionPath.for_user(user_id, SETTINGS_COLLECTION)


class CategoryResolver:
    """
    Owns the current CategorySet and the tiers it is resolved from.

    Readers either read `current` on each access or subscribe to be told
    when it is replaced.
    """

    def __init__(
        self,
        store: DocumentStore,
        cache: LocalCache,
        cache_key: Optional[str] = None,
        activity_logger: Optional[ActivityLogger] = None,
    ):
        self._store = store
        self._cache = cache
        self._cache_key = cache_key or get_settings().cache.categories_key
        self._activity = activity_logger
        self._current = CategorySet.defaults()
        self._listeners: list[CategoryListener] = []

    @property
    def current(self) -> CategorySet:
        return self._current

    def subscribe(self, listener: CategoryListener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, categories: list[Category]) -> None:
        replacement = CategorySet(categories)
        if replacement == self._current:
            return
        self._current = replacement
        for listener in list(self._listeners):
            listener(replacement)

    # -------------------------------------------------------------------------
    # Tiers
    # -------------------------------------------------------------------------

    async def _fetch_document(self, user_id: str) -> Optional[list[Category]]:
        """The stored sequence, or None if the user never saved one."""
        try:
            record = await self._store.get_document(settings_path(user_id), CATEGORIES_DOCUMENT)
        except StorageError as e:
            logger.error(
                "categories_load_failed",
                user_id=user_id,
                error=str(e),
                code=e.code,
            )
            raise

        if record is None:
            return None

        fields = record.fields if isinstance(record.fields, Mapping) else {}
        categories = transform_category_entries(fields.get(CATEGORIES_FIELD))
        if categories is None:
            logger.warning("categories_document_malformed", user_id=user_id)
            return None
        return categories

    async def load(self, user_id: Optional[str]) -> list[Category]:
        """
        Read the user's stored categories.

        Returns [] when signed out or when nothing has been stored. Never
        writes to the local cache.

        Raises:
            StorageError: If the remote read fails
        """
        if not user_id:
            logger.warning("categories_load_skipped", reason="no_user")
            return []
        categories = await self._fetch_document(user_id)
        return categories if categories is not None else []

    async def save(self, user_id: str, categories: list[Category]) -> None:
        """
        Replace the user's categories remotely, then mirror them locally.

        Raises:
            InvalidArgumentError: If user_id is empty
            StorageError: If the remote write fails (local cache untouched)

        A local cache write failure is logged, not raised: the remote
        document is already saved, so subscribers are still notified.
        """
        if not user_id:
            raise InvalidArgumentError("User ID is required to save categories")

        entries = [category.model_dump() for category in categories]
        await self._store.set_document(
            settings_path(user_id),
            CATEGORIES_DOCUMENT,
            {CATEGORIES_FIELD: entries, "updatedAt": utc_now()},
        )

        try:
            self._cache.set_item(self._cache_key, json.dumps(entries))
        except OSError as e:
            # Remote write already succeeded; the mirror catches up on next save
            logger.warning(
                "categories_cache_write_failed",
                key=self._cache_key,
                error=str(e),
            )
        logger.info("categories_saved", user_id=user_id, count=len(entries))
        self._publish(list(categories))

        if self._activity:
            await self._activity.log(ActivityEventBuilder.categories_saved(
                user_id=user_id,
                values=[category.value for category in categories],
            ))

    def get_local_or_default(self) -> list[Category]:
        """The locally mirrored categories, or the defaults."""
        raw = self._cache.get_item(self._cache_key)
        if raw is None:
            return CategorySet.defaults().to_list()
        try:
            categories = transform_category_entries(json.loads(raw))
        except ValueError:
            categories = None
        if categories is None:
            logger.warning("categories_cache_unreadable", key=self._cache_key)
            return CategorySet.defaults().to_list()
        return categories

    async def resolve(self, user_id: Optional[str]) -> CategorySet:
        """
        Work out which categories this user sees and make them current.

        The remote document wins when it exists, even if it is empty.
        Otherwise, and when the store cannot be reached, the local mirror
        or the defaults are used.
        """
        stored: Optional[list[Category]] = None
        if user_id:
            try:
                stored = await self._fetch_document(user_id)
            except StorageError:
                logger.warning("categories_resolve_offline", user_id=user_id)

        self._publish(stored if stored is not None else self.get_local_or_default())
        return self._current
