"""
Activity Logger

DESIGN DECISION: Every user-visible change and every sync failure is
recorded. This provides:
1. Debugging capability when a page and the store disagree
2. An activity history the user can browse
3. A trail for bulk operations such as account copies

The activity logger:
- Is async so it never blocks the operation it describes
- Gracefully handles failures (a failed log write never fails the caller)
- Always logs locally through structlog, and persists when a store is set
"""

import logging
from typing import Optional

import structlog

from expense_sync.models.activity import (
    ActivityEvent,
    ActivityLevel,
)
from expense_sync.services.storage.interface import (
    CollectionPath,
    DocumentStore,
    QuerySpec,
    SortDirection,
)
from expense_sync.validation import transform_activity_record


LOGS_COLLECTION = "logs"


def configure_logging(level: str = "INFO") -> None:
    """
    Configure structlog for local structured logging.

    Call once at startup; log level comes from AppSettings.log_level.
    """
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def logs_path(user_id: str) -> CollectionPath:
    return CollectionPath.for_user(user_id, LOGS_COLLECTION)


class ActivityLogger:
    """
    Central activity logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The remote store, under users/{user_id}/logs (for the activity page)
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        min_level: ActivityLevel = ActivityLevel.INFO,
    ):
        """
        Initialize activity logger.

        Args:
            store: Remote store for persistence.
                   If None, only logs locally.
            min_level: Events below this level are logged locally only.
        """
        self._store = store
        self._min_level = min_level
        self._logger = structlog.get_logger("expense_sync.activity")

    def _should_persist(self, event: ActivityEvent) -> bool:
        order = list(ActivityLevel)
        return (
            self._store is not None
            and event.user_id is not None
            and order.index(event.level) >= order.index(self._min_level)
        )

    async def log(self, event: ActivityEvent) -> bool:
        """
        Log an activity event.

        Always logs locally. Persists to the store when configured and the
        event belongs to a user.

        Returns True if the store write succeeded (or was not attempted).
        """
        log_dict = event.to_log_dict()

        if event.level == ActivityLevel.ERROR:
            self._logger.error("activity_event", **log_dict)
        elif event.level == ActivityLevel.WARN:
            self._logger.warning("activity_event", **log_dict)
        elif event.level == ActivityLevel.DEBUG:
            self._logger.debug("activity_event", **log_dict)
        else:
            self._logger.info("activity_event", **log_dict)

        if not self._should_persist(event):
            return True

        try:
            await self._store.add_document(logs_path(event.user_id), event.to_document())
            return True
        except Exception as e:
            # Log failure but don't raise
            self._logger.error(
                "activity_storage_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    async def recent(self, user_id: str, limit: int = 100) -> list[ActivityEvent]:
        """
        Most recent persisted events for a user, newest first.

        Returns an empty list when no store is configured or the user is
        signed out. Entries that do not parse are skipped;
        read failures propagate.
        """
        if self._store is None or not user_id:
            return []
        page = await self._store.query(
            logs_path(user_id),
            QuerySpec(
                order_field="timestamp",
                direction=SortDirection.DESCENDING,
                limit=limit,
            ),
        )
        events = (transform_activity_record(record) for record in page.records)
        return [event for event in events if event is not None]
