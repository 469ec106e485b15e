"""
Activity Log Models for Expense Sync

Every user-visible change and every sync failure produces an ActivityEvent.
The activity page reads these back per user, newest first.

DESIGN DECISION: Activity events are append-only. We never update them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from expense_sync.models.expense import utc_now


class ActivityAction(str, Enum):
    """
    Actions we record.

    Grouped by the part of the sync layer that emits them.
    """
    # Expenses
    EXPENSE_ADDED = "expense_added"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"
    EXPENSES_PAGE_LOADED = "expenses_page_loaded"
    EXPENSES_COPIED = "expenses_copied"

    # Categories
    CATEGORIES_SAVED = "categories_saved"

    # Failures
    SYNC_FAILED = "sync_failed"


class ActivityCategory(str, Enum):
    USER_ACTION = "USER_ACTION"
    SYSTEM = "SYSTEM"
    ERROR = "ERROR"
    DATABASE = "DATABASE"


class ActivityLevel(str, Enum):
    """Severity level for activity events."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class ActivityEvent(BaseModel):
    """
    A single activity event.

    Stored under users/{user_id}/logs when persistence is enabled.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Classification
    action: ActivityAction
    level: ActivityLevel = ActivityLevel.INFO
    category: ActivityCategory = ActivityCategory.USER_ACTION

    user_id: Optional[str] = None
    message: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "action": self.action.value,
            "level": self.level.value,
            "category": self.category.value,
            "user_id": self.user_id,
            "message": self.message,
            "details": self.details,
        }

    def to_document(self) -> dict:
        """Fields written to the remote store."""
        return {
            "eventId": str(self.event_id),
            "timestamp": self.timestamp,
            "action": self.action.value,
            "level": self.level.value,
            "category": self.category.value,
            "userId": self.user_id,
            "message": self.message,
            "details": self.details,
        }


class ActivityEventBuilder:
    """
    Helper class to build activity events with common patterns.

    Usage:
        event = ActivityEventBuilder.expense_added(user_id, expense_id, 12.5)
        event = ActivityEventBuilder.sync_failed(user_id, "load_first_page", msg)
    """

    @staticmethod
    def expense_added(
        user_id: str,
        expense_id: str,
        amount: float,
        category: str,
    ) -> ActivityEvent:
        return ActivityEvent(
            action=ActivityAction.EXPENSE_ADDED,
            user_id=user_id,
            message=f"Expense added: {amount:.2f} ({category})",
            details={
                "expense_id": expense_id,
                "amount": amount,
                "category": category,
            },
        )

    @staticmethod
    def expense_updated(
        user_id: str,
        expense_id: str,
        fields: list[str],
    ) -> ActivityEvent:
        return ActivityEvent(
            action=ActivityAction.EXPENSE_UPDATED,
            user_id=user_id,
            message=f"Expense updated: {', '.join(fields) or 'no fields'}",
            details={
                "expense_id": expense_id,
                "fields": fields,
            },
        )

    @staticmethod
    def expense_deleted(user_id: str, expense_id: str) -> ActivityEvent:
        return ActivityEvent(
            action=ActivityAction.EXPENSE_DELETED,
            user_id=user_id,
            message="Expense deleted",
            details={"expense_id": expense_id},
        )

    @staticmethod
    def page_loaded(
        user_id: str,
        count: int,
        has_more: bool,
        first_page: bool,
    ) -> ActivityEvent:
        return ActivityEvent(
            action=ActivityAction.EXPENSES_PAGE_LOADED,
            level=ActivityLevel.DEBUG,
            category=ActivityCategory.DATABASE,
            user_id=user_id,
            message=f"Loaded {count} expenses",
            details={
                "count": count,
                "has_more": has_more,
                "first_page": first_page,
            },
        )

    @staticmethod
    def expenses_copied(
        source_user_id: str,
        target_user_id: str,
        count: int,
    ) -> ActivityEvent:
        return ActivityEvent(
            action=ActivityAction.EXPENSES_COPIED,
            category=ActivityCategory.SYSTEM,
            user_id=target_user_id,
            message=f"Copied {count} expenses from another account",
            details={
                "source_user_id": source_user_id,
                "count": count,
            },
        )

    @staticmethod
    def categories_saved(user_id: str, values: list[str]) -> ActivityEvent:
        return ActivityEvent(
            action=ActivityAction.CATEGORIES_SAVED,
            user_id=user_id,
            message=f"Saved {len(values)} categories",
            details={"values": values},
        )

    @staticmethod
    def sync_failed(
        user_id: Optional[str],
        operation: str,
        error_message: str,
        kind: Optional[str] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            action=ActivityAction.SYNC_FAILED,
            level=ActivityLevel.ERROR,
            category=ActivityCategory.ERROR,
            user_id=user_id,
            message=f"{operation} failed: {error_message}"[:500],
            details={
                "operation": operation,
                "kind": kind,
                "error_message": error_message,
            },
        )
