"""
Expense Record Validator

DESIGN DECISION: Remote records are untrusted. Documents written by
older app versions drift from the current schema, so validation is
fail-soft per record rather than fail-hard per page:

STAGE 1 - FIELD COERCION:
- Each field is coerced independently to its documented default
- One malformed field never invalidates the rest of the record

STAGE 2 - STRUCTURAL CHECK:
- The coerced result must be a complete, correctly typed Expense
- If it is not (no id, no owner), the record is dropped: None

The owner is always supplied by the caller. A user_id stored inside the
record is ignored, because the collection path is what scopes ownership.

IMPORTANT: transform_expense_record never raises. Callers treat None as
"record absent" and carry on with the rest of the page.
"""

import math
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from expense_sync.models.activity import ActivityEvent
from expense_sync.models.category import Category
from expense_sync.models.expense import Expense, ExpenseCategory, assume_utc, utc_now
from expense_sync.services.storage.interface import RawRecord


logger = structlog.get_logger(__name__)

EXPENSE_CATEGORY_VALUES = frozenset(category.value for category in ExpenseCategory)


def is_expense_category(value: object) -> bool:
    """True if `value` is one of the fixed category keys."""
    return isinstance(value, str) and value in EXPENSE_CATEGORY_VALUES


def _coerce_timestamp(value: Any, now: datetime) -> datetime:
    """
    Convert a store timestamp to an aware datetime.

    Firestore hands back datetime subclasses; other stores expose a
    conversion method (to_datetime / as_datetime). Anything else is "now".
    """
    if isinstance(value, datetime):
        return assume_utc(value)
    for method_name in ("to_datetime", "as_datetime"):
        convert = getattr(value, method_name, None)
        if callable(convert):
            try:
                converted = convert()
            except (TypeError, ValueError, OverflowError):
                return now
            if isinstance(converted, datetime):
                return assume_utc(converted)
            return now
    return now


def _coerce_amount(value: Any) -> float:
    # bool is an int subclass but never a valid amount
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    try:
        amount = float(value)
    except OverflowError:
        return 0.0
    return amount if math.isfinite(amount) else 0.0


def _coerce_tags(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [tag for tag in value if isinstance(tag, str)]


def _coerce_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def is_valid_expense(obj: object) -> bool:
    """
    Structural post-condition for a validated expense.

    Every required field present and correctly typed.
    """
    if not isinstance(obj, Expense):
        return False
    return (
        isinstance(obj.id, str) and bool(obj.id)
        and isinstance(obj.user_id, str) and bool(obj.user_id)
        and isinstance(obj.amount, float) and math.isfinite(obj.amount)
        and isinstance(obj.date, datetime)
        and isinstance(obj.category, ExpenseCategory)
        and isinstance(obj.description, str)
        and isinstance(obj.tags, list)
        and all(isinstance(tag, str) for tag in obj.tags)
        and isinstance(obj.location, str)
        and isinstance(obj.created_at, datetime)
        and isinstance(obj.updated_at, datetime)
    )


def transform_expense_record(record: RawRecord, user_id: str) -> Optional[Expense]:
    """
    Turn a raw remote record into an Expense, or None.

    Args:
        record: Document id plus untyped fields, as returned by the store
        user_id: Owner of the collection the record was read from

    Returns:
        A fully populated Expense, or None when the record cannot be one
    """
    try:
        data = record.fields
        if not isinstance(data, Mapping):
            logger.debug("expense_record_dropped", reason="fields_not_mapping")
            return None

        now = utc_now()
        category = data.get("category")

        expense = Expense(
            id=record.id,
            user_id=user_id,
            amount=_coerce_amount(data.get("amount")),
            date=_coerce_timestamp(data.get("date"), now),
            category=category if is_expense_category(category) else ExpenseCategory.OTHER,
            description=_coerce_str(data.get("description")),
            tags=_coerce_tags(data.get("tags")),
            location=_coerce_str(data.get("location")),
            created_at=_coerce_timestamp(data.get("createdAt"), now),
            updated_at=_coerce_timestamp(data.get("updatedAt"), now),
        )
    except ValidationError as e:
        logger.debug(
            "expense_record_dropped",
            record_id=getattr(record, "id", None),
            errors=e.error_count(),
        )
        return None
    except Exception as e:
        logger.warning(
            "expense_record_transform_failed",
            record_id=getattr(record, "id", None),
            error=str(e),
        )
        return None

    return expense if is_valid_expense(expense) else None


def transform_expense_records(records: list[RawRecord], user_id: str) -> list[Expense]:
    """Validate a page of records, dropping the ones that fail."""
    expenses = []
    for record in records:
        expense = transform_expense_record(record, user_id)
        if expense is not None:
            expenses.append(expense)
    return expenses


def is_partial_expense_data(obj: object) -> bool:
    """
    Type guard for a raw partial update.

    Every key that is present must hold a correctly typed value.
    """
    if not isinstance(obj, Mapping):
        return False

    amount = obj.get("amount")
    if "amount" in obj and (isinstance(amount, bool) or not isinstance(amount, (int, float))):
        return False
    if "date" in obj and not isinstance(obj["date"], datetime):
        return False
    if "category" in obj and not is_expense_category(obj["category"]):
        return False
    if "description" in obj and not isinstance(obj["description"], str):
        return False
    if "tags" in obj and not isinstance(obj["tags"], (list, tuple)):
        return False
    if "location" in obj and not isinstance(obj["location"], str):
        return False

    return True


def transform_activity_record(record: RawRecord) -> Optional[ActivityEvent]:
    """
    Turn a persisted activity document back into an ActivityEvent, or None.

    Unlike expenses there is no per-field defaulting: a log entry that
    does not parse is simply skipped.
    """
    data = record.fields
    if not isinstance(data, Mapping):
        return None
    try:
        return ActivityEvent(
            event_id=data.get("eventId"),
            timestamp=_coerce_timestamp(data.get("timestamp"), utc_now()),
            action=data.get("action"),
            level=data.get("level"),
            category=data.get("category"),
            user_id=data.get("userId"),
            message=data.get("message"),
            details=data.get("details") or {},
        )
    except ValidationError:
        logger.debug("activity_record_dropped", record_id=record.id)
        return None


def transform_category_entries(value: Any) -> Optional[list[Category]]:
    """
    Validate a stored category sequence.

    Returns None when `value` is not a sequence at all. Otherwise returns
    the well-formed entries in order, skipping the rest; the first entry
    wins when a value repeats.
    """
    if not isinstance(value, (list, tuple)):
        return None

    categories: list[Category] = []
    seen: set[str] = set()
    for entry in value:
        if not isinstance(entry, Mapping):
            continue
        try:
            category = Category(value=entry.get("value"), label=entry.get("label"))
        except ValidationError:
            logger.debug("category_entry_dropped", entry=repr(entry)[:100])
            continue
        if category.value in seen:
            continue
        seen.add(category.value)
        categories.append(category)
    return categories
