"""
Error Taxonomy for Expense Sync

Four kinds of failure exist:

- VALIDATION_DROP: one malformed remote record. Absorbed by dropping it.
- INVALID_ARGUMENT: the caller omitted a required identity or field.
- REMOTE_FAILURE: the store rejected or could not complete an operation.
- STALE_STATE: update/delete by id found no local record. Absorbed as a no-op.

Only INVALID_ARGUMENT and REMOTE_FAILURE ever reach a caller. Controllers
keep the latest one as a SyncFailure so the UI can show it.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel

from expense_sync.services.storage.interface import StorageError


class FailureKind(str, Enum):
    VALIDATION_DROP = "validation_drop"
    INVALID_ARGUMENT = "invalid_argument"
    REMOTE_FAILURE = "remote_failure"
    STALE_STATE = "stale_state"


class InvalidArgumentError(ValueError):
    """A required identity or field was missing or empty."""
    pass


class DuplicateCategoryError(InvalidArgumentError):
    """A category with the same value already exists in the set."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Category '{value}' already exists")


class ProtectedCategoryError(InvalidArgumentError):
    """Attempted to remove one of the built-in categories."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Category '{value}' is built in and cannot be removed")


class SyncFailure(BaseModel):
    """The latest failure a controller or binder is holding for display."""

    kind: FailureKind
    message: str
    operation: Optional[str] = None

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        operation: Optional[str] = None,
    ) -> "SyncFailure":
        return cls(
            kind=classify_error(exc),
            message=get_error_message(exc),
            operation=operation,
        )


# Store error codes to user-friendly messages
STORE_ERROR_MESSAGES: dict[str, str] = {
    "permission-denied": "You don't have permission to perform this action.",
    "unavailable": "Service is temporarily unavailable. Please try again.",
    "deadline-exceeded": "Request timed out. Please check your connection and try again.",
    "not-found": "The requested data was not found.",
    "already-exists": "This item already exists.",
    "resource-exhausted": "Too many requests. Please wait a moment and try again.",
    "failed-precondition": "Operation cannot be completed in the current state.",
    "aborted": "Operation was aborted. Please try again.",
    "out-of-range": "Invalid range specified.",
    "unimplemented": "This feature is not yet implemented.",
    "internal": "An internal error occurred. Please try again.",
    "unauthenticated": "You need to sign in to perform this action.",
    "invalid-argument": "Invalid data provided. Please check your input.",
}

GENERIC_ERROR_MESSAGE = "An unexpected error occurred. Please try again."


def classify_error(exc: BaseException) -> FailureKind:
    if isinstance(exc, InvalidArgumentError):
        return FailureKind.INVALID_ARGUMENT
    return FailureKind.REMOTE_FAILURE


def get_error_message(exc: object) -> str:
    """
    Human-readable message for any failure.

    Store errors carrying a known code get the friendly text; everything
    else falls back to the exception's own message.
    """
    if isinstance(exc, StorageError) and exc.code:
        friendly = STORE_ERROR_MESSAGES.get(exc.code)
        if friendly:
            return friendly

    if isinstance(exc, BaseException):
        return str(exc) or GENERIC_ERROR_MESSAGE

    if isinstance(exc, str) and exc:
        return exc

    return GENERIC_ERROR_MESSAGE
