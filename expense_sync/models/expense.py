"""
Core Expense Models for Expense Sync

These models define the typed domain objects the sync layer hands to its
callers. Remote records never reach callers directly: they pass through
the record validator first (see expense_sync.validation).

DESIGN DECISION: Stored documents use camelCase field names (createdAt,
updatedAt) because other clients share the same collections. The Python
models use snake_case and the repository owns the mapping between them.
"""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


def utc_now() -> datetime:
    """Current instant as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def assume_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are read as UTC; aware ones pass through."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ExpenseCategory(str, Enum):
    """
    Category keys an expense record may carry.

    Anything outside this set is normalized to OTHER when a record is read.
    """
    FOOD = "food"
    HOUSING = "housing"
    TRANSPORTATION = "transportation"
    UTILITIES = "utilities"
    ENTERTAINMENT = "entertainment"
    HEALTHCARE = "healthcare"
    SHOPPING = "shopping"
    EDUCATION = "education"
    PERSONAL = "personal"
    OTHER = "other"


# =============================================================================
# CORE EXPENSE MODEL
# =============================================================================

class Expense(BaseModel):
    """
    A validated expense belonging to exactly one user.

    Instances are produced by the record validator or by overlaying a
    confirmed partial update onto an existing instance.
    """
    model_config = ConfigDict(frozen=True)

    # Identity
    id: str = Field(
        ...,
        min_length=1,
        description="Document id, unique within the user's collection"
    )
    user_id: str = Field(
        ...,
        min_length=1,
        description="Owner, supplied by the caller rather than the record"
    )

    amount: float = Field(
        ...,
        description="Currency-agnostic magnitude"
    )
    date: datetime = Field(
        ...,
        description="When the expense happened"
    )
    category: ExpenseCategory
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    location: str = ""

    # Timestamps
    created_at: datetime
    updated_at: datetime


class ExpenseCreate(BaseModel):
    """
    Payload for a user-initiated add.

    The id and both timestamps are assigned when the record is written.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: float = Field(
        ...,
        gt=0,
        description="Positive, finite amount"
    )
    date: datetime
    category: ExpenseCategory
    description: str = Field(
        default="",
        max_length=500,
    )
    tags: list[str] = Field(default_factory=list)
    location: str = ""

    @field_validator('amount')
    @classmethod
    def validate_finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("Amount must be a finite number")
        return v

    @field_validator('date')
    @classmethod
    def validate_date(cls, v: datetime) -> datetime:
        return assume_utc(v)


class ExpenseUpdate(BaseModel):
    """
    Partial edit of an existing expense.

    Only fields that are set (not None) are written and overlaid locally;
    every other field keeps its prior value.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Optional[float] = Field(default=None, gt=0)
    date: Optional[datetime] = None
    category: Optional[ExpenseCategory] = None
    description: Optional[str] = Field(default=None, max_length=500)
    tags: Optional[list[str]] = None
    location: Optional[str] = None

    @field_validator('amount')
    @classmethod
    def validate_finite(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not math.isfinite(v):
            raise ValueError("Amount must be a finite number")
        return v

    @field_validator('date')
    @classmethod
    def validate_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return assume_utc(v)

    def changes(self) -> dict:
        """Fields present in this update, keyed by model attribute name."""
        return self.model_dump(exclude_none=True)

    @property
    def is_empty(self) -> bool:
        return not self.changes()
