"""
Data Models Package

This package contains the Pydantic models used by the sync layer.
Raw remote records are not models: they stay RawRecord until validated.
"""

from expense_sync.models.expense import (
    Expense,
    ExpenseCategory,
    ExpenseCreate,
    ExpenseUpdate,
    utc_now,
)
from expense_sync.models.category import (
    CATEGORY_COLORS,
    DEFAULT_CATEGORIES,
    PROTECTED_CATEGORY_VALUES,
    Category,
    CategoryDisplay,
    CategorySet,
    get_category_color,
)
from expense_sync.models.activity import (
    ActivityAction,
    ActivityCategory,
    ActivityEvent,
    ActivityEventBuilder,
    ActivityLevel,
)

__all__ = [
    # Expense models
    "Expense",
    "ExpenseCategory",
    "ExpenseCreate",
    "ExpenseUpdate",
    "utc_now",
    # Category models
    "CATEGORY_COLORS",
    "DEFAULT_CATEGORIES",
    "PROTECTED_CATEGORY_VALUES",
    "Category",
    "CategoryDisplay",
    "CategorySet",
    "get_category_color",
    # Activity models
    "ActivityAction",
    "ActivityCategory",
    "ActivityEvent",
    "ActivityEventBuilder",
    "ActivityLevel",
]
