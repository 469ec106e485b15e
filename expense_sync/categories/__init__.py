"""Category resolution and editing."""

from expense_sync.categories.editing import (
    add_category,
    category_value_for,
    remove_category,
)
from expense_sync.categories.resolver import (
    CATEGORIES_DOCUMENT,
    CategoryResolver,
    settings_path,
)

__all__ = [
    "CATEGORIES_DOCUMENT",
    "CategoryResolver",
    "add_category",
    "category_value_for",
    "remove_category",
    "settings_path",
]
