"""
Category editing helpers.

Pure functions over a category sequence. They never mutate their input;
the caller saves the returned list through CategoryResolver.save.
"""

import re
from typing import Iterable

from pydantic import ValidationError

from expense_sync.errors import (
    DuplicateCategoryError,
    InvalidArgumentError,
    ProtectedCategoryError,
)
from expense_sync.models.category import Category, PROTECTED_CATEGORY_VALUES


_WHITESPACE = re.compile(r"\s+")


def category_value_for(label: str) -> str:
    """Derive the machine key for a label: 'Pet Care' -> 'pet-care'."""
    return _WHITESPACE.sub("-", label.strip().lower())


def add_category(categories: Iterable[Category], label: str) -> list[Category]:
    """
    Append a new category built from `label`.

    Raises:
        InvalidArgumentError: If the label is blank or too long
        DuplicateCategoryError: If a category with the derived value exists
    """
    if not isinstance(label, str) or not label.strip():
        raise InvalidArgumentError("Category label is required")

    existing = list(categories)
    value = category_value_for(label)
    if any(category.value == value for category in existing):
        raise DuplicateCategoryError(value)

    try:
        category = Category(value=value, label=label.strip())
    except ValidationError as e:
        raise InvalidArgumentError(f"Invalid category label: {label.strip()!r}") from e

    return existing + [category]


def remove_category(categories: Iterable[Category], value: str) -> list[Category]:
    """
    Drop the category with `value`. Unknown values are a no-op.

    Raises:
        ProtectedCategoryError: If `value` is one of the built-in keys
    """
    if value in PROTECTED_CATEGORY_VALUES:
        raise ProtectedCategoryError(value)
    return [category for category in categories if category.value != value]
