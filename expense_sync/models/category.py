"""
Category Models

A user's category set is an ordered sequence of (value, label) pairs.
Insertion order is display order, and values are unique within a set.

DESIGN DECISION: The resolved set is an immutable CategorySet value.
Nothing mutates a shared list in place; a change produces a new set and
whoever owns it (the CategoryResolver) publishes the replacement.
"""

from typing import Iterable, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field


class Category(BaseModel):
    """A single expense category."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    value: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Machine-readable key, unique within a set"
    )
    label: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Human-readable name"
    )


class CategoryDisplay(BaseModel):
    """A category projected for presentation."""
    model_config = ConfigDict(frozen=True)

    label: str
    value: str
    color: str


DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category(value="food", label="Food"),
    Category(value="housing", label="Housing"),
    Category(value="transportation", label="Transportation"),
    Category(value="utilities", label="Utilities"),
    Category(value="entertainment", label="Entertainment"),
    Category(value="healthcare", label="Healthcare"),
    Category(value="shopping", label="Shopping"),
    Category(value="education", label="Education"),
    Category(value="personal", label="Personal"),
    Category(value="other", label="Other"),
)

# Built-in keys can never be removed by category editing
PROTECTED_CATEGORY_VALUES: frozenset[str] = frozenset(
    category.value for category in DEFAULT_CATEGORIES
)

CATEGORY_COLORS: dict[str, str] = {
    "food": "bg-orange-100 text-orange-800 dark:bg-orange-900 dark:text-orange-300",
    "housing": "bg-blue-100 text-blue-800 dark:bg-blue-900 dark:text-blue-300",
    "transportation": "bg-green-100 text-green-800 dark:bg-green-900 dark:text-green-300",
    "utilities": "bg-purple-100 text-purple-800 dark:bg-purple-900 dark:text-purple-300",
    "entertainment": "bg-pink-100 text-pink-800 dark:bg-pink-900 dark:text-pink-300",
    "healthcare": "bg-red-100 text-red-800 dark:bg-red-900 dark:text-red-300",
    "shopping": "bg-yellow-100 text-yellow-800 dark:bg-yellow-900 dark:text-yellow-300",
    "education": "bg-indigo-100 text-indigo-800 dark:bg-indigo-900 dark:text-indigo-300",
    "personal": "bg-cyan-100 text-cyan-800 dark:bg-cyan-900 dark:text-cyan-300",
    "other": "bg-gray-100 text-gray-800 dark:bg-gray-800 dark:text-gray-300",
}


def get_category_color(category: str) -> str:
    """Presentation colour for a key; unknown keys get the 'other' colour."""
    return CATEGORY_COLORS.get(category, CATEGORY_COLORS["other"])


class CategorySet:
    """
    Immutable, ordered view over a resolved category sequence.

    All lookups are total: an unknown key never raises, it falls back to
    the raw key (labels) or the 'other' colour (display).
    """

    __slots__ = ("_categories",)

    def __init__(self, categories: Iterable[Category] = ()):
        self._categories: tuple[Category, ...] = tuple(categories)

    @classmethod
    def defaults(cls) -> "CategorySet":
        return cls(DEFAULT_CATEGORIES)

    def __iter__(self) -> Iterator[Category]:
        return iter(self._categories)

    def __len__(self) -> int:
        return len(self._categories)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CategorySet):
            return NotImplemented
        return self._categories == other._categories

    def __repr__(self) -> str:
        return f"CategorySet({[c.value for c in self._categories]!r})"

    def to_list(self) -> list[Category]:
        return list(self._categories)

    def get_by_value(self, value: str) -> Optional[Category]:
        for category in self._categories:
            if category.value == value:
                return category
        return None

    def exists(self, value: str) -> bool:
        return self.get_by_value(value) is not None

    def get_label(self, value: str) -> str:
        category = self.get_by_value(value)
        return category.label if category else value

    def format_for_display(self, value: str) -> CategoryDisplay:
        return CategoryDisplay(
            label=self.get_label(value),
            value=value,
            color=get_category_color(value),
        )
