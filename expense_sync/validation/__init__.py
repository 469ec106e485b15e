"""Record validation package: the single ingress point for untrusted data."""

from expense_sync.validation.validator import (
    EXPENSE_CATEGORY_VALUES,
    is_expense_category,
    is_partial_expense_data,
    is_valid_expense,
    transform_activity_record,
    transform_category_entries,
    transform_expense_record,
    transform_expense_records,
)

__all__ = [
    "EXPENSE_CATEGORY_VALUES",
    "is_expense_category",
    "is_partial_expense_data",
    "is_valid_expense",
    "transform_activity_record",
    "transform_category_entries",
    "transform_expense_record",
    "transform_expense_records",
]
