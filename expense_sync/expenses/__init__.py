"""Expense persistence, pagination and migration."""

from expense_sync.expenses.controller import (
    ControllerState,
    ControllerStatus,
    ExpenseCollectionController,
)
from expense_sync.expenses.migration import copy_expenses_between_users
from expense_sync.expenses.repository import (
    ExpensePage,
    ExpenseRepository,
    expenses_path,
)

__all__ = [
    "ControllerState",
    "ControllerStatus",
    "ExpenseCollectionController",
    "ExpensePage",
    "ExpenseRepository",
    "copy_expenses_between_users",
    "expenses_path",
]
