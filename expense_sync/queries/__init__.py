"""Query binding package."""

from expense_sync.queries.binder import (
    QueryBinder,
    Window,
    apply_transform,
    fetch_window,
)

__all__ = ["QueryBinder", "Window", "apply_transform", "fetch_window"]
