"""Activity logging package."""

from expense_sync.activity.logger import ActivityLogger, configure_logging

__all__ = ["ActivityLogger", "configure_logging"]
