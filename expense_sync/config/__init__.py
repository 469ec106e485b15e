"""Configuration package."""

from expense_sync.config.settings import (
    AppSettings,
    CacheSettings,
    FirestoreSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "CacheSettings",
    "FirestoreSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
