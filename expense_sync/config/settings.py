"""
Configuration Management for Expense Sync

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see which external collaborators exist (remote
document store, local device cache) and ensures required configuration
is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FirestoreSettings(BaseSettings):
    """Remote document store (Cloud Firestore) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIRESTORE_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to the Firebase service account credentials JSON"
    )
    project_id: Optional[str] = Field(
        default=None,
        description="Firebase project ID (taken from the credentials if omitted)"
    )
    app_name: str = Field(
        default="expense-sync",
        description="Name of the firebase_admin app instance"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Firebase credentials file not found at {v}. "
                "Make sure it exists before connecting to the store."
            )
        return v


class CacheSettings(BaseSettings):
    """Device-scoped local cache configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOCAL_CACHE_",
        extra="ignore"
    )

    path: str = Field(
        default=str(Path.home() / ".expense-sync" / "local-cache.json"),
        description="File backing the local key-value cache"
    )
    categories_key: str = Field(
        default="expense-categories",
        description="Key under which the category sequence is cached"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for structured logs"
    )

    # Pagination
    page_size: int = Field(
        default=30,
        ge=1,
        le=500,
        description="Number of expenses requested per page"
    )

    # Activity log
    log_activity: bool = Field(
        default=True,
        description="Persist user activity events to the remote store"
    )

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept lower-case level names from the environment."""
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def firestore(self) -> FirestoreSettings:
        return FirestoreSettings()

    @property
    def cache(self) -> CacheSettings:
        return CacheSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.firestore
        results["firestore"] = True
    except Exception as e:
        results["firestore"] = False
        results["firestore_error"] = str(e)

    try:
        _ = settings.cache
        results["cache"] = True
    except Exception as e:
        results["cache"] = False
        results["cache_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
