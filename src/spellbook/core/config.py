"""Process configuration for the spellbook engine.

These settings tune the engine itself (concurrency gate, cache lifetimes,
wizard learning formula, storage path). World-scoped settings that the
host owns are modelled separately in ``spellbook.models.settings``.

Example:
    >>> from spellbook.core.config import get_settings
    >>> get_settings().engine.fetch_concurrency
    5

Environment Variables:
    SPELLBOOK_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    SPELLBOOK_LOG_JSON: Emit JSON log lines
    SPELLBOOK_DATABASE_PATH: Path to the SQLite database
    SPELLBOOK_ENGINE_FETCH_CONCURRENCY: In-flight compendium fetches
    SPELLBOOK_WIZARD_STARTING_FREE_SPELLS: Free spellbook entries at level 1
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from spellbook.core.constants import DEFAULT_COST_PER_LEVEL, DEFAULT_HOURS_PER_LEVEL
from spellbook.core.exceptions import ConfigurationError


class EngineSettings(BaseSettings):
    """Configuration for the engine's scheduling and caches.

    Attributes:
        fetch_concurrency: Maximum in-flight compendium fetches.
        loadout_cache_ttl_seconds: Lifetime of the per-actor loadout cache.
        spell_list_cache_size: Maximum cached spell-list resolutions.
        mutation_retry_attempts: Attempts for transient host mutation failures.
        mutation_retry_min_wait: Minimum backoff between retries.
        mutation_retry_max_wait: Maximum backoff between retries.
        delete_unprepared_spells: Delete owned spells on unprepare instead of patching.
    """

    model_config = SettingsConfigDict(
        env_prefix="SPELLBOOK_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    fetch_concurrency: int = Field(
        default=5,
        ge=1,
        le=64,
        description="Maximum in-flight compendium fetches",
    )
    loadout_cache_ttl_seconds: float = Field(
        default=30.0,
        ge=0,
        description="Loadout cache lifetime in seconds",
    )
    spell_list_cache_size: int = Field(
        default=256,
        ge=1,
        description="Maximum cached spell-list resolutions",
    )
    mutation_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for transient host mutation failures",
    )
    mutation_retry_min_wait: float = Field(
        default=2.0,
        ge=0,
        description="Minimum backoff between mutation retries in seconds",
    )
    mutation_retry_max_wait: float = Field(
        default=10.0,
        ge=0,
        description="Maximum backoff between mutation retries in seconds",
    )
    delete_unprepared_spells: bool = Field(
        default=True,
        description="Delete owned spells when unprepared",
    )


class WizardSettings(BaseSettings):
    """Configuration for the wizard spellbook learning formula.

    Attributes:
        starting_free_spells: Free spellbook entries granted at class level 1.
        free_spells_per_level: Free entries granted per class level after 1.
        cost_per_level: Default gold cost per spell level.
        hours_per_level: Default copy time per spell level.
    """

    model_config = SettingsConfigDict(
        env_prefix="SPELLBOOK_WIZARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    starting_free_spells: int = Field(default=2, ge=0, description="Free entries at level 1")
    free_spells_per_level: int = Field(default=2, ge=0, description="Free entries per level")
    cost_per_level: int = Field(
        default=DEFAULT_COST_PER_LEVEL,
        ge=0,
        description="Gold cost per spell level",
    )
    hours_per_level: int = Field(
        default=DEFAULT_HOURS_PER_LEVEL,
        ge=0,
        description="Copy time in hours per spell level",
    )


class StorageSettings(BaseSettings):
    """Configuration for persistent storage.

    Attributes:
        database_path: Path to the SQLite database file.
    """

    model_config = SettingsConfigDict(
        env_prefix="SPELLBOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_path: Path = Field(
        default=Path.home() / ".spellbook" / "spellbook.db",
        description="Path to SQLite database",
    )


class Settings(BaseSettings):
    """Main engine settings aggregating all configuration groups.

    Attributes:
        app_name: Application name.
        debug: Enable debug mode.
        log_level: Logging level.
        log_json: Emit JSON log lines.
        engine: Scheduling and cache settings.
        wizard: Wizard learning settings.
        storage: Storage settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="SPELLBOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    app_name: str = Field(default="Spellbook Engine", description="Application name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_json: bool = Field(default=False, description="Emit JSON log lines")

    engine: EngineSettings = Field(default_factory=EngineSettings)
    wizard: WizardSettings = Field(default_factory=WizardSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    @model_validator(mode="after")
    def validate_debug_logging(self) -> "Settings":
        """Debug mode implies at least DEBUG-level logging is permitted.

        Raises:
            ConfigurationError: If debug is on but logging is above WARNING.
        """
        if self.debug and self.log_level in ("ERROR", "CRITICAL"):
            raise ConfigurationError(
                f"debug mode requires log_level WARNING or lower, got {self.log_level}",
                config_key="log_level",
            )
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the engine settings singleton.

    Returns:
        The cached Settings instance.

    Raises:
        ConfigurationError: If configuration is missing or invalid.
    """
    try:
        return Settings()
    except Exception as exc:
        raise ConfigurationError(
            f"Failed to load engine settings: {exc}",
            details={"original_error": str(exc)},
        ) from exc


def clear_settings_cache() -> None:
    """Clear the settings cache, forcing a reload on next access."""
    get_settings.cache_clear()


__all__ = [
    "EngineSettings",
    "WizardSettings",
    "StorageSettings",
    "Settings",
    "get_settings",
    "clear_settings_cache",
]
