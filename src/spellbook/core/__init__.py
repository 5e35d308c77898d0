"""Core module providing configuration, logging, and base exceptions.

Exports:
    Exceptions:
        SpellbookError: Base exception for all engine errors.
        ConfigurationError: Configuration-related errors.
        SpellbookValidationError: Input validation errors.

    Configuration:
        Settings: Main engine settings class.
        get_settings: Get the settings singleton.
        clear_settings_cache: Force settings reload.

    Logging:
        configure_logging: Set up engine logging.
        get_logger: Get a configured logger instance.
        bind_context: Add context to log entries.
        clear_context: Clear logging context.
"""

from __future__ import annotations

from spellbook.core.config import (
    EngineSettings,
    Settings,
    StorageSettings,
    WizardSettings,
    clear_settings_cache,
    get_settings,
)
from spellbook.core.exceptions import (
    ConfigurationError,
    HostError,
    MutationError,
    ResolutionError,
    RulesIntegrityError,
    SpellbookError,
    SpellbookStateError,
    SpellbookValidationError,
    SpellListNotFoundError,
    TransitionRejected,
)
from spellbook.core.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)


__all__ = [
    # Exceptions
    "SpellbookError",
    "ConfigurationError",
    "SpellListNotFoundError",
    "SpellbookValidationError",
    "HostError",
    "ResolutionError",
    "MutationError",
    "RulesIntegrityError",
    "TransitionRejected",
    "SpellbookStateError",
    # Configuration
    "Settings",
    "EngineSettings",
    "WizardSettings",
    "StorageSettings",
    "get_settings",
    "clear_settings_cache",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
]
