"""Custom exception hierarchy for the spellbook engine.

Every error raised by the engine derives from SpellbookError so callers
at the host boundary can handle them uniformly while still reading the
domain context stored in ``details``.

Example:
    >>> from spellbook.core.exceptions import ResolutionError
    >>> raise ResolutionError("Spell could not be resolved", uuid="Compendium.x.Item.abc")
"""

from __future__ import annotations

from typing import Any


class SpellbookError(Exception):
    """Base exception for all spellbook engine errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary containing additional error context.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        """Initialize the base exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional error context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the exception message with optional details.

        Returns:
            Formatted error message including any provided details.
        """
        if self.details:
            detail_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} [{detail_str}]"
        return self.message

    def __repr__(self) -> str:
        """Return a detailed string representation of the exception."""
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationError(SpellbookError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize configuration error with the offending key.

        Args:
            message: Human-readable error description.
            config_key: The configuration key that caused the error.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if config_key:
            combined_details["config_key"] = config_key
        super().__init__(message, details=combined_details)


class SpellListNotFoundError(ConfigurationError):
    """Raised when no spell list can be found for a class.

    The engine converts this into an empty view plus a user notice; it
    never escapes a render pass.
    """

    def __init__(
        self,
        message: str,
        *,
        class_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        combined_details = details or {}
        if class_id:
            combined_details["class_id"] = class_id
        super().__init__(message, details=combined_details)


class SpellbookValidationError(SpellbookError):
    """Raised when input data fails validation.

    Used for bad loadout names, unknown rule sets and malformed
    advanced-search queries.
    """

    def __init__(
        self,
        message: str,
        *,
        field_name: str | None = None,
        invalid_value: Any = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize validation error with field context.

        Args:
            message: Human-readable error description.
            field_name: Name of the field that failed validation.
            invalid_value: The value that failed validation.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if field_name:
            combined_details["field_name"] = field_name
        if invalid_value is not None:
            combined_details["invalid_value"] = invalid_value
        super().__init__(message, details=combined_details)


# =============================================================================
# Host Collaborator Exceptions
# =============================================================================


class HostError(SpellbookError):
    """Base exception for failures reported by the host environment."""


class ResolutionError(HostError):
    """Raised when a UUID cannot be resolved to a document."""

    def __init__(
        self,
        message: str,
        *,
        uuid: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        combined_details = details or {}
        if uuid:
            combined_details["uuid"] = uuid
        super().__init__(message, details=combined_details)


class MutationError(HostError):
    """Raised when the host rejects a create, update or delete."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        class_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize mutation error with operation context.

        Args:
            message: Human-readable error description.
            operation: The mutation kind (create, update, delete, flag).
            class_id: The class whose batch failed, if any.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if operation:
            combined_details["operation"] = operation
        if class_id:
            combined_details["class_id"] = class_id
        super().__init__(message, details=combined_details)


# =============================================================================
# Rules Engine Exceptions
# =============================================================================


class RulesIntegrityError(SpellbookError):
    """Raised when stored class rules do not match the current schema version."""

    def __init__(
        self,
        message: str,
        *,
        class_id: str | None = None,
        stored_version: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        combined_details = details or {}
        if class_id:
            combined_details["class_id"] = class_id
        if stored_version is not None:
            combined_details["stored_version"] = stored_version
        super().__init__(message, details=combined_details)


class TransitionRejected(SpellbookError):
    """Raised when a preparation change is rejected under enforced rules."""

    def __init__(
        self,
        message: str,
        *,
        reason: str | None = None,
        class_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        combined_details = details or {}
        if reason:
            combined_details["reason"] = reason
        if class_id:
            combined_details["class_id"] = class_id
        super().__init__(message, details=combined_details)


class SpellbookStateError(SpellbookError):
    """Raised when the spellbook state is used out of order.

    For example committing a session that was never initialized.
    """


__all__ = [
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
]
