"""Structured logging for the spellbook engine.

Events carry key/value context (actor, class, spell uuid). The level and
renderer come from ``Settings.log_level`` and ``Settings.log_json``;
``SpellbookLoop.start`` configures logging on first use, so an embedding
host that configured structlog itself keeps its own setup.

Example:
    >>> from spellbook.core.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Spell prepared", class_id="wizard", uuid="Compendium.x.Item.abc")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import Processor

from spellbook.core.config import Settings, get_settings
from spellbook.core.constants import MODULE_ID


if TYPE_CHECKING:
    from structlog.types import EventDict, WrappedLogger


def add_module_id(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("module", MODULE_ID)
    return event_dict


def configure_logging(settings: Settings | None = None, *, force: bool = False) -> bool:
    """Configure structlog from the engine settings.

    Args:
        settings: Settings to read; the cached settings by default.
        force: Reconfigure even if structlog is already configured.

    Returns:
        True if this call configured logging.
    """
    if structlog.is_configured() and not force:
        return False
    settings = settings or get_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_module_id,
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.log_json:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=settings.debug))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, settings.log_level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=not settings.debug,
    )
    return True


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables to every later log entry.

    The commit pipeline binds ``actor_id`` for the duration of a save.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
]
