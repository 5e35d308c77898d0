"""Tests for logging configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
import structlog
from structlog.testing import CapturingLogger

from spellbook.core.config import Settings
from spellbook.core.logging import configure_logging


if TYPE_CHECKING:
    from collections.abc import Generator


@pytest.fixture(autouse=True)
def unconfigured() -> Generator[None, None, None]:
    structlog.reset_defaults()
    yield
    structlog.reset_defaults()


def _emitted(*levels: str) -> list[str]:
    captured = CapturingLogger()
    bound = structlog.get_config()["wrapper_class"](captured, processors=[], context={})
    for level in levels:
        getattr(bound, level)("event")
    return [call.method_name for call in captured.calls]


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_level_from_settings(self) -> None:
        """Test events below the configured level are dropped."""
        assert configure_logging(Settings(log_level="WARNING"))

        assert _emitted("debug", "info", "warning", "error") == ["warning", "error"]

    def test_json_renderer(self) -> None:
        configure_logging(Settings(log_json=True))

        assert isinstance(structlog.get_config()["processors"][-1], structlog.processors.JSONRenderer)

    def test_console_renderer_by_default(self) -> None:
        configure_logging(Settings())

        assert isinstance(structlog.get_config()["processors"][-1], structlog.dev.ConsoleRenderer)

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the cached settings are used when none are passed."""
        monkeypatch.setenv("SPELLBOOK_LOG_LEVEL", "ERROR")

        configure_logging()

        assert _emitted("warning", "error") == ["error"]

    def test_keeps_existing_configuration(self) -> None:
        """Test a host's own structlog setup is left alone unless forced."""
        configure_logging(Settings(log_level="ERROR"))

        assert not configure_logging(Settings(log_level="DEBUG"))
        assert _emitted("info") == []

        assert configure_logging(Settings(log_level="DEBUG"), force=True)
        assert _emitted("info") == ["info"]
