"""Pytest configuration and shared fixtures.

This module provides common fixtures and configuration for all tests
in the spellbook engine test suite. The spell catalogue and actor
builders live in ``factories``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

import pytest

from factories import CATALOGUE, PACKS, PAGES, WIZARD_SPELLS, caster, make_actor, owned
from spellbook.core.config import clear_settings_cache
from spellbook.core.logging import clear_context
from spellbook.engine import SpellbookState
from spellbook.host import InMemoryEnvironment
from spellbook.models import Actor


if TYPE_CHECKING:
    from collections.abc import Generator


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Reset the settings cache and disable mutation retry backoff."""
    monkeypatch.setenv("SPELLBOOK_ENGINE_MUTATION_RETRY_MIN_WAIT", "0")
    monkeypatch.setenv("SPELLBOOK_ENGINE_MUTATION_RETRY_MAX_WAIT", "0")
    clear_settings_cache()
    yield
    clear_settings_cache()
    clear_context()


@pytest.fixture
def mock_env_vars(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set up mock environment variables for testing.

    Returns:
        Dictionary of environment variables that were set.
    """
    env_vars = {
        "SPELLBOOK_DEBUG": "true",
        "SPELLBOOK_LOG_LEVEL": "DEBUG",
        "SPELLBOOK_ENGINE_FETCH_CONCURRENCY": "2",
        "SPELLBOOK_WIZARD_STARTING_FREE_SPELLS": "6",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


# =============================================================================
# Host Fixtures
# =============================================================================


@pytest.fixture
def make_env() -> Callable[..., InMemoryEnvironment]:
    """Build an environment holding the test catalogue and spell lists."""

    def _make(*actors: Actor, **kwargs) -> InMemoryEnvironment:
        return InMemoryEnvironment(
            actors=actors,
            documents=[*CATALOGUE.values(), *PAGES],
            packs=PACKS,
            **kwargs,
        )

    return _make


@pytest.fixture
def env(make_env: Callable[..., InMemoryEnvironment]) -> InMemoryEnvironment:
    """Environment with the catalogue and no actors."""
    return make_env()


# =============================================================================
# Actor Fixtures
# =============================================================================


@pytest.fixture
def wizard_actor() -> Actor:
    """Level 5 wizard knowing eight spells with the first five prepared, no window open."""
    return make_actor(
        caster("wizard", 5, preparation_max=7),
        spells=[owned(slug, "wizard") for slug in WIZARD_SPELLS[:5]],
        known={"wizard": WIZARD_SPELLS},
    )


@pytest.fixture
def cleric_actor() -> Actor:
    """Level 3 cleric with no saved selection."""
    return make_actor(caster("cleric", 3, preparation_max=5))


@pytest.fixture
async def wizard_state(make_env: Callable[..., InMemoryEnvironment], wizard_actor: Actor) -> SpellbookState:
    """Loaded state of ``wizard_actor``."""
    state = SpellbookState(make_env(wizard_actor), wizard_actor.id)
    await state.initialize()
    return state
