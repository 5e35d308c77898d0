"""Spellbook Engine - spell preparation and learning for 5E characters.

Resolves which spells each spellcasting class of a (multiclass)
character may prepare, validates preparation changes against the class
rules and swap windows, keeps wizard spellbooks, and saves an editing
session back to the host as owned-spell mutations.

The host (a virtual tabletop, or the in-memory host used by tests) is
reached only through ``spellbook.host.Environment``.

Example:
    >>> from spellbook import InMemoryEnvironment, SpellbookState
    >>>
    >>> env = InMemoryEnvironment(actors=[actor], documents=spells, packs=packs)
    >>> state = SpellbookState(env, actor.id)
    >>> await state.initialize()
    >>> state.toggle("wizard", "Compendium.dnd5e.spells.Item.fireball", True)
    >>> result = await state.commit()

Modules:
    core: Configuration, logging, and base exceptions.
    models: Pydantic V2 models for spells, actors, rules and views.
    host: Host collaborator contract and the in-memory host.
    storage: SQLite persistence for actors and world settings.
    engine: Rules, spell lists, wizard spellbooks, validation and saving.
    filters: Spell filtering and advanced search.
"""

from __future__ import annotations

from spellbook.core.config import Settings, get_settings
from spellbook.core.exceptions import SpellbookError
from spellbook.engine import SpellbookLoop, SpellbookState
from spellbook.filters import FilterEngine, FilterState
from spellbook.host import Environment, InMemoryEnvironment


__version__ = "0.1.0"

__all__ = [
    "__version__",
    "Settings",
    "get_settings",
    "SpellbookError",
    "Environment",
    "InMemoryEnvironment",
    "SpellbookState",
    "SpellbookLoop",
    "FilterEngine",
    "FilterState",
]
