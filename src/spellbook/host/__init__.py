"""Host collaborator interface and the in-memory implementation."""

from spellbook.host.environment import ITEM_KIND, SPELL_KIND, Environment, HostDocument
from spellbook.host.memory import InMemoryEnvironment

__all__ = [
    "Environment",
    "HostDocument",
    "InMemoryEnvironment",
    "ITEM_KIND",
    "SPELL_KIND",
]
