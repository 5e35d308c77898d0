"""Ritual manager.

``ritualCasting`` decides which unprepared spells remain castable as
rituals:

- ``always``: every known ritual spell. Wizard-enabled classes get an
  owned copy in ``ritual`` mode for each known ritual that is not
  prepared, flagged ``isModuleRitual`` so it can be cleaned up later.
- ``prepared``: only prepared ritual spells; nothing is injected.
- ``none``: no ritual casting.
"""

from __future__ import annotations

import asyncio
from typing import Any, Iterable

from spellbook.core.constants import FLAG_MODULE_RITUAL, MODULE_ID
from spellbook.core.logging import get_logger
from spellbook.host.environment import Environment
from spellbook.models import (
    Actor,
    ClassRules,
    OwnedSpell,
    PreparationMode,
    RitualMode,
    SpellDoc,
)


logger = get_logger(__name__)


def is_module_ritual(spell: OwnedSpell) -> bool:
    return spell.mode == PreparationMode.RITUAL and bool(
        spell.flags.get(MODULE_ID, {}).get(FLAG_MODULE_RITUAL)
    )


def can_cast_as_ritual(spell: SpellDoc, rules: ClassRules, *, prepared: bool, available: bool) -> bool:
    """Check if a spell is castable as a ritual by a class.

    Args:
        spell: The spell.
        rules: The class's rules.
        prepared: Whether the class has it prepared.
        available: Whether it is known (or on the list) for the class.
    """
    if not spell.is_ritual or spell.level == 0:
        return False
    if rules.ritual_casting == RitualMode.ALWAYS:
        return available or prepared
    if rules.ritual_casting == RitualMode.PREPARED:
        return prepared
    return False


def ritual_document(spell: SpellDoc, class_id: str) -> dict[str, Any]:
    """Owned-spell payload for an injected ritual copy."""
    return {
        "name": spell.name,
        "level": spell.level,
        "source_id": spell.uuid,
        "source_class": class_id,
        "mode": str(PreparationMode.RITUAL),
        "prepared": False,
        "properties": sorted(spell.properties),
        "flags": {MODULE_ID: {FLAG_MODULE_RITUAL: True}},
    }


class RitualManager:
    """Resolves ritual candidates and the ritual copies a save must keep."""

    def __init__(self, env: Environment) -> None:
        self._env = env

    async def ritual_spells(self, uuids: Iterable[str]) -> list[SpellDoc]:
        """Resolve the leveled ritual spells among a set of UUIDs."""
        ordered = list(dict.fromkeys(uuids))
        documents = await asyncio.gather(*(self._env.resolve_uuid(uuid) for uuid in ordered))
        rituals: list[SpellDoc] = []
        for uuid, document in zip(ordered, documents):
            if not isinstance(document, SpellDoc):
                logger.warning("Ritual candidate could not be resolved", uuid=uuid)
                continue
            if document.is_ritual and document.level > 0:
                rituals.append(document)
        return rituals

    async def missing_rituals(
        self,
        actor: Actor,
        class_id: str,
        rules: ClassRules,
        known: list[str],
        prepared: set[str],
    ) -> list[SpellDoc]:
        """Known rituals that need an injected ritual copy.

        Args:
            actor: Actor snapshot.
            class_id: A wizard-enabled class.
            rules: The class's rules.
            known: The class's spellbook.
            prepared: UUIDs the save will leave prepared for the class.
        """
        if rules.ritual_casting != RitualMode.ALWAYS:
            return []
        owned = {s.uuid for s in actor.spells if s.source_class == class_id}
        return [
            spell
            for spell in await self.ritual_spells(known)
            if spell.uuid not in prepared and spell.uuid not in owned
        ]

    @staticmethod
    def stale_rituals(
        actor: Actor,
        class_id: str,
        rules: ClassRules,
        known: list[str] | None,
    ) -> list[OwnedSpell]:
        """Injected ritual copies that no longer belong.

        They go when the class stops casting every known ritual, or when
        the spell left the spellbook.
        """
        stale: list[OwnedSpell] = []
        for spell in actor.spells:
            if spell.source_class != class_id or not is_module_ritual(spell):
                continue
            if rules.ritual_casting != RitualMode.ALWAYS:
                stale.append(spell)
            elif known is not None and spell.uuid not in known:
                stale.append(spell)
        return stale


__all__ = [
    "RitualManager",
    "can_cast_as_ritual",
    "is_module_ritual",
    "ritual_document",
]
