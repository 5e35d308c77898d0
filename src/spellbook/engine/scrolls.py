"""Scroll scanner.

Finds spell scrolls in an actor's inventory whose spell a wizard-enabled
class could copy, and learns spells from them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from spellbook.core.logging import get_logger
from spellbook.engine.rules import RuleSetRegistry
from spellbook.engine.wizard import WizardSpellbook
from spellbook.host.environment import ITEM_KIND, Environment
from spellbook.models import (
    Actor,
    InventoryItem,
    NotificationLevel,
    SpellDoc,
    WizardSpellSource,
)


logger = get_logger(__name__)


@dataclass(frozen=True)
class ScrollSpell:
    """A learnable spell found on a scroll.

    Attributes:
        scroll_item_id: Inventory item id of the scroll.
        scroll_name: Name of the scroll item.
        spell_uuid: Source UUID of the spell.
        name: Spell name.
        level: Spell level.
        spell: The resolved spell.
    """

    scroll_item_id: str
    scroll_name: str
    spell_uuid: str
    name: str
    level: int
    spell: SpellDoc


@dataclass
class ScrollLearning:
    """What learning from a scroll changed, kept so it can be undone.

    Attributes:
        class_id: Class whose spellbook gained the spell.
        spell_uuid: Learned spell.
        scroll: The consumed scroll payload, None if it was kept.
        previous_currency: Coins before the copy cost was paid.
    """

    class_id: str
    spell_uuid: str
    scroll: dict[str, Any] | None = None
    previous_currency: dict[str, float] = field(default_factory=dict)


def max_scroll_level(actor: Actor, wizard_classes: list[str]) -> int:
    """Highest spell level the actor's wizard-enabled classes can cast."""
    levels = [actor.classes[cid].max_spell_level for cid in wizard_classes if cid in actor.classes]
    return max(levels, default=0)


class ScrollScanner:
    """Discovers scroll spells and learns them into a spellbook."""

    def __init__(self, env: Environment, rules: RuleSetRegistry) -> None:
        self._env = env
        self._rules = rules

    async def scan(self, actor: Actor) -> list[ScrollSpell]:
        """List learnable scroll spells, in inventory order.

        Scrolls whose spell cannot be resolved are skipped; spells above the
        actor's wizard casting level and cantrips are filtered out.
        """
        wizard_classes = self._rules.wizard_classes(actor)
        if not wizard_classes:
            return []
        max_level = max_scroll_level(actor, wizard_classes)

        found: list[ScrollSpell] = []
        for item in actor.inventory:
            if not item.is_scroll:
                continue
            scroll_spell = await self._extract(item)
            if scroll_spell is None:
                continue
            if scroll_spell.level == 0 or scroll_spell.level > max_level:
                continue
            found.append(scroll_spell)

        logger.debug("Scanned scrolls", actor_id=actor.id, found=len(found), max_level=max_level)
        return found

    async def _extract(self, item: InventoryItem) -> ScrollSpell | None:
        for activity in item.activities:
            if activity.type != "cast" or not activity.spell_uuid:
                continue
            document = await self._env.resolve_uuid(activity.spell_uuid)
            if not isinstance(document, SpellDoc):
                logger.warning("Scroll spell could not be resolved", item_id=item.id, uuid=activity.spell_uuid)
                continue
            return ScrollSpell(
                scroll_item_id=item.id,
                scroll_name=item.name,
                spell_uuid=document.uuid,
                name=document.name,
                level=document.level,
                spell=document,
            )
        return None

    async def learn_from_scroll(
        self,
        wizard: WizardSpellbook,
        scroll_item_id: str,
        spell_uuid: str,
    ) -> ScrollLearning | None:
        """Copy a scroll's spell into a spellbook and consume the scroll.

        Re-reads the actor first, so a scroll that is already gone is a
        no-op. A spell that is already known leaves the scroll in place.

        Returns:
            The change record, or None when nothing was learned.
        """
        await wizard.refresh()
        actor = wizard.actor
        item = actor.item(scroll_item_id)
        if item is None or not item.is_scroll:
            logger.info("Scroll no longer in inventory", actor_id=actor.id, item_id=scroll_item_id)
            return None
        if not any(a.type == "cast" and a.spell_uuid == spell_uuid for a in item.activities):
            logger.warning("Scroll does not carry that spell", item_id=scroll_item_id, uuid=spell_uuid)
            return None
        if wizard.is_known(spell_uuid):
            self._env.notify(NotificationLevel.INFO, f"{item.name} holds a spell you already know.")
            return None

        previous_currency = dict(actor.currency)
        learned = await wizard.copy_spell(spell_uuid, source=WizardSpellSource.SCROLL)
        if not learned:
            return None

        record = ScrollLearning(
            class_id=wizard.class_id,
            spell_uuid=spell_uuid,
            previous_currency=previous_currency,
        )
        if self._env.world_settings().consume_scrolls_when_learning:
            if item.quantity > 1:
                await self._env.update_embedded(
                    actor.id, ITEM_KIND, [{"id": item.id, "quantity": item.quantity - 1}]
                )
                record.scroll = {"id": item.id, "quantity": item.quantity}
            else:
                await self._env.delete_embedded(actor.id, ITEM_KIND, [item.id])
                record.scroll = item.model_dump(mode="json", exclude={"id"})
            self._env.notify(NotificationLevel.INFO, f"{item.name} was consumed.")
        await wizard.refresh()
        logger.info("Spell learned from scroll", class_id=wizard.class_id, uuid=spell_uuid, item_id=item.id)
        return record

    async def undo_learning(self, wizard: WizardSpellbook, record: ScrollLearning) -> None:
        """Revert a scroll learning: forget the spell, refund gold, restore the scroll."""
        await wizard.forget_spell(record.spell_uuid)
        actor_id = wizard.actor.id
        if record.previous_currency != wizard.actor.currency:
            await self._env.update_actor(
                actor_id,
                {f"currency.{d}": amount for d, amount in record.previous_currency.items()},
            )
        if record.scroll is not None:
            if "quantity" in record.scroll and "id" in record.scroll:
                await self._env.update_embedded(actor_id, ITEM_KIND, [record.scroll])
            else:
                await self._env.create_embedded(actor_id, ITEM_KIND, [record.scroll])
        await wizard.refresh()
        logger.info("Scroll learning undone", class_id=record.class_id, uuid=record.spell_uuid)


__all__ = ["ScrollLearning", "ScrollScanner", "ScrollSpell", "max_scroll_level"]
