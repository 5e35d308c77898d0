"""Wizard spellbook store.

Each wizard-enabled class keeps its own ordered list of known spell UUIDs
(``wizardKnownSpells.<classId>``) and a ledger of how each entry was
learned (``wizardCopiedSpells.<classId>.<uuid>``). Knowing a spell is a
prerequisite for preparing it in that class, but a known spell need not
be owned by the actor.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from spellbook.core.config import get_settings
from spellbook.core.constants import (
    FLAG_WIZARD_COPIED_SPELLS,
    FLAG_WIZARD_KNOWN_SPELLS,
    MODULE_ID,
)
from spellbook.core.exceptions import ResolutionError
from spellbook.core.logging import get_logger
from spellbook.engine.rules import RuleSetRegistry
from spellbook.host.environment import Environment
from spellbook.models import (
    Actor,
    NotificationLevel,
    SpellDoc,
    WizardSpellSource,
    WizardStats,
    plan_currency_deduction,
)


logger = get_logger(__name__)


class WizardSpellbook:
    """Known spells, free-slot ledger and copy costs of one class.

    The instance works on an actor snapshot and re-reads the actor after
    each write; call :meth:`refresh` if the actor changed elsewhere.

    Attributes:
        class_id: The wizard-enabled class.
    """

    def __init__(self, env: Environment, rules: RuleSetRegistry, actor: Actor, class_id: str) -> None:
        self._env = env
        self._rules = rules
        self._actor = actor
        self.class_id = class_id

    @property
    def actor(self) -> Actor:
        return self._actor

    async def refresh(self) -> None:
        """Re-read the actor from the host."""
        self._actor = await self._env.get_actor(self._actor.id)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_known_spells(self) -> list[str]:
        """Known spell UUIDs in learning order."""
        known = self._actor.get_flag(FLAG_WIZARD_KNOWN_SPELLS) or {}
        return list(known.get(self.class_id, []))

    def is_known(self, uuid: str) -> bool:
        return uuid in self.get_known_spells()

    def ledger(self) -> dict[str, dict[str, Any]]:
        """Per-spell learning metadata ``{cost, time, wasFree, at, source, level}``."""
        ledger = self._actor.get_flag(FLAG_WIZARD_COPIED_SPELLS) or {}
        return dict(ledger.get(self.class_id, {}))

    def learning_source(self, uuid: str) -> WizardSpellSource | None:
        """How a known spell entered the spellbook, or None if it is not known."""
        if not self.is_known(uuid):
            return None
        entry = self.ledger().get(uuid)
        if entry is None:
            return WizardSpellSource.INITIAL
        return WizardSpellSource(entry.get("source", WizardSpellSource.COPIED))

    @property
    def class_level(self) -> int:
        class_state = self._actor.classes.get(self.class_id)
        return class_state.level if class_state else 0

    def max_free_spells(self) -> int:
        """Free entries granted by the class level (starting grant plus per-level grants)."""
        if self.class_level <= 0:
            return 0
        wizard = get_settings().wizard
        return wizard.starting_free_spells + wizard.free_spells_per_level * (self.class_level - 1)

    def get_free_slots(self) -> int:
        """Free entries left; only free copies of leveled spells consume them."""
        used = sum(
            1
            for entry in self.ledger().values()
            if entry.get("wasFree") and entry.get("level", 1) > 0
        )
        return max(0, self.max_free_spells() - used)

    def copy_cost(self, spell: SpellDoc) -> int:
        """Gold cost to copy a spell (cantrips are never copied)."""
        if spell.level == 0:
            return 0
        rules = self._rules.get_class_rules(self._actor, self.class_id)
        return spell.level * rules.spell_learning_cost_multiplier

    def copy_time(self, spell: SpellDoc) -> int:
        """Hours to copy a spell."""
        if spell.level == 0:
            return 0
        rules = self._rules.get_class_rules(self._actor, self.class_id)
        return spell.level * rules.spell_learning_time_multiplier

    def stats(self) -> WizardStats:
        free_remaining = self.get_free_slots()
        return WizardStats(
            total_known=len(self.get_known_spells()),
            free_remaining=free_remaining,
            max_spells_allowed=self.max_free_spells(),
            is_at_max=free_remaining == 0,
        )

    # =========================================================================
    # Writes
    # =========================================================================

    async def copy_spell(
        self,
        uuid: str,
        *,
        pay_cost: bool = True,
        pay_time: bool = True,
        is_free: bool | None = None,
        source: WizardSpellSource = WizardSpellSource.COPIED,
    ) -> bool:
        """Add a spell to the spellbook.

        Uses a free slot when ``is_free`` is None and one is available.
        Paid copies deduct gold when ``pay_cost`` is set and the world
        setting ``deductSpellLearningCost`` is on.

        Args:
            uuid: Source spell UUID.
            pay_cost: Charge the copy cost for paid copies.
            pay_time: Record the copy time.
            is_free: Force a free or paid copy.
            source: How the spell was obtained.

        Returns:
            True if the spell is now known (including when it already was),
            False if it could not be resolved, is a cantrip, or the actor
            cannot afford it.
        """
        if self.is_known(uuid):
            self._env.notify(NotificationLevel.INFO, "That spell is already in your spellbook.")
            logger.info("Spell already known", class_id=self.class_id, uuid=uuid)
            return True

        try:
            spell = await self._resolve(uuid)
        except ResolutionError as exc:
            logger.warning("Cannot copy unresolved spell", **exc.details)
            return False

        if spell.level == 0:
            logger.warning("Cantrips are not copied into spellbooks", class_id=self.class_id, uuid=uuid)
            return False

        free = is_free if is_free is not None else self.get_free_slots() > 0
        cost = 0 if free else self.copy_cost(spell)
        time = self.copy_time(spell) if pay_time else 0

        if cost > 0 and pay_cost and self._env.world_settings().deduct_spell_learning_cost:
            plan = plan_currency_deduction(self._actor.currency, cost)
            if plan is None:
                self._env.notify(
                    NotificationLevel.WARN,
                    f"Not enough gold to copy {spell.name} ({cost} gp required).",
                )
                logger.info("Insufficient gold to copy spell", class_id=self.class_id, uuid=uuid, cost=cost)
                return False
            await self._env.update_actor(
                self._actor.id,
                {f"currency.{denomination}": amount for denomination, amount in plan.items()},
            )

        if free and source == WizardSpellSource.COPIED:
            source = WizardSpellSource.FREE

        entry = {
            "cost": cost,
            "time": time,
            "wasFree": free,
            "at": datetime.now(timezone.utc).isoformat(),
            "source": str(source),
            "level": spell.level,
        }
        await self._write(known=[*self.get_known_spells(), uuid], ledger={**self.ledger(), uuid: entry})

        logger.info(
            "Spell copied",
            class_id=self.class_id,
            uuid=uuid,
            cost=cost,
            time=time,
            was_free=free,
            source=str(source),
        )
        return True

    async def forget_spell(self, uuid: str) -> bool:
        """Remove a spell and its ledger entry from the spellbook.

        Returns:
            True if the spell was known.
        """
        known = self.get_known_spells()
        if uuid not in known:
            return False
        ledger = self.ledger()
        ledger.pop(uuid, None)
        await self._write(known=[u for u in known if u != uuid], ledger=ledger)
        logger.info("Spell removed from spellbook", class_id=self.class_id, uuid=uuid)
        return True

    async def _resolve(self, uuid: str) -> SpellDoc:
        document = await self._env.resolve_uuid(uuid)
        if not isinstance(document, SpellDoc):
            raise ResolutionError("Spell could not be resolved", uuid=uuid)
        return document

    async def _write(self, *, known: list[str], ledger: dict[str, dict[str, Any]]) -> None:
        """Write both flags; empty per-class entries are removed."""
        await self._write_scoped(FLAG_WIZARD_KNOWN_SPELLS, known)
        await self._write_scoped(FLAG_WIZARD_COPIED_SPELLS, ledger)
        await self.refresh()

    async def _write_scoped(self, flag: str, value: Any) -> None:
        current: dict[str, Any] = dict(self._actor.get_flag(flag) or {})
        if value:
            current[self.class_id] = value
        else:
            current.pop(self.class_id, None)
        if current:
            await self._env.set_flag(self._actor.id, MODULE_ID, flag, current)
        else:
            await self._env.unset_flag(self._actor.id, MODULE_ID, flag)


__all__ = ["WizardSpellbook"]
