"""Cantrip manager.

Counts a class's cantrips, derives its cantrip maximum from the class's
scale values, and validates cantrip checks and unchecks against the
class's cantrip swap window.
"""

from __future__ import annotations

from spellbook.core.logging import get_logger
from spellbook.engine.rules import RuleSetRegistry
from spellbook.engine.windows import (
    SwapSession,
    SwapWindow,
    TransitionDecision,
    begin_long_rest,
    compute_window,
    evaluate_uncheck,
)
from spellbook.host.environment import Environment
from spellbook.models import Actor, OwnedSpell, RejectionReason, SpellDoc, SwapKind


logger = get_logger(__name__)


class CantripManager:
    """Cantrip maxima, counts and swap validation."""

    def __init__(self, env: Environment, rules: RuleSetRegistry) -> None:
        self._env = env
        self._rules = rules

    def max_cantrips(self, actor: Actor, class_id: str) -> int:
        """First defined cantrip scale value plus the class bonus, never negative.

        Classes that hide cantrips have a maximum of zero.
        """
        class_state = actor.classes.get(class_id)
        rules = self._rules.get_class_rules(actor, class_id)
        if class_state is None or not rules.cantrips_visible:
            return 0
        base = 0
        for key in self._env.world_settings().cantrip_scale_keys:
            value = class_state.scale_value(key)
            if value is not None:
                base = value
                break
        return max(0, base + rules.cantrip_preparation_bonus)

    @staticmethod
    def current_count(actor: Actor, class_id: str) -> int:
        """Saved prepared cantrips attributed to the class."""
        return sum(1 for spell in actor.spells if counts_as_cantrip(spell, class_id))

    def swap_window(self, actor: Actor, class_id: str) -> SwapWindow:
        rules = self._rules.get_class_rules(actor, class_id)
        return compute_window(
            actor,
            class_id,
            SwapKind.CANTRIP,
            rules.cantrip_swapping,
            cantrip_max=self.max_cantrips(actor, class_id),
        )

    def can_change_cantrip_status(
        self,
        actor: Actor,
        spell: SpellDoc,
        *,
        checking: bool,
        class_id: str,
        ui_current_count: int,
        session: SwapSession,
        was_prepared: bool,
        owned: OwnedSpell | None = None,
    ) -> TransitionDecision:
        """Validate checking or unchecking a cantrip.

        Args:
            actor: Actor snapshot.
            spell: The cantrip.
            checking: True to prepare, False to unprepare.
            class_id: Class tab the change happens in.
            ui_current_count: Cantrips currently checked in the tab.
            session: This session's cantrip swaps for the class.
            was_prepared: Whether the cantrip is saved as prepared.
            owned: The owned copy, if any.
        """
        rules = self._rules.get_class_rules(actor, class_id)
        if not rules.cantrips_visible:
            return TransitionDecision.reject(RejectionReason.CANTRIPS_HIDDEN)
        if owned is not None and owned.is_locked:
            return TransitionDecision.reject(RejectionReason.LOCKED_MODE)

        if checking:
            if spell.uuid in session.unchecked:
                return TransitionDecision.allow()
            if ui_current_count >= self.max_cantrips(actor, class_id):
                return TransitionDecision.reject(RejectionReason.AT_MAXIMUM)
            return TransitionDecision.allow()

        if not was_prepared:
            return TransitionDecision.allow()
        return evaluate_uncheck(self.swap_window(actor, class_id), session, spell.uuid)

    async def begin_long_rest(self, actor_id: str) -> str:
        """Open the long-rest swap window; see :func:`begin_long_rest`."""
        return await begin_long_rest(self._env, actor_id)


def counts_as_cantrip(spell: OwnedSpell, class_id: str) -> bool:
    return (
        spell.level == 0
        and spell.source_class == class_id
        and spell.mode.is_user_prepared
        and spell.prepared
    )


__all__ = ["CantripManager", "counts_as_cantrip"]
