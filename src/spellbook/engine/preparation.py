"""Preparation validator.

Admits or rejects preparation checks and unchecks per class, and
resolves the preparation status shown for each spell in a class tab.

The predicate never depends on the enforcement behavior; enforcement
only decides how a rejection is surfaced (see ``SpellbookState``).
"""

from __future__ import annotations

from spellbook.core.logging import get_logger
from spellbook.engine.cantrips import CantripManager
from spellbook.engine.rules import RuleSetRegistry
from spellbook.engine.windows import (
    SwapSession,
    SwapWindow,
    TransitionDecision,
    compute_window,
    evaluate_uncheck,
)
from spellbook.host.environment import Environment
from spellbook.models import (
    Actor,
    ClassRules,
    DisabledReason,
    OwnedSpell,
    PreparationMode,
    PreparationStatus,
    RejectionReason,
    SpellDoc,
    SwapKind,
)


logger = get_logger(__name__)

_LOCKED_REASONS = {
    PreparationMode.ALWAYS: DisabledReason.ALWAYS_PREPARED,
    PreparationMode.GRANTED: DisabledReason.GRANTED,
    PreparationMode.INNATE: DisabledReason.INNATE,
    PreparationMode.ATWILL: DisabledReason.ATWILL,
}


def counts_against_maximum(spell: OwnedSpell, class_id: str) -> bool:
    """Prepared (or pact) leveled spells of the class count toward its maximum."""
    return (
        spell.level > 0
        and spell.source_class == class_id
        and spell.mode.is_user_prepared
        and spell.prepared
    )


def owned_for_class(actor: Actor, uuid: str, class_id: str) -> OwnedSpell | None:
    """The owned copy shown in a class tab: the class's own, else an unattributed one."""
    owned = actor.find_owned_spell(uuid, class_id)
    if owned is not None:
        return owned
    candidates = [s for s in actor.spells if s.uuid == uuid and s.source_class is None]
    if not candidates:
        return None
    return max(candidates, key=lambda s: s.display_priority)


class PreparationValidator:
    """Validates preparation transitions for leveled spells and cantrips."""

    def __init__(self, env: Environment, rules: RuleSetRegistry, cantrips: CantripManager) -> None:
        self._env = env
        self._rules = rules
        self._cantrips = cantrips

    @property
    def cantrips(self) -> CantripManager:
        return self._cantrips

    def max_prepared(self, actor: Actor, class_id: str) -> int:
        """Base preparation maximum plus the class bonus, never negative."""
        class_state = actor.classes.get(class_id)
        if class_state is None:
            return 0
        config = class_state.effective_spellcasting
        base = config.preparation_max if config is not None else 0
        rules = self._rules.get_class_rules(actor, class_id)
        return max(0, base + rules.spell_preparation_bonus)

    @staticmethod
    def current_prepared(actor: Actor, class_id: str) -> int:
        return sum(1 for spell in actor.spells if counts_against_maximum(spell, class_id))

    def swap_window(self, actor: Actor, class_id: str) -> SwapWindow:
        rules = self._rules.get_class_rules(actor, class_id)
        return compute_window(actor, class_id, SwapKind.SPELL, rules.spell_swapping)

    def can_change_spell_status(
        self,
        actor: Actor,
        spell: SpellDoc,
        *,
        checking: bool,
        was_prepared: bool,
        class_id: str,
        current_prepared: int,
        session: SwapSession,
        owned: OwnedSpell | None = None,
        is_known: bool | None = None,
    ) -> TransitionDecision:
        """Validate checking or unchecking a leveled spell.

        Args:
            actor: Actor snapshot.
            spell: The spell.
            checking: True to prepare, False to unprepare.
            was_prepared: Whether the spell is saved as prepared.
            class_id: Class tab the change happens in.
            current_prepared: Spells currently checked in the tab.
            session: This session's spell swaps for the class.
            owned: The owned copy, if any.
            is_known: For wizard-enabled classes, whether the spellbook has it.

        Returns:
            The decision; the predicate is the same under every enforcement
            behavior.
        """
        if owned is not None and owned.is_locked:
            return TransitionDecision.reject(RejectionReason.LOCKED_MODE)

        if checking:
            if is_known is False:
                return TransitionDecision.reject(RejectionReason.NOT_IN_SPELLBOOK)
            if spell.uuid in session.unchecked:
                return TransitionDecision.allow()
            if current_prepared >= self.max_prepared(actor, class_id):
                return TransitionDecision.reject(RejectionReason.AT_MAXIMUM)
            return TransitionDecision.allow()

        if not was_prepared:
            return TransitionDecision.allow()
        return evaluate_uncheck(self.swap_window(actor, class_id), session, spell.uuid)

    # =========================================================================
    # View status
    # =========================================================================

    def resolve_status(
        self,
        actor: Actor,
        spell: SpellDoc,
        class_id: str,
        *,
        rules: ClassRules,
        is_known: bool | None = None,
        pending: bool | None = None,
        enforced: bool = False,
    ) -> PreparationStatus:
        """Resolve how a spell appears in a class tab.

        Args:
            actor: Actor snapshot.
            spell: The source spell.
            class_id: Class tab.
            rules: The class's rules.
            is_known: For wizard-enabled classes, whether the spellbook has it.
            pending: Session override of the prepared state.
            enforced: Lock saved cantrips outside their swap window.
        """
        owned = owned_for_class(actor, spell.uuid, class_id)
        other = next(
            (
                s
                for s in actor.spells
                if s.uuid == spell.uuid
                and s.source_class not in (None, class_id)
                and s.prepared
            ),
            None,
        )
        saved = bool(owned is not None and owned.prepared)
        prepared = saved if pending is None else pending

        status = {
            "prepared": prepared,
            "is_owned": owned is not None,
            "preparation_mode": owned.mode if owned else None,
            "source_item": owned.source_item if owned else None,
            "is_granted": bool(owned and owned.is_granted),
            "prepared_by_other_class": other.source_class if other else None,
        }

        if owned is not None and owned.is_locked:
            return PreparationStatus(
                **{**status, "prepared": True},
                disabled=True,
                disabled_reason=_LOCKED_REASONS[owned.mode],
                always_prepared=owned.mode == PreparationMode.ALWAYS,
            )

        if spell.is_cantrip:
            if not rules.cantrips_visible:
                return PreparationStatus(
                    **status, disabled=True, disabled_reason=DisabledReason.CANTRIPS_HIDDEN
                )
            if other is not None and owned is None:
                return PreparationStatus(
                    **status, disabled=True, disabled_reason=DisabledReason.PREPARED_BY_OTHER_CLASS
                )
            locked = saved and not evaluate_uncheck(
                self._cantrips.swap_window(actor, class_id), SwapSession(), spell.uuid
            ).allowed
            if locked and enforced:
                return PreparationStatus(
                    **status,
                    disabled=True,
                    disabled_reason=DisabledReason.CANTRIP_LOCKED,
                    is_cantrip_locked=True,
                )
            return PreparationStatus(**status, is_cantrip_locked=locked)

        if is_known is False and not prepared:
            return PreparationStatus(
                **status, disabled=True, disabled_reason=DisabledReason.NOT_IN_SPELLBOOK
            )
        return PreparationStatus(**status)


__all__ = ["PreparationValidator", "counts_against_maximum", "owned_for_class"]
