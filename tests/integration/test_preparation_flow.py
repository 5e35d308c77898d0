"""Integration tests for preparing, swapping and saving spells.

Each test drives a ``SpellbookState`` over an in-memory host the way the
sheet would: load, toggle checkboxes, save, and re-open.
"""

from __future__ import annotations

import pytest

from factories import CLERIC_CANTRIPS, WIZARD_SPELLS, caster, make_actor, owned, spell_uuid, uuids
from spellbook.core.constants import FLAG_WIZARD_KNOWN_SPELLS
from spellbook.core.exceptions import TransitionRejected
from spellbook.engine import SpellbookState
from spellbook.models import (
    EnforcementBehavior,
    GMNotificationKind,
    NotificationLevel,
    PreparationMode,
    SwapKind,
)


def _prepared(env, class_id: str, *, cantrips: bool = False) -> set[str]:
    """Names of the saved prepared spells of a class."""
    return {
        spell.name
        for spell in env.actor("actor-1").spells
        if spell.source_class == class_id and spell.prepared and (spell.level == 0) == cantrips
    }


class TestLongRestSwap:
    """A wizard swapping one prepared spell after a long rest."""

    async def test_swap_and_save(self, wizard_state: SpellbookState) -> None:
        """Test the swap is saved and the window is used up."""
        state = wizard_state
        env = state.env
        await state.set_enforcement(EnforcementBehavior.ENFORCED)
        await state.begin_long_rest()

        state.toggle("wizard", spell_uuid("fireball"), True)
        state.toggle("wizard", spell_uuid("magic-missile"), False)
        result = await state.commit()

        assert result.succeeded
        assert ("wizard", SwapKind.SPELL) in result.consumed
        assert _prepared(env, "wizard") == {"Shield", "Sleep", "Misty Step", "Web", "Fireball"}
        assert env.actor("actor-1").get_flag(FLAG_WIZARD_KNOWN_SPELLS)["wizard"] == uuids(*WIZARD_SPELLS)
        assert not state.is_dirty

        with pytest.raises(TransitionRejected) as exc_info:
            state.toggle("wizard", spell_uuid("shield"), False)
        assert exc_info.value.details["reason"] == "windowConsumed"
        assert exc_info.value.message == "Wizard: you already swapped a spell this long rest."

    async def test_second_swap_in_session(self, wizard_state: SpellbookState) -> None:
        """Test only one saved spell may be unchecked per rest."""
        state = wizard_state
        await state.set_enforcement(EnforcementBehavior.ENFORCED)
        await state.begin_long_rest()
        state.toggle("wizard", spell_uuid("magic-missile"), False)

        with pytest.raises(TransitionRejected) as exc_info:
            state.toggle("wizard", spell_uuid("shield"), False)

        assert exc_info.value.details["reason"] == "onlyOneSwap"

    async def test_undo_swap_frees_window(self, wizard_state: SpellbookState) -> None:
        """Test re-checking the unchecked spell lets another swap happen."""
        state = wizard_state
        await state.set_enforcement(EnforcementBehavior.ENFORCED)
        await state.begin_long_rest()
        state.toggle("wizard", spell_uuid("magic-missile"), False)
        state.toggle("wizard", spell_uuid("magic-missile"), True)

        state.toggle("wizard", spell_uuid("shield"), False)

        assert state.pending["wizard"].to_unprepare == {spell_uuid("shield")}

    async def test_no_swap_keeps_window(self, wizard_state: SpellbookState) -> None:
        """Test saving only new preparations leaves the window open."""
        state = wizard_state
        await state.set_enforcement(EnforcementBehavior.ENFORCED)
        await state.begin_long_rest()
        state.toggle("wizard", spell_uuid("fireball"), True)
        await state.commit()

        state.toggle("wizard", spell_uuid("magic-missile"), False)

        assert state.is_dirty


class TestModernCantripSwap:
    """A modern cleric swapping a cantrip after a long rest."""

    @pytest.fixture
    def cleric_env(self, make_env):
        actor = make_actor(
            caster("cleric", 3, preparation_max=5),
            spells=[owned(slug, "cleric") for slug in CLERIC_CANTRIPS[:3]],
        )
        return make_env(actor, settings={"spellcastingRuleSet": "modern"})

    async def test_swap_then_reopen(self, cleric_env) -> None:
        """Test the swap saves and a later session in the same rest is refused."""
        state = SpellbookState(cleric_env, "actor-1")
        await state.initialize()
        await state.set_enforcement(EnforcementBehavior.ENFORCED)
        await state.begin_long_rest()
        assert state.class_tabs["cleric"].cantrip_preparation.maximum == 3

        state.toggle("cleric", spell_uuid("thaumaturgy"), False)
        state.toggle("cleric", spell_uuid("toll-the-dead"), True)
        result = await state.commit()

        assert result.succeeded
        assert _prepared(cleric_env, "cleric", cantrips=True) == {"Sacred Flame", "Guidance", "Toll the Dead"}

        reopened = SpellbookState(cleric_env, "actor-1")
        await reopened.initialize()
        assert reopened.class_tabs["cleric"].cantrip_preparation.current == 3
        with pytest.raises(TransitionRejected) as exc_info:
            reopened.toggle("cleric", spell_uuid("guidance"), False)
        assert exc_info.value.details["reason"] == "windowConsumed"

    async def test_check_at_cantrip_maximum(self, cleric_env) -> None:
        """Test a fourth cantrip is refused before any is unchecked."""
        state = SpellbookState(cleric_env, "actor-1")
        await state.initialize()
        await state.set_enforcement(EnforcementBehavior.ENFORCED)

        with pytest.raises(TransitionRejected) as exc_info:
            state.toggle("cleric", spell_uuid("spare-the-dying"), True)

        assert exc_info.value.details["reason"] == "atMaximum"


class TestPartialFailure:
    """A save where one class cannot be written."""

    @pytest.fixture
    def multiclass_env(self, make_env):
        actor = make_actor(
            caster("wizard", 5, preparation_max=7),
            caster("cleric", 3, preparation_max=5),
            spells=[owned(slug, "wizard") for slug in WIZARD_SPELLS[:5]],
            known={"wizard": WIZARD_SPELLS},
        )
        return make_env(actor)

    async def test_failed_class_keeps_changes(self, multiclass_env) -> None:
        """Test the failing class keeps its pending changes and can be saved again."""
        env = multiclass_env
        state = SpellbookState(env, "actor-1")
        await state.initialize()
        state.toggle("wizard", spell_uuid("fireball"), True)
        state.toggle("cleric", spell_uuid("bless"), True)
        env.fail_next("create", times=3)

        result = await state.commit()

        assert result.committed == ["cleric"]
        assert list(result.failed) == ["wizard"]
        assert _prepared(env, "cleric") == {"Bless"}
        assert "Fireball" not in _prepared(env, "wizard")
        assert state.pending["wizard"].to_prepare == {spell_uuid("fireball")}
        assert "cleric" not in state.pending
        errors = env.messages(NotificationLevel.ERROR)
        assert len(errors) == 1
        assert "(Wizard)" in errors[0]

        retry = await state.commit()

        assert retry.succeeded
        assert "Fireball" in _prepared(env, "wizard")
        assert not state.is_dirty

    async def test_classes_do_not_share_counts(self, multiclass_env) -> None:
        """Test preparing in one class leaves the other class's count alone."""
        state = SpellbookState(multiclass_env, "actor-1")
        await state.initialize()

        state.toggle("cleric", spell_uuid("bless"), True)

        assert state.class_tabs["cleric"].spell_preparation.current == 1
        assert state.class_tabs["wizard"].spell_preparation.current == 5


class TestGMNotification:
    """Rule breaks allowed under ``notifyGM``."""

    @pytest.fixture
    async def full_cleric(self, make_env) -> SpellbookState:
        actor = make_actor(
            caster("cleric", 3, preparation_max=2),
            spells=[owned("bless", "cleric"), owned("cure-wounds", "cleric")],
        )
        state = SpellbookState(make_env(actor), "actor-1")
        await state.initialize()
        return state

    async def test_overmax_reported_once(self, full_cleric: SpellbookState) -> None:
        """Test two over-maximum checks warn twice and send one notice."""
        state = full_cleric
        env = state.env

        first = state.toggle("cleric", spell_uuid("guiding-bolt"), True)
        second = state.toggle("cleric", spell_uuid("spiritual-weapon"), True)

        assert first.violation is not None and second.violation is not None
        assert env.messages(NotificationLevel.WARN) == [
            "Cleric: you have reached the maximum number of prepared spells. The GM will be notified."
        ] * 2

        result = await state.commit()

        assert result.succeeded
        assert len(env.gm_notifications) == 1
        notice = env.gm_notifications[0]
        assert notice.kind == GMNotificationKind.OVERMAX
        assert notice.class_id == "cleric"
        assert notice.details["current"] == 4
        assert notice.details["maximum"] == 2
        assert state.violations == []

    async def test_illegal_swap_reported(self, full_cleric: SpellbookState) -> None:
        """Test unchecking outside a window sends a swap notice."""
        state = full_cleric

        state.toggle("cleric", spell_uuid("bless"), False)
        await state.commit()

        assert [n.kind for n in state.env.gm_notifications] == [GMNotificationKind.ILLEGAL_SPELL_SWAP]
        assert _prepared(state.env, "cleric") == {"Cure Wounds"}

    async def test_reverted_change_not_reported(self, full_cleric: SpellbookState) -> None:
        state = full_cleric

        state.toggle("cleric", spell_uuid("guiding-bolt"), True)
        state.toggle("cleric", spell_uuid("guiding-bolt"), False)
        await state.commit()

        assert state.env.gm_notifications == []


class TestSavedInvariants:
    """Properties that hold after every save."""

    async def test_locked_modes_stay_prepared(self, make_env) -> None:
        """Test always-prepared and innate spells survive a save prepared."""
        actor = make_actor(
            caster("cleric", 3, preparation_max=5),
            spells=[
                owned("bless", "cleric", mode="always"),
                owned("cure-wounds", "cleric", mode="innate"),
                owned("guiding-bolt", "cleric"),
            ],
        )
        env = make_env(actor)
        state = SpellbookState(env, "actor-1")
        await state.initialize()
        await state.set_enforcement(EnforcementBehavior.UNENFORCED)

        state.toggle("cleric", spell_uuid("guiding-bolt"), False)
        with pytest.raises(TransitionRejected):
            state.toggle("cleric", spell_uuid("bless"), False)
        await state.commit()

        locked = [s for s in env.actor("actor-1").spells if s.mode in (PreparationMode.ALWAYS, PreparationMode.INNATE)]
        assert len(locked) == 2
        assert all(spell.prepared for spell in locked)

    async def test_enforced_maximum_holds(self, make_env) -> None:
        """Test enforced saves never exceed the preparation maximum."""
        actor = make_actor(caster("cleric", 3, preparation_max=2))
        env = make_env(actor)
        state = SpellbookState(env, "actor-1")
        await state.initialize()
        await state.set_enforcement(EnforcementBehavior.ENFORCED)

        for slug in ("bless", "cure-wounds", "guiding-bolt", "spiritual-weapon"):
            try:
                state.toggle("cleric", spell_uuid(slug), True)
            except TransitionRejected:
                continue
        await state.commit()

        assert len(_prepared(env, "cleric")) == 2

    async def test_wizard_prepares_only_known(self, make_env) -> None:
        """Test every saved wizard preparation is in the spellbook."""
        actor = make_actor(caster("wizard", 5, preparation_max=7), known={"wizard": ["shield", "web"]})
        env = make_env(actor)
        state = SpellbookState(env, "actor-1")
        await state.initialize()
        await state.set_enforcement(EnforcementBehavior.UNENFORCED)

        state.toggle("wizard", spell_uuid("shield"), True)
        state.toggle("wizard", spell_uuid("web"), True)
        assert spell_uuid("fireball") not in {v.uuid for v in state.class_tabs["wizard"].all_spells()}
        await state.commit()

        known = set(env.actor("actor-1").get_flag(FLAG_WIZARD_KNOWN_SPELLS)["wizard"])
        saved = {s.uuid for s in env.actor("actor-1").spells if s.source_class == "wizard" and s.level > 0}
        assert saved == {spell_uuid("shield"), spell_uuid("web")}
        assert saved <= known
