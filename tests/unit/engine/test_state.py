"""Tests for the per-actor spellbook session."""

from __future__ import annotations

import asyncio

import pytest

from factories import WIZARD_SPELLS, caster, make_actor, owned, scroll, spell_uuid, uuids
from spellbook.core.constants import FLAG_CLASS_RULES, FLAG_COLLAPSED_LEVELS
from spellbook.core.exceptions import SpellbookStateError, SpellbookValidationError, TransitionRejected
from spellbook.engine import PendingPreparation, SpellbookState
from spellbook.engine.state import rejection_message
from spellbook.engine.windows import SwapWindow
from spellbook.filters import FilterState
from spellbook.models import (
    EnforcementBehavior,
    NotificationLevel,
    RejectionReason,
    RitualMode,
    SwapKind,
    SwapMode,
    WindowType,
)


def _view(state: SpellbookState, slug: str, class_id: str = "wizard"):
    return next(v for v in state.class_tabs[class_id].all_spells() if v.uuid == spell_uuid(slug))


class TestPendingPreparation:
    """Tests for pending checkbox changes."""

    def test_set_and_override(self) -> None:
        pending = PendingPreparation()

        pending.set("a", True, False)
        pending.set("b", False, True)

        assert pending.override("a") is True
        assert pending.override("b") is False
        assert pending.override("c") is None
        assert pending.dirty

    def test_reverting_clears(self) -> None:
        """Test returning to the saved state leaves nothing pending."""
        pending = PendingPreparation()
        pending.set("a", True, False)
        pending.set("a", False, False)

        assert not pending.dirty


class TestRejectionMessage:
    """Tests for user-facing rejection texts."""

    def test_at_maximum(self) -> None:
        message = rejection_message(RejectionReason.AT_MAXIMUM, "Wizard", is_cantrip=True)
        assert message == "Wizard: you have reached the maximum number of prepared cantrips."

    def test_window_label(self) -> None:
        """Test window rejections name the lifecycle event."""
        window = SwapWindow(kind=SwapKind.SPELL, mode=SwapMode.LONG_REST, window_type=WindowType.LONG_REST)

        assert rejection_message(RejectionReason.WINDOW_CLOSED, "Cleric", window) == (
            "Cleric: a spell can only be swapped after a long rest."
        )
        assert rejection_message(RejectionReason.ONLY_ONE_SWAP, "Cleric", window) == (
            "Cleric: only one spell can be swapped per long rest."
        )


class TestInitialize:
    """Tests for loading and projecting tabs."""

    async def test_class_tab(self, wizard_state: SpellbookState) -> None:
        """Test the class tab shows known spells with counts."""
        tab = wizard_state.class_tabs["wizard"]

        assert tab.class_name == "Wizard"
        assert tab.spell_preparation.current == 5
        assert tab.spell_preparation.maximum == 7
        assert tab.cantrip_preparation.maximum == 4
        names = {view.name for view in tab.all_spells()}
        assert {"Fireball", "Fire Bolt", "Magic Missile"} <= names
        assert "Identify" not in names
        assert tab.wizard_stats.total_known == 8

    async def test_wizardbook_tab(self, wizard_state: SpellbookState) -> None:
        """Test the wizardbook lists castable list spells with learning info."""
        views = {view.name: view for group in wizard_state.wizard_tabs["wizard"].spell_levels for view in group.spells}

        assert "Teleport" not in views
        assert "Fire Bolt" not in views
        assert views["Identify"].can_add_to_spellbook
        assert not views["Shield"].can_add_to_spellbook
        assert views["Identify"].copy_cost == 0

    async def test_uninitialized_actor(self, env) -> None:
        state = SpellbookState(env, "actor-1")
        with pytest.raises(SpellbookStateError):
            _ = state.actor

    async def test_concurrent_initialize_dropped(self, make_env, wizard_actor) -> None:
        """Test a load requested while one runs is dropped."""
        state = SpellbookState(make_env(wizard_actor), wizard_actor.id)

        results = await asyncio.gather(state.initialize(), state.initialize())

        assert results == [True, False]
        assert not state.is_loading

    async def test_render_requests(self, make_env, wizard_actor) -> None:
        """Test loads and toggles request renders."""
        requests: list[list[str] | None] = []
        state = SpellbookState(make_env(wizard_actor), wizard_actor.id, render_sink=requests.append)

        await state.initialize()
        state.toggle("wizard", spell_uuid("fireball"), True)

        assert requests == [None, ["class:wizard"]]

    async def test_stored_rules_initialized(self, make_env) -> None:
        """Test new classes get their rules written on load."""
        env = make_env(make_actor(caster("cleric", 3)))

        await SpellbookState(env, "actor-1").initialize()

        assert "cleric" in env.actor("actor-1").get_flag(FLAG_CLASS_RULES)


class TestToggle:
    """Tests for checkbox changes."""

    async def test_check(self, wizard_state: SpellbookState) -> None:
        """Test checking updates the pending state and the count."""
        result = wizard_state.toggle("wizard", spell_uuid("fireball"), True)

        assert result.changed and result.violation is None
        assert wizard_state.is_dirty
        assert _view(wizard_state, "fireball").is_prepared
        assert not _view(wizard_state, "fireball").was_prepared
        assert wizard_state.class_tabs["wizard"].spell_preparation.current == 6

    async def test_same_state_unchanged(self, wizard_state: SpellbookState) -> None:
        result = wizard_state.toggle("wizard", spell_uuid("shield"), True)
        assert not result.changed

    async def test_unknown_spell(self, wizard_state: SpellbookState) -> None:
        with pytest.raises(SpellbookValidationError):
            wizard_state.toggle("wizard", spell_uuid("teleport"), True)

    async def test_notify_gm_allows_and_warns(self, wizard_state: SpellbookState) -> None:
        """Test over-maximum checks go through with a warning under notifyGM."""
        wizard_state.toggle("wizard", spell_uuid("fireball"), True)
        wizard_state.toggle("wizard", spell_uuid("counterspell"), True)

        result = wizard_state.toggle("wizard", spell_uuid("fly"), True)

        assert result.violation is not None
        assert result.violation.reason == RejectionReason.AT_MAXIMUM
        assert wizard_state.violations == [result.violation]
        assert wizard_state.env.messages(NotificationLevel.WARN) == [
            "Wizard: you have reached the maximum number of prepared spells. The GM will be notified."
        ]
        assert wizard_state.class_tabs["wizard"].spell_preparation.current == 8

    async def test_enforced_rejects(self, wizard_state: SpellbookState) -> None:
        """Test enforced rules raise and leave the state untouched."""
        await wizard_state.set_enforcement(EnforcementBehavior.ENFORCED)

        with pytest.raises(TransitionRejected) as exc_info:
            wizard_state.toggle("wizard", spell_uuid("magic-missile"), False)

        assert str(exc_info.value.details["reason"]) == "windowClosed"
        assert "after a long rest" in exc_info.value.message
        assert not wizard_state.is_dirty

    async def test_unenforced_silent(self, wizard_state: SpellbookState) -> None:
        """Test unenforced rules let changes through without notices."""
        await wizard_state.set_enforcement(EnforcementBehavior.UNENFORCED)

        result = wizard_state.toggle("wizard", spell_uuid("magic-missile"), False)

        assert result.violation is None
        assert wizard_state.env.messages() == []
        assert not _view(wizard_state, "magic-missile").is_prepared

    async def test_hard_rejection_ignores_enforcement(self, make_env) -> None:
        """Test spells missing from the spellbook are rejected under notifyGM."""
        actor = make_actor(
            caster("wizard", 5, preparation_max=7),
            spells=[owned("web", "wizard", prepared=False)],
            known={"wizard": ["shield"]},
        )
        state = SpellbookState(make_env(actor), actor.id)
        await state.initialize()

        with pytest.raises(TransitionRejected):
            state.toggle("wizard", spell_uuid("web"), True)

    async def test_reset_session(self, wizard_state: SpellbookState) -> None:
        wizard_state.toggle("wizard", spell_uuid("fireball"), True)

        wizard_state.reset_session()

        assert not wizard_state.is_dirty
        assert not _view(wizard_state, "fireball").is_prepared


class TestCommit:
    """Tests for saving the session."""

    async def test_commit_clears_pending(self, wizard_state: SpellbookState) -> None:
        """Test a successful save reloads the saved state."""
        wizard_state.toggle("wizard", spell_uuid("fireball"), True)

        result = await wizard_state.commit()

        assert result.succeeded
        assert not wizard_state.is_dirty
        assert _view(wizard_state, "fireball").was_prepared
        assert wizard_state.sessions == {}

    async def test_failed_commit_keeps_pending(self, wizard_state: SpellbookState) -> None:
        """Test a failed class keeps its changes for the retry."""
        wizard_state.toggle("wizard", spell_uuid("fireball"), True)
        wizard_state.env.fail_next("create", times=3)

        result = await wizard_state.commit()

        assert "wizard" in result.failed
        assert wizard_state.pending["wizard"].to_prepare == {spell_uuid("fireball")}
        assert _view(wizard_state, "fireball").is_prepared

        retry = await wizard_state.commit()
        assert retry.succeeded
        assert _view(wizard_state, "fireball").was_prepared

    async def test_commit_before_initialize(self, env) -> None:
        with pytest.raises(SpellbookStateError):
            await SpellbookState(env, "actor-1").commit()


class TestLearning:
    """Tests for spellbook learning through the session."""

    async def test_learn_spell(self, wizard_state: SpellbookState) -> None:
        """Test a learned spell shows up in the class tab."""
        assert await wizard_state.learn_spell("wizard", spell_uuid("identify"), is_free=False)

        assert _view(wizard_state, "identify").in_wizard_spellbook
        assert wizard_state.actor.currency["gp"] == 450

    async def test_no_spellbook(self, make_env, cleric_actor) -> None:
        state = SpellbookState(make_env(cleric_actor), cleric_actor.id)
        await state.initialize()

        with pytest.raises(SpellbookStateError):
            state.wizard("cleric")

    async def test_scroll_round_trip(self, make_env) -> None:
        """Test learning from a scroll and undoing it."""
        actor = make_actor(caster("wizard", 5), inventory=[scroll("s1", "identify")], known={"wizard": ["shield"]})
        state = SpellbookState(make_env(actor), actor.id)
        await state.initialize()

        found = await state.scan_scrolls()
        record = await state.learn_from_scroll("wizard", found[0].scroll_item_id, found[0].spell_uuid)

        assert state.wizard("wizard").is_known(spell_uuid("identify"))
        assert state.actor.inventory == []

        await state.undo_scroll_learning(record)
        assert not state.wizard("wizard").is_known(spell_uuid("identify"))
        assert len(state.actor.inventory) == 1


class TestLoadouts:
    """Tests for loadouts through the session."""

    async def test_save_captures_prepared(self, wizard_state: SpellbookState) -> None:
        loadout = await wizard_state.save_loadout("wizard", "Default")

        assert set(loadout.spell_configuration) == set(uuids(*WIZARD_SPELLS[:5]))
        assert [entry.name for entry in await wizard_state.list_loadouts("wizard")] == ["Default"]

    async def test_apply(self, wizard_state: SpellbookState) -> None:
        """Test applying a loadout sets the pending state."""
        await wizard_state.set_enforcement(EnforcementBehavior.UNENFORCED)
        loadout = await wizard_state.loadouts.save_loadout(
            "actor-1", "Blast", [spell_uuid("fireball"), spell_uuid("shield")], class_id="wizard"
        )

        applied = await wizard_state.apply_loadout("wizard", loadout.id)

        assert len(applied) == 5
        prepared = {v.name for v in wizard_state.class_tabs["wizard"].all_spells() if v.is_prepared and v.level > 0}
        assert prepared == {"Fireball", "Shield"}
        assert "Applied loadout Blast." in wizard_state.env.messages(NotificationLevel.INFO)

    async def test_apply_enforced_matches_exactly(self, wizard_state: SpellbookState) -> None:
        """Test an enforced session still ends up with the loadout's selection."""
        await wizard_state.set_enforcement(EnforcementBehavior.ENFORCED)
        loadout = await wizard_state.loadouts.save_loadout("actor-1", "Blast", [spell_uuid("fireball")])

        applied = await wizard_state.apply_loadout("wizard", loadout.id)

        assert len(applied) == 6
        assert wizard_state.pending["wizard"].to_unprepare == set(uuids(*WIZARD_SPELLS[:5]))
        assert wizard_state.pending["wizard"].to_prepare == {spell_uuid("fireball")}
        assert wizard_state.class_tabs["wizard"].spell_preparation.current == 1

    async def test_apply_raises_no_violations(self, wizard_state: SpellbookState) -> None:
        """Test applying under notifyGM neither warns nor records rule breaks."""
        loadout = await wizard_state.loadouts.save_loadout("actor-1", "Blast", [spell_uuid("fireball")])

        await wizard_state.apply_loadout("wizard", loadout.id)

        assert wizard_state.violations == []
        assert wizard_state.env.messages(NotificationLevel.WARN) == []

    async def test_apply_missing(self, wizard_state: SpellbookState) -> None:
        assert await wizard_state.apply_loadout("wizard", "gone") == []
        assert wizard_state.env.messages(NotificationLevel.WARN) == ["That loadout no longer exists."]

    async def test_delete(self, wizard_state: SpellbookState) -> None:
        loadout = await wizard_state.save_loadout("wizard", "Temp")
        assert await wizard_state.delete_loadout(loadout.id)
        assert await wizard_state.list_loadouts() == []


class TestViewOptions:
    """Tests for collapsing, filtering and rule changes."""

    async def test_toggle_level(self, wizard_state: SpellbookState) -> None:
        """Test collapsed levels persist as strings."""
        assert await wizard_state.toggle_level(1)

        groups = {g.level: g for g in wizard_state.class_tabs["wizard"].spell_levels}
        assert groups[1].collapsed and not groups[2].collapsed
        assert wizard_state.env.actor("actor-1").get_flag(FLAG_COLLAPSED_LEVELS) == ["1"]

        assert not await wizard_state.toggle_level(1)

    async def test_filter_spells(self, wizard_state: SpellbookState) -> None:
        views = wizard_state.filter_spells("wizard", FilterState(level=3))
        assert {view.name for view in views} == {"Fireball", "Counterspell", "Fly"}

    async def test_filter_unknown_tab(self, wizard_state: SpellbookState) -> None:
        assert wizard_state.filter_spells("bard", FilterState()) == []

    async def test_change_rule_set(self, wizard_state: SpellbookState) -> None:
        """Test switching rule sets reloads the tabs."""
        await wizard_state.change_rule_set("modern")

        assert wizard_state.class_tabs["wizard"].rules.ritual_casting == RitualMode.ALWAYS

    async def test_update_class_rules(self, wizard_state: SpellbookState) -> None:
        await wizard_state.update_class_rules("wizard", {"spellPreparationBonus": 1})
        assert wizard_state.class_tabs["wizard"].spell_preparation.maximum == 8
