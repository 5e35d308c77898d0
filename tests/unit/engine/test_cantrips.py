"""Tests for the cantrip manager."""

from __future__ import annotations

import pytest

from factories import CATALOGUE, caster, make_actor, owned
from spellbook.core.constants import (
    FLAG_CLASS_RULES,
    FLAG_LONG_REST_COMPLETED,
    FLAG_LONG_REST_EVENT_ID,
    FLAG_PREVIOUS_CANTRIP_MAX,
    FLAG_PREVIOUS_LEVEL,
    FLAG_RULE_SET_OVERRIDE,
)
from spellbook.engine import CantripManager, RuleSetRegistry
from spellbook.engine.windows import SwapSession
from spellbook.models import RejectionReason


def _manager(env) -> CantripManager:
    return CantripManager(env, RuleSetRegistry(env))


def _check(manager: CantripManager, actor, slug: str, *, count: int, session: SwapSession | None = None):
    return manager.can_change_cantrip_status(
        actor,
        CATALOGUE[slug],
        checking=True,
        class_id="wizard",
        ui_current_count=count,
        session=session or SwapSession(),
        was_prepared=False,
    )


def _uncheck(manager: CantripManager, actor, slug: str, *, session: SwapSession | None = None, class_id: str = "wizard"):
    return manager.can_change_cantrip_status(
        actor,
        CATALOGUE[slug],
        checking=False,
        class_id=class_id,
        ui_current_count=0,
        session=session or SwapSession(),
        was_prepared=True,
        owned=actor.find_owned_spell(CATALOGUE[slug].uuid, class_id),
    )


class TestMaxCantrips:
    """Tests for the cantrip maximum."""

    @pytest.mark.parametrize(("level", "expected"), [(1, 3), (3, 3), (4, 4), (12, 5)])
    def test_scale_value_track(self, env, level: int, expected: int) -> None:
        """Test the maximum follows the cantrips-known track."""
        actor = make_actor(caster("wizard", level))
        assert _manager(env).max_cantrips(actor, "wizard") == expected

    def test_bonus_applied(self, env) -> None:
        """Test the class bonus adds to the maximum and never goes negative."""
        plus = make_actor(
            caster("wizard", 1),
            flags={FLAG_CLASS_RULES: {"wizard": {"cantripPreparationBonus": 2, "_version": 2}}},
        )
        minus = make_actor(
            caster("wizard", 1),
            flags={FLAG_CLASS_RULES: {"wizard": {"cantripPreparationBonus": -9, "_version": 2}}},
        )

        assert _manager(env).max_cantrips(plus, "wizard") == 5
        assert _manager(env).max_cantrips(minus, "wizard") == 0

    def test_hidden_cantrips(self, env) -> None:
        """Test classes without cantrips have a zero maximum."""
        actor = make_actor(caster("paladin", 5, progression="half"))
        assert _manager(env).max_cantrips(actor, "paladin") == 0

    def test_alternate_scale_key(self, env) -> None:
        """Test later keys of the configured list are probed."""
        wizard = caster("wizard", 2).model_copy(update={"scale_values": {"cantrips": {1: 2}}})
        assert _manager(env).max_cantrips(make_actor(wizard), "wizard") == 2


class TestCurrentCount:
    """Tests for counting saved cantrips."""

    def test_counts_class_cantrips(self) -> None:
        """Test only prepared cantrips of the class are counted."""
        actor = make_actor(
            caster("wizard", 5),
            caster("cleric", 1),
            spells=[
                owned("fire-bolt", "wizard"),
                owned("light", "wizard"),
                owned("mage-hand", "wizard", prepared=False),
                owned("prestidigitation", "wizard", mode="innate"),
                owned("sacred-flame", "cleric"),
                owned("shield", "wizard"),
            ],
        )

        assert CantripManager.current_count(actor, "wizard") == 2
        assert CantripManager.current_count(actor, "cleric") == 1


class TestCheckCantrip:
    """Tests for checking cantrips."""

    def test_below_maximum(self, env) -> None:
        actor = make_actor(caster("wizard", 1))
        assert _check(_manager(env), actor, "fire-bolt", count=2).allowed

    def test_at_maximum(self, env) -> None:
        """Test checking past the maximum is rejected."""
        actor = make_actor(caster("wizard", 1))

        decision = _check(_manager(env), actor, "fire-bolt", count=3)

        assert decision.reason == RejectionReason.AT_MAXIMUM
        assert not decision.is_hard

    def test_recheck_after_swap_at_maximum(self, env) -> None:
        """Test re-checking a cantrip unchecked this session undoes the swap."""
        actor = make_actor(caster("wizard", 1))
        session = SwapSession(unchecked={CATALOGUE["fire-bolt"].uuid})

        assert _check(_manager(env), actor, "fire-bolt", count=3, session=session).allowed

    def test_hidden_is_hard(self, env) -> None:
        """Test classes that hide cantrips reject them outright."""
        actor = make_actor(caster("paladin", 5, progression="half"))

        decision = _manager(env).can_change_cantrip_status(
            actor,
            CATALOGUE["light"],
            checking=True,
            class_id="paladin",
            ui_current_count=0,
            session=SwapSession(),
            was_prepared=False,
        )

        assert decision.reason == RejectionReason.CANTRIPS_HIDDEN
        assert decision.is_hard


class TestUncheckCantrip:
    """Tests for unchecking saved cantrips."""

    def test_legacy_locked_outside_level_up(self, env) -> None:
        """Test legacy cantrips cannot be swapped without a level-up."""
        actor = make_actor(caster("wizard", 3), spells=[owned("fire-bolt", "wizard")])

        decision = _uncheck(_manager(env), actor, "fire-bolt")

        assert decision.reason == RejectionReason.WINDOW_CLOSED

    def test_legacy_level_up_opens_window(self, env) -> None:
        """Test a level gain admits one cantrip swap."""
        actor = make_actor(
            caster("wizard", 4),
            spells=[owned("fire-bolt", "wizard"), owned("light", "wizard")],
            flags={FLAG_PREVIOUS_LEVEL: {"wizard": 3}, FLAG_PREVIOUS_CANTRIP_MAX: {"wizard": 3}},
        )
        manager = _manager(env)
        session = SwapSession()

        assert _uncheck(manager, actor, "fire-bolt", session=session).allowed
        session.record(CATALOGUE["fire-bolt"].uuid, checking=False, was_prepared=True)

        second = _uncheck(manager, actor, "light", session=session)
        assert second.reason == RejectionReason.ONLY_ONE_SWAP

    def test_modern_long_rest(self, env) -> None:
        """Test modern cantrips swap after a long rest."""
        closed = make_actor(
            caster("wizard", 3),
            spells=[owned("fire-bolt", "wizard")],
            flags={FLAG_RULE_SET_OVERRIDE: "modern"},
        )
        rested = make_actor(
            caster("wizard", 3),
            spells=[owned("fire-bolt", "wizard")],
            flags={FLAG_RULE_SET_OVERRIDE: "modern", FLAG_LONG_REST_COMPLETED: True, FLAG_LONG_REST_EVENT_ID: "r1"},
        )

        assert _uncheck(_manager(env), closed, "fire-bolt").reason == RejectionReason.WINDOW_CLOSED
        assert _uncheck(_manager(env), rested, "fire-bolt").allowed

    def test_swapping_disabled(self, env) -> None:
        """Test classes with no cantrip swapping stay locked."""
        actor = make_actor(
            caster("wizard", 4),
            spells=[owned("fire-bolt", "wizard")],
            flags={
                FLAG_CLASS_RULES: {"wizard": {"cantripSwapping": "none", "_version": 2}},
                FLAG_PREVIOUS_LEVEL: {"wizard": 3},
            },
        )

        assert _uncheck(_manager(env), actor, "fire-bolt").reason == RejectionReason.LOCKED_NO_SWAPPING

    def test_initial_selection_unlocked(self, env) -> None:
        """Test nothing is locked before the first save."""
        actor = make_actor(caster("wizard", 1), spells=[owned("fire-bolt", "wizard")], settled=False)
        assert _uncheck(_manager(env), actor, "fire-bolt").allowed

    def test_locked_mode(self, env) -> None:
        """Test granted cantrips cannot be toggled."""
        actor = make_actor(caster("wizard", 1), spells=[owned("fire-bolt", "wizard", mode="always")], settled=False)

        decision = _uncheck(_manager(env), actor, "fire-bolt")

        assert decision.reason == RejectionReason.LOCKED_MODE
        assert decision.is_hard


class TestLongRest:
    """Tests for starting a long rest."""

    async def test_begin_long_rest(self, make_env) -> None:
        """Test a rest opens the long-rest window."""
        env = make_env(make_actor(caster("wizard", 3)))

        event_id = await _manager(env).begin_long_rest("actor-1")

        assert env.actor("actor-1").get_flag(FLAG_LONG_REST_EVENT_ID) == event_id
