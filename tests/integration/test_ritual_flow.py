"""Integration tests for ritual copies across rule-set changes."""

from __future__ import annotations

from factories import caster, make_actor, owned, spell_uuid
from spellbook.core.constants import FLAG_MODULE_RITUAL, MODULE_ID
from spellbook.engine import SpellbookState
from spellbook.models import PreparationMode, RitualMode


def _owned_modes(env) -> dict[str, tuple[str, bool]]:
    return {s.name: (str(s.mode), s.prepared) for s in env.actor("actor-1").spells if s.source_class == "wizard"}


class TestRitualInjection:
    """A modern wizard whose known rituals are castable without preparing them."""

    async def test_inject_then_remove(self, make_env) -> None:
        """Test saving adds ritual copies and switching to legacy removes them."""
        actor = make_actor(
            caster("wizard", 5, preparation_max=7),
            spells=[owned("shield", "wizard")],
            known={"wizard": ["identify", "shield"]},
        )
        env = make_env(actor, settings={"spellcastingRuleSet": "modern"})
        state = SpellbookState(env, "actor-1")
        await state.initialize()
        assert state.class_tabs["wizard"].rules.ritual_casting == RitualMode.ALWAYS

        result = await state.commit()

        assert result.succeeded
        assert _owned_modes(env) == {"Shield": ("prepared", True), "Identify": ("ritual", False)}
        ritual = env.actor("actor-1").find_owned_spell(spell_uuid("identify"), "wizard")
        assert ritual.flags[MODULE_ID][FLAG_MODULE_RITUAL] is True
        identify = next(v for v in state.class_tabs["wizard"].all_spells() if v.name == "Identify")
        assert identify.can_cast_as_ritual
        assert not identify.is_prepared

        await state.change_rule_set("legacy")
        await state.commit()

        assert _owned_modes(env) == {"Shield": ("prepared", True)}

    async def test_every_known_ritual_has_a_copy(self, make_env) -> None:
        """Test ritual copies cover every known ritual not prepared."""
        actor = make_actor(
            caster("wizard", 5, preparation_max=7),
            spells=[owned("detect-magic", "wizard")],
            known={"wizard": ["identify", "detect-magic", "find-familiar", "web"]},
        )
        env = make_env(actor, settings={"spellcastingRuleSet": "modern"})
        state = SpellbookState(env, "actor-1")
        await state.initialize()

        await state.commit()

        spells = env.actor("actor-1").spells
        rituals = {s.uuid for s in spells if s.mode == PreparationMode.RITUAL}
        prepared = {s.uuid for s in spells if s.mode == PreparationMode.PREPARED and s.prepared}
        known_rituals = {spell_uuid(slug) for slug in ("identify", "detect-magic", "find-familiar")}
        assert known_rituals <= rituals | prepared
        assert spell_uuid("web") not in rituals

    async def test_unpreparing_keeps_ritual_copy(self, make_env) -> None:
        """Test an unprepared ritual is kept as a ritual copy."""
        actor = make_actor(
            caster("wizard", 5, preparation_max=7),
            spells=[owned("identify", "wizard")],
            known={"wizard": ["identify"]},
        )
        env = make_env(actor, settings={"spellcastingRuleSet": "modern"})
        state = SpellbookState(env, "actor-1")
        await state.initialize()
        await state.begin_long_rest()

        state.toggle("wizard", spell_uuid("identify"), False)
        await state.commit()

        assert _owned_modes(env) == {"Identify": ("ritual", False)}

    async def test_legacy_never_injects(self, make_env) -> None:
        actor = make_actor(caster("wizard", 5), known={"wizard": ["identify", "find-familiar"]})
        env = make_env(actor)
        state = SpellbookState(env, "actor-1")
        await state.initialize()

        await state.commit()

        assert env.actor("actor-1").spells == []
