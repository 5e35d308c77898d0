"""Tests for spell, rules, loadout and settings models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from factories import CATALOGUE
from spellbook.models import (
    ClassRules,
    FilterConfiguration,
    Loadout,
    PreparationCount,
    RejectionReason,
    RitualMode,
    SpellActivation,
    SpellDoc,
    SpellSchool,
    SwapMode,
    WorldSettings,
    pack_id_from_uuid,
)


class TestSpellDoc:
    """Tests for SpellDoc and its components."""

    def test_pack_id_from_uuid(self) -> None:
        """Test compendium UUIDs yield their pack."""
        assert pack_id_from_uuid("Compendium.dnd5e.spells.Item.abc") == "dnd5e.spells"
        assert pack_id_from_uuid("Actor.abc.Item.def") is None

    def test_derived_flags(self) -> None:
        """Test ritual, concentration and save flags."""
        detect = CATALOGUE["detect-magic"]
        fireball = CATALOGUE["fireball"]

        assert detect.is_ritual and detect.is_concentration
        assert not detect.requires_save
        assert fireball.requires_save
        assert fireball.level_name == "3rd Level"
        assert fireball.pack_id == "dnd5e.spells"

    def test_activation_key(self) -> None:
        """Test the casting-time key."""
        assert SpellActivation().key == "action:1"
        assert SpellActivation(type="special", value=None).key == "special:"

    def test_level_bounds(self) -> None:
        """Test spell levels above 9 are rejected."""
        with pytest.raises(ValidationError):
            SpellDoc(uuid="x", name="Too High", level=10)

    def test_school_full_name(self) -> None:
        """Test school keys expand to names."""
        assert SpellSchool.EVOCATION.full_name == "Evocation"


class TestClassRules:
    """Tests for ClassRules."""

    def test_flag_round_trip_uses_stored_keys(self) -> None:
        """Test rules serialize with camelCase and underscore keys."""
        flag = ClassRules(spell_swapping=SwapMode.LEVEL_UP).to_flag()

        assert flag["spellSwapping"] == "levelUp"
        assert flag["_version"] == 2
        assert "_noScaleValue" in flag
        assert ClassRules.model_validate(flag).spell_swapping == SwapMode.LEVEL_UP

    def test_custom_list_coercion(self) -> None:
        """Test a single UUID or null is accepted for the custom list."""
        assert ClassRules(custom_spell_list="Compendium.a.b.x").custom_spell_list == ["Compendium.a.b.x"]
        assert ClassRules(custom_spell_list=None).custom_spell_list == []

    def test_cantrips_visible(self) -> None:
        """Test cantrips hide without a scale value."""
        assert ClassRules().cantrips_visible
        assert not ClassRules(show_cantrips=False).cantrips_visible
        assert not ClassRules(no_scale_value=True).cantrips_visible

    def test_invalid_ritual_mode(self) -> None:
        """Test unknown ritual modes are rejected."""
        with pytest.raises(ValidationError):
            ClassRules(ritual_casting="sometimes")
        assert ClassRules(ritual_casting="always").ritual_casting == RitualMode.ALWAYS


class TestLoadout:
    """Tests for Loadout."""

    def test_name_trimmed(self) -> None:
        """Test names are trimmed."""
        assert Loadout(name="  Dungeon  ").name == "Dungeon"

    def test_empty_name_rejected(self) -> None:
        """Test blank names are rejected."""
        with pytest.raises(ValidationError):
            Loadout(name="   ")

    def test_configuration_deduped(self) -> None:
        """Test duplicate UUIDs collapse in order."""
        loadout = Loadout(name="x", spell_configuration=["b", "a", "b"])
        assert loadout.spell_configuration == ["b", "a"]

    def test_flag_keys(self) -> None:
        """Test stored loadouts use camelCase keys."""
        flag = Loadout(name="x", class_identifier="wizard").to_flag()
        assert flag["classIdentifier"] == "wizard"
        assert "spellConfiguration" in flag
        assert Loadout.model_validate(flag).class_identifier == "wizard"

    def test_applies_to(self) -> None:
        """Test class-less loadouts apply to every class."""
        assert Loadout(name="x").applies_to("cleric")
        assert Loadout(name="x", class_identifier="wizard").applies_to("wizard")
        assert not Loadout(name="x", class_identifier="wizard").applies_to("cleric")


class TestWorldSettings:
    """Tests for WorldSettings and the filter configuration."""

    def test_defaults(self) -> None:
        """Test the world defaults."""
        settings = WorldSettings()

        assert settings.spellcasting_rule_set == "legacy"
        assert settings.default_enforcement_behavior == "notifyGM"
        assert settings.cantrip_scale_keys == ["cantrips-known", "cantrips"]
        assert settings.advanced_search_prefix == "^"

    def test_storage_keys(self) -> None:
        """Test settings serialize under their stored keys."""
        stored = WorldSettings().to_storage()
        assert "spellcastingRuleSet" in stored
        assert "consumeScrollsWhenLearning" in stored

    def test_comparison_bounds(self) -> None:
        """Test the comparison maximum is bounded."""
        with pytest.raises(ValidationError):
            WorldSettings(spell_comparison_max=9)

    def test_alias_map(self) -> None:
        """Test the default search aliases."""
        aliases = FilterConfiguration.default().alias_map()
        assert aliases["LVL"] == "level"
        assert aliases["DMG"] == "damageType"
        assert aliases["CON"] == "concentration"

    def test_outdated_configuration(self) -> None:
        """Test the stored version is compared with the current one."""
        assert FilterConfiguration.default().is_current
        assert not FilterConfiguration(version="0.1.0").is_current


class TestViewsAndEnums:
    """Tests for view models and enum helpers."""

    def test_preparation_count(self) -> None:
        """Test the at-maximum flag."""
        assert PreparationCount(current=3, maximum=3).is_at_max
        assert not PreparationCount(current=2, maximum=3).is_at_max

    def test_hard_rejections(self) -> None:
        """Test which rejections ignore enforcement."""
        assert RejectionReason.LOCKED_MODE.is_hard
        assert RejectionReason.NOT_IN_SPELLBOOK.is_hard
        assert not RejectionReason.AT_MAXIMUM.is_hard
        assert not RejectionReason.WINDOW_CLOSED.is_hard
