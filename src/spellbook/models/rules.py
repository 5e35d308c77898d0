"""Effective per-class rules.

Stored on the actor under the ``classRules`` flag with camelCase keys.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from spellbook.core.constants import (
    CLASS_RULES_VERSION,
    DEFAULT_COST_PER_LEVEL,
    DEFAULT_HOURS_PER_LEVEL,
)
from spellbook.models.enums import RitualMode, SwapMode


class ClassRules(BaseModel):
    """Resolved rules for one class.

    Attributes:
        show_cantrips: Whether the class uses cantrips at all.
        force_wizard_mode: Treat the class as having a wizard spellbook.
        cantrip_swapping: When saved cantrips may be swapped.
        spell_swapping: When saved spells may be swapped.
        ritual_casting: Ritual policy.
        custom_spell_list: Spell-list page UUIDs replacing the default list.
        spell_preparation_bonus: Added to the class's preparation maximum.
        cantrip_preparation_bonus: Added to the class's cantrip maximum.
        spell_learning_cost_multiplier: Gold per spell level when copying.
        spell_learning_time_multiplier: Hours per spell level when copying.
        no_scale_value: Set when the class has no numeric cantrip track.
        version: Schema version of the stored record.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        validate_assignment=True,
    )

    show_cantrips: bool = Field(default=True)
    force_wizard_mode: bool = Field(default=False)
    cantrip_swapping: SwapMode = Field(default=SwapMode.NONE)
    spell_swapping: SwapMode = Field(default=SwapMode.NONE)
    ritual_casting: RitualMode = Field(default=RitualMode.NONE)
    custom_spell_list: list[str] = Field(default_factory=list)
    spell_preparation_bonus: int = Field(default=0)
    cantrip_preparation_bonus: int = Field(default=0)
    spell_learning_cost_multiplier: int = Field(default=DEFAULT_COST_PER_LEVEL, ge=0)
    spell_learning_time_multiplier: int = Field(default=DEFAULT_HOURS_PER_LEVEL, ge=0)
    no_scale_value: bool = Field(default=False, alias="_noScaleValue")
    version: int = Field(default=CLASS_RULES_VERSION, alias="_version")

    @field_validator("custom_spell_list", mode="before")
    @classmethod
    def coerce_custom_list(cls, value: Any) -> list[str]:
        """Accept a single UUID or null as well as a list."""
        if value is None or value == "":
            return []
        if isinstance(value, str):
            return [value]
        return [v for v in value if isinstance(v, str) and v]

    @property
    def cantrips_visible(self) -> bool:
        """Cantrips are shown only if enabled and the class has a cantrip track."""
        return self.show_cantrips and not self.no_scale_value

    def to_flag(self) -> dict[str, Any]:
        """Serialize for storage in the ``classRules`` flag."""
        return self.model_dump(mode="json", by_alias=True)


__all__ = ["ClassRules"]
