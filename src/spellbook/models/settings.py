"""World-scoped settings owned by the host.

The host stores these under the module namespace; the engine reads them
through ``Environment.get_setting`` and falls back to the defaults here.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from spellbook.core.constants import DEFAULT_FILTER_CONFIG_VERSION, DEFAULT_FILTER_IDS
from spellbook.models.enums import EnforcementBehavior, RuleSet


# =============================================================================
# Filter Configuration
# =============================================================================


FILTER_SEARCH_ALIASES: dict[str, tuple[str, ...]] = {
    "name": ("NAME",),
    "level": ("LEVEL", "LVL"),
    "school": ("SCHOOL",),
    "castingTime": ("CASTTIME", "CASTING"),
    "range": ("RANGE",),
    "damageType": ("DAMAGE", "DMG"),
    "condition": ("CONDITION",),
    "requiresSave": ("SAVE", "REQUIRESSAVE"),
    "concentration": ("CON", "CONCENTRATION"),
    "materialComponents": ("MATERIALS", "COMPONENTS"),
    "prepared": ("PREPARED",),
    "ritual": ("RITUAL",),
    "favorited": ("FAVORITED", "FAVE", "FAV"),
}
"""Advanced-search field aliases per filter id."""

_FILTER_TYPES = {
    "name": "search",
    "level": "dropdown",
    "school": "dropdown",
    "castingTime": "dropdown",
    "range": "range",
    "damageType": "dropdown",
    "condition": "dropdown",
}


class FilterDefinition(BaseModel):
    """One entry of the filter panel configuration."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str
    type: str = Field(default="checkbox")
    enabled: bool = Field(default=True)
    order: int = Field(default=0)
    sortable: bool = Field(default=True)
    search_aliases: list[str] = Field(default_factory=list)


class FilterConfiguration(BaseModel):
    """Versioned filter panel configuration."""

    model_config = ConfigDict(extra="ignore")

    version: str = Field(default=DEFAULT_FILTER_CONFIG_VERSION)
    filters: list[FilterDefinition] = Field(default_factory=list)

    @classmethod
    def default(cls) -> FilterConfiguration:
        """Build the default configuration."""
        return cls(
            filters=[
                FilterDefinition(
                    id=filter_id,
                    type=_FILTER_TYPES.get(filter_id, "checkbox"),
                    order=(index + 1) * 10,
                    sortable=filter_id != "name",
                    search_aliases=list(FILTER_SEARCH_ALIASES[filter_id]),
                )
                for index, filter_id in enumerate(DEFAULT_FILTER_IDS)
            ]
        )

    @property
    def is_current(self) -> bool:
        """Check if the stored configuration matches the current version."""
        return self.version == DEFAULT_FILTER_CONFIG_VERSION

    def alias_map(self) -> dict[str, str]:
        """Map each upper-case search alias to its filter id."""
        return {
            alias.upper(): definition.id
            for definition in self.filters
            if definition.enabled
            for alias in definition.search_aliases
        }


# =============================================================================
# World Settings
# =============================================================================


class WorldSettings(BaseModel):
    """Defaults for the world-scoped settings.

    Field aliases are the setting keys as stored by the host.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    indexed_compendiums: dict[str, bool] = Field(default_factory=dict)
    spellcasting_rule_set: RuleSet = Field(default=RuleSet.LEGACY)
    default_enforcement_behavior: EnforcementBehavior = Field(default=EnforcementBehavior.NOTIFY_GM)
    custom_spell_mappings: dict[str, str] = Field(default_factory=dict)
    cantrip_scale_values: str = Field(default="cantrips-known, cantrips")
    consume_scrolls_when_learning: bool = Field(default=True)
    deduct_spell_learning_cost: bool = Field(default=True)
    spell_comparison_max: int = Field(default=3, ge=2, le=7)
    filter_configuration: FilterConfiguration = Field(default_factory=FilterConfiguration.default)
    hidden_spell_lists: list[str] = Field(default_factory=list)
    advanced_search_prefix: str = Field(default="^", min_length=1, max_length=1)

    @field_validator("cantrip_scale_values", mode="after")
    @classmethod
    def normalize_scale_keys(cls, value: str) -> str:
        return ", ".join(key.strip() for key in value.split(",") if key.strip())

    @property
    def cantrip_scale_keys(self) -> list[str]:
        """Scale-value keys probed in order for a class's cantrip maximum."""
        return [key.strip() for key in self.cantrip_scale_values.split(",") if key.strip()]

    def to_storage(self) -> dict[str, Any]:
        """Serialize to the host's key/value layout."""
        return self.model_dump(mode="json", by_alias=True)


__all__ = [
    "FILTER_SEARCH_ALIASES",
    "FilterDefinition",
    "FilterConfiguration",
    "WorldSettings",
]
