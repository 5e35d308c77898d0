"""View models projected by the spellbook state for each tab."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, computed_field

from spellbook.models.enums import DisabledReason, PreparationMode
from spellbook.models.rules import ClassRules
from spellbook.models.spells import SourceItemRef, SpellDoc


class PreparationStatus(BaseModel):
    """Preparation state of one spell within one class tab."""

    model_config = ConfigDict(frozen=True)

    prepared: bool = False
    is_owned: bool = False
    preparation_mode: PreparationMode | None = None
    disabled: bool = False
    disabled_reason: DisabledReason | None = None
    always_prepared: bool = False
    is_granted: bool = False
    source_item: SourceItemRef | None = None
    prepared_by_other_class: str | None = None
    is_cantrip_locked: bool = False


class SpellView(BaseModel):
    """A spell as displayed in a class or wizardbook tab.

    ``was_prepared`` is the saved state; ``preparation.prepared`` includes
    pending session edits.
    """

    model_config = ConfigDict(frozen=True)

    doc: SpellDoc
    source_class: str
    preparation: PreparationStatus = Field(default_factory=PreparationStatus)
    was_prepared: bool = False
    in_wizard_spellbook: bool = False
    can_add_to_spellbook: bool = False
    can_cast_as_ritual: bool = False
    favorited: bool = False
    copy_cost: int | None = None
    copy_time: int | None = None

    @property
    def uuid(self) -> str:
        return self.doc.uuid

    @property
    def name(self) -> str:
        return self.doc.name

    @property
    def level(self) -> int:
        return self.doc.level

    @property
    def is_prepared(self) -> bool:
        return self.preparation.prepared


class SpellLevelGroup(BaseModel):
    """Spells of one level, sorted by name."""

    model_config = ConfigDict(frozen=True)

    level: int
    name: str
    spells: list[SpellView] = Field(default_factory=list)
    collapsed: bool = False


class PreparationCount(BaseModel):
    """Current versus maximum prepared count."""

    model_config = ConfigDict(frozen=True)

    current: int = 0
    maximum: int = 0

    @computed_field
    @property
    def is_at_max(self) -> bool:
        return self.current >= self.maximum


class WizardStats(BaseModel):
    """Spellbook statistics for a wizard-enabled class."""

    model_config = ConfigDict(frozen=True)

    total_known: int = 0
    free_remaining: int = 0
    max_spells_allowed: int = 0
    is_at_max: bool = False


class ClassTabData(BaseModel):
    """The preparation tab for one spellcasting class."""

    model_config = ConfigDict(frozen=True)

    class_id: str
    class_name: str
    rules: ClassRules
    spell_levels: list[SpellLevelGroup] = Field(default_factory=list)
    spell_preparation: PreparationCount = Field(default_factory=PreparationCount)
    cantrip_preparation: PreparationCount = Field(default_factory=PreparationCount)
    wizard_stats: WizardStats | None = None
    notice: str | None = None

    def all_spells(self) -> list[SpellView]:
        """Flatten the level groups."""
        return [spell for group in self.spell_levels for spell in group.spells]


class WizardbookTabData(BaseModel):
    """The learning tab of a wizard-enabled class."""

    model_config = ConfigDict(frozen=True)

    class_id: str
    spell_levels: list[SpellLevelGroup] = Field(default_factory=list)
    wizard_stats: WizardStats = Field(default_factory=WizardStats)


__all__ = [
    "PreparationStatus",
    "SpellView",
    "SpellLevelGroup",
    "PreparationCount",
    "WizardStats",
    "ClassTabData",
    "WizardbookTabData",
]
