"""Spell documents, spell-list pages and owned spells.

Source spells and spell-list pages are immutable compendium documents
interned by UUID. Owned spells are the concrete copies attached to an
actor; the engine never mutates them in place and always reads them back
from the host after a write.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from spellbook.core.constants import SPELL_LEVEL_NAMES
from spellbook.models.enums import LOCKED_MODES, PreparationMode


# =============================================================================
# UUID helpers
# =============================================================================


def pack_id_from_uuid(uuid: str) -> str | None:
    """Extract the compendium pack id from a compendium UUID.

    ``Compendium.dnd5e.spells.Item.abc`` belongs to pack ``dnd5e.spells``.

    Args:
        uuid: Document UUID.

    Returns:
        The pack id, or None for non-compendium UUIDs.
    """
    parts = uuid.split(".")
    if len(parts) >= 5 and parts[0] == "Compendium":
        return f"{parts[1]}.{parts[2]}"
    return None


# =============================================================================
# Source Spell Components
# =============================================================================


class SpellActivation(BaseModel):
    """Casting time as a ``type:value`` pair (e.g. ``action:1``)."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(default="action", description="Activation type")
    value: int | None = Field(default=1, description="Activation amount")

    @property
    def key(self) -> str:
        """Return the ``type:value`` key used by casting-time filters."""
        return f"{self.type}:{self.value if self.value is not None else ''}"


class SpellRange(BaseModel):
    """Range of a spell in its native units."""

    model_config = ConfigDict(frozen=True)

    value: float | None = Field(default=None, description="Range amount")
    units: str | None = Field(default=None, description="ft, mi, m, km, self, touch, spec, ...")


class MaterialComponents(BaseModel):
    """Material component details."""

    model_config = ConfigDict(frozen=True)

    value: str = Field(default="", description="Material description")
    consumed: bool = Field(default=False, description="Materials consumed on casting")
    cost: int = Field(default=0, ge=0, description="Gold value of the materials")


class SpellDoc(BaseModel):
    """A compendium spell document.

    ``properties`` holds component and tag keys such as ``vocal``,
    ``somatic``, ``material``, ``ritual`` and ``concentration``.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    uuid: str = Field(description="Canonical compendium UUID")
    name: str = Field(min_length=1)
    level: int = Field(default=0, ge=0, le=9)
    school: str = Field(default="", description="School key (abj, con, ...)")
    activation: SpellActivation = Field(default_factory=SpellActivation)
    range: SpellRange = Field(default_factory=SpellRange)
    duration: str = Field(default="")
    properties: frozenset[str] = Field(default_factory=frozenset)
    materials: MaterialComponents = Field(default_factory=MaterialComponents)
    damage_types: frozenset[str] = Field(default_factory=frozenset)
    conditions: frozenset[str] = Field(default_factory=frozenset)
    save_abilities: frozenset[str] = Field(default_factory=frozenset)
    source: str = Field(default="", description="Source book")

    @computed_field
    @property
    def is_ritual(self) -> bool:
        """Check if the spell can be cast as a ritual."""
        return "ritual" in self.properties

    @property
    def is_concentration(self) -> bool:
        """Check if the spell requires concentration."""
        return "concentration" in self.properties

    @property
    def is_cantrip(self) -> bool:
        """Check if the spell is a cantrip."""
        return self.level == 0

    @property
    def requires_save(self) -> bool:
        """Check if the spell calls for a saving throw."""
        return bool(self.save_abilities)

    @property
    def level_name(self) -> str:
        """Get the display name of the spell's level."""
        return SPELL_LEVEL_NAMES[self.level]

    @property
    def pack_id(self) -> str | None:
        """Get the compendium pack this spell lives in."""
        return pack_id_from_uuid(self.uuid)


# =============================================================================
# Compendium Organization
# =============================================================================


class SpellListPage(BaseModel):
    """A journal page listing the spells available to a class or subclass."""

    model_config = ConfigDict(frozen=True)

    uuid: str
    name: str
    type: Literal["class", "subclass", "other"] = Field(default="class")
    identifier: str = Field(description="Lowercase class or subclass slug")
    spells: frozenset[str] = Field(default_factory=frozenset)
    pack_id: str | None = Field(default=None)
    is_custom: bool = Field(default=False, description="Created by a GM rather than a content pack")


class CompendiumPack(BaseModel):
    """A compendium pack as seen by the index."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Pack id, e.g. 'dnd5e.spells'")
    label: str = Field(default="")
    document_type: Literal["Item", "JournalEntry"] = Field(default="Item")
    folder: str | None = Field(default=None, description="Top-level folder name")


# =============================================================================
# Owned Spells
# =============================================================================


class SourceItemRef(BaseModel):
    """Reference to the item that granted an owned spell."""

    model_config = ConfigDict(frozen=True)

    uuid: str
    type: str = Field(default="feat", description="Item type, e.g. feat, class, race")
    name: str = Field(default="")


class OwnedSpell(BaseModel):
    """A spell item attached to an actor.

    Locked modes (always, granted, atwill, innate) are always prepared;
    ritual-mode copies are never prepared.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(description="Item id on the actor")
    name: str
    level: int = Field(default=0, ge=0, le=9)
    source_id: str | None = Field(default=None, description="Source compendium UUID")
    source_class: str | None = Field(default=None)
    mode: PreparationMode = Field(default=PreparationMode.PREPARED)
    prepared: bool = Field(default=False)
    source_item: SourceItemRef | None = Field(default=None)
    properties: frozenset[str] = Field(default_factory=frozenset)
    flags: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def normalize_prepared(cls, data: Any) -> Any:
        """Force ``prepared`` to match the locked and ritual modes."""
        if isinstance(data, dict):
            mode = data.get("mode", PreparationMode.PREPARED)
            if mode in LOCKED_MODES:
                data = {**data, "prepared": True}
            elif mode == PreparationMode.RITUAL:
                data = {**data, "prepared": False}
        return data

    @property
    def uuid(self) -> str:
        """Get the UUID this owned spell is interned by."""
        return self.source_id or self.id

    @property
    def is_locked(self) -> bool:
        """Check if the owned spell is never toggled by the user."""
        return self.mode.is_locked

    @property
    def is_granted(self) -> bool:
        """Check if the spell was granted by a feat or other item."""
        return self.mode == PreparationMode.GRANTED or (
            self.source_item is not None and self.source_item.type == "feat"
        )

    @property
    def display_priority(self) -> int:
        """Rank used when two owned copies share a class and UUID."""
        if self.mode == PreparationMode.ALWAYS:
            return 90
        if self.prepared and not self.is_locked:
            return 100
        if self.is_locked:
            return 50
        if self.mode == PreparationMode.RITUAL:
            return 10
        return 30

    def to_doc(self) -> SpellDoc:
        """Build a minimal source document when the compendium copy is unavailable."""
        return SpellDoc(
            uuid=self.uuid,
            name=self.name,
            level=self.level,
            properties=self.properties,
        )


# =============================================================================
# Inventory
# =============================================================================


class ItemActivity(BaseModel):
    """An activity on an inventory item (scrolls carry a ``cast`` activity)."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(default="cast")
    spell_uuid: str | None = Field(default=None)


class InventoryItem(BaseModel):
    """A non-spell item in the actor's inventory."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: str
    item_type: str = Field(default="consumable")
    subtype: str | None = Field(default=None, description="Consumable sub-type, e.g. scroll")
    quantity: int = Field(default=1, ge=0)
    activities: tuple[ItemActivity, ...] = Field(default_factory=tuple)

    @property
    def is_scroll(self) -> bool:
        """Check if the item is a spell scroll."""
        return self.item_type == "consumable" and self.subtype == "scroll"


__all__ = [
    "pack_id_from_uuid",
    "SpellActivation",
    "SpellRange",
    "MaterialComponents",
    "SpellDoc",
    "SpellListPage",
    "CompendiumPack",
    "SourceItemRef",
    "OwnedSpell",
    "ItemActivity",
    "InventoryItem",
]
