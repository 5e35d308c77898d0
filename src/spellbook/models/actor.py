"""Actor and per-class state as read from the host.

The host owns the actor document. The engine receives snapshots of it
and only changes it through the Environment's mutation calls.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from spellbook.core.constants import BASE_CURRENCY, CURRENCY_CONVERSION, MODULE_ID
from spellbook.models.enums import SpellcastingProgression, SpellcastingType
from spellbook.models.spells import InventoryItem, OwnedSpell


# =============================================================================
# Class State
# =============================================================================


class SpellcastingConfig(BaseModel):
    """Spellcasting configuration of a class or subclass.

    Attributes:
        progression: Slot progression.
        type: Slot family (spell, pact, leveled).
        ability: Spellcasting ability key.
        preparation_max: Base number of spells the class may prepare.
    """

    model_config = ConfigDict(frozen=True)

    progression: SpellcastingProgression = Field(default=SpellcastingProgression.NONE)
    type: SpellcastingType = Field(default=SpellcastingType.LEVELED)
    ability: str | None = Field(default=None)
    preparation_max: int = Field(default=0, ge=0)

    @property
    def is_spellcasting(self) -> bool:
        """Check if this configuration grants spellcasting."""
        return self.progression != SpellcastingProgression.NONE


class SubclassState(BaseModel):
    """Subclass link that may contribute its own spellcasting progression."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    name: str = Field(default="")
    spellcasting: SpellcastingConfig = Field(default_factory=SpellcastingConfig)


class ClassState(BaseModel):
    """A class on the character.

    ``scale_values`` holds named numeric tracks indexed by class level,
    e.g. ``{"cantrips-known": {1: 3, 4: 4, 10: 5}}``.
    """

    model_config = ConfigDict(frozen=True)

    identifier: str = Field(description="Stable lowercase slug")
    name: str = Field(default="")
    level: int = Field(default=1, ge=0, le=20)
    spellcasting: SpellcastingConfig = Field(default_factory=SpellcastingConfig)
    scale_values: dict[str, dict[int, int]] = Field(default_factory=dict)
    source_uuid: str | None = Field(default=None, description="Class item source UUID")
    source_folder: str | None = Field(default=None, description="Top-level folder of the source pack")
    subclass: SubclassState | None = Field(default=None)

    @property
    def effective_spellcasting(self) -> SpellcastingConfig | None:
        """Get the spellcasting configuration, falling back to the subclass.

        Returns:
            The class's configuration if it casts, else the subclass's, else None.
        """
        if self.spellcasting.is_spellcasting:
            return self.spellcasting
        if self.subclass is not None and self.subclass.spellcasting.is_spellcasting:
            return self.subclass.spellcasting
        return None

    @property
    def is_spellcaster(self) -> bool:
        """Check if the class (or its subclass) casts spells."""
        return self.effective_spellcasting is not None

    @property
    def is_pact_caster(self) -> bool:
        """Check if the class uses pact slots."""
        config = self.effective_spellcasting
        return config is not None and (
            config.type == SpellcastingType.PACT
            or config.progression == SpellcastingProgression.PACT
        )

    def scale_value(self, key: str) -> int | None:
        """Read a scale-value track at the class's current level.

        Args:
            key: Track name.

        Returns:
            The value at the highest track level not above the class level,
            or None if the track is missing or starts above the class level.
        """
        track = self.scale_values.get(key)
        if not track:
            return None
        reached = [lvl for lvl in track if lvl <= self.level]
        if not reached:
            return None
        return track[max(reached)]

    @property
    def max_spell_level(self) -> int:
        """Highest spell level the class can cast at its current level."""
        config = self.effective_spellcasting
        if config is None or self.level <= 0:
            return 0
        level = self.level
        progression = config.progression
        if progression in (SpellcastingProgression.FULL, SpellcastingProgression.LEVELED):
            return min(9, math.ceil(level / 2))
        if progression == SpellcastingProgression.HALF:
            return 0 if level < 2 else min(5, math.ceil(level / 4))
        if progression == SpellcastingProgression.ARTIFICER:
            return min(5, math.ceil(level / 4))
        if progression == SpellcastingProgression.THIRD:
            return 0 if level < 3 else min(4, math.ceil(level / 6))
        if progression == SpellcastingProgression.PACT:
            return min(5, math.ceil(level / 2))
        return 0


# =============================================================================
# Actor
# =============================================================================


class Actor(BaseModel):
    """Snapshot of a character document.

    Attributes:
        id: Actor id.
        name: Display name.
        spellcasting_ability: Actor-level spellcasting ability.
        classes: Ordered mapping of class identifier to class state.
        spells: Owned spell items.
        inventory: Other items (consumables, scrolls, ...).
        currency: Coins by denomination.
        flags: Namespaced key/value store.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = Field(default="")
    spellcasting_ability: str | None = Field(default=None)
    classes: dict[str, ClassState] = Field(default_factory=dict)
    spells: list[OwnedSpell] = Field(default_factory=list)
    inventory: list[InventoryItem] = Field(default_factory=list)
    currency: dict[str, float] = Field(default_factory=dict)
    flags: dict[str, dict[str, Any]] = Field(default_factory=dict)

    def get_flag(self, key: str, default: Any = None, *, namespace: str = MODULE_ID) -> Any:
        """Read a flag value from the snapshot."""
        return self.flags.get(namespace, {}).get(key, default)

    @property
    def spellcasting_classes(self) -> dict[str, ClassState]:
        """Classes that cast spells, in actor order."""
        return {cid: cls for cid, cls in self.classes.items() if cls.is_spellcaster}

    def owned_spells_for_class(self, class_id: str) -> list[OwnedSpell]:
        """Owned spells attributed to a class, including unattributed ones."""
        return [s for s in self.spells if s.source_class in (None, class_id)]

    def find_owned_spell(self, uuid: str, class_id: str | None = None) -> OwnedSpell | None:
        """Find an owned spell by its source UUID.

        Matching is by ``source_id`` (falling back to the item id for
        spells created without a source), never by item id alone.

        Args:
            uuid: Source UUID.
            class_id: Restrict to spells attributed to this class.

        Returns:
            The highest-priority matching owned spell, or None.
        """
        matches = [
            s
            for s in self.spells
            if s.uuid == uuid and (class_id is None or s.source_class == class_id)
        ]
        if not matches:
            return None
        return max(matches, key=lambda s: s.display_priority)

    def item(self, item_id: str) -> InventoryItem | None:
        """Look up an inventory item by id."""
        return next((i for i in self.inventory if i.id == item_id), None)

    @property
    def wealth_in_gold(self) -> float:
        """Total coin value expressed in gold pieces."""
        return sum(
            amount / CURRENCY_CONVERSION[denomination]
            for denomination, amount in self.currency.items()
            if denomination in CURRENCY_CONVERSION
        )


def plan_currency_deduction(currency: dict[str, float], cost: float) -> dict[str, float] | None:
    """Plan how to pay a gold cost from a coin purse.

    Gold is spent first, then the remaining denominations in ascending
    conversion order; each denomination is rounded up to whole coins.

    Args:
        currency: Coins by denomination.
        cost: Cost in gold pieces.

    Returns:
        The new coin amounts for each touched denomination, or None if the
        purse is worth less than the cost.
    """
    wealth = sum(
        amount / CURRENCY_CONVERSION[d] for d, amount in currency.items() if d in CURRENCY_CONVERSION
    )
    if wealth < cost:
        return None
    others = sorted(
        (d for d in CURRENCY_CONVERSION if d != BASE_CURRENCY),
        key=lambda d: CURRENCY_CONVERSION[d],
    )
    remaining = float(cost)
    updated: dict[str, float] = {}
    for denomination in (BASE_CURRENCY, *others):
        if remaining <= 0.001:
            break
        available = currency.get(denomination, 0)
        if available <= 0:
            continue
        gold_per_coin = 1 / CURRENCY_CONVERSION[denomination]
        needed = math.ceil(round(remaining / gold_per_coin, 6))
        spent = min(available, needed)
        updated[denomination] = available - spent
        remaining -= spent * gold_per_coin
    return updated


__all__ = [
    "SpellcastingConfig",
    "SubclassState",
    "ClassState",
    "Actor",
    "plan_currency_deduction",
]
