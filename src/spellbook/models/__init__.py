"""Pydantic V2 models for the spellbook engine.

Exports enums, source and owned spells, actor snapshots, class rules,
loadouts, world settings, notifications and view models.
"""

from __future__ import annotations

from spellbook.models.actor import (
    Actor,
    ClassState,
    SpellcastingConfig,
    SubclassState,
    plan_currency_deduction,
)
from spellbook.models.enums import (
    LOCKED_MODES,
    DisabledReason,
    EnforcementBehavior,
    GMNotificationKind,
    NotificationLevel,
    PreparationMode,
    RejectionReason,
    RitualMode,
    RuleSet,
    SpellcastingProgression,
    SpellcastingType,
    SpellSchool,
    SwapKind,
    SwapMode,
    WindowType,
    WizardSpellSource,
)
from spellbook.models.loadouts import Loadout
from spellbook.models.notifications import GMNotification, Notification
from spellbook.models.rules import ClassRules
from spellbook.models.settings import FilterConfiguration, FilterDefinition, WorldSettings
from spellbook.models.spells import (
    CompendiumPack,
    InventoryItem,
    ItemActivity,
    MaterialComponents,
    OwnedSpell,
    SourceItemRef,
    SpellActivation,
    SpellDoc,
    SpellListPage,
    SpellRange,
    pack_id_from_uuid,
)
from spellbook.models.views import (
    ClassTabData,
    PreparationCount,
    PreparationStatus,
    SpellLevelGroup,
    SpellView,
    WizardbookTabData,
    WizardStats,
)


__all__ = [
    # Enums
    "LOCKED_MODES",
    "DisabledReason",
    "EnforcementBehavior",
    "GMNotificationKind",
    "NotificationLevel",
    "PreparationMode",
    "RejectionReason",
    "RitualMode",
    "RuleSet",
    "SpellcastingProgression",
    "SpellcastingType",
    "SpellSchool",
    "SwapKind",
    "SwapMode",
    "WindowType",
    "WizardSpellSource",
    # Actor
    "Actor",
    "ClassState",
    "SpellcastingConfig",
    "SubclassState",
    "plan_currency_deduction",
    # Spells
    "CompendiumPack",
    "InventoryItem",
    "ItemActivity",
    "MaterialComponents",
    "OwnedSpell",
    "SourceItemRef",
    "SpellActivation",
    "SpellDoc",
    "SpellListPage",
    "SpellRange",
    "pack_id_from_uuid",
    # Rules, loadouts, settings
    "ClassRules",
    "Loadout",
    "FilterConfiguration",
    "FilterDefinition",
    "WorldSettings",
    # Notifications
    "GMNotification",
    "Notification",
    # Views
    "ClassTabData",
    "PreparationCount",
    "PreparationStatus",
    "SpellLevelGroup",
    "SpellView",
    "WizardbookTabData",
    "WizardStats",
]
