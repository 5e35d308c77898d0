"""Engine-wide constants for the spellbook engine.

Flag and setting keys mirror the names persisted on actors and in the
world settings store, so renaming any of them is a data migration.
"""

from __future__ import annotations

# =============================================================================
# Namespaces
# =============================================================================

MODULE_ID = "spell-book"
"""Namespace used for actor flags, world settings and socket events."""

GM_NOTIFICATION_EVENT = "spell-prep-notify"
"""Event name of the GM-visible preparation notification payload."""

# =============================================================================
# Actor Flag Keys
# =============================================================================

FLAG_CLASS_RULES = "classRules"
FLAG_RULE_SET_OVERRIDE = "ruleSetOverride"
FLAG_ENFORCEMENT_BEHAVIOR = "enforcementBehavior"
FLAG_WIZARD_COPIED_SPELLS = "wizardCopiedSpells"
FLAG_WIZARD_KNOWN_SPELLS = "wizardKnownSpells"
FLAG_WIZARD_RITUAL_CASTING = "wizardRitualCasting"
FLAG_SPELL_LOADOUTS = "spellLoadouts"
FLAG_LONG_REST_COMPLETED = "longRestCompleted"
FLAG_LONG_REST_EVENT_ID = "longRestEventId"
FLAG_COLLAPSED_LEVELS = "collapsedLevels"
FLAG_PREPARED_SPELLS = "preparedSpells"
FLAG_PREPARED_SPELLS_BY_CLASS = "preparedSpellsByClass"
FLAG_PREVIOUS_LEVEL = "previousLevel"
FLAG_PREVIOUS_CANTRIP_MAX = "previousCantripMax"
FLAG_CANTRIP_SWAP_TRACKING = "cantripSwapTracking"
FLAG_SWAP_TRACKING = "swapTracking"
FLAG_MODULE_RITUAL = "isModuleRitual"

CLASS_SCOPED_FLAGS = (
    FLAG_CLASS_RULES,
    FLAG_PREPARED_SPELLS_BY_CLASS,
    FLAG_WIZARD_COPIED_SPELLS,
    FLAG_WIZARD_KNOWN_SPELLS,
    FLAG_PREVIOUS_LEVEL,
    FLAG_PREVIOUS_CANTRIP_MAX,
    FLAG_CANTRIP_SWAP_TRACKING,
    FLAG_SWAP_TRACKING,
)
"""Flags holding a ``{classId: ...}`` mapping, pruned when a class disappears."""

# =============================================================================
# World Setting Keys
# =============================================================================

SETTING_INDEXED_COMPENDIUMS = "indexedCompendiums"
SETTING_SPELLCASTING_RULE_SET = "spellcastingRuleSet"
SETTING_DEFAULT_ENFORCEMENT_BEHAVIOR = "defaultEnforcementBehavior"
SETTING_CUSTOM_SPELL_MAPPINGS = "customSpellMappings"
SETTING_CANTRIP_SCALE_VALUES = "cantripScaleValues"
SETTING_CONSUME_SCROLLS_WHEN_LEARNING = "consumeScrollsWhenLearning"
SETTING_DEDUCT_SPELL_LEARNING_COST = "deductSpellLearningCost"
SETTING_SPELL_COMPARISON_MAX = "spellComparisonMax"
SETTING_FILTER_CONFIGURATION = "filterConfiguration"
SETTING_HIDDEN_SPELL_LISTS = "hiddenSpellLists"
SETTING_ADVANCED_SEARCH_PREFIX = "advancedSearchPrefix"

# =============================================================================
# Class Identifiers
# =============================================================================

CLASS_ARTIFICER = "artificer"
CLASS_BARD = "bard"
CLASS_CLERIC = "cleric"
CLASS_DRUID = "druid"
CLASS_PALADIN = "paladin"
CLASS_RANGER = "ranger"
CLASS_SORCERER = "sorcerer"
CLASS_WARLOCK = "warlock"
CLASS_WIZARD = "wizard"

CANTRIPLESS_CLASSES = frozenset({CLASS_PALADIN, CLASS_RANGER})
"""Classes whose default rules hide cantrips."""

# =============================================================================
# Rules
# =============================================================================

CLASS_RULES_VERSION = 2
"""Schema version stamped on stored class rules (``_version``)."""

DEFAULT_COST_PER_LEVEL = 50
"""Gold cost per spell level when copying into a wizard spellbook."""

DEFAULT_HOURS_PER_LEVEL = 2
"""Hours per spell level when copying into a wizard spellbook."""

MAX_SPELL_LEVEL = 9
"""Highest spell level."""

SPELL_LEVEL_NAMES = {
    0: "Cantrip",
    1: "1st Level",
    2: "2nd Level",
    3: "3rd Level",
    4: "4th Level",
    5: "5th Level",
    6: "6th Level",
    7: "7th Level",
    8: "8th Level",
    9: "9th Level",
}

# =============================================================================
# Currency (gold-piece conversion rates)
# =============================================================================

BASE_CURRENCY = "gp"
"""Denomination with conversion rate 1."""

CURRENCY_CONVERSION = {
    "pp": 0.1,
    "gp": 1,
    "ep": 2,
    "sp": 10,
    "cp": 100,
}
"""How many units of each denomination make one gold piece."""

# =============================================================================
# Filters
# =============================================================================

DEFAULT_FILTER_CONFIG_VERSION = "0.10.0"
"""Version of the default filter configuration."""

DEFAULT_FILTER_IDS = (
    "name",
    "level",
    "school",
    "castingTime",
    "range",
    "damageType",
    "condition",
    "requiresSave",
    "concentration",
    "materialComponents",
    "prepared",
    "ritual",
    "favorited",
)

FEET_PER_MILE = 5280
METERS_PER_FOOT = 0.3048
