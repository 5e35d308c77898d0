"""Enumeration types for the spellbook engine.

Values are the exact strings persisted in actor flags and world settings,
so members compare equal to the raw stored data.
"""

from __future__ import annotations

from enum import StrEnum


class RuleSet(StrEnum):
    """Canonical spellcasting rule sets."""

    LEGACY = "legacy"
    """Original rules: cantrips swap on level-up, rituals must be prepared."""

    MODERN = "modern"
    """Revised rules: swaps on long rest, every known ritual castable."""


class EnforcementBehavior(StrEnum):
    """How rejected preparation changes are surfaced."""

    ENFORCED = "enforced"
    """Hard reject."""

    NOTIFY_GM = "notifyGM"
    """Allow, but notify the GM."""

    UNENFORCED = "unenforced"
    """Allow silently."""


class SwapMode(StrEnum):
    """When a previously selected cantrip or spell may be swapped out."""

    NONE = "none"
    LEVEL_UP = "levelUp"
    LONG_REST = "longRest"


class RitualMode(StrEnum):
    """Ritual casting policy of a class."""

    NONE = "none"
    """No ritual casting."""

    PREPARED = "prepared"
    """Only currently prepared ritual spells are castable as rituals."""

    ALWAYS = "always"
    """Every known ritual spell is castable as a ritual."""


class PreparationMode(StrEnum):
    """Preparation mode of an owned spell."""

    PREPARED = "prepared"
    PACT = "pact"
    RITUAL = "ritual"
    ATWILL = "atwill"
    INNATE = "innate"
    ALWAYS = "always"
    GRANTED = "granted"

    @property
    def is_locked(self) -> bool:
        """Modes the user never toggles and that never count against a maximum."""
        return self in LOCKED_MODES

    @property
    def is_user_prepared(self) -> bool:
        """Modes created and removed by the save pipeline."""
        return self in (PreparationMode.PREPARED, PreparationMode.PACT)


LOCKED_MODES = frozenset(
    {
        PreparationMode.ALWAYS,
        PreparationMode.GRANTED,
        PreparationMode.ATWILL,
        PreparationMode.INNATE,
    }
)


class SpellcastingProgression(StrEnum):
    """Spell slot progression of a class or subclass."""

    NONE = "none"
    FULL = "full"
    HALF = "half"
    THIRD = "third"
    PACT = "pact"
    ARTIFICER = "artificer"
    LEVELED = "leveled"


class SpellcastingType(StrEnum):
    """Slot family used by a class's spells."""

    SPELL = "spell"
    PACT = "pact"
    LEVELED = "leveled"


class SpellSchool(StrEnum):
    """Schools of magic, by their short system key."""

    ABJURATION = "abj"
    CONJURATION = "con"
    DIVINATION = "div"
    ENCHANTMENT = "enc"
    EVOCATION = "evo"
    ILLUSION = "ill"
    NECROMANCY = "nec"
    TRANSMUTATION = "trs"

    @property
    def full_name(self) -> str:
        """Get the full school name.

        Returns:
            The school's name (e.g., 'Evocation' for EVO).
        """
        return self.name.capitalize()


class WizardSpellSource(StrEnum):
    """How an entry reached a wizard's spellbook."""

    INITIAL = "initial"
    FREE = "free"
    COPIED = "copied"
    SCROLL = "scroll"
    LEVEL_UP = "levelUp"


class SwapKind(StrEnum):
    """Which selection a swap window governs."""

    CANTRIP = "cantrip"
    SPELL = "spell"


class WindowType(StrEnum):
    """Lifecycle event that opens a swap window."""

    LEVEL_UP = "levelUp"
    LONG_REST = "longRest"


class RejectionReason(StrEnum):
    """Why a preparation transition is not admitted by the rules."""

    AT_MAXIMUM = "atMaximum"
    """Checking would exceed the class maximum."""

    LOCKED_MODE = "lockedMode"
    """The spell is always prepared, granted, at-will or innate."""

    CANTRIPS_HIDDEN = "cantripsHidden"
    """The class does not use cantrips."""

    LOCKED_NO_SWAPPING = "lockedNoSwapping"
    """The class's swap mode is ``none`` and the selection is saved."""

    WINDOW_CLOSED = "windowClosed"
    """Swapping requires a level-up or long rest window that is not open."""

    WINDOW_CONSUMED = "windowConsumed"
    """The swap for the current window was already used."""

    ONLY_ONE_SWAP = "onlyOneSwap"
    """Another selection was already swapped out this session."""

    NOT_IN_SPELLBOOK = "notInSpellbook"
    """Wizard classes can only prepare spells recorded in their spellbook."""

    @property
    def is_hard(self) -> bool:
        """Reasons that block the change regardless of enforcement behavior."""
        return self in (
            RejectionReason.LOCKED_MODE,
            RejectionReason.CANTRIPS_HIDDEN,
            RejectionReason.NOT_IN_SPELLBOOK,
        )


class DisabledReason(StrEnum):
    """Why a spell's preparation checkbox is disabled in a view."""

    ALWAYS_PREPARED = "alwaysPrepared"
    GRANTED = "granted"
    INNATE = "innate"
    ATWILL = "atwill"
    PREPARED_BY_OTHER_CLASS = "preparedByOtherClass"
    NOT_IN_SPELLBOOK = "notInSpellbook"
    CANTRIP_LOCKED = "cantripLocked"
    CANTRIPS_HIDDEN = "cantripsHidden"


class NotificationLevel(StrEnum):
    """Severity of a user-visible notification."""

    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class GMNotificationKind(StrEnum):
    """Kinds of GM-visible preparation notices."""

    OVERMAX = "overmax"
    ILLEGAL_CANTRIP_SWAP = "illegal-cantrip-swap"
    ILLEGAL_SPELL_SWAP = "illegal-spell-swap"


__all__ = [
    "RuleSet",
    "EnforcementBehavior",
    "SwapMode",
    "RitualMode",
    "PreparationMode",
    "LOCKED_MODES",
    "SpellcastingProgression",
    "SpellcastingType",
    "SpellSchool",
    "WizardSpellSource",
    "SwapKind",
    "WindowType",
    "RejectionReason",
    "DisabledReason",
    "NotificationLevel",
    "GMNotificationKind",
]
