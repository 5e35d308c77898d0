"""Spell preparation and learning engine.

Submodules:
    rules: Per-class rules under the legacy and modern rule sets
    spell_lists: Class spell-list resolution
    wizard: Wizard spellbooks (known spells, free slots, copy costs)
    cantrips: Cantrip maxima and swap validation
    preparation: Spell preparation validation and view status
    windows: Level-up and long-rest swap windows
    rituals: Ritual casting and injected ritual copies
    scrolls: Learning spells from scrolls
    loadouts: Saved preparation loadouts
    commit: Saving a session to the actor
    state: The per-actor editing session
    loop: Single-worker action queue

Example:
    >>> from spellbook.engine import SpellbookLoop, SpellbookState, TogglePrepare
    >>>
    >>> state = SpellbookState(env, "actor-1")
    >>> await state.initialize()
    >>> loop = SpellbookLoop(state)
    >>> await loop.start()
    >>> await loop.submit(TogglePrepare("wizard", uuid, True))
"""

from __future__ import annotations

from spellbook.engine.cantrips import CantripManager
from spellbook.engine.commit import (
    AllowedViolation,
    ClassPlan,
    CommitResult,
    PreparationEntry,
    SaveCommitPipeline,
)
from spellbook.engine.loadouts import LoadoutChange, LoadoutStore, capture_configuration, plan_application
from spellbook.engine.loop import (
    Action,
    ActionResult,
    ActionStatus,
    ApplyLoadout,
    Commit,
    DeleteLoadout,
    FilterSpells,
    LearnFromScroll,
    LearnSpell,
    Render,
    SaveLoadout,
    SpellbookLoop,
    ToggleLevel,
    TogglePrepare,
)
from spellbook.engine.preparation import PreparationValidator
from spellbook.engine.rituals import RitualManager
from spellbook.engine.rules import RuleSetRegistry, class_defaults
from spellbook.engine.scrolls import ScrollLearning, ScrollScanner, ScrollSpell
from spellbook.engine.spell_lists import ResolvedSpellList, SpellListResolver
from spellbook.engine.state import PendingPreparation, SpellbookState, ToggleResult
from spellbook.engine.windows import SwapSession, SwapWindow, TransitionDecision, begin_long_rest
from spellbook.engine.wizard import WizardSpellbook


__all__ = [
    # Components
    "RuleSetRegistry",
    "class_defaults",
    "SpellListResolver",
    "ResolvedSpellList",
    "WizardSpellbook",
    "CantripManager",
    "PreparationValidator",
    "RitualManager",
    "ScrollScanner",
    "ScrollSpell",
    "ScrollLearning",
    "LoadoutStore",
    "LoadoutChange",
    "capture_configuration",
    "plan_application",
    "SaveCommitPipeline",
    "PreparationEntry",
    "AllowedViolation",
    "ClassPlan",
    "CommitResult",
    # Windows
    "SwapSession",
    "SwapWindow",
    "TransitionDecision",
    "begin_long_rest",
    # State
    "SpellbookState",
    "PendingPreparation",
    "ToggleResult",
    # Loop
    "SpellbookLoop",
    "Action",
    "ActionResult",
    "ActionStatus",
    "TogglePrepare",
    "LearnSpell",
    "LearnFromScroll",
    "ApplyLoadout",
    "SaveLoadout",
    "DeleteLoadout",
    "ToggleLevel",
    "FilterSpells",
    "Commit",
    "Render",
]
