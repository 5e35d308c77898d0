"""Spellbook state.

``SpellbookState`` owns the editing session of one actor: the projected
tab of every spellcasting class (plus a wizardbook tab for each
wizard-enabled class), the pending checkbox changes, the swap sessions
and the rule violations that ``notifyGM`` let through. It is the single
source of truth; views only receive render requests through the
``render_sink`` callable.

Example:
    >>> state = SpellbookState(env, "actor-1")
    >>> await state.initialize()
    >>> state.toggle("wizard", uuid, True)
    >>> result = await state.commit()
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from spellbook.core.config import get_settings
from spellbook.core.constants import FLAG_COLLAPSED_LEVELS, MODULE_ID
from spellbook.core.exceptions import SpellbookStateError, SpellbookValidationError, TransitionRejected
from spellbook.core.logging import get_logger
from spellbook.engine.cantrips import CantripManager, counts_as_cantrip
from spellbook.engine.commit import AllowedViolation, CommitResult, PreparationEntry, SaveCommitPipeline
from spellbook.engine.loadouts import LoadoutChange, LoadoutStore, capture_configuration, plan_application
from spellbook.engine.preparation import PreparationValidator, counts_against_maximum, owned_for_class
from spellbook.engine.rituals import RitualManager, can_cast_as_ritual
from spellbook.engine.rules import RuleSetRegistry
from spellbook.engine.scrolls import ScrollLearning, ScrollScanner, ScrollSpell
from spellbook.engine.spell_lists import ResolvedSpellList, SpellListResolver
from spellbook.engine.windows import SwapSession, SwapWindow
from spellbook.engine.wizard import WizardSpellbook
from spellbook.filters import FilterEngine, FilterState, group_by_level
from spellbook.host.environment import Environment
from spellbook.models import (
    Actor,
    ClassTabData,
    EnforcementBehavior,
    Loadout,
    NotificationLevel,
    PreparationCount,
    RejectionReason,
    RuleSet,
    SpellDoc,
    SpellView,
    SwapKind,
    WindowType,
    WizardbookTabData,
    pack_id_from_uuid,
)


logger = get_logger(__name__)

RenderSink = Callable[[list[str] | None], None]
"""Receives render requests; ``None`` means every part."""

_WINDOW_LABELS = {
    WindowType.LEVEL_UP: "level up",
    WindowType.LONG_REST: "long rest",
}


# =============================================================================
# Session state
# =============================================================================


@dataclass
class PendingPreparation:
    """Unsaved checkbox changes of one class.

    Attributes:
        to_prepare: UUIDs checked that are not saved as prepared.
        to_unprepare: UUIDs unchecked that are saved as prepared.
    """

    to_prepare: set[str] = field(default_factory=set)
    to_unprepare: set[str] = field(default_factory=set)

    @property
    def dirty(self) -> bool:
        return bool(self.to_prepare or self.to_unprepare)

    def override(self, uuid: str) -> bool | None:
        """The pending prepared state of a spell, None if unchanged."""
        if uuid in self.to_prepare:
            return True
        if uuid in self.to_unprepare:
            return False
        return None

    def set(self, uuid: str, checked: bool, was_prepared: bool) -> None:
        self.to_prepare.discard(uuid)
        self.to_unprepare.discard(uuid)
        if checked and not was_prepared:
            self.to_prepare.add(uuid)
        elif not checked and was_prepared:
            self.to_unprepare.add(uuid)

    def clear(self) -> None:
        self.to_prepare.clear()
        self.to_unprepare.clear()


@dataclass(frozen=True)
class ToggleResult:
    """Outcome of one checkbox change.

    Attributes:
        class_id: Class tab of the change.
        uuid: Spell UUID.
        checked: Requested state.
        changed: False when the checkbox already had that state.
        violation: Set when the rules rejected the change but ``notifyGM``
            let it through.
    """

    class_id: str
    uuid: str
    checked: bool
    changed: bool = True
    violation: AllowedViolation | None = None


def rejection_message(
    reason: RejectionReason,
    class_name: str,
    window: SwapWindow | None = None,
    *,
    is_cantrip: bool = False,
) -> str:
    """User-facing text for a rejected change."""
    noun = "cantrip" if is_cantrip else "spell"
    label = _WINDOW_LABELS.get(window.window_type) if window and window.window_type else None
    if reason == RejectionReason.AT_MAXIMUM:
        return f"{class_name}: you have reached the maximum number of prepared {noun}s."
    if reason == RejectionReason.LOCKED_MODE:
        return "That spell is always prepared and cannot be changed."
    if reason == RejectionReason.CANTRIPS_HIDDEN:
        return f"{class_name} does not use cantrips."
    if reason == RejectionReason.NOT_IN_SPELLBOOK:
        return f"{class_name}: that spell is not in your spellbook."
    if reason == RejectionReason.LOCKED_NO_SWAPPING:
        return f"{class_name} cannot swap out a saved {noun}."
    if reason == RejectionReason.WINDOW_CLOSED:
        return f"{class_name}: a {noun} can only be swapped after a {label or 'level up or long rest'}."
    if reason == RejectionReason.WINDOW_CONSUMED:
        return f"{class_name}: you already swapped a {noun} this {label or 'window'}."
    return f"{class_name}: only one {noun} can be swapped per {label or 'window'}."


# =============================================================================
# State
# =============================================================================


class SpellbookState:
    """Aggregates the engine components behind one actor's spellbook.

    Attributes:
        actor_id: The edited actor.
        class_tabs: Projected tab per spellcasting class.
        wizard_tabs: Projected wizardbook tab per wizard-enabled class.
        pending: Unsaved changes per class.
        sessions: Swap tracking per class and kind.
        violations: Rejected changes allowed under ``notifyGM``.
        collapsed_levels: Spell levels collapsed in every tab.
    """

    def __init__(
        self,
        env: Environment,
        actor_id: str,
        *,
        render_sink: RenderSink | None = None,
        favorites: Iterable[str] = (),
        metric: bool = False,
    ) -> None:
        self._env = env
        self.actor_id = actor_id
        self.rules = RuleSetRegistry(env)
        self.lists = SpellListResolver(env, self.rules)
        self.cantrips = CantripManager(env, self.rules)
        self.validator = PreparationValidator(env, self.rules, self.cantrips)
        self.rituals = RitualManager(env)
        self.scrolls = ScrollScanner(env, self.rules)
        self.loadouts = LoadoutStore(env)
        self.pipeline = SaveCommitPipeline(env, self.rules, self.cantrips, self.validator, self.rituals)

        self._gate = asyncio.Semaphore(get_settings().engine.fetch_concurrency)
        self._render_sink = render_sink
        self._metric = metric
        self.favorites: set[str] = set(favorites)

        self._actor: Actor | None = None
        self._spell_cache: dict[str, SpellDoc] = {}
        self._wizards: dict[str, WizardSpellbook] = {}
        self._class_docs: dict[str, list[SpellDoc]] = {}
        self._wizard_docs: dict[str, list[SpellDoc]] = {}
        self._lists: dict[str, ResolvedSpellList] = {}
        self._is_loading = False

        self.pending: dict[str, PendingPreparation] = defaultdict(PendingPreparation)
        self.sessions: dict[tuple[str, SwapKind], SwapSession] = {}
        self.violations: list[AllowedViolation] = []
        self.class_tabs: dict[str, ClassTabData] = {}
        self.wizard_tabs: dict[str, WizardbookTabData] = {}
        self.collapsed_levels: set[int] = set()

    @property
    def actor(self) -> Actor:
        if self._actor is None:
            raise SpellbookStateError("Spellbook state is not initialized", details={"actor_id": self.actor_id})
        return self._actor

    @property
    def env(self) -> Environment:
        return self._env

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def is_dirty(self) -> bool:
        return any(p.dirty for p in self.pending.values())

    def wizard(self, class_id: str) -> WizardSpellbook:
        """The spellbook of a wizard-enabled class.

        Raises:
            SpellbookStateError: If the class keeps no spellbook.
        """
        wizard = self._wizards.get(class_id)
        if wizard is None:
            raise SpellbookStateError("Class has no wizard spellbook", details={"class_id": class_id})
        return wizard

    # =========================================================================
    # Loading
    # =========================================================================

    async def initialize(self) -> bool:
        """Load the actor and project every tab.

        Returns:
            False when a load is already running; the request is dropped.
        """
        if self._is_loading:
            logger.debug("Spellbook load already in progress", actor_id=self.actor_id)
            return False
        self._is_loading = True
        try:
            actor = await self._env.get_actor(self.actor_id)
            pruned = await self.rules.prune_stale_classes(actor)
            written = await self.rules.initialize_new_classes(actor)
            if pruned or written:
                actor = await self._env.get_actor(self.actor_id)
            self._actor = actor
            self.collapsed_levels = {int(level) for level in actor.get_flag(FLAG_COLLAPSED_LEVELS) or []}
            self._spell_cache.clear()
            self._wizards.clear()
            self._class_docs.clear()
            self._wizard_docs.clear()
            self._lists.clear()
            for class_id in actor.spellcasting_classes:
                await self._load_class(actor, class_id)
            for class_id in [cid for cid in self.pending if cid not in actor.spellcasting_classes]:
                del self.pending[class_id]
            self._project_all()
        finally:
            self._is_loading = False

        logger.info(
            "Spellbook loaded",
            actor_id=self.actor_id,
            classes=list(self.class_tabs),
            wizard_classes=list(self.wizard_tabs),
        )
        self._request_render(None)
        return True

    async def _load_class(self, actor: Actor, class_id: str) -> None:
        rules = self.rules.get_class_rules(actor, class_id)
        max_level = actor.classes[class_id].max_spell_level
        known: list[str] | None = None
        if self.rules.is_wizard_enabled(actor, class_id):
            wizard = WizardSpellbook(self._env, self.rules, actor, class_id)
            self._wizards[class_id] = wizard
            known = wizard.get_known_spells()

        resolved = await self.lists.resolve(actor, class_id, known=known)
        self._lists[class_id] = resolved
        book = resolved
        if known is not None and rules.force_wizard_mode:
            book = await self.lists.resolve(actor, class_id, for_wizardbook=True)
        owned = [s for s in actor.spells if s.source_class == class_id]
        docs = await self.fetch_spells(
            [*resolved.uuids, *book.uuids, *(known or []), *(s.uuid for s in owned)]
        )
        for spell in owned:
            if spell.uuid not in docs:
                docs[spell.uuid] = spell.to_doc()

        def by_level(uuids: Iterable[str]) -> list[SpellDoc]:
            return sorted((docs[u] for u in uuids if u in docs), key=lambda d: (d.level, d.name.lower()))

        list_docs = by_level(resolved.uuids)
        if known is not None:
            book_docs = by_level(book.uuids)
            class_docs = [docs[u] for u in known if u in docs and docs[u].level <= max_level]
            class_docs += [d for d in book_docs if d.level == 0]
            self._wizard_docs[class_id] = [d for d in book_docs if 0 < d.level <= max_level]
        else:
            class_docs = [d for d in list_docs if d.level <= max_level]
        if not rules.cantrips_visible:
            class_docs = [d for d in class_docs if d.level > 0]
        class_docs += [docs[s.uuid] for s in owned]
        self._class_docs[class_id] = list({d.uuid: d for d in class_docs}.values())

    async def fetch_spells(self, uuids: Iterable[str]) -> dict[str, SpellDoc]:
        """Fetch spell documents, batched per compendium pack.

        Packs are indexed first; whatever they do not cover is resolved
        one by one. Every host call goes through the fetch gate. UUIDs that
        cannot be resolved are logged and left out.
        """
        wanted = list(dict.fromkeys(uuids))
        missing = [uuid for uuid in wanted if uuid not in self._spell_cache]
        by_pack: dict[str, list[str]] = defaultdict(list)
        for uuid in missing:
            pack_id = pack_id_from_uuid(uuid)
            if pack_id is not None:
                by_pack[pack_id].append(uuid)

        async def index(pack_id: str) -> list[Any]:
            async with self._gate:
                return await self._env.index_pack(pack_id, ("system.level", "system.school"))

        for entries in await asyncio.gather(*(index(pack_id) for pack_id in by_pack)):
            for entry in entries:
                if isinstance(entry, SpellDoc):
                    self._spell_cache.setdefault(entry.uuid, entry)

        async def resolve(uuid: str) -> Any:
            async with self._gate:
                return await self._env.resolve_uuid(uuid)

        leftovers = [uuid for uuid in missing if uuid not in self._spell_cache]
        for uuid, document in zip(leftovers, await asyncio.gather(*(resolve(u) for u in leftovers))):
            if isinstance(document, SpellDoc):
                self._spell_cache[uuid] = document
            else:
                logger.warning("Spell could not be resolved", actor_id=self.actor_id, uuid=uuid)

        return {uuid: self._spell_cache[uuid] for uuid in wanted if uuid in self._spell_cache}

    # =========================================================================
    # Projection
    # =========================================================================

    def _project_all(self) -> None:
        self.class_tabs.clear()
        self.wizard_tabs.clear()
        for class_id in self._class_docs:
            self._project_class(class_id)

    def _project_class(self, class_id: str) -> None:
        actor = self.actor
        rules = self.rules.get_class_rules(actor, class_id)
        enforced = self.rules.enforcement_behavior(actor) == EnforcementBehavior.ENFORCED
        wizard = self._wizards.get(class_id)
        known = set(wizard.get_known_spells()) if wizard else None
        on_list = self._lists[class_id].uuids
        pending = self.pending.get(class_id)

        views: list[SpellView] = []
        for doc in self._class_docs[class_id]:
            is_known = doc.uuid in known if known is not None and doc.level > 0 else None
            status = self.validator.resolve_status(
                actor,
                doc,
                class_id,
                rules=rules,
                is_known=is_known,
                pending=pending.override(doc.uuid) if pending else None,
                enforced=enforced,
            )
            owned = owned_for_class(actor, doc.uuid, class_id)
            views.append(
                SpellView(
                    doc=doc,
                    source_class=class_id,
                    preparation=status,
                    was_prepared=bool(owned and owned.prepared),
                    in_wizard_spellbook=known is not None and doc.uuid in known,
                    can_cast_as_ritual=can_cast_as_ritual(
                        doc,
                        rules,
                        prepared=status.prepared,
                        available=doc.uuid in known if known is not None else doc.uuid in on_list,
                    ),
                    favorited=doc.uuid in self.favorites,
                )
            )

        class_state = actor.classes[class_id]
        self.class_tabs[class_id] = ClassTabData(
            class_id=class_id,
            class_name=class_state.name or class_id,
            rules=rules,
            spell_levels=group_by_level(views, self.collapsed_levels),
            spell_preparation=PreparationCount(
                current=self.ui_count(class_id, cantrips=False),
                maximum=self.validator.max_prepared(actor, class_id),
            ),
            cantrip_preparation=PreparationCount(
                current=self.ui_count(class_id, cantrips=True),
                maximum=self.cantrips.max_cantrips(actor, class_id),
            ),
            wizard_stats=wizard.stats() if wizard else None,
            notice=self._lists[class_id].notice,
        )
        if wizard is not None:
            self._project_wizardbook(class_id, wizard)

    def _project_wizardbook(self, class_id: str, wizard: WizardSpellbook) -> None:
        free = wizard.get_free_slots() > 0
        views = [
            SpellView(
                doc=doc,
                source_class=class_id,
                in_wizard_spellbook=wizard.is_known(doc.uuid),
                can_add_to_spellbook=not wizard.is_known(doc.uuid),
                favorited=doc.uuid in self.favorites,
                copy_cost=0 if free else wizard.copy_cost(doc),
                copy_time=wizard.copy_time(doc),
            )
            for doc in self._wizard_docs.get(class_id, [])
        ]
        self.wizard_tabs[class_id] = WizardbookTabData(
            class_id=class_id,
            spell_levels=group_by_level(views, self.collapsed_levels),
            wizard_stats=wizard.stats(),
        )

    def ui_count(self, class_id: str, *, cantrips: bool) -> int:
        """Checked cantrips or spells of a class, including pending changes."""
        actor = self.actor
        counts = counts_as_cantrip if cantrips else counts_against_maximum
        saved = {s.uuid for s in actor.spells if counts(s, class_id)}
        pending = self.pending.get(class_id)
        if pending is None:
            return len(saved)
        added = {uuid for uuid in pending.to_prepare if (self._level_of(class_id, uuid) == 0) == cantrips}
        return len((saved | added) - pending.to_unprepare)

    def _level_of(self, class_id: str, uuid: str) -> int | None:
        doc = self._find_doc(class_id, uuid)
        return doc.level if doc is not None else None

    def _find_doc(self, class_id: str, uuid: str) -> SpellDoc | None:
        return next((d for d in self._class_docs.get(class_id, []) if d.uuid == uuid), None)

    def _request_render(self, parts: list[str] | None) -> None:
        if self._render_sink is not None:
            self._render_sink(parts)

    # =========================================================================
    # Preparation
    # =========================================================================

    def toggle(self, class_id: str, uuid: str, checked: bool) -> ToggleResult:
        """Check or uncheck a spell in a class tab.

        Rejections are surfaced per the actor's enforcement behavior:
        ``enforced`` raises, ``notifyGM`` records the violation and warns,
        ``unenforced`` lets the change through silently. Locked modes,
        hidden cantrips and spells missing from a spellbook are always
        rejected.

        Raises:
            TransitionRejected: If the change is not admitted.
            SpellbookValidationError: If the spell is not in the class tab.
        """
        actor = self.actor
        doc = self._find_doc(class_id, uuid)
        if doc is None:
            raise SpellbookValidationError(
                "Spell is not shown for this class",
                field_name="uuid",
                invalid_value=uuid,
                details={"class_id": class_id},
            )

        owned = owned_for_class(actor, uuid, class_id)
        was_prepared = bool(owned and owned.prepared)
        pending = self.pending[class_id]
        current = pending.override(uuid)
        if (was_prepared if current is None else current) == checked:
            return ToggleResult(class_id=class_id, uuid=uuid, checked=checked, changed=False)

        is_cantrip = doc.level == 0
        kind = SwapKind.CANTRIP if is_cantrip else SwapKind.SPELL
        session = self.sessions.setdefault((class_id, kind), SwapSession())
        if is_cantrip:
            decision = self.cantrips.can_change_cantrip_status(
                actor,
                doc,
                checking=checked,
                class_id=class_id,
                ui_current_count=self.ui_count(class_id, cantrips=True),
                session=session,
                was_prepared=was_prepared,
                owned=owned,
            )
        else:
            wizard = self._wizards.get(class_id)
            decision = self.validator.can_change_spell_status(
                actor,
                doc,
                checking=checked,
                was_prepared=was_prepared,
                class_id=class_id,
                current_prepared=self.ui_count(class_id, cantrips=False),
                session=session,
                owned=owned,
                is_known=wizard.is_known(uuid) if wizard else None,
            )

        violation = None
        if not decision.allowed and decision.reason is not None:
            window = (
                self.cantrips.swap_window(actor, class_id)
                if is_cantrip
                else self.validator.swap_window(actor, class_id)
            )
            class_name = actor.classes[class_id].name or class_id
            message = rejection_message(decision.reason, class_name, window, is_cantrip=is_cantrip)
            behavior = self.rules.enforcement_behavior(actor)
            if decision.is_hard or behavior == EnforcementBehavior.ENFORCED:
                logger.info("Preparation change rejected", class_id=class_id, uuid=uuid, reason=str(decision.reason))
                raise TransitionRejected(message, reason=decision.reason, class_id=class_id)
            if behavior == EnforcementBehavior.NOTIFY_GM:
                violation = AllowedViolation(
                    class_id=class_id,
                    uuid=uuid,
                    name=doc.name,
                    checking=checked,
                    reason=decision.reason,
                    is_cantrip=is_cantrip,
                )
                self.violations.append(violation)
                self._env.notify(NotificationLevel.WARN, f"{message} The GM will be notified.")

        pending.set(uuid, checked, was_prepared)
        session.record(uuid, checking=checked, was_prepared=was_prepared)
        self._project_class(class_id)
        self._request_render([f"class:{class_id}"])
        return ToggleResult(class_id=class_id, uuid=uuid, checked=checked, violation=violation)

    def preparation_entries(self) -> list[PreparationEntry]:
        """Checkbox states of every class tab, for saving."""
        return [
            PreparationEntry(
                spell=view.doc,
                class_id=class_id,
                was_prepared=view.was_prepared,
                is_prepared=view.is_prepared,
                mode=view.preparation.preparation_mode,
            )
            for class_id, tab in self.class_tabs.items()
            for view in tab.all_spells()
        ]

    async def commit(self) -> CommitResult:
        """Save the session.

        Committed classes drop their pending changes, swap sessions and
        violations; failed classes keep them so the save can be retried.
        """
        if self._actor is None:
            raise SpellbookStateError("Cannot save before the spellbook is loaded", details={"actor_id": self.actor_id})
        result = await self.pipeline.commit(
            self.actor_id,
            self.preparation_entries(),
            sessions=self.sessions,
            violations=self.violations,
        )
        for class_id in result.committed:
            self.pending.pop(class_id, None)
            for kind in SwapKind:
                self.sessions.pop((class_id, kind), None)
        self.violations = [v for v in self.violations if v.class_id not in result.committed]
        self._invalidate()
        await self.initialize()
        return result

    def reset_session(self, class_id: str | None = None) -> None:
        """Discard unsaved changes, for one class or all of them."""
        classes = [class_id] if class_id else list(self.class_tabs)
        for cid in classes:
            self.pending.pop(cid, None)
            for kind in SwapKind:
                self.sessions.pop((cid, kind), None)
        self.violations = [v for v in self.violations if v.class_id not in classes]
        if self._actor is not None:
            for cid in classes:
                if cid in self._class_docs:
                    self._project_class(cid)
        self._request_render(None)

    def _invalidate(self) -> None:
        self.lists.invalidate(self.actor_id)
        self.loadouts.invalidate(self.actor_id)

    # =========================================================================
    # Wizard learning
    # =========================================================================

    async def learn_spell(self, class_id: str, uuid: str, *, is_free: bool | None = None) -> bool:
        """Copy a spell into a class's spellbook and reload."""
        learned = await self.wizard(class_id).copy_spell(uuid, is_free=is_free)
        if learned:
            await self.initialize()
        return learned

    async def scan_scrolls(self) -> list[ScrollSpell]:
        actor = await self._env.get_actor(self.actor_id)
        return await self.scrolls.scan(actor)

    async def learn_from_scroll(self, class_id: str, scroll_item_id: str, spell_uuid: str) -> ScrollLearning | None:
        record = await self.scrolls.learn_from_scroll(self.wizard(class_id), scroll_item_id, spell_uuid)
        if record is not None:
            await self.initialize()
        return record

    async def undo_scroll_learning(self, record: ScrollLearning) -> None:
        await self.scrolls.undo_learning(self.wizard(record.class_id), record)
        await self.initialize()

    # =========================================================================
    # Loadouts
    # =========================================================================

    async def list_loadouts(self, class_id: str | None = None) -> list[Loadout]:
        return await self.loadouts.list_loadouts(self.actor_id, class_id)

    def capture_loadout(self, class_id: str) -> list[str]:
        """Prepared spells of a class tab that a loadout would record."""
        return capture_configuration(self.class_tabs[class_id].all_spells())

    async def save_loadout(
        self,
        class_id: str,
        name: str,
        *,
        description: str = "",
        loadout_id: str | None = None,
    ) -> Loadout:
        return await self.loadouts.save_loadout(
            self.actor_id,
            name,
            self.capture_loadout(class_id),
            description=description,
            class_id=class_id,
            loadout_id=loadout_id,
        )

    async def delete_loadout(self, loadout_id: str) -> bool:
        return await self.loadouts.delete_loadout(self.actor_id, loadout_id)

    async def apply_loadout(self, class_id: str, loadout_id: str) -> list[LoadoutChange]:
        """Set the pending state of a class to match a loadout.

        Checkboxes are set directly, without swap-window or maximum
        checks. Locked, disabled and cantrip entries are left alone.

        Returns:
            The changes that were applied.
        """
        loadout = await self.loadouts.load_loadout(self.actor_id, loadout_id)
        if loadout is None:
            self._env.notify(NotificationLevel.WARN, "That loadout no longer exists.")
            return []

        views = {view.uuid: view for view in self.class_tabs[class_id].all_spells()}
        applied = plan_application(loadout, views.values())
        pending = self.pending[class_id]
        for change in applied:
            pending.set(change.uuid, change.prepare, views[change.uuid].was_prepared)
        if applied:
            self._project_class(class_id)
            self._request_render([f"class:{class_id}"])

        self._env.notify(NotificationLevel.INFO, f"Applied loadout {loadout.name}.")
        logger.info("Loadout applied", class_id=class_id, loadout_id=loadout_id, changes=len(applied))
        return applied

    # =========================================================================
    # View options
    # =========================================================================

    async def toggle_level(self, level: int) -> bool:
        """Collapse or expand a spell level in every tab.

        Returns:
            True if the level is now collapsed.
        """
        if level in self.collapsed_levels:
            self.collapsed_levels.discard(level)
        else:
            self.collapsed_levels.add(level)
        await self._env.set_flag(
            self.actor_id,
            MODULE_ID,
            FLAG_COLLAPSED_LEVELS,
            [str(lvl) for lvl in sorted(self.collapsed_levels)],
        )
        self._project_all()
        self._request_render(None)
        return level in self.collapsed_levels

    def filter_spells(self, class_id: str, state: FilterState, *, wizardbook: bool = False) -> list[SpellView]:
        tabs = self.wizard_tabs if wizardbook else self.class_tabs
        tab = tabs.get(class_id)
        if tab is None:
            return []
        views = [spell for group in tab.spell_levels for spell in group.spells]
        return FilterEngine(self._env.world_settings(), metric=self._metric).filter(views, state)

    # =========================================================================
    # Rules
    # =========================================================================

    async def change_rule_set(self, rule_set: str | RuleSet) -> None:
        actor = await self._env.get_actor(self.actor_id)
        await self.rules.apply_rule_set(actor, rule_set)
        self._invalidate()
        await self.initialize()

    async def update_class_rules(self, class_id: str, changes: dict[str, Any]) -> list[str]:
        """Change one class's rules and reload.

        Returns:
            Names of spells removed by a custom list change.
        """
        actor = await self._env.get_actor(self.actor_id)
        removed = await self.rules.update_class_rules(actor, class_id, changes)
        self._invalidate()
        await self.initialize()
        return removed

    async def set_enforcement(self, behavior: EnforcementBehavior | None) -> None:
        await self.rules.set_enforcement_behavior(self.actor_id, behavior)
        self._actor = await self._env.get_actor(self.actor_id)
        self._project_all()
        self._request_render(None)

    async def begin_long_rest(self) -> str:
        """Open the long-rest swap windows and reload."""
        event_id = await self.cantrips.begin_long_rest(self.actor_id)
        await self.initialize()
        return event_id


__all__ = [
    "PendingPreparation",
    "RenderSink",
    "SpellbookState",
    "ToggleResult",
    "rejection_message",
]
