"""Save-commit pipeline.

Turns the edited preparation state of a spellbook session into mutations
on the actor's owned spells. Classes are committed one after another;
within a class, creates run before updates and updates before deletes. A
mutation that still fails after the transient-error retries aborts the
remaining stages of its class, and the other classes still proceed.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from spellbook.core.config import get_settings
from spellbook.core.constants import (
    FLAG_MODULE_RITUAL,
    FLAG_PREPARED_SPELLS,
    FLAG_PREPARED_SPELLS_BY_CLASS,
    MODULE_ID,
)
from spellbook.core.exceptions import HostError, MutationError
from spellbook.core.logging import bind_context, clear_context, get_logger
from spellbook.engine.cantrips import CantripManager
from spellbook.engine.preparation import PreparationValidator
from spellbook.engine.rituals import RitualManager, ritual_document
from spellbook.engine.rules import RuleSetRegistry
from spellbook.engine.windows import SwapSession, SwapWindow, consume_windows, record_levels
from spellbook.engine.wizard import WizardSpellbook
from spellbook.host.environment import SPELL_KIND, Environment
from spellbook.models import (
    Actor,
    EnforcementBehavior,
    GMNotification,
    GMNotificationKind,
    NotificationLevel,
    OwnedSpell,
    PreparationMode,
    RejectionReason,
    RitualMode,
    SpellDoc,
    SwapKind,
)


logger = get_logger(__name__)


# =============================================================================
# Inputs
# =============================================================================


@dataclass(frozen=True)
class PreparationEntry:
    """One checkbox of a class tab at save time.

    Attributes:
        spell: The source spell.
        class_id: Class tab the checkbox belongs to.
        was_prepared: Saved state.
        is_prepared: State including session edits.
        mode: Preparation mode of the owned copy, if any.
    """

    spell: SpellDoc
    class_id: str
    was_prepared: bool
    is_prepared: bool
    mode: PreparationMode | None = None

    @property
    def uuid(self) -> str:
        return self.spell.uuid


@dataclass(frozen=True)
class AllowedViolation:
    """A rejected change that ``notifyGM`` enforcement let through.

    Attributes:
        class_id: Class tab of the change.
        uuid: Spell UUID.
        name: Spell name.
        checking: True if the spell was checked.
        reason: Why the rules rejected it.
        is_cantrip: Whether the spell is a cantrip.
    """

    class_id: str
    uuid: str
    name: str
    checking: bool
    reason: RejectionReason
    is_cantrip: bool

    @property
    def kind(self) -> GMNotificationKind:
        if self.reason == RejectionReason.AT_MAXIMUM:
            return GMNotificationKind.OVERMAX
        if self.is_cantrip:
            return GMNotificationKind.ILLEGAL_CANTRIP_SWAP
        return GMNotificationKind.ILLEGAL_SPELL_SWAP


# =============================================================================
# Results
# =============================================================================


@dataclass
class ClassPlan:
    """Mutations planned for one class."""

    class_id: str
    creates: list[dict[str, Any]] = field(default_factory=list)
    updates: list[dict[str, Any]] = field(default_factory=list)
    deletes: list[str] = field(default_factory=list)
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.creates or self.updates or self.deletes)


@dataclass
class CommitResult:
    """Outcome of a save.

    Attributes:
        committed: Classes whose mutations all succeeded.
        failed: Classes whose batch failed, with the error.
        plans: The mutations planned per class.
        consumed: ``(class_id, kind)`` swap windows marked as used.
        gm_notifications: Payloads sent to the GM.
    """

    committed: list[str] = field(default_factory=list)
    failed: dict[str, MutationError] = field(default_factory=dict)
    plans: dict[str, ClassPlan] = field(default_factory=dict)
    consumed: list[tuple[str, SwapKind]] = field(default_factory=list)
    gm_notifications: list[GMNotification] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failed


# =============================================================================
# Documents
# =============================================================================


def prepared_document(spell: SpellDoc, class_id: str, mode: PreparationMode) -> dict[str, Any]:
    """Owned-spell payload for a newly prepared spell."""
    return {
        "name": spell.name,
        "level": spell.level,
        "source_id": spell.uuid,
        "source_class": class_id,
        "mode": str(mode),
        "prepared": True,
        "properties": sorted(spell.properties),
    }


def _with_ritual_marker(flags: dict[str, Any], marked: bool) -> dict[str, Any]:
    scoped = dict(flags.get(MODULE_ID, {}))
    if marked:
        scoped[FLAG_MODULE_RITUAL] = True
    else:
        scoped.pop(FLAG_MODULE_RITUAL, None)
    updated = {k: v for k, v in flags.items() if k != MODULE_ID}
    if scoped:
        updated[MODULE_ID] = scoped
    return updated


# =============================================================================
# Pipeline
# =============================================================================


class SaveCommitPipeline:
    """Commits a spellbook session to the host."""

    def __init__(
        self,
        env: Environment,
        rules: RuleSetRegistry,
        cantrips: CantripManager,
        validator: PreparationValidator,
        rituals: RitualManager,
    ) -> None:
        self._env = env
        self._rules = rules
        self._cantrips = cantrips
        self._validator = validator
        self._rituals = rituals

    async def commit(
        self,
        actor_id: str,
        entries: list[PreparationEntry],
        *,
        sessions: dict[tuple[str, SwapKind], SwapSession] | None = None,
        violations: list[AllowedViolation] | None = None,
    ) -> CommitResult:
        """Save every class of the actor.

        Args:
            actor_id: Actor to write.
            entries: Checkbox states of all class tabs.
            sessions: Session swap tracking per class and kind.
            violations: Changes let through by ``notifyGM`` enforcement.

        Returns:
            Per-class outcome. Failed classes keep their pending state on
            the caller's side so the save can be retried.
        """
        bind_context(actor_id=actor_id)
        try:
            return await self._commit(actor_id, entries, sessions or {}, violations or [])
        finally:
            clear_context()

    async def _commit(
        self,
        actor_id: str,
        entries: list[PreparationEntry],
        sessions: dict[tuple[str, SwapKind], SwapSession],
        violations: list[AllowedViolation],
    ) -> CommitResult:
        result = CommitResult()
        initial = await self._env.get_actor(actor_id)
        by_class: dict[str, list[PreparationEntry]] = defaultdict(list)
        for entry in entries:
            by_class[entry.class_id].append(entry)

        windows = self._used_windows(initial, sessions)

        for class_id in initial.spellcasting_classes:
            actor = await self._env.get_actor(actor_id)
            plan = await self._plan_class(actor, class_id, by_class.get(class_id, []))
            result.plans[class_id] = plan
            try:
                await self._apply(actor_id, plan)
            except MutationError as exc:
                logger.error("Class save failed", **exc.details)
                result.failed[class_id] = exc
                continue
            result.committed.append(class_id)

        actor = await self._env.get_actor(actor_id)
        try:
            await self._write_prepared_flags(actor)
            consumed = [(cid, w) for cid, w in windows if cid in result.committed]
            if consumed:
                await self._mutate("flag", None, consume_windows, self._env, actor, consumed)
                result.consumed = [(cid, w.kind) for cid, w in consumed]
            if result.committed:
                await self._mutate(
                    "flag",
                    None,
                    record_levels,
                    self._env,
                    actor,
                    {cid: actor.classes[cid].level for cid in result.committed},
                    {cid: self._cantrips.max_cantrips(actor, cid) for cid in result.committed},
                )
        except MutationError as exc:
            logger.error("Saving spellbook flags failed", **exc.details)
            for class_id in list(result.committed):
                result.failed[class_id] = exc
            result.committed.clear()

        if self._rules.enforcement_behavior(actor) == EnforcementBehavior.NOTIFY_GM:
            await self._notify_gm(actor, entries, violations, result)

        if result.failed:
            names = ", ".join(
                initial.classes[cid].name or cid for cid in result.failed if cid in initial.classes
            )
            self._env.notify(
                NotificationLevel.ERROR,
                f"Some spell changes could not be saved ({names}). Your selections were kept; save again to retry.",
            )
        logger.info(
            "Spellbook saved",
            committed=result.committed,
            failed=sorted(result.failed),
            consumed=[f"{cid}:{kind}" for cid, kind in result.consumed],
        )
        return result

    def _used_windows(
        self,
        actor: Actor,
        sessions: dict[tuple[str, SwapKind], SwapSession],
    ) -> list[tuple[str, SwapWindow]]:
        """Open windows in which the session swapped something out."""
        used: list[tuple[str, SwapWindow]] = []
        for (class_id, kind), session in sessions.items():
            if not session.swapped or class_id not in actor.classes:
                continue
            if kind == SwapKind.CANTRIP:
                window = self._cantrips.swap_window(actor, class_id)
            else:
                window = self._validator.swap_window(actor, class_id)
            if window.is_initial or not window.usable:
                continue
            used.append((class_id, window))
        return used

    # =========================================================================
    # Planning
    # =========================================================================

    async def _plan_class(self, actor: Actor, class_id: str, entries: list[PreparationEntry]) -> ClassPlan:
        rules = self._rules.get_class_rules(actor, class_id)
        wizard = self._rules.is_wizard_enabled(actor, class_id)
        known = WizardSpellbook(self._env, self._rules, actor, class_id).get_known_spells() if wizard else None
        class_state = actor.classes[class_id]
        delete_unprepared = get_settings().engine.delete_unprepared_spells
        converts_to_ritual = wizard and rules.ritual_casting == RitualMode.ALWAYS

        owned: dict[str, OwnedSpell] = {}
        for spell in actor.spells:
            if spell.source_class == class_id:
                current = owned.get(spell.uuid)
                if current is None or spell.display_priority > current.display_priority:
                    owned[spell.uuid] = spell
        unattributed = {
            s.uuid: s for s in actor.spells if s.source_class is None and s.mode.is_user_prepared
        }

        plan = ClassPlan(class_id=class_id)
        prepared: set[str] = set()
        converted: set[str] = set()
        for entry in entries:
            if entry.mode is not None and entry.mode.is_locked:
                continue
            spell = entry.spell
            copy = owned.get(entry.uuid)
            claimed = copy is None and entry.uuid in unattributed
            if copy is None:
                copy = unattributed.get(entry.uuid)
            if copy is not None and copy.is_locked:
                continue
            mode = (
                PreparationMode.PACT
                if class_state.is_pact_caster and spell.level > 0
                else PreparationMode.PREPARED
            )

            if entry.is_prepared:
                if known is not None and spell.level > 0 and entry.uuid not in known:
                    logger.warning("Skipping spell missing from spellbook", class_id=class_id, uuid=entry.uuid)
                    continue
                prepared.add(entry.uuid)
                if copy is None:
                    plan.creates.append(prepared_document(spell, class_id, mode))
                elif copy.mode == PreparationMode.RITUAL:
                    plan.updates.append(
                        {
                            "id": copy.id,
                            "mode": str(mode),
                            "prepared": True,
                            "flags": _with_ritual_marker(copy.flags, False),
                        }
                    )
                    converted.add(copy.id)
                elif not copy.prepared:
                    update: dict[str, Any] = {"id": copy.id, "prepared": True}
                    if claimed:
                        update["source_class"] = class_id
                    plan.updates.append(update)
                else:
                    continue
                plan.added.append(spell.name)
                continue

            if copy is None or not copy.prepared or not copy.mode.is_user_prepared:
                continue
            plan.removed.append(spell.name)
            if converts_to_ritual and spell.is_ritual and spell.level > 0 and not claimed:
                plan.updates.append(
                    {
                        "id": copy.id,
                        "mode": str(PreparationMode.RITUAL),
                        "prepared": False,
                        "flags": _with_ritual_marker(copy.flags, True),
                    }
                )
            elif delete_unprepared:
                plan.deletes.append(copy.id)
            else:
                plan.updates.append({"id": copy.id, "prepared": False})

        if wizard and known is not None:
            for ritual in await self._rituals.missing_rituals(actor, class_id, rules, known, prepared):
                plan.creates.append(ritual_document(ritual, class_id))
                logger.debug("Injecting ritual copy", class_id=class_id, uuid=ritual.uuid)
        for stale in self._rituals.stale_rituals(actor, class_id, rules, known):
            if stale.id not in converted and stale.id not in plan.deletes:
                plan.deletes.append(stale.id)
                logger.debug("Removing stale ritual copy", class_id=class_id, uuid=stale.uuid)

        logger.debug(
            "Planned class save",
            class_id=class_id,
            creates=len(plan.creates),
            updates=len(plan.updates),
            deletes=len(plan.deletes),
        )
        return plan

    # =========================================================================
    # Mutations
    # =========================================================================

    async def _apply(self, actor_id: str, plan: ClassPlan) -> None:
        if plan.creates:
            await self._mutate(
                "create", plan.class_id, self._env.create_embedded, actor_id, SPELL_KIND, plan.creates
            )
        if plan.updates:
            await self._mutate(
                "update", plan.class_id, self._env.update_embedded, actor_id, SPELL_KIND, plan.updates
            )
        if plan.deletes:
            await self._mutate(
                "delete", plan.class_id, self._env.delete_embedded, actor_id, SPELL_KIND, plan.deletes
            )

    async def _mutate(
        self,
        operation: str,
        class_id: str | None,
        call: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> Any:
        """Run a host mutation, retrying transient failures.

        Raises:
            MutationError: If the host keeps failing or rejects the call.
        """
        engine = get_settings().engine

        @retry(
            retry=retry_if_exception_type((ConnectionError, TimeoutError)),
            stop=stop_after_attempt(engine.mutation_retry_attempts),
            wait=wait_exponential(
                multiplier=1,
                min=engine.mutation_retry_min_wait,
                max=engine.mutation_retry_max_wait,
            ),
            reraise=True,
        )
        async def _call() -> Any:
            try:
                return await call(*args)
            except (ConnectionError, TimeoutError) as exc:
                logger.warning("Host mutation failed, retrying", operation=operation, error=str(exc))
                raise

        try:
            return await _call()
        except (ConnectionError, TimeoutError, HostError) as exc:
            raise MutationError(
                f"Host rejected {operation}: {exc}",
                operation=operation,
                class_id=class_id,
            ) from exc

    async def _write_prepared_flags(self, actor: Actor) -> None:
        by_class: dict[str, list[str]] = {}
        flat: list[str] = []
        for class_id in actor.spellcasting_classes:
            keys = [
                f"{class_id}:{spell.uuid}"
                for spell in actor.spells
                if spell.source_class == class_id and spell.prepared
            ]
            by_class[class_id] = keys
            flat.extend(key.split(":", 1)[1] for key in keys)
        await self._mutate("flag", None, self._env.set_flag, actor.id, MODULE_ID, FLAG_PREPARED_SPELLS_BY_CLASS, by_class)
        await self._mutate("flag", None, self._env.set_flag, actor.id, MODULE_ID, FLAG_PREPARED_SPELLS, list(dict.fromkeys(flat)))

    # =========================================================================
    # GM notifications
    # =========================================================================

    async def _notify_gm(
        self,
        actor: Actor,
        entries: list[PreparationEntry],
        violations: list[AllowedViolation],
        result: CommitResult,
    ) -> None:
        """Send one payload per class and kind for violations that were saved."""
        final = {(e.class_id, e.uuid): e for e in entries}
        grouped: dict[tuple[str, GMNotificationKind], list[AllowedViolation]] = defaultdict(list)
        for violation in violations:
            if violation.class_id not in result.committed:
                continue
            entry = final.get((violation.class_id, violation.uuid))
            if entry is None or entry.is_prepared != violation.checking or entry.was_prepared == entry.is_prepared:
                continue
            grouped[(violation.class_id, violation.kind)].append(violation)

        for (class_id, kind), items in grouped.items():
            plan = result.plans.get(class_id, ClassPlan(class_id=class_id))
            details: dict[str, Any] = {
                "className": actor.classes[class_id].name or class_id,
                "spells": [v.name for v in items],
                "reasons": sorted({str(v.reason) for v in items}),
                "added": plan.added,
                "removed": plan.removed,
            }
            if kind == GMNotificationKind.OVERMAX:
                cantrip = any(v.is_cantrip for v in items)
                if cantrip:
                    details["current"] = self._cantrips.current_count(actor, class_id)
                    details["maximum"] = self._cantrips.max_cantrips(actor, class_id)
                else:
                    details["current"] = self._validator.current_prepared(actor, class_id)
                    details["maximum"] = self._validator.max_prepared(actor, class_id)
            payload = GMNotification(actor_id=actor.id, class_id=class_id, kind=kind, details=details)
            await self._env.send_gm_notification(payload)
            result.gm_notifications.append(payload)
            logger.info("GM notified", class_id=class_id, kind=str(kind), spells=len(items))


__all__ = [
    "AllowedViolation",
    "ClassPlan",
    "CommitResult",
    "PreparationEntry",
    "SaveCommitPipeline",
    "prepared_document",
]
