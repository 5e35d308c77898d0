"""Action loop for a spellbook session.

UI events are turned into tagged actions and queued; a single worker
applies them to the ``SpellbookState`` one at a time, so concurrent events
never race on the session. Each action resolves to an ``ActionResult``.

Example:
    >>> loop = SpellbookLoop(state)
    >>> await loop.start()
    >>> result = await loop.submit(TogglePrepare("wizard", uuid, True))
    >>> await loop.stop()
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Callable

from spellbook.core.exceptions import SpellbookError, TransitionRejected
from spellbook.core.logging import configure_logging, get_logger
from spellbook.engine.state import SpellbookState
from spellbook.filters import FilterState
from spellbook.models import NotificationLevel


logger = get_logger(__name__)


# =============================================================================
# Actions
# =============================================================================


@dataclass(frozen=True)
class TogglePrepare:
    class_id: str
    uuid: str
    checked: bool


@dataclass(frozen=True)
class LearnSpell:
    class_id: str
    uuid: str
    is_free: bool | None = None


@dataclass(frozen=True)
class LearnFromScroll:
    class_id: str
    scroll_item_id: str
    spell_uuid: str


@dataclass(frozen=True)
class ApplyLoadout:
    class_id: str
    loadout_id: str


@dataclass(frozen=True)
class SaveLoadout:
    class_id: str
    name: str
    description: str = ""
    loadout_id: str | None = None


@dataclass(frozen=True)
class DeleteLoadout:
    loadout_id: str


@dataclass(frozen=True)
class ToggleLevel:
    level: int


@dataclass(frozen=True)
class FilterSpells:
    class_id: str
    filters: FilterState = field(default_factory=FilterState)
    wizardbook: bool = False


@dataclass(frozen=True)
class Commit:
    pass


@dataclass(frozen=True)
class Render:
    pass


Action = (
    TogglePrepare
    | LearnSpell
    | LearnFromScroll
    | ApplyLoadout
    | SaveLoadout
    | DeleteLoadout
    | ToggleLevel
    | FilterSpells
    | Commit
    | Render
)


# =============================================================================
# Results
# =============================================================================


class ActionStatus(StrEnum):
    """Outcome of a processed action."""

    COMPLETED = "completed"
    """The action was applied."""

    REJECTED = "rejected"
    """The rules or the preparation gate refused the action."""

    SKIPPED = "skipped"
    """Nothing to do (already loading, nothing learned, ...)."""

    ERROR = "error"
    """The action raised."""


@dataclass
class ActionResult:
    """Result of processing an action.

    Attributes:
        action: The processed action.
        status: Outcome.
        value: What the state operation returned.
        message: Human-readable message for rejections and errors.
    """

    action: Action
    status: ActionStatus
    value: Any = None
    message: str = ""


_STOP = object()


# =============================================================================
# Loop
# =============================================================================


class SpellbookLoop:
    """Single-worker queue in front of a ``SpellbookState``."""

    def __init__(self, state: SpellbookState) -> None:
        self._state = state
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._handling: set[tuple[str, str]] = set()
        self._callbacks: list[Callable[[ActionResult], None]] = []

    @property
    def state(self) -> SpellbookState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def add_callback(self, callback: Callable[[ActionResult], None]) -> None:
        """Add a callback invoked with every action result."""
        self._callbacks.append(callback)

    async def start(self) -> None:
        if self.is_running:
            return
        configure_logging()
        self._worker = asyncio.create_task(self._run())
        logger.info("Spellbook loop started", actor_id=self._state.actor_id)

    async def stop(self) -> None:
        """Finish the queued actions, then stop the worker."""
        if not self.is_running:
            return
        await self._queue.put((_STOP, None))
        assert self._worker is not None
        await self._worker
        self._worker = None
        logger.info("Spellbook loop stopped", actor_id=self._state.actor_id)

    def submit(self, action: Action) -> asyncio.Future[ActionResult]:
        """Queue an action.

        A toggle of a spell whose previous toggle is still queued or being
        handled is rejected at once.

        Returns:
            A future resolving to the action's result.
        """
        future: asyncio.Future[ActionResult] = asyncio.get_running_loop().create_future()
        if isinstance(action, TogglePrepare):
            key = (action.class_id, action.uuid)
            if key in self._handling:
                logger.debug("Ignoring reentrant preparation toggle", class_id=action.class_id, uuid=action.uuid)
                future.set_result(
                    ActionResult(action, ActionStatus.REJECTED, message="Change already being handled.")
                )
                return future
            self._handling.add(key)
        self._queue.put_nowait((action, future))
        return future

    async def _run(self) -> None:
        while True:
            action, future = await self._queue.get()
            try:
                if action is _STOP:
                    return
                try:
                    result = await self.dispatch(action)
                except Exception as exc:
                    logger.exception("Spellbook action crashed", action=type(action).__name__)
                    future.set_exception(exc)
                else:
                    future.set_result(result)
            finally:
                self._queue.task_done()

    async def dispatch(self, action: Action) -> ActionResult:
        """Apply one action to the state."""
        try:
            result = await self._dispatch(action)
        except TransitionRejected as exc:
            self._state.env.notify(NotificationLevel.WARN, exc.message)
            result = ActionResult(action, ActionStatus.REJECTED, message=exc.message)
        except SpellbookError as exc:
            logger.error("Spellbook action failed", action=type(action).__name__, error=str(exc))
            result = ActionResult(action, ActionStatus.ERROR, message=exc.message)
        finally:
            if isinstance(action, TogglePrepare):
                self._handling.discard((action.class_id, action.uuid))
        self._invoke_callbacks(result)
        return result

    async def _dispatch(self, action: Action) -> ActionResult:
        state = self._state
        match action:
            case TogglePrepare(class_id, uuid, checked):
                toggled = state.toggle(class_id, uuid, checked)
                return ActionResult(action, ActionStatus.COMPLETED, toggled)
            case LearnSpell(class_id, uuid, is_free):
                learned = await state.learn_spell(class_id, uuid, is_free=is_free)
                return ActionResult(action, ActionStatus.COMPLETED if learned else ActionStatus.SKIPPED, learned)
            case LearnFromScroll(class_id, scroll_item_id, spell_uuid):
                record = await state.learn_from_scroll(class_id, scroll_item_id, spell_uuid)
                return ActionResult(action, ActionStatus.COMPLETED if record else ActionStatus.SKIPPED, record)
            case ApplyLoadout(class_id, loadout_id):
                changes = await state.apply_loadout(class_id, loadout_id)
                return ActionResult(action, ActionStatus.COMPLETED, changes)
            case SaveLoadout(class_id, name, description, loadout_id):
                loadout = await state.save_loadout(class_id, name, description=description, loadout_id=loadout_id)
                return ActionResult(action, ActionStatus.COMPLETED, loadout)
            case DeleteLoadout(loadout_id):
                deleted = await state.delete_loadout(loadout_id)
                return ActionResult(action, ActionStatus.COMPLETED if deleted else ActionStatus.SKIPPED, deleted)
            case ToggleLevel(level):
                collapsed = await state.toggle_level(level)
                return ActionResult(action, ActionStatus.COMPLETED, collapsed)
            case FilterSpells(class_id, filters, wizardbook):
                views = state.filter_spells(class_id, filters, wizardbook=wizardbook)
                return ActionResult(action, ActionStatus.COMPLETED, views)
            case Commit():
                saved = await state.commit()
                return ActionResult(
                    action,
                    ActionStatus.COMPLETED if saved.succeeded else ActionStatus.ERROR,
                    saved,
                    "" if saved.succeeded else "Some classes could not be saved.",
                )
            case Render():
                loaded = await state.initialize()
                return ActionResult(action, ActionStatus.COMPLETED if loaded else ActionStatus.SKIPPED, loaded)
            case _:
                raise TypeError(f"Unknown spellbook action: {action!r}")

    def _invoke_callbacks(self, result: ActionResult) -> None:
        for callback in self._callbacks:
            try:
                callback(result)
            except Exception:
                logger.exception("Action callback failed")


__all__ = [
    "Action",
    "ActionResult",
    "ActionStatus",
    "ApplyLoadout",
    "Commit",
    "DeleteLoadout",
    "FilterSpells",
    "LearnFromScroll",
    "LearnSpell",
    "Render",
    "SaveLoadout",
    "SpellbookLoop",
    "ToggleLevel",
    "TogglePrepare",
]
