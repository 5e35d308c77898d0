"""Swap windows and session swap tracking.

A saved cantrip or spell may only be swapped out while a window is open:

- ``levelUp``: the class level (or, for cantrips, the cantrip maximum)
  rose above what was recorded at the last save. Event id ``level:<N>``.
- ``longRest``: ``longRestCompleted`` is set. Event id is the
  ``longRestEventId`` written when the rest began.

Each window admits one swap per kind. Saving a session that used it
records the event id under ``cantripSwapTracking`` / ``swapTracking``,
so the same window cannot be reused. Before anything has been recorded
for a class (the initial selection) every change is free.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from spellbook.core.constants import (
    FLAG_CANTRIP_SWAP_TRACKING,
    FLAG_LONG_REST_COMPLETED,
    FLAG_LONG_REST_EVENT_ID,
    FLAG_PREVIOUS_CANTRIP_MAX,
    FLAG_PREVIOUS_LEVEL,
    FLAG_SWAP_TRACKING,
    MODULE_ID,
)
from spellbook.core.logging import get_logger
from spellbook.host.environment import Environment
from spellbook.models import Actor, RejectionReason, SwapKind, SwapMode, WindowType


logger = get_logger(__name__)


# =============================================================================
# Decisions
# =============================================================================


@dataclass(frozen=True)
class TransitionDecision:
    """Result of validating one check or uncheck.

    Attributes:
        allowed: Whether the rules admit the change.
        reason: Why not, when rejected.
    """

    allowed: bool
    reason: RejectionReason | None = None

    @classmethod
    def allow(cls) -> TransitionDecision:
        return cls(allowed=True)

    @classmethod
    def reject(cls, reason: RejectionReason) -> TransitionDecision:
        return cls(allowed=False, reason=reason)

    @property
    def is_hard(self) -> bool:
        """Rejected regardless of the enforcement behavior."""
        return self.reason is not None and self.reason.is_hard


# =============================================================================
# Windows
# =============================================================================


@dataclass(frozen=True)
class SwapWindow:
    """Swap window state of one class and kind.

    Attributes:
        kind: Cantrip or spell.
        mode: The class's swap mode for this kind.
        window_type: Lifecycle event governing the window, None for ``none``.
        is_open: The lifecycle event is active.
        event_id: Marker identifying the active event.
        consumed: The swap for this event was already saved.
        is_initial: Nothing has been recorded for the class yet.
    """

    kind: SwapKind
    mode: SwapMode
    window_type: WindowType | None = None
    is_open: bool = False
    event_id: str | None = None
    consumed: bool = False
    is_initial: bool = False

    @property
    def usable(self) -> bool:
        return self.is_open and not self.consumed


def tracking_flag(kind: SwapKind) -> str:
    return FLAG_CANTRIP_SWAP_TRACKING if kind == SwapKind.CANTRIP else FLAG_SWAP_TRACKING


def compute_window(
    actor: Actor,
    class_id: str,
    kind: SwapKind,
    mode: SwapMode,
    *,
    cantrip_max: int | None = None,
) -> SwapWindow:
    """Derive the swap window of a class from the actor's flags.

    Args:
        actor: Actor snapshot.
        class_id: Class identifier.
        kind: Cantrip or spell.
        mode: Swap mode from the class rules.
        cantrip_max: Current cantrip maximum, compared with the recorded one.
    """
    class_state = actor.classes.get(class_id)
    level = class_state.level if class_state else 0
    previous_levels: dict[str, int] = actor.get_flag(FLAG_PREVIOUS_LEVEL) or {}
    is_initial = class_id not in previous_levels
    tracking: dict[str, Any] = (actor.get_flag(tracking_flag(kind)) or {}).get(class_id, {})

    if mode == SwapMode.LEVEL_UP:
        previous = previous_levels.get(class_id)
        is_open = previous is None or level > previous
        if kind == SwapKind.CANTRIP and cantrip_max is not None:
            previous_max = (actor.get_flag(FLAG_PREVIOUS_CANTRIP_MAX) or {}).get(class_id)
            is_open = is_open or (previous_max is not None and cantrip_max > previous_max)
        event_id = f"level:{level}"
        return SwapWindow(
            kind=kind,
            mode=mode,
            window_type=WindowType.LEVEL_UP,
            is_open=is_open,
            event_id=event_id,
            consumed=tracking.get(str(WindowType.LEVEL_UP)) == event_id,
            is_initial=is_initial,
        )

    if mode == SwapMode.LONG_REST:
        event_id = actor.get_flag(FLAG_LONG_REST_EVENT_ID)
        is_open = bool(actor.get_flag(FLAG_LONG_REST_COMPLETED)) and event_id is not None
        return SwapWindow(
            kind=kind,
            mode=mode,
            window_type=WindowType.LONG_REST,
            is_open=is_open,
            event_id=event_id,
            consumed=is_open and tracking.get(str(WindowType.LONG_REST)) == event_id,
            is_initial=is_initial,
        )

    return SwapWindow(kind=kind, mode=mode, is_initial=is_initial)


# =============================================================================
# Session tracking
# =============================================================================


@dataclass
class SwapSession:
    """Checks and unchecks of one class and kind during an editing session.

    Attributes:
        checked: Items checked this session that were not saved as prepared.
        unchecked: Saved items unchecked this session (the swaps).
    """

    checked: set[str] = field(default_factory=set)
    unchecked: set[str] = field(default_factory=set)

    @property
    def swapped(self) -> bool:
        return bool(self.unchecked)

    def record(self, uuid: str, *, checking: bool, was_prepared: bool) -> None:
        """Track an applied change; re-checking an unlearned item undoes the swap."""
        if checking:
            if uuid in self.unchecked:
                self.unchecked.discard(uuid)
            elif not was_prepared:
                self.checked.add(uuid)
        elif uuid in self.checked:
            self.checked.discard(uuid)
        elif was_prepared:
            self.unchecked.add(uuid)

    def clear(self) -> None:
        self.checked.clear()
        self.unchecked.clear()


def evaluate_uncheck(window: SwapWindow, session: SwapSession, uuid: str) -> TransitionDecision:
    """Validate unchecking an item against the swap window and the session."""
    if uuid in session.checked:
        return TransitionDecision.allow()
    if window.is_initial:
        return TransitionDecision.allow()
    if window.mode == SwapMode.NONE:
        return TransitionDecision.reject(RejectionReason.LOCKED_NO_SWAPPING)
    if not window.is_open:
        return TransitionDecision.reject(RejectionReason.WINDOW_CLOSED)
    if window.consumed:
        return TransitionDecision.reject(RejectionReason.WINDOW_CONSUMED)
    if session.unchecked - {uuid}:
        return TransitionDecision.reject(RejectionReason.ONLY_ONE_SWAP)
    return TransitionDecision.allow()


# =============================================================================
# Lifecycle writes
# =============================================================================


async def begin_long_rest(env: Environment, actor_id: str) -> str:
    """Open a long-rest window for every class of the actor.

    Returns:
        The new long-rest event id.
    """
    event_id = uuid4().hex
    await env.set_flag(actor_id, MODULE_ID, FLAG_LONG_REST_COMPLETED, True)
    await env.set_flag(actor_id, MODULE_ID, FLAG_LONG_REST_EVENT_ID, event_id)
    logger.info("Long rest started", actor_id=actor_id, event_id=event_id)
    return event_id


async def consume_windows(env: Environment, actor: Actor, consumed: list[tuple[str, SwapWindow]]) -> None:
    """Record the event ids of windows whose swap was saved.

    Args:
        env: Host environment.
        actor: Actor snapshot taken after the save's mutations.
        consumed: ``(class_id, window)`` pairs.
    """
    by_kind: dict[SwapKind, dict[str, SwapWindow]] = {}
    for class_id, window in consumed:
        if window.window_type is None or window.event_id is None:
            continue
        by_kind.setdefault(window.kind, {})[class_id] = window

    for kind, windows in by_kind.items():
        flag = tracking_flag(kind)
        tracking: dict[str, dict[str, str]] = dict(actor.get_flag(flag) or {})
        for class_id, window in windows.items():
            entry = dict(tracking.get(class_id, {}))
            entry[str(window.window_type)] = window.event_id
            tracking[class_id] = entry
        await env.set_flag(actor.id, MODULE_ID, flag, tracking)
        logger.info("Swap windows consumed", actor_id=actor.id, kind=str(kind), classes=list(windows))


async def record_levels(
    env: Environment,
    actor: Actor,
    levels: dict[str, int],
    cantrip_maxima: dict[str, int],
) -> None:
    """Record class levels and cantrip maxima, closing level-up windows."""
    previous_levels = {**(actor.get_flag(FLAG_PREVIOUS_LEVEL) or {}), **levels}
    previous_maxima = {**(actor.get_flag(FLAG_PREVIOUS_CANTRIP_MAX) or {}), **cantrip_maxima}
    await env.set_flag(actor.id, MODULE_ID, FLAG_PREVIOUS_LEVEL, previous_levels)
    await env.set_flag(actor.id, MODULE_ID, FLAG_PREVIOUS_CANTRIP_MAX, previous_maxima)


__all__ = [
    "TransitionDecision",
    "SwapWindow",
    "SwapSession",
    "tracking_flag",
    "compute_window",
    "evaluate_uncheck",
    "begin_long_rest",
    "consume_windows",
    "record_levels",
]
