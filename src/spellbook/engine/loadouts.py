"""Loadout store.

Loadouts are stored on the actor under ``spellLoadouts.<id>``. Listing is
served from a short-lived per-actor cache that every write invalidates.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable

from pydantic import ValidationError

from spellbook.core.config import get_settings
from spellbook.core.constants import FLAG_SPELL_LOADOUTS, MODULE_ID
from spellbook.core.exceptions import SpellbookValidationError
from spellbook.core.logging import get_logger
from spellbook.host.environment import Environment
from spellbook.models import Loadout, PreparationMode, SpellView


logger = get_logger(__name__)


def is_loadout_managed(view: SpellView) -> bool:
    """Spells a loadout captures and applies.

    Cantrips, locked modes, injected ritual copies and disabled entries are
    left alone; pact spells are included.
    """
    mode = view.preparation.preparation_mode
    if view.level == 0 or view.preparation.disabled:
        return False
    if mode is not None and (mode.is_locked or mode == PreparationMode.RITUAL):
        return False
    return True


def capture_configuration(views: Iterable[SpellView]) -> list[str]:
    """Prepared loadout-managed UUIDs, in view order."""
    return [view.uuid for view in views if is_loadout_managed(view) and view.is_prepared]


@dataclass(frozen=True)
class LoadoutChange:
    """One checkbox change needed to apply a loadout."""

    uuid: str
    prepare: bool


def plan_application(loadout: Loadout, views: Iterable[SpellView]) -> list[LoadoutChange]:
    """Changes that make the managed spells match a loadout exactly.

    Unchecks come first so the class maximum has room for the checks.
    Spells already in the desired state produce no change.
    """
    wanted = set(loadout.spell_configuration)
    unchecks: list[LoadoutChange] = []
    checks: list[LoadoutChange] = []
    for view in views:
        if not is_loadout_managed(view):
            continue
        desired = view.uuid in wanted
        if desired == view.is_prepared:
            continue
        if desired:
            checks.append(LoadoutChange(view.uuid, prepare=True))
        else:
            unchecks.append(LoadoutChange(view.uuid, prepare=False))
    return unchecks + checks


@dataclass
class _CacheEntry:
    loadouts: dict[str, Loadout] = field(default_factory=dict)
    loaded_at: float = 0.0


class LoadoutStore:
    """Saves, lists and deletes an actor's loadouts."""

    def __init__(self, env: Environment, *, ttl: float | None = None) -> None:
        self._env = env
        self._ttl = get_settings().engine.loadout_cache_ttl_seconds if ttl is None else ttl
        self._cache: dict[str, _CacheEntry] = {}

    def invalidate(self, actor_id: str | None = None) -> None:
        if actor_id is None:
            self._cache.clear()
        else:
            self._cache.pop(actor_id, None)

    async def _all(self, actor_id: str) -> dict[str, Loadout]:
        entry = self._cache.get(actor_id)
        now = time.monotonic()
        if entry is not None and now - entry.loaded_at <= self._ttl:
            return entry.loadouts

        stored = await self._env.get_flag(actor_id, MODULE_ID, FLAG_SPELL_LOADOUTS) or {}
        loadouts: dict[str, Loadout] = {}
        for loadout_id, data in stored.items():
            try:
                loadouts[loadout_id] = Loadout.model_validate(data)
            except ValidationError:
                logger.warning("Skipping invalid loadout", actor_id=actor_id, loadout_id=loadout_id)
        self._cache[actor_id] = _CacheEntry(loadouts=loadouts, loaded_at=now)
        logger.debug("Loadout cache refreshed", actor_id=actor_id, count=len(loadouts))
        return loadouts

    async def list_loadouts(self, actor_id: str, class_id: str | None = None) -> list[Loadout]:
        """Loadouts offered for a class (class-less loadouts match every class)."""
        loadouts = await self._all(actor_id)
        return sorted(
            (loadout for loadout in loadouts.values() if loadout.applies_to(class_id)),
            key=lambda loadout: (loadout.name.lower(), loadout.created_at),
        )

    async def load_loadout(self, actor_id: str, loadout_id: str) -> Loadout | None:
        loadout = (await self._all(actor_id)).get(loadout_id)
        if loadout is None:
            logger.warning("Loadout not found", actor_id=actor_id, loadout_id=loadout_id)
        return loadout

    async def save_loadout(
        self,
        actor_id: str,
        name: str,
        spell_configuration: list[str],
        *,
        description: str = "",
        class_id: str | None = None,
        loadout_id: str | None = None,
    ) -> Loadout:
        """Create a loadout, or overwrite one when ``loadout_id`` exists.

        Overwriting keeps the original creation time, so renaming is a save
        with the same id.

        Raises:
            SpellbookValidationError: If the name is empty after trimming.
        """
        existing = await self.load_loadout(actor_id, loadout_id) if loadout_id else None
        values = {
            "name": name,
            "description": description,
            "class_identifier": class_id,
            "spell_configuration": spell_configuration,
        }
        if loadout_id:
            values["id"] = loadout_id
        if existing is not None:
            values["created_at"] = existing.created_at
            values["updated_at"] = datetime.now(timezone.utc)
        try:
            loadout = Loadout(**values)
        except ValidationError as exc:
            raise SpellbookValidationError(
                "Loadout name is required",
                field_name="name",
                invalid_value=name,
            ) from exc

        stored = dict(await self._env.get_flag(actor_id, MODULE_ID, FLAG_SPELL_LOADOUTS) or {})
        stored[loadout.id] = loadout.to_flag()
        await self._env.set_flag(actor_id, MODULE_ID, FLAG_SPELL_LOADOUTS, stored)
        self.invalidate(actor_id)
        logger.info(
            "Loadout saved",
            actor_id=actor_id,
            loadout_id=loadout.id,
            name=loadout.name,
            spells=len(loadout.spell_configuration),
        )
        return loadout

    async def delete_loadout(self, actor_id: str, loadout_id: str) -> bool:
        stored = dict(await self._env.get_flag(actor_id, MODULE_ID, FLAG_SPELL_LOADOUTS) or {})
        if loadout_id not in stored:
            logger.warning("Cannot delete missing loadout", actor_id=actor_id, loadout_id=loadout_id)
            return False
        del stored[loadout_id]
        if stored:
            await self._env.set_flag(actor_id, MODULE_ID, FLAG_SPELL_LOADOUTS, stored)
        else:
            await self._env.unset_flag(actor_id, MODULE_ID, FLAG_SPELL_LOADOUTS)
        self.invalidate(actor_id)
        logger.info("Loadout deleted", actor_id=actor_id, loadout_id=loadout_id)
        return True


__all__ = [
    "LoadoutChange",
    "LoadoutStore",
    "capture_configuration",
    "is_loadout_managed",
    "plan_application",
]
