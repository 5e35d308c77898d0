"""In-memory host environment.

Holds actors, compendium documents, packs and world settings in plain
dictionaries. Every read returns a deep copy so callers cannot mutate
host state in place. Optionally writes actors and settings through to a
``Database`` so flags survive across processes.

Example:
    >>> env = InMemoryEnvironment(actors=[actor], documents=spells, packs=packs)
    >>> snapshot = await env.get_actor(actor.id)
"""

from __future__ import annotations

import asyncio
import copy
import itertools
from collections import defaultdict, deque
from typing import TYPE_CHECKING, Any, Iterable

from spellbook.core.constants import MODULE_ID
from spellbook.core.exceptions import HostError, ResolutionError
from spellbook.core.logging import get_logger
from spellbook.host.environment import ITEM_KIND, SPELL_KIND, Environment, HostDocument
from spellbook.models import (
    Actor,
    CompendiumPack,
    GMNotification,
    InventoryItem,
    Notification,
    NotificationLevel,
    OwnedSpell,
    SpellDoc,
    WorldSettings,
)


if TYPE_CHECKING:
    from spellbook.storage import Database

logger = get_logger(__name__)


class InMemoryEnvironment(Environment):
    """Dictionary-backed host used by tests and offline tooling.

    Attributes:
        notifications: User notifications in emission order.
        gm_notifications: GM payloads in emission order.
        fetch_count: Number of resolve/index calls served.
        max_in_flight: Highest number of concurrent resolve/index calls seen.
        mutation_log: ``(operation, kind, count)`` for each successful mutation.
    """

    def __init__(
        self,
        *,
        actors: Iterable[Actor] = (),
        documents: Iterable[HostDocument] = (),
        packs: Iterable[CompendiumPack] = (),
        settings: dict[str, Any] | None = None,
        database: Database | None = None,
        fetch_delay: float = 0.0,
    ) -> None:
        """Initialize the environment.

        Args:
            actors: Actors to host.
            documents: Spells and spell-list pages, interned by UUID.
            packs: Compendium packs in index order.
            settings: World settings under the module namespace; unset keys
                fall back to the ``WorldSettings`` defaults.
            database: Optional write-through store.
            fetch_delay: Seconds each resolve/index call suspends for.
        """
        self._actors: dict[str, Actor] = {a.id: a.model_copy(deep=True) for a in actors}
        self._documents: dict[str, HostDocument] = {d.uuid: d for d in documents}
        self._packs: list[CompendiumPack] = list(packs)
        self._settings: dict[tuple[str, str], Any] = {
            (MODULE_ID, key): value for key, value in WorldSettings().to_storage().items()
        }
        for key, value in (settings or {}).items():
            self._settings[(MODULE_ID, key)] = value
        self._database = database
        self._fetch_delay = fetch_delay
        self._ids = itertools.count(1)
        self._failures: dict[str, deque[BaseException]] = defaultdict(deque)
        self._in_flight = 0

        self.notifications: list[Notification] = []
        self.gm_notifications: list[GMNotification] = []
        self.fetch_count = 0
        self.max_in_flight = 0
        self.mutation_log: list[tuple[str, str, int]] = []

        if database is not None:
            for actor in self._actors.values():
                database.save_actor(actor)

    @classmethod
    def from_database(
        cls,
        database: Database,
        *,
        documents: Iterable[HostDocument] = (),
        packs: Iterable[CompendiumPack] = (),
    ) -> InMemoryEnvironment:
        """Rebuild an environment from the actors and settings stored in a database."""
        actors = [record.to_actor() for record in database.get_all_actors()]
        env = cls(
            actors=actors,
            documents=documents,
            packs=packs,
            settings=database.get_settings(MODULE_ID),
            database=database,
        )
        logger.info("Environment loaded from database", actors=len(actors))
        return env

    # =========================================================================
    # Seeding and failure injection
    # =========================================================================

    def add_actor(self, actor: Actor) -> None:
        self._store(actor.model_copy(deep=True))

    def add_document(self, document: HostDocument) -> None:
        self._documents[document.uuid] = document

    def add_pack(self, pack: CompendiumPack) -> None:
        self._packs.append(pack)

    def set_setting(self, namespace: str, key: str, value: Any) -> None:
        """Write a world setting (and persist it when a database is attached)."""
        self._settings[(namespace, key)] = copy.deepcopy(value)
        if self._database is not None:
            self._database.set_setting(namespace, key, value)

    def fail_next(self, operation: str, error: BaseException | None = None, *, times: int = 1) -> None:
        """Make the next ``times`` calls of an operation raise.

        Args:
            operation: One of ``create``, ``update``, ``delete``, ``flag``,
                ``update_actor``.
            error: Exception to raise; defaults to ConnectionError.
        """
        for _ in range(times):
            self._failures[operation].append(error or ConnectionError(f"{operation} failed"))

    def _maybe_fail(self, operation: str) -> None:
        queue = self._failures.get(operation)
        if queue:
            raise queue.popleft()

    # =========================================================================
    # Documents and compendiums
    # =========================================================================

    async def _fetch(self) -> None:
        self.fetch_count += 1
        self._in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            await asyncio.sleep(self._fetch_delay)
        finally:
            self._in_flight -= 1

    async def resolve_uuid(self, uuid: str) -> HostDocument | None:
        await self._fetch()
        return self._documents.get(uuid)

    def resolve_uuid_sync(self, uuid: str) -> HostDocument | None:
        return self._documents.get(uuid)

    async def index_pack(self, pack_id: str, fields: tuple[str, ...] = ()) -> list[HostDocument]:
        await self._fetch()
        results: list[HostDocument] = []
        for document in self._documents.values():
            document_pack = document.pack_id
            if document_pack == pack_id:
                results.append(document)
        return results

    def list_packs(self) -> list[CompendiumPack]:
        return list(self._packs)

    # =========================================================================
    # Actors
    # =========================================================================

    def _require(self, actor_id: str) -> Actor:
        actor = self._actors.get(actor_id)
        if actor is None:
            raise ResolutionError("Actor not found", uuid=actor_id)
        return actor

    def _store(self, actor: Actor) -> None:
        self._actors[actor.id] = actor
        if self._database is not None:
            self._database.save_actor(actor)

    async def get_actor(self, actor_id: str) -> Actor:
        await asyncio.sleep(0)
        return self._require(actor_id).model_copy(deep=True)

    async def get_flag(self, actor_id: str, namespace: str, key: str) -> Any:
        actor = self._require(actor_id)
        return copy.deepcopy(actor.flags.get(namespace, {}).get(key))

    async def set_flag(self, actor_id: str, namespace: str, key: str, value: Any) -> None:
        self._maybe_fail("flag")
        actor = self._require(actor_id)
        flags = copy.deepcopy(actor.flags)
        flags.setdefault(namespace, {})[key] = copy.deepcopy(value)
        self._store(actor.model_copy(update={"flags": flags}))

    async def unset_flag(self, actor_id: str, namespace: str, key: str) -> None:
        self._maybe_fail("flag")
        actor = self._require(actor_id)
        flags = copy.deepcopy(actor.flags)
        flags.get(namespace, {}).pop(key, None)
        self._store(actor.model_copy(update={"flags": flags}))

    async def update_actor(self, actor_id: str, patch: dict[str, Any]) -> None:
        self._maybe_fail("update_actor")
        data = self._require(actor_id).model_dump(mode="python")
        for path, value in patch.items():
            target = data
            *parents, leaf = path.split(".")
            for part in parents:
                target = target.setdefault(part, {})
            target[leaf] = copy.deepcopy(value)
        self._store(Actor.model_validate(data))

    async def create_embedded(self, actor_id: str, kind: str, docs: list[dict[str, Any]]) -> list[str]:
        self._maybe_fail("create")
        actor = self._require(actor_id)
        ids: list[str] = []
        spells = list(actor.spells)
        inventory = list(actor.inventory)
        for doc in docs:
            item_id = f"item{next(self._ids):06d}"
            payload = {**doc, "id": item_id}
            if kind == SPELL_KIND:
                spells.append(OwnedSpell.model_validate(payload))
            elif kind == ITEM_KIND:
                inventory.append(InventoryItem.model_validate(payload))
            else:
                raise HostError(f"Unknown embedded kind {kind!r}")
            ids.append(item_id)
        self._store(actor.model_copy(update={"spells": spells, "inventory": inventory}))
        self.mutation_log.append(("create", kind, len(ids)))
        return ids

    async def update_embedded(self, actor_id: str, kind: str, updates: list[dict[str, Any]]) -> None:
        self._maybe_fail("update")
        actor = self._require(actor_id)
        by_id = {update["id"]: update for update in updates}
        if kind == SPELL_KIND:
            spells = [
                OwnedSpell.model_validate({**s.model_dump(), **by_id[s.id]}) if s.id in by_id else s
                for s in actor.spells
            ]
            self._store(actor.model_copy(update={"spells": spells}))
        elif kind == ITEM_KIND:
            inventory = [
                InventoryItem.model_validate({**i.model_dump(), **by_id[i.id]}) if i.id in by_id else i
                for i in actor.inventory
            ]
            self._store(actor.model_copy(update={"inventory": inventory}))
        else:
            raise HostError(f"Unknown embedded kind {kind!r}")
        self.mutation_log.append(("update", kind, len(updates)))

    async def delete_embedded(self, actor_id: str, kind: str, ids: list[str]) -> None:
        self._maybe_fail("delete")
        actor = self._require(actor_id)
        doomed = set(ids)
        if kind == SPELL_KIND:
            existing = {s.id for s in actor.spells}
        elif kind == ITEM_KIND:
            existing = {i.id for i in actor.inventory}
        else:
            raise HostError(f"Unknown embedded kind {kind!r}")
        missing = doomed - existing
        if missing:
            raise HostError("Embedded documents not found", details={"ids": sorted(missing)})
        self._store(
            actor.model_copy(
                update={
                    "spells": [s for s in actor.spells if s.id not in doomed],
                    "inventory": [i for i in actor.inventory if i.id not in doomed],
                }
            )
        )
        self.mutation_log.append(("delete", kind, len(ids)))

    # =========================================================================
    # Users and settings
    # =========================================================================

    def notify(self, level: NotificationLevel, message: str) -> None:
        self.notifications.append(Notification(level=level, message=message))
        logger.debug("User notified", level=str(level), message=message)

    async def send_gm_notification(self, payload: GMNotification) -> None:
        await asyncio.sleep(0)
        self.gm_notifications.append(payload)

    def get_setting(self, namespace: str, key: str) -> Any:
        return copy.deepcopy(self._settings.get((namespace, key)))

    # =========================================================================
    # Test conveniences
    # =========================================================================

    def actor(self, actor_id: str) -> Actor:
        """Synchronous deep copy of a hosted actor."""
        return self._require(actor_id).model_copy(deep=True)

    def spell(self, uuid: str) -> SpellDoc | None:
        document = self._documents.get(uuid)
        return document if isinstance(document, SpellDoc) else None

    def messages(self, level: NotificationLevel | None = None) -> list[str]:
        """Notification messages, optionally filtered by level."""
        return [n.message for n in self.notifications if level is None or n.level == level]


__all__ = ["InMemoryEnvironment"]
