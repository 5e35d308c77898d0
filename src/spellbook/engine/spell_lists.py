"""Spell-list resolver.

Produces the set of spell UUIDs a class may access. Resolution order:

1. ``forceWizardMode`` with a spellbook: the known set plus any custom list.
2. The class's ``customSpellList`` pages, unioned.
3. Class pages in the journal packs of the class item's source module.
4. Class pages with a matching identifier in any indexed journal pack.
5. Nothing (the caller shows a notice).

A subclass page (``type == "subclass"``) is added on top of steps 2-4.
"""

from __future__ import annotations

import hashlib
import json
from collections import OrderedDict
from dataclasses import dataclass, field

from spellbook.core.config import get_settings
from spellbook.core.exceptions import SpellListNotFoundError
from spellbook.core.logging import get_logger
from spellbook.engine.rules import RuleSetRegistry
from spellbook.host.environment import Environment
from spellbook.models import (
    Actor,
    ClassState,
    CompendiumPack,
    SpellListPage,
    WorldSettings,
    pack_id_from_uuid,
)


logger = get_logger(__name__)


# =============================================================================
# Result
# =============================================================================


@dataclass(frozen=True)
class ResolvedSpellList:
    """Outcome of resolving one class's spell list.

    Attributes:
        class_id: Class identifier.
        uuids: Spell UUIDs the class may access.
        source: Which resolution step produced the set.
        pages: UUIDs of the pages that contributed.
        notice: User-facing notice when nothing was found.
    """

    class_id: str
    uuids: frozenset[str]
    source: str
    pages: tuple[str, ...] = field(default_factory=tuple)
    notice: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.uuids


# =============================================================================
# Resolver
# =============================================================================


class SpellListResolver:
    """Resolves and caches class spell lists."""

    def __init__(self, env: Environment, rules: RuleSetRegistry) -> None:
        self._env = env
        self._rules = rules
        self._cache: OrderedDict[tuple[str, str, str], ResolvedSpellList] = OrderedDict()
        self._max_entries = get_settings().engine.spell_list_cache_size

    def invalidate(self, actor_id: str | None = None) -> None:
        """Drop cached lists, for one actor or all of them."""
        if actor_id is None:
            self._cache.clear()
            return
        for key in [k for k in self._cache if k[0] == actor_id]:
            del self._cache[key]

    async def resolve(
        self,
        actor: Actor,
        class_id: str,
        *,
        known: list[str] | None = None,
        for_wizardbook: bool = False,
    ) -> ResolvedSpellList:
        """Resolve the spell list of one class.

        Args:
            actor: Actor snapshot.
            class_id: Class identifier.
            known: The class's wizard spellbook, when it keeps one.
            for_wizardbook: Resolve the full list a spellbook can learn
                from, ignoring what is already known.

        Returns:
            The resolved list; empty with a notice when nothing matched.
        """
        if for_wizardbook:
            known = None
        settings = self._env.world_settings()
        key = (actor.id, class_id, self._fingerprint(actor, class_id, known, settings))
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            return cached

        try:
            result = await self._resolve(actor, class_id, known, settings)
        except SpellListNotFoundError as exc:
            logger.warning("No spell list found", **exc.details)
            class_name = actor.classes[class_id].name if class_id in actor.classes else class_id
            result = ResolvedSpellList(
                class_id=class_id,
                uuids=frozenset(),
                source="none",
                notice=f"No spell list found for {class_name or class_id}.",
            )

        self._cache[key] = result
        while len(self._cache) > self._max_entries:
            self._cache.popitem(last=False)
        return result

    def _fingerprint(
        self,
        actor: Actor,
        class_id: str,
        known: list[str] | None,
        settings: WorldSettings,
    ) -> str:
        class_state = actor.classes.get(class_id)
        payload = {
            "rules": self._rules.get_class_rules(actor, class_id).to_flag(),
            "known": sorted(known) if known is not None else None,
            "source": class_state.source_uuid if class_state else None,
            "folder": class_state.source_folder if class_state else None,
            "subclass": class_state.subclass.identifier if class_state and class_state.subclass else None,
            "mappings": settings.custom_spell_mappings,
            "hidden": sorted(settings.hidden_spell_lists),
            "indexed": settings.indexed_compendiums,
            "packs": [p.id for p in self._env.list_packs()],
        }
        return hashlib.sha256(json.dumps(payload, sort_keys=True, default=str).encode()).hexdigest()

    async def _resolve(
        self,
        actor: Actor,
        class_id: str,
        known: list[str] | None,
        settings: WorldSettings,
    ) -> ResolvedSpellList:
        rules = self._rules.get_class_rules(actor, class_id)
        custom_uuids, custom_pages = await self._union_pages(rules.custom_spell_list)

        if rules.force_wizard_mode and known is not None:
            return ResolvedSpellList(
                class_id=class_id,
                uuids=frozenset(known) | custom_uuids,
                source="wizard",
                pages=custom_pages,
            )

        class_state = actor.classes.get(class_id)
        subclass_uuids, subclass_pages = await self._subclass_list(class_state, settings)

        if custom_uuids:
            return ResolvedSpellList(
                class_id=class_id,
                uuids=custom_uuids | subclass_uuids,
                source="custom",
                pages=custom_pages + subclass_pages,
            )

        journal_packs = self._journal_packs(settings)
        source_pack = pack_id_from_uuid(class_state.source_uuid) if class_state and class_state.source_uuid else None
        if source_pack:
            module = source_pack.split(".")[0]
            grouped = [p for p in journal_packs if p.id.split(".")[0] == module]
            page = await self._find_page(grouped, "class", class_id, class_state, settings)
            if page is not None:
                return ResolvedSpellList(
                    class_id=class_id,
                    uuids=page.spells | subclass_uuids,
                    source="pack",
                    pages=(page.uuid, *subclass_pages),
                )

        page = await self._find_page(journal_packs, "class", class_id, class_state, settings)
        if page is not None:
            return ResolvedSpellList(
                class_id=class_id,
                uuids=page.spells | subclass_uuids,
                source="identifier",
                pages=(page.uuid, *subclass_pages),
            )

        if subclass_uuids:
            return ResolvedSpellList(
                class_id=class_id,
                uuids=subclass_uuids,
                source="subclass",
                pages=subclass_pages,
            )

        raise SpellListNotFoundError("No spell list matches class", class_id=class_id)

    def _journal_packs(self, settings: WorldSettings) -> list[CompendiumPack]:
        return [
            pack
            for pack in self._env.list_packs()
            if pack.document_type == "JournalEntry" and settings.indexed_compendiums.get(pack.id, True)
        ]

    async def _union_pages(self, uuids: list[str]) -> tuple[frozenset[str], tuple[str, ...]]:
        spells: set[str] = set()
        pages: list[str] = []
        for uuid in uuids:
            page = await self._env.resolve_uuid(uuid)
            if not isinstance(page, SpellListPage):
                logger.warning("Spell list page could not be resolved", uuid=uuid)
                continue
            spells.update(page.spells)
            pages.append(page.uuid)
        return frozenset(spells), tuple(pages)

    async def _subclass_list(
        self,
        class_state: ClassState | None,
        settings: WorldSettings,
    ) -> tuple[frozenset[str], tuple[str, ...]]:
        if class_state is None or class_state.subclass is None:
            return frozenset(), ()
        page = await self._find_page(
            self._journal_packs(settings),
            "subclass",
            class_state.subclass.identifier,
            class_state,
            settings,
        )
        if page is None:
            return frozenset(), ()
        return page.spells, (page.uuid,)

    async def _find_page(
        self,
        packs: list[CompendiumPack],
        page_type: str,
        identifier: str,
        class_state: ClassState | None,
        settings: WorldSettings,
    ) -> SpellListPage | None:
        """Find the first non-empty matching page, applying custom mappings.

        Pages in the class item's top-level folder win over the index order;
        custom pages win over content-pack pages.
        """
        hidden = set(settings.hidden_spell_lists)
        identifier = identifier.lower()
        preferred_folder = class_state.source_folder if class_state else None

        candidates: list[tuple[int, int, SpellListPage]] = []
        for order, pack in enumerate(packs):
            for document in await self._env.index_pack(pack.id, ("type", "system.identifier", "system.spells")):
                if not isinstance(document, SpellListPage):
                    continue
                if document.type != page_type or document.identifier.lower() != identifier:
                    continue
                if document.uuid in hidden:
                    continue
                rank = 0 if preferred_folder and pack.folder == preferred_folder else 1
                if document.is_custom:
                    rank -= 1
                candidates.append((rank, order, document))

        for _, _, page in sorted(candidates, key=lambda c: (c[0], c[1])):
            mapped = settings.custom_spell_mappings.get(page.uuid)
            if mapped:
                replacement = await self._env.resolve_uuid(mapped)
                if isinstance(replacement, SpellListPage) and replacement.spells:
                    logger.debug("Using mapped spell list", original=page.uuid, replacement=mapped)
                    return replacement
                logger.warning("Mapped spell list missing or empty", original=page.uuid, replacement=mapped)
            if page.spells:
                return page
        return None


__all__ = ["ResolvedSpellList", "SpellListResolver"]
