"""Host collaborator contract.

The engine never touches the virtual tabletop directly. Everything it
needs (documents, compendium indexes, actor flags and mutations, user
notifications, world settings) goes through an ``Environment`` passed to
each component at construction. Every method that may suspend is a
coroutine.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from spellbook.core.constants import (
    MODULE_ID,
    SETTING_FILTER_CONFIGURATION,
)
from spellbook.core.logging import get_logger
from spellbook.models import (
    Actor,
    CompendiumPack,
    GMNotification,
    NotificationLevel,
    SpellDoc,
    SpellListPage,
    WorldSettings,
)
from spellbook.models.settings import FilterConfiguration


logger = get_logger(__name__)

HostDocument = SpellDoc | SpellListPage
"""Documents the engine resolves by UUID."""

SPELL_KIND = "spell"
ITEM_KIND = "item"


class Environment(ABC):
    """Abstract host environment.

    Implementations must treat actor state as owned by the host: every
    read returns a fresh snapshot and callers re-read after mutating.
    """

    _warned_outdated_filters = False

    # =========================================================================
    # Documents and compendiums
    # =========================================================================

    @abstractmethod
    async def resolve_uuid(self, uuid: str) -> HostDocument | None:
        """Resolve a UUID to a spell or spell-list document."""

    @abstractmethod
    def resolve_uuid_sync(self, uuid: str) -> HostDocument | None:
        """Resolve a UUID from already-loaded documents without suspending."""

    @abstractmethod
    async def index_pack(self, pack_id: str, fields: tuple[str, ...] = ()) -> list[HostDocument]:
        """Load the index of a compendium pack."""

    @abstractmethod
    def list_packs(self) -> list[CompendiumPack]:
        """List the compendium packs known to the host, in index order."""

    # =========================================================================
    # Actors
    # =========================================================================

    @abstractmethod
    async def get_actor(self, actor_id: str) -> Actor:
        """Fetch a fresh snapshot of an actor."""

    @abstractmethod
    async def get_flag(self, actor_id: str, namespace: str, key: str) -> Any:
        """Read an actor flag."""

    @abstractmethod
    async def set_flag(self, actor_id: str, namespace: str, key: str, value: Any) -> None:
        """Write an actor flag."""

    @abstractmethod
    async def unset_flag(self, actor_id: str, namespace: str, key: str) -> None:
        """Remove an actor flag."""

    @abstractmethod
    async def update_actor(self, actor_id: str, patch: dict[str, Any]) -> None:
        """Apply a dotted-path patch to the actor (e.g. ``{"currency.gp": 10}``)."""

    @abstractmethod
    async def create_embedded(self, actor_id: str, kind: str, docs: list[dict[str, Any]]) -> list[str]:
        """Create embedded documents and return their new ids."""

    @abstractmethod
    async def update_embedded(self, actor_id: str, kind: str, updates: list[dict[str, Any]]) -> None:
        """Patch embedded documents; each update carries its ``id``."""

    @abstractmethod
    async def delete_embedded(self, actor_id: str, kind: str, ids: list[str]) -> None:
        """Delete embedded documents by id."""

    # =========================================================================
    # Users and settings
    # =========================================================================

    @abstractmethod
    def notify(self, level: NotificationLevel, message: str) -> None:
        """Show a notification to the current user."""

    @abstractmethod
    async def send_gm_notification(self, payload: GMNotification) -> None:
        """Deliver a GM-visible preparation notice."""

    @abstractmethod
    def get_setting(self, namespace: str, key: str) -> Any:
        """Read a world-scoped setting; None when unset."""

    def world_settings(self) -> WorldSettings:
        """Read all world settings, filling gaps from the defaults.

        A stored filter configuration from an older version is replaced by
        the default one.
        """
        defaults = WorldSettings()
        values: dict[str, Any] = {}
        for name, field in WorldSettings.model_fields.items():
            key = field.alias or name
            stored = self.get_setting(MODULE_ID, key)
            if stored is not None:
                values[key] = stored
        stored_filters = values.get(SETTING_FILTER_CONFIGURATION)
        if stored_filters is not None:
            config = FilterConfiguration.model_validate(stored_filters)
            if not config.is_current:
                if not self._warned_outdated_filters:
                    self._warned_outdated_filters = True
                    logger.warning("Filter configuration outdated, using defaults", stored_version=config.version)
                values.pop(SETTING_FILTER_CONFIGURATION)
        if not values:
            return defaults
        return WorldSettings.model_validate(values)


__all__ = [
    "Environment",
    "HostDocument",
    "SPELL_KIND",
    "ITEM_KIND",
]
