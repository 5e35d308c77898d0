"""Storage module for spellbook persistence.

Provides SQLite-based storage for actor documents and world settings.
"""

from spellbook.storage.database import (
    ActorRecord,
    Database,
    get_database,
    reset_database,
)

__all__ = [
    "ActorRecord",
    "Database",
    "get_database",
    "reset_database",
]
