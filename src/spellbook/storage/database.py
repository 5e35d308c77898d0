"""SQLite persistence layer for the spellbook engine.

Provides persistent storage for:
- Actor documents (classes, owned spells, inventory, flags)
- World-scoped settings

Default location: ~/.spellbook/spellbook.db (``SPELLBOOK_DATABASE_PATH``)
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Generator

from spellbook.core.config import get_settings
from spellbook.core.logging import get_logger
from spellbook.models import Actor

logger = get_logger(__name__)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class ActorRecord:
    """Stored actor document.

    Attributes:
        id: Actor id.
        name: Actor name.
        document_json: Serialized Actor.
        updated_at: When the actor was last written.
    """

    id: str
    name: str
    document_json: str
    updated_at: datetime

    @classmethod
    def from_row(cls, row: tuple[Any, ...]) -> ActorRecord:
        """Create from database row."""
        return cls(
            id=row[0],
            name=row[1],
            document_json=row[2],
            updated_at=datetime.fromisoformat(row[3]),
        )

    def to_actor(self) -> Actor:
        """Parse the stored document."""
        return Actor.model_validate_json(self.document_json)


# =============================================================================
# Database Class
# =============================================================================


class Database:
    """SQLite database for actor documents and world settings."""

    SCHEMA_VERSION = 1

    def __init__(self, db_path: str | Path | None = None) -> None:
        """Initialize database.

        Args:
            db_path: Path to database file. If None, uses the configured path.
        """
        if db_path is None:
            self.db_path = get_settings().storage.database_path
        else:
            self.db_path = Path(db_path)

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

        logger.info("Database initialized", path=str(self.db_path))

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection with proper cleanup."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS actors (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    document_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS world_settings (
                    namespace TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value_json TEXT NOT NULL,
                    PRIMARY KEY (namespace, key)
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_actors_updated
                ON actors(updated_at DESC)
            """)

            cursor.execute("""
                INSERT OR REPLACE INTO schema_version (version) VALUES (?)
            """, (self.SCHEMA_VERSION,))

    # =========================================================================
    # Actor Operations
    # =========================================================================

    def save_actor(self, actor: Actor) -> ActorRecord:
        """Insert or replace an actor document.

        Args:
            actor: Actor snapshot to persist.

        Returns:
            The stored record.
        """
        now = datetime.now()
        document_json = actor.model_dump_json()

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT OR REPLACE INTO actors (id, name, document_json, updated_at)
                VALUES (?, ?, ?, ?)
            """, (actor.id, actor.name, document_json, now.isoformat()))

        logger.debug("Saved actor", actor_id=actor.id)

        return ActorRecord(id=actor.id, name=actor.name, document_json=document_json, updated_at=now)

    def get_actor(self, actor_id: str) -> ActorRecord | None:
        """Get an actor record by id.

        Args:
            actor_id: Actor id.

        Returns:
            Actor record if found, None otherwise.
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT id, name, document_json, updated_at
                FROM actors WHERE id = ?
            """, (actor_id,))
            row = cursor.fetchone()

            if row:
                return ActorRecord.from_row(tuple(row))
            return None

    def get_all_actors(self) -> list[ActorRecord]:
        """Get all stored actors, most recently updated first."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT id, name, document_json, updated_at
                FROM actors ORDER BY updated_at DESC
            """)

            return [ActorRecord.from_row(tuple(row)) for row in cursor.fetchall()]

    def delete_actor(self, actor_id: str) -> bool:
        """Delete an actor.

        Args:
            actor_id: Actor id.

        Returns:
            True if deleted, False if not found.
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM actors WHERE id = ?", (actor_id,))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info("Deleted actor", actor_id=actor_id)

        return deleted

    def get_actor_count(self) -> int:
        """Get the number of stored actors."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM actors")
            return cursor.fetchone()[0]

    # =========================================================================
    # World Setting Operations
    # =========================================================================

    def set_setting(self, namespace: str, key: str, value: Any) -> None:
        """Store a world setting as JSON."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT OR REPLACE INTO world_settings (namespace, key, value_json)
                VALUES (?, ?, ?)
            """, (namespace, key, json.dumps(value, default=str)))

    def get_setting(self, namespace: str, key: str) -> Any:
        """Read a world setting.

        Returns:
            The decoded value, or None if unset.
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT value_json FROM world_settings WHERE namespace = ? AND key = ?
            """, (namespace, key))
            row = cursor.fetchone()
            return json.loads(row[0]) if row else None

    def get_settings(self, namespace: str) -> dict[str, Any]:
        """Read every setting stored under a namespace."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT key, value_json FROM world_settings WHERE namespace = ?
            """, (namespace,))
            return {row[0]: json.loads(row[1]) for row in cursor.fetchall()}


# =============================================================================
# Singleton Instance
# =============================================================================


_database_instance: Database | None = None


def get_database() -> Database:
    """Get the global database instance.

    Returns:
        Database singleton instance.
    """
    global _database_instance

    if _database_instance is None:
        _database_instance = Database()

    return _database_instance


def reset_database() -> None:
    """Drop the global database instance so the next call reopens it."""
    global _database_instance
    _database_instance = None
