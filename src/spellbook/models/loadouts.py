"""Spell loadouts: named presets of prepared spells for one class."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Loadout(BaseModel):
    """A saved preparation preset.

    Attributes:
        id: Unique identifier, also the key under the ``spellLoadouts`` flag.
        name: Display name (trimmed, required).
        description: Optional free text.
        class_identifier: Class the loadout applies to; None for any class.
        spell_configuration: Source UUIDs to be prepared.
        created_at: Creation time.
        updated_at: Last modification time.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str = Field(default_factory=lambda: uuid4().hex)
    name: str
    description: str = Field(default="")
    class_identifier: str | None = Field(default=None)
    spell_configuration: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @field_validator("name", mode="after")
    @classmethod
    def validate_name(cls, value: str) -> str:
        """Trim the name and require it to be non-empty."""
        value = value.strip()
        if not value:
            msg = "Loadout name must not be empty"
            raise ValueError(msg)
        return value

    @field_validator("description", mode="after")
    @classmethod
    def strip_description(cls, value: str) -> str:
        return value.strip()

    @field_validator("spell_configuration", mode="after")
    @classmethod
    def dedupe_configuration(cls, value: list[str]) -> list[str]:
        """Drop duplicate UUIDs while keeping first-seen order."""
        return list(dict.fromkeys(value))

    def applies_to(self, class_id: str | None) -> bool:
        """Check if the loadout is offered for a class."""
        return self.class_identifier is None or class_id is None or self.class_identifier == class_id

    def to_flag(self) -> dict[str, Any]:
        """Serialize for storage under ``spellLoadouts.<id>``."""
        return self.model_dump(mode="json", by_alias=True)


__all__ = ["Loadout"]
