"""User-visible and GM-visible notification payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from spellbook.models.enums import GMNotificationKind, NotificationLevel


class Notification(BaseModel):
    """A toast shown to the current user."""

    model_config = ConfigDict(frozen=True)

    level: NotificationLevel
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)


class GMNotification(BaseModel):
    """The ``spell-prep-notify`` payload, one per class and kind."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    actor_id: str
    class_id: str
    kind: GMNotificationKind
    details: dict[str, Any] = Field(default_factory=dict)


__all__ = ["Notification", "GMNotification"]
