"""Events published by a session.

Every event carries its :class:`UpdateCategory` so a single handler can
be subscribed to several categories and still tell them apart.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

from pypogo.models.credential import AccessToken


class UpdateCategory(StrEnum):
    CREDENTIAL_RENEWED = "credential_renewed"
    INVENTORY_CHANGED = "inventory_changed"
    LOCATION_DATA_CHANGED = "location_data_changed"
    SESSION_ENDED = "session_ended"


class UpdateEvent(BaseModel):
    """Base for all session events."""

    model_config = ConfigDict(frozen=True)

    category: ClassVar[UpdateCategory]

    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class CredentialRenewed(UpdateEvent):
    category: ClassVar[UpdateCategory] = UpdateCategory.CREDENTIAL_RENEWED

    credential: AccessToken


class InventoryChanged(UpdateEvent):
    category: ClassVar[UpdateCategory] = UpdateCategory.INVENTORY_CHANGED


class LocationDataChanged(UpdateEvent):
    category: ClassVar[UpdateCategory] = UpdateCategory.LOCATION_DATA_CHANGED


class SessionEnded(UpdateEvent):
    """The session died on its own (e.g. repeated heartbeat failures)."""

    category: ClassVar[UpdateCategory] = UpdateCategory.SESSION_ENDED

    reason: str = ""
