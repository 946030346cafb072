"""Update notification layer.

Session background activity publishes categorised events here; the
notifier fans them out to subscribers without blocking the producer.
"""

from pypogo.updates.events import (
    CredentialRenewed,
    InventoryChanged,
    LocationDataChanged,
    SessionEnded,
    UpdateCategory,
    UpdateEvent,
)
from pypogo.updates.notifier import UpdateHandler, UpdateNotifier

__all__ = [
    "CredentialRenewed",
    "InventoryChanged",
    "LocationDataChanged",
    "SessionEnded",
    "UpdateCategory",
    "UpdateEvent",
    "UpdateHandler",
    "UpdateNotifier",
]
