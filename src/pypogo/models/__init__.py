"""Data models for pypogo."""

from pypogo.models._base import PogoBaseModel, PogoEnum, UtcTimestamp, parse_utc_timestamp
from pypogo.models.credential import AccessToken
from pypogo.models.location import Location
from pypogo.models.rpc import Request, RequestEnvelope, RequestType, ResponseEnvelope, ResponseStatus

__all__ = [
    "AccessToken",
    "Location",
    "PogoBaseModel",
    "PogoEnum",
    "Request",
    "RequestEnvelope",
    "RequestType",
    "ResponseEnvelope",
    "ResponseStatus",
    "UtcTimestamp",
    "parse_utc_timestamp",
]
