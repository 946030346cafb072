"""Request/response envelope models for the RPC transport.

The library treats request and response *messages* as opaque bytes; only
the envelope around them (request id, auth token, position, status) is
modelled here.
"""

from __future__ import annotations

from pydantic import Field, field_validator

from pypogo.models._base import PogoBaseModel, PogoEnum
from pypogo.models.location import Location


class RequestType(PogoEnum):
    """RPC method identifiers used by the session itself and the demo."""

    UNKNOWN = -1
    METHOD_UNSET = 0
    PLAYER_UPDATE = 1
    GET_PLAYER = 2
    GET_INVENTORY = 4
    DOWNLOAD_SETTINGS = 5
    FORT_SEARCH = 101
    FORT_DETAILS = 104
    GET_MAP_OBJECTS = 106
    GET_HATCHED_EGGS = 126
    CHECK_AWARDED_BADGES = 129


class ResponseStatus(PogoEnum):
    """Envelope-level status returned by the server."""

    UNKNOWN = -1
    UNSET = 0
    OK = 1
    OK_RPC_URL_IN_RESPONSE = 2
    BAD_REQUEST = 3
    INVALID_REQUEST = 51
    INVALID_PLATFORM_REQUEST = 52
    REDIRECT = 53
    SESSION_INVALIDATED = 100
    INVALID_AUTH_TOKEN = 102

    @property
    def is_ok(self) -> bool:
        return self in (ResponseStatus.OK, ResponseStatus.OK_RPC_URL_IN_RESPONSE)


class Request(PogoBaseModel):
    """One typed call: a method id plus its already-encoded message."""

    request_type: RequestType
    message: bytes = b""

    @field_validator("request_type", mode="before")
    @classmethod
    def _coerce_type(cls, value: object) -> object:
        if isinstance(value, int):
            request_type = RequestType(value)
            if request_type is RequestType.UNKNOWN:
                raise ValueError(f"unknown request type {int(value)}")
            return request_type
        return value


class RequestEnvelope(PogoBaseModel):
    """Everything the transport needs to send one or more requests."""

    request_id: int
    auth_token: str
    location: Location
    issued_at_ms: int
    locale: str = "en-GB"
    requests: tuple[Request, ...] = Field(min_length=1)


class ResponseEnvelope(PogoBaseModel):
    """Transport reply, correlated to its envelope by ``request_id``."""

    request_id: int
    status: ResponseStatus = ResponseStatus.OK
    returns: tuple[bytes, ...] = ()
    api_url: str | None = None
    error: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: object) -> object:
        if isinstance(value, int) and not isinstance(value, ResponseStatus):
            return ResponseStatus(value)
        return value
