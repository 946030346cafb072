from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from pypogo.models import (
    AccessToken,
    Location,
    Request,
    RequestEnvelope,
    RequestType,
    ResponseEnvelope,
    ResponseStatus,
)


def _dt() -> datetime:
    return datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


def test_access_token_parses_epoch_ms_and_iso_expiry() -> None:
    from_ms = AccessToken(owner="alice", token="tok", expiry=1771000000000)
    from_seconds = AccessToken(owner="alice", token="tok", expiry=1771000000)
    from_iso = AccessToken(owner="alice", token="tok", expiry="2026-01-01T12:00:00")

    assert from_ms.expiry == from_seconds.expiry
    assert from_ms.expiry.tzinfo is not None
    assert from_iso.expiry == _dt()


def test_access_token_accepts_camel_case_keys() -> None:
    token = AccessToken.model_validate(
        {"owner": "alice", "token": "tok", "expiry": _dt().isoformat(), "refreshToken": "r-1"}
    )
    assert token.refresh_token == "r-1"


def test_access_token_rejects_blank_token() -> None:
    with pytest.raises(ValidationError):
        AccessToken(owner="alice", token="   ", expiry=_dt())


def test_access_token_strips_and_is_immutable() -> None:
    token = AccessToken(owner=" alice ", token=" tok ", expiry=_dt(), provider="ptc")
    assert token.owner == "alice"
    assert token.token == "tok"
    assert token.uid == "alice-ptc"

    with pytest.raises(ValidationError):
        token.token = "other"  # type: ignore[misc]


def test_access_token_expiry_checks() -> None:
    token = AccessToken(owner="alice", token="tok", expiry=_dt())

    assert not token.is_expired_at(_dt() - timedelta(seconds=1))
    assert token.is_expired_at(_dt())
    assert token.expires_within(60, now=_dt() - timedelta(seconds=30))
    assert not token.expires_within(60, now=_dt() - timedelta(minutes=5))


def test_access_token_repr_hides_secrets() -> None:
    token = AccessToken(owner="alice", token="super-secret", expiry=_dt(), refresh_token="refresh-secret")
    text = repr(token)
    assert "alice" in text
    assert "super-secret" not in text
    assert "refresh-secret" not in text


def test_location_bounds() -> None:
    loc = Location(latitude=51.507351, longitude=-0.127758)
    assert loc.altitude == 0.0

    with pytest.raises(ValidationError):
        Location(latitude=91.0, longitude=0.0)
    with pytest.raises(ValidationError):
        Location(latitude=0.0, longitude=-180.5)


def test_unknown_enum_values_fall_back() -> None:
    assert RequestType(9999) is RequestType.UNKNOWN
    assert ResponseStatus(777) is ResponseStatus.UNKNOWN
    assert not ResponseStatus.UNKNOWN.is_ok
    assert ResponseStatus.OK_RPC_URL_IN_RESPONSE.is_ok


def test_request_and_response_coerce_ints() -> None:
    request = Request(request_type=104, message=b"fort")
    response = ResponseEnvelope(request_id=7, status=102, returns=(b"x",))

    assert request.request_type is RequestType.FORT_DETAILS
    assert response.status is ResponseStatus.INVALID_AUTH_TOKEN


@pytest.mark.parametrize("request_type", [9999, -1, RequestType.UNKNOWN])
def test_request_rejects_unmapped_method_ids(request_type: int) -> None:
    with pytest.raises(ValidationError, match="unknown request type"):
        Request(request_type=request_type)


def test_request_envelope_requires_at_least_one_request() -> None:
    with pytest.raises(ValidationError):
        RequestEnvelope(
            request_id=1,
            auth_token="tok",
            location=Location(latitude=0.0, longitude=0.0),
            issued_at_ms=0,
            requests=(),
        )
