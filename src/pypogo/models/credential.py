"""Access token (credential) model."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from pydantic import Field, field_validator

from pypogo.models._base import PogoBaseModel, UtcTimestamp


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AccessToken(PogoBaseModel):
    """Token issued by an identity provider.

    Instances are immutable; a renewal always produces a new
    ``AccessToken`` which replaces the old one on the session.

    Parameters
    ----------
    owner : str
        Identity (username) the token was issued to.
    token : str
        Opaque bearer token placed in every request envelope.
    expiry : datetime
        Absolute expiry, UTC.
    provider : str
        Name of the identity provider that issued the token.
    refresh_token : str or None
        Provider refresh token, when the provider issues one.
    """

    owner: str = Field(min_length=1)
    token: str = Field(min_length=1)
    expiry: UtcTimestamp
    provider: str = ""
    refresh_token: str | None = None

    @field_validator("owner", "token")
    @classmethod
    def _strip(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("must be non-empty")
        return stripped

    @property
    def uid(self) -> str:
        """Stable key for this token's owner and provider."""
        return f"{self.owner}-{self.provider}" if self.provider else self.owner

    def expires_within(self, seconds: float, *, now: datetime | None = None) -> bool:
        """Whether the token expires within *seconds* of *now*."""
        current = now if now is not None else _utcnow()
        return self.expiry - current <= timedelta(seconds=seconds)

    def is_expired_at(self, now: datetime) -> bool:
        return now >= self.expiry

    @property
    def is_expired(self) -> bool:
        """Whether the token is already past its expiry."""
        return self.is_expired_at(_utcnow())

    def __repr__(self) -> str:
        return f"AccessToken(owner={self.owner!r}, provider={self.provider!r}, expiry={self.expiry.isoformat()})"
