"""Credential freshness policy.

Pure functions of a credential and a clock reading; no I/O.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pypogo.models.credential import AccessToken


def utcnow() -> datetime:
    return datetime.now(UTC)


def is_reusable(credential: AccessToken, *, now: datetime | None = None) -> bool:
    """Whether a cached credential may be handed to the resume path.

    Expired credentials are never reusable; the caller must fall through
    to a fresh login instead of resuming with a stale token.
    """
    return not credential.is_expired_at(now if now is not None else utcnow())


def needs_renewal(credential: AccessToken, *, renew_margin: float, now: datetime | None = None) -> bool:
    """Whether a live session should refresh *credential* before using it again."""
    return credential.expires_within(renew_margin, now=now if now is not None else utcnow())
