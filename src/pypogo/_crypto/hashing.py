"""Hash helpers used for key derivation and payload change detection."""

from __future__ import annotations

import hashlib


def md5_hex(value: str) -> str:
    """Compute MD5 of a UTF-8 string, returning uppercase hex.

    Parameters
    ----------
    value : str
        The string to hash.

    Returns
    -------
    str
        32-character uppercase hex digest.
    """
    return hashlib.md5(value.encode("utf-8")).hexdigest().upper()


def payload_digest(payload: bytes) -> str:
    """Digest of an opaque response payload.

    The heartbeat compares digests between ticks to decide whether the
    server sent something new; it never decodes the payload itself.
    """
    return hashlib.md5(payload).hexdigest()
