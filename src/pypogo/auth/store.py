"""Credential persistence.

Stores are keyed by a string (``get_session`` uses ``<identity>-<provider>``)
and exchange :class:`AccessToken` values. Any read or write failure
surfaces as :class:`PogoCacheError`; a missing entry is not a failure and
loads as ``None``.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from pypogo._crypto.aes import aes_decrypt_utf8, aes_encrypt_hex
from pypogo._crypto.hashing import md5_hex
from pypogo.exceptions import PogoCacheError, PogoCryptoError
from pypogo.models.credential import AccessToken

_logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._@+-]")


class CredentialStore(Protocol):
    """Structural store interface used by :func:`pypogo.login.get_session`.

    Implementations must allow at most one writer per identity at a time.
    """

    def load(self, identity: str) -> AccessToken | None:
        ...

    def save(self, identity: str, credential: AccessToken) -> None:
        ...


class _IdentityLocks:
    """Lazily created per-identity locks."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def get(self, identity: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(identity)
            if lock is None:
                lock = threading.Lock()
                self._locks[identity] = lock
            return lock


def _require_identity(identity: str) -> str:
    key = identity.strip()
    if not key:
        raise PogoCacheError("identity must be non-empty", identity=identity)
    return key


class MemoryCredentialStore:
    """Process-local store, mostly for tests and short-lived tools."""

    def __init__(self, initial: dict[str, AccessToken] | None = None) -> None:
        self._entries: dict[str, AccessToken] = dict(initial or {})
        self._locks = _IdentityLocks()

    def load(self, identity: str) -> AccessToken | None:
        return self._entries.get(_require_identity(identity))

    def save(self, identity: str, credential: AccessToken) -> None:
        key = _require_identity(identity)
        with self._locks.get(key):
            self._entries[key] = credential

    def delete(self, identity: str) -> bool:
        key = _require_identity(identity)
        with self._locks.get(key):
            return self._entries.pop(key, None) is not None


class FileCredentialStore:
    """One JSON file per identity under *directory*.

    Parameters
    ----------
    directory : str or PathLike
        Cache directory; created on first save.
    secret_key : str or None
        When set, ``token`` and ``refresh_token`` are AES-encrypted with
        ``MD5(secret_key)`` before they touch the disk.
    """

    def __init__(self, directory: str | os.PathLike[str], *, secret_key: str | None = None) -> None:
        self._directory = Path(directory)
        self._key_hex = md5_hex(secret_key) if secret_key else None
        self._locks = _IdentityLocks()

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, identity: str) -> Path:
        key = _require_identity(identity)
        return self._directory / f"{_UNSAFE_CHARS.sub('_', key)}.json"

    def _encode(self, credential: AccessToken) -> dict[str, Any]:
        record: dict[str, Any] = credential.model_dump(mode="json")
        record["encrypted"] = self._key_hex is not None
        if self._key_hex is not None:
            record["token"] = aes_encrypt_hex(credential.token, self._key_hex)
            if credential.refresh_token is not None:
                record["refresh_token"] = aes_encrypt_hex(credential.refresh_token, self._key_hex)
        return record

    def _decode(self, identity: str, record: dict[str, Any]) -> AccessToken:
        if record.get("encrypted"):
            if self._key_hex is None:
                raise PogoCacheError(
                    f"Cached credential for {identity!r} is encrypted but no key is set",
                    identity=identity,
                )
            record = dict(record)
            record["token"] = aes_decrypt_utf8(str(record.get("token", "")), self._key_hex)
            if record.get("refresh_token"):
                record["refresh_token"] = aes_decrypt_utf8(str(record["refresh_token"]), self._key_hex)
        return AccessToken.model_validate(record)

    def load(self, identity: str) -> AccessToken | None:
        path = self.path_for(identity)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            _logger.debug("No cached credential at %s", path)
            return None
        except OSError as exc:
            raise PogoCacheError(f"Cannot read {path}: {exc}", identity=identity) from exc

        try:
            record = json.loads(text)
            if not isinstance(record, dict):
                raise ValueError("record is not a JSON object")
            credential = self._decode(identity, record)
        except PogoCacheError:
            raise
        except (ValueError, ValidationError, PogoCryptoError) as exc:
            raise PogoCacheError(f"Corrupt cached credential in {path}: {exc}", identity=identity) from exc

        _logger.debug("Loaded cached credential %r from %s", credential, path)
        return credential

    def save(self, identity: str, credential: AccessToken) -> None:
        path = self.path_for(identity)
        with self._locks.get(identity.strip()):
            try:
                payload = json.dumps(self._encode(credential), indent=2)
                self._directory.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(dir=self._directory, prefix=f".{path.stem}.", suffix=".tmp")
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as handle:
                        handle.write(payload)
                    os.replace(tmp_name, path)
                except BaseException:
                    Path(tmp_name).unlink(missing_ok=True)
                    raise
            except (OSError, PogoCryptoError) as exc:
                raise PogoCacheError(f"Cannot write {path}: {exc}", identity=identity) from exc
        _logger.debug("Saved credential %r to %s", credential, path)

    def delete(self, identity: str) -> bool:
        path = self.path_for(identity)
        with self._locks.get(identity.strip()):
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            except OSError as exc:
                raise PogoCacheError(f"Cannot delete {path}: {exc}", identity=identity) from exc
        return True
