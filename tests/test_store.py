from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from pypogo.auth.store import FileCredentialStore, MemoryCredentialStore
from pypogo.exceptions import PogoCacheError
from pypogo.models.credential import AccessToken


def _token(token: str = "bearer-1", *, offset: int = 0, refresh_token: str | None = None) -> AccessToken:
    return AccessToken(
        owner="alice",
        token=token,
        expiry=datetime(2030, 1, 1, tzinfo=UTC) + timedelta(seconds=offset),
        provider="ptc",
        refresh_token=refresh_token,
    )


def test_memory_store_round_trip() -> None:
    store = MemoryCredentialStore()
    assert store.load("alice") is None

    store.save("alice", _token())
    assert store.load("alice") == _token()
    assert store.delete("alice") is True
    assert store.delete("alice") is False


def test_memory_store_rejects_blank_identity() -> None:
    with pytest.raises(PogoCacheError):
        MemoryCredentialStore().load("  ")


def test_file_store_missing_entry_is_none(tmp_path: Path) -> None:
    store = FileCredentialStore(tmp_path / "cache")
    assert store.load("alice") is None


def test_file_store_persists_plain_record(tmp_path: Path) -> None:
    store = FileCredentialStore(tmp_path)
    credential = _token(refresh_token="refresh-1")

    store.save("alice", credential)

    record = json.loads((tmp_path / "alice.json").read_text(encoding="utf-8"))
    assert record["encrypted"] is False
    assert record["token"] == "bearer-1"
    assert FileCredentialStore(tmp_path).load("alice") == credential
    assert list(tmp_path.glob("*.tmp")) == []


def test_file_store_encrypts_tokens_at_rest(tmp_path: Path) -> None:
    store = FileCredentialStore(tmp_path, secret_key="cache-secret")
    credential = _token(token="very-secret-bearer", refresh_token="very-secret-refresh")

    store.save("alice", credential)

    text = (tmp_path / "alice.json").read_text(encoding="utf-8")
    assert "very-secret-bearer" not in text
    assert "very-secret-refresh" not in text
    assert FileCredentialStore(tmp_path, secret_key="cache-secret").load("alice") == credential


def test_file_store_encrypted_record_needs_key(tmp_path: Path) -> None:
    FileCredentialStore(tmp_path, secret_key="cache-secret").save("alice", _token())

    with pytest.raises(PogoCacheError, match="encrypted"):
        FileCredentialStore(tmp_path).load("alice")


def test_file_store_corrupt_record_raises_cache_error(tmp_path: Path) -> None:
    (tmp_path / "alice.json").write_text("{not json", encoding="utf-8")
    (tmp_path / "bob.json").write_text(json.dumps({"owner": "bob"}), encoding="utf-8")

    store = FileCredentialStore(tmp_path)
    with pytest.raises(PogoCacheError) as excinfo:
        store.load("alice")
    assert excinfo.value.identity == "alice"
    with pytest.raises(PogoCacheError):
        store.load("bob")


def test_file_store_sanitises_identity(tmp_path: Path) -> None:
    store = FileCredentialStore(tmp_path)
    assert store.path_for("../evil/name").name == ".._evil_name.json"
    assert store.path_for("alice@example.com").name == "alice@example.com.json"


def test_file_store_unwritable_directory_raises_cache_error(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")

    with pytest.raises(PogoCacheError):
        FileCredentialStore(blocker).save("alice", _token())


def test_file_store_concurrent_writers_leave_one_complete_record(tmp_path: Path) -> None:
    store = FileCredentialStore(tmp_path)
    tokens = [_token(token=f"bearer-{i}", offset=i) for i in range(20)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda tok: store.save("alice", tok), tokens))

    loaded = store.load("alice")
    assert loaded in tokens
    assert list(tmp_path.glob("*.tmp")) == []
