"""Redaction for DEBUG logs.

Token endpoint forms and RPC envelopes carry passwords, bearer tokens and
base64 request messages. :func:`redact_for_log` masks the secrets and
folds the envelope's ``requests`` and ``returns`` lists into one-line
summaries, so a logged body stays short and secret-free.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from pypogo.models.rpc import RequestType

_MASK = "<redacted>"
_MAX_DEPTH = 8

# Compared after lowercasing and dropping "_" and "-".
_SECRET_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "secret",
        "clientsecret",
        "token",
        "authtoken",
        "accesstoken",
        "refreshtoken",
        "idtoken",
        "authorization",
        "cookie",
    }
)


def _is_secret(key: str) -> bool:
    return key.replace("_", "").replace("-", "").lower() in _SECRET_KEYS


def _payload_size(item: Any) -> int:
    if isinstance(item, str):
        # base64 text: decoded length without decoding
        return len(item) * 3 // 4 - item.count("=")
    if isinstance(item, (bytes, bytearray)):
        return len(item)
    return 0


def _type_name(value: Any) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        request_type = RequestType(value)
        if request_type is not RequestType.UNKNOWN:
            return request_type.name
    return f"type:{value!r}"


def _summarise_request(entry: Any) -> str:
    if not isinstance(entry, Mapping):
        return repr(entry)
    size = _payload_size(entry.get("requestMessage", ""))
    return f"{_type_name(entry.get('requestType'))}[{size}b]"


def _summarise_returns(items: Sequence[Any]) -> str:
    total = sum(_payload_size(item) for item in items)
    noun = "payload" if len(items) == 1 else "payloads"
    return f"<{len(items)} {noun}, {total}b>"


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a copy of *value* that is safe to put in a DEBUG log line.

    * values under password, secret, token, authorization and cookie keys
      (in any casing or separator style) become ``"<redacted>"``
    * an envelope ``requests`` list becomes ``["GET_PLAYER[0b]", ...]``
    * a reply ``returns`` list becomes ``"<N payloads, Mb>"``
    * raw bytes become ``"<bytes:Nb>"``; long strings are cut at *max_string*
    """
    if _depth > _MAX_DEPTH:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        if len(value) <= max_string:
            return value
        return f"{value[:max_string]}<+{len(value) - max_string} chars>"

    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for raw_key, item in value.items():
            key = str(raw_key)
            if _is_secret(key):
                redacted[key] = _MASK
            elif key == "requests" and isinstance(item, list):
                redacted[key] = [_summarise_request(entry) for entry in item]
            elif key == "returns" and isinstance(item, list):
                redacted[key] = _summarise_returns(item)
            else:
                redacted[key] = redact_for_log(item, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence):
        return [redact_for_log(item, max_string=max_string, _depth=_depth + 1) for item in value]

    return repr(value)
