"""Client configuration for pypogo."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pypogo._constants import DEFAULT_API_URL
from pypogo.exceptions import PogoConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class PogoConfig:
    """Session configuration.

    Parameters
    ----------
    api_url : str
        RPC endpoint the transport posts envelopes to. The server may
        redirect to a per-session URL after the first call.
    locale : str
        Locale string sent with every envelope (e.g. ``"en-GB"``).
    heartbeat_interval : float
        Seconds between background heartbeat ticks.
    call_timeout : float
        Seconds a single dispatched call may wait for its response before
        failing with :class:`~pypogo.exceptions.PogoTransportError`.
    renew_margin : float
        Renew the access token when it expires within this many seconds.
    max_heartbeat_failures : int
        Consecutive failed heartbeat ticks after which the session is
        considered dead and closes itself.
    cache_enabled : bool
        Whether :func:`pypogo.login.get_session` may reuse and persist
        tokens by default.
    cache_dir : str
        Directory used by the file credential store.
    """

    api_url: str = DEFAULT_API_URL
    locale: str = "en-GB"
    heartbeat_interval: float = 10.0
    call_timeout: float = 30.0
    renew_margin: float = 60.0
    max_heartbeat_failures: int = 3
    cache_enabled: bool = False
    cache_dir: str = "cache"

    def validate(self) -> PogoConfig:
        """Raise :class:`PogoConfigError` for values the session cannot run with."""
        if not self.api_url.startswith(("http://", "https://")):
            raise PogoConfigError(f"api_url must be an http(s) URL, got {self.api_url!r}")
        if self.heartbeat_interval <= 0:
            raise PogoConfigError(f"heartbeat_interval must be positive, got {self.heartbeat_interval}")
        if self.call_timeout <= 0:
            raise PogoConfigError(f"call_timeout must be positive, got {self.call_timeout}")
        if self.renew_margin < 0:
            raise PogoConfigError(f"renew_margin must not be negative, got {self.renew_margin}")
        if self.max_heartbeat_failures < 1:
            raise PogoConfigError(f"max_heartbeat_failures must be at least 1, got {self.max_heartbeat_failures}")
        return self

    @classmethod
    def from_env(cls, **overrides: Any) -> PogoConfig:
        """Create configuration from ``POGO_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        _ENV_STR_MAP = {
            "POGO_API_URL": "api_url",
            "POGO_LOCALE": "locale",
            "POGO_CACHE_DIR": "cache_dir",
        }
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_NUMERIC_MAP: dict[str, tuple[str, type]] = {
            "POGO_HEARTBEAT_INTERVAL": ("heartbeat_interval", float),
            "POGO_CALL_TIMEOUT": ("call_timeout", float),
            "POGO_RENEW_MARGIN": ("renew_margin", float),
            "POGO_MAX_HEARTBEAT_FAILURES": ("max_heartbeat_failures", int),
        }
        for env_key, (field_name, cast) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = cast(val)
            except ValueError as exc:
                raise PogoConfigError(f"{env_key} is not a valid {cast.__name__}: {val!r}") from exc

        if "cache_enabled" not in overrides:
            config_kwargs["cache_enabled"] = _env_bool(env.get("POGO_CACHE_ENABLED"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs).validate()
