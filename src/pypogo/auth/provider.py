"""Identity providers.

A provider turns an identity plus secret into an :class:`AccessToken`
and refreshes tokens it issued. Every failure, whether a rejected secret,
an HTTP error or an unreachable endpoint, is raised as
:class:`PogoAuthenticationError` and never retried here.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any, Protocol

import aiohttp

from pypogo._constants import EXPIRY_SAFETY_SECONDS, USER_AGENT
from pypogo._redact import redact_for_log
from pypogo.auth.policy import utcnow
from pypogo.exceptions import PogoAuthenticationError
from pypogo.models.credential import AccessToken

_logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    """Structural provider interface used by login and session renewal."""

    @property
    def name(self) -> str:
        ...

    async def login(self, identity: str, secret: str) -> AccessToken:
        ...

    async def refresh(self, credential: AccessToken) -> AccessToken:
        ...


class OAuthPasswordProvider:
    """OAuth2 provider using the password and refresh-token grants.

    Usage::

        async with OAuthPasswordProvider(name="ptc", token_url=URL, client_id="mobile-app") as provider:
            token = await provider.login("alice", "hunter2")
    """

    def __init__(
        self,
        *,
        name: str,
        token_url: str,
        client_id: str,
        client_secret: str | None = None,
        scope: str | None = None,
        http_session: aiohttp.ClientSession | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._name = name
        self._token_url = token_url
        self._client_id = client_id
        self._client_secret = client_secret
        self._scope = scope
        self._external_session = http_session is not None
        self._http_session = http_session
        self._clock = clock

    @property
    def name(self) -> str:
        return self._name

    def __str__(self) -> str:
        return self._name

    async def __aenter__(self) -> OAuthPasswordProvider:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
        self._http_session = None

    def _http(self) -> aiohttp.ClientSession:
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession()
            self._external_session = False
        return self._http_session

    async def login(self, identity: str, secret: str) -> AccessToken:
        """Exchange *identity* and *secret* for a token (password grant)."""
        if not identity or not secret:
            raise PogoAuthenticationError("Identity and secret are required", provider=self._name)
        form = {"grant_type": "password", "username": identity, "password": secret}
        return await self._request_token(form, owner=identity, previous_refresh=None)

    async def refresh(self, credential: AccessToken) -> AccessToken:
        """Obtain a new token for *credential*'s owner (refresh-token grant)."""
        if not credential.refresh_token:
            raise PogoAuthenticationError(
                f"Credential for {credential.owner!r} carries no refresh token",
                provider=self._name,
            )
        form = {"grant_type": "refresh_token", "refresh_token": credential.refresh_token}
        return await self._request_token(form, owner=credential.owner, previous_refresh=credential.refresh_token)

    async def _request_token(
        self,
        form: dict[str, str],
        *,
        owner: str,
        previous_refresh: str | None,
    ) -> AccessToken:
        form = {**form, "client_id": self._client_id}
        if self._client_secret:
            form["client_secret"] = self._client_secret
        if self._scope:
            form["scope"] = self._scope

        _logger.debug("POST %s form=%s", self._token_url, redact_for_log(form))
        try:
            async with self._http().post(
                self._token_url,
                data=form,
                headers={"user-agent": USER_AGENT, "accept": "application/json"},
            ) as resp:
                status = resp.status
                text = await resp.text()
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise PogoAuthenticationError(
                f"Token request to {self._name} failed: {exc!r}",
                provider=self._name,
            ) from exc

        if status != 200:
            raise PogoAuthenticationError(
                f"{self._name} rejected the token request: HTTP {status}: {text[:200]}",
                provider=self._name,
                status_code=status,
            )

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise PogoAuthenticationError(
                f"Invalid JSON from {self._name}: {text[:200]}",
                provider=self._name,
                status_code=status,
            ) from exc
        _logger.debug("Token response from %s parsed=%s", self._name, redact_for_log(body))

        access_token = body.get("access_token") if isinstance(body, dict) else None
        if not isinstance(access_token, str) or not access_token:
            raise PogoAuthenticationError(
                f"{self._name} token response missing access_token",
                provider=self._name,
                status_code=status,
            )

        try:
            expires_in = float(body.get("expires_in", 3600))
        except (TypeError, ValueError):
            expires_in = 3600.0
        lifetime = max(0.0, expires_in - EXPIRY_SAFETY_SECONDS)
        refresh_token = body.get("refresh_token")

        return AccessToken(
            owner=owner,
            token=access_token,
            expiry=self._clock() + timedelta(seconds=lifetime),
            provider=self._name,
            refresh_token=refresh_token if isinstance(refresh_token, str) and refresh_token else previous_refresh,
        )
