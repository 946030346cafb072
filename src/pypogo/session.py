"""Authenticated session lifecycle."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from enum import StrEnum
from typing import Any

from pypogo._heartbeat import HeartbeatDispatcher, HeartbeatRequests, default_heartbeat_requests
from pypogo._transport import Transport
from pypogo.auth.policy import needs_renewal
from pypogo.auth.provider import IdentityProvider
from pypogo.config import PogoConfig
from pypogo.exceptions import PogoSessionClosedError, PogoSessionExpiredError, PogoSessionNotActiveError
from pypogo.models.credential import AccessToken
from pypogo.models.location import Location
from pypogo.models.rpc import Request, RequestType
from pypogo.rpc import RpcClient, build_envelope
from pypogo.updates.events import CredentialRenewed, SessionEnded, UpdateCategory
from pypogo.updates.notifier import UpdateHandler, UpdateNotifier

_logger = logging.getLogger(__name__)

#: Sent once, before the rest of the startup batch.
_STARTUP_PLAYER = (Request(request_type=RequestType.GET_PLAYER),)
_STARTUP_BATCH = (
    Request(request_type=RequestType.GET_HATCHED_EGGS),
    Request(request_type=RequestType.GET_INVENTORY),
    Request(request_type=RequestType.CHECK_AWARDED_BADGES),
    Request(request_type=RequestType.DOWNLOAD_SETTINGS),
)


class SessionState(StrEnum):
    CONSTRUCTED = "constructed"
    STARTING = "starting"
    ACTIVE = "active"
    SHUTTING_DOWN = "shutting_down"
    CLOSED = "closed"


class Session:
    """Live authenticated context bound to one access token and one location.

    Usage::

        session = resume_session(provider, token, Location(latitude=51.5, longitude=-0.12))
        session.subscribe(UpdateCategory.INVENTORY_CHANGED, on_inventory)
        async with session:
            payload = await session.dispatch(RequestType.FORT_DETAILS, message)

    The active token is the only state shared between the heartbeat and
    foreground callers. It is replaced, never mutated, under a lock, so a
    reader sees either the old or the new :class:`AccessToken`.
    """

    def __init__(
        self,
        credential: AccessToken,
        location: Location,
        *,
        provider: IdentityProvider,
        transport: Transport,
        config: PogoConfig | None = None,
        notifier: UpdateNotifier | None = None,
        heartbeat_requests: HeartbeatRequests = default_heartbeat_requests,
    ) -> None:
        self._config = (config or PogoConfig()).validate()
        self._credential = credential
        self._location = location
        self._provider = provider
        self._transport = transport
        self._notifier = notifier if notifier is not None else UpdateNotifier()
        self._rpc = RpcClient(transport, call_timeout=self._config.call_timeout)
        self._heartbeat = HeartbeatDispatcher(
            self,
            interval=self._config.heartbeat_interval,
            max_failures=self._config.max_heartbeat_failures,
            build_requests=heartbeat_requests,
        )
        self._renew_lock = asyncio.Lock()
        self._renewals = 0
        self._state = SessionState.CONSTRUCTED

    def __repr__(self) -> str:
        return f"Session(owner={self._credential.owner!r}, state={self._state.value})"

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is SessionState.ACTIVE

    @property
    def credential(self) -> AccessToken:
        """The access token the next call will use."""
        return self._credential

    @property
    def location(self) -> Location:
        return self._location

    @property
    def provider(self) -> IdentityProvider:
        return self._provider

    @property
    def config(self) -> PogoConfig:
        return self._config

    @property
    def notifier(self) -> UpdateNotifier:
        return self._notifier

    @property
    def rpc(self) -> RpcClient:
        return self._rpc

    @property
    def heartbeat(self) -> HeartbeatDispatcher:
        return self._heartbeat

    @property
    def renewals(self) -> int:
        """Number of successful token renewals during this session."""
        return self._renewals

    def subscribe(self, category: UpdateCategory | str, handler: UpdateHandler) -> Callable[[], None]:
        """Shortcut for ``session.notifier.subscribe``."""
        return self._notifier.subscribe(category, handler)

    def set_location(self, latitude: float, longitude: float, altitude: float = 0.0) -> Location:
        """Move the player; subsequent envelopes carry the new position."""
        self._location = Location(latitude=latitude, longitude=longitude, altitude=altitude)
        return self._location

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> Session:
        await self.startup()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def startup(self) -> None:
        """Send the initial requests and start the heartbeat.

        On failure the session is closed and the error re-raised.
        """
        if self._state is not SessionState.CONSTRUCTED:
            if self._state in (SessionState.SHUTTING_DOWN, SessionState.CLOSED):
                raise PogoSessionClosedError("Cannot start a closed session")
            raise PogoSessionNotActiveError(f"startup() not allowed in state {self._state.value}")

        self._state = SessionState.STARTING
        _logger.debug("Session startup for %s at %s", self._credential.owner, self._location)
        try:
            await self._transport.startup()
            await self._call(_STARTUP_PLAYER)
            payloads = await self._call(_STARTUP_BATCH)
            self._heartbeat.observe(RequestType.GET_INVENTORY, payloads[1])
        except BaseException:
            _logger.debug("Session startup failed for %s", self._credential.owner, exc_info=True)
            self._state = SessionState.CLOSED
            await self._release()
            raise

        if self._state is not SessionState.STARTING:
            raise PogoSessionClosedError("Session was closed during startup")
        self._state = SessionState.ACTIVE
        self._heartbeat.start()
        _logger.info("Session active for %s", self._credential.owner)

    async def close(self) -> None:
        """Stop background work and fail in-flight calls. Idempotent."""
        if self._state in (SessionState.SHUTTING_DOWN, SessionState.CLOSED):
            return
        self._state = SessionState.SHUTTING_DOWN
        try:
            await self._heartbeat.stop()
            await self._release()
        finally:
            self._state = SessionState.CLOSED
        _logger.info("Session closed for %s", self._credential.owner)

    async def end(self, reason: str) -> None:
        """Close because the session itself died; subscribers get :class:`SessionEnded`."""
        if not self.is_active:
            return
        _logger.warning("Session for %s ended: %s", self._credential.owner, reason)
        self._notifier.publish(SessionEnded(reason=reason))
        await self.close()

    async def _release(self) -> None:
        await self._rpc.close()
        try:
            await self._transport.close()
        except Exception:
            _logger.debug("Transport close failed", exc_info=True)
        await self._notifier.close()

    # ------------------------------------------------------------------
    # Credential renewal
    # ------------------------------------------------------------------

    async def ensure_credential(self) -> AccessToken:
        """Return a token that is not about to expire, renewing it if needed."""
        credential = self._credential
        if not needs_renewal(credential, renew_margin=self._config.renew_margin):
            return credential
        return await self._renew(credential)

    async def _renew(self, stale: AccessToken) -> AccessToken:
        async with self._renew_lock:
            current = self._credential
            if current is not stale:
                # Another caller renewed while we waited for the lock.
                return current
            _logger.info("Renewing access token for %s (expires %s)", stale.owner, stale.expiry.isoformat())
            renewed = await self._provider.refresh(stale)
            self._credential = renewed
            self._renewals += 1
        self._notifier.publish(CredentialRenewed(credential=renewed))
        return renewed

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def _require_active(self) -> None:
        if self._state is SessionState.ACTIVE:
            return
        if self._state in (SessionState.SHUTTING_DOWN, SessionState.CLOSED):
            raise PogoSessionClosedError("Session is closed")
        raise PogoSessionNotActiveError(f"Session is {self._state.value}; call startup() first")

    async def _call(self, requests: Sequence[Request]) -> tuple[bytes, ...]:
        credential = await self.ensure_credential()
        envelope = build_envelope(
            self._rpc.next_request_id(),
            credential,
            self._location,
            requests,
            locale=self._config.locale,
        )
        try:
            return await self._rpc.call(envelope)
        except PogoSessionExpiredError:
            _logger.info("Server rejected access token for %s; renewing", credential.owner)
            await self._renew(credential)
            raise

    async def dispatch(self, request_type: RequestType | int, message: bytes = b"") -> bytes:
        """Send one typed request and return its raw response bytes.

        Raises
        ------
        ValueError
            *request_type* is not a known method id; nothing is sent.
        PogoSessionNotActiveError
            The session is not ``ACTIVE`` (``PogoSessionClosedError`` once closed).
        PogoTransportError
            The call failed on the wire; the session is still usable.
        PogoApiError
            The server answered with a non-OK status.
        """
        self._require_active()
        (payload,) = await self._call((Request(request_type=request_type, message=message),))
        return payload

    async def dispatch_batch(self, requests: Sequence[Request]) -> list[bytes]:
        """Send several requests in one envelope; payloads come back in request order."""
        self._require_active()
        if not requests:
            raise ValueError("requests must not be empty")
        return list(await self._call(requests))
