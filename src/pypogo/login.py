"""Session construction: secret-based login, resume, and the token cache decision."""

from __future__ import annotations

import asyncio
import logging

from pypogo._transport import HttpRpcTransport, Transport
from pypogo.auth.policy import is_reusable
from pypogo.auth.provider import IdentityProvider
from pypogo.auth.store import CredentialStore, FileCredentialStore
from pypogo.config import PogoConfig
from pypogo.exceptions import PogoAuthenticationError, PogoCacheError
from pypogo.models.credential import AccessToken
from pypogo.models.location import Location
from pypogo.session import Session
from pypogo.updates.events import CredentialRenewed, UpdateCategory, UpdateEvent

_logger = logging.getLogger(__name__)


def _build_session(
    provider: IdentityProvider,
    credential: AccessToken,
    location: Location,
    *,
    config: PogoConfig | None,
    transport: Transport | None,
) -> Session:
    config = config or PogoConfig()
    return Session(
        credential,
        location,
        provider=provider,
        transport=transport if transport is not None else HttpRpcTransport(config),
        config=config,
    )


async def login(
    provider: IdentityProvider,
    identity: str,
    secret: str,
    location: Location,
    *,
    config: PogoConfig | None = None,
    transport: Transport | None = None,
) -> Session:
    """Authenticate *identity* with *secret* and return an unstarted session.

    Raises
    ------
    PogoAuthenticationError
        The provider rejected the secret or could not be reached.
    """
    _logger.info("Logging in %s via %s", identity, provider.name)
    credential = await provider.login(identity, secret)
    return _build_session(provider, credential, location, config=config, transport=transport)


def resume_session(
    provider: IdentityProvider,
    credential: AccessToken,
    location: Location,
    *,
    config: PogoConfig | None = None,
    transport: Transport | None = None,
) -> Session:
    """Build an unstarted session from an existing, unexpired token.

    Raises
    ------
    PogoAuthenticationError
        *credential* is already expired.
    """
    if not is_reusable(credential):
        raise PogoAuthenticationError(
            f"Cannot resume with a token that expired at {credential.expiry.isoformat()}",
            provider=provider.name,
        )
    return _build_session(provider, credential, location, config=config, transport=transport)


def cache_key(provider: IdentityProvider, identity: str) -> str:
    """Store key for *identity* at *provider*; same shape as :attr:`AccessToken.uid`."""
    identity = identity.strip()
    return f"{identity}-{provider.name}" if provider.name else identity


def _matches(cached: AccessToken, provider: IdentityProvider, identity: str) -> bool:
    return cached.owner == identity.strip() and cached.provider == provider.name


async def _load_cached(store: CredentialStore, identity: str) -> AccessToken | None:
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(None, store.load, identity)
    except PogoCacheError as exc:
        _logger.warning("Token cache unavailable for %s, logging in instead: %s", identity, exc)
        return None


async def _save_cached(store: CredentialStore, identity: str, credential: AccessToken) -> bool:
    loop = asyncio.get_running_loop()
    try:
        await loop.run_in_executor(None, store.save, identity, credential)
    except PogoCacheError as exc:
        _logger.warning("Could not cache token for %s: %s", identity, exc)
        return False
    return True


async def get_session(
    provider: IdentityProvider,
    identity: str,
    secret: str,
    location: Location,
    *,
    store: CredentialStore | None = None,
    may_cache: bool | None = None,
    config: PogoConfig | None = None,
    transport: Transport | None = None,
) -> Session:
    """Return an unstarted session, reusing a cached token when possible.

    With caching enabled a valid cached token is resumed without touching
    *secret*; an expired or unreadable one is ignored and a fresh login
    runs, whose token is saved before this function returns. Every later
    renewal is saved through the same store.

    Entries are keyed by :func:`cache_key`, so one identity may hold a
    token per provider. A cached token whose owner or provider differs
    from the request is never resumed.

    Parameters
    ----------
    may_cache : bool or None
        Allow reading and writing the token cache. ``None`` defers to
        ``config.cache_enabled``.
    store : CredentialStore or None
        Cache to use; defaults to a :class:`FileCredentialStore` under
        ``config.cache_dir`` when caching is enabled.
    """
    config = config or PogoConfig()
    caching = config.cache_enabled if may_cache is None else may_cache
    if caching and store is None:
        store = FileCredentialStore(config.cache_dir)

    key = cache_key(provider, identity)
    session: Session | None = None
    if caching and store is not None:
        cached = await _load_cached(store, key)
        if cached is None:
            _logger.debug("No cached token for %s", key)
        elif not _matches(cached, provider, identity):
            _logger.warning(
                "Cached token under %s belongs to %s via %s; logging in",
                key,
                cached.owner,
                cached.provider or "<unknown>",
            )
        elif not is_reusable(cached):
            _logger.info("Cached token for %s expired at %s; logging in", identity, cached.expiry.isoformat())
        else:
            _logger.info("Resuming %s from cached token (expires %s)", identity, cached.expiry.isoformat())
            session = resume_session(provider, cached, location, config=config, transport=transport)

    if session is None:
        session = await login(provider, identity, secret, location, config=config, transport=transport)
        if caching and store is not None:
            await _save_cached(store, key, session.credential)

    if caching and store is not None:
        cache = store

        async def _persist_renewal(event: UpdateEvent) -> None:
            if isinstance(event, CredentialRenewed):
                await _save_cached(cache, key, event.credential)

        session.subscribe(UpdateCategory.CREDENTIAL_RENEWED, _persist_renewal)

    return session
