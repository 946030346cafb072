"""Custom exception hierarchy for pypogo."""

from __future__ import annotations


class PogoError(Exception):
    """Base exception for all pypogo errors."""


class PogoConfigError(PogoError):
    """Invalid or missing configuration."""


class PogoCryptoError(PogoError):
    """Encryption or decryption failure."""


class PogoCacheError(PogoError):
    """Credential store could not be read or written.

    Never fatal to the login flow: :func:`pypogo.login.get_session` logs it
    and falls back to a fresh login.
    """

    def __init__(self, message: str, *, identity: str = "") -> None:
        self.identity = identity
        super().__init__(message)


class PogoAuthenticationError(PogoError):
    """Identity provider rejected the secret, token or refresh attempt."""

    def __init__(self, message: str, *, provider: str = "", status_code: int | None = None) -> None:
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


class PogoSessionNotActiveError(PogoError):
    """A call was attempted while the session was not ``ACTIVE``."""


class PogoSessionClosedError(PogoSessionNotActiveError):
    """The session is shutting down or closed.

    Also raised into calls that were still in flight when the session closed.
    """


class PogoTransportError(PogoError):
    """Call-level failure (network, timeout, non-200, malformed reply).

    The session itself stays ``ACTIVE``; the caller decides whether to retry.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        request_id: int | None = None,
    ) -> None:
        self.status_code = status_code
        self.request_id = request_id
        super().__init__(message)


class PogoApiError(PogoError):
    """The server delivered a response carrying a non-OK status."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        request_id: int | None = None,
    ) -> None:
        self.status = status
        self.request_id = request_id
        super().__init__(message)


class PogoSessionExpiredError(PogoApiError):
    """Access token rejected by the server.

    The session renews its credential before raising this, so a caller
    that chooses to retry will use the new token.
    """
