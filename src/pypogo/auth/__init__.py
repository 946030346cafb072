"""Credentials: identity providers, freshness policy and persistence."""

from pypogo.auth.policy import is_reusable, needs_renewal
from pypogo.auth.provider import IdentityProvider, OAuthPasswordProvider
from pypogo.auth.store import CredentialStore, FileCredentialStore, MemoryCredentialStore

__all__ = [
    "CredentialStore",
    "FileCredentialStore",
    "IdentityProvider",
    "MemoryCredentialStore",
    "OAuthPasswordProvider",
    "is_reusable",
    "needs_renewal",
]
