"""pypogo - Async Python client for location-based game RPC sessions."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pypogo")
except PackageNotFoundError:
    __version__ = "0+local"
from pypogo._transport import HttpRpcTransport, Transport
from pypogo.auth import (
    CredentialStore,
    FileCredentialStore,
    IdentityProvider,
    MemoryCredentialStore,
    OAuthPasswordProvider,
)
from pypogo.config import PogoConfig
from pypogo.exceptions import (
    PogoApiError,
    PogoAuthenticationError,
    PogoCacheError,
    PogoConfigError,
    PogoCryptoError,
    PogoError,
    PogoSessionClosedError,
    PogoSessionExpiredError,
    PogoSessionNotActiveError,
    PogoTransportError,
)
from pypogo.login import cache_key, get_session, login, resume_session
from pypogo.models import (
    AccessToken,
    Location,
    Request,
    RequestEnvelope,
    RequestType,
    ResponseEnvelope,
    ResponseStatus,
)
from pypogo.rpc import RpcClient
from pypogo.session import Session, SessionState
from pypogo.updates import (
    CredentialRenewed,
    InventoryChanged,
    LocationDataChanged,
    SessionEnded,
    UpdateCategory,
    UpdateEvent,
    UpdateNotifier,
)

__all__ = [
    "__version__",
    "AccessToken",
    "CredentialRenewed",
    "CredentialStore",
    "FileCredentialStore",
    "HttpRpcTransport",
    "IdentityProvider",
    "InventoryChanged",
    "Location",
    "LocationDataChanged",
    "MemoryCredentialStore",
    "OAuthPasswordProvider",
    "PogoApiError",
    "PogoAuthenticationError",
    "PogoCacheError",
    "PogoConfig",
    "PogoConfigError",
    "PogoCryptoError",
    "PogoError",
    "PogoSessionClosedError",
    "PogoSessionExpiredError",
    "PogoSessionNotActiveError",
    "PogoTransportError",
    "Request",
    "RequestEnvelope",
    "RequestType",
    "ResponseEnvelope",
    "ResponseStatus",
    "RpcClient",
    "Session",
    "SessionEnded",
    "SessionState",
    "Transport",
    "UpdateCategory",
    "UpdateEvent",
    "UpdateNotifier",
    "cache_key",
    "get_session",
    "login",
    "resume_session",
]
