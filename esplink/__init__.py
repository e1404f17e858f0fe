"""Bound-network session client for ESP32 access-point devices."""

__version__ = "0.1.0"

from .api import DeviceApiClient
from .auth import (
    AuthenticatedSession,
    AuthState,
    SessionAuthenticator,
    check_login_success,
    extract_csrf_token,
    extract_session_cookie,
)
from .config import LinkSettings, load_settings
from .diagnostics import collect_diagnostics
from .endpoints import ENDPOINTS, DeviceOperation, Endpoint
from .errors import (
    ApiError,
    ApiHttpError,
    ApiNotConnected,
    ApiParseError,
    AuthError,
    BindError,
    BindTimeout,
    BindUnavailable,
    ConfigError,
    CredentialsRejected,
    EspLinkError,
    LoginPageUnreachable,
    NoSessionCookie,
    PlatformCommandError,
    TransportConnectionError,
    TransportError,
    TransportMalformed,
    TransportNotBound,
    TransportTimeout,
)
from .link import DeviceLink
from .network import (
    BoundNetwork,
    CapabilitySet,
    LinkInfo,
    NetworkBinder,
    NetworkPlatform,
    NmcliPlatform,
)
from .transport import (
    BoundHttpTransport,
    FallbackTransport,
    HttpExchange,
    PooledHttpTransport,
)

__all__ = [
    "ENDPOINTS",
    "ApiError",
    "ApiHttpError",
    "ApiNotConnected",
    "ApiParseError",
    "AuthError",
    "AuthState",
    "AuthenticatedSession",
    "BindError",
    "BindTimeout",
    "BindUnavailable",
    "BoundHttpTransport",
    "BoundNetwork",
    "CapabilitySet",
    "ConfigError",
    "CredentialsRejected",
    "DeviceApiClient",
    "DeviceLink",
    "DeviceOperation",
    "Endpoint",
    "EspLinkError",
    "FallbackTransport",
    "HttpExchange",
    "LinkInfo",
    "LinkSettings",
    "LoginPageUnreachable",
    "NetworkBinder",
    "NetworkPlatform",
    "NmcliPlatform",
    "NoSessionCookie",
    "PlatformCommandError",
    "PooledHttpTransport",
    "SessionAuthenticator",
    "TransportConnectionError",
    "TransportError",
    "TransportMalformed",
    "TransportNotBound",
    "TransportTimeout",
    "__version__",
    "check_login_success",
    "collect_diagnostics",
    "extract_csrf_token",
    "extract_session_cookie",
    "load_settings",
]
