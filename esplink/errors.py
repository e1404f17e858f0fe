"""Error types for ESP32 access-point link interactions."""

from __future__ import annotations


class EspLinkError(Exception):
    """Base error for ESP32 link failures."""


class ConfigError(EspLinkError):
    """Link configuration could not be loaded or is invalid."""


class BindError(EspLinkError):
    """Binding to the device access point failed."""


class BindUnavailable(BindError):
    """The OS rejected the network request or never reported it available."""


class BindTimeout(BindUnavailable):
    """The network did not become available before the bind timeout."""


class PlatformCommandError(BindError):
    """A platform network command failed."""


class TransportError(EspLinkError):
    """Transport-level failure talking to the device.

    ``cause`` keeps the raw, human-readable reason for logs and diagnostics.
    """

    def __init__(self, message: str, *, cause: str | None = None) -> None:
        super().__init__(message)
        self.cause = cause or message


class TransportNotBound(TransportError):
    """No live bound network to route the request through."""


class TransportConnectionError(TransportError):
    """Connection to the device failed or the bound network was lost."""


class TransportTimeout(TransportError):
    """Timeout while communicating with the device."""


class TransportMalformed(TransportError):
    """The device returned a response that could not be read."""


class AuthError(EspLinkError):
    """Login against the device web UI failed."""


class LoginPageUnreachable(AuthError):
    """The login page could not be fetched."""


class CredentialsRejected(AuthError):
    """The device rejected the submitted credentials."""


class NoSessionCookie(AuthError):
    """The login response carried no usable session cookie."""


class ApiError(EspLinkError):
    """A device API call failed."""


class ApiNotConnected(ApiError):
    """The API was called without an authenticated session."""


class ApiHttpError(ApiError):
    """HTTP response error from the device."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status


class ApiParseError(ApiError):
    """The device response was not a JSON object."""
