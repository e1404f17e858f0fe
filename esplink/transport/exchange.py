"""Request/response records and shared helpers for device transports."""

from __future__ import annotations

import json as jsonlib
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit

import aiohttp

from ..errors import (
    TransportConnectionError,
    TransportError,
    TransportMalformed,
    TransportTimeout,
)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

FormFields = Mapping[str, str] | Iterable[tuple[str, str]]


@dataclass(frozen=True)
class HttpExchange:
    """A completed request and the device's response.

    ``headers`` maps lower-cased header names to every value received, so
    repeated headers such as ``Set-Cookie`` are preserved. Both header
    mappings are read-only views.
    """

    method: str
    url: str
    status: int
    body: str = ""
    headers: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    request_headers: Mapping[str, str] = field(default_factory=dict)
    request_body: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))
        object.__setattr__(self, "request_headers", MappingProxyType(dict(self.request_headers)))

    def header(self, name: str) -> str | None:
        """First value of header ``name``, or None."""
        values = self.headers.get(name.lower())
        return values[0] if values else None

    def header_values(self, name: str) -> tuple[str, ...]:
        return tuple(self.headers.get(name.lower(), ()))

    def json(self) -> Any:
        """Decode the body as JSON (raises ValueError on bad input)."""
        return jsonlib.loads(self.body or "null")


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a verbose TCP reachability probe."""

    ok: bool
    error: str | None = None


class Transport(Protocol):
    """Anything that can execute a request against the device."""

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        json: Any = None,
        follow_redirects: bool = True,
    ) -> HttpExchange: ...


def collect_headers(raw: Iterable[tuple[str, str]]) -> Mapping[str, tuple[str, ...]]:
    """Fold header pairs into a read-only, lower-cased multimap."""
    folded: dict[str, list[str]] = {}
    for name, value in raw:
        folded.setdefault(name.lower(), []).append(value)
    return MappingProxyType({name: tuple(values) for name, values in folded.items()})


def build_form_body(fields: FormFields) -> str:
    """URL-encode form fields in order."""
    pairs = list(fields.items()) if isinstance(fields, Mapping) else list(fields)
    return urlencode(pairs)


def parse_form_body(body: str) -> list[tuple[str, str]]:
    """Split a URL-encoded body back into decoded (name, value) pairs."""
    return parse_qsl(body, keep_blank_values=True)


def same_origin(url: str, base_url: str) -> bool:
    """True if ``url`` targets the scheme/host/port of ``base_url``."""
    a, b = urlsplit(url), urlsplit(base_url)
    return (
        a.scheme.lower() == b.scheme.lower()
        and (a.hostname or "") == (b.hostname or "")
        and (a.port or 80) == (b.port or 80)
    )


def normalize_error(err: BaseException, what: str) -> TransportError:
    """Map a low-level client exception to a transport error."""
    cause = f"{type(err).__name__}: {err}"
    if isinstance(err, TransportError):
        return err
    if isinstance(err, TimeoutError):
        return TransportTimeout(f"{what} timed out", cause=cause)
    if isinstance(err, (aiohttp.ClientPayloadError, aiohttp.ClientResponseError, UnicodeDecodeError)):
        return TransportMalformed(f"{what} returned a malformed response", cause=cause)
    return TransportConnectionError(f"{what} failed", cause=cause)
