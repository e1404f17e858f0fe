"""Transport layer for device HTTP traffic.

Components:
- exchange: request/response records, form codec, error normalization
- bound: raw transport pinned to the bound network, plus TCP probes
- pooled: pooled aiohttp client with session-cookie middleware
- fallback: primary/secondary composition
"""

from .bound import BoundHttpTransport
from .exchange import (
    HttpExchange,
    ProbeResult,
    Transport,
    build_form_body,
    parse_form_body,
)
from .fallback import FallbackTransport
from .pooled import PooledHttpTransport

__all__ = [
    "BoundHttpTransport",
    "FallbackTransport",
    "HttpExchange",
    "PooledHttpTransport",
    "ProbeResult",
    "Transport",
    "build_form_body",
    "parse_form_body",
]
