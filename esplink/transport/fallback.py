"""Primary/secondary transport composition."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ..errors import TransportError
from .exchange import HttpExchange, Transport

_LOGGER = logging.getLogger(__name__)


class FallbackTransport:
    """Try ``primary``; on a transport-level failure retry once on ``secondary``.

    HTTP error statuses are results, not failures, and are returned as-is.
    """

    def __init__(self, primary: Transport, secondary: Transport) -> None:
        self.primary = primary
        self.secondary = secondary
        self.last_fallback_cause: str | None = None

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        json: Any = None,
        follow_redirects: bool = True,
    ) -> HttpExchange:
        try:
            return await self.primary.request(
                method,
                url,
                headers=headers,
                json=json,
                follow_redirects=follow_redirects,
            )
        except TransportError as err:
            self.last_fallback_cause = err.cause
            _LOGGER.warning(
                "Primary transport failed for %s %s (%s), falling back to bound transport",
                method,
                url,
                err.cause,
            )
        return await self.secondary.request(
            method,
            url,
            headers=headers,
            json=json,
            follow_redirects=follow_redirects,
        )
