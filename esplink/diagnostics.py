"""Connectivity diagnostics for the bound device network."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from .config import COMMON_PORTS
from .errors import EspLinkError
from .network.binder import NetworkBinder
from .transport.bound import BoundHttpTransport

_LOGGER = logging.getLogger(__name__)


async def collect_diagnostics(
    binder: NetworkBinder,
    transport: BoundHttpTransport,
    host: str,
    ports: Sequence[int] = COMMON_PORTS,
) -> dict[str, Any]:
    """Aggregate link info, capabilities and open ports of ``host``.

    Returns:
        ``{"link": ..., "capabilities": [...], "open_ports": [...]}``, or
        ``{"error": "..."}`` if collection failed.
    """
    try:
        link = await binder.current_link_info()
        caps = await binder.current_capabilities()
        open_ports = await transport.scan_ports(host, ports)
    except (EspLinkError, OSError, ValueError) as err:
        _LOGGER.warning("[%s] Diagnostics failed: %s", host, err)
        return {"error": str(err)}

    return {
        "link": link.as_dict(),
        "capabilities": caps.as_list(),
        "open_ports": open_ports,
    }
