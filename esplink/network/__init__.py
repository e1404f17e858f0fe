"""Network binding layer.

Components:
- platform: host connectivity seam and the BoundNetwork handle
- nmcli: NetworkManager platform for Linux hosts
- binder: single-network request/unbind lifecycle
"""

from .binder import NetworkBinder
from .nmcli import NmcliPlatform
from .platform import (
    BoundNetwork,
    CapabilitySet,
    LinkInfo,
    NetworkCallback,
    NetworkPlatform,
    NetworkRequest,
    process_default_network,
)

__all__ = [
    "BoundNetwork",
    "CapabilitySet",
    "LinkInfo",
    "NetworkBinder",
    "NetworkCallback",
    "NetworkPlatform",
    "NetworkRequest",
    "NmcliPlatform",
    "process_default_network",
]
