"""Link configuration loading.

Settings are plain data: an optional YAML file supplies values, and
``ESPLINK_*`` environment variables override them.
"""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

DEFAULT_SSID = "ESP32-781c3ccb04d7"
DEFAULT_WIFI_PASSWORD = "12345678"
DEFAULT_USERNAME = "admin"
DEFAULT_PASSWORD = "1234"
DEFAULT_DEVICE_IP = "192.168.4.1"
DEFAULT_HTTP_PORT = 80

COMMON_PORTS: tuple[int, ...] = (80, 8080, 5000, 1880, 1883, 8266)

ENV_PREFIX = "ESPLINK_"


@dataclass(frozen=True)
class LinkSettings:
    """Connection settings for a single device access point.

    Attributes:
        ssid: Access point SSID.
        wifi_password: WPA2 passphrase, or None for an open network.
        username: Web UI login user.
        password: Web UI login password.
        device_ip: Device address. None derives it from the bound gateway.
        port: Device HTTP port.
        bind_whole_process: Route all process traffic through the AP.
        bind_timeout: Seconds to wait for the OS to report the network.
        settle_delay: Seconds to wait after "available" before first use.
        connect_timeout: Socket connect timeout for HTTP requests.
        request_timeout: Total timeout for HTTP requests.
        probe_timeout: Per-port timeout for reachability probes.
        scan_ports: Ports probed by diagnostics.
    """

    ssid: str = DEFAULT_SSID
    wifi_password: str | None = DEFAULT_WIFI_PASSWORD
    username: str = DEFAULT_USERNAME
    password: str = DEFAULT_PASSWORD
    device_ip: str | None = DEFAULT_DEVICE_IP
    port: int = DEFAULT_HTTP_PORT
    bind_whole_process: bool = True
    bind_timeout: float = 10.0
    settle_delay: float = 1.0
    connect_timeout: float = 5.0
    request_timeout: float = 10.0
    probe_timeout: float = 0.6
    scan_ports: tuple[int, ...] = COMMON_PORTS


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file with error handling."""
    if not path.exists():
        raise ConfigError(f"File not found: {path}")
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as err:
        raise ConfigError(f"Invalid YAML in {path}: {err}") from err
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping in {path}")
    return data


def _coerce(name: str, raw: Any, default: Any) -> Any:
    """Coerce a raw file/env value to the type of the field default."""
    if raw is None:
        return None
    try:
        if isinstance(default, bool):
            if isinstance(raw, bool):
                return raw
            text = str(raw).strip().lower()
            if text in ("1", "true", "yes", "on"):
                return True
            if text in ("0", "false", "no", "off"):
                return False
            raise ValueError(raw)
        if isinstance(default, tuple):
            items = raw.split(",") if isinstance(raw, str) else raw
            return tuple(int(item) for item in items)
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"Invalid value for {name}: {raw!r}") from err
    return str(raw)


def load_settings(
    path: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> LinkSettings:
    """Load link settings.

    Args:
        path: Optional YAML file with top-level setting keys.
        env: Environment mapping; defaults to ``os.environ``.

    Returns:
        Parsed LinkSettings.

    Raises:
        ConfigError: If the file is missing, malformed, or a value is invalid.
    """
    env = os.environ if env is None else env
    data = _load_yaml(Path(path)) if path is not None else {}

    defaults = LinkSettings()
    values: dict[str, Any] = {}
    for field in dataclasses.fields(LinkSettings):
        default = getattr(defaults, field.name)
        if field.name in data:
            values[field.name] = _coerce(field.name, data[field.name], default)
        env_key = f"{ENV_PREFIX}{field.name.upper()}"
        if env_key in env:
            values[field.name] = _coerce(field.name, env[env_key], default)

    unknown = set(data) - {field.name for field in dataclasses.fields(LinkSettings)}
    if unknown:
        raise ConfigError(f"Unknown settings: {', '.join(sorted(unknown))}")

    return dataclasses.replace(defaults, **values)
