"""Tests for link settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from esplink.config import COMMON_PORTS, LinkSettings, load_settings
from esplink.errors import ConfigError


def test_defaults() -> None:
    """Test defaults match the factory device configuration."""
    settings = load_settings(env={})

    assert settings == LinkSettings()
    assert settings.ssid == "ESP32-781c3ccb04d7"
    assert settings.wifi_password == "12345678"
    assert settings.username == "admin"
    assert settings.password == "1234"
    assert settings.device_ip == "192.168.4.1"
    assert settings.port == 80
    assert settings.scan_ports == COMMON_PORTS


def test_yaml_file(tmp_path: Path) -> None:
    path = tmp_path / "link.yaml"
    path.write_text(
        "ssid: ESP32-TEST\n"
        "wifi_password: null\n"
        "device_ip: 10.0.0.1\n"
        "port: 8080\n"
        "bind_whole_process: false\n"
        "settle_delay: 0.5\n"
        "scan_ports: [80, 1883]\n"
    )

    settings = load_settings(path, env={})

    assert settings.ssid == "ESP32-TEST"
    assert settings.wifi_password is None
    assert settings.device_ip == "10.0.0.1"
    assert settings.port == 8080
    assert settings.bind_whole_process is False
    assert settings.settle_delay == 0.5
    assert settings.scan_ports == (80, 1883)


def test_env_overrides_file(tmp_path: Path) -> None:
    path = tmp_path / "link.yaml"
    path.write_text("ssid: FROM-FILE\nport: 8080\n")

    settings = load_settings(
        path,
        env={
            "ESPLINK_SSID": "FROM-ENV",
            "ESPLINK_BIND_WHOLE_PROCESS": "no",
            "ESPLINK_BIND_TIMEOUT": "3",
            "ESPLINK_SCAN_PORTS": "80, 8266",
            "UNRELATED": "x",
        },
    )

    assert settings.ssid == "FROM-ENV"
    assert settings.port == 8080
    assert settings.bind_whole_process is False
    assert settings.bind_timeout == 3.0
    assert settings.scan_ports == (80, 8266)


def test_empty_file(tmp_path: Path) -> None:
    path = tmp_path / "link.yaml"
    path.write_text("")

    assert load_settings(path, env={}) == LinkSettings()


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_settings(tmp_path / "missing.yaml", env={})


def test_invalid_yaml(tmp_path: Path) -> None:
    path = tmp_path / "link.yaml"
    path.write_text("ssid: [unclosed\n")

    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_settings(path, env={})


def test_non_mapping(tmp_path: Path) -> None:
    path = tmp_path / "link.yaml"
    path.write_text("- a\n- b\n")

    with pytest.raises(ConfigError, match="mapping"):
        load_settings(path, env={})


def test_unknown_key(tmp_path: Path) -> None:
    path = tmp_path / "link.yaml"
    path.write_text("ssid: x\nbogus: 1\n")

    with pytest.raises(ConfigError, match="bogus"):
        load_settings(path, env={})


@pytest.mark.parametrize(
    ("key", "value"),
    [
        ("ESPLINK_PORT", "eighty"),
        ("ESPLINK_BIND_WHOLE_PROCESS", "maybe"),
        ("ESPLINK_SETTLE_DELAY", "soon"),
        ("ESPLINK_SCAN_PORTS", "80,http"),
    ],
)
def test_invalid_env_value(key: str, value: str) -> None:
    with pytest.raises(ConfigError, match="Invalid value"):
        load_settings(env={key: value})
