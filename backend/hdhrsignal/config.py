from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import yaml

DriverName = Literal["hdhomerun", "fake"]


@dataclass
class ServerConfig:
    bind_address: str = "127.0.0.1"
    port: int = 5000
    auth_token: str | None = None
    cors_origins: list[str] = field(default_factory=lambda: ["*"])


@dataclass
class ToolConfig:
    driver: DriverName = "hdhomerun"
    # Path or name of the vendor control utility
    executable: str = "hdhomerun_config"
    # Timeout for interactive calls
    timeout_s: float = 8.0
    # Highest tuner index probed is max_tuners - 1
    max_tuners: int = 8
    # Used when probing finds nothing and the model name gives no hint
    default_tuner_count: int = 2


@dataclass
class MonitorConfig:
    interval_s: float = 1.0
    # Shorter than tool.timeout_s so a slow device can't pile up ticks
    timeout_s: float = 4.0
    include_program: bool = True


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: bool = True
    log_dir: str | None = None  # None -> backend/logs


@dataclass
class FakeDeviceConfig:
    """Simulated device used when tool.driver is "fake"."""
    device_id: str = "1040ABCD"
    ip: str = "192.168.1.50"
    model: str = "HDHR5-4K"
    tuners: int = 4


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    tool: ToolConfig = field(default_factory=ToolConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    fake: FakeDeviceConfig = field(default_factory=FakeDeviceConfig)


_SECTIONS: dict[str, type] = {
    "server": ServerConfig,
    "tool": ToolConfig,
    "monitor": MonitorConfig,
    "logging": LoggingConfig,
    "fake": FakeDeviceConfig,
}


def default_config_path() -> str:
    """backend/config/hdhrsignal.yaml, relative to this module."""
    return str(Path(__file__).resolve().parent.parent / "config" / "hdhrsignal.yaml")


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError("Config root must be a mapping")
        return data


def _overlay(dst: dict[str, Any], src: dict[str, Any]) -> dict[str, Any]:
    for k, v in src.items():
        if isinstance(v, dict) and isinstance(dst.get(k), dict):
            _overlay(dst[k], v)
        else:
            dst[k] = v
    return dst


def local_config_path(path: Path) -> Path:
    # hdhrsignal.yaml -> hdhrsignal.local.yaml
    return path.with_name(f"{path.stem}.local{path.suffix}")


def load_config(path_str: str) -> AppConfig:
    path = Path(path_str)
    raw: dict[str, Any] = _read_yaml(path)
    _overlay(raw, _read_yaml(local_config_path(path)))

    # Environment overrides (prefix HDHRSIGNAL__SECTION__KEY)
    # Example: HDHRSIGNAL__SERVER__PORT=8089
    prefix = "HDHRSIGNAL__"
    for k, v in os_environ_items():
        if not k.startswith(prefix):
            continue
        parts = k[len(prefix) :].split("__")
        if len(parts) != 2:
            continue
        section, key = parts[0].lower(), parts[1].lower()
        if section not in _SECTIONS:
            continue
        section_data = raw.setdefault(section, {})
        if isinstance(section_data, dict):
            section_data[key] = coerce_env_value(v)

    sections: dict[str, Any] = {}
    for name, cls in _SECTIONS.items():
        data = raw.get(name) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config section '{name}' must be a mapping")
        sections[name] = cls(**data)

    return AppConfig(**sections)


def coerce_env_value(val: str) -> Any:
    # Basic bool/int/float coercion for convenience
    lower = val.lower()
    if lower in {"true", "false"}:
        return lower == "true"
    try:
        return int(val)
    except ValueError:
        pass
    try:
        return float(val)
    except ValueError:
        return val


def os_environ_items() -> list[tuple[str, str]]:
    # Wrapped for testability
    from os import environ

    return [(k, v) for k, v in environ.items()]
