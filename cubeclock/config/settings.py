"""Central configuration for the NTP observer and its command line shells."""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from cubeclock.ntp.client import DEFAULT_HOST, DEFAULT_TIMEOUT_S, NTP_PORT
from cubeclock.ntp.observer import DEFAULT_RETRY_ATTEMPTS, DEFAULT_RETRY_INTERVAL_S, DEFAULT_TTL_S

CONFIG_ENV = "CUBECLOCK_CONFIG"
HOST_ENV = "CUBECLOCK_HOST"
DEFAULT_CONFIG_PATH = Path("config/cubeclock.yaml")
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class ConfigurationError(RuntimeError):
    """Raised when the configuration file is missing or invalid."""


@dataclass(slots=True)
class ServerConfig:
    host: str = DEFAULT_HOST
    port: int = NTP_PORT
    timeout_s: float = DEFAULT_TIMEOUT_S
    version: int = 4


@dataclass(slots=True)
class ObserverConfig:
    ttl_s: float = DEFAULT_TTL_S
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_interval_s: float = DEFAULT_RETRY_INTERVAL_S


@dataclass(slots=True)
class MonitorConfig:
    tick_s: float = 1.0
    drift_threshold_s: float = 5.0


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    file: Optional[Path] = None


@dataclass(slots=True)
class Settings:
    server: ServerConfig = field(default_factory=ServerConfig)
    observer: ObserverConfig = field(default_factory=ObserverConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    source: Optional[Path] = None


def _load_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Configuration file {path} does not exist")
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(text) or {}
        elif suffix == ".json":
            data = json.loads(text or "{}")
        else:
            raise ConfigurationError("Unsupported configuration format; use YAML or JSON")
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Invalid configuration format in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Top level of {path} must be a mapping")
    return data


def _section(raw: Dict[str, Any], name: str, cls: type) -> Any:
    data = raw.get(name) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"`{name}` must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown keys in `{name}`: {', '.join(unknown)}")
    try:
        return cls(**data)
    except TypeError as exc:  # pragma: no cover - guarded by the key check above
        raise ConfigurationError(f"Invalid `{name}` section: {exc}") from exc


def _coerce(settings: Settings) -> None:
    try:
        settings.server.host = str(settings.server.host)
        settings.server.port = int(settings.server.port)
        settings.server.timeout_s = float(settings.server.timeout_s)
        settings.server.version = int(settings.server.version)
        settings.observer.ttl_s = float(settings.observer.ttl_s)
        settings.observer.retry_attempts = int(settings.observer.retry_attempts)
        settings.observer.retry_interval_s = float(settings.observer.retry_interval_s)
        settings.monitor.tick_s = float(settings.monitor.tick_s)
        settings.monitor.drift_threshold_s = float(settings.monitor.drift_threshold_s)
        settings.logging.level = str(settings.logging.level).upper()
        if settings.logging.file is not None:
            settings.logging.file = Path(settings.logging.file)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid configuration value: {exc}") from exc


def validate(settings: Settings) -> Settings:
    _coerce(settings)
    if not settings.server.host:
        raise ConfigurationError("`server.host` must not be empty")
    if not 0 < settings.server.port <= 65535:
        raise ConfigurationError("`server.port` must be between 1 and 65535")
    if not settings.server.timeout_s > 0:
        raise ConfigurationError("`server.timeout_s` must be positive")
    if not 1 <= settings.server.version <= 4:
        raise ConfigurationError("`server.version` must be between 1 and 4")
    if settings.observer.ttl_s <= 0:
        raise ConfigurationError("`observer.ttl_s` must be positive")
    if settings.observer.retry_attempts < 0:
        raise ConfigurationError("`observer.retry_attempts` must not be negative")
    if settings.observer.retry_interval_s < 0:
        raise ConfigurationError("`observer.retry_interval_s` must not be negative")
    if settings.monitor.tick_s <= 0:
        raise ConfigurationError("`monitor.tick_s` must be positive")
    if settings.monitor.drift_threshold_s < 0:
        raise ConfigurationError("`monitor.drift_threshold_s` must not be negative")
    if settings.logging.level not in _LOG_LEVELS:
        raise ConfigurationError(f"`logging.level` must be one of {', '.join(sorted(_LOG_LEVELS))}")
    return settings


def parse_settings(raw: Dict[str, Any], source: Optional[Path] = None) -> Settings:
    unknown = sorted(set(raw) - {"server", "observer", "monitor", "logging"})
    if unknown:
        raise ConfigurationError(f"Unknown configuration sections: {', '.join(unknown)}")
    settings = Settings(
        server=_section(raw, "server", ServerConfig),
        observer=_section(raw, "observer", ObserverConfig),
        monitor=_section(raw, "monitor", MonitorConfig),
        logging=_section(raw, "logging", LoggingConfig),
        source=source,
    )
    return validate(settings)


def load_settings(path: Optional[Path | str] = None) -> Settings:
    """Load settings from ``path``, ``$CUBECLOCK_CONFIG`` or ``config/cubeclock.yaml``.

    An explicit ``path`` must exist. Without any file the defaults are used.
    ``$CUBECLOCK_HOST`` overrides the configured server host.
    """
    if path is not None and not Path(path).exists():
        raise ConfigurationError(f"Configuration file {path} does not exist")

    candidate_paths: List[Path] = []
    if path is not None:
        candidate_paths.append(Path(path))
    env_path = os.getenv(CONFIG_ENV)
    if env_path:
        candidate_paths.append(Path(env_path))
    candidate_paths.append(DEFAULT_CONFIG_PATH)

    raw: Dict[str, Any] = {}
    source: Optional[Path] = None
    for candidate in candidate_paths:
        if candidate.exists():
            raw = _load_file(candidate)
            source = candidate
            break

    settings = parse_settings(raw, source=source)
    host_override = os.getenv(HOST_ENV)
    if host_override:
        settings.server.host = host_override
    return settings


__all__ = [
    "ConfigurationError",
    "LoggingConfig",
    "MonitorConfig",
    "ObserverConfig",
    "ServerConfig",
    "Settings",
    "load_settings",
    "parse_settings",
    "validate",
]
