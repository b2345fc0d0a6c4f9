"""
Configuration loading and merge utilities.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


class ConfigError(Exception):
    """Raised when configuration cannot be loaded or is invalid."""


DEFAULT_CONFIG_PATH = Path.home() / ".jamf_device_manager.yml"
DEFAULT_PREFERENCES_PATH = Path.home() / ".jamf_device_manager" / "preferences.yml"
KEYRING_SERVICE = "jamf-device-manager"
DEFAULT_CACHE_DIR = Path.home() / ".jamf_device_manager" / "cache"


@dataclass
class Config:
    server_url: Optional[str] = None
    config_path: Optional[Path] = None
    preferences_path: Path = field(default_factory=lambda: DEFAULT_PREFERENCES_PATH)
    keyring_service: str = KEYRING_SERVICE
    verify_ssl: bool = True
    safety_margin: float = 10.0  # seconds subtracted from token expiry
    auth_timeout: float = 30.0
    request_timeout: float = 15.0
    command_timeout: float = 20.0
    inter_item_delay: float = 0.1  # pause between bulk items
    search_concurrency: int = 5
    search_batch_size: int = 20
    search_max_results: int = 50
    dashboard_cache_ttl: int = 300
    cache_dir: Path = field(default_factory=lambda: DEFAULT_CACHE_DIR)


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name, {})
    return value if isinstance(value, dict) else {}


def _number(value: Any, name: str, cast=float):
    try:
        return cast(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from exc


def load_config(config_file: Optional[str] = None) -> Config:
    """
    Load configuration from environment and an optional YAML file.

    Precedence: environment > config file > defaults.
    """
    env_config = os.environ.get("JAMF_DEVICE_MANAGER_CONFIG")
    config_path = Path(config_file or env_config or DEFAULT_CONFIG_PATH).expanduser()

    file_data: Dict[str, Any] = {}
    if config_path.exists():
        try:
            with config_path.open("r", encoding="utf-8") as handle:
                loaded = yaml.safe_load(handle) or {}
                if not isinstance(loaded, dict):
                    raise ConfigError("Configuration file must contain a mapping.")
                file_data = loaded
        except OSError as exc:
            raise ConfigError(f"Failed to read config file {config_path}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in config file {config_path}") from exc

    defaults = Config()
    auth = _section(file_data, "auth")
    http = _section(file_data, "http")
    bulk = _section(file_data, "bulk")
    search = _section(file_data, "search")
    dashboard = _section(file_data, "dashboard")

    server_url = os.environ.get("JAMF_URL") or file_data.get("server_url")
    preferences = file_data.get("preferences_path")
    verify_env = os.environ.get("JAMF_VERIFY_SSL")
    if verify_env is not None:
        verify_ssl = verify_env.lower() not in ("false", "0", "no")
    else:
        verify_ssl = bool(http.get("verify_ssl", defaults.verify_ssl))

    config = Config(
        server_url=server_url.rstrip("/") if server_url else None,
        config_path=config_path if config_path.exists() else None,
        preferences_path=Path(preferences).expanduser() if preferences else defaults.preferences_path,
        keyring_service=file_data.get("keyring_service") or defaults.keyring_service,
        verify_ssl=verify_ssl,
        safety_margin=_number(auth.get("safety_margin", defaults.safety_margin), "auth.safety_margin"),
        auth_timeout=_number(auth.get("timeout", defaults.auth_timeout), "auth.timeout"),
        request_timeout=_number(http.get("request_timeout", defaults.request_timeout), "http.request_timeout"),
        command_timeout=_number(http.get("command_timeout", defaults.command_timeout), "http.command_timeout"),
        inter_item_delay=_number(bulk.get("inter_item_delay", defaults.inter_item_delay), "bulk.inter_item_delay"),
        search_concurrency=_number(search.get("concurrency", defaults.search_concurrency), "search.concurrency", int),
        search_batch_size=_number(search.get("batch_size", defaults.search_batch_size), "search.batch_size", int),
        search_max_results=_number(search.get("max_results", defaults.search_max_results), "search.max_results", int),
        dashboard_cache_ttl=_number(dashboard.get("cache_ttl", defaults.dashboard_cache_ttl), "dashboard.cache_ttl", int),
        cache_dir=Path(dashboard["cache_dir"]).expanduser() if dashboard.get("cache_dir") else defaults.cache_dir,
    )

    if config.safety_margin < 0:
        raise ConfigError("auth.safety_margin must not be negative.")
    if config.search_concurrency < 1 or config.search_batch_size < 1:
        raise ConfigError("search.concurrency and search.batch_size must be at least 1.")
    return config
