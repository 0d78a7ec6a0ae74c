"""
cronboard YAML configuration.

The config file is optional: a missing file yields defaults, a present but
malformed one is a ConfigError naming the offending field. A few settings can
be overridden from the environment (CRONBOARD_*).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from .errors import ConfigError

DEFAULT_CONFIG = "cronboard.yaml"
DEFAULT_AUTH_TOKEN = "cronboard-secret"
DEFAULT_STORE_HOST = "127.0.0.1"
DEFAULT_STORE_PORT = 8787
DEFAULT_STATE_FILE = ".cronboard/state.json"
DEFAULT_MANIFEST_FILE = "live-manifest.json"
DEFAULT_CACHE_FILE = ".cronboard/manifest-cache.json"
DEFAULT_REFRESH_SECONDS = 30
DEFAULT_TIMEOUT_MS = 5000
VALID_BACKENDS = {"memory", "file"}

STORE_KEYS = {"auth_token", "backend", "state_file", "host", "port", "dashboard_url"}
DASHBOARD_KEYS = {
    "api_url",
    "manifest_file",
    "remote_url",
    "cache_file",
    "refresh_seconds",
    "timeout_ms",
    "timezone",
}
TOP_LEVEL_KEYS = {"store", "dashboard", "log_file"}


@dataclass(frozen=True)
class StoreSettings:
    auth_token: str
    backend: str
    state_file: Path
    host: str
    port: int
    dashboard_url: Optional[str] = None

    @property
    def uses_default_token(self) -> bool:
        return self.auth_token == DEFAULT_AUTH_TOKEN


@dataclass(frozen=True)
class DashboardSettings:
    api_url: Optional[str]
    manifest_file: Path
    remote_url: Optional[str]
    cache_file: Path
    refresh_seconds: int
    timeout_ms: int
    timezone: Optional[ZoneInfo]


@dataclass(frozen=True)
class Settings:
    store: StoreSettings
    dashboard: DashboardSettings
    log_file: Optional[Path]


def ensure_int(value: Any, field_path: str, default: int, minimum: int = 1) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"Error: {field_path} must be an integer.")
    if value < minimum:
        raise ConfigError(f"Error: {field_path} must be >= {minimum}.")
    return value


def ensure_str(value: Any, field_path: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"Error: {field_path} must be a non-empty string.")
    return value.strip()


def ensure_url(value: Any, field_path: str) -> Optional[str]:
    if value is None:
        return None
    url = ensure_str(value, field_path)
    if not (url.startswith("http://") or url.startswith("https://")):
        raise ConfigError(f"Error: {field_path} must be an HTTP URL.")
    return url


def parse_timezone(name: Any, field_path: str) -> Optional[ZoneInfo]:
    if name is None:
        return None
    text = ensure_str(name, field_path)
    try:
        return ZoneInfo(text)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f'Error: Invalid timezone "{text}" at {field_path}.') from exc


def _resolve_path(value: Any, config_dir: Path, field_path: str, default: str) -> Path:
    raw = default if value is None else ensure_str(value, field_path)
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = (config_dir / path).resolve()
    return path


def _section(raw: Any, field_path: str, allowed: set) -> Dict[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Error: {field_path} must be a mapping.")
    unknown = set(raw.keys()) - allowed
    if unknown:
        raise ConfigError(f"Error: Unknown keys in {field_path}: {sorted(unknown)}.")
    return raw


def _load_config_payload(config_path: Path) -> Dict[str, Any]:
    if not config_path.exists():
        return {}

    try:
        payload = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Error: Failed to parse YAML in {config_path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise ConfigError("Error: Top-level config must be a mapping.")
    return payload


def parse_store_settings(raw: Any, config_dir: Path, field_path: str = "store") -> StoreSettings:
    section = _section(raw, field_path, STORE_KEYS)

    backend = ensure_str(section.get("backend", "memory"), f"{field_path}.backend").lower()
    if backend not in VALID_BACKENDS:
        raise ConfigError(
            f'Error: {field_path}.backend must be one of {sorted(VALID_BACKENDS)}, got "{backend}".'
        )

    return StoreSettings(
        auth_token=ensure_str(section.get("auth_token", DEFAULT_AUTH_TOKEN), f"{field_path}.auth_token"),
        backend=backend,
        state_file=_resolve_path(section.get("state_file"), config_dir, f"{field_path}.state_file", DEFAULT_STATE_FILE),
        host=ensure_str(section.get("host", DEFAULT_STORE_HOST), f"{field_path}.host"),
        port=ensure_int(section.get("port"), f"{field_path}.port", DEFAULT_STORE_PORT, 1),
        dashboard_url=ensure_url(section.get("dashboard_url"), f"{field_path}.dashboard_url"),
    )


def parse_dashboard_settings(raw: Any, config_dir: Path, field_path: str = "dashboard") -> DashboardSettings:
    section = _section(raw, field_path, DASHBOARD_KEYS)

    return DashboardSettings(
        api_url=ensure_url(section.get("api_url"), f"{field_path}.api_url"),
        manifest_file=_resolve_path(
            section.get("manifest_file"), config_dir, f"{field_path}.manifest_file", DEFAULT_MANIFEST_FILE
        ),
        remote_url=ensure_url(section.get("remote_url"), f"{field_path}.remote_url"),
        cache_file=_resolve_path(section.get("cache_file"), config_dir, f"{field_path}.cache_file", DEFAULT_CACHE_FILE),
        refresh_seconds=ensure_int(
            section.get("refresh_seconds"), f"{field_path}.refresh_seconds", DEFAULT_REFRESH_SECONDS, 1
        ),
        timeout_ms=ensure_int(section.get("timeout_ms"), f"{field_path}.timeout_ms", DEFAULT_TIMEOUT_MS, 1),
        timezone=parse_timezone(section.get("timezone"), f"{field_path}.timezone"),
    )


def apply_env_overrides(settings: Settings, environ: Mapping[str, str]) -> Settings:
    store = settings.store
    dashboard = settings.dashboard

    token = environ.get("CRONBOARD_AUTH_TOKEN", "").strip()
    if token:
        store = replace(store, auth_token=token)

    api_url = environ.get("CRONBOARD_API_URL", "").strip()
    if api_url:
        dashboard = replace(dashboard, api_url=ensure_url(api_url, "CRONBOARD_API_URL"))

    remote_url = environ.get("CRONBOARD_REMOTE_URL", "").strip()
    if remote_url:
        dashboard = replace(dashboard, remote_url=ensure_url(remote_url, "CRONBOARD_REMOTE_URL"))

    refresh = environ.get("CRONBOARD_REFRESH_SECONDS", "").strip()
    if refresh:
        if not refresh.isdigit():
            raise ConfigError("Error: CRONBOARD_REFRESH_SECONDS must be an integer.")
        dashboard = replace(
            dashboard,
            refresh_seconds=ensure_int(int(refresh), "CRONBOARD_REFRESH_SECONDS", DEFAULT_REFRESH_SECONDS, 1),
        )

    return replace(settings, store=store, dashboard=dashboard)


def load_settings(config_path: Path, environ: Optional[Mapping[str, str]] = None) -> Settings:
    payload = _load_config_payload(config_path)

    unknown_top = set(payload.keys()) - TOP_LEVEL_KEYS
    if unknown_top:
        raise ConfigError(f"Error: Unknown top-level keys: {sorted(unknown_top)}.")

    config_dir = config_path.parent
    log_file_raw = payload.get("log_file")
    settings = Settings(
        store=parse_store_settings(payload.get("store"), config_dir),
        dashboard=parse_dashboard_settings(payload.get("dashboard"), config_dir),
        log_file=_resolve_path(log_file_raw, config_dir, "log_file", "") if log_file_raw is not None else None,
    )
    return apply_env_overrides(settings, os.environ if environ is None else environ)
