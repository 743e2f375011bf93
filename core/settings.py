"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``."""

    platform_id = (platform or sys.platform).lower()
    environ = dict(env if env is not None else os.environ)
    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    if environ.get("FIELDSYNC_DATA_DIR"):
        return Path(environ["FIELDSYNC_DATA_DIR"]).expanduser()

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = Path(environ.get("APPDATA") or home_dir / "Library" / "Application Support")
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return (base.expanduser() / sanitized)


APP_NAME = "FieldSync"


DATA_DIR = get_default_data_dir(APP_NAME)
STORAGE_DIR = DATA_DIR / "storage"
LOG_DIR = DATA_DIR / "logs"

for _dir in (DATA_DIR, STORAGE_DIR, LOG_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


DB_PATH = DATA_DIR / "replica.db"
SYNC_STATE_PATH = STORAGE_DIR / "sync_state.json"
SYNC_LOG_PATH = LOG_DIR / "sync.log"


@dataclass(frozen=True)
class SyncSettings:
    enabled: bool = True
    # pending-mutation fan-out per batch
    batch_size: int = 10
    # records last synced earlier than this are never inferred as remotely deleted
    deletion_grace_days: Optional[int] = 30
    relink_after_refresh: bool = False
    auto_refresh_interval_sec: int = 60
    background_extension_sec: int = 30
    default_project_color: str = "#59779F"
    fallback_event_color: str = "#9CA3AF"
    temp_id_prefix: str = "tmp-"
    log_path: Path = SYNC_LOG_PATH
    log_level: str = "INFO"
    log_max_bytes: int = 1_000_000
    log_backup_count: int = 3
    state_path: Path = SYNC_STATE_PATH


SYNC = SyncSettings()


@dataclass(frozen=True)
class RemoteSettings:
    backend: str = "rest"
    base_url: str = "http://localhost:8000/api/v1"
    api_token: Optional[str] = None
    timeout_sec: float = 30.0
    max_connections: int = 10


def load_remote_settings(env: Optional[Mapping[str, str]] = None) -> RemoteSettings:
    """Build :class:`RemoteSettings` from ``FIELDSYNC_*`` environment variables."""

    environ = dict(env if env is not None else os.environ)
    defaults = RemoteSettings()
    timeout_raw = environ.get("FIELDSYNC_TIMEOUT")
    try:
        timeout = float(timeout_raw) if timeout_raw else defaults.timeout_sec
    except ValueError:
        timeout = defaults.timeout_sec
    return RemoteSettings(
        backend=(environ.get("FIELDSYNC_BACKEND") or defaults.backend).strip().lower(),
        base_url=(environ.get("FIELDSYNC_API_URL") or defaults.base_url).rstrip("/"),
        api_token=environ.get("FIELDSYNC_API_TOKEN") or None,
        timeout_sec=timeout,
        max_connections=defaults.max_connections,
    )


REMOTE = load_remote_settings()


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "STORAGE_DIR",
    "LOG_DIR",
    "DB_PATH",
    "SYNC_STATE_PATH",
    "SYNC_LOG_PATH",
    "SYNC",
    "REMOTE",
    "SyncSettings",
    "RemoteSettings",
    "get_default_data_dir",
    "load_remote_settings",
]
