"""Runtime configuration helpers for the designer engines."""
from __future__ import annotations

import os
from typing import Dict, Optional

DEFAULT_FETCH_TIMEOUT_S = 15.0
DEFAULT_SAVE_TIMEOUT_S = 10.0
DEFAULT_HISTORY_LIMIT = 50
DEFAULT_LOCAL_CACHE_DIR = "var/project_cache"


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(name, default)


def _get_float(name: str, default: float) -> float:
    raw = _get_env(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_int(name: str, default: int) -> int:
    raw = _get_env(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def get_env() -> Optional[str]:
    return _get_env("ENV") or _get_env("APP_ENV")


def get_remote_base_url() -> Optional[str]:
    return _get_env("GFX_REMOTE_BASE_URL")


def get_remote_token() -> Optional[str]:
    return _get_env("GFX_REMOTE_TOKEN")


def get_data_endpoint_base_url() -> Optional[str]:
    return _get_env("GFX_DATA_ENDPOINT_BASE_URL") or get_remote_base_url()


def get_local_cache_dir() -> str:
    return _get_env("GFX_LOCAL_CACHE_DIR") or DEFAULT_LOCAL_CACHE_DIR


def get_fetch_timeout_s() -> float:
    return _get_float("GFX_FETCH_TIMEOUT_S", DEFAULT_FETCH_TIMEOUT_S)


def get_save_timeout_s() -> float:
    return _get_float("GFX_SAVE_TIMEOUT_S", DEFAULT_SAVE_TIMEOUT_S)


def get_history_limit() -> int:
    # A zero or negative limit would make undo impossible.
    return max(1, _get_int("GFX_HISTORY_LIMIT", DEFAULT_HISTORY_LIMIT))


def config_snapshot() -> Dict[str, Optional[str]]:
    """Return a snapshot of effective config values (token redacted)."""
    return {
        "env": get_env(),
        "remote_base_url": get_remote_base_url(),
        "remote_token": "***" if get_remote_token() else None,
        "data_endpoint_base_url": get_data_endpoint_base_url(),
        "local_cache_dir": get_local_cache_dir(),
        "fetch_timeout_s": str(get_fetch_timeout_s()),
        "save_timeout_s": str(get_save_timeout_s()),
        "history_limit": str(get_history_limit()),
    }
