from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

BACKENDS = ("http", "dropbox", "firestore")


def data_dir() -> Path:
    return Path(os.environ.get("BLOCKOUT_HOME") or Path.home() / ".blockout")


USER_CONFIG_PATH = data_dir() / "config.yaml"

SYNC_DEFAULTS: Dict[str, Any] = {
    "debounce_ms": 800,
    "push_interval_seconds": 300,
    "recompute_streaks": False,
    "timeout_seconds": 30,
}


def _load_config() -> Dict[str, Any]:
    if not USER_CONFIG_PATH.exists():
        return {}
    try:
        return yaml.safe_load(USER_CONFIG_PATH.read_text()) or {}
    except Exception:
        return {}


def _save_config(data: Dict[str, Any]) -> None:
    if not data:
        if USER_CONFIG_PATH.exists():
            USER_CONFIG_PATH.unlink()
        return
    USER_CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    USER_CONFIG_PATH.write_text(yaml.safe_dump(data, allow_unicode=True), encoding="utf-8")


def _section(name: str) -> Dict[str, Any]:
    value = _load_config().get(name)
    return dict(value) if isinstance(value, dict) else {}


def _update_section(name: str, **changes: Any) -> None:
    data = _load_config()
    section = data.get(name) if isinstance(data.get(name), dict) else {}
    for key, value in changes.items():
        if value is None or value == "":
            section.pop(key, None)
        else:
            section[key] = value
    if section:
        data[name] = section
    else:
        data.pop(name, None)
    _save_config(data)


# ----------------------------------------------------------------------
# Files next to the config
# ----------------------------------------------------------------------

def snapshot_path() -> Path:
    return USER_CONFIG_PATH.parent / "snapshot.json"


def tracker_path() -> Path:
    return USER_CONFIG_PATH.parent / "sync_state.json"


def conflict_path() -> Path:
    return USER_CONFIG_PATH.parent / "conflict.json"


# ----------------------------------------------------------------------
# Backend selection
# ----------------------------------------------------------------------

def get_backend() -> str:
    value = str(_load_config().get("backend", "") or "").strip().lower()
    return value if value in BACKENDS else ""


def set_backend(value: str) -> None:
    value = (value or "").strip().lower()
    if value and value not in BACKENDS:
        raise ValueError(f"unknown backend: {value}")
    data = _load_config()
    if value:
        data["backend"] = value
    else:
        data.pop("backend", None)
    _save_config(data)


def get_cloud_config() -> Dict[str, str]:
    section = _section("cloud")
    return {
        "url": (os.getenv("BLOCKOUT_CLOUD_URL") or section.get("url") or "").strip(),
        "token": (os.getenv("BLOCKOUT_CLOUD_TOKEN") or section.get("token") or "").strip(),
    }


def set_cloud_config(url: str, token: str = "") -> None:
    _update_section("cloud", url=(url or "").strip(), token=(token or "").strip())


# ----------------------------------------------------------------------
# Dropbox (OAuth2 PKCE)
# ----------------------------------------------------------------------

def get_dropbox_settings() -> Dict[str, Any]:
    return _section("dropbox")


def set_dropbox_settings(**changes: Any) -> None:
    _update_section("dropbox", **changes)


def clear_dropbox_tokens() -> None:
    _update_section("dropbox", access_token=None, refresh_token=None, expires_at=None, code_verifier=None)


# ----------------------------------------------------------------------
# Firebase / Firestore
# ----------------------------------------------------------------------

def get_firebase_settings() -> Dict[str, Any]:
    return _section("firebase")


def set_firebase_settings(**changes: Any) -> None:
    _update_section("firebase", **changes)


# ----------------------------------------------------------------------
# Sync tuning
# ----------------------------------------------------------------------

def get_sync_settings() -> Dict[str, Any]:
    settings = dict(SYNC_DEFAULTS)
    for key, value in _section("sync").items():
        if key not in SYNC_DEFAULTS:
            continue
        default = SYNC_DEFAULTS[key]
        if isinstance(default, bool):
            settings[key] = bool(value)
        elif isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
            settings[key] = value
    return settings


def set_sync_setting(key: str, value: Optional[Any]) -> None:
    """Store one sync tuning value; None restores the default."""
    if key not in SYNC_DEFAULTS:
        raise ValueError(f"unknown sync setting: {key}")
    if value is not None:
        if isinstance(SYNC_DEFAULTS[key], bool):
            if not isinstance(value, bool):
                raise ValueError(f"{key} must be true or false")
        elif isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ValueError(f"{key} must be a positive number")
    _update_section("sync", **{key: value})
