# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Runtime settings.

Values come from SNIPPETBOX_* environment variables. When SNIPPETBOX_CONFIG
points to a YAML file, its keys override the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

_TRUE = {"1", "true", "yes", "y"}


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in _TRUE


@dataclass(frozen=True)
class Settings:
    secret_key: str = ""
    database_url: str = "sqlite:///snippetbox.db"
    session_backend: str = "memory"  # memory|sql
    session_lifetime: int = 12 * 3600  # seconds, fixed from creation
    cookie_name: str = "session"
    cookie_secure: bool = False
    store_timeout: float = 3.0  # seconds
    log_format: str = "console"  # console|json
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 4000
    reload: bool = False


def _from_env() -> Dict[str, Any]:
    return {
        "secret_key": os.getenv("SNIPPETBOX_SECRET_KEY") or os.getenv("SECRET_KEY") or "",
        "database_url": os.getenv("SNIPPETBOX_DATABASE_URL", Settings.database_url),
        "session_backend": os.getenv("SNIPPETBOX_SESSION_BACKEND", Settings.session_backend).strip().lower(),
        "session_lifetime": int(os.getenv("SNIPPETBOX_SESSION_LIFETIME", str(Settings.session_lifetime))),
        "cookie_name": os.getenv("SNIPPETBOX_COOKIE_NAME", Settings.cookie_name),
        "cookie_secure": _env_bool("SNIPPETBOX_COOKIE_SECURE"),
        "store_timeout": float(os.getenv("SNIPPETBOX_STORE_TIMEOUT", str(Settings.store_timeout))),
        "log_format": os.getenv("SNIPPETBOX_LOG_FORMAT", Settings.log_format).strip().lower(),
        "log_level": os.getenv("SNIPPETBOX_LOG_LEVEL", Settings.log_level).strip().upper(),
        "host": os.getenv("SNIPPETBOX_HOST", Settings.host),
        "port": int(os.getenv("SNIPPETBOX_PORT", str(Settings.port))),
        "reload": _env_bool("SNIPPETBOX_RELOAD"),
    }


def _from_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise RuntimeError(f"Config file not found: {path}")
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise RuntimeError(f"Config file must contain a mapping: {path}")
    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise RuntimeError(f"Unknown config keys in {path}: {', '.join(unknown)}")
    return raw


def load_settings(*, config_path: Optional[str] = None, **overrides: Any) -> Settings:
    values = _from_env()
    path = config_path or os.getenv("SNIPPETBOX_CONFIG")
    if path:
        values.update(_from_yaml(Path(path)))
    values.update(overrides)
    settings = Settings(**values)
    validate_settings(settings)
    return settings


def validate_settings(settings: Settings) -> None:
    if not settings.secret_key:
        raise RuntimeError("Missing SNIPPETBOX_SECRET_KEY (or SECRET_KEY) in environment")
    if settings.session_backend not in {"memory", "sql"}:
        raise RuntimeError(f"Unknown session backend: {settings.session_backend!r}")
    if settings.session_lifetime <= 0:
        raise RuntimeError("session_lifetime must be positive")

