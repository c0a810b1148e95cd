"""Filesystem helpers for the companion client."""

from __future__ import annotations

import os
from pathlib import Path


def client_home() -> Path:
    """Return the per-user data folder (``COMPANION_HOME`` overrides it)."""
    override = os.environ.get("COMPANION_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".companion_client"


def config_dir() -> Path:
    """Directory storing persisted connection state."""
    root = client_home() / "config"
    root.mkdir(parents=True, exist_ok=True)
    return root


def log_dir() -> Path:
    """Default directory for JSON log files."""
    root = client_home() / "logs"
    root.mkdir(parents=True, exist_ok=True)
    return root
