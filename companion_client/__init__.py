"""Companion conversation client package."""

from __future__ import annotations

__all__ = ["run"]


def run() -> None:
    """Start the headless client (imports the runtime lazily)."""
    from .app import run as _run

    _run()
