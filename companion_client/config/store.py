"""Persistence helpers for the last-used connection state."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from .paths import config_dir

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PersistedState:
    """String-typed values that survive a restart."""

    ws_url: str | None = None
    base_url: str | None = None
    histories: list[dict[str, Any]] = field(default_factory=list)


class ClientStore:
    """JSON key-value store kept in the client config directory."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or config_dir() / "client_state.json"
        self._state = self._load()

    @property
    def ws_url(self) -> str | None:
        return self._state.ws_url

    @property
    def base_url(self) -> str | None:
        return self._state.base_url

    @property
    def histories(self) -> list[dict[str, Any]]:
        return list(self._state.histories)

    def set_urls(self, *, ws_url: str | None = None, base_url: str | None = None) -> None:
        """Remember the connection URLs (only the values provided)."""
        if ws_url is not None:
            self._state.ws_url = ws_url
        if base_url is not None:
            self._state.base_url = base_url
        self.save()

    def set_histories(self, histories: list[dict[str, Any]]) -> None:
        """Remember the last known list of sessions."""
        self._state.histories = [dict(item) for item in histories]
        self.save()

    def save(self) -> None:
        """Persist the state to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(asdict(self._state), indent=2, ensure_ascii=False), encoding="utf-8")

    def _load(self) -> PersistedState:
        if not self.path.exists():
            return PersistedState()
        raw_text = self.path.read_text(encoding="utf-8").lstrip("\ufeff")
        try:
            data = json.loads(raw_text)
        except ValueError:
            LOGGER.warning("Ignoring unreadable client state at %s", self.path)
            return PersistedState()
        if not isinstance(data, dict):
            return PersistedState()
        histories = data.get("histories")
        return PersistedState(
            ws_url=_as_str(data.get("ws_url")),
            base_url=_as_str(data.get("base_url")),
            histories=[item for item in histories if isinstance(item, dict)] if isinstance(histories, list) else [],
        )


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None
