"""Data schemas exchanged with the companion backend."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Optional


@dataclass(slots=True)
class ModelInfo:
    """Model descriptor sent with ``set-model-and-conf``."""

    url: str
    extra: dict[str, Any] = field(default_factory=dict)

    def with_base_url(self, base_url: str) -> "ModelInfo":
        """Return a copy whose url is absolute, prefixing ``base_url`` if relative."""
        if self.url.startswith("http"):
            return self
        return ModelInfo(url=base_url + self.url, extra=dict(self.extra))

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ModelInfo":
        extra = {key: value for key, value in payload.items() if key != "url"}
        return cls(url=str(payload.get("url") or ""), extra=extra)


@dataclass(slots=True)
class HistoryInfo:
    """Summary entry of one stored conversation."""

    uid: str
    latest_message: Optional[dict[str, Any]] = None
    timestamp: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        return {"uid": self.uid, "latest_message": self.latest_message, "timestamp": self.timestamp}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "HistoryInfo":
        latest = payload.get("latest_message")
        return cls(
            uid=str(payload.get("uid") or ""),
            latest_message=latest if isinstance(latest, dict) else None,
            timestamp=payload.get("timestamp"),
        )

    @classmethod
    def fresh(cls, uid: str) -> "HistoryInfo":
        """Entry for a just-created history."""
        return cls(uid=uid, latest_message=None, timestamp=datetime.now(timezone.utc).isoformat())


@dataclass(slots=True)
class ChatMessage:
    """Conversation message."""

    role: Literal["human", "ai"]
    content: str
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ChatMessage":
        role = payload.get("role")
        known = {"role", "content", "timestamp"}
        return cls(
            role="human" if role == "human" else "ai",
            content=str(payload.get("content") or ""),
            timestamp=payload.get("timestamp") or datetime.now(timezone.utc).isoformat(),
            metadata={key: value for key, value in payload.items() if key not in known},
        )


@dataclass(slots=True)
class ConfigFile:
    """Character configuration offered by the backend."""

    filename: str
    name: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ConfigFile":
        filename = str(payload.get("filename") or "")
        return cls(filename=filename, name=str(payload.get("name") or filename))


@dataclass(slots=True)
class DisplayText:
    """Caption shown while an audio chunk plays."""

    text: str
    name: Optional[str] = None
    avatar: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["DisplayText"]:
        if not isinstance(payload, dict):
            return None
        return cls(text=str(payload.get("text") or ""), name=payload.get("name"), avatar=payload.get("avatar"))


@dataclass(slots=True)
class AudioTask:
    """One audio chunk with its caption and expression directives."""

    audio_base64: str = ""
    volumes: list[float] = field(default_factory=list)
    slice_length: int = 0
    display_text: Optional[DisplayText] = None
    expressions: Optional[list[Any]] = None
    forwarded: bool = False

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> "AudioTask":
        """Build a task from an ``audio`` message, defaulting absent fields."""
        actions = message.get("actions")
        expressions = actions.get("expressions") if isinstance(actions, dict) else None
        return cls(
            audio_base64=message.get("audio") or "",
            volumes=list(message.get("volumes") or []),
            slice_length=int(message.get("slice_length") or 0),
            display_text=DisplayText.from_payload(message.get("display_text")),
            expressions=list(expressions) if expressions else None,
            forwarded=bool(message.get("forwarded", False)),
        )


# ---------------------------------------------------------------------- #
# Outbound messages
# ---------------------------------------------------------------------- #
def fetch_history_list() -> dict[str, Any]:
    return {"type": "fetch-history-list"}


def create_new_history() -> dict[str, Any]:
    return {"type": "create-new-history"}


def fetch_and_set_history(history_uid: str) -> dict[str, Any]:
    return {"type": "fetch-and-set-history", "history_uid": history_uid}


def delete_history(history_uid: str) -> dict[str, Any]:
    return {"type": "delete-history", "history_uid": history_uid}


def text_input(text: str) -> dict[str, Any]:
    return {"type": "text-input", "text": text}


def interrupt_signal(text: str) -> dict[str, Any]:
    return {"type": "interrupt-signal", "text": text}


def fetch_configs() -> dict[str, Any]:
    return {"type": "fetch-configs"}


def switch_config(filename: str) -> dict[str, Any]:
    return {"type": "switch-config", "file": filename}


def fetch_background_images() -> dict[str, Any]:
    return {"type": "fetch-background-images"}


def add_client_to_group(invitee_uid: str) -> dict[str, Any]:
    return {"type": "add-client-to-group", "invitee_uid": invitee_uid}


def remove_client_from_group(target_uid: str) -> dict[str, Any]:
    return {"type": "remove-client-from-group", "target_uid": target_uid}


def request_group_info() -> dict[str, Any]:
    return {"type": "request-group-info"}


def ai_speak_signal() -> dict[str, Any]:
    return {"type": "ai-speak-signal"}
