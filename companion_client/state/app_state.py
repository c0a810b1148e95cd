"""Session, history and group data mutated by the message router."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..services.schemas import ChatMessage, ConfigFile, HistoryInfo, ModelInfo

LOGGER = logging.getLogger(__name__)

HistoryListener = Callable[[list[HistoryInfo]], None]


@dataclass(slots=True)
class ConversationStore:
    """State owned by the presentation collaborators, exposed through setters."""

    conf_name: str = ""
    conf_uid: str = ""
    self_uid: str = ""
    model_info: Optional[ModelInfo] = None
    pending_model_info: Optional[ModelInfo] = None
    caption: str = ""
    response: str = ""
    force_new_message: bool = False
    messages: list[ChatMessage] = field(default_factory=list)
    histories: list[HistoryInfo] = field(default_factory=list)
    current_history_uid: Optional[str] = None
    config_files: list[ConfigFile] = field(default_factory=list)
    background_files: list[str] = field(default_factory=list)
    group_members: list[str] = field(default_factory=list)
    is_owner: bool = False
    history_listener: Optional[HistoryListener] = None

    # Session identity -------------------------------------------------- #
    def set_conf_name(self, name: str) -> None:
        self.conf_name = name

    def set_conf_uid(self, uid: str) -> None:
        self.conf_uid = uid

    def set_self_uid(self, uid: str) -> None:
        self.self_uid = uid

    def stage_model_info(self, info: Optional[ModelInfo]) -> None:
        self.pending_model_info = info

    def apply_pending_model(self) -> None:
        """Promote the staged model descriptor, if any."""
        if self.pending_model_info is None:
            return
        self.model_info = self.pending_model_info
        self.pending_model_info = None
        LOGGER.info("Model applied: %s", self.model_info.url)

    # Captions and response --------------------------------------------- #
    def set_caption(self, text: str) -> None:
        self.caption = text

    def append_response(self, text: str) -> None:
        self.response += text

    def clear_response(self) -> None:
        self.response = ""

    def set_force_new_message(self, value: bool) -> None:
        self.force_new_message = value

    # Messages and histories -------------------------------------------- #
    def set_messages(self, messages: list[ChatMessage]) -> None:
        self.messages = list(messages)

    def append_human_message(self, content: str) -> None:
        self.messages.append(ChatMessage(role="human", content=content))

    def append_ai_message(self, content: str) -> None:
        """Extend the current AI bubble, or open a new one when forced."""
        last = self.messages[-1] if self.messages else None
        if last is not None and last.role == "ai" and not self.force_new_message:
            last.content += content
            return
        self.messages.append(ChatMessage(role="ai", content=content))
        self.force_new_message = False

    def set_histories(self, histories: list[HistoryInfo]) -> None:
        self.histories = list(histories)
        self._emit_histories()

    def prepend_history(self, history: HistoryInfo) -> None:
        self.histories = [history, *self.histories]
        self._emit_histories()

    def set_current_history_uid(self, uid: Optional[str]) -> None:
        self.current_history_uid = uid

    # Catalogues and group ---------------------------------------------- #
    def set_config_files(self, configs: list[ConfigFile]) -> None:
        self.config_files = list(configs)

    def set_background_files(self, files: list[str]) -> None:
        self.background_files = list(files)

    def set_group_members(self, members: list[str]) -> None:
        self.group_members = list(members)

    def set_is_owner(self, value: bool) -> None:
        self.is_owner = value

    @property
    def sorted_group_members(self) -> list[str]:
        """Members with this client first, the rest in roster order."""
        if self.self_uid not in self.group_members:
            return list(self.group_members)
        return [self.self_uid, *(m for m in self.group_members if m != self.self_uid)]

    def _emit_histories(self) -> None:
        if self.history_listener is not None:
            self.history_listener(list(self.histories))
