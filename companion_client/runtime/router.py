"""Dispatch of inbound protocol messages to state transitions and side effects."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence

from ..audio.task_queue import AudioTaskQueue
from ..services import schemas
from ..services.notifier import Notice, Notifier
from ..services.schemas import AudioTask, ChatMessage, ConfigFile, HistoryInfo, ModelInfo
from ..state.ai_state import AgentState, AiStateMachine
from ..state.app_state import ConversationStore
from ..utils.trace import message_trace
from .microphone import MicController

LOGGER = logging.getLogger(__name__)

CAPTION_CHARACTER_LOADED = "New Character Loaded"
CAPTION_NEW_CONVERSATION = "新对话"

Message = dict[str, Any]
Handler = Callable[[Message], None]


class Sender(Protocol):
    def send(self, message: Message) -> None: ...


class Player(Protocol):
    def play(self, task: AudioTask) -> Awaitable[None]: ...

    def stop(self) -> None: ...


class MessageRouter:
    """Apply one inbound message at a time; dispatch never blocks."""

    def __init__(
        self,
        *,
        ai_state: AiStateMachine,
        audio_queue: AudioTaskQueue,
        sender: Sender,
        mic: MicController,
        conversation: ConversationStore,
        notifier: Notifier,
        player: Player,
        interrupt: Callable[[bool], None],
        base_url: Callable[[], str],
        end_phrases: Sequence[str] = (),
        auto_start_mic_on_conv_end: bool = False,
    ) -> None:
        self._ai_state = ai_state
        self._audio_queue = audio_queue
        self._sender = sender
        self._mic = mic
        self._conversation = conversation
        self._notifier = notifier
        self._player = player
        self._interrupt = interrupt
        self._base_url = base_url
        self.end_phrases = list(end_phrases)
        self.auto_start_mic_on_conv_end = auto_start_mic_on_conv_end

        self._handlers: dict[str, Handler] = {
            "control": self._on_control,
            "set-model-and-conf": self._on_set_model_and_conf,
            "full-text": self._on_full_text,
            "config-files": self._on_config_files,
            "config-switched": self._on_config_switched,
            "background-files": self._on_background_files,
            "audio": self._on_audio,
            "history-data": self._on_history_data,
            "new-history-created": self._on_new_history_created,
            "history-deleted": self._on_history_deleted,
            "history-list": self._on_history_list,
            "user-input-transcription": self._on_user_input_transcription,
            "error": self._on_error,
            "group-update": self._on_group_update,
            "group-operation-result": self._on_group_operation_result,
            "backend-synth-complete": self._on_backend_synth_complete,
            "conversation-chain-end": self._on_conversation_chain_end,
            "force-new-message": self._on_force_new_message,
            "interrupt-signal": self._on_interrupt_signal,
        }
        self._control_handlers: dict[str, Callable[[], None]] = {
            "start-mic": self._control_start_mic,
            "stop-mic": self._control_stop_mic,
            "conversation-chain-start": self._control_chain_start,
            "conversation-chain-end": self._control_chain_end,
        }

    # ------------------------------------------------------------------ #
    # Entry points
    # ------------------------------------------------------------------ #
    def handle_raw(self, raw: str) -> None:
        """Decode a text frame and dispatch it; malformed frames are dropped."""
        try:
            message = json.loads(raw)
        except ValueError:
            LOGGER.warning("Dropping non-JSON frame: %.80s", raw)
            return
        if not isinstance(message, dict):
            LOGGER.warning("Dropping non-object frame: %.80s", raw)
            return
        self.handle(message)

    def handle(self, message: Message) -> None:
        """Perform the transition and side effects bound to ``message['type']``."""
        msg_type = message.get("type")
        if not isinstance(msg_type, str):
            msg_type = None
        with message_trace(msg_type):
            handler = self._handlers.get(msg_type) if msg_type else None
            if handler is None:
                LOGGER.warning("Unknown message type: %s", message.get("type"))
                return
            LOGGER.debug("Received %s", msg_type)
            handler(message)

    # ------------------------------------------------------------------ #
    # Control commands
    # ------------------------------------------------------------------ #
    def _on_control(self, message: Message) -> None:
        text = message.get("text")
        if not isinstance(text, str) or not text:
            LOGGER.warning("Control frame without a command: %.80r", text)
            return
        handler = self._control_handlers.get(text)
        if handler is None:
            LOGGER.warning("Unknown control command: %s", text)
            return
        handler()

    def _control_start_mic(self) -> None:
        LOGGER.info("Starting microphone on server request")
        self._mic.start()

    def _control_stop_mic(self) -> None:
        LOGGER.info("Stopping microphone on server request")
        self._mic.stop()

    def _control_chain_start(self) -> None:
        self._ai_state.set_state(AgentState.THINKING_SPEAKING)
        self._audio_queue.clear_queue()
        self._conversation.clear_response()

    def _control_chain_end(self) -> None:
        async def _barrier() -> None:
            if self._ai_state.compare_and_set(AgentState.THINKING_SPEAKING, AgentState.IDLE):
                if self.auto_start_mic_on_conv_end:
                    self._mic.start()

        self._audio_queue.add_task(_barrier)

    # ------------------------------------------------------------------ #
    # Session and model
    # ------------------------------------------------------------------ #
    def _on_set_model_and_conf(self, message: Message) -> None:
        self._ai_state.set_state(AgentState.LOADING)
        if message.get("conf_name"):
            self._conversation.set_conf_name(message["conf_name"])
        if message.get("conf_uid"):
            self._conversation.set_conf_uid(message["conf_uid"])
            LOGGER.info("confUid %s", message["conf_uid"])
        if message.get("client_uid"):
            self._conversation.set_self_uid(message["client_uid"])

        raw_model = message.get("model_info")
        model_info: Optional[ModelInfo] = None
        if isinstance(raw_model, dict):
            model_info = ModelInfo.from_payload(raw_model).with_base_url(self._base_url())
        self._conversation.stage_model_info(model_info)
        if model_info is not None:
            asyncio.get_running_loop().call_soon(self._conversation.apply_pending_model)

        self._ai_state.set_state(AgentState.IDLE)

    def _on_full_text(self, message: Message) -> None:
        if message.get("text"):
            self._conversation.set_caption(message["text"])

    def _on_config_files(self, message: Message) -> None:
        configs = message.get("configs")
        if configs is not None:
            self._conversation.set_config_files(
                [ConfigFile.from_payload(item) for item in configs if isinstance(item, dict)]
            )

    def _on_config_switched(self, message: Message) -> None:
        self._ai_state.set_state(AgentState.IDLE)
        self._conversation.set_caption(CAPTION_CHARACTER_LOADED)
        self._notifier.notify(Notice("Character switched", "success", 2000))
        self._sender.send(schemas.fetch_history_list())
        self._sender.send(schemas.create_new_history())

    def _on_background_files(self, message: Message) -> None:
        files = message.get("files")
        if files is not None:
            self._conversation.set_background_files([str(item) for item in files])

    # ------------------------------------------------------------------ #
    # Audio
    # ------------------------------------------------------------------ #
    def _on_audio(self, message: Message) -> None:
        if self._ai_state.state in (AgentState.INTERRUPTED, AgentState.LISTENING):
            display = message.get("display_text")
            sentence = display.get("text") if isinstance(display, dict) else None
            LOGGER.info("Audio playback intercepted. Sentence: %s", sentence)
            return
        task = AudioTask.from_message(message)
        LOGGER.debug("actions %s", message.get("actions"))
        self._audio_queue.add_task(lambda: self._player.play(task))

    def _on_backend_synth_complete(self, message: Message) -> None:
        self._ai_state.backend_synth_complete = True

    def _on_conversation_chain_end(self, message: Message) -> None:
        if not self._audio_queue.has_task():
            self._ai_state.compare_and_set(AgentState.THINKING_SPEAKING, AgentState.IDLE)

    def _on_force_new_message(self, message: Message) -> None:
        self._conversation.set_force_new_message(True)

    def _on_interrupt_signal(self, message: Message) -> None:
        self._interrupt(False)

    # ------------------------------------------------------------------ #
    # Histories
    # ------------------------------------------------------------------ #
    def _on_history_data(self, message: Message) -> None:
        messages = message.get("messages")
        if messages is not None:
            self._conversation.set_messages(
                [ChatMessage.from_payload(item) for item in messages if isinstance(item, dict)]
            )
        self._notifier.notify(Notice("History loaded", "success", 2000))

    def _on_new_history_created(self, message: Message) -> None:
        self._ai_state.set_state(AgentState.IDLE)
        self._conversation.set_caption(CAPTION_NEW_CONVERSATION)
        uid = message.get("history_uid")
        if not uid:
            return
        self._conversation.set_current_history_uid(uid)
        self._conversation.set_messages([])
        self._conversation.prepend_history(HistoryInfo.fresh(uid))
        self._notifier.notify(Notice("新的对话记录", "success", 2000))

    def _on_history_deleted(self, message: Message) -> None:
        if message.get("success"):
            self._notifier.notify(Notice("History deleted successfully", "success", 2000))
        else:
            self._notifier.notify(Notice("Failed to delete history", "error", 2000))

    def _on_history_list(self, message: Message) -> None:
        histories = message.get("histories")
        if histories is None:
            return
        entries = [HistoryInfo.from_payload(item) for item in histories if isinstance(item, dict)]
        self._conversation.set_histories(entries)
        if entries:
            self._conversation.set_current_history_uid(entries[0].uid)

    def _on_user_input_transcription(self, message: Message) -> None:
        text = message.get("text")
        LOGGER.info("user-input-transcription: %s", text)
        if not isinstance(text, str) or not text:
            return
        if self._mic.is_on and any(phrase in text for phrase in self.end_phrases):
            LOGGER.info("End phrase detected, turning the microphone off")
            self._mic.toggle()
        self._conversation.append_human_message(text)

    # ------------------------------------------------------------------ #
    # Errors and group
    # ------------------------------------------------------------------ #
    def _on_error(self, message: Message) -> None:
        self._notifier.notify(Notice(str(message.get("message") or "Unknown error"), "error", 2000))

    def _on_group_update(self, message: Message) -> None:
        members = message.get("members")
        LOGGER.info("Received group-update: %s", members)
        if members is not None:
            self._conversation.set_group_members([str(member) for member in members])
        if message.get("is_owner") is not None:
            self._conversation.set_is_owner(bool(message["is_owner"]))

    def _on_group_operation_result(self, message: Message) -> None:
        severity = "success" if message.get("success") else "error"
        self._notifier.notify(Notice(str(message.get("message") or ""), severity, 2000))
