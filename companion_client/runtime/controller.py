"""Wires connection, router, audio queue, microphone and wake word together."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from ..audio.task_queue import AudioTaskQueue
from ..config.settings import ClientSettings
from ..config.store import ClientStore
from ..services import schemas
from ..services.connection import ConnectionManager, ConnectionState
from ..services.notifier import LoggingNotifier, Notice, Notifier
from ..services.schemas import HistoryInfo
from ..services.transcription import TranscriptionClient
from ..state.ai_state import AgentState, AiStateMachine
from ..state.app_state import ConversationStore
from .microphone import MicController, MicrophoneBackend
from .router import MessageRouter, Player
from .wake_word import ClipSource, SpeechRecognizer, Transcriber, WakeWordDetector

LOGGER = logging.getLogger(__name__)


class CompanionController:
    """High-level coordinator for the companion client."""

    def __init__(
        self,
        settings: ClientSettings,
        store: ClientStore,
        *,
        notifier: Optional[Notifier] = None,
        connection: Optional[ConnectionManager] = None,
        player: Optional[Player] = None,
        recognizer: Optional[SpeechRecognizer] = None,
        recorder: Optional[ClipSource] = None,
        transcriber: Optional[Transcriber] = None,
        mic_backend: Optional[MicrophoneBackend] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.notifier: Notifier = notifier or LoggingNotifier()

        self.ai_state = AiStateMachine(waiting_timeout=settings.waiting_timeout_ms / 1000)
        self.audio_queue = AudioTaskQueue(on_error=self._on_audio_error)
        self.conversation = ConversationStore(
            histories=[HistoryInfo.from_payload(item) for item in store.histories],
            history_listener=self._persist_histories,
        )
        self.connection = connection or ConnectionManager()
        self.mic = MicController(self.ai_state, mic_backend)

        if player is None:
            from ..audio.playback import AudioPlayer, PlaybackConfig

            player = AudioPlayer(self.conversation, PlaybackConfig(device_name=settings.output_device))
        self.player = player

        self._owned_transcriber: Optional[TranscriptionClient] = None
        if transcriber is None:
            self._owned_transcriber = TranscriptionClient.from_settings(settings)
            transcriber = self._owned_transcriber

        self.router = MessageRouter(
            ai_state=self.ai_state,
            audio_queue=self.audio_queue,
            sender=self.connection,
            mic=self.mic,
            conversation=self.conversation,
            notifier=self.notifier,
            player=self.player,
            interrupt=self.interrupt,
            base_url=lambda: self.base_url,
            end_phrases=settings.end_phrases,
            auto_start_mic_on_conv_end=settings.auto_start_mic_on_conv_end,
        )
        if recorder is None:
            from ..audio.capture import CaptureConfig, ClipRecorder

            recorder = ClipRecorder(
                CaptureConfig(sample_rate=settings.capture_sample_rate, device_name=settings.input_device)
            )
        self.wake_word = WakeWordDetector(
            mic=self.mic,
            notifier=self.notifier,
            recognizer=recognizer,
            recorder=recorder,
            transcriber=transcriber,
            settings=settings,
        )

        self._subscriptions: list[Any] = []
        self._unsubscribe_state = None
        self._proactive_handle: Optional[asyncio.TimerHandle] = None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    @property
    def ws_url(self) -> str:
        return self.store.ws_url or self.settings.ws_url

    @property
    def base_url(self) -> str:
        return self.store.base_url or self.settings.base_url

    def start(self) -> None:
        """Connect and begin following the microphone for the wake phrase."""
        self._subscriptions = [
            self.connection.on_message(self.router.handle_raw),
            self.connection.on_state_change(self._on_connection_state),
        ]
        self._unsubscribe_state = self.ai_state.subscribe(self._on_agent_state)
        self.connection.connect(self.ws_url)
        self.wake_word.attach()

    async def shutdown(self) -> None:
        """Cancel every timer, loop and connection owned by the client."""
        self._cancel_proactive()
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        if self._unsubscribe_state is not None:
            self._unsubscribe_state()
            self._unsubscribe_state = None
        await self.wake_word.close()
        self.mic.stop()
        await self.audio_queue.close()
        self.player.stop()
        self.ai_state.close()
        await self.connection.close()
        if self._owned_transcriber is not None:
            await self._owned_transcriber.close()

    # ------------------------------------------------------------------ #
    # User actions
    # ------------------------------------------------------------------ #
    def set_urls(self, *, ws_url: Optional[str] = None, base_url: Optional[str] = None) -> None:
        """Persist new URLs; a new ws_url reconnects immediately."""
        previous = self.ws_url
        self.store.set_urls(ws_url=ws_url, base_url=base_url)
        if ws_url is not None and ws_url != previous:
            self.connection.connect(ws_url)

    def reconnect(self) -> None:
        if self.connection.state not in (ConnectionState.OPEN, ConnectionState.CONNECTING):
            self.connection.reconnect()

    def send_text(self, text: str) -> None:
        """Send typed input, interrupting the agent if it is speaking."""
        text = text.strip()
        if not text:
            return
        if self.ai_state.is_thinking_speaking:
            self.interrupt()
        self.conversation.append_human_message(text)
        self.connection.send(schemas.text_input(text))

    def interrupt(self, send_signal: bool = True) -> None:
        """Cut the agent off; ``send_signal`` tells the backend about it."""
        if not self.ai_state.is_thinking_speaking:
            return
        LOGGER.info("Interrupting conversation chain")
        self.ai_state.set_state(AgentState.INTERRUPTED)
        if send_signal:
            self.connection.send(schemas.interrupt_signal(self.conversation.response))
        self.conversation.clear_response()
        self.audio_queue.clear_queue()
        self.player.stop()

    def toggle_mic(self) -> None:
        self.mic.toggle()

    # Sessions, characters and group ------------------------------------ #
    def new_history(self) -> None:
        self.connection.send(schemas.create_new_history())

    def load_history(self, history_uid: str) -> None:
        self.connection.send(schemas.fetch_and_set_history(history_uid))

    def delete_history(self, history_uid: str) -> None:
        """Ask the backend to delete a stored conversation other than the active one."""
        if history_uid == self.conversation.current_history_uid:
            self.notifier.notify(Notice("Cannot delete the current conversation", "warning", 2000))
            return
        self.connection.send(schemas.delete_history(history_uid))
        self.conversation.set_histories([h for h in self.conversation.histories if h.uid != history_uid])

    def refresh_catalogues(self) -> None:
        """Request the history list, character configs and backgrounds."""
        self.connection.send(schemas.fetch_history_list())
        self.connection.send(schemas.fetch_configs())
        self.connection.send(schemas.fetch_background_images())

    def switch_config(self, filename: str) -> None:
        self.ai_state.set_state(AgentState.LOADING)
        self.connection.send(schemas.switch_config(filename))

    def invite_to_group(self, invitee_uid: str) -> None:
        invitee_uid = invitee_uid.strip()
        if invitee_uid:
            self.connection.send(schemas.add_client_to_group(invitee_uid))

    def remove_from_group(self, target_uid: str) -> None:
        self.connection.send(schemas.remove_client_from_group(target_uid))

    def request_group_info(self) -> None:
        self.connection.send(schemas.request_group_info())

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _on_connection_state(self, state: ConnectionState) -> None:
        LOGGER.info("Connection %s", state.value)
        if state is ConnectionState.OPEN:
            self.store.set_urls(ws_url=self.connection.url)
            self.refresh_catalogues()

    def _on_agent_state(self, previous: AgentState, current: AgentState) -> None:
        self._cancel_proactive()
        if current is AgentState.IDLE and self.settings.allow_proactive_speak:
            self._proactive_handle = asyncio.get_running_loop().call_later(
                self.settings.idle_seconds_to_speak,
                self._proactive_speak,
            )

    def _proactive_speak(self) -> None:
        self._proactive_handle = None
        if self.ai_state.is_idle and self.connection.state is ConnectionState.OPEN:
            LOGGER.info("Idle for %.1fs, asking the agent to speak", self.settings.idle_seconds_to_speak)
            self.connection.send(schemas.ai_speak_signal())

    def _cancel_proactive(self) -> None:
        if self._proactive_handle is not None:
            self._proactive_handle.cancel()
            self._proactive_handle = None

    def _on_audio_error(self, exc: Exception) -> None:
        self.notifier.notify(Notice(f"Audio playback failed: {exc}", "error", 2000))

    def _persist_histories(self, histories: list[HistoryInfo]) -> None:
        self.store.set_histories([history.to_payload() for history in histories])
