"""Playback of agent-produced audio tasks."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import threading
import wave
from dataclasses import dataclass
from typing import Any, Callable, Optional

import numpy as np
import sounddevice as sd

from ..errors import PlaybackError
from ..services.schemas import AudioTask
from ..state.app_state import ConversationStore
from .transcoder import decode_wav

LOGGER = logging.getLogger(__name__)

ExpressionCallback = Callable[[list[Any]], None]


@dataclass(slots=True)
class PlaybackConfig:
    """Playback configuration."""

    device_name: str | None = None


class AudioPlayer:
    """Play one AudioTask at a time and settle when the sound has finished."""

    def __init__(
        self,
        conversation: ConversationStore,
        config: PlaybackConfig | None = None,
        *,
        on_expressions: Optional[ExpressionCallback] = None,
    ) -> None:
        self.config = config or PlaybackConfig()
        self._conversation = conversation
        self._on_expressions = on_expressions
        self._lock = threading.Lock()
        self._stopped = threading.Event()

    async def play(self, task: AudioTask) -> None:
        """Show the caption, play the clip and wait for completion."""
        if task.display_text is not None and task.display_text.text:
            self._conversation.set_caption(task.display_text.text)
            self._conversation.append_response(task.display_text.text)
            if not task.forwarded:
                self._conversation.append_ai_message(task.display_text.text)
        if task.expressions and self._on_expressions is not None:
            self._on_expressions(task.expressions)
        if not task.audio_base64:
            return

        samples, sample_rate = self._decode(task.audio_base64)
        self._stopped.clear()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._play_blocking, samples, sample_rate)

    def stop(self) -> None:
        """Abort the sound currently playing."""
        self._stopped.set()
        with self._lock:
            sd.stop()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    @staticmethod
    def _decode(audio_base64: str) -> tuple[np.ndarray, int]:
        try:
            raw = base64.b64decode(audio_base64, validate=True)
            return decode_wav(raw)
        except (binascii.Error, wave.Error, ValueError, EOFError) as exc:
            raise PlaybackError(f"Undecodable audio chunk: {exc}") from exc

    def _play_blocking(self, samples: np.ndarray, sample_rate: int) -> None:
        if self._stopped.is_set():
            return
        try:
            with self._lock:
                sd.play(samples, samplerate=sample_rate, device=self.config.device_name)
            sd.wait()
        except sd.PortAudioError as exc:
            raise PlaybackError(f"Audio output unavailable: {exc}") from exc
