"""Shared microphone on/off flag."""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from ..state.ai_state import AgentState, AiStateMachine

LOGGER = logging.getLogger(__name__)

MicListener = Callable[[bool], None]


class MicrophoneBackend(Protocol):
    """Capture pipeline driven by the flag (voice activity detection, streaming)."""

    def start(self) -> None: ...

    def stop(self) -> None: ...


class MicController:
    """Single source of truth for the microphone state.

    Mutated both by the user and by the wake-word subsystem, so every consumer
    must read ``is_on`` right before acting.
    """

    def __init__(self, ai_state: AiStateMachine, backend: Optional[MicrophoneBackend] = None) -> None:
        self._ai_state = ai_state
        self._backend = backend
        self._on = False
        self._listeners: list[MicListener] = []

    @property
    def is_on(self) -> bool:
        return self._on

    def subscribe(self, listener: MicListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def start(self) -> None:
        """Turn the microphone on (no-op when already on)."""
        if self._on:
            return
        if self._backend is not None:
            self._backend.start()
        self._set(True)

    def stop(self) -> None:
        """Turn the microphone off (no-op when already off)."""
        if not self._on:
            return
        if self._backend is not None:
            self._backend.stop()
        self._set(False)

    def toggle(self) -> None:
        """Flip the microphone; leaving LISTENING returns the agent to IDLE."""
        if self._on:
            self.stop()
            self._ai_state.compare_and_set(AgentState.LISTENING, AgentState.IDLE)
        else:
            self.start()

    def _set(self, value: bool) -> None:
        self._on = value
        LOGGER.info("Microphone %s", "on" if value else "off")
        for listener in list(self._listeners):
            listener(value)
