"""Agent activity state machine."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional, Union

LOGGER = logging.getLogger(__name__)


class AgentState(str, Enum):
    """Discrete activity state of the backend agent."""

    IDLE = "idle"
    THINKING_SPEAKING = "thinking-speaking"
    INTERRUPTED = "interrupted"
    LOADING = "loading"
    LISTENING = "listening"
    WAITING = "waiting"


StateUpdater = Callable[[AgentState], AgentState]
StateListener = Callable[[AgentState, AgentState], None]


class AiStateMachine:
    """Owns the process-wide agent state and the WAITING auto-revert timer.

    Invariants: exactly one timer handle is alive at a time, and WAITING never
    outlives ``waiting_timeout`` seconds without another transition.
    """

    def __init__(
        self,
        *,
        waiting_timeout: float = 2.0,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._state = AgentState.LOADING
        self._waiting_timeout = waiting_timeout
        self._loop = loop
        self._timer: Optional[asyncio.TimerHandle] = None
        self._listeners: list[StateListener] = []
        self.backend_synth_complete = False

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> AgentState:
        return self._state

    def set_state(self, target: Union[AgentState, StateUpdater]) -> AgentState:
        """Move to ``target`` (a state or a function of the current state)."""
        next_state = target(self._state) if callable(target) else AgentState(target)

        if next_state is AgentState.WAITING:
            if self._state is AgentState.THINKING_SPEAKING:
                LOGGER.debug("WAITING ignored while the agent is speaking")
                return self._state
            self._cancel_timer()
            self._apply(next_state)
            self._timer = self._get_loop().call_later(self._waiting_timeout, self._on_waiting_timeout)
            return self._state

        self._cancel_timer()
        self._apply(next_state)
        return self._state

    def compare_and_set(self, expected: AgentState, target: AgentState) -> bool:
        """Move to ``target`` only when currently in ``expected``."""
        if self._state is not expected:
            return False
        self.set_state(target)
        return self._state is target

    def reset(self) -> None:
        """Unconditionally return to IDLE."""
        self.set_state(AgentState.IDLE)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a ``(previous, current)`` listener; returns the unsubscriber."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def close(self) -> None:
        """Dispose of the pending timer."""
        self._cancel_timer()
        self._listeners.clear()

    @property
    def waiting_timer_pending(self) -> bool:
        return self._timer is not None

    # Derived projections
    @property
    def is_idle(self) -> bool:
        return self._state is AgentState.IDLE

    @property
    def is_thinking_speaking(self) -> bool:
        return self._state is AgentState.THINKING_SPEAKING

    @property
    def is_interrupted(self) -> bool:
        return self._state is AgentState.INTERRUPTED

    @property
    def is_loading(self) -> bool:
        return self._state is AgentState.LOADING

    @property
    def is_listening(self) -> bool:
        return self._state is AgentState.LISTENING

    @property
    def is_waiting(self) -> bool:
        return self._state is AgentState.WAITING

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _apply(self, next_state: AgentState) -> None:
        previous = self._state
        self._state = next_state
        if previous is next_state:
            return
        LOGGER.info("Agent state %s -> %s", previous.value, next_state.value)
        for listener in list(self._listeners):
            listener(previous, next_state)

    def _on_waiting_timeout(self) -> None:
        self._timer = None
        self._apply(AgentState.IDLE)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop
