"""WebSocket connection to the companion backend."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from enum import Enum
from typing import Any, Callable, Optional

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import WebSocketException

LOGGER = logging.getLogger(__name__)

StateListener = Callable[["ConnectionState"], None]
MessageListener = Callable[[str], None]


class ConnectionState(str, Enum):
    """Lifecycle of the logical connection."""

    CLOSED = "CLOSED"
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSING = "CLOSING"


class Subscription:
    """Handle returned by listener registration."""

    def __init__(self, listeners: list[Any], listener: Any) -> None:
        self._listeners = listeners
        self._listener = listener

    def unsubscribe(self) -> None:
        if self._listener in self._listeners:
            self._listeners.remove(self._listener)


class ConnectionManager:
    """Own one logical connection, its outbound queue and its listeners.

    There is no automatic retry: a dropped connection stays CLOSED until
    ``connect`` or ``reconnect`` is called again.
    """

    def __init__(self, *, open_timeout: float = 10.0) -> None:
        self.url: Optional[str] = None
        self._open_timeout = open_timeout
        self._state = ConnectionState.CLOSED
        self._task: Optional[asyncio.Task[None]] = None
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._state_listeners: list[StateListener] = []
        self._message_listeners: list[MessageListener] = []

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> ConnectionState:
        return self._state

    def on_state_change(self, listener: StateListener) -> Subscription:
        self._state_listeners.append(listener)
        return Subscription(self._state_listeners, listener)

    def on_message(self, listener: MessageListener) -> Subscription:
        self._message_listeners.append(listener)
        return Subscription(self._message_listeners, listener)

    def connect(self, url: str) -> None:
        """(Re)open the connection to ``url``, dropping any previous one."""
        self.url = url
        previous = self._task
        if previous is not None and not previous.done():
            previous.cancel()
        self._outbox = asyncio.Queue()
        self._task = asyncio.get_running_loop().create_task(self._run(url))

    def reconnect(self) -> None:
        """Reconnect to the last url unless already OPEN or CONNECTING."""
        if self._state in (ConnectionState.OPEN, ConnectionState.CONNECTING):
            return
        if self.url is None:
            LOGGER.warning("Reconnect requested before any connect")
            return
        self.connect(self.url)

    def send(self, message: dict[str, Any]) -> None:
        """Queue ``message`` for the open connection, or drop it."""
        if self._state is not ConnectionState.OPEN:
            LOGGER.warning("Connection not open, dropping %s", message.get("type"))
            return
        self._outbox.put_nowait(json.dumps(message, ensure_ascii=False))

    async def close(self) -> None:
        """Close the connection and wait for the task to finish."""
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._set_state(ConnectionState.CLOSED)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    async def _run(self, url: str) -> None:
        me = asyncio.current_task()
        self._set_state(ConnectionState.CONNECTING, owner=me)
        try:
            async with ws_connect(url, open_timeout=self._open_timeout) as websocket:
                self._set_state(ConnectionState.OPEN, owner=me)
                LOGGER.info("Connected to %s", url)
                writer = asyncio.create_task(self._write(websocket, self._outbox))
                try:
                    async for raw in websocket:
                        if isinstance(raw, bytes):
                            raw = raw.decode("utf-8", errors="replace")
                        self._deliver(raw)
                finally:
                    self._set_state(ConnectionState.CLOSING, owner=me)
                    writer.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await writer
        except asyncio.CancelledError:
            raise
        except (OSError, TimeoutError, WebSocketException) as exc:
            LOGGER.warning("Connection to %s failed: %s", url, exc)
        finally:
            self._set_state(ConnectionState.CLOSED, owner=me)

    @staticmethod
    async def _write(websocket: Any, outbox: asyncio.Queue[str]) -> None:
        while True:
            payload = await outbox.get()
            await websocket.send(payload)

    def _deliver(self, raw: str) -> None:
        for listener in list(self._message_listeners):
            try:
                listener(raw)
            except Exception:
                LOGGER.exception("Message listener failed")

    def _set_state(self, state: ConnectionState, *, owner: Optional[asyncio.Task[Any]] = None) -> None:
        if owner is not None and owner is not self._task:
            return
        if state is self._state:
            return
        self._state = state
        LOGGER.debug("Connection state -> %s", state.value)
        for listener in list(self._state_listeners):
            listener(state)
