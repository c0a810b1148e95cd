"""Entry point for the headless companion client."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from .config.settings import ClientSettings, get_settings
from .config.store import ClientStore
from .runtime.controller import CompanionController
from .utils.logger import configure_logging

LOGGER = logging.getLogger(__name__)


async def serve(settings: ClientSettings, store: ClientStore) -> None:
    """Run the controller until the process is asked to stop."""
    controller = CompanionController(settings, store)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    controller.start()
    LOGGER.info("Companion client started (%s)", controller.ws_url)
    try:
        await stop.wait()
    finally:
        await controller.shutdown()
        LOGGER.info("Companion client stopped")


def run() -> None:
    """Start the client with the cached settings."""
    settings = get_settings()
    configure_logging(settings, console=True)
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(serve(settings, ClientStore()))
