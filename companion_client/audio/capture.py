"""Bounded-duration microphone recording for the poll strategy."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import numpy as np
import sounddevice as sd

from ..errors import CaptureError

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class CaptureConfig:
    """Microphone capture configuration."""

    sample_rate: int = 16_000
    channels: int = 1
    device_name: str | None = None


class ClipRecorder:
    """Record fixed-length clips from the input device."""

    def __init__(self, config: CaptureConfig | None = None) -> None:
        self.config = config or CaptureConfig()

    async def record(self, seconds: float) -> np.ndarray:
        """Record ``seconds`` of int16 audio without blocking the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._record_blocking, seconds)

    def _record_blocking(self, seconds: float) -> np.ndarray:
        frames = int(self.config.sample_rate * seconds)
        if frames <= 0:
            raise CaptureError(f"Invalid clip duration: {seconds}")
        try:
            clip = sd.rec(
                frames,
                samplerate=self.config.sample_rate,
                channels=self.config.channels,
                dtype="int16",
                device=self.config.device_name,
            )
            sd.wait()
        except sd.PortAudioError as exc:
            raise CaptureError(f"Microphone unavailable: {exc}") from exc
        except ValueError as exc:
            raise CaptureError(f"Input device not usable: {exc}") from exc
        LOGGER.debug("Recorded %d frames", frames)
        return clip
