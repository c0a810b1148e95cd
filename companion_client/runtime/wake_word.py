"""Wake-phrase detection while the microphone is off.

Two strategies share one contract (``start``/``stop`` plus an activation
callback):

* ``LiveRecognizerStrategy`` drives a continuous platform recognizer that
  reports a closed set of typed events.
* ``PollTranscribeStrategy`` records short clips and sends them to a
  transcription endpoint.

``WakeWordDetector`` starts the selected strategy whenever the microphone
goes off, stops it whenever the microphone goes on, and demotes the live
recognizer to polling for good after repeated consecutive failures.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol, Sequence, Union

import numpy as np

from ..audio.transcoder import WavClip, encode_wav
from ..config.settings import ClientSettings, WakeStrategy
from ..errors import CaptureError, RecognizerBusyError, TranscriptionError
from ..services.notifier import Notice, Notifier
from .microphone import MicController

LOGGER = logging.getLogger(__name__)

PERMISSION_DENIED = "not-allowed"


# ---------------------------------------------------------------------- #
# Recognizer events and collaborators
# ---------------------------------------------------------------------- #
@dataclass(frozen=True, slots=True)
class RecognizerStarted:
    pass


@dataclass(frozen=True, slots=True)
class RecognitionResult:
    text: str


@dataclass(frozen=True, slots=True)
class RecognitionError:
    error: str

    @property
    def permission_denied(self) -> bool:
        return self.error == PERMISSION_DENIED


@dataclass(frozen=True, slots=True)
class RecognizerEnded:
    pass


RecognizerEvent = Union[RecognizerStarted, RecognitionResult, RecognitionError, RecognizerEnded]
EventHandler = Callable[[RecognizerEvent], None]


class SpeechRecognizer(Protocol):
    """Continuous recognizer; raises RecognizerBusyError if already running."""

    def start(self, handler: EventHandler) -> None: ...

    def stop(self) -> None: ...


class ClipSource(Protocol):
    async def record(self, seconds: float) -> np.ndarray: ...


class Transcriber(Protocol):
    async def transcribe(self, clip: WavClip) -> str: ...


def contains_phrase(text: str, phrases: Sequence[str]) -> bool:
    """True when ``text`` contains any of ``phrases``."""
    return any(phrase and phrase in text for phrase in phrases)


# ---------------------------------------------------------------------- #
# Live recognizer strategy
# ---------------------------------------------------------------------- #
class RecognizerStatus(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    ACTIVE = "active"


class LiveRecognizerStrategy:
    """Keep a continuous recognizer alive, restarting it after failures."""

    def __init__(
        self,
        recognizer: SpeechRecognizer,
        *,
        mic: MicController,
        notifier: Notifier,
        wake_phrases: Sequence[str],
        activate: Callable[[], None],
        on_demote: Callable[[], None],
        failure_threshold: int = 5,
        restart_delay: float = 5.0,
    ) -> None:
        self._recognizer = recognizer
        self._mic = mic
        self._notifier = notifier
        self._wake_phrases = list(wake_phrases)
        self._activate = activate
        self._on_demote = on_demote
        self._failure_threshold = failure_threshold
        self._restart_delay = restart_delay

        self.status = RecognizerStatus.STOPPED
        self.failures = 0
        self._enabled = False
        self._run_id = 0
        self._run_failed = False
        self._restart_handle: Optional[asyncio.TimerHandle] = None

    def start(self) -> None:
        """Start listening; a start while starting or active is a no-op."""
        self._enabled = True
        if self.status is not RecognizerStatus.STOPPED:
            return
        self._cancel_restart()
        self._run_id += 1
        self._run_failed = False
        self.status = RecognizerStatus.STARTING
        try:
            self._recognizer.start(functools.partial(self._handle_event, self._run_id))
        except RecognizerBusyError:
            LOGGER.debug("Recognizer already running")
        except (OSError, RuntimeError) as exc:
            LOGGER.error("Failed to start background recognition: %s", exc)
            self.status = RecognizerStatus.STOPPED
            self._record_failure()
            return
        if self.status is RecognizerStatus.STARTING:
            self.status = RecognizerStatus.ACTIVE
        LOGGER.info("Background recognition started, listening for the wake phrase")

    def stop(self) -> None:
        """Stop listening and forget any scheduled restart."""
        self._enabled = False
        self._cancel_restart()
        if self.status is RecognizerStatus.STOPPED:
            return
        self._run_id += 1
        self.status = RecognizerStatus.STOPPED
        self._recognizer.stop()

    def reset_failures(self) -> None:
        self.failures = 0

    def _handle_event(self, run_id: int, event: RecognizerEvent) -> None:
        if run_id != self._run_id:
            return
        if isinstance(event, RecognizerStarted):
            self.status = RecognizerStatus.ACTIVE
        elif isinstance(event, RecognitionResult):
            self.failures = 0
            text = event.text.strip()
            LOGGER.debug("Background recognition heard: %s", text)
            if contains_phrase(text, self._wake_phrases) and not self._mic.is_on:
                self._activate()
        elif isinstance(event, RecognitionError):
            LOGGER.error("Background recognition error: %s", event.error)
            if event.permission_denied:
                self._notifier.notify(
                    Notice("Microphone permission denied, wake word unavailable.", "error", 5000)
                )
            self._run_failed = True
            self._record_failure()
        elif isinstance(event, RecognizerEnded):
            self.status = RecognizerStatus.STOPPED
            if not self._run_failed:
                self._record_failure()

    def _record_failure(self) -> None:
        if not self._enabled or self._mic.is_on:
            return
        self.failures += 1
        if self.failures >= self._failure_threshold:
            LOGGER.warning("Background recognition failed %d times in a row, switching to polling", self.failures)
            self.stop()
            self._on_demote()
            return
        self._cancel_restart()
        self._restart_handle = asyncio.get_running_loop().call_later(self._restart_delay, self._restart)

    def _restart(self) -> None:
        self._restart_handle = None
        if not self._enabled or self._mic.is_on:
            return
        if self.status is not RecognizerStatus.STOPPED:
            self._run_id += 1
            self.status = RecognizerStatus.STOPPED
            self._recognizer.stop()
        LOGGER.info("Restarting background recognition (failure %d)", self.failures)
        self.start()

    def _cancel_restart(self) -> None:
        if self._restart_handle is not None:
            self._restart_handle.cancel()
            self._restart_handle = None


# ---------------------------------------------------------------------- #
# Poll-record-transcribe strategy
# ---------------------------------------------------------------------- #
class CancellationToken:
    """One-shot flag handed to a single poll loop."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class PollTranscribeStrategy:
    """Record, transcode, transcribe and match, one cycle at a time."""

    def __init__(
        self,
        *,
        recorder: ClipSource,
        transcriber: Transcriber,
        mic: MicController,
        wake_phrases: Sequence[str],
        activate: Callable[[], None],
        clip_seconds: float = 3.0,
        sample_rate: int = 16_000,
        retry_delay: float = 1.0,
        cycle_delay: float = 0.5,
    ) -> None:
        self._recorder = recorder
        self._transcriber = transcriber
        self._mic = mic
        self._wake_phrases = list(wake_phrases)
        self._activate = activate
        self._clip_seconds = clip_seconds
        self._sample_rate = sample_rate
        self._retry_delay = retry_delay
        self._cycle_delay = cycle_delay

        self._token: Optional[CancellationToken] = None
        self._task: Optional[asyncio.Task[None]] = None
        self.cycles = 0

    @property
    def running(self) -> bool:
        return (
            self._token is not None
            and not self._token.cancelled
            and self._task is not None
            and not self._task.done()
        )

    def start(self) -> None:
        """Start the loop; a no-op while it is already running."""
        if self.running:
            return
        previous = self._task
        token = CancellationToken()
        self._token = token
        self._task = asyncio.get_running_loop().create_task(self._run(token, previous))

    def stop(self) -> None:
        """Ask the loop to end before its next iteration."""
        if self._token is not None:
            self._token.cancel()

    async def close(self) -> None:
        self.stop()
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait([task])

    async def _run(self, token: CancellationToken, previous: Optional[asyncio.Task[None]]) -> None:
        if previous is not None and not previous.done():
            try:
                await asyncio.wait([previous])
            except asyncio.CancelledError:
                previous.cancel()
                raise
        LOGGER.info("Polling transcription for the wake phrase")
        while not token.cancelled:
            if self._mic.is_on:
                break
            self.cycles += 1
            try:
                samples = await self._recorder.record(self._clip_seconds)
                if token.cancelled or self._mic.is_on:
                    break
                clip = encode_wav(samples, self._sample_rate)
                text = await self._transcriber.transcribe(clip)
            except (CaptureError, TranscriptionError) as exc:
                LOGGER.warning("Wake-word poll cycle failed: %s", exc)
                await asyncio.sleep(self._retry_delay)
                continue
            except Exception:
                LOGGER.exception("Unexpected wake-word poll failure")
                await asyncio.sleep(self._retry_delay)
                continue
            if token.cancelled or self._mic.is_on:
                break
            if contains_phrase(text, self._wake_phrases):
                LOGGER.info("Wake phrase transcribed: %s", text)
                token.cancel()
                self._activate()
                break
            await asyncio.sleep(self._cycle_delay)
        LOGGER.debug("Wake-word poll loop finished after %d cycles", self.cycles)


# ---------------------------------------------------------------------- #
# Detector
# ---------------------------------------------------------------------- #
class WakeWordDetector:
    """Run the selected strategy whenever the microphone is off."""

    def __init__(
        self,
        *,
        mic: MicController,
        notifier: Notifier,
        recognizer: Optional[SpeechRecognizer],
        recorder: ClipSource,
        transcriber: Transcriber,
        settings: ClientSettings,
    ) -> None:
        self._mic = mic
        self._notifier = notifier
        self._debounce = settings.wake_debounce_ms / 1000
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.strategy = settings.wake_strategy

        self.poll = PollTranscribeStrategy(
            recorder=recorder,
            transcriber=transcriber,
            mic=mic,
            wake_phrases=settings.wake_phrases,
            activate=self._activate,
            clip_seconds=settings.poll_clip_seconds,
            sample_rate=settings.capture_sample_rate,
            retry_delay=settings.poll_retry_delay_ms / 1000,
            cycle_delay=settings.poll_cycle_delay_ms / 1000,
        )
        self.live: Optional[LiveRecognizerStrategy] = None
        if recognizer is not None:
            self.live = LiveRecognizerStrategy(
                recognizer,
                mic=mic,
                notifier=notifier,
                wake_phrases=settings.wake_phrases,
                activate=self._activate,
                on_demote=self._demote,
                failure_threshold=settings.live_failure_threshold,
                restart_delay=settings.live_restart_delay_ms / 1000,
            )
        elif self.strategy is WakeStrategy.LIVE_RECOGNIZER:
            LOGGER.error("No speech recognizer available on this platform")
            self._notifier.notify(Notice("Speech recognition is not supported here.", "error", 3000))
            self.strategy = WakeStrategy.POLL_TRANSCRIBE

    def attach(self) -> None:
        """Follow the microphone flag; starts listening if the mic is off."""
        if self._unsubscribe is None:
            self._unsubscribe = self._mic.subscribe(self._on_mic_change)
        self._on_mic_change(self._mic.is_on)

    async def close(self) -> None:
        """Stop every strategy and stop following the microphone."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._cancel_debounce()
        if self.live is not None:
            self.live.stop()
        await self.poll.close()

    def _on_mic_change(self, mic_on: bool) -> None:
        self._cancel_debounce()
        if mic_on:
            self._stop_strategies()
            return
        self._debounce_handle = asyncio.get_running_loop().call_later(self._debounce, self._start_selected)

    def _start_selected(self) -> None:
        self._debounce_handle = None
        if self._mic.is_on:
            return
        if self.strategy is WakeStrategy.LIVE_RECOGNIZER and self.live is not None:
            self.live.start()
        else:
            self.poll.start()

    def _stop_strategies(self) -> None:
        if self.live is not None:
            self.live.stop()
            self.live.reset_failures()
        self.poll.stop()

    def _demote(self) -> None:
        self.strategy = WakeStrategy.POLL_TRANSCRIBE
        if not self._mic.is_on:
            self.poll.start()

    def _activate(self) -> None:
        if self._mic.is_on:
            return
        LOGGER.info("Wake phrase detected, turning the microphone on")
        self._mic.toggle()

    def _cancel_debounce(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
