"""Exception hierarchy for the companion client."""

from __future__ import annotations


class CompanionError(RuntimeError):
    """Base class for locally contained client errors."""


class CaptureError(CompanionError):
    """Raised when the microphone cannot record a clip."""


class TranscriptionError(CompanionError):
    """Raised when the transcription endpoint fails or answers badly."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RecognizerBusyError(CompanionError):
    """Raised by a recognizer asked to start while it is already running."""


class PlaybackError(CompanionError):
    """Raised when an audio task cannot be decoded or played."""
