"""HTTP client for the speech transcription endpoint."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..audio.transcoder import WavClip
from ..config.settings import ClientSettings
from ..errors import TranscriptionError

LOGGER = logging.getLogger(__name__)


class TranscriptionClient:
    """Async client posting WAV clips as multipart forms."""

    def __init__(
        self,
        url: str,
        *,
        api_key: str | None = None,
        model: str = "whisper-1",
        language: str | None = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.model = model
        self.language = language
        self._api_key = api_key
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: ClientSettings, **kwargs) -> "TranscriptionClient":
        return cls(
            settings.transcription_url,
            api_key=settings.transcription_api_key,
            model=settings.transcription_model,
            language=settings.transcription_language,
            timeout=settings.transcription_timeout_sec,
            **kwargs,
        )

    async def transcribe(self, clip: WavClip) -> str:
        """Upload ``clip`` and return the recognised text."""
        headers: dict[str, str] = {}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        data = {"model": self.model}
        if self.language:
            data["language"] = self.language
        files = {"file": ("clip.wav", clip.data, "audio/wav")}

        try:
            response = await self._client.post(self.url, data=data, files=files, headers=headers or None)
        except httpx.TimeoutException as exc:
            raise TranscriptionError("Transcription request timed out.") from exc
        except httpx.HTTPError as exc:
            raise TranscriptionError(f"Transcription request failed: {exc}") from exc

        if response.status_code >= 400:
            snippet = response.text[:200]
            raise TranscriptionError(
                f"Transcription endpoint answered {response.status_code}: {snippet}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise TranscriptionError(f"Non-JSON transcription response: {response.text[:200]}") from exc
        text = payload.get("text") if isinstance(payload, dict) else None
        if not isinstance(text, str):
            raise TranscriptionError("Transcription response has no text field.")
        LOGGER.debug("Transcribed %.1fs clip: %r", clip.duration, text)
        return text.strip()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
