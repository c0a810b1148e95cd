"""Unified configuration for the companion client."""

from __future__ import annotations

import json
from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class WakeStrategy(str, Enum):
    """Wake-word recognition strategy."""

    LIVE_RECOGNIZER = "live_recognizer"
    POLL_TRANSCRIBE = "poll_transcribe"


class ClientSettings(BaseSettings):
    """Global parameters of the client."""

    model_config = SettingsConfigDict(
        env_prefix="COMPANION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Connection
    ws_url: str = "ws://127.0.0.1:12393/client-ws"
    base_url: str = "http://127.0.0.1:12393"

    # Wake word
    wake_phrases: list[str] = ["你好，小薇"]
    end_phrases: list[str] = ["结束对话", "关闭对话", "停止对话", "请结束对话"]
    wake_strategy: WakeStrategy = WakeStrategy.LIVE_RECOGNIZER
    live_failure_threshold: int = 5
    live_restart_delay_ms: int = 5000
    wake_debounce_ms: int = 200

    # Poll transcription
    transcription_url: str = "https://api.openai.com/v1/audio/transcriptions"
    transcription_api_key: str | None = None
    transcription_model: str = "whisper-1"
    transcription_language: str = "zh"
    transcription_timeout_sec: float = 30.0
    poll_clip_seconds: float = 3.0
    poll_retry_delay_ms: int = 1000
    poll_cycle_delay_ms: int = 500
    capture_sample_rate: int = 16_000
    input_device: str | None = None
    output_device: str | None = None

    # Agent state
    waiting_timeout_ms: int = 2000

    # Behaviour
    auto_start_mic_on_conv_end: bool = False
    allow_proactive_speak: bool = False
    idle_seconds_to_speak: float = 5.0

    # Logs
    log_dir: str | None = None
    log_level: str = "INFO"
    log_rotate_mb: int = 5
    log_retention_days: int = 7

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls.json_config_settings_source,
            file_secret_settings,
        )

    @staticmethod
    def json_config_settings_source() -> dict[str, object]:
        """Load companion.json from the working directory when present."""
        config_path = Path.cwd() / "companion.json"
        if config_path.is_file():
            try:
                return json.loads(config_path.read_text(encoding="utf-8"))
            except ValueError:
                return {}
        return {}


@lru_cache()
def get_settings() -> ClientSettings:
    """Return a cached ClientSettings instance."""
    return ClientSettings()
