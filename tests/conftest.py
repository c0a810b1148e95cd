from __future__ import annotations

from typing import Any

import pytest

from companion_client.config.settings import ClientSettings
from companion_client.services.notifier import Notice
from companion_client.services.schemas import AudioTask


class FakeSender:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    def send(self, message: dict[str, Any]) -> None:
        self.sent.append(message)


class FakeNotifier:
    def __init__(self) -> None:
        self.notices: list[Notice] = []

    def notify(self, notice: Notice) -> None:
        self.notices.append(notice)


class FakePlayer:
    def __init__(self) -> None:
        self.played: list[AudioTask] = []
        self.stopped = 0

    async def play(self, task: AudioTask) -> None:
        self.played.append(task)

    def stop(self) -> None:
        self.stopped += 1


@pytest.fixture
def sender() -> FakeSender:
    return FakeSender()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def player() -> FakePlayer:
    return FakePlayer()


@pytest.fixture
def fast_settings() -> ClientSettings:
    return ClientSettings(
        wake_phrases=["你好，小薇"],
        live_failure_threshold=5,
        live_restart_delay_ms=5,
        wake_debounce_ms=0,
        poll_clip_seconds=0.01,
        poll_retry_delay_ms=5,
        poll_cycle_delay_ms=5,
        waiting_timeout_ms=50,
        transcription_api_key="test-key",
    )


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("COMPANION_HOME", str(tmp_path / "home"))
