from __future__ import annotations

import json

from companion_client.config import paths
from companion_client.config.settings import ClientSettings, WakeStrategy, get_settings
from companion_client.config.store import ClientStore


def test_defaults() -> None:
    settings = ClientSettings(_env_file=None)
    assert settings.ws_url == "ws://127.0.0.1:12393/client-ws"
    assert settings.wake_phrases == ["你好，小薇"]
    assert "请结束对话" in settings.end_phrases
    assert settings.live_failure_threshold == 5
    assert settings.live_restart_delay_ms == 5000
    assert settings.waiting_timeout_ms == 2000


def test_env_and_json_sources(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / "companion.json").write_text(
        json.dumps({"base_url": "http://json:1", "wake_strategy": "poll_transcribe"}),
        encoding="utf-8",
    )
    monkeypatch.setenv("COMPANION_BASE_URL", "http://env:2")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.base_url == "http://env:2"
        assert settings.wake_strategy is WakeStrategy.POLL_TRANSCRIBE
        assert get_settings() is settings
    finally:
        get_settings.cache_clear()


def test_home_follows_env(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("COMPANION_HOME", str(tmp_path / "custom"))
    assert paths.client_home() == tmp_path / "custom"
    assert paths.config_dir().is_dir()


def test_store_round_trip(tmp_path) -> None:
    path = tmp_path / "state.json"
    store = ClientStore(path)
    assert store.ws_url is None
    store.set_urls(ws_url="ws://remote/client-ws")
    store.set_histories([{"uid": "a", "latest_message": None, "timestamp": None}])

    reloaded = ClientStore(path)
    assert reloaded.ws_url == "ws://remote/client-ws"
    assert reloaded.base_url is None
    assert reloaded.histories[0]["uid"] == "a"


def test_store_tolerates_bad_files(tmp_path) -> None:
    path = tmp_path / "state.json"
    path.write_text("{broken", encoding="utf-8")
    assert ClientStore(path).ws_url is None

    path.write_text("\ufeff" + json.dumps({"ws_url": "ws://bom", "histories": "nope"}), encoding="utf-8")
    store = ClientStore(path)
    assert store.ws_url == "ws://bom"
    assert store.histories == []

    path.write_text("[]", encoding="utf-8")
    assert ClientStore(path).ws_url is None
