from __future__ import annotations

import json

from typer.testing import CliRunner

from companion_client.cli import cli
from companion_client.config.settings import get_settings

runner = CliRunner()


def test_config_set_then_show() -> None:
    get_settings.cache_clear()
    result = runner.invoke(cli, ["config", "set", "--ws-url", "ws://lan:12393/client-ws"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["ws_url"] == "ws://lan:12393/client-ws"

    result = runner.invoke(cli, ["config", "show"])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["ws_url"] == "ws://lan:12393/client-ws"
    assert payload["base_url"] == "http://127.0.0.1:12393"
    assert payload["known_histories"] == 0


def test_config_set_requires_a_value() -> None:
    result = runner.invoke(cli, ["config", "set"])
    assert result.exit_code == 1
    assert "Nothing to update" in result.output


def test_package_run_starts_the_app(monkeypatch) -> None:
    import companion_client
    from companion_client import app

    calls: list[tuple] = []
    monkeypatch.setattr(app, "run", lambda *args: calls.append(args))
    companion_client.run()
    assert calls == [()]
