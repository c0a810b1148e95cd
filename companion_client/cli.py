from __future__ import annotations

import json
from typing import Optional

import typer

from .config.settings import get_settings
from .config.store import ClientStore

cli = typer.Typer(name="companion", help="Companion conversation client")
config_cli = typer.Typer(help="Connection configuration")

cli.add_typer(config_cli, name="config")


@cli.command()
def run() -> None:
    """Connect to the backend and listen for the wake phrase."""
    from .app import run as _run

    _run()


@config_cli.command("show")
def config_show() -> None:
    """Print the effective connection URLs."""
    settings = get_settings()
    store = ClientStore()
    payload = {
        "ws_url": store.ws_url or settings.ws_url,
        "base_url": store.base_url or settings.base_url,
        "wake_strategy": settings.wake_strategy.value,
        "wake_phrases": settings.wake_phrases,
        "known_histories": len(store.histories),
    }
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


@config_cli.command("set")
def config_set(
    ws_url: Optional[str] = typer.Option(None, "--ws-url", help="WebSocket URL of the backend"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Base URL for relative assets"),
) -> None:
    """Persist the connection URLs used on next start."""
    if ws_url is None and base_url is None:
        typer.echo("Nothing to update.")
        raise typer.Exit(code=1)
    store = ClientStore()
    store.set_urls(ws_url=ws_url, base_url=base_url)
    typer.echo(json.dumps({"ws_url": store.ws_url, "base_url": store.base_url}, indent=2))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
