"""wsrelay CLI — run the relay, publish as an external producer, check backends.

Usage:
    wsrelay serve                               # Run the WebSocket relay
    wsrelay serve --config /app/config.json     # Settings from a JSON file
    wsrelay publish room1 "hello"               # Publish to every backend
    wsrelay check                               # PING every Redis backend

Every command reads settings from WSRELAY_* env vars, overlaid by
--config (or WSRELAY_CONFIG_FILE) when given.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click

from wsrelay import __version__
from wsrelay.config import Settings, load_settings
from wsrelay.logging_config import configure_logging
from wsrelay.realtime.backends import BackendSet
from wsrelay.realtime.dispatcher import PublishDispatcher, PublishError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _settings(config_file: Optional[str]) -> Settings:
    try:
        return load_settings(config_file)
    except ValueError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e


def _check_tls_files(settings: Settings) -> None:
    """Missing cert/key files are fatal before the server binds."""
    for label, path in (("cert", settings.tls_cert_file), ("key", settings.tls_key_file)):
        if not Path(path).is_file():
            click.secho(f"Error: TLS {label} file not found: {path}", fg="red", err=True)
            sys.exit(1)


config_option = click.option(
    "--config",
    "config_file",
    envvar="WSRELAY_CONFIG_FILE",
    type=click.Path(dir_okay=False),
    help="JSON settings file (or set WSRELAY_CONFIG_FILE)",
)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="wsrelay")
def main():
    """wsrelay — real-time channel relay over WebSockets."""


# ---------------------------------------------------------------------------
# wsrelay serve
# ---------------------------------------------------------------------------


@main.command()
@config_option
@click.option("--host", help="Bind address (overrides WSRELAY_HOST)")
@click.option("--port", type=int, help="Bind port (overrides WSRELAY_PORT)")
def serve(config_file: Optional[str], host: Optional[str], port: Optional[int]):
    """Run the relay server (ws://, or wss:// when TLS is enabled)."""
    import uvicorn

    from wsrelay.main import create_app

    settings = _settings(config_file)
    overrides = {k: v for k, v in (("host", host), ("port", port)) if v is not None}
    if overrides:
        settings = settings.model_copy(update=overrides)

    configure_logging(settings)

    ssl_kwargs = {}
    if settings.tls_enabled:
        _check_tls_files(settings)
        ssl_kwargs = {
            "ssl_certfile": settings.tls_cert_file,
            "ssl_keyfile": settings.tls_key_file,
        }

    click.echo(f"wsrelay {__version__} listening at {settings.public_ws_url}")
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,  # keep the structlog handler from configure_logging()
        **ssl_kwargs,
    )


# ---------------------------------------------------------------------------
# wsrelay publish
# ---------------------------------------------------------------------------


@main.command()
@config_option
@click.argument("channel")
@click.argument("message")
def publish(config_file: Optional[str], channel: str, message: str):
    """Publish MESSAGE to CHANNEL on every backend, as an external producer.

    Subscribers receive the same envelope a client "send" would produce.
    """
    settings = _settings(config_file)
    envelope = {"action": "send", "channel": channel, "message": message}
    ok = asyncio.run(_publish_impl(settings, channel, envelope))
    if not ok:
        sys.exit(1)


async def _publish_impl(settings: Settings, channel: str, envelope: dict) -> bool:
    backends = BackendSet.from_settings(settings)
    try:
        await PublishDispatcher(backends).publish(channel, envelope)
    except PublishError as e:
        click.secho(f"Failed to publish message: {e}", fg="red", err=True)
        return False
    finally:
        await backends.aclose()
    click.secho(f"Published to {channel} on {len(backends)} backend(s)", fg="green")
    return True


# ---------------------------------------------------------------------------
# wsrelay check
# ---------------------------------------------------------------------------


@main.command()
@config_option
def check(config_file: Optional[str]):
    """PING every configured Redis backend."""
    settings = _settings(config_file)
    status = asyncio.run(_check_impl(settings))

    for name, result in status.items():
        color = "green" if result == "ok" else "red"
        click.echo(f"  {name.ljust(30)} {click.style(result, fg=color)}")

    if any(result != "ok" for result in status.values()):
        sys.exit(1)


async def _check_impl(settings: Settings) -> dict[str, str]:
    backends = BackendSet.from_settings(settings)
    try:
        return await backends.health()
    finally:
        await backends.aclose()


if __name__ == "__main__":
    main()
