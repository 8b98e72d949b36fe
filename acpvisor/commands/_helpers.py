"""CLI helpers for connecting to the control server."""

from __future__ import annotations

import asyncio

import click

from acpvisor.config import load_config
from acpvisor.errors import ConfigError, SessionError
from acpvisor.infra.rpc.client import EventCallback, RpcClient
from acpvisor.infra.rpc.protocol import RpcError


def _run(coro):
    """Run an async function from sync context."""
    return asyncio.run(coro)


def get_socket_path() -> str:
    """Return the socket path from config or default."""
    config = load_config()
    return config.server.resolved_socket_path


def get_pid_path() -> str:
    """Return the PID file path from config or default."""
    config = load_config()
    return config.server.resolved_pid_file


async def get_client(on_event: EventCallback | None = None) -> RpcClient:
    """Create and connect an RpcClient. Exits if the server is not running."""
    client = RpcClient(get_socket_path(), on_event=on_event)
    try:
        await client.connect()
    except (ConnectionRefusedError, FileNotFoundError, OSError) as e:
        raise SystemExit(
            "Server not running. Start with: acpvisor server start"
        ) from e
    return client


def fail(e: Exception) -> None:
    """Report an engine error and exit non-zero."""
    if isinstance(e, (RpcError, SessionError, ConfigError)):
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    raise e


def format_event(event: dict) -> str:
    kind = event.get("type", "")
    content = event.get("content", "")
    if kind == "chat_message":
        return content
    if kind == "error":
        return f"[error] {content}"
    return f"[{content}]"
