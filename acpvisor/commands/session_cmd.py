"""CLI handlers for session commands on the running server."""

from __future__ import annotations

from pathlib import Path

import click

from acpvisor.commands._helpers import _run, fail, format_event, get_client


@click.group("session")
def session_group():
    """Drive the server's ACP session."""
    pass


@session_group.command("start")
@click.argument("agent_id")
@click.argument("root_dir", default=".", type=click.Path(exists=True, file_okay=False))
def session_start(agent_id: str, root_dir: str):
    """Start a session with AGENT_ID rooted at ROOT_DIR."""

    async def _start():
        client = await get_client()
        try:
            info = await client.call(
                "acp.start_session", agent_id=agent_id, root_dir=str(Path(root_dir).resolve())
            )
        except Exception as e:
            fail(e)
            return
        finally:
            await client.close()
        click.echo(f"Started session: {info['session_id']}")
        click.echo(f"  Agent: {info['agent_id']}")
        modes = info.get("modes")
        if modes:
            names = ", ".join(m["id"] for m in modes["available_modes"])
            click.echo(f"  Mode: {modes['current_mode_id']} (available: {names})")

    _run(_start())


@session_group.command("stop")
def session_stop():
    """Stop the active session."""

    async def _stop():
        client = await get_client()
        try:
            await client.call("acp.stop_session")
        except Exception as e:
            fail(e)
            return
        finally:
            await client.close()
        click.echo("Session stopped")

    _run(_stop())


@session_group.command("status")
def session_status():
    """Show server and session status."""

    async def _status():
        client = await get_client()
        try:
            status = await client.call("server.status")
        except Exception as e:
            fail(e)
            return
        finally:
            await client.close()
        click.echo(f"Agents file: {status['agents_config']} ({'loaded' if status['config_loaded'] else 'not loaded'})")
        click.echo(f"Session: {status['session_state']}")
        session = status.get("session")
        if session:
            click.echo(f"  Id: {session['session_id']}")
            click.echo(f"  Agent: {session['agent_id']}")
            if session.get("modes"):
                click.echo(f"  Mode: {session['modes']['current_mode_id']}")

    _run(_status())


@session_group.command("prompt")
@click.argument("text")
def session_prompt(text: str):
    """Send TEXT as a prompt and stream the agent's reply."""

    def _print_event(event: dict) -> None:
        click.echo(format_event(event))

    async def _prompt():
        client = await get_client(on_event=_print_event)
        try:
            await client.call("acp.send_prompt", text=text)
        except Exception as e:
            fail(e)
        finally:
            await client.close()

    _run(_prompt())


@session_group.command("mode")
@click.argument("mode_id")
def session_mode(mode_id: str):
    """Switch the session to MODE_ID."""

    async def _mode():
        client = await get_client()
        try:
            await client.call("acp.set_mode", mode_id=mode_id)
        except Exception as e:
            fail(e)
            return
        finally:
            await client.close()
        click.echo(f"Mode set: {mode_id}")

    _run(_mode())
