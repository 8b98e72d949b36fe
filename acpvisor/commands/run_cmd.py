"""CLI handler for running an agent session in-process."""

from __future__ import annotations

import asyncio
import sys

import click

from acpvisor.commands._helpers import _run, fail, format_event
from acpvisor.models.events import UiEvent


@click.command("run")
@click.argument("agent_id")
@click.argument("root_dir", default=".", type=click.Path(exists=True, file_okay=False))
@click.option("--prompt", "-p", "prompts", multiple=True, help="Prompt to send (repeatable)")
@click.option("--mode", "-m", default="", help="Mode to switch to before prompting")
def run_command(agent_id: str, root_dir: str, prompts: tuple[str, ...], mode: str):
    """Run AGENT_ID against ROOT_DIR without the server.

    Sends each --prompt in order; with none, reads one prompt per line from
    stdin until EOF. Agent messages and status updates are printed as they
    arrive.
    """

    def _print_event(event: UiEvent) -> None:
        click.echo(format_event(event.to_dict()))

    async def _session():
        from acpvisor.context import AppContext

        ctx = AppContext()
        ctx.events.add_listener(_print_event)
        try:
            await ctx.reload_config()
            info = await ctx.start_session(agent_id, root_dir)
            click.echo(f"Session {info.session_id} started with {info.agent_id}", err=True)
            if mode:
                await ctx.set_mode(mode)
            if prompts:
                for text in prompts:
                    await ctx.send_prompt(text)
            else:
                while True:
                    line = await asyncio.to_thread(sys.stdin.readline)
                    if not line:
                        break
                    if line.strip():
                        await ctx.send_prompt(line.rstrip("\n"))
        except Exception as e:
            fail(e)
        finally:
            await ctx.close()

    _run(_session())
