"""Click CLI definitions - main entry point."""

from __future__ import annotations

import logging
import sys

import click

from acpvisor.commands.agents_cmd import agents_group
from acpvisor.commands.config_cmd import config_group
from acpvisor.commands.run_cmd import run_command
from acpvisor.commands.server_cmd import server_group
from acpvisor.commands.session_cmd import session_group
from acpvisor.config import load_config


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, debug: bool) -> None:
    """acpvisor - run Agent Client Protocol agents against a project directory."""
    if debug:
        level = logging.DEBUG
    else:
        level = logging.getLevelName(load_config().log_level)
        if not isinstance(level, int):
            level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


cli.add_command(agents_group, "agents")
cli.add_command(config_group, "config")
cli.add_command(server_group, "server")
cli.add_command(session_group, "session")
cli.add_command(run_command, "run")


if __name__ == "__main__":
    cli()
