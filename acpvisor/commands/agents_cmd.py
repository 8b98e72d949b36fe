"""CLI handlers for agent listing."""

from __future__ import annotations

import click

from acpvisor.commands._helpers import _run, fail, get_client


@click.group("agents")
def agents_group():
    """Inspect configured agents."""
    pass


@agents_group.command("list")
def agents_list():
    """List agents known to the running server."""

    async def _list():
        client = await get_client()
        try:
            agents = await client.call("acp.list_agents")
        except Exception as e:
            fail(e)
            return
        finally:
            await client.close()
        if not agents:
            click.echo("No agents configured.")
            return
        for agent in agents:
            click.echo(f"  {agent['id']} - {agent['label']}")

    _run(_list())


@agents_group.command("reload")
def agents_reload():
    """Re-read the agents file on the running server."""

    async def _reload():
        client = await get_client()
        try:
            agents = await client.call("acp.reload_config")
        except Exception as e:
            fail(e)
            return
        finally:
            await client.close()
        click.echo(f"Loaded {len(agents)} agent(s)")

    _run(_reload())
