"""CLI handlers for config commands."""

from __future__ import annotations

import click

from acpvisor.config import DEFAULT_CONFIG_PATH, init_config, load_agents_config, load_config
from acpvisor.errors import ConfigError


@click.group("config")
def config_group():
    """Manage configuration."""
    pass


@config_group.command("init")
def config_init():
    """Create default configuration file."""
    path = init_config()
    click.echo(f"Configuration created at: {path}")


@config_group.command("show")
def config_show():
    """Show current configuration."""
    config = load_config()
    click.echo(f"Config file: {config.config_path}")
    click.echo(f"  Agents file: {config.resolved_agents_config}")
    click.echo(f"  Log level: {config.log_level}")
    click.echo(f"  Command queue size: {config.session.command_queue_size}")
    click.echo(f"  Stop grace: {config.session.stop_grace_seconds}s")
    click.echo(f"  Server socket: {config.server.resolved_socket_path}")
    click.echo(f"  Server PID file: {config.server.resolved_pid_file}")

    try:
        agents = load_agents_config(config.resolved_agents_config)
    except ConfigError as e:
        click.echo(f"\n  Agents: not loaded ({e})")
        return
    click.echo("\n  Agents:")
    for agent in agents.agents:
        click.echo(f"    {agent.id}: {agent.full_command}")
        for server in agent.mcp_servers:
            click.echo(f"      mcp {server.name}: {server.command}")


@config_group.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str):
    """Set a configuration value.

    Modifies the TOML config file. Key uses dot notation, e.g.:
    general.agents_config, session.command_queue_size, server.socket_path
    """
    import tomli_w

    path = DEFAULT_CONFIG_PATH
    if not path.exists():
        click.echo("No config file found. Run 'acpvisor config init' first.", err=True)
        return

    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore[no-redef]

    with open(path, "rb") as f:
        data = tomllib.load(f)

    # Navigate dot-separated key
    parts = key.split(".")
    target = data
    for part in parts[:-1]:
        if part not in target:
            target[part] = {}
        target = target[part]

    final_key = parts[-1]
    if value.lower() in ("true", "false"):
        target[final_key] = value.lower() == "true"
    elif value.isdigit():
        target[final_key] = int(value)
    else:
        try:
            target[final_key] = float(value)
        except ValueError:
            target[final_key] = value

    with open(path, "wb") as f:
        tomli_w.dump(data, f)

    click.echo(f"Set {key} = {value}")
