"""Configuration loading: host settings (TOML + env overlay) and the agents file."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]

from acpvisor.errors import ConfigError
from acpvisor.models.agent import AgentsConfig, AgentSpec, McpServerSpec

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "acpvisor"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.toml"
DEFAULT_AGENT_CONFIG_PATH = Path(".acp") / "agents.json"
SUPPORTED_AGENTS_VERSION = 1


def _default_socket_path() -> str:
    """Return default socket path using XDG_RUNTIME_DIR or /tmp fallback."""
    runtime = os.environ.get("XDG_RUNTIME_DIR")
    if runtime:
        return str(Path(runtime) / "acpvisor.sock")
    return f"/tmp/acpvisor-{os.getuid()}.sock"


def _default_pid_path() -> str:
    """Return default PID file path."""
    runtime = os.environ.get("XDG_RUNTIME_DIR")
    if runtime:
        return str(Path(runtime) / "acpvisor.pid")
    return f"/tmp/acpvisor-{os.getuid()}.pid"


def default_agents_config_path(cwd: Path | None = None) -> Path:
    """Locate .acp/agents.json in the working directory or its parent."""
    cwd = cwd or Path.cwd()
    direct = cwd / DEFAULT_AGENT_CONFIG_PATH
    if direct.exists():
        return direct
    fallback = cwd.parent / DEFAULT_AGENT_CONFIG_PATH
    if fallback.exists():
        return fallback
    return direct


DEFAULT_CONFIG_TOML = """\
[general]
# Empty means .acp/agents.json in the working directory (or its parent)
agents_config = ""
log_level = "WARNING"

[session]
command_queue_size = 16
stop_grace_seconds = 5.0

[server]
# socket_path and pid_file default to XDG_RUNTIME_DIR or /tmp
"""


@dataclass
class SessionConfig:
    command_queue_size: int = 16
    stop_grace_seconds: float = 5.0


@dataclass
class ServerConfig:
    socket_path: str = ""
    pid_file: str = ""

    @property
    def resolved_socket_path(self) -> str:
        return self.socket_path or _default_socket_path()

    @property
    def resolved_pid_file(self) -> str:
        return self.pid_file or _default_pid_path()


@dataclass
class AppConfig:
    agents_config: str = ""
    log_level: str = "WARNING"
    session: SessionConfig = field(default_factory=SessionConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    config_path: Path = DEFAULT_CONFIG_PATH

    @property
    def resolved_agents_config(self) -> Path:
        if self.agents_config:
            return Path(self.agents_config).expanduser()
        return default_agents_config_path()


def _env_overlay(config: AppConfig) -> None:
    """Override config values with environment variables where applicable."""
    if path := os.environ.get("ACPVISOR_AGENTS_CONFIG"):
        config.agents_config = path
    if level := os.environ.get("ACPVISOR_LOG_LEVEL"):
        config.log_level = level.upper()
    if socket_path := os.environ.get("ACPVISOR_SOCKET"):
        config.server.socket_path = socket_path


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load host settings from TOML with env var overlay."""
    path = config_path or DEFAULT_CONFIG_PATH

    try:
        if path.exists():
            with open(path, "rb") as f:
                raw = tomllib.load(f)
        else:
            raw = tomllib.loads(DEFAULT_CONFIG_TOML)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"failed to parse config {path}: {e}") from e

    general = raw.get("general", {})
    session_raw = raw.get("session", {})
    server_raw = raw.get("server", {})

    config = AppConfig(
        agents_config=general.get("agents_config", ""),
        log_level=str(general.get("log_level", "WARNING")).upper(),
        session=SessionConfig(
            command_queue_size=int(session_raw.get("command_queue_size", 16)),
            stop_grace_seconds=float(session_raw.get("stop_grace_seconds", 5.0)),
        ),
        server=ServerConfig(
            socket_path=server_raw.get("socket_path", ""),
            pid_file=server_raw.get("pid_file", ""),
        ),
        config_path=path,
    )

    _env_overlay(config)
    return config


def init_config(config_path: Path | None = None) -> Path:
    """Create default config file."""
    path = config_path or DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG_TOML)
    return path


# --- Agents file ---


def _str_map(data: object, what: str) -> dict[str, str]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{what} must be an object")
    return {str(k): str(v) for k, v in data.items()}


def _str_list(data: object, what: str) -> tuple[str, ...]:
    if data is None:
        return ()
    if not isinstance(data, list):
        raise ConfigError(f"{what} must be a list")
    return tuple(str(a) for a in data)


def _parse_mcp_server(name: str, data: object, agent_id: str) -> McpServerSpec:
    where = f"agent {agent_id!r} mcp server {name!r}"
    if not isinstance(data, dict) or not isinstance(data.get("command"), str):
        raise ConfigError(f"{where} must have a command")
    return McpServerSpec(
        name=name,
        command=data["command"],
        args=_str_list(data.get("args"), f"{where} args"),
        env=_str_map(data.get("env"), f"{where} env"),
    )


def _parse_agent(agent_id: str, data: object) -> AgentSpec:
    if not isinstance(data, dict):
        raise ConfigError(f"agent {agent_id!r} must be an object")
    command = data.get("command")
    if not isinstance(command, str) or not command:
        raise ConfigError(f"agent {agent_id!r} must have a command")
    servers = data.get("mcp_servers") or {}
    if not isinstance(servers, dict):
        raise ConfigError(f"agent {agent_id!r} mcp_servers must be an object")
    settings = data.get("settings") or {}
    if not isinstance(settings, dict):
        raise ConfigError(f"agent {agent_id!r} settings must be an object")
    return AgentSpec(
        id=agent_id,
        label=data.get("label") or agent_id,
        command=command,
        args=_str_list(data.get("args"), f"agent {agent_id!r} args"),
        env=_str_map(data.get("env"), f"agent {agent_id!r} env"),
        settings=dict(settings),
        mcp_servers=tuple(
            _parse_mcp_server(name, spec, agent_id) for name, spec in sorted(servers.items())
        ),
    )


def parse_agents_config(raw: object) -> AgentsConfig:
    """Validate an already-parsed agents document."""
    if not isinstance(raw, dict):
        raise ConfigError("agent config must be an object")
    version = raw.get("version")
    if version != SUPPORTED_AGENTS_VERSION:
        raise ConfigError(
            f"unsupported agent config version {version} (expected {SUPPORTED_AGENTS_VERSION})"
        )
    agents = raw.get("agents")
    if not isinstance(agents, dict):
        raise ConfigError("agent config must contain an agents object")
    return AgentsConfig(
        agents=tuple(_parse_agent(agent_id, data) for agent_id, data in sorted(agents.items()))
    )


def load_agents_config(path: Path) -> AgentsConfig:
    """Read and validate the agents file at ``path``."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"failed to read agent config {path}: {e}") from e
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"failed to parse agent config {path}: {e}") from e
    try:
        config = parse_agents_config(raw)
    except ConfigError as e:
        raise ConfigError(f"{path}: {e}") from e
    logger.info("Loaded %d agent(s) from %s", len(config.agents), path)
    return config
