"""Agent launch specifications."""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class McpServerSpec:
    """An auxiliary stdio server the agent is told about at session start."""

    name: str
    command: str
    args: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AgentSpec:
    """Specification for launching an ACP agent subprocess."""

    id: str
    label: str
    command: str
    args: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)
    settings: dict[str, Any] = field(default_factory=dict)
    mcp_servers: tuple[McpServerSpec, ...] = ()

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("AgentSpec must have an id")
        if not self.command:
            raise ValueError(f"AgentSpec {self.id!r} must have a command")

    @property
    def full_command(self) -> str:
        """Return the full command string, for display only."""
        parts = [self.command, *self.args]
        return " ".join(shlex.quote(p) for p in parts)

    def summary(self) -> AgentSummary:
        return AgentSummary(id=self.id, label=self.label)


@dataclass(frozen=True)
class AgentSummary:
    """What the UI needs to list an agent."""

    id: str
    label: str

    def to_dict(self) -> dict:
        return {"id": self.id, "label": self.label}


@dataclass(frozen=True)
class AgentsConfig:
    """The parsed agents file."""

    agents: tuple[AgentSpec, ...] = ()

    def find(self, agent_id: str) -> AgentSpec | None:
        for agent in self.agents:
            if agent.id == agent_id:
                return agent
        return None

    def summaries(self) -> list[AgentSummary]:
        return [agent.summary() for agent in self.agents]
