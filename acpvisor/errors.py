"""Exception types surfaced to callers of the engine."""

from __future__ import annotations


class ConfigError(ValueError):
    """The agents file or host settings could not be used."""


class SessionError(RuntimeError):
    """A session lifecycle operation failed or is not legal right now."""


class AgentSpawnError(SessionError):
    """Failed to launch the agent or complete the handshake."""

    def __init__(self, agent_id: str, reason: str) -> None:
        self.agent_id = agent_id
        self.reason = reason
        super().__init__(reason)
