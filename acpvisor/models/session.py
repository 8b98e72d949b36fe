"""Session domain models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from acp import schema


class SessionState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class SessionMode:
    """A mode the agent advertises (e.g. "ask", "code")."""

    id: str
    name: str
    description: str = ""

    def to_dict(self) -> dict:
        d = {"id": self.id, "name": self.name}
        if self.description:
            d["description"] = self.description
        return d

    @classmethod
    def from_acp(cls, mode: schema.SessionMode) -> SessionMode:
        return cls(id=mode.id, name=mode.name or mode.id, description=mode.description or "")


@dataclass(frozen=True)
class ModeSummary:
    """Current mode plus the modes the agent offers."""

    current_mode_id: str
    available_modes: tuple[SessionMode, ...] = ()

    def with_current(self, mode_id: str) -> ModeSummary:
        return ModeSummary(current_mode_id=mode_id, available_modes=self.available_modes)

    def to_dict(self) -> dict:
        return {
            "current_mode_id": self.current_mode_id,
            "available_modes": [m.to_dict() for m in self.available_modes],
        }

    @classmethod
    def from_acp(cls, state: schema.SessionModeState | None) -> ModeSummary | None:
        if state is None:
            return None
        return cls(
            current_mode_id=state.current_mode_id,
            available_modes=tuple(SessionMode.from_acp(m) for m in state.available_modes),
        )


@dataclass(frozen=True)
class SessionInfo:
    """Returned to callers of start_session."""

    agent_id: str
    session_id: str
    modes: ModeSummary | None = None

    def to_dict(self) -> dict:
        return {
            "agent_id": self.agent_id,
            "session_id": self.session_id,
            "modes": self.modes.to_dict() if self.modes else None,
        }
