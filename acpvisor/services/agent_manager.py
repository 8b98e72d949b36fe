"""Agent registry and the single session slot."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from acpvisor.config import SessionConfig
from acpvisor.errors import SessionError
from acpvisor.models.agent import AgentsConfig, AgentSpec, AgentSummary
from acpvisor.models.session import SessionInfo, SessionState
from acpvisor.services.capability_handler import EventSink
from acpvisor.services.session_supervisor import AgentSession

logger = logging.getLogger(__name__)


class AgentManager:
    """Holds the launchable agents and at most one live session.

    ``start_session``, ``stop_session`` and ``reload`` are serialized by one
    lock. Prompt and mode commands do not take it, so a stop can interrupt a
    long-running prompt.
    """

    def __init__(
        self,
        emit: EventSink,
        config: AgentsConfig | None = None,
        session_config: SessionConfig | None = None,
    ) -> None:
        self._emit = emit
        self._config = config
        self._session_config = session_config or SessionConfig()
        self._session: AgentSession | None = None
        self._lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._config is not None

    @property
    def session(self) -> AgentSession | None:
        return self._session

    @property
    def session_active(self) -> bool:
        return self._session is not None

    @property
    def state(self) -> SessionState:
        if self._session is None:
            return SessionState.IDLE
        return self._session.state

    def _require_config(self) -> AgentsConfig:
        if self._config is None:
            raise SessionError("ACP configuration not loaded")
        return self._config

    def _require_session(self) -> AgentSession:
        if self._session is None:
            raise SessionError("ACP session not started")
        return self._session

    def agents(self) -> list[AgentSummary]:
        return self._require_config().summaries()

    def find_agent(self, agent_id: str) -> AgentSpec | None:
        return self._require_config().find(agent_id)

    async def reload(self, config: AgentsConfig) -> list[AgentSummary]:
        """Swap in a freshly loaded agents config."""
        async with self._lock:
            if self._session is not None:
                raise SessionError("cannot reload config while ACP session is active")
            self._config = config
        return self.agents()

    async def start_session(self, agent_id: str, root_dir: str | Path) -> SessionInfo:
        async with self._lock:
            if self._session is not None:
                raise SessionError("ACP session already active")

            config = self._require_config()
            try:
                root = Path(root_dir).expanduser().resolve(strict=True)
            except OSError as e:
                raise SessionError(f"invalid root dir: {e}") from e
            if not root.is_dir():
                raise SessionError(f"invalid root dir: {root} is not a directory")

            agent = config.find(agent_id)
            if agent is None:
                raise SessionError(f"unknown agent id: {agent_id}")

            session = await AgentSession.start(
                agent,
                root,
                self._emit,
                queue_size=self._session_config.command_queue_size,
                stop_grace=self._session_config.stop_grace_seconds,
            )
            self._session = session
            return session.info()

    async def stop_session(self) -> None:
        async with self._lock:
            session, self._session = self._session, None
            if session is not None:
                await session.stop()

    async def send_prompt(self, text: str) -> None:
        await self._require_session().send_prompt(text)

    async def set_mode(self, mode_id: str) -> None:
        await self._require_session().set_mode(mode_id)

    async def resolve_permission(self, request_id: str, option_id: str | None = None) -> None:
        self._require_session().resolve_permission(request_id, option_id)

    async def shutdown(self) -> None:
        """Tear down any live session; used when the host exits."""
        await self.stop_session()
