"""AppContext: wires config, the event bus and the agent manager together."""

from __future__ import annotations

import logging
from pathlib import Path

from acpvisor.config import AppConfig, load_agents_config, load_config
from acpvisor.errors import ConfigError, SessionError
from acpvisor.models.agent import AgentSummary
from acpvisor.models.session import SessionInfo
from acpvisor.services.agent_manager import AgentManager
from acpvisor.services.event_bus import EventBus

logger = logging.getLogger(__name__)


class AppContext:
    """Central wiring and the operation set offered to the surrounding app.

    Call ``initialize()`` to load the agents file. A missing or invalid file
    is logged, not raised: the host keeps running and every operation
    reports "ACP configuration not loaded" until ``reload_config`` succeeds.
    """

    def __init__(self, config: AppConfig | None = None, config_path: Path | None = None) -> None:
        self.config = config or load_config(config_path)
        self.events = EventBus()
        self.manager = AgentManager(self.events.emit, session_config=self.config.session)

    @property
    def agents_config_path(self) -> Path:
        return self.config.resolved_agents_config

    async def initialize(self) -> None:
        try:
            await self.reload_config()
        except ConfigError as e:
            logger.error("Agent config not loaded: %s", e)
        logger.info("AppContext initialized")

    async def close(self) -> None:
        await self.manager.shutdown()
        logger.info("AppContext closed")

    # --- Operations ---

    async def list_agents(self) -> list[AgentSummary]:
        return self.manager.agents()

    async def reload_config(self) -> list[AgentSummary]:
        if self.manager.session_active:
            raise SessionError("cannot reload config while ACP session is active")
        config = load_agents_config(self.agents_config_path)
        return await self.manager.reload(config)

    async def start_session(self, agent_id: str, root_dir: str | Path) -> SessionInfo:
        return await self.manager.start_session(agent_id, root_dir)

    async def stop_session(self) -> None:
        await self.manager.stop_session()

    async def send_prompt(self, text: str) -> None:
        await self.manager.send_prompt(text)

    async def set_mode(self, mode_id: str) -> None:
        await self.manager.set_mode(mode_id)

    async def resolve_permission(self, request_id: str, option_id: str | None = None) -> None:
        await self.manager.resolve_permission(request_id, option_id)
