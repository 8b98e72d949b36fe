"""RPC method registry: maps control-socket method names to AppContext operations."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from acpvisor.errors import ConfigError, SessionError
from acpvisor.infra.rpc.protocol import INTERNAL_ERROR, RpcError

if TYPE_CHECKING:
    from acpvisor.context import AppContext

logger = logging.getLogger(__name__)


class MethodRegistry:
    """Dispatch table mapping RPC method names to engine operations."""

    def __init__(self, ctx: AppContext) -> None:
        self._ctx = ctx
        self._methods: dict[str, Any] = {}
        self._register_all()

    def _register_all(self) -> None:
        """Register all RPC methods."""
        # Server
        self._methods["server.ping"] = self._server_ping
        self._methods["server.status"] = self._server_status

        # ACP engine
        self._methods["acp.list_agents"] = self._list_agents
        self._methods["acp.reload_config"] = self._reload_config
        self._methods["acp.start_session"] = self._start_session
        self._methods["acp.stop_session"] = self._stop_session
        self._methods["acp.send_prompt"] = self._send_prompt
        self._methods["acp.set_mode"] = self._set_mode
        self._methods["acp.resolve_permission"] = self._resolve_permission

    @staticmethod
    def _validate_str(params: dict, key: str, required: bool = True) -> None:
        """Validate that a string param exists and is non-empty."""
        val = params.get(key)
        if required and (val is None or not isinstance(val, str) or not val.strip()):
            raise RpcError.invalid_params(f"Missing or empty required parameter: {key}")
        if not required and val is not None and not isinstance(val, str):
            raise RpcError.invalid_params(f"{key} must be a string")

    async def dispatch(self, method: str, params: dict) -> Any:
        """Dispatch an RPC method call. Returns serializable result."""
        handler = self._methods.get(method)
        if handler is None:
            raise RpcError.method_not_found(method)
        try:
            return await handler(params)
        except (SessionError, ConfigError) as e:
            raise RpcError(INTERNAL_ERROR, str(e)) from e

    # --- Server ---

    async def _server_ping(self, params: dict) -> str:
        return "pong"

    async def _server_status(self, params: dict) -> dict:
        manager = self._ctx.manager
        session = manager.session
        return {
            "status": "running",
            "config_loaded": manager.loaded,
            "agents_config": str(self._ctx.agents_config_path),
            "session_state": manager.state.value,
            "session": session.info().to_dict() if session else None,
        }

    # --- ACP ---

    async def _list_agents(self, params: dict) -> list[dict]:
        return [a.to_dict() for a in await self._ctx.list_agents()]

    async def _reload_config(self, params: dict) -> list[dict]:
        return [a.to_dict() for a in await self._ctx.reload_config()]

    async def _start_session(self, params: dict) -> dict:
        self._validate_str(params, "agent_id")
        self._validate_str(params, "root_dir")
        info = await self._ctx.start_session(params["agent_id"], params["root_dir"])
        return info.to_dict()

    async def _stop_session(self, params: dict) -> None:
        await self._ctx.stop_session()

    async def _send_prompt(self, params: dict) -> None:
        self._validate_str(params, "text")
        await self._ctx.send_prompt(params["text"])

    async def _set_mode(self, params: dict) -> None:
        self._validate_str(params, "mode_id")
        await self._ctx.set_mode(params["mode_id"])

    async def _resolve_permission(self, params: dict) -> None:
        self._validate_str(params, "request_id")
        self._validate_str(params, "option_id", required=False)
        await self._ctx.resolve_permission(params["request_id"], params.get("option_id"))
