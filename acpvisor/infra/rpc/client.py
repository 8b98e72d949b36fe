"""Asyncio Unix socket JSON-RPC client for the control server."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from acpvisor.infra.rpc.connection import STREAM_LIMIT, JsonRpcConnection
from acpvisor.infra.rpc.server import EVENT_NOTIFICATION

logger = logging.getLogger(__name__)

EventCallback = Callable[[dict], None]


class RpcClient:
    """Asyncio Unix domain socket JSON-RPC 2.0 client.

    Event notifications pushed by the server are handed to ``on_event``.
    """

    def __init__(self, socket_path: str, on_event: EventCallback | None = None) -> None:
        self._socket_path = socket_path
        self._on_event = on_event
        self._connection: JsonRpcConnection | None = None
        self._serve_task: asyncio.Task | None = None

    @property
    def connected(self) -> bool:
        return self._connection is not None and not self._connection.closed

    async def connect(self) -> None:
        """Connect to the server's Unix socket."""
        reader, writer = await asyncio.open_unix_connection(
            self._socket_path, limit=STREAM_LIMIT
        )
        self._connection = JsonRpcConnection(
            reader, writer, on_notification=self._handle_notification, name="control-server"
        )
        self._serve_task = asyncio.create_task(self._connection.serve())
        logger.debug("Connected to RPC server at %s", self._socket_path)

    async def close(self) -> None:
        """Close the connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None
        if self._serve_task:
            self._serve_task.cancel()
            await asyncio.gather(self._serve_task, return_exceptions=True)
            self._serve_task = None
        logger.debug("RPC client disconnected")

    async def _handle_notification(self, method: str, params: dict) -> None:
        if method == EVENT_NOTIFICATION and self._on_event is not None:
            self._on_event(params)

    async def call(self, method: str, **params: Any) -> Any:
        """Send a JSON-RPC request and return the result.

        Raises RpcError on RPC errors.
        """
        if not self.connected:
            await self.connect()
        assert self._connection is not None
        return await self._connection.request(method, params)
