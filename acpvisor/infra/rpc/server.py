"""Asyncio Unix socket JSON-RPC control server.

Each connected client can call the engine operations and receives every UI
event as an ``event`` notification while it stays connected.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import TYPE_CHECKING

from acpvisor.infra.rpc.connection import STREAM_LIMIT, JsonRpcConnection
from acpvisor.infra.rpc.methods import MethodRegistry

if TYPE_CHECKING:
    from acpvisor.context import AppContext

logger = logging.getLogger(__name__)

EVENT_NOTIFICATION = "event"


class RpcServer:
    """Asyncio Unix domain socket JSON-RPC 2.0 server."""

    def __init__(self, ctx: AppContext, socket_path: str) -> None:
        self._ctx = ctx
        self._socket_path = socket_path
        self._registry = MethodRegistry(ctx)
        self._server: asyncio.Server | None = None

    @property
    def socket_path(self) -> str:
        return self._socket_path

    async def start(self) -> None:
        """Start listening on the Unix socket."""
        # Remove stale socket file
        try:
            os.unlink(self._socket_path)
        except FileNotFoundError:
            pass

        self._server = await asyncio.start_unix_server(
            self._handle_client,
            path=self._socket_path,
            limit=STREAM_LIMIT,
        )
        # Make socket accessible to the user only
        os.chmod(self._socket_path, 0o600)
        logger.info("RPC server listening on %s", self._socket_path)

    async def stop(self) -> None:
        """Stop the server and clean up the socket file."""
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        try:
            os.unlink(self._socket_path)
        except FileNotFoundError:
            pass
        logger.info("RPC server stopped")

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Serve one client: dispatch its requests and forward events to it."""
        connection = JsonRpcConnection(
            reader, writer, on_request=self._registry.dispatch, name="control-client"
        )
        events = self._ctx.events.subscribe()
        forwarder = asyncio.create_task(self._forward_events(connection, events))
        logger.debug("Client connected")

        try:
            await connection.serve()
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Error handling client")
        finally:
            self._ctx.events.unsubscribe(events)
            forwarder.cancel()
            await asyncio.gather(forwarder, return_exceptions=True)
            await connection.close()
            logger.debug("Client disconnected")

    async def _forward_events(self, connection: JsonRpcConnection, events: asyncio.Queue) -> None:
        while True:
            event = await events.get()
            await connection.notify(EVENT_NOTIFICATION, event.to_dict())
