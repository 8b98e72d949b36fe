"""Bidirectional JSON-RPC peer over a pair of asyncio byte streams.

Either side may issue requests. Outbound requests are correlated with their
responses by id; inbound requests are dispatched to ``on_request`` in their
own task, so a slow handler never stalls the read loop. Inbound
notifications are delivered to ``on_notification`` in arrival order.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Awaitable, Callable

from acpvisor.infra.rpc.protocol import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    ConnectionClosedError,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    Message,
    RpcError,
    decode,
    encode,
    make_error,
)

logger = logging.getLogger(__name__)

RequestHandler = Callable[[str, dict], Awaitable[Any]]
NotificationHandler = Callable[[str, dict], Awaitable[None]]

# Stream reader limit for peers that carry whole file contents in one line
STREAM_LIMIT = 16 * 1024 * 1024


async def _method_not_found(method: str, params: dict) -> Any:
    raise RpcError.method_not_found(method)


async def _ignore_notification(method: str, params: dict) -> None:
    return None


class JsonRpcConnection:
    """One JSON-RPC 2.0 conversation with a peer."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        on_request: RequestHandler | None = None,
        on_notification: NotificationHandler | None = None,
        name: str = "peer",
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._on_request = on_request or _method_not_found
        self._on_notification = on_notification or _ignore_notification
        self._name = name
        self._id_counter = itertools.count(1)
        self._pending: dict[int | str, asyncio.Future] = {}
        self._handler_tasks: set[asyncio.Task] = set()
        self._write_lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def serve(self) -> None:
        """Read and dispatch messages until the peer closes its stream."""
        try:
            while True:
                try:
                    line = await self._reader.readline()
                except ValueError:
                    logger.warning("%s: oversized message dropped", self._name)
                    continue
                if not line:
                    break  # Peer closed
                if not line.strip():
                    continue
                await self._dispatch_line(line)
        except (ConnectionResetError, BrokenPipeError):
            logger.debug("%s: connection reset", self._name)
        finally:
            self._closed = True
            self._fail_pending(ConnectionClosedError())
            logger.debug("%s: connection closed", self._name)

    async def _dispatch_line(self, line: bytes) -> None:
        try:
            msg = decode(line)
        except ValueError:
            logger.warning("%s: skipping unparseable message: %.200r", self._name, line)
            return

        if isinstance(msg, JsonRpcResponse):
            self._resolve(msg)
        elif isinstance(msg, JsonRpcRequest):
            task = asyncio.create_task(self._handle_request(msg))
            self._handler_tasks.add(task)
            task.add_done_callback(self._handler_tasks.discard)
        elif isinstance(msg, JsonRpcNotification):
            try:
                await self._on_notification(msg.method, msg.params)
            except Exception:
                logger.exception("%s: error handling notification %s", self._name, msg.method)

    def _resolve(self, msg: JsonRpcResponse) -> None:
        future = self._pending.pop(msg.id, None) if msg.id is not None else None
        if future is None:
            logger.warning("%s: response for unknown request id %r", self._name, msg.id)
            return
        if future.done():
            return
        if msg.is_error:
            future.set_exception(RpcError.from_dict(msg.error or {}))
        else:
            future.set_result(msg.result)

    async def _handle_request(self, msg: JsonRpcRequest) -> None:
        logger.debug("%s -> host: %s (id=%s)", self._name, msg.method, msg.id)
        if not isinstance(msg.params, dict):
            await self._send_quietly(
                make_error(msg.id, INVALID_REQUEST, "Invalid request", "params must be an object")
            )
            return
        try:
            result = await self._on_request(msg.method, msg.params)
            resp = JsonRpcResponse(id=msg.id, result=result)
        except RpcError as e:
            logger.debug("%s: %s failed: %s", self._name, msg.method, e)
            resp = JsonRpcResponse(id=msg.id, error=e.to_dict())
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("%s: error dispatching %s", self._name, msg.method)
            resp = make_error(msg.id, INTERNAL_ERROR, "Internal error", str(e))
        await self._send_quietly(resp)

    async def request(self, method: str, params: dict | None = None) -> Any:
        """Send a request and wait for its result.

        Raises RpcError if the peer answers with an error, and
        ConnectionClosedError if the connection drops first.
        """
        if self._closed:
            raise ConnectionClosedError()

        req_id = next(self._id_counter)
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[req_id] = future
        logger.debug("host -> %s: %s (id=%s)", self._name, method, req_id)
        try:
            await self._send(JsonRpcRequest(method=method, params=params or {}, id=req_id))
        except (ConnectionError, OSError) as e:
            self._pending.pop(req_id, None)
            raise ConnectionClosedError(str(e)) from e

        try:
            return await future
        finally:
            self._pending.pop(req_id, None)

    async def notify(self, method: str, params: dict | None = None) -> None:
        """Send a notification; delivery failures are swallowed."""
        await self._send_quietly(JsonRpcNotification(method=method, params=params or {}))

    async def _send(self, msg: Message) -> None:
        async with self._write_lock:
            self._writer.write(encode(msg))
            await self._writer.drain()

    async def _send_quietly(self, msg: Message) -> None:
        try:
            await self._send(msg)
        except (ConnectionError, OSError, RuntimeError):
            logger.debug("%s: dropped outbound message, peer gone", self._name)

    def _fail_pending(self, error: RpcError) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(error)

    async def close(self) -> None:
        """Cancel in-flight handlers, fail pending requests and close the writer."""
        self._closed = True
        for task in list(self._handler_tasks):
            task.cancel()
        self._fail_pending(ConnectionClosedError())
        try:
            self._writer.close()
            await self._writer.wait_closed()
        except (ConnectionError, OSError, RuntimeError):
            pass
