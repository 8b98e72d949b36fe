"""One live ACP session: the agent process, its connection and the command loop.

All agent-directed commands go through a bounded queue consumed by a single
worker task, so prompts and mode changes from concurrent callers reach the
agent one at a time in arrival order. Each command carries a future the
worker resolves when the agent answers. Inbound capability requests are
served concurrently by the SDK connection and never wait on the queue.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable

from acp import ClientSideConnection

from acpvisor.errors import AgentSpawnError, SessionError
from acpvisor.infra.acp.schema import (
    PROTOCOL_VERSION,
    client_capabilities,
    client_info,
    mcp_server,
    prompt_blocks,
)
from acpvisor.infra.subprocess_mgr import spawn_agent, terminate
from acpvisor.models.agent import AgentSpec
from acpvisor.models.events import UiEvent
from acpvisor.models.session import ModeSummary, SessionInfo, SessionState
from acpvisor.services.capability_handler import CapabilityHandler, EventSink

logger = logging.getLogger(__name__)


class AgentExited(ConnectionError):
    """The agent process ended while a request was outstanding."""

    def __init__(self, returncode: int | None) -> None:
        super().__init__(f"agent process exited (code {returncode})")


def describe_error(error: BaseException) -> str:
    """Message plus the error's ``data`` detail, if it carries one."""
    data = getattr(error, "data", None)
    if data:
        return f"{error}: {data}"
    return str(error) or type(error).__name__


@dataclass
class PromptCommand:
    text: str
    reply: asyncio.Future


@dataclass
class SetModeCommand:
    mode_id: str
    reply: asyncio.Future


class _Shutdown:
    pass


SHUTDOWN = _Shutdown()

Command = PromptCommand | SetModeCommand | _Shutdown


class AgentSession:
    """A handshake-established conversation with one agent process.

    Create with ``AgentSession.start``; the returned session is ACTIVE.
    """

    def __init__(
        self,
        agent: AgentSpec,
        process: asyncio.subprocess.Process,
        handler: CapabilityHandler,
        emit: EventSink,
        queue_size: int = 16,
        stop_grace: float = 5.0,
    ) -> None:
        self.agent = agent
        self.process = process
        self.handler = handler
        self._emit = emit
        self._stop_grace = stop_grace
        self.connection = ClientSideConnection(
            lambda _agent: handler, process.stdin, process.stdout
        )
        self._exit_watch = asyncio.ensure_future(process.wait())
        self._exit_watch.add_done_callback(self._on_agent_exit)
        self._queue: asyncio.Queue[Command] = asyncio.Queue(maxsize=queue_size)
        self._current: PromptCommand | SetModeCommand | None = None
        self._worker: asyncio.Task | None = None
        self.state = SessionState.STARTING
        self.session_id = ""
        self.modes: ModeSummary | None = None

    @classmethod
    async def start(
        cls,
        agent: AgentSpec,
        root_dir: Path,
        emit: EventSink,
        queue_size: int = 16,
        stop_grace: float = 5.0,
    ) -> AgentSession:
        """Spawn the agent, run the handshake and start the command loop.

        On any failure the child is killed and AgentSpawnError raised.
        """
        handler = CapabilityHandler(root_dir, emit)
        try:
            process = await spawn_agent(agent, handler.root_dir)
        except (OSError, RuntimeError) as e:
            raise AgentSpawnError(agent.id, f"failed to spawn agent: {e}") from e

        session = cls(agent, process, handler, emit, queue_size, stop_grace)
        ready: asyncio.Future = asyncio.get_running_loop().create_future()
        session._worker = asyncio.create_task(session._run(ready))
        try:
            await ready
        except BaseException:
            await session.stop()
            raise
        return session

    def info(self) -> SessionInfo:
        return SessionInfo(agent_id=self.agent.id, session_id=self.session_id, modes=self.modes)

    # --- Worker ---

    async def _run(self, ready: asyncio.Future) -> None:
        try:
            try:
                await self._handshake()
            except AgentSpawnError as e:
                if not ready.done():
                    ready.set_exception(e)
                return
            self.state = SessionState.ACTIVE
            ready.set_result(None)
            logger.info("ACP session %s active (agent %s)", self.session_id, self.agent.id)
            await self._command_loop()
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.exception("ACP session worker failed")
            if not ready.done():
                ready.set_exception(AgentSpawnError(self.agent.id, str(e)))
        finally:
            if not ready.done():
                ready.set_exception(
                    AgentSpawnError(self.agent.id, "failed to establish ACP session")
                )
            self._fail_outstanding()

    async def _call(self, request: Awaitable[Any]) -> Any:
        """Await an agent request, failing with AgentExited if the agent dies first."""
        call = asyncio.ensure_future(request)
        try:
            await asyncio.wait({call, self._exit_watch}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            call.cancel()
            raise
        if not call.done():
            call.cancel()
            raise AgentExited(self.process.returncode)
        return call.result()

    async def _handshake(self) -> None:
        try:
            await self._call(self.connection.initialize(
                protocol_version=PROTOCOL_VERSION,
                client_capabilities=client_capabilities(),
                client_info=client_info(),
            ))
        except Exception as e:
            raise AgentSpawnError(self.agent.id, f"initialize failed: {describe_error(e)}") from e

        try:
            response = await self._call(self.connection.new_session(
                cwd=str(self.handler.root_dir),
                mcp_servers=[mcp_server(server) for server in self.agent.mcp_servers],
            ))
        except Exception as e:
            raise AgentSpawnError(self.agent.id, f"new_session failed: {describe_error(e)}") from e

        if not response.session_id:
            raise AgentSpawnError(self.agent.id, "new_session failed: no session id returned")
        self.session_id = response.session_id
        self.modes = ModeSummary.from_acp(response.modes)

    async def _command_loop(self) -> None:
        while True:
            cmd = await self._queue.get()
            if isinstance(cmd, _Shutdown):
                logger.debug("ACP command loop received shutdown")
                return
            self._current = cmd
            try:
                await self._execute(cmd)
            finally:
                self._current = None

    async def _execute(self, cmd: PromptCommand | SetModeCommand) -> None:
        if isinstance(cmd, PromptCommand):
            request = self.connection.prompt(
                prompt=prompt_blocks(cmd.text), session_id=self.session_id
            )
            failure = "prompt failed"
        else:
            request = self.connection.set_session_mode(
                mode_id=cmd.mode_id, session_id=self.session_id
            )
            failure = "set mode failed"

        try:
            await self._call(request)
        except Exception as e:
            _settle(cmd.reply, error=SessionError(f"{failure}: {describe_error(e)}"))
            return

        if isinstance(cmd, SetModeCommand) and self.modes is not None:
            self.modes = self.modes.with_current(cmd.mode_id)
        _settle(cmd.reply)

    def _fail_outstanding(self) -> None:
        """Fail the in-flight command and everything still queued."""
        pending = [self._current] if self._current else []
        while True:
            try:
                pending.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                break
        for cmd in pending:
            if isinstance(cmd, PromptCommand):
                _settle(cmd.reply, error=SessionError("ACP prompt canceled"))
            elif isinstance(cmd, SetModeCommand):
                _settle(cmd.reply, error=SessionError("ACP set mode canceled"))

    def _on_agent_exit(self, task: asyncio.Future) -> None:
        if self.state == SessionState.ACTIVE:
            logger.warning("Agent %s exited with the session active", self.agent.id)
            self._emit(UiEvent.error(self.session_id, "agent connection closed"))

    # --- Caller API ---

    async def send_prompt(self, text: str) -> None:
        """Send a prompt and wait until the agent finishes the turn."""
        reply = await self._enqueue(lambda fut: PromptCommand(text=text, reply=fut))
        await self._await_reply(reply, "ACP prompt canceled")

    async def set_mode(self, mode_id: str) -> None:
        reply = await self._enqueue(lambda fut: SetModeCommand(mode_id=mode_id, reply=fut))
        await self._await_reply(reply, "ACP set mode canceled")

    async def _enqueue(self, make) -> asyncio.Future:
        if self.state != SessionState.ACTIVE or self._worker is None or self._worker.done():
            raise SessionError("ACP command channel closed")
        reply: asyncio.Future = asyncio.get_running_loop().create_future()
        await self._queue.put(make(reply))
        return reply

    async def _await_reply(self, reply: asyncio.Future, canceled: str) -> None:
        assert self._worker is not None
        await asyncio.wait({reply, self._worker}, return_when=asyncio.FIRST_COMPLETED)
        if not reply.done():
            raise SessionError(canceled)
        reply.result()

    def resolve_permission(self, request_id: str, option_id: str | None = None) -> None:
        self.handler.resolve_permission(request_id, option_id)

    async def stop(self) -> None:
        """Shut the session down. Best-effort and safe to call repeatedly."""
        if self.state in (SessionState.SHUTTING_DOWN, SessionState.TERMINATED):
            return
        self.state = SessionState.SHUTTING_DOWN
        logger.info("Stopping ACP session %s (agent %s)", self.session_id, self.agent.id)

        try:
            self._queue.put_nowait(SHUTDOWN)
        except asyncio.QueueFull:
            pass
        if self._worker is not None:
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)

        try:
            await self.connection.close()
        except (ConnectionError, OSError, RuntimeError):
            logger.debug("Agent connection already closed", exc_info=True)
        self.handler.close()
        await terminate(self.process, self._stop_grace)
        self._exit_watch.cancel()
        await asyncio.gather(self._exit_watch, return_exceptions=True)
        self.state = SessionState.TERMINATED
        logger.info("ACP session %s terminated", self.session_id)


def _settle(reply: asyncio.Future, error: BaseException | None = None) -> None:
    if reply.done():
        return
    if error is not None:
        reply.set_exception(error)
    else:
        reply.set_result(None)
