"""Answers the requests and notifications an agent sends back to the host.

The handler is the client half of the ACP connection: the SDK routes each
``fs/*``, ``terminal/*`` and ``session/*`` message to the matching method
with validated, typed parameters. Every file path and terminal working
directory passes through the session's PathSandbox. Permission prompts are
answered immediately by a fixed policy: allow once, else allow always, else
the first option, else cancelled.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

from acp import (
    Client,
    CreateTerminalResponse,
    KillTerminalCommandResponse,
    ReadTextFileResponse,
    ReleaseTerminalResponse,
    RequestError,
    RequestPermissionResponse,
    TerminalOutputResponse,
    WaitForTerminalExitResponse,
    WriteTextFileResponse,
)
from acp.schema import EnvVariable, PermissionOption, ToolCallUpdate

from acpvisor.errors import SessionError
from acpvisor.infra.acp.schema import (
    PermissionOptionKind,
    SessionUpdateKind,
    cancelled_outcome,
    selected_outcome,
)
from acpvisor.infra.sandbox import PathSandbox, SandboxViolation
from acpvisor.infra.subprocess_mgr import spawn_terminal
from acpvisor.infra.terminals import (
    TerminalEntry,
    TerminalOutputBuffer,
    TerminalRegistry,
    next_terminal_id,
)
from acpvisor.models.events import UiEvent

logger = logging.getLogger(__name__)

EventSink = Callable[[UiEvent], None]


def choose_permission_option(options: list[PermissionOption]) -> str | None:
    """Pick the option id to answer a permission prompt with, or None to cancel."""
    for kind in (PermissionOptionKind.ALLOW_ONCE, PermissionOptionKind.ALLOW_ALWAYS):
        for option in options:
            if option.kind == kind.value:
                return option.option_id
    if options:
        return options[0].option_id
    return None


def select_lines(content: str, line: int | None, limit: int | None) -> str:
    """Return ``limit`` lines starting at 1-indexed ``line``, joined by newlines.

    Only ``\\n`` ends a line; a ``\\r`` left before it is dropped.
    """
    lines = content.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    lines = [ln[:-1] if ln.endswith("\r") else ln for ln in lines]
    start = max((line or 1) - 1, 0)
    end = None if limit is None else start + max(limit, 0)
    return "\n".join(lines[start:end])


def content_block_text(content: Any) -> str | None:
    """Text to show for a content block, if it has a textual form."""
    kind = getattr(content, "type", None)
    if kind == "text":
        return content.text
    if kind == "resource_link":
        return content.uri
    return None


class CapabilityHandler(Client):
    """Host side of one ACP session: files, terminals, permissions, updates."""

    def __init__(self, root_dir: str | Path, emit: EventSink | None = None) -> None:
        self.sandbox = PathSandbox(root_dir)
        self.terminals = TerminalRegistry()
        self._emit = emit or (lambda event: None)
        self._conn: Any = None

    @property
    def root_dir(self) -> Path:
        return self.sandbox.root

    def on_connect(self, conn: Any) -> None:
        self._conn = conn

    def resolve_permission(self, request_id: str, option_id: str | None = None) -> None:
        """Answer a deferred permission prompt.

        Prompts are answered by policy as they arrive, so there is never an
        outstanding one to resolve.
        """
        raise SessionError(f"no pending permission request: {request_id}")

    def close(self) -> None:
        """Kill every terminal still registered for this session."""
        count = self.terminals.discard_all()
        if count:
            logger.debug("Discarded %d terminal(s) on session close", count)

    # --- Parameter helpers ---

    @staticmethod
    def _require_str(value: str | None, key: str) -> str:
        if not value:
            raise RequestError.invalid_params(f"missing or empty required parameter: {key}")
        return value

    @staticmethod
    def _check_non_negative(value: int | None, key: str) -> int | None:
        if value is not None and value < 0:
            raise RequestError.invalid_params(f"{key} must be a non-negative integer")
        return value

    def _validate_path(self, path: str, allow_missing: bool) -> Path:
        try:
            return self.sandbox.validate(path, allow_missing=allow_missing)
        except SandboxViolation as e:
            raise RequestError.invalid_params(str(e)) from e

    def _lookup_terminal(self, terminal_id: str) -> TerminalEntry:
        entry = self.terminals.get(self._require_str(terminal_id, "terminalId"))
        if entry is None:
            raise RequestError.invalid_params("terminal not found")
        return entry

    # --- Permissions ---

    async def request_permission(
        self,
        options: list[PermissionOption],
        session_id: str,
        tool_call: ToolCallUpdate,
        **kwargs: Any,
    ) -> RequestPermissionResponse:
        option_id = choose_permission_option(options)
        title = tool_call.title or ""
        if option_id is None:
            logger.info("Permission request %r cancelled: no options offered", title)
            return cancelled_outcome()
        logger.info("Permission request %r auto-selected option %s", title, option_id)
        return selected_outcome(option_id)

    # --- Files ---

    async def read_text_file(
        self,
        path: str,
        session_id: str,
        limit: int | None = None,
        line: int | None = None,
        **kwargs: Any,
    ) -> ReadTextFileResponse:
        target = self._validate_path(self._require_str(path, "path"), allow_missing=False)
        line = self._check_non_negative(line, "line")
        limit = self._check_non_negative(limit, "limit")
        try:
            # Bytes, not read_text: newline translation would rewrite \r\n and \r
            content = target.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise RequestError.internal_error(f"failed to read file: {e}") from e

        if line is not None or limit is not None:
            content = select_lines(content, line, limit)
        return ReadTextFileResponse(content=content)

    async def write_text_file(
        self, content: str, path: str, session_id: str, **kwargs: Any
    ) -> WriteTextFileResponse:
        target = self._validate_path(self._require_str(path, "path"), allow_missing=True)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RequestError.internal_error(f"failed to create dirs: {e}") from e
        try:
            target.write_bytes(content.encode("utf-8"))
        except OSError as e:
            raise RequestError.internal_error(f"failed to write file: {e}") from e
        logger.debug("Wrote %d chars to %s", len(content), target)
        return WriteTextFileResponse()

    # --- Terminals ---

    async def create_terminal(
        self,
        command: str,
        session_id: str,
        args: list[str] | None = None,
        cwd: str | None = None,
        env: list[EnvVariable] | None = None,
        output_byte_limit: int | None = None,
        **kwargs: Any,
    ) -> CreateTerminalResponse:
        command = self._require_str(command, "command")
        output_limit = self._check_non_negative(output_byte_limit, "outputByteLimit")
        variables = {item.name: item.value for item in env or []}

        terminal_id = next_terminal_id()
        workdir = self._validate_path(cwd, allow_missing=False) if cwd else self.root_dir

        try:
            process = await spawn_terminal(command, list(args or []), workdir, variables)
        except OSError as e:
            raise RequestError.internal_error(f"failed to spawn terminal: {e}") from e

        entry = TerminalEntry(
            id=terminal_id,
            process=process,
            buffer=TerminalOutputBuffer(output_limit),
            command=command,
        )
        self.terminals.insert(entry)
        entry.start_pumps()
        logger.debug("Created terminal %s: %s (pid %s)", terminal_id, command, process.pid)
        return CreateTerminalResponse(terminal_id=terminal_id)

    async def terminal_output(
        self, session_id: str, terminal_id: str, **kwargs: Any
    ) -> TerminalOutputResponse:
        entry = self._lookup_terminal(terminal_id)
        exit_status = entry.poll()
        output, truncated = entry.buffer.snapshot()
        return TerminalOutputResponse(
            output=output,
            truncated=truncated,
            exit_status=exit_status.to_acp() if exit_status else None,
        )

    async def wait_for_terminal_exit(
        self, session_id: str, terminal_id: str, **kwargs: Any
    ) -> WaitForTerminalExitResponse:
        entry = self._lookup_terminal(terminal_id)
        try:
            exit_status = await entry.wait()
        except OSError as e:
            raise RequestError.internal_error(f"wait failed: {e}") from e
        return WaitForTerminalExitResponse(
            exit_code=exit_status.exit_code, signal=exit_status.signal
        )

    async def kill_terminal(
        self, session_id: str, terminal_id: str, **kwargs: Any
    ) -> KillTerminalCommandResponse:
        self._lookup_terminal(terminal_id).kill()
        return KillTerminalCommandResponse()

    async def release_terminal(
        self, session_id: str, terminal_id: str, **kwargs: Any
    ) -> ReleaseTerminalResponse:
        entry = self.terminals.remove(self._require_str(terminal_id, "terminalId"))
        if entry is not None:
            entry.discard()
            logger.debug("Released terminal %s", terminal_id)
        return ReleaseTerminalResponse()

    # --- Extensions ---

    async def ext_method(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        raise RequestError.method_not_found(f"unsupported ext method _{method}")

    async def ext_notification(self, method: str, params: dict[str, Any]) -> None:
        logger.debug("Ignoring ext notification _%s", method)

    # --- Session updates ---

    async def session_update(self, session_id: str, update: Any, **kwargs: Any) -> None:
        kind = getattr(update, "session_update", None)

        if kind == SessionUpdateKind.AGENT_MESSAGE_CHUNK.value:
            text = content_block_text(update.content)
            if text is not None:
                self._emit(UiEvent.chat(session_id, text))
        elif kind == SessionUpdateKind.TOOL_CALL.value:
            status = update.status or "pending"
            self._emit(UiEvent.status(session_id, f"{update.title} ({status})"))
        elif kind == SessionUpdateKind.TOOL_CALL_UPDATE.value:
            status = update.status or "unchanged"
            self._emit(UiEvent.status(session_id, f"Tool update: {status}"))
        elif kind == SessionUpdateKind.PLAN.value:
            self._emit(UiEvent.status(session_id, f"Plan received: {len(update.entries)} steps"))
