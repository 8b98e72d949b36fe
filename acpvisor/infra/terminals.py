"""Agent-initiated terminals: bounded output buffers and the per-session registry."""

from __future__ import annotations

import asyncio
import codecs
import itertools
import logging
from dataclasses import dataclass, field

from acpvisor.infra.subprocess_mgr import kill_quietly
from acpvisor.models.terminal import TerminalExitStatus

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096

# Terminal ids are unique for the life of the host process
_terminal_ids = itertools.count(1)


def next_terminal_id() -> str:
    return f"term-{next(_terminal_ids)}"


class TerminalOutputBuffer:
    """Append-only text buffer that keeps at most ``limit`` UTF-8 bytes.

    When the limit is exceeded the oldest output is dropped, never splitting
    a multi-byte character, and ``truncated`` latches to True. All mutation
    happens on the event loop thread and ``append`` has no await points, so
    readers always see a whole update.
    """

    def __init__(self, limit: int | None = None) -> None:
        if limit is not None and limit < 0:
            raise ValueError("output byte limit must be non-negative")
        self._limit = limit
        self._data = bytearray()
        self._truncated = False

    @property
    def truncated(self) -> bool:
        return self._truncated

    def append(self, chunk: str) -> None:
        if not chunk:
            return
        self._data += chunk.encode("utf-8")
        if self._limit is None or len(self._data) <= self._limit:
            return

        self._truncated = True
        start = len(self._data) - self._limit
        # Skip UTF-8 continuation bytes (10xxxxxx) to land on a char boundary
        while start < len(self._data) and (self._data[start] & 0xC0) == 0x80:
            start += 1
        del self._data[:start]

    def snapshot(self) -> tuple[str, bool]:
        """Return a copy of the text and the truncated flag."""
        return self._data.decode("utf-8"), self._truncated


@dataclass
class TerminalEntry:
    """One command the agent asked the host to run."""

    id: str
    process: asyncio.subprocess.Process
    buffer: TerminalOutputBuffer
    command: str = ""
    exit_status: TerminalExitStatus | None = None
    pumps: list[asyncio.Task] = field(default_factory=list)

    def start_pumps(self) -> None:
        """Start one reader task per captured output stream."""
        for stream in (self.process.stdout, self.process.stderr):
            if stream is not None:
                self.pumps.append(asyncio.create_task(pump_output(stream, self.buffer)))

    def poll(self) -> TerminalExitStatus | None:
        """Non-blocking exit check; caches the status once the child is gone."""
        if self.exit_status is None and self.process.returncode is not None:
            self.exit_status = TerminalExitStatus.from_returncode(self.process.returncode)
        return self.exit_status

    async def wait(self) -> TerminalExitStatus:
        """Block until the child exits and its output has been drained."""
        if self.exit_status is not None:
            return self.exit_status
        returncode = await self.process.wait()
        if self.pumps:
            await asyncio.gather(*self.pumps, return_exceptions=True)
        if self.exit_status is None:
            self.exit_status = TerminalExitStatus.from_returncode(returncode)
        return self.exit_status

    def kill(self) -> None:
        if kill_quietly(self.process):
            logger.debug("Killed terminal %s (pid %s)", self.id, self.process.pid)

    def discard(self) -> None:
        """Kill the child and stop reading from it."""
        self.kill()
        for task in self.pumps:
            if not task.done():
                task.cancel()


async def pump_output(stream: asyncio.StreamReader, buffer: TerminalOutputBuffer) -> None:
    """Copy a child's output stream into ``buffer`` until EOF.

    Invalid byte sequences are replaced rather than failing, and a
    multi-byte character split across reads is decoded whole.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    try:
        while True:
            data = await stream.read(READ_CHUNK_SIZE)
            if not data:
                break
            buffer.append(decoder.decode(data))
    except (ConnectionError, OSError):
        logger.debug("Terminal output stream closed with error", exc_info=True)
    buffer.append(decoder.decode(b"", final=True))


class TerminalRegistry:
    """Terminal id -> entry map for one session.

    Lookups and mutations never await, so no entry is observed half-inserted.
    """

    def __init__(self) -> None:
        self._entries: dict[str, TerminalEntry] = {}

    def insert(self, entry: TerminalEntry) -> None:
        self._entries[entry.id] = entry

    def get(self, terminal_id: str) -> TerminalEntry | None:
        return self._entries.get(terminal_id)

    def remove(self, terminal_id: str) -> TerminalEntry | None:
        return self._entries.pop(terminal_id, None)

    def discard_all(self) -> int:
        """Kill every registered child and empty the registry."""
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            entry.discard()
        return len(entries)
