"""Terminal domain models."""

from __future__ import annotations

from dataclasses import dataclass

from acp import schema


@dataclass(frozen=True)
class TerminalExitStatus:
    """How an agent-spawned terminal command ended.

    ``signal`` is set only when the process was killed by a signal, as the
    decimal signal number.
    """

    exit_code: int | None = None
    signal: str | None = None

    @classmethod
    def from_returncode(cls, returncode: int) -> TerminalExitStatus:
        # asyncio reports death-by-signal as a negative return code
        if returncode < 0:
            return cls(exit_code=None, signal=str(-returncode))
        return cls(exit_code=returncode)

    def to_acp(self) -> schema.TerminalExitStatus:
        return schema.TerminalExitStatus(exit_code=self.exit_code, signal=self.signal)
