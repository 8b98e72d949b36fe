"""Subprocess manager: agent and terminal spawning, best-effort termination."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from acpvisor.infra.rpc.connection import STREAM_LIMIT
from acpvisor.models.agent import AgentSpec

logger = logging.getLogger(__name__)


def _merged_env(overrides: dict[str, str] | None) -> dict[str, str]:
    env = os.environ.copy()
    if overrides:
        env.update(overrides)
    return env


async def spawn_agent(spec: AgentSpec, cwd: Path) -> asyncio.subprocess.Process:
    """Spawn an agent with piped stdin/stdout.

    stderr stays attached to the host's stderr so agent diagnostics are
    visible without being mistaken for protocol traffic.
    """
    logger.info("Spawning agent %s: %s (cwd=%s)", spec.id, spec.full_command, cwd)
    proc = await asyncio.create_subprocess_exec(
        spec.command,
        *spec.args,
        cwd=str(cwd),
        env=_merged_env(spec.env),
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=None,
        limit=STREAM_LIMIT,
    )
    if proc.stdin is None:
        raise RuntimeError("agent stdin unavailable")
    if proc.stdout is None:
        raise RuntimeError("agent stdout unavailable")
    return proc


async def spawn_terminal(
    command: str,
    args: list[str],
    cwd: Path,
    env: dict[str, str] | None = None,
) -> asyncio.subprocess.Process:
    """Spawn a command on the agent's behalf with all stdio captured."""
    return await asyncio.create_subprocess_exec(
        command,
        *args,
        cwd=str(cwd),
        env=_merged_env(env),
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )


def kill_quietly(proc: asyncio.subprocess.Process) -> bool:
    """Send SIGKILL if the process is still running. Never raises."""
    if proc.returncode is not None:
        return False
    try:
        proc.kill()
        return True
    except ProcessLookupError:
        return False
    except OSError:
        logger.warning("Failed to kill pid %s", proc.pid, exc_info=True)
        return False


async def terminate(proc: asyncio.subprocess.Process, grace: float = 5.0) -> None:
    """Kill a process and reap it, giving up after ``grace`` seconds."""
    kill_quietly(proc)
    try:
        await asyncio.wait_for(proc.wait(), timeout=grace)
    except asyncio.TimeoutError:
        logger.warning("pid %s did not exit within %.1fs after kill", proc.pid, grace)
