"""Typed ACP payloads the host sends, built on the agent-client-protocol models."""

from __future__ import annotations

from enum import Enum

from acp import PROTOCOL_VERSION, RequestPermissionResponse
from acp.helpers import text_block
from acp.schema import (
    AllowedOutcome,
    ClientCapabilities,
    DeniedOutcome,
    EnvVariable,
    FileSystemCapability,
    Implementation,
    McpServerStdio,
)

from acpvisor import __version__
from acpvisor.models.agent import McpServerSpec

__all__ = [
    "CLIENT_NAME",
    "PROTOCOL_VERSION",
    "PermissionOptionKind",
    "SessionUpdateKind",
    "cancelled_outcome",
    "client_capabilities",
    "client_info",
    "mcp_server",
    "prompt_blocks",
    "selected_outcome",
]

CLIENT_NAME = "acpvisor"


class PermissionOptionKind(str, Enum):
    ALLOW_ONCE = "allow_once"
    ALLOW_ALWAYS = "allow_always"
    REJECT_ONCE = "reject_once"
    REJECT_ALWAYS = "reject_always"


class SessionUpdateKind(str, Enum):
    AGENT_MESSAGE_CHUNK = "agent_message_chunk"
    TOOL_CALL = "tool_call"
    TOOL_CALL_UPDATE = "tool_call_update"
    PLAN = "plan"


def client_capabilities() -> ClientCapabilities:
    """Capabilities the host declares during initialize."""
    return ClientCapabilities(
        fs=FileSystemCapability(read_text_file=True, write_text_file=True),
        terminal=True,
    )


def client_info() -> Implementation:
    return Implementation(name=CLIENT_NAME, version=__version__)


def mcp_server(spec: McpServerSpec) -> McpServerStdio:
    return McpServerStdio(
        name=spec.name,
        command=spec.command,
        args=list(spec.args),
        env=[EnvVariable(name=k, value=v) for k, v in spec.env.items()],
    )


def prompt_blocks(text: str) -> list:
    return [text_block(text)]


def selected_outcome(option_id: str) -> RequestPermissionResponse:
    return RequestPermissionResponse(
        outcome=AllowedOutcome(outcome="selected", option_id=option_id)
    )


def cancelled_outcome() -> RequestPermissionResponse:
    return RequestPermissionResponse(outcome=DeniedOutcome(outcome="cancelled"))
