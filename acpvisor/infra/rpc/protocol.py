"""JSON-RPC 2.0 message framing over newline-delimited JSON."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


# Standard JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

_DEFAULT_MESSAGES = {
    PARSE_ERROR: "Parse error",
    INVALID_REQUEST: "Invalid request",
    METHOD_NOT_FOUND: "Method not found",
    INVALID_PARAMS: "Invalid params",
    INTERNAL_ERROR: "Internal error",
}


class RpcError(Exception):
    """A JSON-RPC error, raised by handlers or received from the peer."""

    def __init__(self, code: int, message: str = "", data: Any = None) -> None:
        self.code = code
        self.message = message or _DEFAULT_MESSAGES.get(code, "Unknown error")
        self.data = data
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.data is not None:
            return f"{self.message}: {self.data}"
        return self.message

    @classmethod
    def invalid_params(cls, data: Any = None) -> RpcError:
        return cls(INVALID_PARAMS, data=data)

    @classmethod
    def method_not_found(cls, data: Any = None) -> RpcError:
        return cls(METHOD_NOT_FOUND, data=data)

    @classmethod
    def internal_error(cls, data: Any = None) -> RpcError:
        return cls(INTERNAL_ERROR, data=data)

    @classmethod
    def from_dict(cls, error: dict) -> RpcError:
        return cls(
            code=error.get("code", INTERNAL_ERROR),
            message=error.get("message", ""),
            data=error.get("data"),
        )

    def to_dict(self) -> dict:
        d: dict = {"code": self.code, "message": self.message}
        if self.data is not None:
            d["data"] = self.data
        return d


class ConnectionClosedError(RpcError):
    """The peer went away while a request was in flight."""

    def __init__(self, data: Any = "connection closed") -> None:
        super().__init__(INTERNAL_ERROR, "Connection closed", data)


@dataclass(frozen=True)
class JsonRpcRequest:
    """JSON-RPC 2.0 request."""

    method: str
    params: dict[str, Any] = field(default_factory=dict)
    id: int | str = 0

    def to_dict(self) -> dict:
        return {
            "jsonrpc": "2.0",
            "method": self.method,
            "params": self.params,
            "id": self.id,
        }


@dataclass(frozen=True)
class JsonRpcResponse:
    """JSON-RPC 2.0 response (success or error)."""

    id: int | str | None = 0
    result: Any = None
    error: dict | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict:
        d: dict = {"jsonrpc": "2.0", "id": self.id}
        if self.error is not None:
            d["error"] = self.error
        else:
            d["result"] = self.result
        return d


@dataclass(frozen=True)
class JsonRpcNotification:
    """JSON-RPC 2.0 notification (no id, no response expected)."""

    method: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "jsonrpc": "2.0",
            "method": self.method,
            "params": self.params,
        }


Message = JsonRpcRequest | JsonRpcResponse | JsonRpcNotification


def encode(msg: Message) -> bytes:
    """Encode a JSON-RPC message as a newline-delimited JSON bytes line."""
    return json.dumps(msg.to_dict(), default=str).encode() + b"\n"


def decode(line: bytes) -> Message:
    """Decode a newline-delimited JSON line into a JSON-RPC message.

    Raises ValueError if the line is not a JSON object.
    """
    data = json.loads(line)
    if not isinstance(data, dict):
        raise ValueError("JSON-RPC message must be an object")

    if "method" in data:
        params = data.get("params") or {}
        if "id" in data:
            return JsonRpcRequest(method=data["method"], params=params, id=data["id"])
        return JsonRpcNotification(method=data["method"], params=params)

    # Response
    return JsonRpcResponse(
        id=data.get("id"),
        result=data.get("result"),
        error=data.get("error"),
    )


def make_error(id: int | str | None, code: int, message: str, data: Any = None) -> JsonRpcResponse:
    """Create a JSON-RPC error response."""
    return JsonRpcResponse(id=id, error=RpcError(code, message, data).to_dict())
