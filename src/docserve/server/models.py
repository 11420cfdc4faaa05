"""Request and response shapes of the JSON-RPC style protocol."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
TOOL_ERROR = -32000
RESOURCE_NOT_FOUND = -32002


class ToolArgumentError(Exception):
    """Tool arguments are missing or invalid."""


class ResourcePathError(Exception):
    """A resource URI does not name a readable file under the root."""


class ToolError(Exception):
    """A tool ran but could not produce a result."""


@dataclass(frozen=True)
class McpRequest:
    """Normalized incoming request."""

    id: Any
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> "McpRequest":
        """Validate a decoded JSON object.

        Raises:
            ValueError: If the payload is not a request object
        """
        if not isinstance(payload, dict):
            raise ValueError("Request must be a JSON object")
        method = payload.get("method")
        if not isinstance(method, str) or not method:
            raise ValueError("Request method must be a non-empty string")
        params = payload.get("params")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise ValueError("Request params must be an object")
        return cls(id=payload.get("id"), method=method, params=params)


def result_response(request_id: Any, result: dict[str, Any]) -> dict[str, Any]:
    return {"id": request_id, "result": result}


def error_response(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"id": request_id, "error": {"code": code, "message": message}}


def text_result(text: str) -> dict[str, Any]:
    """Tool result carrying a single text block."""
    return {"content": [{"type": "text", "text": text}]}
