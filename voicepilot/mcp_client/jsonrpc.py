from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Any

_jsonrpc_id = itertools.count(1)


@dataclass(slots=True)
class JsonRpcRequest:
    method: str
    params: dict[str, Any] | None = None
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"jsonrpc": "2.0", "method": self.method}
        if self.params is not None:
            payload["params"] = self.params
        if self.id is not None:
            payload["id"] = self.id
        return payload


class JsonRpcError(Exception):
    def __init__(self, code: int, message: str, data: Any = None) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"JSON-RPC error {code}: {message}")


class McpToolError(Exception):
    """A tools/call that completed but reported ``isError``."""

    def __init__(self, tool: str, message: str, raw: Any = None) -> None:
        self.tool = tool
        self.raw = raw
        super().__init__(f"{tool}: {message}")


def build_request(method: str, params: dict[str, Any] | None = None) -> JsonRpcRequest:
    return JsonRpcRequest(method=method, params=params, id=next(_jsonrpc_id))


def build_notification(method: str, params: dict[str, Any] | None = None) -> JsonRpcRequest:
    return JsonRpcRequest(method=method, params=params)


def is_response(payload: dict[str, Any]) -> bool:
    return payload.get("jsonrpc") == "2.0" and "id" in payload and (
        "result" in payload or "error" in payload
    )


def is_notification(payload: dict[str, Any]) -> bool:
    return payload.get("jsonrpc") == "2.0" and "method" in payload and "id" not in payload


def extract_result(payload: dict[str, Any]) -> Any:
    if "error" in payload:
        err = payload["error"] or {}
        raise JsonRpcError(
            code=err.get("code", -32000),
            message=err.get("message", "Unknown JSON-RPC error"),
            data=err.get("data"),
        )
    return payload.get("result")


def tool_text(result: Any) -> str:
    """Join the text chunks of a tools/call result."""
    if not isinstance(result, dict):
        return "" if result is None else str(result)
    content = result.get("content")
    if not isinstance(content, list):
        return ""
    parts = [
        str(chunk.get("text", ""))
        for chunk in content
        if isinstance(chunk, dict) and chunk.get("type") == "text"
    ]
    return "\n".join(part for part in parts if part)


def tool_image(result: Any) -> tuple[str, str] | None:
    """Return ``(mime_type, base64_data)`` of the first image chunk, if any."""
    if not isinstance(result, dict):
        return None
    for chunk in result.get("content") or []:
        if isinstance(chunk, dict) and chunk.get("type") == "image" and chunk.get("data"):
            return str(chunk.get("mimeType") or "image/png"), str(chunk["data"])
    return None


def raise_for_tool_error(tool: str, result: Any) -> Any:
    if isinstance(result, dict) and result.get("isError") is True:
        raise McpToolError(tool, tool_text(result).strip() or "MCP tool returned an error", raw=result)
    return result
