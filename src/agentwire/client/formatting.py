"""Text helpers for describing engine asks on a line-oriented display."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Tuple

MAX_PARAM_CHARS = 200


def _load_object(text: str) -> Dict[str, Any] | None:
    try:
        data = json.loads(text)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def truncate(value: str, limit: int = MAX_PARAM_CHARS) -> str:
    return value[:limit] + "..." if len(value) > limit else value


def format_param(value: Any) -> str:
    if isinstance(value, str):
        return truncate(value)
    if isinstance(value, (dict, list)):
        return truncate(json.dumps(value, separators=(",", ":")))
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def describe_tool(text: str) -> Tuple[str | None, List[str]]:
    """Return ``(tool_name, parameter_lines)`` for a tool ask payload.

    ``tool_name`` is None when the payload is not a JSON object.
    """
    info = _load_object(text)
    if info is None:
        return None, []
    name = info.get("tool") or "unknown"
    lines = [f"  {key}: {format_param(value)}" for key, value in info.items() if key != "tool"]
    return str(name), lines


def describe_mcp(text: str) -> Tuple[str | None, str, str]:
    """Return ``(server, tool, resource)`` for a ``use_mcp_server`` payload."""
    info = _load_object(text)
    if info is None:
        return None, "", ""
    server = info.get("server_name") or info.get("serverName") or "unknown"
    tool = ""
    resource = ""
    if info.get("type") == "use_mcp_tool":
        tool = info.get("tool_name") or info.get("toolName") or ""
    elif info.get("type") == "access_mcp_resource":
        resource = info.get("uri") or ""
    return str(server), str(tool), str(resource)


def api_request_cost(text: str) -> float | None:
    """Cost reported in an ``api_req_started`` payload, when present."""
    info = _load_object(text)
    if info is None:
        return None
    cost = info.get("cost")
    if isinstance(cost, bool) or not isinstance(cost, (int, float)):
        return None
    return float(cost)


__all__ = ["MAX_PARAM_CHARS", "api_request_cost", "describe_mcp", "describe_tool", "format_param", "truncate"]
