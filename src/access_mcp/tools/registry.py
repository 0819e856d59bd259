"""
registry.py  –  tool catalogue and dispatch

Handlers register themselves with :func:`tool`; :func:`call_tool` runs one
against a session and always returns a structured payload, never raising.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..session.errors import AccessMcpError

logger = logging.getLogger(__name__)

Handler = Callable[[Any, Dict[str, Any]], Dict[str, Any]]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    handler: Handler
    properties: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    required: tuple[str, ...] = ()

    def input_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"type": "object", "properties": dict(self.properties)}
        if self.required:
            schema["required"] = list(self.required)
        return schema

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema(),
        }


_REGISTRY: Dict[str, ToolSpec] = {}


def string_arg(description: str = "") -> Dict[str, Any]:
    spec: Dict[str, Any] = {"type": "string"}
    if description:
        spec["description"] = description
    return spec


def integer_arg(description: str = "") -> Dict[str, Any]:
    spec: Dict[str, Any] = {"type": "integer"}
    if description:
        spec["description"] = description
    return spec


def boolean_arg(description: str = "") -> Dict[str, Any]:
    spec: Dict[str, Any] = {"type": "boolean"}
    if description:
        spec["description"] = description
    return spec


def array_arg(items: Dict[str, Any], description: str = "") -> Dict[str, Any]:
    spec: Dict[str, Any] = {"type": "array", "items": items}
    if description:
        spec["description"] = description
    return spec


def tool(
    name: str,
    description: str,
    *,
    properties: Optional[Mapping[str, Dict[str, Any]]] = None,
    required: tuple[str, ...] = (),
) -> Callable[[Handler], Handler]:
    """Register the decorated function as tool ``name``."""

    def decorator(func: Handler) -> Handler:
        if name in _REGISTRY:
            raise ValueError(f"Tool already registered: {name}")
        _REGISTRY[name] = ToolSpec(
            name=name,
            description=description,
            handler=func,
            properties=dict(properties or {}),
            required=tuple(required),
        )
        return func

    return decorator


def get_tool(name: str) -> Optional[ToolSpec]:
    return _REGISTRY.get(name)


def list_tools() -> List[Dict[str, Any]]:
    return [spec.describe() for spec in _REGISTRY.values()]


def failure(message: str, kind: str) -> Dict[str, Any]:
    return {"success": False, "error": message, "error_kind": kind}


def call_tool(session: Any, name: str, arguments: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    spec = _REGISTRY.get((name or "").strip())
    if spec is None:
        if not name or not name.strip():
            return failure("Tool name is empty", "unknown_tool")
        return failure(f"Unknown tool: {name}", "unknown_tool")

    args: Dict[str, Any] = dict(arguments) if isinstance(arguments, Mapping) else {}
    start = time.perf_counter()
    try:
        payload = spec.handler(session, args)
    except AccessMcpError as exc:
        logger.warning(
            "Tool %s failed: %s",
            spec.name,
            exc,
            extra={"event": "tool_failed", "tool": spec.name},
        )
        return failure(str(exc), exc.kind)
    except Exception as exc:
        logger.exception(
            "Tool %s raised an unexpected error",
            spec.name,
            extra={"event": "tool_failed", "tool": spec.name},
        )
        return failure(str(exc) or exc.__class__.__name__, "internal")

    duration_ms = (time.perf_counter() - start) * 1000.0
    logger.info(
        "Tool %s completed",
        spec.name,
        extra={"event": "tool_completed", "tool": spec.name, "duration_ms": round(duration_ms, 2)},
    )
    result: Dict[str, Any] = {"success": True}
    result.update(payload or {})
    return result


__all__ = [
    "ToolSpec",
    "array_arg",
    "boolean_arg",
    "call_tool",
    "failure",
    "get_tool",
    "integer_arg",
    "list_tools",
    "string_arg",
    "tool",
]
