from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ToolCallRequest(BaseModel):
    """Body of ``POST /tools/{name}``."""

    arguments: Dict[str, Any] = Field(default_factory=dict)


class ToolDescription(BaseModel):
    name: str
    description: str
    inputSchema: Dict[str, Any] = Field(default_factory=dict)


class ToolListResponse(BaseModel):
    tools: List[ToolDescription] = Field(default_factory=list)


class SessionSnapshot(BaseModel):
    connected: bool
    database_path: Optional[str] = None
    tabular_open: bool
    transaction_active: bool
    engine_present: bool
    engine_database_path: Optional[str] = None
    engine_exclusive: bool
    release_depth: int


class StateResponse(BaseModel):
    version: str
    host: str
    port: int
    auth_required: bool
    tool_count: int
    session: SessionSnapshot


__all__ = [
    "SessionSnapshot",
    "StateResponse",
    "ToolCallRequest",
    "ToolDescription",
    "ToolListResponse",
]
