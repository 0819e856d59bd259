"""Tool handlers. Importing the package registers every tool."""

from . import connection, design, linked, maintenance, queries, relationships, schema, tables, vba  # noqa: F401
from .registry import ToolSpec, call_tool, get_tool, list_tools, tool

__all__ = ["ToolSpec", "call_tool", "get_tool", "list_tools", "tool"]
