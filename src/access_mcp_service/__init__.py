"""HTTP and stdio transports for the Access MCP tools."""

from .app import create_app

__all__ = ["create_app"]
