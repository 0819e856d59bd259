"""Access database automation tools served over MCP."""

__version__ = "0.3.0"
