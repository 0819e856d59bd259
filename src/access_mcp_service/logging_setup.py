from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "access_mcp.log"

_EXTRA_KEYS = ("trace_id", "event", "tool", "method", "path", "status", "duration_ms")


def _truthy(raw: str | None) -> bool:
    if raw is None:
        return False
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _expand(path_value: str) -> Path:
    return Path(os.path.expandvars(path_value)).expanduser()


def resolve_log_file() -> Path:
    """Return the target log file path based on environment overrides."""
    file_override = os.environ.get("ACCESS_MCP_LOG_FILE", "").strip()
    if file_override:
        return _expand(file_override)

    dir_override = os.environ.get("ACCESS_MCP_LOG_DIR", "").strip()
    if dir_override:
        return _expand(dir_override) / LOG_FILE_NAME

    if os.name == "nt":
        base = os.environ.get("LOCALAPPDATA")
        if base:
            return Path(base).expanduser() / "AccessMcp" / "logs" / LOG_FILE_NAME
        return Path.home() / "AppData" / "Local" / "AccessMcp" / "logs" / LOG_FILE_NAME

    return Path.home() / ".local" / "share" / "access_mcp" / "logs" / LOG_FILE_NAME


class ServiceFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            "%Y-%m-%dT%H:%M:%S%z",
        )

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        base = super().format(record)
        extras: list[str] = []
        for key in _EXTRA_KEYS:
            value = getattr(record, key, None)
            if value is None or (isinstance(value, str) and not value):
                continue
            extras.append(f"{key}={value}")
        if extras:
            return f"{base} {' '.join(extras)}"
        return base


def configure_logging() -> Path | None:
    """Configure logging from ``ACCESS_MCP_*`` environment variables.

    Returns the log file in use, or None when it could not be opened and
    output went to stderr instead.  Console output always goes to stderr so
    the stdio transport keeps stdout for protocol messages.
    """
    level_name = (os.environ.get("ACCESS_MCP_LOG_LEVEL", "INFO") or "").strip().upper() or "INFO"
    debug_enabled = _truthy(os.environ.get("ACCESS_MCP_DEBUG"))
    if debug_enabled:
        level_name = "DEBUG"
    level = getattr(logging, level_name, logging.INFO)

    log_file = resolve_log_file()
    formatter = ServiceFormatter()
    handlers: list[logging.Handler] = []
    destination: Path | None = log_file

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=5_000_000,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)
    except OSError:
        destination = None
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setLevel(level)
        stream_handler.setFormatter(formatter)
        handlers.append(stream_handler)

    if debug_enabled and destination is not None:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "access_mcp_service", "access_mcp"):
        target = logging.getLogger(name)
        target.handlers = []
        target.setLevel(level)
        target.propagate = True

    configured_logger = logging.getLogger(__name__)
    if destination is None:
        configured_logger.warning(
            "Logging to stderr because ACCESS_MCP_LOG_FILE/ACCESS_MCP_LOG_DIR is unavailable."
        )
    else:
        configured_logger.debug("Logging configured for file %s", destination)

    return destination


def resolve_log_dir() -> Path:
    return resolve_log_file().parent


__all__ = ["ServiceFormatter", "configure_logging", "resolve_log_dir", "resolve_log_file"]
