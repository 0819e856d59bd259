from __future__ import annotations


class AccessMcpError(Exception):
    """Base class for failures surfaced to tool callers."""

    kind = "error"


class PreconditionError(AccessMcpError):
    """Raised when a call cannot start: no session, empty argument, bad state."""

    kind = "precondition"


class NotConnectedError(PreconditionError):
    def __init__(self, message: str = "Not connected to database") -> None:
        super().__init__(message)


class DatabaseNotFoundError(PreconditionError):
    kind = "not_found"

    def __init__(self, path: str) -> None:
        super().__init__(f"Database file not found: {path}")
        self.path = path


class EngineUnavailableError(AccessMcpError):
    """Access cannot be instantiated on this machine. Never retried."""

    kind = "environment"


class TabularOpenError(AccessMcpError):
    kind = "tabular"


class MemberAccessError(AccessMcpError):
    """A late-bound set/invoke failed. The COM error is kept as ``__cause__``."""

    kind = "automation"


class ObjectNotFoundError(AccessMcpError):
    kind = "automation"


def require_text(value: object, label: str) -> str:
    """Return ``value`` stripped, raising :class:`PreconditionError` when blank."""

    text = "" if value is None else str(value).strip()
    if not text:
        raise PreconditionError(f"{label} is required")
    return text


__all__ = [
    "AccessMcpError",
    "PreconditionError",
    "NotConnectedError",
    "DatabaseNotFoundError",
    "EngineUnavailableError",
    "TabularOpenError",
    "MemberAccessError",
    "ObjectNotFoundError",
    "require_text",
]
