from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


@dataclass
class SessionState:
    """Mutable state shared by the session components.

    One instance per process.  The tabular connection and the automation
    engine handle are owned by their managers but recorded here so every
    component sees the same picture.
    """

    database_path: Optional[str] = None
    database_password: Optional[str] = None
    system_database_path: Optional[str] = None

    tabular_connection: Any = None
    transaction_started_at: Optional[datetime] = None

    engine: Any = None
    engine_database_path: Optional[str] = None
    engine_exclusive: bool = False

    release_depth: int = 0
    restore_pending: bool = False

    @property
    def is_connected(self) -> bool:
        return bool(self.database_path and self.database_path.strip())

    @property
    def tabular_open(self) -> bool:
        conn = self.tabular_connection
        if conn is None:
            return False
        return not bool(getattr(conn, "closed", False))

    @property
    def engine_present(self) -> bool:
        return self.engine is not None

    @property
    def transaction_active(self) -> bool:
        return self.transaction_started_at is not None and self.tabular_open

    def clear_credentials(self) -> None:
        self.database_path = None
        self.database_password = None
        self.system_database_path = None

    def snapshot(self) -> dict[str, object]:
        """Return a JSON-friendly view of the session."""

        return {
            "connected": self.is_connected,
            "database_path": self.database_path,
            "tabular_open": self.tabular_open,
            "transaction_active": self.transaction_active,
            "engine_present": self.engine_present,
            "engine_database_path": self.engine_database_path,
            "engine_exclusive": bool(self.engine_exclusive),
            "release_depth": int(self.release_depth),
        }


__all__ = ["SessionState"]
