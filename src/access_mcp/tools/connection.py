from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..session.errors import PreconditionError
from .common import bool_arg, optional_text
from .registry import boolean_arg, string_arg, tool

DATABASE_PATH_ENV_VAR = "ACCESS_DATABASE_PATH"
DEFAULT_DATABASE_NAME = "Database1.accdb"


def _document_folders() -> List[Path]:
    folders: List[Path] = []

    def _add(path: Optional[Path]) -> None:
        if path is None or not path.is_dir():
            return
        key = os.path.normcase(str(path.resolve()))
        if any(os.path.normcase(str(p.resolve())) == key for p in folders):
            return
        folders.append(path)

    _add(Path.home() / "Documents")
    for env_name in ("USERPROFILE", "OneDrive"):
        base = os.environ.get(env_name)
        if base:
            _add(Path(base) / "Documents")
    return folders


def resolve_database_path(explicit: Optional[str], configured: Optional[str] = None) -> Optional[str]:
    """Pick the database to connect to when the caller may not name one.

    Order: explicit argument, configured default, ``ACCESS_DATABASE_PATH``,
    ``Database1.accdb`` in a Documents folder, then the first ``.accdb`` or
    ``.mdb`` found there.
    """
    for candidate in (explicit, configured, os.environ.get(DATABASE_PATH_ENV_VAR)):
        if candidate and candidate.strip():
            return candidate.strip()

    folders = _document_folders()
    for folder in folders:
        default = folder / DEFAULT_DATABASE_NAME
        if default.is_file():
            return str(default)
    for folder in folders:
        for pattern in ("*.accdb", "*.mdb"):
            found = sorted(p for p in folder.glob(pattern) if p.is_file())
            if found:
                return str(found[0])
    return None


@tool(
    "connect_access",
    "Connect to an Access database. Uses database_path, the configured default, "
    "the ACCESS_DATABASE_PATH environment variable, or the first database found in Documents.",
    properties={
        "database_path": string_arg("Full path to a .accdb or .mdb file"),
        "password": string_arg("Database password"),
        "system_database_path": string_arg("Workgroup information file (.mdw)"),
    },
)
def connect_access(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    db_config = session.config.database
    path = resolve_database_path(optional_text(args, "database_path"), db_config.default_path or None)
    if not path:
        raise PreconditionError(
            "No database path was provided or discoverable. "
            f"Set {DATABASE_PATH_ENV_VAR} or place a .accdb/.mdb file in Documents."
        )
    connected = session.connect(
        path,
        optional_text(args, "password") or db_config.password or None,
        optional_text(args, "system_database_path") or db_config.system_database_path or None,
    )
    return {"message": f"Connected to {connected}", "connected": True, "database_path": connected}


@tool("disconnect_access", "Disconnect from the current Access database")
def disconnect_access(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    session.disconnect()
    return {"message": "Disconnected from database"}


@tool("is_connected", "Check if connected to an Access database")
def is_connected(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"connected": session.is_connected, "database_path": session.database_path}


@tool("get_session_state", "Report the state of the tabular connection and the Access instance")
def get_session_state(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"state": session.snapshot()}


@tool(
    "launch_access",
    "Launch Microsoft Access with the current database",
    properties={"visible": boolean_arg("Show the Access window (default true)")},
)
def launch_access(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    session.launch_access(bool_arg(args, "visible", True))
    return {"message": "Access launched"}


@tool("close_access", "Close the Microsoft Access instance without saving")
def close_access(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    closed = session.close_access()
    return {"message": "Access closed" if closed else "Access was not running"}
