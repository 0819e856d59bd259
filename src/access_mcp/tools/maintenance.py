"""Whole-file operations: create, back up and compact/repair databases.

These work on files rather than on the session, so the session is detached
from the file (and reattached afterwards) whenever it targets the same path.
"""
from __future__ import annotations

import logging
import os
import shutil
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from ..internal.paths import normalize_database_path, paths_match
from ..session.errors import AccessMcpError, PreconditionError
from .common import bool_arg, optional_text
from .registry import boolean_arg, string_arg, tool

logger = logging.getLogger(__name__)


def _file_facts(path: str) -> Dict[str, Any]:
    try:
        stat = os.stat(path)
    except OSError:
        return {"size_bytes": 0, "last_write_time_utc": None}
    return {
        "size_bytes": stat.st_size,
        "last_write_time_utc": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
    }


def _require_distinct(source: str, destination: str) -> None:
    if paths_match(source, destination):
        raise PreconditionError("Source and destination database paths must be different.")


def _refuse_existing(path: str) -> None:
    raise PreconditionError(f"Destination database already exists: {path}. Set overwrite=true to replace it.")


def _operates_on_session(session: Any, source: str) -> bool:
    return session.is_connected and paths_match(session.database_path, source)


def compact_temporary_path(source: str) -> str:
    path = Path(source)
    return str(path.with_name(f"{path.stem}.compact.{uuid.uuid4().hex}{path.suffix}"))


def replace_in_place(compacted: str, source: str) -> None:
    """Swap ``compacted`` into ``source``, restoring the original on failure."""
    backup = f"{source}.precompact.{uuid.uuid4().hex}.bak"
    os.replace(source, backup)
    try:
        os.replace(compacted, source)
    except OSError:
        os.replace(backup, source)
        raise
    finally:
        for leftover in (backup, compacted):
            if os.path.exists(leftover):
                try:
                    os.remove(leftover)
                except OSError:
                    logger.debug("Could not remove %s", leftover, exc_info=True)


@tool(
    "create_database",
    "Create a new empty Access database file",
    properties={"database_path": string_arg(), "overwrite": boolean_arg()},
    required=("database_path",),
)
def create_database(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    path = normalize_database_path(args.get("database_path"), require_exists=False)
    existed_before = os.path.isfile(path)
    if existed_before and not bool_arg(args, "overwrite", False):
        _refuse_existing(path)
    if _operates_on_session(session, path):
        raise PreconditionError(f"Cannot replace the connected database: {path}. Disconnect first.")
    os.makedirs(os.path.dirname(path), exist_ok=True)
    if existed_before:
        os.remove(path)

    with session.engine.temporary_instance() as app:
        app.NewCurrentDatabase(path)
        app.CloseCurrentDatabase()

    logger.info("Created database %s", path, extra={"event": "create_database"})
    return {"database_path": path, "existed_before": existed_before, **_file_facts(path)}


@tool(
    "backup_database",
    "Copy a database file to a backup location",
    properties={
        "source_database_path": string_arg(),
        "destination_database_path": string_arg(),
        "overwrite": boolean_arg(),
    },
    required=("source_database_path", "destination_database_path"),
)
def backup_database(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    source = normalize_database_path(args.get("source_database_path"), require_exists=True)
    destination = normalize_database_path(args.get("destination_database_path"), require_exists=False)
    overwrite = bool_arg(args, "overwrite", False)
    _require_distinct(source, destination)
    os.makedirs(os.path.dirname(destination), exist_ok=True)
    operated_on_connected = _operates_on_session(session, source)

    def _copy() -> Dict[str, Any]:
        if os.path.isfile(destination) and not overwrite:
            _refuse_existing(destination)
        shutil.copyfile(source, destination)
        source_facts = _file_facts(source)
        destination_facts = _file_facts(destination)
        return {
            "source_database_path": source,
            "destination_database_path": destination,
            "bytes_copied": destination_facts["size_bytes"],
            "source_last_write_time_utc": source_facts["last_write_time_utc"],
            "destination_last_write_time_utc": destination_facts["last_write_time_utc"],
            "operated_on_connected_database": operated_on_connected,
        }

    return session.with_connected_database_released(source, "backup_database", _copy)


@tool(
    "compact_repair_database",
    "Compact and repair a database, in place or into a new file",
    properties={
        "source_database_path": string_arg(),
        "destination_database_path": string_arg("Leave empty to compact in place"),
        "overwrite": boolean_arg(),
    },
    required=("source_database_path",),
)
def compact_repair_database(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    source = normalize_database_path(args.get("source_database_path"), require_exists=True)
    requested: Optional[str] = optional_text(args, "destination_database_path")
    in_place = requested is None
    target = compact_temporary_path(source) if in_place else normalize_database_path(requested, require_exists=False)
    overwrite = bool_arg(args, "overwrite", False)
    _require_distinct(source, target)
    final_destination = source if in_place else target
    os.makedirs(os.path.dirname(target), exist_ok=True)
    operated_on_connected = _operates_on_session(session, source)

    def _compact() -> Dict[str, Any]:
        if not in_place and os.path.isfile(target) and not overwrite:
            _refuse_existing(target)
        if os.path.isfile(target):
            os.remove(target)
        with session.engine.temporary_instance() as app:
            compacted = app.CompactRepair(source, target, True)
        if compacted is False:
            raise AccessMcpError(f"Compact/repair operation returned false for destination: {target}")
        if not os.path.isfile(target):
            raise AccessMcpError(f"Compact/repair did not produce destination database: {target}")
        if in_place:
            replace_in_place(target, source)
        return {
            "source_database_path": source,
            "destination_database_path": final_destination,
            "in_place": in_place,
            "source_size_bytes": _file_facts(source)["size_bytes"],
            "destination_size_bytes": _file_facts(final_destination)["size_bytes"],
            "destination_last_write_time_utc": _file_facts(final_destination)["last_write_time_utc"],
            "operated_on_connected_database": operated_on_connected,
        }

    return session.with_connected_database_released(source, "compact_repair_database", _compact)
