"""Argument parsing and lookups shared by the tool handlers."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from ..session.dynamic import get_member, iter_collection, safe_str
from ..session.errors import NotConnectedError, ObjectNotFoundError, require_text

logger = logging.getLogger(__name__)

# MSysObjects.Type codes
MSYS_TYPE_FORM = -32768
MSYS_TYPE_REPORT = -32764
MSYS_TYPE_MACRO = -32766
MSYS_TYPE_MODULE = -32761


def text_arg(args: Mapping[str, Any], key: str, label: Optional[str] = None) -> str:
    return require_text(args.get(key), label or key)


def optional_text(args: Mapping[str, Any], key: str) -> Optional[str]:
    value = args.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def int_arg(args: Mapping[str, Any], key: str, default: int) -> int:
    value = args.get(key)
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def bool_arg(args: Mapping[str, Any], key: str, default: bool) -> bool:
    value = args.get(key)
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def require_connected(session: Any) -> None:
    if not session.is_connected:
        raise NotConnectedError()


def current_db(app: Any) -> Any:
    """Return the DAO database of ``app`` or raise."""
    try:
        db = app.CurrentDb()
    except Exception as exc:
        raise ObjectNotFoundError(f"Failed to get current DAO database: {exc}") from exc
    if db is None:
        raise ObjectNotFoundError("Failed to get current DAO database.")
    return db


def project_objects(app: Any, collection: str, type_label: str) -> List[Dict[str, Any]]:
    """List ``CurrentProject.<collection>`` as name/full_name/type dicts."""
    project = get_member(app, "CurrentProject")
    items = get_member(project, collection)
    if items is None:
        raise ObjectNotFoundError(f"CurrentProject.{collection} is not available")
    result: List[Dict[str, Any]] = []
    for item in iter_collection(items):
        name = safe_str(get_member(item, "Name")) or ""
        result.append(
            {
                "name": name,
                "full_name": safe_str(get_member(item, "FullName")) or name,
                "type": type_label,
            }
        )
    return result


def msys_object_names(session: Any, type_code: int) -> List[str]:
    """Names from ``MSysObjects`` for ``type_code``; empty when the table is unreadable."""
    tabular = session.ensure_tabular_connection()
    try:
        result = tabular.execute(f"SELECT Name FROM MSysObjects WHERE Type = {int(type_code)}", max_rows=100000)
    except Exception:
        logger.debug("MSysObjects is not readable", exc_info=True)
        return []
    names = []
    for row in result.rows:
        value = row.get("Name")
        if value:
            names.append(str(value))
    return names


def list_with_fallback(session: Any, collection: str, type_label: str, type_code: int) -> List[Dict[str, Any]]:
    """Enumerate through Access, falling back to ``MSysObjects`` when that fails or is empty."""
    require_connected(session)
    try:
        items = session.run_automation(lambda app: project_objects(app, collection, type_label))
        if items:
            return items
    except Exception:
        logger.info("Listing %s through Access failed; using MSysObjects", collection, exc_info=True)
    return [
        {"name": name, "full_name": name, "type": type_label}
        for name in msys_object_names(session, type_code)
    ]


__all__ = [
    "MSYS_TYPE_FORM",
    "MSYS_TYPE_MACRO",
    "MSYS_TYPE_MODULE",
    "MSYS_TYPE_REPORT",
    "bool_arg",
    "current_db",
    "int_arg",
    "list_with_fallback",
    "msys_object_names",
    "optional_text",
    "project_objects",
    "require_connected",
    "text_arg",
]
