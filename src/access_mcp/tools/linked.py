"""Linked tables: list, link, refresh, relink and unlink through DAO ``TableDefs``."""
from __future__ import annotations

import logging
import os
import re
from typing import Any, Dict, List, Optional

from ..internal.paths import normalize_database_path, paths_match
from ..session.dynamic import get_member, invoke_member, iter_collection, safe_str, set_member, to_int
from ..session.errors import MemberAccessError, ObjectNotFoundError, PreconditionError
from ..session.tabular import is_system_table
from .common import bool_arg, current_db, optional_text, require_connected
from .registry import boolean_arg, string_arg, tool
from .tables import find_table_def, schema_identifier

logger = logging.getLogger(__name__)

_CONNECT_DATABASE = re.compile(r"(?:^|;)\s*(?:DATABASE|DBQ|Data Source)\s*=\s*([^;]+)", re.IGNORECASE)


def normalize_connect_string(connect_string: Optional[str], source_path: str) -> str:
    """Return a DAO link string such as ``;DATABASE=C:\\data\\Source.accdb;``."""
    if not connect_string or not connect_string.strip():
        return f";DATABASE={source_path};"
    normalized = connect_string.strip()
    if normalized.lower().startswith("ms access;"):
        normalized = normalized[len("MS Access"):]
    if not normalized.startswith(";"):
        normalized = ";" + normalized
    if not normalized.endswith(";"):
        normalized += ";"
    return normalized


def database_path_from_connect(connect_string: Optional[str]) -> Optional[str]:
    match = _CONNECT_DATABASE.search(connect_string or "")
    if match is None:
        return None
    value = match.group(1).strip().strip('"')
    if not value:
        return None
    return os.path.abspath(value)


def is_linked(table_def: Any) -> bool:
    return bool((safe_str(get_member(table_def, "Connect")) or "").strip())


def describe_link(table_def: Any, fallback_path: str = "") -> Dict[str, Any]:
    connect = safe_str(get_member(table_def, "Connect")) or ""
    return {
        "name": safe_str(get_member(table_def, "Name")) or "",
        "source_table_name": safe_str(get_member(table_def, "SourceTableName")) or "",
        "connect_string": connect,
        "source_database_path": database_path_from_connect(connect) or fallback_path,
        "attributes": to_int(get_member(table_def, "Attributes")),
    }


def _require_no_transaction(session: Any, operation: str) -> None:
    if session.state.transaction_started_at is not None:
        raise PreconditionError(f"Cannot {operation} while a transaction is active")


def _linked_table_def(app: Any, table: str) -> Any:
    table_def = find_table_def(current_db(app), table)
    if table_def is None:
        raise ObjectNotFoundError(f"Table not found: {table}")
    if not is_linked(table_def):
        raise PreconditionError(f"Table '{table}' is not a linked table.")
    return table_def


def _dao_links(app: Any) -> List[Dict[str, Any]]:
    result = []
    for table_def in iter_collection(get_member(current_db(app), "TableDefs")):
        name = safe_str(get_member(table_def, "Name"))
        if not name or is_system_table(name) or not is_linked(table_def):
            continue
        result.append(describe_link(table_def))
    return result


def _odbc_links(session: Any) -> List[Dict[str, Any]]:
    cur = session.ensure_tabular_connection().cursor()
    result = []
    for row in cur.tables():
        name = str(getattr(row, "table_name", "") or "")
        table_type = str(getattr(row, "table_type", "") or "").upper()
        if name and not is_system_table(name) and "LINK" in table_type:
            result.append(
                {"name": name, "source_table_name": "", "connect_string": "", "source_database_path": "", "attributes": 0}
            )
    return result


@tool("get_linked_tables", "List linked tables with their source database and connect string")
def get_linked_tables(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    links: List[Dict[str, Any]] = []
    try:
        links = session.run_automation(_dao_links)
    except Exception:
        logger.info("Reading TableDefs through Access failed; using ODBC metadata", exc_info=True)
    if not links:
        links = _odbc_links(session)
    links.sort(key=lambda t: t["name"].lower())
    return {"linked_tables": links}


@tool(
    "link_table",
    "Create a linked table pointing at a table in another Access database",
    properties={
        "table_name": string_arg(),
        "source_database_path": string_arg(),
        "source_table_name": string_arg(),
        "connect_string": string_arg("Optional DAO connect string"),
        "overwrite": boolean_arg("Replace an existing linked table of the same name"),
    },
    required=("table_name", "source_database_path", "source_table_name"),
)
def link_table(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    table = schema_identifier(args.get("table_name"), "Table name")
    source_table = schema_identifier(args.get("source_table_name"), "Source table name")
    source_path = normalize_database_path(args.get("source_database_path"), require_exists=True)
    connect = normalize_connect_string(optional_text(args, "connect_string"), source_path)
    overwrite = bool_arg(args, "overwrite", False)
    if paths_match(session.database_path, source_path) and table.lower() == source_table.lower():
        raise PreconditionError("Cannot create a linked table that points to itself.")
    _require_no_transaction(session, "link a table")

    def _link(app: Any) -> Dict[str, Any]:
        db = current_db(app)
        table_defs = get_member(db, "TableDefs")
        existing = find_table_def(db, table)
        if existing is not None:
            if not overwrite:
                raise PreconditionError(f"Table already exists: {table}")
            if not is_linked(existing):
                raise PreconditionError(f"Table '{table}' exists and is not a linked table. Refusing to overwrite.")
            invoke_member(table_defs, "Delete", safe_str(get_member(existing, "Name")) or table)
        table_def = invoke_member(db, "CreateTableDef", table)
        if table_def is None:
            raise MemberAccessError("Failed to create DAO TableDef.")
        set_member(table_def, "Connect", connect)
        set_member(table_def, "SourceTableName", source_table)
        invoke_member(table_defs, "Append", table_def)
        invoke_member(table_defs, "Refresh")
        return describe_link(table_def, source_path)

    linked = session.run_automation(_link, release_tabular=True)
    return {"linked_table": linked}


@tool("refresh_linked_table", "Refresh the link of a linked table", properties={"table_name": string_arg()}, required=("table_name",))
def refresh_linked_table(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    table = schema_identifier(args.get("table_name"), "Table name")
    _require_no_transaction(session, "refresh a link")

    def _refresh(app: Any) -> Dict[str, Any]:
        table_def = _linked_table_def(app, table)
        invoke_member(table_def, "RefreshLink")
        return describe_link(table_def)

    linked = session.run_automation(_refresh)
    session.tabular.refresh_after_schema_change()
    return {"linked_table": linked}


@tool(
    "relink_table",
    "Point a linked table at another source database",
    properties={
        "table_name": string_arg(),
        "source_database_path": string_arg(),
        "source_table_name": string_arg(),
        "connect_string": string_arg(),
    },
    required=("table_name", "source_database_path"),
)
def relink_table(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    table = schema_identifier(args.get("table_name"), "Table name")
    source_path = normalize_database_path(args.get("source_database_path"), require_exists=True)
    connect = normalize_connect_string(optional_text(args, "connect_string"), source_path)
    source_table = optional_text(args, "source_table_name")
    if source_table is not None:
        source_table = schema_identifier(source_table, "Source table name")
    _require_no_transaction(session, "relink a table")

    def _relink(app: Any) -> Dict[str, Any]:
        table_def = _linked_table_def(app, table)
        set_member(table_def, "Connect", connect)
        current_source = safe_str(get_member(table_def, "SourceTableName")) or ""
        if source_table and current_source.lower() != source_table.lower():
            try:
                set_member(table_def, "SourceTableName", source_table)
            except MemberAccessError as exc:
                raise PreconditionError(
                    "Updating source_table_name on an existing linked table is not supported by this "
                    "Access provider. Recreate the linked table instead."
                ) from exc
        invoke_member(table_def, "RefreshLink")
        return describe_link(table_def, source_path)

    linked = session.run_automation(_relink, release_tabular=True)
    return {"linked_table": linked}


@tool("unlink_table", "Remove a linked table (the source table is untouched)", properties={"table_name": string_arg()}, required=("table_name",))
def unlink_table(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    table = schema_identifier(args.get("table_name"), "Table name")
    _require_no_transaction(session, "unlink a table")

    def _unlink(app: Any) -> None:
        table_def = _linked_table_def(app, table)
        table_defs = get_member(current_db(app), "TableDefs")
        invoke_member(table_defs, "Delete", safe_str(get_member(table_def, "Name")) or table)
        invoke_member(table_defs, "Refresh")

    session.run_automation(_unlink, release_tabular=True)
    return {"message": f"Unlinked table {table}"}
