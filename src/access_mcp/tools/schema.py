"""Schema, SQL and transaction tools. All of them use the tabular connection only."""
from __future__ import annotations

import logging
from typing import Any, Dict, List

from ..session.errors import PreconditionError
from ..session.tabular import format_markdown
from .common import int_arg, text_arg
from .registry import integer_arg, string_arg, tool

logger = logging.getLogger(__name__)

_SQL_PROPERTIES = {
    "sql": string_arg("SQL statement"),
    "max_rows": integer_arg("Maximum rows to return"),
}
_TABLE_PROPERTIES = {"table_name": string_arg()}


def _max_rows(args: Dict[str, Any], default: int) -> int:
    max_rows = int_arg(args, "max_rows", default)
    if max_rows <= 0:
        raise PreconditionError("max_rows must be greater than 0")
    return max_rows


@tool("get_tables", "Get list of all user tables with their fields and record counts")
def get_tables(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    tabular = session.ensure_tabular_connection()
    tables: List[Dict[str, Any]] = []
    for name in tabular.list_tables():
        tables.append(
            {
                "name": name,
                "fields": [
                    {"name": c["name"], "type": c["data_type"], "size": c["max_length"], "required": not c["is_nullable"]}
                    for c in tabular.columns(name)
                ],
                "record_count": tabular.record_count(name),
            }
        )
    return {"tables": tables}


@tool("get_system_tables", "Get list of system tables (MSys* and ~*)")
def get_system_tables(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    tabular = session.ensure_tabular_connection()
    tables = [
        {"name": name, "record_count": tabular.record_count(name)}
        for name in tabular.list_tables(system_only=True)
    ]
    return {"system_tables": tables}


@tool(
    "describe_table",
    "Describe a table schema including columns, nullability, defaults, and primary key columns.",
    properties=_TABLE_PROPERTIES,
    required=("table_name",),
)
def describe_table(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    table_name = text_arg(args, "table_name")
    tabular = session.ensure_tabular_connection()
    columns = tabular.columns(table_name)
    if not columns:
        raise PreconditionError(f"Table not found or has no visible columns: {table_name}")
    primary_key = sorted(tabular.primary_key_columns(table_name), key=str.lower)
    for column in columns:
        column["is_primary_key"] = column["name"] in primary_key
    return {
        "table": {
            "table_name": table_name,
            "columns": columns,
            "primary_key_columns": primary_key,
        }
    }


@tool("get_indexes", "List the indexes of a table", properties=_TABLE_PROPERTIES, required=("table_name",))
def get_indexes(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    table_name = text_arg(args, "table_name")
    tabular = session.ensure_tabular_connection()
    return {"indexes": tabular.indexes(table_name)}


@tool(
    "execute_sql",
    "Execute a SQL statement against the connected Access database. For SELECT queries, "
    "returns columns and rows. For action queries, returns rows_affected.",
    properties=_SQL_PROPERTIES,
    required=("sql",),
)
def execute_sql(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    sql = text_arg(args, "sql", "SQL")
    max_rows = _max_rows(args, session.config.limits.execute_sql_max_rows)
    result = session.ensure_tabular_connection().execute(sql, max_rows)
    payload = result.to_dict()
    if result.is_query:
        payload["max_rows"] = max_rows
    return payload


@tool(
    "execute_query_md",
    "Execute a SQL statement and return result as a markdown table (or action-query summary).",
    properties=_SQL_PROPERTIES,
    required=("sql",),
)
def execute_query_md(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    sql = text_arg(args, "sql", "SQL")
    max_rows = _max_rows(args, session.config.limits.markdown_max_rows)
    result = session.ensure_tabular_connection().execute(sql, max_rows)
    return {"markdown": format_markdown(result, max_rows)}


@tool("get_object_metadata", "Get MSysObjects metadata for database objects")
def get_object_metadata(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    tabular = session.ensure_tabular_connection()
    try:
        result = tabular.execute(
            "SELECT Name, Type, Flags, DateCreate, DateUpdate FROM MSysObjects",
            max_rows=100000,
        )
    except Exception:
        # MSysObjects needs read permission, which Access denies by default
        logger.debug("MSysObjects is not readable", exc_info=True)
        return {"metadata": []}
    metadata = [
        {
            "name": row.get("Name") or "",
            "type": row.get("Type"),
            "flags": row.get("Flags"),
            "date_created": row.get("DateCreate"),
            "date_modified": row.get("DateUpdate"),
        }
        for row in result.rows
    ]
    return {"metadata": metadata}


@tool("begin_transaction", "Begin a transaction on the tabular connection")
def begin_transaction(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"transaction": session.ensure_tabular_connection().begin_transaction()}


@tool("commit_transaction", "Commit the active transaction")
def commit_transaction(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"transaction": session.tabular.commit_transaction()}


@tool("rollback_transaction", "Roll back the active transaction")
def rollback_transaction(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"transaction": session.tabular.rollback_transaction()}


@tool("transaction_status", "Report whether a transaction is active")
def transaction_status(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"transaction": session.tabular.transaction_status()}
