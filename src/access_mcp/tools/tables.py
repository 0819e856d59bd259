"""Table, field and index DDL.

Statements run through the tabular connection's schema path; renames go
through DAO ``TableDefs`` because Access SQL has no rename statement.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from ..session.dynamic import get_member, invoke_member, iter_collection, safe_str, set_member
from ..session.errors import ObjectNotFoundError, PreconditionError
from ..session.tabular import quote_identifier
from .common import bool_arg, current_db, int_arg, require_connected, text_arg
from .registry import array_arg, boolean_arg, integer_arg, string_arg, tool

logger = logging.getLogger(__name__)

MAX_IDENTIFIER_LENGTH = 64

# alias -> (declaration, (min, max, default) for sized types)
_SIZED_TYPES = {
    "text": ("TEXT", (1, 255, 255)),
    "char": ("TEXT", (1, 255, 255)),
    "varchar": ("TEXT", (1, 255, 255)),
    "string": ("TEXT", (1, 255, 255)),
    "binary": ("BINARY", (1, 510, 255)),
    "varbinary": ("VARBINARY", (1, 510, 255)),
}
_UNSIZED_TYPES = {
    "memo": "LONGTEXT",
    "longtext": "LONGTEXT",
    "note": "LONGTEXT",
    "byte": "BYTE",
    "short": "SHORT",
    "smallint": "SHORT",
    "long": "INTEGER",
    "integer": "INTEGER",
    "int": "INTEGER",
    "single": "SINGLE",
    "float": "SINGLE",
    "double": "DOUBLE",
    "real": "DOUBLE",
    "decimal": "DECIMAL",
    "numeric": "DECIMAL",
    "currency": "CURRENCY",
    "money": "CURRENCY",
    "datetime": "DATETIME",
    "date": "DATETIME",
    "time": "DATETIME",
    "yesno": "YESNO",
    "boolean": "YESNO",
    "bool": "YESNO",
    "bit": "YESNO",
    "guid": "GUID",
    "uniqueidentifier": "GUID",
    "counter": "COUNTER",
    "autoincrement": "COUNTER",
    "identity": "COUNTER",
}


def schema_identifier(value: Any, label: str) -> str:
    name = text_arg({"value": value}, "value", label)
    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise PreconditionError(f"Access object names must be {MAX_IDENTIFIER_LENGTH} characters or fewer.")
    return name


def type_declaration(type_name: Any, size: int = 0) -> str:
    """Map a friendly type name onto its Access DDL declaration."""
    normalized = str(type_name or "").strip().lower()
    if not normalized:
        raise PreconditionError("Field type is required")
    if normalized in _SIZED_TYPES:
        declaration, (low, high, default) = _SIZED_TYPES[normalized]
        if size <= 0:
            size = default
        if not low <= size <= high:
            raise PreconditionError(f"{declaration} size must be between {low} and {high}.")
        return f"{declaration}({size})"
    if normalized in _UNSIZED_TYPES:
        declaration = _UNSIZED_TYPES[normalized]
        if size > 0:
            raise PreconditionError(f"{declaration} does not accept a size.")
        return declaration
    raise PreconditionError(f"Unsupported Access field type: {type_name}")


def field_clause(field: Mapping[str, Any]) -> str:
    name = schema_identifier(field.get("name"), "Field name")
    declaration = type_declaration(field.get("type"), int_arg(field, "size", 0))
    required = bool_arg(field, "required", False)
    if declaration == "COUNTER" and required:
        raise PreconditionError("COUNTER fields cannot be explicitly marked as required.")
    clause = f"{quote_identifier(name)} {declaration}"
    if required:
        clause += " NOT NULL"
    return clause


def _require_table(tabular: Any, table: str) -> None:
    if not tabular.table_exists(table):
        raise ObjectNotFoundError(f"Table not found: {table}")


def find_table_def(db: Any, name: str) -> Optional[Any]:
    table_defs = get_member(db, "TableDefs")
    if table_defs is None:
        return None
    try:
        invoke_member(table_defs, "Refresh")
    except Exception:
        logger.debug("TableDefs.Refresh failed", exc_info=True)
    item = get_member(table_defs, "Item", name)
    if item is not None:
        return item
    wanted = name.lower()
    for table_def in iter_collection(table_defs):
        if (safe_str(get_member(table_def, "Name")) or "").lower() == wanted:
            return table_def
    return None


def find_field(table_def: Any, name: str) -> Optional[Any]:
    fields = get_member(table_def, "Fields")
    item = get_member(fields, "Item", name)
    if item is not None:
        return item
    wanted = name.lower()
    for field in iter_collection(fields):
        if (safe_str(get_member(field, "Name")) or "").lower() == wanted:
            return field
    return None


_FIELD_ITEM = {
    "type": "object",
    "properties": {
        "name": string_arg(),
        "type": string_arg("text, memo, byte, short, long, single, double, decimal, currency, datetime, yesno, guid, counter, binary"),
        "size": integer_arg("Size for text and binary types"),
        "required": boolean_arg(),
    },
    "required": ["name", "type"],
}


@tool(
    "create_table",
    "Create a new table in the database",
    properties={"table_name": string_arg(), "fields": array_arg(_FIELD_ITEM)},
    required=("table_name", "fields"),
)
def create_table(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    table = schema_identifier(args.get("table_name"), "Table name")
    fields = args.get("fields")
    if not isinstance(fields, list) or not fields:
        raise PreconditionError("At least one field is required")
    clauses = [field_clause(field if isinstance(field, Mapping) else {}) for field in fields]
    tabular = session.ensure_tabular_connection()
    if tabular.table_exists(table):
        raise PreconditionError(f"Table already exists: {table}")
    tabular.execute_schema(f"CREATE TABLE {quote_identifier(table)} ({', '.join(clauses)})")
    return {"message": f"Created table {table}"}


@tool("delete_table", "Delete a table from the database", properties={"table_name": string_arg()}, required=("table_name",))
def delete_table(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    table = schema_identifier(args.get("table_name"), "Table name")
    tabular = session.ensure_tabular_connection()
    _require_table(tabular, table)
    tabular.execute_schema(f"DROP TABLE {quote_identifier(table)}")
    return {"message": f"Deleted table {table}"}


@tool(
    "add_field",
    "Add a field to an existing table",
    properties={"table_name": string_arg(), "field": _FIELD_ITEM},
    required=("table_name", "field"),
)
def add_field(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    table = schema_identifier(args.get("table_name"), "Table name")
    field = args.get("field")
    if not isinstance(field, Mapping):
        raise PreconditionError("field is required")
    clause = field_clause(field)
    name = schema_identifier(field.get("name"), "Field name")
    tabular = session.ensure_tabular_connection()
    _require_table(tabular, table)
    if tabular.field_exists(table, name):
        raise PreconditionError(f"Field already exists: {table}.{name}")
    tabular.execute_schema(f"ALTER TABLE {quote_identifier(table)} ADD COLUMN {clause}")
    return {"message": f"Added field {table}.{name}"}


@tool(
    "alter_field",
    "Change the data type of a field",
    properties={
        "table_name": string_arg(),
        "field_name": string_arg(),
        "new_type": string_arg(),
        "size": integer_arg(),
    },
    required=("table_name", "field_name", "new_type"),
)
def alter_field(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    table = schema_identifier(args.get("table_name"), "Table name")
    name = schema_identifier(args.get("field_name"), "Field name")
    declaration = type_declaration(args.get("new_type"), int_arg(args, "size", 0))
    if declaration == "COUNTER":
        raise PreconditionError("Altering a field to COUNTER is not supported by Access DDL.")
    tabular = session.ensure_tabular_connection()
    _require_table(tabular, table)
    if not tabular.field_exists(table, name):
        raise ObjectNotFoundError(f"Field not found: {table}.{name}")
    tabular.execute_schema(
        f"ALTER TABLE {quote_identifier(table)} ALTER COLUMN {quote_identifier(name)} {declaration}"
    )
    return {"message": f"Altered field {table}.{name} to {declaration}"}


@tool(
    "drop_field",
    "Remove a field from a table",
    properties={"table_name": string_arg(), "field_name": string_arg()},
    required=("table_name", "field_name"),
)
def drop_field(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    table = schema_identifier(args.get("table_name"), "Table name")
    name = schema_identifier(args.get("field_name"), "Field name")
    tabular = session.ensure_tabular_connection()
    _require_table(tabular, table)
    if not tabular.field_exists(table, name):
        raise ObjectNotFoundError(f"Field not found: {table}.{name}")
    tabular.execute_schema(f"ALTER TABLE {quote_identifier(table)} DROP COLUMN {quote_identifier(name)}")
    return {"message": f"Dropped field {table}.{name}"}


@tool(
    "rename_table",
    "Rename a table",
    properties={"table_name": string_arg(), "new_table_name": string_arg()},
    required=("table_name", "new_table_name"),
)
def rename_table(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    table = schema_identifier(args.get("table_name"), "Table name")
    new_name = schema_identifier(args.get("new_table_name"), "New table name")
    if table.lower() == new_name.lower():
        raise PreconditionError("New table name must be different from the existing table name.")
    tabular = session.ensure_tabular_connection()
    _require_table(tabular, table)
    if tabular.table_exists(new_name):
        raise PreconditionError(f"Table already exists: {new_name}")

    def _rename(app: Any) -> None:
        table_def = find_table_def(current_db(app), table)
        if table_def is None:
            raise ObjectNotFoundError(f"Table not found: {table}")
        set_member(table_def, "Name", new_name)

    session.run_automation(_rename, require_exclusive=True, release_tabular=True)
    return {"message": f"Renamed table {table} to {new_name}"}


@tool(
    "rename_field",
    "Rename a field of a table",
    properties={"table_name": string_arg(), "field_name": string_arg(), "new_field_name": string_arg()},
    required=("table_name", "field_name", "new_field_name"),
)
def rename_field(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    table = schema_identifier(args.get("table_name"), "Table name")
    name = schema_identifier(args.get("field_name"), "Field name")
    new_name = schema_identifier(args.get("new_field_name"), "New field name")
    if name.lower() == new_name.lower():
        raise PreconditionError("New field name must be different from the existing field name.")
    tabular = session.ensure_tabular_connection()
    _require_table(tabular, table)
    if not tabular.field_exists(table, name):
        raise ObjectNotFoundError(f"Field not found: {table}.{name}")
    if tabular.field_exists(table, new_name):
        raise PreconditionError(f"Field already exists: {table}.{new_name}")

    def _rename(app: Any) -> None:
        table_def = find_table_def(current_db(app), table)
        if table_def is None:
            raise ObjectNotFoundError(f"Table not found: {table}")
        field = find_field(table_def, name)
        if field is None:
            raise ObjectNotFoundError(f"Field not found: {table}.{name}")
        set_member(field, "Name", new_name)

    session.run_automation(_rename, require_exclusive=True, release_tabular=True)
    return {"message": f"Renamed field {table}.{name} to {new_name}"}


def _index_columns(raw: Any) -> List[str]:
    columns: List[str] = []
    seen = set()
    for value in raw if isinstance(raw, list) else []:
        name = str(value or "").strip()
        if name and name.lower() not in seen:
            seen.add(name.lower())
            columns.append(name)
    if not columns:
        raise PreconditionError("At least one column is required")
    return columns


@tool(
    "create_index",
    "Create an index on a table",
    properties={
        "table_name": string_arg(),
        "index_name": string_arg(),
        "columns": array_arg(string_arg()),
        "unique": boolean_arg(),
    },
    required=("table_name", "index_name", "columns"),
)
def create_index(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    table = schema_identifier(args.get("table_name"), "Table name")
    index = schema_identifier(args.get("index_name"), "Index name")
    columns = _index_columns(args.get("columns"))
    unique = "UNIQUE " if bool_arg(args, "unique", False) else ""
    column_sql = ", ".join(quote_identifier(c) for c in columns)
    tabular = session.ensure_tabular_connection()
    tabular.execute_schema(f"CREATE {unique}INDEX {quote_identifier(index)} ON {quote_identifier(table)} ({column_sql})")
    return {"message": f"Created index {index} on {table}"}


@tool(
    "delete_index",
    "Delete an index from a table",
    properties={"table_name": string_arg(), "index_name": string_arg()},
    required=("table_name", "index_name"),
)
def delete_index(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    table = schema_identifier(args.get("table_name"), "Table name")
    index = schema_identifier(args.get("index_name"), "Index name")
    tabular = session.ensure_tabular_connection()
    tabular.execute_schema(f"DROP INDEX {quote_identifier(index)} ON {quote_identifier(table)}")
    return {"message": f"Deleted index {index} on {table}"}
