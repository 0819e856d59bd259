from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..session.dynamic import get_member, invoke_member, iter_collection, safe_str, set_member, to_int
from ..session.errors import ObjectNotFoundError, PreconditionError
from .common import current_db, require_connected, text_arg
from .registry import string_arg, tool

logger = logging.getLogger(__name__)

QUERY_DEF_TYPES = {
    0: "Select",
    16: "Crosstab",
    32: "Delete",
    48: "Update",
    64: "Append",
    80: "MakeTable",
    96: "DDL",
    112: "PassThrough",
    128: "Union",
}


def query_type_label(code: int) -> str:
    return QUERY_DEF_TYPES.get(code, f"QueryType({code})")


def find_query_def(db: Any, name: str) -> Optional[Any]:
    wanted = name.lower()
    for query_def in iter_collection(get_member(db, "QueryDefs")):
        if (safe_str(get_member(query_def, "Name")) or "").lower() == wanted:
            return query_def
    return None


def _dao_queries(app: Any) -> List[Dict[str, Any]]:
    db = current_db(app)
    result: List[Dict[str, Any]] = []
    for query_def in iter_collection(get_member(db, "QueryDefs")):
        name = safe_str(get_member(query_def, "Name"))
        # ~sq_ names are the hidden queries behind form and control record sources
        if not name or name.startswith("~"):
            continue
        result.append(
            {
                "name": name,
                "sql": (safe_str(get_member(query_def, "SQL")) or "").strip(),
                "type": query_type_label(to_int(get_member(query_def, "Type"))),
            }
        )
    return result


@tool("get_queries", "Get list of all saved queries with their SQL")
def get_queries(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    queries: List[Dict[str, Any]] = []
    try:
        queries = session.run_automation(_dao_queries)
    except Exception:
        logger.info("Reading QueryDefs through Access failed; using ODBC views", exc_info=True)
    if not queries:
        tabular = session.ensure_tabular_connection()
        cur = tabular.cursor()
        for row in cur.tables(tableType="VIEW"):
            name = str(getattr(row, "table_name", "") or "")
            if name and not name.startswith("~"):
                queries.append({"name": name, "sql": "", "type": "Query"})
    queries.sort(key=lambda q: q["name"].lower())
    return {"queries": queries}


_QUERY_PROPERTIES = {"query_name": string_arg(), "sql": string_arg()}


@tool("create_query", "Create a saved query", properties=_QUERY_PROPERTIES, required=("query_name", "sql"))
def create_query(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    name = text_arg(args, "query_name", "Query name")
    sql = text_arg(args, "sql", "SQL")

    def _create(app: Any) -> None:
        db = current_db(app)
        if find_query_def(db, name) is not None:
            raise PreconditionError(f"Query already exists: {name}")
        invoke_member(db, "CreateQueryDef", name, sql)

    session.run_automation(_create)
    return {"message": f"Created query {name}"}


@tool("update_query", "Replace the SQL of a saved query", properties=_QUERY_PROPERTIES, required=("query_name", "sql"))
def update_query(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    name = text_arg(args, "query_name", "Query name")
    sql = text_arg(args, "sql", "SQL")

    def _update(app: Any) -> None:
        query_def = find_query_def(current_db(app), name)
        if query_def is None:
            raise ObjectNotFoundError(f"Query not found: {name}")
        set_member(query_def, "SQL", sql)

    session.run_automation(_update)
    return {"message": f"Updated query {name}"}


@tool("delete_query", "Delete a saved query", properties={"query_name": string_arg()}, required=("query_name",))
def delete_query(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    name = text_arg(args, "query_name", "Query name")

    def _delete(app: Any) -> None:
        db = current_db(app)
        if find_query_def(db, name) is None:
            raise ObjectNotFoundError(f"Query not found: {name}")
        invoke_member(get_member(db, "QueryDefs"), "Delete", name)

    session.run_automation(_delete)
    return {"message": f"Deleted query {name}"}
