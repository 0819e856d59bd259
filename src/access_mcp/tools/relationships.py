"""Relationships through the DAO ``Relations`` collection."""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from ..session.dynamic import get_member, invoke_member, iter_collection, safe_str, set_member, to_int
from ..session.errors import MemberAccessError, ObjectNotFoundError, PreconditionError
from .common import bool_arg, current_db, optional_text, require_connected, text_arg
from .registry import boolean_arg, string_arg, tool

logger = logging.getLogger(__name__)

# dbRelationAttributeEnum
DB_RELATION_DONT_ENFORCE = 2
DB_RELATION_UPDATE_CASCADE = 256
DB_RELATION_DELETE_CASCADE = 4096

_NAME_FRAGMENT = re.compile(r"[^0-9a-z]")


def _fragment(value: str) -> str:
    cleaned = _NAME_FRAGMENT.sub("_", value.strip().lower()).strip("_")
    return cleaned or "x"


def default_relationship_name(table: str, field: str, foreign_table: str, foreign_field: str) -> str:
    name = "rel_" + "_".join(_fragment(part) for part in (table, field, foreign_table, foreign_field))
    return name[:64]


def relationship_attributes(enforce_integrity: bool, cascade_update: bool, cascade_delete: bool) -> int:
    attributes = 0
    if not enforce_integrity:
        attributes |= DB_RELATION_DONT_ENFORCE
    if cascade_update:
        attributes |= DB_RELATION_UPDATE_CASCADE
    if cascade_delete:
        attributes |= DB_RELATION_DELETE_CASCADE
    return attributes


def find_relation(db: Any, name: str) -> Optional[Any]:
    wanted = name.lower()
    for relation in iter_collection(get_member(db, "Relations")):
        if (safe_str(get_member(relation, "Name")) or "").lower() == wanted:
            return relation
    return None


def _describe(relation: Any) -> Optional[Dict[str, Any]]:
    name = safe_str(get_member(relation, "Name"))
    # ~ names are Access's hidden system relations
    if not name or name.startswith("~"):
        return None
    field = foreign_field = ""
    for relation_field in iter_collection(get_member(relation, "Fields")):
        # Name is the primary-side column, ForeignName the dependent side
        field = safe_str(get_member(relation_field, "Name")) or ""
        foreign_field = safe_str(get_member(relation_field, "ForeignName")) or ""
        break
    attributes = to_int(get_member(relation, "Attributes"))
    return {
        "name": name,
        "table": safe_str(get_member(relation, "Table")) or "",
        "field": field,
        "foreign_table": safe_str(get_member(relation, "ForeignTable")) or "",
        "foreign_field": foreign_field,
        "enforce_integrity": not attributes & DB_RELATION_DONT_ENFORCE,
        "cascade_update": bool(attributes & DB_RELATION_UPDATE_CASCADE),
        "cascade_delete": bool(attributes & DB_RELATION_DELETE_CASCADE),
        "attributes": attributes,
    }


def _list_relations(app: Any) -> List[Dict[str, Any]]:
    result = []
    for relation in iter_collection(get_member(current_db(app), "Relations")):
        entry = _describe(relation)
        if entry is not None:
            result.append(entry)
    return result


def _create_relation(db: Any, name: str, args: Dict[str, Any]) -> None:
    if find_relation(db, name) is not None:
        raise PreconditionError(f"Relationship already exists: {name}")
    attributes = relationship_attributes(
        bool_arg(args, "enforce_integrity", True),
        bool_arg(args, "cascade_update", False),
        bool_arg(args, "cascade_delete", False),
    )
    relation = invoke_member(db, "CreateRelation", name, args["table_name"], args["foreign_table_name"], attributes)
    if relation is None:
        raise MemberAccessError("Failed to create DAO Relation object.")
    relation_field = invoke_member(relation, "CreateField", args["field_name"])
    set_member(relation_field, "ForeignName", args["foreign_field_name"])
    invoke_member(get_member(relation, "Fields"), "Append", relation_field)
    invoke_member(get_member(db, "Relations"), "Append", relation)


def _relationship_args(args: Dict[str, Any]) -> Dict[str, Any]:
    parsed = dict(args)
    parsed["table_name"] = text_arg(args, "table_name", "Table name")
    parsed["field_name"] = text_arg(args, "field_name", "Field name")
    parsed["foreign_table_name"] = text_arg(args, "foreign_table_name", "Foreign table name")
    parsed["foreign_field_name"] = text_arg(args, "foreign_field_name", "Foreign field name")
    return parsed


_RELATIONSHIP_PROPERTIES = {
    "relationship_name": string_arg(),
    "table_name": string_arg("Primary table"),
    "field_name": string_arg("Primary key column"),
    "foreign_table_name": string_arg("Dependent table"),
    "foreign_field_name": string_arg("Foreign key column"),
    "enforce_integrity": boolean_arg(),
    "cascade_update": boolean_arg(),
    "cascade_delete": boolean_arg(),
}
_RELATIONSHIP_REQUIRED = ("table_name", "field_name", "foreign_table_name", "foreign_field_name")


@tool("get_relationships", "Get list of all relationships in the database")
def get_relationships(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    relationships: List[Dict[str, Any]] = []
    try:
        relationships = session.run_automation(_list_relations)
    except Exception:
        logger.info("Reading Relations through Access failed", exc_info=True)
    relationships.sort(key=lambda r: r["name"].lower())
    return {"relationships": relationships}


@tool(
    "create_relationship",
    "Create a relationship between two tables",
    properties=_RELATIONSHIP_PROPERTIES,
    required=_RELATIONSHIP_REQUIRED,
)
def create_relationship(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    parsed = _relationship_args(args)
    name = optional_text(args, "relationship_name") or default_relationship_name(
        parsed["table_name"], parsed["field_name"], parsed["foreign_table_name"], parsed["foreign_field_name"]
    )
    session.run_automation(lambda app: _create_relation(current_db(app), name, parsed))
    return {"relationship_name": name, "message": f"Created relationship {name}"}


@tool(
    "update_relationship",
    "Replace an existing relationship definition",
    properties=_RELATIONSHIP_PROPERTIES,
    required=("relationship_name",) + _RELATIONSHIP_REQUIRED,
)
def update_relationship(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    name = text_arg(args, "relationship_name", "Relationship name")
    parsed = _relationship_args(args)

    def _update(app: Any) -> None:
        db = current_db(app)
        existing = find_relation(db, name)
        if existing is None:
            raise ObjectNotFoundError(f"Relationship not found: {name}")
        invoke_member(get_member(db, "Relations"), "Delete", safe_str(get_member(existing, "Name")) or name)
        _create_relation(db, name, parsed)

    session.run_automation(_update)
    return {"relationship_name": name, "message": f"Updated relationship {name}"}


@tool(
    "delete_relationship",
    "Delete a relationship",
    properties={"relationship_name": string_arg()},
    required=("relationship_name",),
)
def delete_relationship(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    name = text_arg(args, "relationship_name", "Relationship name")

    def _delete(app: Any) -> None:
        db = current_db(app)
        existing = find_relation(db, name)
        if existing is None:
            raise ObjectNotFoundError(f"Relationship not found: {name}")
        invoke_member(get_member(db, "Relations"), "Delete", safe_str(get_member(existing, "Name")) or name)

    session.run_automation(_delete)
    return {"message": f"Deleted relationship {name}"}
