"""
tabular.py  –  the lightweight ODBC connection to the backing database

Used for schema enumeration and direct SQL.  Holds at most one live
``pyodbc`` connection, always pointing at the session's current file.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

import pyodbc

from ..internal.paths import normalize_database_path, normalize_system_database_path
from .dynamic import to_jsonable
from .errors import NotConnectedError, PreconditionError, TabularOpenError
from .recovery import RecoverySignatures
from .state import SessionState

logger = logging.getLogger(__name__)

DEFAULT_DRIVERS = (
    "{Microsoft Access Driver (*.mdb, *.accdb)}",
    "{Microsoft Access Driver (*.mdb)}",
)

Connector = Callable[[str], Any]


def odbc_connect(conn_str: str) -> Any:
    """Open a pyodbc connection in autocommit mode."""
    return pyodbc.connect(conn_str, autocommit=True)


def escape_odbc_value(value: str) -> str:
    if any(ch in value for ch in ";{} "):
        return "{" + value.replace("}", "}}") + "}"
    return value


def build_connection_strings(
    path: str,
    drivers: Sequence[str] = DEFAULT_DRIVERS,
    *,
    password: Optional[str] = None,
    system_database_path: Optional[str] = None,
    extended_ansi_sql: bool = True,
) -> List[str]:
    """Return the ODBC connection strings to try, most preferred first."""
    security = ""
    if password:
        security += f"PWD={escape_odbc_value(password)};"
    if system_database_path:
        security += f"SystemDB={escape_odbc_value(system_database_path)};"

    result: List[str] = []
    for index, driver in enumerate(drivers):
        result.append(f"DRIVER={driver};DBQ={path};{security}")
        if index == 0 and extended_ansi_sql:
            result.append(f"DRIVER={driver};DBQ={path};ExtendedAnsiSQL=1;{security}")
    return result


def unique_column_names(raw_names: Sequence[Optional[str]]) -> List[str]:
    """Make column names unique: ``Name``, ``Name_2``, ``Name_3``..."""
    seen: Dict[str, int] = {}
    result: List[str] = []
    for raw in raw_names:
        base = raw if raw and str(raw).strip() else "column"
        key = base.lower()
        if key not in seen:
            seen[key] = 1
            result.append(base)
            continue
        seen[key] += 1
        result.append(f"{base}_{seen[key]}")
    return result


def quote_identifier(name: str) -> str:
    return "[" + name.replace("]", "]]") + "]"


def is_system_table(name: str) -> bool:
    return name.startswith("~") or name.lower().startswith("msys")


@dataclass
class SqlResult:
    is_query: bool
    columns: List[str] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    truncated: bool = False
    rows_affected: int = 0

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_dict(self) -> Dict[str, Any]:
        if not self.is_query:
            return {"is_query": False, "rows_affected": self.rows_affected}
        return {
            "is_query": True,
            "columns": list(self.columns),
            "rows": list(self.rows),
            "row_count": self.row_count,
            "truncated": self.truncated,
        }


def _escape_markdown_cell(value: Any) -> str:
    if value is None:
        return ""
    text = str(value)
    return (
        text.replace("\\", "\\\\")
        .replace("|", "\\|")
        .replace("\r", " ")
        .replace("\n", "<br/>")
    )


def format_markdown(result: SqlResult, max_rows: int) -> str:
    """Render ``result`` as a markdown pipe table (or an action summary)."""
    if not result.is_query:
        return f"Statement executed successfully. Rows affected: {result.rows_affected}."
    if not result.columns:
        return "No columns returned."
    lines = [
        "| " + " | ".join(_escape_markdown_cell(c) for c in result.columns) + " |",
        "| " + " | ".join("---" for _ in result.columns) + " |",
    ]
    for row in result.rows:
        lines.append("| " + " | ".join(_escape_markdown_cell(row.get(c)) for c in result.columns) + " |")
    if result.truncated:
        lines.append("")
        lines.append(f"_Results truncated to {max_rows} rows._")
    return "\n".join(lines)


class TabularConnectionManager:
    """Owner of the single ODBC connection of a session."""

    def __init__(
        self,
        state: SessionState,
        *,
        signatures: RecoverySignatures | None = None,
        connector: Connector | None = None,
        drivers: Sequence[str] = DEFAULT_DRIVERS,
        extended_ansi_sql: bool = True,
        release_engine_lock: Callable[[], bool] | None = None,
    ) -> None:
        self._state = state
        self._signatures = signatures or RecoverySignatures()
        self._connector = connector or odbc_connect
        self._drivers = tuple(drivers) or DEFAULT_DRIVERS
        self._extended_ansi_sql = extended_ansi_sql
        self._release_engine_lock = release_engine_lock

    def bind_engine_release(self, release: Callable[[], bool]) -> None:
        self._release_engine_lock = release

    @property
    def is_open(self) -> bool:
        return self._state.tabular_open

    # ── connect / disconnect ───────────────────────────────────────
    def connect(
        self,
        path: str,
        password: Optional[str] = None,
        system_database_path: Optional[str] = None,
    ) -> str:
        """Validate ``path``, store it on the session and open the connection."""
        normalized = normalize_database_path(path, require_exists=True)
        workgroup = normalize_system_database_path(system_database_path)

        self.close()
        self._state.database_path = normalized
        self._state.database_password = password or None
        self._state.system_database_path = workgroup
        try:
            self._open_with_lock_recovery(normalized)
        except Exception:
            self._state.clear_credentials()
            raise
        logger.info("Tabular connection opened for %s", normalized)
        return normalized

    def disconnect(self) -> None:
        self.close()
        self._state.clear_credentials()

    def close(self, *, rollback: bool = True) -> None:
        conn = self._state.tabular_connection
        if conn is None:
            return
        if rollback and self._state.transaction_started_at is not None:
            try:
                conn.rollback()
            except Exception:
                logger.debug("Rollback during close failed", exc_info=True)
        self._state.transaction_started_at = None
        try:
            conn.close()
        except Exception:
            logger.debug("Closing tabular connection failed", exc_info=True)
        self._state.tabular_connection = None

    # ── open ───────────────────────────────────────────────────────
    def ensure_open(self) -> Any:
        """Return the live connection, reopening it from the session path."""
        if self._state.tabular_open:
            return self._state.tabular_connection
        if self._state.tabular_connection is not None:
            # handle died underneath us; its transaction went with it
            self._state.tabular_connection = None
            self._state.transaction_started_at = None
        if not self._state.is_connected:
            raise NotConnectedError()
        self._open_with_lock_recovery(self._state.database_path or "")
        return self._state.tabular_connection

    def reopen(self) -> Any:
        """Open against the session's current path (used after a release)."""
        if not self._state.is_connected:
            raise NotConnectedError()
        self._open_with_lock_recovery(self._state.database_path or "")
        return self._state.tabular_connection

    def _open_with_lock_recovery(self, path: str) -> None:
        try:
            self._open(path)
        except Exception as exc:
            if not self._signatures.is_recoverable_lock_error(exc):
                raise
            release = self._release_engine_lock
            if release is None or not release():
                raise
            logger.warning("Database %s was locked by the automation engine; released and retrying", path)
            self._open(path)

    def _open(self, path: str) -> None:
        self.close()
        last_error: Exception | None = None
        for conn_str in build_connection_strings(
            path,
            self._drivers,
            password=self._state.database_password,
            system_database_path=self._state.system_database_path,
            extended_ansi_sql=self._extended_ansi_sql,
        ):
            try:
                self._state.tabular_connection = self._connector(conn_str)
                return
            except TabularOpenError:
                raise
            except Exception as exc:
                last_error = exc
                if self._signatures.is_recoverable_lock_error(exc):
                    # another driver won't help with a locked file
                    raise
        raise TabularOpenError(
            "Failed to open Access database via ODBC. Install a Microsoft Access ODBC driver "
            f"(Microsoft Access Driver (*.mdb, *.accdb)). Last ODBC error: {last_error}"
        ) from last_error

    # ── queries ────────────────────────────────────────────────────
    def cursor(self) -> Any:
        return self.ensure_open().cursor()

    def execute(self, sql: str, max_rows: int = 200, params: Sequence[Any] = ()) -> SqlResult:
        if not sql or not sql.strip():
            raise PreconditionError("SQL is required")
        if max_rows <= 0:
            raise PreconditionError("max_rows must be greater than 0")
        cur = self.cursor()
        try:
            cur.execute(sql, *params)
            if cur.description is None:
                affected = getattr(cur, "rowcount", -1)
                return SqlResult(is_query=False, rows_affected=int(affected if affected is not None else -1))
            columns = unique_column_names([d[0] for d in cur.description])
            fetched = cur.fetchmany(max_rows + 1)
            truncated = len(fetched) > max_rows
            rows = [
                {col: to_jsonable(value) for col, value in zip(columns, row)}
                for row in fetched[:max_rows]
            ]
            return SqlResult(is_query=True, columns=columns, rows=rows, truncated=truncated)
        finally:
            try:
                cur.close()
            except Exception:
                logger.debug("Closing cursor failed", exc_info=True)

    def scalar(self, sql: str, params: Sequence[Any] = ()) -> Any:
        cur = self.cursor()
        try:
            row = cur.execute(sql, *params).fetchone()
            return None if row is None else row[0]
        finally:
            try:
                cur.close()
            except Exception:
                logger.debug("Closing cursor failed", exc_info=True)

    def execute_schema(self, sql: str) -> int:
        """Run a DDL statement and reopen so the catalog reflects the change.

        A lock error on the first attempt releases the automation engine's
        hold on the file and retries once.
        """
        if self._state.transaction_started_at is not None:
            raise PreconditionError("Schema mutation is not allowed while a transaction is active")
        affected = -1
        for attempt in (1, 2):
            try:
                cur = self.cursor()
                try:
                    cur.execute(sql)
                    affected = getattr(cur, "rowcount", -1)
                finally:
                    try:
                        cur.close()
                    except Exception:
                        logger.debug("Closing cursor failed", exc_info=True)
                break
            except Exception as exc:
                release = self._release_engine_lock
                if (
                    attempt == 2
                    or not self._signatures.is_recoverable_lock_error(exc)
                    or release is None
                    or not release()
                ):
                    raise
                logger.warning("Schema change hit a lock held by the automation engine; released and retrying")
                self.close()
        self.refresh_after_schema_change()
        return int(affected if affected is not None else -1)

    def refresh_after_schema_change(self) -> None:
        try:
            self.reopen()
        except Exception:
            # the next call reopens through ensure_open
            logger.warning("Reopening after a schema change failed; deferring", exc_info=True)
            self.close(rollback=False)

    # ── metadata ───────────────────────────────────────────────────
    def list_tables(self, *, include_system: bool = False, system_only: bool = False) -> List[str]:
        cur = self.cursor()
        names: List[str] = []
        for table_type in ("TABLE", "SYSTEM TABLE"):
            for row in cur.tables(tableType=table_type):
                name = str(getattr(row, "table_name", "") or "")
                if not name or name in names:
                    continue
                system = is_system_table(name)
                if system_only and not system:
                    continue
                if not system_only and system and not include_system:
                    continue
                names.append(name)
        return names

    def table_exists(self, table: str) -> bool:
        """True for local and linked tables, compared case-insensitively."""
        wanted = table.strip().lower()
        cur = self.cursor()
        for row in cur.tables():
            name = str(getattr(row, "table_name", "") or "")
            if name.lower() != wanted:
                continue
            table_type = str(getattr(row, "table_type", "") or "").upper()
            if not table_type or "TABLE" in table_type or "LINK" in table_type:
                return True
        return False

    def field_exists(self, table: str, field_name: str) -> bool:
        wanted = field_name.strip().lower()
        return any(column["name"].lower() == wanted for column in self.columns(table))

    def columns(self, table: str) -> List[Dict[str, Any]]:
        cur = self.cursor()
        result: List[Dict[str, Any]] = []
        for row in cur.columns(table=table):
            result.append(
                {
                    "name": str(getattr(row, "column_name", "") or ""),
                    "data_type": str(getattr(row, "type_name", "") or "Unknown"),
                    "data_type_code": getattr(row, "data_type", None),
                    "ordinal_position": getattr(row, "ordinal_position", None),
                    "max_length": getattr(row, "column_size", None),
                    "numeric_scale": getattr(row, "decimal_digits", None),
                    "is_nullable": bool(getattr(row, "nullable", 1)),
                    "default_value": to_jsonable(getattr(row, "column_def", None)),
                }
            )
        result.sort(key=lambda c: (c["ordinal_position"] is None, c["ordinal_position"] or 0, c["name"].lower()))
        return result

    def indexes(self, table: str) -> List[Dict[str, Any]]:
        cur = self.cursor()
        found: Dict[str, Dict[str, Any]] = {}
        for row in cur.statistics(table):
            index_name = getattr(row, "index_name", None)
            if not index_name:
                continue
            entry = found.setdefault(
                index_name,
                {
                    "name": index_name,
                    "table": table,
                    "is_unique": not bool(getattr(row, "non_unique", True)),
                    "is_primary_key": str(index_name).lower() == "primarykey",
                    "_columns": [],
                },
            )
            entry["_columns"].append((getattr(row, "ordinal_position", 0) or 0, getattr(row, "column_name", "")))
        result: List[Dict[str, Any]] = []
        for entry in found.values():
            ordered = [name for _, name in sorted(entry.pop("_columns"))]
            entry["columns"] = ordered
            result.append(entry)
        result.sort(key=lambda e: e["name"].lower())
        return result

    def primary_key_columns(self, table: str) -> List[str]:
        for index in self.indexes(table):
            if index["is_primary_key"]:
                return list(index["columns"])
        return []

    def record_count(self, table: str) -> int:
        try:
            value = self.scalar(f"SELECT COUNT(*) FROM {quote_identifier(table)}")
        except pyodbc.Error:
            return 0
        return int(value or 0)

    # ── transactions ───────────────────────────────────────────────
    def begin_transaction(self) -> Dict[str, Any]:
        conn = self.ensure_open()
        if self._state.transaction_started_at is not None:
            raise PreconditionError("A transaction is already active")
        conn.autocommit = False
        self._state.transaction_started_at = datetime.now(timezone.utc)
        return self.transaction_status()

    def commit_transaction(self) -> Dict[str, Any]:
        conn = self._require_transaction()
        try:
            conn.commit()
        finally:
            self._end_transaction(conn)
        return self.transaction_status()

    def rollback_transaction(self) -> Dict[str, Any]:
        conn = self._require_transaction()
        try:
            conn.rollback()
        finally:
            self._end_transaction(conn)
        return self.transaction_status()

    def transaction_status(self) -> Dict[str, Any]:
        started = self._state.transaction_started_at if self._state.transaction_active else None
        return {
            "active": started is not None,
            "started_at_utc": started.isoformat() if started else None,
        }

    def _require_transaction(self) -> Any:
        if not self._state.transaction_active:
            self._state.transaction_started_at = None
            raise PreconditionError("No active transaction")
        return self._state.tabular_connection

    def _end_transaction(self, conn: Any) -> None:
        self._state.transaction_started_at = None
        try:
            conn.autocommit = True
        except Exception:
            logger.debug("Restoring autocommit failed", exc_info=True)


__all__ = [
    "DEFAULT_DRIVERS",
    "SqlResult",
    "TabularConnectionManager",
    "build_connection_strings",
    "escape_odbc_value",
    "format_markdown",
    "is_system_table",
    "odbc_connect",
    "quote_identifier",
    "unique_column_names",
]
