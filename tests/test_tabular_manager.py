from __future__ import annotations

import logging
from pathlib import Path

import pytest

import sys

ROOT = Path(__file__).resolve().parents[1]
TESTS_ROOT = ROOT / "tests"
if str(TESTS_ROOT) not in sys.path:
    sys.path.insert(0, str(TESTS_ROOT))

from access_fakes import FakeConnector, FakeCursor, FakeDatabase, FakeOdbcError, make_database_file

from access_mcp.session.errors import (
    DatabaseNotFoundError,
    NotConnectedError,
    PreconditionError,
    TabularOpenError,
)
from access_mcp.session.state import SessionState
from access_mcp.session.tabular import (
    SqlResult,
    TabularConnectionManager,
    build_connection_strings,
    format_markdown,
    unique_column_names,
)


def _manager(connector: FakeConnector, **kwargs) -> tuple[TabularConnectionManager, SessionState]:
    state = SessionState()
    return TabularConnectionManager(state, connector=connector, **kwargs), state


def _sales_database() -> FakeDatabase:
    db = FakeDatabase()
    db.add_table("Customers", [("ID", "COUNTER", 10, 0), ("Name", "VARCHAR", 255)], rows=3)
    db.add_table("Orders", [("OrderID", "COUNTER", 10, 0), ("CustomerID", "INTEGER", 10)], rows=5)
    db.add_table("MSysObjects", [("Name", "VARCHAR", 255)], system=True)
    db.add_index("Customers", "PrimaryKey", ["ID"])
    db.add_index("Orders", "idx_customer", ["CustomerID"], unique=False)
    return db


def test_connection_strings_prefer_first_driver_with_extended_sql():
    strings = build_connection_strings(
        r"C:\data\Sales.accdb",
        ("{Driver A}", "{Driver B}"),
        password="p;w",
    )
    assert strings == [
        r"DRIVER={Driver A};DBQ=C:\data\Sales.accdb;PWD={p;w};",
        r"DRIVER={Driver A};DBQ=C:\data\Sales.accdb;ExtendedAnsiSQL=1;PWD={p;w};",
        r"DRIVER={Driver B};DBQ=C:\data\Sales.accdb;PWD={p;w};",
    ]


def test_connect_normalizes_path_and_opens(tmp_path):
    db_file = make_database_file(tmp_path)
    connector = FakeConnector()
    manager, state = _manager(connector)

    full = manager.connect(str(db_file))

    assert full == str(db_file.resolve())
    assert state.database_path == full
    assert manager.is_open
    assert len(connector.open_connections) == 1
    assert f"DBQ={full};" in connector.attempts[0]


def test_connect_rejects_missing_file_and_bad_extension(tmp_path):
    manager, state = _manager(FakeConnector())
    with pytest.raises(DatabaseNotFoundError):
        manager.connect(str(tmp_path / "missing.accdb"))
    (tmp_path / "notes.txt").write_text("x")
    with pytest.raises(PreconditionError, match=".accdb or .mdb"):
        manager.connect(str(tmp_path / "notes.txt"))
    with pytest.raises(PreconditionError):
        manager.connect("   ")
    assert state.database_path is None


def test_connect_falls_through_drivers_then_fails_with_guidance(tmp_path):
    db_file = make_database_file(tmp_path)
    connector = FakeConnector(failures=[FakeOdbcError("Data source name not found")] * 3)
    manager, state = _manager(connector)

    with pytest.raises(TabularOpenError, match="Install a Microsoft Access ODBC driver"):
        manager.connect(str(db_file))

    assert len(connector.attempts) == 3
    assert state.database_path is None
    assert not manager.is_open


def test_connect_uses_second_driver_when_first_is_missing(tmp_path):
    db_file = make_database_file(tmp_path)
    connector = FakeConnector(failures=[FakeOdbcError("Data source name not found")] * 2)
    manager, _ = _manager(connector)

    manager.connect(str(db_file))

    assert connector.open_connections[0].conn_str.startswith("DRIVER={Microsoft Access Driver (*.mdb)}")


def test_lock_error_releases_engine_lock_and_retries(tmp_path):
    db_file = make_database_file(tmp_path)
    connector = FakeConnector(failures=[FakeOdbcError("Could not use '(unknown)'; file already in use.")])
    released = []

    def _release() -> bool:
        released.append(True)
        return True

    manager, _ = _manager(connector, release_engine_lock=_release)
    manager.connect(str(db_file))

    assert released == [True]
    assert manager.is_open
    assert len(connector.attempts) == 2


def test_lock_error_propagates_when_nothing_to_release(tmp_path):
    db_file = make_database_file(tmp_path)
    connector = FakeConnector(failures=[FakeOdbcError("file already in use")])
    manager, _ = _manager(connector, release_engine_lock=lambda: False)

    with pytest.raises(FakeOdbcError):
        manager.connect(str(db_file))
    assert len(connector.attempts) == 1


def test_ensure_open_reopens_dead_handle_and_requires_session(tmp_path):
    connector = FakeConnector()
    manager, state = _manager(connector)
    with pytest.raises(NotConnectedError):
        manager.ensure_open()

    manager.connect(str(make_database_file(tmp_path)))
    first = state.tabular_connection
    first.close()

    second = manager.ensure_open()
    assert second is not first
    assert not second.closed


def test_disconnect_clears_credentials(tmp_path):
    manager, state = _manager(FakeConnector())
    manager.connect(str(make_database_file(tmp_path)), password="secret")
    conn = state.tabular_connection

    manager.disconnect()

    assert conn.closed
    assert state.tabular_connection is None
    assert state.database_path is None
    assert state.database_password is None


def test_execute_select_truncates_and_dedupes_columns(tmp_path):
    db = FakeDatabase()
    db.results["SELECT * FROM T"] = (["Name", "name", "Name"], [("a", "b", "c")] * 5)
    manager, _ = _manager(FakeConnector(db))
    manager.connect(str(make_database_file(tmp_path)))

    result = manager.execute("SELECT * FROM T", max_rows=2)

    assert result.is_query
    assert result.columns == ["Name", "name_2", "Name_3"]
    assert result.row_count == 2
    assert result.truncated is True
    assert result.rows[0] == {"Name": "a", "name_2": "b", "Name_3": "c"}


def test_execute_action_reports_rows_affected(tmp_path):
    db = FakeDatabase()
    db.results["DELETE FROM T"] = 4
    manager, _ = _manager(FakeConnector(db))
    manager.connect(str(make_database_file(tmp_path)))

    assert manager.execute("DELETE FROM T").to_dict() == {"is_query": False, "rows_affected": 4}
    with pytest.raises(PreconditionError):
        manager.execute("   ")
    with pytest.raises(PreconditionError):
        manager.execute("SELECT 1", max_rows=0)


def test_unique_column_names_fills_blanks():
    assert unique_column_names(["", None, "Qty", "QTY"]) == ["column", "column_2", "Qty", "QTY_2"]


def test_metadata_lists_tables_columns_and_indexes(tmp_path):
    manager, _ = _manager(FakeConnector(_sales_database()))
    manager.connect(str(make_database_file(tmp_path)))

    assert manager.list_tables() == ["Customers", "Orders"]
    assert manager.list_tables(system_only=True) == ["MSysObjects"]
    assert manager.list_tables(include_system=True) == ["Customers", "Orders", "MSysObjects"]

    columns = manager.columns("Customers")
    assert [c["name"] for c in columns] == ["ID", "Name"]
    assert columns[0]["is_nullable"] is False

    indexes = manager.indexes("Orders")
    assert indexes == [
        {
            "name": "idx_customer",
            "table": "Orders",
            "is_unique": False,
            "is_primary_key": False,
            "columns": ["CustomerID"],
        }
    ]
    assert manager.primary_key_columns("Customers") == ["ID"]
    assert manager.record_count("Orders") == 5


def test_transaction_lifecycle(tmp_path):
    manager, state = _manager(FakeConnector())
    manager.connect(str(make_database_file(tmp_path)))
    conn = state.tabular_connection

    status = manager.begin_transaction()
    assert status["active"] is True
    assert status["started_at_utc"]
    assert conn.autocommit is False
    with pytest.raises(PreconditionError, match="already active"):
        manager.begin_transaction()

    assert manager.commit_transaction() == {"active": False, "started_at_utc": None}
    assert conn.commits == 1
    assert conn.autocommit is True

    manager.begin_transaction()
    manager.rollback_transaction()
    assert conn.rollbacks == 1
    with pytest.raises(PreconditionError, match="No active transaction"):
        manager.commit_transaction()


def test_close_rolls_back_open_transaction(tmp_path):
    manager, state = _manager(FakeConnector())
    manager.connect(str(make_database_file(tmp_path)))
    conn = state.tabular_connection
    manager.begin_transaction()

    manager.close()

    assert conn.rollbacks == 1
    assert state.transaction_started_at is None


def test_format_markdown_escapes_cells():
    result = SqlResult(
        is_query=True,
        columns=["Name", "Note"],
        rows=[{"Name": "a|b", "Note": "line1\nline2"}, {"Name": None, "Note": "x"}],
        truncated=True,
    )
    assert format_markdown(result, 2).splitlines() == [
        "| Name | Note |",
        "| --- | --- |",
        "| a\\|b | line1<br/>line2 |",
        "|  | x |",
        "",
        "_Results truncated to 2 rows._",
    ]
    assert format_markdown(SqlResult(is_query=False, rows_affected=3), 10) == (
        "Statement executed successfully. Rows affected: 3."
    )


def test_record_count_is_zero_when_count_fails(tmp_path):
    db = _sales_database()
    db.results["SELECT COUNT(*) FROM [Orders]"] = FakeOdbcError("no read permission on 'Orders'")
    manager, _ = _manager(FakeConnector(db))
    manager.connect(str(make_database_file(tmp_path)))

    assert manager.record_count("Orders") == 0
    assert manager.record_count("Customers") == 3


def test_cursor_close_failure_is_logged_not_raised(tmp_path, monkeypatch, caplog):
    db = _sales_database()
    db.results["SELECT 1"] = (["one"], [(1,)])
    manager, _ = _manager(FakeConnector(db))
    manager.connect(str(make_database_file(tmp_path)))

    def _broken_close(self):
        raise FakeOdbcError("Invalid cursor state")

    monkeypatch.setattr(FakeCursor, "close", _broken_close)
    caplog.set_level(logging.DEBUG, logger="access_mcp.session.tabular")

    assert manager.execute("SELECT 1").rows == [{"one": 1}]
    assert manager.scalar("SELECT 1") == 1
    assert caplog.text.count("Closing cursor failed") == 2


def test_execute_schema_reopens_connection_after_change(tmp_path):
    connector = FakeConnector()
    manager, state = _manager(connector)
    manager.connect(str(make_database_file(tmp_path)))
    first = state.tabular_connection

    manager.execute_schema("DROP TABLE [Old]")

    assert first.executed == [("DROP TABLE [Old]", ())]
    assert first.closed
    assert state.tabular_connection is not first
    assert manager.is_open


def test_execute_schema_refuses_during_transaction(tmp_path):
    manager, state = _manager(FakeConnector())
    manager.connect(str(make_database_file(tmp_path)))
    manager.begin_transaction()

    with pytest.raises(PreconditionError, match="transaction is active"):
        manager.execute_schema("DROP TABLE [Old]")
    assert state.tabular_connection.executed == []


def test_execute_schema_retries_once_after_releasing_engine_lock(tmp_path):
    db = FakeDatabase()
    db.failures["DROP TABLE [Old]"] = [
        FakeOdbcError("Could not use 'Sales.accdb'; file already in use."),
    ]
    released = []
    connector = FakeConnector(db)
    manager, _ = _manager(connector, release_engine_lock=lambda: released.append(True) or True)
    manager.connect(str(make_database_file(tmp_path)))

    manager.execute_schema("DROP TABLE [Old]")

    assert released == [True]
    executed = [sql for conn in connector.connections for sql, _ in conn.executed]
    assert executed == ["DROP TABLE [Old]", "DROP TABLE [Old]"]


def test_execute_schema_propagates_lock_error_when_release_fails(tmp_path):
    db = FakeDatabase()
    db.failures["DROP TABLE [Old]"] = [FakeOdbcError("file already in use")]
    manager, _ = _manager(FakeConnector(db), release_engine_lock=lambda: False)
    manager.connect(str(make_database_file(tmp_path)))

    with pytest.raises(FakeOdbcError, match="already in use"):
        manager.execute_schema("DROP TABLE [Old]")
