from __future__ import annotations

from pathlib import Path

import pytest

import sys

ROOT = Path(__file__).resolve().parents[1]
TESTS_ROOT = ROOT / "tests"
if str(TESTS_ROOT) not in sys.path:
    sys.path.insert(0, str(TESTS_ROOT))

from access_fakes import (
    FakeCatalog,
    FakeConnector,
    FakeControl,
    FakeDesignObject,
    FakeEngineFactory,
    FakeOdbcError,
    exclusive_lock_error,
    make_database_file,
    make_session,
)

from access_mcp.session.errors import AccessMcpError, NotConnectedError, PreconditionError
from access_mcp.session.objects import ObjectKind, close_if_opened_here, ensure_open


def _catalog() -> FakeCatalog:
    catalog = FakeCatalog()
    catalog.forms["Customers"] = [FakeControl("txtName"), FakeControl("cmdSave", 104)]
    return catalog


def test_shared_read_keeps_tabular_open_without_engine(tmp_path):
    session, connector, factory = make_session()
    db_file = make_database_file(tmp_path, "A.accdb")
    session.connect(str(db_file))

    tabular = session.ensure_tabular_connection()
    tabular.list_tables()

    state = session.snapshot()
    assert state["connected"] is True
    assert state["tabular_open"] is True
    assert state["engine_present"] is False
    assert factory.instances == []


def test_exclusive_design_edit_releases_and_restores_tabular(tmp_path):
    session, connector, factory = make_session(factory=FakeEngineFactory(_catalog()))
    full = session.connect(str(make_database_file(tmp_path, "A.accdb")))
    observed = {}

    def _edit(app, form):
        observed["tabular_open"] = session.tabular.is_open
        observed["release_depth"] = session.state.release_depth
        session.set_member(form.Controls[0], "Width", 2880)
        return form.Controls[0].Width

    assert session.with_loaded_object("form", "Customers", _edit) == 2880

    assert observed == {"tabular_open": False, "release_depth": 1}
    state = session.snapshot()
    assert state["tabular_open"] is True
    assert state["engine_present"] is True
    assert state["engine_exclusive"] is True
    assert state["engine_database_path"] == full
    assert state["release_depth"] == 0
    assert len(connector.connections) == 2
    # the form was opened by this call, so it is closed again
    app = factory.instances[0]
    assert app.Forms == []
    assert ("Close", 2, "Customers", 2) in app.calls


def test_lock_contention_on_first_exclusive_attempt_is_retried(tmp_path):
    factory = FakeEngineFactory(_catalog(), open_failures=[exclusive_lock_error()])
    session, _, _ = make_session(factory=factory)
    session.connect(str(make_database_file(tmp_path)))

    names = session.with_loaded_object(
        ObjectKind.FORM, "Customers", lambda app, form: [c.Name for c in form.Controls]
    )

    assert names == ["txtName", "cmdSave"]
    assert len(factory.instances) == 2
    assert factory.instances[0].quit_options == [2]
    assert factory.instances[1].quit_options == []


def test_form_already_open_remains_open(tmp_path):
    session, _, factory = make_session(factory=FakeEngineFactory(_catalog()))
    session.connect(str(make_database_file(tmp_path)))

    def _check(app):
        app.Forms.append(FakeDesignObject("Customers", []))
        _, opened_here = ensure_open(app, ObjectKind.FORM, "Customers")
        close_if_opened_here(app, ObjectKind.FORM, "Customers", opened_here)
        return opened_here, [f.Name for f in app.Forms]

    assert session.run_automation(_check) == (False, ["Customers"])

    # with_loaded_object leaves a user-opened form alone too
    session.with_loaded_object("form", "Customers", lambda app, form: None, design_view=False)
    assert [f.Name for f in factory.instances[0].Forms] == ["Customers"]


def test_disconnect_shuts_engine_down_and_clears_state(tmp_path):
    session, connector, factory = make_session()
    session.connect(str(make_database_file(tmp_path)), password="pw")
    session.run_automation(lambda app: None, require_exclusive=True)
    app = factory.instances[0]

    session.disconnect()

    assert app.quit_options == [2]
    assert connector.open_connections == []
    assert session.snapshot() == {
        "connected": False,
        "database_path": None,
        "tabular_open": False,
        "transaction_active": False,
        "engine_present": False,
        "engine_database_path": None,
        "engine_exclusive": False,
        "release_depth": 0,
    }
    assert session.state.database_password is None
    with pytest.raises(NotConnectedError):
        session.ensure_tabular_connection()


def test_connect_switches_target_file(tmp_path):
    session, connector, factory = make_session()
    first = session.connect(str(make_database_file(tmp_path, "A.accdb")))
    session.run_automation(lambda app: None)
    second = session.connect(str(make_database_file(tmp_path, "B.accdb")))

    session.run_automation(lambda app: None)

    app = factory.instances[0]
    assert app.open_path == second
    assert session.state.engine_database_path == second
    assert first != second
    assert len(connector.open_connections) == 1
    assert f"DBQ={second};" in connector.open_connections[0].conn_str


def test_tabular_open_recovers_from_engine_exclusive_lock(tmp_path):
    session, connector, factory = make_session()
    session.connect(str(make_database_file(tmp_path)))
    session.run_automation(lambda app: None, require_exclusive=True)
    session.tabular.close()
    connector.failures = [FakeOdbcError("Could not use '(unknown)'; file already in use.")]

    session.ensure_tabular_connection()

    assert session.tabular.is_open
    assert session.state.engine_exclusive is False
    assert factory.instances[0].open_path == ""


def test_exclusive_call_during_transaction_is_refused(tmp_path):
    session, _, factory = make_session(factory=FakeEngineFactory(_catalog()))
    session.connect(str(make_database_file(tmp_path)))
    session.ensure_tabular_connection().begin_transaction()

    with pytest.raises(PreconditionError, match="transaction is active"):
        session.with_loaded_object("form", "Customers", lambda app, form: None)
    assert factory.instances == []


def test_close_access_reports_whether_instance_existed(tmp_path):
    session, _, factory = make_session()
    session.connect(str(make_database_file(tmp_path)))
    assert session.close_access() is False

    session.launch_access(visible=True)
    assert factory.instances[0].Visible is True
    assert session.close_access() is True
    assert session.snapshot()["engine_present"] is False
    assert session.snapshot()["connected"] is True


def test_context_manager_closes_session(tmp_path):
    session, connector, factory = make_session(connector=FakeConnector())
    with session:
        session.connect(str(make_database_file(tmp_path)))
        session.run_automation(lambda app: None)
    assert connector.open_connections == []
    assert factory.live == []


def test_whole_file_work_detaches_and_reconnects(tmp_path):
    session, connector, factory = make_session()
    db_file = make_database_file(tmp_path)
    target = session.connect(str(db_file))
    session.run_automation(lambda app: None)
    seen = []

    def _body():
        seen.append((session.is_connected, len(connector.open_connections), len(factory.live)))
        return "copied"

    assert session.with_connected_database_released(str(db_file), "backup_database", _body) == "copied"

    assert seen == [(False, 0, 0)]
    assert session.is_connected
    assert session.database_path == target
    assert len(connector.open_connections) == 1


def test_whole_file_work_on_other_file_leaves_session_alone(tmp_path):
    session, connector, _ = make_session()
    session.connect(str(make_database_file(tmp_path, "A.accdb")))
    other = make_database_file(tmp_path, "B.accdb")

    result = session.with_connected_database_released(str(other), "backup_database", lambda: session.is_connected)

    assert result is True
    assert len(connector.connections) == 1


def test_whole_file_work_failure_reconnects_and_reraises(tmp_path):
    session, connector, _ = make_session()
    db_file = make_database_file(tmp_path)
    session.connect(str(db_file))

    def _body():
        raise OSError("disk full")

    with pytest.raises(OSError, match="disk full"):
        session.with_connected_database_released(str(db_file), "backup_database", _body)
    assert session.is_connected
    assert len(connector.open_connections) == 1


def test_whole_file_work_reports_failed_reconnect(tmp_path):
    session, _, _ = make_session()
    db_file = make_database_file(tmp_path)
    session.connect(str(db_file))

    def _body():
        db_file.unlink()
        raise OSError("compact crashed")

    with pytest.raises(AccessMcpError, match="compact_repair_database failed and reconnecting to .* also failed") as info:
        session.with_connected_database_released(str(db_file), "compact_repair_database", _body)
    assert isinstance(info.value.__cause__, OSError)
    assert not session.is_connected


def test_whole_file_work_is_refused_during_transaction(tmp_path):
    session, _, _ = make_session()
    db_file = make_database_file(tmp_path)
    session.connect(str(db_file))
    session.tabular.begin_transaction()

    with pytest.raises(PreconditionError, match="Cannot backup_database while a transaction is active"):
        session.with_connected_database_released(str(db_file), "backup_database", lambda: None)
    assert session.is_connected
