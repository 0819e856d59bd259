from __future__ import annotations

from pathlib import Path

import pytest

import sys

ROOT = Path(__file__).resolve().parents[1]
TESTS_ROOT = ROOT / "tests"
if str(TESTS_ROOT) not in sys.path:
    sys.path.insert(0, str(TESTS_ROOT))

from access_fakes import FakeCatalog, FakeEngineFactory, make_database_file, make_session  # noqa: E402

from access_mcp.session.engine import AC_QUIT_SAVE_NONE  # noqa: E402
from access_mcp.tools import call_tool  # noqa: E402
from access_mcp.tools.maintenance import compact_temporary_path, replace_in_place  # noqa: E402


@pytest.fixture()
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture()
def offline(catalog):
    session, connector, factory = make_session(factory=FakeEngineFactory(catalog))
    return session, connector, factory


@pytest.fixture()
def connected(tmp_path, offline):
    session, connector, factory = offline
    db_file = make_database_file(tmp_path)
    assert call_tool(session, "connect_access", {"database_path": str(db_file)})["success"] is True
    return session, connector, factory, db_file.resolve()


def test_create_database_uses_a_throwaway_instance(offline, tmp_path):
    session, _, factory = offline
    target = (tmp_path / "new" / "Fresh.accdb").resolve()

    created = call_tool(session, "create_database", {"database_path": str(target)})

    assert created["success"] is True
    assert created["existed_before"] is False
    assert created["size_bytes"] == target.stat().st_size > 0
    app = factory.instances[-1]
    assert ("NewCurrentDatabase", str(target)) in app.calls
    assert app.Visible is False
    assert app.quit_options == [AC_QUIT_SAVE_NONE]

    again = call_tool(session, "create_database", {"database_path": str(target)})
    assert again["error"].endswith("Set overwrite=true to replace it.")
    replaced = call_tool(session, "create_database", {"database_path": str(target), "overwrite": True})
    assert replaced["existed_before"] is True


def test_create_database_refuses_the_connected_file(connected):
    session, _, _, db_file = connected
    result = call_tool(session, "create_database", {"database_path": str(db_file), "overwrite": True})
    assert result["error"] == f"Cannot replace the connected database: {db_file}. Disconnect first."
    assert db_file.is_file()


def test_backup_copies_a_file_the_session_does_not_hold(offline, tmp_path):
    session, _, _ = offline
    source = make_database_file(tmp_path, "Archive.accdb").resolve()
    destination = tmp_path / "backups" / "Archive-copy.accdb"

    result = call_tool(
        session,
        "backup_database",
        {"source_database_path": str(source), "destination_database_path": str(destination)},
    )

    assert result["bytes_copied"] == source.stat().st_size
    assert result["operated_on_connected_database"] is False
    assert destination.read_bytes() == source.read_bytes()

    exists = call_tool(
        session,
        "backup_database",
        {"source_database_path": str(source), "destination_database_path": str(destination)},
    )
    assert exists["error_kind"] == "precondition"
    same = call_tool(
        session,
        "backup_database",
        {"source_database_path": str(source), "destination_database_path": str(source)},
    )
    assert same["error"] == "Source and destination database paths must be different."


def test_backup_of_connected_database_reconnects(connected, tmp_path):
    session, connector, _, db_file = connected
    first = connector.connections[0]

    result = call_tool(
        session,
        "backup_database",
        {"source_database_path": str(db_file), "destination_database_path": str(tmp_path / "Sales.bak.accdb")},
    )

    assert result["operated_on_connected_database"] is True
    assert first.closed
    assert session.is_connected
    assert session.database_path == str(db_file)
    assert len(connector.open_connections) == 1


def test_backup_of_connected_database_waits_for_transaction(connected, tmp_path):
    session, _, _, db_file = connected
    call_tool(session, "begin_transaction", {})

    result = call_tool(
        session,
        "backup_database",
        {"source_database_path": str(db_file), "destination_database_path": str(tmp_path / "Sales.bak.accdb")},
    )

    assert result["error"] == "Cannot backup_database while a transaction is active"


def test_compact_in_place_swaps_file_and_cleans_up(connected, tmp_path):
    session, connector, factory, db_file = connected
    original = db_file.read_bytes()

    result = call_tool(session, "compact_repair_database", {"source_database_path": str(db_file)})

    assert result["in_place"] is True
    assert result["destination_database_path"] == str(db_file)
    assert result["operated_on_connected_database"] is True
    assert db_file.read_bytes() == original
    assert sorted(p.name for p in tmp_path.iterdir()) == ["Sales.accdb"]
    compact_call = next(c for c in factory.instances[-1].calls if c[0] == "CompactRepair")
    assert compact_call[1] == str(db_file)
    assert ".compact." in compact_call[2]
    assert session.is_connected
    assert len(connector.open_connections) == 1


def test_compact_into_new_file_respects_overwrite(offline, tmp_path):
    session, _, _ = offline
    source = make_database_file(tmp_path, "Big.accdb")
    destination = make_database_file(tmp_path, "Small.accdb")
    args = {"source_database_path": str(source), "destination_database_path": str(destination)}

    refused = call_tool(session, "compact_repair_database", args)
    assert refused["error_kind"] == "precondition"

    result = call_tool(session, "compact_repair_database", {**args, "overwrite": True})
    assert result["in_place"] is False
    assert result["destination_database_path"] == str(destination.resolve())
    assert source.is_file()


def test_compact_reporting_false_fails_and_reconnects(connected, catalog, tmp_path):
    session, _, _, db_file = connected
    catalog.compact_result = False

    result = call_tool(session, "compact_repair_database", {"source_database_path": str(db_file)})

    assert result["success"] is False
    assert result["error"].startswith("Compact/repair operation returned false")
    assert session.is_connected
    assert sorted(p.name for p in tmp_path.iterdir()) == ["Sales.accdb"]


def test_replace_in_place_restores_original_when_swap_fails(tmp_path):
    source = make_database_file(tmp_path, "Data.accdb")
    missing = str(tmp_path / "Data.compact.gone.accdb")

    with pytest.raises(OSError):
        replace_in_place(missing, str(source))

    assert source.read_bytes().startswith(b"\x00\x01")
    assert sorted(p.name for p in tmp_path.iterdir()) == ["Data.accdb"]


def test_compact_temporary_path_stays_beside_source(tmp_path):
    path = Path(compact_temporary_path(str(tmp_path / "Sales.accdb")))
    assert path.parent == tmp_path
    assert path.name.startswith("Sales.compact.")
    assert path.suffix == ".accdb"
