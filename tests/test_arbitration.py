from __future__ import annotations

from pathlib import Path

import pytest

import sys

ROOT = Path(__file__).resolve().parents[1]
TESTS_ROOT = ROOT / "tests"
if str(TESTS_ROOT) not in sys.path:
    sys.path.insert(0, str(TESTS_ROOT))

from access_fakes import FakeConnector, FakeOdbcError, make_database_file

from access_mcp.session.arbitration import ResourceArbitrator
from access_mcp.session.errors import PreconditionError
from access_mcp.session.state import SessionState
from access_mcp.session.tabular import TabularConnectionManager


@pytest.fixture()
def connected(tmp_path):
    state = SessionState()
    connector = FakeConnector()
    tabular = TabularConnectionManager(state, connector=connector)
    tabular.connect(str(make_database_file(tmp_path)))
    return state, tabular, connector, ResourceArbitrator(state, tabular)


def test_release_closes_and_restores_connection(connected):
    state, tabular, connector, arbitrator = connected
    before = state.tabular_connection

    with arbitrator.tabular_released():
        assert before.closed
        assert not tabular.is_open
        assert state.release_depth == 1

    assert tabular.is_open
    assert state.tabular_connection is not before
    assert state.release_depth == 0
    assert state.restore_pending is False
    assert len(connector.connections) == 2


def test_nested_release_restores_only_at_outermost(connected):
    state, tabular, connector, arbitrator = connected

    with arbitrator.tabular_released():
        with arbitrator.tabular_released():
            assert state.release_depth == 2
        assert state.release_depth == 1
        assert not tabular.is_open
        assert len(connector.connections) == 1

    assert tabular.is_open
    assert len(connector.connections) == 2


def test_connection_that_was_closed_is_not_reopened(connected):
    state, tabular, connector, arbitrator = connected
    tabular.close()

    arbitrator.run_with_tabular_released(lambda: None)

    assert not tabular.is_open
    assert len(connector.connections) == 1


def test_release_is_refused_during_transaction(connected):
    state, tabular, _, arbitrator = connected
    tabular.begin_transaction()

    with pytest.raises(PreconditionError, match="transaction is active"):
        with arbitrator.tabular_released():
            pass

    assert tabular.is_open
    assert state.release_depth == 0


def test_body_error_still_restores(connected):
    state, tabular, _, arbitrator = connected

    def _boom():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        arbitrator.run_with_tabular_released(_boom)

    assert tabular.is_open
    assert state.release_depth == 0


def test_failed_restore_is_logged_not_raised(connected, caplog):
    state, tabular, connector, arbitrator = connected

    with arbitrator.tabular_released():
        connector.failures = [FakeOdbcError("Data source name not found")] * 3

    assert not tabular.is_open
    assert state.restore_pending is False
    assert "Restoring the tabular connection failed" in caplog.text
    # reopened lazily on the next use
    assert tabular.ensure_open() is state.tabular_connection
    assert tabular.is_open


def test_run_with_tabular_released_returns_body_result(connected):
    _, _, _, arbitrator = connected
    assert arbitrator.run_with_tabular_released(lambda: 42) == 42


def _nest(arbitrator, depth, body):
    if depth == 0:
        return body()
    with arbitrator.tabular_released():
        return _nest(arbitrator, depth - 1, body)


@pytest.mark.parametrize("depth", [1, 3, 5])
def test_nested_release_closes_and_reopens_exactly_once(connected, depth):
    state, tabular, connector, arbitrator = connected
    original = state.tabular_connection
    seen = []

    def _innermost():
        seen.append((state.release_depth, tabular.is_open, len(connector.connections)))
        return "done"

    assert _nest(arbitrator, depth, _innermost) == "done"

    assert seen == [(depth, False, 1)]
    assert original.closed
    assert len(connector.connections) == 2
    assert tabular.is_open
    assert state.release_depth == 0
    assert state.restore_pending is False


@pytest.mark.parametrize("depth", [1, 3, 5])
def test_nested_release_restores_at_outermost_after_inner_error(connected, depth):
    state, tabular, connector, arbitrator = connected

    def _innermost():
        assert state.release_depth == depth
        raise RuntimeError("design step failed")

    with pytest.raises(RuntimeError, match="design step failed"):
        _nest(arbitrator, depth, _innermost)

    assert len(connector.connections) == 2
    assert connector.connections[0].closed
    assert tabular.is_open
    assert state.release_depth == 0
    assert state.restore_pending is False
