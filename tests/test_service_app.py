from __future__ import annotations

import logging
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

import sys

ROOT = Path(__file__).resolve().parents[1]
TESTS_ROOT = ROOT / "tests"
if str(TESTS_ROOT) not in sys.path:
    sys.path.insert(0, str(TESTS_ROOT))

from access_fakes import FakeCatalog, FakeControl, FakeEngineFactory, make_database_file, make_session

from access_mcp import __version__
from access_mcp_service.app import create_app


@pytest.fixture(autouse=True)
def log_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("ACCESS_MCP_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("ACCESS_MCP_LOG_FILE", raising=False)
    yield tmp_path / "logs"
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)


def _client(token: str | None = None):
    catalog = FakeCatalog()
    catalog.forms["Customers"] = [FakeControl("txtName")]
    session, connector, factory = make_session(factory=FakeEngineFactory(catalog))
    app = create_app(session=session, auth_token=token, host="127.0.0.1", port=8766)
    return TestClient(app), session, factory


def test_health_and_state():
    client, session, _ = _client()
    assert client.get("/health").json() == {"ok": True, "version": __version__}

    state = client.get("/state").json()
    assert state["version"] == __version__
    assert state["port"] == 8766
    assert state["auth_required"] is False
    assert state["tool_count"] > 20
    assert state["session"]["connected"] is False


def test_bearer_token_is_enforced():
    client, _, _ = _client(token="secret")

    missing = client.get("/health")
    assert missing.status_code == 401
    assert missing.json()["reason"] == "Missing bearer token"

    wrong = client.get("/health", headers={"Authorization": "Bearer nope"})
    assert wrong.status_code == 403

    ok = client.get("/health", headers={"Authorization": "Bearer secret"})
    assert ok.status_code == 200
    assert client.get("/state", headers={"Authorization": "Bearer secret"}).json()["auth_required"] is True


def test_tool_list_and_calls(tmp_path):
    client, session, factory = _client()
    names = [t["name"] for t in client.get("/tools").json()["tools"]]
    assert "connect_access" in names

    db_file = make_database_file(tmp_path)
    connected = client.post("/tools/connect_access", json={"arguments": {"database_path": str(db_file)}})
    assert connected.status_code == 200
    assert connected.json()["database_path"] == str(db_file.resolve())

    controls = client.post("/tools/get_form_controls", json={"arguments": {"form_name": "Customers"}}).json()
    assert controls["success"] is True
    assert [c["name"] for c in controls["controls"]] == ["txtName"]

    failed = client.post("/tools/get_form_controls", json={"arguments": {}})
    assert failed.status_code == 200
    assert failed.json()["error_kind"] == "precondition"

    assert client.post("/tools/is_connected").json()["connected"] is True
    assert client.post("/tools/does_not_exist", json={}).status_code == 404

def test_shutdown_closes_session(tmp_path):
    catalog = FakeCatalog()
    session, connector, factory = make_session(factory=FakeEngineFactory(catalog))
    app = create_app(session=session)
    with TestClient(app) as client:
        client.post("/tools/connect_access", json={"arguments": {"database_path": str(make_database_file(tmp_path))}})
        client.post("/tools/launch_access", json={"arguments": {"visible": False}})
        assert factory.live
    assert connector.open_connections == []
    assert factory.live == []
    assert session.is_connected is False


def test_exception_logging_contains_trace_context(log_dir):
    client, _, _ = _client()
    client = TestClient(client.app, raise_server_exceptions=False)

    async def boom():
        raise RuntimeError("kaboom")

    client.app.add_api_route("/boom", boom, methods=["GET"])  # type: ignore[attr-defined]

    trace_id = "test-trace-xyz"
    resp = client.get("/boom", headers={"X-Trace-Id": trace_id})
    assert resp.status_code == 500
    body = resp.json()
    assert body["trace_id"] == trace_id
    assert body["reason"] == "internal_error"

    for handler in logging.getLogger().handlers:
        handler.flush()
    lines = (log_dir / "access_mcp.log").read_text(encoding="utf-8").splitlines()
    assert any(trace_id in line and "event=unhandled_exception" in line for line in lines)
