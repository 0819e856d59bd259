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

from access_fakes import make_session  # noqa: E402

from access_mcp_service.app import create_app  # noqa: E402


@pytest.fixture(autouse=True)
def reset_logging(tmp_path, monkeypatch):
    monkeypatch.setenv("ACCESS_MCP_LOG_DIR", str(tmp_path))
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)


def test_trace_id_propagation_and_generation():
    session, _, _ = make_session()
    client = TestClient(create_app(session=session, auth_token="token"))

    async def ping():
        return {"ok": True}

    client.app.add_api_route("/ping", ping, methods=["GET"])  # type: ignore[attr-defined]

    given = "abc-123"
    r1 = client.get("/ping", headers={"Authorization": "Bearer token", "X-Trace-Id": given})
    assert r1.status_code == 200, r1.text
    assert r1.headers.get("X-Trace-Id") == given
    assert r1.json()["ok"] is True

    r2 = client.get("/ping", headers={"Authorization": "Bearer token"})
    assert r2.status_code == 200
    auto = r2.headers.get("X-Trace-Id")
    assert auto and isinstance(auto, str) and len(auto) >= 8


def test_access_line_is_logged_with_status(tmp_path):
    session, _, _ = make_session()
    client = TestClient(create_app(session=session, auth_token="token"))

    denied = client.get("/health", headers={"X-Trace-Id": "denied-1"})
    assert denied.status_code == 401
    assert denied.json()["trace_id"] == "denied-1"

    for handler in logging.getLogger().handlers:
        handler.flush()
    text = (tmp_path / "access_mcp.log").read_text(encoding="utf-8")
    assert any(
        "event=access" in line and "trace_id=denied-1" in line and "status=401" in line
        for line in text.splitlines()
    )
