from __future__ import annotations

import json
from pathlib import Path

import pytest

import sys

ROOT = Path(__file__).resolve().parents[1]
TESTS_ROOT = ROOT / "tests"
if str(TESTS_ROOT) not in sys.path:
    sys.path.insert(0, str(TESTS_ROOT))

from access_fakes import FakeCatalog, FakeControl, FakeEngineFactory, make_database_file, make_session  # noqa: E402

from access_mcp.session.errors import PreconditionError  # noqa: E402
from access_mcp.session.objects import ObjectKind  # noqa: E402
from access_mcp.tools import call_tool  # noqa: E402
from access_mcp.tools.design import control_type_code, parse_design_document  # noqa: E402

CODE_BEHIND = "Option Compare Database\r\n\r\nPrivate Sub cmdSave_Click()\r\n    DoCmd.Save\r\nEnd Sub"


def _catalog() -> FakeCatalog:
    catalog = FakeCatalog()
    catalog.forms["Customers"] = [
        FakeControl("txtName", 109, Left=120, Top=240, Width=2000, Height=315),
        FakeControl("cmdSave", 104, Left=2400, Top=240, Visible=False),
    ]
    catalog.modules["Form_Customers"] = CODE_BEHIND
    catalog.macros.append("AutoExec")
    return catalog


@pytest.fixture()
def connected(tmp_path):
    session, connector, factory = make_session(factory=FakeEngineFactory(_catalog()))
    result = call_tool(session, "connect_access", {"database_path": str(make_database_file(tmp_path))})
    assert result["success"] is True
    return session, factory


def _export(session, name: str) -> dict:
    exported = call_tool(session, "export_form_to_text", {"form_name": name, "mode": "json"})
    assert exported["success"] is True
    return json.loads(exported["form_data"])


def _calls(factory) -> list[tuple]:
    return [call for app in factory.instances for call in app.calls]


def test_json_export_carries_code_behind(connected):
    session, _ = connected

    document = _export(session, "Customers")

    assert document["vba"] == CODE_BEHIND
    assert [c["name"] for c in document["controls"]] == ["cmdSave", "txtName"]


def test_json_round_trip_rebuilds_controls_and_code(connected):
    session, factory = connected
    original = _export(session, "Customers")

    imported = call_tool(
        session,
        "import_form_from_text",
        {"form_data": json.dumps(original), "form_name": "CustomersCopy", "mode": "json"},
    )

    assert imported["form_name"] == "CustomersCopy"
    copy = _export(session, "CustomersCopy")
    assert copy["controls"] == original["controls"]
    assert copy["vba"] == CODE_BEHIND
    assert "Form1" not in factory.catalog.forms
    assert ("Rename", "CustomersCopy", 2, "Form1") in _calls(factory)
    assert session.tabular.is_open


def test_json_import_replaces_form_of_same_name(connected):
    session, factory = connected
    original = _export(session, "Customers")
    original["controls"] = [c for c in original["controls"] if c["name"] == "txtName"]

    call_tool(session, "import_form_from_text", {"form_data": json.dumps(original), "mode": "json"})

    replaced = _export(session, "Customers")
    assert [c["name"] for c in replaced["controls"]] == ["txtName"]
    assert replaced["vba"] == CODE_BEHIND
    assert ("DeleteObject", 2, "Customers") in _calls(factory)


def test_json_import_without_code_creates_no_module(connected):
    session, factory = connected
    document = {"name": "Blank", "controls": [{"name": "lblTitle", "type": "Label", "width": 1800}]}

    call_tool(session, "import_form_from_text", {"form_data": json.dumps(document), "mode": "json"})

    controls = factory.catalog.forms["Blank"]
    assert [(c.Name, c.ControlType, c.Width) for c in controls] == [("lblTitle", 100, 1800)]
    assert "Form_Blank" not in factory.catalog.modules


def test_json_report_import_uses_report_controls(connected):
    session, factory = connected
    document = {"name": "Summary", "controls": [{"name": "lblTotal", "type": "Label"}]}

    result = call_tool(session, "import_report_from_text", {"report_data": json.dumps(document), "mode": "json"})

    assert result["report_name"] == "Summary"
    assert [c.Name for c in factory.catalog.reports["Summary"]] == ["lblTotal"]
    assert ("CreateReport",) in _calls(factory)


def test_parse_design_document_validation():
    assert parse_design_document('{"name": "A", "vba": "  "}', ObjectKind.FORM, None)["vba"] is None
    assert parse_design_document('{"controls": []}', ObjectKind.FORM, "Given")["name"] == "Given"
    with pytest.raises(PreconditionError, match="Invalid form data"):
        parse_design_document("{nope", ObjectKind.FORM, None)
    with pytest.raises(PreconditionError, match="Form name is required"):
        parse_design_document('{"controls": []}', ObjectKind.FORM, None)
    with pytest.raises(PreconditionError, match="controls must be a list"):
        parse_design_document('{"name": "A", "controls": {}}', ObjectKind.FORM, None)


def test_control_type_code_defaults_to_text_box():
    assert control_type_code("CommandButton") == 104
    assert control_type_code("checkbox") == 106
    assert control_type_code("Hologram") == 109


def test_macro_text_export_and_import(connected):
    session, factory = connected
    catalog = factory.catalog

    exported = call_tool(session, "export_macro_to_text", {"macro_name": "AutoExec"})
    assert 'Action ="Beep"' in exported["macro_data"]

    text = 'Version =196611\r\nBegin\r\n    Action ="OpenForm"\r\nEnd\r\n'
    assert call_tool(session, "import_macro_from_text", {"macro_name": "Nightly", "macro_data": text})["success"] is True
    assert catalog.saved_text[(4, "Nightly")] == text
    assert "Nightly" in catalog.macros

    kept = call_tool(session, "import_macro_from_text", {"macro_name": "AutoExec", "macro_data": text, "overwrite": False})
    assert kept["error"] == "Macro already exists: AutoExec"
    assert call_tool(session, "import_macro_from_text", {"macro_name": "AutoExec", "macro_data": text})["success"] is True
    assert ("DeleteObject", 4, "AutoExec") in _calls(factory)
    assert catalog.saved_text[(4, "AutoExec")] == text


def test_create_and_update_macro(connected):
    session, factory = connected
    text = 'Version =196611\r\nBegin\r\n    Action ="Beep"\r\nEnd\r\n'

    assert call_tool(session, "create_macro", {"macro_name": "AutoExec", "macro_data": text})["error_kind"] == "precondition"
    assert call_tool(session, "create_macro", {"macro_name": "Weekly", "macro_data": text})["message"] == "Created macro Weekly"
    assert call_tool(session, "update_macro", {"macro_name": "Ghost", "macro_data": text})["error"] == "Macro not found: Ghost"
    assert call_tool(session, "update_macro", {"macro_name": "Weekly", "macro_data": text})["success"] is True
    assert factory.catalog.macros == ["AutoExec", "Weekly"]
