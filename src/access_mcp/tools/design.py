"""
design.py  –  forms, reports, macros and their controls

Listing goes through ``CurrentProject`` with an ``MSysObjects`` fallback.
Anything that opens an object in design view or replaces it runs with the file
held exclusively and the tabular connection released.
"""
from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..session.dynamic import (
    convert_for_property,
    find_by_name,
    get_member,
    invoke_member,
    iter_collection,
    safe_str,
    set_member,
    to_bool,
    to_int,
    to_jsonable,
)
from ..session.errors import MemberAccessError, ObjectNotFoundError, PreconditionError
from ..session.objects import ObjectKind
from .common import (
    MSYS_TYPE_FORM,
    MSYS_TYPE_MACRO,
    MSYS_TYPE_MODULE,
    MSYS_TYPE_REPORT,
    bool_arg,
    list_with_fallback,
    optional_text,
    project_objects,
    require_connected,
    text_arg,
)
from .registry import boolean_arg, string_arg, tool
from .vba import code_module, component_for, find_component, find_project, object_module_code, replace_module_text

logger = logging.getLogger(__name__)

AC_MACRO = 4
AC_DETAIL = 0
AC_SAVE_YES = 1
AC_TEXT_BOX = 109

CONTROL_TYPES = {
    100: "Label",
    101: "Line",
    102: "Rectangle",
    103: "Image",
    104: "CommandButton",
    105: "OptionButton",
    106: "CheckBox",
    107: "OptionGroup",
    108: "BoundObjectFrame",
    109: "TextBox",
    110: "ListBox",
    111: "ComboBox",
    112: "SubForm",
    122: "ToggleButton",
}

TEXT_MODE_ACCESS = "access_text"
TEXT_MODE_JSON = "json"

_VB_NAME_RE = re.compile(r'^\s*Attribute\s+VB_Name\s*=\s*"(?P<name>[^"]+)"\s*$', re.MULTILINE | re.IGNORECASE)


def control_type_label(code: int) -> str:
    return CONTROL_TYPES.get(code, f"ControlType({code})")


def control_objects(obj: Any) -> List[Any]:
    controls = get_member(obj, "Controls")
    if controls is None:
        raise ObjectNotFoundError("Controls collection is not available for this Access object.")
    seen: set[str] = set()
    result: List[Any] = []
    for index, control in enumerate(iter_collection(controls)):
        key = (safe_str(get_member(control, "Name")) or f"index:{index}").lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(control)
    return result


def find_control(obj: Any, name: str) -> Optional[Any]:
    controls = get_member(obj, "Controls")
    found = get_member(controls, "Item", name)
    if found is not None:
        return found
    return find_by_name(controls, name)


def control_info(control: Any) -> Dict[str, Any]:
    return {
        "name": safe_str(get_member(control, "Name")) or "",
        "type": control_type_label(to_int(get_member(control, "ControlType"))),
        "left": to_int(get_member(control, "Left")),
        "top": to_int(get_member(control, "Top")),
        "width": to_int(get_member(control, "Width")),
        "height": to_int(get_member(control, "Height")),
        "visible": to_bool(get_member(control, "Visible"), True),
        "enabled": to_bool(get_member(control, "Enabled"), True),
    }


def control_properties(control: Any, fallback_name: str) -> Dict[str, Any]:
    info = control_info(control)
    info["name"] = info["name"] or fallback_name
    info.update(
        {
            "back_color": to_int(get_member(control, "BackColor")),
            "fore_color": to_int(get_member(control, "ForeColor")),
            "font_name": safe_str(get_member(control, "FontName")) or "",
            "font_size": to_int(get_member(control, "FontSize")),
            "font_bold": to_bool(get_member(control, "FontBold"), False),
            "font_italic": to_bool(get_member(control, "FontItalic"), False),
        }
    )
    return info


def _require_control(obj: Any, kind: ObjectKind, object_name: str, control_name: str) -> Any:
    control = find_control(obj, control_name)
    if control is None:
        raise ObjectNotFoundError(
            f"Control '{control_name}' was not found on {kind.value} '{object_name}'."
        )
    return control


def _object_arg(args: Dict[str, Any], kind: ObjectKind) -> str:
    return text_arg(args, f"{kind.value}_name", f"{kind.label} name")


# ── listing ────────────────────────────────────────────────────────
@tool("get_forms", "Get list of all forms in the database")
def get_forms(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"forms": list_with_fallback(session, "AllForms", "Form", MSYS_TYPE_FORM)}


@tool("get_reports", "Get list of all reports in the database")
def get_reports(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"reports": list_with_fallback(session, "AllReports", "Report", MSYS_TYPE_REPORT)}


@tool("get_macros", "Get list of all macros in the database")
def get_macros(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"macros": list_with_fallback(session, "AllMacros", "Macro", MSYS_TYPE_MACRO)}


@tool("get_modules", "Get list of all modules in the database")
def get_modules(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"modules": list_with_fallback(session, "AllModules", "Module", MSYS_TYPE_MODULE)}


@tool("form_exists", "Check if a form exists", properties={"form_name": string_arg()}, required=("form_name",))
def form_exists(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    name = text_arg(args, "form_name", "Form name")
    forms = list_with_fallback(session, "AllForms", "Form", MSYS_TYPE_FORM)
    exists = any(f["name"].lower() == name.lower() for f in forms)
    return {"form_name": name, "exists": exists}


# ── open / close ───────────────────────────────────────────────────
def _open(session: Any, kind: ObjectKind, name: str) -> None:
    require_connected(session)
    if kind is ObjectKind.FORM:
        session.run_automation(lambda app: app.DoCmd.OpenForm(name))
    else:
        # reports open in design view so no print preview is rendered
        session.run_automation(lambda app: app.DoCmd.OpenReport(name, 1))


def _close(session: Any, kind: ObjectKind, name: str) -> None:
    require_connected(session)
    session.run_automation(lambda app: app.DoCmd.Close(kind.object_type, name, 2))


@tool("open_form", "Open a form in Access", properties={"form_name": string_arg()}, required=("form_name",))
def open_form(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    name = _object_arg(args, ObjectKind.FORM)
    _open(session, ObjectKind.FORM, name)
    return {"message": f"Opened form {name}"}


@tool("close_form", "Close a form without saving", properties={"form_name": string_arg()}, required=("form_name",))
def close_form(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    name = _object_arg(args, ObjectKind.FORM)
    _close(session, ObjectKind.FORM, name)
    return {"message": f"Closed form {name}"}


@tool("open_report", "Open a report in design view", properties={"report_name": string_arg()}, required=("report_name",))
def open_report(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    name = _object_arg(args, ObjectKind.REPORT)
    _open(session, ObjectKind.REPORT, name)
    return {"message": f"Opened report {name}"}


@tool("close_report", "Close a report without saving", properties={"report_name": string_arg()}, required=("report_name",))
def close_report(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    name = _object_arg(args, ObjectKind.REPORT)
    _close(session, ObjectKind.REPORT, name)
    return {"message": f"Closed report {name}"}


# ── controls ───────────────────────────────────────────────────────
def list_controls(session: Any, kind: ObjectKind, name: str) -> List[Dict[str, Any]]:
    require_connected(session)

    def _body(app: Any, obj: Any) -> List[Dict[str, Any]]:
        infos = [control_info(c) for c in control_objects(obj)]
        infos.sort(key=lambda c: c["name"].lower())
        return infos

    return session.with_loaded_object(kind, name, _body)


def read_control(session: Any, kind: ObjectKind, name: str, control_name: str) -> Dict[str, Any]:
    require_connected(session)

    def _body(app: Any, obj: Any) -> Dict[str, Any]:
        return control_properties(_require_control(obj, kind, name, control_name), control_name)

    return session.with_loaded_object(kind, name, _body)


def write_control(
    session: Any,
    kind: ObjectKind,
    name: str,
    control_name: str,
    property_name: str,
    value: Any,
) -> Any:
    require_connected(session)

    def _body(app: Any, obj: Any) -> Any:
        control = _require_control(obj, kind, name, control_name)
        converted = convert_for_property(value, get_member(control, property_name))
        set_member(control, property_name, converted)
        app.DoCmd.Save(kind.object_type, name)
        return to_jsonable(get_member(control, property_name, default=converted))

    return session.with_loaded_object(kind, name, _body)


@tool("get_form_controls", "Get list of controls in a form", properties={"form_name": string_arg()}, required=("form_name",))
def get_form_controls(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"controls": list_controls(session, ObjectKind.FORM, _object_arg(args, ObjectKind.FORM))}


@tool(
    "get_report_controls",
    "Get list of controls in a report",
    properties={"report_name": string_arg()},
    required=("report_name",),
)
def get_report_controls(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"controls": list_controls(session, ObjectKind.REPORT, _object_arg(args, ObjectKind.REPORT))}


@tool(
    "get_control_properties",
    "Get properties of a form control",
    properties={"form_name": string_arg(), "control_name": string_arg()},
    required=("form_name", "control_name"),
)
def get_control_properties(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    name = _object_arg(args, ObjectKind.FORM)
    control_name = text_arg(args, "control_name", "Control name")
    return {"properties": read_control(session, ObjectKind.FORM, name, control_name)}


@tool(
    "get_report_control_properties",
    "Get properties of a report control",
    properties={"report_name": string_arg(), "control_name": string_arg()},
    required=("report_name", "control_name"),
)
def get_report_control_properties(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    name = _object_arg(args, ObjectKind.REPORT)
    control_name = text_arg(args, "control_name", "Control name")
    return {"properties": read_control(session, ObjectKind.REPORT, name, control_name)}


_SET_PROPERTY_FIELDS = {"control_name": string_arg(), "property_name": string_arg(), "value": string_arg()}


@tool(
    "set_control_property",
    "Set a property of a form control and save the form",
    properties={"form_name": string_arg(), **_SET_PROPERTY_FIELDS},
    required=("form_name", "control_name", "property_name", "value"),
)
def set_control_property(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    name = _object_arg(args, ObjectKind.FORM)
    control_name = text_arg(args, "control_name", "Control name")
    property_name = text_arg(args, "property_name", "Property name")
    if "value" not in args:
        raise PreconditionError("value is required")
    value = write_control(session, ObjectKind.FORM, name, control_name, property_name, args["value"])
    return {"message": f"Set {control_name}.{property_name} on form {name}", "value": value}


@tool(
    "set_report_control_property",
    "Set a property of a report control and save the report",
    properties={"report_name": string_arg(), **_SET_PROPERTY_FIELDS},
    required=("report_name", "control_name", "property_name", "value"),
)
def set_report_control_property(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    name = _object_arg(args, ObjectKind.REPORT)
    control_name = text_arg(args, "control_name", "Control name")
    property_name = text_arg(args, "property_name", "Property name")
    if "value" not in args:
        raise PreconditionError("value is required")
    value = write_control(session, ObjectKind.REPORT, name, control_name, property_name, args["value"])
    return {"message": f"Set {control_name}.{property_name} on report {name}", "value": value}


# ── text export / import ───────────────────────────────────────────
def _text_mode(raw: Optional[str]) -> str:
    mode = (raw or TEXT_MODE_ACCESS).strip().lower()
    if mode not in (TEXT_MODE_ACCESS, TEXT_MODE_JSON):
        raise PreconditionError("mode must be either 'access_text' or 'json'.")
    return mode


def _temporary_text_path(prefix: str) -> str:
    return os.path.join(tempfile.gettempdir(), f"{prefix}_{uuid.uuid4().hex}.txt")


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError:
        logger.debug("Could not remove temporary file %s", path, exc_info=True)


def read_saved_text(path: str) -> str:
    with open(path, "rb") as handle:
        data = handle.read()
    # SaveAsText writes UTF-16 with a BOM for .accdb files
    if data[:2] in (b"\xff\xfe", b"\xfe\xff"):
        return data.decode("utf-16")
    return data.decode("utf-8-sig")


def object_name_from_text(explicit: Optional[str], text: str, kind: ObjectKind) -> str:
    """Name for an imported object: the argument, else the ``Attribute VB_Name`` line."""
    if explicit:
        return explicit
    match = _VB_NAME_RE.search(text)
    if match:
        name = match.group("name").strip()
        prefix = f"{kind.label}_"
        if name.lower().startswith(prefix.lower()):
            name = name[len(prefix):]
        if name:
            return name
    raise PreconditionError(
        f"Unable to determine {kind.value} name from access_text payload. Provide {kind.value}_name."
    )


def export_to_text(session: Any, kind: ObjectKind, name: str, mode: str) -> str:
    require_connected(session)
    if mode == TEXT_MODE_JSON:
        controls = list_controls(session, kind, name)
        code = session.run_automation(lambda app: object_module_code(app, name, kind.label))
        document = {
            "name": name,
            "exported_at": datetime.now(timezone.utc).isoformat(),
            "controls": controls,
            "vba": code or None,
        }
        return json.dumps(document, indent=2)

    def _save(app: Any) -> str:
        path = _temporary_text_path(f"{kind.value}_export")
        try:
            app.SaveAsText(kind.object_type, name, path)
            return read_saved_text(path)
        finally:
            _remove_quietly(path)

    return session.run_automation(_save, require_exclusive=True, release_tabular=True)


def control_type_code(label: Any) -> int:
    wanted = str(label or "").strip().lower()
    for code, name in CONTROL_TYPES.items():
        if name.lower() == wanted:
            return code
    return AC_TEXT_BOX


def _create_control(app: Any, kind: ObjectKind, design_name: str, entry: Dict[str, Any]) -> None:
    factory = "CreateControl" if kind is ObjectKind.FORM else "CreateReportControl"
    try:
        control = invoke_member(
            app,
            factory,
            design_name,
            control_type_code(entry.get("type")),
            AC_DETAIL,
            "",
            "",
            to_int(entry.get("left")),
            to_int(entry.get("top")),
            to_int(entry.get("width")),
            to_int(entry.get("height")),
        )
        if entry.get("name"):
            set_member(control, "Name", str(entry["name"]))
        set_member(control, "Visible", to_bool(entry.get("visible"), True))
        set_member(control, "Enabled", to_bool(entry.get("enabled"), True))
    except MemberAccessError:
        logger.warning("Could not recreate control %r on %s", entry.get("name"), design_name, exc_info=True)


def parse_design_document(text: str, kind: ObjectKind, explicit: Optional[str]) -> Dict[str, Any]:
    try:
        document = json.loads(text)
    except ValueError as exc:
        raise PreconditionError(f"Invalid {kind.value} data: {exc}") from exc
    if not isinstance(document, dict):
        raise PreconditionError(f"Invalid {kind.value} data: expected a JSON object")
    name = explicit or str(document.get("name") or "").strip()
    if not name:
        raise PreconditionError(f"{kind.label} name is required in {kind.value} data")
    controls = document.get("controls") or []
    if not isinstance(controls, list):
        raise PreconditionError(f"Invalid {kind.value} data: controls must be a list")
    code = document.get("vba")
    return {
        "name": name,
        "controls": [c for c in controls if isinstance(c, dict)],
        "vba": code if isinstance(code, str) and code.strip() else None,
    }


def rebuild_from_json(session: Any, kind: ObjectKind, text: str, explicit: Optional[str]) -> str:
    """Recreate a form or report from an exported JSON document.

    Access only creates design objects under generated names, so the object is
    built under that name, saved, then renamed onto the target.
    """
    document = parse_design_document(text, kind, explicit)
    target = document["name"]

    def _rebuild(app: Any) -> None:
        try:
            app.DoCmd.DeleteObject(kind.object_type, target)
        except Exception:
            logger.debug("%s %s did not exist before import", kind.label, target)
        created = invoke_member(app, "CreateForm" if kind is ObjectKind.FORM else "CreateReport")
        design_name = safe_str(get_member(created, "Name"))
        if not design_name:
            raise MemberAccessError(f"Failed to create a temporary {kind.value}.")
        for entry in document["controls"]:
            _create_control(app, kind, design_name, entry)
        if document["vba"]:
            set_member(created, "HasModule", True)
        app.DoCmd.Close(kind.object_type, design_name, AC_SAVE_YES)
        app.DoCmd.Rename(target, kind.object_type, design_name)
        if document["vba"]:
            project = find_project(app, None)
            component = find_component(project, f"{kind.label}_{target}") if project is not None else None
            if component is None:
                component = component_for(app, None, target, create=True)
            replace_module_text(code_module(component, target), document["vba"])

    session.run_automation(_rebuild, require_exclusive=True, release_tabular=True)
    return target


def import_from_text(session: Any, kind: ObjectKind, text: str, name: Optional[str], mode: str) -> str:
    require_connected(session)
    if mode == TEXT_MODE_JSON:
        return rebuild_from_json(session, kind, text, name)
    target = object_name_from_text(name, text, kind)

    def _load(app: Any) -> None:
        try:
            app.DoCmd.DeleteObject(kind.object_type, target)
        except Exception:
            logger.debug("%s %s did not exist before import", kind.label, target)
        path = _temporary_text_path(f"{kind.value}_import")
        try:
            with open(path, "w", encoding="utf-8-sig", newline="") as handle:
                handle.write(text)
            app.LoadFromText(kind.object_type, target, path)
        finally:
            _remove_quietly(path)

    session.run_automation(_load, require_exclusive=True, release_tabular=True)
    return target


@tool(
    "export_form_to_text",
    "Export a form as Access SaveAsText output (mode access_text) or a JSON control summary (mode json, with the code behind the object)",
    properties={"form_name": string_arg(), "mode": string_arg("access_text or json")},
    required=("form_name",),
)
def export_form_to_text(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    name = _object_arg(args, ObjectKind.FORM)
    mode = _text_mode(optional_text(args, "mode"))
    return {"form_name": name, "mode": mode, "form_data": export_to_text(session, ObjectKind.FORM, name, mode)}


@tool(
    "import_form_from_text",
    "Import a form from Access SaveAsText output or an exported JSON document, replacing an existing form of the same name",
    properties={"form_data": string_arg(), "form_name": string_arg(), "mode": string_arg("access_text or json")},
    required=("form_data",),
)
def import_form_from_text(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    text_arg(args, "form_data", "Form data")
    mode = _text_mode(optional_text(args, "mode"))
    name = import_from_text(session, ObjectKind.FORM, str(args["form_data"]), optional_text(args, "form_name"), mode)
    return {"message": f"Imported form {name}", "form_name": name}


@tool(
    "export_report_to_text",
    "Export a report as Access SaveAsText output (mode access_text) or a JSON control summary (mode json, with the code behind the object)",
    properties={"report_name": string_arg(), "mode": string_arg("access_text or json")},
    required=("report_name",),
)
def export_report_to_text(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    name = _object_arg(args, ObjectKind.REPORT)
    mode = _text_mode(optional_text(args, "mode"))
    return {
        "report_name": name,
        "mode": mode,
        "report_data": export_to_text(session, ObjectKind.REPORT, name, mode),
    }


@tool(
    "import_report_from_text",
    "Import a report from Access SaveAsText output or an exported JSON document, replacing an existing report of the same name",
    properties={"report_data": string_arg(), "report_name": string_arg(), "mode": string_arg("access_text or json")},
    required=("report_data",),
)
def import_report_from_text(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    text_arg(args, "report_data", "Report data")
    mode = _text_mode(optional_text(args, "mode"))
    name = import_from_text(
        session, ObjectKind.REPORT, str(args["report_data"]), optional_text(args, "report_name"), mode
    )
    return {"message": f"Imported report {name}", "report_name": name}


# ── delete / run ───────────────────────────────────────────────────
def _delete_object(session: Any, object_type: int, name: str) -> None:
    require_connected(session)
    session.run_automation(
        lambda app: app.DoCmd.DeleteObject(object_type, name),
        require_exclusive=True,
        release_tabular=True,
    )


@tool("delete_form", "Delete a form from the database", properties={"form_name": string_arg()}, required=("form_name",))
def delete_form(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    name = _object_arg(args, ObjectKind.FORM)
    _delete_object(session, ObjectKind.FORM.object_type, name)
    return {"message": f"Deleted form {name}"}


@tool(
    "delete_report",
    "Delete a report from the database",
    properties={"report_name": string_arg()},
    required=("report_name",),
)
def delete_report(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    name = _object_arg(args, ObjectKind.REPORT)
    _delete_object(session, ObjectKind.REPORT.object_type, name)
    return {"message": f"Deleted report {name}"}


@tool("delete_macro", "Delete a macro from the database", properties={"macro_name": string_arg()}, required=("macro_name",))
def delete_macro(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    name = text_arg(args, "macro_name", "Macro name")
    _delete_object(session, AC_MACRO, name)
    return {"message": f"Deleted macro {name}"}


@tool("run_macro", "Run a macro", properties={"macro_name": string_arg()}, required=("macro_name",))
def run_macro(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    name = text_arg(args, "macro_name", "Macro name")
    require_connected(session)
    session.run_automation(lambda app: invoke_member(app.DoCmd, "RunMacro", name))
    return {"message": f"Ran macro {name}"}


# ── macro text ─────────────────────────────────────────────────────
def _macro_exists(app: Any, name: str) -> bool:
    wanted = name.lower()
    return any(item["name"].lower() == wanted for item in project_objects(app, "AllMacros", "Macro"))


def load_macro(session: Any, name: str, data: str, *, must_exist: Optional[bool], replace: bool) -> None:
    """LoadFromText a macro. ``must_exist`` True/False checks first; None skips the check."""
    require_connected(session)

    def _load(app: Any) -> None:
        if must_exist is not None and _macro_exists(app, name) != must_exist:
            if must_exist:
                raise ObjectNotFoundError(f"Macro not found: {name}")
            raise PreconditionError(f"Macro already exists: {name}")
        if replace:
            try:
                app.DoCmd.DeleteObject(AC_MACRO, name)
            except Exception:
                logger.debug("Macro %s did not exist before import", name)
        path = _temporary_text_path("macro_import")
        try:
            with open(path, "w", encoding="utf-8-sig", newline="") as handle:
                handle.write(data)
            app.LoadFromText(AC_MACRO, name, path)
        finally:
            _remove_quietly(path)

    session.run_automation(_load, require_exclusive=True, release_tabular=True)


_MACRO_TEXT_PROPERTIES = {"macro_name": string_arg(), "macro_data": string_arg("SaveAsText output of a macro")}


@tool("export_macro_to_text", "Export a macro as Access SaveAsText output", properties={"macro_name": string_arg()}, required=("macro_name",))
def export_macro_to_text(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    name = text_arg(args, "macro_name", "Macro name")
    require_connected(session)

    def _save(app: Any) -> str:
        path = _temporary_text_path("macro_export")
        try:
            app.SaveAsText(AC_MACRO, name, path)
            return read_saved_text(path)
        finally:
            _remove_quietly(path)

    return {"macro_name": name, "macro_data": session.run_automation(_save, require_exclusive=True, release_tabular=True)}


@tool(
    "import_macro_from_text",
    "Import a macro from SaveAsText output, replacing an existing macro unless overwrite is false",
    properties={**_MACRO_TEXT_PROPERTIES, "overwrite": boolean_arg()},
    required=("macro_name", "macro_data"),
)
def import_macro_from_text(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    name = text_arg(args, "macro_name", "Macro name")
    data = text_arg(args, "macro_data", "Macro data")
    overwrite = bool_arg(args, "overwrite", True)
    load_macro(session, name, data, must_exist=None if overwrite else False, replace=overwrite)
    return {"message": f"Imported macro {name}", "macro_name": name}


@tool("create_macro", "Create a macro from SaveAsText output", properties=_MACRO_TEXT_PROPERTIES, required=("macro_name", "macro_data"))
def create_macro(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    name = text_arg(args, "macro_name", "Macro name")
    load_macro(session, name, text_arg(args, "macro_data", "Macro data"), must_exist=False, replace=False)
    return {"message": f"Created macro {name}"}


@tool("update_macro", "Replace an existing macro from SaveAsText output", properties=_MACRO_TEXT_PROPERTIES, required=("macro_name", "macro_data"))
def update_macro(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    name = text_arg(args, "macro_name", "Macro name")
    load_macro(session, name, text_arg(args, "macro_data", "Macro data"), must_exist=True, replace=False)
    return {"message": f"Updated macro {name}"}
