from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..session.dynamic import get_member, invoke_member, iter_collection, safe_str, set_member, to_int
from ..session.errors import MemberAccessError, ObjectNotFoundError
from .common import MSYS_TYPE_MODULE, msys_object_names, optional_text, require_connected, text_arg
from .registry import string_arg, tool

logger = logging.getLogger(__name__)

VBEXT_CT_STD_MODULE = 1
AC_MODULE = 5
AC_CMD_COMPILE_AND_SAVE_ALL_MODULES = 125
CURRENT_PROJECT = "CurrentProject"

COMPONENT_TYPES = {
    1: "StandardModule",
    2: "ClassModule",
    3: "Form",
    11: "ActiveXDesigner",
    100: "Document",
}


def component_type_label(code: int) -> str:
    return COMPONENT_TYPES.get(code, f"Unknown({code})")


def normalize_line_endings(code: str) -> str:
    return code.replace("\r\n", "\n").replace("\r", "\n").replace("\n", "\r\n")


def find_project(app: Any, project_name: Optional[str]) -> Optional[Any]:
    wanted = None if not project_name or project_name.lower() == CURRENT_PROJECT.lower() else project_name.lower()
    vbe = get_member(app, "VBE")
    if wanted is None:
        active = get_member(vbe, "ActiveVBProject")
        if active is not None:
            return active
    for project in iter_collection(get_member(vbe, "VBProjects")):
        if wanted is None or (safe_str(get_member(project, "Name")) or "").lower() == wanted:
            return project
    return None


def find_component(project: Any, module_name: str) -> Optional[Any]:
    wanted = module_name.lower()
    for component in iter_collection(get_member(project, "VBComponents")):
        if (safe_str(get_member(component, "Name")) or "").lower() == wanted:
            return component
    return None


def component_for(app: Any, project_name: Optional[str], module_name: str, create: bool) -> Any:
    project = find_project(app, project_name)
    if project is None:
        raise ObjectNotFoundError("No VBA project is available in the current Access database.")
    component = find_component(project, module_name)
    if component is not None:
        return component
    if not create:
        raise ObjectNotFoundError(f"VBA module '{module_name}' was not found.")

    component = invoke_member(get_member(project, "VBComponents"), "Add", VBEXT_CT_STD_MODULE)
    set_member(component, "Name", module_name)
    actual = safe_str(get_member(component, "Name")) or ""
    if actual.lower() != module_name.lower():
        raise MemberAccessError(f"Created VBA module but could not assign requested name '{module_name}'.")
    return component


def code_module(component: Any, module_name: str) -> Any:
    module = get_member(component, "CodeModule")
    if module is None:
        raise ObjectNotFoundError(f"Code module for '{module_name}' is not accessible.")
    return module


def module_text(module: Any) -> str:
    lines = to_int(get_member(module, "CountOfLines"))
    if lines <= 0:
        return ""
    return safe_str(get_member(module, "Lines", 1, lines)) or ""


def replace_module_text(module: Any, code: str) -> None:
    existing = to_int(get_member(module, "CountOfLines"))
    if existing > 0:
        invoke_member(module, "DeleteLines", 1, existing)
    if code.strip():
        invoke_member(module, "AddFromString", normalize_line_endings(code))


def object_module_code(app: Any, object_name: str, class_prefix: str) -> Optional[str]:
    """Code behind a form or report: module ``<name>`` first, then ``<prefix>_<name>``."""
    project = find_project(app, None)
    for candidate in (object_name, f"{class_prefix}_{object_name}"):
        component = find_component(project, candidate)
        if component is not None:
            module = get_member(component, "CodeModule")
            if module is not None:
                return module_text(module)
    return None


def _save_module(app: Any, module_name: str) -> None:
    try:
        app.DoCmd.Save(AC_MODULE, module_name)
    except Exception:
        # fails when the module is not the active object; the compile step saves it
        logger.debug("Saving module %s failed", module_name, exc_info=True)


def _projects(app: Any) -> List[Dict[str, Any]]:
    projects: List[Dict[str, Any]] = []
    for project in iter_collection(get_member(get_member(app, "VBE"), "VBProjects")):
        modules = [
            {
                "name": safe_str(get_member(component, "Name")) or "",
                "type": component_type_label(to_int(get_member(component, "Type"))),
                "has_code": to_int(get_member(get_member(component, "CodeModule"), "CountOfLines")) > 0,
            }
            for component in iter_collection(get_member(project, "VBComponents"))
        ]
        modules.sort(key=lambda m: m["name"].lower())
        projects.append(
            {
                "name": safe_str(get_member(project, "Name")) or "VBAProject",
                "description": safe_str(get_member(project, "Description")) or "",
                "modules": modules,
            }
        )
    return projects


@tool("get_vba_projects", "Get list of VBA projects and their modules")
def get_vba_projects(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    try:
        projects = session.run_automation(_projects)
        if projects:
            return {"projects": projects}
    except Exception:
        logger.info("Reading VBA projects through Access failed; using MSysObjects", exc_info=True)
    names = sorted(msys_object_names(session, MSYS_TYPE_MODULE), key=str.lower)
    return {
        "projects": [
            {
                "name": CURRENT_PROJECT,
                "description": "Current Access Project",
                "modules": [{"name": n, "type": "Module", "has_code": True} for n in names],
            }
        ]
    }


_MODULE_PROPERTIES = {"project_name": string_arg(), "module_name": string_arg()}


@tool("get_vba_code", "Get VBA code from a module", properties=_MODULE_PROPERTIES, required=("module_name",))
def get_vba_code(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    project_name = optional_text(args, "project_name")
    module_name = text_arg(args, "module_name", "Module name")

    def _read(app: Any) -> str:
        return module_text(code_module(component_for(app, project_name, module_name, create=False), module_name))

    return {"module_name": module_name, "code": session.run_automation(_read)}


@tool(
    "set_vba_code",
    "Replace the code of a module, creating a standard module when missing",
    properties={**_MODULE_PROPERTIES, "code": string_arg()},
    required=("module_name", "code"),
)
def set_vba_code(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    project_name = optional_text(args, "project_name")
    module_name = text_arg(args, "module_name", "Module name")
    code = str(args.get("code") or "")

    def _write(app: Any) -> None:
        replace_module_text(code_module(component_for(app, project_name, module_name, create=True), module_name), code)
        _save_module(app, module_name)

    session.run_automation(_write, require_exclusive=True, release_tabular=True)
    return {"message": f"Updated VBA module {module_name}"}


@tool(
    "add_vba_procedure",
    "Append a procedure to a module",
    properties={**_MODULE_PROPERTIES, "procedure_name": string_arg(), "code": string_arg()},
    required=("module_name", "procedure_name", "code"),
)
def add_vba_procedure(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)
    project_name = optional_text(args, "project_name")
    module_name = text_arg(args, "module_name", "Module name")
    procedure_name = text_arg(args, "procedure_name", "Procedure name")
    code = text_arg(args, "code", "Procedure code")

    def _append(app: Any) -> None:
        module = code_module(component_for(app, project_name, module_name, create=True), module_name)
        text = normalize_line_endings(code)
        if to_int(get_member(module, "CountOfLines")) > 0:
            text = "\r\n" + text
        invoke_member(module, "AddFromString", text)
        _save_module(app, module_name)

    session.run_automation(_append, require_exclusive=True, release_tabular=True)
    return {"message": f"Added procedure {procedure_name} to {module_name}"}


@tool("compile_vba", "Compile and save all VBA modules")
def compile_vba(session: Any, args: Dict[str, Any]) -> Dict[str, Any]:
    require_connected(session)

    def _compile(app: Any) -> None:
        try:
            app.DoCmd.RunCommand(AC_CMD_COMPILE_AND_SAVE_ALL_MODULES)
        except Exception:
            invoke_member(app, "RunCommand", AC_CMD_COMPILE_AND_SAVE_ALL_MODULES)

    session.run_automation(_compile, require_exclusive=True, release_tabular=True)
    return {"message": "VBA compiled"}
