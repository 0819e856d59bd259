"""Open forms/reports on demand and close only what this call opened."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator, Tuple

from .dynamic import find_by_name, get_member, iter_collection, safe_str, to_bool
from .errors import ObjectNotFoundError

logger = logging.getLogger(__name__)

AC_VIEW_NORMAL = 0
AC_VIEW_DESIGN = 1
AC_SAVE_YES = 1
AC_SAVE_NO = 2


class ObjectKind(str, Enum):
    FORM = "form"
    REPORT = "report"

    @property
    def object_type(self) -> int:
        # acForm / acReport
        return 2 if self is ObjectKind.FORM else 3

    @property
    def all_collection(self) -> str:
        return "AllForms" if self is ObjectKind.FORM else "AllReports"

    @property
    def open_collection(self) -> str:
        return "Forms" if self is ObjectKind.FORM else "Reports"

    @property
    def open_command(self) -> str:
        return "OpenForm" if self is ObjectKind.FORM else "OpenReport"

    @property
    def label(self) -> str:
        return "Form" if self is ObjectKind.FORM else "Report"


def is_loaded(app: Any, kind: ObjectKind, name: str) -> bool:
    wanted = name.strip().lower()
    project = get_member(app, "CurrentProject")
    for item in iter_collection(get_member(project, kind.all_collection)):
        candidate = safe_str(get_member(item, "Name"))
        if candidate is None or candidate.strip().lower() != wanted:
            continue
        return to_bool(get_member(item, "IsLoaded"), False)
    return False


def ensure_open(app: Any, kind: ObjectKind, name: str, design_view: bool = True) -> Tuple[Any, bool]:
    """Return ``(live_object, opened_here)``.

    ``opened_here`` is True only when the object was not loaded and this call
    opened it; the caller then owns closing it again.
    """
    opened_here = False
    if not is_loaded(app, kind, name):
        view = AC_VIEW_DESIGN if design_view else AC_VIEW_NORMAL
        getattr(app.DoCmd, kind.open_command)(name, view)
        opened_here = True

    obj = find_by_name(get_member(app, kind.open_collection), name)
    if obj is None:
        if opened_here:
            close_if_opened_here(app, kind, name, True)
        raise ObjectNotFoundError(f"{kind.label} '{name}' is not loaded.")
    return obj, opened_here


def close_if_opened_here(
    app: Any,
    kind: ObjectKind,
    name: str,
    opened_here: bool,
    save_changes: bool = False,
) -> None:
    if not opened_here:
        return
    try:
        app.DoCmd.Close(kind.object_type, name, AC_SAVE_YES if save_changes else AC_SAVE_NO)
    except Exception:
        logger.debug("Closing %s %s failed during cleanup", kind.value, name, exc_info=True)


@contextmanager
def loaded_object(
    app: Any,
    kind: ObjectKind,
    name: str,
    design_view: bool = True,
    save_changes: bool = False,
) -> Iterator[Any]:
    obj, opened_here = ensure_open(app, kind, name, design_view)
    try:
        yield obj
    finally:
        close_if_opened_here(app, kind, name, opened_here, save_changes)


__all__ = [
    "AC_SAVE_NO",
    "AC_SAVE_YES",
    "AC_VIEW_DESIGN",
    "AC_VIEW_NORMAL",
    "ObjectKind",
    "close_if_opened_here",
    "ensure_open",
    "is_loaded",
    "loaded_object",
]
