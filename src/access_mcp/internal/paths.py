"""Helpers for resolving runtime and database paths."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional

from ..session.errors import DatabaseNotFoundError, PreconditionError

SUPPORTED_DATABASE_EXTENSIONS = frozenset({".accdb", ".mdb"})


def get_app_root() -> Path:
    """Return the directory that should be treated as the application root."""
    if getattr(sys, "frozen", False):  # PyInstaller / frozen executables
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[3]


def normalize_database_path(raw: object, *, require_exists: bool = True) -> str:
    """Return an absolute ``.accdb``/``.mdb`` path or raise a precondition error."""
    text = "" if raw is None else str(raw).strip()
    if not text:
        raise PreconditionError("Database path is required")
    try:
        full = Path(os.path.expandvars(text)).expanduser().resolve(strict=False)
    except (OSError, RuntimeError, ValueError) as exc:
        raise PreconditionError(f"Database path is invalid: {text}") from exc
    if full.suffix.lower() not in SUPPORTED_DATABASE_EXTENSIONS:
        raise PreconditionError(f"Database path must use a .accdb or .mdb extension: {full}")
    if require_exists and not full.is_file():
        raise DatabaseNotFoundError(str(full))
    return str(full)


def normalize_system_database_path(raw: object) -> Optional[str]:
    text = "" if raw is None else str(raw).strip()
    if not text:
        return None
    full = Path(text).expanduser().resolve(strict=False)
    if not full.is_file():
        raise DatabaseNotFoundError(str(full))
    return str(full)


def paths_match(left: Optional[str], right: Optional[str]) -> bool:
    """Case-insensitive comparison of two file paths after normalisation."""
    if not left or not right:
        return False
    try:
        a = os.path.normcase(os.path.abspath(str(left))).rstrip("\\/")
        b = os.path.normcase(os.path.abspath(str(right))).rstrip("\\/")
    except (TypeError, ValueError):
        return str(left).lower() == str(right).lower()
    return a.lower() == b.lower()


__all__ = [
    "SUPPORTED_DATABASE_EXTENSIONS",
    "get_app_root",
    "normalize_database_path",
    "normalize_system_database_path",
    "paths_match",
]
