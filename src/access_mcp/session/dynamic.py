"""
dynamic.py  –  late-bound access to Access automation objects

The Access object model is reached through ``win32com`` dynamic dispatch, so
the member set of a form, control or DAO object is only known at run time.
Everything here goes through ``getattr`` / ``setattr`` / call, which is how
dynamic dispatch exposes COM properties and methods to Python.

Reads are forgiving: a missing or inapplicable member yields ``default``.
Writes and method calls raise :class:`MemberAccessError` with the original COM
error chained, so the retry classifier can still inspect it.
"""
from __future__ import annotations

import base64
import datetime as _dt
from decimal import Decimal
from typing import Any, Iterator, Optional

from .errors import MemberAccessError


def get_member(target: Any, name: str, *args: Any, default: Any = None) -> Any:
    """Read property ``name`` (parameterised when ``args`` are given)."""
    if target is None:
        return default
    try:
        value = getattr(target, name)
        if args:
            value = value(*args)
        return value
    except Exception:
        return default


def set_member(target: Any, name: str, value: Any) -> None:
    if target is None:
        raise MemberAccessError(f"Cannot set '{name}' on a missing object")
    try:
        setattr(target, name, value)
    except Exception as exc:
        raise MemberAccessError(f"Failed to set property '{name}': {exc}") from exc


def invoke_member(target: Any, name: str, *args: Any) -> Any:
    if target is None:
        raise MemberAccessError(f"Cannot call '{name}' on a missing object")
    try:
        method = getattr(target, name)
    except Exception as exc:
        raise MemberAccessError(f"Method '{name}' is not available: {exc}") from exc
    try:
        return method(*args)
    except Exception as exc:
        raise MemberAccessError(f"Call to '{name}' failed: {exc}") from exc


def iter_collection(collection: Any) -> Iterator[Any]:
    """Yield the items of a COM collection.

    Dynamic dispatch objects are iterable through ``_NewEnum``; collections that
    are not fall back to ``Count`` + ``Item(i)``, zero-based first and one-based
    when ``Item(0)`` is rejected.
    """
    if collection is None:
        return
    try:
        items = iter(collection)
    except TypeError:
        items = None
    if items is not None:
        yield from items
        return
    count = to_int(get_member(collection, "Count"))
    if count <= 0:
        return
    first = get_member(collection, "Item", 0)
    if first is None:
        indexes = range(1, count + 1)
    else:
        yield first
        indexes = range(1, count)
    for index in indexes:
        item = get_member(collection, "Item", index)
        if item is not None:
            yield item


def find_by_name(collection: Any, name: str) -> Optional[Any]:
    """Case-insensitive lookup of an item by its ``Name`` property."""
    wanted = name.strip().lower()
    for item in iter_collection(collection):
        candidate = safe_str(get_member(item, "Name"))
        if candidate is not None and candidate.strip().lower() == wanted:
            return item
    return None


def safe_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def to_int(value: Any, default: int = 0) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(str(value).strip()))
        except (TypeError, ValueError):
            return default


_TRUE_WORDS = {"true", "yes", "on", "1", "-1"}
_FALSE_WORDS = {"false", "no", "off", "0"}


def to_bool(value: Any, default: bool = False) -> bool:
    # COM booleans surface as -1/0 as often as True/False
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    return default


def convert_for_property(value: Any, existing: Any) -> Any:
    """Convert a textual ``value`` to the type of the property's current value.

    Non-string values pass through.  Without an existing value the text is
    tried as bool, int and float in that order.
    """
    if not isinstance(value, str):
        return value
    raw = value.strip()

    if existing is None:
        lowered = raw.lower()
        if lowered in ("true", "false"):
            return lowered == "true"
        try:
            return int(raw)
        except ValueError:
            pass
        try:
            return float(raw)
        except ValueError:
            return value

    if isinstance(existing, bool):
        return to_bool(raw, False)
    if isinstance(existing, int):
        try:
            return int(raw)
        except ValueError:
            return existing
    if isinstance(existing, (float, Decimal)):
        try:
            return float(raw)
        except ValueError:
            return existing
    return value


def to_jsonable(value: Any) -> Any:
    """Render a driver/COM value so it survives JSON encoding."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (_dt.datetime, _dt.date, _dt.time)):
        return value.isoformat()
    return str(value)


__all__ = [
    "get_member",
    "set_member",
    "invoke_member",
    "iter_collection",
    "find_by_name",
    "safe_str",
    "to_int",
    "to_bool",
    "convert_for_property",
    "to_jsonable",
]
