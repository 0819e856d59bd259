"""Classification of transient Access lock/state errors.

The signatures are host-version dependent, so they live in a versioned,
configurable :class:`RecoverySignatures` rather than in the retry code.  Both
predicates walk the whole error chain (``__cause__``, ``__context__``) and
look at ``com_error`` status codes (``hresult`` and the ``excepinfo`` scode)
as well as message text.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator, List, Optional, Tuple

from .errors import EngineUnavailableError, PreconditionError

DEFAULT_ENGINE_ERROR_CODES: Tuple[int, ...] = (0x800ADEB9, 0x800A0BB9)
DEFAULT_ENGINE_ERROR_MESSAGES: Tuple[str, ...] = (
    "exclusive access",
    "opened or locked",
    "opened or locked by another user",
    "cannot be opened or locked",
    "prevents it from being opened or locked",
    "has been placed in a state",
)
DEFAULT_LOCK_ERROR_MESSAGES: Tuple[str, ...] = (
    "file already in use",
    "could not use",
    "opened or locked",
)
SIGNATURES_VERSION = 1

# errors raised by our own checks, never worth an engine restart
_NEVER_RECOVERABLE = (EngineUnavailableError, PreconditionError)


def iter_error_chain(exc: Optional[BaseException]) -> Iterator[BaseException]:
    seen: set[int] = set()
    current = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _excepinfo(exc: BaseException) -> Optional[tuple]:
    info = getattr(exc, "excepinfo", None)
    if info is None and len(getattr(exc, "args", ())) >= 3:
        candidate = exc.args[2]
        if isinstance(candidate, tuple):
            info = candidate
    return info if isinstance(info, tuple) else None


def error_codes(exc: BaseException) -> List[int]:
    """Return the unsigned 32-bit status codes carried by ``exc``."""
    codes: List[int] = []
    hresult = getattr(exc, "hresult", None)
    if hresult is None and exc.args and isinstance(exc.args[0], int) and not isinstance(exc.args[0], bool):
        hresult = exc.args[0]
    if isinstance(hresult, int):
        codes.append(hresult & 0xFFFFFFFF)
    info = _excepinfo(exc)
    if info and len(info) >= 6 and isinstance(info[5], int):
        codes.append(info[5] & 0xFFFFFFFF)
    return codes


def error_text(exc: BaseException) -> str:
    parts = [str(exc)]
    info = _excepinfo(exc)
    if info and len(info) >= 3 and info[2]:
        parts.append(str(info[2]))
    return " ".join(parts)


def _lowered(values: Iterable[Any]) -> Tuple[str, ...]:
    return tuple(str(v).lower() for v in values if v is not None and str(v).strip())


@dataclass(frozen=True)
class RecoverySignatures:
    version: int = SIGNATURES_VERSION
    engine_error_codes: Tuple[int, ...] = DEFAULT_ENGINE_ERROR_CODES
    engine_error_messages: Tuple[str, ...] = DEFAULT_ENGINE_ERROR_MESSAGES
    lock_error_messages: Tuple[str, ...] = DEFAULT_LOCK_ERROR_MESSAGES

    @classmethod
    def from_config(cls, cfg: Any) -> "RecoverySignatures":
        """Build from a ``RecoveryConfig``-shaped object."""
        return cls(
            version=int(getattr(cfg, "version", SIGNATURES_VERSION)),
            engine_error_codes=tuple(int(c) & 0xFFFFFFFF for c in getattr(cfg, "engine_error_codes", ())),
            engine_error_messages=_lowered(getattr(cfg, "engine_error_messages", ())),
            lock_error_messages=_lowered(getattr(cfg, "lock_error_messages", ())),
        )

    def is_recoverable_engine_error(self, exc: BaseException) -> bool:
        """True when ``exc`` is a transient automation lock/state failure."""
        if isinstance(exc, _NEVER_RECOVERABLE):
            return False
        codes = {c & 0xFFFFFFFF for c in self.engine_error_codes}
        needles = _lowered(self.engine_error_messages)
        for link in iter_error_chain(exc):
            if codes.intersection(error_codes(link)):
                return True
            text = error_text(link).lower()
            if any(needle in text for needle in needles):
                return True
        return False

    def is_recoverable_lock_error(self, exc: BaseException) -> bool:
        """True when a tabular open failed because the file is held elsewhere."""
        if isinstance(exc, _NEVER_RECOVERABLE):
            return False
        needles = _lowered(self.lock_error_messages)
        for link in iter_error_chain(exc):
            text = error_text(link).lower()
            if any(needle in text for needle in needles):
                return True
        return False


__all__ = [
    "DEFAULT_ENGINE_ERROR_CODES",
    "DEFAULT_ENGINE_ERROR_MESSAGES",
    "DEFAULT_LOCK_ERROR_MESSAGES",
    "RecoverySignatures",
    "error_codes",
    "error_text",
    "iter_error_chain",
]
