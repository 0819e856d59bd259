"""
engine.py  –  lifecycle of the single ``Access.Application`` instance

The instance is created lazily, kept across calls to amortise start-up cost
and only discarded by :meth:`AutomationEngineManager.reset`.  Before every
automation call it makes sure the session's database is the one open in
Access, in the access mode the caller needs.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from ..internal.paths import paths_match
from .dynamic import get_member
from .errors import EngineUnavailableError
from .state import SessionState

logger = logging.getLogger(__name__)

ACCESS_PROG_ID = "Access.Application"
AC_QUIT_SAVE_NONE = 2

EngineFactory = Callable[[], Any]


def dispatch_access_application(prog_id: str = ACCESS_PROG_ID) -> Any:
    """Create an isolated Access instance through COM.

    ``DispatchEx`` starts a new process instead of attaching to one the user
    may have open.
    """
    try:
        import pythoncom  # type: ignore
        import win32com.client  # type: ignore
    except ImportError as exc:
        raise EngineUnavailableError(
            "Microsoft Access COM automation is not available on this machine (pywin32 is not installed)."
        ) from exc
    try:
        pythoncom.CoInitialize()
        return win32com.client.DispatchEx(prog_id)
    except Exception as exc:
        raise EngineUnavailableError(
            f"Microsoft Access COM automation is not available on this machine: {exc}"
        ) from exc


class AutomationEngineManager:
    def __init__(
        self,
        state: SessionState,
        *,
        factory: EngineFactory | None = None,
        prog_id: str = ACCESS_PROG_ID,
        visible: bool = False,
    ) -> None:
        self._state = state
        self._factory = factory or (lambda: dispatch_access_application(prog_id))
        self._visible = visible

    @property
    def has_instance(self) -> bool:
        return self._state.engine is not None

    def ensure_engine(self, open_target_file: bool = True, require_exclusive: bool = False) -> Any:
        """Return a ready Access instance, creating it and opening the file as needed."""
        app = self._state.engine
        if app is None:
            app = self._create()
        if open_target_file and self._state.is_connected:
            self._ensure_database_open(app, self._state.database_path or "", require_exclusive)
        return app

    def _new_instance(self, visible: bool = False) -> Any:
        try:
            app = self._factory()
        except EngineUnavailableError:
            raise
        except Exception as exc:
            raise EngineUnavailableError(f"Failed to create {ACCESS_PROG_ID} COM instance: {exc}") from exc
        if app is None:
            raise EngineUnavailableError(f"Failed to create {ACCESS_PROG_ID} COM instance.")
        for name, value in (("Visible", visible), ("UserControl", False)):
            try:
                setattr(app, name, value)
            except Exception:
                logger.debug("Could not set %s on Access instance", name, exc_info=True)
        return app

    def _create(self) -> Any:
        app = self._new_instance(self._visible)
        self._state.engine = app
        self._state.engine_database_path = None
        self._state.engine_exclusive = False
        logger.info("Access automation instance created")
        return app

    def _ensure_database_open(self, app: Any, path: str, require_exclusive: bool) -> None:
        should_open = True
        should_close = False

        # CurrentProject.FullName is empty or raises when no database is open
        current = get_member(get_member(app, "CurrentProject"), "FullName")
        current_path = str(current).strip() if current else ""
        if current_path:
            if paths_match(current_path, path):
                known_exclusive = self._state.engine_exclusive and paths_match(
                    self._state.engine_database_path, path
                )
                if require_exclusive and not known_exclusive:
                    should_close = True
                else:
                    should_open = False
            else:
                should_close = True

        if should_close:
            try:
                app.CloseCurrentDatabase()
            except Exception:
                logger.debug("CloseCurrentDatabase failed; reopening anyway", exc_info=True)
            self._state.engine_database_path = None
            self._state.engine_exclusive = False

        if not should_open:
            self._state.engine_database_path = path
            return

        if self._state.database_password:
            app.OpenCurrentDatabase(path, require_exclusive, self._state.database_password)
        else:
            app.OpenCurrentDatabase(path, require_exclusive)
        self._state.engine_database_path = path
        self._state.engine_exclusive = bool(require_exclusive)
        logger.info(
            "Access opened %s (%s)", path, "exclusive" if require_exclusive else "shared"
        )

    def reset(self) -> None:
        """Shut the instance down without save prompts and forget it."""
        app = self._state.engine
        self._state.engine = None
        self._state.engine_database_path = None
        self._state.engine_exclusive = False
        if app is None:
            return
        try:
            app.Quit(AC_QUIT_SAVE_NONE)
        except Exception:
            logger.debug("Access Quit failed during reset", exc_info=True)
        logger.info("Access automation instance discarded")

    def try_release_exclusive_lock(self) -> bool:
        """Close the database if Access holds it exclusively.

        Returns True when the lock was released.  A failing close falls back
        to a full reset and reports False.
        """
        app = self._state.engine
        if app is None or not self._state.engine_exclusive:
            return False
        try:
            app.CloseCurrentDatabase()
        except Exception:
            logger.warning("Releasing the exclusive lock failed; resetting Access", exc_info=True)
            self.reset()
            return False
        self._state.engine_database_path = None
        self._state.engine_exclusive = False
        return True

    def launch(self, visible: bool = True) -> Any:
        app = self.ensure_engine(open_target_file=True, require_exclusive=False)
        app.Visible = visible
        return app

    @contextmanager
    def temporary_instance(self) -> Iterator[Any]:
        """A hidden throwaway instance with no database open, quit on exit.

        Used for whole-file operations (create, compact) that must not touch
        the session's own instance.
        """
        app = self._new_instance()
        try:
            yield app
        finally:
            try:
                app.Quit(AC_QUIT_SAVE_NONE)
            except Exception:
                logger.debug("Quitting temporary Access instance failed", exc_info=True)


__all__ = [
    "ACCESS_PROG_ID",
    "AC_QUIT_SAVE_NONE",
    "AutomationEngineManager",
    "dispatch_access_application",
]
