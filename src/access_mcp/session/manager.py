"""
manager.py  –  the session object handed to every tool handler

``AccessSession`` wires the tabular connection, the automation engine, the
arbitration coordinator and the retry orchestrator around one shared
:class:`SessionState`.  Tool handlers only use the three entry points
(:meth:`AccessSession.ensure_tabular_connection`,
:meth:`AccessSession.run_automation`, :meth:`AccessSession.with_loaded_object`)
and the late-bound member helpers re-exported here.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, TypeVar

from ..config.loader import AppConfig, default_config
from ..internal.paths import paths_match
from . import dynamic
from .arbitration import ResourceArbitrator
from .engine import AutomationEngineManager, EngineFactory
from .errors import AccessMcpError, PreconditionError
from .objects import ObjectKind, loaded_object
from .orchestrator import RetryOrchestrator
from .recovery import RecoverySignatures
from .state import SessionState
from .tabular import Connector, TabularConnectionManager

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AccessSession:
    def __init__(
        self,
        config: Optional[AppConfig] = None,
        *,
        connector: Connector | None = None,
        engine_factory: EngineFactory | None = None,
    ) -> None:
        self.config = config or default_config()
        self.state = SessionState()
        self.signatures = RecoverySignatures.from_config(self.config.recovery)
        self.tabular = TabularConnectionManager(
            self.state,
            signatures=self.signatures,
            connector=connector,
            drivers=self.config.odbc.drivers,
            extended_ansi_sql=self.config.odbc.extended_ansi_sql,
        )
        self.engine = AutomationEngineManager(
            self.state,
            factory=engine_factory,
            prog_id=self.config.automation.prog_id,
            visible=self.config.automation.visible,
        )
        self.tabular.bind_engine_release(self.engine.try_release_exclusive_lock)
        self.arbitrator = ResourceArbitrator(self.state, self.tabular)
        self.orchestrator = RetryOrchestrator(self.engine, self.arbitrator, self.signatures)

    # ── lifecycle ──────────────────────────────────────────────────
    def connect(
        self,
        path: str,
        password: Optional[str] = None,
        system_database_path: Optional[str] = None,
    ) -> str:
        """Target ``path`` and open the tabular connection; returns the full path."""
        database_path = self.tabular.connect(path, password, system_database_path)
        logger.info("Connected to %s", database_path, extra={"event": "connect"})
        return database_path

    def disconnect(self) -> None:
        """Close both connections and forget the target file."""
        self.tabular.disconnect()
        self.engine.reset()
        self.state.release_depth = 0
        self.state.restore_pending = False
        logger.info("Disconnected", extra={"event": "disconnect"})

    @property
    def is_connected(self) -> bool:
        return self.state.is_connected

    @property
    def database_path(self) -> Optional[str]:
        return self.state.database_path

    def snapshot(self) -> Dict[str, object]:
        return self.state.snapshot()

    def close(self) -> None:
        """Tear the session down on process shutdown."""
        try:
            self.disconnect()
        except Exception:
            logger.warning("Session teardown failed", exc_info=True)

    def __enter__(self) -> "AccessSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def with_connected_database_released(self, path: str, operation: str, body: Callable[[], T]) -> T:
        """Run ``body`` with the session detached from ``path``, then reconnect.

        Whole-file operations (copy, compact) need every handle on the file
        closed.  When the session targets another file, ``body`` just runs.
        """
        if not self.state.is_connected or not paths_match(self.state.database_path, path):
            return body()
        if self.state.transaction_started_at is not None:
            raise PreconditionError(f"Cannot {operation} while a transaction is active")

        database_path = self.state.database_path or path
        password = self.state.database_password
        system_database_path = self.state.system_database_path
        self.disconnect()
        try:
            result = body()
        except Exception as exc:
            try:
                self.connect(database_path, password, system_database_path)
            except Exception as reconnect_error:
                raise AccessMcpError(
                    f"{operation} failed and reconnecting to {database_path} also failed: {reconnect_error}"
                ) from exc
            raise
        self.connect(database_path, password, system_database_path)
        return result

    # ── entry points for tool handlers ─────────────────────────────
    def ensure_tabular_connection(self) -> TabularConnectionManager:
        self.tabular.ensure_open()
        return self.tabular

    def run_automation(
        self,
        body: Callable[[Any], T],
        *,
        require_exclusive: bool = False,
        release_tabular: bool = False,
    ) -> T:
        return self.orchestrator.run(
            body,
            require_exclusive=require_exclusive,
            release_tabular=release_tabular,
        )

    def with_loaded_object(
        self,
        kind: ObjectKind | str,
        name: str,
        body: Callable[[Any, Any], T],
        *,
        design_view: bool = True,
        save_changes: bool = False,
    ) -> T:
        """Run ``body(app, obj)`` with form/report ``name`` loaded.

        Design-view work needs the file exclusively, so the tabular connection
        is released for the duration.  The object is closed again only when
        this call opened it.
        """
        object_kind = ObjectKind(kind)

        def _operation(app: Any) -> T:
            with loaded_object(app, object_kind, name, design_view, save_changes) as obj:
                return body(app, obj)

        return self.run_automation(
            _operation,
            require_exclusive=design_view,
            release_tabular=design_view,
        )

    def launch_access(self, visible: bool = True) -> Any:
        return self.run_automation(lambda app: self.engine.launch(visible))

    def close_access(self) -> bool:
        had_instance = self.engine.has_instance
        self.engine.reset()
        return had_instance

    # late-bound member access for handlers
    get_member = staticmethod(dynamic.get_member)
    set_member = staticmethod(dynamic.set_member)
    invoke_member = staticmethod(dynamic.invoke_member)


__all__ = ["AccessSession"]
