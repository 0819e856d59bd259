from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from .errors import PreconditionError
from .state import SessionState
from .tabular import TabularConnectionManager

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResourceArbitrator:
    """Make the tabular connection step aside while Access needs the file.

    Some providers keep a shared handle that stops Access from opening the
    database exclusively, so exclusive automation calls run inside
    :meth:`tabular_released`.  Scopes nest; only the outermost one closes and
    later restores the connection.
    """

    def __init__(self, state: SessionState, tabular: TabularConnectionManager) -> None:
        self._state = state
        self._tabular = tabular

    @contextmanager
    def tabular_released(self) -> Iterator[None]:
        state = self._state
        outermost = state.release_depth == 0
        if outermost:
            if state.transaction_active:
                raise PreconditionError(
                    "Releasing the tabular connection is not allowed while a transaction is active. "
                    "Commit or rollback first."
                )
            state.restore_pending = state.tabular_open
            if state.restore_pending:
                self._tabular.close(rollback=False)
                logger.debug("Tabular connection released for exclusive automation")

        state.release_depth += 1
        try:
            yield
        finally:
            state.release_depth -= 1
            if outermost:
                pending = state.restore_pending
                state.restore_pending = False
                if pending and not state.tabular_open and state.is_connected:
                    try:
                        self._tabular.reopen()
                    except Exception:
                        logger.warning(
                            "Restoring the tabular connection failed; it will be reopened on next use",
                            exc_info=True,
                        )

    def run_with_tabular_released(self, body: Callable[[], T]) -> T:
        with self.tabular_released():
            return body()


__all__ = ["ResourceArbitrator"]
