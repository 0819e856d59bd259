from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from .arbitration import ResourceArbitrator
from .engine import AutomationEngineManager
from .recovery import RecoverySignatures

logger = logging.getLogger(__name__)

T = TypeVar("T")
Operation = Callable[[Any], T]


class RetryOrchestrator:
    """Run automation calls with a bounded classify → reset → retry-once policy.

    A recognised transient lock/state error on the first attempt resets the
    Access instance and runs the whole operation again.  Whatever the second
    attempt raises propagates, as does any unrecognised error.
    """

    def __init__(
        self,
        engine: AutomationEngineManager,
        arbitrator: ResourceArbitrator,
        signatures: RecoverySignatures | None = None,
    ) -> None:
        self._engine = engine
        self._arbitrator = arbitrator
        self._signatures = signatures or RecoverySignatures()

    @property
    def signatures(self) -> RecoverySignatures:
        return self._signatures

    def run(
        self,
        operation: Operation[T],
        *,
        require_exclusive: bool = False,
        release_tabular: bool = False,
    ) -> T:
        if release_tabular:
            with self._arbitrator.tabular_released():
                return self._run_with_retry(operation, require_exclusive)
        return self._run_with_retry(operation, require_exclusive)

    def _attempt(self, operation: Operation[T], require_exclusive: bool) -> T:
        app = self._engine.ensure_engine(open_target_file=True, require_exclusive=require_exclusive)
        return operation(app)

    def _run_with_retry(self, operation: Operation[T], require_exclusive: bool) -> T:
        try:
            return self._attempt(operation, require_exclusive)
        except Exception as exc:
            if not self._signatures.is_recoverable_engine_error(exc):
                raise
            logger.warning(
                "Recoverable Access error, resetting the automation instance and retrying once: %s",
                exc,
                extra={"event": "automation_retry"},
            )
            self._engine.reset()
        return self._attempt(operation, require_exclusive)


__all__ = ["RetryOrchestrator"]
