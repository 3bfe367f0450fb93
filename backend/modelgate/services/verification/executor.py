"""
Panel fan-out.

Every panel member runs concurrently against the task executor. Each member
is isolated: an exception, a timeout, an open circuit or an unsuccessful
outcome is turned into a failed PanelMemberResult and never aborts the other
members. The caller gets one result per member, in panel order, after all of
them have settled.
"""
import asyncio
import time
from typing import Any, Dict, List, Optional, Protocol, Sequence

from pydantic import BaseModel

from modelgate.core.circuit_breaker import CircuitBreakerOpenError, CircuitBreakerRegistry
from modelgate.core.logging import get_logger
from modelgate.core.metrics import record_panel_member
from modelgate.services.models.schema import ModelDescriptor
from modelgate.services.verification.schema import PanelMemberResult

logger = get_logger(__name__)


class ExecutionOutcome(BaseModel):
    """What a task executor returns for one model run."""

    success: bool
    result: Optional[Any] = None
    error: Optional[str] = None


def _coerce_outcome(raw: Any) -> ExecutionOutcome:
    # Executors may return plain dicts of the same shape
    if isinstance(raw, ExecutionOutcome):
        return raw
    return ExecutionOutcome.model_validate(raw)


class TaskExecutor(Protocol):
    """
    Runs a task against one model backend.

    Must be safe to call concurrently for different models.
    """

    async def run(self, model_id: str, payload: Dict[str, Any]) -> ExecutionOutcome:
        ...


class PanelRunner:
    """Fans a payload out to a panel and joins on all members."""

    def __init__(
        self,
        executor: TaskExecutor,
        timeout_seconds: float,
        breakers: Optional[CircuitBreakerRegistry] = None,
    ):
        self._executor = executor
        self.timeout_seconds = timeout_seconds
        self._breakers = breakers

    async def run(
        self,
        panel: Sequence[ModelDescriptor],
        payload: Dict[str, Any],
    ) -> List[PanelMemberResult]:
        """Run every member concurrently; results keep panel order."""
        return list(await asyncio.gather(*(self._run_member(model, payload) for model in panel)))

    async def _run_member(self, model: ModelDescriptor, payload: Dict[str, Any]) -> PanelMemberResult:
        start = time.perf_counter()
        status = "failure"
        try:
            outcome = await asyncio.wait_for(
                self._execute(model, payload),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            status = "timeout"
            if self._breakers is not None:
                self._breakers.get(model.id).record_failure()
            error = f"Execution timed out after {self.timeout_seconds:g}s"
            logger.warning("panel_member_timeout", model_id=model.id, timeout_seconds=self.timeout_seconds)
            return self._failed(model, start, error, status)
        except CircuitBreakerOpenError as exc:
            status = "circuit_open"
            logger.warning("panel_member_circuit_open", model_id=model.id, error=str(exc))
            return self._failed(model, start, str(exc), status)
        except Exception as exc:
            logger.warning(
                "panel_member_failed",
                model_id=model.id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return self._failed(model, start, str(exc) or type(exc).__name__, status)

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        if outcome.success:
            status = "success"
        record_panel_member(model.id, status, elapsed_ms / 1000.0)
        if not outcome.success:
            logger.info("panel_member_unsuccessful", model_id=model.id, error=outcome.error)

        return PanelMemberResult(
            model_id=model.id,
            model_name=model.name,
            success=outcome.success,
            result=outcome.result,
            execution_time_ms=elapsed_ms,
            error=outcome.error,
        )

    async def _execute(self, model: ModelDescriptor, payload: Dict[str, Any]) -> ExecutionOutcome:
        if self._breakers is None:
            return _coerce_outcome(await self._executor.run(model.id, payload))

        breaker = self._breakers.get(model.id)
        breaker.before_call()
        try:
            outcome = _coerce_outcome(await self._executor.run(model.id, payload))
        except Exception:
            breaker.record_failure()
            raise
        if outcome.success:
            breaker.record_success()
        else:
            breaker.record_failure()
        return outcome

    def _failed(self, model: ModelDescriptor, start: float, error: str, status: str) -> PanelMemberResult:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        record_panel_member(model.id, status, elapsed_ms / 1000.0)
        return PanelMemberResult(
            model_id=model.id,
            model_name=model.name,
            success=False,
            result=None,
            execution_time_ms=elapsed_ms,
            error=error,
        )
