"""
Step executor with timeout, circuit-breaker and fallback handling.
Every workflow step goes through here and produces exactly one StepResult.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from fraud_triage.metrics.service import MetricsSink
from fraud_triage.schemas import StepName, StepResult, StepStatus
from fraud_triage.tools.circuit_breaker import CircuitBreakerRegistry
from fraud_triage.tools.fallbacks import build_fallback

logger = logging.getLogger(__name__)

UnitOfWork = Callable[[], Awaitable[Any]]

CIRCUIT_OPEN = "circuit_open"


class StepExecutor:
    """
    Runs a single unit of work on behalf of the orchestrator.

    Each call:
    - Is skipped when the step's circuit breaker is open
    - Is bounded by a deadline (``asyncio.wait_for`` cancels the work)
    - Records its outcome with the breaker and the metrics sink
    - Never raises for failures of the work itself; they become
      fallback results instead

    Cancellation of the caller is propagated.
    """

    def __init__(
        self,
        breakers: CircuitBreakerRegistry,
        metrics: MetricsSink,
        default_timeout_ms: int = 1000,
    ):
        self.breakers = breakers
        self.metrics = metrics
        self.default_timeout_ms = default_timeout_ms

    async def execute(
        self,
        step_name: StepName,
        unit_of_work: UnitOfWork,
        timeout_ms: Optional[int] = None,
    ) -> StepResult:
        """
        Execute a step and wrap its outcome.

        Args:
            step_name: Step being run (also the breaker and metrics key)
            unit_of_work: Zero-argument coroutine factory producing the payload
            timeout_ms: Deadline override for this step

        Returns:
            StepResult with status ok, or error plus a fallback payload
        """
        service = step_name.value
        timeout_ms = timeout_ms or self.default_timeout_ms

        if self.breakers.is_open(service):
            logger.warning(f"Step '{service}' skipped: circuit breaker open")
            self._emit(self.metrics.record_step_outcome, service, False)
            self._emit(self.metrics.record_latency, 0)
            self._emit(self.metrics.record_fallback, service)
            return StepResult(
                status=StepStatus.ERROR,
                duration_ms=0,
                payload=build_fallback(step_name),
                error=CIRCUIT_OPEN,
                fallback_used=True,
            )

        start_time = time.perf_counter()

        try:
            payload = await asyncio.wait_for(unit_of_work(), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            duration_ms = _elapsed_ms(start_time)
            logger.warning(f"Step '{service}' timed out after {duration_ms}ms")
            return self._fail(step_name, duration_ms, f"timeout after {timeout_ms}ms")
        except Exception as e:
            duration_ms = _elapsed_ms(start_time)
            logger.error(f"Step '{service}' failed: {e}")
            return self._fail(step_name, duration_ms, f"{type(e).__name__}: {e}")

        duration_ms = _elapsed_ms(start_time)
        self.breakers.record_success(service)
        self._emit(self.metrics.record_step_outcome, service, True)
        self._emit(self.metrics.record_latency, duration_ms)

        logger.info(f"Step '{service}' executed successfully ({duration_ms}ms)")

        return StepResult(
            status=StepStatus.OK,
            duration_ms=duration_ms,
            payload=payload,
        )

    def _fail(self, step_name: StepName, duration_ms: int, error: str) -> StepResult:
        service = step_name.value
        self.breakers.record_failure(service)
        self._emit(self.metrics.record_step_outcome, service, False)
        self._emit(self.metrics.record_latency, duration_ms)
        self._emit(self.metrics.record_fallback, service)

        return StepResult(
            status=StepStatus.ERROR,
            duration_ms=duration_ms,
            payload=build_fallback(step_name),
            error=error,
            fallback_used=True,
        )

    @staticmethod
    def _emit(record: Callable[..., None], *args: Any) -> None:
        try:
            record(*args)
        except Exception as e:
            logger.error(f"Metrics sink failed in {record.__name__}: {e}")


def _elapsed_ms(start_time: float) -> int:
    return int((time.perf_counter() - start_time) * 1000)
