"""
Per-service circuit breakers for workflow steps.

A breaker opens after a run of consecutive failures and skips calls to the
service until a cool-down window has elapsed. A single success closes it
again; there is no half-open probing.

Usage:
    breakers = CircuitBreakerRegistry(failure_threshold=3, cooldown_seconds=30)

    if not breakers.is_open("risk_signals"):
        ...
        breakers.record_success("risk_signals")
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class BreakerState:
    """Failure bookkeeping for a single service."""

    failures: int = 0
    open_since: Optional[float] = None


class CircuitBreakerRegistry:
    """
    Process-wide store of breaker state keyed by service name.

    State is created lazily on first use and is never deleted, only reset.
    Every read and mutation happens under one lock so that concurrent
    failures for the same service are never lost.
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        cooldown_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._states: dict[str, BreakerState] = {}
        self._lock = threading.Lock()

    def is_open(self, service: str) -> bool:
        """
        Check whether calls to a service should be skipped.

        Closes the breaker (and resets its failure count) when the
        cool-down has elapsed, so repeated reads after the window are
        idempotent.
        """
        with self._lock:
            state = self._states.get(service)
            if state is None or state.failures < self.failure_threshold:
                return False

            if (
                state.open_since is not None
                and self._clock() - state.open_since < self.cooldown_seconds
            ):
                return True

            state.failures = 0
            state.open_since = None
            logger.info(f"Circuit breaker for '{service}' closed after cool-down")
            return False

    def record_success(self, service: str) -> None:
        """Reset the failure count and close the breaker."""
        with self._lock:
            state = self._states.setdefault(service, BreakerState())
            state.failures = 0
            state.open_since = None

    def record_failure(self, service: str) -> None:
        """Count a failure; open the breaker when the threshold is first reached."""
        with self._lock:
            state = self._states.setdefault(service, BreakerState())
            state.failures += 1
            if state.failures >= self.failure_threshold and state.open_since is None:
                state.open_since = self._clock()
                logger.warning(
                    f"Circuit breaker for '{service}' opened after "
                    f"{state.failures} consecutive failures"
                )

    def failure_count(self, service: str) -> int:
        with self._lock:
            state = self._states.get(service)
            return state.failures if state else 0

    def reset(self, service: str) -> None:
        """Force a breaker closed."""
        with self._lock:
            if service in self._states:
                self._states[service] = BreakerState()

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """
        Get the state of every known breaker.

        Returns:
            Mapping of service name to failure count and open flag
        """
        with self._lock:
            now = self._clock()
            return {
                service: {
                    "failures": state.failures,
                    "open": (
                        state.failures >= self.failure_threshold
                        and state.open_since is not None
                        and now - state.open_since < self.cooldown_seconds
                    ),
                }
                for service, state in self._states.items()
            }
