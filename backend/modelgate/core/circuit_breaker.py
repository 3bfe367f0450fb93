"""
Circuit breaker for model backends.

Each panel member call is routed through the breaker for its model id so a
backend that keeps failing is skipped quickly instead of burning the
per-member timeout on every verification:
- Failure threshold: 50% error rate over 1 minute
- Open duration: 30 seconds
- Half-open: Test with 10% traffic
"""
import time
from enum import Enum
from typing import Optional, Any, Dict
from collections import deque
from threading import Lock
from modelgate.core.logging import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, bypass backend
    HALF_OPEN = "half_open"  # Testing recovery


class CircuitBreakerOpenError(Exception):
    """Raised when circuit breaker is open and the call is rejected."""
    pass


class CircuitBreaker:
    """
    Circuit breaker implementation for a single model backend.

    Configuration:
    - failure_threshold: error rate over time_window_seconds that opens the circuit
    - open_duration_seconds: how long the circuit stays open
    - half_open_test_percentage: share of calls let through while half-open
    """

    def __init__(
        self,
        name: str,
        failure_threshold: float = 0.5,
        time_window_seconds: int = 60,
        open_duration_seconds: int = 30,
        half_open_test_percentage: float = 0.1,
        min_requests_for_threshold: int = 10,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.time_window_seconds = time_window_seconds
        self.open_duration_seconds = open_duration_seconds
        self.half_open_test_percentage = half_open_test_percentage
        self.min_requests_for_threshold = min_requests_for_threshold

        self._state = CircuitState.CLOSED
        self._lock = Lock()
        self._request_history: deque = deque()  # (timestamp, success: bool)
        self._opened_at: Optional[float] = None
        self._half_open_test_count = 0
        self._half_open_success_count = 0
        self._half_open_failure_count = 0

    @property
    def state(self) -> CircuitState:
        """Get current circuit breaker state."""
        with self._lock:
            self._update_state()
            return self._state

    def _update_state(self) -> None:
        """Update circuit breaker state based on current conditions."""
        now = time.time()

        cutoff_time = now - self.time_window_seconds
        while self._request_history and self._request_history[0][0] < cutoff_time:
            self._request_history.popleft()

        if self._state == CircuitState.OPEN:
            if self._opened_at and (now - self._opened_at) >= self.open_duration_seconds:
                self._state = CircuitState.HALF_OPEN
                self._half_open_test_count = 0
                self._half_open_success_count = 0
                self._half_open_failure_count = 0
                logger.info(
                    "circuit_breaker_half_open",
                    circuit_breaker=self.name,
                    state="half_open",
                )

        elif self._state == CircuitState.CLOSED:
            if len(self._request_history) >= self.min_requests_for_threshold:
                failures = sum(1 for _, success in self._request_history if not success)
                total = len(self._request_history)
                error_rate = failures / total if total > 0 else 0.0

                if error_rate >= self.failure_threshold:
                    self._state = CircuitState.OPEN
                    self._opened_at = now
                    logger.warning(
                        "circuit_breaker_opened",
                        circuit_breaker=self.name,
                        error_rate=error_rate,
                        failures=failures,
                        total=total,
                    )

    def _should_test_half_open(self) -> bool:
        """Determine if this call should test the half-open circuit."""
        with self._lock:
            if self._state != CircuitState.HALF_OPEN:
                return False
            self._half_open_test_count += 1
            return (self._half_open_test_count % int(1 / self.half_open_test_percentage)) == 0

    def _record_result(self, success: bool) -> None:
        """Record a call result."""
        now = time.time()

        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                if success:
                    self._half_open_success_count += 1
                else:
                    self._half_open_failure_count += 1

                total_tests = self._half_open_success_count + self._half_open_failure_count
                if total_tests >= 5:
                    if self._half_open_success_count >= 3:
                        self._state = CircuitState.CLOSED
                        self._opened_at = None
                        self._request_history.clear()
                        logger.info(
                            "circuit_breaker_closed",
                            circuit_breaker=self.name,
                            success_count=self._half_open_success_count,
                            failure_count=self._half_open_failure_count,
                        )
                    else:
                        self._state = CircuitState.OPEN
                        self._opened_at = now
                        logger.warning(
                            "circuit_breaker_reopened",
                            circuit_breaker=self.name,
                            success_count=self._half_open_success_count,
                            failure_count=self._half_open_failure_count,
                        )
            else:
                self._request_history.append((now, success))

    def before_call(self) -> None:
        """
        Admit or reject a call.

        Raises CircuitBreakerOpenError if the circuit is open, or half-open
        and this call is not one of the test requests.
        """
        state = self.state

        if state == CircuitState.OPEN:
            raise CircuitBreakerOpenError(
                f"Circuit breaker {self.name} is OPEN. Backend unavailable."
            )

        if state == CircuitState.HALF_OPEN and not self._should_test_half_open():
            raise CircuitBreakerOpenError(
                f"Circuit breaker {self.name} is HALF_OPEN. Skipping test request."
            )

    def record_success(self) -> None:
        self._record_result(True)

    def record_failure(self) -> None:
        """Record a failed call: an exception, a timeout or an unsuccessful outcome."""
        self._record_result(False)

    def get_metrics(self) -> dict:
        """Get circuit breaker metrics for monitoring."""
        with self._lock:
            self._update_state()

            failures = sum(1 for _, success in self._request_history if not success)
            total = len(self._request_history)
            error_rate = failures / total if total > 0 else 0.0

            return {
                "name": self.name,
                "state": self._state.value,
                "recent_requests": total,
                "recent_failures": failures,
                "error_rate": error_rate,
                "opened_at": self._opened_at,
                "half_open_tests": self._half_open_test_count,
                "half_open_successes": self._half_open_success_count,
                "half_open_failures": self._half_open_failure_count,
            }


class CircuitBreakerRegistry:
    """Lazily creates one breaker per model id, sharing the same settings."""

    def __init__(self, **breaker_kwargs: Any):
        self._breaker_kwargs = breaker_kwargs
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = Lock()

    def get(self, model_id: str) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(model_id)
            if breaker is None:
                breaker = CircuitBreaker(name=f"model:{model_id}", **self._breaker_kwargs)
                self._breakers[model_id] = breaker
            return breaker

    def snapshot(self) -> Dict[str, dict]:
        with self._lock:
            breakers = dict(self._breakers)
        return {model_id: breaker.get_metrics() for model_id, breaker in breakers.items()}
