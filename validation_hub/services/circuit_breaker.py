"""
Circuit Breaker - Validation Hub
validation_hub/services/circuit_breaker.py

Per-provider circuit breaker for remote analytic calls.

States:
- CLOSED: Normal operation, calls proceed
- OPEN: Too many failures, calls rejected immediately
- HALF_OPEN: Recovery timeout elapsed, probe calls allowed

Runs on a single event loop: state changes happen between awaits, so no
lock is needed.
"""
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from validation_hub.config import settings

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Call rejected because the circuit is open."""

    def __init__(self, name: str, retry_after: float):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit '{name}' open, retry in {int(retry_after)}s")


def _count_every_error(exc: BaseException) -> bool:
    return True


class CircuitBreaker:
    """
    Circuit breaker protecting one provider against cascading failures.

    Args:
        name: Provider name, used in errors and state reports
        failure_threshold: Consecutive failures before opening the circuit
        recovery_timeout: Seconds to wait before allowing a probe call
        success_threshold: Successful probes needed to close the circuit
        is_failure: Predicate deciding whether an exception counts as a failure
        clock: Monotonic time source in seconds
    """

    def __init__(
        self,
        name: str,
        failure_threshold: Optional[int] = None,
        recovery_timeout: Optional[float] = None,
        success_threshold: Optional[int] = None,
        is_failure: Callable[[BaseException], bool] = _count_every_error,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold or settings.CIRCUIT_FAILURE_THRESHOLD
        self.recovery_timeout = recovery_timeout or settings.CIRCUIT_RECOVERY_SECONDS
        self.success_threshold = success_threshold or settings.CIRCUIT_SUCCESS_THRESHOLD
        self.is_failure = is_failure
        self.clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None

    def before_call(self) -> CircuitState:
        """Admit or reject a call; returns the state the call runs under."""
        if self.state == CircuitState.OPEN:
            elapsed = self.clock() - (self.last_failure_time or 0.0)
            if elapsed < self.recovery_timeout:
                raise CircuitOpenError(self.name, self.recovery_timeout - elapsed)
            self.state = CircuitState.HALF_OPEN
            self.success_count = 0
            logger.info("Circuit half-open", extra={"circuit": self.name})
        return self.state

    def record_success(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                self.state = CircuitState.CLOSED
                self.failure_count = 0
                self.success_count = 0
                logger.info("Circuit closed", extra={"circuit": self.name})
        else:
            self.failure_count = 0

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self.clock()
        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.state != CircuitState.OPEN:
                logger.warning(
                    "Circuit opened",
                    extra={"circuit": self.name, "failure_count": self.failure_count},
                )
            self.state = CircuitState.OPEN
            self.success_count = 0

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Await func through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open.
            Exception: Whatever func raises, after recording the outcome.
        """
        self.before_call()
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            if self.is_failure(e):
                self.record_failure()
            else:
                self.record_success()
            raise
        self.record_success()
        return result

    def get_state(self) -> Dict[str, Any]:
        """Get current circuit breaker state information."""
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "is_available": self.state != CircuitState.OPEN,
        }

    def reset(self) -> None:
        """Manually reset the circuit breaker to closed state."""
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time = None


# Named circuit breakers, one per provider
_circuit_breakers: Dict[str, CircuitBreaker] = {}


def get_circuit_breaker(name: str, **kwargs) -> CircuitBreaker:
    """
    Get or create a named circuit breaker.

    Args:
        name: Unique name for the circuit breaker
        **kwargs: Configuration options for CircuitBreaker

    Returns:
        CircuitBreaker instance
    """
    if name not in _circuit_breakers:
        _circuit_breakers[name] = CircuitBreaker(name, **kwargs)
    return _circuit_breakers[name]


def get_all_circuit_states() -> Dict[str, Dict[str, Any]]:
    """Get the state of all circuit breakers."""
    return {name: cb.get_state() for name, cb in _circuit_breakers.items()}


def reset_circuit_breakers() -> None:
    """Drop every named breaker."""
    _circuit_breakers.clear()
