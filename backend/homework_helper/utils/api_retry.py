"""
Retry with exponential backoff and a circuit breaker for outbound API calls.

Only transient failures are retried: upstream 5xx responses and connection
errors. 429s are never retried here: a quota or rate limit is reported to the
student straight away with its Retry-After hint.
"""

import logging
import random
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 2

    # Backoff timing (in seconds)
    initial_delay: float = 1.0
    max_delay: float = 10.0
    exponential_base: float = 2.0
    jitter_factor: float = 0.5  # Random factor 0-0.5x of delay

    retry_on_status_codes: Tuple[int, ...] = (500, 502, 503, 504)
    retry_on_exceptions: Tuple[Type[Exception], ...] = (ConnectionError,)

    # Circuit breaker
    failure_threshold: int = 5  # Consecutive failures before circuit opens
    recovery_timeout: float = 60.0  # Seconds before a trial request
    half_open_successes: int = 2  # Good trials needed to close again


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised when the circuit is open and calls are being rejected."""


# ============================================================================
# CIRCUIT BREAKER
# ============================================================================

class CircuitBreaker:
    """
    Stops calling a failing service until it has had time to recover.

    CLOSED counts consecutive retryable failures. At the threshold the circuit
    goes OPEN and rejects calls for `recovery_timeout` seconds, then lets one
    trial call through at a time (HALF_OPEN). `half_open_successes` good trials
    close it again; any failed trial re-opens it.

    One breaker is shared by every request thread, so all state changes
    happen under a lock.
    """

    def __init__(self, config: RetryConfig, clock: Callable[[], float] = time.monotonic):
        self.config = config
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False
        self._trial_successes = 0
        self.failure_count = 0

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._trial_in_flight = False
        self._trial_successes = 0

    def can_execute(self) -> bool:
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.OPEN:
                if self._clock() - self._opened_at < self.config.recovery_timeout:
                    return False
                self._state = CircuitState.HALF_OPEN
                self._trial_successes = 0
                logger.info("Circuit breaker HALF_OPEN - sending a trial request")

            if self._trial_in_flight:
                return False
            self._trial_in_flight = True
            return True

    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._trial_in_flight = False
                self._trial_successes += 1
                if self._trial_successes >= self.config.half_open_successes:
                    self._state = CircuitState.CLOSED
                    self.failure_count = 0
                    logger.info("Circuit breaker CLOSED - service recovered")
            else:
                self.failure_count = 0

    def record_failure(self) -> None:
        with self._lock:
            self.failure_count += 1
            if self._state == CircuitState.HALF_OPEN:
                self._open()
                logger.warning("Circuit breaker OPEN - trial request failed")
            elif self._state == CircuitState.CLOSED and self.failure_count >= self.config.failure_threshold:
                self._open()
                logger.warning(f"Circuit breaker OPEN after {self.failure_count} consecutive failures")

    def release(self) -> None:
        """End a call that says nothing about upstream health (e.g. a 429)."""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._trial_in_flight = False

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._opened_at = None
            self._trial_in_flight = False
            self._trial_successes = 0
            self.failure_count = 0


# ============================================================================
# RETRY
# ============================================================================

def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Exponential backoff with jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    base_delay = config.initial_delay * (config.exponential_base ** attempt)
    jitter = random.uniform(0, config.jitter_factor * base_delay)
    return min(base_delay + jitter, config.max_delay)


def should_retry(exception: Exception, config: RetryConfig) -> bool:
    """Whether an exception is a transient failure worth retrying."""
    status_code = getattr(exception, "status_code", None)
    if isinstance(status_code, int):
        return status_code in config.retry_on_status_codes

    return isinstance(exception, config.retry_on_exceptions)


def call_with_retry(
    func: Callable[..., Any],
    *args,
    config: Optional[RetryConfig] = None,
    circuit_breaker: Optional[CircuitBreaker] = None,
    **kwargs,
) -> Any:
    """
    Call `func`, retrying transient failures with backoff.

    Non-retryable exceptions propagate on the first failure. Once retries are
    exhausted the last exception propagates unchanged so callers can classify it.

    Raises:
        CircuitOpenError: if the circuit breaker is rejecting calls
    """
    if config is None:
        config = RetryConfig()

    for attempt in range(config.max_retries + 1):
        if circuit_breaker and not circuit_breaker.can_execute():
            raise CircuitOpenError("Circuit breaker is open - service temporarily unavailable")

        try:
            result = func(*args, **kwargs)
            if circuit_breaker:
                circuit_breaker.record_success()
            return result

        except Exception as e:
            retryable = should_retry(e, config)

            if circuit_breaker:
                if retryable:
                    circuit_breaker.record_failure()
                else:
                    circuit_breaker.release()

            if not retryable or attempt >= config.max_retries:
                logger.error(f"Request failed after {attempt + 1} attempts: {type(e).__name__}: {e}")
                raise

            delay = calculate_delay(attempt, config)
            logger.warning(
                f"Attempt {attempt + 1}/{config.max_retries + 1} failed: {e}. "
                f"Retrying in {delay:.2f}s..."
            )
            time.sleep(delay)
