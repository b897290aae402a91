"""
Resilience primitives: circuit breaker and retry with exponential backoff.

These wrap every outbound call (source fetches, SDK quotes, balance lookups,
swaps). Retries happen inside a single breaker-guarded call: a call that
retried three times and still failed counts as one breaker failure.
Upstream throttling (RateLimitedError) is neither retried nor counted.
"""
from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple, Type, TypeVar

import requests

from ..core.errors import CircuitOpenError, RateLimitedError, SourceUnavailableError
from ..timeutils import Clock, default_clock

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], None]


class CircuitState(enum.Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry with exponential backoff. max_retries counts total attempts."""

    max_retries: int = 3
    base_delay_s: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay_s: float = 10.0
    retry_on: Tuple[Type[BaseException], ...] = (
        SourceUnavailableError,
        requests.RequestException,
        ConnectionError,
        TimeoutError,
    )

    def delay_for(self, attempt: int) -> float:
        """Delay after the 0-based ``attempt`` failed."""
        return min(self.base_delay_s * (self.backoff_multiplier ** attempt), self.max_delay_s)

    def budget_s(self, attempt_timeout_s: float) -> float:
        """Worst-case wall time of one guarded call: every attempt times out, plus the backoff between them."""
        attempts = max(1, self.max_retries)
        return attempts * attempt_timeout_s + sum(self.delay_for(a) for a in range(attempts - 1))


# Value-moving calls (swaps) must never be replayed.
NO_RETRY = RetryConfig(max_retries=1)


@dataclass
class CircuitBreaker:
    """
    Circuit breaker preventing repeated calls to a failing dependency.

    States:
    - CLOSED: Normal operation, requests pass through.
    - OPEN: Dependency is failing, requests are short-circuited.
    - HALF_OPEN: After recovery timeout, exactly one trial request is allowed.

    Transitions:
    - CLOSED -> OPEN: After `failure_threshold` consecutive failures.
    - OPEN -> HALF_OPEN: After `recovery_timeout_s` elapse.
    - HALF_OPEN -> CLOSED: If the trial succeeds.
    - HALF_OPEN -> OPEN: If the trial fails (recovery timer restarts).
    """

    dependency_id: str
    failure_threshold: int = 5
    recovery_timeout_s: float = 30.0
    clock: Clock = field(default=default_clock, repr=False)
    _consecutive_failures: int = field(default=0, init=False, repr=False)
    _state: CircuitState = field(default=CircuitState.CLOSED, init=False, repr=False)
    _opened_at: Optional[float] = field(default=None, init=False, repr=False)
    _trial_in_flight: bool = field(default=False, init=False, repr=False)
    _last_error: Optional[str] = field(default=None, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def _advance(self) -> CircuitState:
        # Caller holds the lock.
        if self._state is CircuitState.OPEN and self._opened_at is not None:
            if self.clock() - self._opened_at >= self.recovery_timeout_s:
                self._state = CircuitState.HALF_OPEN
                self._trial_in_flight = False
                logger.info("Circuit breaker HALF_OPEN for %s", self.dependency_id)
        return self._state

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._advance()

    @property
    def is_open(self) -> bool:
        return self.state is CircuitState.OPEN

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def opened_at(self) -> Optional[float]:
        return self._opened_at

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def acquire(self) -> None:
        """Admit one call or raise CircuitOpenError without invoking anything."""
        with self._lock:
            state = self._advance()
            if state is CircuitState.CLOSED:
                return
            if state is CircuitState.OPEN:
                remaining = None
                if self._opened_at is not None:
                    remaining = max(0.0, self.recovery_timeout_s - (self.clock() - self._opened_at))
                raise CircuitOpenError(self.dependency_id, remaining)
            if self._trial_in_flight:
                raise CircuitOpenError(self.dependency_id, 0.0)
            self._trial_in_flight = True

    def record_success(self) -> None:
        with self._lock:
            if self._state is not CircuitState.CLOSED:
                logger.info("Circuit breaker CLOSED for %s", self.dependency_id)
            self._consecutive_failures = 0
            self._state = CircuitState.CLOSED
            self._opened_at = None
            self._trial_in_flight = False
            self._last_error = None

    def record_failure(self, error: str) -> None:
        with self._lock:
            self._last_error = error[:500]
            if self._state is CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                self._opened_at = self.clock()
                self._trial_in_flight = False
                logger.warning("Circuit breaker re-OPENED for %s after failed trial: %s",
                               self.dependency_id, error[:200])
                return
            self._consecutive_failures += 1
            if self._state is CircuitState.CLOSED and self._consecutive_failures >= self.failure_threshold:
                self._state = CircuitState.OPEN
                self._opened_at = self.clock()
                logger.warning(
                    "Circuit breaker OPEN for %s after %d failures: %s",
                    self.dependency_id, self._consecutive_failures, error[:200],
                )

    def release_trial(self) -> None:
        """End a call that neither succeeded nor failed; a half-open breaker admits the next trial."""
        with self._lock:
            self._trial_in_flight = False

    def reset(self) -> None:
        with self._lock:
            self._consecutive_failures = 0
            self._state = CircuitState.CLOSED
            self._opened_at = None
            self._trial_in_flight = False
            self._last_error = None

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            state = self._advance()
            return {
                "state": state.value,
                "consecutive_failures": self._consecutive_failures,
                "opened_at": self._opened_at,
                "last_error": self._last_error,
            }


def resilient_call(
    func: Callable[..., T],
    *args: Any,
    retry_config: Optional[RetryConfig] = None,
    circuit_breaker: Optional[CircuitBreaker] = None,
    sleep: Sleep = time.sleep,
    **kwargs: Any,
) -> T:
    """
    Execute a call with retry + circuit breaker protection.

    Raises CircuitOpenError without calling ``func`` when the breaker refuses,
    otherwise re-raises the last exception once retries are exhausted or a
    non-retryable error occurs.
    """
    cfg = retry_config or RetryConfig()
    attempts = max(1, cfg.max_retries)

    if circuit_breaker is not None:
        circuit_breaker.acquire()

    settled = False
    try:
        last_err: Optional[BaseException] = None
        for attempt in range(attempts):
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                last_err = exc
                retryable = isinstance(exc, cfg.retry_on)
                logger.debug(
                    "Attempt %d/%d failed%s: %s: %s",
                    attempt + 1, attempts, "" if retryable else " (not retryable)", type(exc).__name__, exc,
                )
                if not retryable:
                    break
                if attempt < attempts - 1:
                    sleep(cfg.delay_for(attempt))
                continue
            if circuit_breaker is not None:
                circuit_breaker.record_success()
            settled = True
            return result

        # Upstream throttling says nothing about the dependency's health.
        if circuit_breaker is not None and not isinstance(last_err, RateLimitedError):
            circuit_breaker.record_failure(f"{type(last_err).__name__}: {last_err}")
            settled = True
        raise last_err  # type: ignore[misc]
    finally:
        if circuit_breaker is not None and not settled:
            circuit_breaker.release_trial()


class CircuitBreakerRegistry:
    """
    One breaker per dependency id, created lazily with shared settings.

    ``execute(dependency_id, fn, ...)`` is the single entry point every
    outbound call goes through.
    """

    def __init__(
        self,
        *,
        failure_threshold: int = 5,
        recovery_timeout_s: float = 30.0,
        retry_config: Optional[RetryConfig] = None,
        clock: Clock = default_clock,
        sleep: Sleep = time.sleep,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._recovery_timeout_s = recovery_timeout_s
        self._retry_config = retry_config or RetryConfig()
        self._clock = clock
        self._sleep = sleep
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    @property
    def retry_config(self) -> RetryConfig:
        return self._retry_config

    def breaker(self, dependency_id: str) -> CircuitBreaker:
        with self._lock:
            cb = self._breakers.get(dependency_id)
            if cb is None:
                cb = CircuitBreaker(
                    dependency_id=dependency_id,
                    failure_threshold=self._failure_threshold,
                    recovery_timeout_s=self._recovery_timeout_s,
                    clock=self._clock,
                )
                self._breakers[dependency_id] = cb
            return cb

    def execute(
        self,
        dependency_id: str,
        fn: Callable[..., T],
        *args: Any,
        retry_config: Optional[RetryConfig] = None,
        **kwargs: Any,
    ) -> T:
        return resilient_call(
            fn,
            *args,
            retry_config=retry_config or self._retry_config,
            circuit_breaker=self.breaker(dependency_id),
            sleep=self._sleep,
            **kwargs,
        )

    def state(self, dependency_id: str) -> CircuitState:
        return self.breaker(dependency_id).state

    def states(self) -> Dict[str, str]:
        """Return circuit breaker state for each known dependency."""
        with self._lock:
            items = list(self._breakers.items())
        return {name: cb.state.value for name, cb in items}

    def reset(self, dependency_id: Optional[str] = None) -> None:
        with self._lock:
            targets = list(self._breakers.values()) if dependency_id is None else [
                cb for name, cb in self._breakers.items() if name == dependency_id
            ]
        for cb in targets:
            cb.reset()
