"""
Tests for circuit breaker and retry behaviour.

Verifies that:
- Retries run inside one breaker-guarded call and count as one failure
- The breaker opens after failure_threshold consecutive failures
- An open breaker rejects calls without invoking the function
- After the recovery timeout exactly one trial call gets through
- Backoff delays follow min(base * multiplier^attempt, max)
- Upstream rate limits and interrupted trials never leave the breaker stuck
"""
from __future__ import annotations

import threading

import pytest

from gala_pricing.core.errors import CircuitOpenError, RateLimitedError, SourceUnavailableError
from gala_pricing.providers.resilience import (
    NO_RETRY,
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
    RetryConfig,
    resilient_call,
)
from tests.fakes import FakeClock


class Counter:
    def __init__(self, fail_times: int = 0, error: Exception | None = None):
        self.calls = 0
        self.fail_times = fail_times
        self.error = error or SourceUnavailableError("down")

    def __call__(self, *args, **kwargs):
        self.calls += 1
        if self.calls <= self.fail_times:
            raise self.error
        return "ok"


def _registry(clock, *, threshold=5, retry=NO_RETRY, sleeps=None):
    return CircuitBreakerRegistry(
        failure_threshold=threshold,
        recovery_timeout_s=30.0,
        retry_config=retry,
        clock=clock,
        sleep=(sleeps.append if sleeps is not None else (lambda s: None)),
    )


# ---------------------------------------------------------------------------
# Retry behaviour
# ---------------------------------------------------------------------------


class TestRetryBehavior:
    def test_delay_schedule(self):
        cfg = RetryConfig()
        assert [cfg.delay_for(a) for a in range(6)] == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]

    def test_budget_is_every_attempt_timing_out_plus_backoff(self):
        assert RetryConfig().budget_s(5.0) == 18.0
        assert RetryConfig(max_retries=1).budget_s(5.0) == 5.0

    def test_retries_on_transient_failure(self):
        fn = Counter(fail_times=2)
        sleeps = []
        result = resilient_call(fn, retry_config=RetryConfig(max_retries=3), sleep=sleeps.append)
        assert result == "ok"
        assert fn.calls == 3
        assert sleeps == [1.0, 2.0]

    def test_exhausts_retries_and_raises(self):
        fn = Counter(fail_times=10)
        with pytest.raises(SourceUnavailableError, match="down"):
            resilient_call(fn, retry_config=RetryConfig(max_retries=3), sleep=lambda s: None)
        assert fn.calls == 3

    def test_non_retryable_error_is_not_retried(self):
        fn = Counter(fail_times=10, error=RateLimitedError("429"))
        with pytest.raises(RateLimitedError):
            resilient_call(fn, retry_config=RetryConfig(max_retries=3), sleep=lambda s: None)
        assert fn.calls == 1

    def test_retries_count_as_one_breaker_failure(self):
        clock = FakeClock()
        sleeps = []
        reg = _registry(clock, retry=RetryConfig(max_retries=3), sleeps=sleeps)
        fn = Counter(fail_times=10)

        with pytest.raises(SourceUnavailableError):
            reg.execute("coingecko", fn)

        assert fn.calls == 3
        assert sleeps == [1.0, 2.0]
        assert reg.breaker("coingecko").consecutive_failures == 1
        assert reg.state("coingecko") is CircuitState.CLOSED


# ---------------------------------------------------------------------------
# Circuit breaker state machine
# ---------------------------------------------------------------------------


class TestCircuitBreaker:
    def test_starts_closed(self):
        cb = CircuitBreaker(dependency_id="test", failure_threshold=3, clock=FakeClock())
        assert cb.state is CircuitState.CLOSED
        assert not cb.is_open

    def test_opens_after_threshold_failures(self):
        cb = CircuitBreaker(dependency_id="test", failure_threshold=3, clock=FakeClock())
        cb.record_failure("error 1")
        cb.record_failure("error 2")
        assert cb.state is CircuitState.CLOSED
        cb.record_failure("error 3")
        assert cb.state is CircuitState.OPEN
        assert cb.last_error == "error 3"

    def test_success_resets_consecutive_count(self):
        cb = CircuitBreaker(dependency_id="test", failure_threshold=3, clock=FakeClock())
        cb.record_failure("e")
        cb.record_failure("e")
        cb.record_success()
        cb.record_failure("e")
        assert cb.state is CircuitState.CLOSED
        assert cb.consecutive_failures == 1

    def test_open_breaker_rejects_without_invoking(self):
        clock = FakeClock()
        reg = _registry(clock)
        fn = Counter(fail_times=100)

        for _ in range(5):
            with pytest.raises(SourceUnavailableError):
                reg.execute("sdk.quote", fn)
        assert fn.calls == 5
        assert reg.state("sdk.quote") is CircuitState.OPEN

        with pytest.raises(CircuitOpenError) as exc_info:
            reg.execute("sdk.quote", fn)
        assert fn.calls == 5
        assert exc_info.value.dependency_id == "sdk.quote"
        assert exc_info.value.retry_after_s == pytest.approx(30.0)

    def test_half_open_after_recovery_timeout(self):
        clock = FakeClock()
        cb = CircuitBreaker(dependency_id="test", failure_threshold=1, recovery_timeout_s=30.0, clock=clock)
        cb.record_failure("error")
        assert cb.state is CircuitState.OPEN

        clock.advance(29)
        assert cb.state is CircuitState.OPEN
        clock.advance(1)
        assert cb.state is CircuitState.HALF_OPEN

    def test_trial_success_closes(self):
        clock = FakeClock()
        reg = _registry(clock, threshold=1)
        with pytest.raises(SourceUnavailableError):
            reg.execute("dep", Counter(fail_times=1))
        clock.advance(30)

        assert reg.execute("dep", Counter()) == "ok"
        assert reg.state("dep") is CircuitState.CLOSED
        assert reg.breaker("dep").consecutive_failures == 0

    def test_trial_failure_reopens_and_restarts_timer(self):
        clock = FakeClock()
        reg = _registry(clock, threshold=1)
        with pytest.raises(SourceUnavailableError):
            reg.execute("dep", Counter(fail_times=1))
        clock.advance(30)

        with pytest.raises(SourceUnavailableError):
            reg.execute("dep", Counter(fail_times=1))
        cb = reg.breaker("dep")
        assert cb.state is CircuitState.OPEN
        assert cb.opened_at == clock()

        clock.advance(29)
        with pytest.raises(CircuitOpenError):
            reg.execute("dep", Counter())

    def test_exactly_one_trial_under_concurrency(self):
        clock = FakeClock()
        reg = _registry(clock, threshold=1)
        with pytest.raises(SourceUnavailableError):
            reg.execute("dep", Counter(fail_times=1))
        clock.advance(30)

        entered = threading.Event()
        release = threading.Event()
        trial_calls = []

        def slow_trial():
            trial_calls.append(1)
            entered.set()
            release.wait(timeout=5.0)
            return "trial-ok"

        trial_result = []
        trial = threading.Thread(target=lambda: trial_result.append(reg.execute("dep", slow_trial)))
        trial.start()
        assert entered.wait(timeout=5.0)

        rejected = []
        others_called = []
        lock = threading.Lock()

        def contender():
            try:
                reg.execute("dep", lambda: others_called.append(1))
            except CircuitOpenError:
                with lock:
                    rejected.append(1)

        contenders = [threading.Thread(target=contender) for _ in range(8)]
        for t in contenders:
            t.start()
        for t in contenders:
            t.join()

        release.set()
        trial.join()

        assert len(trial_calls) == 1
        assert others_called == []
        assert len(rejected) == 8
        assert trial_result == ["trial-ok"]
        assert reg.state("dep") is CircuitState.CLOSED

    def test_reset(self):
        clock = FakeClock()
        reg = _registry(clock, threshold=1)
        with pytest.raises(SourceUnavailableError):
            reg.execute("a", Counter(fail_times=1))
        assert reg.states() == {"a": "OPEN"}
        reg.reset("a")
        assert reg.states() == {"a": "CLOSED"}

    def test_breakers_are_per_dependency(self):
        clock = FakeClock()
        reg = _registry(clock, threshold=1)
        with pytest.raises(SourceUnavailableError):
            reg.execute("a", Counter(fail_times=1))
        assert reg.execute("b", Counter()) == "ok"
        assert reg.state("a") is CircuitState.OPEN
        assert reg.state("b") is CircuitState.CLOSED

    def test_upstream_rate_limit_does_not_open_breaker(self):
        clock = FakeClock()
        reg = _registry(clock, threshold=2)
        fn = Counter(fail_times=10, error=RateLimitedError("429"))

        for _ in range(5):
            with pytest.raises(RateLimitedError):
                reg.execute("coingecko", fn)

        assert fn.calls == 5
        assert reg.state("coingecko") is CircuitState.CLOSED
        assert reg.breaker("coingecko").consecutive_failures == 0

    def test_rate_limited_trial_frees_the_half_open_slot(self):
        clock = FakeClock()
        reg = _registry(clock, threshold=1)
        with pytest.raises(SourceUnavailableError):
            reg.execute("dep", Counter(fail_times=1))
        clock.advance(30)

        with pytest.raises(RateLimitedError):
            reg.execute("dep", Counter(fail_times=1, error=RateLimitedError("429")))
        assert reg.state("dep") is CircuitState.HALF_OPEN

        assert reg.execute("dep", Counter()) == "ok"
        assert reg.state("dep") is CircuitState.CLOSED

    def test_interrupted_trial_frees_the_half_open_slot(self):
        clock = FakeClock()
        reg = _registry(clock, threshold=1)
        with pytest.raises(SourceUnavailableError):
            reg.execute("dep", Counter(fail_times=1))
        clock.advance(30)

        def interrupted():
            raise KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            reg.execute("dep", interrupted)
        assert reg.state("dep") is CircuitState.HALF_OPEN

        assert reg.execute("dep", Counter()) == "ok"
        assert reg.state("dep") is CircuitState.CLOSED
