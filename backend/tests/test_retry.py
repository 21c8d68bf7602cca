"""
Tests for retry_with_backoff.
"""
import pytest

from conftest import run
from errors import NetworkError
from retry import MaxRetriesExceeded, retry_with_backoff


class FlakyCall:
    """Fails `failures` times with `error`, then returns "ok"."""

    def __init__(self, failures, error=None):
        self.failures = failures
        self.error = error or NetworkError("unreachable")
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class TestRetryWithBackoff:
    def test_first_attempt_succeeds(self):
        call, sleep = FlakyCall(0), SleepRecorder()
        assert run(retry_with_backoff(call, sleep=sleep)) == "ok"
        assert call.calls == 1
        assert sleep.delays == []

    def test_recovers_after_failures_with_growing_delays(self):
        call, sleep = FlakyCall(2), SleepRecorder()
        result = run(retry_with_backoff(call, retries=3, base_delay=1.0, sleep=sleep))
        assert result == "ok"
        assert call.calls == 3
        assert len(sleep.delays) == 2
        assert 0.9 <= sleep.delays[0] <= 1.1
        assert 1.8 <= sleep.delays[1] <= 2.2

    def test_gives_up_after_all_attempts(self):
        call, sleep = FlakyCall(5), SleepRecorder()
        with pytest.raises(MaxRetriesExceeded) as exc:
            run(retry_with_backoff(call, retries=3, base_delay=0.5, sleep=sleep))
        assert call.calls == 3
        assert isinstance(exc.value.__cause__, NetworkError)
        # No sleep after the final attempt
        assert len(sleep.delays) == 2

    def test_delay_capped(self):
        call, sleep = FlakyCall(3), SleepRecorder()
        run(retry_with_backoff(call, retries=4, base_delay=10.0, max_delay=12.0, sleep=sleep))
        assert all(delay <= 12.0 * 1.1 for delay in sleep.delays)

    def test_other_errors_propagate_immediately(self):
        call, sleep = FlakyCall(1, error=KeyError("bug")), SleepRecorder()
        with pytest.raises(KeyError):
            run(retry_with_backoff(call, sleep=sleep))
        assert call.calls == 1
