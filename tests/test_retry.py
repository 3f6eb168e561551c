"""Tests for the retry policy."""

import pytest

from campaign_workspace.config import Settings
from campaign_workspace.errors import NotFoundError, StoreUnavailableError
from campaign_workspace.retry import NO_RETRY, RetryPolicy, call_with_retry


class TestRetryPolicy:
    def test_exponential_delays(self):
        policy = RetryPolicy(max_attempts=4, backoff_strategy="exponential", backoff_base_seconds=0.5)
        assert [policy.delay_seconds(n) for n in (1, 2, 3)] == [0.5, 1.0, 2.0]

    def test_fixed_delays(self):
        policy = RetryPolicy(backoff_strategy="fixed", backoff_base_seconds=2.0)
        assert policy.delay_seconds(3) == 2.0

    def test_no_delay(self):
        assert RetryPolicy(backoff_strategy="none").delay_seconds(1) == 0.0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_attempts": 0},
            {"backoff_strategy": "linear"},
            {"backoff_base_seconds": -1},
        ],
    )
    def test_invalid_policy(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)

    def test_from_settings(self):
        settings = Settings(
            _env_file=None,
            retry_max_attempts=5,
            retry_backoff_strategy="fixed",
            retry_backoff_base_seconds=1.5,
        )
        assert RetryPolicy.from_settings(settings) == RetryPolicy(5, "fixed", 1.5)


class TestCallWithRetry:
    def test_retries_retryable_errors(self):
        sleeps = []
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise StoreUnavailableError("timeout")
            return "ok"

        policy = RetryPolicy(max_attempts=3, backoff_base_seconds=0.1)
        assert call_with_retry(flaky, policy, sleep=sleeps.append) == "ok"
        assert sleeps == [0.1, 0.2]

    def test_gives_up_after_max_attempts(self):
        attempts = []

        def always_down():
            attempts.append(1)
            raise StoreUnavailableError("timeout")

        with pytest.raises(StoreUnavailableError):
            call_with_retry(always_down, RetryPolicy(max_attempts=2), sleep=lambda s: None)
        assert len(attempts) == 2

    def test_non_retryable_errors_propagate_immediately(self):
        attempts = []

        def missing():
            attempts.append(1)
            raise NotFoundError("gone")

        with pytest.raises(NotFoundError):
            call_with_retry(missing, RetryPolicy(max_attempts=5), sleep=lambda s: None)
        assert len(attempts) == 1

    def test_no_retry_policy(self):
        attempts = []

        def down():
            attempts.append(1)
            raise StoreUnavailableError("timeout")

        with pytest.raises(StoreUnavailableError):
            call_with_retry(down, NO_RETRY)
        assert len(attempts) == 1
