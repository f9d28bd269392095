"""Tests for retry utility (retry.py)."""

import pytest

from fleetmon.utils.retry import RetryConfig, RetryStrategy, retry_call


class TestRetryConfig:
    def test_fixed_delay(self):
        config = RetryConfig(base_delay=5, strategy=RetryStrategy.FIXED)
        assert [config.delay_for(n) for n in (1, 2, 3)] == [5, 5, 5]

    def test_exponential_delay_is_capped(self):
        config = RetryConfig(base_delay=1, strategy=RetryStrategy.EXPONENTIAL, max_delay=3)
        assert [config.delay_for(n) for n in (1, 2, 3)] == [1, 2, 3]

    def test_linear_delay(self):
        config = RetryConfig(base_delay=0.5, strategy=RetryStrategy.LINEAR)
        assert config.delay_for(3) == 1.5


class TestRetryCall:
    def test_success_first_attempt(self):
        sleeps = []
        assert retry_call(lambda: "ok", RetryConfig(), sleep=sleeps.append) == "ok"
        assert sleeps == []

    def test_success_after_failures(self):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ValueError("Temporary failure")
            return "success after retries"

        result = retry_call(flaky, RetryConfig(max_retries=3, base_delay=0), sleep=lambda s: None)

        assert result == "success after retries"
        assert len(calls) == 3

    def test_exhausted_reraises_last_error(self):
        calls = []

        def always_failing():
            calls.append(1)
            raise ValueError(f"failure {len(calls)}")

        with pytest.raises(ValueError, match="failure 3"):
            retry_call(always_failing, RetryConfig(max_retries=3), sleep=lambda s: None)

        assert len(calls) == 3

    def test_only_listed_exceptions_are_retried(self):
        calls = []

        def wrong_kind():
            calls.append(1)
            raise KeyError("nope")

        with pytest.raises(KeyError):
            retry_call(wrong_kind, RetryConfig(), retry_on=(ValueError,), sleep=lambda s: None)

        assert len(calls) == 1
