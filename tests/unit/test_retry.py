"""
Tests for the batch read backoff policy (table/retry.py)
"""

import pytest

from dynamodm import MaxRetriesExceededError
from dynamodm.config import RetryOptions
from dynamodm.table import RetryPolicy


class TestRetryPolicy:
    """Test jittered exponential backoff."""

    def test_delay_without_jitter(self):
        policy = RetryPolicy(RetryOptions(exponent=2, jitter_fraction=0, max_retries=5))

        assert [policy.delay_ms(n) for n in range(1, 6)] == [2, 4, 8, 16, 32]
        assert policy.delay_seconds(3) == pytest.approx(0.008)

    def test_jitter_bounds(self):
        low = RetryPolicy(RetryOptions(exponent=3, jitter_fraction=0.5), random_source=lambda: 0.0)
        high = RetryPolicy(RetryOptions(exponent=3, jitter_fraction=0.5), random_source=lambda: 1.0)

        assert low.delay_ms(2) == pytest.approx(4.5)
        assert high.delay_ms(2) == pytest.approx(9.0)

    def test_full_jitter(self):
        policy = RetryPolicy(RetryOptions(jitter_fraction=1), random_source=lambda: 0.25)

        assert policy.delay_ms(4) == pytest.approx(4.0)

    def test_max_retries_reached(self):
        policy = RetryPolicy(RetryOptions(max_retries=2))

        policy.delay_ms(2)
        with pytest.raises(MaxRetriesExceededError, match='maximum retries exceeded'):
            policy.delay_ms(3)

    def test_zero_max_retries(self):
        policy = RetryPolicy(RetryOptions(max_retries=0))

        with pytest.raises(MaxRetriesExceededError):
            policy.delay_ms(1)

    def test_default_options(self):
        policy = RetryPolicy()

        assert policy.options == RetryOptions()
        assert policy.options.max_retries == 5


class TestRetryOptions:
    """Test option validation."""

    def test_exponent_must_exceed_one(self):
        with pytest.raises(ValueError):
            RetryOptions(exponent=1)

    def test_jitter_fraction_range(self):
        with pytest.raises(ValueError):
            RetryOptions(jitter_fraction=1.5)

    def test_unknown_option(self):
        with pytest.raises(ValueError):
            RetryOptions(backoff=3)
