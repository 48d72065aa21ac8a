# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from session.retry import RetryPolicy


@pytest.mark.parametrize("attempt", [0, 1, 2, 3, 4])
def test_retry_allowed_below_ceiling(attempt: int):
    assert RetryPolicy().should_retry(attempt) is True


@pytest.mark.parametrize("attempt", [5, 6, 50])
def test_retry_refused_at_or_above_ceiling(attempt: int):
    assert RetryPolicy().should_retry(attempt) is False


def test_delay_is_fixed_regardless_of_attempt():
    policy = RetryPolicy()

    delays = set()
    for attempt in range(10):
        policy.should_retry(attempt)
        delays.add(policy.delay_ms())

    assert delays == {5_000}
    assert policy.delay_s() == 5.0


def test_negative_limits_rejected():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=-1)
    with pytest.raises(ValueError):
        RetryPolicy(fixed_delay_ms=-1)
