"""
Reconnect backoff tests.
Doubling schedule, cap, attempt limit and reset semantics.
"""

import pytest

from sandbox_feed.services.backoff import RetryPolicy, RetryState


class TestRetryState:
    """Bounded exponential backoff."""

    def test_doubles_until_cap(self):
        retry = RetryState(RetryPolicy(base_delay=1.0, max_delay=10.0, max_attempts=10))

        delays = [retry.record_failure() for _ in range(6)]

        assert delays == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]
        assert retry.attempt_count == 6

    def test_delays_non_decreasing(self):
        retry = RetryState(RetryPolicy(base_delay=0.3, max_delay=5.0, max_attempts=20))

        delays = [retry.record_failure() for _ in range(19)]

        assert all(a <= b for a, b in zip(delays, delays[1:]))
        assert max(delays) == 5.0

    def test_exhausted_after_max_attempts(self):
        retry = RetryState(RetryPolicy(base_delay=1.0, max_delay=10.0, max_attempts=3))

        assert retry.record_failure() == 1.0
        assert retry.record_failure() == 2.0
        assert not retry.exhausted
        assert retry.record_failure() is None
        assert retry.exhausted
        assert retry.record_failure() is None

    def test_reset_returns_to_base(self):
        retry = RetryState(RetryPolicy(base_delay=1.0, max_delay=10.0, max_attempts=5))
        retry.record_failure()
        retry.record_failure()
        retry.record_failure()

        retry.reset()

        assert retry.attempt_count == 0
        assert retry.current_delay == 1.0
        assert retry.record_failure() == 1.0

    def test_jitter_bounded(self, seeded_random):
        retry = RetryState(RetryPolicy(base_delay=1.0, max_delay=10.0, max_attempts=10, jitter=0.5))

        for expected in [1.0, 2.0, 4.0, 8.0]:
            delay = retry.record_failure()
            assert expected <= delay <= expected + 0.5
            assert retry.current_delay == expected

    def test_as_dict(self):
        retry = RetryState(RetryPolicy(base_delay=1.0, max_delay=10.0, max_attempts=5))
        retry.record_failure()

        assert retry.as_dict() == {
            "attempt_count": 1,
            "current_delay": 1.0,
            "cap": 10.0,
            "max_attempts": 5,
            "exhausted": False,
        }

    @pytest.mark.parametrize("kwargs", [
        {"base_delay": 0},
        {"base_delay": 2.0, "max_delay": 1.0},
        {"max_attempts": 0},
        {"jitter": -1},
    ])
    def test_invalid_policy(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)

    def test_policy_from_settings(self, monkeypatch):
        from sandbox_feed.config import Settings

        monkeypatch.setenv("FEED_BASE_DELAY_MS", "500")
        monkeypatch.setenv("FEED_MAX_DELAY_MS", "4000")
        monkeypatch.setenv("FEED_MAX_ATTEMPTS", "7")

        policy = RetryPolicy.from_settings(Settings())

        assert policy == RetryPolicy(base_delay=0.5, max_delay=4.0, max_attempts=7, jitter=0.0)
