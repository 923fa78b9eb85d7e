"""Tests for vertexstudio.core.polling — PollPolicy delay schedule."""

from __future__ import annotations

import pytest

from vertexstudio.core.polling import PollPolicy


class TestPollPolicy:
    def test_default_is_reference_schedule(self):
        """Five seconds, 120 attempts: a ten minute ceiling."""
        policy = PollPolicy()
        assert policy.delay(0) == 5.0
        assert policy.delay(119) == 5.0
        assert policy.ceiling == 600.0

    def test_fixed_policy(self):
        policy = PollPolicy.fixed(2.0, 4)
        assert [policy.delay(i) for i in range(4)] == [2.0, 2.0, 2.0, 2.0]

    def test_zero_interval_never_waits(self):
        policy = PollPolicy.fixed(0, 10)
        assert all(policy.delay(i) == 0 for i in range(10))

    def test_backoff_grows_and_caps(self):
        policy = PollPolicy(interval=1.0, max_attempts=10, backoff=2.0, max_interval=5.0)
        assert [policy.delay(i) for i in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_jitter_stays_within_bounds(self):
        policy = PollPolicy(interval=10.0, max_attempts=5, jitter=0.5)
        for attempt in range(50):
            delay = policy.delay(attempt % 5)
            assert 10.0 <= delay <= 15.0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"interval": -1},
            {"max_attempts": 0},
            {"backoff": 0.5},
            {"jitter": 1.5},
        ],
    )
    def test_invalid_arguments(self, kwargs):
        with pytest.raises(ValueError):
            PollPolicy(**kwargs)

    def test_from_config(self, test_config):
        cfg = test_config.model_copy(
            update={"video_poll_interval": 1.5, "video_poll_max_attempts": 7}
        )
        policy = PollPolicy.from_config(cfg)
        assert policy.interval == 1.5
        assert policy.max_attempts == 7
        assert policy.backoff == 1.0
