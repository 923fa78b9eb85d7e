"""Retry policy for polling long-running remote operations.

The video endpoint returns an operation handle that has to be polled until
the remote side reports completion.  :class:`PollPolicy` describes how long
to wait between polls and how many polls to make.  The reference behaviour
is a fixed five second interval for at most 120 attempts (a ten minute
ceiling); backoff and jitter are available but disabled by default.

Tests construct ``PollPolicy(interval=0, max_attempts=n)`` so the polling
loop runs without sleeping.
"""

from __future__ import annotations

import random
from dataclasses import dataclass


@dataclass(frozen=True)
class PollPolicy:
    """Delay schedule for operation polling.

    Attributes:
        interval: Base delay in seconds before each poll.
        max_attempts: Number of polls before the operation is abandoned.
        backoff: Multiplier applied per attempt (``1.0`` keeps it fixed).
        max_interval: Upper bound for a single computed delay.
        jitter: Fraction of the delay added as uniform random jitter.
    """

    interval: float = 5.0
    max_attempts: int = 120
    backoff: float = 1.0
    max_interval: float = 60.0
    jitter: float = 0.0

    def __post_init__(self) -> None:
        if self.interval < 0:
            raise ValueError("interval must be >= 0")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff < 1.0:
            raise ValueError("backoff must be >= 1.0")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError("jitter must be between 0 and 1")

    @classmethod
    def fixed(cls, interval: float, max_attempts: int) -> PollPolicy:
        """Fixed-interval policy with no backoff and no jitter."""
        return cls(interval=interval, max_attempts=max_attempts)

    @classmethod
    def from_config(cls, config) -> PollPolicy:
        """Build the policy from the ``video_poll_*`` settings."""
        return cls(
            interval=config.video_poll_interval,
            max_attempts=config.video_poll_max_attempts,
            backoff=config.video_poll_backoff,
            max_interval=config.video_poll_max_interval,
            jitter=config.video_poll_jitter,
        )

    @property
    def ceiling(self) -> float:
        """Total wait in seconds across all attempts, ignoring jitter."""
        return sum(self.base_delay(attempt) for attempt in range(self.max_attempts))

    def base_delay(self, attempt: int) -> float:
        delay = self.interval * (self.backoff**attempt)
        if self.backoff > 1.0:
            delay = min(delay, self.max_interval)
        return delay

    def delay(self, attempt: int) -> float:
        """Return the wait in seconds before poll number *attempt* (0-based)."""
        delay = self.base_delay(attempt)
        if self.jitter and delay:
            delay += random.uniform(0, self.jitter * delay)
        return delay
