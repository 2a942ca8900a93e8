"""
Reconnect backoff: bounded exponential delay with an attempt cap.
"""

import random
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Reconnect schedule configuration (seconds)."""
    base_delay: float = 1.0
    max_delay: float = 10.0
    max_attempts: int = 5
    jitter: float = 0.0

    def __post_init__(self):
        if self.base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.jitter < 0:
            raise ValueError("jitter must be >= 0")

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            base_delay=settings.FEED_BASE_DELAY_MS / 1000.0,
            max_delay=settings.FEED_MAX_DELAY_MS / 1000.0,
            max_attempts=settings.FEED_MAX_ATTEMPTS,
            jitter=settings.FEED_JITTER_MS / 1000.0,
        )


class RetryState:
    """Consecutive-failure counter for one supervisor run."""

    def __init__(self, policy: RetryPolicy):
        self.policy = policy
        self.attempt_count = 0
        self.current_delay = policy.base_delay

    @property
    def cap(self) -> float:
        return self.policy.max_delay

    @property
    def max_attempts(self) -> int:
        return self.policy.max_attempts

    @property
    def exhausted(self) -> bool:
        return self.attempt_count >= self.policy.max_attempts

    def record_failure(self) -> Optional[float]:
        """
        Count a failed session and return the delay before the next attempt.

        Returns None once max_attempts consecutive failures have been recorded.
        """
        self.attempt_count += 1
        if self.exhausted:
            return None

        delay = min(self.policy.base_delay * (2 ** (self.attempt_count - 1)), self.policy.max_delay)
        self.current_delay = delay
        if self.policy.jitter:
            delay += random.uniform(0, self.policy.jitter)
        return delay

    def reset(self) -> None:
        self.attempt_count = 0
        self.current_delay = self.policy.base_delay

    def as_dict(self) -> Dict[str, Any]:
        return {
            "attempt_count": self.attempt_count,
            "current_delay": self.current_delay,
            "cap": self.policy.max_delay,
            "max_attempts": self.policy.max_attempts,
            "exhausted": self.exhausted,
        }
