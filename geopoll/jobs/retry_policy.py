"""
Retry Policy
============

Attempt ceiling and backoff calculation for failed poll jobs.
"""

import random
from dataclasses import dataclass

from ..config.settings import PollingSettings, RetryStrategy


@dataclass
class RetryPolicy:
    """Configuration for retry behavior."""
    max_attempts: int = 5                   # Total attempts, first one included
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL_BACKOFF
    base_delay: float = 15.0                # Base delay in seconds
    max_delay: float = 3600.0               # Maximum delay in seconds
    jitter: bool = True                     # Add +/-25% randomization
    exponential_base: float = 2.0

    @classmethod
    def from_settings(cls, polling: PollingSettings) -> "RetryPolicy":
        return cls(
            max_attempts=polling.max_attempts,
            strategy=polling.retry_strategy,
            base_delay=polling.retry_base_delay,
            max_delay=polling.retry_max_delay,
            jitter=polling.retry_jitter,
        )

    def should_retry(self, attempt: int) -> bool:
        """Whether a job that just failed its ``attempt``-th run gets another."""
        return attempt < self.max_attempts

    def delay_for(self, attempt: int) -> float:
        """Delay before the run following failed attempt ``attempt`` (1-based)."""
        if self.base_delay <= 0:
            return 0.0

        calculators = {
            RetryStrategy.FIXED_DELAY: self._fixed_delay,
            RetryStrategy.LINEAR_BACKOFF: self._linear_delay,
            RetryStrategy.EXPONENTIAL_BACKOFF: self._exponential_delay,
            RetryStrategy.JITTERED_EXPONENTIAL: self._jittered_exponential_delay,
            RetryStrategy.FIBONACCI: self._fibonacci_delay,
        }
        calculator = calculators.get(self.strategy, self._exponential_delay)
        delay = min(calculator(attempt), self.max_delay)

        # Fixed, linear and full-jitter strategies stay deterministic
        if self.jitter and self.strategy in (RetryStrategy.EXPONENTIAL_BACKOFF, RetryStrategy.FIBONACCI):
            jitter_amount = delay * 0.25
            delay += random.uniform(-jitter_amount, jitter_amount)

        return max(0.0, min(delay, self.max_delay))

    def _fixed_delay(self, attempt: int) -> float:
        return self.base_delay

    def _linear_delay(self, attempt: int) -> float:
        return self.base_delay * attempt

    def _exponential_delay(self, attempt: int) -> float:
        return self.base_delay * (self.exponential_base ** (attempt - 1))

    def _jittered_exponential_delay(self, attempt: int) -> float:
        return random.uniform(0, self._exponential_delay(attempt))

    def _fibonacci_delay(self, attempt: int) -> float:
        a, b = 0, 1
        for _ in range(attempt):
            a, b = b, a + b
        return self.base_delay * a
