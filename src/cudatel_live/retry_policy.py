"""Backoff policy for the optional hardened reconnect.

The client rebuilds its connection immediately by default. Supplying a
RetryPolicy delays each rebuild by an exponentially growing amount, reset once
a connection reaches the authenticated state.
"""

from __future__ import annotations

import random


class RetryPolicy:
    """Exponential backoff retry policy with jitter.

    Provides retry delay calculation using exponential backoff with random
    jitter so that many clients restarting against one server spread out.
    """

    def __init__(
        self,
        base_delay_seconds: float = 0.5,
        max_delay_seconds: float = 30.0,
        jitter_factor: float = 0.1,
        max_attempts: int | None = None,
    ):
        """Initialize retry policy.

        Args:
            base_delay_seconds: Delay before the first rebuild (default: 0.5s)
            max_delay_seconds: Maximum delay cap (default: 30.0s)
            jitter_factor: Jitter as fraction of delay (default: 0.1 = 10%)
            max_attempts: Consecutive rebuilds allowed before giving up (None = unbounded)
        """
        if base_delay_seconds < 0 or max_delay_seconds < 0:
            raise ValueError("retry delays must be non-negative")
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.jitter_factor = jitter_factor
        self.max_attempts = max_attempts

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for retry attempt.

        Formula: min(base_delay * 2 ** attempt, max_delay) + jitter
        Jitter: random value between 0 and delay * jitter_factor

        Args:
            attempt: Retry attempt number (0-indexed, so attempt=0 is first retry)

        Returns:
            Delay in seconds
        """
        delay = min(self.base_delay_seconds * (2**attempt), self.max_delay_seconds)
        jitter = random.uniform(0, delay * self.jitter_factor)
        return delay + jitter

    def exhausted(self, attempt: int) -> bool:
        """True when ``attempt`` is past the configured attempt cap."""
        return self.max_attempts is not None and attempt >= self.max_attempts

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(base_delay={self.base_delay_seconds}s, "
            f"max_delay={self.max_delay_seconds}s, "
            f"jitter_factor={self.jitter_factor}, "
            f"max_attempts={self.max_attempts})"
        )
