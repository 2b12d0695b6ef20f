"""Exponential backoff calculator for degraded-mode polling.

This module provides the delay schedule the status poller uses after
consecutive failed refreshes. Jitter is optional and off by default, so the
schedule is reproducible.
"""

import random
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ExponentialBackoff:
    """Exponential backoff calculator with optional jitter.

    The delay formula is:
        delay = min(base * (multiplier ^ attempt), max_delay)
        delay = delay * (1 - jitter/2 + random() * jitter)

    Attributes:
        base: Delay in seconds for the first retry.
        max_delay: Maximum delay in seconds.
        multiplier: Factor to multiply delay for each attempt.
        jitter: Fraction of delay to randomize (0.0-1.0).
    """

    base: float = 30.0
    max_delay: float = 300.0
    multiplier: float = 2.0
    jitter: float = 0.0

    def delay(self, attempt: int) -> float:
        """Calculate the delay for a given attempt number.

        Args:
            attempt: The attempt number (0-indexed, where 0 is the first retry).

        Returns:
            The delay in seconds before the next retry attempt.
        """
        exponential_delay = self.base * (self.multiplier ** max(attempt, 0))
        capped_delay = min(exponential_delay, self.max_delay)

        if self.jitter > 0:
            jitter_range = capped_delay * self.jitter
            jitter_offset = random.uniform(-jitter_range / 2, jitter_range / 2)  # noqa: S311
            capped_delay = max(0.0, capped_delay + jitter_offset)

        return capped_delay

    def delay_after_failures(self, consecutive_failures: int) -> float:
        """Return the wait before the next poll given a failure streak.

        A streak of zero means the last refresh succeeded and the nominal
        interval applies. The first failure also waits the nominal interval;
        each further failure doubles it up to `max_delay`.

        Args:
            consecutive_failures: Number of consecutive failed refreshes.

        Returns:
            The delay in seconds.
        """
        if consecutive_failures <= 0:
            return self.base
        return self.delay(consecutive_failures - 1)
