"""
Backoff policy for batch reads.

Delays grow exponentially with the retry number, and a configurable
fraction of each delay is randomised:

    delay_ms = exponent ** n * ((1 - jitter_fraction) + jitter_fraction * random())

Exceeding ``max_retries`` is fatal.
"""

import random
from typing import Callable, Optional

from ..config import RetryOptions
from ..exceptions import MaxRetriesExceededError


class RetryPolicy:
    """Jittered exponential backoff for unprocessed batch-read keys."""

    def __init__(self, options: Optional[RetryOptions] = None, random_source: Callable[[], float] = random.random):
        self.options = options or RetryOptions()
        self._random = random_source

    def delay_ms(self, retry_number: int) -> float:
        """Delay before retry number retry_number (1-based), in milliseconds.

        Raises:
            MaxRetriesExceededError: If retry_number exceeds max_retries
        """
        if retry_number > self.options.max_retries:
            raise MaxRetriesExceededError(retries=self.options.max_retries)
        jitter = self.options.jitter_fraction
        return (self.options.exponent ** retry_number) * ((1 - jitter) + jitter * self._random())

    def delay_seconds(self, retry_number: int) -> float:
        return self.delay_ms(retry_number) / 1000.0
