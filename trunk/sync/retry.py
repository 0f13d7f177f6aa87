"""Exponential backoff between pending-upload retries."""

import random
import time
from typing import Callable, Optional

BACKOFF_BASE = 1.0
BACKOFF_MAX = 30.0
MAX_RETRIES = 3
JITTER = 0.2


class Backoff:
    """Tracks failed retry rounds and says when the next one may run.

    After ``n`` failed rounds the next attempt waits
    ``min(base * 2 ** (n - 1), max)`` seconds plus up to 20% jitter.
    ``n`` is capped at ``max_retries``.
    """

    def __init__(
        self,
        base: float = BACKOFF_BASE,
        maximum: float = BACKOFF_MAX,
        max_retries: int = MAX_RETRIES,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        self.base = base
        self.maximum = maximum
        self.max_retries = max_retries
        self._clock = clock
        self._rng = rng or random.Random()
        self.attempt = 0
        self._last_try: Optional[float] = None
        self._delay = 0.0

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt + 1``, jitter included."""
        delay = min(self.base * 2**attempt, self.maximum)
        return delay + self._rng.random() * delay * JITTER

    def ready(self) -> bool:
        """Whether enough time has passed since the last failed round."""
        if self.attempt == 0 or self._last_try is None:
            return True
        return self._clock() - self._last_try >= self._delay

    def mark_tried(self) -> None:
        self._last_try = self._clock()

    def record_failure(self) -> None:
        self.attempt = min(self.attempt + 1, self.max_retries)
        self._delay = self.delay_for(self.attempt - 1)

    def reset(self) -> None:
        self.attempt = 0
        self._delay = 0.0
