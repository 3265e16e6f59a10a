"""
Bounded exponential backoff for source lookups.
"""

from __future__ import annotations

import dataclasses
import logging
import random
import threading
import time
from typing import Callable, Optional

from .config import NetworkConfig
from .models import SourceOutcome


logger = logging.getLogger(__name__)


class RetryPolicy:
    """Retry transient source failures with jittered exponential backoff.

    The delay before retry ``n`` (0-based) is ``base * 2**n`` plus a random
    jitter in ``[0, base)``, raised to any server-provided ``retry_after``
    and capped at ``max_delay``.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 0.25,
        max_delay: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self._rng = rng

    @classmethod
    def from_network(cls, network: NetworkConfig) -> "RetryPolicy":
        return cls(
            max_retries=network.max_retries,
            base_delay=network.backoff_base_ms / 1000.0,
            max_delay=network.max_backoff_secs,
        )

    def backoff(self, attempt: int, retry_after: Optional[float] = None) -> float:
        delay = self.base_delay * (2 ** attempt) + self._rng() * self.base_delay
        if retry_after is not None:
            delay = max(delay, retry_after)
        return min(delay, self.max_delay)

    def max_total_delay(self) -> float:
        """Upper bound on time spent sleeping across all retries of one call."""
        return sum(
            min(self.max_delay, self.base_delay * (2 ** attempt + 1))
            for attempt in range(self.max_retries)
        )

    def execute(
        self,
        op: Callable[[], SourceOutcome],
        cancel: Optional[threading.Event] = None,
    ) -> SourceOutcome:
        attempt = 0
        while True:
            outcome = op()
            attempts = attempt + 1
            if outcome.ok or not outcome.failure.is_transient or attempt >= self.max_retries:
                return dataclasses.replace(outcome, attempts=attempts)

            delay = self.backoff(attempt, outcome.retry_after)
            logger.warning(
                "%s lookup failed (%s), retry %d/%d in %.2fs",
                outcome.source.value, outcome.failure.value, attempts, self.max_retries, delay,
            )
            if self._wait(delay, cancel):
                return dataclasses.replace(outcome, attempts=attempts)
            attempt += 1

    def _wait(self, delay: float, cancel: Optional[threading.Event]) -> bool:
        """Sleep for ``delay``; True if cancelled meanwhile."""
        if cancel is None:
            self._sleep(delay)
            return False
        return cancel.wait(delay)
