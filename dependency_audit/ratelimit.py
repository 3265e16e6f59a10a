"""
Per-source request pacing.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Mapping, Optional

from .models import SourceKind


logger = logging.getLogger(__name__)


class AcquireCancelled(Exception):
    """The run was cancelled while waiting for a permit."""


class RateLimiter:
    """Token bucket per source, implemented as a generic cell rate algorithm.

    Each source gets one permit every ``interval`` seconds, with up to ``burst``
    permits available back to back. Slots are reserved under a lock in arrival
    order and waited for outside it, so callers are served first come first
    served and different sources never block each other.
    """

    def __init__(
        self,
        interval: float,
        burst: int = 1,
        overrides: Optional[Mapping[SourceKind, float]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if interval < 0:
            raise ValueError("interval must be non-negative")
        if burst < 1:
            raise ValueError("burst must be at least 1")
        self.interval = interval
        self.burst = burst
        self.overrides = dict(overrides or {})
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._theoretical_arrival: Dict[SourceKind, float] = {}

    def interval_for(self, source: SourceKind) -> float:
        return self.overrides.get(source, self.interval)

    def acquire(self, source: SourceKind, cancel: Optional[threading.Event] = None) -> float:
        """Block until ``source`` may be queried; return the grant time."""
        interval = self.interval_for(source)
        with self._lock:
            now = self._clock()
            arrival = max(self._theoretical_arrival.get(source, now), now)
            slot = max(now, arrival - (self.burst - 1) * interval)
            self._theoretical_arrival[source] = arrival + interval

        delay = slot - now
        if delay > 0:
            logger.debug("Waiting %.3fs for %s permit", delay, source.value)
            if cancel is None:
                self._sleep(delay)
            elif cancel.wait(delay):
                raise AcquireCancelled(f"Cancelled while waiting for {source.value}")
        elif cancel is not None and cancel.is_set():
            raise AcquireCancelled(f"Cancelled before {source.value} request")
        return slot
