"""
Concurrent metadata acquisition across all sources.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .config import NetworkConfig
from .interfaces import SourceClient
from .merge import merge_outcomes
from .models import AggregatedMetadata, Dependency, FailureKind, SourceKind, SourceOutcome
from .ratelimit import AcquireCancelled, RateLimiter
from .retry import RetryPolicy
from .time_utils import utc_now


logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8


@dataclass
class _DependencyState:
    dependency: Dependency
    outcomes: List[SourceOutcome] = field(default_factory=list)
    outstanding: int = 0
    registry_pending: int = 0
    emitted: bool = False


class FetchOrchestrator:
    """Fan lookups out over a bounded thread pool and stream merged records.

    Registry lookups for a dependency finish before its forge and scorecard
    lookups start, since those are addressed by the repository URL the
    registry reports. Every lookup is paced by the rate limiter and retried
    by the retry policy. A run-wide deadline abandons unfinished lookups.
    """

    def __init__(
        self,
        clients: Sequence[SourceClient],
        rate_limiter: RateLimiter,
        retry_policy: RetryPolicy,
        max_workers: int = DEFAULT_MAX_WORKERS,
        deadline_secs: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry_clients = [c for c in clients if c.kind is SourceKind.REGISTRY]
        self.secondary_clients = [c for c in clients if c.kind is not SourceKind.REGISTRY]
        self.rate_limiter = rate_limiter
        self.retry_policy = retry_policy
        self.max_workers = max_workers
        self.deadline_secs = deadline_secs
        self._clock = clock
        self.deadline_exceeded = False

    @classmethod
    def from_network(cls, network: NetworkConfig, clients: Sequence[SourceClient]) -> "FetchOrchestrator":
        return cls(
            clients,
            RateLimiter(network.request_delay_ms / 1000.0, burst=network.burst),
            RetryPolicy.from_network(network),
            max_workers=network.max_workers,
            deadline_secs=network.deadline_secs,
        )

    def aggregate(
        self,
        dependencies: Iterable[Dependency],
        ignore_list: Iterable[str] = (),
        now: Optional[datetime] = None,
    ) -> Iterator[AggregatedMetadata]:
        """Yield one merged record per non-ignored dependency, as each completes."""
        now = now or utc_now()
        ignored = set(ignore_list)
        selected = []
        for dep in dependencies:
            if dep.name in ignored:
                logger.debug("Skipping ignored dependency: %s", dep.name)
                continue
            selected.append(dep)

        self.deadline_exceeded = False
        if not selected:
            return

        cancel = threading.Event()
        executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="dependency-audit"
        )
        futures: Dict[Future, Tuple[_DependencyState, SourceClient]] = {}
        deadline = None if self.deadline_secs is None else self._clock() + self.deadline_secs

        def submit(state: _DependencyState, client: SourceClient, dependency: Dependency) -> None:
            future = executor.submit(self._lookup, client, dependency, cancel)
            futures[future] = (state, client)
            state.outstanding += 1

        def dispatch_secondary(state: _DependencyState) -> None:
            target = self._forge_target(state)
            for client in self.secondary_clients:
                if client.applies_to(target):
                    submit(state, client, target)

        states = []
        try:
            for dep in selected:
                state = _DependencyState(dep)
                states.append(state)
                registry = [c for c in self.registry_clients if c.applies_to(dep)]
                state.registry_pending = len(registry)
                for client in registry:
                    submit(state, client, dep)
                if not registry:
                    dispatch_secondary(state)
                if state.outstanding == 0:
                    state.emitted = True
                    yield merge_outcomes(dep, state.outcomes, now)

            while futures:
                remaining = None if deadline is None else deadline - self._clock()
                if remaining is not None and remaining <= 0:
                    self._expire(futures, cancel)
                    break
                done, _ = wait(list(futures), timeout=remaining, return_when=FIRST_COMPLETED)
                if not done:
                    self._expire(futures, cancel)
                    break

                for future in done:
                    state, client = futures.pop(future)
                    state.outcomes.append(future.result())
                    state.outstanding -= 1
                    if client.kind is SourceKind.REGISTRY:
                        state.registry_pending -= 1
                        if state.registry_pending == 0:
                            dispatch_secondary(state)
                    if state.outstanding == 0:
                        state.emitted = True
                        yield merge_outcomes(state.dependency, state.outcomes, now)

            for state in states:
                if not state.emitted:
                    state.emitted = True
                    yield merge_outcomes(state.dependency, state.outcomes, now)
        finally:
            cancel.set()
            executor.shutdown(wait=False, cancel_futures=True)

    def _forge_target(self, state: _DependencyState) -> Dependency:
        """The dependency as forge clients should see it, with the registry URL applied."""
        dep = state.dependency
        for outcome in state.outcomes:
            if outcome.source is SourceKind.REGISTRY and outcome.ok:
                url = (outcome.payload or {}).get("repository_url")
                if url and url != dep.repository_url:
                    return dataclasses.replace(dep, repository_url=url)
        return dep

    def _expire(
        self,
        futures: Dict[Future, Tuple[_DependencyState, SourceClient]],
        cancel: threading.Event,
    ) -> None:
        self.deadline_exceeded = True
        cancel.set()
        logger.warning(
            "Fetch deadline of %.1fs exceeded, abandoning %d lookups",
            self.deadline_secs, len(futures),
        )
        for future, (state, client) in futures.items():
            future.cancel()
            state.outcomes.append(
                SourceOutcome.failed(client.kind, FailureKind.TIMEOUT, "Run deadline exceeded")
            )
            state.outstanding -= 1
        futures.clear()

    def _lookup(
        self,
        client: SourceClient,
        dependency: Dependency,
        cancel: threading.Event,
    ) -> SourceOutcome:
        def attempt() -> SourceOutcome:
            try:
                self.rate_limiter.acquire(client.kind, cancel)
            except AcquireCancelled:
                return SourceOutcome.failed(client.kind, FailureKind.TIMEOUT, "Run deadline exceeded")
            try:
                return client.fetch(dependency)
            except Exception as e:
                # A client must report failures as outcomes; anything it raises counts as malformed.
                logger.exception("%s client raised for %s", client.kind.value, dependency.name)
                return SourceOutcome.failed(client.kind, FailureKind.MALFORMED, f"Client error: {e!r}")

        outcome = self.retry_policy.execute(attempt, cancel)
        if not outcome.ok:
            logger.warning(
                "%s lookup for %s failed after %d attempt(s): %s",
                client.kind.value, dependency.name, outcome.attempts, outcome.failure.value,
            )
        return outcome
