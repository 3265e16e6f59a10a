"""
Audit engine: fetch, score, classify and gate a dependency set.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

import requests
from packaging import version as pkg_version
from tqdm import tqdm

from .config import AuditConfig
from .footprint import estimate, footprint_warnings
from .interfaces import SourceClient
from .license import classify, evaluate_policy
from .models import (
    AggregatedMetadata,
    AuditReport,
    AuditSummary,
    Dependency,
    DependencyReport,
    HealthStatus,
    LicenseVerdict,
)
from .orchestrator import FetchOrchestrator
from .scoring import score, status_for
from .sources import build_default_clients
from .time_utils import utc_now


logger = logging.getLogger(__name__)


def newer_release(current: str, latest: Optional[str]) -> Optional[str]:
    """Return ``latest`` when it is a strictly newer version than ``current``."""
    if not latest:
        return None
    try:
        if pkg_version.parse(latest) > pkg_version.parse(current):
            return latest
    except pkg_version.InvalidVersion:
        logger.debug("Cannot compare versions %s and %s", current, latest)
    return None


def metadata_warnings(meta: AggregatedMetadata, config: AuditConfig) -> List[str]:
    """Warnings derived from the merged metadata itself."""
    dep = meta.dependency
    warnings = []
    for source, failure in sorted(meta.failures.items(), key=lambda item: item[0].value):
        warnings.append(f"Could not fetch {source.value} metadata: {failure.value}")
    if meta.is_archived:
        warnings.append("Repository is archived")
    if meta.is_yanked:
        warnings.append(f"Version {dep.version} has been yanked")
    latest = newer_release(dep.version, meta.latest_version)
    if latest:
        warnings.append(f"Newer version available: {latest} (current: {dep.version})")
    min_maintainers = config.staleness_thresholds.min_maintainers
    if meta.author_count is not None and meta.author_count < min_maintainers:
        warnings.append(
            f"Only {meta.author_count} maintainer(s) (minimum: {min_maintainers})"
        )
    return warnings


def summarize(
    entries: Sequence[DependencyReport],
    config: AuditConfig,
    ignored_count: int = 0,
) -> AuditSummary:
    counts = {status: 0 for status in HealthStatus}
    for entry in entries:
        counts[entry.status] += 1

    total = len(entries)
    average = sum(e.score.total for e in entries) / total if total else 0.0
    max_risk = config.footprint_thresholds.max_footprint_risk

    return AuditSummary(
        total_dependencies=total,
        healthy=counts[HealthStatus.HEALTHY],
        warning=counts[HealthStatus.WARNING],
        stale=counts[HealthStatus.STALE],
        risky=counts[HealthStatus.RISKY],
        average_health_score=average,
        license_issues=sum(1 for e in entries if e.license_verdict is not LicenseVerdict.PASS),
        high_footprint_count=sum(1 for e in entries if e.footprint_risk > max_risk),
        degraded_count=sum(1 for e in entries if e.degraded),
        ignored_count=ignored_count,
    )


class AuditEngine:
    """Run a complete audit over a resolved dependency set.

    The configuration is validated on construction, so an invalid setting
    raises ConfigurationError before any request is sent.
    """

    def __init__(
        self,
        config: Optional[AuditConfig] = None,
        clients: Optional[Sequence[SourceClient]] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config or AuditConfig()
        self.config.validate()
        if clients is None:
            clients = build_default_clients(self.config.network, session)
        self.clients = list(clients)

    def evaluate(self, meta: AggregatedMetadata) -> DependencyReport:
        """Score, classify and annotate one merged metadata record."""
        config = self.config
        dep = meta.dependency

        health = score(
            meta,
            config.scoring_weights,
            config.staleness_thresholds,
            config.scoring_scales,
        )
        category = classify(meta.license_expression)
        verdict, license_messages = evaluate_policy(
            category, meta.license_expression, config.license_policy
        )
        risk = estimate(dep, config.footprint_thresholds)

        warnings = metadata_warnings(meta, config)
        warnings.extend(license_messages)
        warnings.extend(footprint_warnings(dep, risk, config.footprint_thresholds))

        return DependencyReport(
            dependency=dep,
            metadata=meta,
            score=health,
            status=status_for(health.total),
            license_category=category,
            license_verdict=verdict,
            footprint_risk=risk,
            warnings=tuple(warnings),
        )

    def gate_failures(self, entries: Iterable[DependencyReport]) -> List[str]:
        """Messages for every entry that breaks a configured gate."""
        gate = self.config.gate
        max_risk = self.config.footprint_thresholds.max_footprint_risk
        failures = []
        for entry in entries:
            dep = entry.dependency
            label = f"{dep.name} {dep.version}"
            if gate.fail_on_license and entry.license_verdict is LicenseVerdict.FAIL:
                license_text = entry.metadata.license_expression or "no license"
                failures.append(f"{label}: license policy violation ({license_text})")
            if gate.min_health_score is not None and entry.score.total < gate.min_health_score:
                failures.append(
                    f"{label}: health score {entry.score.total:.1f} "
                    f"below minimum {gate.min_health_score:.1f}"
                )
            if gate.fail_on_footprint and entry.footprint_risk > max_risk:
                failures.append(
                    f"{label}: footprint risk {entry.footprint_risk:.2f} above {max_risk:.2f}"
                )
        return failures

    def run(
        self,
        dependencies: Iterable[Dependency],
        ignore_list: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
        progress: bool = False,
    ) -> AuditReport:
        """Audit ``dependencies`` and return the finished report."""
        now = now or utc_now()
        ignored = set(self.config.ignored_dependencies) | set(ignore_list or ())
        dependencies = list(dependencies)
        ignored_count = sum(1 for dep in dependencies if dep.name in ignored)
        logger.info(
            "Auditing %d dependencies (%d ignored)",
            len(dependencies) - ignored_count, ignored_count,
        )

        orchestrator = FetchOrchestrator.from_network(self.config.network, self.clients)
        entries: List[DependencyReport] = []
        records = orchestrator.aggregate(dependencies, ignored, now)
        with tqdm(
            total=len(dependencies) - ignored_count,
            desc="Auditing dependencies",
            unit="dep",
            disable=not progress,
        ) as bar:
            for meta in records:
                entries.append(self.evaluate(meta))
                bar.update(1)

        entries.sort(key=lambda e: (e.dependency.name, e.dependency.version))
        summary = summarize(entries, self.config, ignored_count)
        failures = self.gate_failures(entries)

        if orchestrator.deadline_exceeded:
            logger.warning("Audit finished after the fetch deadline; some data is missing")
        logger.info(
            "Audit complete: %d healthy, %d warning, %d stale, %d risky of %d",
            summary.healthy, summary.warning, summary.stale, summary.risky,
            summary.total_dependencies,
        )

        return AuditReport(
            entries=tuple(entries),
            summary=summary,
            passed=not failures,
            generated_at=now,
            failures=tuple(failures),
            deadline_exceeded=orchestrator.deadline_exceeded,
        )
