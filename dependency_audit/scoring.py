"""
Health scoring for dependencies.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

from .config import ScoringScales, ScoringWeights, StalenessThresholds
from .models import AggregatedMetadata, HealthScore, HealthStatus


RECENCY_FLOOR = 10.0
MAINTENANCE_BASE = 50.0
SECURITY_POLICY_BONUS = 20.0
YANKED_SECURITY_CAP = 10.0

# (share of the component, metadata field, scales attribute)
_COMMUNITY_TERMS = (
    (0.3, "author_count", "authors"),
    (0.4, "star_count", "stars"),
    (0.3, "contributor_count", "contributors"),
)
_STABILITY_TERMS = (
    (0.6, "version_count", "versions"),
    (0.4, "download_count", "downloads"),
)


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _log_share(value: Optional[int], reference: float) -> float:
    """Logarithmic saturation: 0 at zero, 1 at ``reference`` and beyond."""
    if value is None or value <= 0:
        return 0.0
    return min(1.0, math.log1p(value) / math.log1p(reference))


def recency_score(
    last_activity_days: Optional[int],
    thresholds: StalenessThresholds = StalenessThresholds(),
) -> float:
    if last_activity_days is None:
        return RECENCY_FLOOR

    days = last_activity_days
    if days <= 30:
        return 100.0
    if days <= 90:
        return 90.0
    if days <= 180:
        return 80.0
    if days <= thresholds.stale_days:
        return 60.0
    if days <= thresholds.risky_days:
        return 30.0
    return RECENCY_FLOOR


def maintenance_score(meta: AggregatedMetadata) -> float:
    # An archived repository overrides every other maintenance signal.
    if meta.is_archived:
        return 0.0
    score = MAINTENANCE_BASE
    if meta.open_issue_activity:
        score += 25.0
    if meta.recent_commit_activity:
        score += 25.0
    return min(100.0, score)


def _weighted_log_score(
    meta: AggregatedMetadata,
    terms: Sequence[Tuple[float, str, str]],
    scales: ScoringScales,
) -> float:
    total = sum(
        share * _log_share(getattr(meta, field), getattr(scales, scale))
        for share, field, scale in terms
    )
    return _clamp(100.0 * total)


def community_score(meta: AggregatedMetadata, scales: ScoringScales = ScoringScales()) -> float:
    return _weighted_log_score(meta, _COMMUNITY_TERMS, scales)


def stability_score(meta: AggregatedMetadata, scales: ScoringScales = ScoringScales()) -> float:
    return _weighted_log_score(meta, _STABILITY_TERMS, scales)


def security_score(meta: AggregatedMetadata) -> float:
    score = 10.0 * meta.openssf_score if meta.openssf_score is not None else 0.0
    if meta.has_security_policy:
        score += SECURITY_POLICY_BONUS
    score = _clamp(score)
    # A yanked version is close to disqualifying whatever else is known.
    if meta.is_yanked:
        score = min(score, YANKED_SECURITY_CAP)
    return score


def score(
    meta: AggregatedMetadata,
    weights: ScoringWeights,
    thresholds: Optional[StalenessThresholds] = None,
    scales: Optional[ScoringScales] = None,
) -> HealthScore:
    """Compute component scores and their weighted total for one dependency.

    The total is clamped to [0, 100]; weights that do not sum to one are
    applied as given, never renormalized.
    """
    thresholds = thresholds or StalenessThresholds()
    scales = scales or ScoringScales()

    recency = recency_score(meta.last_activity_days, thresholds)
    maintenance = maintenance_score(meta)
    community = community_score(meta, scales)
    stability = stability_score(meta, scales)
    security = security_score(meta)

    total = (
        weights.recency * recency
        + weights.maintenance * maintenance
        + weights.community * community
        + weights.stability * stability
        + weights.security * security
    )

    return HealthScore(
        recency=recency,
        maintenance=maintenance,
        community=community,
        stability=stability,
        security=security,
        total=_clamp(total),
    )


def status_for(total: float) -> HealthStatus:
    if total >= 80:
        return HealthStatus.HEALTHY
    if total >= 60:
        return HealthStatus.WARNING
    if total >= 40:
        return HealthStatus.STALE
    return HealthStatus.RISKY
