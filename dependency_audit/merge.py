"""
Merge per-source outcomes into one metadata record per dependency.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple

from .models import AggregatedMetadata, Dependency, FailureKind, SourceKind, SourceOutcome
from .time_utils import days_since


logger = logging.getLogger(__name__)

RECENT_COMMIT_WINDOW_DAYS = 90

_FORGES = (SourceKind.GITHUB, SourceKind.GITLAB)

# Payload key -> sources that may supply it, most authoritative first.
# The first successful source with a value wins; values are never combined.
FIELD_PRECEDENCE: Dict[str, Tuple[SourceKind, ...]] = {
    "last_activity_at": _FORGES + (SourceKind.REGISTRY,),
    "last_commit_at": _FORGES,
    "is_archived": _FORGES,
    "open_issue_activity": _FORGES,
    "star_count": _FORGES,
    "contributor_count": _FORGES,
    "author_count": (SourceKind.REGISTRY,),
    "version_count": (SourceKind.REGISTRY,),
    "download_count": (SourceKind.REGISTRY,),
    "is_yanked": (SourceKind.REGISTRY,),
    "latest_version": (SourceKind.REGISTRY,),
    "license_expression": (SourceKind.REGISTRY,) + _FORGES,
    "repository_url": (SourceKind.REGISTRY,),
    "openssf_score": (SourceKind.SCORECARD,),
    "has_security_policy": (SourceKind.SCORECARD,),
}


def _pick(field: str, payloads: Dict[SourceKind, Dict[str, Any]]) -> Any:
    for source in FIELD_PRECEDENCE[field]:
        value = payloads.get(source, {}).get(field)
        if value is not None:
            return value
    return None


def merge_outcomes(
    dependency: Dependency,
    outcomes: Iterable[SourceOutcome],
    now: datetime,
) -> AggregatedMetadata:
    """Combine source outcomes for ``dependency`` as of ``now``.

    Timestamps become day counts relative to ``now``. A dependency whose
    sources all failed still gets a record, with every field absent.
    """
    payloads: Dict[SourceKind, Dict[str, Any]] = {}
    failures: Dict[SourceKind, FailureKind] = {}
    for outcome in outcomes:
        if outcome.ok:
            payloads[outcome.source] = dict(outcome.payload or {})
        else:
            failures[outcome.source] = outcome.failure

    last_activity: Optional[datetime] = _pick("last_activity_at", payloads)
    last_commit: Optional[datetime] = _pick("last_commit_at", payloads)

    recent_commit_activity = None
    if last_commit is not None:
        recent_commit_activity = days_since(last_commit, now) <= RECENT_COMMIT_WINDOW_DAYS

    meta = AggregatedMetadata(
        dependency=dependency,
        last_activity_days=days_since(last_activity, now) if last_activity is not None else None,
        is_archived=_pick("is_archived", payloads),
        open_issue_activity=_pick("open_issue_activity", payloads),
        recent_commit_activity=recent_commit_activity,
        author_count=_pick("author_count", payloads),
        star_count=_pick("star_count", payloads),
        contributor_count=_pick("contributor_count", payloads),
        version_count=_pick("version_count", payloads),
        download_count=_pick("download_count", payloads),
        openssf_score=_pick("openssf_score", payloads),
        has_security_policy=_pick("has_security_policy", payloads),
        is_yanked=_pick("is_yanked", payloads),
        license_expression=_pick("license_expression", payloads),
        repository_url=_pick("repository_url", payloads) or dependency.repository_url,
        latest_version=_pick("latest_version", payloads),
        sources=tuple(sorted(payloads, key=lambda kind: kind.value)),
        failures=failures,
    )
    if failures:
        logger.debug(
            "Merged %s with failed sources: %s",
            dependency.name, ", ".join(f"{k.value}={v.value}" for k, v in failures.items()),
        )
    return meta
