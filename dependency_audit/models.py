"""
Core data models for dependency health auditing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


class SourceKind(str, Enum):
    """Data providers consulted for each dependency."""

    REGISTRY = "registry"
    GITHUB = "github"
    GITLAB = "gitlab"
    SCORECARD = "scorecard"


class FailureKind(str, Enum):
    """Classified reasons a single source lookup failed."""

    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"
    MALFORMED = "malformed"

    @property
    def is_transient(self) -> bool:
        return self in _TRANSIENT_FAILURES


_TRANSIENT_FAILURES = frozenset(
    {FailureKind.TIMEOUT, FailureKind.RATE_LIMITED, FailureKind.SERVER_ERROR}
)


class LicenseCategory(str, Enum):
    PERMISSIVE = "permissive"
    COPYLEFT = "copyleft"
    PROPRIETARY = "proprietary"
    UNKNOWN = "unknown"


class LicenseVerdict(str, Enum):
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    STALE = "stale"
    RISKY = "risky"


@dataclass(frozen=True)
class Dependency:
    """A resolved dependency as produced by the project's resolver."""

    name: str
    version: str
    is_direct: bool = True
    is_build_dependency: bool = False
    feature_count: int = 0
    transitive_count: int = 0
    build_dependency_count: int = 0
    repository_url: Optional[str] = None
    from_registry: bool = True

    def __post_init__(self) -> None:
        for attr in ("feature_count", "transitive_count", "build_dependency_count"):
            if getattr(self, attr) < 0:
                raise ValueError(f"{attr} must be non-negative for {self.name}")


@dataclass(frozen=True)
class SourceOutcome:
    """Result of looking up one dependency in one source.

    Exactly one of ``payload`` and ``failure`` is set.
    """

    source: SourceKind
    payload: Optional[Mapping[str, Any]] = None
    failure: Optional[FailureKind] = None
    attempts: int = 1
    detail: str = ""
    retry_after: Optional[float] = None

    @classmethod
    def success(cls, source: SourceKind, payload: Mapping[str, Any]) -> "SourceOutcome":
        return cls(source=source, payload=dict(payload))

    @classmethod
    def failed(
        cls,
        source: SourceKind,
        failure: FailureKind,
        detail: str = "",
        retry_after: Optional[float] = None,
    ) -> "SourceOutcome":
        return cls(source=source, failure=failure, detail=detail, retry_after=retry_after)

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass(frozen=True)
class AggregatedMetadata:
    """Merged view of every successful source for one dependency.

    ``None`` always means no source supplied the datum.
    """

    dependency: Dependency
    last_activity_days: Optional[int] = None
    is_archived: Optional[bool] = None
    open_issue_activity: Optional[bool] = None
    recent_commit_activity: Optional[bool] = None
    author_count: Optional[int] = None
    star_count: Optional[int] = None
    contributor_count: Optional[int] = None
    version_count: Optional[int] = None
    download_count: Optional[int] = None
    openssf_score: Optional[float] = None
    has_security_policy: Optional[bool] = None
    is_yanked: Optional[bool] = None
    license_expression: Optional[str] = None
    repository_url: Optional[str] = None
    latest_version: Optional[str] = None
    sources: Tuple[SourceKind, ...] = ()
    failures: Dict[SourceKind, FailureKind] = field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        """True when at least one applicable source failed."""
        return bool(self.failures)


@dataclass(frozen=True)
class HealthScore:
    """Component scores (0-100) and their weighted total."""

    recency: float
    maintenance: float
    community: float
    stability: float
    security: float
    total: float


@dataclass(frozen=True)
class DependencyReport:
    """Audit result for a single dependency."""

    dependency: Dependency
    metadata: AggregatedMetadata
    score: HealthScore
    status: HealthStatus
    license_category: LicenseCategory
    license_verdict: LicenseVerdict
    footprint_risk: float
    warnings: Tuple[str, ...] = ()

    @property
    def degraded(self) -> bool:
        return self.metadata.degraded


@dataclass(frozen=True)
class AuditSummary:
    total_dependencies: int = 0
    healthy: int = 0
    warning: int = 0
    stale: int = 0
    risky: int = 0
    average_health_score: float = 0.0
    license_issues: int = 0
    high_footprint_count: int = 0
    degraded_count: int = 0
    ignored_count: int = 0


@dataclass(frozen=True)
class AuditReport:
    """Complete audit of a dependency set."""

    entries: Tuple[DependencyReport, ...]
    summary: AuditSummary
    passed: bool
    generated_at: datetime
    failures: Tuple[str, ...] = ()
    deadline_exceeded: bool = False
