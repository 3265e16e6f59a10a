"""
Configuration for audit behavior and scoring heuristics.
"""

from __future__ import annotations

import dataclasses
import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from .errors import ConfigurationError


@dataclass(frozen=True)
class ScoringWeights:
    """Weights applied to each component score.

    They are not required to sum to 1.0; the total is clamped instead.
    """

    recency: float = 0.35
    maintenance: float = 0.25
    community: float = 0.20
    stability: float = 0.10
    security: float = 0.10

    def as_dict(self) -> Dict[str, float]:
        return dataclasses.asdict(self)


@dataclass(frozen=True)
class StalenessThresholds:
    stale_days: int = 365
    risky_days: int = 730
    min_maintainers: int = 1


@dataclass(frozen=True)
class ScoringScales:
    """Reference values at which a community/stability input saturates."""

    authors: int = 10
    stars: int = 1000
    contributors: int = 50
    versions: int = 30
    downloads: int = 1_000_000


@dataclass(frozen=True)
class LicensePolicy:
    """License allow/deny lists; an empty allow-list allows everything."""

    allowed_licenses: FrozenSet[str] = frozenset()
    forbidden_licenses: FrozenSet[str] = frozenset()
    warn_on_copyleft: bool = True
    warn_on_unknown: bool = True


@dataclass(frozen=True)
class FootprintThresholds:
    max_transitive_deps: int = 100
    max_footprint_risk: float = 0.8
    max_features: int = 30
    max_build_dependencies: int = 6


@dataclass(frozen=True)
class NetworkConfig:
    """HTTP, retry and concurrency settings."""

    timeout_secs: float = 30.0
    max_retries: int = 3
    request_delay_ms: int = 100
    enable_openssf: bool = True
    backoff_base_ms: int = 250
    max_backoff_secs: float = 30.0
    burst: int = 1
    max_workers: int = 8
    deadline_secs: Optional[float] = 300.0
    registry_url: str = "https://crates.io/api/v1"
    github_api_url: str = "https://api.github.com"
    gitlab_api_url: str = "https://gitlab.com/api/v4"
    scorecard_api_url: str = "https://api.securityscorecards.dev"
    github_token: Optional[str] = field(default=None, repr=False)
    gitlab_token: Optional[str] = field(default=None, repr=False)


@dataclass(frozen=True)
class GateThresholds:
    """Run-level pass/fail rules applied to the finished report."""

    min_health_score: Optional[float] = None
    fail_on_license: bool = True
    fail_on_footprint: bool = False


@dataclass(frozen=True)
class AuditConfig:
    """Main configuration for the audit process."""

    scoring_weights: ScoringWeights = field(default_factory=ScoringWeights)
    staleness_thresholds: StalenessThresholds = field(default_factory=StalenessThresholds)
    scoring_scales: ScoringScales = field(default_factory=ScoringScales)
    license_policy: LicensePolicy = field(default_factory=LicensePolicy)
    footprint_thresholds: FootprintThresholds = field(default_factory=FootprintThresholds)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    gate: GateThresholds = field(default_factory=GateThresholds)
    ignored_dependencies: FrozenSet[str] = frozenset()

    def validate(self) -> None:
        """Raise ConfigurationError describing every invalid setting."""
        problems = _collect_problems(self)
        if problems:
            raise ConfigurationError("Invalid configuration: " + "; ".join(problems))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AuditConfig":
        """Build a validated config from a nested mapping.

        Unknown sections or keys are rejected rather than ignored.
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError("Configuration root must be a mapping")

        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key == "ignored_dependencies":
                kwargs[key] = frozenset(_string_list(key, value))
                continue
            section_cls = _SECTIONS.get(key)
            if section_cls is None:
                raise ConfigurationError(f"Unknown configuration section: {key}")
            kwargs[key] = _build_section(key, section_cls, value)

        config = cls(**kwargs)
        config.validate()
        return config


_SECTIONS = {
    "scoring_weights": ScoringWeights,
    "staleness_thresholds": StalenessThresholds,
    "scoring_scales": ScoringScales,
    "license_policy": LicensePolicy,
    "footprint_thresholds": FootprintThresholds,
    "network": NetworkConfig,
    "gate": GateThresholds,
}

_SET_FIELDS = {"allowed_licenses", "forbidden_licenses"}


def _build_section(name: str, section_cls: type, value: Any) -> Any:
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"Section {name} must be a mapping")
    known = {f.name for f in dataclasses.fields(section_cls)}
    unknown = sorted(set(value) - known)
    if unknown:
        raise ConfigurationError(f"Unknown keys in {name}: {', '.join(unknown)}")
    kwargs = {}
    for key, item in value.items():
        if key in _SET_FIELDS:
            item = frozenset(_string_list(f"{name}.{key}", item))
        kwargs[key] = item
    try:
        return section_cls(**kwargs)
    except TypeError as e:
        raise ConfigurationError(f"Invalid section {name}: {e}") from e


def _string_list(name: str, value: Any) -> List[str]:
    if isinstance(value, str) or not isinstance(value, (list, tuple, set, frozenset)):
        raise ConfigurationError(f"{name} must be a list of strings")
    if not all(isinstance(item, str) for item in value):
        raise ConfigurationError(f"{name} must be a list of strings")
    return list(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _collect_problems(config: AuditConfig) -> List[str]:
    problems: List[str] = []

    weights = config.scoring_weights.as_dict()
    for name, weight in weights.items():
        if not _is_number(weight) or weight < 0:
            problems.append(f"scoring_weights.{name} must be a non-negative number")
    if not problems and sum(weights.values()) <= 0:
        problems.append("scoring_weights must not all be zero")

    staleness = config.staleness_thresholds
    if not isinstance(staleness.stale_days, int) or staleness.stale_days <= 180:
        problems.append("staleness_thresholds.stale_days must be an integer above 180")
    elif not isinstance(staleness.risky_days, int) or staleness.risky_days <= staleness.stale_days:
        problems.append("staleness_thresholds.risky_days must exceed stale_days")
    if not isinstance(staleness.min_maintainers, int) or staleness.min_maintainers < 0:
        problems.append("staleness_thresholds.min_maintainers must be a non-negative integer")

    for name, scale in dataclasses.asdict(config.scoring_scales).items():
        if not _is_number(scale) or scale <= 0:
            problems.append(f"scoring_scales.{name} must be positive")

    policy = config.license_policy
    overlap = _lowered(policy.allowed_licenses) & _lowered(policy.forbidden_licenses)
    if overlap:
        problems.append(
            "licenses both allowed and forbidden: " + ", ".join(sorted(overlap))
        )

    footprint = config.footprint_thresholds
    for name in ("max_transitive_deps", "max_features", "max_build_dependencies"):
        value = getattr(footprint, name)
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            problems.append(f"footprint_thresholds.{name} must be a positive integer")
    if not _is_number(footprint.max_footprint_risk) or not 0.0 <= footprint.max_footprint_risk <= 1.0:
        problems.append("footprint_thresholds.max_footprint_risk must be within [0, 1]")

    network = config.network
    if not _is_number(network.timeout_secs) or network.timeout_secs <= 0:
        problems.append("network.timeout_secs must be positive")
    for name in ("max_retries", "request_delay_ms", "backoff_base_ms"):
        value = getattr(network, name)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            problems.append(f"network.{name} must be a non-negative integer")
    for name in ("burst", "max_workers"):
        value = getattr(network, name)
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            problems.append(f"network.{name} must be at least 1")
    if not _is_number(network.max_backoff_secs) or network.max_backoff_secs < 0:
        problems.append("network.max_backoff_secs must be non-negative")
    if network.deadline_secs is not None and (
        not _is_number(network.deadline_secs) or network.deadline_secs <= 0
    ):
        problems.append("network.deadline_secs must be positive when set")

    gate = config.gate
    if gate.min_health_score is not None and (
        not _is_number(gate.min_health_score) or not 0 <= gate.min_health_score <= 100
    ):
        problems.append("gate.min_health_score must be within [0, 100]")

    return problems


def _lowered(values: FrozenSet[str]) -> FrozenSet[str]:
    return frozenset(v.lower() for v in values)


def _reject_duplicate_keys(pairs: List[Tuple[str, Any]]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise ConfigurationError(f"Duplicate configuration key: {key}")
        result[key] = value
    return result


def parse_config(text: str) -> AuditConfig:
    """Parse a JSON configuration document."""
    try:
        data = json.loads(text, object_pairs_hook=_reject_duplicate_keys)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Configuration is not valid JSON: {e}") from e
    return AuditConfig.from_dict(data)


def load_config(path: Path) -> AuditConfig:
    """Load a JSON configuration file."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration {path}: {e}") from e
    return parse_config(text)
