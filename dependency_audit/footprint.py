"""
Footprint risk estimation.
"""

from __future__ import annotations

from typing import List

from .config import FootprintThresholds
from .models import Dependency


TRANSITIVE_WEIGHT = 0.4
FEATURE_WEIGHT = 0.3
BUILD_WEIGHT = 0.3


def _saturate(value: int, ceiling: int) -> float:
    return min(1.0, value / ceiling)


def build_dependency_total(dependency: Dependency) -> int:
    """Build-only dependencies pulled in, counting the dependency itself when it is one."""
    return dependency.build_dependency_count + (1 if dependency.is_build_dependency else 0)


def estimate(dependency: Dependency, thresholds: FootprintThresholds) -> float:
    """Return footprint risk in [0, 1]; 0 is a small footprint, 1 a large one."""
    risk = (
        TRANSITIVE_WEIGHT * _saturate(dependency.transitive_count, thresholds.max_transitive_deps)
        + FEATURE_WEIGHT * _saturate(dependency.feature_count, thresholds.max_features)
        + BUILD_WEIGHT * _saturate(build_dependency_total(dependency), thresholds.max_build_dependencies)
    )
    return max(0.0, min(1.0, risk))


def footprint_warnings(
    dependency: Dependency,
    risk: float,
    thresholds: FootprintThresholds,
) -> List[str]:
    warnings = []
    if dependency.transitive_count > thresholds.max_transitive_deps:
        warnings.append(
            f"High number of transitive dependencies: {dependency.transitive_count} "
            f"(threshold: {thresholds.max_transitive_deps})"
        )
    if risk > thresholds.max_footprint_risk:
        warnings.append(
            f"High footprint risk: {risk:.2f} (threshold: {thresholds.max_footprint_risk:.2f})"
        )
    return warnings
