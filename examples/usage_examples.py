#!/usr/bin/env python3
"""
Example script showing how to use the dependency-audit tool.
"""

import os
from pathlib import Path

from dependency_audit.audit import AuditEngine
from dependency_audit.config import (
    AuditConfig,
    GateThresholds,
    LicensePolicy,
    NetworkConfig,
    ScoringWeights,
)
from dependency_audit.models import Dependency
from dependency_audit.reporting import export_worksheets, save_report_json


DEPENDENCIES = [
    Dependency("serde", "1.0.200", feature_count=6, transitive_count=3),
    Dependency("tokio", "1.37.0", feature_count=12, transitive_count=25),
    Dependency("cc", "1.0.90", is_direct=False, is_build_dependency=True),
    Dependency("openssl-sys", "0.9.102", is_direct=False, build_dependency_count=3),
]


def example_basic_audit():
    """Example: Audit with default settings."""
    print("="*60)
    print("Example 1: Basic Audit")
    print("="*60)

    engine = AuditEngine(AuditConfig())
    report = engine.run(DEPENDENCIES, progress=True)

    for entry in report.entries:
        print(
            f"{entry.dependency.name:<15} {entry.score.total:6.1f}  "
            f"{entry.status.value:<8} {entry.license_category.value}"
        )
    print(f"\nAverage health score: {report.summary.average_health_score:.2f}")
    print(f"Passed: {report.passed}")


def example_strict_policy():
    """Example: Strict license policy with a health gate and exports."""
    print("\n" + "="*60)
    print("Example 2: Strict Policy")
    print("="*60)

    config = AuditConfig(
        scoring_weights=ScoringWeights(recency=0.3, maintenance=0.3, community=0.2, stability=0.1, security=0.1),
        license_policy=LicensePolicy(
            allowed_licenses=frozenset({"MIT", "Apache-2.0", "BSD-3-Clause"}),
            forbidden_licenses=frozenset({"GPL", "AGPL"}),
        ),
        network=NetworkConfig(
            request_delay_ms=200,
            github_token=os.environ.get("GITHUB_TOKEN"),
        ),
        gate=GateThresholds(min_health_score=50.0),
    )

    report = AuditEngine(config).run(DEPENDENCIES, ignore_list=["openssl-sys"], progress=True)

    for failure in report.failures:
        print(f"FAIL {failure}")

    output_dir = Path("./output/example2")
    print(f"Report saved to: {save_report_json(report, output_dir, 'strict')}")
    print(f"Worksheets saved to: {export_worksheets(report, output_dir, 'strict')}")


if __name__ == "__main__":
    import sys

    print("Dependency Audit - Example Usage")
    print("="*60)
    print("\nNOTE: These examples require network access to crates.io and GitHub.")

    try:
        example_basic_audit()
        example_strict_policy()

        print("\n" + "="*60)
        print("Examples completed successfully!")
        print("="*60)

    except Exception as e:
        print(f"\nError running examples: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        sys.exit(1)
