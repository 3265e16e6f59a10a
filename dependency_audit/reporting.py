"""
Reporting and export utilities.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from .models import AuditReport, DependencyReport


logger = logging.getLogger(__name__)

REPORT_COLUMNS = [
    "name",
    "version",
    "is_direct",
    "status",
    "health_score",
    "recency",
    "maintenance",
    "community",
    "stability",
    "security",
    "license",
    "license_category",
    "license_verdict",
    "footprint_risk",
    "last_activity_days",
    "is_archived",
    "is_yanked",
    "latest_version",
    "star_count",
    "contributor_count",
    "download_count",
    "openssf_score",
    "repository_url",
    "degraded",
    "failed_sources",
    "warnings",
]


def entry_to_dict(entry: DependencyReport) -> Dict[str, Any]:
    meta = entry.metadata
    return {
        "name": entry.dependency.name,
        "version": entry.dependency.version,
        "is_direct": entry.dependency.is_direct,
        "is_build_dependency": entry.dependency.is_build_dependency,
        "status": entry.status.value,
        "health_score": round(entry.score.total, 2),
        "scores": {k: round(v, 2) for k, v in dataclasses.asdict(entry.score).items()},
        "license": meta.license_expression,
        "license_category": entry.license_category.value,
        "license_verdict": entry.license_verdict.value,
        "footprint_risk": round(entry.footprint_risk, 3),
        "metadata": {
            "last_activity_days": meta.last_activity_days,
            "is_archived": meta.is_archived,
            "open_issue_activity": meta.open_issue_activity,
            "recent_commit_activity": meta.recent_commit_activity,
            "author_count": meta.author_count,
            "star_count": meta.star_count,
            "contributor_count": meta.contributor_count,
            "version_count": meta.version_count,
            "download_count": meta.download_count,
            "openssf_score": meta.openssf_score,
            "has_security_policy": meta.has_security_policy,
            "is_yanked": meta.is_yanked,
            "latest_version": meta.latest_version,
            "repository_url": meta.repository_url,
            "sources": [s.value for s in meta.sources],
        },
        "failures": {k.value: v.value for k, v in meta.failures.items()},
        "degraded": entry.degraded,
        "warnings": list(entry.warnings),
    }


def report_to_dict(report: AuditReport) -> Dict[str, Any]:
    return {
        "generated_at": report.generated_at.isoformat(),
        "passed": report.passed,
        "deadline_exceeded": report.deadline_exceeded,
        "failures": list(report.failures),
        "summary": dataclasses.asdict(report.summary),
        "dependencies": [entry_to_dict(e) for e in report.entries],
    }


def _entry_row(entry: DependencyReport) -> Dict[str, Any]:
    meta = entry.metadata
    return {
        "name": entry.dependency.name,
        "version": entry.dependency.version,
        "is_direct": entry.dependency.is_direct,
        "status": entry.status.value,
        "health_score": entry.score.total,
        "recency": entry.score.recency,
        "maintenance": entry.score.maintenance,
        "community": entry.score.community,
        "stability": entry.score.stability,
        "security": entry.score.security,
        "license": meta.license_expression,
        "license_category": entry.license_category.value,
        "license_verdict": entry.license_verdict.value,
        "footprint_risk": entry.footprint_risk,
        "last_activity_days": meta.last_activity_days,
        "is_archived": meta.is_archived,
        "is_yanked": meta.is_yanked,
        "latest_version": meta.latest_version,
        "star_count": meta.star_count,
        "contributor_count": meta.contributor_count,
        "download_count": meta.download_count,
        "openssf_score": meta.openssf_score,
        "repository_url": meta.repository_url,
        "degraded": entry.degraded,
        "failed_sources": ", ".join(sorted(k.value for k in meta.failures)),
        "warnings": "; ".join(entry.warnings),
    }


def report_to_frame(report: AuditReport) -> pd.DataFrame:
    """One row per audited dependency."""
    return pd.DataFrame([_entry_row(e) for e in report.entries], columns=REPORT_COLUMNS)


def save_report_json(report: AuditReport, output_dir: Path, name: str = "audit") -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    report_file = output_dir / f"{name}_report.json"
    with open(report_file, 'w') as f:
        json.dump(report_to_dict(report), f, indent=2, default=str)
    return report_file


def export_report_csv(report: AuditReport, output_dir: Path, name: str = "audit") -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    csv_file = output_dir / f"{name}_report.csv"
    report_to_frame(report).to_csv(csv_file, index=False)
    return csv_file


def _md_cell(value: Any) -> str:
    if value is None:
        return "-"
    return str(value).replace("|", "\\|").replace("\n", " ")


def render_markdown(report: AuditReport, project_name: str = "audit") -> str:
    """Render the report as a Markdown document."""
    summary = report.summary
    lines = [
        f"# Dependency Audit Report: {project_name}",
        "",
        f"**Generated:** {report.generated_at.isoformat()}",
        "",
        f"**Result:** {'PASSED' if report.passed else 'FAILED'}",
        "",
        "## Summary",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Total dependencies | {summary.total_dependencies} |",
        f"| Ignored | {summary.ignored_count} |",
        f"| Healthy | {summary.healthy} |",
        f"| Warning | {summary.warning} |",
        f"| Stale | {summary.stale} |",
        f"| Risky | {summary.risky} |",
        f"| Average health score | {summary.average_health_score:.1f} |",
        f"| License issues | {summary.license_issues} |",
        f"| High footprint count | {summary.high_footprint_count} |",
        f"| Degraded (partial data) | {summary.degraded_count} |",
    ]
    if report.deadline_exceeded:
        lines += ["", "_Fetch deadline exceeded; results are incomplete._"]

    lines += [
        "",
        "## Dependencies",
        "",
        "| Name | Version | Status | Score | License | License Verdict | Footprint |",
        "|------|---------|--------|-------|---------|-----------------|-----------|",
    ]
    for entry in report.entries:
        lines.append(
            f"| {_md_cell(entry.dependency.name)} | {_md_cell(entry.dependency.version)} "
            f"| {entry.status.value} | {entry.score.total:.1f} "
            f"| {_md_cell(entry.metadata.license_expression or 'Unknown')} "
            f"| {entry.license_verdict.value} | {entry.footprint_risk:.2f} |"
        )

    warning_rows = _warning_rows(report)
    if warning_rows:
        lines += ["", "## Warnings", ""]
        for row in warning_rows:
            lines.append(f"- **{row['name']} {row['version']}**: {row['warning']}")

    if report.failures:
        lines += ["", "## Failures", ""]
        lines += [f"- {failure}" for failure in report.failures]

    return "\n".join(lines) + "\n"


def save_report_markdown(report: AuditReport, output_dir: Path, name: str = "audit") -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    md_file = output_dir / f"{name}_report.md"
    md_file.write_text(render_markdown(report, name), encoding="utf-8")
    return md_file


def _warning_rows(report: AuditReport) -> List[Dict[str, Any]]:
    rows = []
    for entry in report.entries:
        for warning in entry.warnings:
            rows.append({
                "name": entry.dependency.name,
                "version": entry.dependency.version,
                "warning": warning,
            })
    return rows


def export_worksheets(report: AuditReport, output_dir: Path, name: str = "audit") -> Path:
    """Write dependencies, summary and warnings to separate Excel sheets."""
    output_dir.mkdir(parents=True, exist_ok=True)
    excel_file = output_dir / f"{name}_report.xlsx"
    summary = dataclasses.asdict(report.summary)
    summary["passed"] = report.passed
    summary["deadline_exceeded"] = report.deadline_exceeded
    summary_df = pd.DataFrame({"metric": list(summary), "value": list(summary.values())})
    warnings_df = pd.DataFrame(_warning_rows(report), columns=["name", "version", "warning"])

    with pd.ExcelWriter(excel_file, engine='openpyxl') as writer:
        report_to_frame(report).to_excel(writer, sheet_name="Dependencies", index=False)
        summary_df.to_excel(writer, sheet_name="Summary", index=False)
        warnings_df.to_excel(writer, sheet_name="Warnings", index=False)
    return excel_file


def print_summary(report: AuditReport) -> None:
    summary = report.summary
    logger.info("\n" + "=" * 60)
    logger.info("DEPENDENCY AUDIT RESULTS")
    logger.info("=" * 60)
    logger.info("Dependencies audited: %s", summary.total_dependencies)
    logger.info("Ignored: %s", summary.ignored_count)
    logger.info("-" * 60)
    logger.info("Healthy: %s", summary.healthy)
    logger.info("Warning: %s", summary.warning)
    logger.info("Stale: %s", summary.stale)
    logger.info("Risky: %s", summary.risky)
    logger.info("Average health score: %.2f", summary.average_health_score)
    logger.info("License issues: %s", summary.license_issues)
    logger.info("High footprint: %s", summary.high_footprint_count)
    logger.info("Degraded (partial data): %s", summary.degraded_count)
    if report.deadline_exceeded:
        logger.info("Fetch deadline exceeded; results are incomplete")
    logger.info("-" * 60)
    for failure in report.failures:
        logger.info("FAIL %s", failure)
    logger.info("Result: %s", "PASSED" if report.passed else "FAILED")
    logger.info("=" * 60)
