"""
Command-line interface for the dependency audit tool.
"""

import argparse
import dataclasses
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from .audit import AuditEngine
from .config import AuditConfig, load_config
from .errors import ConfigurationError
from .models import Dependency
from .reporting import (
    export_report_csv,
    export_worksheets,
    print_summary,
    save_report_json,
    save_report_markdown,
)


logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "y"}
_FALSE_VALUES = {"0", "false", "no", "n"}
_COUNT_FIELDS = ("feature_count", "transitive_count", "build_dependency_count")


def _load_input_csv(path: Path) -> List[Dict[str, str]]:
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    df.columns = [c.strip() for c in df.columns]
    return df.to_dict(orient="records")


def _parse_bool(value: Any, default: bool, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    text = str(value).strip().lower()
    if not text:
        return default
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid boolean for {field}: {value!r}")


def _parse_count(value: Any, field: str) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid integer for {field}: {value!r}") from e


def dependency_from_row(row: Mapping[str, Any]) -> Dependency:
    name = str(row.get("name") or "").strip()
    version = str(row.get("version") or "").strip()
    if not name or not version:
        raise ConfigurationError(f"Dependency entry needs a name and version: {dict(row)}")
    repository_url = str(row.get("repository_url") or "").strip() or None
    try:
        return Dependency(
            name=name,
            version=version,
            is_direct=_parse_bool(row.get("is_direct"), True, "is_direct"),
            is_build_dependency=_parse_bool(
                row.get("is_build_dependency"), False, "is_build_dependency"
            ),
            repository_url=repository_url,
            from_registry=_parse_bool(row.get("from_registry"), True, "from_registry"),
            **{field: _parse_count(row.get(field), field) for field in _COUNT_FIELDS},
        )
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


def load_dependencies(path: Path) -> List[Dependency]:
    """Load a resolved dependency list from a CSV or JSON file.

    JSON input is either a list of objects or an object with a
    ``dependencies`` list; CSV input has one dependency per row.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Dependency list not found: {path}")

    if path.suffix.lower() == ".json":
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Dependency list is not valid JSON: {e}") from e
        if isinstance(data, dict):
            data = data.get("dependencies")
        if not isinstance(data, list) or not all(isinstance(r, dict) for r in data):
            raise ConfigurationError("Dependency list must be a list of objects")
        rows = data
    else:
        rows = _load_input_csv(path)

    return [dependency_from_row(row) for row in rows]


def _apply_overrides(config: AuditConfig, args: argparse.Namespace) -> AuditConfig:
    network = dataclasses.replace(
        config.network,
        github_token=config.network.github_token or os.environ.get("GITHUB_TOKEN"),
        gitlab_token=config.network.gitlab_token or os.environ.get("GITLAB_TOKEN"),
    )
    gate = config.gate
    if args.min_health_score is not None:
        gate = dataclasses.replace(gate, min_health_score=args.min_health_score)
    if args.fail_on_footprint:
        gate = dataclasses.replace(gate, fail_on_footprint=True)
    config = dataclasses.replace(config, network=network, gate=gate)
    config.validate()
    return config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Audit the health, licensing and footprint of project dependencies"
    )

    parser.add_argument(
        "--dependencies",
        required=True,
        help="CSV or JSON file listing resolved dependencies"
    )

    parser.add_argument(
        "--config",
        default=None,
        help="JSON configuration file. Default: built-in settings"
    )

    parser.add_argument(
        "--ignore",
        action="append",
        default=[],
        metavar="NAME",
        help="Dependency name to skip (repeatable)"
    )

    parser.add_argument(
        "--output-dir",
        default="./output",
        help="Output directory for results. Default: ./output"
    )

    parser.add_argument(
        "--format",
        choices=["json", "markdown", "csv", "excel", "all"],
        default="json",
        help="Report format to write. Default: json"
    )

    parser.add_argument(
        "--name",
        default="audit",
        help="Base name for report files. Default: audit"
    )

    parser.add_argument(
        "--min-health-score",
        type=float,
        default=None,
        help="Fail when any dependency scores below this value"
    )

    parser.add_argument(
        "--fail-on-footprint",
        action="store_true",
        help="Fail when any dependency exceeds the footprint risk threshold"
    )

    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable the progress bar"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s" if not args.verbose else "%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        config = load_config(Path(args.config)) if args.config else AuditConfig()
        config = _apply_overrides(config, args)
        dependencies = load_dependencies(Path(args.dependencies))
        engine = AuditEngine(config)
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return 2

    logger.info("Loaded %d dependencies from %s", len(dependencies), args.dependencies)
    report = engine.run(dependencies, ignore_list=args.ignore, progress=not args.no_progress)

    print_summary(report)

    output_dir = Path(args.output_dir)
    formats = {"json", "markdown", "csv", "excel"} if args.format == "all" else {args.format}
    if "json" in formats:
        logger.info("Report saved to: %s", save_report_json(report, output_dir, args.name))
    if "markdown" in formats:
        logger.info("Markdown saved to: %s", save_report_markdown(report, output_dir, args.name))
    if "csv" in formats:
        logger.info("CSV saved to: %s", export_report_csv(report, output_dir, args.name))
    if "excel" in formats:
        logger.info("Worksheets saved to: %s", export_worksheets(report, output_dir, args.name))

    return 0 if report.passed else 1


if __name__ == "__main__":
    sys.exit(main())
