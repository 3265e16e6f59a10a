"""Tests for the command-line entry point and dependency list loading."""

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from dependency_audit import cli
from dependency_audit.errors import ConfigurationError
from dependency_audit.models import AuditReport, AuditSummary, Dependency


def test_load_input_csv_parses_headers(tmp_path: Path) -> None:
    csv_path = tmp_path / "deps.csv"
    csv_path.write_text(
        "name, version,repository_url\n"
        "serde,1.0.200,\n"
        "local-crate,0.1.0,https://github.com/acme/local\n",
        encoding="utf-8",
    )

    rows = cli._load_input_csv(csv_path)

    assert len(rows) == 2
    assert rows[0] == {"name": "serde", "version": "1.0.200", "repository_url": ""}


def test_load_dependencies_from_csv(tmp_path: Path) -> None:
    csv_path = tmp_path / "deps.csv"
    csv_path.write_text(
        "name,version,is_direct,is_build_dependency,transitive_count,feature_count,from_registry,repository_url\n"
        "serde,1.0.200,true,false,3,4,,\n"
        "cc,1.0.90,no,yes,0,,true,\n"
        "local-crate,0.1.0,1,0,,,false,https://github.com/acme/local\n",
        encoding="utf-8",
    )

    deps = cli.load_dependencies(csv_path)

    assert deps[0] == Dependency("serde", "1.0.200", transitive_count=3, feature_count=4)
    assert deps[1].is_direct is False
    assert deps[1].is_build_dependency is True
    assert deps[2].from_registry is False
    assert deps[2].repository_url == "https://github.com/acme/local"


def test_load_dependencies_from_json(tmp_path: Path) -> None:
    path = tmp_path / "deps.json"
    path.write_text(json.dumps({
        "dependencies": [
            {"name": "tokio", "version": "1.37.0", "feature_count": 12, "is_direct": True},
            {"name": "mio", "version": "0.8.11", "is_direct": False},
        ]
    }), encoding="utf-8")

    deps = cli.load_dependencies(path)

    assert [d.name for d in deps] == ["tokio", "mio"]
    assert deps[0].feature_count == 12
    assert deps[1].is_direct is False


@pytest.mark.parametrize(
    "content",
    [
        '[{"name": "x"}]',
        '[{"name": "x", "version": "1", "transitive_count": -2}]',
        '[{"name": "x", "version": "1", "is_direct": "maybe"}]',
        '{"dependencies": "nope"}',
        "[not json",
    ],
)
def test_invalid_dependency_lists(tmp_path: Path, content) -> None:
    path = tmp_path / "deps.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigurationError):
        cli.load_dependencies(path)


class FakeEngine:
    instances = []
    passed = True

    def __init__(self, config):
        self.config = config
        self.runs = []
        FakeEngine.instances.append(self)

    def run(self, dependencies, ignore_list=None, now=None, progress=False):
        self.runs.append({"dependencies": list(dependencies), "ignore_list": ignore_list, "progress": progress})
        return AuditReport(
            entries=(),
            summary=AuditSummary(),
            passed=FakeEngine.passed,
            generated_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
            failures=() if FakeEngine.passed else ("serde 1.0.0: health score 10.0 below minimum 50.0",),
        )


@pytest.fixture
def deps_file(tmp_path: Path) -> Path:
    path = tmp_path / "deps.csv"
    path.write_text("name,version\nserde,1.0.0\n", encoding="utf-8")
    return path


@pytest.fixture
def fake_engine(monkeypatch):
    FakeEngine.instances = []
    FakeEngine.passed = True
    monkeypatch.setattr(cli, "AuditEngine", FakeEngine)
    return FakeEngine


def test_main_writes_report_and_passes(tmp_path: Path, deps_file: Path, fake_engine, monkeypatch) -> None:
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_env")
    monkeypatch.delenv("GITLAB_TOKEN", raising=False)
    out = tmp_path / "out"

    code = cli.main([
        "--dependencies", str(deps_file),
        "--output-dir", str(out),
        "--format", "all",
        "--ignore", "openssl-sys",
        "--min-health-score", "30",
        "--no-progress",
    ])

    assert code == 0
    engine = fake_engine.instances[0]
    assert engine.config.network.github_token == "ghp_env"
    assert engine.config.network.gitlab_token is None
    assert engine.config.gate.min_health_score == 30.0
    assert engine.runs[0]["ignore_list"] == ["openssl-sys"]
    assert engine.runs[0]["progress"] is False
    assert engine.runs[0]["dependencies"] == [Dependency("serde", "1.0.0")]
    assert (out / "audit_report.json").exists()
    assert (out / "audit_report.md").exists()
    assert (out / "audit_report.csv").exists()
    assert (out / "audit_report.xlsx").exists()


def test_main_exit_code_on_failed_report(tmp_path: Path, deps_file: Path, fake_engine) -> None:
    fake_engine.passed = False
    code = cli.main(["--dependencies", str(deps_file), "--output-dir", str(tmp_path), "--no-progress"])
    assert code == 1


def test_main_exit_code_on_configuration_error(tmp_path: Path, deps_file: Path, fake_engine) -> None:
    config_path = tmp_path / "audit.json"
    config_path.write_text('{"gate": {"fail_on_license": true, "fail_on_license": false}}', encoding="utf-8")

    code = cli.main(["--dependencies", str(deps_file), "--config", str(config_path)])

    assert code == 2
    assert fake_engine.instances == []


def test_main_rejects_out_of_range_min_score(deps_file: Path, fake_engine) -> None:
    assert cli.main(["--dependencies", str(deps_file), "--min-health-score", "150"]) == 2


def test_main_writes_markdown_only(tmp_path: Path, deps_file: Path, fake_engine) -> None:
    out = tmp_path / "md"
    code = cli.main([
        "--dependencies", str(deps_file),
        "--output-dir", str(out),
        "--format", "markdown",
        "--name", "proj",
        "--no-progress",
    ])

    assert code == 0
    assert (out / "proj_report.md").read_text(encoding="utf-8").startswith("# Dependency Audit Report: proj")
    assert not (out / "proj_report.json").exists()
