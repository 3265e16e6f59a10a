"""Tests for health scoring."""

import math

import pytest

from dependency_audit.config import ScoringScales, ScoringWeights, StalenessThresholds
from dependency_audit.models import AggregatedMetadata, Dependency, HealthStatus
from dependency_audit.scoring import (
    community_score,
    maintenance_score,
    recency_score,
    score,
    security_score,
    stability_score,
    status_for,
)


DEP = Dependency("serde", "1.0.0")


def _meta(**fields) -> AggregatedMetadata:
    return AggregatedMetadata(dependency=DEP, **fields)


@pytest.mark.parametrize(
    "days, expected",
    [
        (0, 100.0),
        (30, 100.0),
        (31, 90.0),
        (90, 90.0),
        (180, 80.0),
        (365, 60.0),
        (366, 30.0),
        (730, 30.0),
        (731, 10.0),
        (None, 10.0),
    ],
)
def test_recency_staircase(days, expected):
    assert recency_score(days) == expected


def test_recency_uses_configured_thresholds():
    thresholds = StalenessThresholds(stale_days=200, risky_days=300)
    assert recency_score(250, thresholds) == 30.0
    assert recency_score(301, thresholds) == 10.0


def test_archived_repository_has_zero_maintenance():
    meta = _meta(is_archived=True, open_issue_activity=True, recent_commit_activity=True)
    assert maintenance_score(meta) == 0.0


def test_maintenance_adds_activity_signals():
    assert maintenance_score(_meta()) == 50.0
    assert maintenance_score(_meta(recent_commit_activity=True)) == 75.0
    assert maintenance_score(_meta(open_issue_activity=True, recent_commit_activity=True)) == 100.0
    assert maintenance_score(_meta(open_issue_activity=False, recent_commit_activity=False)) == 50.0


def test_yanked_version_caps_security():
    meta = _meta(is_yanked=True, openssf_score=9.5, has_security_policy=True)
    assert security_score(meta) <= 10.0


def test_security_from_scorecard():
    assert security_score(_meta()) == 0.0
    assert security_score(_meta(openssf_score=6.0)) == pytest.approx(60.0)
    assert security_score(_meta(openssf_score=9.0, has_security_policy=True)) == 100.0


def test_community_is_monotonic_and_bounded():
    previous = -1.0
    for stars in (0, 1, 10, 100, 1000, 100000):
        value = community_score(_meta(star_count=stars))
        assert value >= previous
        assert 0.0 <= value <= 100.0
        previous = value
    saturated = _meta(author_count=10, star_count=1000, contributor_count=50)
    assert community_score(saturated) == pytest.approx(100.0)


def test_stability_saturates_at_reference_scales():
    scales = ScoringScales(versions=10, downloads=100)
    assert stability_score(_meta(version_count=10, download_count=100), scales) == pytest.approx(100.0)
    assert stability_score(_meta()) == 0.0


def test_all_absent_metadata_scores_within_range():
    result = score(_meta(), ScoringWeights())
    assert result.recency == 10.0
    assert result.maintenance == 50.0
    assert 0.0 <= result.total <= 100.0


def test_total_is_clamped_not_renormalized():
    heavy = ScoringWeights(recency=2.0, maintenance=2.0, community=0, stability=0, security=0)
    result = score(_meta(last_activity_days=1, recent_commit_activity=True, open_issue_activity=True), heavy)
    assert result.total == 100.0

    light = ScoringWeights(recency=0.5, maintenance=0, community=0, stability=0, security=0)
    assert score(_meta(last_activity_days=1), light).total == pytest.approx(50.0)


def test_weighted_total_matches_components():
    weights = ScoringWeights(recency=0.4, maintenance=0.3, community=0.2, stability=0.1, security=0.0)
    meta = _meta(
        last_activity_days=10,
        version_count=5,
        download_count=1000,
        is_archived=False,
        recent_commit_activity=True,
        star_count=50,
    )
    result = score(meta, weights)

    community = 100 * 0.4 * math.log1p(50) / math.log1p(1000)
    stability = 100 * (0.6 * math.log1p(5) / math.log1p(30) + 0.4 * math.log1p(1000) / math.log1p(1_000_000))
    assert result.recency == 100.0
    assert result.maintenance == 75.0
    assert result.community == pytest.approx(community)
    assert result.stability == pytest.approx(stability)
    assert result.total == pytest.approx(0.4 * 100 + 0.3 * 75 + 0.2 * community + 0.1 * stability)


@pytest.mark.parametrize(
    "total, status",
    [
        (100.0, HealthStatus.HEALTHY),
        (80.0, HealthStatus.HEALTHY),
        (79.9, HealthStatus.WARNING),
        (60.0, HealthStatus.WARNING),
        (59.9, HealthStatus.STALE),
        (40.0, HealthStatus.STALE),
        (39.9, HealthStatus.RISKY),
        (0.0, HealthStatus.RISKY),
    ],
)
def test_status_buckets(total, status):
    assert status_for(total) is status
