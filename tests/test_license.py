"""Tests for license classification and policy evaluation."""

import pytest

from dependency_audit.config import LicensePolicy
from dependency_audit.license import classify, evaluate_policy, license_matches, split_alternatives
from dependency_audit.models import LicenseCategory, LicenseVerdict


def test_classification_is_case_insensitive():
    assert classify("mit") == classify("MIT") == LicenseCategory.PERMISSIVE


@pytest.mark.parametrize(
    "expression, category",
    [
        ("MIT OR Apache-2.0", LicenseCategory.PERMISSIVE),
        ("MIT/Apache-2.0", LicenseCategory.PERMISSIVE),
        ("Apache-2.0 WITH LLVM-exception", LicenseCategory.PERMISSIVE),
        ("(MIT OR Apache-2.0) AND Unicode-DFS-2016", LicenseCategory.PERMISSIVE),
        ("BSD-3-Clause", LicenseCategory.PERMISSIVE),
        ("Zlib", LicenseCategory.PERMISSIVE),
        ("BSL-1.0", LicenseCategory.PERMISSIVE),
        ("GPL-3.0-only", LicenseCategory.COPYLEFT),
        ("LGPL-2.1-or-later", LicenseCategory.COPYLEFT),
        ("GPL-2.0+", LicenseCategory.COPYLEFT),
        ("MPL-2.0", LicenseCategory.COPYLEFT),
        ("GNU General Public License v3", LicenseCategory.COPYLEFT),
        ("MIT AND GPL-2.0", LicenseCategory.COPYLEFT),
        ("GPL-2.0 OR MIT", LicenseCategory.PERMISSIVE),
        ("Proprietary", LicenseCategory.PROPRIETARY),
        ("LicenseRef-Proprietary", LicenseCategory.PROPRIETARY),
        ("BSD-2-Clause AND Commercial", LicenseCategory.PROPRIETARY),
        ("MIT OR Proprietary", LicenseCategory.PERMISSIVE),
        ("Foo-1.0", LicenseCategory.UNKNOWN),
        ("", LicenseCategory.UNKNOWN),
        (None, LicenseCategory.UNKNOWN),
    ],
)
def test_classify(expression, category):
    assert classify(expression) is category


def test_split_alternatives_distributes_and_over_or():
    assert split_alternatives("(MIT OR Apache-2.0) AND Zlib") == [
        ("MIT", "Zlib"),
        ("Apache-2.0", "Zlib"),
    ]
    assert split_alternatives("MIT, Apache-2.0") == [("MIT", "Apache-2.0")]
    assert split_alternatives("(MIT") == [("MIT",)]
    assert split_alternatives(None) == []


def test_license_matches_versioned_identifiers():
    assert license_matches("GPL-3.0", "gpl")
    assert license_matches("gpl", "GPL")
    assert not license_matches("LGPL-2.1", "GPL")


def _evaluate(expression, policy):
    return evaluate_policy(classify(expression), expression, policy)


def test_forbidden_license_fails_regardless_of_category():
    policy = LicensePolicy(forbidden_licenses=frozenset({"gpl"}))
    verdict, messages = _evaluate("GPL-3.0", policy)
    assert verdict is LicenseVerdict.FAIL
    assert messages == ["Uses forbidden license: GPL-3.0"]

    verdict, _ = _evaluate("MIT OR GPL-3.0", policy)
    assert verdict is LicenseVerdict.FAIL

    forbid_mit = LicensePolicy(forbidden_licenses=frozenset({"MIT"}))
    verdict, _ = _evaluate("MIT", forbid_mit)
    assert verdict is LicenseVerdict.FAIL


def test_forbidden_pattern_does_not_match_other_families():
    policy = LicensePolicy(forbidden_licenses=frozenset({"GPL"}), warn_on_copyleft=True)
    verdict, messages = _evaluate("LGPL-2.1", policy)
    assert verdict is LicenseVerdict.WARN
    assert messages == ["Copyleft license detected: LGPL-2.1"]


def test_allow_list():
    policy = LicensePolicy(allowed_licenses=frozenset({"MIT", "Apache-2.0"}))
    assert _evaluate("MIT OR Apache-2.0", policy)[0] is LicenseVerdict.PASS
    assert _evaluate("BSD-3-Clause OR MIT", policy)[0] is LicenseVerdict.PASS

    verdict, messages = _evaluate("BSD-3-Clause", policy)
    assert verdict is LicenseVerdict.FAIL
    assert "License BSD-3-Clause not in allowed list" in messages

    assert _evaluate("MIT AND BSD-3-Clause", policy)[0] is LicenseVerdict.FAIL


def test_category_warnings_follow_policy_flags():
    quiet = LicensePolicy(warn_on_copyleft=False, warn_on_unknown=False)
    assert _evaluate("GPL-3.0", quiet) == (LicenseVerdict.PASS, [])
    assert _evaluate(None, quiet) == (LicenseVerdict.PASS, [])
    verdict, messages = _evaluate("Proprietary", quiet)
    assert verdict is LicenseVerdict.WARN
    assert messages == ["Proprietary license detected: Proprietary"]

    strict = LicensePolicy()
    assert _evaluate(None, strict) == (LicenseVerdict.WARN, ["No license information found"])
    assert _evaluate("Foo-1.0", strict) == (LicenseVerdict.WARN, ["Unknown license: Foo-1.0"])
    assert _evaluate("MIT", strict) == (LicenseVerdict.PASS, [])
