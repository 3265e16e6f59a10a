"""
License classification and policy evaluation.

Expressions are read leniently: ``OR`` and ``/`` separate alternatives,
``AND``, ``,`` and ``+`` join terms, ``WITH`` attaches an exception to the
preceding term, and parentheses group. The expression is reduced to its
alternatives (each a tuple of terms); an alternative is as risky as its
worst term and the expression is as risky as its best alternative.
"""

from __future__ import annotations

import re
from typing import List, Optional, Sequence, Tuple

from .config import LicensePolicy
from .models import LicenseCategory, LicenseVerdict


_RANK = {
    LicenseCategory.PERMISSIVE: 0,
    LicenseCategory.COPYLEFT: 1,
    LicenseCategory.UNKNOWN: 2,
    LicenseCategory.PROPRIETARY: 3,
}

_PROPRIETARY_MARKERS = ("proprietary", "commercial", "all rights reserved")

# Identifier prefixes, matched against the lowercased term.
_COPYLEFT_PREFIXES = ("gpl", "lgpl", "agpl", "mpl", "epl", "eupl", "cddl", "osl", "cc-by-sa")
_COPYLEFT_MARKERS = ("general public license",)
_PERMISSIVE_PREFIXES = (
    "mit", "apache", "bsd", "isc", "0bsd", "unlicense", "cc0", "zlib",
    "bsl-1.0", "boost", "wtfpl", "python", "psf", "unicode",
)

_TOKEN_RE = re.compile(r"[()/,]|[^\s()/,]+")
_OR_WORDS = {"or", "/"}
_AND_WORDS = {"and", ",", "+"}
_OPERATORS = _OR_WORDS | _AND_WORDS | {"with", "(", ")"}

Alternative = Tuple[str, ...]


class _ExpressionReader:
    """Recursive-descent reader producing alternatives of terms."""

    def __init__(self, text: str) -> None:
        self.tokens = _TOKEN_RE.findall(text)
        self.pos = 0

    def _peek(self) -> Optional[str]:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos].lower()
        return None

    def read(self) -> List[Alternative]:
        alternatives = self._read_or()
        # Stray closing parentheses or trailing operators are skipped.
        while self._peek() is not None:
            self.pos += 1
            alternatives.extend(self._read_or())
        return [alt for alt in alternatives if alt]

    def _read_or(self) -> List[Alternative]:
        alternatives = self._read_and()
        while self._peek() in _OR_WORDS:
            self.pos += 1
            alternatives = alternatives + self._read_and()
        return alternatives

    def _read_and(self) -> List[Alternative]:
        alternatives = self._read_atom()
        while True:
            token = self._peek()
            if token in _AND_WORDS:
                self.pos += 1
                right = self._read_atom()
                alternatives = [left + r for left in alternatives for r in right] or right
            elif token == "with":
                # The exception identifier does not change the license family.
                self.pos += 1
                self._read_atom()
            else:
                return alternatives

    def _read_atom(self) -> List[Alternative]:
        token = self._peek()
        if token == "(":
            self.pos += 1
            alternatives = self._read_or()
            if self._peek() == ")":
                self.pos += 1
            return alternatives

        words = []
        while self._peek() is not None and self._peek() not in _OPERATORS:
            words.append(self.tokens[self.pos])
            self.pos += 1
        term = " ".join(words).rstrip("+").strip()
        return [(term,)] if term else [()]


def split_alternatives(expression: Optional[str]) -> List[Alternative]:
    """Return the alternatives of a license expression, each a tuple of terms."""
    if not expression or not expression.strip():
        return []
    return _ExpressionReader(expression).read()


def classify_term(term: str) -> LicenseCategory:
    lowered = term.strip().lower()
    if lowered.startswith("the "):
        lowered = lowered[4:]
    if not lowered:
        return LicenseCategory.UNKNOWN
    if lowered == "licenseref-proprietary" or any(m in lowered for m in _PROPRIETARY_MARKERS):
        return LicenseCategory.PROPRIETARY
    if lowered.startswith(_COPYLEFT_PREFIXES) or any(m in lowered for m in _COPYLEFT_MARKERS):
        return LicenseCategory.COPYLEFT
    if lowered.startswith(_PERMISSIVE_PREFIXES):
        return LicenseCategory.PERMISSIVE
    return LicenseCategory.UNKNOWN


def _worst(categories: Sequence[LicenseCategory]) -> LicenseCategory:
    return max(categories, key=_RANK.__getitem__)


def classify(expression: Optional[str]) -> LicenseCategory:
    """Map a license expression to its risk category (case-insensitive)."""
    alternatives = split_alternatives(expression)
    if not alternatives:
        return LicenseCategory.UNKNOWN
    per_alternative = [_worst([classify_term(t) for t in alt]) for alt in alternatives]
    return min(per_alternative, key=_RANK.__getitem__)


def license_matches(term: str, pattern: str) -> bool:
    """True when ``term`` is ``pattern`` or a versioned form of it (``GPL`` matches ``GPL-3.0``)."""
    term = term.strip().lower()
    pattern = pattern.strip().lower()
    return term == pattern or term.startswith(pattern + "-")


def evaluate_policy(
    category: LicenseCategory,
    expression: Optional[str],
    policy: LicensePolicy,
) -> Tuple[LicenseVerdict, List[str]]:
    """Apply ``policy`` to a classified expression.

    Returns the verdict together with human-readable messages explaining it.
    """
    alternatives = split_alternatives(expression)
    terms = [term for alt in alternatives for term in alt]

    for pattern in sorted(policy.forbidden_licenses):
        if any(license_matches(term, pattern) for term in terms):
            return LicenseVerdict.FAIL, [f"Uses forbidden license: {expression}"]

    verdict = LicenseVerdict.PASS
    messages: List[str] = []

    if policy.allowed_licenses:
        allowed = any(
            all(any(license_matches(t, p) for p in policy.allowed_licenses) for t in alt)
            for alt in alternatives
        )
        if not allowed:
            verdict = LicenseVerdict.FAIL
            messages.append(f"License {expression} not in allowed list")

    warning = None
    if category is LicenseCategory.PROPRIETARY:
        warning = f"Proprietary license detected: {expression}"
    elif category is LicenseCategory.COPYLEFT and policy.warn_on_copyleft:
        warning = f"Copyleft license detected: {expression}"
    elif category is LicenseCategory.UNKNOWN and policy.warn_on_unknown:
        warning = "No license information found" if not terms else f"Unknown license: {expression}"

    if warning:
        messages.append(warning)
        if verdict is LicenseVerdict.PASS:
            verdict = LicenseVerdict.WARN

    return verdict, messages
