"""
Interfaces for metadata source clients.
"""

from __future__ import annotations

from typing import Protocol

from .models import Dependency, SourceKind, SourceOutcome


class SourceClient(Protocol):
    """Look up one dependency in one data provider."""

    kind: SourceKind

    def applies_to(self, dependency: Dependency) -> bool:
        ...

    def fetch(self, dependency: Dependency) -> SourceOutcome:
        """Never raises for provider errors; failures come back classified."""
        ...
