"""
Exception types raised by the audit engine.
"""

from __future__ import annotations


class AuditError(Exception):
    """Base class for audit failures surfaced to callers."""


class ConfigurationError(AuditError):
    """Invalid weights, thresholds or configuration documents.

    Always raised before any network activity starts.
    """
