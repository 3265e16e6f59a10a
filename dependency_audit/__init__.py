"""
Dependency Audit Tool

A tool for auditing the health, licensing and footprint of project dependencies.
"""

__version__ = "0.1.0"

from .audit import AuditEngine
from .cli import main
from .config import AuditConfig, load_config

__all__ = ["AuditConfig", "AuditEngine", "load_config", "main"]
