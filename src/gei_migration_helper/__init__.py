"""
GEI Migration Helper

Migrates every repository of a GitHub organization to another one with
GitHub Enterprise Importer, handling archival, GHAS settings, workflows,
branch protections and code scanning alerts around each transfer.
"""

from __future__ import annotations

from .cli import main
from .config import MigrationSettings
from .exceptions import MigrationError, StepFailedError
from .orchestrator import OrgMigration
from .pipeline import Orgs, RepositoryMigration
from .steps import RetryPolicy, StepRunner
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "MigrationError",
    "MigrationSettings",
    "OrgMigration",
    "Orgs",
    "RepositoryMigration",
    "RetryPolicy",
    "StepFailedError",
    "StepRunner",
    "main",
    "setup_logging",
]
