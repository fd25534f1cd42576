"""
Custom exception classes for the GEI migration helper.
"""

from __future__ import annotations


class MigrationError(Exception):
    """Base exception for migration errors."""


class RepositoryNotFoundError(MigrationError):
    """Raised when a repository lookup returns 404."""


class IssueNotFoundError(MigrationError):
    """Raised when an issue lookup returns 404."""


class BranchProtectionDeletionError(MigrationError):
    """Raised when a branch protection rule could not be deleted."""


class TransferError(MigrationError):
    """Raised when the external transfer tool reports a failure."""


class CodeScanningVerificationError(MigrationError):
    """Raised when migrated code scanning analyses are not visible at the target."""


class StepFailedError(MigrationError):
    """Raised when a pipeline step exhausted its retries."""

    def __init__(self, repository: str, step: str, cause: BaseException) -> None:
        super().__init__(f"{repository}: step '{step}' failed: {cause}")
        self.repository: str = repository
        self.step: str = step
        self.cause: BaseException = cause


class MigrationAlreadyCompletedError(MigrationError):
    """Raised when the target organization already holds a finished migration."""


class MigrationInProgressError(MigrationError):
    """Raised when a migration to the target organization is ongoing or crashed."""
