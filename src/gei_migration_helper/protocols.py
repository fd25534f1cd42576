"""Protocols defining the contracts of the two remote collaborators.

The migration is split into three concerns:

1. RepositoryGateway: typed operations against a GitHub organization
   (one instance per side, each with its own token)
2. ContentTransfer: the external GitHub Enterprise Importer (GEI) that copies
   repository content and alerts between organizations
3. Pipeline/orchestrator: decides which operations run, in which order,
   and how the source is restored afterwards

This separation allows:
- Testing the pipeline with in-memory fakes that record every call
- Keeping status-code quirks of the GitHub API inside the gateway
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import CodeScanningAnalysis, FeatureStatus, Issue, Repository, Visibility, Workflow


class RepositoryGateway(Protocol):
    """Protocol for the operations the migration needs from GitHub.

    Implementations translate API errors into exceptions from
    `exceptions`. Responses that only mean "already in the requested
    state" (422 on visibility/settings/workflow enable, 403 on archive)
    are not errors and must return normally.
    """

    def get_repository(self, organization: str, name: str) -> Repository:
        """Fetch a repository snapshot.

        Raises:
            RepositoryNotFoundError: If the repository does not exist
        """
        ...

    def get_repositories(self, organization: str) -> list[Repository]:
        """Return every repository of the organization."""
        ...

    def change_ghas_org_settings(self, organization: str, *, activate: bool) -> None:
        """Toggle the GHAS "enabled for new repositories" organization settings."""
        ...

    def change_ghas_repo_settings(
        self,
        organization: str,
        repository: Repository,
        ghas: FeatureStatus | None,
        secret_scanning: FeatureStatus | None,
        push_protection: FeatureStatus | None,
    ) -> None:
        """Set the GHAS features of a repository.

        A feature passed as None is left untouched. Advanced security is
        never sent for public repositories.
        """
        ...

    def change_repository_visibility(self, organization: str, name: str, visibility: Visibility) -> None: ...

    def archive_repository(self, organization: str, name: str) -> None: ...

    def unarchive_repository(self, organization: str, name: str) -> None: ...

    def get_all_active_workflows(self, organization: str, name: str) -> list[Workflow]: ...

    def get_all_workflows(self, organization: str, name: str) -> list[Workflow]: ...

    def disable_workflows(self, organization: str, name: str, workflows: Sequence[Workflow]) -> None: ...

    def enable_workflows(self, organization: str, name: str, workflows: Sequence[Workflow]) -> None: ...

    def delete_branch_protections(self, organization: str, name: str) -> int:
        """Delete every branch protection rule and return how many were deleted.

        Raises:
            BranchProtectionDeletionError: On the first delete that fails
        """
        ...

    def get_code_scanning_analyses(self, organization: str, name: str, ref: str) -> list[CodeScanningAnalysis]:
        """List analyses for a ref; empty when code scanning is unavailable."""
        ...

    def create_repository(self, organization: str, name: str) -> None: ...

    def create_issue(self, organization: str, repository: str, title: str, body: str) -> Issue: ...

    def get_issue(self, organization: str, repository: str, number: int) -> Issue:
        """Fetch an issue.

        Raises:
            IssueNotFoundError: If the issue does not exist
        """
        ...


class ContentTransfer(Protocol):
    """Protocol for the external transfer tool.

    Each call blocks until the tool finishes and raises TransferError on
    failure. There is no progress reporting.
    """

    def migrate_repo(self, repository: str) -> None: ...

    def migrate_code_scanning(self, repository: str) -> None: ...

    def migrate_secret_scanning(self, repository: str) -> None: ...
