"""
Pytest configuration and fixtures.

The fakes below stand in for both organizations and the transfer tool. Every
remote operation is appended to one shared trace as a tuple
(side, operation, repository, *arguments), so tests can assert the exact
sequence of calls a migration makes. Failures are injected per operation
through `failures`.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import TYPE_CHECKING, Any

import pytest

from gei_migration_helper.exceptions import IssueNotFoundError, RepositoryNotFoundError
from gei_migration_helper.models import (
    DISABLED,
    ENABLED,
    CodeScanningAnalysis,
    Issue,
    Repository,
    SecurityAndAnalysis,
    Workflow,
)
from gei_migration_helper.pipeline import Orgs, RepositoryMigration
from gei_migration_helper.steps import RetryPolicy

if TYPE_CHECKING:
    from collections.abc import Sequence

    from gei_migration_helper.models import FeatureStatus, Visibility

Call = tuple[Any, ...]


class FakeGateway:
    """In-memory organization implementing the RepositoryGateway protocol."""

    def __init__(self, side: str, trace: list[Call]) -> None:
        self.side: str = side
        self.trace: list[Call] = trace
        self.repositories: dict[str, Repository] = {}
        self.workflows: dict[str, list[Workflow]] = {}
        self.analyses: dict[str, list[CodeScanningAnalysis]] = {}
        self.branch_protections: dict[str, int] = {}
        self.issues: dict[str, list[Issue]] = {}
        self.failures: dict[str, Exception] = {}
        self.org_settings: list[bool] = []
        self._lock = threading.Lock()

    def add(self, repository: Repository, workflows: Sequence[Workflow] = ()) -> Repository:
        self.repositories[repository.name] = repository
        self.workflows[repository.name] = list(workflows)
        return repository

    def _record(self, operation: str, *args: Any) -> None:
        with self._lock:
            self.trace.append((self.side, operation, *args))
        error = self.failures.get(operation)
        if error is not None:
            raise error

    def calls(self, operation: str) -> list[Call]:
        return [call for call in self.trace if call[0] == self.side and call[1] == operation]

    def get_repository(self, org: str, name: str) -> Repository:
        self._record("get_repository", name)
        if name not in self.repositories:
            msg = f"Repository {org}/{name} not found"
            raise RepositoryNotFoundError(msg)
        return self.repositories[name]

    def get_repositories(self, org: str) -> list[Repository]:
        self._record("get_repositories")
        return list(self.repositories.values())

    def create_repository(self, org: str, name: str) -> None:
        self._record("create_repository", name)
        self.repositories.setdefault(name, Repository(name=name, id=len(self.repositories) + 1000))

    def change_repository_visibility(self, org: str, name: str, visibility: Visibility) -> None:
        self._record("change_repository_visibility", name, visibility)
        self.repositories[name] = replace(self.repositories[name], visibility=visibility)

    def archive_repository(self, org: str, name: str) -> None:
        self._record("archive_repository", name)
        self.repositories[name] = replace(self.repositories[name], archived=True)

    def unarchive_repository(self, org: str, name: str) -> None:
        self._record("unarchive_repository", name)
        self.repositories[name] = replace(self.repositories[name], archived=False)

    def change_ghas_org_settings(self, org: str, *, activate: bool) -> None:
        self._record("change_ghas_org_settings", activate)
        self.org_settings.append(activate)

    def change_ghas_repo_settings(
        self,
        org: str,
        repository: Repository,
        ghas: FeatureStatus | None,
        secret_scanning: FeatureStatus | None,
        push_protection: FeatureStatus | None,
    ) -> None:
        self._record("change_ghas_repo_settings", repository.name, ghas, secret_scanning, push_protection)

    def get_all_workflows(self, org: str, name: str) -> list[Workflow]:
        self._record("get_all_workflows", name)
        return list(self.workflows.get(name, []))

    def get_all_active_workflows(self, org: str, name: str) -> list[Workflow]:
        self._record("get_all_active_workflows", name)
        return [workflow for workflow in self.workflows.get(name, []) if workflow.active]

    def disable_workflows(self, org: str, name: str, workflows: Sequence[Workflow]) -> None:
        self._record("disable_workflows", name, tuple(w.name for w in workflows))
        self._set_workflow_state(name, workflows, "disabled_manually")

    def enable_workflows(self, org: str, name: str, workflows: Sequence[Workflow]) -> None:
        self._record("enable_workflows", name, tuple(w.name for w in workflows))
        self._set_workflow_state(name, workflows, "active")

    def _set_workflow_state(self, name: str, workflows: Sequence[Workflow], state: str) -> None:
        ids = {workflow.id for workflow in workflows}
        self.workflows[name] = [
            replace(workflow, state=state) if workflow.id in ids else workflow for workflow in self.workflows[name]
        ]

    def delete_branch_protections(self, org: str, name: str) -> int:
        self._record("delete_branch_protections", name)
        return self.branch_protections.pop(name, 0)

    def get_code_scanning_analyses(self, org: str, name: str, ref: str) -> list[CodeScanningAnalysis]:
        self._record("get_code_scanning_analyses", name, ref)
        return list(self.analyses.get(name, []))

    def create_issue(self, org: str, repo: str, title: str, body: str) -> Issue:
        self._record("create_issue", repo, title)
        issues = self.issues.setdefault(repo, [])
        issue = Issue(
            number=len(issues) + 1, title=title, body=body, html_url=f"https://github.com/{org}/{repo}/issues/1"
        )
        issues.append(issue)
        return issue

    def get_issue(self, org: str, repo: str, number: int) -> Issue:
        self._record("get_issue", repo, number)
        for issue in self.issues.get(repo, []):
            if issue.number == number:
                return issue
        msg = f"Issue #{number} not found in {org}/{repo}"
        raise IssueNotFoundError(msg)


class FakeTransfer:
    """Transfer tool that copies repositories from the source fake to the target fake."""

    def __init__(self, source: FakeGateway, target: FakeGateway, trace: list[Call]) -> None:
        self.source: FakeGateway = source
        self.target: FakeGateway = target
        self.trace: list[Call] = trace
        self.failures: dict[str, Exception] = {}

    def _record(self, operation: str, repository: str) -> None:
        self.trace.append(("transfer", operation, repository))
        error = self.failures.get(operation)
        if error is not None:
            raise error

    def migrate_repo(self, repository: str) -> None:
        self._record("migrate_repo", repository)
        migrated = self.source.repositories[repository]
        # The import re-enables workflows and leaves GHAS unset
        self.target.add(
            replace(migrated, id=migrated.id + 10_000, security=SecurityAndAnalysis()),
            [replace(workflow, state="active") for workflow in self.source.workflows.get(repository, [])],
        )

    def migrate_code_scanning(self, repository: str) -> None:
        self._record("migrate_code_scanning", repository)
        self.target.analyses[repository] = list(self.source.analyses.get(repository, []))

    def migrate_secret_scanning(self, repository: str) -> None:
        self._record("migrate_secret_scanning", repository)


@pytest.fixture
def trace() -> list[Call]:
    return []


@pytest.fixture
def source(trace: list[Call]) -> FakeGateway:
    return FakeGateway("source", trace)


@pytest.fixture
def target(trace: list[Call]) -> FakeGateway:
    return FakeGateway("target", trace)


@pytest.fixture
def transfer(source: FakeGateway, target: FakeGateway, trace: list[Call]) -> FakeTransfer:
    return FakeTransfer(source, target, trace)


@pytest.fixture
def orgs(source: FakeGateway, target: FakeGateway, transfer: FakeTransfer) -> Orgs:
    return Orgs(source="src-org", target="dst-org", source_gateway=source, target_gateway=target, transfer=transfer)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy(max_retries=3, base_delay=1.0)


@pytest.fixture
def migration(orgs: Orgs, policy: RetryPolicy, sleeps: list[float]) -> RepositoryMigration:
    return RepositoryMigration(orgs, policy, settle_delay=10.0, sleep=sleeps.append)


@pytest.fixture
def ghas_repo() -> Repository:
    """Private, unarchived repository with advanced security and secret scanning on."""
    return Repository(
        name="R",
        id=42,
        archived=False,
        visibility="private",
        default_branch="main",
        security=SecurityAndAnalysis(
            advanced_security=ENABLED, secret_scanning=ENABLED, secret_scanning_push_protection=DISABLED
        ),
    )
