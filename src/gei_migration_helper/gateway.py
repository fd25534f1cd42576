"""PyGithub-backed implementation of the RepositoryGateway protocol.

REST calls go through PyGithub. Endpoints PyGithub has no wrapper for
(GHAS settings, workflow toggles, code scanning analyses) use its requester,
so authentication, retries and rate limiting stay in one place. Branch
protection rules are only exposed through GraphQL, which is posted with
requests.

Status codes that mean "already in the requested state" are absorbed here
so callers never see them as failures.

One gateway serves every worker thread, but neither a PyGithub client nor
a requests session may be shared between threads: the client keeps a
single connection and pairs each request with whatever response comes
back on it. Each thread therefore lazily gets its own client and session.
"""

from __future__ import annotations

import logging
import threading
import time
from http import HTTPStatus
from typing import TYPE_CHECKING, Any, Final

import requests
from github import GithubException, UnknownObjectException

from . import branch_protections
from . import github_utils as ghu
from .config import DEFAULT_GITHUB_URL
from .exceptions import IssueNotFoundError, MigrationError, RepositoryNotFoundError
from .models import Issue, security_settings_payload

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from github import Github

    from .models import CodeScanningAnalysis, FeatureStatus, Repository, Visibility, Workflow

logger: logging.Logger = logging.getLogger(__name__)

_GRAPHQL_TIMEOUT: Final[int] = 30
_DEFAULT_SETTINGS_DELAY: Final[float] = 10.0

ENTERPRISE_ORGANIZATIONS_QUERY: Final[str] = """
query ListEnterpriseOrganizations($slug: String!, $first: Int!, $cursor: String) {
    enterprise(slug: $slug) {
        organizations(first: $first, after: $cursor) {
            nodes {
                login
            }
            pageInfo {
                endCursor
                hasNextPage
            }
        }
    }
}
"""


class GitHubGateway:
    """Gateway to one GitHub organization side, authenticated with one token."""

    def __init__(
        self,
        token: str,
        *,
        base_url: str = DEFAULT_GITHUB_URL,
        client: Github | None = None,
        session: requests.Session | None = None,
        settings_delay: float = _DEFAULT_SETTINGS_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._token: str = token
        self._base_url: str = base_url
        # Injected client and session are used from every thread as given
        self._shared_client: Github | None = client
        self._shared_session: requests.Session | None = session
        self._local: threading.local = threading.local()
        self._graphql_url: str = ghu.graphql_url(base_url)
        self._settings_delay: float = settings_delay
        self._sleep: Callable[[float], None] = sleep

    @property
    def _client(self) -> Github:
        if self._shared_client is not None:
            return self._shared_client
        client: Github | None = getattr(self._local, "client", None)
        if client is None:
            logger.debug(f"creating GitHub client for {threading.current_thread().name}")
            client = ghu.get_client(self._token, self._base_url)
            self._local.client = client
        return client

    @property
    def _session(self) -> requests.Session:
        if self._shared_session is not None:
            return self._shared_session
        session: requests.Session | None = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    # Repositories

    def get_repository(self, organization: str, name: str) -> Repository:
        try:
            repo = self._client.get_repo(f"{organization}/{name}")
        except UnknownObjectException as e:
            msg = f"Repository {organization}/{name} not found"
            raise RepositoryNotFoundError(msg) from e
        except GithubException as e:
            if e.status == HTTPStatus.NOT_FOUND:
                msg = f"Repository {organization}/{name} not found"
                raise RepositoryNotFoundError(msg) from e
            raise
        return ghu.to_repository(repo)

    def get_repositories(self, organization: str) -> list[Repository]:
        org = self._client.get_organization(organization)
        repositories = [ghu.to_repository(repo) for repo in org.get_repos(type="all")]
        logger.debug(f"Fetched {len(repositories)} repositories from {organization}")
        return repositories

    def create_repository(self, organization: str, name: str) -> None:
        org = self._client.get_organization(organization)
        try:
            org.create_repo(name=name, private=True, has_issues=True)
        except GithubException as e:
            if e.status == HTTPStatus.UNPROCESSABLE_ENTITY:
                logger.debug(f"Repository {organization}/{name} already exists")
                return
            raise

    def _edit_repository(self, organization: str, name: str, payload: dict[str, Any]) -> None:
        self._client.requester.requestJsonAndCheck("PATCH", f"/repos/{organization}/{name}", input=payload)

    def change_repository_visibility(self, organization: str, name: str, visibility: Visibility) -> None:
        try:
            self._edit_repository(organization, name, {"visibility": visibility})
        except GithubException as e:
            if e.status == HTTPStatus.UNPROCESSABLE_ENTITY:
                logger.debug(f"Visibility of {organization}/{name} already {visibility}")
                return
            raise

    def archive_repository(self, organization: str, name: str) -> None:
        self._change_archived(organization, name, archived=True)

    def unarchive_repository(self, organization: str, name: str) -> None:
        self._change_archived(organization, name, archived=False)

    def _change_archived(self, organization: str, name: str, *, archived: bool) -> None:
        try:
            self._edit_repository(organization, name, {"archived": archived})
        except GithubException as e:
            if e.status == HTTPStatus.FORBIDDEN:
                # Returned when the repository is already in the requested state
                logger.debug(f"{organization}/{name} already {'archived' if archived else 'unarchived'}")
                return
            raise

    # GHAS settings

    def change_ghas_org_settings(self, organization: str, *, activate: bool) -> None:
        payload = {
            "advanced_security_enabled_for_new_repositories": activate,
            "secret_scanning_enabled_for_new_repositories": activate,
            "secret_scanning_push_protection_enabled_for_new_repositories": activate,
        }
        self._client.requester.requestJsonAndCheck("PATCH", f"/orgs/{organization}", input=payload)

    def change_ghas_repo_settings(
        self,
        organization: str,
        repository: Repository,
        ghas: FeatureStatus | None,
        secret_scanning: FeatureStatus | None,
        push_protection: FeatureStatus | None,
    ) -> None:
        payload = security_settings_payload(repository.visibility, ghas, secret_scanning, push_protection)
        if not payload:
            return
        try:
            self._edit_repository(organization, repository.name, {"security_and_analysis": payload})
        except GithubException as e:
            if e.status != HTTPStatus.UNPROCESSABLE_ENTITY:
                raise
            logger.debug(f"GHAS settings of {organization}/{repository.name} already applied: {e.data}")
        logger.debug(f"waiting {self._settings_delay:g} seconds for changes to apply...")
        self._sleep(self._settings_delay)

    # Workflows

    def get_all_workflows(self, organization: str, name: str) -> list[Workflow]:
        repo = self._client.get_repo(f"{organization}/{name}", lazy=True)
        return [ghu.to_workflow(workflow) for workflow in repo.get_workflows()]

    def get_all_active_workflows(self, organization: str, name: str) -> list[Workflow]:
        return [workflow for workflow in self.get_all_workflows(organization, name) if workflow.active]

    def _toggle_workflow(self, organization: str, name: str, workflow: Workflow, action: str) -> None:
        self._client.requester.requestJsonAndCheck(
            "PUT", f"/repos/{organization}/{name}/actions/workflows/{workflow.id}/{action}"
        )

    def disable_workflows(self, organization: str, name: str, workflows: Sequence[Workflow]) -> None:
        for workflow in workflows:
            try:
                self._toggle_workflow(organization, name, workflow, "disable")
            except GithubException as e:
                logger.debug(f"failed to disable workflow {workflow.name} in {organization}/{name} - will not stop migration: {e}")

    def enable_workflows(self, organization: str, name: str, workflows: Sequence[Workflow]) -> None:
        for workflow in workflows:
            try:
                self._toggle_workflow(organization, name, workflow, "enable")
            except GithubException as e:
                if e.status != HTTPStatus.UNPROCESSABLE_ENTITY:
                    raise
                logger.debug(f"Workflow {workflow.name} in {organization}/{name} already enabled")

    # Branch protections

    def graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Post a GraphQL request and return its `data`."""
        try:
            response = self._session.post(
                self._graphql_url,
                json={"query": query, "variables": variables},
                headers={"Authorization": f"Bearer {self._token}"},
                timeout=_GRAPHQL_TIMEOUT,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            msg = f"GraphQL request failed: {e}"
            raise MigrationError(msg) from e

        body: dict[str, Any] = response.json()
        if body.get("errors"):
            msg = f"GraphQL errors: {body['errors']}"
            raise MigrationError(msg)
        return body.get("data") or {}

    def delete_branch_protections(self, organization: str, name: str) -> int:
        return branch_protections.delete_branch_protections(self.graphql, organization, name)

    def get_enterprise_organizations(self, enterprise: str) -> list[str]:
        """Logins of every organization in an enterprise."""
        logins: list[str] = []
        cursor: str | None = None
        while True:
            data = self.graphql(
                ENTERPRISE_ORGANIZATIONS_QUERY,
                {"slug": enterprise, "first": branch_protections.PAGE_SIZE, "cursor": cursor},
            )
            if data.get("enterprise") is None:
                msg = f"Enterprise {enterprise} not found"
                raise MigrationError(msg)
            organizations = data["enterprise"]["organizations"]
            logins.extend(node["login"] for node in organizations["nodes"])
            if not organizations["pageInfo"]["hasNextPage"]:
                break
            cursor = organizations["pageInfo"]["endCursor"]
        logger.debug(f"Fetched {len(logins)} organizations from enterprise {enterprise}")
        return logins

    # Code scanning

    def get_code_scanning_analyses(self, organization: str, name: str, ref: str) -> list[CodeScanningAnalysis]:
        try:
            _, data = self._client.requester.requestJsonAndCheck(
                "GET",
                f"/repos/{organization}/{name}/code-scanning/analyses",
                parameters={"ref": ref, "per_page": 100},
            )
        except GithubException as e:
            if e.status in (HTTPStatus.NOT_FOUND, HTTPStatus.FORBIDDEN):
                # No analyses yet, or code scanning not enabled
                logger.debug(f"No code scanning analyses for {organization}/{name}: {e.status}")
                return []
            raise
        return [ghu.to_analysis(item) for item in data or []]

    # Issues

    def create_issue(self, organization: str, repository: str, title: str, body: str) -> Issue:
        repo = self._client.get_repo(f"{organization}/{repository}", lazy=True)
        issue = repo.create_issue(title=title, body=body)
        return Issue(number=issue.number, title=issue.title, body=issue.body or "", html_url=issue.html_url)

    def get_issue(self, organization: str, repository: str, number: int) -> Issue:
        repo = self._client.get_repo(f"{organization}/{repository}", lazy=True)
        try:
            issue = repo.get_issue(number)
        except GithubException as e:
            if e.status == HTTPStatus.NOT_FOUND:
                msg = f"Issue #{number} not found in {organization}/{repository}"
                raise IssueNotFoundError(msg) from e
            raise
        return Issue(number=issue.number, title=issue.title, body=issue.body or "", html_url=issue.html_url)
