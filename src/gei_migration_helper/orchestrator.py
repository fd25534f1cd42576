"""Migration of every repository of an organization.

The OrgMigration class drives a whole-organization run. It:
1. Guards against overlapping or repeated runs with a marker repository
2. Works out which repositories still have to move
3. Fans the repositories out to a WorkerPool running RepositoryMigration
4. Writes the report and marks the run as completed

Run Marker
----------
There is no database. The state of a run is read from the target
organization itself:

    migration-status repository   issue #1    state
    ---------------------------   ---------   -----------------
    absent                        -           NOT_STARTED
    present                       absent      RUNNING_OR_FAILED
    present                       present     COMPLETED

The repository is created before any repository is touched, and issue #1
(holding the JSON report) only once every repository has been processed.
A crashed run looks exactly like a running one. Either way a new run is
refused until the operator deletes the marker repository.

The check is not a lock: two runs started at the same moment can both see
NOT_STARTED before either creates the marker.

Resuming
--------
Repositories that already exist at the target by name are skipped, so a
run started after deleting the marker only picks up what is missing. A
repository left half-configured by a crashed run counts as present and is
not revisited.

Error Handling
--------------
- Marker check and repository listing failures abort the run before any
  worker starts, with no report.
- A failing repository is recorded in the report's failed list and never
  stops the other repositories.
"""

from __future__ import annotations

import datetime as dt
import enum
import logging
import queue
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from .exceptions import (
    IssueNotFoundError,
    MigrationAlreadyCompletedError,
    MigrationInProgressError,
    RepositoryNotFoundError,
)
from .models import MigrationResult, RepoStatus
from .worker import JobResult, WorkerContext, WorkerPool

if TYPE_CHECKING:
    from pathlib import Path

    from .models import Repository
    from .pipeline import RepositoryMigration

logger: logging.Logger = logging.getLogger(__name__)

STATUS_REPO_NAME: Final[str] = "migration-status"
STATUS_ISSUE_NUMBER: Final[int] = 1
STATUS_ISSUE_TITLE: Final[str] = "Migration result"


class RunState(enum.Enum):
    NOT_STARTED = "not started"
    RUNNING_OR_FAILED = "running or failed"
    COMPLETED = "completed"


@dataclass(frozen=True)
class MigrationStatus:
    """Progress of an organization migration as seen from outside."""

    state: RunState
    migrated: tuple[str, ...] = ()
    pending: tuple[str, ...] = ()
    issue_url: str = ""


def repositories_to_migrate(source: list[Repository], target: list[Repository]) -> list[Repository]:
    """Source repositories whose name does not exist at the target, in source order."""
    present = {repository.name for repository in target}
    return [repository for repository in source if repository.name not in present]


class OrgMigration:
    """Migrates all repositories from the source to the target organization."""

    def __init__(
        self,
        repository_migration: RepositoryMigration,
        *,
        workers: int = 5,
        report_path: Path | None = None,
    ) -> None:
        self._migration: RepositoryMigration = repository_migration
        self._orgs = repository_migration.orgs
        self._workers: int = workers
        self._report_path: Path | None = report_path

    def _marker_url(self) -> str:
        return f"https://github.com/{self._orgs.target}/{STATUS_REPO_NAME}"

    def run_state(self) -> RunState:
        """Read the state of the run from the marker repository."""
        target = self._orgs.target_gateway
        try:
            target.get_repository(self._orgs.target, STATUS_REPO_NAME)
        except RepositoryNotFoundError:
            return RunState.NOT_STARTED
        try:
            target.get_issue(self._orgs.target, STATUS_REPO_NAME, STATUS_ISSUE_NUMBER)
        except IssueNotFoundError:
            return RunState.RUNNING_OR_FAILED
        return RunState.COMPLETED

    def check_ongoing(self) -> None:
        """Refuse to start over a running or completed run; otherwise claim the target.

        Raises:
            MigrationAlreadyCompletedError: If issue #1 exists on the marker
            MigrationInProgressError: If the marker exists without issue #1
        """
        logger.info("looking for ongoing/past migration")
        state = self.run_state()
        if state is RunState.COMPLETED:
            msg = (
                "a migration to this organization was already executed. "
                f"Please check {self._marker_url()}/issues/{STATUS_ISSUE_NUMBER} for status"
            )
            raise MigrationAlreadyCompletedError(msg)
        if state is RunState.RUNNING_OR_FAILED:
            msg = (
                "a migration to this organization is either ongoing or finished in error "
                f"(remove {self._marker_url()} if you want to retry)"
            )
            raise MigrationInProgressError(msg)

        logger.info("creating migration status repository")
        self._orgs.target_gateway.create_repository(self._orgs.target, STATUS_REPO_NAME)

    def prepare(self) -> None:
        self.check_ongoing()

        logger.info("deactivating GHAS settings at target organization")
        try:
            self._orgs.target_gateway.change_ghas_org_settings(self._orgs.target, activate=False)
        except Exception:
            # Every repository gets its GHAS settings explicitly, so the run can go on
            logger.warning("failed to deactivate GHAS settings at target organization", exc_info=True)

    def _process(self, repository: Repository, context: WorkerContext) -> None:
        logger.info(f"worker {context.worker_id} starting migration of {repository.name}")
        self._migration.migrate(repository)
        logger.info(f"worker {context.worker_id} finished migrating {repository.name}")

    def migrate(self) -> MigrationResult:
        """Run the whole organization migration.

        Returns:
            The report, also written to report_path and posted as issue #1
            of the marker repository
        """
        self.prepare()

        logger.info("fetching repositories from source organization")
        source_repositories = self._orgs.source_gateway.get_repositories(self._orgs.source)
        logger.info("fetching repositories from target organization")
        target_repositories = self._orgs.target_gateway.get_repositories(self._orgs.target)

        to_migrate = repositories_to_migrate(source_repositories, target_repositories)
        pending = {repository.name for repository in to_migrate}
        for repository in source_repositories:
            if repository.name not in pending:
                logger.info(f"repository {repository.name} already exists at target organization")
        logger.info(f"{len(to_migrate)} repositories to migrate")

        results = self._run_pool(to_migrate)
        report = self._build_report(results)

        self._publish(report)
        logger.info(f"migration finished: {len(report.migrated)} migrated, {len(report.failed)} failed")
        return report

    def _run_pool(self, repositories: list[Repository]) -> list[JobResult[Repository]]:
        jobs: queue.Queue = queue.Queue()
        results: queue.Queue[JobResult[Repository]] = queue.Queue()
        pool: WorkerPool[Repository] = WorkerPool(self._process, jobs, results, size=self._workers)
        pool.start()
        for repository in repositories:
            pool.submit(repository)
        pool.close()

        collected: list[JobResult[Repository]] = []
        for _ in range(len(repositories)):
            result = results.get()
            if result.error is not None:
                logger.error(f"error migrating repository {result.job.name}: {result.error}")
            collected.append(result)
        pool.join()
        return collected

    def _build_report(self, results: list[JobResult[Repository]]) -> MigrationResult:
        migrated = tuple(RepoStatus.from_repository(r.job) for r in results if r.ok)
        failed = tuple(RepoStatus.from_repository(r.job) for r in results if not r.ok)
        return MigrationResult(
            timestamp=dt.datetime.now(dt.UTC),
            source_org=self._orgs.source,
            target_org=self._orgs.target,
            migrated=migrated,
            failed=failed,
        )

    def _publish(self, report: MigrationResult) -> None:
        """Persist the report, then mark the run as completed with issue #1."""
        body = report.to_json()
        if self._report_path is not None:
            self._report_path.write_text(body)
            logger.info(f"migration result saved to {self._report_path}")

        self._orgs.target_gateway.create_issue(self._orgs.target, STATUS_REPO_NAME, STATUS_ISSUE_TITLE, body)
        logger.info(f"migration result posted to {self._marker_url()}/issues/{STATUS_ISSUE_NUMBER}")

    def status(self) -> MigrationStatus:
        """Describe the current run without changing anything."""
        state = self.run_state()
        if state is RunState.NOT_STARTED:
            return MigrationStatus(state)
        if state is RunState.COMPLETED:
            return MigrationStatus(state, issue_url=f"{self._marker_url()}/issues/{STATUS_ISSUE_NUMBER}")

        source_repositories = self._orgs.source_gateway.get_repositories(self._orgs.source)
        target_repositories = self._orgs.target_gateway.get_repositories(self._orgs.target)
        pending = repositories_to_migrate(source_repositories, target_repositories)
        pending_names = {repository.name for repository in pending}
        return MigrationStatus(
            state,
            migrated=tuple(r.name for r in source_repositories if r.name not in pending_names),
            pending=tuple(r.name for r in pending),
        )
