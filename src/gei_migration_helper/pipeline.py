"""Migration of a single repository from the source to the target organization.

The transfer itself is done by GEI. Everything around it is done here:

Source preparation
    - Unarchive the source when archived (settings cannot change otherwise)
    - Without advanced security, enable code scanning only, so analyses can
      be listed
    - Count code scanning analyses on the default branch
    - Disable GHAS and every active workflow at source

Transfer
    - `gh gei migrate-repo`

Target configuration (on the repository as it exists after the transfer)
    - Disable workflows again (the import re-enables them)
    - Unarchive, delete branch protection rules, private -> internal
    - Enable all GHAS features
    - When the source had analyses: move code scanning alerts and confirm
      they arrived
    - Re-archive when the target came archived

Restoration
    - Reset the source GHAS features to the exact values found at the start,
      re-enable the workflows that were disabled and re-archive a source that
      was unarchived. Each of these runs on a StepRunner of its own and is
      attempted no matter where the forward path stopped.
    - Archive the source, marking it as migrated. Skipped when the forward
      path failed.

Every remote call goes through a StepRunner: retried with backoff, and
skipped once an earlier step failed permanently.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from .exceptions import CodeScanningVerificationError, StepFailedError
from .models import DISABLED, ENABLED
from .steps import RetryPolicy, StepRunner

if TYPE_CHECKING:
    from collections.abc import Callable

    from .models import CodeScanningAnalysis, Repository, Workflow
    from .protocols import ContentTransfer, RepositoryGateway

logger: logging.Logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Orgs:
    """Both sides of a migration and the tools to reach them."""

    source: str
    target: str
    source_gateway: RepositoryGateway
    target_gateway: RepositoryGateway
    transfer: ContentTransfer


@dataclass
class _SourceState:
    """What the forward path changed at the source and must undo."""

    unarchived: bool = False
    settings_changed: bool = False
    workflows: list[Workflow] | None = None


class RepositoryMigration:
    """Migrates one repository at a time between a fixed pair of organizations."""

    def __init__(
        self,
        orgs: Orgs,
        policy: RetryPolicy,
        *,
        settle_delay: float = 10.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.orgs: Orgs = orgs
        self._policy: RetryPolicy = policy
        self._settle_delay: float = settle_delay
        self._sleep: Callable[[float], None] = sleep

    def _runner(self, repository: Repository) -> StepRunner:
        return StepRunner(self._policy, context=repository.name, sleep=self._sleep)

    def migrate(self, repository: Repository) -> None:
        """Migrate a repository end to end.

        Args:
            repository: Snapshot of the repository at the source

        Raises:
            StepFailedError: For the first step that failed permanently. The
                source has been restored as far as possible by then.
        """
        name = repository.name
        security = repository.security
        logger.info(
            f"Migrating {name}: archived={repository.archived}, visibility={repository.visibility}, "
            f"advanced security={security.advanced_security}, secret scanning={security.secret_scanning}, "
            f"push protection={security.secret_scanning_push_protection}"
        )

        runner = self._runner(repository)
        state = _SourceState()

        analyses = self._prepare_source(runner, repository, state)

        runner.run("migrating", lambda: self.orgs.transfer.migrate_repo(name))

        migrated = runner.run(
            "fetching repository at target", lambda: self.orgs.target_gateway.get_repository(self.orgs.target, name)
        )
        if migrated is not None:
            self._configure_target(runner, repository, migrated, analyses)

        self._restore_source(repository, state)

        if not repository.archived:
            runner.run("archiving source", lambda: self.orgs.source_gateway.archive_repository(self.orgs.source, name))

        if runner.error is not None:
            assert runner.failed_step is not None  # set together with error
            logger.error(f"Migration of {name} failed at '{runner.failed_step}': {runner.error}")
            raise StepFailedError(name, runner.failed_step, runner.error) from runner.error

        logger.info(f"Migrated {name}")

    def _prepare_source(
        self, runner: StepRunner, repository: Repository, state: _SourceState
    ) -> list[CodeScanningAnalysis]:
        source = self.orgs.source_gateway
        org = self.orgs.source
        name = repository.name
        security = repository.security

        if repository.archived:
            runner.run("unarchive source", lambda: source.unarchive_repository(org, name))
            state.unarchived = not runner.failed

        if not security.advanced_security_active:
            state.settings_changed = not runner.failed
            runner.run(
                "activating code scanning at source to check for previous analyses",
                lambda: source.change_ghas_repo_settings(org, repository, ENABLED, DISABLED, DISABLED),
            )

        analyses = (
            runner.run(
                "checking code scanning analyses at source",
                lambda: source.get_code_scanning_analyses(org, name, repository.default_branch),
            )
            or []
        )

        # Also covers the case where code scanning was only just enabled above
        if security.advanced_security is not None or state.settings_changed:
            state.settings_changed = state.settings_changed or not runner.failed
            runner.run(
                "disabling GHAS settings at source",
                lambda: source.change_ghas_repo_settings(org, repository, DISABLED, DISABLED, DISABLED),
            )

        workflows = runner.run("fetching active workflows at source", lambda: source.get_all_active_workflows(org, name))
        if workflows:
            state.workflows = workflows
            runner.run("disabling workflows at source", lambda: source.disable_workflows(org, name, workflows))

        return analyses

    def _configure_target(
        self,
        runner: StepRunner,
        repository: Repository,
        migrated: Repository,
        analyses: list[CodeScanningAnalysis],
    ) -> None:
        source = self.orgs.source_gateway
        target = self.orgs.target_gateway
        name = repository.name

        workflows = runner.run(
            "fetching active workflows at target", lambda: target.get_all_active_workflows(self.orgs.target, name)
        )
        if workflows:
            # The import re-enables workflows at the target every time
            runner.run("disabling workflows at target", lambda: target.disable_workflows(self.orgs.target, name, workflows))

        if migrated.archived:
            runner.run("unarchive target", lambda: target.unarchive_repository(self.orgs.target, name))

        runner.run("deleting branch protections at target", lambda: target.delete_branch_protections(self.orgs.target, name))

        if migrated.visibility == "private":
            runner.run(
                "changing visibility to internal at target",
                lambda: target.change_repository_visibility(self.orgs.target, name, "internal"),
            )
            if not runner.failed:
                # Visibility propagates asynchronously and there is no completion signal
                logger.debug(f"waiting {self._settle_delay:g} seconds for changes to apply...")
                self._sleep(self._settle_delay)
                migrated = replace(migrated, visibility="internal")
        else:
            logger.info(f"skipping visibility change for {name} because it is already {migrated.visibility}")

        runner.run(
            "activating GHAS at target",
            lambda: target.change_ghas_repo_settings(self.orgs.target, migrated, ENABLED, ENABLED, ENABLED),
        )

        if not analyses:
            logger.info(f"no code scan to migrate for {name}, skipping.")
        else:
            logger.info(
                f"found {len(analyses)} code scanning analyses for {name} at source "
                f"in default branch ({repository.default_branch}) before migration"
            )
            runner.run(
                "activating code scanning at source to migrate alerts",
                lambda: source.change_ghas_repo_settings(self.orgs.source, repository, ENABLED, DISABLED, DISABLED),
            )
            runner.run("migrating code scanning alerts", lambda: self.orgs.transfer.migrate_code_scanning(name))
            runner.run("checking code scanning analyses at target", lambda: self._confirm_analyses(repository))
            runner.run(
                "deactivating code scanning at source",
                lambda: source.change_ghas_repo_settings(self.orgs.source, repository, DISABLED, DISABLED, DISABLED),
            )

        if migrated.archived:
            runner.run("archive target", lambda: target.archive_repository(self.orgs.target, name))

    def _confirm_analyses(self, repository: Repository) -> int:
        found = self.orgs.target_gateway.get_code_scanning_analyses(
            self.orgs.target, repository.name, repository.default_branch
        )
        if not found:
            msg = f"No code scanning analyses found for {repository.name} at target after migrating alerts"
            raise CodeScanningVerificationError(msg)
        logger.info(
            f"found {len(found)} code scanning analyses for {repository.name} at target "
            f"in default branch ({repository.default_branch}) after migration"
        )
        return len(found)

    def _restore_source(self, repository: Repository, state: _SourceState) -> None:
        """Put the source back the way it was found.

        Uses a runner of its own, so a failure on the forward path (or in one
        of these steps) does not skip the others.
        """
        source = self.orgs.source_gateway
        org = self.orgs.source
        name = repository.name
        security = repository.security

        if state.settings_changed:
            # Features the API did not report cannot be set back to "absent"; disabled is the closest state
            restorer = self._runner(repository)
            restorer.run(
                "resetting GHAS settings at source",
                lambda: source.change_ghas_repo_settings(
                    org,
                    repository,
                    security.advanced_security or DISABLED,
                    security.secret_scanning or DISABLED,
                    security.secret_scanning_push_protection or DISABLED,
                ),
            )

        workflows = state.workflows
        if workflows:
            self._runner(repository).run(
                "re-enabling workflows at source", lambda: source.enable_workflows(org, name, workflows)
            )

        if state.unarchived:
            self._runner(repository).run("re-archiving source", lambda: source.archive_repository(org, name))
