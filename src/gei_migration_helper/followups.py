"""Operations run after the main migration, per repository or for a whole organization."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Final

from .exceptions import StepFailedError
from .models import ENABLED
from .steps import RetryPolicy, StepRunner

if TYPE_CHECKING:
    from collections.abc import Callable

    from .pipeline import Orgs
    from .protocols import RepositoryGateway

logger: logging.Logger = logging.getLogger(__name__)

# Organization-wide community health files; never migrated by these commands
SKIPPED_REPOSITORIES: Final[frozenset[str]] = frozenset({".github"})


def migrate_secret_scanning(
    orgs: Orgs, repository: str, policy: RetryPolicy, *, sleep: Callable[[float], None] = time.sleep
) -> bool:
    """Move secret scanning alerts of one repository when secret scanning is on at source.

    Returns:
        True if alerts were migrated, False if the repository was skipped

    Raises:
        StepFailedError: If the alert migration failed after retries
    """
    repo = orgs.source_gateway.get_repository(orgs.source, repository)
    if repo.security.secret_scanning != ENABLED:
        logger.info(f"skipping {repository} because secret scanning is not enabled")
        return False

    runner = StepRunner(policy, context=repository, sleep=sleep)
    runner.run("migrating secret scanning alerts", lambda: orgs.transfer.migrate_secret_scanning(repository))
    if runner.error is not None:
        raise StepFailedError(repository, runner.failed_step or "", runner.error) from runner.error
    return True


def migrate_code_scanning(
    orgs: Orgs, repository: str, policy: RetryPolicy, *, sleep: Callable[[float], None] = time.sleep
) -> None:
    """Move code scanning alerts of one repository.

    Raises:
        StepFailedError: If the alert migration failed after retries
    """
    runner = StepRunner(policy, context=repository, sleep=sleep)
    runner.run("migrating code scanning alerts", lambda: orgs.transfer.migrate_code_scanning(repository))
    if runner.error is not None:
        raise StepFailedError(repository, runner.failed_step or "", runner.error) from runner.error


def reactivate_target_workflows(
    orgs: Orgs, repository: str, policy: RetryPolicy, *, sleep: Callable[[float], None] = time.sleep
) -> int:
    """Enable at the target the workflows that are active at the source, matched by name.

    Returns:
        Number of workflows enabled at the target

    Raises:
        StepFailedError: If enabling failed after retries
    """
    source_active = orgs.source_gateway.get_all_active_workflows(orgs.source, repository)
    if not source_active:
        logger.info(f"no active workflows at source for {repository}")
        return 0

    active_names = {workflow.name for workflow in source_active}
    target_workflows = orgs.target_gateway.get_all_workflows(orgs.target, repository)
    to_enable = [workflow for workflow in target_workflows if workflow.name in active_names]

    runner = StepRunner(policy, context=repository, sleep=sleep)
    runner.run(
        "enabling workflows at target",
        lambda: orgs.target_gateway.enable_workflows(orgs.target, repository, to_enable),
    )
    if runner.error is not None:
        raise StepFailedError(repository, runner.failed_step or "", runner.error) from runner.error
    logger.info(f"enabled {len(to_enable)} workflows at target for {repository}")
    return len(to_enable)


def for_each_source_repository(orgs: Orgs, action: Callable[[str], object]) -> list[str]:
    """Apply action to every source repository, logging failures and carrying on.

    Returns:
        Names of the repositories for which action raised
    """
    logger.info("fetching repositories from source organization")
    repositories = orgs.source_gateway.get_repositories(orgs.source)

    failed: list[str] = []
    for repository in repositories:
        if repository.name in SKIPPED_REPOSITORIES:
            continue
        try:
            action(repository.name)
        except Exception:
            logger.exception(f"error processing repository {repository.name}")
            failed.append(repository.name)
    return failed


def activate_ghas_features(gateway: RepositoryGateway, organizations: list[str]) -> list[str]:
    """Turn on the GHAS defaults for new repositories in each organization.

    Returns:
        Organizations whose settings could not be changed
    """
    failed: list[str] = []
    for organization in organizations:
        logger.info(f"activating GHAS settings for organization {organization}")
        try:
            gateway.change_ghas_org_settings(organization, activate=True)
        except Exception:
            logger.exception(f"error activating GHAS settings for organization {organization}")
            failed.append(organization)
    return failed
