"""
Command-line interface for the GEI migration helper.
"""

from __future__ import annotations

import argparse
import logging
import sys
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING

from . import followups
from . import github_utils as ghu
from .config import (
    DEFAULT_GITHUB_URL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REPORT_PATH,
    DEFAULT_SETTLE_DELAY,
    DEFAULT_WORKERS,
    MigrationSettings,
)
from .gateway import GitHubGateway
from .gei import GEI
from .models import DISABLED, ENABLED
from .orchestrator import OrgMigration, RunState
from .pipeline import Orgs, RepositoryMigration
from .steps import RetryPolicy
from .utils import setup_logging

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import FeatureStatus

logger: logging.Logger = logging.getLogger(__name__)


def _add_connection_arguments(parser: argparse.ArgumentParser) -> None:
    _ = parser.add_argument(
        "--github-url", default=DEFAULT_GITHUB_URL, help=f"GitHub API base URL (default: {DEFAULT_GITHUB_URL})"
    )
    _ = parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")


def _add_org_arguments(parser: argparse.ArgumentParser) -> None:
    _ = parser.add_argument("--source-org", required=True, help="Organization to migrate from")
    _ = parser.add_argument("--target-org", required=True, help="Organization to migrate to")
    _ = parser.add_argument(
        "--source-pass-token",
        help="Path for the source token in pass utility (default: $GH_SOURCE_PAT, then github/migration/source_token)",
    )
    _ = parser.add_argument(
        "--target-pass-token",
        help="Path for the target token in pass utility (default: $GH_PAT, then github/migration/target_token)",
    )
    _ = parser.add_argument(
        "--max-retries",
        type=int,
        default=DEFAULT_MAX_RETRIES,
        help=f"Attempts per remote operation (default: {DEFAULT_MAX_RETRIES})",
    )
    _add_connection_arguments(parser)


def _add_single_org_arguments(parser: argparse.ArgumentParser, *, repository: bool = False) -> None:
    _ = parser.add_argument("--org", required=True, help="Organization to change")
    if repository:
        _ = parser.add_argument("--repo", required=True, help="Repository in the organization")
    _ = parser.add_argument(
        "--pass-token", help="Path for the token in pass utility (default: $GH_PAT, then github/migration/target_token)"
    )
    _add_connection_arguments(parser)


def _add_toggle_arguments(parser: argparse.ArgumentParser) -> None:
    toggle = parser.add_mutually_exclusive_group(required=True)
    _ = toggle.add_argument("--activate", dest="activate", action="store_true", help="Enable the settings")
    _ = toggle.add_argument("--deactivate", dest="activate", action="store_false", help="Disable the settings")


def _add_migration_arguments(parser: argparse.ArgumentParser) -> None:
    _ = parser.add_argument(
        "--settle-delay",
        type=float,
        default=DEFAULT_SETTLE_DELAY,
        help=f"Seconds to wait after visibility and GHAS changes (default: {DEFAULT_SETTLE_DELAY:g})",
    )


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Migrate GitHub repositories between organizations with GitHub Enterprise Importer"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    org = subparsers.add_parser("migrate-organization", help="Migrate every repository missing at the target")
    _add_org_arguments(org)
    _add_migration_arguments(org)
    _ = org.add_argument(
        "--workers", type=int, default=DEFAULT_WORKERS, help=f"Parallel migrations (default: {DEFAULT_WORKERS})"
    )
    _ = org.add_argument(
        "--report-path",
        type=Path,
        default=DEFAULT_REPORT_PATH,
        help=f"Where to write the JSON report (default: {DEFAULT_REPORT_PATH})",
    )
    org.set_defaults(handler=_migrate_organization)

    repo = subparsers.add_parser("migrate-repository", help="Migrate a single repository")
    _add_org_arguments(repo)
    _add_migration_arguments(repo)
    _ = repo.add_argument("--repo", required=True, help="Name of the repository at source")
    repo.set_defaults(handler=_migrate_repository)

    status = subparsers.add_parser("migration-status", help="Show the state of an organization migration")
    _add_org_arguments(status)
    status.set_defaults(handler=_migration_status)

    secrets = subparsers.add_parser("migrate-secret-scanning", help="Migrate secret scanning alerts")
    _add_org_arguments(secrets)
    _ = secrets.add_argument("--repo", help="Only this repository (default: every source repository)")
    secrets.set_defaults(handler=_migrate_secret_scanning)

    workflows = subparsers.add_parser(
        "reactivate-target-workflows", help="Enable target workflows that are active at source"
    )
    _add_org_arguments(workflows)
    _ = workflows.add_argument("--repo", help="Only this repository (default: every source repository)")
    workflows.set_defaults(handler=_reactivate_target_workflows)

    code_scanning = subparsers.add_parser("migrate-code-scanning", help="Migrate code scanning alerts")
    _add_org_arguments(code_scanning)
    _ = code_scanning.add_argument("--repo", help="Only this repository (default: every source repository)")
    code_scanning.set_defaults(handler=_migrate_code_scanning)

    ghas = subparsers.add_parser("ghas-org-settings", help="Change GHAS defaults for new repositories of an organization")
    _add_single_org_arguments(ghas)
    _add_toggle_arguments(ghas)
    ghas.set_defaults(handler=_ghas_org_settings)

    ghas_repo = subparsers.add_parser("ghas-repo-settings", help="Change GHAS features of a repository")
    _add_single_org_arguments(ghas_repo, repository=True)
    _add_toggle_arguments(ghas_repo)
    ghas_repo.set_defaults(handler=_ghas_repo_settings)

    visibility = subparsers.add_parser("repository-visibility", help="Change the visibility of a repository")
    _add_single_org_arguments(visibility, repository=True)
    _ = visibility.add_argument(
        "--visibility", required=True, choices=["private", "internal", "public"], help="The new visibility"
    )
    visibility.set_defaults(handler=_repository_visibility)

    protections = subparsers.add_parser(
        "delete-branch-protections", help="Delete every branch protection rule of a repository"
    )
    _add_single_org_arguments(protections, repository=True)
    protections.set_defaults(handler=_delete_branch_protections)

    enterprise = subparsers.add_parser(
        "activate-ghas-features", help="Activate GHAS defaults for every organization of an enterprise"
    )
    scope = enterprise.add_mutually_exclusive_group(required=True)
    _ = scope.add_argument("--enterprise", help="Slug of the enterprise")
    _ = scope.add_argument("--org", help="Only this organization")
    _ = enterprise.add_argument(
        "--pass-token", help="Path for the token in pass utility (default: $GH_PAT, then github/migration/target_token)"
    )
    _add_connection_arguments(enterprise)
    enterprise.set_defaults(handler=_activate_ghas_features)

    return parser.parse_args(argv)


def _settings(args: argparse.Namespace) -> MigrationSettings:
    return MigrationSettings(
        source_org=args.source_org,
        target_org=args.target_org,
        max_retries=args.max_retries,
        workers=getattr(args, "workers", DEFAULT_WORKERS),
        settle_delay=getattr(args, "settle_delay", DEFAULT_SETTLE_DELAY),
        report_path=getattr(args, "report_path", DEFAULT_REPORT_PATH),
        github_url=args.github_url,
    )


def _build_orgs(settings: MigrationSettings, args: argparse.Namespace) -> Orgs:
    source_token = ghu.get_token("source", args.source_pass_token)
    target_token = ghu.get_token("target", args.target_pass_token)
    return Orgs(
        source=settings.source_org,
        target=settings.target_org,
        source_gateway=GitHubGateway(
            source_token, base_url=settings.github_url, settings_delay=settings.settle_delay
        ),
        target_gateway=GitHubGateway(
            target_token, base_url=settings.github_url, settings_delay=settings.settle_delay
        ),
        transfer=GEI(settings.source_org, settings.target_org, source_token, target_token),
    )


def _repository_migration(settings: MigrationSettings, args: argparse.Namespace) -> RepositoryMigration:
    return RepositoryMigration(
        _build_orgs(settings, args), RetryPolicy(max_retries=settings.max_retries), settle_delay=settings.settle_delay
    )


def _migrate_organization(args: argparse.Namespace) -> int:
    settings = _settings(args)
    migration = _repository_migration(settings, args)
    report = OrgMigration(migration, workers=settings.workers, report_path=settings.report_path).migrate()
    for status in report.failed:
        logger.error(f"failed to migrate {status.name}")
    return 0 if report.success else 1


def _migrate_repository(args: argparse.Namespace) -> int:
    migration = _repository_migration(_settings(args), args)
    repository = migration.orgs.source_gateway.get_repository(migration.orgs.source, args.repo)
    migration.migrate(repository)
    return 0


def _migration_status(args: argparse.Namespace) -> int:
    settings = _settings(args)
    status = OrgMigration(_repository_migration(settings, args)).status()

    logger.info(f"migration from {settings.source_org} to {settings.target_org}: {status.state.value}")
    if status.state is RunState.COMPLETED:
        logger.info(f"result: {status.issue_url}")
    elif status.state is RunState.RUNNING_OR_FAILED:
        logger.info(f"{len(status.migrated)} repositories present at target, {len(status.pending)} pending")
        for name in status.pending:
            logger.info(f"pending: {name}")
    return 0


def _migrate_secret_scanning(args: argparse.Namespace) -> int:
    settings = _settings(args)
    orgs = _build_orgs(settings, args)
    policy = RetryPolicy(max_retries=settings.max_retries)
    if args.repo:
        followups.migrate_secret_scanning(orgs, args.repo, policy)
        return 0
    failed = followups.for_each_source_repository(orgs, partial(followups.migrate_secret_scanning, orgs, policy=policy))
    return 1 if failed else 0


def _reactivate_target_workflows(args: argparse.Namespace) -> int:
    settings = _settings(args)
    orgs = _build_orgs(settings, args)
    policy = RetryPolicy(max_retries=settings.max_retries)
    if args.repo:
        followups.reactivate_target_workflows(orgs, args.repo, policy)
        return 0
    failed = followups.for_each_source_repository(
        orgs, partial(followups.reactivate_target_workflows, orgs, policy=policy)
    )
    return 1 if failed else 0


def _migrate_code_scanning(args: argparse.Namespace) -> int:
    settings = _settings(args)
    orgs = _build_orgs(settings, args)
    policy = RetryPolicy(max_retries=settings.max_retries)
    if args.repo:
        followups.migrate_code_scanning(orgs, args.repo, policy)
        return 0
    failed = followups.for_each_source_repository(orgs, partial(followups.migrate_code_scanning, orgs, policy=policy))
    return 1 if failed else 0


def _single_org_gateway(args: argparse.Namespace) -> GitHubGateway:
    return GitHubGateway(ghu.get_token("target", args.pass_token), base_url=args.github_url)


def _ghas_org_settings(args: argparse.Namespace) -> int:
    gateway = _single_org_gateway(args)
    gateway.change_ghas_org_settings(args.org, activate=args.activate)
    logger.info(f"GHAS settings for new repositories {'activated' if args.activate else 'deactivated'} in {args.org}")
    return 0


def _ghas_repo_settings(args: argparse.Namespace) -> int:
    gateway = _single_org_gateway(args)
    repository = gateway.get_repository(args.org, args.repo)
    status: FeatureStatus = ENABLED if args.activate else DISABLED
    gateway.change_ghas_repo_settings(args.org, repository, status, status, status)
    logger.info(f"GHAS features {status} for {args.org}/{args.repo}")
    return 0


def _repository_visibility(args: argparse.Namespace) -> int:
    _single_org_gateway(args).change_repository_visibility(args.org, args.repo, args.visibility)
    logger.info(f"visibility of {args.org}/{args.repo} changed to {args.visibility}")
    return 0


def _delete_branch_protections(args: argparse.Namespace) -> int:
    deleted = _single_org_gateway(args).delete_branch_protections(args.org, args.repo)
    logger.info(f"deleted {deleted} branch protection rules from {args.org}/{args.repo}")
    return 0


def _activate_ghas_features(args: argparse.Namespace) -> int:
    gateway = _single_org_gateway(args)
    if args.org:
        organizations = [args.org]
    else:
        logger.info(f"fetching organizations from enterprise {args.enterprise}")
        organizations = gateway.get_enterprise_organizations(args.enterprise)
    failed = followups.activate_ghas_features(gateway, organizations)
    return 1 if failed else 0


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)

    verbose: bool = getattr(args, "verbose", False)
    setup_logging(verbose=verbose)

    try:
        exit_code = args.handler(args)
    except Exception:
        logger.exception(f"{args.command} failed")
        sys.exit(1)
    sys.exit(exit_code)
