"""Listing and deleting branch protection rules through the GraphQL API.

Deletion runs in two phases. First every rule id is collected by following
the `endCursor` of `branchProtectionRules` while `hasNextPage` is true.
Then one `deleteBranchProtectionRule` mutation is sent per id. There is no
batch delete, so a failure part way leaves the remaining rules in place;
running the deletion again only sees what is left.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Final

from .exceptions import BranchProtectionDeletionError, MigrationError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    GraphQLExecutor = Callable[[str, dict[str, Any]], dict[str, Any]]

logger: logging.Logger = logging.getLogger(__name__)

PAGE_SIZE: Final[int] = 100

LIST_QUERY: Final[str] = """
query ListBranchProtectionRules($owner: String!, $name: String!, $first: Int!, $cursor: String) {
    repository(owner: $owner, name: $name) {
        branchProtectionRules(first: $first, after: $cursor) {
            nodes {
                id
            }
            pageInfo {
                endCursor
                hasNextPage
            }
        }
    }
}
"""

DELETE_MUTATION: Final[str] = """
mutation DeleteBranchProtectionRule($id: ID!) {
    deleteBranchProtectionRule(input: {branchProtectionRuleId: $id}) {
        clientMutationId
    }
}
"""


def list_branch_protection_ids(
    execute: GraphQLExecutor, owner: str, name: str, page_size: int = PAGE_SIZE
) -> list[str]:
    """Collect the ids of all branch protection rules of a repository."""
    ids: list[str] = []
    cursor: str | None = None
    while True:
        data = execute(LIST_QUERY, {"owner": owner, "name": name, "first": page_size, "cursor": cursor})
        repository = data.get("repository")
        if repository is None:
            msg = f"Repository {owner}/{name} not found in GraphQL response"
            raise MigrationError(msg)

        rules = repository["branchProtectionRules"]
        ids.extend(node["id"] for node in rules["nodes"])

        page_info = rules["pageInfo"]
        if not page_info["hasNextPage"]:
            break
        cursor = page_info["endCursor"]

    logger.debug(f"Found {len(ids)} branch protection rules in {owner}/{name}")
    return ids


def delete_branch_protection_rules(execute: GraphQLExecutor, rule_ids: Sequence[str]) -> None:
    """Delete rules one by one, stopping at the first failure."""
    for rule_id in rule_ids:
        try:
            execute(DELETE_MUTATION, {"id": rule_id})
        except MigrationError as e:
            msg = f"Failed to delete branch protection rule {rule_id}: {e}"
            raise BranchProtectionDeletionError(msg) from e


def delete_branch_protections(execute: GraphQLExecutor, owner: str, name: str) -> int:
    """Delete every branch protection rule of a repository.

    Returns:
        Number of rules deleted
    """
    rule_ids = list_branch_protection_ids(execute, owner, name)
    delete_branch_protection_rules(execute, rule_ids)
    if rule_ids:
        logger.info(f"Deleted {len(rule_ids)} branch protection rules from {owner}/{name}")
    return len(rule_ids)
