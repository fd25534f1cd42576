"""Tests for branch protection rule deletion over GraphQL."""

from __future__ import annotations

from typing import Any

import pytest

from gei_migration_helper.branch_protections import (
    DELETE_MUTATION,
    LIST_QUERY,
    delete_branch_protections,
    list_branch_protection_ids,
)
from gei_migration_helper.exceptions import BranchProtectionDeletionError, MigrationError


class FakeGraphQL:
    """Serves branch protection rules in pages and records every request."""

    def __init__(self, rule_count: int, page_size: int = 100, fail_on: str | None = None) -> None:
        self.rules: list[str] = [f"BPR_{i}" for i in range(rule_count)]
        self.page_size: int = page_size
        self.fail_on: str | None = fail_on
        self.queries: list[dict[str, Any]] = []
        self.deleted: list[str] = []

    def __call__(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        if query == LIST_QUERY:
            self.queries.append(variables)
            start = int(variables["cursor"] or 0)
            end = start + variables["first"]
            return {
                "repository": {
                    "branchProtectionRules": {
                        "nodes": [{"id": rule_id} for rule_id in self.rules[start:end]],
                        "pageInfo": {"endCursor": str(end), "hasNextPage": end < len(self.rules)},
                    }
                }
            }
        assert query == DELETE_MUTATION
        if variables["id"] == self.fail_on:
            msg = f"cannot delete {variables['id']}"
            raise MigrationError(msg)
        self.deleted.append(variables["id"])
        return {"deleteBranchProtectionRule": {"clientMutationId": None}}


@pytest.mark.unit
class TestListBranchProtectionIds:
    def test_follows_cursor_across_pages(self) -> None:
        """Three pages of 100 rules yield 300 ids from exactly 3 queries."""
        graphql = FakeGraphQL(300)

        ids = list_branch_protection_ids(graphql, "dst-org", "R")

        assert len(ids) == 300
        assert ids == graphql.rules
        assert len(graphql.queries) == 3
        assert [query["cursor"] for query in graphql.queries] == [None, "100", "200"]
        assert all(query["first"] == 100 for query in graphql.queries)

    def test_missing_repository(self) -> None:
        with pytest.raises(MigrationError, match="dst-org/R not found"):
            list_branch_protection_ids(lambda query, variables: {"repository": None}, "dst-org", "R")


@pytest.mark.unit
class TestDeleteBranchProtections:
    def test_deletes_every_rule_after_listing(self) -> None:
        graphql = FakeGraphQL(300)

        deleted = delete_branch_protections(graphql, "dst-org", "R")

        assert deleted == 300
        assert graphql.deleted == graphql.rules
        assert len(graphql.queries) == 3

    def test_no_rules(self) -> None:
        graphql = FakeGraphQL(0)

        assert delete_branch_protections(graphql, "dst-org", "R") == 0
        assert graphql.deleted == []
        assert len(graphql.queries) == 1

    def test_stops_at_first_failed_delete(self) -> None:
        """Rules after the failing one are left in place."""
        graphql = FakeGraphQL(5, fail_on="BPR_2")

        with pytest.raises(BranchProtectionDeletionError, match="BPR_2"):
            delete_branch_protections(graphql, "dst-org", "R")

        assert graphql.deleted == ["BPR_0", "BPR_1"]
