from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any, Final, Literal

from github import Auth, Github

from . import utils
from .config import DEFAULT_GITHUB_URL
from .models import CodeScanningAnalysis, Repository, SecurityAndAnalysis, Workflow

if TYPE_CHECKING:
    import github.Repository
    import github.Workflow

    from .models import FeatureStatus, Visibility

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

Side = Literal["source", "target"]

# Same variable names the GEI extension reads, so one environment serves both
_TOKEN_ENV_VARS: Final[dict[Side, str]] = {"source": "GH_SOURCE_PAT", "target": "GH_PAT"}
_DEFAULT_TOKEN_PASS_PATHS: Final[dict[Side, str]] = {
    "source": "github/migration/source_token",
    "target": "github/migration/target_token",
}


def get_token(side: Side, pass_path: str | None = None) -> str:
    """Get the token for one side from a pass path, its env var, or the default pass location."""
    if pass_path:
        return utils.get_pass_value(pass_path)

    token: str | None = os.environ.get(_TOKEN_ENV_VARS[side])
    if token:
        return token

    try:
        return utils.get_pass_value(_DEFAULT_TOKEN_PASS_PATHS[side])
    except utils.PassError as e:
        msg = (
            f"No {side} token found. Set {_TOKEN_ENV_VARS[side]} or store it in pass at "
            f"'{_DEFAULT_TOKEN_PASS_PATHS[side]}'."
        )
        raise ValueError(msg) from e


def get_client(token: str, base_url: str = DEFAULT_GITHUB_URL) -> Github:
    """Get a GitHub client using the token."""
    return Github(auth=Auth.Token(token), base_url=base_url)


def graphql_url(base_url: str) -> str:
    """GraphQL endpoint belonging to a REST base URL.

    GitHub Enterprise Server serves REST under /api/v3 and GraphQL under /api/graphql.
    """
    base = base_url.rstrip("/")
    if base.endswith("/api/v3"):
        return base.removesuffix("/v3") + "/graphql"
    return base + "/graphql"


def _feature_status(section: dict[str, Any], key: str) -> FeatureStatus | None:
    status = (section.get(key) or {}).get("status")
    if status in ("enabled", "disabled"):
        return status
    return None


def to_repository(repo: github.Repository.Repository) -> Repository:
    """Map a PyGithub repository onto the domain snapshot."""
    raw: dict[str, Any] = repo.raw_data
    section: dict[str, Any] = raw.get("security_and_analysis") or {}
    visibility: Visibility = raw.get("visibility") or ("private" if raw.get("private") else "public")
    return Repository(
        name=repo.name,
        id=repo.id,
        archived=bool(repo.archived),
        visibility=visibility,
        default_branch=repo.default_branch or "main",
        security=SecurityAndAnalysis(
            advanced_security=_feature_status(section, "advanced_security"),
            secret_scanning=_feature_status(section, "secret_scanning"),
            secret_scanning_push_protection=_feature_status(section, "secret_scanning_push_protection"),
        ),
    )


def to_workflow(workflow: github.Workflow.Workflow) -> Workflow:
    return Workflow(id=workflow.id, name=workflow.name, state=workflow.state)


def to_analysis(data: dict[str, Any]) -> CodeScanningAnalysis:
    return CodeScanningAnalysis(
        id=int(data["id"]),
        ref=data.get("ref", ""),
        tool=(data.get("tool") or {}).get("name", ""),
    )
