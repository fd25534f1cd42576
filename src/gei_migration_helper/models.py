"""Data models exchanged between the gateway, the pipeline and the orchestrator.

These models are plain snapshots decoupled from PyGithub's objects. The
gateway maps API responses into them; nothing in the pipeline mutates them
in place. A fresh snapshot is fetched whenever the remote state may have
changed.
"""

from __future__ import annotations

import datetime as dt
import json
from dataclasses import dataclass, field
from typing import Any, Final, Literal

FeatureStatus = Literal["enabled", "disabled"]
Visibility = Literal["public", "private", "internal"]

ENABLED: Final[FeatureStatus] = "enabled"
DISABLED: Final[FeatureStatus] = "disabled"


@dataclass(frozen=True)
class SecurityAndAnalysis:
    """GHAS settings of a repository.

    Each feature is tri-state: "enabled", "disabled", or None when the API
    does not report it (absent).
    """

    advanced_security: FeatureStatus | None = None
    secret_scanning: FeatureStatus | None = None
    secret_scanning_push_protection: FeatureStatus | None = None

    @property
    def advanced_security_active(self) -> bool:
        return self.advanced_security == ENABLED


@dataclass(frozen=True)
class Repository:
    """Snapshot of a repository on one side of the migration."""

    name: str
    id: int
    archived: bool = False
    visibility: Visibility = "private"
    default_branch: str = "main"
    security: SecurityAndAnalysis = field(default_factory=SecurityAndAnalysis)


@dataclass(frozen=True)
class Workflow:
    """A GitHub Actions workflow."""

    id: int
    name: str
    state: str  # "active", "disabled_manually", "disabled_inactivity", ...

    @property
    def active(self) -> bool:
        return self.state == "active"


@dataclass(frozen=True)
class CodeScanningAnalysis:
    """A code scanning analysis uploaded for a ref."""

    id: int
    ref: str = ""
    tool: str = ""


@dataclass(frozen=True)
class Issue:
    number: int
    title: str
    body: str = ""
    html_url: str = ""


def security_settings_payload(
    visibility: Visibility,
    ghas: FeatureStatus | None,
    secret_scanning: FeatureStatus | None,
    push_protection: FeatureStatus | None,
) -> dict[str, dict[str, str]]:
    """Build the `security_and_analysis` payload for a repository edit.

    Advanced security is always on for public repositories and the API
    rejects any attempt to set it, so it is left out for them. Features
    passed as None are left out as well.
    """
    payload: dict[str, dict[str, str]] = {}
    if ghas is not None and visibility != "public":
        payload["advanced_security"] = {"status": ghas}
    if secret_scanning is not None:
        payload["secret_scanning"] = {"status": secret_scanning}
    if push_protection is not None:
        payload["secret_scanning_push_protection"] = {"status": push_protection}
    return payload


@dataclass(frozen=True)
class RepoStatus:
    """Report line for one repository."""

    name: str
    id: int
    archived: bool = False
    code_scanning: FeatureStatus = DISABLED
    secret_scanning: FeatureStatus = DISABLED
    push_protection: FeatureStatus = DISABLED

    @classmethod
    def from_repository(cls, repository: Repository) -> RepoStatus:
        security = repository.security
        return cls(
            name=repository.name,
            id=repository.id,
            archived=repository.archived,
            code_scanning=security.advanced_security or DISABLED,
            secret_scanning=security.secret_scanning or DISABLED,
            push_protection=security.secret_scanning_push_protection or DISABLED,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "id": self.id,
            "archived": self.archived,
            "codeScanning": self.code_scanning,
            "secretScanning": self.secret_scanning,
            "pushProtection": self.push_protection,
        }


@dataclass(frozen=True)
class MigrationResult:
    """Result of an organization migration run.

    Built once after every repository has been processed. The serialized
    form is written to disk and posted as issue #1 of the marker repository.
    """

    timestamp: dt.datetime
    source_org: str
    target_org: str
    migrated: tuple[RepoStatus, ...] = ()
    failed: tuple[RepoStatus, ...] = ()

    @property
    def success(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
            "sourceOrg": self.source_org,
            "targetOrg": self.target_org,
            "migrated": [status.to_dict() for status in self.migrated],
            "failed": [status.to_dict() for status in self.failed],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)
