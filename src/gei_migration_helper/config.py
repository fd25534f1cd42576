"""
Run configuration for organization and repository migrations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

DEFAULT_GITHUB_URL: Final[str] = "https://api.github.com"
DEFAULT_REPORT_PATH: Final[Path] = Path("migration-result.json")
DEFAULT_MAX_RETRIES: Final[int] = 5
DEFAULT_WORKERS: Final[int] = 5
DEFAULT_SETTLE_DELAY: Final[float] = 10.0


@dataclass(frozen=True)
class MigrationSettings:
    """Settings shared by every command that talks to both organizations."""

    source_org: str
    target_org: str
    max_retries: int = DEFAULT_MAX_RETRIES
    workers: int = DEFAULT_WORKERS
    settle_delay: float = DEFAULT_SETTLE_DELAY
    report_path: Path = field(default=DEFAULT_REPORT_PATH)
    github_url: str = DEFAULT_GITHUB_URL

    def __post_init__(self) -> None:
        if not self.source_org.strip() or not self.target_org.strip():
            msg = "Both source and target organization must be non-empty"
            raise ValueError(msg)
        if self.source_org == self.target_org:
            msg = f"Source and target organization must differ (got '{self.source_org}' for both)"
            raise ValueError(msg)
        if self.max_retries < 1:
            msg = f"max_retries must be at least 1, got {self.max_retries}"
            raise ValueError(msg)
        if self.workers < 1:
            msg = f"workers must be at least 1, got {self.workers}"
            raise ValueError(msg)
        if self.settle_delay < 0:
            msg = f"settle_delay must not be negative, got {self.settle_delay}"
            raise ValueError(msg)
