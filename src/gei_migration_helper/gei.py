"""Invocation of the GitHub Enterprise Importer (`gh gei`) CLI extension."""

from __future__ import annotations

import logging
import os
import subprocess
from typing import Final

from .exceptions import TransferError

logger: logging.Logger = logging.getLogger(__name__)

_GH: Final[str] = "gh"
REDACTED: Final[str] = "***TOKEN***"


def _redact(output: str, *secrets: str) -> str:
    """Mask every secret in GEI output before it reaches logs or exceptions.

    GEI echoes request details on failure, which can include the PATs it
    read from its environment. Empty secrets are ignored.
    """
    for secret in secrets:
        if secret:
            output = output.replace(secret, REDACTED)
    return output


class GEI:
    """Runs GEI commands between a fixed pair of organizations.

    Tokens are handed to the extension through GH_SOURCE_PAT and GH_PAT in
    its environment rather than on the command line.
    """

    def __init__(self, source_org: str, target_org: str, source_token: str, target_token: str) -> None:
        self.source_org: str = source_org
        self.target_org: str = target_org
        self._source_token: str = source_token
        self._target_token: str = target_token

    def migrate_repo(self, repository: str) -> None:
        self._run(
            "migrate repository",
            [
                "migrate-repo",
                "--github-source-org", self.source_org,
                "--source-repo", repository,
                "--github-target-org", self.target_org,
            ],
        )

    def migrate_code_scanning(self, repository: str) -> None:
        self._run(
            "migrate code scanning alerts",
            [
                "migrate-code-scanning-alerts",
                "--source-org", self.source_org,
                "--source-repo", repository,
                "--target-org", self.target_org,
            ],
        )

    def migrate_secret_scanning(self, repository: str) -> None:
        self._run(
            "migrate secret scanning alerts",
            [
                "migrate-secret-alerts",
                "--source-org", self.source_org,
                "--source-repo", repository,
                "--target-org", self.target_org,
            ],
        )

    def _run(self, action: str, arguments: list[str]) -> None:
        secrets = (self._source_token, self._target_token)
        env = os.environ.copy() | {"GH_SOURCE_PAT": self._source_token, "GH_PAT": self._target_token}
        command = [_GH, "gei", *arguments]
        logger.debug(f"Running {' '.join(command)}")

        try:
            result = subprocess.run(  # noqa: S603
                command,
                check=False,
                capture_output=True,
                text=True,
                env=env,
            )
        except OSError as e:
            msg = f"Failed to {action}: {_redact(str(e), *secrets)}"
            raise TransferError(msg) from e

        if result.returncode != 0:
            output = (result.stderr or result.stdout).strip()
            msg = f"Failed to {action} (exit code {result.returncode}): {_redact(output, *secrets)}"
            raise TransferError(msg)
