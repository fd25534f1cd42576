"""
Utility functions for the GEI migration helper.
"""

from __future__ import annotations

import logging
import re
import subprocess
from typing import Final

LOG_FORMAT: Final[str] = "%(asctime)s - %(threadName)s - %(levelname)s - %(message)s"
LOG_FILE: Final[str] = "migration.log"


class PassError(Exception):
    """Base class for pass-related errors."""


class InvalidPassPathError(PassError):
    """Raised when the pass path does not exist in the password store."""


def setup_logging(*, verbose: bool = False) -> None:
    """Configure logging for the migration process.

    Worker threads are named `worker-<n>`, so every line of a repository
    migration can be traced back to the worker that ran it.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(), logging.FileHandler(LOG_FILE, mode="a")],
    )
    # PyGithub and urllib3 are chatty at DEBUG and would bury the step log
    logging.getLogger("github").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _validate_pass_path(pass_path: str) -> None:
    if not re.fullmatch(r"(?:[A-Za-z0-9_-]+)(?:/[A-Za-z0-9_-]+)*", pass_path):
        msg = f"Invalid pass path: {pass_path}"
        raise ValueError(msg)


def get_pass_value(pass_path: str) -> str:
    """Get value from pass utility at specified path."""
    _validate_pass_path(pass_path)

    try:
        result = subprocess.run(  # noqa: S603
            ["pass", pass_path], capture_output=True, text=True, check=True
        )
    except FileNotFoundError as e:
        msg = "The 'pass' utility is not installed"
        raise PassError(msg) from e
    except subprocess.CalledProcessError as e:
        if "not in the password store" in e.stderr.lower():
            msg = f"Pass path '{pass_path}' not found or invalid."
            raise InvalidPassPathError(msg) from e
        msg = f"Failed to get value from pass at '{pass_path}' (return code {e.returncode}): {e.stderr.strip()}"
        raise PassError(msg) from e

    return result.stdout.strip()
