"""Retrying step execution with a sticky first failure.

A StepRunner is created per pipeline invocation. Each call to run()
executes one named remote operation, retrying it with exponential backoff.
Once an operation exhausts its retries the error is kept and every later
run() on the same runner is skipped, so a pipeline reads as a straight
sequence of steps and stops at the first permanent failure.

Compensation steps get their own runner, so a failure on the forward path
never prevents cleanup.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

logger: logging.Logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How often a step is attempted and how long to wait in between.

    The wait before attempt i+1 (i counted from 0) is base_delay * 2**i.
    """

    max_retries: int = 5
    base_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            msg = f"max_retries must be at least 1, got {self.max_retries}"
            raise ValueError(msg)

    def delay(self, attempt: int) -> float:
        return self.base_delay * (2**attempt)


class StepRunner:
    """Runs named steps until the first one fails permanently."""

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        context: str = "",
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._policy: RetryPolicy = policy
        self._context: str = context
        self._sleep: Callable[[float], None] = sleep
        self._error: Exception | None = None
        self._failed_step: str | None = None

    @property
    def error(self) -> Exception | None:
        return self._error

    @property
    def failed_step(self) -> str | None:
        return self._failed_step

    @property
    def failed(self) -> bool:
        return self._error is not None

    def run(self, name: str, operation: Callable[[], T]) -> T | None:
        """Run operation with retries unless an earlier step already failed.

        Returns:
            The operation's return value, or None when the step was skipped
            or failed.
        """
        if self._error is not None:
            logger.debug(f"{self._prefix}skipping '{name}' after earlier failure in '{self._failed_step}'")
            return None

        max_retries = self._policy.max_retries
        last_error: Exception | None = None
        for attempt in range(max_retries):
            if attempt > 0:
                delay = self._policy.delay(attempt - 1)
                logger.debug(
                    f"{self._prefix}retrying '{name}' {attempt}/{max_retries - 1} in {delay:g}s",
                    extra={"step": name, "attempt": attempt + 1, "outcome": "retry"},
                )
                self._sleep(delay)
            try:
                result = operation()
            except Exception as e:  # noqa: BLE001 - kept as the step's failure
                last_error = e
                logger.debug(
                    f"{self._prefix}'{name}' attempt {attempt + 1}/{max_retries} failed: {e}",
                    extra={"step": name, "attempt": attempt + 1, "outcome": "failed"},
                )
                continue
            logger.debug(
                f"{self._prefix}done: {name}",
                extra={"step": name, "attempt": attempt + 1, "outcome": "success"},
            )
            return result

        self._error = last_error
        self._failed_step = name
        logger.error(
            f"{self._prefix}'{name}' failed after {max_retries} attempts: {last_error}",
            extra={"step": name, "attempt": max_retries, "outcome": "exhausted"},
        )
        return None

    @property
    def _prefix(self) -> str:
        return f"[{self._context}] " if self._context else ""
