"""Tests for the retrying step runner."""

from __future__ import annotations

import logging
from unittest.mock import Mock

import pytest

from gei_migration_helper.steps import RetryPolicy, StepRunner


@pytest.mark.unit
class TestRetryPolicy:
    def test_delay_doubles(self) -> None:
        policy = RetryPolicy(max_retries=5, base_delay=1.0)
        assert [policy.delay(i) for i in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_base_delay_scales(self) -> None:
        assert RetryPolicy(base_delay=0.5).delay(2) == 2.0

    @pytest.mark.parametrize("max_retries", [0, -1])
    def test_rejects_non_positive_retries(self, max_retries: int) -> None:
        with pytest.raises(ValueError, match="max_retries must be at least 1"):
            RetryPolicy(max_retries=max_retries)


@pytest.mark.unit
class TestStepRunner:
    def test_returns_operation_result(self) -> None:
        """A successful step hands back what the operation returned."""
        runner = StepRunner(RetryPolicy(), sleep=Mock())

        assert runner.run("fetch", lambda: [1, 2]) == [1, 2]
        assert not runner.failed
        assert runner.error is None

    def test_always_failing_step_is_attempted_max_retries_times(self) -> None:
        """Retries stop after max_retries attempts with delays 1, 2, 4 seconds in between."""
        sleeps: list[float] = []
        error = RuntimeError("nope")
        operation = Mock(side_effect=error)
        runner = StepRunner(RetryPolicy(max_retries=4), sleep=sleeps.append)

        assert runner.run("broken", operation) is None

        assert operation.call_count == 4
        assert sleeps == [1.0, 2.0, 4.0]
        assert runner.failed
        assert runner.error is error
        assert runner.failed_step == "broken"

    def test_single_attempt_never_sleeps(self) -> None:
        sleep = Mock()
        runner = StepRunner(RetryPolicy(max_retries=1), sleep=sleep)

        runner.run("broken", Mock(side_effect=RuntimeError("nope")))

        sleep.assert_not_called()
        assert runner.failed

    def test_recovers_after_transient_failure(self) -> None:
        """A step that fails once and then succeeds is not a failure."""
        sleeps: list[float] = []
        operation = Mock(side_effect=[RuntimeError("flaky"), "ok"])
        runner = StepRunner(RetryPolicy(max_retries=3), sleep=sleeps.append)

        assert runner.run("flaky", operation) == "ok"
        assert sleeps == [1.0]
        assert not runner.failed

    def test_keeps_last_error_of_failed_step(self) -> None:
        second = RuntimeError("second")
        runner = StepRunner(RetryPolicy(max_retries=2), sleep=Mock())

        runner.run("broken", Mock(side_effect=[RuntimeError("first"), second]))

        assert runner.error is second

    def test_later_steps_are_skipped_after_failure(self) -> None:
        """The first permanent failure sticks and nothing else runs."""
        runner = StepRunner(RetryPolicy(max_retries=1), sleep=Mock())
        first = RuntimeError("first")
        runner.run("first", Mock(side_effect=first))

        later = Mock(return_value="never")
        assert runner.run("second", later) is None

        later.assert_not_called()
        assert runner.error is first
        assert runner.failed_step == "first"

    def test_separate_runners_do_not_share_failure(self) -> None:
        policy = RetryPolicy(max_retries=1)
        forward = StepRunner(policy, sleep=Mock())
        forward.run("broken", Mock(side_effect=RuntimeError("nope")))

        compensation = StepRunner(policy, sleep=Mock())
        assert compensation.run("restore", lambda: "restored") == "restored"

    def test_exhaustion_is_logged_with_step_attributes(self, caplog: pytest.LogCaptureFixture) -> None:
        runner = StepRunner(RetryPolicy(max_retries=2), context="repo-a", sleep=Mock())

        with caplog.at_level(logging.DEBUG, logger="gei_migration_helper.steps"):
            runner.run("broken", Mock(side_effect=RuntimeError("nope")))

        errors = [record for record in caplog.records if record.levelno == logging.ERROR]
        assert len(errors) == 1
        assert errors[0].step == "broken"  # type: ignore[attr-defined]
        assert errors[0].outcome == "exhausted"  # type: ignore[attr-defined]
        assert errors[0].getMessage().startswith("[repo-a] ")

        attempts = [record for record in caplog.records if getattr(record, "outcome", None) == "failed"]
        assert [record.attempt for record in attempts] == [1, 2]  # type: ignore[attr-defined]
