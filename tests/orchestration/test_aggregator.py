import io
import sys
from unittest.mock import MagicMock

import pytest

from common.exceptions import TaskAlreadyReportedError
from common.task_output import capture_task_prints, current_task_streams
from orchestration.aggregator import CompletionAggregator, RunResult, TaskOutcome
from orchestration.launcher import TaskLauncher


def _succeed():
    return None


def _fail_with_stderr(lines, code=1):
    def unit():
        for i in range(lines):
            print(f"error line {i}", file=sys.stderr)
        sys.exit(code)

    return unit


@pytest.fixture
def launcher(tmp_path, app_settings):
    return TaskLauncher(
        tmp_path / "logs",
        app_settings=app_settings,
        console_out=io.StringIO(),
        console_err=io.StringIO(),
        logger=MagicMock(),
    )


def _stderr_writer(lines, code=1):
    """A unit that writes to its task's stderr capture, then fails."""
    def unit():
        streams = current_task_streams()
        for i in range(lines):
            streams.stderr.write_line(f"error line {i}")
        sys.exit(code)

    return unit


def _error_messages(logger):
    return [c.args[0] for c in logger.error.call_args_list]


def test_one_failure_out_of_four(launcher, app_settings, mock_logger):
    registry = launcher.launch_all(
        [
            ("A", _succeed),
            ("B", _succeed),
            ("C", _stderr_writer(3)),
            ("D", _succeed),
        ]
    )
    daemon = MagicMock()
    aggregator = CompletionAggregator(app_settings, logger=mock_logger)

    result = aggregator.wait_all(registry)
    exit_status = aggregator.conclude(result, launcher.log_dir, daemon)

    assert result.failure_count == 1
    assert exit_status == 1
    daemon.assert_not_called()
    [failed] = result.failures
    assert failed.name == "C"
    assert failed.exit_status == 1
    assert failed.stderr_tail == (
        "[C][stderr] error line 0",
        "[C][stderr] error line 1",
        "[C][stderr] error line 2",
    )
    for outcome in result.outcomes:
        if outcome.name != "C":
            assert outcome.stderr_tail == ()

    errors = _error_messages(mock_logger)
    assert "[C] ❌ failed with exit code 1." in errors
    report = next(m for m in errors if m.startswith("----- [C]"))
    assert "----- [C] end stderr -----" in report
    assert "Full logs: " in report
    assert not any("[A]" in m or "[B]" in m or "[D]" in m for m in errors)
    assert errors[-1] == f"[all] 1 task(s) failed. See logs in {launcher.log_dir}"


def test_all_succeed_starts_daemon_once(launcher, app_settings, mock_logger):
    registry = launcher.launch_all(
        [(name, _succeed) for name in ["A", "B", "C", "D"]]
    )
    daemon = MagicMock()
    aggregator = CompletionAggregator(app_settings, logger=mock_logger)

    result = aggregator.wait_all(registry)
    exit_status = aggregator.conclude(result, launcher.log_dir, daemon)

    assert result.failure_count == 0
    assert exit_status == 0
    daemon.assert_called_once_with()
    infos = [c.args[0] for c in mock_logger.info.call_args_list]
    assert "[A] ✅ completed successfully." in " ".join(infos)
    assert any(m.endswith("All tasks completed.") for m in infos)


def test_waits_every_task_in_launch_order(launcher, app_settings):
    names = ["aws_cli", "nvm_node", "docker", "gh_cli"]
    registry = launcher.launch_all([(name, _succeed) for name in names])

    result = CompletionAggregator(app_settings).wait_all(registry)

    assert [o.name for o in result.outcomes] == names
    assert registry.sealed


def test_second_wait_on_a_handle_raises(launcher, app_settings):
    handle = launcher.launch("docker", _succeed)
    aggregator = CompletionAggregator(app_settings)

    aggregator.wait_one(handle, "docker")

    with pytest.raises(TaskAlreadyReportedError):
        aggregator.wait_one(handle, "docker")


def test_stderr_tail_is_limited(launcher, app_settings):
    handle = launcher.launch("noisy", _stderr_writer(100, code=4))
    aggregator = CompletionAggregator(app_settings, tail_lines_count=10)

    outcome = aggregator.wait_one(handle, "noisy")

    assert outcome.exit_status == 4
    assert len(outcome.stderr_tail) == 10
    assert outcome.stderr_tail[-1] == "[noisy][stderr] error line 99"


def test_task_prints_reach_stderr_tail(launcher, app_settings):
    with capture_task_prints():
        handle = launcher.launch("printer", _fail_with_stderr(2))
        outcome = CompletionAggregator(app_settings).wait_one(handle, "printer")

    assert outcome.exit_status == 1
    assert outcome.stderr_tail == (
        "[printer][stderr] error line 0",
        "[printer][stderr] error line 1",
    )


def test_daemon_start_failure_keeps_success_status(
    launcher, app_settings, mock_logger
):
    registry = launcher.launch_all([("A", _succeed), ("B", _succeed)])
    daemon = MagicMock(
        side_effect=FileNotFoundError(2, "No such file or directory", "dockerd")
    )
    aggregator = CompletionAggregator(app_settings, logger=mock_logger)

    result = aggregator.wait_all(registry)

    assert aggregator.conclude(result, launcher.log_dir, daemon) == 0
    daemon.assert_called_once_with()
    [error] = _error_messages(mock_logger)
    assert "Could not start the daemon" in error
    assert "dockerd" in error


def test_failure_never_starts_daemon_even_without_tail(app_settings, tmp_path):
    result = RunResult(
        outcomes=(
            TaskOutcome("A", 0, 0.1, tmp_path / "A.out", tmp_path / "A.err"),
            TaskOutcome("B", 2, 0.1, tmp_path / "B.out", tmp_path / "B.err"),
        )
    )
    daemon = MagicMock()

    assert CompletionAggregator(app_settings).conclude(result, tmp_path, daemon) == 1
    daemon.assert_not_called()
    assert result.exit_status == 1
    assert not result.succeeded


def test_conclude_without_daemon(app_settings, tmp_path):
    result = RunResult(outcomes=())

    assert CompletionAggregator(app_settings).conclude(result, tmp_path) == 0
