# orchestration/aggregator.py
# -*- coding: utf-8 -*-
"""
Completion aggregator.

Waits on every launched task in launch order, reports each outcome as it
resolves and folds them into an immutable RunResult. The order of the waits
only affects reporting; the tasks keep running concurrently regardless.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Set, Tuple

from common.command_utils import log_provisioner
from common.exceptions import TaskAlreadyReportedError
from common.file_utils import tail_lines
from settings.config_models import STDERR_TAIL_LINES_DEFAULT, AppSettings

from .launcher import TaskHandle, TaskRegistry

module_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskOutcome:
    name: str
    exit_status: int
    duration_s: float
    stdout_path: Path
    stderr_path: Path
    stderr_tail: Tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.exit_status == 0


@dataclass(frozen=True)
class RunResult:
    outcomes: Tuple[TaskOutcome, ...]

    @property
    def failures(self) -> Tuple[TaskOutcome, ...]:
        return tuple(o for o in self.outcomes if not o.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def succeeded(self) -> bool:
        return self.failure_count == 0

    @property
    def exit_status(self) -> int:
        return 0 if self.succeeded else 1


class CompletionAggregator:
    """
    Collects the terminal status of launched tasks.

    Args:
        app_settings: Optional settings providing symbols and the number of
            stderr lines to show for a failed task.
        tail_lines_count: Overrides the stderr tail length.
        logger: Optional logger instance.
    """

    def __init__(
        self,
        app_settings: Optional[AppSettings] = None,
        tail_lines_count: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.app_settings = app_settings
        self.logger = logger or module_logger
        if tail_lines_count is not None:
            self.tail_lines_count = tail_lines_count
        elif app_settings is not None:
            self.tail_lines_count = app_settings.stderr_tail_lines
        else:
            self.tail_lines_count = STDERR_TAIL_LINES_DEFAULT
        self._reported: Set[TaskHandle] = set()

    def _symbol(self, key: str, default: str) -> str:
        if self.app_settings is not None:
            return self.app_settings.symbols.get(key, default)
        return default

    def wait_one(self, handle: TaskHandle, name: str) -> TaskOutcome:
        """
        Blocks until `handle` is terminal, reports it and returns its outcome.

        Raises:
            TaskAlreadyReportedError: If `handle` was already waited on.
        """
        if handle in self._reported:
            raise TaskAlreadyReportedError(name)
        self._reported.add(handle)

        exit_status = handle.join()
        streams = handle.streams
        stderr_tail: Tuple[str, ...] = ()
        if exit_status != 0:
            stderr_tail = tuple(
                tail_lines(streams.stderr_path, self.tail_lines_count)
            )

        outcome = TaskOutcome(
            name=name,
            exit_status=exit_status,
            duration_s=handle.duration_s,
            stdout_path=streams.stdout_path,
            stderr_path=streams.stderr_path,
            stderr_tail=stderr_tail,
        )
        self._report(outcome)
        return outcome

    def _report(self, outcome: TaskOutcome) -> None:
        name = outcome.name
        if outcome.succeeded:
            log_provisioner(
                f"[{name}] {self._symbol('success', '✅')} completed successfully. ({outcome.duration_s:.1f}s)",
                "success",
                self.logger,
                self.app_settings,
            )
            return

        log_provisioner(
            f"[{name}] {self._symbol('error', '❌')} failed with exit code {outcome.exit_status}.",
            "error",
            self.logger,
            self.app_settings,
        )
        lines = [
            f"----- [{name}] last {self.tail_lines_count} lines of stderr -----",
            *outcome.stderr_tail,
            f"----- [{name}] end stderr -----",
            f"Full logs: {outcome.stdout_path} (stdout), {outcome.stderr_path} (stderr)",
        ]
        log_provisioner(
            "\n".join(lines), "error", self.logger, self.app_settings
        )

    def wait_all(self, registry: TaskRegistry) -> RunResult:
        """
        Seals `registry` and waits on every task in launch order.

        Returns:
            The RunResult of the whole run.
        """
        registry.seal()
        outcomes = [self.wait_one(handle, name) for handle, name in registry]
        return RunResult(outcomes=tuple(outcomes))

    def conclude(
        self,
        result: RunResult,
        log_dir: Path,
        start_daemon: Optional[Callable[[], Any]] = None,
    ) -> int:
        """
        Reports the overall outcome and, after a fully successful run, starts
        the final daemon once. The daemon is never started if a task failed;
        a daemon that fails to start is logged and leaves the status at 0.

        Returns:
            The overall exit status: 0 if every task succeeded, 1 otherwise.
        """
        if result.succeeded:
            log_provisioner(
                f"[all] {self._symbol('sparkles', '✨')} All tasks completed.",
                "success",
                self.logger,
                self.app_settings,
            )
            if start_daemon is not None:
                try:
                    start_daemon()
                except OSError as e:
                    # The daemon never changes the exit status of the run.
                    log_provisioner(
                        f"[all] {self._symbol('error', '❌')} Could not start the daemon: {e}",
                        "error",
                        self.logger,
                        self.app_settings,
                    )
            return result.exit_status

        log_provisioner(
            f"[all] {result.failure_count} task(s) failed. See logs in {log_dir}",
            "error",
            self.logger,
            self.app_settings,
        )
        return 1
