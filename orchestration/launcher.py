# orchestration/launcher.py
# -*- coding: utf-8 -*-
"""
Task registry and launcher.

The launcher starts every registered unit of work on its own thread right
away; nothing is queued or throttled. Each task gets its own stdout/stderr
capture (see common/task_output.py) and the launcher records the task under
its handle in a TaskRegistry that the completion aggregator later walks in
launch order.
"""

import logging
import subprocess
import sys
import threading
import time
import traceback
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, TextIO, Tuple

from common.command_utils import log_provisioner
from common.exceptions import (
    DuplicateTaskError,
    PackageLockTimeout,
    ProvisionError,
)
from common.task_output import (
    LineSink,
    TaskStreams,
    bind_task_streams,
    unwrap_console,
)
from settings.config_models import AppSettings

module_logger = logging.getLogger(__name__)

UnitOfWork = Callable[[], Any]


def exit_status_of(unit: UnitOfWork, streams: TaskStreams) -> int:
    """
    Runs `unit` and converts how it ended into a process-style exit status.

    - normal return: 0, unless the unit returned False (1)
    - SystemExit: its code (None is 0, a non-integer code is 1)
    - CalledProcessError: the failed command's return code
    - any other exception: 1, with the traceback written to the task's stderr
    """
    try:
        result = unit()
    except SystemExit as e:
        if e.code is None:
            return 0
        if isinstance(e.code, int):
            return e.code
        streams.stderr.write_text(str(e.code))
        return 1
    except subprocess.CalledProcessError as e:
        streams.stderr.write_line(f"task failed: {e}")
        return e.returncode or 1
    except PackageLockTimeout as e:
        streams.stderr.write_line(f"task failed: {e}")
        return 1
    except Exception:
        streams.stderr.write_text(traceback.format_exc())
        return 1
    return 1 if result is False else 0


class TaskHandle:
    """
    The launched execution of one task.

    Identity is the handle itself; two tasks never share a handle even if a
    caller reuses a name across separate runs.
    """

    def __init__(self, name: str, unit: UnitOfWork, streams: TaskStreams):
        self.name = name
        self.streams = streams
        self._unit = unit
        self._exit_status: Optional[int] = None
        self._started_at: Optional[float] = None
        self._duration_s: Optional[float] = None
        self._thread = threading.Thread(
            target=self._run, name=f"task-{name}"
        )

    def _run(self) -> None:
        self._started_at = time.monotonic()
        try:
            with bind_task_streams(self.streams):
                self._exit_status = exit_status_of(self._unit, self.streams)
                # Partial lines printed by the unit belong to this task.
                sys.stdout.flush()
                sys.stderr.flush()
        finally:
            self._duration_s = time.monotonic() - self._started_at
            self.streams.close()

    def start(self) -> None:
        self._thread.start()

    @property
    def ident(self) -> Optional[int]:
        return self._thread.ident

    def join(self) -> int:
        """Blocks until the task is terminal and returns its exit status."""
        self._thread.join()
        if self._exit_status is None:
            # The thread died outside exit_status_of, e.g. closing a log file.
            self._exit_status = 1
        return self._exit_status

    @property
    def exit_status(self) -> Optional[int]:
        return self._exit_status

    @property
    def duration_s(self) -> float:
        return self._duration_s or 0.0

    def __repr__(self) -> str:
        return f"TaskHandle(name={self.name!r}, ident={self.ident})"


class TaskRegistry:
    """
    Launched tasks keyed by handle, with the task name as label.

    Iteration yields ``(handle, name)`` pairs in launch order. Once sealed the
    registry is read-only.
    """

    def __init__(self) -> None:
        self._names_by_handle: Dict[TaskHandle, str] = {}
        self._sealed = False

    def add(self, handle: TaskHandle, name: str) -> None:
        if self._sealed:
            raise ProvisionError("The launch phase is over; no task can be added")
        if self.has_name(name):
            raise DuplicateTaskError(name)
        self._names_by_handle[handle] = name

    def has_name(self, name: str) -> bool:
        return name in self._names_by_handle.values()

    def seal(self) -> None:
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def names(self) -> List[str]:
        return list(self._names_by_handle.values())

    def __iter__(self) -> Iterator[Tuple[TaskHandle, str]]:
        return iter(list(self._names_by_handle.items()))

    def __len__(self) -> int:
        return len(self._names_by_handle)

    def __contains__(self, handle: object) -> bool:
        return handle in self._names_by_handle


class TaskLauncher:
    """
    Starts named units of work concurrently and records their handles.

    Args:
        log_dir: Directory receiving ``<name>.out`` and ``<name>.err``.
        app_settings: Optional settings providing the logging symbols.
        console_out: Stream echoing captured stdout lines. Defaults to
            sys.stdout at construction time.
        console_err: Stream echoing captured stderr lines. Defaults to
            sys.stderr at construction time.
        logger: Optional logger instance.
    """

    def __init__(
        self,
        log_dir: Path,
        app_settings: Optional[AppSettings] = None,
        console_out: Optional[TextIO] = None,
        console_err: Optional[TextIO] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.log_dir = Path(log_dir)
        self.app_settings = app_settings
        self.logger = logger or module_logger
        self.registry = TaskRegistry()
        self._console_out = LineSink(unwrap_console(console_out or sys.stdout))
        self._console_err = LineSink(unwrap_console(console_err or sys.stderr))

    def launch(self, name: str, unit: UnitOfWork) -> TaskHandle:
        """
        Starts `unit` on its own thread and registers it under `name`.

        Returns:
            The handle to wait on. Success is only known after waiting.

        Raises:
            DuplicateTaskError: If `name` was already launched in this run.
            ProvisionError: If the registry was sealed by the aggregator.
        """
        if self.registry.sealed:
            raise ProvisionError("The launch phase is over; no task can be added")
        if self.registry.has_name(name):
            raise DuplicateTaskError(name)

        streams = TaskStreams.open(
            name, self.log_dir, self._console_out, self._console_err
        )
        handle = TaskHandle(name, unit, streams)
        self.registry.add(handle, name)
        handle.start()

        log_provisioner(
            f"[{name}] started (thread {handle.ident}). Logs: {streams.stdout_path} | {streams.stderr_path}",
            "info",
            self.logger,
            self.app_settings,
        )
        return handle

    def launch_all(self, tasks: List[Tuple[str, UnitOfWork]]) -> TaskRegistry:
        """Launches every ``(name, unit)`` pair, in order, and returns the registry."""
        names = [name for name, _ in tasks]
        for name in names:
            if names.count(name) > 1 or self.registry.has_name(name):
                raise DuplicateTaskError(name)
        for name, unit in tasks:
            self.launch(name, unit)
        return self.registry
