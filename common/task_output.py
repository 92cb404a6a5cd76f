# common/task_output.py
# -*- coding: utf-8 -*-
"""
Per-task output capture.

Every launched task owns two line fan-outs, one for stdout and one for stderr.
A fan-out prefixes each line with ``[<task>][<stream>]`` and forwards it to
every sink it was built with: the task's append-only log file and the console
of the invoking user. Sinks serialize whole-line writes, so lines coming from
concurrently running tasks never interleave mid-line.

The task currently running on a thread is tracked in a context variable so
that command execution and logging can find the task's streams without them
being passed through every installer function.
"""

import contextvars
import logging
import sys
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Iterator, List, Optional, Sequence, TextIO

STDOUT = "stdout"
STDERR = "stderr"

_current_task_streams: contextvars.ContextVar[Optional["TaskStreams"]] = (
    contextvars.ContextVar("current_task_streams", default=None)
)


class LineSink:
    """A text stream that accepts complete lines, one writer at a time."""

    def __init__(self, stream: TextIO, owns_stream: bool = False):
        self._stream = stream
        self._owns_stream = owns_stream
        self._lock = threading.Lock()
        self.closed = False

    def write_line(self, line: str) -> None:
        with self._lock:
            if self.closed:
                return
            self._stream.write(line)
            self._stream.flush()

    def close(self) -> None:
        with self._lock:
            if self.closed:
                return
            self.closed = True
            if self._owns_stream:
                self._stream.close()


class LineFanout:
    """
    Forwards each line written to it to all of its sinks.

    Args:
        sinks: Destinations of every line, in order.
        prefix: Text put in front of each line, e.g. ``[docker][stderr] ``.
    """

    def __init__(self, sinks: Sequence[LineSink], prefix: str = ""):
        self.sinks: List[LineSink] = list(sinks)
        self.prefix = prefix

    def write_line(self, line: str) -> None:
        stripped = line.rstrip("\r\n")
        formatted = f"{self.prefix}{stripped}\n"
        for sink in self.sinks:
            sink.write_line(formatted)

    def write_text(self, text: str) -> None:
        for line in text.splitlines():
            self.write_line(line)

    def pump(
        self, stream: IO[str], collected: Optional[List[str]] = None
    ) -> None:
        """Copies `stream` line by line until EOF, optionally keeping a copy."""
        with stream:
            for line in iter(stream.readline, ""):
                if collected is not None:
                    collected.append(line)
                self.write_line(line)


def stream_prefix(task_name: str, stream_kind: str) -> str:
    return f"[{task_name}][{stream_kind}] "


@dataclass
class TaskStreams:
    """The stdout and stderr capture of one task."""

    name: str
    stdout: LineFanout
    stderr: LineFanout
    stdout_path: Path
    stderr_path: Path
    _file_sinks: List[LineSink] = field(default_factory=list, repr=False)

    @classmethod
    def open(
        cls,
        name: str,
        log_dir: Path,
        console_out: LineSink,
        console_err: LineSink,
    ) -> "TaskStreams":
        """
        Opens ``<log_dir>/<name>.out`` and ``<log_dir>/<name>.err`` for
        appending and wires them next to the shared console sinks.
        """
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        stdout_path = log_dir / f"{name}.out"
        stderr_path = log_dir / f"{name}.err"

        out_file = LineSink(
            open(stdout_path, "a", encoding="utf-8"), owns_stream=True
        )
        try:
            err_file = LineSink(
                open(stderr_path, "a", encoding="utf-8"), owns_stream=True
            )
        except OSError:
            out_file.close()
            raise

        return cls(
            name=name,
            stdout=LineFanout(
                [out_file, console_out], stream_prefix(name, STDOUT)
            ),
            stderr=LineFanout(
                [err_file, console_err], stream_prefix(name, STDERR)
            ),
            stdout_path=stdout_path,
            stderr_path=stderr_path,
            _file_sinks=[out_file, err_file],
        )

    def close(self) -> None:
        for sink in self._file_sinks:
            sink.close()


def current_task_streams() -> Optional[TaskStreams]:
    """Returns the streams of the task running in this context, if any."""
    return _current_task_streams.get()


@contextmanager
def bind_task_streams(streams: TaskStreams) -> Iterator[TaskStreams]:
    token = _current_task_streams.set(streams)
    try:
        yield streams
    finally:
        _current_task_streams.reset(token)


class TaskStreamHandler(logging.Handler):
    """
    Sends log records emitted while a task runs to that task's streams.

    Records at WARNING and above go to the task's stderr capture, the rest to
    its stdout capture. Records emitted outside of any task are ignored.
    """

    def emit(self, record: logging.LogRecord) -> None:
        streams = current_task_streams()
        if streams is None:
            return
        try:
            msg = self.format(record)
            target = (
                streams.stderr
                if record.levelno >= logging.WARNING
                else streams.stdout
            )
            target.write_text(msg)
        except RecursionError:  # pragma: no cover
            raise
        except Exception:  # pragma: no cover
            self.handleError(record)


class OutsideTaskFilter(logging.Filter):
    """Lets through only records emitted outside of a running task."""

    def filter(self, record: logging.LogRecord) -> bool:
        return current_task_streams() is None


class TaskAwareStream:
    """
    Stand-in for sys.stdout / sys.stderr.

    Text written from a task thread goes, line by line, to that task's
    capture of the same stream. Text written from any other thread passes
    through to `fallback` unchanged.
    """

    def __init__(self, fallback: TextIO, stream_kind: str):
        self.fallback = fallback
        self.stream_kind = stream_kind
        self._pending = threading.local()

    def _fanout(self, streams: TaskStreams) -> LineFanout:
        return streams.stdout if self.stream_kind == STDOUT else streams.stderr

    def write(self, text: str) -> int:
        streams = current_task_streams()
        if streams is None:
            return self.fallback.write(text)

        *lines, rest = (getattr(self._pending, "text", "") + text).split("\n")
        self._pending.text = rest
        fanout = self._fanout(streams)
        for line in lines:
            fanout.write_line(line)
        return len(text)

    def flush(self) -> None:
        streams = current_task_streams()
        if streams is None:
            self.fallback.flush()
            return
        pending = getattr(self._pending, "text", "")
        if pending:
            self._pending.text = ""
            self._fanout(streams).write_line(pending)

    def __getattr__(self, name: str):
        return getattr(self.fallback, name)


def unwrap_console(stream: TextIO) -> TextIO:
    """Returns the real console behind a TaskAwareStream."""
    while isinstance(stream, TaskAwareStream):
        stream = stream.fallback
    return stream


@contextmanager
def capture_task_prints() -> Iterator[None]:
    """Routes print() output of task threads into their captures."""
    saved_out, saved_err = sys.stdout, sys.stderr
    sys.stdout = TaskAwareStream(saved_out, STDOUT)
    sys.stderr = TaskAwareStream(saved_err, STDERR)
    try:
        yield
    finally:
        sys.stdout, sys.stderr = saved_out, saved_err
