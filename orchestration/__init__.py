"""
Parallel task runner: launch named units of work concurrently, wait for all
of them, aggregate their outcomes.
"""

from orchestration.aggregator import CompletionAggregator, RunResult, TaskOutcome
from orchestration.daemon import start_daemon
from orchestration.launcher import TaskHandle, TaskLauncher, TaskRegistry

__all__ = [
    "CompletionAggregator",
    "RunResult",
    "TaskOutcome",
    "TaskHandle",
    "TaskLauncher",
    "TaskRegistry",
    "start_daemon",
]
