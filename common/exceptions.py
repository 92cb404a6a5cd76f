# common/exceptions.py
# -*- coding: utf-8 -*-
"""
Exception hierarchy for the host provisioner.
"""


class ProvisionError(Exception):
    """Base class for provisioner errors."""


class ConfigError(ProvisionError):
    """Raised when settings cannot be loaded or fail validation."""


class DuplicateTaskError(ProvisionError):
    """Raised when a task name is registered twice in one run."""

    def __init__(self, name: str):
        super().__init__(f"Task '{name}' is already registered for this run")
        self.name = name


class TaskAlreadyReportedError(ProvisionError):
    """Raised when a launched task is waited on a second time."""

    def __init__(self, name: str):
        super().__init__(f"Task '{name}' has already been waited on")
        self.name = name


class PackageLockTimeout(ProvisionError):
    """Raised when the package-manager lock is not obtained in time."""

    def __init__(self, lock_path: str, timeout: float):
        super().__init__(
            f"Could not acquire package-manager lock {lock_path} within {timeout:g}s"
        )
        self.lock_path = lock_path
        self.timeout = timeout
