# common/package_lock.py
# -*- coding: utf-8 -*-
"""
Named advisory lock serializing package-manager use.

apt and dpkg cannot safely run twice at once, yet the installers run
concurrently. Every task that touches the package manager goes through one
PackageManagerLock, backed by ``fcntl.flock`` on a shared lock file with a
bounded wait. Each acquisition opens its own file description, so the lock
excludes other threads of this process as well as other processes using the
same path. The lock is re-entrant within a thread.
"""

import fcntl
import logging
import os
import threading
import time
from pathlib import Path
from typing import Optional, Union

from common.exceptions import PackageLockTimeout

module_logger = logging.getLogger(__name__)


class PackageManagerLock:
    """
    Advisory mutual exclusion for package-manager invocations.

    Args:
        lock_path: The lock file. Created if missing.
        timeout: Seconds to wait for the lock before giving up.
        poll_interval: Seconds between acquisition attempts while waiting.
        logger: Optional logger instance.
    """

    def __init__(
        self,
        lock_path: Union[str, Path],
        timeout: float = 1200.0,
        poll_interval: float = 0.5,
        logger: Optional[logging.Logger] = None,
    ):
        self.lock_path = Path(lock_path)
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.logger = logger or module_logger
        self._local = threading.local()

    def held(self) -> bool:
        """True if the calling thread currently holds the lock."""
        return getattr(self._local, "depth", 0) > 0

    def acquire(self) -> None:
        """
        Blocks until the lock is held by the calling thread.

        Raises:
            PackageLockTimeout: If the lock is still taken after `timeout`.
        """
        if self.held():
            self._local.depth += 1
            return

        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.lock_path), os.O_CREAT | os.O_RDWR, 0o666)
        deadline = time.monotonic() + self.timeout
        announced = False
        try:
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise PackageLockTimeout(
                            str(self.lock_path), self.timeout
                        )
                    if not announced:
                        self.logger.info(
                            f"Waiting for package-manager lock {self.lock_path}..."
                        )
                        announced = True
                    time.sleep(min(self.poll_interval, remaining))
        except BaseException:
            os.close(fd)
            raise

        self._local.fd = fd
        self._local.depth = 1
        self.logger.debug(f"Acquired package-manager lock {self.lock_path}")

    def release(self) -> None:
        if not self.held():
            raise RuntimeError("release() called on an unheld package lock")

        self._local.depth -= 1
        if self._local.depth:
            return

        fd = self._local.fd
        self._local.fd = None
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
        self.logger.debug(f"Released package-manager lock {self.lock_path}")

    def __enter__(self) -> "PackageManagerLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.release()
