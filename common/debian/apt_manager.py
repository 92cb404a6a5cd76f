# common/debian/apt_manager.py
# -*- coding: utf-8 -*-
import logging
import subprocess
from contextlib import contextmanager
from typing import Iterator, List, Optional, Union

from common.command_utils import (
    check_package_installed,
    command_exists,
    run_command,
    run_elevated_command,
)
from common.package_lock import PackageManagerLock
from settings.config_models import AppSettings

APT_ENV_PREFIX = ["env", "DEBIAN_FRONTEND=noninteractive"]


class AptManager:
    """
    A manager for Debian apt operations shared by concurrently running
    installers.

    Every mutating operation holds the package-manager lock for its duration.
    The lock is re-entrant, so an installer can also hold it around a block of
    calls with `locked()` to keep another task from interleaving apt work.
    """

    def __init__(
        self,
        package_lock: PackageManagerLock,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initializes the AptManager.
        Args:
            package_lock: The lock serializing package-manager invocations.
            logger: An optional logging object.
        """
        self.package_lock = package_lock
        self.logger = logger or logging.getLogger(__name__)
        if not command_exists("apt-get"):
            self.logger.critical(
                "'apt-get' command not found. This manager cannot function."
            )
            raise FileNotFoundError(
                "'apt-get' not found. Is this a Debian-based system?"
            )

    @contextmanager
    def locked(self) -> Iterator[PackageManagerLock]:
        """Holds the package-manager lock for a block of apt operations."""
        with self.package_lock:
            yield self.package_lock

    def _apt_get(
        self, args: List[str], app_settings: AppSettings
    ) -> subprocess.CompletedProcess:
        with self.package_lock:
            return run_elevated_command(
                APT_ENV_PREFIX + ["apt-get"] + args,
                app_settings,
                current_logger=self.logger,
            )

    def update(self, app_settings: AppSettings) -> None:
        """
        Updates the list of available packages using 'apt-get update'.

        Raises:
            subprocess.CalledProcessError: If apt-get fails.
            PackageLockTimeout: If the lock cannot be obtained.
        """
        self.logger.info("Updating apt package lists via 'apt-get update'...")
        self._apt_get(["update", "-yq"], app_settings)
        self.logger.info("Apt package lists updated successfully.")

    def install(
        self,
        packages: Union[List[str], str],
        app_settings: AppSettings,
        update_first: bool = True,
    ) -> None:
        """
        Installs one or more packages using 'apt-get install'.

        Packages already reported installed by dpkg are skipped. Version pins
        such as ``docker-ce=5:27.3.1-1~ubuntu.20.04~focal`` are always passed
        through to apt-get.

        Args:
            packages: A single package name or a list of package names.
            app_settings: The application settings.
            update_first: Whether to update the package lists before installing.
        """
        if not isinstance(packages, list):
            packages = [packages]

        with self.package_lock:
            if update_first:
                self.update(app_settings)

            packages_to_install = []
            for pkg_name in packages:
                if "=" not in pkg_name and self.is_installed(
                    pkg_name, app_settings
                ):
                    self.logger.info(
                        f"Package '{pkg_name}' is already installed. Skipping."
                    )
                else:
                    packages_to_install.append(pkg_name)

            if not packages_to_install:
                self.logger.info(
                    "All requested packages are already installed."
                )
                return

            self.logger.info(
                f"Committing installation for: {', '.join(packages_to_install)}"
            )
            self._apt_get(["install", "-yq"] + packages_to_install, app_settings)
            self.logger.info("Packages installed successfully.")

    def remove(
        self,
        packages: Union[List[str], str],
        app_settings: AppSettings,
        tolerate_failure: bool = False,
    ) -> bool:
        """
        Removes one or more packages using 'apt-get remove'.

        Args:
            packages: A single package name or a list of package names.
            app_settings: The application settings.
            tolerate_failure: Log a failing removal instead of raising.

        Returns:
            True if apt-get succeeded, False if it failed and failures are
            tolerated.
        """
        if not isinstance(packages, list):
            packages = [packages]

        self.logger.info(f"Committing remove for: {', '.join(packages)}")
        try:
            self._apt_get(["remove", "-yq"] + packages, app_settings)
        except subprocess.CalledProcessError as e:
            if not tolerate_failure:
                raise
            self.logger.warning(f"Ignoring failed package removal: {e}")
            return False
        return True

    def autoremove(
        self, app_settings: AppSettings, tolerate_failure: bool = False
    ) -> bool:
        """
        Removes automatically installed packages that are no longer needed.

        Returns:
            True if apt-get succeeded, False if it failed and failures are
            tolerated.
        """
        self.logger.info("Running autoremove to clean up unused packages...")
        try:
            self._apt_get(["autoremove", "-yq"], app_settings)
        except subprocess.CalledProcessError as e:
            if not tolerate_failure:
                raise
            self.logger.warning(f"Ignoring failed autoremove: {e}")
            return False
        return True

    def add_repository(self, repo_line: str, app_settings: AppSettings) -> None:
        """
        Registers an apt repository with 'add-apt-repository'.

        Args:
            repo_line: A one-line ``deb ...`` source specification.
            app_settings: The application settings.
        """
        self.logger.info(f"Adding repository: {repo_line}")
        with self.package_lock:
            run_elevated_command(
                ["add-apt-repository", "-y", repo_line],
                app_settings,
                current_logger=self.logger,
            )

    def add_key_from_url(self, key_url: str, app_settings: AppSettings) -> None:
        """
        Downloads an armored signing key and imports it with 'apt-key add'.
        """
        self.logger.info(f"Importing apt signing key from {key_url}")
        with self.package_lock:
            key_res = run_command(
                ["curl", "-fsSL", key_url],
                app_settings,
                capture_output=True,
                check=True,
                current_logger=self.logger,
            )
            run_elevated_command(
                ["apt-key", "add", "-"],
                app_settings,
                cmd_input=key_res.stdout,
                capture_output=True,
                current_logger=self.logger,
            )

    def is_installed(self, package_name: str, app_settings: AppSettings) -> bool:
        """True if dpkg reports `package_name` as installed."""
        return check_package_installed(
            package_name, app_settings, current_logger=self.logger
        )
