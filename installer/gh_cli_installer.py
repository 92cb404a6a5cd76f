# installer/gh_cli_installer.py
# -*- coding: utf-8 -*-
"""
Handles the installation of the GitHub CLI from its apt repository.
"""

import logging
import os
import tempfile
from typing import Optional

from common.command_utils import (
    log_provisioner,
    run_command,
    run_elevated_command,
    run_version_check,
)
from common.debian.apt_manager import AptManager
from common.file_utils import ensure_directory, remove_paths
from common.package_lock import PackageManagerLock
from common.system_utils import get_dpkg_architecture
from installer.registry import InstallerRegistry
from settings.config_models import AppSettings

module_logger = logging.getLogger(__name__)


def install_gh_keyring(
    app_settings: AppSettings, current_logger: Optional[logging.Logger] = None
) -> None:
    """
    Downloads the GitHub CLI archive keyring and stores it world-readable.
    """
    logger_to_use = current_logger if current_logger else module_logger
    gh = app_settings.gh
    keyring_path = str(gh.keyring_path)

    run_elevated_command(
        ["mkdir", "-p", "-m", "755", os.path.dirname(keyring_path)],
        app_settings,
        current_logger=logger_to_use,
    )

    work_dir = ensure_directory(app_settings.work_dir, app_settings, logger_to_use)
    fd, temp_key_path = tempfile.mkstemp(prefix="gh-keyring-", dir=work_dir)
    os.close(fd)
    try:
        run_command(
            ["wget", "-nv", "-O", temp_key_path, gh.keyring_url],
            app_settings,
            current_logger=logger_to_use,
        )
        run_elevated_command(
            ["cp", temp_key_path, keyring_path],
            app_settings,
            current_logger=logger_to_use,
        )
        run_elevated_command(
            ["chmod", "go+r", keyring_path],
            app_settings,
            current_logger=logger_to_use,
        )
    finally:
        remove_paths([temp_key_path], app_settings, logger_to_use)


def write_gh_sources_list(
    app_settings: AppSettings, current_logger: Optional[logging.Logger] = None
) -> None:
    """Writes the apt source line of the GitHub CLI repository."""
    logger_to_use = current_logger if current_logger else module_logger
    gh = app_settings.gh
    arch = get_dpkg_architecture(app_settings, logger_to_use)

    run_elevated_command(
        ["mkdir", "-p", "-m", "755", os.path.dirname(str(gh.sources_list_path))],
        app_settings,
        current_logger=logger_to_use,
    )
    run_elevated_command(
        ["tee", str(gh.sources_list_path)],
        app_settings,
        cmd_input=gh.apt_source_line(arch) + "\n",
        capture_output=True,
        current_logger=logger_to_use,
    )


@InstallerRegistry.register(
    name="gh_cli", description="GitHub CLI from cli.github.com"
)
def install_gh_cli(
    app_settings: AppSettings,
    package_lock: PackageManagerLock,
    current_logger: Optional[logging.Logger] = None,
) -> None:
    """
    Installs the GitHub CLI.

    The package-manager lock is held twice: once to install wget, once to
    refresh the lists and install gh after the repository is configured. The
    keyring download in between runs unlocked.

    Raises:
        subprocess.CalledProcessError: If any install step fails.
        PackageLockTimeout: If the apt lock cannot be obtained in time.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols
    apt_manager = AptManager(package_lock, logger=logger_to_use)

    log_provisioner(
        f"{symbols.get('step', '➡️')} Installing GitHub CLI...",
        "info",
        logger_to_use,
        app_settings,
    )
    with apt_manager.locked():
        apt_manager.update(app_settings)
        apt_manager.install(["wget"], app_settings, update_first=False)

    install_gh_keyring(app_settings, logger_to_use)
    write_gh_sources_list(app_settings, logger_to_use)

    with apt_manager.locked():
        apt_manager.update(app_settings)
        apt_manager.install(["gh"], app_settings, update_first=False)

    run_version_check(["gh", "--version"], app_settings, logger_to_use)
    log_provisioner(
        f"{symbols.get('success', '✅')} GitHub CLI installed.",
        "success",
        logger_to_use,
        app_settings,
    )
