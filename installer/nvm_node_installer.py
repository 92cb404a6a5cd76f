# installer/nvm_node_installer.py
# -*- coding: utf-8 -*-
"""
Handles the installation of Node.js through nvm.
"""
import logging
from typing import Optional

from common.command_utils import log_provisioner, run_command
from common.debian.apt_manager import AptManager
from common.package_lock import PackageManagerLock
from installer.registry import InstallerRegistry
from settings.config_models import AppSettings

module_logger = logging.getLogger(__name__)


def remove_conflicting_node_packages(
    app_settings: AppSettings,
    package_lock: PackageManagerLock,
    current_logger: Optional[logging.Logger] = None,
) -> None:
    """
    Removes apt-provided npm/nodejs so they do not shadow nvm's node on PATH.

    Each removal and the following autoremove run under a single hold of the
    package-manager lock. Failing removals are tolerated.
    """
    logger_to_use = current_logger if current_logger else module_logger
    apt_manager = AptManager(package_lock, logger=logger_to_use)

    for pkg in app_settings.nvm.conflicting_packages:
        if not apt_manager.is_installed(pkg, app_settings):
            continue
        log_provisioner(
            f"{app_settings.symbols.get('package', '📦')} Removing apt-provided '{pkg}'...",
            "info",
            logger_to_use,
            app_settings,
        )
        with apt_manager.locked():
            apt_manager.remove([pkg], app_settings, tolerate_failure=True)
            apt_manager.autoremove(app_settings, tolerate_failure=True)


@InstallerRegistry.register(
    name="nvm_node", description="nvm and the pinned Node.js major release"
)
def install_nvm_node(
    app_settings: AppSettings,
    package_lock: PackageManagerLock,
    current_logger: Optional[logging.Logger] = None,
) -> None:
    """
    Installs nvm from its install script and then the configured Node.js
    major version with it, verifying that node and npm start in a login shell.

    Raises:
        subprocess.CalledProcessError: If the nvm or node installation fails.
        PackageLockTimeout: If removing apt's node packages waits too long.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols
    nvm = app_settings.nvm

    remove_conflicting_node_packages(app_settings, package_lock, logger_to_use)

    log_provisioner(
        f"{symbols.get('step', '➡️')} Installing nvm {nvm.version}...",
        "info",
        logger_to_use,
        app_settings,
    )
    run_command(
        ["bash", "-c", 'set -o pipefail; curl -fsSL "$1" | bash', "nvm-install", nvm.install_url],
        app_settings,
        current_logger=logger_to_use,
    )

    log_provisioner(
        f"{symbols.get('package', '📦')} Installing Node.js {nvm.node_major} with nvm...",
        "info",
        logger_to_use,
        app_settings,
    )
    run_command(
        [
            "bash",
            "-lc",
            'export NVM_DIR="$HOME/.nvm"; . "$NVM_DIR/nvm.sh"; '
            f"nvm install {nvm.node_major}; node -v >/dev/null; npm -v >/dev/null",
        ],
        app_settings,
        current_logger=logger_to_use,
    )
    log_provisioner(
        f"{symbols.get('success', '✅')} Node.js {nvm.node_major} installed via nvm.",
        "success",
        logger_to_use,
        app_settings,
    )
