# installer/docker_installer.py
# -*- coding: utf-8 -*-
"""
Handles the installation of Docker Engine and the standalone docker-compose.
"""

import logging
from typing import Optional

from common.command_utils import (
    log_provisioner,
    run_elevated_command,
    run_version_check,
)
from common.debian.apt_manager import AptManager
from common.package_lock import PackageManagerLock
from common.system_utils import get_dpkg_architecture, get_kernel_identity
from installer.registry import InstallerRegistry
from settings.config_models import AppSettings

module_logger = logging.getLogger(__name__)


def install_docker_packages(
    app_settings: AppSettings,
    package_lock: PackageManagerLock,
    current_logger: Optional[logging.Logger] = None,
) -> None:
    """
    Registers Docker's apt repository and installs the pinned engine.

    All apt work runs under one hold of the package-manager lock:
    - refreshes the package lists and installs the repository prerequisites,
    - imports Docker's signing key,
    - adds the Docker repository for this architecture and Ubuntu codename,
    - installs docker-ce and docker-ce-cli at the pinned version together with
      containerd and the buildx/compose plugins.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols
    docker = app_settings.docker

    arch = get_dpkg_architecture(app_settings, logger_to_use)
    apt_manager = AptManager(package_lock, logger=logger_to_use)

    with apt_manager.locked():
        apt_manager.update(app_settings)
        apt_manager.install(
            docker.prerequisite_packages, app_settings, update_first=False
        )
        apt_manager.add_key_from_url(docker.gpg_url, app_settings)
        apt_manager.add_repository(docker.apt_repo_line(arch), app_settings)
        log_provisioner(
            f"{symbols.get('package', '📦')} Installing Docker Engine {docker.ce_version}...",
            "info",
            logger_to_use,
            app_settings,
        )
        apt_manager.install(
            docker.pinned_packages(), app_settings, update_first=False
        )

    log_provisioner(
        f"{symbols.get('success', '✅')} Docker Engine packages installed.",
        "success",
        logger_to_use,
        app_settings,
    )


def select_legacy_iptables(
    app_settings: AppSettings, current_logger: Optional[logging.Logger] = None
) -> None:
    """Points the iptables alternatives at their legacy backends."""
    logger_to_use = current_logger if current_logger else module_logger
    for name, path in app_settings.docker.iptables_backend.items():
        run_elevated_command(
            ["update-alternatives", "--set", name, path],
            app_settings,
            current_logger=logger_to_use,
        )


def install_compose_binary(
    app_settings: AppSettings, current_logger: Optional[logging.Logger] = None
) -> None:
    """Downloads the standalone docker-compose release for this kernel/CPU."""
    logger_to_use = current_logger if current_logger else module_logger
    docker = app_settings.docker
    system, machine = get_kernel_identity()
    target = str(docker.compose_binary_path)

    log_provisioner(
        f"{app_settings.symbols.get('gear', '⚙️')} Installing docker-compose {docker.compose_version} to {target}...",
        "info",
        logger_to_use,
        app_settings,
    )
    run_elevated_command(
        ["curl", "-fsSL", docker.compose_url(system, machine), "-o", target],
        app_settings,
        current_logger=logger_to_use,
    )
    run_elevated_command(
        ["chmod", "+x", target], app_settings, current_logger=logger_to_use
    )


@InstallerRegistry.register(
    name="docker", description="Docker Engine (pinned) and standalone docker-compose"
)
def install_docker(
    app_settings: AppSettings,
    package_lock: PackageManagerLock,
    current_logger: Optional[logging.Logger] = None,
) -> None:
    """
    Installs Docker Engine, switches iptables to the legacy backend and adds
    the standalone docker-compose binary. Version checks are best effort.

    Raises:
        subprocess.CalledProcessError: If any install step fails.
        PackageLockTimeout: If the apt lock cannot be obtained in time.
    """
    logger_to_use = current_logger if current_logger else module_logger

    install_docker_packages(app_settings, package_lock, logger_to_use)
    select_legacy_iptables(app_settings, logger_to_use)
    install_compose_binary(app_settings, logger_to_use)

    run_version_check(["docker", "--version"], app_settings, logger_to_use)
    run_version_check(
        [str(app_settings.docker.compose_binary_path), "--version"],
        app_settings,
        logger_to_use,
    )
