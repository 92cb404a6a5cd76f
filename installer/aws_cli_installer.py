# installer/aws_cli_installer.py
# -*- coding: utf-8 -*-
"""
Handles the installation of the AWS CLI v2 from the official bundle.
"""

import logging
from typing import Optional

from common.command_utils import (
    command_exists,
    log_provisioner,
    run_command,
    run_elevated_command,
    run_version_check,
)
from common.file_utils import ensure_directory, remove_paths
from common.package_lock import PackageManagerLock
from installer.registry import InstallerRegistry
from settings.config_models import AppSettings

module_logger = logging.getLogger(__name__)


@InstallerRegistry.register(
    name="aws_cli", description="AWS CLI v2 from the official zip bundle"
)
def install_aws_cli(
    app_settings: AppSettings,
    package_lock: PackageManagerLock,
    current_logger: Optional[logging.Logger] = None,
) -> None:
    """
    Downloads the pinned AWS CLI bundle into the scratch directory, unpacks it,
    runs its installer and removes the artefacts again.

    The package manager is not involved, so `package_lock` is never taken.

    Raises:
        subprocess.CalledProcessError: If a download or install step fails.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols
    awscli = app_settings.awscli

    work_dir = ensure_directory(app_settings.work_dir, app_settings, logger_to_use)
    zip_path = work_dir / "awscliv2.zip"
    bundle_dir = work_dir / "aws"

    log_provisioner(
        f"{symbols.get('step', '➡️')} Installing AWS CLI {awscli.version}...",
        "info",
        logger_to_use,
        app_settings,
    )
    run_command(
        ["curl", "-sSLo", str(zip_path), awscli.zip_url],
        app_settings,
        current_logger=logger_to_use,
    )
    run_command(
        ["unzip", "-q", "-o", str(zip_path), "-d", str(work_dir)],
        app_settings,
        current_logger=logger_to_use,
    )

    install_cmd = [str(bundle_dir / "install")]
    if command_exists("aws"):
        # aws/install exits non-zero over an existing install without --update
        install_cmd.append("--update")
    run_elevated_command(install_cmd, app_settings, current_logger=logger_to_use)

    remove_paths([bundle_dir, zip_path], app_settings, logger_to_use)
    run_version_check(["aws", "--version"], app_settings, logger_to_use)
    log_provisioner(
        f"{symbols.get('success', '✅')} AWS CLI installed.",
        "success",
        logger_to_use,
        app_settings,
    )
