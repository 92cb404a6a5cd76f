# common/system_utils.py
# -*- coding: utf-8 -*-
"""
System information helpers used to fill in repository lines and download URLs.
"""

import logging
import platform
from typing import Optional, Tuple

from common.command_utils import run_command
from settings.config_models import AppSettings

module_logger = logging.getLogger(__name__)


def get_dpkg_architecture(
    app_settings: Optional[AppSettings],
    current_logger: Optional[logging.Logger] = None,
) -> str:
    """
    Get the Debian architecture name (e.g. 'amd64', 'arm64').

    Raises:
        subprocess.CalledProcessError: If dpkg fails.
        FileNotFoundError: If dpkg is not installed.
        EnvironmentError: If dpkg prints nothing.
    """
    logger_to_use = current_logger if current_logger else module_logger
    result = run_command(
        ["dpkg", "--print-architecture"],
        app_settings,
        capture_output=True,
        check=True,
        current_logger=logger_to_use,
    )
    arch = (result.stdout or "").strip()
    if not arch:
        raise EnvironmentError("dpkg did not report an architecture.")
    return arch


def get_kernel_identity() -> Tuple[str, str]:
    """
    Returns the ``(uname -s, uname -m)`` pair, e.g. ``("Linux", "x86_64")``,
    as used in release asset names.
    """
    return platform.system(), platform.machine()
