# orchestration/daemon.py
# -*- coding: utf-8 -*-
"""
Starts the long-running daemon left behind by a successful run.
"""

import logging
import subprocess
from typing import List, Optional

from common.command_utils import get_elevated_command_prefix, log_provisioner
from settings.config_models import AppSettings

module_logger = logging.getLogger(__name__)


def start_daemon(
    command: List[str],
    app_settings: Optional[AppSettings] = None,
    current_logger: Optional[logging.Logger] = None,
) -> subprocess.Popen:
    """
    Starts `command` detached from the provisioner: in its own session, with
    its standard streams on /dev/null. The process is never waited on.

    Raises:
        FileNotFoundError: If the daemon executable does not exist.
    """
    logger_to_use = current_logger if current_logger else module_logger
    full_command = get_elevated_command_prefix() + list(command)

    proc = subprocess.Popen(
        full_command,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
        close_fds=True,
    )
    log_provisioner(
        f"Started {' '.join(command)} in the background (pid {proc.pid}).",
        "info",
        logger_to_use,
        app_settings,
    )
    return proc
