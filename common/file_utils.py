# common/file_utils.py
# -*- coding: utf-8 -*-
"""
File system helpers: scratch directories, artefact cleanup and log tails.
"""

import logging
import shutil
from collections import deque
from pathlib import Path
from typing import Iterable, List, Optional

from settings.config_models import SYMBOLS_DEFAULT, AppSettings

from .command_utils import log_provisioner

module_logger = logging.getLogger(__name__)


def ensure_directory(
    directory_path: Path,
    app_settings: Optional[AppSettings] = None,
    current_logger: Optional[logging.Logger] = None,
) -> Path:
    """
    Creates `directory_path` (and its parents) if it does not exist yet.

    Returns:
        The directory path.
    """
    logger_to_use = current_logger if current_logger else module_logger
    directory_path = Path(directory_path)
    if not directory_path.is_dir():
        directory_path.mkdir(parents=True, exist_ok=True)
        log_provisioner(
            f"Created directory: {directory_path}",
            "debug",
            logger_to_use,
            app_settings,
        )
    return directory_path


def remove_paths(
    paths: Iterable[Path],
    app_settings: Optional[AppSettings] = None,
    current_logger: Optional[logging.Logger] = None,
) -> None:
    """
    Removes transient download artefacts, files and directory trees alike.

    Missing paths are ignored. A path that cannot be removed is reported as a
    warning; leftover scratch files never fail a task.

    Parameters:
        paths: Files or directories to delete.
        app_settings: Optional settings providing the logging symbols.
        current_logger: Logger to use. Defaults to the module logger.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = (
        app_settings.symbols
        if app_settings and app_settings.symbols
        else SYMBOLS_DEFAULT
    )

    for path in paths:
        path = Path(path)
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            elif path.exists() or path.is_symlink():
                path.unlink()
            else:
                continue
            log_provisioner(
                f"Removed {path}", "debug", logger_to_use, app_settings
            )
        except OSError as e:
            log_provisioner(
                f"{symbols.get('warning', '!')} Could not remove {path}: {e}",
                "warning",
                logger_to_use,
                app_settings,
            )


def tail_lines(file_path: Path, count: int) -> List[str]:
    """
    Returns the last `count` lines of a text file, without line endings.

    A missing file, or a count of zero, yields an empty list.
    """
    if count <= 0:
        return []
    try:
        with open(file_path, "r", encoding="utf-8", errors="replace") as f:
            return [line.rstrip("\r\n") for line in deque(f, maxlen=count)]
    except FileNotFoundError:
        return []
