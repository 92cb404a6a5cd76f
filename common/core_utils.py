#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Logging setup shared by the provisioner entry point and the launched tasks.

The orchestrating thread logs to the console (and optionally a file). A task
thread logs into its own captured streams: its records are written to
``<log_dir>/<task>.out`` or ``.err`` and echoed with a ``[task][stream]``
prefix, so the console handler skips them.
"""

import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from common.task_output import OutsideTaskFilter, TaskStreamHandler
from settings.config_models import SYMBOLS_DEFAULT

module_logger = logging.getLogger(__name__)

CONSOLE_LOG_FORMAT = (
    "%(asctime)s - %(levelname)s - %(symbol)s %(name)s - %(message)s"
)
TASK_LOG_FORMAT = "%(levelname)s %(symbol)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# levelno -> (symbols key, fallback)
_LEVEL_SYMBOLS: Dict[int, Tuple[str, str]] = {
    logging.DEBUG: ("debug", "🐛"),
    logging.INFO: ("info", "ℹ️"),
    logging.WARNING: ("warning", "⚠️"),
    logging.ERROR: ("error", "❌"),
    logging.CRITICAL: ("critical", "🔥"),
}


class SymbolFormatter(logging.Formatter):
    """
    A formatter exposing a per-level emoji as ``%(symbol)s``.
    """

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        symbols: Optional[Dict[str, str]] = None,
    ):
        super().__init__(fmt, datefmt)
        self.symbols = symbols or SYMBOLS_DEFAULT

    def format(self, record: logging.LogRecord) -> str:
        key, fallback = _LEVEL_SYMBOLS.get(record.levelno, ("", ""))
        record.symbol = self.symbols.get(key, fallback) if key else ""
        return super().format(record)


def console_format(log_prefix: Optional[str] = None) -> str:
    """Returns the console format, led by `log_prefix` when one is set."""
    prefix = log_prefix.strip() if log_prefix else ""
    return f"{prefix} {CONSOLE_LOG_FORMAT}" if prefix else CONSOLE_LOG_FORMAT


def setup_logging(
    log_level: int = logging.INFO,
    log_prefix: Optional[str] = None,
    symbols: Optional[Dict[str, str]] = None,
    log_file: Optional[str] = None,
) -> None:
    """
    Replaces the root logger's handlers with the provisioner's.

    Args:
        log_level: Level of the root logger.
        log_prefix: Optional text leading every console and file line.
        symbols: Level symbols for the SymbolFormatter.
        log_file: Optional file receiving the orchestrator's records too.
    """
    formatter = SymbolFormatter(
        fmt=console_format(log_prefix), datefmt=DATE_FORMAT, symbols=symbols
    )

    outside_handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_file_path = Path(log_file)
        try:
            log_file_path.parent.mkdir(parents=True, exist_ok=True)
            outside_handlers.append(logging.FileHandler(log_file_path, mode="a"))
        except OSError as e:
            print(
                f"Warning: Could not create file handler for log file {log_file}: {e}",
                file=sys.stderr,
            )

    for handler in outside_handlers:
        handler.setFormatter(formatter)
        handler.addFilter(OutsideTaskFilter())

    task_handler = TaskStreamHandler()
    task_handler.setFormatter(
        SymbolFormatter(fmt=TASK_LOG_FORMAT, symbols=symbols)
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
    for handler in outside_handlers + [task_handler]:
        root_logger.addHandler(handler)

    module_logger.debug(
        f"Logging configured. Level: {logging.getLevelName(log_level)}."
    )
