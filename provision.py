#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Entry point of the development host provisioner.

Launches every registered installer concurrently, waits for all of them,
reports failures with the tail of their captured stderr and, if every task
succeeded, starts the Docker daemon in the background.
"""

import argparse
import functools
import logging
import sys
from typing import Any, Callable, List, Optional, Tuple

from common.core_utils import setup_logging
from common.exceptions import ConfigError
from common.file_utils import ensure_directory
from common.package_lock import PackageManagerLock
from common.task_output import capture_task_prints
from installer import InstallerRegistry
from orchestration import CompletionAggregator, TaskLauncher, start_daemon
from settings.config_loader import load_app_settings
from settings.config_models import AppSettings

EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130

logger = logging.getLogger("provision")


def parse_args(args: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Args:
        args: Command-line arguments. If None, sys.argv[1:] is used.

    Returns:
        Parsed arguments.
    """
    parser = argparse.ArgumentParser(
        description="Provision a development host: AWS CLI, Node.js via nvm, Docker and the GitHub CLI, installed in parallel."
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose output"
    )
    parser.add_argument(
        "--config-file",
        default="config.yaml",
        help="Optional YAML file overriding the built-in settings (default: %(default)s)",
    )
    parser.add_argument(
        "--log-dir", default=None, help="Directory receiving <task>.out/.err logs"
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional file also receiving the orchestrator's log records",
    )
    parser.add_argument(
        "--work-dir", default=None, help="Scratch directory for downloads"
    )
    parser.add_argument(
        "--lock-timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Maximum wait for the package-manager lock",
    )
    parser.add_argument(
        "--tail-lines",
        type=int,
        default=None,
        metavar="N",
        help="Lines of stderr shown for each failed task",
    )
    parser.add_argument(
        "--only",
        action="append",
        default=None,
        metavar="NAME",
        help="Run only the named task (repeatable)",
    )
    parser.add_argument(
        "--no-daemon",
        action="store_true",
        help="Do not start the daemon after a successful run",
    )
    parser.add_argument(
        "--list", action="store_true", help="List available tasks and exit"
    )
    return parser.parse_args(args)


def build_tasks(
    app_settings: AppSettings,
    package_lock: PackageManagerLock,
    only: Optional[List[str]] = None,
) -> List[Tuple[str, Callable[[], Any]]]:
    """
    Binds every registered installer to the run's settings and lock.

    Args:
        app_settings: The resolved settings.
        package_lock: The lock shared by all tasks of the run.
        only: Optional subset of task names, run in registration order.

    Returns:
        ``(name, unit)`` pairs in launch order.

    Raises:
        ConfigError: If `only` names an unknown task.
    """
    installers = InstallerRegistry.get_all_installers()
    if only:
        unknown = [name for name in only if name not in installers]
        if unknown:
            raise ConfigError(
                f"Unknown task(s): {', '.join(unknown)}. Available: {', '.join(installers)}"
            )

    tasks = []
    for name, install_function in installers.items():
        if only and name not in only:
            continue
        unit = functools.partial(
            install_function,
            app_settings,
            package_lock,
            logging.getLogger(f"installer.{name}"),
        )
        tasks.append((name, unit))
    return tasks


def run_provisioning(
    app_settings: AppSettings,
    tasks: List[Tuple[str, Callable[[], Any]]],
    daemon_starter: Callable[..., Any] = start_daemon,
) -> int:
    """
    Launches `tasks`, waits for all of them and concludes the run.

    Returns:
        0 if every task succeeded, 1 otherwise.
    """
    log_dir = ensure_directory(app_settings.log_dir, app_settings, logger)
    launcher = TaskLauncher(log_dir, app_settings=app_settings, logger=logger)
    registry = launcher.launch_all(tasks)

    aggregator = CompletionAggregator(app_settings=app_settings, logger=logger)
    result = aggregator.wait_all(registry)

    on_success = None
    if app_settings.start_daemon:
        on_success = functools.partial(
            daemon_starter,
            app_settings.daemon_command,
            app_settings=app_settings,
            current_logger=logger,
        )
    return aggregator.conclude(result, log_dir, start_daemon=on_success)


def main(args: Optional[List[str]] = None) -> int:
    """
    Main entry point of the provisioner.

    Args:
        args: Command-line arguments. If None, sys.argv[1:] is used.

    Returns:
        Exit code: 0 on success, 1 if a task failed, 2 for configuration
        errors, 130 when interrupted.
    """
    parsed_args = parse_args(args)
    log_level = logging.DEBUG if parsed_args.verbose else logging.INFO
    setup_logging(log_level=log_level, log_file=parsed_args.log_file)

    try:
        app_settings = load_app_settings(
            cli_args=parsed_args,
            config_file_path=parsed_args.config_file,
            current_logger=logger,
        )
        setup_logging(
            log_level=log_level,
            log_prefix=app_settings.log_prefix,
            symbols=app_settings.symbols,
            log_file=parsed_args.log_file,
        )

        if parsed_args.list:
            logger.info("Available tasks:")
            for name in InstallerRegistry.names():
                logger.info(
                    f"  {name}: {InstallerRegistry.get_description(name)}"
                )
            return 0

        package_lock = PackageManagerLock(
            app_settings.apt_lock_path,
            timeout=app_settings.apt_lock_timeout,
        )
        tasks = build_tasks(app_settings, package_lock, parsed_args.only)
        with capture_task_prints():
            return run_provisioning(app_settings, tasks)

    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR
    except KeyboardInterrupt:
        logger.warning("Interrupted.")
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.exception(f"Error: {str(e)}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
