# common/command_utils.py
# -*- coding: utf-8 -*-
"""
Utilities for executing shell commands and logging their output.

When a command runs inside a launched task, its output is streamed line by
line into that task's stdout/stderr capture instead of the parent's streams.
"""

import logging
import os
import shutil
import subprocess
import threading
from typing import Dict, List, Optional, Union

from common.task_output import TaskStreams, current_task_streams
from settings.config_models import SYMBOLS_DEFAULT, AppSettings

module_logger = logging.getLogger(__name__)


def _symbols(app_settings: Optional[AppSettings]) -> Dict[str, str]:
    return (
        app_settings.symbols
        if app_settings and app_settings.symbols
        else SYMBOLS_DEFAULT
    )


def log_provisioner(
    message: str,
    level: str = "info",
    current_logger: Optional[logging.Logger] = None,
    app_settings: Optional[AppSettings] = None,
    exc_info: bool = False,
) -> None:
    """
    Logs a provisioner message at the named level.

    Args:
        message: The log message to be recorded.
        level: "debug", "info", "success", "warning", "error" or "critical".
            "success" is logged at INFO level. Unknown levels fall back to INFO.
        current_logger: The logger to use. Defaults to the module logger.
        app_settings: Optional settings, accepted for symmetry with the other
            helpers of this module.
        exc_info: Whether to attach the current exception to the record.
    """
    effective_logger = current_logger if current_logger else module_logger

    if level == "warning":
        effective_logger.warning(message, exc_info=exc_info)
    elif level == "error":
        effective_logger.error(message, exc_info=exc_info)
    elif level == "critical":
        effective_logger.critical(message, exc_info=exc_info)
    elif level == "debug":
        effective_logger.debug(message, exc_info=exc_info)
    else:
        effective_logger.info(message, exc_info=exc_info)


def get_elevated_command_prefix() -> List[str]:
    """
    Returns ["sudo"] unless the process already runs as root.
    """
    return [] if os.geteuid() == 0 else ["sudo"]


def _run_streamed(
    command: Union[List[str], str],
    streams: TaskStreams,
    shell: bool,
    capture_output: bool,
    cmd_input: Optional[str],
    cwd: Optional[str],
    env: Optional[Dict[str, str]],
) -> subprocess.CompletedProcess:
    """
    Runs `command` with its output pumped into the task's streams.

    Both streams reach the task's captures unless `capture_output` is set, in
    which case they are only collected and returned.
    """
    stdout_lines: List[str] = []
    stderr_lines: List[str] = []

    with subprocess.Popen(
        command,
        shell=shell,
        stdin=subprocess.PIPE if cmd_input is not None else subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
        cwd=cwd,
        env=env,
    ) as proc:
        if capture_output:
            pumps = [
                threading.Thread(
                    target=_collect, args=(pipe, lines), daemon=True
                )
                for pipe, lines in (
                    (proc.stdout, stdout_lines),
                    (proc.stderr, stderr_lines),
                )
            ]
        else:
            pumps = [
                threading.Thread(target=fanout.pump, args=(pipe,), daemon=True)
                for pipe, fanout in (
                    (proc.stdout, streams.stdout),
                    (proc.stderr, streams.stderr),
                )
            ]
        for pump in pumps:
            pump.start()

        if cmd_input is not None and proc.stdin is not None:
            try:
                proc.stdin.write(cmd_input)
            except BrokenPipeError:
                pass
            finally:
                try:
                    proc.stdin.close()
                except BrokenPipeError:
                    pass

        returncode = proc.wait()
        for pump in pumps:
            pump.join()

    return subprocess.CompletedProcess(
        command,
        returncode,
        "".join(stdout_lines) if capture_output else None,
        "".join(stderr_lines) if capture_output else None,
    )


def _collect(stream, collected: List[str]) -> None:
    with stream:
        for line in iter(stream.readline, ""):
            collected.append(line)


def run_command(
    command: Union[List[str], str],
    app_settings: Optional[AppSettings],
    check: bool = True,
    shell: bool = False,
    capture_output: bool = False,
    text: bool = True,
    cmd_input: Optional[str] = None,
    current_logger: Optional[logging.Logger] = None,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
) -> subprocess.CompletedProcess:
    """
    Executes a system command and logs the process details and results.

    Inside a launched task the command's output is streamed into the task's
    captured stdout/stderr; outside a task it behaves like subprocess.run.

    Args:
        command: The command to execute, as a list or as a string. With
            shell=True a list is joined into a single string.
        app_settings: Optional settings providing the logging symbols.
        check: Raise CalledProcessError on a non-zero exit code.
        shell: Execute through the shell.
        capture_output: Collect stdout and stderr and return them.
        text: Decode output as text (outside of a task only; task output is
            always decoded as UTF-8).
        cmd_input: Data written to the command's standard input.
        current_logger: Logger to use. Defaults to the module logger.
        cwd: Working directory of the command.
        env: Environment of the command. Defaults to the inherited one.

    Returns:
        subprocess.CompletedProcess: The finished process.

    Raises:
        subprocess.CalledProcessError: If check is True and the command fails.
        FileNotFoundError: If the executable does not exist.
    """
    effective_logger = current_logger if current_logger else module_logger
    symbols = _symbols(app_settings)
    command_to_log_str: str
    command_to_run: Union[List[str], str]

    if shell:
        if isinstance(command, list):
            command_to_run = " ".join(command)
        else:
            command_to_run = command
        command_to_log_str = str(command_to_run)
    else:
        if isinstance(command, str):
            log_provisioner(
                f"{symbols.get('warning', '!')} Running string command '{command}' without shell=True. Consider list format.",
                "warning",
                effective_logger,
                app_settings,
            )
            command_to_run = command.split()
            command_to_log_str = command
        else:
            command_to_run = list(command)
            command_to_log_str = subprocess.list2cmdline(command_to_run)

    log_provisioner(
        f"{symbols.get('gear', '⚙️')} Executing: {command_to_log_str} {f'(in {cwd})' if cwd else ''}".rstrip(),
        "info",
        effective_logger,
        app_settings,
    )
    streams = current_task_streams()
    try:
        if streams is None:
            result = subprocess.run(
                command_to_run,
                check=check,
                shell=shell,
                capture_output=capture_output,
                text=text,
                input=cmd_input,
                cwd=cwd,
                env=env,
            )
        else:
            result = _run_streamed(
                command_to_run,
                streams,
                shell=shell,
                capture_output=capture_output,
                cmd_input=cmd_input,
                cwd=cwd,
                env=env,
            )
            if check and result.returncode != 0:
                raise subprocess.CalledProcessError(
                    result.returncode,
                    command_to_run,
                    output=result.stdout,
                    stderr=result.stderr,
                )
        if capture_output and result.stdout and result.stdout.strip():
            log_provisioner(
                f"   stdout: {result.stdout.strip()}",
                "debug",
                effective_logger,
                app_settings,
            )
        return result
    except subprocess.CalledProcessError as e:
        cmd_executed_str = (
            subprocess.list2cmdline(e.cmd)
            if isinstance(e.cmd, list)
            else str(e.cmd)
        )
        log_provisioner(
            f"{symbols.get('error', '❌')} Command `{cmd_executed_str}` failed (rc {e.returncode}).",
            "error",
            effective_logger,
            app_settings,
        )
        if streams is not None:
            # Collected stderr reaches the task's capture only on failure.
            if capture_output and e.stderr:
                streams.stderr.write_text(e.stderr)
        elif e.stderr and hasattr(e.stderr, "strip"):
            log_provisioner(
                f"   stderr: {e.stderr.strip()}",
                "error",
                effective_logger,
                app_settings,
            )
        raise
    except FileNotFoundError as e:
        log_provisioner(
            f"{symbols.get('error', '❌')} Command not found: {e.filename}. Ensure it's installed and in PATH.",
            "error",
            effective_logger,
            app_settings,
        )
        raise


def run_elevated_command(
    command: List[str],
    app_settings: Optional[AppSettings],
    check: bool = True,
    capture_output: bool = False,
    cmd_input: Optional[str] = None,
    current_logger: Optional[logging.Logger] = None,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
) -> subprocess.CompletedProcess:
    """
    Executes a command with root privileges, prefixing it with sudo when the
    process is not already root. Arguments are those of run_command.
    """
    prefix = get_elevated_command_prefix()
    elevated_command_list = prefix + list(command)
    return run_command(
        elevated_command_list,
        app_settings,
        check=check,
        shell=False,
        capture_output=capture_output,
        text=True,
        cmd_input=cmd_input,
        current_logger=current_logger,
        cwd=cwd,
        env=env,
    )


def run_version_check(
    command: List[str],
    app_settings: Optional[AppSettings],
    current_logger: Optional[logging.Logger] = None,
) -> Optional[str]:
    """
    Best-effort verification that a freshly installed tool runs.

    Never raises: a missing binary or a non-zero exit is logged as a warning.

    Returns:
        The first line the tool printed, or None if the check failed.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = _symbols(app_settings)
    try:
        result = run_command(
            command,
            app_settings,
            check=False,
            capture_output=True,
            current_logger=logger_to_use,
        )
    except OSError as e:
        log_provisioner(
            f"{symbols.get('warning', '!')} Could not verify `{' '.join(command)}`: {e}",
            "warning",
            logger_to_use,
            app_settings,
        )
        return None

    if result.returncode != 0:
        log_provisioner(
            f"{symbols.get('warning', '!')} `{' '.join(command)}` exited with {result.returncode}; installation not verified.",
            "warning",
            logger_to_use,
            app_settings,
        )
        return None

    output = (result.stdout or "").strip() or (result.stderr or "").strip()
    version = output.splitlines()[0] if output else ""
    log_provisioner(
        f"{symbols.get('success', '✅')} `{' '.join(command)}`: {version or 'ok'}",
        "success",
        logger_to_use,
        app_settings,
    )
    return version


def command_exists(command_name: str) -> bool:
    """
    Check if a command exists in the system's PATH.
    """
    return shutil.which(command_name) is not None


def check_package_installed(
    package_name: str,
    app_settings: Optional[AppSettings],
    current_logger: Optional[logging.Logger] = None,
) -> bool:
    """
    Checks with `dpkg-query` whether a Debian package is installed.

    Args:
        package_name: The name of the package to check.
        app_settings: Optional settings providing the logging symbols.
        current_logger: Logger to use. Defaults to the module logger.

    Returns:
        True if dpkg reports "install ok installed" for the package.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = _symbols(app_settings)
    try:
        result = run_command(
            ["dpkg-query", "-W", "-f=${Status}", package_name],
            app_settings,
            check=False,
            capture_output=True,
            text=True,
            current_logger=logger_to_use,
        )
        return (
            result.returncode == 0
            and "install ok installed" in (result.stdout or "")
        )
    except FileNotFoundError:
        log_provisioner(
            f"{symbols.get('error', '❌')} dpkg-query command not found. Cannot check package '{package_name}'.",
            "error",
            logger_to_use,
            app_settings,
        )
        return False
