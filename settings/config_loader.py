# settings/config_loader.py
# -*- coding: utf-8 -*-
"""
Configuration loader for the provisioner.

Handles loading settings from Pydantic model defaults, environment variables,
an optional YAML file and command-line arguments, applying this order of
precedence:
1. Pydantic Model Defaults
2. Environment Variables (loaded by Pydantic's BaseSettings)
3. YAML Configuration File
4. Command-Line Arguments
"""

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from common.exceptions import ConfigError

from .config_models import AppSettings

module_logger = logging.getLogger(__name__)

# CLI dest -> AppSettings field
CLI_FIELD_MAP: Dict[str, str] = {
    "log_dir": "log_dir",
    "work_dir": "work_dir",
    "lock_timeout": "apt_lock_timeout",
    "tail_lines": "stderr_tail_lines",
    "log_prefix": "log_prefix",
}


def _deep_update(
    source: Dict[str, Any], overrides: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Recursively updates `source` with values from `overrides`.

    Nested dictionaries are merged key by key; any other non-None value in
    `overrides` replaces the one in `source`.

    Args:
        source: The dictionary to update in place.
        overrides: Values to apply on top of `source`.

    Returns:
        The updated `source` dictionary.
    """
    for key, value in overrides.items():
        if (
            isinstance(value, dict)
            and key in source
            and isinstance(source[key], dict)
        ):
            source[key] = _deep_update(source[key], value)
        elif value is not None:
            source[key] = value
    return source


def _read_yaml_overlay(
    yaml_config_path: Path, logger_to_use: logging.Logger
) -> Dict[str, Any]:
    if not (yaml_config_path.exists() and yaml_config_path.is_file()):
        logger_to_use.info(
            f"Configuration file '{yaml_config_path}' not found. Using defaults, environment variables, and CLI args."
        )
        return {}

    try:
        with open(yaml_config_path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Could not parse YAML config file '{yaml_config_path}': {e}"
        ) from e
    except OSError as e:
        raise ConfigError(
            f"Could not read config file '{yaml_config_path}': {e}"
        ) from e

    if yaml_data is None:
        return {}
    if not isinstance(yaml_data, dict):
        raise ConfigError(
            f"Config file '{yaml_config_path}' does not contain a YAML mapping."
        )

    logger_to_use.info(f"Loaded configuration from {yaml_config_path}")
    return yaml_data


def load_app_settings(
    cli_args: Optional[argparse.Namespace] = None,
    config_file_path: str = "config.yaml",
    current_logger: Optional[logging.Logger] = None,
) -> AppSettings:
    """
    Loads provisioner settings with the following precedence:
    1. Pydantic Model Defaults (the pinned versions and URLs).
    2. Environment Variables (PROVISION_* read by BaseSettings).
    3. Values from the YAML configuration file, if it exists.
    4. Command-Line Arguments (highest precedence).

    Args:
        cli_args: Parsed command-line arguments (from argparse).
        config_file_path: Path to the optional YAML configuration file.
        current_logger: Optional logger to use instead of the module logger.

    Returns:
        An instance of AppSettings with the fully resolved configuration.

    Raises:
        ConfigError: If the YAML file is malformed or the merged values fail
            validation.
    """
    logger_to_use = current_logger if current_logger else module_logger

    try:
        current_values_dict = AppSettings().model_dump(exclude_defaults=False)
    except ValidationError as e:
        raise ConfigError(f"Invalid environment configuration: {e}") from e

    yaml_data = _read_yaml_overlay(Path(config_file_path), logger_to_use)
    current_values_dict = _deep_update(current_values_dict, yaml_data)

    if cli_args:
        cli_arg_dict = vars(cli_args)
        mapped_cli_values: Dict[str, Any] = {}
        for cli_key, field_name in CLI_FIELD_MAP.items():
            cli_value = cli_arg_dict.get(cli_key)
            if cli_value is not None:
                mapped_cli_values[field_name] = cli_value
        if cli_arg_dict.get("no_daemon"):
            mapped_cli_values["start_daemon"] = False
        current_values_dict = _deep_update(
            current_values_dict, mapped_cli_values
        )

    try:
        return AppSettings.model_validate(current_values_dict)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
