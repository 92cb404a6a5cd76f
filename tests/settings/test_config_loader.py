import argparse
from pathlib import Path

import pytest

from common.exceptions import ConfigError
from settings.config_loader import _deep_update, load_app_settings
from settings.config_models import (
    APT_LOCK_TIMEOUT_DEFAULT,
    AWSCLI_VERSION_DEFAULT,
    LOG_DIR_DEFAULT,
    STDERR_TAIL_LINES_DEFAULT,
)


def _cli(**overrides):
    values = {
        "log_dir": None,
        "work_dir": None,
        "lock_timeout": None,
        "tail_lines": None,
        "no_daemon": False,
    }
    values.update(overrides)
    return argparse.Namespace(**values)


def test_deep_update_merges_nested_dicts():
    source = {"docker": {"ce_version": "a", "compose_version": "b"}, "x": 1}

    result = _deep_update(source, {"docker": {"ce_version": "c"}, "x": None})

    assert result == {"docker": {"ce_version": "c", "compose_version": "b"}, "x": 1}


def test_defaults_when_nothing_is_configured(tmp_path):
    settings = load_app_settings(
        config_file_path=str(tmp_path / "missing.yaml")
    )

    assert settings.log_dir == LOG_DIR_DEFAULT
    assert settings.apt_lock_timeout == APT_LOCK_TIMEOUT_DEFAULT
    assert settings.stderr_tail_lines == STDERR_TAIL_LINES_DEFAULT
    assert settings.awscli.version == AWSCLI_VERSION_DEFAULT
    assert settings.daemon_command == ["dockerd"]
    assert settings.start_daemon is True
    assert settings.awscli.zip_url.endswith(
        f"awscli-exe-linux-x86_64-{AWSCLI_VERSION_DEFAULT}.zip"
    )


def test_environment_overrides_defaults(monkeypatch, tmp_path):
    monkeypatch.setenv("PROVISION_STDERR_TAIL_LINES", "7")
    monkeypatch.setenv("PROVISION_AWSCLI_VERSION", "2.22.0")

    settings = load_app_settings(
        config_file_path=str(tmp_path / "missing.yaml")
    )

    assert settings.stderr_tail_lines == 7
    assert settings.awscli.version == "2.22.0"


def test_yaml_overrides_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("PROVISION_STDERR_TAIL_LINES", "7")
    config = tmp_path / "config.yaml"
    config.write_text(
        "stderr_tail_lines: 12\n"
        "docker:\n"
        "  compose_version: 2.29.1\n"
    )

    settings = load_app_settings(config_file_path=str(config))

    assert settings.stderr_tail_lines == 12
    assert settings.docker.compose_version == "2.29.1"
    # Untouched nested values keep their defaults.
    assert settings.docker.ubuntu_codename == "focal"


def test_cli_overrides_yaml(tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text("log_dir: /var/log/provision\nstderr_tail_lines: 12\n")

    settings = load_app_settings(
        cli_args=_cli(log_dir=str(tmp_path / "logs"), tail_lines=3, no_daemon=True),
        config_file_path=str(config),
    )

    assert settings.log_dir == Path(tmp_path / "logs")
    assert settings.stderr_tail_lines == 3
    assert settings.start_daemon is False


def test_cli_lock_timeout(tmp_path):
    settings = load_app_settings(
        cli_args=_cli(lock_timeout=30.0),
        config_file_path=str(tmp_path / "missing.yaml"),
    )
    assert settings.apt_lock_timeout == 30.0


def test_malformed_yaml_raises_config_error(tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text("docker: [unclosed\n")

    with pytest.raises(ConfigError, match="Could not parse"):
        load_app_settings(config_file_path=str(config))


def test_non_mapping_yaml_raises_config_error(tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text("- just\n- a list\n")

    with pytest.raises(ConfigError, match="YAML mapping"):
        load_app_settings(config_file_path=str(config))


def test_invalid_values_raise_config_error(tmp_path):
    with pytest.raises(ConfigError, match="Invalid configuration"):
        load_app_settings(
            cli_args=_cli(lock_timeout=0.0),
            config_file_path=str(tmp_path / "missing.yaml"),
        )


def test_empty_daemon_command_rejected(tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text("daemon_command: []\n")

    with pytest.raises(ConfigError):
        load_app_settings(config_file_path=str(config))
