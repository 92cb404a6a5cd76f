# tests/test_provision.py
import subprocess
import sys

import pytest

import provision
from common.exceptions import ConfigError
from common.package_lock import PackageManagerLock
from common.task_output import TaskAwareStream


@pytest.fixture(autouse=True)
def no_global_logging(mocker):
    """Keep main() from reconfiguring the root logger of the test session."""
    return mocker.patch("provision.setup_logging")


def _cli_args(tmp_path, *extra):
    return [
        "--config-file",
        str(tmp_path / "missing.yaml"),
        "--log-dir",
        str(tmp_path / "logs"),
        "--work-dir",
        str(tmp_path / "work"),
        *extra,
    ]


def test_parse_args_defaults():
    args = provision.parse_args([])

    assert args.config_file == "config.yaml"
    assert args.log_dir is None
    assert args.only is None
    assert args.no_daemon is False
    assert args.list is False
    assert args.log_file is None


def test_parse_args_repeatable_only():
    args = provision.parse_args(["--only", "docker", "--only", "gh_cli"])
    assert args.only == ["docker", "gh_cli"]


def test_build_tasks_binds_settings_and_lock(app_settings, tmp_path):
    package_lock = PackageManagerLock(tmp_path / "apt.lock")

    tasks = provision.build_tasks(app_settings, package_lock)

    assert [name for name, _ in tasks] == [
        "aws_cli",
        "nvm_node",
        "docker",
        "gh_cli",
    ]
    _, docker_unit = tasks[2]
    assert docker_unit.args[0] is app_settings
    assert docker_unit.args[1] is package_lock
    assert docker_unit.args[2].name == "installer.docker"


def test_build_tasks_subset_keeps_launch_order(app_settings, tmp_path):
    package_lock = PackageManagerLock(tmp_path / "apt.lock")

    tasks = provision.build_tasks(
        app_settings, package_lock, only=["gh_cli", "aws_cli"]
    )

    assert [name for name, _ in tasks] == ["aws_cli", "gh_cli"]


def test_build_tasks_unknown_name(app_settings, tmp_path):
    with pytest.raises(ConfigError, match="kubernetes"):
        provision.build_tasks(
            app_settings,
            PackageManagerLock(tmp_path / "apt.lock"),
            only=["kubernetes"],
        )


def test_run_provisioning_success_starts_daemon(mocker, app_settings):
    daemon_starter = mocker.MagicMock()
    tasks = [("A", lambda: None), ("B", lambda: None)]

    exit_status = provision.run_provisioning(app_settings, tasks, daemon_starter)

    assert exit_status == 0
    daemon_starter.assert_called_once_with(
        ["dockerd"], app_settings=app_settings, current_logger=provision.logger
    )
    assert (app_settings.log_dir / "A.out").exists()
    assert (app_settings.log_dir / "B.err").exists()


def test_run_provisioning_failure_skips_daemon(mocker, app_settings):
    daemon_starter = mocker.MagicMock()

    def failing():
        raise subprocess.CalledProcessError(100, ["apt-get", "install"])

    exit_status = provision.run_provisioning(
        app_settings, [("A", lambda: None), ("C", failing)], daemon_starter
    )

    assert exit_status == 1
    daemon_starter.assert_not_called()
    assert "returned non-zero exit status 100" in (
        app_settings.log_dir / "C.err"
    ).read_text()


def test_run_provisioning_missing_daemon_binary_still_succeeds(
    mocker, app_settings
):
    app_settings.daemon_command = ["definitely-not-a-daemon-binary"]
    mocker.patch(
        "orchestration.daemon.get_elevated_command_prefix", return_value=[]
    )

    assert provision.run_provisioning(app_settings, [("A", lambda: None)]) == 0


def test_run_provisioning_daemon_disabled(mocker, app_settings):
    app_settings.start_daemon = False
    daemon_starter = mocker.MagicMock()

    assert provision.run_provisioning(
        app_settings, [("A", lambda: None)], daemon_starter
    ) == 0
    daemon_starter.assert_not_called()


def test_main_list(mocker, tmp_path):
    mock_run = mocker.patch("provision.run_provisioning")

    assert provision.main(_cli_args(tmp_path, "--list")) == 0
    mock_run.assert_not_called()


def test_main_runs_selected_tasks(mocker, tmp_path):
    mock_run = mocker.patch("provision.run_provisioning", return_value=0)

    exit_code = provision.main(
        _cli_args(tmp_path, "--only", "docker", "--no-daemon", "--tail-lines", "9")
    )

    assert exit_code == 0
    app_settings, tasks = mock_run.call_args.args
    assert [name for name, _ in tasks] == ["docker"]
    assert app_settings.start_daemon is False
    assert app_settings.stderr_tail_lines == 9
    assert app_settings.log_dir == tmp_path / "logs"


def test_main_propagates_task_failure(mocker, tmp_path):
    mocker.patch("provision.run_provisioning", return_value=1)

    assert provision.main(_cli_args(tmp_path)) == 1


def test_main_unknown_task_is_config_error(mocker, tmp_path):
    mock_run = mocker.patch("provision.run_provisioning")

    assert provision.main(_cli_args(tmp_path, "--only", "kubernetes")) == 2
    mock_run.assert_not_called()


def test_main_invalid_setting_is_config_error(tmp_path):
    assert provision.main(_cli_args(tmp_path, "--lock-timeout", "0")) == 2


def test_main_bad_yaml_is_config_error(tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text("log_dir: [unclosed\n")

    assert provision.main(["--config-file", str(config)]) == 2


def test_main_keyboard_interrupt(mocker, tmp_path):
    mocker.patch("provision.run_provisioning", side_effect=KeyboardInterrupt)

    assert provision.main(_cli_args(tmp_path)) == 130


def test_main_unexpected_error(mocker, tmp_path):
    mocker.patch(
        "provision.run_provisioning", side_effect=RuntimeError("disk on fire")
    )

    assert provision.main(_cli_args(tmp_path)) == 1


def test_main_passes_log_file_to_logging(mocker, tmp_path, no_global_logging):
    mocker.patch("provision.run_provisioning", return_value=0)
    log_file = str(tmp_path / "provision.log")

    assert provision.main(_cli_args(tmp_path, "--log-file", log_file)) == 0
    for call in no_global_logging.call_args_list:
        assert call.kwargs["log_file"] == log_file


def test_main_runs_tasks_with_prints_captured(mocker, tmp_path):
    seen_streams = []

    def fake_run(app_settings, tasks):
        seen_streams.append(sys.stderr)
        return 0

    mocker.patch("provision.run_provisioning", side_effect=fake_run)

    assert provision.main(_cli_args(tmp_path)) == 0
    assert isinstance(seen_streams[0], TaskAwareStream)
    assert not isinstance(sys.stderr, TaskAwareStream)
