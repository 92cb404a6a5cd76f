# tests/installer/test_docker_installer.py
import subprocess
from unittest.mock import call

import pytest

from common.debian.apt_manager import AptManager
from common.package_lock import PackageManagerLock
from installer.docker_installer import (
    install_compose_binary,
    install_docker,
    install_docker_packages,
    select_legacy_iptables,
)


@pytest.fixture
def package_lock(app_settings):
    return PackageManagerLock(app_settings.apt_lock_path, timeout=1)


@pytest.fixture
def mock_apt_manager(mocker):
    mock_apt_manager_instance = mocker.MagicMock(spec=AptManager)
    mocker.patch(
        "installer.docker_installer.AptManager",
        return_value=mock_apt_manager_instance,
    )
    return mock_apt_manager_instance


def test_install_docker_packages_success(
    mocker, app_settings, package_lock, mock_apt_manager, mock_logger
):
    """Test install_docker_packages function successful execution."""
    mocker.patch(
        "installer.docker_installer.get_dpkg_architecture",
        return_value="amd64",
    )

    install_docker_packages(app_settings, package_lock, mock_logger)

    mock_apt_manager.locked.assert_called_once_with()
    mock_apt_manager.update.assert_called_once_with(app_settings)
    mock_apt_manager.add_key_from_url.assert_called_once_with(
        "https://download.docker.com/linux/ubuntu/gpg", app_settings
    )
    mock_apt_manager.add_repository.assert_called_once_with(
        "deb [arch=amd64] https://download.docker.com/linux/ubuntu focal stable",
        app_settings,
    )
    pinned = mock_apt_manager.install.call_args_list[-1].args[0]
    assert "docker-ce=5:27.3.1-1~ubuntu.20.04~focal" in pinned
    assert "docker-ce-cli=5:27.3.1-1~ubuntu.20.04~focal" in pinned
    assert "containerd.io" in pinned


def test_install_docker_packages_gpg_key_failure(
    mocker, app_settings, package_lock, mock_apt_manager, mock_logger
):
    """Test install_docker_packages with failure in adding the GPG key."""
    mocker.patch(
        "installer.docker_installer.get_dpkg_architecture",
        return_value="amd64",
    )
    mock_apt_manager.add_key_from_url.side_effect = (
        subprocess.CalledProcessError(22, ["curl"])
    )

    with pytest.raises(subprocess.CalledProcessError):
        install_docker_packages(app_settings, package_lock, mock_logger)

    mock_apt_manager.add_repository.assert_not_called()
    assert mock_apt_manager.install.call_count == 1


def test_select_legacy_iptables(mocker, app_settings, mock_logger):
    mock_elevated = mocker.patch(
        "installer.docker_installer.run_elevated_command"
    )

    select_legacy_iptables(app_settings, mock_logger)

    assert [c.args[0] for c in mock_elevated.call_args_list] == [
        ["update-alternatives", "--set", "iptables", "/usr/sbin/iptables-legacy"],
        ["update-alternatives", "--set", "ip6tables", "/usr/sbin/ip6tables-legacy"],
    ]


def test_install_compose_binary(mocker, app_settings, mock_logger):
    mocker.patch(
        "installer.docker_installer.get_kernel_identity",
        return_value=("Linux", "x86_64"),
    )
    mock_elevated = mocker.patch(
        "installer.docker_installer.run_elevated_command"
    )

    install_compose_binary(app_settings, mock_logger)

    assert [c.args[0] for c in mock_elevated.call_args_list] == [
        [
            "curl",
            "-fsSL",
            "https://github.com/docker/compose/releases/download/1.29.2/docker-compose-Linux-x86_64",
            "-o",
            "/usr/local/bin/docker-compose",
        ],
        ["chmod", "+x", "/usr/local/bin/docker-compose"],
    ]


def test_install_docker_runs_all_steps(
    mocker, app_settings, package_lock, mock_logger
):
    mock_packages = mocker.patch(
        "installer.docker_installer.install_docker_packages"
    )
    mock_iptables = mocker.patch(
        "installer.docker_installer.select_legacy_iptables"
    )
    mock_compose = mocker.patch(
        "installer.docker_installer.install_compose_binary"
    )
    mock_version = mocker.patch("installer.docker_installer.run_version_check")

    install_docker(app_settings, package_lock, mock_logger)

    mock_packages.assert_called_once_with(app_settings, package_lock, mock_logger)
    mock_iptables.assert_called_once_with(app_settings, mock_logger)
    mock_compose.assert_called_once_with(app_settings, mock_logger)
    mock_version.assert_has_calls(
        [
            call(["docker", "--version"], app_settings, mock_logger),
            call(
                ["/usr/local/bin/docker-compose", "--version"],
                app_settings,
                mock_logger,
            ),
        ]
    )


def test_install_docker_stops_at_first_failure(
    mocker, app_settings, package_lock, mock_logger
):
    mocker.patch(
        "installer.docker_installer.install_docker_packages",
        side_effect=subprocess.CalledProcessError(100, ["apt-get"]),
    )
    mock_compose = mocker.patch(
        "installer.docker_installer.install_compose_binary"
    )

    with pytest.raises(subprocess.CalledProcessError):
        install_docker(app_settings, package_lock, mock_logger)

    mock_compose.assert_not_called()
