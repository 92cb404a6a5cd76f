# settings/config_models.py
# -*- coding: utf-8 -*-
"""
Pydantic models for provisioner configuration.

This module defines the pinned versions, download URLs and working paths used
to provision a development host. The module-level constants are the defaults;
environment variables, a YAML overlay and command-line flags may override
them (see settings/config_loader.py).
"""

from pathlib import Path
from typing import Dict, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Default Static Values (can be overridden by config file/env/cli) ---
WORK_DIR_DEFAULT: Path = Path("/tmp/setup_work")
LOG_DIR_DEFAULT: Path = Path("/tmp/install_logs")
APT_LOCK_PATH_DEFAULT: Path = Path("/tmp/apt-seq.lock")
# Bounded wait on the package-manager lock (20 minutes).
APT_LOCK_TIMEOUT_DEFAULT: float = 1200.0
STDERR_TAIL_LINES_DEFAULT: int = 40
DAEMON_COMMAND_DEFAULT: List[str] = ["dockerd"]
LOG_PREFIX_DEFAULT: str = "[HOST-SETUP]"

AWSCLI_VERSION_DEFAULT: str = "2.21.3"
AWSCLI_ZIP_URL_TEMPLATE_DEFAULT: str = (
    "https://awscli.amazonaws.com/awscli-exe-linux-x86_64-{version}.zip"
)

NVM_VERSION_DEFAULT: str = "v0.40.3"
NVM_INSTALL_URL_TEMPLATE_DEFAULT: str = (
    "https://raw.githubusercontent.com/nvm-sh/nvm/{version}/install.sh"
)
NODE_MAJOR_DEFAULT: str = "24"

UBUNTU_CODENAME_DEFAULT: str = "focal"
DOCKER_CE_VERSION_DEFAULT: str = "5:27.3.1-1~ubuntu.20.04~focal"
DOCKER_GPG_URL_DEFAULT: str = "https://download.docker.com/linux/ubuntu/gpg"
DOCKER_REPO_URL_DEFAULT: str = "https://download.docker.com/linux/ubuntu"
DOCKER_COMPOSE_VERSION_DEFAULT: str = "1.29.2"
DOCKER_COMPOSE_URL_TEMPLATE_DEFAULT: str = (
    "https://github.com/docker/compose/releases/download/"
    "{version}/docker-compose-{system}-{machine}"
)
DOCKER_COMPOSE_BINARY_PATH_DEFAULT: Path = Path("/usr/local/bin/docker-compose")

GH_KEYRING_URL_DEFAULT: str = (
    "https://cli.github.com/packages/githubcli-archive-keyring.gpg"
)
GH_KEYRING_PATH_DEFAULT: Path = Path(
    "/etc/apt/keyrings/githubcli-archive-keyring.gpg"
)
GH_SOURCES_LIST_PATH_DEFAULT: Path = Path(
    "/etc/apt/sources.list.d/github-cli.list"
)
GH_REPO_URL_DEFAULT: str = "https://cli.github.com/packages"

SYMBOLS_DEFAULT: Dict[str, str] = {
    "success": "✅",
    "error": "❌",
    "warning": "⚠️",
    "info": "ℹ️",
    "step": "➡️",
    "gear": "⚙️",
    "package": "📦",
    "rocket": "🚀",
    "sparkles": "✨",
    "critical": "🔥",
    "debug": "🐛",
    "lock": "🔒",
}


class AwsCliSettings(BaseSettings):
    """AWS CLI v2 installer settings."""
    model_config = SettingsConfigDict(env_prefix="PROVISION_AWSCLI_", extra="ignore")

    version: str = Field(default=AWSCLI_VERSION_DEFAULT, description="Pinned AWS CLI version.")
    zip_url_template: str = Field(
        default=AWSCLI_ZIP_URL_TEMPLATE_DEFAULT,
        description="Download URL for the AWS CLI bundle. Supports the {version} placeholder.",
    )

    @property
    def zip_url(self) -> str:
        return self.zip_url_template.format(version=self.version)


class NvmNodeSettings(BaseSettings):
    """nvm and Node.js installer settings."""
    model_config = SettingsConfigDict(env_prefix="PROVISION_NVM_", extra="ignore")

    version: str = Field(default=NVM_VERSION_DEFAULT, description="Pinned nvm release tag.")
    install_url_template: str = Field(
        default=NVM_INSTALL_URL_TEMPLATE_DEFAULT,
        description="nvm install script URL. Supports the {version} placeholder.",
    )
    node_major: str = Field(default=NODE_MAJOR_DEFAULT, description="Node.js major version passed to 'nvm install'.")
    conflicting_packages: List[str] = Field(
        default_factory=lambda: ["npm", "nodejs"],
        description="apt packages removed before nvm takes over node/npm.",
    )

    @property
    def install_url(self) -> str:
        return self.install_url_template.format(version=self.version)


class DockerSettings(BaseSettings):
    """Docker Engine and standalone Compose installer settings."""
    model_config = SettingsConfigDict(env_prefix="PROVISION_DOCKER_", extra="ignore")

    ubuntu_codename: str = Field(default=UBUNTU_CODENAME_DEFAULT, description="Ubuntu suite of the Docker apt repository.")
    ce_version: str = Field(default=DOCKER_CE_VERSION_DEFAULT, description="Pinned docker-ce / docker-ce-cli package version.")
    gpg_url: str = Field(default=DOCKER_GPG_URL_DEFAULT, description="Docker repository signing key URL.")
    repo_url: str = Field(default=DOCKER_REPO_URL_DEFAULT, description="Docker apt repository base URL.")
    prerequisite_packages: List[str] = Field(
        default_factory=lambda: [
            "apt-transport-https",
            "ca-certificates",
            "curl",
            "software-properties-common",
            "gnupg",
            "lsb-release",
        ],
        description="Packages installed before the Docker repository is registered.",
    )
    extra_packages: List[str] = Field(
        default_factory=lambda: [
            "containerd.io",
            "docker-buildx-plugin",
            "docker-compose-plugin",
        ],
        description="Unpinned packages installed alongside docker-ce.",
    )
    iptables_backend: Dict[str, str] = Field(
        default_factory=lambda: {
            "iptables": "/usr/sbin/iptables-legacy",
            "ip6tables": "/usr/sbin/ip6tables-legacy",
        },
        description="update-alternatives selections applied after installing Docker.",
    )
    compose_version: str = Field(default=DOCKER_COMPOSE_VERSION_DEFAULT, description="Standalone docker-compose version.")
    compose_url_template: str = Field(
        default=DOCKER_COMPOSE_URL_TEMPLATE_DEFAULT,
        description="Compose binary URL. Supports {version}, {system} and {machine} placeholders.",
    )
    compose_binary_path: Path = Field(default=DOCKER_COMPOSE_BINARY_PATH_DEFAULT, description="Install path of the compose binary.")

    def apt_repo_line(self, arch: str) -> str:
        return f"deb [arch={arch}] {self.repo_url} {self.ubuntu_codename} stable"

    def compose_url(self, system: str, machine: str) -> str:
        return self.compose_url_template.format(
            version=self.compose_version, system=system, machine=machine
        )

    def pinned_packages(self) -> List[str]:
        return [
            f"docker-ce={self.ce_version}",
            f"docker-ce-cli={self.ce_version}",
        ] + list(self.extra_packages)


class GhCliSettings(BaseSettings):
    """GitHub CLI installer settings."""
    model_config = SettingsConfigDict(env_prefix="PROVISION_GH_", extra="ignore")

    keyring_url: str = Field(default=GH_KEYRING_URL_DEFAULT, description="GitHub CLI archive keyring URL.")
    keyring_path: Path = Field(default=GH_KEYRING_PATH_DEFAULT, description="Where the keyring is stored.")
    sources_list_path: Path = Field(default=GH_SOURCES_LIST_PATH_DEFAULT, description="apt sources list written for gh.")
    repo_url: str = Field(default=GH_REPO_URL_DEFAULT, description="GitHub CLI apt repository URL.")

    def apt_source_line(self, arch: str) -> str:
        return (
            f"deb [arch={arch} signed-by={self.keyring_path}] "
            f"{self.repo_url} stable main"
        )


class AppSettings(BaseSettings):
    """Main provisioner settings."""
    model_config = SettingsConfigDict(env_prefix="PROVISION_", env_nested_delimiter="__", extra="ignore")

    work_dir: Path = Field(default=WORK_DIR_DEFAULT, description="Scratch directory for transient downloads.")
    log_dir: Path = Field(default=LOG_DIR_DEFAULT, description="Directory holding one .out and one .err log per task.")
    apt_lock_path: Path = Field(default=APT_LOCK_PATH_DEFAULT, description="Advisory lock file serializing apt/dpkg use.")
    apt_lock_timeout: float = Field(default=APT_LOCK_TIMEOUT_DEFAULT, description="Seconds to wait for the apt lock before failing a task.")
    stderr_tail_lines: int = Field(default=STDERR_TAIL_LINES_DEFAULT, description="Lines of stderr shown for a failed task.")
    daemon_command: List[str] = Field(
        default_factory=lambda: list(DAEMON_COMMAND_DEFAULT),
        description="Long-running daemon started once every task succeeded.",
    )
    start_daemon: bool = Field(default=True, description="Start the daemon after a fully successful run.")
    log_prefix: str = Field(default=LOG_PREFIX_DEFAULT, description="Prefix for provisioner log lines.")

    awscli: AwsCliSettings = Field(default_factory=AwsCliSettings)
    nvm: NvmNodeSettings = Field(default_factory=NvmNodeSettings)
    docker: DockerSettings = Field(default_factory=DockerSettings)
    gh: GhCliSettings = Field(default_factory=GhCliSettings)

    symbols: Dict[str, str] = Field(default_factory=lambda: dict(SYMBOLS_DEFAULT))

    @field_validator("apt_lock_timeout")
    @classmethod
    def _timeout_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("apt_lock_timeout must be positive")
        return value

    @field_validator("stderr_tail_lines")
    @classmethod
    def _tail_not_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("stderr_tail_lines must not be negative")
        return value

    @field_validator("daemon_command")
    @classmethod
    def _daemon_command_not_empty(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("daemon_command must name an executable")
        return value
