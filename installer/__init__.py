"""
Installer units of work for the development host.

Importing this package registers the installers in launch order.
"""

from installer.registry import InstallerRegistry
from installer.aws_cli_installer import install_aws_cli
from installer.nvm_node_installer import install_nvm_node
from installer.docker_installer import install_docker
from installer.gh_cli_installer import install_gh_cli

__all__ = [
    "InstallerRegistry",
    "install_aws_cli",
    "install_nvm_node",
    "install_docker",
    "install_gh_cli",
]
