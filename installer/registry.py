"""
Registry for installer functions.

Installer modules register their entry function with a decorator. The
registration order is the launch order of the provisioning run.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from common.package_lock import PackageManagerLock
from settings.config_models import AppSettings

InstallFunction = Callable[
    [AppSettings, PackageManagerLock, Optional[logging.Logger]], Any
]


class InstallerRegistry:
    """
    Registry for installer functions.

    This class provides a registry for installer modules to register themselves
    and methods for accessing registered installers.
    """

    _registry: Dict[str, InstallFunction] = {}
    _descriptions: Dict[str, str] = {}

    @classmethod
    def register(cls, name: str, description: str = ""):
        """
        Decorator for registering installer functions.

        Args:
            name: The task name of the installer. Also names its log files.
            description: A one-line description shown by ``--list``.

        Returns:
            A decorator function that registers the installer function.
        """

        def decorator(install_function: InstallFunction) -> InstallFunction:
            if name in cls._registry:
                raise ValueError(
                    f"Installer with name '{name}' already registered"
                )

            cls._registry[name] = install_function
            cls._descriptions[name] = description
            return install_function

        return decorator

    @classmethod
    def get_installer(cls, name: str) -> InstallFunction:
        """
        Get an installer function by name.

        Raises:
            KeyError: If no installer with the given name is registered.
        """
        if name not in cls._registry:
            raise KeyError(f"No installer registered with name '{name}'")

        return cls._registry[name]

    @classmethod
    def get_all_installers(cls) -> Dict[str, InstallFunction]:
        """
        Get all registered installers, in registration order.
        """
        return cls._registry.copy()

    @classmethod
    def get_description(cls, name: str) -> str:
        cls.get_installer(name)
        return cls._descriptions.get(name, "")

    @classmethod
    def names(cls) -> List[str]:
        return list(cls._registry)
