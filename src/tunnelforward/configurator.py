"""Loading the configuration of the forwarder from multiple sources."""

import errno
import os

from importlib import import_module
from logging import Logger
from typing import Any, Dict, Iterable, Optional, Tuple

__all__ = ("AppConfigurator", "Configuration")

Configuration = Dict[str, Any]


class AppConfigurator:
    """Helper object that merges the configuration of the app from the
    default configuration module of the package, an optional configuration
    file and the configuration file named by an environment variable.

    Configuration files are Python scripts; only the uppercase names that
    they define are taken into account.
    """

    def __init__(
        self,
        config: Optional[Configuration] = None,
        *,
        default_filename: Optional[str] = None,
        environment_variable: Optional[str] = None,
        log: Optional[Logger] = None,
        package_name: Optional[str] = None,
    ):
        """Constructor.

        Parameters:
            config: the configuration object that the configurator will
                populate. May contain default values.
            default_filename: name of the configuration file to look for in
                the current working directory when no file is given explicitly;
                it is not an error if this file does not exist
            environment_variable: name of the environment variable that may
                hold the name of an additional configuration file to load
            log: logger to report loaded and missing files to
            package_name: name of the package whose ``config`` module holds
                the defaults
        """
        self._config = config if config is not None else {}
        self._default_filename = default_filename
        self._environment_variable = environment_variable
        self._log = log
        self._package_name = package_name

    @property
    def result(self) -> Configuration:
        """The result of the configuration process."""
        return self._config

    def configure(self, filename: Optional[str] = None) -> bool:
        """Loads the configuration from all the sources, in the following order:

        - the ``config`` module of the package, if there is one
        - the given file, or the default file if no file was given
        - the file named by the environment variable, if it is set

        Parameters:
            filename: name of the configuration file to load, typically
                passed from the command line

        Returns:
            whether all the mandatory configuration files were loaded
        """
        self._load_defaults()
        return all(
            self._load_file(name, mandatory)
            for name, mandatory in self._get_config_files(filename)
            if name
        )

    def _get_config_files(self, filename: Optional[str]) -> Iterable[Tuple[str, bool]]:
        if filename:
            yield filename, True
        elif self._default_filename:
            yield self._default_filename, False

        if self._environment_variable:
            yield os.environ.get(self._environment_variable), True

    def _load_defaults(self) -> None:
        if not self._package_name:
            return

        try:
            module = import_module(".config", self._package_name)
        except ModuleNotFoundError:
            return

        self._update({key: getattr(module, key) for key in dir(module)})

    def _load_file(self, filename: str, mandatory: bool = True) -> bool:
        """Loads configuration settings from the given Python script.

        Returns:
            whether the file was loaded, or was optional and did not exist
        """
        original, filename = filename, os.path.abspath(filename)

        try:
            with open(filename, mode="rb") as fp:
                code = compile(fp.read(), filename, "exec")
        except OSError as ex:
            if ex.errno not in (errno.ENOENT, errno.EISDIR, errno.ENOTDIR):
                raise
            if mandatory and self._log:
                self._log.warning(f"Cannot load configuration from {original!r}")
            return not mandatory

        namespace: Dict[str, Any] = {}
        exec(code, namespace)
        self._update(namespace)

        if self._log:
            self._log.info(f"Loaded configuration from {original!r}")

        return True

    def _update(self, values: Dict[str, Any]) -> None:
        for key, value in values.items():
            if key.isupper():
                self._config[key] = value
