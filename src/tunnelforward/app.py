"""Application object for running the tunnel forwarder standalone.

When run from the command line, the forwarder accepts inbound connections
on a local TCP port in place of a tunnel and forwards them to the configured
destination.
"""

from trio import open_tcp_listeners
from typing import Any, Dict, Optional

from .configurator import AppConfigurator, Configuration
from .destinations import parse_destination
from .errors import InvalidDestination, SourceUnavailable
from .forwarder import Forwarder
from .logger import log as base_log
from .sources import ListenerSource

__all__ = ("app",)

PACKAGE_NAME = __name__.rpartition(".")[0]

log = base_log.getChild("app")


class TunnelForwarderApp:
    """Main application object for the standalone tunnel forwarder."""

    def __init__(self, name: str, package_name: str):
        """Constructor.

        Parameters:
            name: name of the application, used in the name of the default
                configuration file and the environment variable
            package_name: name of the package that holds the default
                configuration
        """
        self.app_name = name
        self.package_name = package_name
        self.config: Configuration = {}
        self.debug = False
        self.forwarder: Optional[Forwarder] = None

    def prepare(
        self,
        config: Optional[str] = None,
        debug: bool = False,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> Optional[int]:
        """Configures the application.

        Parameters:
            config: name of the configuration file to load
            debug: whether to run the application in debug mode
            overrides: configuration values that take precedence over the
                ones loaded from the configuration files

        Returns:
            an exit code if the application should terminate, `None` if it is
            ready to run
        """
        self.debug = bool(debug)

        configurator = AppConfigurator(
            self.config,
            default_filename=f"{self.app_name}.cfg",
            environment_variable=f"{self.app_name.upper()}_SETTINGS",
            log=log,
            package_name=self.package_name,
        )
        if not configurator.configure(config):
            return 1

        self.config.update(
            (key, value) for key, value in (overrides or {}).items() if value is not None
        )

        url = self.config.get("FORWARD_TO")
        try:
            parse_destination(url or "")
        except InvalidDestination as ex:
            log.error(str(ex))
            return 2

        self.forwarder = Forwarder(url)
        return None

    async def run(self) -> Optional[int]:
        """Accepts connections on the configured local port and forwards them
        until the application is interrupted.
        """
        assert self.forwarder is not None

        host = self.config.get("LISTEN_HOST") or None
        port = int(self.config.get("LISTEN_PORT", 0))
        protocol = str(self.config.get("PROTOCOL", "tcp")).lower()

        listeners = await open_tcp_listeners(port, host=host)
        for extra in listeners[1:]:
            await extra.aclose()

        address = listeners[0].socket.getsockname()
        log.info(
            f"Accepting {protocol} connections on {address[0]}:{address[1]}",
            extra={"semantics": "success"},
        )

        source = ListenerSource(listeners[0], protocol=protocol)
        try:
            await self.forwarder.forward(source)
        except SourceUnavailable as ex:
            log.error(str(ex))
            return 1
        finally:
            await source.aclose()


############################################################################

app = TunnelForwarderApp("tunnelforward", PACKAGE_NAME)
