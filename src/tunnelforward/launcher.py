"""Command line launcher for the tunnel forwarder."""

import click
import dotenv
import logging
import sys
import trio

from typing import Optional

from . import logger
from .logger import log
from .version import __version__


def _parse_listen_address(ctx, param, value):
    if value is None:
        return None, None

    host, sep, port = value.rpartition(":")
    if not sep:
        host, port = "", value
    try:
        return host.strip("[]") or None, int(port)
    except ValueError:
        raise click.BadParameter("expected HOST:PORT or PORT")


@click.command()
@click.argument("url", required=False)
@click.option(
    "-c",
    "--config",
    type=click.Path(resolve_path=True),
    help="Name of the configuration file to load; defaults to "
    "tunnelforward.cfg in the current directory",
)
@click.option(
    "-d", "--debug/--no-debug", default=False, help="Start the forwarder in debug mode"
)
@click.option(
    "-q",
    "--quiet/--no-quiet",
    default=False,
    help="Start the forwarder in quiet mode",
)
@click.option(
    "-l",
    "--listen",
    metavar="HOST:PORT",
    default=None,
    callback=_parse_listen_address,
    help="Address to accept inbound connections on",
)
@click.option(
    "-p",
    "--protocol",
    metavar="TAG",
    default=None,
    help="Protocol of the inbound connections, e.g. http, https or tcp",
)
@click.option(
    "--log-style",
    type=click.Choice(["fancy", "plain"]),
    default="fancy",
    help="Specify the style of the logging output",
)
@click.version_option(version=__version__)
def start(
    url: Optional[str],
    config: Optional[str],
    debug: bool = False,
    quiet: bool = False,
    listen=(None, None),
    protocol: Optional[str] = None,
    log_style: str = "fancy",
):
    """Forward inbound connections to the local destination given by URL."""
    # Set up the logging format
    logger.install(
        level=logging.DEBUG if debug else logging.WARN if quiet else logging.INFO,
        style=log_style,
    )

    # Load environment variables from .env
    dotenv.load_dotenv(verbose=debug)

    # Note the lazy import; this is to ensure that the logging is set up by the
    # time we start configuring the app.
    from .app import app

    log.info(f"Starting tunnel forwarder {__version__}")

    host, port = listen
    retval = app.prepare(
        config,
        debug=debug,
        overrides={
            "FORWARD_TO": url,
            "LISTEN_HOST": host,
            "LISTEN_PORT": port,
            "PROTOCOL": protocol,
        },
    )
    if retval is not None:
        sys.exit(retval)

    try:
        retval = trio.run(app.run)
    except KeyboardInterrupt:
        retval = None

    log.info("Shutdown finished")
    sys.exit(retval or 0)


if __name__ == "__main__":
    start(prog_name="tunnelforward")
