"""Logger object and console log handler installation for the forwarder.

Log records may carry two extra attributes: ``id`` correlates the records
of the same tunnel or connection, and ``semantics`` (``request``,
``success`` or ``failure``) selects the symbol and, for informational
records, the color of the record.
"""

import logging

from colorlog import ColoredFormatter as BaseColoredFormatter, default_log_colors
from colorlog.escape_codes import parse_colors

__all__ = ("log", "install")


log = logging.getLogger(__name__.rpartition(".")[0])


default_log_symbols = {
    "WARNING": "▲",  # BLACK UP-POINTING TRIANGLE
    "ERROR": "●",  # BLACK CIRCLE
    "CRITICAL": "●",  # BLACK CIRCLE
    "request": "←",  # LEFTWARDS ARROW
    "success": "✔",  # CHECK MARK
    "failure": "✘",  # BALLOT X
}

default_semantic_colors = {
    "request": "bold_blue",
    "success": "bold_green",
    "failure": "bold_red",
}


def _ensure_extra_attributes(record):
    if not hasattr(record, "id"):
        record.id = ""
    if not hasattr(record, "semantics"):
        record.semantics = None


class ColoredFormatter(BaseColoredFormatter):
    """Colored formatter that also provides the ``log_symbol`` and
    ``semantic_color`` attributes to the format string.

    ``semantic_color`` is empty unless the record is an informational record
    with known semantics, so placing it after ``log_color`` in the format
    string lets the semantics override the color of the level.
    """

    def __init__(self, fmt=None, log_colors=None, log_symbols=None, semantic_colors=None):
        super().__init__(
            fmt or "%(log_color)s%(log_symbol)s %(message)s",
            log_colors=log_colors if log_colors is not None else default_log_colors,
        )
        self.log_symbols = log_symbols if log_symbols is not None else default_log_symbols
        self.semantic_colors = {
            key: parse_colors(value)
            for key, value in (
                semantic_colors if semantic_colors is not None else default_semantic_colors
            ).items()
        }

    def format(self, record):
        _ensure_extra_attributes(record)
        record.log_symbol = self.log_symbols.get(
            record.semantics, self.log_symbols.get(record.levelname, " ")
        )
        record.semantic_color = (
            self.semantic_colors.get(record.semantics, "")
            if record.levelno == logging.INFO
            else ""
        )
        return super().format(record)


class PlainFormatter(logging.Formatter):
    """Logging formatter without colors that still shows the correlation
    ID of the log record, if any.
    """

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-8s %(id)-8.8s %(message)s")

    def format(self, record):
        _ensure_extra_attributes(record)
        return super().format(record)


def install(level=logging.INFO, style="fancy"):
    """Installs a console log handler on the root logger.

    Parameters:
        level (int): the minimum log level of the root logger
        style (str): ``fancy`` for colored output, ``plain`` for plain text
    """
    if style == "plain":
        formatter = PlainFormatter()
    else:
        formatter = ColoredFormatter(
            "%(bold_black)s%(id)-8.8s %(log_color)s%(semantic_color)s"
            "%(log_symbol)s %(message)s",
            log_colors=dict(default_log_colors, DEBUG="bold_black", INFO="reset"),
        )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
