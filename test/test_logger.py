import logging

from colorlog.escape_codes import escape_codes

from tunnelforward.logger import ColoredFormatter, PlainFormatter, install


def create_record(message, level=logging.INFO, **extra):
    record = logging.LogRecord("tunnelforward", level, __file__, 1, message, (), None)
    record.__dict__.update(extra)
    return record


class TestColoredFormatter:
    def test_shows_id_and_semantic_symbol(self):
        formatter = ColoredFormatter("%(id)s %(log_symbol)s %(message)s")
        message = formatter.format(
            create_record("connected", id="local-1", semantics="success")
        )
        assert "local-1 ✔ connected" in message

    def test_level_symbol_without_extra_attributes(self):
        formatter = ColoredFormatter("%(id)s|%(log_symbol)s|%(message)s")
        message = formatter.format(create_record("hello", level=logging.WARNING))
        assert "|▲|hello" in message

    def test_semantic_color_applies_to_info_records_only(self):
        formatter = ColoredFormatter(
            "%(semantic_color)s%(message)s",
            semantic_colors={"success": "bold_green"},
        )
        info = create_record("done", semantics="success")
        warning = create_record("done", level=logging.WARNING, semantics="success")

        formatter.format(info)
        formatter.format(warning)

        assert info.semantic_color == escape_codes["bold_green"]
        assert warning.semantic_color == ""


def test_plain_formatter():
    message = PlainFormatter().format(create_record("hello", id="abc"))
    assert "abc" in message
    assert message.endswith("hello")


def test_install_adds_handler():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    try:
        install(level=logging.DEBUG, style="plain")
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[-1].formatter, PlainFormatter)
    finally:
        root.handlers[:] = handlers
        root.setLevel(level)
