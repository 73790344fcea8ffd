"""Tests for logger module."""

import logging
from unittest.mock import patch

from auditcord.util import logger as logger_module
from auditcord.util.logger import (
    DATE_FORMAT,
    LOG_FORMAT,
    NOISY_LOGGERS,
    ColorFormatter,
    PromptToolkitHandler,
    get_log_filepath,
    get_logger,
    handle_exception,
    setup_logger,
    should_use_color,
)


def make_record(level=logging.INFO, msg="message"):
    return logging.LogRecord(
        name="test",
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
        func="test_func",
    )


class TestShouldUseColor:
    """Tests for should_use_color function."""

    @patch("sys.stderr.isatty")
    def test_should_use_color_tty(self, mock_isatty):
        mock_isatty.return_value = True
        assert should_use_color() is True

    @patch("sys.stderr.isatty")
    def test_should_use_color_no_tty(self, mock_isatty):
        mock_isatty.return_value = False
        assert should_use_color() is False

    @patch("sys.stderr.isatty")
    def test_should_use_color_exception(self, mock_isatty):
        mock_isatty.side_effect = Exception("Error")
        assert should_use_color() is False


class TestColorFormatter:
    """Tests for ColorFormatter class."""

    def test_levels_are_wrapped_in_their_color(self):
        formatter = ColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT)

        formatted = formatter.format(make_record(logging.WARNING, "Correlation timed out"))

        assert formatted.startswith("\033[33m")
        assert formatted.endswith("\033[0m")
        assert "Correlation timed out" in formatted

    def test_unknown_level_is_left_plain(self):
        formatter = ColorFormatter("%(message)s")
        record = make_record(msg="plain")
        record.levelname = "TRACE"

        assert formatter.format(record) == "plain"


class TestPromptToolkitHandler:
    def test_emit_prints_formatted_text(self):
        handler = PromptToolkitHandler(formatter=logging.Formatter("%(message)s"))

        with patch.object(logger_module, "print_formatted_text") as printer:
            handler.emit(make_record(msg="hello"))

        printer.assert_called_once()

    def test_emit_failure_is_handled(self):
        handler = PromptToolkitHandler()

        with patch.object(logger_module, "print_formatted_text", side_effect=RuntimeError("no tty")), \
                patch.object(handler, "handleError") as handle_error:
            handler.emit(make_record())

        handle_error.assert_called_once()


class TestSetupLogger:
    """Tests for setup_logger function."""

    def test_setup_logger_creates_configured_logger(self):
        logger = setup_logger("auditcord_test_logger_1")

        assert logger.name == "auditcord_test_logger_1"
        assert logger.level == logging.DEBUG
        assert logger.propagate is False
        assert len(logger.handlers) == 2

    def test_setup_logger_returns_existing(self):
        logger1 = setup_logger("auditcord_test_logger_2")
        logger2 = get_logger("auditcord_test_logger_2")

        assert logger1 is logger2
        assert len(logger2.handlers) == 2

    def test_log_filepath_is_shared(self):
        assert get_log_filepath() == get_log_filepath()
        assert get_log_filepath().suffix == ".log"


def test_noisy_loggers_are_silenced():
    for name in NOISY_LOGGERS:
        assert logging.getLogger(name).level == logging.ERROR


def test_handle_exception_logs_uncaught_errors():
    with patch("logging.error") as log_error:
        try:
            raise ValueError("boom")
        except ValueError as exc:
            handle_exception(type(exc), exc, exc.__traceback__)

    log_error.assert_called_once()


def test_handle_exception_passes_keyboard_interrupt_through():
    with patch("sys.__excepthook__") as default_hook:
        handle_exception(KeyboardInterrupt, KeyboardInterrupt(), None)

    default_hook.assert_called_once()
