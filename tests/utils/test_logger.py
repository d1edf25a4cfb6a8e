import logging
from logging.handlers import RotatingFileHandler

from herald.util.logger import (
    ColorFormatter,
    PromptToolkitHandler,
    get_log_filepath,
    get_logger,
    handle_exception,
    setup_logger,
    should_use_color,
)


class DummyStream:
    def __init__(self, tty=True):
        self.tty = tty

    def write(self, msg):
        pass

    def isatty(self):
        return self.tty


def test_get_logger_attaches_console_and_file_handlers():
    logger = get_logger("test_logger")

    assert isinstance(logger, logging.Logger)
    assert any(isinstance(h, PromptToolkitHandler) for h in logger.handlers)
    assert any(isinstance(h, RotatingFileHandler) for h in logger.handlers)
    assert logger.propagate is False


def test_setup_logger_idempotent():
    logger1 = setup_logger("test_logger_idem")
    handler_count = len(logger1.handlers)
    logger2 = setup_logger("test_logger_idem")

    assert logger1 is logger2
    assert len(logger2.handlers) == handler_count


def test_loggers_share_one_file_handler():
    first = get_logger("test_logger_shared_a")
    second = get_logger("test_logger_shared_b")

    first_files = [h for h in first.handlers if isinstance(h, RotatingFileHandler)]
    second_files = [h for h in second.handlers if isinstance(h, RotatingFileHandler)]
    assert len(first_files) == 1
    assert first_files == second_files
    assert first_files[0].baseFilename == str(get_log_filepath())


def test_color_formatter_applies_color():
    formatter = ColorFormatter("%(levelname)s %(message)s")
    record = logging.LogRecord("test", logging.ERROR, "", 0, "error occurred", None, None)

    formatted = formatter.format(record)

    assert formatted.startswith("\033[31m")
    assert "error occurred" in formatted


def test_color_formatter_leaves_unknown_levels_plain():
    formatter = ColorFormatter("%(message)s")
    record = logging.LogRecord("test", 5, "", 0, "trace", None, None)
    record.levelname = "TRACE"

    assert formatter.format(record) == "trace"


def test_should_use_color(monkeypatch):
    monkeypatch.setattr("sys.stderr", DummyStream(tty=True))
    assert should_use_color() is True

    monkeypatch.setattr("sys.stderr", DummyStream(tty=False))
    assert should_use_color() is False


def test_get_log_filepath_is_stable():
    path = get_log_filepath()

    assert path.parent.exists()
    assert path.suffix == ".log"
    assert get_log_filepath() == path


def test_handle_exception_logs_error(caplog):
    class DummyException(Exception):
        pass

    with caplog.at_level(logging.ERROR):
        try:
            raise DummyException("fail")
        except DummyException as exc:
            handle_exception(DummyException, exc, exc.__traceback__)

    assert any("Uncaught exception" in r.message for r in caplog.records)
