import logging

from modguard.util.logger import (
    NOISY_LOGGERS,
    ColorFormatter,
    PromptToolkitHandler,
    RedactingFormatter,
    console_level,
    get_log_filepath,
    get_logger,
    handle_exception,
    setup_logger,
    should_use_color,
)

FAKE_TOKEN = "M" + "a" * 23 + ".Gh1234." + "x" * 27


class DummyStream:
    def __init__(self, tty=True):
        self.tty = tty

    def write(self, msg):
        pass

    def isatty(self):
        return self.tty


def record(message, level=logging.INFO):
    return logging.LogRecord("test", level, "", 0, message, None, None)


def test_get_logger_returns_logger():
    logger = get_logger("test_logger")
    assert isinstance(logger, logging.Logger)
    assert any(isinstance(h, PromptToolkitHandler) for h in logger.handlers)
    assert logger.propagate is False


def test_setup_logger_idempotent():
    logger1 = setup_logger("test_logger_idem")
    logger2 = setup_logger("test_logger_idem")
    assert logger1 is logger2
    assert len(logger1.handlers) == 2


def test_file_handler_is_debug():
    logger = get_logger("test_logger_levels")
    levels = {type(h).__name__: h.level for h in logger.handlers}
    assert levels["RotatingFileHandler"] == logging.DEBUG


def test_console_level_from_environment(monkeypatch):
    monkeypatch.delenv("MODGUARD_LOG_LEVEL", raising=False)
    assert console_level() == logging.INFO
    monkeypatch.setenv("MODGUARD_LOG_LEVEL", "debug")
    assert console_level() == logging.DEBUG
    monkeypatch.setenv("MODGUARD_LOG_LEVEL", "chatty")
    assert console_level() == logging.INFO


def test_color_formatter_applies_color():
    formatted = ColorFormatter("%(levelname)s %(message)s").format(record("error occurred", logging.ERROR))
    assert "\033[31m" in formatted and "error occurred" in formatted


def test_formatters_redact_tokens():
    for formatter in (RedactingFormatter("%(message)s"), ColorFormatter("%(message)s")):
        formatted = formatter.format(record(f"leaked {FAKE_TOKEN} here"))
        assert FAKE_TOKEN not in formatted
        assert "[redacted]" in formatted


def test_should_use_color(monkeypatch):
    monkeypatch.setattr("sys.stderr", DummyStream(tty=True))
    assert should_use_color() is True
    monkeypatch.setattr("sys.stderr", DummyStream(tty=False))
    assert should_use_color() is False


def test_get_log_filepath_is_stable():
    path = get_log_filepath()
    assert path.parent.exists()
    assert path.name.startswith("modguard-")
    assert get_log_filepath() == path


def test_noisy_loggers_are_silenced():
    for name in NOISY_LOGGERS:
        assert logging.getLogger(name).level == logging.ERROR


def test_handle_exception_logs_error(caplog):
    class DummyException(Exception):
        pass

    with caplog.at_level(logging.ERROR):
        try:
            raise DummyException("fail")
        except DummyException as exc:
            handle_exception(DummyException, exc, exc.__traceback__)
    assert any("Uncaught exception" in r.message for r in caplog.records)
