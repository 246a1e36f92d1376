"""
Logging setup for ModGuard.

Every component logger writes colored lines to the console through
prompt_toolkit and plain lines to a rotating session file under ``logs/``.
Both outputs pass through :func:`redact_tokens`, so a bot token pasted into a
message never reaches the console or disk.

Environment overrides:

* ``MODGUARD_LOG_DIR``: directory for session log files.
* ``MODGUARD_LOG_LEVEL``: console level name (``DEBUG``, ``INFO``, ...).
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import ANSI

from modguard.util.sanitize import redact_tokens

LOGS_DIR: Path = Path(os.getenv("MODGUARD_LOG_DIR") or Path(__file__).parents[3] / "logs").resolve()

LOG_FORMAT: str = "[%(asctime)s] [%(levelname)s] [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
DATE_FORMAT: str = "%Y-%m-%d %H-%M-%S"

MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 5

LOG_COLORS = {
    "DEBUG": "\033[36m",      # Cyan
    "INFO": "\033[32m",       # Green
    "WARNING": "\033[33m",    # Yellow
    "ERROR": "\033[31m",      # Red
    "CRITICAL": "\033[38;5;88m",  # Dark Red (ANSI 256-color)
}
RESET_COLOR = "\033[0m"

NOISY_LOGGERS = (
    "discord", "discord.gateway", "discord.client", "discord.http",
    "websockets", "aiohttp", "aiosqlite",
)

_session_log: Path | None = None


class RedactingFormatter(logging.Formatter):
    """Formatter that strips token-shaped text from the rendered line."""

    def format(self, record: logging.LogRecord) -> str:
        return redact_tokens(super().format(record))


class ColorFormatter(RedactingFormatter):
    def format(self, record: logging.LogRecord) -> str:
        color = LOG_COLORS.get(record.levelname, "")
        message = super().format(record)
        return f"{color}{message}{RESET_COLOR}" if color else message


class PromptToolkitHandler(logging.Handler):
    """
    Console handler that prints through prompt_toolkit.

    ``print_formatted_text`` keeps log lines from tearing through an active
    prompt and renders the ANSI codes produced by :class:`ColorFormatter`.
    """

    def __init__(self, formatter: logging.Formatter | None = None):
        super().__init__()
        if formatter:
            self.setFormatter(formatter)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            print_formatted_text(ANSI(self.format(record)))
        except Exception:
            self.handleError(record)


def should_use_color() -> bool:
    try:
        return sys.stderr.isatty()
    except Exception:
        return False


def console_level() -> int:
    """Console level from ``MODGUARD_LOG_LEVEL``; unknown names fall back to INFO."""
    level = logging.getLevelName((os.getenv("MODGUARD_LOG_LEVEL") or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def get_log_filepath() -> Path:
    """Return the log file shared by every logger of this process, creating ``LOGS_DIR`` on first use."""
    global _session_log
    if _session_log is None:
        LOGS_DIR.mkdir(parents=True, exist_ok=True)
        _session_log = LOGS_DIR / f"modguard-{datetime.now().strftime(DATE_FORMAT)}.log"
    return _session_log


def setup_logger(logger_name: str) -> logging.Logger:
    """Attach the console and session-file handlers to ``logger_name`` once."""
    logger = logging.getLogger(logger_name)
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    console_formatter = (ColorFormatter if should_use_color() else RedactingFormatter)(LOG_FORMAT, datefmt=DATE_FORMAT)
    console_handler = PromptToolkitHandler(formatter=console_formatter)
    console_handler.setLevel(console_level())
    logger.addHandler(console_handler)

    file_handler = RotatingFileHandler(
        get_log_filepath(), maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(RedactingFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(file_handler)

    return logger


def get_logger(logger_name: str) -> logging.Logger:
    """Retrieve a component logger such as ``get_logger("mute_ledger")``."""
    return setup_logger(logger_name)


def handle_exception(exception_type, exception_instance, exception_traceback) -> None:
    """``sys.excepthook`` that logs uncaught exceptions; Ctrl+C keeps the default behaviour."""
    if issubclass(exception_type, KeyboardInterrupt):
        sys.__excepthook__(exception_type, exception_instance, exception_traceback)
        return
    logging.error("Uncaught exception", exc_info=(exception_type, exception_instance, exception_traceback))


def quiet_libraries() -> None:
    """Limit gateway and driver chatter to errors."""
    for name in NOISY_LOGGERS:
        noisy = logging.getLogger(name)
        noisy.setLevel(logging.ERROR)
        noisy.propagate = False
        noisy.handlers = []


quiet_libraries()
