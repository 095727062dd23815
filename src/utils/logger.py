import atexit
import logging
import os

from rich.console import Console
from rich.logging import RichHandler

_file_console: Console | None = None


class CenteredFormatter(logging.Formatter):
    longest_name_length = 14  # Initial default width

    def __init__(self, fmt=None, datefmt=None, style="%", initial_width=14):
        super().__init__(fmt, datefmt, style)
        CenteredFormatter.longest_name_length = initial_width

    def format(self, record):
        CenteredFormatter.longest_name_length = max(
            CenteredFormatter.longest_name_length, len(record.name)
        )
        width = CenteredFormatter.longest_name_length
        # format a copy so other handlers still see the plain logger name
        record = logging.makeLogRecord(record.__dict__)
        record.name = record.name.center(width)
        return super().format(record)


def _console() -> Console | None:
    """
    Console to render into. With SHOP_LOG_FILE set, logs go to that file so they
    don't tear through the Textual screen.
    """
    global _file_console
    log_file = os.getenv("SHOP_LOG_FILE")
    if not log_file:
        return None
    if _file_console is None:
        _file_console = Console(file=open(log_file, "a", encoding="utf-8"), width=120)
        atexit.register(close_log_file)
    return _file_console


def close_log_file() -> None:
    """Flush and close the SHOP_LOG_FILE sink, if one was opened."""
    global _file_console
    if _file_console is not None:
        _file_console.file.close()
        _file_console = None


def get_logger(name=None) -> logging.Logger:
    """
    Creates and returns a logger configured with RichHandler for rich output.
    """
    if name is None:
        name = "shop"
    logger = logging.getLogger(name)
    log_level = logging.DEBUG if os.getenv("DEBUG") else logging.INFO
    logger.setLevel(log_level)

    if not logger.handlers:
        formatter = CenteredFormatter("[%(name)s]  %(message)s")

        console_handler = RichHandler(
            console=_console(),
            show_time=True,
            show_level=True,
            show_path=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
        console_handler.setFormatter(formatter)
        console_handler.setLevel(log_level)
        logger.addHandler(console_handler)

        logger.propagate = False
        logger.debug(f"Logger for '{name}' initialized with RichHandler.")

    return logger
