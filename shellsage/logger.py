"""Logging setup for the shellsage CLI.

Console records go through rich so that retry warnings print cleanly above
a live spinner or a half-written streamed answer. The rotating log file
always keeps INFO records (segment progress, retries) even when the
console only shows warnings.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

__all__ = ["setup_logger", "LOGGER_NAME", "DEFAULT_LOG_FILE"]

LOGGER_NAME = "shellsage"
DEFAULT_LOG_FILE = Path("~/.shellsage/logs/shellsage.log").expanduser()
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
MAX_LOG_BYTES = 5 * 1024 * 1024  # 5MB
LOG_BACKUP_COUNT = 3

# HTTP clients log every request at INFO.
_QUIET_LOGGERS = ("litellm", "LiteLLM", "httpx", "urllib3")


def setup_logger(
    console: Optional[Console] = None,
    verbose: bool = False,
    log_file: Union[str, Path, bool, None] = None,
) -> logging.Logger:
    """Configure the ``shellsage`` logger for one CLI run.

    Args:
        console: Console shared with the CLI output; a stderr console is
            created when omitted.
        verbose: Show INFO records on the console, not just warnings.
        log_file: ``None``/``True`` for the default file, ``False`` to
            disable file logging, or a custom path.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(logging.INFO)
    logger.propagate = False

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        level=logging.INFO if verbose else logging.WARNING,
        show_time=False,
        show_path=False,
        markup=False,
    )
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console_handler)

    log_path = _resolve_log_path(log_file)
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def _resolve_log_path(log_file: Union[str, Path, bool, None]) -> Path | None:
    if log_file is False:
        return None
    if log_file is None or log_file is True:
        return DEFAULT_LOG_FILE
    return Path(log_file).expanduser()
