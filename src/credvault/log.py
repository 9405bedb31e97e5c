"""Logging setup.

Console output goes through rich's ``RichHandler`` on stderr; an optional
rotating file handler can be added (or used alone). Both pass records through
:class:`RedactingFilter`, which scrubs ``password=...``-style fragments in case
a caller formats one into a message.
"""

from __future__ import annotations

import logging
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from .config import Settings

LOGGER_NAME = "credvault"
REDACTED = "[REDACTED]"

_SENSITIVE = re.compile(
    r"(?i)\b(password|passphrase|passwd|pwd|secret|token|vault_key|key)(\s*[=:]\s*)"
    r"(?:'[^']*'|\"[^\"]*\"|[^\s'\",;]+)"
)

_FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s:%(lineno)d %(message)s"


class RedactingFilter(logging.Filter):
    """Replace secret-looking ``key=value`` fragments with ``[REDACTED]``."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = _SENSITIVE.sub(lambda m: f"{m.group(1)}{m.group(2)}{REDACTED}", message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


def setup_logging(settings: Settings, console: Optional[Console] = None) -> logging.Logger:
    """Configure the ``credvault`` logger from *settings*; returns it.

    Calling again replaces the handlers installed by a previous call.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(settings.log_level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    redact = RedactingFilter()

    if settings.log_file:
        path = Path(settings.log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(path, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        file_handler.addFilter(redact)
        logger.addHandler(file_handler)

    if not (settings.log_file_only and settings.log_file):
        console_handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=False,
        )
        console_handler.addFilter(redact)
        logger.addHandler(console_handler)

    return logger
