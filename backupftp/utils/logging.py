"""Logging for backupftp.

Every module logs to a child of the ``backupftp`` logger
(``backupftp.session``, ``backupftp.transfer``, ...). The library only
attaches a NullHandler; applications call setup_logging() to get
console or file output. All output goes through PIIRedactingFormatter
so login passwords and credentials embedded in endpoint URLs do not
reach the log.
"""

import logging
import re
import sys
from pathlib import Path
from typing import Optional, Union


LOGGER_NAME = "backupftp"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# (pattern, replacement) pairs applied to every formatted record
PII_PATTERNS = [
    # password=..., "passwd": ..., pass: ...
    (re.compile(r'(password["\s:=]+)[^\s,}\]]+', re.IGNORECASE), r'\1[REDACTED]'),
    (re.compile(r'(passwd["\s:=]+)[^\s,}\]]+', re.IGNORECASE), r'\1[REDACTED]'),
    (re.compile(r'(pass["\s:=]+)[^\s,}\]]+', re.IGNORECASE), r'\1[REDACTED]'),
    # user:password@ in ftp:// and ftps:// endpoints
    (re.compile(r'(ftps?://)[^/@\s:]+:[^/@\s]+@', re.IGNORECASE), r'\1[REDACTED]@'),
    # Last two octets of IPv4 addresses
    (re.compile(r'\b(\d+\.\d+\.)\d+\.\d+\b'), r'\1*.*'),
]

logging.getLogger(LOGGER_NAME).addHandler(logging.NullHandler())


def redact(message: str) -> str:
    """Apply PII_PATTERNS to a message."""
    for pattern, replacement in PII_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


class PIIRedactingFormatter(logging.Formatter):
    """Formatter that redacts credentials after formatting."""

    def format(self, record: logging.LogRecord) -> str:
        return redact(super().format(record))


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            return logging.INFO
    return level


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Path] = None,
    console: bool = True
) -> logging.Logger:
    """
    Route the ``backupftp`` logger tree to the console and/or a file.

    Calling it again replaces the handlers of the previous call.

    Args:
        level: Level or level name such as "DEBUG"; unknown names
            fall back to INFO
        log_file: Optional log file; parent directories are created
        console: Also log to stdout

    Returns:
        The ``backupftp`` logger
    """
    level = _resolve_level(level)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()

    formatter = PIIRedactingFormatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger


def get_logger(component: str = "") -> logging.Logger:
    """
    Logger for a part of the library.

    Args:
        component: Short name such as "transfer", or a full dotted name
            already under ``backupftp``; empty for the library logger

    Returns:
        ``backupftp.<component>`` logger
    """
    if not component or component == LOGGER_NAME:
        return logging.getLogger(LOGGER_NAME)
    if component.startswith(LOGGER_NAME + "."):
        return logging.getLogger(component)
    return logging.getLogger(f"{LOGGER_NAME}.{component}")
