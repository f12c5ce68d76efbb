"""Logging utilities for Tableau Migration Tool."""

import logging
import re
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

CONSOLE_FORMAT = (
    '<green>{time:YYYY-MM-DD HH:mm:ss}</green> | '
    '<level>{level: <8}</level> | '
    '<cyan>{extra[component]}</cyan> | '
    '<level>{message}</level>'
)

FILE_FORMAT = (
    '{time:YYYY-MM-DD HH:mm:ss} | '
    '{level: <8} | '
    '{extra[component]} | {name}:{function}:{line} | '
    '{message}'
)

# Session tokens and token secrets must never reach a log sink
_SECRET_PATTERN = re.compile(
    r'(X-Tableau-Auth|personalAccessTokenSecret|token)([\'"]?\s*[:=]\s*[\'"]?)([^\s\'",}]+)',
    re.IGNORECASE,
)


def redact_secrets(message: str) -> str:
    """Mask authentication tokens contained in a log message."""
    return _SECRET_PATTERN.sub(r'\1\2***', message)


def _patch_record(record) -> None:
    record['extra'].setdefault('component', record['name'])
    record['message'] = redact_secrets(record['message'])


class InterceptHandler(logging.Handler):
    """Route standard library log records (aiohttp, asyncio) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        logger.bind(component=record.name).opt(exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(
    level: str = 'INFO',
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
) -> None:
    """Setup logging configuration using loguru.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        log_format: Optional custom log format
    """
    logger.remove()
    logger.configure(patcher=_patch_record)

    logger.add(
        sys.stderr,
        format=log_format or CONSOLE_FORMAT,
        level=level,
        colorize=True,
        backtrace=True,
        diagnose=False,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_file,
            format=FILE_FORMAT,
            level=level,
            rotation='10 MB',
            retention='30 days',
            compression='gz',
            backtrace=True,
            diagnose=False,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    logger.info(f'Logging initialized with level: {level}')
    if log_file:
        logger.info(f'Log file: {log_file}')
