"""
Logging setup.

Modules call get_logger(__name__). The first call installs one stderr
handler on the root logger with the level and format from Config; the CLI
calls setup_logging() itself so that --quiet can raise the level.
"""

import logging
import sys
from typing import Optional, TextIO

from config import get_config


# SDK loggers that emit a line per HTTP request at INFO
NOISY_LOGGERS = ("anthropic", "httpx", "httpcore")

_configured = False


def setup_logging(
    level: Optional[str] = None,
    format_string: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Configure the root logger, replacing any handler installed earlier.

    Args:
        level: Level name; defaults to Config.log_level
        format_string: Record format; defaults to Config.log_format
        stream: Destination; defaults to sys.stderr

    Returns:
        The root logger
    """
    global _configured

    config = get_config()
    numeric_level = getattr(logging, (level or config.log_level).upper(), logging.INFO)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(format_string or config.log_format))

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    _configured = True
    return root


def get_logger(name: str) -> logging.Logger:
    if not _configured:
        setup_logging()
    return logging.getLogger(name)
