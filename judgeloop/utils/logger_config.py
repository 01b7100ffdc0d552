"""
Logging configuration for judgeloop

Console output is colored by level, file output is plain text. Every
module obtains its logger through get_logger() so the handlers installed
by setup_logging() apply everywhere.
"""

import logging
import os
import re
import sys
from typing import Dict, Optional


class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors to console output"""

    COLORS = {
        'DEBUG': '\033[32m',      # Green text
        'INFO': '\033[36m',       # Cyan text
        'WARNING': '\033[33m',    # Yellow text
        'ERROR': '\033[31m',      # Red text
        'CRITICAL': '\033[41m\033[97m', # Red background + white text
        'RESET': '\033[0m'
    }

    ANSI_ESCAPE = re.compile(r'\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])')

    def format(self, record):
        color = self.COLORS.get(record.levelname, '')
        if not color:
            return super().format(record)

        original_levelname = record.levelname
        original_msg = record.msg
        reset = self.COLORS['RESET']

        # Only the level name and the message are colored
        record.levelname = f"{color}{original_levelname}{reset}"
        record.msg = f"{color}{original_msg}{reset}"
        try:
            return super().format(record)
        finally:
            record.levelname = original_levelname
            record.msg = original_msg

    def format_without_color(self, record):
        """Format log record without color codes"""
        formatted = logging.Formatter.format(self, record)
        return self.ANSI_ESCAPE.sub('', formatted)


class NoColorFormatter(ColoredFormatter):
    """Formatter without colors, used for file output"""
    def format(self, record):
        return self.format_without_color(record)


# Third-party loggers that are too chatty at DEBUG
QUIET_LOGGERS: Dict[str, str] = {
    "urllib3": "WARNING",
    "werkzeug": "INFO",
}


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    enable_colors: bool = True
) -> None:
    """
    Setup logging configuration

    Args:
        level: Console logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path, its directory is created if missing
        enable_colors: Whether to enable colored output for console
    """
    # Remove existing handlers to avoid duplicates
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    base_format = '%(asctime)s.%(msecs)03d | %(levelname)-8s | %(name)s | %(filename)s:%(lineno)d - %(message)s'
    date_format = '%Y-%m-%d %H:%M:%S'

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    if enable_colors:
        console_handler.setFormatter(ColoredFormatter(base_format, datefmt=date_format))
    else:
        console_handler.setFormatter(NoColorFormatter(base_format, datefmt=date_format))
    logging.root.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)  # File records all log levels
        file_handler.setFormatter(NoColorFormatter(base_format, datefmt=date_format))
        logging.root.addHandler(file_handler)

    logging.root.setLevel(logging.DEBUG)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the specified name

    Args:
        name: Logger name, prefixed with "judgeloop."

    Returns:
        Logger instance
    """
    return logging.getLogger(f"judgeloop.{name}")
