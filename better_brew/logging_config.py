"""
Centralized logging configuration for Better Brew.

Console output is colored when attached to a terminal; an optional log file
always receives DEBUG-level records with timestamps.
"""

import logging
import sys
from pathlib import Path
from typing import Optional


LOGGER_NAME = "better_brew"

# Global logger instance
_logger: Optional[logging.Logger] = None


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    verbose: bool = False,
    quiet: bool = False,
    propagate: bool = False,
) -> logging.Logger:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        verbose: Enable verbose (DEBUG) output
        quiet: Suppress console output (file only)
        propagate: Allow log propagation (useful for testing)

    Returns:
        Configured logger instance
    """
    global _logger

    if verbose:
        effective_level = "DEBUG"
    elif quiet:
        effective_level = "WARNING"
    else:
        effective_level = level.upper()

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, effective_level))

    # Re-running setup replaces handlers instead of stacking them
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if not quiet:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(getattr(logging, effective_level))
        console_handler.setFormatter(ColoredFormatter(
            "%(levelname_colored)s %(worker)s%(message)s",
            use_colors=sys.stderr.isatty(),
        ))
        logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        logger.addHandler(file_handler)
        # The file gets everything even when the console is filtered
        logger.setLevel(logging.DEBUG)

    logger.propagate = propagate

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """
    Get the configured logger instance.

    If logging hasn't been set up, initializes with defaults.
    """
    global _logger
    if _logger is None:
        _logger = setup_logging()
    return _logger


class ColoredFormatter(logging.Formatter):
    """
    Console formatter: colored level names, plus a ``[bbrew_N]`` tag on
    records emitted from fan-out worker threads so interleaved lines from
    concurrent brew commands can be told apart.
    """

    # level -> (ANSI color, symbol)
    STYLES = {
        'DEBUG': ('\033[36m', '·'),
        'INFO': ('\033[32m', '✓'),
        'WARNING': ('\033[33m', '⚠'),
        'ERROR': ('\033[31m', '✗'),
        'CRITICAL': ('\033[1;31m', '✗'),
    }
    RESET = '\033[0m'
    WORKER_PREFIX = "bbrew"

    def __init__(self, fmt: str, use_colors: bool = True):
        super().__init__(fmt)
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if self.use_colors and levelname in self.STYLES:
            color, symbol = self.STYLES[levelname]
            record.levelname_colored = f"{color}{symbol} {levelname}{self.RESET}"
        else:
            record.levelname_colored = levelname

        thread = record.threadName or ""
        record.worker = f"[{thread}] " if thread.startswith(self.WORKER_PREFIX) else ""
        return super().format(record)
