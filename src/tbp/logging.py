"""Logging configuration for TBP.

Uses Python's standard logging module with support for:
- File logging via argument or TBP_LOG environment variable
- Verbosity levels: error(0), warning(1), info(2), verbose(3), trace(4)
- Stderr fallback when no log file is configured
- Structured format with timestamps and level names
"""

from __future__ import annotations

import logging
import os
import sys

# Custom log levels
TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

# Module-level logger
logger = logging.getLogger("tbp")

_initialized = False

LOG_ENV_VAR = "TBP_LOG"

# Map string level names to logging constants
_LEVEL_MAP = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "VERBOSE": VERBOSE,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Map verbose=N to log levels (0=errors only, 4=everything)
_VERBOSITY_MAP = {
    0: logging.ERROR,
    1: logging.WARNING,
    2: logging.INFO,
    3: VERBOSE,
    4: TRACE,
}


class _LowercaseLevelFormatter(logging.Formatter):
    """Formatter that emits lowercase level names."""

    def format(self, record: logging.LogRecord) -> str:
        record.levelname = record.levelname.lower()
        return super().format(record)


def resolve_level(level: str | None = None, verbose: int | None = None) -> int:
    """Resolve a logging level from a level name or a verbosity number.

    ``verbose`` takes precedence over ``level``. Unknown names fall back to
    INFO and verbosity above 4 maps to TRACE.
    """
    if verbose is not None:
        return _VERBOSITY_MAP.get(verbose, TRACE)
    if level:
        return _LEVEL_MAP.get(level.upper(), logging.INFO)
    return logging.INFO


def setup_logging(
    level: str | None = None,
    verbose: int | None = None,
    file: str | None = None,
) -> None:
    """Initialize logging for the ``tbp`` logger tree.

    Call this once at startup. Subsequent calls are no-ops.

    Verbosity levels:
        0 = error   - errors only
        1 = warning  - errors + warnings
        2 = info     - normal operation (default)
        3 = verbose  - detailed diagnostics
        4 = trace    - everything

    Args:
        level: Level name such as "debug" or "warning".
        verbose: Verbosity number, overrides ``level``.
        file: Log file path. Falls back to the TBP_LOG environment variable.
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    log_level = resolve_level(level, verbose)
    logger.setLevel(log_level)

    # Format: HH:MM:SS level: name: message
    formatter = _LowercaseLevelFormatter(
        "%(asctime)s %(levelname)s: %(name)s: %(message)s", datefmt="%H:%M:%S"
    )

    log_path = file or os.environ.get(LOG_ENV_VAR)

    if log_path:
        log_path = os.path.expanduser(log_path)
        try:
            file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            # Fall back to stderr if file can't be opened (only if real console)
            if sys.stderr.isatty():
                print(f"[tbp] Failed to open log file: {e}", file=sys.stderr)
                _add_stderr_handler(formatter, log_level)
    elif sys.stderr.isatty():
        # Only log to stderr if it's a real console, not a pipe
        _add_stderr_handler(formatter, log_level)


def reset_logging() -> None:
    """Remove installed handlers so setup_logging() can run again."""
    global _initialized
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    _initialized = False


def _add_stderr_handler(formatter: logging.Formatter, level: int = logging.DEBUG) -> None:
    """Add a stderr handler to the logger."""
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(level)
    stderr_handler.setFormatter(formatter)
    logger.addHandler(stderr_handler)


def get_logger(name: str | None = None) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Optional name for a child logger (e.g., "config", "config.file").
              If None, returns the root tbp logger.

    Returns:
        A configured logger instance.
    """
    if name:
        return logger.getChild(name)
    return logger
