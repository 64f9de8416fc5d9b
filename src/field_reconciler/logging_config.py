"""
Logging configuration for field-reconciler.

All modules log through the ``field_reconciler`` logger hierarchy so that a
single call to setup_logging() controls verbosity for the whole run.

Row decisions a person should look at (preserved overrides, rows sent to
manual review, retired parents) are logged at the NOTICE level, which sits
between INFO and WARNING. ``--log-level WARNING`` hides them together with the
routine progress messages.
"""

import logging
import os
import sys
from typing import Optional

PACKAGE_LOGGER = "field_reconciler"

NOTICE = 25
logging.addLevelName(NOTICE, "NOTICE")


def _resolve_level(level: str) -> int:
    name = level.strip().upper()
    if name == "NOTICE":
        return NOTICE
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    level: Optional[str] = None, format_detailed: bool = False
) -> logging.Logger:
    """
    Set up logging for a reconciliation run.

    Args:
        level: Logging level (DEBUG, INFO, NOTICE, WARNING, ERROR, CRITICAL).
               If None, LOG_LEVEL from the environment is used, defaulting to INFO
        format_detailed: Include timestamps and logger names; LOG_FORMAT=detailed
                         has the same effect

    Returns:
        The package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)

    # Repeated calls (CLI pre-parse, then configured level) replace the handler
    logger.handlers.clear()

    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")

    numeric_level = _resolve_level(level)
    logger.setLevel(numeric_level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)

    if format_detailed or os.getenv("LOG_FORMAT", "").lower() == "detailed":
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
    else:
        formatter = logging.Formatter("%(levelname)s: %(message)s")

    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logger.propagate = False

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module logger inside the ``field_reconciler`` hierarchy."""
    if name is None:
        return logging.getLogger(PACKAGE_LOGGER)

    if not name.startswith(PACKAGE_LOGGER):
        if name.startswith("__main__"):
            name = f"{PACKAGE_LOGGER}.main"
        else:
            name = f'{PACKAGE_LOGGER}.{name.split(".")[-1]}'

    return logging.getLogger(name)


def row_notice(logger: logging.Logger, tag: str, source_field_id: str, message: str) -> None:
    """Log a tagged row decision, e.g. ``[preserved] customfield_10010: ...``."""
    logger.log(NOTICE, f"[{tag}] {source_field_id}: {message}")
