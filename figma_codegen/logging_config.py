"""Logging configuration for the CLI entry point."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .config import LOG_DIR

# Prevent duplicate handlers
_configured_loggers: set[str] = set()


def setup_logger(
    name: str,
    filename: str,
    level: int = logging.INFO,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """Setup a logger with file and console handlers.

    Args:
        name: Logger name (e.g., 'figma_codegen')
        filename: Log file name (e.g., 'codegen.log')
        level: Level applied to the logger and both handlers
        log_dir: Directory for the log file (defaults to LOG_DIR)

    Returns:
        Configured logger instance
    """
    if name in _configured_loggers:
        return logging.getLogger(name)

    target_dir = log_dir or LOG_DIR
    target_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False  # Prevent duplicate logs

    # File handler
    fh = logging.FileHandler(target_dir / filename, encoding="utf-8")
    fh.setLevel(level)
    fh.setFormatter(logging.Formatter(
        "%(asctime)s [%(name)s] [%(levelname)s] %(message)s"
    ))

    # Console handler
    sh = logging.StreamHandler()
    sh.setLevel(level)
    sh.setFormatter(logging.Formatter(
        "%(asctime)s [%(name)s] %(message)s"
    ))

    logger.addHandler(fh)
    logger.addHandler(sh)

    _configured_loggers.add(name)
    return logger


def get_cli_logger(verbose: bool = False) -> logging.Logger:
    """Logger for the command-line entry point (covers the whole package)."""
    return setup_logger(
        "figma_codegen", "codegen.log",
        level=logging.DEBUG if verbose else logging.INFO,
    )
