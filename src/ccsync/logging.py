"""Logging configuration for ccsync.

Provides centralized logging setup with file output to ~/.ccsync/logs/.
"""

import logging
import sys
from pathlib import Path

# Default log directory
DEFAULT_LOG_DIR = Path.home() / ".ccsync" / "logs"


def setup_logging(
    name: str,
    log_dir: Path | None = None,
    level: int = logging.INFO,
    console: bool = True,
) -> logging.Logger:
    """Configure the ccsync logger tree for one entry point.

    Handlers are attached to the ``ccsync`` root logger so every
    component logger obtained through get_logger() writes to the same
    file. Log files are written to ~/.ccsync/logs/<name>.log.

    Args:
        name: Entry point name (used for log filename)
        log_dir: Directory for log files (defaults to ~/.ccsync/logs/)
        level: Logging level (defaults to INFO)
        console: Whether to also log to stderr (defaults to True)

    Returns:
        Configured root logger for ccsync
    """
    if log_dir is None:
        log_dir = DEFAULT_LOG_DIR

    log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("ccsync")
    logger.setLevel(level)

    # Re-running only adjusts the level of existing handlers
    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    file_handler = logging.FileHandler(log_dir / f"{name}.log", encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a ccsync component.

    Args:
        name: Component name (will be prefixed with 'ccsync.')

    Returns:
        Logger instance
    """
    return logging.getLogger(f"ccsync.{name}")
