"""Logging configuration for cluster bootstrap.

Every record is stamped with the bootstrap phase that was active when it was
emitted, so a debug log of a failed run shows where each line came from.
"""

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - [%(phase)s] %(levelname)s - %(message)s"
NO_PHASE = "-"

_current_phase = NO_PHASE


class PhaseFilter(logging.Filter):
    """Adds a ``phase`` attribute to each record passing through a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.phase = _current_phase
        return True


def set_phase(phase: str | None) -> None:
    """Set the phase name stamped on subsequent records; None clears it."""
    global _current_phase
    _current_phase = phase or NO_PHASE


def setup_logging(level: str = "INFO", log_file: Path | None = None, verbose: bool = False) -> None:
    """Configure logging for the application.

    The rich console carries progress output, so stderr only gets warnings
    unless ``verbose`` is set. The log file always records DEBUG.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file
        verbose: If True, set level to DEBUG
    """
    if verbose:
        level = "DEBUG"

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    phase_filter = PhaseFilter()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(phase_filter)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
        except OSError as e:
            logging.warning(f"Failed to create log file handler: {e}")
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            file_handler.addFilter(phase_filter)
            root_logger.addHandler(file_handler)

    # The API client logs every request at DEBUG
    for noisy in ("urllib3", "kubernetes"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
