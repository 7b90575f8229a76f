"""Logging configuration for the trail timelapse CLI and service."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

DEFAULT_LOGGER_NAME = "trail_timelapse"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(threadName)s - %(message)s"

# Chatty at INFO; kept at WARNING unless debugging.
NOISY_LOGGERS = ("urllib3", "apscheduler", "PIL")


def configure_logging(
    logger_name: Optional[str] = None,
    *,
    level: int = logging.INFO,
    log_file: Union[str, Path, None] = None,
) -> logging.Logger:
    """Log to stderr, and to ``log_file`` as well when one is given.

    A log file that cannot be opened is reported on the returned logger
    instead of aborting startup.
    """
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    file_error: Optional[OSError] = None

    if log_file:
        log_path = Path(log_file)
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
        except OSError as exc:
            file_error = exc

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=handlers, force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logger = logging.getLogger(logger_name or DEFAULT_LOGGER_NAME)
    logger.setLevel(level)
    if file_error is not None:
        logger.warning("Could not open log file '%s'; logging to stderr only: %s", log_file, file_error)
    return logger


__all__ = ["configure_logging", "DEFAULT_LOGGER_NAME"]
