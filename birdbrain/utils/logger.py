"""Logging setup for birdbrain sessions."""

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are chatty at INFO (HTTP requests, model downloads)
NOISY_LOGGERS = ("httpx", "anthropic", "sentence_transformers", "urllib3")


def setup_logger(
    name: str = "birdbrain",
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    overwrite: bool = False,
    log_format: str = LOG_FORMAT,
) -> logging.Logger:
    """
    Configure the birdbrain logger tree.

    Handlers are attached to ``name`` only; module loggers created with
    ``logging.getLogger(__name__)`` inside the package propagate to it.
    Calling this again replaces the previous handlers.

    Args:
        name: Root logger name for the package
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_file: Optional log file; parent directories are created
        overwrite: Truncate log_file instead of appending
        log_format: Format string shared by all handlers

    Returns:
        The configured logger
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    logger = logging.getLogger(name)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(log_format)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="w" if overwrite else "a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Keep library noise out of the console unless debugging
    library_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(library_level)

    return logger
