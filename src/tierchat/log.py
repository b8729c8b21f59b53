"""Logging setup for tierchat.

Every module logs through ``logging.getLogger(__name__)``, so all records
land under the ``tierchat`` logger. Applications that want a log file call
``setup_file_logger`` once at startup.
"""

import logging
from pathlib import Path
from typing import Union

from .errors import ConfigError

LOGGER_NAME = "tierchat"


def setup_file_logger(
    log_path: Union[str, Path], level: Union[int, str] = logging.INFO
) -> logging.Logger:
    """Attach a file handler to the package logger.

    Args:
        log_path: Path to the log file (parent directories are created).
        level: Logging level name or number.

    Returns:
        Configured package logger.

    Raises:
        ConfigError: If the level name is not a logging level.
    """
    log_path = Path(log_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ConfigError(f"Unknown log level '{level}'")
        level = resolved
    logger.setLevel(level)

    # Replace a previous file handler for the same path instead of stacking
    for handler in list(logger.handlers):
        if (
            isinstance(handler, logging.FileHandler)
            and Path(handler.baseFilename) == log_path.resolve()
        ):
            logger.removeHandler(handler)
            handler.close()

    file_handler = logging.FileHandler(log_path, mode="a")
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(file_handler)
    return logger
