# timsread/utils/logging_config.py
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from ..config import LOG_BACKUP_COUNT, LOG_FILE_MAX_SIZE_MB, MB_TO_BYTES


def setup_logging(
    log_level: str = "INFO", log_file: Optional[Union[str, Path]] = None
) -> None:
    """
    Configure root logging for applications embedding the reader.

    The library only emits records; it never calls this on import.

    Args:
        log_level: Name of the logging level (DEBUG, INFO, WARNING, ...)
        log_file: Optional path of a rotating log file
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
        )
    )
    handlers.append(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=LOG_FILE_MAX_SIZE_MB * MB_TO_BYTES,
            backupCount=LOG_BACKUP_COUNT,
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        handlers.append(file_handler)

    logging.basicConfig(level=numeric_level, handlers=handlers, force=True)
