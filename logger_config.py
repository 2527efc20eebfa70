import logging
import os
import sys
from pathlib import Path

import config

LOG_FILE = "file_share.log"


def console_level(name: str = None) -> int:
    """Resolve the console log level, falling back to INFO for unknown names."""
    level = logging.getLevelName((name or os.getenv(config.LOG_LEVEL_ENV, "INFO")).upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logger(log_dir: str = None):
    logger = logging.getLogger("file_share")
    # Every module calls this at import; configure handlers only once
    if logger.handlers:
        return logger

    logs_dir = Path(log_dir or os.getenv(config.LOG_DIR_ENV, config.LOG_DIR))
    logs_dir.mkdir(exist_ok=True, parents=True)
    logger.setLevel(logging.DEBUG)

    # Everything goes to the file, with source locations
    file_handler = logging.FileHandler(logs_dir / LOG_FILE)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
    ))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level())
    console_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)
    return logger
