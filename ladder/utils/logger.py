"""
Logging setup shared by the library modules and the recalculation script.

Library modules call setup_logger(__name__); the console script calls
configure_root_logging() once so third-party loggers end up in the same place.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from ladder.config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _log_level() -> int:
    return logging.DEBUG if Config.DEBUG else logging.INFO


def _file_handler(prefix: str, timestamp_format: str = "%Y%m%d") -> logging.FileHandler:
    """File handler writing to LOG_DIR/<prefix>_<timestamp>.log"""
    log_dir = Path(Config.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(
        log_dir / f'{prefix}_{datetime.now().strftime(timestamp_format)}.log',
        encoding='utf-8'
    )
    handler.setLevel(logging.DEBUG)
    return handler


def setup_logger(name: str) -> logging.Logger:
    """Setup a logger with consistent formatting"""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    log_level = _log_level()
    logger.setLevel(log_level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if Config.LOG_TO_FILE:
        file_handler = _file_handler('ladder')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Handlers are attached here; avoid printing twice through the root logger
    logger.propagate = False
    return logger


def configure_root_logging(run_name: Optional[str] = None) -> None:
    """Configure the root logger for a one-off script run"""
    handlers = [logging.StreamHandler()]
    if Config.LOG_TO_FILE and run_name:
        handlers.append(_file_handler(run_name, "%Y%m%d_%H%M%S"))
    logging.basicConfig(
        level=_log_level(),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers
    )
