"""
Logging for the analysis pipeline.

Everything goes through loguru. Records from the standard ``logging``
module (web services, SQLAlchemy, APScheduler, httpx) are forwarded to it
by ``InterceptHandler`` once ``setup_logging`` has run.
"""
import logging
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from src.utils.config import LoggingConfig

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"

# Libraries that log every request or query at INFO
NOISY_LOGGERS = ("sqlalchemy.engine", "apscheduler.executors", "httpx", "openai")


class InterceptHandler(logging.Handler):
    """Forward a stdlib log record to loguru, keeping the caller's location."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """Install console and rotating file sinks, then route stdlib logging here."""
    config = config or LoggingConfig()
    logger.remove()

    logger.add(sys.stdout, level=config.level, format=CONSOLE_FORMAT, colorize=True)

    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            config.file,
            level=config.level,
            format=FILE_FORMAT,
            rotation=config.rotation,
            retention=config.retention,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
