"""Logging configuration."""
import sys
from pathlib import Path

import sentry_sdk
from loguru import logger

from job_tracker.config.settings import settings

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
)


def _sentry_sink(message) -> None:
    record = message.record
    if record["exception"]:
        sentry_sdk.capture_exception(record["exception"].value)
        return
    with sentry_sdk.new_scope() as scope:
        scope.set_extra("name", record["name"])
        scope.set_extra("function", record["function"])
        scope.set_extra("line", record["line"])
        sentry_sdk.capture_message(record["message"], level="error", scope=scope)


def setup_logger(log_level: str = "INFO", log_file: Path | None = None) -> None:
    """Route loguru output to stderr, optionally a file, and Sentry when a DSN is set."""
    logger.remove()

    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=log_level, colorize=True)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(log_file, level="DEBUG", rotation="5 MB", retention=3, enqueue=False)

    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.sentry_environment,
            traces_sample_rate=0.0,
        )
        logger.add(_sentry_sink, level="ERROR")

    logger.debug(f"Logger initialized (level={log_level})")
