"""Loguru sinks for the CLI and the HTTP service."""

import sys

from loguru import logger


CONSOLE_FORMAT = "{time:HH:mm:ss} <level>{level.name:<7}</level> <cyan>{module}</cyan> {message}"


def setup_logger(level="INFO", log_file=None, rotation="10 MB", retention=5):
    """
    Replace loguru's default handler.

    Generation runs on worker threads, so the optional file sink writes
    JSON lines through loguru's queue.
    """
    logger.remove()
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT)
    if log_file:
        logger.add(
            log_file,
            level=level,
            serialize=True,
            enqueue=True,
            rotation=rotation,
            retention=retention,
        )


def setup_logger_from_config(config):
    settings = config.get("logging") or {}
    setup_logger(
        level=settings.get("level") or "INFO",
        log_file=settings.get("file"),
        rotation=settings.get("rotation") or "10 MB",
        retention=settings.get("retention") or 5,
    )
