from __future__ import annotations
import os
from loguru import logger


def setup_logging(level: str | None = None) -> None:
    """
    Loguru setup for the whole process.
    Level comes from LOG_LEVEL (INFO/DEBUG/WARNING/ERROR) unless passed explicitly.
    """
    level = level or os.getenv("LOG_LEVEL", "INFO")
    # drop default handlers so repeated starts don't duplicate output
    logger.remove()
    logger.add(
        sink=lambda msg: print(msg, end=""),
        level=level,
        backtrace=True,
        diagnose=False,
        colorize=True,
        enqueue=False,
    )
