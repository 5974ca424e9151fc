from __future__ import annotations

import os
import sys

from loguru import logger

from state_timeline.config import LogConfig

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {name} | {message}"

_LOGGER_CONFIGURED = False


def setup_logging(config: LogConfig | None = None, *, force: bool = False) -> None:
    """
    Configure the global loguru logger once per process.

    stderr always gets a sink; a daily-rotated file sink is added when
    config.dir is set.
    """
    global _LOGGER_CONFIGURED
    if _LOGGER_CONFIGURED and not force:
        return
    config = config or LogConfig()

    logger.remove()
    logger.add(sys.stderr, level=config.level, format=LOG_FORMAT)
    if config.dir:
        os.makedirs(config.dir, exist_ok=True)
        logger.add(
            sink=os.path.join(config.dir, "{time:YYYY-MM-DD}.log"),
            rotation=config.rotation,
            retention=config.retention,
            level=config.level,
            format=LOG_FORMAT,
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )
    _LOGGER_CONFIGURED = True
    logger.debug("Logger initialized (level={})", config.level)
