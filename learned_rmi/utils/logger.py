# learned_rmi/utils/logger.py
import sys

from loguru import logger

from learned_rmi.config.network_config import LogConfig

_LOGGER_CONFIGURED = False


def init_logging(config: LogConfig = LogConfig(), force: bool = False) -> None:
    """
    Route loguru output to a single sink, once per process.

    sink is "stderr", "stdout" or a file path.
    """
    global _LOGGER_CONFIGURED
    if _LOGGER_CONFIGURED and not force:
        return

    logger.remove()
    if config.sink == "stderr":
        sink = sys.stderr
    elif config.sink == "stdout":
        sink = sys.stdout
    else:
        sink = config.sink

    logger.add(
        sink,
        level=config.level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}",
        backtrace=True,
        diagnose=False,
    )
    _LOGGER_CONFIGURED = True
    logger.debug(f"Logger initialized at level {config.level}")
