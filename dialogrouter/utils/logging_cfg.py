from __future__ import annotations

import os
import sys
from pathlib import Path

from loguru import logger

from dialogrouter.utils.env_cfg import load_path_env

# Every record carries the conversation it belongs to; "-" outside of a turn.
_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {extra[conversation_id]} | "
    "{name} | {message}"
)


def setup_logging(
    level: str | None = None,
    to_file: bool = True,
    rotation: str = "5 MB",
    retention: int = 3,
    diagnose: bool = False,
) -> Path | None:
    """
    Set up logging for the router service.

    Turn processing binds `conversation_id` with `logger.contextualize`, so the
    sinks below render it for every line emitted while a turn is running.

    Args:
        level (str | None, optional): Console level. Defaults to LOG_LEVEL or "INFO".
        to_file (bool, optional): Whether to add the rotating file sink. Defaults to True.
        rotation (str, optional): The log file rotation policy. Defaults to "5 MB".
        retention (int, optional): The number of log files to retain. Defaults to 3.
        diagnose (bool, optional): Whether to include diagnostic information. Defaults to False.

    Returns:
        Path | None: The path to the log file, or None without a file sink.
    """
    console_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()

    logger.remove()
    logger.configure(extra={"conversation_id": "-"})

    logger.add(
        sink=sys.stderr,
        level=console_level,
        backtrace=False,
        diagnose=diagnose,
        format=_FORMAT,
    )

    if not to_file:
        return None

    log_path = load_path_env().logs
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        sink=log_path,
        rotation=rotation,
        retention=retention,
        encoding="utf-8",
        level="DEBUG",
        backtrace=True,
        diagnose=diagnose,
        enqueue=True,
        format=_FORMAT,
    )
    return log_path
