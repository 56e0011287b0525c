"""Logging setup shared by the server and the one-shot CLI commands."""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# aiohttp logs every request and paho every packet at INFO/DEBUG.
NETWORK_LOGGERS = ("aiohttp.access", "aiohttp.client", "aiohttp.server", "paho")

LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3


def resolve_level(level: str) -> int:
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else logging.INFO


def configure_logging(
    level: str = "INFO", *, log_path: Optional[Path] = None, log_network: bool = False
) -> None:
    """Install console and optional file handlers on the root logger.

    Parameters
    ----------
    level:
        Log level name, e.g. "INFO". Unknown names fall back to INFO.
    log_path:
        Optional path for a size-rotated log file, in addition to the console.
    log_network:
        When true, HTTP access and MQTT client loggers follow ``level``
        instead of being capped at WARNING.

    Calling this again replaces the handlers installed by the previous call.
    """

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                log_path, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS
            )
        )
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    root_level = resolve_level(level)
    root.setLevel(root_level)
    logging.captureWarnings(True)

    network_level = logging.NOTSET if log_network else max(root_level, logging.WARNING)
    for name in NETWORK_LOGGERS:
        logging.getLogger(name).setLevel(network_level)
