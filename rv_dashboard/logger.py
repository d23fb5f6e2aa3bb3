"""Logging setup for the RV dashboard backend.

Everything logs through the standard ``logging`` tree to one stdout handler.
The MQTT bridge attaches paho's client log to the ``paho.mqtt`` logger; that
and the HTTP stack's chattier libraries are held at a floor level so running
the dashboard at DEBUG does not bury it under per-packet and per-chunk lines.
"""

import logging
import sys
from typing import TYPE_CHECKING, Dict

if TYPE_CHECKING:
    from .config import AppConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Minimum level for third-party loggers regardless of LOG_LEVEL
LIBRARY_FLOORS: Dict[str, int] = {
    "paho.mqtt": logging.INFO,
    "multipart": logging.INFO,
    "httpx": logging.INFO,
}


def build_handler(level: int) -> logging.Handler:
    """Stdout handler in the dashboard log format."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def configure_logging(config: "AppConfig") -> None:
    """Install the stdout handler and apply LOG_LEVEL.

    Replaces whatever handlers the root logger already has, so a second call
    does not duplicate output.

    Args:
        config: Application configuration (log_level is already validated)
    """
    level = logging.getLevelName(config.log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers[:] = [build_handler(level)]

    for name, floor in LIBRARY_FLOORS.items():
        logging.getLogger(name).setLevel(max(level, floor))
