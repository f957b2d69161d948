"""Central logging configuration for the service.

Applies a root stdout handler so all module loggers emit INFO-level logs
without per-module setup. Keeps uvicorn loggers visible and avoids
duplicate handlers on reloads.
"""
from __future__ import annotations
import logging
import os
from logging.config import dictConfig

_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

_DICT_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)s:%(name)s:%(message)s",
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": _LEVEL,
            "formatter": "default",
            "stream": "ext://sys.stdout",
        }
    },
    "root": {"level": _LEVEL, "handlers": ["console"]},
    "loggers": {
        "uvicorn": {"level": "INFO", "handlers": ["console"], "propagate": False},
        "uvicorn.error": {"level": "INFO", "handlers": ["console"], "propagate": False},
        "uvicorn.access": {"level": "INFO", "handlers": ["console"], "propagate": False},
        "sqlalchemy.engine": {"level": "WARNING"},
    },
}

def configure_logging() -> None:
    """Configure application-wide logging once.

    If the root logger already has handlers (pytest capture, reloaders),
    leave it alone to prevent duplicate output.
    """
    root = logging.getLogger()
    if root.handlers:
        return
    dictConfig(_DICT_CONFIG)
