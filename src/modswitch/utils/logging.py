"""
Logging setup for modswitch.

Library modules call ``setup_logging(__name__)`` and get a plain logger that
propagates to the ``modswitch`` package logger. Entry points call
``configure_root_logging`` once to attach console and file output, either as
text lines or as JSON records.
"""

import logging
import logging.config
import sys
from pathlib import Path
from typing import Any

from pythonjsonlogger.json import JsonFormatter

PACKAGE_LOGGER = "modswitch"
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
JSON_FIELDS = '%(asctime)s %(name)s %(levelname)s %(message)s'


def _formatter(structured: bool) -> logging.Formatter:
    if structured:
        return JsonFormatter(fmt=JSON_FIELDS, datefmt=DATE_FORMAT)
    return logging.Formatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(
    name: str | None = None,
    level: str | None = None,
    structured: bool = False,
    log_file: Path | None = None
) -> logging.Logger:
    """Get a module logger, optionally with its own handlers.

    Without ``level`` the logger is returned untouched and its records go
    wherever the ``modswitch`` logger sends them. With a level it gets a
    stderr handler and, if ``log_file`` is given, a file handler. A logger
    that already has handlers is never configured twice.

    Args:
        name: Logger name, the package logger if omitted
        level: Level name such as ``INFO`` or ``debug``
        structured: Emit JSON records instead of text lines
        log_file: File that receives a copy of every record

    Returns:
        The logger
    """
    logger = logging.getLogger(name or PACKAGE_LOGGER)
    if level is None or logger.handlers:
        return logger

    logger.setLevel(level.upper())
    formatter = _formatter(structured)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def _handler_configs(level: str, formatter: str, log_file: Path | None) -> dict[str, dict[str, Any]]:
    handlers: dict[str, dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": level,
            "formatter": formatter,
            "stream": "ext://sys.stderr",
        },
    }
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.FileHandler",
            "level": level,
            "formatter": formatter,
            "filename": str(log_file),
        }
    return handlers


def configure_root_logging(
    level: str = "INFO",
    structured: bool = False,
    log_file: Path | None = None
) -> None:
    """Route the root and ``modswitch`` loggers to stderr and an optional file.

    The package logger gets its own copy of the handlers and stops
    propagating, so its records are written once.
    """
    level = level.upper()
    handlers = _handler_configs(level, "json" if structured else "text", log_file)

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "text": {"format": TEXT_FORMAT, "datefmt": DATE_FORMAT},
            "json": {"()": "pythonjsonlogger.json.JsonFormatter", "format": JSON_FIELDS, "datefmt": DATE_FORMAT},
        },
        "handlers": handlers,
        "root": {"level": level, "handlers": list(handlers)},
        "loggers": {
            PACKAGE_LOGGER: {"level": level, "handlers": list(handlers), "propagate": False},
        },
    })
