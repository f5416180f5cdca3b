"""
Structured logging for the RFT dashboard preprocessor
======================================================
JSON log lines on stdout via python-json-logger, so batch runs can be
grepped or shipped to a log collector. Console summaries stay plain
print() output in preprocess.py.
"""

import logging
import os
import sys

from pythonjsonlogger.json import JsonFormatter

DEFAULT_LOGGER = "rft-dashboard"

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class DashboardJsonFormatter(JsonFormatter):
    """Adds timestamp, level, logger and call site to every record."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        if not log_record.get("timestamp"):
            log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["module"] = record.module
        log_record["function"] = record.funcName


def setup_logger(name=DEFAULT_LOGGER, level=None, format_type="json"):
    """Configure (or reconfigure) a logger with a single stdout handler.

    Level comes from the argument, else the LOG_LEVEL environment
    variable, else INFO. format_type is "json" or "text".
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_level = LOG_LEVELS.get(level_name, logging.INFO)

    logger = logging.getLogger(name)
    logger.setLevel(log_level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    if format_type == "json":
        formatter = DashboardJsonFormatter(
            fmt="%(timestamp)s %(level)s %(logger)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def get_logger(name=None):
    """Return a child of the application logger, configuring the root once.

    Module loggers (``get_logger(__name__)``) propagate into the shared
    application logger, so one setup_logger() call controls them all.
    """
    root = logging.getLogger(DEFAULT_LOGGER)
    if not root.handlers:
        setup_logger(DEFAULT_LOGGER)
    if not name or name == DEFAULT_LOGGER:
        return root
    return root.getChild(name)
