"""Centralized logging configuration for the event media pipeline."""

import os
import sys
import logging
from typing import Optional, TextIO

ROOT_LOGGER_NAME = "event-media-pipeline"


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: Optional[str] = None,
    format_type: str = "structured",
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Setup centralized logging with environment variable configuration.

    Args:
        name: Logger name (defaults to "event-media-pipeline")
        level: Log level override (defaults to env var or INFO)
        format_type: Logging format ("structured" or "simple")
        stream: Handler stream (defaults to stdout)

    Returns:
        Configured logger instance

    Environment Variables:
        LOG_LEVEL: Set logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LOG_FORMAT: Set format type ("structured" or "simple")
    """
    logger = logging.getLogger(name)

    if level:
        log_level = getattr(logging, level.upper(), logging.INFO)
    else:
        env_level = os.getenv("LOG_LEVEL", "INFO").upper()
        log_level = getattr(logging, env_level, logging.INFO)

    logger.setLevel(log_level)

    # Avoid duplicate handlers
    if not logger.handlers:
        handler = logging.StreamHandler(stream or sys.stdout)

        env_format = os.getenv("LOG_FORMAT", format_type).lower()

        if env_format == "structured":
            formatter = logging.Formatter(
                "%(asctime)s | %(name)s | %(levelname)-8s | "
                "%(filename)s:%(lineno)d | %(funcName)s() | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        else:
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )

        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Get a logger instance with consistent configuration.

    Args:
        name: Logger name

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    return setup_logger(name)


class StderrHandler(logging.StreamHandler):
    """Stream handler that writes to whatever ``sys.stderr`` is at emit time."""

    def __init__(self, level: int = logging.NOTSET):
        logging.Handler.__init__(self, level)

    @property
    def stream(self) -> TextIO:  # type: ignore[override]
        return sys.stderr


def _pipeline_logger_names(names: tuple) -> tuple:
    if names:
        return names
    return tuple(
        name for name in logging.Logger.manager.loggerDict
        if name.startswith(ROOT_LOGGER_NAME)
    ) or (ROOT_LOGGER_NAME,)


def log_to_stderr(*names: str) -> None:
    """
    Move the handlers of the given loggers (default: every pipeline logger)
    to stderr, keeping their formatters. Used when stdout carries data.
    """
    for name in _pipeline_logger_names(names):
        target = logging.getLogger(name)
        for handler in list(target.handlers):
            if type(handler) is logging.StreamHandler:
                replacement = StderrHandler(handler.level)
                replacement.setFormatter(handler.formatter)
                target.removeHandler(handler)
                target.addHandler(replacement)


def enable_debug_logging(*names: str) -> None:
    """Switch the given loggers (default: every pipeline logger) and the root logger to DEBUG."""
    for name in _pipeline_logger_names(names):
        logging.getLogger(name).setLevel(logging.DEBUG)
    logging.getLogger().setLevel(logging.DEBUG)


logger = setup_logger()
