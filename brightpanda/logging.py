"""Logging setup shared by the scanner, plugins and CLI."""

from __future__ import annotations

import logging
from pathlib import Path

ROOT_LOGGER = "brightpanda"
CONSOLE_FORMAT = "[%(component)s] %(levelname)s %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(component)s (%(threadName)s): %(message)s"


class ComponentFormatter(logging.Formatter):
    """Formatter that exposes ``%(component)s``, the logger name below ``brightpanda``.

    ``brightpanda.plugins`` renders as ``plugins``; the root logger renders as
    ``brightpanda``. Thread names are kept in the file format because parallel
    scans interleave per-file messages.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.component = component_name(record.name)
        return super().format(record)


def component_name(logger_name: str) -> str:
    prefix = ROOT_LOGGER + "."
    if logger_name.startswith(prefix):
        return logger_name[len(prefix):]
    return logger_name


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``brightpanda.<name>``, or the root brightpanda logger."""
    full_name = f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER
    return logging.getLogger(full_name)


def _drop_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Send brightpanda records to stderr, and to ``log_file`` when given.

    The file sink always records DEBUG so a scan log keeps per-file detail even
    when the console stays at INFO. Calling this again replaces earlier handlers.
    """
    console_level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(ROOT_LOGGER)
    logger.propagate = False
    _drop_handlers(logger)

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(ComponentFormatter(CONSOLE_FORMAT))
    logger.addHandler(console)

    logger_level = console_level
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        sink = logging.FileHandler(log_file, encoding="utf-8")
        sink.setLevel(logging.DEBUG)
        sink.setFormatter(ComponentFormatter(FILE_FORMAT))
        logger.addHandler(sink)
        logger_level = logging.DEBUG

    logger.setLevel(logger_level)
    return logger


__all__ = ["ComponentFormatter", "component_name", "configure_logging", "get_logger"]
