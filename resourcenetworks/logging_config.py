"""Logging setup for resource network runs.

Every module logs through ``logging.getLogger(__name__)`` below the
``resourcenetworks`` logger, which only carries a NullHandler until one of the
helpers here installs output. Protocol code attaches the run a message belongs
to as ``extra`` fields (node count, sketch dimensions, radius, round index).
Both formatters render those fields, so lines from the runs of an ensemble can
be told apart:

    2025-03-02 10:30:00 - resourcenetworks.propagation - DEBUG - Register round 3/12 committed [N=900 m=320 l=5 gamma=64 R=12 round=3]

    import resourcenetworks

    resourcenetworks.enable_console_logging(level="DEBUG")
    resourcenetworks.enable_file_logging("runs/ensemble.log", json_output=True)

Environment variables read by configure_from_env:
    RN_LOGGING: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    RN_LOG_FILE: Rotating log file path
    RN_LOG_JSON: "1" for one JSON object per line
"""

from __future__ import annotations

import json
import logging
import os
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Literal

__all__ = [
    "RUN_CONTEXT_FIELDS",
    "JsonFormatter",
    "RunContextFormatter",
    "configure_from_env",
    "disable_logging",
    "enable_console_logging",
    "enable_file_logging",
    "enable_json_logging",
    "package_logger",
    "run_context",
    "set_level",
    "set_module_level",
]

LOGGER_NAME = "resourcenetworks"

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Ensembles can warn once per clamped register sample.
ROTATE_BYTES = 10 * 1024 * 1024
ROTATE_BACKUPS = 5

# ``extra`` field -> short tag in text output, in display order.
RUN_CONTEXT_FIELDS = {
    "graph_type": "graph",
    "num_nodes": "N",
    "message_bits": "m",
    "register_width": "l",
    "gamma": "gamma",
    "radius": "R",
    "round": "round",
}

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def run_context(record: logging.LogRecord) -> dict[str, Any]:
    """Run context fields attached to ``record``, in display order."""
    return {
        field: getattr(record, field) for field in RUN_CONTEXT_FIELDS if hasattr(record, field)
    }


class RunContextFormatter(logging.Formatter):
    """Text formatter that appends the run context as ``[N=... R=... round=...]``."""

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        context = run_context(record)
        if not context:
            return line
        tags = " ".join(f"{RUN_CONTEXT_FIELDS[field]}={value}" for field, value in context.items())
        return f"{line} [{tags}]"


class JsonFormatter(logging.Formatter):
    """One JSON object per line, with the run context under ``"run"``.

    Example output:
        {"timestamp": "2025-03-02T10:30:00.123456+00:00", "level": "WARNING",
         "logger": "resourcenetworks.estimation", "message": "Node 17 has Z = 0.0",
         "run": {"num_nodes": 900, "message_bits": 320, "register_width": 5, "gamma": 64}}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = run_context(record)
        if context:
            entry["run"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def package_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def _level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, level.upper(), logging.INFO)


def _formatter(json_output: bool) -> logging.Formatter:
    if json_output:
        return JsonFormatter()
    return RunContextFormatter(TEXT_FORMAT, DATE_FORMAT)


def _attach(handler: logging.Handler, json_output: bool, level: str | int) -> None:
    handler.setFormatter(_formatter(json_output))
    handler.setLevel(_level(level))
    logger = package_logger()
    logger.setLevel(_level(level))
    logger.addHandler(handler)


def enable_console_logging(
    level: LogLevel | int = "INFO", json_output: bool = False
) -> logging.StreamHandler:
    """Log to stderr and return the installed handler."""
    handler = logging.StreamHandler()
    _attach(handler, json_output, level)
    return handler


def enable_json_logging(level: LogLevel | int = "INFO") -> logging.StreamHandler:
    """Log JSON lines to stderr."""
    return enable_console_logging(level, json_output=True)


def enable_file_logging(
    path: str | Path,
    level: LogLevel | int = "INFO",
    json_output: bool = False,
    max_bytes: int = ROTATE_BYTES,
    backup_count: int = ROTATE_BACKUPS,
) -> RotatingFileHandler:
    """Log to a rotating file.

    Args:
        path: Log file. Parent directories are created.
        level: Level name or number.
        json_output: Write JSON lines instead of text.
        max_bytes: Size at which the file is rotated.
        backup_count: Rotated files kept.

    Returns:
        The installed handler.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count)
    _attach(handler, json_output, level)
    return handler


def configure_from_env() -> logging.Handler | None:
    """Install a handler from RN_LOGGING, RN_LOG_FILE and RN_LOG_JSON.

    Returns the handler, or None when neither RN_LOGGING nor RN_LOG_FILE is set.
    """
    level = os.environ.get("RN_LOGGING", "").upper()
    log_file = os.environ.get("RN_LOG_FILE", "")
    json_output = os.environ.get("RN_LOG_JSON", "") == "1"

    if not level and not log_file:
        return None
    if log_file:
        return enable_file_logging(log_file, level or "INFO", json_output=json_output)
    return enable_console_logging(level, json_output=json_output)


def set_level(level: LogLevel | int) -> None:
    package_logger().setLevel(_level(level))


def set_module_level(module: str, level: LogLevel | int) -> None:
    """Set the level of one submodule, e.g. ``"propagation"`` for per-round output."""
    logging.getLogger(f"{LOGGER_NAME}.{module}").setLevel(_level(level))


def disable_logging() -> None:
    """Close every installed handler and silence the package."""
    logger = package_logger()
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    logger.addHandler(logging.NullHandler())
    logger.setLevel(logging.CRITICAL + 1)
