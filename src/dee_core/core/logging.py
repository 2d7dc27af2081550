"""JSON lines logging for engine evaluations and design runs.

Handlers attach to the ``dee_core`` package logger only, so an embedding
application keeps control of the root logger. Log payloads may carry torch
tensors and numpy arrays; they are written as plain JSON numbers and lists.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

import numpy as np
import torch

PACKAGE_LOGGER = "dee_core"
CONSOLE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def _to_json(value: Any) -> Any:
    if isinstance(value, torch.Tensor):
        return value.detach().cpu().tolist()
    if isinstance(value, (np.ndarray, np.generic)):
        return value.tolist()
    if isinstance(value, Path):
        return str(value)
    return repr(value)


class JSONFormatter(logging.Formatter):
    """One JSON object per record; structured data is merged at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "time": record.created,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(getattr(record, "extra_data", None) or {})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=_to_json)


def setup_logging(log_path: str | Path | None = None, level: int = logging.INFO) -> logging.Logger:
    """Configure the package logger.

    Human-readable records go to stderr so stdout stays free for CLI
    tables. With ``log_path`` the same records are also appended as JSON
    lines. Calling again replaces the previous handlers.

    Returns:
        The configured ``dee_core`` logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)
    logger.propagate = False

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    logger.addHandler(console)

    if log_path is not None:
        log_path = Path(log_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        json_lines = logging.FileHandler(log_path, encoding="utf-8")
        json_lines.setFormatter(JSONFormatter())
        logger.addHandler(json_lines)
    return logger


class StructuredLogger:
    """Logger whose calls take an optional dict of fields for the JSON record."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def log(self, level: int, msg: str, data: dict[str, Any] | None = None) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, msg, extra={"extra_data": data} if data else None)

    def debug(self, msg: str, data: dict[str, Any] | None = None) -> None:
        self.log(logging.DEBUG, msg, data)

    def info(self, msg: str, data: dict[str, Any] | None = None) -> None:
        self.log(logging.INFO, msg, data)

    def warning(self, msg: str, data: dict[str, Any] | None = None) -> None:
        self.log(logging.WARNING, msg, data)

    def error(self, msg: str, data: dict[str, Any] | None = None) -> None:
        self.log(logging.ERROR, msg, data)


def get_logger(name: str) -> StructuredLogger:
    """Structured logger for a module, normally called with ``__name__``."""
    return StructuredLogger(logging.getLogger(name))


__all__ = [
    "JSONFormatter",
    "setup_logging",
    "get_logger",
    "StructuredLogger",
]
