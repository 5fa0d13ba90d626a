"""Structured logging helpers shared across the service and client core."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

from ..config import load_settings

__all__ = ["StructuredFormatter", "configure_logging", "get_logger"]

ROOT_LOGGER_NAME = "learnlog"

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime"}

_configured = False


class StructuredFormatter(logging.Formatter):
    """Render the event key followed by the ``extra`` context."""

    def __init__(self, *, as_json: bool = False) -> None:
        super().__init__()
        self._as_json = as_json

    def format(self, record: logging.LogRecord) -> str:
        context = {
            key: value
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if self._as_json:
            payload: dict[str, Any] = {
                "ts": self.formatTime(record),
                "level": record.levelname.lower(),
                "logger": record.name,
                "event": record.getMessage(),
                **context,
            }
            if record.exc_info:
                payload["exc_info"] = self.formatException(record.exc_info)
            return json.dumps(payload, default=str)

        parts = [
            self.formatTime(record),
            record.levelname,
            record.name,
            record.getMessage(),
        ]
        parts.extend(f"{key}={value!r}" for key, value in sorted(context.items()))
        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(level: str | None = None, *, as_json: bool | None = None) -> None:
    """Attach the structured handler to the package root logger once."""

    global _configured
    settings = load_settings()
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level or settings.logging.level)
    if _configured:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        StructuredFormatter(
            as_json=settings.logging.json if as_json is None else as_json
        )
    )
    root.addHandler(handler)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger namespaced under the package root."""

    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
