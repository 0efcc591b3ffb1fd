"""Structured logging setup for loadburst."""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

_NAMESPACE = "loadburst"
_HANDLER_NAME = "loadburst-stderr"
_TEXT_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class _JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Keys: ``timestamp`` (ISO 8601, UTC), ``level``, ``logger``, ``message``
    and, when the record carries one, ``exception``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, str] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info is not None and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _make_formatter(json_format: bool) -> logging.Formatter:
    if json_format:
        return _JsonFormatter()
    return logging.Formatter(_TEXT_FORMAT, datefmt=_DATE_FORMAT)


def setup_logging(
    level: int = logging.WARNING,
    *,
    json_format: bool = False,
) -> logging.Logger:
    """Configure and return the ``loadburst`` logger.

    A single stderr handler is attached to the namespace. Later calls find
    that handler again and only change its level and formatter, so the
    CLI and library entry points may both call this safely.

    Args:
        level: Logging level (e.g., ``logging.DEBUG``). Defaults to WARNING
            so log lines do not interleave with the progress bar.
        json_format: Emit one JSON object per line instead of text.

    Returns:
        The configured ``loadburst`` logger.
    """
    logger = logging.getLogger(_NAMESPACE)
    logger.setLevel(level)

    handler = next((h for h in logger.handlers if h.get_name() == _HANDLER_NAME), None)
    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
        handler.set_name(_HANDLER_NAME)
        logger.addHandler(handler)
        # Records stop here; the root logger would print them twice
        logger.propagate = False

    handler.setLevel(level)
    handler.setFormatter(_make_formatter(json_format))
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return the ``loadburst.<name>`` child logger.

    Args:
        name: Dotted suffix, e.g. ``"engine.runner"``.
    """
    return logging.getLogger(f"{_NAMESPACE}.{name}")
