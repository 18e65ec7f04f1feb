"""Structured JSON logging for pagekeep.

Every pagekeep logger is a child of the ``pagekeep`` logger.  The first
call to :func:`get_logger` installs a single JSON handler there and the
children propagate to it, so the whole library is tuned or silenced
through one logger::

    logging.getLogger("pagekeep").setLevel(logging.WARNING)

Each record is one JSON object per line::

    {"ts": "2026-03-01T12:00:00.123456+00:00", "level": "INFO",
     "logger": "pagekeep.versioning", "message": "Page restored",
     "op": "restore_version", "page_id": "p1", "version": 4}

Structured fields go in ``extra={"extra_fields": {...}}``.  They are passed
through :func:`~pagekeep.utils.redact.redact` before serialisation, so
credentials are masked and page bodies shrink to a preview.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from pagekeep.utils.redact import redact

ROOT_LOGGER = "pagekeep"


class StructuredFormatter(logging.Formatter):
    """Format log records as single-line JSON objects.

    Guaranteed keys are ``ts``, ``level``, ``logger`` and ``message``.
    Redacted ``extra_fields`` are merged into the top level; ``exc_info``
    and ``stack_info`` are serialised when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        fields = getattr(record, "extra_fields", None)
        if fields:
            entry.update(redact(fields))

        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(entry, default=str)


def _resolve_level(level: int | str) -> int:
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level!r}")
        return resolved
    return level


def configure_logging(
    level: int | str = logging.DEBUG,
    stream: Any | None = None,
) -> logging.Logger:
    """(Re)install the JSON handler on the ``pagekeep`` logger.

    Any handler a previous call installed is replaced, so this can be used
    to redirect output (for instance into a buffer under test).

    Parameters
    ----------
    level:
        Minimum level for the whole library, as an ``int`` or a
        case-insensitive name.
    stream:
        Output stream.  Defaults to ``sys.stderr``.
    """
    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        if isinstance(handler.formatter, StructuredFormatter):
            root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    root.addHandler(handler)
    root.setLevel(_resolve_level(level))
    root.propagate = False
    return root


def get_logger(name: str = ROOT_LOGGER, *, level: int | str | None = None) -> logging.Logger:
    """Return the pagekeep logger *name*.

    *name* must be ``"pagekeep"`` or one of its children.  The JSON handler
    on ``pagekeep`` is installed on first use.  *level*, when given, is set
    on this logger only.
    """
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        raise ValueError(f"Logger {name!r} is outside the {ROOT_LOGGER!r} namespace")

    root = logging.getLogger(ROOT_LOGGER)
    if not any(isinstance(h.formatter, StructuredFormatter) for h in root.handlers):
        configure_logging()

    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(_resolve_level(level))
    return logger
