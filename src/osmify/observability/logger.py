"""Structured JSON logging for osmify.

Each record is written as one JSON line.  Records emitted while a changeset
is bound with :func:`changeset_context` carry its ``changeset_id``, so a
transport warning raised during an upload can be traced back to the
changeset without threading the id through every call::

    {"ts": "2025-07-01T12:00:00.123456+00:00", "level": "WARNING",
     "logger": "osmify.transport", "changeset_id": 1234,
     "message": "Request network error", "op": "request",
     "method": "POST", "path": "/changeset/1234/upload"}

Structured fields go through ``extra={"extra_fields": {...}}``; sensitive
keys in them (``Authorization``, ``token``, ...) are masked before output.

The library is quiet by default: loggers are created at ``WARNING``.
"""

from __future__ import annotations

import contextlib
import json
import logging
import sys
from collections.abc import Iterator
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from osmify.utils.redact import redact

_current_changeset: ContextVar[int | None] = ContextVar("osmify_changeset", default=None)


@contextlib.contextmanager
def changeset_context(changeset_id: int | None) -> Iterator[None]:
    """Stamp records logged inside the block with *changeset_id*.

    Bindings nest and are per thread / per asyncio task.  ``None`` leaves
    the current binding in place.
    """
    if changeset_id is None:
        yield
        return
    token = _current_changeset.set(changeset_id)
    try:
        yield
    finally:
        _current_changeset.reset(token)


def current_changeset() -> int | None:
    """The changeset id bound by the innermost :func:`changeset_context`."""
    return _current_changeset.get()


class StructuredFormatter(logging.Formatter):
    """Render a record as a single-line JSON object.

    Keys, in order: ``ts`` (record creation time, ISO-8601 UTC), ``level``,
    ``logger``, ``changeset_id`` (when bound), ``message``, then the
    redacted extra fields, and ``exception`` / ``stack_info`` when present.
    An explicit ``changeset_id`` extra field wins over the bound one.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }
        changeset_id = current_changeset()
        if changeset_id is not None:
            entry["changeset_id"] = changeset_id
        entry["message"] = record.getMessage()

        extra_fields: dict[str, Any] | None = getattr(record, "extra_fields", None)
        if extra_fields:
            entry.update(redact(extra_fields))

        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(entry, default=str)


_configured_loggers: set[str] = set()


def get_logger(
    name: str = "osmify",
    *,
    level: int | str = logging.WARNING,
    stream: Any | None = None,
) -> logging.Logger:
    """Return the logger *name*, attaching a JSON handler the first time.

    *level* (an ``int`` or a level name) and *stream* (default
    ``sys.stderr``) only take effect on that first call; later calls return
    the same logger untouched.  The logger does not propagate, so records
    are not duplicated by handlers on the root logger.
    """
    logger = logging.getLogger(name)
    if name in _configured_loggers:
        return logger

    logger.setLevel(logging.getLevelName(level.upper()) if isinstance(level, str) else level)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    _configured_loggers.add(name)
    return logger
