"""Observability: structured logging and metrics hooks for osmify."""

from __future__ import annotations

from .logger import StructuredFormatter, changeset_context, current_changeset, get_logger
from .metrics import MetricsHook, NoopMetricsHook, resolve_metrics

__all__ = [
    "MetricsHook",
    "NoopMetricsHook",
    "StructuredFormatter",
    "changeset_context",
    "current_changeset",
    "get_logger",
    "resolve_metrics",
]
