"""Metrics hook protocol and no-op default implementation.

osmify emits counters and timings at key points of the request and
changeset lifecycle.  By default a :class:`NoopMetricsHook` is used.  Users
can supply any object satisfying :class:`MetricsHook` to route metrics to
Prometheus, StatsD, Datadog or another backend.

Emitted metric names:

* ``osmify.requests_total``           -- counter
* ``osmify.retries_total``            -- counter
* ``osmify.rate_limited_total``       -- counter
* ``osmify.request_duration_ms``      -- timing
* ``osmify.rate_limit_wait_ms``       -- timing
* ``osmify.changesets_opened_total``  -- counter
* ``osmify.changesets_closed_total``  -- counter
* ``osmify.diff_ops_total``           -- counter (tag ``kind``)
* ``osmify.edit_conflicts_total``     -- counter
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class MetricsHook(Protocol):
    """Protocol that any metrics backend must satisfy.

    All methods accept an optional *tags* dict of string keys and values.
    """

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Increment a counter metric."""
        ...

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Record a duration in milliseconds."""
        ...

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Set a gauge metric to an absolute value."""
        ...


class NoopMetricsHook:
    """Default metrics implementation that discards all data points."""

    __slots__ = ()

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass


def resolve_metrics(metrics: Any | None) -> MetricsHook:
    """Return *metrics*, or a :class:`NoopMetricsHook` when it is ``None``."""
    return metrics if metrics is not None else NoopMetricsHook()
