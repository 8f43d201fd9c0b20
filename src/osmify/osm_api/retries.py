"""Retry policy for the read path.

Writes to the OSM API are not idempotent: an upload that timed out may
still have been applied, and sending it again would duplicate every create.
So only requests the caller marks idempotent (``GET``/``HEAD`` by default,
plus Overpass queries) are ever retried.

* :func:`is_idempotent` -- default idempotency of an HTTP method.
* :func:`should_retry` -- decide whether a failed attempt is retried.
* :func:`compute_backoff` -- delay before the next attempt.
"""

from __future__ import annotations

import random

import httpx

# Throttling and transient server failures.
_RETRYABLE_STATUSES: frozenset[int] = frozenset({429, 500, 502, 503, 504})

_RETRYABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
)

_IDEMPOTENT_METHODS: frozenset[str] = frozenset({"GET", "HEAD"})


def is_idempotent(method: str) -> bool:
    """``True`` for methods that are safe to repeat without side effects."""
    return method.upper() in _IDEMPOTENT_METHODS


def should_retry(
    status_code: int | None,
    exception: Exception | None,
    attempt: int,
    max_attempts: int,
    idempotent: bool = True,
) -> bool:
    """Decide whether a request should be attempted again.

    Parameters
    ----------
    status_code:
        Response status, or ``None`` when no response arrived.
    exception:
        The network exception, or ``None`` when a response arrived.
    attempt:
        Zero-based number of the attempt that just failed.
    max_attempts:
        Total attempts allowed, including the first.
    idempotent:
        Whether the request may be repeated at all.

    Returns
    -------
    bool
    """
    if not idempotent:
        return False
    if attempt + 1 >= max_attempts:
        return False
    if exception is not None:
        return isinstance(exception, _RETRYABLE_EXCEPTIONS)
    if status_code is not None:
        return status_code in _RETRYABLE_STATUSES
    return False


def compute_backoff(
    attempt: int,
    base: float = 1.0,
    maximum: float = 60.0,
    jitter: bool = True,
    retry_after: float | None = None,
) -> float:
    """Seconds to wait before the next attempt.

    A server ``Retry-After`` wins; otherwise ``base * 2**attempt`` capped at
    *maximum*.  With *jitter* the delay is scaled to 50-100 % of its value.
    """
    if retry_after is not None:
        delay = retry_after
    else:
        delay = min(base * (2 ** attempt), maximum)

    if jitter:
        delay *= 0.5 + random.random() * 0.5

    return delay
