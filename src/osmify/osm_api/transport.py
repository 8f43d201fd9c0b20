"""Sync and async HTTP transports for the OSM API and Overpass.

Each transport runs one request through this lifecycle:

1. Take a token from the rate-limit bucket (wait if needed).
2. Send the request with ``User-Agent`` and, when configured, bearer auth.
3. On ``2xx`` -- return the raw response body.
4. On a non-retryable ``4xx`` -- raise the matching typed error.
5. On ``429`` / ``5xx`` / network error -- back off and retry, but only if
   the request is idempotent.  Non-idempotent requests (changeset open,
   upload, close) are sent exactly once.
6. When attempts run out -- raise :class:`OsmifyRetryExhaustedError`.
"""

from __future__ import annotations

import asyncio
import json as _json
import sys
import time
from typing import Any

import httpx

from osmify.config import OsmifyConfig
from osmify.errors import (
    OsmifyAuthError,
    OsmifyConflictError,
    OsmifyGoneError,
    OsmifyNetworkError,
    OsmifyNotFoundError,
    OsmifyPermissionError,
    OsmifyPreconditionFailedError,
    OsmifyRetryExhaustedError,
    OsmifyValidationError,
)
from osmify.observability import get_logger, resolve_metrics
from osmify.utils.redact import redact

from .rate_limit import AsyncTokenBucket, TokenBucket
from .retries import _RETRYABLE_STATUSES, compute_backoff, is_idempotent, should_retry

log = get_logger("osmify.transport")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_retry_after(response: httpx.Response) -> float | None:
    """Extract the ``Retry-After`` header value as a float, or ``None``."""
    raw = response.headers.get("retry-after")
    if raw is None:
        return None
    try:
        return float(raw)
    except (ValueError, TypeError):
        return None


def _server_message(response: httpx.Response) -> str:
    # The OSM API repeats its plain-text error body in an ``Error`` header.
    return response.headers.get("error") or response.text[:500]


def _raise_for_status(response: httpx.Response, method: str, path: str) -> None:
    """Raise the :class:`OsmifyTransportError` subclass for a non-retryable
    status code.
    """
    status = response.status_code
    message = _server_message(response)
    where = f"{method} {path}"

    if status == 401:
        raise OsmifyAuthError(
            message=f"Authentication failed on {where}: {message}",
            context={"status_code": status},
        )
    if status == 403:
        raise OsmifyPermissionError(
            message=f"Permission denied on {where}: {message}",
            context={"status_code": status, "operation": where},
        )
    if status == 404:
        raise OsmifyNotFoundError(
            message=f"Not found on {where}: {message}",
            context={"status_code": status, "path": path},
        )
    if status == 409:
        raise OsmifyConflictError(
            message=f"Conflict on {where}: {message}",
            context={"status_code": status, "body": message},
        )
    if status == 410:
        raise OsmifyGoneError(
            message=f"Gone on {where}: {message}",
            context={"status_code": status, "path": path},
        )
    if status == 412:
        raise OsmifyPreconditionFailedError(
            message=f"Precondition failed on {where}: {message}",
            context={"status_code": status, "body": message},
        )

    # 400 and any other client error.
    raise OsmifyValidationError(
        message=f"Client error {status} on {where}: {message}",
        context={"status_code": status, "body": message},
    )


def _dump_payload(
    method: str,
    url: str,
    payload: Any,
    response_status: int | None,
    response_body: Any,
    token: str | None = None,
) -> None:
    """Write a redacted debug dump of the request/response to stderr."""
    dump: dict[str, Any] = {"method": method, "url": url}
    if payload is not None:
        dump["request_body"] = payload
    if response_status is not None:
        dump["response_status"] = response_status
    if response_body is not None:
        dump["response_body"] = response_body
    print(_json.dumps(redact(dump, token), indent=2, default=str), file=sys.stderr)


def _emit_debug_dump(config: OsmifyConfig, method: str, response: httpx.Response, kwargs: dict) -> None:
    if not config.debug_dump_payload:
        return
    payload = kwargs.get("content", kwargs.get("data"))
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    _dump_payload(
        method, str(response.url), payload,
        response.status_code, response.text[:2000],
        token=config.token,
    )


def _handle_network_exception(
    config: OsmifyConfig,
    metrics: Any,
    method: str,
    path: str,
    exc: Exception,
    attempt: int,
    max_attempts: int,
    idempotent: bool,
) -> float:
    """Account for a network error on one attempt.

    Returns the backoff delay when the request will be retried, otherwise
    raises :class:`OsmifyNetworkError`.
    """
    metrics.increment(
        "osmify.requests_total",
        tags={"method": method, "path": path, "status": "error"},
    )
    log.warning(
        "Request network error",
        extra={
            "extra_fields": {
                "op": "request",
                "method": method,
                "path": path,
                "attempt": attempt + 1,
                "idempotent": idempotent,
                "error": str(exc),
            }
        },
    )
    if should_retry(None, exc, attempt, max_attempts, idempotent):
        metrics.increment(
            "osmify.retries_total",
            tags={"method": method, "path": path, "reason": "network_error"},
        )
        return compute_backoff(
            attempt,
            base=config.retry_base_delay,
            maximum=config.retry_max_delay,
            jitter=config.retry_jitter,
        )
    raise OsmifyNetworkError(
        message=f"Network error on {method} {path}: {exc}",
        context={"url": path, "attempt": attempt + 1, "idempotent": idempotent},
        cause=exc,
    ) from exc


def _record_response(metrics: Any, method: str, path: str, status: int, elapsed_ms: float) -> None:
    tags = {"method": method, "path": path, "status": str(status)}
    metrics.increment("osmify.requests_total", tags=tags)
    metrics.timing("osmify.request_duration_ms", elapsed_ms, tags=tags)


def _retry_delay(
    config: OsmifyConfig,
    metrics: Any,
    response: httpx.Response,
    method: str,
    path: str,
    attempt: int,
) -> float:
    """Log and count a retryable status and return the backoff delay."""
    retry_after: float | None = None
    reason = "server_error"
    if response.status_code == 429:
        retry_after = _parse_retry_after(response)
        reason = "rate_limited"
        metrics.increment("osmify.rate_limited_total", tags={"method": method, "path": path})
        log.warning(
            "Rate limited by server",
            extra={
                "extra_fields": {
                    "op": "request",
                    "method": method,
                    "path": path,
                    "status_code": 429,
                    "retry_after": retry_after,
                    "attempt": attempt + 1,
                }
            },
        )
    metrics.increment(
        "osmify.retries_total",
        tags={"method": method, "path": path, "reason": reason},
    )
    return compute_backoff(
        attempt,
        base=config.retry_base_delay,
        maximum=config.retry_max_delay,
        jitter=config.retry_jitter,
        retry_after=retry_after,
    )


def _exhausted(method: str, path: str, attempts: int, last_status: int | None) -> OsmifyRetryExhaustedError:
    return OsmifyRetryExhaustedError(
        message=f"All {attempts} attempts exhausted for {method} {path} (last status: {last_status})",
        context={"attempts": attempts, "last_status_code": last_status},
    )


def _client_options(config: OsmifyConfig, base_url: str | None) -> dict[str, Any]:
    headers = {"User-Agent": config.user_agent}
    if config.token:
        headers["Authorization"] = f"Bearer {config.token}"
    return {
        "base_url": base_url if base_url is not None else config.base_url,
        "headers": headers,
        "timeout": httpx.Timeout(config.timeout_seconds),
        "proxy": config.http_proxy,
    }


# ---------------------------------------------------------------------------
# Sync transport
# ---------------------------------------------------------------------------

class OsmTransport:
    """Synchronous HTTP transport with auth, pacing and read-path retries.

    Parameters
    ----------
    config:
        Client configuration.
    base_url:
        Overrides ``config.base_url`` (used for the Overpass endpoint).
    """

    def __init__(self, config: OsmifyConfig, base_url: str | None = None) -> None:
        self._config = config
        self._bucket = TokenBucket(rate_rps=config.rate_limit_rps)
        self._metrics = resolve_metrics(config.metrics)
        self._client = httpx.Client(**_client_options(config, base_url))

    def request(
        self,
        method: str,
        path: str,
        *,
        idempotent: bool | None = None,
        **kwargs: Any,
    ) -> bytes:
        """Send one request and return the response body.

        Parameters
        ----------
        method:
            HTTP method.
        path:
            Path relative to the transport's base URL.
        idempotent:
            Whether the request may be retried.  Defaults to ``True`` for
            ``GET``/``HEAD`` and ``False`` otherwise.
        **kwargs:
            Forwarded to :meth:`httpx.Client.request` (``content=``,
            ``data=``, ``params=``, ``headers=``).

        Returns
        -------
        bytes
            The response body, ``b""`` for empty responses.

        Raises
        ------
        OsmifyTransportError
            A typed subclass per status code, :class:`OsmifyNetworkError`
            for connection failures, or :class:`OsmifyRetryExhaustedError`.
        """
        if idempotent is None:
            idempotent = is_idempotent(method)
        max_attempts = self._config.retry_max_attempts if idempotent else 1
        last_status: int | None = None

        for attempt in range(max_attempts):
            wait = self._bucket.acquire()
            if wait > 0:
                self._metrics.timing(
                    "osmify.rate_limit_wait_ms",
                    wait * 1000,
                    tags={"method": method, "path": path},
                )

            t0 = time.monotonic()
            try:
                response = self._client.request(method, path, **kwargs)
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                last_status = None
                delay = _handle_network_exception(
                    self._config, self._metrics, method, path, exc,
                    attempt, max_attempts, idempotent,
                )
                time.sleep(delay)
                continue

            last_status = response.status_code
            _record_response(
                self._metrics, method, path, last_status, (time.monotonic() - t0) * 1000,
            )
            _emit_debug_dump(self._config, method, response, kwargs)

            if 200 <= last_status < 300:
                return response.content

            if last_status not in _RETRYABLE_STATUSES:
                _raise_for_status(response, method, path)

            if not should_retry(last_status, None, attempt, max_attempts, idempotent):
                break

            time.sleep(_retry_delay(self._config, self._metrics, response, method, path, attempt))

        raise _exhausted(method, path, attempt + 1, last_status)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self) -> OsmTransport:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Async transport
# ---------------------------------------------------------------------------

class AsyncOsmTransport:
    """Asynchronous HTTP transport.

    Mirrors :class:`OsmTransport` over ``httpx.AsyncClient`` with an
    :class:`AsyncTokenBucket`.
    """

    def __init__(self, config: OsmifyConfig, base_url: str | None = None) -> None:
        self._config = config
        self._bucket = AsyncTokenBucket(rate_rps=config.rate_limit_rps)
        self._metrics = resolve_metrics(config.metrics)
        self._client = httpx.AsyncClient(**_client_options(config, base_url))

    async def request(
        self,
        method: str,
        path: str,
        *,
        idempotent: bool | None = None,
        **kwargs: Any,
    ) -> bytes:
        """Async version of :meth:`OsmTransport.request`."""
        if idempotent is None:
            idempotent = is_idempotent(method)
        max_attempts = self._config.retry_max_attempts if idempotent else 1
        last_status: int | None = None

        for attempt in range(max_attempts):
            wait = await self._bucket.acquire()
            if wait > 0:
                self._metrics.timing(
                    "osmify.rate_limit_wait_ms",
                    wait * 1000,
                    tags={"method": method, "path": path},
                )

            t0 = time.monotonic()
            try:
                response = await self._client.request(method, path, **kwargs)
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                last_status = None
                delay = _handle_network_exception(
                    self._config, self._metrics, method, path, exc,
                    attempt, max_attempts, idempotent,
                )
                await asyncio.sleep(delay)
                continue

            last_status = response.status_code
            _record_response(
                self._metrics, method, path, last_status, (time.monotonic() - t0) * 1000,
            )
            _emit_debug_dump(self._config, method, response, kwargs)

            if 200 <= last_status < 300:
                return response.content

            if last_status not in _RETRYABLE_STATUSES:
                _raise_for_status(response, method, path)

            if not should_retry(last_status, None, attempt, max_attempts, idempotent):
                break

            await asyncio.sleep(
                _retry_delay(self._config, self._metrics, response, method, path, attempt)
            )

        raise _exhausted(method, path, attempt + 1, last_status)

    async def close(self) -> None:
        """Close the underlying async HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> AsyncOsmTransport:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
