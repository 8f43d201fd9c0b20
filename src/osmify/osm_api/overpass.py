"""Read-only Overpass API queries.

Overpass QL is posted as the ``data`` form field and the JSON output is
returned as a dict.  A query has no side effects, so it is sent as an
idempotent request and retried on throttling and transient failures.
Queries without an ``[out:...]`` setting get ``[out:json]``, merged into
the leading settings statement when the query has one.  Other output
formats are refused, as the result is always decoded as JSON.
"""

from __future__ import annotations

import json
import re

from osmify.errors import OsmifyCodecError

from .transport import AsyncOsmTransport, OsmTransport

# Settings only count in the first statement: one or more "[...]" blocks
# closed by ";".
_SETTINGS_RE = re.compile(r"^(?:\s*\[[^\]]*\])+\s*;")
_OUT_SETTING_RE = re.compile(r"\[\s*out\s*:\s*(\w+)", re.IGNORECASE)


def _with_json_output(ql: str) -> str:
    ql = ql.strip()
    settings = _SETTINGS_RE.match(ql)
    if settings is None:
        return f"[out:json];{ql}"
    out = _OUT_SETTING_RE.search(settings.group(0))
    if out is None:
        return f"[out:json]{ql}"
    if out.group(1).lower() != "json":
        raise ValueError(
            f"Overpass output format {out.group(1)!r} is not supported; results are decoded as JSON"
        )
    return ql


def _decode(body: bytes) -> dict:
    try:
        return json.loads(body)
    except ValueError as exc:
        raise OsmifyCodecError(
            message="Overpass returned a non-JSON body",
            context={"reason": "overpass_not_json", "body": body[:200].decode("utf-8", errors="replace")},
            cause=exc,
        ) from exc


class OverpassAPI:
    """Synchronous Overpass client.

    Parameters
    ----------
    transport:
        A transport whose base URL is the Overpass interpreter endpoint.
    """

    def __init__(self, transport: OsmTransport) -> None:
        self._transport = transport

    def query(self, ql: str) -> dict:
        """Run *ql* and return the decoded JSON result.

        Raises
        ------
        ValueError
            If *ql* asks for an output format other than JSON.  Nothing is
            sent.
        OsmifyValidationError
            If Overpass rejects the query (HTTP 400).
        OsmifyCodecError
            If the response is not JSON.
        """
        body = self._transport.request("POST", "", idempotent=True, data={"data": _with_json_output(ql)})
        return _decode(body)


class AsyncOverpassAPI:
    """Asynchronous Overpass client.  Mirrors :class:`OverpassAPI`."""

    def __init__(self, transport: AsyncOsmTransport) -> None:
        self._transport = transport

    async def query(self, ql: str) -> dict:
        body = await self._transport.request(
            "POST", "", idempotent=True, data={"data": _with_json_output(ql)},
        )
        return _decode(body)
