"""Changeset endpoint wrappers for the OSM API 0.6.

:class:`ChangesetAPI` (sync) and :class:`AsyncChangesetAPI` (async) wrap
``/changeset/*``.  They encode and decode the XML bodies; auth, pacing and
error mapping belong to the transport.  Create, upload and close are sent
as non-idempotent requests, so they are never retried.
"""

from __future__ import annotations

import sys

from osmify.codec import (
    decode_changeset,
    decode_diff_result,
    decode_id,
    encode_changeset,
    encode_osmchange,
)
from osmify.geo import CoordinatePrecision
from osmify.models import Changeset, DiffPackage, IdentityMapping
from osmify.utils.redact import redact

from .transport import AsyncOsmTransport, OsmTransport

_XML_HEADERS = {"Content-Type": "text/xml; charset=utf-8"}


def _dump_diff(changeset_id: int, body: bytes) -> None:
    dump = redact({"changeset_id": changeset_id, "osmChange": body.decode("utf-8")})
    print(f"[osmify] osmChange for changeset {dump['changeset_id']}:\n{dump['osmChange']}", file=sys.stderr)


class ChangesetAPI:
    """Synchronous wrapper for the changeset endpoints.

    Parameters
    ----------
    transport:
        A configured :class:`OsmTransport`.
    precision:
        Coordinate precision used when encoding node positions.
    dump_diff:
        Print every osmChange document to stderr before uploading it.
    """

    def __init__(
        self,
        transport: OsmTransport,
        precision: CoordinatePrecision = CoordinatePrecision.DOUBLE,
        dump_diff: bool = False,
    ) -> None:
        self._transport = transport
        self._precision = precision
        self._dump_diff = dump_diff

    def create(self, tags: dict[str, str]) -> int:
        """Open a changeset with *tags* and return its id."""
        body = self._transport.request(
            "PUT", "/changeset/create", content=encode_changeset(tags), headers=_XML_HEADERS,
        )
        return decode_id(body)

    def upload(self, changeset_id: int, package: DiffPackage) -> list[IdentityMapping]:
        """Upload *package* and return the server's identity mappings.

        Raises
        ------
        OsmifyConflictError
            On 409, including version mismatches; the adapter interprets
            the message.
        """
        document = encode_osmchange(package, self._precision)
        if self._dump_diff:
            _dump_diff(changeset_id, document)
        body = self._transport.request(
            "POST", f"/changeset/{changeset_id}/upload", content=document, headers=_XML_HEADERS,
        )
        return decode_diff_result(body)

    def close(self, changeset_id: int) -> None:
        self._transport.request("PUT", f"/changeset/{changeset_id}/close")

    def get(self, changeset_id: int) -> Changeset:
        """Fetch the changeset's current metadata (retried on transient errors)."""
        return decode_changeset(self._transport.request("GET", f"/changeset/{changeset_id}"))


class AsyncChangesetAPI:
    """Asynchronous wrapper for the changeset endpoints.

    Mirrors :class:`ChangesetAPI`.
    """

    def __init__(
        self,
        transport: AsyncOsmTransport,
        precision: CoordinatePrecision = CoordinatePrecision.DOUBLE,
        dump_diff: bool = False,
    ) -> None:
        self._transport = transport
        self._precision = precision
        self._dump_diff = dump_diff

    async def create(self, tags: dict[str, str]) -> int:
        body = await self._transport.request(
            "PUT", "/changeset/create", content=encode_changeset(tags), headers=_XML_HEADERS,
        )
        return decode_id(body)

    async def upload(self, changeset_id: int, package: DiffPackage) -> list[IdentityMapping]:
        document = encode_osmchange(package, self._precision)
        if self._dump_diff:
            _dump_diff(changeset_id, document)
        body = await self._transport.request(
            "POST", f"/changeset/{changeset_id}/upload", content=document, headers=_XML_HEADERS,
        )
        return decode_diff_result(body)

    async def close(self, changeset_id: int) -> None:
        await self._transport.request("PUT", f"/changeset/{changeset_id}/close")

    async def get(self, changeset_id: int) -> Changeset:
        return decode_changeset(await self._transport.request("GET", f"/changeset/{changeset_id}"))
