"""Transport adapter contract and its HTTP implementations.

The changeset session only talks to a transport adapter.  Two protocols
describe the same operations in the two execution modes:

* :class:`TransportAdapter` -- blocking calls.
* :class:`AsyncTransportAdapter` -- coroutines.

Every operation is performed at most once per call (no retries for open,
upload or close) and reports failure by raising an :class:`OsmifyError`
subclass, never by returning an empty result.  An upload that the server
rejects for a version mismatch is *not* an exception at this layer: it comes
back as an :class:`UploadResponse` carrying the conflict, and the session
decides how to surface it.

:class:`HttpTransportAdapter` and :class:`AsyncHttpTransportAdapter` are the
shipped implementations over the OSM API 0.6.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from osmify.codec import parse_version_conflict
from osmify.errors import OsmifyConflictError
from osmify.models import Changeset, DiffPackage, Element, ElementRef, UploadResponse

from .changesets import AsyncChangesetAPI, ChangesetAPI
from .elements import AsyncElementAPI, ElementAPI


@runtime_checkable
class TransportAdapter(Protocol):
    """Blocking transport operations used by :class:`ChangesetSession`."""

    def perform_open(self, comment: str, tags: dict[str, str]) -> int:
        """Open a changeset and return its server-assigned id."""
        ...

    def perform_upload(self, changeset_id: int, package: DiffPackage) -> UploadResponse:
        """Upload *package* to the changeset."""
        ...

    def perform_close(self, changeset_id: int) -> None:
        """Close the changeset."""
        ...

    def perform_fetch(self, ref: ElementRef) -> Element:
        """Fetch the current state of one element."""
        ...

    def perform_fetch_changeset(self, changeset_id: int) -> Changeset:
        """Fetch the current server view of a changeset."""
        ...


@runtime_checkable
class AsyncTransportAdapter(Protocol):
    """Coroutine transport operations used by :class:`AsyncChangesetSession`."""

    async def perform_open(self, comment: str, tags: dict[str, str]) -> int:
        ...

    async def perform_upload(self, changeset_id: int, package: DiffPackage) -> UploadResponse:
        ...

    async def perform_close(self, changeset_id: int) -> None:
        ...

    async def perform_fetch(self, ref: ElementRef) -> Element:
        ...

    async def perform_fetch_changeset(self, changeset_id: int) -> Changeset:
        ...


def _tags_with_comment(comment: str, tags: dict[str, str]) -> dict[str, str]:
    merged = dict(tags)
    if comment:
        merged["comment"] = comment
    return merged


def _conflict_response(exc: OsmifyConflictError) -> UploadResponse:
    """Turn a 409 version mismatch into a conflict response, or re-raise."""
    conflict = parse_version_conflict(exc.context.get("body", "") or exc.message)
    if conflict is None:
        raise exc
    return UploadResponse(conflicts=[conflict])


class HttpTransportAdapter:
    """:class:`TransportAdapter` over the blocking OSM API wrappers.

    Parameters
    ----------
    changesets:
        Changeset endpoint wrapper.
    elements:
        Element endpoint wrapper (read path).
    """

    def __init__(self, changesets: ChangesetAPI, elements: ElementAPI) -> None:
        self._changesets = changesets
        self._elements = elements

    def perform_open(self, comment: str, tags: dict[str, str]) -> int:
        return self._changesets.create(_tags_with_comment(comment, tags))

    def perform_upload(self, changeset_id: int, package: DiffPackage) -> UploadResponse:
        try:
            mappings = self._changesets.upload(changeset_id, package)
        except OsmifyConflictError as exc:
            return _conflict_response(exc)
        return UploadResponse(mappings=mappings)

    def perform_close(self, changeset_id: int) -> None:
        self._changesets.close(changeset_id)

    def perform_fetch(self, ref: ElementRef) -> Element:
        return self._elements.get(ref)

    def perform_fetch_changeset(self, changeset_id: int) -> Changeset:
        return self._changesets.get(changeset_id)


class AsyncHttpTransportAdapter:
    """:class:`AsyncTransportAdapter` over the async OSM API wrappers.

    Mirrors :class:`HttpTransportAdapter`.
    """

    def __init__(self, changesets: AsyncChangesetAPI, elements: AsyncElementAPI) -> None:
        self._changesets = changesets
        self._elements = elements

    async def perform_open(self, comment: str, tags: dict[str, str]) -> int:
        return await self._changesets.create(_tags_with_comment(comment, tags))

    async def perform_upload(self, changeset_id: int, package: DiffPackage) -> UploadResponse:
        try:
            mappings = await self._changesets.upload(changeset_id, package)
        except OsmifyConflictError as exc:
            return _conflict_response(exc)
        return UploadResponse(mappings=mappings)

    async def perform_close(self, changeset_id: int) -> None:
        await self._changesets.close(changeset_id)

    async def perform_fetch(self, ref: ElementRef) -> Element:
        return await self._elements.get(ref)

    async def perform_fetch_changeset(self, changeset_id: int) -> Changeset:
        return await self._changesets.get(changeset_id)
