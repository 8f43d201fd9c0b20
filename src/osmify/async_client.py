"""Asynchronous osmify client.

:class:`AsyncOsmifyClient` mirrors :class:`OsmifyClient`; every I/O method
is a coroutine and sessions are :class:`AsyncChangesetSession` objects.
Building batches stays synchronous since it performs no I/O.

Usage::

    import asyncio
    from osmify import AsyncOsmifyClient, Node

    async def main():
        async with AsyncOsmifyClient(token="...") as client:
            batch = client.new_batch()
            batch.add_create(Node(lat=48.85, lon=2.35, tags={"amenity": "cafe"}))
            async with client.changeset("Add a cafe") as session:
                await session.commit(batch)

    asyncio.run(main())
"""

from __future__ import annotations

from typing import Any

from osmify.client import _feature_disabled
from osmify.config import OsmifyConfig
from osmify.edit import AsyncChangesetSession, DiffBuilder, ElementStore
from osmify.errors import OsmifyError, OsmifyTransportError
from osmify.models import Changeset, Element, ElementRef, ElementType, Node, Relation, Way
from osmify.osm_api import (
    AsyncChangesetAPI,
    AsyncElementAPI,
    AsyncHttpTransportAdapter,
    AsyncOsmTransport,
    AsyncOverpassAPI,
    AsyncTransportAdapter,
)


class AsyncOsmifyClient:
    """Asynchronous OSM editing client.

    Parameters
    ----------
    token:
        OAuth 2.0 access token.  Only needed for writes.
    adapter:
        Use this :class:`AsyncTransportAdapter` instead of the HTTP one.
    **kwargs:
        Forwarded to :class:`OsmifyConfig`.
    """

    def __init__(
        self,
        token: str = "",
        *,
        adapter: AsyncTransportAdapter | None = None,
        **kwargs: Any,
    ) -> None:
        self._config = OsmifyConfig(token=token, **kwargs)
        precision = self._config.precision
        self._store = ElementStore(precision)

        self._transport = AsyncOsmTransport(self._config)
        if adapter is None:
            adapter = AsyncHttpTransportAdapter(
                AsyncChangesetAPI(self._transport, precision, dump_diff=self._config.debug_dump_diff),
                AsyncElementAPI(self._transport, precision),
            )
        self._adapter = adapter

        self._overpass_transport: AsyncOsmTransport | None = None
        self._overpass: AsyncOverpassAPI | None = None
        if self._config.enable_overpass:
            self._overpass_transport = AsyncOsmTransport(self._config, base_url=self._config.overpass_url)
            self._overpass = AsyncOverpassAPI(self._overpass_transport)

    @property
    def config(self) -> OsmifyConfig:
        return self._config

    @property
    def store(self) -> ElementStore:
        return self._store

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def new_batch(self) -> DiffBuilder:
        return DiffBuilder(self._store)

    def changeset(self, comment: str = "", tags: dict[str, str] | None = None) -> AsyncChangesetSession:
        """Return an unopened session; ``async with`` opens and closes it."""
        merged = dict(self._config.changeset_tags)
        merged.update(tags or {})
        return AsyncChangesetSession(
            self._adapter,
            self._store,
            comment=comment,
            tags=merged,
            metrics=self._config.metrics,
        )

    async def open_changeset(
        self,
        comment: str = "",
        tags: dict[str, str] | None = None,
    ) -> AsyncChangesetSession:
        session = self.changeset(comment, tags)
        await session.open()
        return session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch(self, ref: ElementRef) -> Element:
        """Fetch *ref* and register or refresh it in the store."""
        try:
            element = await self._adapter.perform_fetch(ref)
        except OsmifyError as exc:
            exc.context.setdefault("operation", "fetch")
            raise
        except Exception as exc:
            raise OsmifyTransportError(
                message=f"fetch failed: {exc}",
                context={"operation": "fetch", "exception_type": type(exc).__name__},
                cause=exc,
            ) from exc
        return self._store.refresh(element)

    async def fetch_node(self, node_id: int) -> Node:
        return await self.fetch(ElementRef(ElementType.NODE, node_id))

    async def fetch_way(self, way_id: int) -> Way:
        return await self.fetch(ElementRef(ElementType.WAY, way_id))

    async def fetch_relation(self, relation_id: int) -> Relation:
        return await self.fetch(ElementRef(ElementType.RELATION, relation_id))

    async def fetch_changeset(self, changeset_id: int) -> Changeset:
        return await self._adapter.perform_fetch_changeset(changeset_id)

    async def query_overpass(self, ql: str) -> dict:
        if self._overpass is None:
            raise _feature_disabled()
        return await self._overpass.query(ql)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        await self._transport.close()
        if self._overpass_transport is not None:
            await self._overpass_transport.close()

    async def __aenter__(self) -> AsyncOsmifyClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
