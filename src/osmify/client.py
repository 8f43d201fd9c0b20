"""Synchronous osmify client.

:class:`OsmifyClient` wires a configuration, an HTTP transport, the OSM API
wrappers and one :class:`ElementStore` together, and hands out diff
builders and changeset sessions that work on that store.

Usage::

    from osmify import Node, OsmifyClient, Way

    with OsmifyClient(token="...") as client:
        batch = client.new_batch()
        a = batch.add_create(Node(lat=51.5, lon=-0.1, tags={"amenity": "bench"}))
        b = batch.add_create(Node(lat=51.5001, lon=-0.1))
        batch.add_create(Way(nodes=[a, b], tags={"highway": "footway"}))

        with client.changeset("Add a footway with a bench") as session:
            result = session.commit(batch)
        print(result.mappings)
"""

from __future__ import annotations

from typing import Any

from osmify.config import OsmifyConfig
from osmify.edit import ChangesetSession, DiffBuilder, ElementStore
from osmify.errors import OsmifyError, OsmifyFeatureDisabledError, OsmifyTransportError
from osmify.models import Changeset, Element, ElementRef, ElementType, Node, Relation, Way
from osmify.osm_api import (
    ChangesetAPI,
    ElementAPI,
    HttpTransportAdapter,
    OsmTransport,
    OverpassAPI,
    TransportAdapter,
)


def _feature_disabled() -> OsmifyFeatureDisabledError:
    return OsmifyFeatureDisabledError(
        message="Overpass queries are disabled; pass enable_overpass=True",
        context={"feature": "overpass"},
    )


class OsmifyClient:
    """Synchronous OSM editing client.

    Parameters
    ----------
    token:
        OAuth 2.0 access token.  Only needed for writes.
    adapter:
        Use this :class:`TransportAdapter` instead of the HTTP one, e.g. a
        test double or a different backend.
    **kwargs:
        Forwarded to :class:`OsmifyConfig`.
    """

    def __init__(
        self,
        token: str = "",
        *,
        adapter: TransportAdapter | None = None,
        **kwargs: Any,
    ) -> None:
        self._config = OsmifyConfig(token=token, **kwargs)
        precision = self._config.precision
        self._store = ElementStore(precision)

        self._transport = OsmTransport(self._config)
        if adapter is None:
            adapter = HttpTransportAdapter(
                ChangesetAPI(self._transport, precision, dump_diff=self._config.debug_dump_diff),
                ElementAPI(self._transport, precision),
            )
        self._adapter = adapter

        self._overpass_transport: OsmTransport | None = None
        self._overpass: OverpassAPI | None = None
        if self._config.enable_overpass:
            self._overpass_transport = OsmTransport(self._config, base_url=self._config.overpass_url)
            self._overpass = OverpassAPI(self._overpass_transport)

    @property
    def config(self) -> OsmifyConfig:
        return self._config

    @property
    def store(self) -> ElementStore:
        """The element store shared by every batch and session of this client."""
        return self._store

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def new_batch(self) -> DiffBuilder:
        """Start an empty batch of edits against :attr:`store`."""
        return DiffBuilder(self._store)

    def changeset(self, comment: str = "", tags: dict[str, str] | None = None) -> ChangesetSession:
        """Return an unopened session.

        Use it as a context manager to open it on entry and close it on
        exit, or call :meth:`ChangesetSession.open` yourself.  The
        configured ``changeset_tags`` are included; *tags* override them.
        """
        merged = dict(self._config.changeset_tags)
        merged.update(tags or {})
        return ChangesetSession(
            self._adapter,
            self._store,
            comment=comment,
            tags=merged,
            metrics=self._config.metrics,
        )

    def open_changeset(self, comment: str = "", tags: dict[str, str] | None = None) -> ChangesetSession:
        """Like :meth:`changeset`, but already opened."""
        session = self.changeset(comment, tags)
        session.open()
        return session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch(self, ref: ElementRef) -> Element:
        """Fetch *ref* from the server and register or refresh it in the store.

        Returns the tracked element.  Use this to pick up the current
        version after an :class:`OsmifyEditConflictError`.
        """
        try:
            element = self._adapter.perform_fetch(ref)
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

    def fetch_node(self, node_id: int) -> Node:
        return self.fetch(ElementRef(ElementType.NODE, node_id))

    def fetch_way(self, way_id: int) -> Way:
        return self.fetch(ElementRef(ElementType.WAY, way_id))

    def fetch_relation(self, relation_id: int) -> Relation:
        return self.fetch(ElementRef(ElementType.RELATION, relation_id))

    def fetch_changeset(self, changeset_id: int) -> Changeset:
        """Return the server's view of a changeset."""
        return self._adapter.perform_fetch_changeset(changeset_id)

    def query_overpass(self, ql: str) -> dict:
        """Run an Overpass QL query and return the JSON result.

        Raises
        ------
        OsmifyFeatureDisabledError
            Unless the client was built with ``enable_overpass=True``.
        """
        if self._overpass is None:
            raise _feature_disabled()
        return self._overpass.query(ql)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the HTTP connections.  Open sessions are not closed."""
        self._transport.close()
        if self._overpass_transport is not None:
            self._overpass_transport.close()

    def __enter__(self) -> OsmifyClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
