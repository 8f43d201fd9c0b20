"""OSM API 0.6 and Overpass access: transports, endpoint wrappers and the
transport adapters used by changeset sessions."""

from __future__ import annotations

from .adapter import (
    AsyncHttpTransportAdapter,
    AsyncTransportAdapter,
    HttpTransportAdapter,
    TransportAdapter,
)
from .changesets import AsyncChangesetAPI, ChangesetAPI
from .elements import AsyncElementAPI, ElementAPI
from .overpass import AsyncOverpassAPI, OverpassAPI
from .transport import AsyncOsmTransport, OsmTransport

__all__ = [
    "AsyncChangesetAPI",
    "AsyncElementAPI",
    "AsyncHttpTransportAdapter",
    "AsyncOsmTransport",
    "AsyncOverpassAPI",
    "AsyncTransportAdapter",
    "ChangesetAPI",
    "ElementAPI",
    "HttpTransportAdapter",
    "OsmTransport",
    "OverpassAPI",
    "TransportAdapter",
]
