"""osmify -- OpenStreetMap editing client with changeset sessions.

Public re-exports
-----------------

* **Clients:** :class:`OsmifyClient`, :class:`AsyncOsmifyClient`
* **Configuration:** :class:`OsmifyConfig`
* **Editing:** :class:`ElementStore`, :class:`DiffBuilder`,
  :class:`ChangesetSession`, :class:`AsyncChangesetSession`,
  :class:`Reconciler`
* **Errors:** Every :class:`OsmifyError` subclass and :class:`ErrorCode`
* **Models:** Elements, operations, packages and result types
* **Geo:** :class:`Coordinates`, :class:`BBox`, :class:`CoordinatePrecision`

Usage::

    from osmify import Node, OsmifyClient

    with OsmifyClient(token="...") as client:
        batch = client.new_batch()
        batch.add_create(Node(lat=52.52, lon=13.405, tags={"amenity": "bench"}))
        with client.changeset("Add a bench") as session:
            session.commit(batch)
"""

from __future__ import annotations

from osmify.async_client import AsyncOsmifyClient

# ── Clients ────────────────────────────────────────────────────────────
from osmify.client import OsmifyClient

# ── Configuration ───────────────────────────────────────────────────────
from osmify.config import (
    DEFAULT_API_URL,
    DEFAULT_OVERPASS_URL,
    OsmifyConfig,
    __version__,
)

# ── Editing ─────────────────────────────────────────────────────────────
from osmify.edit import (
    AsyncChangesetSession,
    ChangesetSession,
    DiffBuilder,
    ElementStore,
    Reconciler,
)

# ── Errors ──────────────────────────────────────────────────────────────
from osmify.errors import (
    ErrorCode,
    OsmifyAlreadyDeletedError,
    OsmifyAlreadyOpenError,
    OsmifyAuthError,
    OsmifyChangesetClosedError,
    OsmifyChangesetNotOpenError,
    OsmifyCodecError,
    OsmifyConflictError,
    OsmifyCoordinateError,
    OsmifyDanglingReferenceError,
    OsmifyDuplicateIdentifierError,
    OsmifyEditConflictError,
    OsmifyElementNotFoundError,
    OsmifyError,
    OsmifyFeatureDisabledError,
    OsmifyGoneError,
    OsmifyIndeterminateStateError,
    OsmifyNetworkError,
    OsmifyNotFoundError,
    OsmifyPermissionError,
    OsmifyPreconditionFailedError,
    OsmifyReconciliationError,
    OsmifyRetryExhaustedError,
    OsmifyStaleMappingError,
    OsmifyTransportError,
    OsmifyUnknownElementError,
    OsmifyValidationError,
)

# ── Geo ─────────────────────────────────────────────────────────────────
from osmify.geo import BBox, CoordinatePrecision, Coordinates

# ── Models ──────────────────────────────────────────────────────────────
from osmify.models import (
    Changeset,
    ChangesetState,
    ChangeKind,
    ChangeOperation,
    DiffPackage,
    Element,
    ElementRef,
    ElementType,
    IdentityMapping,
    Member,
    Node,
    Relation,
    UploadResponse,
    UploadResult,
    VersionConflict,
    Way,
)

# ── Transport adapters ──────────────────────────────────────────────────
from osmify.osm_api import AsyncTransportAdapter, TransportAdapter

# ── Public surface ──────────────────────────────────────────────────────

__all__ = [
    "__version__",
    # Clients
    "OsmifyClient",
    "AsyncOsmifyClient",
    # Configuration
    "OsmifyConfig",
    "DEFAULT_API_URL",
    "DEFAULT_OVERPASS_URL",
    # Editing
    "ElementStore",
    "DiffBuilder",
    "ChangesetSession",
    "AsyncChangesetSession",
    "Reconciler",
    "TransportAdapter",
    "AsyncTransportAdapter",
    # Error base + code enum
    "OsmifyError",
    "ErrorCode",
    # Store / builder errors
    "OsmifyDuplicateIdentifierError",
    "OsmifyElementNotFoundError",
    "OsmifyStaleMappingError",
    "OsmifyUnknownElementError",
    "OsmifyAlreadyDeletedError",
    "OsmifyDanglingReferenceError",
    # Session errors
    "OsmifyAlreadyOpenError",
    "OsmifyChangesetNotOpenError",
    "OsmifyChangesetClosedError",
    "OsmifyIndeterminateStateError",
    "OsmifyEditConflictError",
    "OsmifyReconciliationError",
    # Transport errors
    "OsmifyTransportError",
    "OsmifyValidationError",
    "OsmifyAuthError",
    "OsmifyPermissionError",
    "OsmifyNotFoundError",
    "OsmifyConflictError",
    "OsmifyGoneError",
    "OsmifyPreconditionFailedError",
    "OsmifyRetryExhaustedError",
    "OsmifyNetworkError",
    "OsmifyCodecError",
    # Misc errors
    "OsmifyCoordinateError",
    "OsmifyFeatureDisabledError",
    # Geo
    "Coordinates",
    "BBox",
    "CoordinatePrecision",
    # Models: elements
    "Element",
    "ElementRef",
    "ElementType",
    "Node",
    "Way",
    "Relation",
    "Member",
    # Models: operations
    "ChangeKind",
    "ChangeOperation",
    "DiffPackage",
    "IdentityMapping",
    "VersionConflict",
    "UploadResponse",
    # Models: changesets and results
    "Changeset",
    "ChangesetState",
    "UploadResult",
]
