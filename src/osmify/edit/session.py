"""Changeset sessions: the lifecycle of one changeset on the server.

A session opens a changeset, uploads diff packages to it, reconciles each
response into the element store, and closes it::

    UNOPENED --open--> OPEN --close--> CLOSING --> CLOSED
                        ^  |                  |
                        +--+ upload           | (close failed)
                        +---------------------+

:class:`ChangesetSession` drives a blocking :class:`TransportAdapter`;
:class:`AsyncChangesetSession` drives an :class:`AsyncTransportAdapter`.
Both share their state machine through :class:`_SessionCore`.

A session is single-writer: concurrent calls on one session are not
supported, but independent sessions may run side by side.
"""

from __future__ import annotations

import contextlib
import dataclasses
from collections.abc import Iterator
from typing import Any

from osmify.errors import (
    OsmifyAlreadyOpenError,
    OsmifyChangesetClosedError,
    OsmifyChangesetNotOpenError,
    OsmifyEditConflictError,
    OsmifyError,
    OsmifyIndeterminateStateError,
    OsmifyNetworkError,
    OsmifyRetryExhaustedError,
    OsmifyTransportError,
)
from osmify.models import (
    Changeset,
    ChangesetState,
    DiffPackage,
    IdentityMapping,
    UploadResponse,
    UploadResult,
)
from osmify.observability import changeset_context, get_logger, resolve_metrics

from .builder import DiffBuilder
from .reconciler import Reconciler
from .store import ElementStore

log = get_logger("osmify.session")

# Failures after which the server may or may not have applied an upload.
_UNCERTAIN_ERRORS = (OsmifyNetworkError, OsmifyRetryExhaustedError)


@contextlib.contextmanager
def _transport_errors(operation: str, changeset_id: int | None) -> Iterator[None]:
    """Tag adapter failures with the operation, wrapping foreign exceptions
    in :class:`OsmifyTransportError`.  Records logged during the call carry
    the changeset id."""
    try:
        with changeset_context(changeset_id):
            yield
    except OsmifyError as exc:
        exc.context.setdefault("operation", operation)
        if changeset_id is not None:
            exc.context.setdefault("changeset_id", changeset_id)
        raise
    except Exception as exc:
        raise OsmifyTransportError(
            message=f"{operation} failed: {exc}",
            context={
                "operation": operation,
                "changeset_id": changeset_id,
                "exception_type": type(exc).__name__,
            },
            cause=exc,
        ) from exc


class _SessionCore:
    """State and bookkeeping shared by the sync and async sessions.

    Every method here is synchronous and performs no I/O; the sessions call
    the adapter between these steps.
    """

    __slots__ = ("changeset", "in_flight", "metrics", "reconciler", "store")

    def __init__(
        self,
        store: ElementStore,
        comment: str,
        tags: dict[str, str] | None,
        metrics: Any | None,
    ) -> None:
        self.store = store
        self.reconciler = Reconciler(store)
        self.changeset = Changeset(comment=comment, tags=dict(tags or {}))
        self.in_flight = False
        self.metrics = resolve_metrics(metrics)

    # -- open --------------------------------------------------------------

    def begin_open(self, comment: str | None, tags: dict[str, str] | None) -> dict[str, str]:
        """Validate the transition and return the tags to send."""
        cs = self.changeset
        if cs.state is not ChangesetState.UNOPENED:
            raise OsmifyAlreadyOpenError(
                message=f"changeset {cs.id} is already {cs.state.value}",
                context={"changeset_id": cs.id, "state": cs.state.value},
            )
        if comment is not None:
            cs.comment = comment
        if tags:
            cs.tags.update(tags)
        if cs.comment:
            cs.tags["comment"] = cs.comment
        return dict(cs.tags)

    def opened(self, changeset_id: int) -> None:
        self.changeset.id = changeset_id
        self.changeset.state = ChangesetState.OPEN
        self.metrics.increment("osmify.changesets_opened_total")
        log.info(
            "Opened changeset",
            extra={"extra_fields": {"op": "open", "changeset_id": changeset_id}},
        )

    # -- upload ------------------------------------------------------------

    def check_upload(self) -> int:
        """Return the changeset id if an upload may be issued now."""
        cs = self.changeset
        if cs.state in (ChangesetState.CLOSING, ChangesetState.CLOSED):
            raise OsmifyChangesetClosedError(
                message=f"changeset {cs.id} is {cs.state.value}",
                context={"changeset_id": cs.id, "state": cs.state.value},
            )
        if cs.state is ChangesetState.UNOPENED:
            raise OsmifyChangesetNotOpenError(
                message="changeset has not been opened",
                context={"state": cs.state.value},
            )
        if self.in_flight:
            raise OsmifyIndeterminateStateError(
                message=(
                    f"outcome of a previous upload to changeset {cs.id} is unknown; "
                    "call refresh() before uploading again"
                ),
                context={"changeset_id": cs.id},
            )
        return cs.id

    def tag_package(self, package: DiffPackage, changeset_id: int) -> DiffPackage:
        if package.changeset_id is None:
            return dataclasses.replace(package, changeset_id=changeset_id)
        if package.changeset_id != changeset_id:
            raise ValueError(
                f"package belongs to changeset {package.changeset_id}, "
                f"session holds {changeset_id}"
            )
        return package

    def upload_failed(self, exc: OsmifyError) -> None:
        """Clear the in-flight marker unless the server may have applied the
        upload.

        Only a network failure or exhausted retries leave the outcome open;
        any other error (local encoding failures included) is raised before
        or after a definite answer from the server.
        """
        if isinstance(exc, _UNCERTAIN_ERRORS):
            log.warning(
                "Upload outcome unknown",
                extra={
                    "extra_fields": {
                        "op": "upload",
                        "changeset_id": self.changeset.id,
                        "error": exc.message,
                    }
                },
            )
            return
        self.in_flight = False

    def apply_response(self, package: DiffPackage, response: UploadResponse) -> list[IdentityMapping]:
        """Raise on conflicts, otherwise reconcile and account for the upload."""
        if response.conflicts:
            self._raise_conflict(response)

        mappings = self.reconciler.reconcile(package, response.mappings)

        for kind, ops in (
            ("create", package.creates),
            ("modify", package.modifies),
            ("delete", package.deletes),
        ):
            if ops:
                self.metrics.increment("osmify.diff_ops_total", len(ops), tags={"kind": kind})

        extent = package.bbox()
        if extent is not None:
            cs = self.changeset
            cs.bbox = extent if cs.bbox is None else cs.bbox.extend(extent)

        log.info(
            "Uploaded diff",
            extra={
                "extra_fields": {
                    "op": "upload",
                    "changeset_id": package.changeset_id,
                    "creates": len(package.creates),
                    "modifies": len(package.modifies),
                    "deletes": len(package.deletes),
                }
            },
        )
        return mappings

    def _raise_conflict(self, response: UploadResponse) -> None:
        first = response.conflicts[0]
        self.metrics.increment("osmify.edit_conflicts_total", len(response.conflicts))
        log.warning(
            "Edit conflict",
            extra={
                "extra_fields": {
                    "op": "upload",
                    "changeset_id": self.changeset.id,
                    "element_type": first.element_type.value,
                    "element_id": first.element_id,
                    "expected_version": first.expected_version,
                    "actual_version": first.actual_version,
                }
            },
        )
        raise OsmifyEditConflictError(
            message=(
                f"{first.element_type.value}/{first.element_id} was edited concurrently: "
                f"expected version {first.expected_version}, server has {first.actual_version}"
            ),
            element_type=first.element_type.value,
            element_id=first.element_id,
            expected_version=first.expected_version,
            actual_version=first.actual_version,
            context={
                "changeset_id": self.changeset.id,
                "conflicts": [dataclasses.asdict(c) for c in response.conflicts],
            },
        )

    # -- close -------------------------------------------------------------

    def begin_close(self) -> bool:
        """Enter ``CLOSING``.  Returns ``False`` when already closed."""
        cs = self.changeset
        if cs.state is ChangesetState.CLOSED:
            return False
        if cs.state is ChangesetState.UNOPENED:
            raise OsmifyChangesetNotOpenError(
                message="changeset has not been opened",
                context={"state": cs.state.value},
            )
        if cs.state is ChangesetState.CLOSING:
            raise OsmifyChangesetClosedError(
                message=f"changeset {cs.id} is already closing",
                context={"changeset_id": cs.id, "state": cs.state.value},
            )
        cs.state = ChangesetState.CLOSING
        return True

    def closed(self) -> None:
        self.changeset.state = ChangesetState.CLOSED
        self.metrics.increment("osmify.changesets_closed_total")
        log.info(
            "Closed changeset",
            extra={"extra_fields": {"op": "close", "changeset_id": self.changeset.id}},
        )

    def close_failed(self) -> None:
        self.changeset.state = ChangesetState.OPEN

    # -- refresh -----------------------------------------------------------

    def check_refresh(self) -> int:
        cs = self.changeset
        if cs.id is None:
            raise OsmifyChangesetNotOpenError(
                message="changeset has not been opened",
                context={"state": cs.state.value},
            )
        return cs.id

    def refreshed(self, remote: Changeset) -> Changeset:
        cs = self.changeset
        self.in_flight = False
        if remote.state is ChangesetState.CLOSED:
            cs.state = ChangesetState.CLOSED
        if remote.bbox is not None:
            cs.bbox = remote.bbox
        cs.tags = dict(remote.tags) or cs.tags
        return cs

    # -- commit ------------------------------------------------------------

    def check_builder(self, builder: DiffBuilder) -> None:
        if builder.store is not self.store:
            raise ValueError("builder works on a different element store than this session")


def _upload_result(changeset_id: int, package: DiffPackage, mappings: list[IdentityMapping]) -> UploadResult:
    return UploadResult(
        changeset_id=changeset_id,
        mappings=mappings,
        created=len(package.creates),
        modified=len(package.modifies),
        deleted=len(package.deletes),
    )


class ChangesetSession:
    """One changeset, driven through a blocking transport adapter.

    Parameters
    ----------
    adapter:
        The :class:`~osmify.osm_api.TransportAdapter` performing requests.
    store:
        Element store updated by reconciliation.
    comment:
        Changeset comment; can also be given to :meth:`open`.
    tags:
        Extra changeset tags.
    metrics:
        Optional :class:`~osmify.observability.MetricsHook`.
    """

    def __init__(
        self,
        adapter: Any,
        store: ElementStore,
        comment: str = "",
        tags: dict[str, str] | None = None,
        metrics: Any | None = None,
    ) -> None:
        self._adapter = adapter
        self._core = _SessionCore(store, comment, tags, metrics)

    @property
    def changeset(self) -> Changeset:
        return self._core.changeset

    @property
    def state(self) -> ChangesetState:
        return self._core.changeset.state

    @property
    def id(self) -> int | None:
        return self._core.changeset.id

    @property
    def store(self) -> ElementStore:
        return self._core.store

    @property
    def is_indeterminate(self) -> bool:
        """``True`` while the outcome of an earlier upload is unknown."""
        return self._core.in_flight

    def open(self, comment: str | None = None, tags: dict[str, str] | None = None) -> int:
        """Open the changeset on the server and return its id.

        Raises
        ------
        OsmifyAlreadyOpenError
            If the session is not unopened.
        OsmifyTransportError
            If the request fails; the session stays unopened.
        """
        send_tags = self._core.begin_open(comment, tags)
        with _transport_errors("open", None):
            changeset_id = self._adapter.perform_open(self._core.changeset.comment, send_tags)
        self._core.opened(changeset_id)
        return changeset_id

    def upload(self, package: DiffPackage) -> list[IdentityMapping]:
        """Upload *package* and reconcile the response into the store.

        Returns the applied identity mappings.  The session stays open.

        Raises
        ------
        OsmifyChangesetClosedError
            If the changeset is closing or closed.
        OsmifyChangesetNotOpenError
            If the changeset was never opened.
        OsmifyIndeterminateStateError
            If an earlier upload's outcome is unknown.
        OsmifyEditConflictError
            If the server reports a version conflict.  The store is
            untouched.
        OsmifyReconciliationError
            If the response does not match the package.  The store is
            rolled back.
        """
        changeset_id = self._core.check_upload()
        package = self._core.tag_package(package, changeset_id)

        self._core.in_flight = True
        try:
            with _transport_errors("upload", changeset_id):
                response = self._adapter.perform_upload(changeset_id, package)
        except OsmifyError as exc:
            self._core.upload_failed(exc)
            raise
        self._core.in_flight = False
        return self._core.apply_response(package, response)

    def commit(self, builder: DiffBuilder) -> UploadResult:
        """Build, upload and reconcile *builder*'s batch, then clear it.

        The batch is left untouched when any step fails, so the same
        placeholders can be uploaded again after fixing the cause.
        """
        self._core.check_builder(builder)
        changeset_id = self._core.check_upload()
        package = builder.build(changeset_id)
        if len(package) == 0:
            return UploadResult(changeset_id=changeset_id)
        mappings = self.upload(package)
        builder.clear()
        return _upload_result(changeset_id, package, mappings)

    def close(self) -> None:
        """Close the changeset.  Closing a closed changeset does nothing.

        Raises
        ------
        OsmifyChangesetNotOpenError
            If the changeset was never opened.
        OsmifyTransportError
            If the request fails; the session returns to ``OPEN``.
        """
        if not self._core.begin_close():
            return
        try:
            with _transport_errors("close", self._core.changeset.id):
                self._adapter.perform_close(self._core.changeset.id)
        except BaseException:
            self._core.close_failed()
            raise
        self._core.closed()

    def refresh(self) -> Changeset:
        """Re-read the changeset from the server.

        Clears the indeterminate marker left by an interrupted upload and
        picks up a server-side close.  Elements touched by the interrupted
        upload should be re-fetched before editing them again.
        """
        changeset_id = self._core.check_refresh()
        with _transport_errors("fetch", changeset_id):
            remote = self._adapter.perform_fetch_changeset(changeset_id)
        return self._core.refreshed(remote)

    def __enter__(self) -> ChangesetSession:
        if self.state is ChangesetState.UNOPENED:
            self.open()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        if self.state is not ChangesetState.OPEN:
            return
        if exc is None:
            self.close()
            return
        try:
            self.close()
        except OsmifyError as close_exc:
            log.warning(
                "Close after error failed",
                extra={"extra_fields": {"op": "close", "changeset_id": self.id, "error": close_exc.message}},
            )


class AsyncChangesetSession:
    """One changeset, driven through an :class:`AsyncTransportAdapter`.

    Mirrors :class:`ChangesetSession`; every transport step is awaited.
    Cancelling an upload leaves the session indeterminate.
    """

    def __init__(
        self,
        adapter: Any,
        store: ElementStore,
        comment: str = "",
        tags: dict[str, str] | None = None,
        metrics: Any | None = None,
    ) -> None:
        self._adapter = adapter
        self._core = _SessionCore(store, comment, tags, metrics)

    @property
    def changeset(self) -> Changeset:
        return self._core.changeset

    @property
    def state(self) -> ChangesetState:
        return self._core.changeset.state

    @property
    def id(self) -> int | None:
        return self._core.changeset.id

    @property
    def store(self) -> ElementStore:
        return self._core.store

    @property
    def is_indeterminate(self) -> bool:
        return self._core.in_flight

    async def open(self, comment: str | None = None, tags: dict[str, str] | None = None) -> int:
        send_tags = self._core.begin_open(comment, tags)
        with _transport_errors("open", None):
            changeset_id = await self._adapter.perform_open(self._core.changeset.comment, send_tags)
        self._core.opened(changeset_id)
        return changeset_id

    async def upload(self, package: DiffPackage) -> list[IdentityMapping]:
        changeset_id = self._core.check_upload()
        package = self._core.tag_package(package, changeset_id)

        self._core.in_flight = True
        try:
            with _transport_errors("upload", changeset_id):
                response = await self._adapter.perform_upload(changeset_id, package)
        except OsmifyError as exc:
            self._core.upload_failed(exc)
            raise
        self._core.in_flight = False
        return self._core.apply_response(package, response)

    async def commit(self, builder: DiffBuilder) -> UploadResult:
        self._core.check_builder(builder)
        changeset_id = self._core.check_upload()
        package = builder.build(changeset_id)
        if len(package) == 0:
            return UploadResult(changeset_id=changeset_id)
        mappings = await self.upload(package)
        builder.clear()
        return _upload_result(changeset_id, package, mappings)

    async def close(self) -> None:
        if not self._core.begin_close():
            return
        try:
            with _transport_errors("close", self._core.changeset.id):
                await self._adapter.perform_close(self._core.changeset.id)
        except BaseException:
            self._core.close_failed()
            raise
        self._core.closed()

    async def refresh(self) -> Changeset:
        changeset_id = self._core.check_refresh()
        with _transport_errors("fetch", changeset_id):
            remote = await self._adapter.perform_fetch_changeset(changeset_id)
        return self._core.refreshed(remote)

    async def __aenter__(self) -> AsyncChangesetSession:
        if self.state is ChangesetState.UNOPENED:
            await self.open()
        return self

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> None:
        if self.state is not ChangesetState.OPEN:
            return
        if exc is None:
            await self.close()
            return
        try:
            await self.close()
        except OsmifyError as close_exc:
            log.warning(
                "Close after error failed",
                extra={"extra_fields": {"op": "close", "changeset_id": self.id, "error": close_exc.message}},
            )
