"""Shared test fixtures for the osmify test suite.

``FakeServer`` is an in-memory stand-in for the OSM API: it assigns real
ids per element type, tracks versions and reports version mismatches the
way the API does.  ``FakeAdapter`` / ``AsyncFakeAdapter`` expose it through
the transport adapter protocols and can be told to fail the next call.
"""

from __future__ import annotations

import pytest

from osmify.config import OsmifyConfig
from osmify.edit import DiffBuilder, ElementStore
from osmify.errors import OsmifyNotFoundError
from osmify.models import (
    Changeset,
    ChangesetState,
    DiffPackage,
    Element,
    ElementRef,
    ElementType,
    IdentityMapping,
    Node,
    UploadResponse,
    VersionConflict,
    Way,
)


class FakeServer:
    """Minimal OSM API semantics kept in memory."""

    def __init__(self) -> None:
        self.elements: dict[ElementRef, Element] = {}
        self.next_ids = {
            ElementType.NODE: 501,
            ElementType.WAY: 900,
            ElementType.RELATION: 1200,
        }
        self.next_changeset = 77
        self.changesets: dict[int, Changeset] = {}
        self.calls: list[str] = []

    def seed(self, element: Element) -> Element:
        """Put *element* on the server and return a caller-side copy."""
        self.elements[element.ref] = element.copy()
        return element.copy()

    # -- operations --------------------------------------------------------

    def open(self, comment: str, tags: dict[str, str]) -> int:
        self.calls.append("open")
        changeset_id = self.next_changeset
        self.next_changeset += 1
        self.changesets[changeset_id] = Changeset(
            id=changeset_id, state=ChangesetState.OPEN, comment=comment, tags=dict(tags),
        )
        return changeset_id

    def upload(self, changeset_id: int, package: DiffPackage) -> UploadResponse:
        self.calls.append("upload")
        conflicts = []
        for op in package.modifies + package.deletes:
            current = self.elements.get(op.ref)
            actual = current.version if current is not None else None
            if actual != op.expected_version:
                conflicts.append(
                    VersionConflict(op.ref.type, op.ref.id, op.expected_version, actual)
                )
        if conflicts:
            return UploadResponse(conflicts=conflicts)

        mappings = []
        for op in package.creates:
            new_id = self.next_ids[op.ref.type]
            self.next_ids[op.ref.type] += 1
            stored = op.element.copy()
            stored.id, stored.version = new_id, 1
            self.elements[stored.ref] = stored
            mappings.append(IdentityMapping(op.ref.type, op.ref.id, new_id, 1))
        for op in package.modifies:
            stored = op.element.copy()
            stored.version = op.expected_version + 1
            self.elements[stored.ref] = stored
            mappings.append(IdentityMapping(op.ref.type, op.ref.id, op.ref.id, stored.version))
        for op in package.deletes:
            del self.elements[op.ref]
            mappings.append(IdentityMapping(op.ref.type, op.ref.id))
        return UploadResponse(mappings=mappings)

    def close(self, changeset_id: int) -> None:
        self.calls.append("close")
        self.changesets[changeset_id].state = ChangesetState.CLOSED

    def fetch(self, ref: ElementRef) -> Element:
        self.calls.append("fetch")
        try:
            return self.elements[ref].copy()
        except KeyError:
            raise OsmifyNotFoundError(message=f"{ref} not found", context={"status_code": 404}) from None

    def fetch_changeset(self, changeset_id: int) -> Changeset:
        self.calls.append("fetch_changeset")
        cs = self.changesets[changeset_id]
        return Changeset(id=cs.id, state=cs.state, comment=cs.comment, tags=dict(cs.tags))


class FakeAdapter:
    """Blocking adapter over a :class:`FakeServer`.

    Assign an exception to ``fail[<operation>]`` to make the next call of
    that operation raise it (``"open"``, ``"upload"``, ``"close"``,
    ``"fetch"``, ``"fetch_changeset"``).
    """

    def __init__(self, server: FakeServer) -> None:
        self.server = server
        self.fail: dict[str, BaseException] = {}
        self.responses: list[UploadResponse] = []

    def _maybe_fail(self, operation: str) -> None:
        exc = self.fail.pop(operation, None)
        if exc is not None:
            self.server.calls.append(f"{operation}!")
            raise exc

    def perform_open(self, comment, tags):
        self._maybe_fail("open")
        return self.server.open(comment, tags)

    def perform_upload(self, changeset_id, package):
        self._maybe_fail("upload")
        if self.responses:
            self.server.calls.append("upload")
            return self.responses.pop(0)
        return self.server.upload(changeset_id, package)

    def perform_close(self, changeset_id):
        self._maybe_fail("close")
        self.server.close(changeset_id)

    def perform_fetch(self, ref):
        self._maybe_fail("fetch")
        return self.server.fetch(ref)

    def perform_fetch_changeset(self, changeset_id):
        self._maybe_fail("fetch_changeset")
        return self.server.fetch_changeset(changeset_id)


class AsyncFakeAdapter:
    """Coroutine twin of :class:`FakeAdapter`."""

    def __init__(self, server: FakeServer) -> None:
        self._sync = FakeAdapter(server)
        self.server = server
        self.fail = self._sync.fail
        self.responses = self._sync.responses

    async def perform_open(self, comment, tags):
        return self._sync.perform_open(comment, tags)

    async def perform_upload(self, changeset_id, package):
        return self._sync.perform_upload(changeset_id, package)

    async def perform_close(self, changeset_id):
        self._sync.perform_close(changeset_id)

    async def perform_fetch(self, ref):
        return self._sync.perform_fetch(ref)

    async def perform_fetch_changeset(self, changeset_id):
        return self._sync.perform_fetch_changeset(changeset_id)


@pytest.fixture
def config() -> OsmifyConfig:
    """Default test configuration with a dummy token."""
    return OsmifyConfig(token="test_token_1234")


@pytest.fixture
def store() -> ElementStore:
    return ElementStore()


@pytest.fixture
def builder(store: ElementStore) -> DiffBuilder:
    return DiffBuilder(store)


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def adapter(server: FakeServer) -> FakeAdapter:
    return FakeAdapter(server)


@pytest.fixture
def async_adapter(server: FakeServer) -> AsyncFakeAdapter:
    return AsyncFakeAdapter(server)


@pytest.fixture
def committed(store: ElementStore, server: FakeServer) -> dict[str, Element]:
    """Two nodes and a way that already exist on the server, registered in
    the store at their current versions."""
    n1 = server.seed(Node(id=10, version=3, lat=1.0, lon=2.0))
    n2 = server.seed(Node(id=11, version=1, lat=1.5, lon=2.5))
    w = server.seed(Way(id=20, version=2, nodes=[10, 11], tags={"highway": "path"}))
    for element in (n1, n2, w):
        store.register(element)
    return {"n1": n1, "n2": n2, "way": w}
