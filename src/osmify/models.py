"""Public data models for the osmify library.

This module contains the map elements, the edit operations and packages
built from them, and the result types returned by the changeset session.
Elements are mutable dataclasses (reconciliation updates them in place);
everything that travels to or from the server is frozen.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Union

from osmify.geo import BBox, Coordinates


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ElementType(str, Enum):
    """The three OSM element kinds."""

    NODE = "node"
    WAY = "way"
    RELATION = "relation"


class ChangeKind(str, Enum):
    """Operation kinds in an osmChange document."""

    CREATE = "create"
    """A new element, identified by a placeholder until uploaded."""

    MODIFY = "modify"
    """A new state for an existing element, based on a known version."""

    DELETE = "delete"
    """Removal of an existing element, based on a known version."""


class ChangesetState(str, Enum):
    """Lifecycle states of a changeset session."""

    UNOPENED = "unopened"
    """No changeset exists on the server yet."""

    OPEN = "open"
    """The changeset accepts uploads."""

    CLOSING = "closing"
    """A close request is in flight."""

    CLOSED = "closed"
    """Terminal.  No further uploads are accepted."""


# ---------------------------------------------------------------------------
# Elements
# ---------------------------------------------------------------------------

class ElementRef(NamedTuple):
    """Identity of an element: ids are only unique per element type."""

    type: ElementType
    id: int

    def __str__(self) -> str:
        return f"{self.type.value}/{self.id}"


@dataclass
class Member:
    """A relation member.

    Attributes
    ----------
    type:
        Element type of the member.
    ref:
        Id of the member (a placeholder while the member is uncommitted).
    role:
        Free-text role, often empty.
    """

    type: ElementType
    ref: int
    role: str = ""


@dataclass
class _Element:
    id: int = 0
    version: int | None = None
    tags: dict[str, str] = field(default_factory=dict)

    element_type = ElementType.NODE

    @property
    def ref(self) -> ElementRef:
        return ElementRef(self.element_type, self.id)

    @property
    def is_placeholder(self) -> bool:
        """``True`` while the element has no server-assigned id."""
        return self.id < 0

    def references(self) -> list[ElementRef]:
        """Refs of the elements this element points at."""
        return []

    def copy(self):
        return copy.deepcopy(self)


@dataclass
class Node(_Element):
    """A point with coordinates.

    Attributes
    ----------
    lat, lon:
        Coordinates in degrees, held at the store's precision.
    """

    lat: float = 0.0
    lon: float = 0.0

    element_type = ElementType.NODE

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(self.lat, self.lon)


@dataclass
class Way(_Element):
    """An ordered list of node ids.

    Attributes
    ----------
    nodes:
        Node ids in drawing order; a closed way repeats its first node.
    """

    nodes: list[int] = field(default_factory=list)

    element_type = ElementType.WAY

    def references(self) -> list[ElementRef]:
        return [ElementRef(ElementType.NODE, node_id) for node_id in self.nodes]


@dataclass
class Relation(_Element):
    """An ordered list of members.

    Attributes
    ----------
    members:
        The members, each carrying its own element type and role.
    """

    members: list[Member] = field(default_factory=list)

    element_type = ElementType.RELATION

    def references(self) -> list[ElementRef]:
        return [ElementRef(m.type, m.ref) for m in self.members]


Element = Union[Node, Way, Relation]

ELEMENT_CLASSES: dict[ElementType, type] = {
    ElementType.NODE: Node,
    ElementType.WAY: Way,
    ElementType.RELATION: Relation,
}


# ---------------------------------------------------------------------------
# Edit operations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChangeOperation:
    """One create, modify or delete.

    Attributes
    ----------
    kind:
        The operation kind.
    element:
        A snapshot of the element state to submit.  For a delete only the
        id matters.
    expected_version:
        The version the caller last observed.  Always ``None`` for a
        create, always set for modify and delete.
    """

    kind: ChangeKind
    element: Element
    expected_version: int | None = None

    def __post_init__(self) -> None:
        if self.kind is ChangeKind.CREATE and self.expected_version is not None:
            raise ValueError("create operations never carry a version")
        if self.kind is not ChangeKind.CREATE and self.expected_version is None:
            raise ValueError(f"{self.kind.value} operations require an expected version")

    @property
    def ref(self) -> ElementRef:
        return self.element.ref


@dataclass(frozen=True)
class DiffPackage:
    """An immutable, upload-ready batch of operations.

    Attributes
    ----------
    changeset_id:
        The changeset the package belongs to, or ``None`` until tagged.
    creates, modifies, deletes:
        Operations grouped by kind, in submission order.
    """

    changeset_id: int | None
    creates: tuple[ChangeOperation, ...] = ()
    modifies: tuple[ChangeOperation, ...] = ()
    deletes: tuple[ChangeOperation, ...] = ()

    @property
    def operations(self) -> tuple[ChangeOperation, ...]:
        """All operations in document order."""
        return self.creates + self.modifies + self.deletes

    def __len__(self) -> int:
        return len(self.creates) + len(self.modifies) + len(self.deletes)

    def bbox(self) -> BBox | None:
        """Extent of every node carried by the package (deletes excluded)."""
        return BBox.from_points(
            op.element.coordinates
            for op in self.creates + self.modifies
            if isinstance(op.element, Node)
        )


@dataclass(frozen=True)
class IdentityMapping:
    """One entry of an upload response.

    Attributes
    ----------
    element_type:
        Type of the mapped element.
    old_id:
        The placeholder (create) or existing id (modify, delete).
    new_id:
        The real id, or ``None`` for a delete.
    new_version:
        The version after the upload, or ``None`` for a delete.
    """

    element_type: ElementType
    old_id: int
    new_id: int | None = None
    new_version: int | None = None

    @property
    def old_ref(self) -> ElementRef:
        return ElementRef(self.element_type, self.old_id)

    @property
    def is_delete(self) -> bool:
        return self.new_id is None


@dataclass(frozen=True)
class VersionConflict:
    """A server-reported optimistic-concurrency violation."""

    element_type: ElementType
    element_id: int
    expected_version: int | None
    actual_version: int | None


@dataclass
class UploadResponse:
    """What a transport adapter returns for an upload.

    Exactly one of the two lists is non-empty for a well-formed response.
    """

    mappings: list[IdentityMapping] = field(default_factory=list)
    conflicts: list[VersionConflict] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Changesets
# ---------------------------------------------------------------------------

@dataclass
class Changeset:
    """A server-side changeset as seen by one session.

    Attributes
    ----------
    id:
        Server-assigned id, ``None`` until opened.
    state:
        Lifecycle state.
    comment:
        The ``comment`` tag.
    tags:
        All changeset tags (including ``comment``).
    bbox:
        Extent of the edits uploaded so far.
    """

    id: int | None = None
    state: ChangesetState = ChangesetState.UNOPENED
    comment: str = ""
    tags: dict[str, str] = field(default_factory=dict)
    bbox: BBox | None = None


# ---------------------------------------------------------------------------
# Public result types
# ---------------------------------------------------------------------------

@dataclass
class UploadResult:
    """Result of :meth:`ChangesetSession.commit`.

    Attributes
    ----------
    changeset_id:
        The changeset the batch was uploaded to.
    mappings:
        The identity mappings applied to the element store.
    created, modified, deleted:
        Operation counts by kind.
    """

    changeset_id: int
    mappings: list[IdentityMapping] = field(default_factory=list)
    created: int = 0
    modified: int = 0
    deleted: int = 0
