"""Diff builder: turn caller edit intent into an upload-ready package.

The builder accumulates create/modify/delete operations against an
:class:`ElementStore`.  New elements get placeholder ids from a private,
strictly decreasing counter so they can be referenced by later operations
of the same batch (e.g. a way over freshly created nodes) before the server
has assigned real ids.
"""

from __future__ import annotations

from osmify.errors import (
    OsmifyAlreadyDeletedError,
    OsmifyDanglingReferenceError,
    OsmifyUnknownElementError,
)
from osmify.models import (
    ChangeKind,
    ChangeOperation,
    DiffPackage,
    Element,
    ElementRef,
    ElementType,
)

from .store import ElementStore

# osmChange processing order: referenced elements are created first and
# deleted last.
_CREATE_ORDER = (ElementType.NODE, ElementType.WAY, ElementType.RELATION)
_DELETE_ORDER = (ElementType.RELATION, ElementType.WAY, ElementType.NODE)


def _ctx(ref: ElementRef) -> dict:
    return {"element_type": ref.type.value, "element_id": ref.id}


class DiffBuilder:
    """Accumulates one batch of edits.

    Parameters
    ----------
    store:
        The element store the edits apply to.  Created elements are
        registered in it under their placeholder ids.
    """

    def __init__(self, store: ElementStore) -> None:
        self._store = store
        # Start below any placeholder still held by the store, so batches
        # sharing a store never hand out the same id.
        self._next_placeholder = min(
            [-1] + [ref.id - 1 for ref in store.placeholder_refs()]
        )
        self._creates: dict[ElementRef, Element] = {}
        self._modifies: dict[ElementRef, ChangeOperation] = {}
        self._deletes: dict[ElementRef, ChangeOperation] = {}
        # Placeholders whose create was withdrawn by a delete in this batch.
        self._withdrawn: set[ElementRef] = set()

    @property
    def store(self) -> ElementStore:
        return self._store

    @property
    def placeholders(self) -> list[ElementRef]:
        """Placeholder refs created in the current batch."""
        return list(self._creates)

    # -- operations --------------------------------------------------------

    def add_create(self, element: Element) -> int:
        """Queue *element* for creation and return its placeholder id.

        The element's ``id`` is set to the placeholder and its ``version``
        cleared; the element is registered in the store.
        """
        placeholder = self._next_placeholder
        self._next_placeholder -= 1
        element.id = placeholder
        element.version = None
        self._store.register(element)
        self._creates[element.ref] = element
        return placeholder

    def add_modify(
        self,
        ref: ElementRef,
        expected_version: int | None,
        new_state: Element,
    ) -> None:
        """Queue a new state for the element identified by *ref*.

        *expected_version* is the version the caller last observed.  For an
        element created in this batch it must be ``None`` and the pending
        create is updated instead.

        Raises
        ------
        OsmifyUnknownElementError
            If *ref* was never registered or is deleted in this batch.
        ValueError
            If *new_state* is not of the ref's element type, or the version
            requirement above is violated.
        """
        if new_state.element_type is not ref.type:
            raise ValueError(
                f"new state is a {new_state.element_type.value}, expected {ref.type.value}"
            )
        self._require_known(ref)

        state = new_state.copy()
        state.id = ref.id
        self._store.quantize(state)
        if ref in self._creates:
            if expected_version is not None:
                raise ValueError(f"{ref} is not committed yet and has no version")
            state.version = None
            self._creates[ref] = state
            return
        if expected_version is None:
            raise ValueError(f"modifying {ref} requires the last observed version")
        state.version = expected_version
        self._modifies[ref] = ChangeOperation(
            kind=ChangeKind.MODIFY,
            element=state,
            expected_version=expected_version,
        )

    def add_delete(self, ref: ElementRef, expected_version: int | None) -> None:
        """Queue deletion of the element identified by *ref*.

        Deleting an element created in this batch withdraws the create.

        Raises
        ------
        OsmifyAlreadyDeletedError
            If a delete for *ref* is already queued, or *ref* is a
            placeholder whose create was already withdrawn.
        OsmifyUnknownElementError
            If *ref* was never registered.
        """
        if ref in self._deletes or ref in self._withdrawn:
            raise OsmifyAlreadyDeletedError(
                message=f"{ref} is already deleted in this batch",
                context=_ctx(ref),
            )
        self._require_known(ref)

        if ref in self._creates:
            del self._creates[ref]
            self._store.discard(ref)
            self._withdrawn.add(ref)
            return
        if expected_version is None:
            raise ValueError(f"deleting {ref} requires the last observed version")
        element = self._store.get(ref).copy()
        element.version = expected_version
        self._modifies.pop(ref, None)
        self._deletes[ref] = ChangeOperation(
            kind=ChangeKind.DELETE,
            element=element,
            expected_version=expected_version,
        )

    # -- package -----------------------------------------------------------

    def build(self, changeset_id: int | None = None) -> DiffPackage:
        """Validate the batch and produce an immutable :class:`DiffPackage`.

        The batch itself is left untouched, so a failed upload can be
        retried with the very same placeholders.

        Raises
        ------
        OsmifyDanglingReferenceError
            If a way or relation references an element that is neither a
            live committed element nor created in this batch.
        """
        creates = [
            ChangeOperation(kind=ChangeKind.CREATE, element=element.copy())
            for element_type in _CREATE_ORDER
            for ref, element in self._creates.items()
            if ref.type is element_type
        ]
        modifies = list(self._modifies.values())
        deletes = [
            op
            for element_type in _DELETE_ORDER
            for ref, op in self._deletes.items()
            if ref.type is element_type
        ]

        for op in creates + modifies:
            self._check_references(op.element)

        return DiffPackage(
            changeset_id=changeset_id,
            creates=tuple(creates),
            modifies=tuple(modifies),
            deletes=tuple(deletes),
        )

    def clear(self) -> None:
        """Drop every queued operation.  Placeholder ids are never reused."""
        self._creates.clear()
        self._modifies.clear()
        self._deletes.clear()
        self._withdrawn.clear()

    def __len__(self) -> int:
        return len(self._creates) + len(self._modifies) + len(self._deletes)

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    # -- helpers -----------------------------------------------------------

    def _require_known(self, ref: ElementRef) -> None:
        if ref in self._deletes or ref not in self._store:
            raise OsmifyUnknownElementError(
                message=f"{ref} is not a known, undeleted element",
                context=_ctx(ref),
            )

    def _check_references(self, element: Element) -> None:
        missing = [
            ref
            for ref in element.references()
            if not self._resolves(ref)
        ]
        if missing:
            ctx = _ctx(element.ref)
            ctx["missing"] = [str(ref) for ref in missing]
            raise OsmifyDanglingReferenceError(
                message=f"{element.ref} references unresolved elements: "
                + ", ".join(str(ref) for ref in missing),
                context=ctx,
            )

    def _resolves(self, ref: ElementRef) -> bool:
        if ref in self._deletes:
            return False
        if ref.id < 0:
            return ref in self._creates
        return not self._store.is_deleted(ref)
