"""In-memory working set of elements.

The store holds every element the caller intends to create, modify or
delete, keyed by :class:`ElementRef`, together with its last-known server
version.  It performs no I/O.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import fields, is_dataclass, replace

from osmify.errors import (
    OsmifyDuplicateIdentifierError,
    OsmifyElementNotFoundError,
    OsmifyStaleMappingError,
)
from osmify.geo import CoordinatePrecision
from osmify.models import Element, ElementRef, IdentityMapping, Node


def _ref_context(ref: ElementRef) -> dict:
    return {"element_type": ref.type.value, "element_id": ref.id}


class StoreSnapshot:
    """Opaque copy of a store's contents, see :meth:`ElementStore.snapshot`."""

    __slots__ = ("deleted", "entries", "states")

    def __init__(self, store: ElementStore) -> None:
        self.entries = dict(store._elements)
        self.deleted = set(store._deleted)
        # Element objects are shared with the caller, so keep their field
        # values rather than the objects.
        self.states = {
            id(el): {f.name: _copy_value(getattr(el, f.name)) for f in fields(el)}
            for el in store._elements.values()
        }


def _copy_value(value):
    if isinstance(value, dict):
        return dict(value)
    if isinstance(value, list):
        return [_copy_member(v) for v in value]
    return value


def _copy_member(value):
    return replace(value) if is_dataclass(value) else value


class ElementStore:
    """Tracks elements by type and id.

    Parameters
    ----------
    precision:
        Coordinate precision applied to every node on registration.
    """

    def __init__(self, precision: CoordinatePrecision = CoordinatePrecision.DOUBLE) -> None:
        self._precision = precision
        self._elements: dict[ElementRef, Element] = {}
        self._deleted: set[ElementRef] = set()

    @property
    def precision(self) -> CoordinatePrecision:
        return self._precision

    # -- registration ------------------------------------------------------

    def register(self, element: Element) -> Element:
        """Start tracking *element*.

        Raises
        ------
        OsmifyDuplicateIdentifierError
            If an element with the same ref is already tracked.
        """
        ref = element.ref
        if ref in self._elements:
            raise OsmifyDuplicateIdentifierError(
                message=f"{ref} is already tracked",
                context=_ref_context(ref),
            )
        self.quantize(element)
        self._elements[ref] = element
        self._deleted.discard(ref)
        return element

    def refresh(self, element: Element) -> Element:
        """Register *element*, or overwrite the tracked element with its
        state.  Returns the tracked object.

        Used after fetching an element from the server, e.g. to pick up
        the current version after an edit conflict.
        """
        ref = element.ref
        tracked = self._elements.get(ref)
        if tracked is None:
            return self.register(element)
        self.quantize(element)
        _assign(tracked, element)
        return tracked

    def get(self, ref: ElementRef) -> Element:
        """Return the tracked element for *ref*.

        Raises
        ------
        OsmifyElementNotFoundError
            If *ref* is not tracked, including after a committed delete.
        """
        try:
            return self._elements[ref]
        except KeyError:
            ctx = _ref_context(ref)
            ctx["deleted"] = ref in self._deleted
            raise OsmifyElementNotFoundError(
                message=f"{ref} is not tracked",
                context=ctx,
            ) from None

    def is_deleted(self, ref: ElementRef) -> bool:
        """``True`` if *ref* was removed by a committed delete."""
        return ref in self._deleted

    # -- reconciliation ----------------------------------------------------

    def apply_mapping(self, mapping: IdentityMapping) -> Element | None:
        """Apply one upload result in place.

        A create or modify mapping updates the element's id and version and
        re-keys it; a delete mapping drops the element.  Returns the updated
        element, or ``None`` for a delete.

        Raises
        ------
        OsmifyStaleMappingError
            If the mapping's target is not tracked, or its new id is
            already taken by another tracked element.  The store is left
            unchanged.
        """
        old_ref = mapping.old_ref
        element = self._elements.get(old_ref)
        if element is None:
            raise OsmifyStaleMappingError(
                message=f"mapping target {old_ref} is not tracked",
                context={"element_type": old_ref.type.value, "old_id": old_ref.id},
            )
        if not mapping.is_delete:
            new_ref = ElementRef(old_ref.type, mapping.new_id)
            if new_ref != old_ref and new_ref in self._elements:
                raise OsmifyStaleMappingError(
                    message=f"mapping {old_ref} -> {new_ref} collides with a tracked element",
                    context={
                        "element_type": old_ref.type.value,
                        "old_id": old_ref.id,
                        "new_id": mapping.new_id,
                    },
                )
        del self._elements[old_ref]
        if mapping.is_delete:
            self._deleted.add(old_ref)
            return None
        element.id = mapping.new_id
        element.version = mapping.new_version
        self._elements[element.ref] = element
        return element

    def discard(self, ref: ElementRef) -> None:
        """Stop tracking *ref* without recording a delete (a withdrawn create)."""
        self._elements.pop(ref, None)

    def snapshot(self) -> StoreSnapshot:
        """Capture the current contents, including element field values."""
        return StoreSnapshot(self)

    def restore(self, snapshot: StoreSnapshot) -> None:
        """Roll back to *snapshot*."""
        self._elements = dict(snapshot.entries)
        self._deleted = set(snapshot.deleted)
        for element in self._elements.values():
            for name, value in snapshot.states.get(id(element), {}).items():
                setattr(element, name, value)

    # -- inspection --------------------------------------------------------

    def placeholder_refs(self) -> list[ElementRef]:
        """Refs of tracked elements, and of references held by tracked ways
        and relations, that still use placeholder ids."""
        found: list[ElementRef] = []
        for ref, element in self._elements.items():
            if ref.id < 0:
                found.append(ref)
            found.extend(r for r in element.references() if r.id < 0)
        return found

    def __contains__(self, ref: object) -> bool:
        return ref in self._elements

    def __len__(self) -> int:
        return len(self._elements)

    def __iter__(self) -> Iterator[Element]:
        return iter(list(self._elements.values()))

    def quantize(self, element: Element) -> None:
        """Round node coordinates to the store's precision, in place."""
        if isinstance(element, Node):
            element.lat = self._precision.quantize(element.lat)
            element.lon = self._precision.quantize(element.lon)


def _assign(target: Element, source: Element) -> None:
    """Copy every field of *source* onto *target*."""
    for f in fields(source):
        setattr(target, f.name, _copy_value(getattr(source, f.name)))
