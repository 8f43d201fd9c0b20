"""Response reconciler: apply upload results back onto local state.

After a successful upload the server returns, per operation, the element's
real id and new version.  The reconciler applies those mappings to the
element store and rewrites every way node and relation member that still
points at a placeholder, so the next batch only sees real ids.

Reconciliation is all-or-nothing: every mapping is matched and validated
before the store is touched, and the store is restored from a snapshot if
applying fails part-way.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields

from osmify.errors import OsmifyError, OsmifyReconciliationError
from osmify.models import (
    ChangeKind,
    ChangeOperation,
    DiffPackage,
    ElementRef,
    ElementType,
    IdentityMapping,
    Relation,
    Way,
)
from osmify.observability import get_logger

from .store import ElementStore, _copy_value

log = get_logger("osmify.reconciler")


@dataclass
class _Plan:
    """Staged updates, computed before anything is applied."""

    steps: list[tuple[ChangeOperation, IdentityMapping]] = field(default_factory=list)
    renames: dict[ElementRef, int] = field(default_factory=dict)


def _fail(reason: str, ref: ElementRef, **extra) -> OsmifyReconciliationError:
    ctx = {"element_type": ref.type.value, "old_id": ref.id, "reason": reason}
    ctx.update(extra)
    return OsmifyReconciliationError(
        message=f"cannot reconcile {ref}: {reason}",
        context=ctx,
    )


class Reconciler:
    """Applies :class:`IdentityMapping` results to an :class:`ElementStore`.

    Parameters
    ----------
    store:
        The store holding the elements of the uploaded package.
    """

    def __init__(self, store: ElementStore) -> None:
        self._store = store

    def reconcile(
        self,
        package: DiffPackage,
        mappings: list[IdentityMapping],
    ) -> list[IdentityMapping]:
        """Apply *mappings* for *package* to the store.

        Returns the mappings in package order.

        Raises
        ------
        OsmifyReconciliationError
            If a mapping is duplicated, matches no operation, is missing for
            an operation, has the wrong shape for its operation, or targets
            an element the store does not track.  The store is unchanged.
        """
        plan = self._stage(package, mappings)

        snapshot = self._store.snapshot()
        try:
            self._apply(plan)
        except OsmifyError as exc:
            self._store.restore(snapshot)
            raise OsmifyReconciliationError(
                message=f"reconciliation aborted, store rolled back: {exc.message}",
                context={"reason": "apply_failed"},
                cause=exc,
            ) from exc

        log.debug(
            "Reconciled upload",
            extra={
                "extra_fields": {
                    "op": "reconcile",
                    "changeset_id": package.changeset_id,
                    "mappings": len(plan.steps),
                    "placeholders_resolved": len(plan.renames),
                }
            },
        )
        return [mapping for _, mapping in plan.steps]

    # -- staging -----------------------------------------------------------

    def _stage(
        self,
        package: DiffPackage,
        mappings: list[IdentityMapping],
    ) -> _Plan:
        by_ref: dict[ElementRef, IdentityMapping] = {}
        for mapping in mappings:
            ref = mapping.old_ref
            if ref in by_ref:
                raise _fail("duplicate mapping", ref)
            by_ref[ref] = mapping

        plan = _Plan()
        for op in package.operations:
            ref = op.ref
            mapping = by_ref.pop(ref, None)
            if mapping is None:
                raise _fail("no mapping returned for operation", ref, kind=op.kind.value)
            self._check_shape(op, mapping)
            if ref not in self._store:
                raise _fail("target is not tracked by the store", ref, kind=op.kind.value)
            if op.kind is ChangeKind.CREATE:
                target = ElementRef(ref.type, mapping.new_id)
                if target in self._store or mapping.new_id in (
                    new_id for r, new_id in plan.renames.items() if r.type is ref.type
                ):
                    raise _fail("new id is already taken", ref, new_id=mapping.new_id)
                plan.renames[ref] = mapping.new_id
            plan.steps.append((op, mapping))

        if by_ref:
            ref = next(iter(by_ref))
            raise _fail(
                "mapping matches no operation in the package",
                ref,
                unexpected=[str(r) for r in by_ref],
            )
        return plan

    @staticmethod
    def _check_shape(op: ChangeOperation, mapping: IdentityMapping) -> None:
        ref = op.ref
        if op.kind is ChangeKind.DELETE:
            if not mapping.is_delete:
                raise _fail("delete answered with a new id", ref)
            return
        if mapping.new_id is None or mapping.new_version is None:
            raise _fail(f"{op.kind.value} answered without id and version", ref)
        if mapping.new_id <= 0:
            raise _fail("server returned a non-positive id", ref, new_id=mapping.new_id)
        if op.kind is ChangeKind.MODIFY and mapping.new_id != ref.id:
            raise _fail("modify changed the element id", ref, new_id=mapping.new_id)

    # -- applying ----------------------------------------------------------

    def _apply(self, plan: _Plan) -> None:
        for op, mapping in plan.steps:
            if op.kind is not ChangeKind.DELETE:
                _assign_state(self._store.get(op.ref), op)
            self._store.apply_mapping(mapping)

        if plan.renames:
            self._rewrite_references(plan.renames)

    def _rewrite_references(self, renames: dict[ElementRef, int]) -> None:
        for element in self._store:
            if isinstance(element, Way):
                element.nodes = [
                    renames.get(ElementRef(ElementType.NODE, node_id), node_id)
                    for node_id in element.nodes
                ]
            elif isinstance(element, Relation):
                for member in element.members:
                    member.ref = renames.get(ElementRef(member.type, member.ref), member.ref)


def _assign_state(tracked, op: ChangeOperation) -> None:
    """Copy the submitted state (except id and version) onto the tracked
    element."""
    for f in fields(op.element):
        if f.name in ("id", "version"):
            continue
        setattr(tracked, f.name, _copy_value(getattr(op.element, f.name)))
