"""Request documents: changeset creation and osmChange uploads."""

from __future__ import annotations

import contextlib
from collections.abc import Iterator

from lxml import etree

from osmify.config import __version__
from osmify.errors import OsmifyCodecError
from osmify.geo import CoordinatePrecision
from osmify.models import ChangeKind, DiffPackage, Element, Node, Relation, Way

GENERATOR = f"osmify/{__version__}"


def _serialize(root: etree._Element) -> bytes:
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8")


@contextlib.contextmanager
def _encoding(document: str) -> Iterator[None]:
    """Report values lxml refuses to write (control characters, non-text
    keys) as :class:`OsmifyCodecError`."""
    try:
        yield
    except (ValueError, TypeError) as exc:
        raise OsmifyCodecError(
            message=f"cannot encode {document}: {exc}",
            context={"reason": "unencodable_value", "document": document},
            cause=exc,
        ) from exc


def _add_tags(parent: etree._Element, tags: dict[str, str]) -> None:
    for key in sorted(tags):
        etree.SubElement(parent, "tag", k=key, v=str(tags[key]))


def encode_changeset(tags: dict[str, str]) -> bytes:
    """Body for ``PUT /changeset/create``.

    >>> encode_changeset({"comment": "x"})  # doctest: +ELLIPSIS
    b'<?xml ...<osm><changeset><tag k="comment" v="x"/></changeset></osm>'
    """
    root = etree.Element("osm")
    with _encoding("changeset"):
        _add_tags(etree.SubElement(root, "changeset"), tags)
    return _serialize(root)


def _element_node(
    parent: etree._Element,
    element: Element,
    kind: ChangeKind,
    changeset_id: int | None,
    precision: CoordinatePrecision,
) -> etree._Element:
    attrs = {"id": str(element.id)}
    if changeset_id is not None:
        attrs["changeset"] = str(changeset_id)
    if kind is not ChangeKind.CREATE:
        attrs["version"] = str(element.version)
    if isinstance(element, Node) and kind is not ChangeKind.DELETE:
        attrs["lat"] = precision.format(element.lat)
        attrs["lon"] = precision.format(element.lon)

    node = etree.SubElement(parent, element.element_type.value, attrs)
    if kind is ChangeKind.DELETE:
        return node

    if isinstance(element, Way):
        for node_id in element.nodes:
            etree.SubElement(node, "nd", ref=str(node_id))
    elif isinstance(element, Relation):
        for member in element.members:
            etree.SubElement(
                node,
                "member",
                type=member.type.value,
                ref=str(member.ref),
                role=member.role,
            )
    _add_tags(node, element.tags)
    return node


def encode_osmchange(
    package: DiffPackage,
    precision: CoordinatePrecision = CoordinatePrecision.DOUBLE,
) -> bytes:
    """Render *package* as an osmChange document.

    Blocks are written create, modify, delete, each in package order, so
    the server sees referenced elements created before they are used and
    deleted after their users.  Empty blocks are omitted.

    Raises
    ------
    OsmifyCodecError
        If a tag or role cannot be written as XML, e.g. it holds a control
        character.  Nothing has been sent at that point.
    """
    root = etree.Element("osmChange", version="0.6", generator=GENERATOR)
    for kind, ops in (
        (ChangeKind.CREATE, package.creates),
        (ChangeKind.MODIFY, package.modifies),
        (ChangeKind.DELETE, package.deletes),
    ):
        if not ops:
            continue
        block = etree.SubElement(root, kind.value)
        for op in ops:
            with _encoding(f"{op.kind.value} of {op.ref}"):
                _element_node(block, op.element, kind, package.changeset_id, precision)
    return _serialize(root)
