"""Response documents: diff results, elements, changesets and error text."""

from __future__ import annotations

import re

from lxml import etree

from osmify.errors import OsmifyCodecError
from osmify.geo import BBox, Coordinates, CoordinatePrecision
from osmify.models import (
    Changeset,
    ChangesetState,
    Element,
    ElementType,
    IdentityMapping,
    Member,
    Node,
    Relation,
    VersionConflict,
    Way,
)

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True)

_VERSION_MISMATCH_RE = re.compile(
    r"Version mismatch: Provided (\d+), server had: (\d+) of (Node|Way|Relation) (\d+)",
    re.IGNORECASE,
)


def _parse(data: bytes, expected_root: str) -> etree._Element:
    try:
        root = etree.fromstring(data, parser=_PARSER)
    except etree.XMLSyntaxError as exc:
        raise OsmifyCodecError(
            message=f"malformed {expected_root} document: {exc}",
            context={"reason": "xml_syntax"},
            cause=exc,
        ) from exc
    if root is None or root.tag != expected_root:
        raise OsmifyCodecError(
            message=f"expected <{expected_root}>, got <{getattr(root, 'tag', None)}>",
            context={"reason": "unexpected_root"},
        )
    return root


def _bad_attribute(elem: etree._Element, name: str, exc: Exception) -> OsmifyCodecError:
    return OsmifyCodecError(
        message=f"<{elem.tag}> has no valid {name!r} attribute",
        context={"reason": "bad_attribute", "attribute": name},
        cause=exc,
    )


def _int_attr(elem: etree._Element, name: str) -> int:
    try:
        return int(elem.attrib[name])
    except (KeyError, ValueError) as exc:
        raise _bad_attribute(elem, name, exc) from exc


def _maybe_int(elem: etree._Element, name: str) -> int | None:
    value = elem.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise _bad_attribute(elem, name, exc) from exc


def _float_attr(elem: etree._Element, name: str, default: float | None = None) -> float:
    value = elem.get(name)
    if value is None and default is not None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise _bad_attribute(elem, name, exc) from exc


def _type_attr(elem: etree._Element, name: str) -> ElementType:
    try:
        return ElementType(elem.get(name))
    except ValueError as exc:
        raise _bad_attribute(elem, name, exc) from exc


def _tags(elem: etree._Element) -> dict[str, str]:
    tags = {}
    for tag in elem.iterfind("tag"):
        key = tag.get("k")
        if key is None:
            raise _bad_attribute(tag, "k", KeyError("k"))
        tags[key] = tag.get("v", "")
    return tags


def decode_id(data: bytes) -> int:
    """Plain-text id returned by ``PUT /changeset/create``."""
    try:
        return int(data.decode("ascii").strip())
    except (UnicodeDecodeError, ValueError) as exc:
        raise OsmifyCodecError(
            message=f"expected a numeric id, got {data[:50]!r}",
            context={"reason": "bad_id"},
            cause=exc,
        ) from exc


def decode_diff_result(data: bytes) -> list[IdentityMapping]:
    """Parse a ``<diffResult>`` into identity mappings, in document order."""
    root = _parse(data, "diffResult")
    mappings = []
    for elem in root:
        try:
            element_type = ElementType(elem.tag)
        except ValueError:
            continue
        mappings.append(
            IdentityMapping(
                element_type=element_type,
                old_id=_int_attr(elem, "old_id"),
                new_id=_maybe_int(elem, "new_id"),
                new_version=_maybe_int(elem, "new_version"),
            )
        )
    return mappings


def decode_elements(
    data: bytes,
    precision: CoordinatePrecision = CoordinatePrecision.DOUBLE,
) -> list[Element]:
    """Parse the elements of an ``<osm>`` document.

    Elements marked ``visible="false"`` (history entries of deleted
    elements) are skipped.
    """
    root = _parse(data, "osm")
    elements: list[Element] = []
    for elem in root:
        if elem.get("visible") == "false":
            continue
        common = {
            "id": _int_attr(elem, "id"),
            "version": _maybe_int(elem, "version"),
            "tags": _tags(elem),
        }
        if elem.tag == "node":
            elements.append(Node(
                lat=precision.quantize(_float_attr(elem, "lat", 0.0)),
                lon=precision.quantize(_float_attr(elem, "lon", 0.0)),
                **common,
            ))
        elif elem.tag == "way":
            elements.append(Way(
                nodes=[_int_attr(nd, "ref") for nd in elem.iterfind("nd")],
                **common,
            ))
        elif elem.tag == "relation":
            elements.append(Relation(
                members=[
                    Member(
                        type=_type_attr(m, "type"),
                        ref=_int_attr(m, "ref"),
                        role=m.get("role", ""),
                    )
                    for m in elem.iterfind("member")
                ],
                **common,
            ))
    return elements


def decode_changeset(data: bytes) -> Changeset:
    """Parse ``GET /changeset/{id}``."""
    root = _parse(data, "osm")
    elem = root.find("changeset")
    if elem is None:
        raise OsmifyCodecError(
            message="response carries no <changeset>",
            context={"reason": "missing_changeset"},
        )
    tags = _tags(elem)
    bbox = None
    if all(elem.get(k) is not None for k in ("min_lat", "min_lon", "max_lat", "max_lon")):
        # A single-node changeset has a zero-area box.
        bbox = BBox.from_points([
            Coordinates.from_value(_float_attr(elem, "min_lat"), _float_attr(elem, "min_lon")),
            Coordinates.from_value(_float_attr(elem, "max_lat"), _float_attr(elem, "max_lon")),
        ])
    return Changeset(
        id=_int_attr(elem, "id"),
        state=ChangesetState.OPEN if elem.get("open") == "true" else ChangesetState.CLOSED,
        comment=tags.get("comment", ""),
        tags=tags,
        bbox=bbox,
    )


def parse_version_conflict(message: str) -> VersionConflict | None:
    """Extract the conflict from a 409 ``Version mismatch`` message.

    >>> parse_version_conflict("Version mismatch: Provided 2, server had: 3 of Node 42")
    VersionConflict(element_type=<ElementType.NODE: 'node'>, element_id=42, expected_version=2, actual_version=3)

    Returns ``None`` for any other conflict text.
    """
    match = _VERSION_MISMATCH_RE.search(message or "")
    if match is None:
        return None
    provided, server_had, kind, element_id = match.groups()
    return VersionConflict(
        element_type=ElementType(kind.lower()),
        element_id=int(element_id),
        expected_version=int(provided),
        actual_version=int(server_had),
    )
