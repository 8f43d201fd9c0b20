"""Tests for osmify.codec.responses."""

from __future__ import annotations

import pytest

from osmify.codec import (
    decode_changeset,
    decode_diff_result,
    decode_elements,
    decode_id,
    parse_version_conflict,
)
from osmify.errors import ErrorCode, OsmifyCodecError
from osmify.geo import CoordinatePrecision
from osmify.models import (
    ChangesetState,
    ElementType,
    IdentityMapping,
    Node,
    Relation,
    VersionConflict,
    Way,
)

DIFF_RESULT = b"""<?xml version="1.0" encoding="UTF-8"?>
<diffResult version="0.6" generator="OpenStreetMap server">
  <node old_id="-1" new_id="501" new_version="1"/>
  <way old_id="-2" new_id="900" new_version="1"/>
  <node old_id="10" new_id="10" new_version="4"/>
  <relation old_id="30"/>
</diffResult>
"""

ELEMENTS = b"""<?xml version="1.0" encoding="UTF-8"?>
<osm version="0.6" generator="OpenStreetMap server">
  <node id="10" version="3" changeset="5" lat="51.5000000" lon="-0.1000000" visible="true">
    <tag k="amenity" v="bench"/>
  </node>
  <way id="20" version="2" visible="true">
    <nd ref="10"/>
    <nd ref="11"/>
    <tag k="highway" v="path"/>
  </way>
  <relation id="30" version="7">
    <member type="way" ref="20" role="outer"/>
    <member type="node" ref="10" role=""/>
  </relation>
  <node id="12" version="4" visible="false"/>
</osm>
"""

CHANGESET = b"""<?xml version="1.0" encoding="UTF-8"?>
<osm version="0.6">
  <changeset id="77" user="mapper" open="true" min_lat="1.0" min_lon="2.0" max_lat="3.0" max_lon="4.0">
    <tag k="comment" v="fix path"/>
    <tag k="created_by" v="osmify/0.3.0"/>
  </changeset>
</osm>
"""


class TestDecodeId:
    def test_plain_text(self):
        assert decode_id(b"77\n") == 77

    @pytest.mark.parametrize("body", [b"", b"abc", b"<html/>"])
    def test_rejects_non_numeric(self, body):
        with pytest.raises(OsmifyCodecError) as exc_info:
            decode_id(body)
        assert exc_info.value.code == ErrorCode.CODEC_ERROR
        assert exc_info.value.context["reason"] == "bad_id"


class TestDecodeDiffResult:
    def test_mappings_in_document_order(self):
        assert decode_diff_result(DIFF_RESULT) == [
            IdentityMapping(ElementType.NODE, -1, 501, 1),
            IdentityMapping(ElementType.WAY, -2, 900, 1),
            IdentityMapping(ElementType.NODE, 10, 10, 4),
            IdentityMapping(ElementType.RELATION, 30, None, None),
        ]

    def test_empty(self):
        assert decode_diff_result(b"<diffResult/>") == []

    def test_unknown_children_skipped(self):
        data = b'<diffResult><note/><node old_id="-1" new_id="2" new_version="1"/></diffResult>'
        assert len(decode_diff_result(data)) == 1

    def test_bad_new_version(self):
        with pytest.raises(OsmifyCodecError) as exc_info:
            decode_diff_result(b'<diffResult><node old_id="-1" new_id="5" new_version="one"/></diffResult>')
        assert exc_info.value.context["attribute"] == "new_version"

    def test_missing_old_id(self):
        with pytest.raises(OsmifyCodecError) as exc_info:
            decode_diff_result(b'<diffResult><node new_id="2"/></diffResult>')
        assert exc_info.value.context == {"reason": "bad_attribute", "attribute": "old_id"}

    def test_wrong_root(self):
        with pytest.raises(OsmifyCodecError) as exc_info:
            decode_diff_result(b"<osm/>")
        assert exc_info.value.context["reason"] == "unexpected_root"

    def test_malformed(self):
        with pytest.raises(OsmifyCodecError) as exc_info:
            decode_diff_result(b"<diffResult>")
        assert exc_info.value.context["reason"] == "xml_syntax"

    def test_external_entities_not_resolved(self):
        data = (
            b'<?xml version="1.0"?>'
            b'<!DOCTYPE d [<!ENTITY x SYSTEM "file:///etc/passwd">]>'
            b'<diffResult><node old_id="-1" new_id="2" new_version="1">&x;</node></diffResult>'
        )
        (mapping,) = decode_diff_result(data)
        assert mapping.new_id == 2


class TestDecodeElements:
    def test_all_types(self):
        node, way, rel = decode_elements(ELEMENTS)
        assert isinstance(node, Node)
        assert (node.id, node.version, node.lat, node.lon) == (10, 3, 51.5, -0.1)
        assert node.tags == {"amenity": "bench"}
        assert isinstance(way, Way)
        assert way.nodes == [10, 11]
        assert isinstance(rel, Relation)
        assert [(m.type, m.ref, m.role) for m in rel.members] == [
            (ElementType.WAY, 20, "outer"),
            (ElementType.NODE, 10, ""),
        ]

    def test_invisible_skipped(self):
        assert 12 not in [e.id for e in decode_elements(ELEMENTS)]

    def test_single_precision(self):
        (node,) = decode_elements(
            b'<osm><node id="1" version="1" lat="51.1234567" lon="0.7654321"/></osm>',
            CoordinatePrecision.SINGLE,
        )
        assert node.lat == CoordinatePrecision.SINGLE.quantize(51.1234567)

    def test_bad_nd_ref(self):
        with pytest.raises(OsmifyCodecError):
            decode_elements(b'<osm><way id="1" version="1"><nd ref="x"/></way></osm>')

    @pytest.mark.parametrize(
        ("body", "attribute"),
        [
            (b'<osm><node id="1" version="1" lat="north" lon="0"/></osm>', "lat"),
            (b'<osm><node id="1" version="v1" lat="0" lon="0"/></osm>', "version"),
            (b'<osm><node id="1" version="1"><tag v="x"/></node></osm>', "k"),
            (b'<osm><relation id="1" version="1"><member type="area" ref="2"/></relation></osm>', "type"),
        ],
    )
    def test_bad_attribute_values(self, body, attribute):
        with pytest.raises(OsmifyCodecError) as exc_info:
            decode_elements(body)
        assert exc_info.value.context == {"reason": "bad_attribute", "attribute": attribute}


class TestDecodeChangeset:
    def test_open_changeset(self):
        cs = decode_changeset(CHANGESET)
        assert cs.id == 77
        assert cs.state is ChangesetState.OPEN
        assert cs.comment == "fix path"
        assert cs.tags["created_by"] == "osmify/0.3.0"
        assert cs.bbox.corners() == (1.0, 2.0, 3.0, 4.0)

    def test_closed_without_bbox(self):
        cs = decode_changeset(b'<osm><changeset id="5" open="false"/></osm>')
        assert cs.state is ChangesetState.CLOSED
        assert cs.bbox is None
        assert cs.comment == ""

    def test_single_point_bbox(self):
        cs = decode_changeset(
            b'<osm><changeset id="5" open="true" min_lat="1" min_lon="2" max_lat="1" max_lon="2"/></osm>'
        )
        assert cs.bbox.corners() == (1.0, 2.0, 1.0, 2.0)

    def test_bad_bbox_coordinate(self):
        with pytest.raises(OsmifyCodecError) as exc_info:
            decode_changeset(
                b'<osm><changeset id="5" open="true" min_lat="x" min_lon="2" max_lat="1" max_lon="2"/></osm>'
            )
        assert exc_info.value.context["attribute"] == "min_lat"

    def test_missing_changeset(self):
        with pytest.raises(OsmifyCodecError) as exc_info:
            decode_changeset(b"<osm/>")
        assert exc_info.value.context["reason"] == "missing_changeset"


class TestParseVersionConflict:
    def test_node(self):
        assert parse_version_conflict(
            "Version mismatch: Provided 2, server had: 3 of Node 42"
        ) == VersionConflict(ElementType.NODE, 42, 2, 3)

    def test_embedded_in_longer_message(self):
        conflict = parse_version_conflict(
            "Conflict on POST /changeset/1/upload: Version mismatch: Provided 1, server had: 5 of Way 900"
        )
        assert conflict == VersionConflict(ElementType.WAY, 900, 1, 5)

    def test_case_insensitive(self):
        conflict = parse_version_conflict("version mismatch: provided 1, server had: 2 of relation 7")
        assert conflict.element_type is ElementType.RELATION

    @pytest.mark.parametrize(
        "message",
        ["", "The changeset 1 was closed at 2024-01-01 00:00:00 UTC", "Version mismatch"],
    )
    def test_other_conflicts(self, message):
        assert parse_version_conflict(message) is None
