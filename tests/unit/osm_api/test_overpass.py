"""Tests for osmify.osm_api.overpass."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from osmify.errors import OsmifyCodecError
from osmify.osm_api import AsyncOverpassAPI, OverpassAPI
from osmify.osm_api.overpass import _with_json_output

RESULT = b'{"version": 0.6, "elements": [{"type": "node", "id": 1, "lat": 1.0, "lon": 2.0}]}'


class TestWithJsonOutput:
    def test_prepends_json_setting(self):
        assert _with_json_output("node(1);out;") == "[out:json];node(1);out;"

    def test_keeps_existing_setting(self):
        ql = "[out:json][timeout:25];node(1);out;"
        assert _with_json_output(ql) == ql

    def test_keeps_spaced_json_setting(self):
        ql = "[bbox:1,2,3,4][ out : JSON ];node;out;"
        assert _with_json_output(ql) == ql

    @pytest.mark.parametrize(
        ("ql", "expected"),
        [
            ("[timeout:25];node(1);out;", "[out:json][timeout:25];node(1);out;"),
            ("[timeout:25][maxsize:1073741824];node(1);out;", "[out:json][timeout:25][maxsize:1073741824];node(1);out;"),
            ("[bbox:50.7,7.1,50.8,7.2] ;node[amenity];out;", "[out:json][bbox:50.7,7.1,50.8,7.2] ;node[amenity];out;"),
        ],
    )
    def test_merges_into_leading_settings(self, ql, expected):
        assert _with_json_output(ql) == expected

    def test_filters_are_not_settings(self):
        ql = 'node["name"="x"];out;'
        assert _with_json_output(ql) == f"[out:json];{ql}"

    @pytest.mark.parametrize("ql", ["[out:xml];node(1);out;", "[timeout:5][ out : csv(name) ];node(1);out;"])
    def test_rejects_non_json_output(self, ql):
        with pytest.raises(ValueError, match="not supported"):
            _with_json_output(ql)

    def test_strips_whitespace(self):
        assert _with_json_output("\n  way(5);out;\n") == "[out:json];way(5);out;"


class TestOverpassAPI:
    def test_query_posts_form_data(self):
        transport = MagicMock()
        transport.request.return_value = RESULT
        result = OverpassAPI(transport).query("node(1);out;")
        assert result["elements"][0]["id"] == 1
        transport.request.assert_called_once_with(
            "POST", "", idempotent=True, data={"data": "[out:json];node(1);out;"},
        )

    def test_non_json_body(self):
        transport = MagicMock()
        transport.request.return_value = b"<html>runtime error</html>"
        with pytest.raises(OsmifyCodecError) as exc_info:
            OverpassAPI(transport).query("node(1);out;")
        assert exc_info.value.context["reason"] == "overpass_not_json"
        assert "runtime error" in exc_info.value.context["body"]

    def test_query_settings_merged(self):
        transport = MagicMock()
        transport.request.return_value = RESULT
        OverpassAPI(transport).query("[timeout:25];node(1);out;")
        assert transport.request.call_args.kwargs["data"] == {"data": "[out:json][timeout:25];node(1);out;"}

    def test_xml_output_refused_before_sending(self):
        transport = MagicMock()
        with pytest.raises(ValueError):
            OverpassAPI(transport).query("[out:xml];node(1);out;")
        transport.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_async_query(self):
        transport = MagicMock()
        transport.request = AsyncMock(return_value=RESULT)
        result = await AsyncOverpassAPI(transport).query("node(1);out;")
        assert result["version"] == 0.6
        assert transport.request.await_args.kwargs["idempotent"] is True
