"""Tests for OsmifyClient (sync) and AsyncOsmifyClient (async).

Session flows run against the in-memory fake adapter; the HTTP wiring is
exercised by patching the underlying httpx client so everything runs
offline.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from osmify import (
    AsyncOsmifyClient,
    ChangesetSession,
    ElementRef,
    ElementType,
    Node,
    OsmifyClient,
    Way,
)
from osmify.edit import AsyncChangesetSession
from osmify.errors import (
    ErrorCode,
    OsmifyCodecError,
    OsmifyEditConflictError,
    OsmifyFeatureDisabledError,
    OsmifyNotFoundError,
    OsmifyTransportError,
)
from osmify.models import ChangesetState

FAST = dict(
    rate_limit_rps=10_000.0,
    retry_base_delay=0.0,
    retry_max_delay=0.0,
    retry_jitter=False,
)

DIFF_RESULT = (
    b'<diffResult version="0.6">'
    b'<node old_id="-1" new_id="501" new_version="1"/>'
    b'<way old_id="-2" new_id="900" new_version="1"/>'
    b"</diffResult>"
)


def make_response(status_code: int = 200, content: bytes = b"", headers: dict | None = None) -> httpx.Response:
    resp = httpx.Response(status_code, content=content, headers=headers or {})
    resp.request = httpx.Request("GET", "https://api.openstreetmap.org/api/0.6/test")
    return resp


# ===========================================================================
# Sync client
# ===========================================================================

class TestClientConstruction:
    def test_config_from_kwargs(self):
        client = OsmifyClient(token="tok", coordinate_precision="single", **FAST)
        assert client.config.token == "tok"
        assert client.config.coordinate_precision == "single"
        assert client.store.precision.value == "single"
        client.close()

    def test_invalid_config_rejected(self):
        with pytest.raises(ValueError):
            OsmifyClient(coordinate_precision="half")

    def test_batches_share_store(self):
        with OsmifyClient(**FAST) as client:
            first, second = client.new_batch(), client.new_batch()
            assert first.store is second.store is client.store

    def test_session_includes_default_tags(self, adapter, server):
        with OsmifyClient(adapter=adapter, **FAST) as client:
            with client.changeset("hello", tags={"source": "survey"}) as session:
                assert isinstance(session, ChangesetSession)
        tags = server.changesets[77].tags
        assert tags["comment"] == "hello"
        assert tags["source"] == "survey"
        assert tags["created_by"].startswith("osmify/")

    def test_caller_tags_override_defaults(self, adapter, server):
        with OsmifyClient(adapter=adapter, changeset_tags={"created_by": "x"}, **FAST) as client:
            client.open_changeset(tags={"created_by": "mine"}).close()
        assert server.changesets[77].tags == {"created_by": "mine"}


class TestClientEditing:
    def test_way_over_new_nodes(self, adapter):
        with OsmifyClient(adapter=adapter, **FAST) as client:
            batch = client.new_batch()
            a = batch.add_create(Node(lat=51.5, lon=-0.1))
            batch.add_create(Way(nodes=[a], tags={"highway": "path"}))
            with client.changeset("Add a path") as session:
                result = session.commit(batch)
        assert result.created == 2
        assert client.store.get(ElementRef(ElementType.WAY, 900)).nodes == [501]
        assert session.state is ChangesetState.CLOSED

    def test_fetch_registers_element(self, adapter, server):
        server.seed(Node(id=10, version=3, lat=1.0, lon=2.0))
        with OsmifyClient(adapter=adapter, **FAST) as client:
            node = client.fetch_node(10)
            assert client.store.get(ElementRef(ElementType.NODE, 10)) is node
            assert node.version == 3

    def test_fetch_refreshes_tracked_element(self, adapter, server):
        server.seed(Node(id=10, version=3, lat=1.0, lon=2.0))
        with OsmifyClient(adapter=adapter, **FAST) as client:
            tracked = client.fetch_node(10)
            server.elements[ElementRef(ElementType.NODE, 10)].version = 6
            assert client.fetch_node(10) is tracked
            assert tracked.version == 6

    def test_conflict_then_refetch(self, adapter, server):
        server.seed(Node(id=10, version=3, lat=1.0, lon=2.0))
        with OsmifyClient(adapter=adapter, **FAST) as client:
            node = client.fetch_node(10)
            server.elements[node.ref].version = 4
            batch = client.new_batch()
            batch.add_modify(node.ref, node.version, Node(lat=5.0, lon=5.0))
            with client.changeset("move") as session:
                with pytest.raises(OsmifyEditConflictError):
                    session.commit(batch)
                client.fetch(node.ref)
                batch.add_modify(node.ref, node.version, Node(lat=5.0, lon=5.0))
                session.commit(batch)
        assert node.version == 5
        assert node.lat == 5.0

    def test_fetch_missing_tags_operation(self, adapter):
        with OsmifyClient(adapter=adapter, **FAST) as client:
            with pytest.raises(OsmifyNotFoundError) as exc_info:
                client.fetch_way(404)
        assert exc_info.value.context["operation"] == "fetch"

    def test_fetch_wraps_foreign_error(self, adapter):
        adapter.fail["fetch"] = KeyError("x")
        with OsmifyClient(adapter=adapter, **FAST) as client:
            with pytest.raises(OsmifyTransportError) as exc_info:
                client.fetch_relation(1)
        assert exc_info.value.context["exception_type"] == "KeyError"

    def test_fetch_changeset(self, adapter):
        with OsmifyClient(adapter=adapter, **FAST) as client:
            session = client.open_changeset("c")
            assert client.fetch_changeset(session.id).state is ChangesetState.OPEN


class TestClientHttp:
    """The default adapter, driven through a patched httpx client."""

    def test_full_lifecycle(self):
        client = OsmifyClient(token="test-token-1234", **FAST)
        responses = [
            make_response(200, b"77"),
            make_response(200, DIFF_RESULT),
            make_response(200, b""),
        ]
        with patch.object(client._transport._client, "request", side_effect=responses) as mock:
            batch = client.new_batch()
            a = batch.add_create(Node(lat=1.0, lon=2.0))
            batch.add_create(Way(nodes=[a]))
            with client.changeset("lifecycle") as session:
                session.commit(batch)
        calls = [(c.args[0], c.args[1]) for c in mock.call_args_list]
        assert calls == [
            ("PUT", "/changeset/create"),
            ("POST", "/changeset/77/upload"),
            ("PUT", "/changeset/77/close"),
        ]
        assert client.store.get(ElementRef(ElementType.WAY, 900)).nodes == [501]
        client.close()

    def test_http_version_mismatch(self):
        client = OsmifyClient(token="test-token-1234", **FAST)
        client.store.register(Node(id=10, version=3, lat=1.0, lon=1.0))
        mismatch = make_response(
            409,
            b"Version mismatch: Provided 3, server had: 4 of Node 10",
            headers={"Error": "Version mismatch: Provided 3, server had: 4 of Node 10"},
        )
        with patch.object(
            client._transport._client, "request",
            side_effect=[make_response(200, b"77"), mismatch, make_response(200)],
        ):
            batch = client.new_batch()
            batch.add_modify(ElementRef(ElementType.NODE, 10), 3, Node(lat=2.0, lon=2.0))
            with client.changeset("c") as session:
                with pytest.raises(OsmifyEditConflictError) as exc_info:
                    session.commit(batch)
        assert exc_info.value.actual_version == 4
        assert session.state is ChangesetState.CLOSED
        client.close()

    def test_upload_timeout_not_retried(self):
        client = OsmifyClient(token="test-token-1234", **FAST)
        with patch.object(
            client._transport._client, "request",
            side_effect=[make_response(200, b"77"), httpx.ReadTimeout("slow")],
        ) as mock:
            session = client.open_changeset("c")
            batch = client.new_batch()
            batch.add_create(Node())
            with pytest.raises(OsmifyTransportError) as exc_info:
                session.commit(batch)
        assert exc_info.value.code == ErrorCode.NETWORK_ERROR
        assert mock.call_count == 2
        assert session.is_indeterminate
        client.close()


    def test_unencodable_tag_fails_before_sending(self):
        client = OsmifyClient(token="test-token-1234", **FAST)
        node_only = (
            b'<diffResult version="0.6">'
            b'<node old_id="-1" new_id="501" new_version="1"/>'
            b"</diffResult>"
        )
        with patch.object(
            client._transport._client, "request",
            side_effect=[make_response(200, b"77"), make_response(200, node_only)],
        ) as mock:
            session = client.open_changeset("c")
            batch = client.new_batch()
            ref = ElementRef(ElementType.NODE, batch.add_create(Node(tags={"name": "bad\x01value"})))
            with pytest.raises(OsmifyCodecError) as exc_info:
                session.commit(batch)
            assert exc_info.value.context["operation"] == "upload"
            assert mock.call_count == 1
            assert not session.is_indeterminate

            batch.add_modify(ref, None, Node(tags={"name": "good value"}))
            assert session.commit(batch).created == 1
        assert mock.call_count == 2
        client.close()


class TestClientOverpass:
    def test_disabled_by_default(self):
        with OsmifyClient(**FAST) as client:
            with pytest.raises(OsmifyFeatureDisabledError) as exc_info:
                client.query_overpass("node(1);out;")
        assert exc_info.value.context == {"feature": "overpass"}

    def test_enabled_query(self):
        client = OsmifyClient(enable_overpass=True, **FAST)
        resp = make_response(200, b'{"elements": []}')
        with patch.object(client._overpass_transport._client, "request", return_value=resp) as mock:
            assert client.query_overpass("node(1);out;") == {"elements": []}
        assert mock.call_args.kwargs["data"] == {"data": "[out:json];node(1);out;"}
        client.close()
        assert client._overpass_transport._client.is_closed


class TestClientMetrics:
    def test_session_uses_configured_metrics(self, adapter):
        metrics = MagicMock()
        with OsmifyClient(adapter=adapter, metrics=metrics, **FAST) as client:
            client.open_changeset("c").close()
        metrics.increment.assert_any_call("osmify.changesets_opened_total")
        metrics.increment.assert_any_call("osmify.changesets_closed_total")


# ===========================================================================
# Async client
# ===========================================================================

class TestAsyncClient:
    @pytest.mark.asyncio
    async def test_way_over_new_nodes(self, async_adapter):
        async with AsyncOsmifyClient(adapter=async_adapter, **FAST) as client:
            batch = client.new_batch()
            a = batch.add_create(Node(lat=1.0, lon=1.0))
            batch.add_create(Way(nodes=[a]))
            async with client.changeset("async") as session:
                assert isinstance(session, AsyncChangesetSession)
                result = await session.commit(batch)
        assert result.mappings[1].new_id == 900
        assert client.store.get(ElementRef(ElementType.WAY, 900)).nodes == [501]

    @pytest.mark.asyncio
    async def test_fetch(self, async_adapter, server):
        server.seed(Way(id=20, version=2, nodes=[1, 2]))
        async with AsyncOsmifyClient(adapter=async_adapter, **FAST) as client:
            way = await client.fetch_way(20)
            assert client.store.get(way.ref) is way

    @pytest.mark.asyncio
    async def test_open_changeset_and_fetch_changeset(self, async_adapter):
        async with AsyncOsmifyClient(adapter=async_adapter, **FAST) as client:
            session = await client.open_changeset("c")
            assert (await client.fetch_changeset(session.id)).id == 77
            await session.close()

    @pytest.mark.asyncio
    async def test_overpass_disabled(self):
        async with AsyncOsmifyClient(**FAST) as client:
            with pytest.raises(OsmifyFeatureDisabledError):
                await client.query_overpass("node(1);out;")

    @pytest.mark.asyncio
    async def test_http_lifecycle(self):
        client = AsyncOsmifyClient(token="test-token-1234", **FAST)
        mock = AsyncMock(side_effect=[
            make_response(200, b"77"),
            make_response(200, DIFF_RESULT),
            make_response(200),
        ])
        with patch.object(client._transport._client, "request", new=mock):
            batch = client.new_batch()
            a = batch.add_create(Node(lat=1.0, lon=2.0))
            batch.add_create(Way(nodes=[a]))
            async with client.changeset("lifecycle") as session:
                await session.commit(batch)
        assert [c.args[0] for c in mock.await_args_list] == ["PUT", "POST", "PUT"]
        await client.close()
