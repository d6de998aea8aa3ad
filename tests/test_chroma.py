import json

import pytest
import responses
from responses import matchers

from orch import vectorstore
from orch.chroma import ChromaStore, factory
from orch.vectorstore import Filter, Item

BASE = "http://localhost:8000"
COLLECTIONS = f"{BASE}/api/v1/collections"


def _body(call):
    return json.loads(call.request.body)


def test_factory_defaults_to_local_server(monkeypatch):
    monkeypatch.delenv("ORCH_CHROMADB_URL", raising=False)
    store = factory({})
    assert store.base_url == "http://localhost:8000"
    assert store.collection == ""
    assert store.create_if_missing is True


def test_factory_reads_environment_and_config(monkeypatch):
    monkeypatch.setenv("ORCH_CHROMADB_URL", "http://chroma.example.com:9000")
    assert factory(None).base_url == "http://chroma.example.com:9000"
    store = factory(
        {"base_url": "http://other.example.com", "collection": "itest", "create_if_missing": False}
    )
    assert store.base_url == "http://other.example.com"
    assert store.collection == "itest"
    assert store.create_if_missing is False


def test_factory_rejects_invalid_base_url():
    with pytest.raises(ValueError, match="invalid base_url"):
        factory({"base_url": "http://[::1"})


def test_factory_is_registered():
    assert vectorstore.resolve("chromadb") is factory


def test_upsert_creates_missing_collection_and_adds_items():
    store = ChromaStore(BASE)
    with responses.RequestsMock() as rsps:
        rsps.get(
            COLLECTIONS,
            json={"collections": []},
            match=[matchers.query_param_matcher({"name": "ns1"})],
        )
        rsps.post(COLLECTIONS, json={"id": "c1", "name": "ns1"})
        rsps.post(f"{COLLECTIONS}/c1/add", json=True)
        rsps.post(f"{COLLECTIONS}/c1/query", json={"ids": [["a1"]], "distances": [[0.0]]})
        result = store.upsert(
            [
                Item("a1", "ns1", [1.0, 0.0], {"doc": "1"}),
                Item("a2", "ns1", [0.8, 0.2]),
            ]
        )
        assert result is None
        assert _body(rsps.calls[1]) == {"name": "ns1"}
        assert _body(rsps.calls[2]) == {
            "ids": ["a1", "a2"],
            "embeddings": [[1.0, 0.0], [0.8, 0.2]],
            "metadatas": [{"doc": "1"}, {}],
        }
        assert rsps.calls[2].request.headers["content-type"] == "application/json"
        matches = store.query([1.0, 0.0], 1, Filter(namespace="ns1"))
        assert len(rsps.calls) == 4
    assert [(m.item.id, m.score) for m in matches] == [("a1", 0.0)]


def test_collection_id_is_cached():
    store = ChromaStore(BASE)
    with responses.RequestsMock() as rsps:
        rsps.get(COLLECTIONS, json={"collections": [{"id": "c9", "name": "default"}]})
        rsps.post(f"{COLLECTIONS}/c9/add", json=True)
        rsps.post(f"{COLLECTIONS}/c9/query", json={"ids": [["y"]], "distances": [[0.1]]})
        store.upsert([Item("x", "", [1.0])])
        store.upsert([Item("y", "", [2.0])])
        matches = store.query([2.0], 1)
        methods = [call.request.method for call in rsps.calls]
    assert methods == ["GET", "POST", "POST", "POST"]
    assert [(m.item.id, m.score) for m in matches] == [("y", pytest.approx(-0.1))]


def test_upsert_groups_by_namespace():
    store = ChromaStore(BASE)
    with responses.RequestsMock() as rsps:
        rsps.get(
            COLLECTIONS,
            json={"collections": [{"id": "id1", "name": "ns1"}]},
            match=[matchers.query_param_matcher({"name": "ns1"})],
        )
        rsps.get(
            COLLECTIONS,
            json={"collections": [{"id": "id2", "name": "ns2"}]},
            match=[matchers.query_param_matcher({"name": "ns2"})],
        )
        rsps.post(f"{COLLECTIONS}/id1/add", json=True)
        rsps.post(f"{COLLECTIONS}/id2/add", json=True)
        rsps.post(f"{COLLECTIONS}/id2/query", json={"ids": [["b1"]], "distances": [[0.0]]})
        store.upsert(
            [
                Item("a1", "ns1", [1.0, 0.0]),
                Item("b1", "ns2", [0.0, 1.0]),
                Item("a2", "ns1", [0.8, 0.2]),
            ]
        )
        adds = {call.request.url: _body(call)["ids"] for call in rsps.calls if "add" in call.request.url}
        matches = store.query([0.0, 1.0], 1, Filter(namespace="ns2"))
    assert adds == {f"{COLLECTIONS}/id1/add": ["a1", "a2"], f"{COLLECTIONS}/id2/add": ["b1"]}
    assert [(m.item.id, m.item.namespace) for m in matches] == [("b1", "ns2")]


def test_upsert_nothing_makes_no_requests():
    store = ChromaStore(BASE)
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        result = store.upsert([])
        assert result is None
        assert len(rsps.calls) == 0


def test_missing_collection_without_auto_create_raises():
    store = ChromaStore(BASE, create_if_missing=False)
    with responses.RequestsMock() as rsps:
        rsps.get(COLLECTIONS, json={"collections": [{"id": "z", "name": "other"}]})
        with pytest.raises(RuntimeError, match='collection "ns1" not found'):
            store.query([1.0, 0.0], 2, Filter(namespace="ns1"))


def test_upsert_and_query_single_collection():
    store = factory({"base_url": BASE, "collection": "itest", "create_if_missing": True})
    items = [
        Item("a1", "ns1", [1.0, 0.0], {"doc": "1", "tag": "x"}),
        Item("a2", "ns1", [0.8, 0.2], {"doc": "2", "tag": "y"}),
        Item("b1", "ns2", [0.0, 1.0], {"doc": "3", "tag": "x"}),
    ]
    with responses.RequestsMock() as rsps:
        rsps.get(
            COLLECTIONS,
            json={"collections": []},
            match=[matchers.query_param_matcher({"name": "itest"})],
        )
        rsps.post(COLLECTIONS, json={"id": "it", "name": "itest"})
        rsps.post(f"{COLLECTIONS}/it/add", json=True)
        rsps.post(
            f"{COLLECTIONS}/it/query",
            json={
                "ids": [["a1", "a2"]],
                "distances": [[0.0, 0.25]],
                "metadatas": [[{"doc": "1", "tag": "x"}, {"doc": "2", "tag": "y"}]],
            },
        )
        store.upsert(items)
        matches = store.query([1.0, 0.0], 2, Filter(namespace="ns1"))
        assert _body(rsps.calls[2])["ids"] == ["a1", "a2", "b1"]
        query_body = _body(rsps.calls[3])
    assert query_body == {
        "query_embeddings": [[1.0, 0.0]],
        "n_results": 2,
        "include": ["distances", "metadatas", "ids"],
    }
    assert [m.item.id for m in matches] == ["a1", "a2"]
    assert matches[0].item.id == "a1"
    assert [m.score for m in matches] == [0.0, -0.25]
    assert matches[1].item.metadata == {"doc": "2", "tag": "y"}
    assert matches[1].item.namespace == "ns1"


def test_query_sends_where_and_handles_short_lists():
    store = ChromaStore(BASE)
    with responses.RequestsMock() as rsps:
        rsps.get(COLLECTIONS, json={"collections": [{"id": "c1", "name": "ns1"}]})
        rsps.post(
            f"{COLLECTIONS}/c1/query",
            json={"ids": [["a2", "a3"]], "distances": [[0.5]], "metadatas": None},
        )
        matches = store.query([1.0, 0.0], 5, Filter(namespace="ns1", equals={"tag": "y"}))
        assert _body(rsps.calls[1])["where"] == {"tag": "y"}
    assert [(m.item.id, m.score, m.item.metadata) for m in matches] == [
        ("a2", -0.5, None),
        ("a3", 0.0, None),
    ]


def test_query_without_ids_returns_empty():
    store = ChromaStore(BASE)
    with responses.RequestsMock() as rsps:
        rsps.get(COLLECTIONS, json={"collections": [{"id": "c1", "name": "default"}]})
        rsps.post(f"{COLLECTIONS}/c1/query", json={"ids": []})
        assert store.query([1.0], 3) == []


def test_http_error_is_reported():
    store = ChromaStore(BASE)
    with responses.RequestsMock() as rsps:
        rsps.get(COLLECTIONS, json={"collections": [{"id": "abc", "name": "default"}]})
        rsps.post(f"{COLLECTIONS}/abc/add", status=500)
        with pytest.raises(RuntimeError) as info:
            store.upsert([Item("x", "", [1.0])])
    assert str(info.value) == "chromadb: POST /api/v1/collections/abc/add => 500 Internal Server Error"


def test_get_error_is_reported():
    store = ChromaStore(BASE)
    with responses.RequestsMock() as rsps:
        rsps.get(COLLECTIONS, status=404)
        with pytest.raises(RuntimeError, match="GET /api/v1/collections => 404"):
            store.query([1.0], 1)


def test_base_url_path_prefix_is_kept():
    store = ChromaStore("http://localhost:8000/chroma/")
    with responses.RequestsMock() as rsps:
        rsps.get(
            "http://localhost:8000/chroma/api/v1/collections",
            json={"collections": [{"id": "p1", "name": "default"}]},
        )
        rsps.post("http://localhost:8000/chroma/api/v1/collections/p1/query", json={"ids": [["q"]]})
        matches = store.query([1.0], 1)
    assert [(m.item.id, m.score) for m in matches] == [("q", 0.0)]