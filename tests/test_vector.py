"""Tests for the Qdrant-backed vector store."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from headless_indexer.config import DEFAULT_QDRANT_PATH, IndexerSettings
from headless_indexer.store.vector import VectorStore

from fakes import FakeQdrantClient


@pytest.fixture
def client():
    return FakeQdrantClient()


@pytest.fixture
def store(client):
    store = VectorStore("test_chunks", client=client)
    store.init_collection(2)
    return store


def add(store, path, vectors):
    return store.upsert(
        ids=[f"{path}#chunk{i}" for i in range(len(vectors))],
        vectors=vectors,
        documents=[f"chunk {i} of {path}" for i in range(len(vectors))],
        metadata=[{"source": path, "chunk_index": i} for i in range(len(vectors))],
    )


class TestInitCollection:
    """Test collection creation."""

    def test_create_then_reuse(self, client):
        store = VectorStore("c", client=client)
        assert store.init_collection(3) == {"ok": True, "created": True, "error": None}
        assert store.init_collection(3)["created"] is False
        assert client.collections["c"]["size"] == 3
        assert client.payload_indexes == ["source"]

    def test_exists(self, client):
        store = VectorStore("c", client=client)
        assert not store.exists()
        store.init_collection(3)
        assert store.exists()

    def test_count_without_collection(self, client):
        assert VectorStore("c", client=client).count() == 0

    def test_from_settings(self):
        store = VectorStore.from_settings(IndexerSettings(collection_name="x", qdrant_path="/tmp/q"))
        assert store.collection_name == "x"
        assert store.path == "/tmp/q"
        assert store.url is None

    def test_default_path_is_persistent(self):
        store = VectorStore.from_settings(IndexerSettings())
        assert store.path == str(DEFAULT_QDRANT_PATH)

    def test_memory_location(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        store = VectorStore("c", path=":memory:")
        assert store.init_collection(2)["ok"]
        assert store.count() == 0
        assert list(tmp_path.iterdir()) == []
        store.close()

    def test_local_path_survives_close(self, tmp_path):
        store = VectorStore("c", path=str(tmp_path / "q"))
        store.init_collection(2)
        add(store, "/a.py", [[1.0, 0.0]])
        store.close()
        reopened = VectorStore("c", path=str(tmp_path / "q"))
        assert reopened.count() == 1
        reopened.close()

    def test_close_releases_client(self, client):
        store = VectorStore("c", client=client)
        store.close()
        assert client.closed


class TestUpsertAndQuery:
    """Test writes, ranking and deletes."""

    def test_upsert_counts(self, store):
        assert add(store, "/a.py", [[1.0, 0.0], [0.0, 1.0]]) == {"ok": True, "upserted": 2, "error": None}
        assert store.count() == 2

    def test_same_id_replaces(self, store):
        add(store, "/a.py", [[1.0, 0.0]])
        add(store, "/a.py", [[0.0, 1.0]])
        assert store.count() == 1

    def test_mismatched_lengths(self, store):
        result = store.upsert(ids=["a"], vectors=[], documents=["x"], metadata=[{}])
        assert result["ok"] is False
        assert store.count() == 0

    def test_upsert_failure_reported(self, store, client):
        client.fail_upsert = True
        result = add(store, "/a.py", [[1.0, 0.0]])
        assert result["ok"] is False
        assert "rejected" in result["error"]

    def test_query_ranked(self, store):
        add(store, "/a.py", [[1.0, 0.0]])
        add(store, "/b.py", [[0.0, 1.0]])
        result = store.query([0.1, 0.9], k=2)
        assert result["ok"]
        assert [r["metadata"]["source"] for r in result["results"]] == ["/b.py", "/a.py"]
        top = result["results"][0]
        assert top["id"] == "/b.py#chunk0"
        assert top["document"] == "chunk 0 of /b.py"
        assert top["metadata"] == {"source": "/b.py", "chunk_index": 0}

    def test_query_limit(self, store):
        add(store, "/a.py", [[1.0, 0.0], [0.5, 0.5], [0.0, 1.0]])
        assert len(store.query([1.0, 0.0], k=1)["results"]) == 1

    def test_query_failure(self, client):
        store = VectorStore("missing", client=client)
        result = store.query([1.0, 0.0])
        assert result["ok"] is False
        assert result["results"] == []

    def test_delete_by_source(self, store):
        add(store, "/a.py", [[1.0, 0.0], [0.0, 1.0]])
        add(store, "/b.py", [[1.0, 1.0]])
        assert store.delete_by_source("/a.py")["ok"]
        assert store.count() == 1
        assert store.query([1.0, 0.0])["results"][0]["metadata"]["source"] == "/b.py"

    def test_point_ids_are_stable_ints(self, store):
        first = store._chunk_id_to_int("/a.py#chunk0")
        assert first == store._chunk_id_to_int("/a.py#chunk0")
        assert isinstance(first, int)
        assert first != store._chunk_id_to_int("/a.py#chunk1")
