from __future__ import annotations

import asyncio

import pytest

from recall_graph.errors import ReplicationError
from recall_graph.replication.base import RecallRecord
from recall_graph.replication.pinecone_store import PineconeRecallStore, _clean_metadata
from recall_graph.replication.qdrant_store import QdrantRecallStore

RECORD = RecallRecord(
    id="5b0f3a4e-8d0c-4a53-9a55-2f1f3c1d9a10",
    text="Chose asyncpg for the job store",
    vector=[0.1, 0.2, 0.3],
    metadata={"type": "decision", "importance": 0.8, "tags": ["postgres"], "agent_slug": None},
)


class FakeIndex:
    def __init__(self, *, fail: bool = False):
        self.fail = fail
        self.calls: list[dict] = []

    def upsert(self, vectors, namespace):  # noqa: ANN001, ANN201
        if self.fail:
            raise RuntimeError("403 forbidden")
        self.calls.append({"vectors": vectors, "namespace": namespace})

    def describe_index_stats(self):  # noqa: ANN201
        if self.fail:
            raise RuntimeError("unreachable")
        return type("Stats", (), {"total_vector_count": len(self.calls)})()


class FakeQdrant:
    def __init__(self):
        self.collections: dict[str, int] = {}
        self.points: list = []

    def collection_exists(self, name):  # noqa: ANN001, ANN201
        return name in self.collections

    def create_collection(self, collection_name, vectors_config):  # noqa: ANN001, ANN201
        self.collections[collection_name] = vectors_config.size

    def upsert(self, collection_name, points):  # noqa: ANN001, ANN201
        self.points.extend(points)

    def count(self, collection_name, exact=False):  # noqa: ANN001, ANN201
        return type("Count", (), {"count": len(self.points)})()


def test_pinecone_upsert_writes_namespace_and_clean_metadata() -> None:
    index = FakeIndex()
    asyncio.run(PineconeRecallStore(index).upsert(RECORD))

    call = index.calls[0]
    assert call["namespace"] == "compacted"
    vec = call["vectors"][0]
    assert vec["id"] == RECORD.id
    assert vec["metadata"]["text"] == RECORD.text
    assert "agent_slug" not in vec["metadata"]


def test_pinecone_failure_becomes_replication_error() -> None:
    store = PineconeRecallStore(FakeIndex(fail=True))
    with pytest.raises(ReplicationError) as err:
        asyncio.run(store.upsert(RECORD))
    assert err.value.backend == "pinecone"

    status = asyncio.run(store.status())
    assert status.available is False


def test_clean_metadata_coerces_values() -> None:
    assert _clean_metadata({"a": None, "b": (1, "x"), "c": 2.5, "d": {"k": 1}}) == {
        "b": ["1", "x"],
        "c": 2.5,
        "d": "{'k': 1}",
    }


def test_qdrant_creates_collection_lazily_once() -> None:
    client = FakeQdrant()
    store = QdrantRecallStore(client, collection="raw_memories")

    status = asyncio.run(store.status())
    assert (status.available, status.count) == (True, 0)

    asyncio.run(store.upsert(RECORD))
    asyncio.run(store.upsert(RECORD))

    assert client.collections == {"raw_memories": 3}
    assert client.points[0].payload["text"] == RECORD.text
    assert asyncio.run(store.status()).count == 2
