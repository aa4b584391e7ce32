from __future__ import annotations

import asyncio

from recall_graph.jobs.health import check_pipeline_health
from recall_graph.replication.embedder import StubEmbedder
from recall_graph.replication.replicator import RecallReplicator

from .conftest import OWNER, FakeRecallStore


def _replicator(fast=None, durable=None) -> RecallReplicator:  # noqa: ANN001
    return RecallReplicator(
        embedder=StubEmbedder(dim=8), fast=fast, durable=durable, owner_id=OWNER.id, owner_slug=OWNER.slug
    )


def test_healthy_pipeline(store) -> None:
    asyncio.run(store.add_session_log("claude-code", "one"))

    report = asyncio.run(
        check_pipeline_health(store, _replicator(FakeRecallStore("qdrant"), FakeRecallStore("pinecone")), source="claude-code")
    )

    assert report.overall == "pass"
    body = report.to_dict()
    assert body["checks"]["unprocessed_backlog"] == {"status": "pass", "detail": "1 unprocessed session log(s)", "count": 1}
    assert body["checks"]["fast_store"]["status"] == "pass"
    assert body["alerts"] == []


def test_backlog_and_unavailable_store_raise_alerts(store) -> None:
    async def go():
        for i in range(3):
            await store.add_session_log("claude-code", f"log {i}")

    asyncio.run(go())

    report = asyncio.run(
        check_pipeline_health(
            store,
            _replicator(durable=FakeRecallStore("pinecone", available=False)),
            backlog_threshold=2,
        )
    )

    assert report.overall == "fail"
    assert report.checks["unprocessed_backlog"].status == "fail"
    assert report.checks["fast_store"].status == "skip"
    assert report.checks["durable_store"].status == "fail"
    assert len(report.alerts) == 2
