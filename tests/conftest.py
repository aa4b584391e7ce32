from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator
from pathlib import Path

import pytest

from recall_graph.errors import OracleError, ReplicationError
from recall_graph.models import Owner, RelationCandidate, RelationType
from recall_graph.oracle.adapter import ExtractionOracle
from recall_graph.oracle.client import CompletionRequest
from recall_graph.replication.base import RecallRecord, StoreStatus
from recall_graph.replication.embedder import StubEmbedder
from recall_graph.replication.replicator import RecallReplicator
from recall_graph.store.sqlite import SQLiteStore

OWNER = Owner(id="11111111-1111-1111-1111-111111111111", name="Claude Code", slug="_claude-code")


class ScriptedCompletion:
    """Completion client that replays canned responses in order.

    Items are response strings or exceptions to raise. Once the script is
    exhausted the last item repeats.
    """

    def __init__(self, *responses: str | Exception):
        self.responses = list(responses) or ['{"extractions": []}']
        self.requests: list[CompletionRequest] = []

    async def complete(self, request: CompletionRequest) -> str:
        self.requests.append(request)
        idx = min(len(self.requests) - 1, len(self.responses) - 1)
        item = self.responses[idx]
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def calls(self) -> int:
        return len(self.requests)


class FakeRecallStore:
    def __init__(self, name: str, *, fail: bool = False, available: bool = True):
        self.name = name
        self.fail = fail
        self.available = available
        self.records: list[RecallRecord] = []

    async def upsert(self, record: RecallRecord) -> None:
        if self.fail:
            raise ReplicationError(self.name, "write rejected")
        self.records.append(record)

    async def status(self) -> StoreStatus:
        if not self.available:
            return StoreStatus(available=False, detail="connection refused")
        return StoreStatus(available=True, detail=f"{len(self.records)} vectors", count=len(self.records))


def memories_json(*items: dict) -> str:
    return json.dumps({"extractions": list(items)})


def relations_json(*items: dict) -> str:
    return json.dumps({"relations": list(items)})


def candidate(source: str, target: str, relation: str = "works_on", **kw) -> RelationCandidate:
    return RelationCandidate(source=source, target=target, relation=RelationType(relation), **kw)


def oracle_error() -> OracleError:
    return OracleError("completion failed with HTTP 429: rate limited")


@pytest.fixture
def store(tmp_path: Path) -> Iterator[SQLiteStore]:
    s = SQLiteStore(path=str(tmp_path / "recall-test.db"))
    asyncio.run(s.ensure_schema())
    yield s


@pytest.fixture
def fast_store() -> FakeRecallStore:
    return FakeRecallStore("qdrant")


@pytest.fixture
def durable_store() -> FakeRecallStore:
    return FakeRecallStore("pinecone")


@pytest.fixture
def replicator(fast_store: FakeRecallStore, durable_store: FakeRecallStore) -> RecallReplicator:
    return RecallReplicator(
        embedder=StubEmbedder(dim=16),
        fast=fast_store,
        durable=durable_store,
        owner_id=OWNER.id,
        owner_slug=OWNER.slug,
    )


def make_oracle(*responses: str | Exception) -> tuple[ExtractionOracle, ScriptedCompletion]:
    client = ScriptedCompletion(*responses)
    return ExtractionOracle(client), client
