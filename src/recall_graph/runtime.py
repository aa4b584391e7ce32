"""Component wiring. The only module that reads settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .jobs.session_extraction import ExtractionJobConfig, SessionExtractionJob
from .live import LiveRelationExtractor
from .models import Owner
from .oracle.adapter import ExtractionOracle
from .oracle.client import ChatCompletionClient, CompletionClient
from .query import GraphQueryService
from .replication.embedder import build_embedder
from .replication.replicator import RecallReplicator
from .settings import RecallGraphSettings
from .store.base import PrimaryStore
from .store.sqlite import SQLiteStore
from .worker import ExchangeQueue

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: RecallGraphSettings
    store: PrimaryStore
    completion: CompletionClient
    oracle: ExtractionOracle
    replicator: RecallReplicator
    job: SessionExtractionJob
    live: LiveRelationExtractor
    query: GraphQueryService
    exchange_queue: ExchangeQueue | None = None

    async def aclose(self) -> None:
        await self.live.drain()
        if self.exchange_queue is not None:
            await self.exchange_queue.close()
        aclose = getattr(self.completion, "aclose", None)
        if aclose is not None:
            await aclose()
        await self.store.close()


def owner_from(s: RecallGraphSettings) -> Owner:
    return Owner(id=s.owner_id, name=s.owner_name, slug=s.owner_slug)


async def open_store(s: RecallGraphSettings) -> PrimaryStore:
    if s.database_url:
        from .store.postgres import PostgresStore

        store = await PostgresStore.connect(s.database_url)
    else:
        store = SQLiteStore(path=s.sqlite_path)
    await store.ensure_schema()
    return store


def build_completion_client(s: RecallGraphSettings) -> ChatCompletionClient:
    return ChatCompletionClient(
        base_url=s.oracle_base_url,
        api_key=s.oracle_api_key,
        model=s.oracle_model,
        timeout_s=s.oracle_timeout_s,
        max_attempts=s.oracle_max_attempts,
    )


def build_replicator(s: RecallGraphSettings) -> RecallReplicator:
    fast = durable = None
    if s.qdrant_url:
        from .replication.qdrant_store import QdrantConfig, QdrantRecallStore, build_qdrant_client

        cfg = QdrantConfig(url=s.qdrant_url, api_key=s.qdrant_api_key, collection=s.qdrant_collection)
        fast = QdrantRecallStore(build_qdrant_client(cfg), collection=cfg.collection)
    if s.pinecone_api_key:
        from .replication.pinecone_store import PineconeConfig, PineconeRecallStore, build_pinecone_index

        pcfg = PineconeConfig(api_key=s.pinecone_api_key, index=s.pinecone_index, namespace=s.pinecone_namespace)
        durable = PineconeRecallStore(build_pinecone_index(pcfg), namespace=pcfg.namespace)

    return RecallReplicator(
        embedder=build_embedder(st_model=s.st_model, dim=s.embedding_dim),
        fast=fast,
        durable=durable,
        owner_id=s.owner_id,
        owner_slug=s.owner_slug,
        scope=s.memory_scope,
        durable_threshold=s.durable_importance_threshold,
        source_tag=s.session_source,
    )


def assemble_runtime(
    s: RecallGraphSettings,
    *,
    store: PrimaryStore,
    completion: CompletionClient,
    replicator: RecallReplicator,
    exchange_queue: ExchangeQueue | None = None,
) -> Runtime:
    oracle = ExtractionOracle(
        completion,
        char_budget=s.batch_char_budget,
        side_char_budget=s.live_side_char_budget,
        temperature=s.oracle_temperature,
        memory_max_tokens=s.memory_max_tokens,
        relation_max_tokens=s.relation_max_tokens,
    )
    job = SessionExtractionJob(
        store,
        oracle,
        replicator,
        config=ExtractionJobConfig(
            owner=owner_from(s),
            source=s.session_source,
            batch_size=s.batch_size,
            scope=s.memory_scope,
            provenance_tags=tuple(s.provenance_tags),
        ),
    )
    return Runtime(
        settings=s,
        store=store,
        completion=completion,
        oracle=oracle,
        replicator=replicator,
        job=job,
        live=LiveRelationExtractor(oracle, store, min_chars=s.live_min_chars),
        query=GraphQueryService(store, neighborhood_limit=s.neighborhood_limit),
        exchange_queue=exchange_queue,
    )


async def open_runtime(s: RecallGraphSettings) -> Runtime:
    store = await open_store(s)
    queue = ExchangeQueue.from_url(s.redis_url, s.exchange_queue) if s.redis_url else None
    logger.info(
        "Runtime ready (store=%s, fast=%s, durable=%s, queue=%s)",
        type(store).__name__,
        bool(s.qdrant_url),
        bool(s.pinecone_api_key),
        bool(queue),
    )
    return assemble_runtime(
        s,
        store=store,
        completion=build_completion_client(s),
        replicator=build_replicator(s),
        exchange_queue=queue,
    )
