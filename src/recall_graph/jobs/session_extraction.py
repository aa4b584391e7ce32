"""Session extraction job.

Periodic batch job that turns raw session logs into durable memories:

1. select every unprocessed log for the configured source, oldest first
2. make sure the sentinel owner exists
3. chunk into batches and ask the oracle for extractions per batch
4. persist each extraction as a Memory, then replicate to recall stores
5. mark the batch processed, whether or not extraction succeeded

Nothing is retried. A batch whose oracle call fails is still marked
processed so a bad batch cannot wedge the backlog; the cost is that its
facts are lost.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..errors import OracleError, PersistenceError
from ..models import Memory, MemoryExtraction, Owner, SourceRecord
from ..oracle.adapter import ExtractionOracle
from ..replication.replicator import RecallReplicator, ReplicationCounts
from ..store.base import MemoryStore, SessionLogStore

logger = logging.getLogger(__name__)


class SessionJobStore(MemoryStore, SessionLogStore, Protocol):
    """What the job needs from the primary store."""


@dataclass(frozen=True)
class ExtractionJobConfig:
    owner: Owner
    source: str = "claude-code"
    batch_size: int = 20
    scope: str = "shared"
    provenance_tags: tuple[str, ...] = ("claude-code", "auto-extracted")


@dataclass(slots=True)
class ExtractionRunResult:
    processed: int = 0
    extracted: int = 0
    replicated: ReplicationCounts = field(default_factory=ReplicationCounts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "extracted": self.extracted,
            "pineconeUpserted": self.replicated.durable,
            "qdrantUpserted": self.replicated.fast,
        }


def batched(it: Iterable, batch_size: int) -> Iterable[list]:
    batch: list = []
    for x in it:
        batch.append(x)
        if len(batch) >= batch_size:
            yield batch
            batch = []
    if batch:
        yield batch


def format_batch(records: Sequence[SourceRecord]) -> str:
    return "\n\n".join(f"--- Exchange {i} ---\n{r.summary}" for i, r in enumerate(records, start=1))


class SessionExtractionJob:
    def __init__(
        self,
        store: SessionJobStore,
        oracle: ExtractionOracle,
        replicator: RecallReplicator,
        *,
        config: ExtractionJobConfig,
    ):
        self.store = store
        self.oracle = oracle
        self.replicator = replicator
        self.config = config

    def _tags_for(self, extraction: MemoryExtraction) -> list[str]:
        tags: list[str] = []
        for t in (*self.config.provenance_tags, *extraction.tags):
            if t not in tags:
                tags.append(t)
        return tags

    async def _persist(self, extractions: Sequence[MemoryExtraction]) -> int:
        stored = 0
        for e in extractions:
            memory = Memory(
                agent_id=self.config.owner.id,
                memory_type=e.type,
                content=e.content,
                importance=e.importance,
                scope=self.config.scope,
                tags=self._tags_for(e),
            )
            try:
                await self.store.insert_memory(memory)
            except PersistenceError as err:
                logger.warning("Failed to insert extracted memory: %s", err)
                continue
            stored += 1
        return stored

    async def _mark(self, ids: list[str]) -> None:
        try:
            await self.store.mark_processed(ids)
            return
        except PersistenceError as err:
            logger.warning("Bulk mark of %d session logs failed, marking one by one: %s", len(ids), err)

        for record_id in ids:
            try:
                await self.store.mark_processed([record_id])
            except PersistenceError as err:
                logger.warning("Failed to mark session log %s processed: %s", record_id, err)

    async def _run_batch(self, index: int, batch: list[SourceRecord], result: ExtractionRunResult) -> None:
        try:
            extractions = await self.oracle.extract_memories(format_batch(batch), exchange_count=len(batch))
        except OracleError as err:
            logger.warning("Session log batch %d extraction failed, continuing: %s", index, err)
            extractions = []

        if extractions:
            result.extracted += await self._persist(extractions)
            result.replicated += await self.replicator.replicate(extractions)

        await self._mark([r.id for r in batch])
        result.processed += len(batch)

    async def run(self) -> ExtractionRunResult:
        result = ExtractionRunResult()
        records = await self.store.list_unprocessed(self.config.source)
        if not records:
            logger.info("No unprocessed session logs found, skipping")
            return result

        logger.info("Processing %d session logs from %s", len(records), self.config.source)

        if await self.store.ensure_owner(self.config.owner):
            logger.info("Created sentinel owner %s", self.config.owner.slug)

        for index, batch in enumerate(batched(records, self.config.batch_size)):
            await self._run_batch(index, batch, result)

        logger.info("Session log processing complete: %s", result.to_dict())
        return result
