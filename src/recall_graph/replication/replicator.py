from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Sequence
from dataclasses import dataclass

from ..errors import ReplicationError
from ..models import MemoryExtraction
from .base import RecallRecord, RecallStore
from .embedder import Embedder

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReplicationCounts:
    fast: int = 0
    durable: int = 0

    def __iadd__(self, other: "ReplicationCounts") -> "ReplicationCounts":
        self.fast += other.fast
        self.durable += other.durable
        return self


class RecallReplicator:
    """Best-effort fan-out of accepted extractions into auxiliary recall stores.

    The fast store gets every extraction; the durable store only gets
    significant ones (importance >= threshold, or decisions). Each backend
    call is independent: a failure is logged and counted as not written,
    and never reaches the caller.
    """

    def __init__(
        self,
        *,
        embedder: Embedder,
        fast: RecallStore | None = None,
        durable: RecallStore | None = None,
        owner_id: str,
        owner_slug: str,
        scope: str = "shared",
        durable_threshold: float = 0.6,
        source_tag: str = "claude-code",
    ):
        self.embedder = embedder
        self.fast = fast
        self.durable = durable
        self.owner_id = owner_id
        self.owner_slug = owner_slug
        self.scope = scope
        self.durable_threshold = durable_threshold
        self.source_tag = source_tag

    @property
    def enabled(self) -> bool:
        return self.fast is not None or self.durable is not None

    def _fast_record(self, e: MemoryExtraction, vector: list[float], ts_ms: int) -> RecallRecord:
        return RecallRecord(
            id=str(uuid.uuid4()),
            text=e.content,
            vector=vector,
            metadata={
                "session_id": self.owner_id,
                "timestamp": ts_ms,
                "source": "observation",
                "domain": "personal",
                "entities": list(e.tags),
                "importance": e.importance,
                "type": e.type.value,
            },
        )

    def _durable_record(self, e: MemoryExtraction, vector: list[float], ts_ms: int) -> RecallRecord:
        tags = list(e.tags)
        if self.source_tag not in tags:
            tags.append(self.source_tag)
        return RecallRecord(
            id=f"cc-{uuid.uuid4()}",
            text=e.content,
            vector=vector,
            metadata={
                "agent_id": self.owner_id,
                "agent_slug": self.owner_slug,
                "type": e.type.value,
                "scope": self.scope,
                "importance": e.importance,
                "tags": tags,
                "source": "observation",
                "timestamp": ts_ms,
            },
        )

    async def _write(self, store: RecallStore, record: RecallRecord) -> bool:
        try:
            await store.upsert(record)
        except ReplicationError as e:
            logger.warning("Recall replication to %s failed: %s", e.backend, e)
            return False
        return True

    async def replicate(self, extractions: Sequence[MemoryExtraction]) -> ReplicationCounts:
        counts = ReplicationCounts()
        if not self.enabled or not extractions:
            return counts

        for e in extractions:
            try:
                vector = self.embedder.embed_one(e.content)
            except Exception as err:
                logger.warning("Embedding failed, skipping replication of one extraction: %s", err)
                continue

            ts_ms = int(time.time() * 1000)
            if self.fast is not None and await self._write(self.fast, self._fast_record(e, vector, ts_ms)):
                counts.fast += 1
            if (
                self.durable is not None
                and e.is_significant(self.durable_threshold)
                and await self._write(self.durable, self._durable_record(e, vector, ts_ms))
            ):
                counts.durable += 1

        return counts
