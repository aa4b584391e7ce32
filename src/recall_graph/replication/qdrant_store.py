from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from ..errors import ReplicationError
from .base import RecallRecord, StoreStatus


@dataclass(frozen=True)
class QdrantConfig:
    url: str = "http://localhost:6333"
    api_key: str | None = None
    collection: str = "raw_memories"
    prefer_grpc: bool = False
    timeout_s: float = 10.0


def build_qdrant_client(cfg: QdrantConfig):
    """Create a qdrant_client.QdrantClient with lazy import."""

    if cfg.timeout_s <= 0:
        raise ValueError("timeout_s must be > 0")

    from qdrant_client import QdrantClient

    # Server may lag the client by a minor version; skip the strict check.
    return QdrantClient(
        url=cfg.url,
        api_key=cfg.api_key,
        prefer_grpc=cfg.prefer_grpc,
        timeout=int(cfg.timeout_s),
        check_compatibility=False,
    )


def ensure_collection(client, *, name: str, dim: int) -> None:
    from qdrant_client.http.models import Distance, VectorParams

    if client.collection_exists(name):
        return
    client.create_collection(
        collection_name=name,
        vectors_config=VectorParams(size=dim, distance=Distance.COSINE),
    )


class QdrantRecallStore:
    """Fast recall store: every accepted extraction lands here."""

    name = "qdrant"

    def __init__(self, client: Any, *, collection: str):
        self.client = client
        self.collection = collection
        self._collection_ready = False

    def _upsert(self, record: RecallRecord) -> None:
        from qdrant_client.http.models import PointStruct

        if not self._collection_ready:
            ensure_collection(self.client, name=self.collection, dim=len(record.vector))
            self._collection_ready = True

        # Qdrant IDs must be int or UUID; record ids are UUID strings.
        self.client.upsert(
            collection_name=self.collection,
            points=[PointStruct(id=record.id, vector=record.vector, payload={**record.metadata, "text": record.text})],
        )

    async def upsert(self, record: RecallRecord) -> None:
        try:
            await asyncio.to_thread(self._upsert, record)
        except Exception as e:
            raise ReplicationError(self.name, str(e)) from e

    async def status(self) -> StoreStatus:
        try:
            if not await asyncio.to_thread(self.client.collection_exists, self.collection):
                return StoreStatus(available=True, detail=f"collection {self.collection} not created yet", count=0)
            res = await asyncio.to_thread(self.client.count, collection_name=self.collection, exact=False)
        except Exception as e:
            return StoreStatus(available=False, detail=str(e))
        return StoreStatus(available=True, detail=f"{self.collection}: {res.count} points", count=int(res.count))
