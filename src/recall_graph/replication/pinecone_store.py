from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from ..errors import ReplicationError
from .base import RecallRecord, StoreStatus


@dataclass(frozen=True)
class PineconeConfig:
    api_key: str
    index: str = "recall-memory"
    namespace: str = "compacted"


def build_pinecone_index(cfg: PineconeConfig):
    from pinecone import Pinecone

    return Pinecone(api_key=cfg.api_key).Index(cfg.index)


def _clean_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    """Pinecone metadata values must be str, number, bool or list of str."""
    out: dict[str, Any] = {}
    for k, v in metadata.items():
        if v is None:
            continue
        if isinstance(v, (list, tuple)):
            out[k] = [str(x) for x in v]
        elif isinstance(v, (str, int, float, bool)):
            out[k] = v
        else:
            out[k] = str(v)
    return out


class PineconeRecallStore:
    """Durable recall store: only significant extractions are written here."""

    name = "pinecone"

    def __init__(self, index: Any, *, namespace: str = "compacted"):
        self.index = index
        self.namespace = namespace

    def _upsert(self, record: RecallRecord) -> None:
        metadata = _clean_metadata({**record.metadata, "text": record.text})
        self.index.upsert(
            vectors=[{"id": record.id, "values": record.vector, "metadata": metadata}],
            namespace=self.namespace,
        )

    async def upsert(self, record: RecallRecord) -> None:
        try:
            await asyncio.to_thread(self._upsert, record)
        except Exception as e:
            raise ReplicationError(self.name, str(e)) from e

    async def status(self) -> StoreStatus:
        try:
            stats = await asyncio.to_thread(self.index.describe_index_stats)
        except Exception as e:
            return StoreStatus(available=False, detail=str(e))
        total = int(getattr(stats, "total_vector_count", 0) or 0)
        return StoreStatus(available=True, detail=f"{total} total records", count=total)
