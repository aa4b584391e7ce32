from .base import RecallRecord, RecallStore, StoreStatus
from .embedder import Embedder, StubEmbedder, build_embedder
from .replicator import RecallReplicator, ReplicationCounts

__all__ = [
    "Embedder",
    "RecallRecord",
    "RecallReplicator",
    "RecallStore",
    "ReplicationCounts",
    "StoreStatus",
    "StubEmbedder",
    "build_embedder",
]
