from __future__ import annotations

from typing import Protocol

from ..models import (
    EntityRef,
    Memory,
    NeighborEntity,
    Owner,
    RelatedEntity,
    Relation,
    RelationCandidate,
    SourceRecord,
    UpsertOutcome,
    entity_key,
)


class RelationStore(Protocol):
    """Owner of the persisted entity-relationship graph."""

    async def ensure_schema(self) -> None: ...

    async def upsert_relation(self, candidate: RelationCandidate) -> UpsertOutcome: ...

    async def get_relation(self, source: str, target: str, relation_type: str) -> Relation | None: ...

    async def related_to(self, name: str) -> list[RelatedEntity]: ...

    async def neighborhood(self, name: str, max_hops: int = 2, limit: int = 50) -> list[NeighborEntity]: ...

    async def search_entities(self, query: str, limit: int = 10) -> list[EntityRef]: ...

    async def list_relations(self, limit: int = 100) -> list[Relation]: ...


class MemoryStore(Protocol):
    async def insert_memory(self, memory: Memory) -> str: ...

    async def list_memories(self, agent_id: str | None = None, limit: int = 50) -> list[Memory]: ...


class SessionLogStore(Protocol):
    async def ensure_owner(self, owner: Owner) -> bool: ...

    async def add_session_log(self, source: str, summary: str) -> SourceRecord: ...

    async def list_unprocessed(self, source: str) -> list[SourceRecord]: ...

    async def mark_processed(self, ids: list[str]) -> int: ...

    async def count_unprocessed(self, source: str | None = None) -> int: ...


class PrimaryStore(RelationStore, MemoryStore, SessionLogStore, Protocol):
    """Everything the pipeline needs from the relational store."""

    async def close(self) -> None: ...


def as_related(relation: Relation, key: str) -> RelatedEntity:
    """View `relation` from the entity identified by `key`."""
    outgoing = relation.source_key == key
    return RelatedEntity(
        name=relation.target_name if outgoing else relation.source_name,
        type=relation.target_type if outgoing else relation.source_type,
        relation=relation.relation_type,
        direction="outgoing" if outgoing else "incoming",
        strength=relation.strength,
        mention_count=relation.mention_count,
    )


def merge_entity_refs(refs: list[EntityRef], limit: int) -> list[EntityRef]:
    """De-duplicate by case-insensitive name, keeping a typed ref when one exists."""
    merged: dict[str, EntityRef] = {}
    for ref in refs:
        key = entity_key(ref.name)
        seen = merged.get(key)
        if seen is None:
            merged[key] = ref
        elif seen.type is None and ref.type:
            merged[key] = EntityRef(name=seen.name, type=ref.type)
    out = sorted(merged.values(), key=lambda r: entity_key(r.name))
    return out[: max(0, limit)]
