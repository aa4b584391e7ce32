from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .models import NeighborEntity, RelatedEntity, Relation
from .store.base import RelationStore


@dataclass(frozen=True, slots=True)
class EntityLink:
    related_entity: str
    relation: str
    direction: str

    def to_dict(self) -> dict[str, Any]:
        return {"relatedEntity": self.related_entity, "relation": self.relation, "direction": self.direction}


@dataclass(frozen=True, slots=True)
class EntityMatch:
    name: str
    type: str | None
    relations: list[EntityLink] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "type": self.type, "relations": [r.to_dict() for r in self.relations]}


@dataclass(slots=True)
class GraphQueryService:
    """Read-only facade over the relation store.

    No caching: every call reflects current store state.
    """

    store: RelationStore
    neighborhood_limit: int = 50

    async def related(self, name: str) -> list[RelatedEntity]:
        return await self.store.related_to(name)

    async def neighborhood(self, name: str, max_hops: int = 2) -> list[NeighborEntity]:
        return await self.store.neighborhood(name, max_hops=max_hops, limit=self.neighborhood_limit)

    async def search(self, query: str, limit: int = 10) -> list[EntityMatch]:
        out: list[EntityMatch] = []
        for ref in await self.store.search_entities(query, limit=limit):
            rels = await self.store.related_to(ref.name)
            out.append(
                EntityMatch(
                    name=ref.name,
                    type=ref.type,
                    relations=[EntityLink(related_entity=r.name, relation=r.relation, direction=r.direction) for r in rels],
                )
            )
        return out

    async def recent_relations(self, limit: int = 100) -> list[Relation]:
        return await self.store.list_relations(limit=limit)
